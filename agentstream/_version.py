"""Centralized version and author metadata for the agentstream package."""

__all__ = ["__version__", "__author__", "__email__", "__license__"]

__version__ = "0.1.0"
__author__ = "Maximus Putnam"
__email__ = "MaximusPutnam@gmail.com"
__license__ = "AGPL-3.0-or-later"
