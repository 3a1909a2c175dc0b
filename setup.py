import re
from pathlib import Path

from setuptools import find_packages, setup


def get_version():
    """Read the version from agentstream/_version.py without importing the package."""
    text = (Path(__file__).parent / "agentstream" / "_version.py").read_text()
    match = re.search(r'^__version__ = "([^"]+)"', text, re.MULTILINE)
    if not match:
        raise RuntimeError("Unable to find __version__ in agentstream/_version.py")
    return match.group(1)


def get_packages():
    """Only ship the agentstream package tree."""
    return find_packages(include=["agentstream", "agentstream.*"])


setup(
    name="agentstream",
    version=get_version(),
    description="Paced, coalesced reveal of streamed agent output",
    author="Maximus Putnam",
    author_email="MaximusPutnam@gmail.com",
    license="AGPL-3.0-or-later",
    packages=get_packages(),
    package_dir={"": "."},
    include_package_data=True,
    package_data={"agentstream": ["config.yml"]},
    install_requires=[
        # Core Dependencies
        "pydantic>=2.0",
        "python-dotenv>=0.19.0",
        "PyYAML>=6.0",
        # Utils
        "rich>=10.0.0",
        "typer>=0.9.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "agentstream=agentstream.cli.cli:main",
        ],
    },
)
