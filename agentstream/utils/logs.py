import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler


# Resolved here rather than in config to avoid circular imports
def get_workspace_path() -> Path:
    """Get the workspace path used for log files."""
    ws_path = os.getenv('AGENTSTREAM_WORKSPACE')
    if ws_path:
        return Path(ws_path).expanduser()

    return Path.home() / ".agentstream"


def setup_logger(
    log_file: str = "agentstream.log",
    log_level: int = logging.INFO,
    console: bool = False,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the ``agentstream`` logger hierarchy.

    Args:
        log_file: File name inside the log directory
        log_level: Level applied to the package logger
        console: Also render records to the terminal through rich
        log_dir: Override for ``<workspace>/logs``

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("agentstream")
    logger.setLevel(log_level)

    # Remove any existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    log_dir = Path(log_dir) if log_dir else get_workspace_path() / "logs"
    os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        os.path.join(log_dir, log_file),
        maxBytes=1024 * 1024,  # 1 MB
        backupCount=5,
    )
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        rich_handler = RichHandler(rich_tracebacks=True, show_path=False)
        rich_handler.setLevel(log_level)
        logger.addHandler(rich_handler)

    logger.propagate = False
    return logger
