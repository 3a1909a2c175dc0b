"""Filtering of the agent process's stderr lines."""

import re
from typing import Optional

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*m")

# Diagnostic chatter the agent writes to stderr during normal operation
NOISE_MARKERS = (
    "INFO",
    "WARN",
    "cwd not set",
    "resume_path: None",
    "Aborting existing session",
    "stream disconnected",
    "retrying turn",
)


def clean_stderr_line(line: str) -> Optional[str]:
    """Return the user-facing error text of a stderr line, or None if it is noise."""
    if not line:
        return None
    text = ANSI_ESCAPE_RE.sub("", line)
    if not text.strip():
        return None
    if any(marker in text for marker in NOISE_MARKERS):
        return None
    return text.rstrip("\r\n")
