"""Append-only pending text for one channel."""

import re

WORD_BOUNDARY_RE = re.compile(r"[\s.,;:!?]")


class ChannelBuffer:
    """Pending, not-yet-revealed text.

    Grows only through ``append`` and shrinks only by removing a prefix, so the
    concatenation of everything taken equals everything appended.
    """

    def __init__(self):
        self._pending = ""
        self.appended_chars = 0
        self.released_chars = 0

    def __len__(self) -> int:
        return len(self._pending)

    def __bool__(self) -> bool:
        return bool(self._pending)

    @property
    def pending(self) -> str:
        return self._pending

    def append(self, text: str) -> None:
        if not text:
            return
        self._pending += text
        self.appended_chars += len(text)

    def take(self, size: int) -> str:
        """Remove and return a prefix of at most ``size`` characters."""
        if size <= 0 or not self._pending:
            return ""
        head, self._pending = self._pending[:size], self._pending[size:]
        self.released_chars += len(head)
        return head

    def drain(self) -> str:
        return self.take(len(self._pending))

    def has_word_boundary(self) -> bool:
        return WORD_BOUNDARY_RE.search(self._pending) is not None

    def clear(self) -> None:
        """Drop pending text without releasing it and restart the counters."""
        self._pending = ""
        self.appended_chars = 0
        self.released_chars = 0
