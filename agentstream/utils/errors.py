import logging
import sys
import traceback
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class AgentStreamError(Exception):
    """Base exception for all agentstream errors with structured error information."""

    def __init__(
        self,
        message: str,
        code: str = "AGENTSTREAM_ERROR",
        recoverable: bool = True,
        suggested_action: str = "ignore",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.recoverable = recoverable
        self.suggested_action = suggested_action
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for diagnostics output."""
        return {
            "code": self.code,
            "message": str(self),
            "recoverable": self.recoverable,
            "suggested_action": self.suggested_action,
            "details": self.details
        }


class UnknownEventError(AgentStreamError):
    """Event type is not part of the protocol."""
    def __init__(self, event_type: Optional[str], **kwargs):
        super().__init__(
            f"Unknown event type: {event_type!r}",
            code="UNKNOWN_EVENT",
            recoverable=True,
            suggested_action="ignore",
            details={"event_type": event_type},
            **kwargs
        )


class MalformedEventError(AgentStreamError):
    """Event has a known type but its payload does not validate."""
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            code="MALFORMED_EVENT",
            recoverable=True,
            suggested_action="ignore",
            **kwargs
        )


class SessionNotFoundError(AgentStreamError):
    """Session has been closed or was never opened."""
    def __init__(self, session_id: str, **kwargs):
        super().__init__(
            f"Session '{session_id}' not found",
            code="SESSION_NOT_FOUND",
            recoverable=False,
            suggested_action="check_session_id",
            details={"session_id": session_id},
            **kwargs
        )


class ConfigError(AgentStreamError):
    """Pacing configuration could not be applied."""
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            code="CONFIG_ERROR",
            recoverable=True,
            suggested_action="fix_config",
            **kwargs
        )


class ErrorHandler:
    def __init__(self, max_records: int = 100):
        """Keep the most recent structured error records in memory"""
        self._records: Deque[Dict[str, Any]] = deque(maxlen=max_records)

    def log_error(
        self,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        *,
        fatal: bool = False,
    ) -> Dict[str, Any]:
        """Unified error logging with structured output"""
        error_data = {
            "timestamp": datetime.now().isoformat(),
            "error_type": type(error).__name__,
            "message": str(error),
            "traceback": "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
            "context": context or {},
            "severity": "FATAL" if fatal else "ERROR",
        }
        if isinstance(error, AgentStreamError):
            error_data["details"] = error.to_dict()

        logger.error(
            f"{error_data['severity']}: {error_data['message']}",
            extra={"error_data": error_data},
            exc_info=sys.exc_info() if fatal else None,
        )

        self._records.append(error_data)
        return error_data

    @property
    def records(self) -> List[Dict[str, Any]]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()


# Global error handler instance
error_handler = ErrorHandler()
