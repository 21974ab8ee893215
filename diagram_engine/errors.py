"""
Structured errors for recoverable failures.

Nothing in the engine raises for expected problems (invalid entity,
unknown id, missing shape). Instead the detecting operation builds a
DiagramError, logs it with log_error, and returns a neutral value.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ErrorSeverity(str, Enum):
    """How serious a recoverable failure is."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(str, Enum):
    """Machine-readable failure categories."""
    INVALID_SHAPE = "INVALID_SHAPE"
    INVALID_CONNECTOR = "INVALID_CONNECTOR"
    INVALID_UPDATE = "INVALID_UPDATE"
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    DUPLICATE_ID = "DUPLICATE_ID"
    IMMUTABLE_FIELD = "IMMUTABLE_FIELD"
    INVALID_IMPORT = "INVALID_IMPORT"
    HISTORY_STEP_FAILED = "HISTORY_STEP_FAILED"


_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


@dataclass
class DiagramError:
    """A recoverable failure detected by an engine operation."""
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    code: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.code:
            result["code"] = self.code
        if self.context:
            result["context"] = dict(self.context)
        return result

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


def create_error(
    message: str,
    code: Optional[str] = None,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    **context: Any,
) -> DiagramError:
    """Build a DiagramError; enum codes are stored by value."""
    if isinstance(code, ErrorCode):
        code = code.value
    return DiagramError(message=message, severity=severity, code=code, context=context)


def log_error(error: DiagramError, log: Optional[logging.Logger] = None) -> DiagramError:
    """
    Emit a DiagramError at the logging level matching its severity.

    Args:
        error: The error to log
        log: Logger to use (defaults to this module's logger)

    Returns:
        The same error, so calls can be chained
    """
    log = log or logger
    level = _LOG_LEVELS.get(error.severity, logging.ERROR)
    if error.context:
        log.log(level, "%s %s", error, error.context)
    else:
        log.log(level, "%s", error)
    return error
