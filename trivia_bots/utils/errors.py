"""Custom exception classes for the bot fleet.

Provides structured error handling with error codes, so callers can decide
between retrying, recovering, or giving up without string matching.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    # General
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INVALID_SESSION_STATE = "INVALID_SESSION_STATE"

    # Driver
    TRANSIENT_DRIVER_ERROR = "TRANSIENT_DRIVER_ERROR"
    SESSION_LOST = "SESSION_LOST"
    RECOVERY_BUDGET_EXCEEDED = "RECOVERY_BUDGET_EXCEEDED"

    # Game flow
    JOIN_FAILED = "JOIN_FAILED"
    PHASE_WAIT_TIMEOUT = "PHASE_WAIT_TIMEOUT"

    # Pool
    AGENT_NOT_FOUND = "AGENT_NOT_FOUND"

    # Collaborators
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"


# Driver failure messages that mean the browser session itself is gone
RECOVERY_SIGNATURES = (
    "Target closed",
    "Target page, context or browser has been closed",
    "Execution context was destroyed",
    "Protocol error",
    "Connection closed",
    "Browser closed",
    "Page crashed",
)


def is_session_loss(error: BaseException) -> bool:
    """Check whether an error means the browser session must be rebuilt."""
    if isinstance(error, TriviaBotError) and error.recoverable:
        return True
    message = str(error)
    return any(signature in message for signature in RECOVERY_SIGNATURES)


class TriviaBotError(Exception):
    """Base exception for bot fleet errors.

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable error message
        details: Additional error details
        recoverable: Whether a full session recovery may fix it
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(TriviaBotError):
    """Raised when a session cannot start (no roster, no URL)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.CONFIGURATION_ERROR,
            message=message,
            details=details,
        )


class InvalidSessionStateError(TriviaBotError):
    """Raised on an illegal session lifecycle transition."""

    def __init__(self, current: str, attempted: str):
        super().__init__(
            code=ErrorCode.INVALID_SESSION_STATE,
            message=f"Cannot {attempted} session in {current} state",
            details={"current": current, "attempted": attempted},
        )


class TransientDriverError(TriviaBotError):
    """A driver call failed but the browser session is intact."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.TRANSIENT_DRIVER_ERROR,
            message=message,
            details=details,
            recoverable=False,
        )


class RecoverableSessionError(TriviaBotError):
    """The browser session was lost; teardown and re-init are required."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.SESSION_LOST,
            message=message,
            details=details,
            recoverable=True,
        )


class RecoveryBudgetExceededError(TriviaBotError):
    """Raised when an agent has used up its lifetime recovery budget."""

    def __init__(self, max_recoveries: int, cause: str | None = None):
        super().__init__(
            code=ErrorCode.RECOVERY_BUDGET_EXCEEDED,
            message=f"Max recoveries ({max_recoveries}) exceeded",
            details={"max_recoveries": max_recoveries, "cause": cause},
        )


class JoinFailedError(TriviaBotError):
    """Registration or the join click did not succeed."""

    def __init__(self, message: str = "Failed to join game"):
        super().__init__(code=ErrorCode.JOIN_FAILED, message=message)


class PhaseWaitTimeoutError(TriviaBotError):
    """No target phase was observed before the deadline."""

    def __init__(self, targets: list[str], timeout: float):
        super().__init__(
            code=ErrorCode.PHASE_WAIT_TIMEOUT,
            message=f"Timeout waiting for phase: {', '.join(targets)}",
            details={"targets": targets, "timeout": timeout},
        )


class AgentNotFoundError(TriviaBotError):
    """The pool has no agent registered for a profile id."""

    def __init__(self, profile_id: str):
        super().__init__(
            code=ErrorCode.AGENT_NOT_FOUND,
            message=f"Player not found: {profile_id}",
            details={"profile_id": profile_id},
        )


class PersistenceError(TriviaBotError):
    """The persistence sink rejected or failed a call."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.PERSISTENCE_FAILED,
            message=message,
            details=details,
        )
