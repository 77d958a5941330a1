"""Shared helpers: errors, async task management, HTTP, timing."""

from trivia_bots.utils.errors import (
    ConfigurationError,
    ErrorCode,
    RecoverableSessionError,
    TransientDriverError,
    TriviaBotError,
)

__all__ = [
    "ConfigurationError",
    "ErrorCode",
    "RecoverableSessionError",
    "TransientDriverError",
    "TriviaBotError",
]
