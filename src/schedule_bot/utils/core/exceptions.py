"""
Basic exception classes for Schedule Bot.

This module contains fundamental exception classes that are used throughout
the codebase without creating import cycles.
"""

from __future__ import annotations

from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification and handling."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for appropriate handling strategies."""

    VALIDATION = "validation"
    RESOURCE = "resource"
    DISCORD = "discord"
    UNKNOWN = "unknown"


class ScheduleBotError(Exception):
    """Base exception class for Schedule Bot specific errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        user_message: str | None = None,
        context: object | None = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message)
        self.category: ErrorCategory = category
        self.severity: ErrorSeverity = severity
        self.user_message: str = user_message or message
        self.context: object | None = context
        self.recoverable: bool = recoverable


class UnresolvableTimeSpecError(ScheduleBotError):
    """An announcement time expression could not be turned into a timestamp."""

    def __init__(
        self,
        time_spec: str,
        user_message: str | None = None,
        context: object | None = None,
    ) -> None:
        super().__init__(
            f"Unable to resolve announcement time '{time_spec}'",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            user_message=user_message,
            context=context,
            recoverable=False,
        )
        self.time_spec: str = time_spec


class BackingMessageMissingError(ScheduleBotError):
    """The Discord message an entry is displayed in no longer exists."""

    def __init__(
        self,
        entry_id: int | None,
        reason: str = "message not found",
        context: object | None = None,
    ) -> None:
        super().__init__(
            f"Backing message for entry [{entry_id}] is unavailable: {reason}",
            category=ErrorCategory.DISCORD,
            severity=ErrorSeverity.LOW,
            context=context,
            recoverable=True,
        )
        self.entry_id: int | None = entry_id
        self.reason: str = reason


class MalformedRepeatRuleError(ScheduleBotError):
    """A repeat bitmask decodes to an inconsistent rule."""

    def __init__(self, message: str, repeat: int | None = None) -> None:
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.HIGH,
            context=repeat,
            recoverable=False,
        )
        self.repeat: int | None = repeat


class EntryStoreError(ScheduleBotError):
    """Reading or writing the entry store failed."""

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        context: object | None = None,
    ) -> None:
        super().__init__(
            message,
            category=ErrorCategory.RESOURCE,
            severity=ErrorSeverity.HIGH,
            user_message=user_message,
            context=context,
            recoverable=True,
        )
