"""Core utilities shared across Schedule Bot."""

from .exceptions import (
    BackingMessageMissingError,
    EntryStoreError,
    ErrorCategory,
    ErrorSeverity,
    MalformedRepeatRuleError,
    ScheduleBotError,
    UnresolvableTimeSpecError,
)
from .version import get_version

__all__ = [
    "BackingMessageMissingError",
    "EntryStoreError",
    "ErrorCategory",
    "ErrorSeverity",
    "MalformedRepeatRuleError",
    "ScheduleBotError",
    "UnresolvableTimeSpecError",
    "get_version",
]
