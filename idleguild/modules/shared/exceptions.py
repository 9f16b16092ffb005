"""
Domain exceptions for Idle Guild.

Purpose
-------
Every rule a service enforces fails with one of these. The command layer
turns them into player-facing messages; `BaseService.log_error` uses their
severity so expected failures (cooldowns, bad input) stay quiet in the logs.

Taxonomy
--------
- Rejected before any write: InsufficientResourcesError, ValidationError,
  InvalidOperationError, CooldownActiveError, RateLimitError
- Not found (escrow refunded where applicable): NotFoundError
- Rolled back, safe to retry: ConcurrencyConflictError

Each exception carries `message`, `details`, `severity`, `is_retryable`
and `error_code`, plus the typed attributes named in its constructor.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"  # expected, e.g. cooldowns
    INFO = "info"  # player mistakes, e.g. validation
    WARNING = "warning"  # handled but worth watching, e.g. lost races
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def log_level(self) -> int:
        return logging.getLevelName(self.name)


class GameError(Exception):
    """Base class for rule violations raised by game services."""

    severity: ErrorSeverity = ErrorSeverity.ERROR
    is_retryable: bool = False

    def __init__(self, message: str, error_code: str, **details: Any) -> None:
        self.message = message
        self.error_code = error_code
        self.details: Dict[str, Any] = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.error_code!r})"


class InsufficientResourcesError(GameError):
    """The guild cannot pay: `resource` is "gold" or "prestige_points"."""

    severity = ErrorSeverity.INFO

    def __init__(self, resource: str, required: int, current: int) -> None:
        self.resource = resource
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient {resource}: need {required:,}, have {current:,}",
            f"INSUFFICIENT_{resource.upper()}",
            resource=resource,
            required=required,
            current=current,
            deficit=required - current,
        )


class NotFoundError(GameError):
    """A guild, upgrade, battle or challenge does not exist (any more)."""

    severity = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        suffix = f": {identifier}" if identifier is not None else ""
        super().__init__(
            f"{resource_type} not found{suffix}",
            f"{resource_type.upper()}_NOT_FOUND",
            resource_type=resource_type,
            identifier=identifier,
        )


class ValidationError(GameError):
    """Caller input is malformed or out of range."""

    severity = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            f"VALIDATION_{field.upper()}",
            field=field,
            validation_message=message,
        )


class CooldownActiveError(GameError):
    """
    Args:
        action: "collect", "battle" or "battle_target"
        remaining_seconds: Time until the action is available again
    """

    severity = ErrorSeverity.DEBUG
    is_retryable = True

    def __init__(self, action: str, remaining_seconds: float) -> None:
        self.action = action
        self.remaining_seconds = remaining_seconds
        super().__init__(
            f"{action} is on cooldown: {remaining_seconds:.1f}s remaining",
            "COOLDOWN_ACTIVE",
            action=action,
            retry_after=remaining_seconds,
        )


class RateLimitError(GameError):
    """A daily allowance is used up; `retry_after` counts to the UTC reset."""

    severity = ErrorSeverity.DEBUG
    is_retryable = True

    def __init__(self, command: str, retry_after: float) -> None:
        self.command = command
        self.retry_after = retry_after
        super().__init__(
            f"Daily limit reached for {command}: resets in {retry_after:.0f}s",
            "RATE_LIMIT_EXCEEDED",
            command=command,
            retry_after=retry_after,
        )


class InvalidOperationError(GameError):
    """
    The action breaks a game rule: locked or maxed upgrade, prestige level not
    reached, wrong guild answering a challenge, revenge already taken.
    """

    severity = ErrorSeverity.INFO

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            f"INVALID_{action.upper()}",
            action=action,
            reason=reason,
        )


class ConcurrencyConflictError(GameError):
    """A precondition checked before locking no longer held under the lock."""

    severity = ErrorSeverity.WARNING
    is_retryable = True

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"'{action}' could not be completed, please try again",
            "CONCURRENT_MODIFICATION",
            action=action,
            reason=reason,
        )


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """Severity for logging; anything that is not a game or config error is ERROR."""
    severity = getattr(exc, "severity", None)
    return severity if isinstance(severity, ErrorSeverity) else ErrorSeverity.ERROR
