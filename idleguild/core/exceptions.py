"""
Infrastructure exceptions for Idle Guild.

These signal a misconfigured or broken deployment, not a player mistake, so
they log at CRITICAL and are never shown to players. They expose the same
`severity` / `is_retryable` / `to_dict()` surface as the domain exceptions in
`idleguild.modules.shared.exceptions`, so one handler can format both.
"""

from __future__ import annotations

from typing import Any, Dict

from idleguild.modules.shared.exceptions import ErrorSeverity


class ConfigurationError(Exception):
    """
    A static or game configuration value is missing or unusable.

    Args:
        config_key: Offending key (env var name or dotted game-config key)
        message: What is wrong with it
    """

    severity = ErrorSeverity.CRITICAL
    is_retryable = False
    error_code = "CONFIG_ERROR"

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        self.message = f"Configuration error for {config_key}: {message}"
        self.details: Dict[str, Any] = {"config_key": config_key, "reason": message}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }
