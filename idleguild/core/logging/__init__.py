"""
Logging Infrastructure

Exports the structured logging subsystem and the context binding helper.
"""

from idleguild.core.logging.logger import (
    LoggingSettings,
    current_log_context,
    get_logger,
    log_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "log_context",
    "current_log_context",
    "LoggingSettings",
]
