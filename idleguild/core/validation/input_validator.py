"""
Boundary checks for values arriving from chat commands.

Commands hand the services raw user input: ids as ints or strings, bets and
quantities typed by players, guild names with stray whitespace. Everything is
normalized here before a session is opened; a bad value raises
`ValidationError` naming the offending field and is logged at debug level.

Game rules (affordability, cooldowns, unlock levels) are checked by the
services, not here.
"""

from __future__ import annotations

from typing import Any, NoReturn, Optional, Union

from idleguild.core.logging.logger import get_logger
from idleguild.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

MAX_QUANTITY = "max"
OWNER_ID_MAX_LENGTH = 64


def _reject(field_name: str, value: Any, reason: str) -> NoReturn:
    logger.debug("Rejected input", extra={"field_name": field_name, "raw_value": repr(value), "reason": reason})
    raise ValidationError(field_name, reason)


def _as_int(value: Any, field_name: str) -> int:
    if value is None:
        _reject(field_name, value, "Value is required")
    # bool is an int subclass; 2.5 would truncate silently
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        _reject(field_name, value, f"Must be a whole number, got '{value}'")
    try:
        return int(value)
    except (TypeError, ValueError):
        _reject(field_name, value, f"Must be a whole number, got '{value}'")


class InputValidator:
    """Static helpers; each returns the normalized value or raises ValidationError."""

    # ------------------------------------------------------------------ #
    # Numbers
    # ------------------------------------------------------------------ #

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
    ) -> int:
        """
        Convert `value` to int and check the inclusive bounds.

        Numeric strings and integral floats are accepted; bools, fractions
        and anything `int()` refuses are not.
        """
        number = _as_int(value, field_name)
        if min_value is not None and number < min_value:
            _reject(field_name, number, f"Must be at least {min_value}, got {number}")
        if max_value is not None and number > max_value:
            _reject(field_name, number, f"Cannot exceed {max_value}, got {number}")
        return number

    @staticmethod
    def validate_positive_integer(value: Any, field_name: str, max_value: Optional[int] = None) -> int:
        return InputValidator.validate_integer(value, field_name, 1, max_value)

    @staticmethod
    def validate_non_negative_integer(value: Any, field_name: str, max_value: Optional[int] = None) -> int:
        return InputValidator.validate_integer(value, field_name, 0, max_value)

    @staticmethod
    def validate_quantity(
        value: Any, field_name: str = "quantity", max_value: Optional[int] = None
    ) -> Union[int, str]:
        """Purchase quantity: `MAX_QUANTITY` for "max" (any case), else a positive int."""
        if isinstance(value, str) and value.strip().lower() == MAX_QUANTITY:
            return MAX_QUANTITY
        return InputValidator.validate_positive_integer(value, field_name, max_value)

    # ------------------------------------------------------------------ #
    # Text
    # ------------------------------------------------------------------ #

    @staticmethod
    def validate_owner_id(value: Any, field_name: str = "owner_id") -> str:
        """Opaque external user id (a Discord snowflake in production), as a string."""
        if value is None or isinstance(value, bool):
            _reject(field_name, value, "Owner id is required")
        owner_id = str(value).strip()
        if not owner_id:
            _reject(field_name, value, "Owner id cannot be empty")
        if len(owner_id) > OWNER_ID_MAX_LENGTH:
            _reject(field_name, value, f"Owner id cannot exceed {OWNER_ID_MAX_LENGTH} characters")
        return owner_id

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
    ) -> str:
        if value is None:
            _reject(field_name, value, "Value is required")
        text = str(value).strip()
        if min_length is not None and len(text) < min_length:
            _reject(field_name, text, f"Must be at least {min_length} characters")
        if max_length is not None and len(text) > max_length:
            _reject(field_name, text, f"Cannot exceed {max_length} characters")
        return text
