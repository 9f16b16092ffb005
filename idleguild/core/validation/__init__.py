from idleguild.core.validation.input_validator import MAX_QUANTITY, InputValidator

__all__ = ["InputValidator", "MAX_QUANTITY"]
