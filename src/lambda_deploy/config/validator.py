"""Validation utilities for lambda-deploy configuration."""

from pydantic import ValidationError as PydanticValidationError


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten a Pydantic ValidationError into human-readable messages.

    Args:
        exc: Pydantic ValidationError exception

    Returns:
        One message per field error, e.g.
        ``Field 'aws.region': Field required``
    """
    errors: list[str] = []

    for error in exc.errors():
        loc = error.get("loc", ())
        field_path = ".".join(str(item) for item in loc) if loc else "config"
        msg = error.get("msg", "Unknown error")

        if error.get("type") in ("value_error", "enum", "string_pattern_mismatch"):
            errors.append(
                f"Field '{field_path}': {msg} (received: {error.get('input')!r})"
            )
        else:
            errors.append(f"Field '{field_path}': {msg}")

    return errors or ["Validation failed with unknown error"]


def first_error_field(exc: PydanticValidationError) -> str:
    """Dotted path of the first failing field, for ``ConfigError.field``."""
    for error in exc.errors():
        loc = error.get("loc", ())
        if loc:
            return ".".join(str(item) for item in loc)
    return "config"
