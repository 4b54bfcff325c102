"""Input checks shared by the inventory services."""

from typing import Optional

from workshop_portal.exceptions import ValidationError


def require_text(value: Optional[str], field: str) -> str:
    """Return ``value`` stripped, or raise ValidationError if it is blank."""
    if value is None or not value.strip():
        raise ValidationError(
            f"{field} must not be blank",
            errors=[{"field": field, "message": "must not be blank"}],
        )
    return value.strip()


def require_positive(value: Optional[int], field: str) -> int:
    if value is None or value < 1:
        raise ValidationError(
            f"{field} must be at least 1",
            errors=[{"field": field, "message": "must be at least 1"}],
        )
    return value
