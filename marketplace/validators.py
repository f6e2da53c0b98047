"""Domain-input checks shared by the service modules."""
from typing import Any, Iterable

from marketplace.exceptions import ValidationError


def _is_int(value: Any) -> bool:
    # bool is an int subclass but never a valid id or rating.
    return isinstance(value, int) and not isinstance(value, bool)


def require_id(value: Any, field: str) -> int:
    """Return *value* if it is a positive integer identifier."""
    if value is None:
        raise ValidationError(f"{field} is required")
    if not _is_int(value) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def optional_id(value: Any, field: str) -> int | None:
    if value is None:
        return None
    return require_id(value, field)


def require_rating(value: Any) -> int:
    """Ratings are whole stars in the closed range 1..5."""
    if value is None:
        raise ValidationError("rating is required")
    if not _is_int(value) or not 1 <= value <= 5:
        raise ValidationError("rating must be an integer between 1 and 5")
    return value


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def require_choice(value: Any, allowed: Iterable[str], field: str) -> str:
    allowed = sorted(allowed)
    if value not in allowed:
        raise ValidationError(f"Invalid {field}: {value!r}. Allowed: {', '.join(allowed)}")
    return value


def require_limit(value: Any, ceiling: int) -> int:
    """Positive page size, clamped to *ceiling*."""
    if not _is_int(value) or value < 1:
        raise ValidationError("limit must be a positive integer")
    return min(value, ceiling)


def require_positive(value: Any, field: str) -> int:
    if not _is_int(value) or value < 1:
        raise ValidationError(f"{field} must be a positive integer")
    return value
