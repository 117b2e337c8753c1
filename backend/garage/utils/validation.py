from __future__ import annotations
"""Reusable validation helpers for request payloads.

Every helper raises ValidationError (400) so commands are rejected before any
write happens.
"""
from typing import Any, Iterable, Optional
from garage.errors import ValidationError


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or raises ValidationError.
    """
    if new_status not in allowed:
        raise ValidationError(description=f"{field_name} invalid")
    return new_status


def validate_optional_choice(value: Optional[str], allowed: Iterable[str], field_name: str) -> Optional[str]:
    if value is None or value == '':
        return None
    return validate_status(value, allowed, field_name)


def require_int(value: Any, field_name: str) -> int:
    """Accept ints and integral strings; reject bools, floats and everything else."""
    if isinstance(value, bool):
        raise ValidationError(description=f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    raise ValidationError(description=f"{field_name} must be an integer")


def optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == '':
        return None
    return require_int(value, field_name)


def require_text(value: Any, field_name: str, max_length: int = 255) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(description=f"{field_name} required")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(description=f"{field_name} too long")
    return value

__all__ = ['validate_status', 'validate_optional_choice', 'require_int', 'optional_int', 'require_text']
