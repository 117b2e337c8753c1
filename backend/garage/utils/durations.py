from __future__ import annotations
"""Duration parsing and display helpers for repair item estimates and timers."""
from datetime import datetime
from typing import Any, Mapping, Optional
from garage.errors import ValidationError
from garage.utils.timeutil import as_utc
from garage.utils.validation import require_int


def minutes_from_hours_minutes(hours: Any, minutes: Any) -> int:
    """Combine an hours/minutes pair into total minutes.

    Both parts must be integers, hours >= 0, 0 <= minutes <= 59, and the total positive.
    """
    h = require_int(hours, 'estimated_hours')
    m = require_int(minutes, 'estimated_minutes')
    if h < 0 or m < 0 or m > 59:
        raise ValidationError(description='Duration must be given as whole hours and minutes (0-59)')
    total = h * 60 + m
    if total <= 0:
        raise ValidationError(description='Duration must be greater than 0 minutes')
    return total


def parse_estimated_duration(data: Mapping[str, Any]) -> int:
    """Read the estimate from an assignment payload.

    ``estimated_duration_minutes`` wins when present; otherwise the
    ``estimated_hours`` / ``estimated_minutes`` pair is used.
    """
    raw = data.get('estimated_duration_minutes', data.get('estimatedDurationMinutes'))
    if raw is not None and raw != '':
        total = require_int(raw, 'estimated_duration_minutes')
        if total <= 0:
            raise ValidationError(description='Invalid estimated_duration_minutes')
        return total
    if 'estimated_hours' in data or 'estimated_minutes' in data:
        return minutes_from_hours_minutes(data.get('estimated_hours', 0), data.get('estimated_minutes', 0))
    raise ValidationError(description='estimated_duration_minutes required')


def format_estimated_duration(minutes: Optional[int]) -> Optional[str]:
    if not minutes or minutes <= 0:
        return None
    return f"{minutes // 60}h {minutes % 60:02d}m"


def _split(seconds: int):
    days, rem = divmod(max(0, seconds), 86400)
    hours, rem = divmod(rem, 3600)
    mins, secs = divmod(rem, 60)
    return days, hours, mins, secs


def format_elapsed(started_at: datetime, now: datetime) -> str:
    """Running timer: ``HH:MM:SS`` under a day, ``Nd Nh Nm`` beyond."""
    days, hours, mins, secs = _split(int((as_utc(now) - as_utc(started_at)).total_seconds()))
    if days > 0:
        return f"{days}d {hours}h {mins}m"
    return f"{hours:02d}:{mins:02d}:{secs:02d}"


def format_completed_duration(started_at: datetime, completed_at: datetime) -> str:
    days, hours, mins, _ = _split(int((as_utc(completed_at) - as_utc(started_at)).total_seconds()))
    if days > 0:
        return f"{days}d {hours}h {mins}m"
    return f"{hours}h {mins}m"


__all__ = [
    'minutes_from_hours_minutes', 'parse_estimated_duration', 'format_estimated_duration',
    'format_elapsed', 'format_completed_duration',
]
