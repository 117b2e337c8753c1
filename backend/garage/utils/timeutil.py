from __future__ import annotations
"""Timestamp helpers.

All timestamps are stored as UTC. SQLite hands back naive datetimes, so every
value read from the store goes through ``as_utc`` before comparison or output.
The shop runs on Vietnam time (UTC+7, no DST) which decides what "today" means
for the priority flag.
"""
from datetime import datetime, timezone, timedelta
from typing import Optional

SHOP_TZ = timezone(timedelta(hours=7), name='Asia/Ho_Chi_Minh')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso(dt: Optional[datetime]) -> Optional[str]:
    """Canonical ISO 8601 string with a ``Z`` suffix, or None."""
    dt = as_utc(dt)
    if dt is None:
        return None
    return dt.isoformat().replace('+00:00', 'Z')


def parse_iso(value: Optional[str], field_name: str = 'timestamp') -> Optional[datetime]:
    """Parse an ISO 8601 string (``Z`` accepted). Naive input is taken as shop time.

    Raises ValueError with a field-specific message on malformed input.
    """
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise ValueError(f'{field_name} must be an ISO 8601 string')
    try:
        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise ValueError(f'{field_name} must be an ISO 8601 string')
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=SHOP_TZ)
    return dt.astimezone(timezone.utc)


def shop_day_key(dt: datetime) -> str:
    """YYYY-MM-DD of ``dt`` on the shop's local calendar."""
    return as_utc(dt).astimezone(SHOP_TZ).strftime('%Y-%m-%d')


def is_shop_today(dt: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if dt is None:
        return False
    return shop_day_key(dt) == shop_day_key(now or utcnow())


__all__ = ['SHOP_TZ', 'utcnow', 'as_utc', 'iso', 'parse_iso', 'shop_day_key', 'is_shop_today']
