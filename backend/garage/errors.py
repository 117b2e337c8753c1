"""Domain error taxonomy.

Each error is an HTTPException so the unified handler in ``create_app`` renders
it with the standard ``{"error": {...}}`` payload. Raise them from services and
routes instead of calling ``abort`` with bare status codes.
"""
from __future__ import annotations
from werkzeug.exceptions import (
    BadRequest,
    Forbidden as _Forbidden,
    NotFound as _NotFound,
    Unauthorized as _Unauthorized,
)


class ValidationError(BadRequest):
    """A command was rejected before any write (bad input or illegal transition)."""


class StoreError(BadRequest):
    """The persistence layer refused a write; message is passed through verbatim."""
    name = 'Store Error'


class NotFound(_NotFound):
    pass


class Unauthorized(_Unauthorized):
    pass


class Forbidden(_Forbidden):
    pass


__all__ = ['ValidationError', 'StoreError', 'NotFound', 'Unauthorized', 'Forbidden']
