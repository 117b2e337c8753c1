from __future__ import annotations
"""Role/permission gate for the repair workflow.

The predicates are pure functions of (principal, item, roster): no database or
request access, so they can be unit tested directly. Items and workers may be
ORM rows or plain mappings; only a handful of attributes are read.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional
from flask_jwt_extended import get_jwt, get_jwt_identity
from garage.constants.roles import Role, LEAD_REPAIR_TYPE, WORKER_TYPE_FOR_REPAIR_TYPE
from garage.errors import Forbidden, Unauthorized


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: Role
    worker_id: Optional[int] = None
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def _get(obj: Any, key: str):
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def current_principal() -> Principal:
    """Build the acting principal from the verified JWT of the current request."""
    claims = get_jwt()
    role = Role.parse(claims.get('role'))
    if role is None:
        raise Unauthorized(description='Token carries no valid role')
    worker_id = claims.get('worker_id')
    return Principal(
        user_id=int(get_jwt_identity()),
        role=role,
        worker_id=int(worker_id) if worker_id is not None else None,
        display_name=claims.get('display_name'),
    )


# ---------- Item-scoped predicates ---------- #

def can_assign(principal: Principal, item) -> bool:
    if principal.role is Role.SALES:
        return False
    if principal.is_admin:
        return True
    managed = LEAD_REPAIR_TYPE.get(principal.role)
    return managed is not None and _get(item, 'repair_type') == managed


def can_prioritize(principal: Principal, item) -> bool:
    return can_assign(principal, item)


def can_complete(principal: Principal, item) -> bool:
    if principal.is_admin:
        return True
    owner = _get(item, 'worker_id')
    return principal.worker_id is not None and owner is not None and principal.worker_id == owner


def can_start_as(principal: Principal, worker_id: int) -> bool:
    """Starting is done by the worker themself; admin may start on a worker's behalf."""
    if principal.is_admin:
        return True
    return principal.worker_id is not None and principal.worker_id == worker_id


def can_transfer(principal: Principal, item) -> bool:
    return principal.is_admin


def eligible_workers(principal: Principal, repair_type: Optional[str], roster: Iterable[Any]) -> List[Any]:
    """Workers the principal may pick for an item of ``repair_type``.

    Roster is narrowed to the matching worker type (uncategorized items accept
    anyone), then admins and leads see all of it, floor workers only themselves.
    """
    wanted_type = WORKER_TYPE_FOR_REPAIR_TYPE.get(repair_type)
    workers = [w for w in roster if wanted_type is None or _get(w, 'worker_type') == wanted_type]
    if principal.is_admin or principal.role.is_lead:
        return workers
    if principal.role.is_floor_worker and principal.worker_id is not None:
        return [w for w in workers if _get(w, 'id') == principal.worker_id]
    return []


def may_assign_worker(principal: Principal, item, worker, roster: Iterable[Any]) -> bool:
    """Assignment gate: the worker must be eligible, and the principal either
    manages the item's category or is assigning themself."""
    worker_id = _get(worker, 'id')
    if not any(_get(w, 'id') == worker_id for w in eligible_workers(principal, _get(item, 'repair_type'), roster)):
        return False
    return can_assign(principal, item) or principal.worker_id == worker_id


# ---------- Order-scoped predicates ---------- #

def can_manage_order(principal: Principal) -> bool:
    return principal.is_admin or principal.role.is_lead


def can_create_order(principal: Principal) -> bool:
    return can_manage_order(principal) or principal.role is Role.SALES


def can_delete_order(principal: Principal) -> bool:
    return principal.is_admin


def is_restricted_worker(principal: Principal) -> bool:
    """Floor workers with a roster link only see items they own or are assigned to."""
    return principal.role.is_floor_worker and principal.worker_id is not None


def lead_category(principal: Principal) -> Optional[str]:
    return LEAD_REPAIR_TYPE.get(principal.role)


# ---------- Guards ---------- #

def require(allowed: bool, description: str = 'Forbidden'):
    if not allowed:
        raise Forbidden(description=description)


__all__ = [
    'Principal', 'current_principal', 'can_assign', 'can_prioritize', 'can_complete', 'can_start_as',
    'can_transfer', 'eligible_workers', 'may_assign_worker', 'can_manage_order', 'can_create_order',
    'can_delete_order', 'is_restricted_worker', 'lead_category', 'require',
]
