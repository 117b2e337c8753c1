"""Test seeding utilities to reduce duplication.

These helpers centralize creation of roster workers, login accounts and repair
orders. The database is shared for the whole session, so every helper takes or
generates unique names and callers should never rely on global counts.
"""
import uuid
from typing import Dict, Iterable, List, Optional
from sqlalchemy import select
from garage import get_db
from garage.constants.roles import Role
from garage.models.authz import AppUser
from garage.models.worker import RepairWorker
from garage.models.repair_order import RepairOrder
from garage.models.repair_item import RepairItem


def unique(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def ensure_worker(name: Optional[str] = None, worker_type: str = RepairWorker.TYPE_REPAIR, is_active: bool = True) -> RepairWorker:
    session = get_db()
    name = name or unique('worker')
    w = session.execute(select(RepairWorker).where(RepairWorker.name == name)).scalar_one_or_none()
    if not w:
        w = RepairWorker(name=name, worker_type=worker_type, is_active=is_active)
        session.add(w); session.commit()
    return w


def ensure_account(username: Optional[str] = None, role: Role = Role.ADMIN, worker: Optional[RepairWorker] = None,
                   password: str = 'pw', is_active: bool = True) -> AppUser:
    session = get_db()
    username = username or unique(role.value)
    u = session.execute(select(AppUser).where(AppUser.username == username)).scalar_one_or_none()
    if not u:
        u = AppUser(username=username, display_name=username.title(), role=role.value,
                    worker_id=worker.id if worker else None, is_active=is_active, password_hash='')
        u.set_password(password)
        session.add(u); session.commit()
    return u


def create_order(items: Iterable[Dict], license_plate: Optional[str] = None, customer_name: str = 'Customer') -> RepairOrder:
    """Create a pending order directly in the store (non-idempotent).

    ``items`` entries: ``{'name', 'repair_type', 'children': [{'name'}, ...]}``;
    children inherit the parent's repair_type.
    """
    session = get_db()
    order = RepairOrder(license_plate=license_plate or unique('51A'), customer_name=customer_name,
                        status=RepairOrder.STATUS_PENDING)
    session.add(order)
    for idx, spec in enumerate(items):
        parent = RepairItem(name=spec['name'], repair_type=spec.get('repair_type'), order_index=idx,
                            status=spec.get('status', RepairItem.STATUS_PENDING))
        order.items.append(parent)
        for cidx, child_spec in enumerate(spec.get('children') or []):
            child = RepairItem(name=child_spec['name'], repair_type=spec.get('repair_type'), order_index=cidx,
                               status=child_spec.get('status', RepairItem.STATUS_PENDING))
            order.items.append(child)
            parent.children.append(child)
    session.commit()
    order.code = f"RO{order.id:06d}"
    session.commit()
    return order


def items_by_name(order: RepairOrder) -> Dict[str, RepairItem]:
    session = get_db()
    rows = session.execute(select(RepairItem).where(RepairItem.order_id == order.id)).scalars().all()
    return {i.name: i for i in rows}


def reload_item(item_id: int) -> RepairItem:
    session = get_db()
    session.expire_all()
    return session.get(RepairItem, item_id)


def reload_order(order_id: int) -> RepairOrder:
    session = get_db()
    session.expire_all()
    return session.get(RepairOrder, order_id)


__all__ = [
    'unique', 'ensure_worker', 'ensure_account', 'create_order', 'items_by_name', 'reload_item', 'reload_order',
]
