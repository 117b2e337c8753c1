from __future__ import annotations
"""Repair item lifecycle and worker assignment commands.

Each command validates everything first (existence, state, role, payload) and
only then mutates; a rejected command leaves the store untouched. Commands do
not commit: the calling route owns the transaction, so one request is one
commit. Items are loaded ``FOR UPDATE`` so concurrent transitions on the same
row serialise on databases that support row locks; the state check is made
after the lock is taken.

Status flow for leaf items: pending -> in_progress -> completed. Parents with
children never transition directly; they follow their children.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from garage.constants.roles import EngagedBy
from garage.errors import NotFound, ValidationError
from garage.models.repair_item import RepairItem, RepairItemAssignedWorker, RepairItemTransfer, RepairItemImage
from garage.models.repair_order import RepairOrder
from garage.models.worker import RepairWorker
from garage.services import policy
from garage.services.policy import Principal, require
from garage.utils.durations import parse_estimated_duration
from garage.utils.fsm import TransitionValidator
from garage.utils.timeutil import utcnow, parse_iso, is_shop_today, as_utc
from garage.utils.validation import require_int, optional_int, require_text, validate_status, validate_optional_choice

logger = logging.getLogger(__name__)

ITEM_FSM = TransitionValidator({
    RepairItem.STATUS_PENDING: {RepairItem.STATUS_IN_PROGRESS},
    RepairItem.STATUS_IN_PROGRESS: {RepairItem.STATUS_COMPLETED},
    RepairItem.STATUS_COMPLETED: set(),
}, field_name='item status')

ORDER_FSM = TransitionValidator({
    RepairOrder.STATUS_PENDING: {RepairOrder.STATUS_IN_PROGRESS, RepairOrder.STATUS_COMPLETED},
    RepairOrder.STATUS_IN_PROGRESS: {RepairOrder.STATUS_COMPLETED},
    RepairOrder.STATUS_COMPLETED: set(),
}, field_name='order status')


# ---------- Loaders ---------- #

def get_order(session: Session, order_id: int, lock: bool = False) -> RepairOrder:
    q = select(RepairOrder).where(RepairOrder.id == order_id)
    if lock:
        q = q.with_for_update()
    order = session.execute(q).scalar_one_or_none()
    if not order:
        raise NotFound(description='Repair order not found')
    return order


def get_item(session: Session, item_id: int, lock: bool = False) -> RepairItem:
    q = select(RepairItem).where(RepairItem.id == item_id)
    if lock:
        q = q.with_for_update()
    item = session.execute(q).scalar_one_or_none()
    if not item:
        raise NotFound(description='Repair item not found')
    return item


def active_roster(session: Session) -> List[RepairWorker]:
    return list(session.execute(
        select(RepairWorker).where(RepairWorker.is_active.is_(True)).order_by(RepairWorker.name, RepairWorker.id)
    ).scalars())


def _active_worker(roster: List[RepairWorker], worker_id: int, field_name: str = 'worker_id') -> RepairWorker:
    for w in roster:
        if w.id == worker_id:
            return w
    raise ValidationError(description=f'{field_name} is not an active worker')


def has_children(session: Session, item: RepairItem) -> bool:
    count = session.execute(select(func.count(RepairItem.id)).where(RepairItem.parent_id == item.id)).scalar_one()
    return count > 0


def _require_leaf(session: Session, item: RepairItem):
    if has_children(session, item):
        raise ValidationError(description='Parent items track their sub-items and cannot be acted on directly')


def _assignment_for(item: RepairItem, worker_id: int) -> Optional[RepairItemAssignedWorker]:
    for row in item.assignments:
        if row.worker_id == worker_id:
            return row
    return None


def _image_payload(data: Mapping[str, Any], label: str) -> str:
    image = data.get('image') or data.get('image_data') or data.get('imageData')
    if not isinstance(image, str) or not image:
        raise ValidationError(description=f'A {label} photo is required')
    return image


def _check_context(item: RepairItem, data: Mapping[str, Any]):
    """parent_id / order_id in transition bodies must agree with the stored item when supplied."""
    parent_id = optional_int(data.get('parent_id', data.get('parentId')), 'parent_id')
    order_id = optional_int(data.get('order_id', data.get('orderId')), 'order_id')
    if parent_id is not None and parent_id != item.parent_id:
        raise ValidationError(description='parent_id does not match the item')
    if order_id is not None and order_id != item.order_id:
        raise ValidationError(description='order_id does not match the item')


def _today_priority_mark(item: RepairItem, now: datetime) -> Optional[datetime]:
    marks = [as_utc(r.priority_marked_at) for r in item.assignments if r.priority_marked_at]
    marks = [m for m in marks if is_shop_today(m, now)]
    return max(marks) if marks else None


# ---------- Assignment ledger ---------- #

def assign_worker(session: Session, principal: Principal, item_id: int, data: Mapping[str, Any]) -> RepairItemAssignedWorker:
    """Assign a worker to a pending leaf item with an estimated duration.

    Re-assigning an already assigned worker only refreshes the estimate. A
    worker joining an item already marked priority today inherits the mark.
    """
    item = get_item(session, item_id, lock=True)
    raw_worker = data.get('worker_id', data.get('workerId'))
    if raw_worker is None or raw_worker == '':
        raise ValidationError(description='Missing worker_id')
    worker_id = require_int(raw_worker, 'worker_id')
    minutes = parse_estimated_duration(data)
    _require_leaf(session, item)
    ITEM_FSM.assert_in(item.status, RepairItem.STATUS_PENDING, action='assign workers')
    roster = active_roster(session)
    worker = _active_worker(roster, worker_id)
    require(policy.may_assign_worker(principal, item, worker, roster), 'Not allowed to assign this worker to this item')

    now = utcnow()
    row = _assignment_for(item, worker_id)
    if row is None:
        inherited = _today_priority_mark(item, now)
        row = RepairItemAssignedWorker(
            worker_id=worker_id,
            assigned_at=now,
            estimated_duration_minutes=minutes,
            priority_marked_at=inherited,
            workload_engaged_at=inherited,
            workload_engaged_by=EngagedBy.PRIORITY.value if inherited else None,
        )
        item.assignments.append(row)
    else:
        row.estimated_duration_minutes = minutes
    item.estimated_duration_minutes = minutes
    session.flush()
    logger.info('Worker %s assigned to item %s (%s min) by user %s', worker_id, item.id, minutes, principal.user_id)
    return row


def unassign_worker(session: Session, principal: Principal, item_id: int, worker_id: int) -> RepairItem:
    item = get_item(session, item_id, lock=True)
    ITEM_FSM.assert_in(item.status, RepairItem.STATUS_PENDING, action='remove workers')
    row = _assignment_for(item, worker_id)
    if row is None:
        raise NotFound(description='Worker is not assigned to this item')
    if not policy.can_assign(principal, item):
        # Floor workers may only take themselves off
        require(principal.worker_id == worker_id, 'Not allowed to remove this worker')
    item.assignments.remove(row)
    if item.worker_id == worker_id:
        item.worker_id = None
    session.flush()
    logger.info('Worker %s removed from item %s by user %s', worker_id, item.id, principal.user_id)
    return item


# ---------- Transitions ---------- #

def start_item(session: Session, principal: Principal, item_id: int, data: Mapping[str, Any]) -> RepairItem:
    """pending -> in_progress, performed by an assigned worker with a start photo."""
    item = get_item(session, item_id, lock=True)
    _require_leaf(session, item)
    ITEM_FSM.assert_can_transition(item.status, RepairItem.STATUS_IN_PROGRESS)
    raw_worker = data.get('worker_id', data.get('workerId'))
    if raw_worker is None or raw_worker == '':
        raise ValidationError(description='Missing worker_id')
    worker_id = require_int(raw_worker, 'worker_id')
    image = _image_payload(data, 'start')
    _check_context(item, data)
    if not policy.can_start_as(principal, worker_id):
        raise ValidationError(description='Workers can only start items for themselves')
    row = _assignment_for(item, worker_id)
    if row is None:
        raise ValidationError(description='Worker is not assigned to this item')

    now = utcnow()
    item.images.append(RepairItemImage(image_type=RepairItemImage.TYPE_START, image_data=image, captured_at=now))
    item.status = validate_status(RepairItem.STATUS_IN_PROGRESS, RepairItem.ALL_STATUSES)
    item.started_at = now
    item.worker_id = worker_id
    if row.workload_engaged_at is None:
        row.workload_engaged_at = now
        row.workload_engaged_by = EngagedBy.START.value

    if item.parent_id is not None:
        parent = get_item(session, item.parent_id)
        if parent.status == RepairItem.STATUS_PENDING:
            parent.status = RepairItem.STATUS_IN_PROGRESS
            parent.started_at = parent.started_at or now
    order = get_order(session, item.order_id)
    if ORDER_FSM.can_transition(order.status, RepairOrder.STATUS_IN_PROGRESS):
        order.status = RepairOrder.STATUS_IN_PROGRESS
        order.updated_at = now
    session.flush()
    logger.info('Item %s started by worker %s', item.id, worker_id)
    return item


def complete_item(session: Session, principal: Principal, item_id: int, data: Mapping[str, Any]) -> RepairItem:
    """in_progress -> completed, by an admin or the owning worker, with a completion photo.

    Completing the last open sub-item completes its parent; completing the last
    open top-level item completes the order.
    """
    item = get_item(session, item_id, lock=True)
    _require_leaf(session, item)
    ITEM_FSM.assert_can_transition(item.status, RepairItem.STATUS_COMPLETED)
    image = _image_payload(data, 'completion')
    _check_context(item, data)
    if not policy.can_complete(principal, item):
        raise ValidationError(description='Only the assigned worker or an admin can complete this item')

    now = utcnow()
    item.images.append(RepairItemImage(image_type=RepairItemImage.TYPE_COMPLETE, image_data=image, captured_at=now))
    item.status = validate_status(RepairItem.STATUS_COMPLETED, RepairItem.ALL_STATUSES)
    item.completed_at = now
    session.flush()
    _roll_up(session, item.order_id, item.parent_id, now)
    logger.info('Item %s completed by user %s', item.id, principal.user_id)
    return item


def _roll_up(session: Session, order_id: int, parent_id: Optional[int], now: datetime):
    """Re-derive the parent's and the order's status from the items left under them.

    Runs after a completion and after a deletion, so an order whose remaining
    leaves are all done never stays open.
    """
    if parent_id is not None:
        parent = get_item(session, parent_id)
        statuses = list(session.execute(select(RepairItem.status).where(RepairItem.parent_id == parent_id)).scalars())
        if not statuses:
            # Last child gone: the parent is an ordinary leaf again
            if parent.status == RepairItem.STATUS_IN_PROGRESS and parent.worker_id is None:
                parent.status = RepairItem.STATUS_PENDING
                parent.started_at = None
        elif all(s == RepairItem.STATUS_COMPLETED for s in statuses):
            if parent.status != RepairItem.STATUS_COMPLETED:
                parent.status = RepairItem.STATUS_COMPLETED
                parent.completed_at = now
        elif all(s == RepairItem.STATUS_PENDING for s in statuses):
            if parent.status == RepairItem.STATUS_IN_PROGRESS:
                parent.status = RepairItem.STATUS_PENDING
                parent.started_at = None
        session.flush()

    top_level = list(session.execute(
        select(RepairItem.status).where(RepairItem.order_id == order_id, RepairItem.parent_id.is_(None))
    ).scalars())
    if top_level and all(s == RepairItem.STATUS_COMPLETED for s in top_level):
        order = get_order(session, order_id)
        if ORDER_FSM.can_transition(order.status, RepairOrder.STATUS_COMPLETED):
            order.status = RepairOrder.STATUS_COMPLETED
            order.updated_at = now
            session.flush()


def transfer_item(session: Session, principal: Principal, item_id: int, data: Mapping[str, Any]) -> RepairItemTransfer:
    """Hand an in-progress item over to another worker.

    The vacating worker keeps their ledger row; the transfer record is what
    marks them as already transferred.
    """
    item = get_item(session, item_id, lock=True)
    require(policy.can_transfer(principal, item), 'Only an admin can transfer work')
    _require_leaf(session, item)
    ITEM_FSM.assert_in(item.status, RepairItem.STATUS_IN_PROGRESS, action='transfer')
    from_raw = data.get('from_worker_id', data.get('fromWorkerId'))
    to_raw = data.get('to_worker_id', data.get('toWorkerId'))
    if from_raw in (None, '') or to_raw in (None, ''):
        raise ValidationError(description='Missing from_worker_id or to_worker_id')
    from_id = require_int(from_raw, 'from_worker_id')
    to_id = require_int(to_raw, 'to_worker_id')
    if from_id == to_id:
        raise ValidationError(description='Cannot transfer an item to the same worker')
    if item.worker_id != from_id:
        if _assignment_for(item, from_id) is None:
            raise ValidationError(description='from_worker_id is not working on this item')
        if any(t.from_worker_id == from_id for t in item.transfers):
            raise ValidationError(description='from_worker_id has already transferred this item')
    roster = active_roster(session)
    to_worker = _active_worker(roster, to_id, 'to_worker_id')
    if not any(w.id == to_id for w in policy.eligible_workers(principal, item.repair_type, roster)):
        raise ValidationError(description='to_worker_id cannot work on this kind of item')
    notes = data.get('notes')
    if notes is not None and not isinstance(notes, str):
        raise ValidationError(description='notes must be a string')

    now = utcnow()
    transfer = RepairItemTransfer(from_worker_id=from_id, to_worker_id=to_worker.id, transferred_at=now, notes=notes or None)
    item.transfers.append(transfer)
    if _assignment_for(item, to_id) is None:
        item.assignments.append(RepairItemAssignedWorker(worker_id=to_id, assigned_at=now))
    item.worker_id = to_id
    session.flush()
    logger.info('Item %s transferred from worker %s to %s', item.id, from_id, to_id)
    return transfer


def mark_priority_today(session: Session, principal: Principal, item_id: int) -> datetime:
    """Advisory flag: stamps every ledger row of a pending item; no scheduling effect."""
    item = get_item(session, item_id, lock=True)
    _require_leaf(session, item)
    ITEM_FSM.assert_in(item.status, RepairItem.STATUS_PENDING, action='mark priority')
    require(policy.can_prioritize(principal, item), 'Not allowed to prioritise this item')
    if not item.assignments:
        raise ValidationError(description='Item has no assigned workers')
    now = utcnow()
    if _today_priority_mark(item, now) is not None:
        raise ValidationError(description='Item is already marked priority today')
    for row in item.assignments:
        row.priority_marked_at = now
        if row.workload_engaged_at is None:
            row.workload_engaged_at = now
            row.workload_engaged_by = EngagedBy.PRIORITY.value
    session.flush()
    logger.info('Item %s marked priority today by user %s', item.id, principal.user_id)
    return now


# ---------- Evidence ---------- #

def add_image(session: Session, principal: Principal, item_id: int, data: Mapping[str, Any]) -> RepairItemImage:
    item = get_item(session, item_id)
    image_type = validate_status(data.get('image_type'), RepairItemImage.ALL_TYPES, 'image_type')
    image = _image_payload(data, image_type)
    assigned = principal.worker_id is not None and (
        item.worker_id == principal.worker_id or _assignment_for(item, principal.worker_id) is not None
    )
    require(policy.can_assign(principal, item) or assigned, 'Not allowed to add photos to this item')
    img = RepairItemImage(image_type=image_type, image_data=image, captured_at=utcnow())
    item.images.append(img)
    session.flush()
    return img


def list_images(session: Session, item_id: int) -> List[RepairItemImage]:
    get_item(session, item_id)
    return list(session.execute(
        select(RepairItemImage)
        .where(RepairItemImage.repair_item_id == item_id)
        .order_by(RepairItemImage.captured_at, RepairItemImage.id)
    ).scalars())


# ---------- Order-scoped commands ---------- #

def set_parts_waiting(session: Session, principal: Principal, order_id: int, data: Mapping[str, Any]) -> RepairOrder:
    """Toggle the advisory waiting-for-parts flag. Turning it off clears the window and note."""
    require(policy.can_manage_order(principal), 'Not allowed to change parts status')
    order = get_order(session, order_id, lock=True)
    waiting = data.get('waiting_for_parts')
    if not isinstance(waiting, bool):
        raise ValidationError(description='waiting_for_parts must be true or false')
    if waiting:
        try:
            start = parse_iso(data.get('parts_order_start_time', data.get('parts_wait_start')), 'parts_order_start_time')
            end = parse_iso(data.get('parts_expected_end_time', data.get('parts_wait_end')), 'parts_expected_end_time')
        except ValueError as e:
            raise ValidationError(description=str(e))
        if start is None or end is None:
            raise ValidationError(description='parts_order_start_time and parts_expected_end_time required')
        if end < start:
            raise ValidationError(description='parts_expected_end_time must not be before parts_order_start_time')
        note = data.get('parts_note')
        if note is not None and not isinstance(note, str):
            raise ValidationError(description='parts_note must be a string')
        order.waiting_for_parts = True
        order.parts_order_start_time = start
        order.parts_expected_end_time = end
        order.parts_note = note or None
    else:
        order.waiting_for_parts = False
        order.parts_order_start_time = None
        order.parts_expected_end_time = None
        order.parts_note = None
    order.updated_at = utcnow()
    session.flush()
    logger.info('Order %s waiting_for_parts=%s', order.id, waiting)
    return order


def _parse_datetime_field(data: Mapping[str, Any], key: str) -> Optional[datetime]:
    try:
        return parse_iso(data.get(key), key)
    except ValueError as e:
        raise ValidationError(description=str(e))


def _build_items(order: RepairOrder, specs: Any, start_index: int = 0, parent: Optional[RepairItem] = None) -> List[RepairItem]:
    if not isinstance(specs, list):
        raise ValidationError(description='items must be a list')
    built = []
    for idx, spec in enumerate(specs):
        if not isinstance(spec, dict):
            raise ValidationError(description='each item must be an object')
        name = require_text(spec.get('name'), 'item name')
        if parent is not None:
            # Sub-items inherit the parent's category
            repair_type = parent.repair_type
        else:
            repair_type = validate_optional_choice(spec.get('repair_type', spec.get('repairType')), RepairItem.ALL_REPAIR_TYPES, 'repair_type')
        item = RepairItem(
            name=name,
            status=RepairItem.STATUS_PENDING,
            repair_type=repair_type,
            order_index=start_index + idx,
        )
        order.items.append(item)
        if parent is not None:
            parent.children.append(item)
        else:
            subs = spec.get('sub_items', spec.get('subItems')) or []
            if subs:
                _build_items(order, subs, 0, item)
        built.append(item)
    return built


def create_order(session: Session, principal: Principal, data: Mapping[str, Any]) -> RepairOrder:
    require(policy.can_create_order(principal), 'Not allowed to create repair orders')
    fields = data.get('order') or {}
    if not isinstance(fields, dict):
        raise ValidationError(description='order must be an object')
    order = RepairOrder(
        license_plate=require_text(fields.get('license_plate'), 'license_plate', 32),
        customer_name=require_text(fields.get('customer_name'), 'customer_name', 120),
        vehicle_name=fields.get('vehicle_name') or None,
        code=fields.get('code') or None,
        notes=fields.get('notes') or None,
        received_at=_parse_datetime_field(fields, 'received_at'),
        expected_return_at=_parse_datetime_field(fields, 'expected_return_at'),
        status=RepairOrder.STATUS_PENDING,
        created_by=principal.user_id,
    )
    _build_items(order, data.get('items') or [])
    session.add(order)
    session.flush()
    if not order.code:
        order.code = f"RO{order.id:06d}"
        session.flush()
    logger.info('Order %s created by user %s with %d items', order.code, principal.user_id, len(order.items))
    return order


def update_order(session: Session, principal: Principal, order_id: int, data: Mapping[str, Any]) -> RepairOrder:
    require(policy.can_manage_order(principal), 'Not allowed to edit repair orders')
    order = get_order(session, order_id, lock=True)
    unknown = set(data) - set(RepairOrder.EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(description=f"Fields not editable: {', '.join(sorted(unknown))}")
    for key in RepairOrder.EDITABLE_FIELDS:
        if key not in data:
            continue
        if key in ('received_at', 'expected_return_at'):
            setattr(order, key, _parse_datetime_field(data, key))
        elif key in ('license_plate', 'customer_name'):
            setattr(order, key, require_text(data.get(key), key, 120))
        else:
            setattr(order, key, data.get(key) or None)
    order.updated_at = utcnow()
    session.flush()
    return order


def delete_order(session: Session, principal: Principal, order_id: int) -> int:
    require(policy.can_delete_order(principal), 'Only an admin can delete repair orders')
    # Collections may be stale in a long-lived session; reload before cascading
    session.expire_all()
    order = get_order(session, order_id)
    item_count = len(order.items)
    session.delete(order)
    session.flush()
    logger.info('Order %s deleted by user %s (%d items)', order_id, principal.user_id, item_count)
    return item_count


def add_items(session: Session, principal: Principal, order_id: int, data: Mapping[str, Any]) -> List[RepairItem]:
    require(policy.can_create_order(principal), 'Not allowed to add repair items')
    order = get_order(session, order_id, lock=True)
    if order.status == RepairOrder.STATUS_COMPLETED:
        raise ValidationError(description='Cannot add items to a completed order')
    parent = None
    parent_id = optional_int(data.get('parent_id'), 'parent_id')
    if parent_id is not None:
        parent = get_item(session, parent_id)
        if parent.order_id != order.id or parent.parent_id is not None:
            raise ValidationError(description='parent_id must be a top-level item of this order')
        if parent.status != RepairItem.STATUS_PENDING or (parent.assignments and not has_children(session, parent)):
            raise ValidationError(description='Sub-items can only be added under a pending, unassigned item')
        siblings = session.execute(select(func.max(RepairItem.order_index)).where(RepairItem.parent_id == parent.id)).scalar()
    else:
        siblings = session.execute(
            select(func.max(RepairItem.order_index)).where(RepairItem.order_id == order.id, RepairItem.parent_id.is_(None))
        ).scalar()
    start_index = (siblings + 1) if siblings is not None else 0
    built = _build_items(order, data.get('items') or [], start_index, parent)
    if not built:
        raise ValidationError(description='items required')
    order.updated_at = utcnow()
    session.flush()
    return built


def update_item(session: Session, principal: Principal, item_id: int, data: Mapping[str, Any]) -> RepairItem:
    item = get_item(session, item_id, lock=True)
    require(policy.can_assign(principal, item), 'Not allowed to edit this item')
    unknown = set(data) - {'name', 'repair_type', 'order_index'}
    if unknown:
        raise ValidationError(description=f"Fields not editable: {', '.join(sorted(unknown))}")
    if 'name' in data:
        item.name = require_text(data.get('name'), 'name')
    if 'order_index' in data:
        item.order_index = require_int(data.get('order_index'), 'order_index')
    if 'repair_type' in data:
        if item.parent_id is not None:
            raise ValidationError(description='Sub-items take their category from the parent')
        repair_type = validate_optional_choice(data.get('repair_type'), RepairItem.ALL_REPAIR_TYPES, 'repair_type')
        item.repair_type = repair_type
        for child in session.execute(select(RepairItem).where(RepairItem.parent_id == item.id)).scalars():
            child.repair_type = repair_type
    session.flush()
    return item


def delete_item(session: Session, principal: Principal, item_id: int) -> Dict[str, Any]:
    session.expire_all()
    item = get_item(session, item_id)
    require(policy.can_assign(principal, item), 'Not allowed to delete this item')
    snapshot = {'id': item.id, 'order_id': item.order_id, 'parent_id': item.parent_id}
    session.delete(item)
    session.flush()
    _roll_up(session, snapshot['order_id'], snapshot['parent_id'], utcnow())
    logger.info('Item %s deleted by user %s', item_id, principal.user_id)
    return snapshot


__all__ = [
    'ITEM_FSM', 'ORDER_FSM', 'get_order', 'get_item', 'active_roster', 'has_children',
    'assign_worker', 'unassign_worker', 'start_item', 'complete_item', 'transfer_item', 'mark_priority_today',
    'add_image', 'list_images', 'set_parts_waiting', 'create_order', 'update_order', 'delete_order',
    'add_items', 'update_item', 'delete_item',
]
