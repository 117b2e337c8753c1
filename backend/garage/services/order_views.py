from __future__ import annotations
"""Read models for repair orders: list rows with progress, and the full detail tree.

Reads never mutate. The detail payload is rebuilt from the store on every call
(clients re-fetch after each command), so two calls without an intervening
write return the same tree.
"""
from typing import Any, Dict, List, Set
from sqlalchemy import select, or_, exists, func
from sqlalchemy.orm import Session
from garage.models.repair_item import RepairItem, RepairItemAssignedWorker, RepairItemTransfer, RepairItemImage
from garage.models.repair_order import RepairOrder
from garage.models.worker import RepairWorker
from garage.services import policy
from garage.services.item_tree import ItemTree, summarize
from garage.services.policy import Principal
from garage.services.workflow import get_order, active_roster
from garage.utils.durations import format_estimated_duration, format_completed_duration
from garage.utils.timeutil import iso, utcnow, is_shop_today, as_utc


def worker_json(w: RepairWorker) -> Dict[str, Any]:
    return {'id': w.id, 'name': w.name, 'worker_type': w.worker_type, 'is_active': w.is_active}


def order_json(o: RepairOrder) -> Dict[str, Any]:
    return {
        'id': o.id,
        'code': o.code,
        'license_plate': o.license_plate,
        'customer_name': o.customer_name,
        'vehicle_name': o.vehicle_name,
        'received_at': iso(o.received_at),
        'expected_return_at': iso(o.expected_return_at),
        'notes': o.notes,
        'status': o.status,
        'waiting_for_parts': o.waiting_for_parts,
        'parts_order_start_time': iso(o.parts_order_start_time),
        'parts_expected_end_time': iso(o.parts_expected_end_time),
        'parts_note': o.parts_note,
        'created_at': iso(o.created_at),
        'updated_at': iso(o.updated_at),
    }


def item_json(i: RepairItem) -> Dict[str, Any]:
    return {
        'id': i.id,
        'order_id': i.order_id,
        'parent_id': i.parent_id,
        'name': i.name,
        'status': i.status,
        'repair_type': i.repair_type,
        'order_index': i.order_index,
        'worker_id': i.worker_id,
        'estimated_duration_minutes': i.estimated_duration_minutes,
        'started_at': iso(i.started_at),
        'completed_at': iso(i.completed_at),
    }


def image_json(img: RepairItemImage) -> Dict[str, Any]:
    return {
        'id': img.id,
        'repair_item_id': img.repair_item_id,
        'image_type': img.image_type,
        'image_data': img.image_data,
        'captured_at': iso(img.captured_at),
    }


def transfer_json(t: RepairItemTransfer, workers: Dict[int, RepairWorker]) -> Dict[str, Any]:
    src, dst = workers.get(t.from_worker_id), workers.get(t.to_worker_id)
    return {
        'id': t.id,
        'repair_item_id': t.repair_item_id,
        'from_worker_id': t.from_worker_id,
        'to_worker_id': t.to_worker_id,
        'transferred_at': iso(t.transferred_at),
        'notes': t.notes,
        'fromWorker': worker_json(src) if src else None,
        'toWorker': worker_json(dst) if dst else None,
    }


# ---------- Listing ---------- #

def _visible_orders_query(principal: Principal):
    q = select(RepairOrder)
    if policy.is_restricted_worker(principal):
        wid = principal.worker_id
        owns = exists().where(RepairItem.order_id == RepairOrder.id, RepairItem.worker_id == wid)
        assigned = exists().where(
            RepairItem.order_id == RepairOrder.id,
            RepairItemAssignedWorker.repair_item_id == RepairItem.id,
            RepairItemAssignedWorker.worker_id == wid,
        )
        q = q.where(or_(owns, assigned))
    else:
        category = policy.lead_category(principal)
        if category:
            q = q.where(exists().where(RepairItem.order_id == RepairOrder.id, RepairItem.repair_type == category))
    return q


def list_orders(session: Session, principal: Principal, limit: int, offset: int):
    """Newest first, with leaf progress per order. Returns (rows, total)."""
    base = _visible_orders_query(principal)
    total = session.execute(select(func.count()).select_from(base.subquery())).scalar_one()
    orders = list(session.execute(
        base.order_by(RepairOrder.created_at.desc(), RepairOrder.id.desc()).offset(offset).limit(limit)
    ).scalars())
    by_order: Dict[int, List[Dict[str, Any]]] = {o.id: [] for o in orders}
    if orders:
        for item in session.execute(select(RepairItem).where(RepairItem.order_id.in_(list(by_order)))).scalars():
            by_order[item.order_id].append(item_json(item))
    rows = []
    for o in orders:
        progress = ItemTree(by_order[o.id]).progress()
        rows.append({
            **order_json(o),
            'total_items': progress.total,
            'completed_items': progress.completed,
            'progress': progress.percentage,
        })
    return rows, total


# ---------- Detail ---------- #

def _visible_items(items: List[RepairItem], principal: Principal, assigned_ids: Set[int]) -> List[RepairItem]:
    """Floor workers see their own items plus the parents that group them."""
    if not policy.is_restricted_worker(principal):
        return items
    mine = [i for i in items if i.worker_id == principal.worker_id or i.id in assigned_ids]
    mine_ids = {i.id for i in mine}
    parent_ids = {i.parent_id for i in mine if i.parent_id is not None}
    parents = [i for i in items if i.id in parent_ids and i.id not in mine_ids]
    return mine + parents


def _permissions(principal: Principal, item: RepairItem) -> Dict[str, bool]:
    return {
        'can_assign': policy.can_assign(principal, item),
        'can_complete': policy.can_complete(principal, item),
        'can_prioritize': policy.can_prioritize(principal, item),
        'can_transfer': policy.can_transfer(principal, item),
    }


def _assigned_workers(item: RepairItem, rows: List[RepairItemAssignedWorker], transferred_from: Set[int],
                      workers: Dict[int, RepairWorker]) -> List[Dict[str, Any]]:
    out = []
    for row in rows:
        w = workers.get(row.worker_id)
        if w is None:
            continue
        out.append({
            **worker_json(w),
            'assigned_at': iso(row.assigned_at),
            'estimated_duration_minutes': row.estimated_duration_minutes,
            'priority_marked_at': iso(row.priority_marked_at),
            'workload_engaged_at': iso(row.workload_engaged_at),
            'workload_engaged_by': row.workload_engaged_by,
            'is_transferred': w.id in transferred_from,
        })
    if not out and item.worker_id in workers:
        w = workers[item.worker_id]
        out.append({**worker_json(w), 'assigned_at': None, 'estimated_duration_minutes': None,
                    'priority_marked_at': None, 'workload_engaged_at': None, 'workload_engaged_by': None,
                    'is_transferred': w.id in transferred_from})
    return out


def order_detail(session: Session, principal: Principal, order_id: int) -> Dict[str, Any]:
    order = get_order(session, order_id)
    roster = active_roster(session)
    all_workers = {w.id: w for w in session.execute(select(RepairWorker)).scalars()}
    items = list(session.execute(
        select(RepairItem).where(RepairItem.order_id == order.id).order_by(RepairItem.order_index, RepairItem.id)
    ).scalars())
    ids = [i.id for i in items]
    images: Dict[int, List[RepairItemImage]] = {}
    assignments: Dict[int, List[RepairItemAssignedWorker]] = {}
    transfers: Dict[int, List[RepairItemTransfer]] = {}
    if ids:
        for img in session.execute(
            select(RepairItemImage).where(RepairItemImage.repair_item_id.in_(ids))
            .order_by(RepairItemImage.captured_at, RepairItemImage.id)
        ).scalars():
            images.setdefault(img.repair_item_id, []).append(img)
        for row in session.execute(
            select(RepairItemAssignedWorker).where(RepairItemAssignedWorker.repair_item_id.in_(ids))
            .order_by(RepairItemAssignedWorker.assigned_at, RepairItemAssignedWorker.id)
        ).scalars():
            assignments.setdefault(row.repair_item_id, []).append(row)
        for t in session.execute(
            select(RepairItemTransfer).where(RepairItemTransfer.repair_item_id.in_(ids))
            .order_by(RepairItemTransfer.transferred_at, RepairItemTransfer.id)
        ).scalars():
            transfers.setdefault(t.repair_item_id, []).append(t)

    assigned_to_me = set()
    if principal.worker_id is not None:
        assigned_to_me = {item_id for item_id, rows in assignments.items()
                          if any(r.worker_id == principal.worker_id for r in rows)}
    visible = _visible_items(items, principal, assigned_to_me)

    now = utcnow()
    records = []
    for item in visible:
        rows = assignments.get(item.id, [])
        item_transfers = transfers.get(item.id, [])
        marks = [as_utc(r.priority_marked_at) for r in rows if r.priority_marked_at]
        owner = all_workers.get(item.worker_id)
        records.append({
            **item_json(item),
            'estimated_duration_label': format_estimated_duration(item.estimated_duration_minutes),
            'completed_duration_label': (format_completed_duration(item.started_at, item.completed_at)
                                         if item.started_at and item.completed_at else None),
            'worker': worker_json(owner) if owner else None,
            'images': [image_json(img) for img in images.get(item.id, [])],
            'assignedWorkers': _assigned_workers(item, rows, {t.from_worker_id for t in item_transfers}, all_workers),
            'transfers': [transfer_json(t, all_workers) for t in item_transfers],
            'priority_marked_at': iso(max(marks)) if marks else None,
            'is_priority_today': any(is_shop_today(m, now) for m in marks),
            'permissions': _permissions(principal, item),
        })
    tree = ItemTree(records)
    return {
        'order': order_json(order),
        'workers': [worker_json(w) for w in roster],
        'serverTime': iso(now),
        'items': tree.to_forest(),
        'progress': summarize(tree),
    }


__all__ = ['worker_json', 'order_json', 'item_json', 'image_json', 'transfer_json', 'list_orders', 'order_detail']
