from __future__ import annotations
from flask import Blueprint, request, current_app
from sqlalchemy import select
from garage.decorators.auth import require_roles
from garage.decorators.audit import audit_log
from garage.config.pagination import normalize_pagination, pagination_meta
from garage.errors import ValidationError
from garage.models.repair_item import RepairItem
from garage.models.repair_order import RepairOrder
from garage.models.worker import RepairWorker
from garage.services import workflow
from garage.services.order_views import order_json, item_json, image_json, transfer_json, worker_json, list_orders, order_detail
from garage.services.policy import current_principal
from garage.utils.timeutil import iso, utcnow
from garage import get_db

rpr_bp = Blueprint('repairs', __name__)


def _body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(description='Request body must be a JSON object')
    return data


def _prefetch_item(item_id):
    session = get_db()
    item = session.execute(select(RepairItem).where(RepairItem.id == item_id)).scalar_one_or_none()
    return item_json(item) if item else {}


def _prefetch_order(order_id):
    session = get_db()
    order = session.execute(select(RepairOrder).where(RepairOrder.id == order_id)).scalar_one_or_none()
    return order_json(order) if order else {}


# ---------- Orders ---------- #

@rpr_bp.get('/')
@require_roles()
def list_repair_orders():
    session = get_db()
    try:
        limit, offset = normalize_pagination(
            request.args.get('limit'), request.args.get('offset'),
            current_app.config['ORDERS_DEFAULT_LIMIT'], current_app.config['ORDERS_MAX_LIMIT'],
        )
    except ValueError as e:
        raise ValidationError(description=str(e))
    rows, total = list_orders(session, current_principal(), limit, offset)
    return {'data': rows, 'pagination': pagination_meta(total, limit, offset, len(rows))}


@rpr_bp.post('/')
@require_roles()
@audit_log('REPAIR.ORDER.CREATE', entity='RepairOrder', entity_id_key='id', meta_keys=['code', 'license_plate'])
def create_repair_order():
    session = get_db()
    order = workflow.create_order(session, current_principal(), _body())
    session.commit()
    return order_json(order), 201


@rpr_bp.get('/workers')
@require_roles()
def list_active_workers():
    return {'data': [worker_json(w) for w in workflow.active_roster(get_db())]}


@rpr_bp.get('/server-time')
@require_roles()
def server_time():
    return {'time': iso(utcnow())}


@rpr_bp.get('/<int:order_id>/detail')
@require_roles()
def get_order_detail(order_id: int):
    # role / worker_id query parameters are ignored; the token decides visibility
    return order_detail(get_db(), current_principal(), order_id)


@rpr_bp.put('/<int:order_id>')
@require_roles()
@audit_log('REPAIR.ORDER.UPDATE', entity='RepairOrder', entity_id_key='id',
           diff_keys=['license_plate', 'customer_name', 'vehicle_name', 'expected_return_at', 'notes'],
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')))
def update_repair_order(order_id: int):
    session = get_db()
    order = workflow.update_order(session, current_principal(), order_id, _body())
    session.commit()
    return order_json(order)


@rpr_bp.delete('/<int:order_id>')
@require_roles()
@audit_log('REPAIR.ORDER.DELETE', entity='RepairOrder', entity_id_arg='order_id', meta_keys=['deleted_items'])
def delete_repair_order(order_id: int):
    session = get_db()
    item_count = workflow.delete_order(session, current_principal(), order_id)
    session.commit()
    return {'deleted': True, 'id': order_id, 'deleted_items': item_count}


@rpr_bp.put('/<int:order_id>/parts-waiting')
@require_roles()
@audit_log('REPAIR.ORDER.PARTS_WAITING', entity='RepairOrder', entity_id_key='id',
           diff_keys=['waiting_for_parts', 'parts_order_start_time', 'parts_expected_end_time', 'parts_note'],
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')))
def set_parts_waiting(order_id: int):
    session = get_db()
    order = workflow.set_parts_waiting(session, current_principal(), order_id, _body())
    session.commit()
    return order_json(order)


@rpr_bp.post('/<int:order_id>/items')
@require_roles()
@audit_log('REPAIR.ITEM.CREATE', entity='RepairOrder', entity_id_arg='order_id',
           meta_builder=lambda data, rv, a, kw: {'item_ids': [i['id'] for i in data.get('data', [])]})
def add_repair_items(order_id: int):
    session = get_db()
    items = workflow.add_items(session, current_principal(), order_id, _body())
    session.commit()
    return {'data': [item_json(i) for i in items]}, 201


# ---------- Items ---------- #

@rpr_bp.put('/items/<int:item_id>')
@require_roles()
@audit_log('REPAIR.ITEM.UPDATE', entity='RepairItem', entity_id_key='id',
           diff_keys=['name', 'repair_type', 'order_index'], pre_fetch=lambda a, kw: _prefetch_item(kw.get('item_id')))
def update_repair_item(item_id: int):
    session = get_db()
    item = workflow.update_item(session, current_principal(), item_id, _body())
    session.commit()
    return item_json(item)


@rpr_bp.delete('/items/<int:item_id>')
@require_roles()
@audit_log('REPAIR.ITEM.DELETE', entity='RepairItem', entity_id_key='id', meta_keys=['order_id', 'parent_id'])
def delete_repair_item(item_id: int):
    session = get_db()
    snapshot = workflow.delete_item(session, current_principal(), item_id)
    session.commit()
    return {'deleted': True, **snapshot}


@rpr_bp.post('/items/<int:item_id>/workers')
@require_roles()
@audit_log('REPAIR.ITEM.ASSIGN', entity='RepairItem', entity_id_arg='item_id',
           meta_keys=['worker_id', 'estimated_duration_minutes'])
def assign_item_worker(item_id: int):
    session = get_db()
    row = workflow.assign_worker(session, current_principal(), item_id, _body())
    session.commit()
    return {
        'id': row.id,
        'repair_item_id': row.repair_item_id,
        'worker_id': row.worker_id,
        'assigned_at': iso(row.assigned_at),
        'estimated_duration_minutes': row.estimated_duration_minutes,
        'priority_marked_at': iso(row.priority_marked_at),
    }, 201


@rpr_bp.delete('/items/<int:item_id>/workers/<int:worker_id>')
@require_roles()
@audit_log('REPAIR.ITEM.UNASSIGN', entity='RepairItem', entity_id_arg='item_id',
           meta_builder=lambda data, rv, a, kw: {'worker_id': kw.get('worker_id')})
def unassign_item_worker(item_id: int, worker_id: int):
    session = get_db()
    workflow.unassign_worker(session, current_principal(), item_id, worker_id)
    session.commit()
    return {'deleted': True, 'repair_item_id': item_id, 'worker_id': worker_id}


@rpr_bp.post('/items/<int:item_id>/start')
@require_roles()
@audit_log('REPAIR.ITEM.START', entity='RepairItem', entity_id_key='id', diff_keys=['status', 'worker_id'],
           pre_fetch=lambda a, kw: _prefetch_item(kw.get('item_id')))
def start_repair_item(item_id: int):
    session = get_db()
    item = workflow.start_item(session, current_principal(), item_id, _body())
    session.commit()
    return item_json(item)


@rpr_bp.post('/items/<int:item_id>/complete')
@require_roles()
@audit_log('REPAIR.ITEM.COMPLETE', entity='RepairItem', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_item(kw.get('item_id')))
def complete_repair_item(item_id: int):
    session = get_db()
    item = workflow.complete_item(session, current_principal(), item_id, _body())
    session.commit()
    return item_json(item)


@rpr_bp.post('/items/<int:item_id>/transfer')
@require_roles()
@audit_log('REPAIR.ITEM.TRANSFER', entity='RepairItem', entity_id_key='repair_item_id',
           meta_keys=['from_worker_id', 'to_worker_id'])
def transfer_repair_item(item_id: int):
    session = get_db()
    transfer = workflow.transfer_item(session, current_principal(), item_id, _body())
    session.commit()
    ids = (transfer.from_worker_id, transfer.to_worker_id)
    workers = {w.id: w for w in session.execute(select(RepairWorker).where(RepairWorker.id.in_(ids))).scalars()}
    return transfer_json(transfer, workers), 201


@rpr_bp.post('/items/<int:item_id>/priority-today')
@require_roles()
@audit_log('REPAIR.ITEM.PRIORITY', entity='RepairItem', entity_id_key='id')
def mark_priority_today(item_id: int):
    session = get_db()
    marked_at = workflow.mark_priority_today(session, current_principal(), item_id)
    session.commit()
    return {'id': item_id, 'priority_marked_at': iso(marked_at), 'is_priority_today': True}


@rpr_bp.get('/items/<int:item_id>/images')
@require_roles()
def list_item_images(item_id: int):
    return {'data': [image_json(img) for img in workflow.list_images(get_db(), item_id)]}


@rpr_bp.post('/items/<int:item_id>/images')
@require_roles()
@audit_log('REPAIR.ITEM.IMAGE', entity='RepairItem', entity_id_arg='item_id', meta_keys=['image_type'])
def add_item_image(item_id: int):
    session = get_db()
    img = workflow.add_image(session, current_principal(), item_id, _body())
    session.commit()
    return image_json(img), 201
