from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select
from garage.constants.roles import Role
from garage.decorators.auth import require_roles
from garage.decorators.audit import audit_log
from garage.errors import NotFound, ValidationError
from garage.models.worker import RepairWorker
from garage.services.order_views import worker_json
from garage.utils.validation import require_text, validate_status
from garage import get_db

workers_bp = Blueprint('workers', __name__)


def _prefetch_worker(worker_id):
    w = get_db().get(RepairWorker, worker_id)
    return worker_json(w) if w else {}


@workers_bp.get('/')
@require_roles(Role.ADMIN)
def list_workers():
    session = get_db()
    q = select(RepairWorker)
    if request.args.get('include_inactive') not in ('1', 'true'):
        q = q.where(RepairWorker.is_active.is_(True))
    rows = session.execute(q.order_by(RepairWorker.name, RepairWorker.id)).scalars().all()
    return {'data': [worker_json(w) for w in rows]}


@workers_bp.post('/')
@require_roles(Role.ADMIN)
@audit_log('REPAIR.WORKER.CREATE', entity='RepairWorker', entity_id_key='id', meta_keys=['name', 'worker_type'])
def create_worker():
    session = get_db()
    data = request.json or {}
    w = RepairWorker(
        name=require_text(data.get('name'), 'name', 120),
        worker_type=validate_status(data.get('worker_type', RepairWorker.TYPE_REPAIR), RepairWorker.ALL_TYPES, 'worker_type'),
        is_active=True,
    )
    session.add(w)
    session.commit()
    return worker_json(w), 201


@workers_bp.put('/<int:worker_id>')
@require_roles(Role.ADMIN)
@audit_log('REPAIR.WORKER.UPDATE', entity='RepairWorker', entity_id_key='id',
           diff_keys=['name', 'worker_type', 'is_active'], pre_fetch=lambda a, kw: _prefetch_worker(kw.get('worker_id')))
def update_worker(worker_id: int):
    session = get_db()
    w = session.get(RepairWorker, worker_id)
    if not w:
        raise NotFound(description='Worker not found')
    data = request.json or {}
    if 'name' in data:
        w.name = require_text(data.get('name'), 'name', 120)
    if 'worker_type' in data:
        w.worker_type = validate_status(data.get('worker_type'), RepairWorker.ALL_TYPES, 'worker_type')
    if 'is_active' in data:
        if not isinstance(data['is_active'], bool):
            raise ValidationError(description='is_active must be true or false')
        w.is_active = data['is_active']
    session.commit()
    return worker_json(w)
