from __future__ import annotations
from typing import Any, Dict, Optional
import logging
from flask_jwt_extended import get_jwt_identity, get_jwt
from garage import get_db
from garage.models.audit import AuditLog

logger = logging.getLogger(__name__)


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. REPAIR.ITEM.START, REPAIR.ORDER.DELETE
      entity: optional entity name (RepairOrder, RepairItem, RepairWorker)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (will be shallow copied)
    """
    session = get_db()
    claims = {}
    actor = None
    try:
        claims = get_jwt() or {}
        ident = get_jwt_identity()
        actor = int(ident) if ident is not None else None
    except RuntimeError:
        # No verified JWT in this context (scripts, CLI seeding)
        logger.debug('audit %s recorded without actor', action)
    log = AuditLog(
        actor_user_id=actor or 0,
        actor_role=claims.get('role'),
        actor_worker_id=claims.get('worker_id'),
        actor_name=claims.get('display_name'),
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
