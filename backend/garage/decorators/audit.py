from __future__ import annotations
"""Audit logging decorator for mutating route handlers.

Usage examples:

@audit_log('REPAIR.ORDER.CREATE', entity='RepairOrder', entity_id_key='id', meta_keys=['code'])
def create_order():
    ... return {'id': order.id, 'code': order.code}, 201

@audit_log('REPAIR.ITEM.START', entity='RepairItem', entity_id_arg='item_id',
           diff_keys=['status', 'worker_id'], pre_fetch=lambda a, kw: _snapshot_item(kw['item_id']))
def start_item(item_id): ...

Parameters:
  action: required audit action code (e.g. REPAIR.ITEM.ASSIGN)
  entity: optional entity label (RepairOrder, RepairItem, RepairWorker)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: list of keys to project from returned JSON into meta dict (shallow copy).
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs). Overrides meta_keys.
  diff_keys / pre_fetch: snapshot taken before the handler runs; changed keys land in meta['changes'].

Return handling:
  Flask view functions return dict, (dict, status) or (dict, status, headers).
  The first element is inspected; the original return value is passed through untouched.
  Audit is only written for successful handlers: an exception propagates before any entry is added.
"""

from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict
import logging

from garage.services.audit import add_audit
from garage import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, original_rv) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        return rv[0], rv
    return rv, rv


def _changes(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    out = {}
    for k in keys:
        if k in before and k in after and before.get(k) != after.get(k):
            out[k] = {'before': before.get(k), 'after': after.get(k)}
    return out


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    commit: bool = True,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = pre_fetch(args, kwargs) if (diff_keys and pre_fetch) else None
            rv = fn(*args, **kwargs)
            try:
                data, _ = _extract_payload(rv)
                if not isinstance(data, dict):
                    data = {}
                entity_id = None
                if entity_id_key and entity_id_key in data:
                    entity_id = data.get(entity_id_key)
                elif entity_id_arg and entity_id_arg in kwargs:
                    entity_id = kwargs.get(entity_id_arg)
                meta = None
                if meta_builder:
                    meta = meta_builder(data, rv, args, kwargs)
                elif meta_keys:
                    meta = {k: data.get(k) for k in meta_keys if k in data}
                if diff_keys and isinstance(before_snapshot, dict):
                    changes = _changes(before_snapshot, data, diff_keys)
                    if changes:
                        meta = dict(meta or {})
                        meta['changes'] = changes
                add_audit(action, entity, entity_id, meta)
                if commit:
                    get_db().commit()
            except Exception:
                # The command already committed; a failed audit write must not turn it into an error
                logger.exception('Audit write failed for %s', action)
                get_db().rollback()
            return rv
        return wrapper
    return outer
