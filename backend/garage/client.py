from __future__ import annotations
"""HTTP client for the repair-shop API.

Credentials live on the client instance; nothing is read from or written to
ambient storage. Every call is a plain request/response: no retries, no
caching. After a command, callers re-fetch the order detail to see the new
state.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import httpx

from garage.services.item_tree import ItemTree, summarize
from garage.utils.durations import format_elapsed
from garage.utils.timeutil import parse_iso

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response (or unreachable server). ``message`` is the server's error detail."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class ApiClient:
    def __init__(self, base_url: str, token: Optional[str] = None, *,
                 transport: Optional[httpx.BaseTransport] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.user: Optional[Dict[str, Any]] = None
        self._http = httpx.Client(base_url=self.base_url, transport=transport, timeout=timeout)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def call(self, endpoint: str, path: str = '', method: str = 'GET',
             body: Optional[Mapping[str, Any]] = None, params: Optional[Mapping[str, Any]] = None) -> Any:
        """``endpoint`` is the resource root (``repairs``, ``auth``); ``path`` is appended to it."""
        url = '/' + endpoint.strip('/') + (path if not path or path.startswith('/') else '/' + path)
        try:
            resp = self._http.request(method.upper(), url, json=body, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning('Request %s %s failed: %s', method, url, e)
            raise ApiError(f'Request failed: {e}') from e
        if resp.status_code >= 400:
            raise ApiError(self._error_message(resp), resp.status_code)
        if not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            payload = resp.json()
        except ValueError:
            return resp.text or f'HTTP {resp.status_code}'
        if isinstance(payload, dict):
            err = payload.get('error')
            if isinstance(err, dict) and err.get('detail'):
                return str(err['detail'])
            if isinstance(err, str):
                return err
            if payload.get('message'):
                return str(payload['message'])
        return f'HTTP {resp.status_code}'

    def get(self, endpoint: str, path: str = '', params: Optional[Mapping[str, Any]] = None) -> Any:
        return self.call(endpoint, path, 'GET', params=params)

    def post(self, endpoint: str, path: str = '', body: Optional[Mapping[str, Any]] = None) -> Any:
        return self.call(endpoint, path, 'POST', body=body or {})

    def put(self, endpoint: str, path: str = '', body: Optional[Mapping[str, Any]] = None) -> Any:
        return self.call(endpoint, path, 'PUT', body=body or {})

    def delete(self, endpoint: str, path: str = '') -> Any:
        return self.call(endpoint, path, 'DELETE')

    # ---------- Session ---------- #

    def login(self, username: str, password: str) -> Dict[str, Any]:
        data = self.post('auth', '/login', {'username': username, 'password': password})
        self.token = data['access_token']
        self.user = data['user']
        return self.user

    def logout(self):
        self.token = None
        self.user = None

    # ---------- Repair workflow ---------- #

    def list_orders(self, limit: int = 10, offset: int = 0) -> Dict[str, Any]:
        return self.get('repairs', '/', params={'limit': limit, 'offset': offset})

    def fetch_order_detail(self, order_id: int) -> Dict[str, Any]:
        """Order detail with progress recomputed from the returned tree."""
        detail = self.get('repairs', f'/{order_id}/detail')
        detail['progress'] = summarize(ItemTree.from_forest(detail.get('items') or []))
        return detail

    def assign_worker(self, item_id: int, worker_id: int, estimated_duration_minutes: int) -> Dict[str, Any]:
        return self.post('repairs', f'/items/{item_id}/workers', {
            'worker_id': worker_id,
            'estimated_duration_minutes': estimated_duration_minutes,
        })

    def unassign_worker(self, item_id: int, worker_id: int) -> Dict[str, Any]:
        return self.delete('repairs', f'/items/{item_id}/workers/{worker_id}')

    def start_item(self, item: Mapping[str, Any], worker_id: int, image: str) -> Dict[str, Any]:
        return self.post('repairs', f"/items/{item['id']}/start", {
            'image': image,
            'worker_id': worker_id,
            'parent_id': item.get('parent_id'),
            'order_id': item.get('order_id'),
        })

    def complete_item(self, item: Mapping[str, Any], image: str, worker_id: Optional[int] = None) -> Dict[str, Any]:
        return self.post('repairs', f"/items/{item['id']}/complete", {
            'image': image,
            'worker_id': worker_id,
            'parent_id': item.get('parent_id'),
            'order_id': item.get('order_id'),
        })

    def transfer_item(self, item_id: int, from_worker_id: int, to_worker_id: int, notes: Optional[str] = None) -> Dict[str, Any]:
        return self.post('repairs', f'/items/{item_id}/transfer', {
            'from_worker_id': from_worker_id,
            'to_worker_id': to_worker_id,
            'notes': notes,
        })

    def mark_priority_today(self, item_id: int) -> Dict[str, Any]:
        return self.post('repairs', f'/items/{item_id}/priority-today')

    def set_parts_waiting(self, order_id: int, waiting: bool, start: Optional[str] = None,
                          end: Optional[str] = None, note: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {'waiting_for_parts': waiting}
        if waiting:
            body.update({'parts_order_start_time': start, 'parts_expected_end_time': end, 'parts_note': note})
        return self.put('repairs', f'/{order_id}/parts-waiting', body)

    def delete_order(self, order_id: int) -> Dict[str, Any]:
        return self.delete('repairs', f'/{order_id}')


def elapsed_label(item: Mapping[str, Any], server_time: str) -> Optional[str]:
    """Timer text for an in-progress item, measured against the server clock of a detail payload."""
    if item.get('status') != 'in_progress' or not item.get('started_at'):
        return None
    started: datetime = parse_iso(item['started_at'], 'started_at')
    return format_elapsed(started, parse_iso(server_time, 'serverTime'))


__all__ = ['ApiClient', 'ApiError', 'elapsed_label']
