from garage.constants.roles import Role
from tests.test_utils_seed import create_order, items_by_name, reload_item, ensure_worker
from tests.test_lifecycle_helpers import (
    PHOTO, admin_headers, worker_with_headers, assign, start, complete, assert_error, jwt_headers,
)
from tests.test_utils_seed import ensure_account


def _leaf(name='Radiator', repair_type='sua_chua'):
    order = create_order([{'name': name, 'repair_type': repair_type}])
    return order, items_by_name(order)[name]


def test_start_on_in_progress_item_is_rejected_without_change(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    _, item = _leaf()
    assign(client, item.id, w1.id, admin)
    start(client, item.id, w1.id, w1_headers)
    before = reload_item(item.id)
    started_at, image_count = before.started_at, len(before.images)

    resp = client.post(f'/repairs/items/{item.id}/start', json={'image': PHOTO, 'worker_id': w1.id}, headers=w1_headers)
    assert_error(resp, 400, 'in_progress -> in_progress')
    after = reload_item(item.id)
    assert after.status == 'in_progress'
    assert after.started_at == started_at
    assert len(after.images) == image_count


def test_start_requires_photo_and_worker(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    _, item = _leaf()
    assign(client, item.id, w1.id, admin)
    resp = client.post(f'/repairs/items/{item.id}/start', json={'worker_id': w1.id}, headers=w1_headers)
    assert_error(resp, 400, 'photo')
    resp = client.post(f'/repairs/items/{item.id}/start', json={'image': PHOTO}, headers=w1_headers)
    assert_error(resp, 400, 'worker_id')
    assert reload_item(item.id).status == 'pending'


def test_start_requires_assignment(client):
    w1, w1_headers = worker_with_headers(Role.WORKER)
    _, item = _leaf()
    resp = client.post(f'/repairs/items/{item.id}/start', json={'image': PHOTO, 'worker_id': w1.id}, headers=w1_headers)
    assert_error(resp, 400, 'not assigned')


def test_worker_cannot_start_for_someone_else(client):
    admin = admin_headers()
    w1, _ = worker_with_headers(Role.WORKER)
    _, w2_headers = worker_with_headers(Role.WORKER)
    _, item = _leaf()
    assign(client, item.id, w1.id, admin)
    resp = client.post(f'/repairs/items/{item.id}/start', json={'image': PHOTO, 'worker_id': w1.id}, headers=w2_headers)
    assert_error(resp, 400)


def test_start_rejects_mismatched_context(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    order, item = _leaf()
    assign(client, item.id, w1.id, admin)
    resp = client.post(f'/repairs/items/{item.id}/start',
                       json={'image': PHOTO, 'worker_id': w1.id, 'order_id': order.id + 1000}, headers=w1_headers)
    assert_error(resp, 400, 'order_id')


def test_completion_ownership(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    _, w2_headers = worker_with_headers(Role.WORKER)
    _, item = _leaf()
    assign(client, item.id, w1.id, admin)
    start(client, item.id, w1.id, w1_headers)
    resp = client.post(f'/repairs/items/{item.id}/complete', json={'image': PHOTO}, headers=w2_headers)
    assert_error(resp, 400)
    assert reload_item(item.id).status == 'in_progress'
    complete(client, item.id, w1_headers)


def test_complete_requires_in_progress_and_photo(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    _, item = _leaf()
    complete(client, item.id, admin, expected_status=400)
    assign(client, item.id, w1.id, admin)
    start(client, item.id, w1.id, w1_headers)
    resp = client.post(f'/repairs/items/{item.id}/complete', json={}, headers=admin)
    assert_error(resp, 400, 'completion photo')
    complete(client, item.id, admin)
    # Second completion is rejected
    complete(client, item.id, admin, expected_status=400)


def test_parent_items_cannot_be_acted_on(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    order = create_order([{'name': 'Body', 'repair_type': 'sua_chua', 'children': [{'name': 'Door'}]}])
    parent = items_by_name(order)['Body']
    resp = client.post(f'/repairs/items/{parent.id}/workers',
                       json={'worker_id': w1.id, 'estimated_duration_minutes': 30}, headers=admin)
    assert_error(resp, 400, 'sub-items')
    resp = client.post(f'/repairs/items/{parent.id}/start', json={'image': PHOTO, 'worker_id': w1.id}, headers=w1_headers)
    assert_error(resp, 400)


def test_assignment_duration_bound(client):
    admin = admin_headers()
    w1, _ = worker_with_headers(Role.WORKER)
    _, item = _leaf()
    for payload in (
        {'worker_id': w1.id, 'estimated_duration_minutes': 0},
        {'worker_id': w1.id, 'estimated_duration_minutes': -10},
        {'worker_id': w1.id, 'estimated_hours': 1.5, 'estimated_minutes': 0},
        {'worker_id': w1.id, 'estimated_hours': 1, 'estimated_minutes': 75},
        {'worker_id': w1.id},
        {'estimated_duration_minutes': 30},
    ):
        resp = client.post(f'/repairs/items/{item.id}/workers', json=payload, headers=admin)
        assert_error(resp, 400)
    assert reload_item(item.id).assignments == []


def test_assignment_role_gates(client):
    _, paint_lead_headers = worker_with_headers(Role.PAINT_LEAD)
    sales = jwt_headers(ensure_account(role=Role.SALES))
    w1, _ = worker_with_headers(Role.WORKER)
    w2, w2_headers = worker_with_headers(Role.WORKER)
    painter = ensure_worker(worker_type='paint')
    admin = admin_headers()
    _, item = _leaf()
    # Lead of the other category
    resp = client.post(f'/repairs/items/{item.id}/workers',
                       json={'worker_id': w1.id, 'estimated_duration_minutes': 30}, headers=paint_lead_headers)
    assert_error(resp, 403)
    resp = client.post(f'/repairs/items/{item.id}/workers',
                       json={'worker_id': w1.id, 'estimated_duration_minutes': 30}, headers=sales)
    assert_error(resp, 403)
    # Floor worker assigning a colleague
    resp = client.post(f'/repairs/items/{item.id}/workers',
                       json={'worker_id': w1.id, 'estimated_duration_minutes': 30}, headers=w2_headers)
    assert_error(resp, 403)
    # Worker type must match the item category
    resp = client.post(f'/repairs/items/{item.id}/workers',
                       json={'worker_id': painter.id, 'estimated_duration_minutes': 30}, headers=admin)
    assert_error(resp, 403)


def test_inactive_worker_cannot_be_assigned(client):
    admin = admin_headers()
    retired = ensure_worker(is_active=False)
    _, item = _leaf()
    resp = client.post(f'/repairs/items/{item.id}/workers',
                       json={'worker_id': retired.id, 'estimated_duration_minutes': 30}, headers=admin)
    assert_error(resp, 400, 'not an active worker')


def test_unassign_rejected_after_start(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    _, item = _leaf()
    assign(client, item.id, w1.id, admin)
    start(client, item.id, w1.id, w1_headers)
    resp = client.delete(f'/repairs/items/{item.id}/workers/{w1.id}', headers=admin)
    assert_error(resp, 400, 'Cannot remove workers')


def test_unknown_item_is_404(client):
    admin = admin_headers()
    resp = client.post('/repairs/items/999999/start', json={'image': PHOTO, 'worker_id': 1}, headers=admin)
    assert_error(resp, 404)
    resp = client.get('/repairs/999999/detail', headers=admin)
    assert_error(resp, 404)


def test_routes_require_token(client):
    resp = client.get('/repairs/1/detail')
    assert_error(resp, 401)
    resp = client.get('/repairs/1/detail', headers={'Authorization': 'Bearer not-a-token'})
    assert_error(resp, 401)
