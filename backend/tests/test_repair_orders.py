from garage import get_db
from garage.constants.roles import Role
from garage.models.repair_item import RepairItem, RepairItemAssignedWorker, RepairItemImage
from garage.models.repair_order import RepairOrder
from tests.test_utils_seed import create_order, items_by_name, ensure_account, unique, reload_item
from tests.test_lifecycle_helpers import (
    admin_headers, worker_with_headers, jwt_headers, assign, start, complete, detail, find_item, assert_error,
)


def _create_payload(plate=None):
    return {
        'order': {'license_plate': plate or unique('30F'), 'customer_name': 'Lan', 'vehicle_name': 'Vios',
                  'received_at': '2026-04-01T09:00:00'},
        'items': [
            {'name': 'Engine service', 'repair_type': 'sua_chua', 'sub_items': [{'name': 'Oil'}, {'name': 'Filter'}]},
            {'name': 'Door paint', 'repair_type': 'dong_son'},
            {'name': 'Inspection'},
        ],
    }


def test_create_order_with_item_tree(client):
    sales = jwt_headers(ensure_account(role=Role.SALES))
    resp = client.post('/repairs/', json=_create_payload(), headers=sales)
    assert resp.status_code == 201, resp.get_json()
    order = resp.get_json()
    assert order['status'] == 'pending'
    assert order['code'] == f"RO{order['id']:06d}"
    # 09:00 shop time is 02:00 UTC
    assert order['received_at'].endswith('T02:00:00Z')

    body = detail(client, order['id'], admin_headers())
    names = [n['name'] for n in body['items']]
    assert names == ['Engine service', 'Door paint', 'Inspection']
    engine = body['items'][0]
    assert [c['name'] for c in engine['children']] == ['Oil', 'Filter']
    assert all(c['repair_type'] == 'sua_chua' for c in engine['children'])
    assert body['items'][2]['repair_type'] is None
    assert body['progress'] == {
        'completed': 0, 'total': 4, 'percentage': 0,
        'by_category': {
            'dong_son': {'completed': 0, 'total': 1, 'percentage': 0},
            'sua_chua': {'completed': 0, 'total': 2, 'percentage': 0},
            'uncategorized': {'completed': 0, 'total': 1, 'percentage': 0},
        },
    }


def test_create_order_validation(client):
    admin = admin_headers()
    _, w_headers = worker_with_headers(Role.WORKER)
    assert_error(client.post('/repairs/', json={'order': {'customer_name': 'X'}}, headers=admin), 400, 'license_plate')
    bad_type = _create_payload()
    bad_type['items'][1]['repair_type'] = 'welding'
    assert_error(client.post('/repairs/', json=bad_type, headers=admin), 400, 'repair_type')
    assert_error(client.post('/repairs/', json=_create_payload(), headers=w_headers), 403)


def test_duplicate_code_is_a_store_error(client):
    admin = admin_headers()
    payload = _create_payload()
    payload['order']['code'] = unique('DUP')
    assert client.post('/repairs/', json=payload, headers=admin).status_code == 201
    payload['order']['license_plate'] = unique('30F')
    resp = client.post('/repairs/', json=payload, headers=admin)
    body = assert_error(resp, 400)
    assert body['error']['title'] == 'Store Error'


def test_list_orders_pagination_and_progress(client):
    admin = admin_headers()
    for _ in range(3):
        create_order([{'name': 'Check', 'repair_type': 'sua_chua'}])
    resp = client.get('/repairs/?limit=2&offset=0', headers=admin)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['pagination']['limit'] == 2
    assert body['pagination']['returned'] == 2
    assert body['pagination']['total'] >= 3
    assert body['pagination']['has_more'] is True
    row = body['data'][0]
    assert {'total_items', 'completed_items', 'progress'} <= set(row)
    # Newest first
    ids = [r['id'] for r in body['data']]
    assert ids == sorted(ids, reverse=True)
    assert_error(client.get('/repairs/?limit=abc', headers=admin), 400)
    capped = client.get('/repairs/?limit=5000', headers=admin).get_json()
    assert capped['pagination']['limit'] == 100


def test_list_orders_visibility_for_restricted_worker(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    mine = create_order([{'name': 'Mine', 'repair_type': 'sua_chua'}])
    create_order([{'name': 'Not mine', 'repair_type': 'sua_chua'}])
    assign(client, items_by_name(mine)['Mine'].id, w1.id, admin)
    body = client.get('/repairs/?limit=100', headers=w1_headers).get_json()
    assert [r['id'] for r in body['data']] == [mine.id]
    assert body['pagination']['total'] == 1


def test_list_orders_visibility_for_lead(client):
    _, paint_lead = worker_with_headers(Role.PAINT_LEAD)
    paint_order = create_order([{'name': 'Fender paint', 'repair_type': 'dong_son'}])
    mech_order = create_order([{'name': 'Timing belt', 'repair_type': 'sua_chua'}])
    ids = {r['id'] for r in client.get('/repairs/?limit=100', headers=paint_lead).get_json()['data']}
    assert paint_order.id in ids
    assert mech_order.id not in ids


def test_update_order_fields(client):
    admin = admin_headers()
    order = create_order([{'name': 'Roof', 'repair_type': 'dong_son'}])
    resp = client.put(f'/repairs/{order.id}', json={'notes': 'Customer waits', 'vehicle_name': 'Camry'}, headers=admin)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['notes'] == 'Customer waits'
    assert_error(client.put(f'/repairs/{order.id}', json={'status': 'completed'}, headers=admin), 400, 'status')
    sales_headers = jwt_headers(ensure_account(role=Role.SALES))
    assert_error(client.put(f'/repairs/{order.id}', json={'notes': 'x'}, headers=sales_headers), 403)


def test_add_items_and_sub_items(client):
    admin = admin_headers()
    order = create_order([{'name': 'Front', 'repair_type': 'dong_son'}])
    front = items_by_name(order)['Front']
    resp = client.post(f'/repairs/{order.id}/items', json={'items': [{'name': 'Rear', 'repair_type': 'sua_chua'}]}, headers=admin)
    assert resp.status_code == 201, resp.get_json()
    rear = resp.get_json()['data'][0]
    assert rear['order_index'] == 1
    assert rear['id'] is not None
    resp = client.post(f'/repairs/{order.id}/items', json={'parent_id': front.id, 'items': [{'name': 'Front left'}]}, headers=admin)
    assert resp.status_code == 201, resp.get_json()
    child = resp.get_json()['data'][0]
    assert child['id'] is not None
    assert child['parent_id'] == front.id
    assert child['repair_type'] == 'dong_son'

    body = detail(client, order.id, admin)
    assert [n['name'] for n in body['items']] == ['Front', 'Rear']
    assert find_item(body, rear['id'])['repair_type'] == 'sua_chua'
    assert find_item(body, child['id'])['parent_id'] == front.id
    assert body['progress']['total'] == 2
    assert_error(client.post(f'/repairs/{order.id}/items', json={'items': []}, headers=admin), 400)


def test_sub_items_cannot_be_added_under_assigned_leaf(client):
    admin = admin_headers()
    w1, _ = worker_with_headers(Role.WORKER)
    order = create_order([{'name': 'Engine', 'repair_type': 'sua_chua'}])
    engine = items_by_name(order)['Engine']
    assign(client, engine.id, w1.id, admin)
    resp = client.post(f'/repairs/{order.id}/items', json={'parent_id': engine.id, 'items': [{'name': 'Piston'}]}, headers=admin)
    assert_error(resp, 400, 'unassigned')


def test_update_item_retypes_children(client):
    admin = admin_headers()
    order = create_order([{'name': 'Panel', 'repair_type': 'sua_chua', 'children': [{'name': 'Panel L'}]}])
    items = items_by_name(order)
    resp = client.put(f"/repairs/items/{items['Panel'].id}", json={'repair_type': 'dong_son', 'name': 'Panels'}, headers=admin)
    assert resp.status_code == 200, resp.get_json()
    assert reload_item(items['Panel L'].id).repair_type == 'dong_son'
    assert_error(client.put(f"/repairs/items/{items['Panel L'].id}", json={'repair_type': 'sua_chua'}, headers=admin), 400)
    assert_error(client.put(f"/repairs/items/{items['Panel'].id}", json={'status': 'completed'}, headers=admin), 400)


def test_delete_item_removes_children(client):
    admin = admin_headers()
    order = create_order([
        {'name': 'Trunk', 'repair_type': 'sua_chua', 'children': [{'name': 'Lock'}, {'name': 'Hinge'}]},
        {'name': 'Keep', 'repair_type': 'sua_chua'},
    ])
    items = items_by_name(order)
    trunk_id, lock_id = items['Trunk'].id, items['Lock'].id
    resp = client.delete(f'/repairs/items/{trunk_id}', headers=admin)
    assert resp.status_code == 200, resp.get_json()
    session = get_db()
    session.expire_all()
    assert session.get(RepairItem, trunk_id) is None
    assert session.get(RepairItem, lock_id) is None
    body = detail(client, order.id, admin)
    assert [n['name'] for n in body['items']] == ['Keep']


def test_deleting_last_open_child_completes_parent_and_order(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    order = create_order([
        {'name': 'Hood', 'repair_type': 'sua_chua', 'children': [{'name': 'Hood latch'}, {'name': 'Hood hinge'}]},
    ])
    items = items_by_name(order)
    latch_id, hinge_id = items['Hood latch'].id, items['Hood hinge'].id
    assign(client, latch_id, w1.id, admin)
    start(client, latch_id, w1.id, w1_headers)
    complete(client, latch_id, w1_headers)
    assert reload_item(items['Hood'].id).status == 'in_progress'

    resp = client.delete(f'/repairs/items/{hinge_id}', headers=admin)
    assert resp.status_code == 200, resp.get_json()
    body = detail(client, order.id, admin)
    assert body['progress']['completed'] == 1
    assert body['progress']['total'] == 1
    assert body['progress']['percentage'] == 100
    assert find_item(body, items['Hood'].id)['status'] == 'completed'
    assert body['order']['status'] == 'completed'


def test_deleting_started_child_reopens_parent_as_leaf(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    order = create_order([
        {'name': 'Door', 'repair_type': 'sua_chua', 'children': [{'name': 'Door seal'}]},
        {'name': 'Mirror', 'repair_type': 'sua_chua'},
    ])
    items = items_by_name(order)
    seal_id = items['Door seal'].id
    assign(client, seal_id, w1.id, admin)
    start(client, seal_id, w1.id, w1_headers)
    assert reload_item(items['Door'].id).status == 'in_progress'

    resp = client.delete(f'/repairs/items/{seal_id}', headers=admin)
    assert resp.status_code == 200, resp.get_json()
    door = reload_item(items['Door'].id)
    assert door.status == 'pending'
    assert door.started_at is None
    # The parent is now an ordinary leaf that can be worked
    assign(client, door.id, w1.id, admin)
    start(client, door.id, w1.id, w1_headers)


def test_delete_order_cascades(client):
    admin = admin_headers()
    w1, w1_headers = worker_with_headers(Role.WORKER)
    order = create_order([{'name': 'Axle', 'repair_type': 'sua_chua', 'children': [{'name': 'Axle L'}]}])
    order_id = order.id
    child_id = items_by_name(order)['Axle L'].id
    assign(client, child_id, w1.id, admin)
    start(client, child_id, w1.id, w1_headers)

    _, lead_headers = worker_with_headers(Role.WORKER_LEAD)
    assert_error(client.delete(f'/repairs/{order_id}', headers=lead_headers), 403)

    resp = client.delete(f'/repairs/{order_id}', headers=admin)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['deleted_items'] == 2
    session = get_db()
    session.expire_all()
    assert session.get(RepairOrder, order_id) is None
    assert session.query(RepairItem).filter_by(order_id=order_id).count() == 0
    assert session.query(RepairItemAssignedWorker).filter_by(repair_item_id=child_id).count() == 0
    assert session.query(RepairItemImage).filter_by(repair_item_id=child_id).count() == 0
    assert_error(client.get(f'/repairs/{order_id}/detail', headers=admin), 404)


def test_workers_and_server_time(client):
    admin = admin_headers()
    w1, _ = worker_with_headers(Role.WORKER)
    roster = client.get('/repairs/workers', headers=admin).get_json()['data']
    assert any(w['id'] == w1.id for w in roster)
    assert all(w['is_active'] for w in roster)
    names = [w['name'] for w in roster]
    assert names == sorted(names)
    body = client.get('/repairs/server-time', headers=admin).get_json()
    assert body['time'].endswith('Z')
