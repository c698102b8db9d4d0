import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from conftest import borrowals, find_item, make_app, parse
from models.database import forget_database


def future(days=2):
    return (datetime.now() + timedelta(days=days)).strftime('%Y-%m-%dT%H:%M')


def test_list_groups_and_sorts_by_date(client):
    data = borrowals(client)

    assert [b['item_name'] for b in data['current']] == [
        'Canon EOS R5', 'MacBook Pro 16"', 'Tripod']
    assert [b['item_name'] for b in data['upcoming']] == ['Audio Recorder', 'Lighting Kit']
    assert [b['item_name'] for b in data['history']] == [
        'Power Drill', 'Microphone', 'DSLR Camera']
    assert all(b['status'] == 'Active' for b in data['current'])
    assert all(b['date'] == b['return_date'] for b in data['history'])


def test_list_unknown_student(client):
    response = client.get('/api/students/nobody/borrowals')
    assert response.status_code == 404
    assert response.get_json()['error'] == 'not_found'


def test_extend_adds_seven_days(client):
    canon = borrowals(client)['current'][0]

    response = client.post(f'/api/students/si2356/borrowals/{canon["id"]}/extend')

    assert response.status_code == 200
    extended = response.get_json()['borrowal']
    assert parse(extended['due_date']) - parse(canon['due_date']) == timedelta(days=7)
    assert extended['renewed_count'] == 1
    assert extended['status'] == 'Active'


def test_extend_reserved_is_conflict(client):
    reserved = borrowals(client)['upcoming'][0]

    response = client.post(f'/api/students/si2356/borrowals/{reserved["id"]}/extend')

    assert response.status_code == 409
    body = response.get_json()
    assert body['error'] == 'state_conflict'
    assert body['current_state'] == 'Reserved'
    assert borrowals(client)['upcoming'][0] == reserved


def test_cancel_reservation_frees_item(client):
    reserved = borrowals(client)['upcoming'][0]

    response = client.post(f'/api/students/si2356/borrowals/{reserved["id"]}/cancel')

    assert response.status_code == 200
    assert reserved['id'] not in [b['id'] for b in borrowals(client)['upcoming']]
    assert find_item(client, 'Audio Recorder')['status'] == 'available'

    again = client.post(f'/api/students/si2356/borrowals/{reserved["id"]}/cancel')
    assert again.status_code == 404


def test_cancel_active_is_conflict(client):
    active = borrowals(client)['current'][0]

    response = client.post(f'/api/students/si2356/borrowals/{active["id"]}/cancel')

    assert response.status_code == 409
    assert response.get_json()['current_state'] == 'Active'
    assert active['id'] in [b['id'] for b in borrowals(client)['current']]


def test_other_students_record_is_hidden(client):
    active = borrowals(client)['current'][0]

    response = client.post(f'/api/students/ls1842/borrowals/{active["id"]}/extend')

    assert response.status_code == 404


def test_reserve_available_item(client):
    drill = find_item(client, 'Power Drill')

    response = client.post('/api/students/ls1842/borrowals',
                           json={'item_id': drill['id'], 'pickup_date': future()})

    assert response.status_code == 201
    borrowal = response.get_json()['borrowal']
    assert borrowal['status'] == 'Reserved'
    assert borrowal['item_name'] == 'Power Drill'
    assert find_item(client, 'Power Drill')['status'] == 'reserved'
    assert [b['id'] for b in borrowals(client, 'ls1842')['upcoming']] == [borrowal['id']]


def test_reserve_unavailable_item_is_conflict(client):
    tripod = find_item(client, 'Tripod')

    response = client.post('/api/students/ls1842/borrowals',
                           json={'item_id': tripod['id'], 'pickup_date': future()})

    assert response.status_code == 409
    assert response.get_json()['current_state'] == 'checked-out'
    assert borrowals(client, 'ls1842')['upcoming'] == []


def test_reserve_rejects_bad_input(client):
    drill = find_item(client, 'Power Drill')

    past = client.post('/api/students/ls1842/borrowals',
                       json={'item_id': drill['id'], 'pickup_date': '2020-01-01'})
    missing = client.post('/api/students/ls1842/borrowals', json={'pickup_date': future()})
    garbled = client.post('/api/students/ls1842/borrowals',
                          json={'item_id': drill['id'], 'pickup_date': 'next tuesday'})

    assert past.status_code == 400
    assert missing.status_code == 400
    assert garbled.status_code == 400
    assert find_item(client, 'Power Drill')['status'] == 'available'


def test_pickup_then_return(client):
    reserved = borrowals(client)['upcoming'][0]

    picked = client.post(f'/api/staff/borrowals/{reserved["id"]}/pickup', json={})
    assert picked.status_code == 200
    active = picked.get_json()['borrowal']
    assert active['status'] == 'Active'
    assert parse(active['due_date']) > datetime.now() + timedelta(days=6)
    assert find_item(client, 'Audio Recorder')['status'] == 'checked-out'

    again = client.post(f'/api/staff/borrowals/{reserved["id"]}/pickup', json={})
    assert again.status_code == 409
    assert again.get_json()['current_state'] == 'Active'

    returned = client.post(f'/api/staff/borrowals/{reserved["id"]}/return',
                           json={'condition': 'fair'})
    assert returned.status_code == 200
    record = returned.get_json()['borrowal']
    assert record['status'] == 'Returned'
    assert record['condition_on_return'] == 'fair'
    assert record['return_date'] is not None
    assert find_item(client, 'Audio Recorder')['status'] == 'available'


def test_return_twice_is_conflict(client):
    active = borrowals(client)['current'][0]

    first = client.post(f'/api/staff/borrowals/{active["id"]}/return', json={})
    second = client.post(f'/api/staff/borrowals/{active["id"]}/return', json={})

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.get_json()['current_state'] == 'Returned'


def test_return_rejects_unknown_condition(client):
    active = borrowals(client)['current'][0]

    response = client.post(f'/api/staff/borrowals/{active["id"]}/return',
                           json={'condition': 'on fire'})

    assert response.status_code == 400
    assert active['id'] in [b['id'] for b in borrowals(client)['current']]


def test_unknown_borrowal(client):
    response = client.post('/api/staff/borrowals/missing/return', json={})
    assert response.status_code == 404


def test_extend_returned_is_conflict(client):
    returned = borrowals(client)['history'][0]

    response = client.post(f'/api/students/si2356/borrowals/{returned["id"]}/extend')

    assert response.status_code == 409
    assert response.get_json()['current_state'] == 'Returned'


def test_reserve_rejects_non_text_item_id(client):
    for item_id in (['abc'], 42, {'id': 'abc'}):
        response = client.post('/api/students/ls1842/borrowals',
                               json={'item_id': item_id, 'pickup_date': future()})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'validation_error'


def test_return_rejects_non_text_condition(client):
    active = borrowals(client)['current'][0]

    response = client.post(f'/api/staff/borrowals/{active["id"]}/return',
                           json={'condition': ['good']})

    assert response.status_code == 400
    assert active['id'] in [b['id'] for b in borrowals(client)['current']]


def test_loan_rules_follow_app_config(tmp_path):
    db_path = tmp_path / 'camp.db'
    app = make_app(db_path, EXTENSION_DAYS=3, BORROW_DURATION_DAYS=14,
                   RETURN_CONDITIONS=('good', 'scratched'))
    client = app.test_client()

    canon = borrowals(client)['current'][0]
    extended = client.post(f'/api/students/si2356/borrowals/{canon["id"]}/extend')
    assert parse(extended.get_json()['borrowal']['due_date']) - parse(canon['due_date']) \
        == timedelta(days=3)

    reserved = borrowals(client)['upcoming'][0]
    picked = client.post(f'/api/staff/borrowals/{reserved["id"]}/pickup', json={})
    assert parse(picked.get_json()['borrowal']['due_date']) > datetime.now() + timedelta(days=13)

    returned = client.post(f'/api/staff/borrowals/{reserved["id"]}/return',
                           json={'condition': 'scratched'})
    assert returned.status_code == 200
    forget_database(str(db_path))


def test_concurrent_reservations_have_one_winner(app, client):
    drill = find_item(client, 'Power Drill')
    students = ['si2356', 'ls1842', 'mt2201', 'ak1016', 'ew3847']
    barrier = threading.Barrier(len(students))
    pickup = future()

    def reserve(net_id):
        worker_client = app.test_client()
        barrier.wait()
        return worker_client.post(f'/api/students/{net_id}/borrowals',
                                  json={'item_id': drill['id'], 'pickup_date': pickup})

    with ThreadPoolExecutor(max_workers=len(students)) as pool:
        responses = list(pool.map(reserve, students))

    codes = sorted(response.status_code for response in responses)
    assert codes == [201] + [409] * (len(students) - 1)
    assert all(r.get_json()['current_state'] == 'reserved'
               for r in responses if r.status_code == 409)
    assert find_item(client, 'Power Drill')['status'] == 'reserved'
    holders = [net_id for net_id in students
               if any(b['item_id'] == drill['id'] for b in borrowals(client, net_id)['upcoming'])]
    assert len(holders) == 1
