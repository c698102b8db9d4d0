from datetime import datetime, timedelta

import pytest

from conftest import borrowals, find_item
from scheduled_tasks import check_waitlist


def future(days=2):
    return (datetime.now() + timedelta(days=days)).strftime('%Y-%m-%dT%H:%M')


def join(client, net_id, item_id):
    return client.post(f'/api/students/{net_id}/waitlist', json={'item_id': item_id})


def waitlist(client, net_id):
    response = client.get(f'/api/students/{net_id}/waitlist')
    assert response.status_code == 200
    return response.get_json()['waitlist']


def return_tripod(client):
    tripod = next(b for b in borrowals(client)['current'] if b['item_name'] == 'Tripod')
    response = client.post(f'/api/staff/borrowals/{tripod["id"]}/return', json={})
    assert response.status_code == 200


@pytest.fixture
def tripod(client):
    item = find_item(client, 'Tripod')
    assert join(client, 'ls1842', item['id']).status_code == 201
    assert join(client, 'mt2201', item['id']).status_code == 201
    return item


def test_join_takes_next_position(client):
    tripod = find_item(client, 'Tripod')

    first = join(client, 'ls1842', tripod['id'])
    second = join(client, 'mt2201', tripod['id'])

    assert first.status_code == 201
    assert first.get_json()['entry']['position'] == 1
    assert second.get_json()['entry']['position'] == 2
    entries = waitlist(client, 'ls1842')
    assert [(e['item_name'], e['status']) for e in entries] == [('Tripod', 'waiting')]
    detail = client.get(f'/api/items/{tripod["id"]}').get_json()
    assert detail['waitlist_length'] == 2


def test_join_twice_is_rejected(client, tripod):
    response = join(client, 'ls1842', tripod['id'])

    assert response.status_code == 400
    assert len(waitlist(client, 'ls1842')) == 1


def test_join_available_item_is_rejected(client):
    drill = find_item(client, 'Power Drill')

    response = join(client, 'ls1842', drill['id'])

    assert response.status_code == 400
    assert waitlist(client, 'ls1842') == []


def test_join_validates_item(client):
    assert join(client, 'ls1842', 'missing').status_code == 404
    assert join(client, 'ls1842', ['missing']).status_code == 400
    assert client.post('/api/students/ls1842/waitlist', json={}).status_code == 400


def test_leave_moves_queue_up(client, tripod):
    entry = waitlist(client, 'ls1842')[0]

    response = client.delete(f'/api/students/ls1842/waitlist/{entry["id"]}')

    assert response.status_code == 200
    assert waitlist(client, 'ls1842') == []
    assert waitlist(client, 'mt2201')[0]['position'] == 1

    again = client.delete(f'/api/students/ls1842/waitlist/{entry["id"]}')
    assert again.status_code == 409
    assert again.get_json()['current_state'] == 'cancelled'


def test_cannot_leave_someone_elses_entry(client, tripod):
    entry = waitlist(client, 'ls1842')[0]

    response = client.delete(f'/api/students/mt2201/waitlist/{entry["id"]}')

    assert response.status_code == 404
    assert len(waitlist(client, 'ls1842')) == 1


def test_return_offers_item_to_first_in_line(client, tripod):
    return_tripod(client)

    offer = waitlist(client, 'ls1842')[0]
    assert offer['status'] == 'notified'
    assert offer['expires_at'] is not None
    assert waitlist(client, 'mt2201')[0]['position'] == 1
    inbox = client.get('/api/students/ls1842/notifications').get_json()['notifications']
    assert [n['title'] for n in inbox if n['type'] == 'waitlist'] == ['Item Available from Waitlist']


def test_offer_holds_item_for_that_student(client, tripod):
    return_tripod(client)

    other = client.post('/api/students/ak1016/borrowals',
                        json={'item_id': tripod['id'], 'pickup_date': future()})
    holder = client.post('/api/students/ls1842/borrowals',
                         json={'item_id': tripod['id'], 'pickup_date': future()})

    assert other.status_code == 409
    assert other.get_json()['current_state'] == 'held'
    assert holder.status_code == 201
    assert waitlist(client, 'ls1842') == []
    assert waitlist(client, 'mt2201')[0]['status'] == 'waiting'


def test_declined_offer_passes_to_next(client, tripod):
    return_tripod(client)
    offer = waitlist(client, 'ls1842')[0]

    client.delete(f'/api/students/ls1842/waitlist/{offer["id"]}')

    assert waitlist(client, 'mt2201')[0]['status'] == 'notified'


def test_unclaimed_offer_expires(app, client, tripod):
    return_tripod(client)

    offered = check_waitlist(app, now=datetime.now() + timedelta(hours=25))

    assert offered == 1
    assert waitlist(client, 'ls1842') == []
    assert waitlist(client, 'mt2201')[0]['status'] == 'notified'


def test_offer_still_standing_is_kept(app, client, tripod):
    return_tripod(client)

    assert check_waitlist(app) == 0
    assert waitlist(client, 'ls1842')[0]['status'] == 'notified'


def test_removing_item_closes_its_waitlist(client, tripod):
    return_tripod(client)

    response = client.delete(f'/api/staff/items/{tripod["id"]}')

    assert response.status_code == 200
    assert waitlist(client, 'ls1842') == []
    assert waitlist(client, 'mt2201') == []
