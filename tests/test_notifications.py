def fine_and_inbox(client, net_id='si2356'):
    client.post('/api/staff/fines', json={'net_id': net_id, 'amount': 3, 'reason': 'Late'})
    client.post('/api/staff/fines', json={'net_id': net_id, 'amount': 4, 'reason': 'Damage'})
    return client.get(f'/api/students/{net_id}/notifications').get_json()


def test_inbox_newest_first_with_unread_count(client):
    inbox = fine_and_inbox(client)

    assert inbox['unread_count'] == 2
    assert len(inbox['notifications']) == 2
    dates = [n['date'] for n in inbox['notifications']]
    assert dates == sorted(dates, reverse=True)
    assert all(n['channels'] == ['app'] for n in inbox['notifications'])


def test_mark_one_read(client):
    inbox = fine_and_inbox(client)
    target = inbox['notifications'][0]['id']

    response = client.post(f'/api/students/si2356/notifications/{target}/read')

    assert response.status_code == 200
    after = client.get('/api/students/si2356/notifications').get_json()
    assert after['unread_count'] == 1
    assert {n['id']: n['is_read'] for n in after['notifications']}[target] is True


def test_mark_someone_elses_notification(client):
    target = fine_and_inbox(client)['notifications'][0]['id']

    response = client.post(f'/api/students/ls1842/notifications/{target}/read')

    assert response.status_code == 404


def test_mark_all_read(client):
    fine_and_inbox(client)

    response = client.post('/api/students/si2356/notifications/read-all')

    assert response.get_json()['updated'] == 2
    assert client.get('/api/students/si2356/notifications').get_json()['unread_count'] == 0
