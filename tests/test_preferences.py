import sqlite3

import pytest

from conftest import make_app
from models.database import forget_database
from models.system_log import SystemLog

URL = '/api/students/si2356/preferences'


def current(client, url=URL):
    response = client.get(url)
    assert response.status_code == 200
    return response.get_json()['preferences']


def test_defaults(client):
    assert current(client) == {
        'email_enabled': True,
        'sms_enabled': False,
        'app_enabled': True,
        'reminder_timing': '24hours',
    }


def test_save_round_trip(client):
    prefs = {
        'email_enabled': False,
        'sms_enabled': True,
        'app_enabled': True,
        'reminder_timing': '1week',
    }

    response = client.put(URL, json=prefs)

    assert response.status_code == 200
    assert response.get_json()['preferences'] == prefs
    assert current(client) == prefs


def test_partial_save_keeps_other_fields(client):
    client.put(URL, json={'reminder_timing': '48hours'})
    client.put(URL, json={'sms_enabled': True})

    assert current(client) == {
        'email_enabled': True,
        'sms_enabled': True,
        'app_enabled': True,
        'reminder_timing': '48hours',
    }


@pytest.mark.parametrize('payload', [
    {'sms_enabled': True, 'reminder_timing': '3days'},
    {'sms_enabled': True, 'email_enabled': 'yes'},
    {'sms_enabled': True, 'app_enabled': 1},
    {'sms_enabled': True, 'pager_enabled': True},
    {'sms_enabled': True, 'reminder_timing': ['1hour']},
    {'sms_enabled': True, 'reminder_timing': 60},
])
def test_invalid_save_changes_nothing(client, payload):
    client.put(URL, json={'reminder_timing': '1hour'})
    before = current(client)

    response = client.put(URL, json=payload)

    assert response.status_code == 400
    assert response.get_json()['error'] == 'validation_error'
    assert current(client) == before


def test_save_requires_json_object(client):
    response = client.put(URL, data='[1, 2]', content_type='application/json')
    assert response.status_code == 400

    response = client.put(URL, data='{not json', content_type='application/json')
    assert response.status_code == 400


def test_toggle_channel(client):
    on = client.post(f'{URL}/toggle/sms').get_json()['preferences']
    off = client.post(f'{URL}/toggle/sms').get_json()['preferences']

    assert on['sms_enabled'] is True
    assert off['sms_enabled'] is False
    assert off['email_enabled'] is True
    assert off['reminder_timing'] == '24hours'


def test_toggle_keeps_saved_timing(client):
    client.put(URL, json={'reminder_timing': '1hour'})

    prefs = client.post(f'{URL}/toggle/email').get_json()['preferences']

    assert prefs['email_enabled'] is False
    assert prefs['reminder_timing'] == '1hour'


def test_toggle_unknown_channel(client):
    assert client.post(f'{URL}/toggle/fax').status_code == 400


def test_preferences_are_per_student(client):
    client.put(URL, json={'app_enabled': False})

    assert current(client, '/api/students/ls1842/preferences')['app_enabled'] is True
    assert current(client)['app_enabled'] is False


def test_failed_save_is_rolled_back(client, monkeypatch):
    client.put(URL, json={'reminder_timing': '1hour'})
    before = current(client)

    def broken_log(*args, **kwargs):
        raise sqlite3.OperationalError('disk I/O error')

    monkeypatch.setattr(SystemLog, 'add', staticmethod(broken_log))
    response = client.put(URL, json={'sms_enabled': True, 'reminder_timing': '1week'})

    assert response.status_code == 500
    assert response.get_json()['error'] == 'internal_error'
    monkeypatch.undo()
    assert current(client) == before


def test_reminder_timings_follow_app_config(tmp_path):
    app = make_app(tmp_path / 'camp.db',
                   REMINDER_TIMINGS={'1hour': 60, '24hours': 24 * 60, '2hours': 120})
    client = app.test_client()

    accepted = client.put(URL, json={'reminder_timing': '2hours'})
    rejected = client.put(URL, json={'reminder_timing': '1week'})

    assert accepted.status_code == 200
    assert rejected.status_code == 400
    forget_database(str(tmp_path / 'camp.db'))
