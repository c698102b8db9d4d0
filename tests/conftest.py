from datetime import datetime

import pytest

from app import create_app
from models.database import forget_database
from utils.helpers import TIMESTAMP_FORMAT


def make_app(db_path, **overrides):
    config = {
        'TESTING': True,
        'DATABASE_PATH': str(db_path),
        'SEED_DEMO_DATA': True,
        'SCHEDULER_ENABLED': False,
        'LOG_LEVEL': 'WARNING',
    }
    config.update(overrides)
    return create_app(config)


@pytest.fixture
def app(tmp_path):
    db_path = tmp_path / 'camp.db'
    app = make_app(db_path)
    yield app
    forget_database(str(db_path))


@pytest.fixture
def client(app):
    return app.test_client()


def parse(value):
    return datetime.strptime(value, TIMESTAMP_FORMAT)


def borrowals(client, net_id='si2356'):
    response = client.get(f'/api/students/{net_id}/borrowals')
    assert response.status_code == 200
    return response.get_json()


def find_item(client, name):
    items = client.get('/api/items').get_json()['items']
    return next(item for item in items if item['name'] == name)


def lookup(client, query='si2356'):
    response = client.get('/api/staff/students/search', query_string={'q': query})
    assert response.status_code == 200
    return response.get_json()['student']
