import logging

from conftest import make_app
from models.database import forget_database


def unreachable_app(tmp_path):
    # A regular file where the database directory should be
    blocker = tmp_path / 'blocker'
    blocker.write_text('')
    db_path = blocker / 'camp.db'
    return make_app(db_path), blocker, db_path


def test_startup_survives_unreachable_database(tmp_path, caplog):
    with caplog.at_level(logging.ERROR):
        app, _, db_path = unreachable_app(tmp_path)

    assert 'Server will continue but database operations will fail' in caplog.text
    client = app.test_client()

    health = client.get('/api/health')
    assert health.status_code == 503
    assert health.get_json()['database'] == 'unavailable'

    response = client.get('/api/students/si2356/borrowals')
    assert response.status_code == 503
    assert response.get_json()['error'] == 'database_unavailable'
    forget_database(str(db_path))


def test_reconnects_once_database_is_reachable(tmp_path):
    app, blocker, db_path = unreachable_app(tmp_path)
    client = app.test_client()
    assert client.get('/api/staff/overdue').status_code == 503

    blocker.unlink()

    response = client.get('/api/staff/overdue')
    assert response.status_code == 200
    assert response.get_json()['count'] == 1
    assert client.get('/api/health').status_code == 200
    forget_database(str(db_path))


def test_demo_data_is_optional(tmp_path):
    db_path = tmp_path / 'empty.db'
    app = make_app(db_path, SEED_DEMO_DATA=False)

    response = app.test_client().get('/api/items')

    assert response.status_code == 200
    assert response.get_json()['items'] == []
    forget_database(str(db_path))


def test_seed_runs_once(tmp_path):
    db_path = tmp_path / 'camp.db'
    make_app(db_path)
    forget_database(str(db_path))

    app = make_app(db_path)

    items = app.test_client().get('/api/items').get_json()['items']
    assert len(items) == 9
    forget_database(str(db_path))
