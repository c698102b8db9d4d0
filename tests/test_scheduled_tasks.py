from conftest import make_app
from models.database import forget_database, get_db
from scheduled_tasks import (purge_old_logs, scheduler, send_due_reminders,
                             send_overdue_notifications, shutdown_scheduler,
                             start_scheduler)

PREFS = '/api/students/si2356/preferences'


def reminders(client, net_id='si2356'):
    inbox = client.get(f'/api/students/{net_id}/notifications').get_json()['notifications']
    return [n for n in inbox if n['type'] == 'reminder']


def test_nothing_due_inside_default_window(app, client):
    # Sarah's loans are due in 2, 3 and 5 days; the default lead is 24 hours
    assert send_due_reminders(app) == 0
    assert reminders(client) == []


def test_reminders_follow_preferred_lead_time(app, client):
    client.put(PREFS, json={'reminder_timing': '1week', 'sms_enabled': True})

    assert send_due_reminders(app) == 3

    sent = reminders(client)
    assert len(sent) == 3
    assert all(n['channels'] == ['email', 'sms', 'app'] for n in sent)
    # Overdue loans get overdue notices instead
    assert reminders(client, 'mt2201') == []


def test_reminders_are_not_repeated(app, client):
    client.put(PREFS, json={'reminder_timing': '1week'})
    send_due_reminders(app)

    assert send_due_reminders(app) == 0
    assert len(reminders(client)) == 3


def test_extension_moves_reminder_window(app, client):
    client.put(PREFS, json={'reminder_timing': '1week'})
    send_due_reminders(app)
    canon = client.get('/api/students/si2356/borrowals').get_json()['current'][0]

    client.post(f'/api/students/si2356/borrowals/{canon["id"]}/extend')

    # Now due in 9 days, outside the one week window
    assert send_due_reminders(app) == 0


def test_no_reminder_with_every_channel_off(app, client):
    client.put(PREFS, json={'reminder_timing': '1week', 'email_enabled': False,
                            'sms_enabled': False, 'app_enabled': False})

    assert send_due_reminders(app) == 0


def test_overdue_notifications_once_per_day(app, client):
    assert send_overdue_notifications(app) == 1
    assert send_overdue_notifications(app) == 0

    inbox = client.get('/api/students/mt2201/notifications').get_json()['notifications']
    assert [n['type'] for n in inbox] == ['overdue']


def test_purge_old_logs(app):
    with app.app_context():
        db = get_db()
        db.execute('''
            INSERT INTO system_logs (id, timestamp, action, details, log_type)
            VALUES ('old', '2000-01-01 00:00:00', 'Ancient', '', 'info')
        ''')
        db.commit()

    assert purge_old_logs(app) == 1

    with app.app_context():
        assert get_db().execute('SELECT COUNT(*) FROM system_logs').fetchone()[0] == 0


def test_jobs_log_failures_instead_of_raising(tmp_path, caplog):
    blocker = tmp_path / 'blocker'
    blocker.write_text('')
    db_path = blocker / 'camp.db'
    app = make_app(db_path)

    assert send_due_reminders(app) == 0
    assert send_overdue_notifications(app) == 0
    assert 'Error in send_due_reminders' in caplog.text
    forget_database(str(db_path))


def test_scheduler_registers_jobs(app):
    start_scheduler(app)
    try:
        assert scheduler.running
        assert {job.id for job in scheduler.get_jobs()} == {
            'send_due_reminders', 'send_overdue_notifications', 'check_waitlist',
            'purge_old_logs'}
    finally:
        shutdown_scheduler()
    assert not scheduler.running
