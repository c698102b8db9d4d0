"""
Scheduled background tasks for the borrowing service.

Tasks include:
- Sending due date reminders at each student's preferred lead time
- Sending overdue reminders (at most one per borrowal per day)
- Offering returned items to the waitlist (hourly)
- Purging old activity log entries (daily)
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask

from models.borrow import Borrow
from models.notification import Notification
from models.preferences import NotificationPreferences
from models.system_log import SystemLog
from models.waitlist import Waitlist
from utils.helpers import parse_timestamp

logger = logging.getLogger(__name__)

# Initialize scheduler
scheduler = BackgroundScheduler()


def send_due_reminders(app: Flask, now: Optional[datetime] = None) -> int:
    """Scheduled task: Remind students that an item is coming due.

    A reminder goes out once the due date is within the student's chosen
    lead time (1 hour to 1 week), over the channels they have enabled.
    Students with every channel switched off are skipped.

    Returns:
        Number of reminders sent.
    """
    now = now or datetime.now()
    sent = 0
    with app.app_context():
        try:
            for borrow in Borrow.get_active():
                due = parse_timestamp(borrow.due_date, 'due_date')
                if due <= now:
                    continue
                prefs = NotificationPreferences.get(borrow.user_id)
                channels = prefs.enabled_channels
                window_start = due - timedelta(minutes=prefs.reminder_minutes)
                if not channels or now < window_start:
                    continue
                # One reminder per due date; an extension opens a new window
                if Notification.find_for_borrow(borrow.id, 'reminder', since=window_start):
                    continue

                Notification.create(
                    borrow.user_id, 'reminder', 'Item due soon',
                    f'"{borrow.item_name}" is due {borrow.due_date}. '
                    f'Please return it to {borrow.location} or extend it.',
                    borrow_id=borrow.id, channels=channels
                )
                sent += 1

            if sent:
                logger.info('Sent %d due date reminder(s)', sent)
                SystemLog.add('Scheduled Task: Due Date Reminders',
                              f'Successfully sent {sent} reminder(s)', 'system')
        except Exception:
            logger.exception('Error in send_due_reminders')
    return sent


def send_overdue_notifications(app: Flask, now: Optional[datetime] = None) -> int:
    """Scheduled task: Send overdue reminders for every overdue borrowal.

    Returns:
        Number of new reminders; borrowals already reminded today are skipped.
    """
    now = now or datetime.now()
    sent = 0
    with app.app_context():
        try:
            for borrow in Borrow.get_overdue_borrows(now):
                _, created = borrow.send_reminder(now)
                if created:
                    sent += 1

            if sent:
                logger.info('Sent %d overdue notification(s)', sent)
                SystemLog.add('Scheduled Task: Overdue Notifications',
                              f'Successfully sent {sent} notification(s)', 'system')
        except Exception:
            logger.exception('Error in send_overdue_notifications')
    return sent


def check_waitlist(app: Flask, now: Optional[datetime] = None) -> int:
    """Scheduled task: Lapse unclaimed waitlist offers and pass items on.

    Returns:
        Number of new offers made.
    """
    now = now or datetime.now()
    offered = 0
    with app.app_context():
        try:
            expired = Waitlist.expire_offers(now)
            for item_id in set(expired) | set(Waitlist.items_with_queue()):
                if Waitlist.notify_next(item_id, now):
                    offered += 1

            if expired or offered:
                logger.info('Expired %d waitlist offer(s), made %d new offer(s)',
                            len(expired), offered)
                SystemLog.add('Scheduled Task: Waitlist',
                              f'Expired {len(expired)} offer(s), notified {offered} student(s)',
                              'system')
        except Exception:
            logger.exception('Error in check_waitlist')
    return offered


def purge_old_logs(app: Flask) -> int:
    """Scheduled task: Delete activity log entries past the retention period."""
    deleted = 0
    with app.app_context():
        try:
            deleted = SystemLog.clear_old_logs(app.config['LOG_RETENTION_DAYS'])
            if deleted:
                logger.info('Purged %d old log entries', deleted)
        except Exception:
            logger.exception('Error in purge_old_logs')
    return deleted


def start_scheduler(app: Flask) -> None:
    """Register the jobs for this app and start the background scheduler."""
    scheduler.add_job(
        func=send_due_reminders,
        args=[app],
        trigger='interval',
        minutes=app.config['REMINDER_CHECK_MINUTES'],
        id='send_due_reminders',
        name='Send due date reminders',
        replace_existing=True
    )
    scheduler.add_job(
        func=send_overdue_notifications,
        args=[app],
        trigger='cron',
        hour=10,
        minute=0,
        id='send_overdue_notifications',
        name='Send overdue notifications',
        replace_existing=True
    )
    scheduler.add_job(
        func=check_waitlist,
        args=[app],
        trigger='interval',
        hours=1,
        id='check_waitlist',
        name='Check waitlist offers',
        replace_existing=True
    )
    scheduler.add_job(
        func=purge_old_logs,
        args=[app],
        trigger='cron',
        hour=3,
        minute=0,
        id='purge_old_logs',
        name='Purge old activity logs',
        replace_existing=True
    )

    if not scheduler.running:
        scheduler.start()
        logger.info('Scheduled tasks started successfully')


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info('Scheduled tasks shut down')
