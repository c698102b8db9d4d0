"""Notification model for student notifications.

This module handles creating, retrieving, and managing the in-app
notification inbox. New notifications are pushed to connected Socket.IO
clients subscribed to the student's room.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional

from extensions import socketio, user_room
from models.database import get_db
from utils.helpers import format_timestamp, now_timestamp

logger = logging.getLogger(__name__)


class Notification:
    """Represents a student notification.

    Attributes:
        id: Unique notification identifier.
        user_id: ID of the user receiving the notification.
        type: Notification type ('reminder', 'overdue', 'fine', 'general').
        title: Notification title.
        message: Notification message content.
        borrow_id: Related borrow record, if any.
        fine_id: Related fine, if any.
        channels: Delivery channels enabled when it was created.
        date: When the notification was created.
        is_read: Whether the notification has been read.
    """

    def __init__(self, id: str, user_id: str, type: str, title: str,
                 message: str, date: str, is_read: int,
                 borrow_id: Optional[str] = None, fine_id: Optional[str] = None,
                 channels: str = 'app') -> None:
        self.id = id
        self.user_id = user_id
        self.type = type
        self.title = title
        self.message = message
        self.borrow_id = borrow_id
        self.fine_id = fine_id
        self.channels = [c for c in (channels or '').split(',') if c]
        self.date = date
        self.is_read = bool(is_read)

    @staticmethod
    def create(user_id: str, notification_type: str, title: str, message: str,
               borrow_id: Optional[str] = None, fine_id: Optional[str] = None,
               channels: Optional[List[str]] = None) -> 'Notification':
        """Create a notification and push it to the user's room."""
        db = get_db()
        notification_id = str(uuid.uuid4())
        channel_text = ','.join(channels) if channels else 'app'

        db.execute('''
            INSERT INTO notifications (id, user_id, type, title, message,
                                       borrow_id, fine_id, channels, date, is_read)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
        ''', (notification_id, user_id, notification_type, title, message,
              borrow_id, fine_id, channel_text, now_timestamp()))
        db.commit()

        notification = Notification.get_by_id(notification_id)
        notification.push()
        return notification

    def push(self) -> None:
        """Emit this notification to subscribed Socket.IO clients."""
        if socketio.server is None:
            return
        try:
            socketio.emit('notification', self.to_dict(), to=user_room(self.user_id))
        except Exception:
            # The inbox row is already committed
            logger.exception('Failed to push notification %s', self.id)

    @staticmethod
    def get_by_id(notification_id: str) -> Optional['Notification']:
        db = get_db()
        row = db.execute(
            'SELECT * FROM notifications WHERE id = ?',
            (notification_id,)
        ).fetchone()
        if row:
            return Notification(**dict(row))
        return None

    @staticmethod
    def find_for_borrow(borrow_id: str, notification_type: str,
                        since: Optional[datetime] = None) -> Optional['Notification']:
        """Latest notification of a type for a borrow record, optionally since a time."""
        db = get_db()
        if since is None:
            row = db.execute('''
                SELECT * FROM notifications
                WHERE borrow_id = ? AND type = ?
                ORDER BY date DESC LIMIT 1
            ''', (borrow_id, notification_type)).fetchone()
        else:
            row = db.execute('''
                SELECT * FROM notifications
                WHERE borrow_id = ? AND type = ? AND date >= ?
                ORDER BY date DESC LIMIT 1
            ''', (borrow_id, notification_type, format_timestamp(since))).fetchone()
        return Notification(**dict(row)) if row else None

    @staticmethod
    def get_by_user(user_id: str, limit: int = 50) -> List['Notification']:
        """Get notifications for a user, newest first."""
        db = get_db()
        rows = db.execute('''
            SELECT * FROM notifications
            WHERE user_id = ?
            ORDER BY date DESC
            LIMIT ?
        ''', (user_id, limit)).fetchall()

        return [Notification(**dict(row)) for row in rows]

    @staticmethod
    def get_unread_count(user_id: str) -> int:
        db = get_db()
        row = db.execute('''
            SELECT COUNT(*) as count FROM notifications
            WHERE user_id = ? AND is_read = 0
        ''', (user_id,)).fetchone()
        return row['count']

    @staticmethod
    def mark_as_read(user_id: str, notification_id: str) -> bool:
        """Mark one of the user's notifications as read.

        Returns:
            False if the notification does not belong to the user.
        """
        db = get_db()
        cursor = db.execute(
            'UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?',
            (notification_id, user_id)
        )
        db.commit()
        return cursor.rowcount > 0

    @staticmethod
    def mark_all_as_read(user_id: str) -> int:
        db = get_db()
        cursor = db.execute(
            'UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0',
            (user_id,)
        )
        db.commit()
        return cursor.rowcount

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'borrow_id': self.borrow_id,
            'fine_id': self.fine_id,
            'channels': self.channels,
            'date': self.date,
            'is_read': self.is_read
        }
