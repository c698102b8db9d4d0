"""
Waitlist model for items that are currently out.

Students queue for an unavailable item. Positions count only the entries
still waiting, starting at 1, and close up whenever an entry leaves the
queue. When the item becomes available the first waiting student gets a
time-limited offer ('notified'); while the offer stands, nobody else can
reserve the item.
"""
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from flask import current_app

from errors import NotFoundError, StateConflictError, ValidationError
from models.database import get_db
from models.item import Item
from models.notification import Notification
from models.system_log import SystemLog
from utils.helpers import format_timestamp, now_timestamp

logger = logging.getLogger(__name__)

STATUS_WAITING = 'waiting'
STATUS_NOTIFIED = 'notified'
STATUS_EXPIRED = 'expired'
STATUS_CANCELLED = 'cancelled'
STATUS_FULFILLED = 'fulfilled'

OPEN_STATUSES = (STATUS_WAITING, STATUS_NOTIFIED)


class Waitlist:
    """One student's place in the queue for one item.

    Attributes:
        id: Entry identifier.
        user_id: Student waiting for the item.
        item_id: Item being waited for.
        status: 'waiting', 'notified', 'expired', 'cancelled' or 'fulfilled'.
        position: Place in the queue; 0 once the entry has left it.
        created_at: When the student joined.
        notified_at: When the item was offered to the student.
        expires_at: When an unclaimed offer lapses.
    """

    def __init__(self, id: str, user_id: str, item_id: str, status: str,
                 position: int, created_at: str, notified_at: Optional[str] = None,
                 expires_at: Optional[str] = None, item_name: Optional[str] = None,
                 location: Optional[str] = None) -> None:
        self.id = id
        self.user_id = user_id
        self.item_id = item_id
        self.status = status
        self.position = position
        self.created_at = created_at
        self.notified_at = notified_at
        self.expires_at = expires_at
        self.item_name = item_name
        self.location = location

    @staticmethod
    def get_by_id(entry_id: str) -> Optional['Waitlist']:
        db = get_db()
        row = db.execute('''
            SELECT w.*, i.name AS item_name, i.location AS location
            FROM waitlist w JOIN items i ON w.item_id = i.id
            WHERE w.id = ?
        ''', (entry_id,)).fetchone()
        return Waitlist(**dict(row)) if row else None

    @staticmethod
    def list_for_student(user_id: str) -> List['Waitlist']:
        """Open entries for a student, most recently joined first."""
        db = get_db()
        rows = db.execute('''
            SELECT w.*, i.name AS item_name, i.location AS location
            FROM waitlist w JOIN items i ON w.item_id = i.id
            WHERE w.user_id = ? AND w.status IN (?, ?)
            ORDER BY w.created_at DESC, w.rowid DESC
        ''', (user_id,) + OPEN_STATUSES).fetchall()
        return [Waitlist(**dict(row)) for row in rows]

    @staticmethod
    def count_waiting(item_id: str) -> int:
        db = get_db()
        return db.execute(
            'SELECT COUNT(*) FROM waitlist WHERE item_id = ? AND status = ?',
            (item_id, STATUS_WAITING)
        ).fetchone()[0]

    @staticmethod
    def offer_holder(item_id: str, now: Optional[datetime] = None) -> Optional[str]:
        """User id holding an unexpired offer on the item, if any."""
        now = now or datetime.now()
        db = get_db()
        row = db.execute('''
            SELECT user_id FROM waitlist
            WHERE item_id = ? AND status = ? AND expires_at > ?
        ''', (item_id, STATUS_NOTIFIED, format_timestamp(now))).fetchone()
        return row['user_id'] if row else None

    @staticmethod
    def join(student, item_id) -> 'Waitlist':
        """Put a student at the back of the queue for an item.

        Raises:
            ValidationError: Missing item id, the item is free to reserve,
                or the student is already queued for it.
            NotFoundError: Unknown item.
        """
        if not item_id:
            raise ValidationError('item_id is required')
        if not isinstance(item_id, str):
            raise ValidationError('item_id must be a string')
        item = Item.require(item_id)
        if item.status == 'available' and not Waitlist.offer_holder(item.id):
            raise ValidationError(f'{item.name} is available; reserve it instead')

        db = get_db()
        entry_id = str(uuid.uuid4())
        try:
            # Position is taken in the same statement as the insert
            db.execute('''
                INSERT INTO waitlist (id, user_id, item_id, status, position, created_at)
                SELECT ?, ?, ?, ?, COALESCE(MAX(position), 0) + 1, ?
                FROM waitlist WHERE item_id = ? AND status = ?
            ''', (entry_id, student.id, item.id, STATUS_WAITING, now_timestamp(),
                  item.id, STATUS_WAITING))
            SystemLog.add('Waitlist Joined', f'{student.name} joined the waitlist for "{item.name}"',
                          'info', student.id, commit=False)
            db.commit()
        except sqlite3.IntegrityError:
            db.rollback()
            raise ValidationError(f'Already on the waitlist for {item.name}', item_id=item.id)
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error adding %s to the waitlist for %s', student.net_id, item.id)
            raise
        return Waitlist.get_by_id(entry_id)

    def _close(self, status: str) -> bool:
        """Move an open entry to a closed status inside the caller's transaction.

        Returns:
            False if the entry was no longer open.
        """
        db = get_db()
        cursor = db.execute('''
            UPDATE waitlist SET status = ?, position = 0
            WHERE id = ? AND status = ?
        ''', (status, self.id, self.status))
        if cursor.rowcount == 0:
            return False
        if self.status == STATUS_WAITING:
            db.execute('''
                UPDATE waitlist SET position = position - 1
                WHERE item_id = ? AND status = ? AND position > ?
            ''', (self.item_id, STATUS_WAITING, self.position))
        return True

    @staticmethod
    def leave(user_id: str, entry_id: str) -> str:
        """Take a student off a waitlist; later entries move up one place.

        Giving up a standing offer passes it to the next student in line.
        """
        entry = Waitlist.get_by_id(entry_id)
        if not entry or entry.user_id != user_id:
            raise NotFoundError(f'Waitlist entry {entry_id} not found')
        if entry.status not in OPEN_STATUSES:
            raise StateConflictError(f'Waitlist entry is already {entry.status}',
                                     current_state=entry.status, entry_id=entry_id)

        db = get_db()
        try:
            if not entry._close(STATUS_CANCELLED):
                db.rollback()
                current = Waitlist.get_by_id(entry_id)
                raise StateConflictError(f'Waitlist entry is already {current.status}',
                                         current_state=current.status, entry_id=entry_id)
            SystemLog.add('Waitlist Left', f'Left the waitlist for "{entry.item_name}"',
                          'info', user_id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error removing waitlist entry %s', entry_id)
            raise

        if entry.status == STATUS_NOTIFIED:
            Waitlist.notify_next(entry.item_id)
        return 'Removed from waitlist'

    @staticmethod
    def fulfil(user_id: str, item_id: str) -> None:
        """Close the student's open entry for an item they just reserved.

        Runs inside the reservation's transaction.
        """
        db = get_db()
        row = db.execute('SELECT * FROM waitlist WHERE user_id = ? AND item_id = ? AND status IN (?, ?)',
                         (user_id, item_id) + OPEN_STATUSES).fetchone()
        if row:
            Waitlist(**dict(row))._close(STATUS_FULFILLED)

    @staticmethod
    def notify_next(item_id: str, now: Optional[datetime] = None) -> Optional['Waitlist']:
        """Offer an available item to the first student in its queue.

        Nothing happens if the item is not available, an offer is already
        standing, or nobody is waiting.

        Returns:
            The entry that received the offer, or None.
        """
        now = now or datetime.now()
        item = Item.get_by_id(item_id)
        if not item or item.status != 'available' or Waitlist.offer_holder(item_id, now):
            return None

        db = get_db()
        row = db.execute('''
            SELECT * FROM waitlist WHERE item_id = ? AND status = ?
            ORDER BY position ASC LIMIT 1
        ''', (item_id, STATUS_WAITING)).fetchone()
        if not row:
            return None
        entry = Waitlist(**dict(row))

        hours = current_app.config['WAITLIST_OFFER_HOURS']
        expires_at = format_timestamp(now + timedelta(hours=hours))
        try:
            cursor = db.execute('''
                UPDATE waitlist SET status = ?, position = 0, notified_at = ?, expires_at = ?
                WHERE id = ? AND status = ?
            ''', (STATUS_NOTIFIED, format_timestamp(now), expires_at, entry.id, STATUS_WAITING))
            if cursor.rowcount == 0:
                db.rollback()
                return None
            db.execute('''
                UPDATE waitlist SET position = position - 1
                WHERE item_id = ? AND status = ? AND position > ?
            ''', (item_id, STATUS_WAITING, entry.position))
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error offering item %s to the waitlist', item_id)
            raise

        Notification.create(
            entry.user_id, 'waitlist', 'Item Available from Waitlist',
            f'"{item.name}" is now available. Reserve it before {expires_at} '
            f'or it will be offered to the next student.'
        )
        return Waitlist.get_by_id(entry.id)

    @staticmethod
    def expire_offers(now: Optional[datetime] = None) -> List[str]:
        """Lapse unclaimed offers.

        Returns:
            Ids of the items whose offer expired.
        """
        now = now or datetime.now()
        db = get_db()
        rows = db.execute('''
            SELECT id, item_id FROM waitlist WHERE status = ? AND expires_at <= ?
        ''', (STATUS_NOTIFIED, format_timestamp(now))).fetchall()
        if not rows:
            return []
        try:
            db.executemany(
                'UPDATE waitlist SET status = ? WHERE id = ? AND status = ?',
                [(STATUS_EXPIRED, row['id'], STATUS_NOTIFIED) for row in rows]
            )
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error expiring waitlist offers')
            raise
        return [row['item_id'] for row in rows]

    @staticmethod
    def items_with_queue() -> List[str]:
        """Available items that have students waiting."""
        db = get_db()
        rows = db.execute('''
            SELECT DISTINCT w.item_id FROM waitlist w
            JOIN items i ON w.item_id = i.id
            WHERE w.status = ? AND i.status = 'available' AND i.is_active = 1
        ''', (STATUS_WAITING,)).fetchall()
        return [row['item_id'] for row in rows]

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'item_id': self.item_id,
            'item_name': self.item_name,
            'location': self.location,
            'status': self.status,
            'position': self.position,
            'created_at': self.created_at,
            'notified_at': self.notified_at,
            'expires_at': self.expires_at,
        }
