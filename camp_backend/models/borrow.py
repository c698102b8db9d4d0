"""Borrow record model with the borrowing lifecycle and overdue detection.

A record moves Reserved -> Active -> Returned. A Reserved record may also be
cancelled, which deletes it. Each transition is one UPDATE/DELETE guarded on
the expected status, so a concurrent request that loses the race sees a
StateConflictError and the row is left as the winner wrote it.
"""
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app

from errors import NotFoundError, StateConflictError, ValidationError
from models.database import get_db
from models.item import Item
from models.notification import Notification
from models.system_log import SystemLog
from models.user import User
from models.waitlist import Waitlist
from utils.helpers import format_timestamp, now_timestamp, optional_text, parse_timestamp

logger = logging.getLogger(__name__)

STATUS_RESERVED = 'Reserved'
STATUS_ACTIVE = 'Active'
STATUS_RETURNED = 'Returned'

_JOINED_SELECT = '''
    SELECT b.*, i.name AS item_name, i.location AS location
    FROM borrows b
    JOIN items i ON b.item_id = i.id
'''


class Borrow:
    def __init__(self, id, user_id, item_id, status, created_at,
                 pickup_date=None, due_date=None, return_date=None,
                 renewed_count=0, condition_on_return=None,
                 item_name=None, location=None):
        self.id = id
        self.user_id = user_id
        self.item_id = item_id
        self.status = status
        self.pickup_date = pickup_date
        self.due_date = due_date
        self.return_date = return_date
        self.renewed_count = int(renewed_count or 0)
        self.condition_on_return = condition_on_return
        self.created_at = created_at
        self.item_name = item_name
        self.location = location

    # ---------- Convenience properties ----------
    @property
    def is_reserved(self) -> bool:
        return self.status == STATUS_RESERVED

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def display_date(self) -> Optional[str]:
        """The date that matters for the record's tab: pickup, due or return."""
        if self.is_reserved:
            return self.pickup_date
        if self.is_active:
            return self.due_date
        return self.return_date

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if not self.is_active or not self.due_date:
            return False
        now = now or datetime.now()
        return parse_timestamp(self.due_date) < now

    def get_overdue_days(self, now: Optional[datetime] = None) -> int:
        """Whole days past due, at least 1 once overdue."""
        now = now or datetime.now()
        if not self.is_overdue(now):
            return 0
        elapsed = now - parse_timestamp(self.due_date)
        return max(1, elapsed.days)

    # ---------- Queries ----------
    @staticmethod
    def get_by_id(borrow_id: str) -> Optional['Borrow']:
        db = get_db()
        row = db.execute(_JOINED_SELECT + ' WHERE b.id = ?', (borrow_id,)).fetchone()
        if row:
            return Borrow(**dict(row))
        return None

    @staticmethod
    def require(borrow_id: str) -> 'Borrow':
        borrow = Borrow.get_by_id(borrow_id)
        if not borrow:
            raise NotFoundError(f'Borrow record {borrow_id} not found')
        return borrow

    @staticmethod
    def get_user_borrows(user_id: str, status: str, order_by: str) -> List['Borrow']:
        db = get_db()
        rows = db.execute(
            _JOINED_SELECT + f' WHERE b.user_id = ? AND b.status = ? ORDER BY b.{order_by} ASC',
            (user_id, status)
        ).fetchall()
        return [Borrow(**dict(row)) for row in rows]

    @staticmethod
    def list_for_student(net_id: str) -> Dict[str, List['Borrow']]:
        """Current, upcoming and history lists for a student, each by date ascending."""
        student = User.require_student(net_id)
        return {
            'current': Borrow.get_user_borrows(student.id, STATUS_ACTIVE, 'due_date'),
            'upcoming': Borrow.get_user_borrows(student.id, STATUS_RESERVED, 'pickup_date'),
            'history': Borrow.get_user_borrows(student.id, STATUS_RETURNED, 'return_date'),
        }

    @staticmethod
    def get_active() -> List['Borrow']:
        db = get_db()
        rows = db.execute(
            _JOINED_SELECT + ' WHERE b.status = ? ORDER BY b.due_date ASC',
            (STATUS_ACTIVE,)
        ).fetchall()
        return [Borrow(**dict(row)) for row in rows]

    @staticmethod
    def get_overdue_borrows(now: Optional[datetime] = None) -> List['Borrow']:
        """Active records whose due date is before now, oldest due first."""
        now = now or datetime.now()
        db = get_db()
        rows = db.execute(
            _JOINED_SELECT + ' WHERE b.status = ? AND b.due_date < ? ORDER BY b.due_date ASC',
            (STATUS_ACTIVE, format_timestamp(now))
        ).fetchall()
        return [Borrow(**dict(row)) for row in rows]

    @staticmethod
    def get_overdue_entries(now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Overdue view for staff: one entry per overdue record."""
        now = now or datetime.now()
        entries = []
        for borrow in Borrow.get_overdue_borrows(now):
            student = User.get_by_id(borrow.user_id)
            entries.append({
                'id': borrow.id,
                'item_name': borrow.item_name,
                'days_overdue': borrow.get_overdue_days(now),
                'student_label': student.label if student else 'Unknown',
                'net_id': student.net_id if student else None,
                'due_date': borrow.due_date,
            })
        return entries

    @staticmethod
    def get_stats(now: Optional[datetime] = None) -> Dict[str, int]:
        """Counts for the staff dashboard."""
        db = get_db()
        counts = dict(db.execute(
            'SELECT status, COUNT(*) FROM borrows GROUP BY status'
        ).fetchall())
        return {
            'reserved': counts.get(STATUS_RESERVED, 0),
            'active': counts.get(STATUS_ACTIVE, 0),
            'returned': counts.get(STATUS_RETURNED, 0),
            'overdue': len(Borrow.get_overdue_borrows(now)),
        }

    # ==================== CORE LOGIC ====================

    def _conflict(self, action: str, expected: str) -> StateConflictError:
        current = Borrow.get_by_id(self.id)
        status = current.status if current else 'deleted'
        return StateConflictError(
            f'Cannot {action} a {status} borrowal; it must be {expected}',
            current_state=status,
            borrow_id=self.id
        )

    @staticmethod
    def create(net_id: str, item_id: Optional[str],
               pickup_date: Any) -> Tuple['Borrow', str]:
        """Reserve an item for a student.

        Raises:
            ValidationError: Missing item or a bad or past pickup date.
            NotFoundError: Unknown student or item.
            StateConflictError: The item is not available.
        """
        if not item_id:
            raise ValidationError('item_id is required')
        if not isinstance(item_id, str):
            raise ValidationError('item_id must be a string')
        pickup = parse_timestamp(pickup_date, 'pickup_date')
        if pickup < datetime.now() - timedelta(minutes=1):
            raise ValidationError('pickup_date cannot be in the past')

        student = User.require_student(net_id)
        item = Item.require(item_id)
        holder = Waitlist.offer_holder(item.id)
        if holder and holder != student.id:
            raise StateConflictError(
                f'{item.name} is being held for a student on the waitlist',
                current_state='held',
                item_id=item_id
            )

        db = get_db()
        borrow_id = str(uuid.uuid4())
        try:
            if not item.set_status('reserved', expected='available'):
                db.rollback()
                current = Item.require(item_id)
                raise StateConflictError(
                    f'{item.name} is currently {current.status}',
                    current_state=current.status,
                    item_id=item_id
                )
            db.execute('''
                INSERT INTO borrows (id, user_id, item_id, status, pickup_date,
                                     renewed_count, created_at)
                VALUES (?, ?, ?, ?, ?, 0, ?)
            ''', (borrow_id, student.id, item.id, STATUS_RESERVED,
                  format_timestamp(pickup), now_timestamp()))
            Waitlist.fulfil(student.id, item.id)
            SystemLog.add('Reservation Created',
                          f'{student.name} reserved "{item.name}" for pickup {format_timestamp(pickup)}',
                          'info', student.id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error reserving item %s', item_id)
            raise

        return Borrow.get_by_id(borrow_id), f'{item.name} reserved for pickup on {format_timestamp(pickup)}'

    def pickup(self, due_date: Any = None) -> Tuple['Borrow', str]:
        """Hand a reserved item to the student (Reserved -> Active)."""
        if due_date:
            due = parse_timestamp(due_date, 'due_date')
            if due <= datetime.now():
                raise ValidationError('due_date must be in the future')
        else:
            due = datetime.now() + timedelta(days=current_app.config['BORROW_DURATION_DAYS'])

        db = get_db()
        try:
            cursor = db.execute('''
                UPDATE borrows SET status = ?, due_date = ?
                WHERE id = ? AND status = ?
            ''', (STATUS_ACTIVE, format_timestamp(due), self.id, STATUS_RESERVED))
            if cursor.rowcount == 0:
                db.rollback()
                raise self._conflict('pick up', STATUS_RESERVED)
            Item(self.item_id).set_status('checked-out')
            SystemLog.add('Item Picked Up',
                          f'"{self.item_name}" checked out, due {format_timestamp(due)}',
                          'info', self.user_id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error checking out borrow %s', self.id)
            raise

        return Borrow.get_by_id(self.id), f'Checked out. Due {format_timestamp(due)}'

    def extend(self, days: Optional[int] = None) -> Tuple['Borrow', str]:
        """Push the due date of an active record forward by the policy increment."""
        days = days or current_app.config['EXTENSION_DAYS']
        db = get_db()
        try:
            # Shift the stored due date in SQL
            cursor = db.execute('''
                UPDATE borrows
                SET due_date = strftime('%Y-%m-%d %H:%M:%S', due_date, ?),
                    renewed_count = renewed_count + 1
                WHERE id = ? AND status = ?
            ''', (f'+{int(days)} days', self.id, STATUS_ACTIVE))
            if cursor.rowcount == 0:
                db.rollback()
                raise self._conflict('extend', STATUS_ACTIVE)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error extending borrow %s', self.id)
            raise

        updated = Borrow.get_by_id(self.id)
        SystemLog.add('Borrowal Extended',
                      f'"{updated.item_name}" extended to {updated.due_date}',
                      'info', self.user_id)
        return updated, f'Borrowal extended. New due date: {updated.due_date}'

    def return_item(self, condition: Optional[str] = None) -> Tuple['Borrow', str]:
        """Check an active record back in (Active -> Returned)."""
        conditions = current_app.config['RETURN_CONDITIONS']
        condition = optional_text(condition, 'condition').lower() or 'good'
        if condition not in conditions:
            raise ValidationError('condition must be one of: ' + ', '.join(conditions))

        db = get_db()
        try:
            cursor = db.execute('''
                UPDATE borrows SET status = ?, return_date = ?, condition_on_return = ?
                WHERE id = ? AND status = ?
            ''', (STATUS_RETURNED, now_timestamp(), condition, self.id, STATUS_ACTIVE))
            if cursor.rowcount == 0:
                db.rollback()
                raise self._conflict('return', STATUS_ACTIVE)
            Item(self.item_id).set_status('available')
            SystemLog.add('Item Returned',
                          f'"{self.item_name}" returned (Condition: {condition})',
                          'info', self.user_id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error returning borrow %s', self.id)
            raise

        Waitlist.notify_next(self.item_id)
        return Borrow.get_by_id(self.id), 'Item returned successfully'

    def cancel(self) -> str:
        """Cancel a reservation; the record is deleted."""
        db = get_db()
        try:
            cursor = db.execute(
                'DELETE FROM borrows WHERE id = ? AND status = ?',
                (self.id, STATUS_RESERVED)
            )
            if cursor.rowcount == 0:
                db.rollback()
                raise self._conflict('cancel', STATUS_RESERVED)
            Item(self.item_id).set_status('available')
            SystemLog.add('Reservation Cancelled',
                          f'Reservation for "{self.item_name}" cancelled',
                          'info', self.user_id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error cancelling borrow %s', self.id)
            raise

        Waitlist.notify_next(self.item_id)
        return 'Reservation cancelled successfully'

    def send_reminder(self, now: Optional[datetime] = None) -> Tuple[Notification, bool]:
        """Remind the student about this overdue record.

        At most one overdue reminder is created per record per day; later
        calls the same day return the existing one. The record itself is
        never modified.

        Returns:
            Tuple of (notification, created).
        """
        if not self.is_active:
            raise StateConflictError(
                f'Cannot send a reminder for a {self.status} borrowal',
                current_state=self.status,
                borrow_id=self.id
            )
        now = now or datetime.now()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        existing = Notification.find_for_borrow(self.id, 'overdue', since=start_of_day)
        if existing:
            return existing, False

        days = self.get_overdue_days(now)
        if days:
            message = (f'"{self.item_name}" is {days} day(s) overdue. '
                       f'Please return it to {self.location} as soon as possible.')
        else:
            message = f'"{self.item_name}" is due {self.due_date}. Please return it on time.'
        notification = Notification.create(
            self.user_id, 'overdue', 'Overdue item reminder', message,
            borrow_id=self.id
        )
        SystemLog.add('Reminder Sent', f'Reminder for "{self.item_name}"', 'info', self.user_id)
        return notification, True

    def fine_draft(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Seed the fine workflow with this record's student and a suggested amount."""
        student = User.get_by_id(self.user_id)
        days = self.get_overdue_days(now)
        suggested: Decimal = Decimal(str(current_app.config['LATE_FEE_PER_DAY'])) * days
        return {
            'student': student.to_lookup() if student else None,
            'borrow_id': self.id,
            'item_name': self.item_name,
            'days_overdue': days,
            'reason': 'late-return',
            'suggested_amount': float(suggested),
        }

    def to_dict(self, now: Optional[datetime] = None) -> dict:
        return {
            'id': self.id,
            'item_id': self.item_id,
            'item_name': self.item_name,
            'location': self.location,
            'status': self.status,
            'date': self.display_date,
            'pickup_date': self.pickup_date,
            'due_date': self.due_date,
            'return_date': self.return_date,
            'renewed_count': self.renewed_count,
            'condition_on_return': self.condition_on_return,
            'is_overdue': self.is_overdue(now),
            'days_overdue': self.get_overdue_days(now),
        }
