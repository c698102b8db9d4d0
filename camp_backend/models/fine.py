"""Fine model module.

Handles applying fines to students and recording their payment. Amounts
are kept as integer cents in the database and exposed as Decimal.
"""
import logging
import sqlite3
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from flask import current_app

from errors import NotFoundError, StateConflictError, ValidationError
from models.database import get_db
from models.notification import Notification
from models.system_log import SystemLog
from models.user import User
from utils.helpers import (from_cents, now_timestamp, optional_text, require_text,
                           to_amount, to_cents)

logger = logging.getLogger(__name__)

STATUS_UNPAID = 'unpaid'
STATUS_PAID = 'paid'


class Fine:
    def __init__(self, id, user_id, reason, amount_cents, status, issued_date,
                 borrow_id=None, description='', issued_by=None, paid_date=None,
                 payment_method=None, receipt_number=None):
        self.id = id
        self.user_id = user_id
        self.borrow_id = borrow_id
        self.reason = reason
        self.description = description or ''
        self.amount: Decimal = from_cents(amount_cents)
        self.status = status
        self.issued_date = issued_date
        self.issued_by = issued_by
        self.paid_date = paid_date
        self.payment_method = payment_method
        self.receipt_number = receipt_number

    @property
    def is_paid(self) -> bool:
        return self.status == STATUS_PAID

    @staticmethod
    def get_by_id(fine_id: str) -> Optional['Fine']:
        db = get_db()
        row = db.execute('SELECT * FROM fines WHERE id = ?', (fine_id,)).fetchone()
        return Fine(**dict(row)) if row else None

    @staticmethod
    def get_by_user(user_id: str, status: Optional[str] = None) -> List['Fine']:
        """All fines for a user in the order they were issued."""
        db = get_db()
        if status:
            rows = db.execute('''
                SELECT * FROM fines WHERE user_id = ? AND status = ?
                ORDER BY issued_date ASC, rowid ASC
            ''', (user_id, status)).fetchall()
        else:
            rows = db.execute('''
                SELECT * FROM fines WHERE user_id = ?
                ORDER BY issued_date ASC, rowid ASC
            ''', (user_id,)).fetchall()
        return [Fine(**dict(row)) for row in rows]

    @staticmethod
    def get_all(status: Optional[str] = None, limit: int = 50,
                offset: int = 0) -> Tuple[List['Fine'], int]:
        """Page through all fines, newest first.

        Returns:
            Tuple of (fines on this page, total matching fines).
        """
        if status and status not in (STATUS_UNPAID, STATUS_PAID):
            raise ValidationError('status must be unpaid or paid')
        db = get_db()
        where, params = ('WHERE status = ?', (status,)) if status else ('', ())
        total = db.execute(f'SELECT COUNT(*) FROM fines {where}', params).fetchone()[0]
        rows = db.execute(f'''
            SELECT * FROM fines {where}
            ORDER BY issued_date DESC, rowid DESC
            LIMIT ? OFFSET ?
        ''', params + (limit, offset)).fetchall()
        return [Fine(**dict(row)) for row in rows], total

    @staticmethod
    def get_payment_history(user_id: str, limit: int = 50) -> List['Fine']:
        """Paid fines for a user, most recent payment first."""
        db = get_db()
        rows = db.execute('''
            SELECT * FROM fines WHERE user_id = ? AND status = 'paid'
            ORDER BY paid_date DESC
            LIMIT ?
        ''', (user_id, limit)).fetchall()
        return [Fine(**dict(row)) for row in rows]

    @staticmethod
    def get_unpaid_total() -> Decimal:
        db = get_db()
        row = db.execute(
            "SELECT COALESCE(SUM(amount_cents), 0) AS total FROM fines WHERE status = 'unpaid'"
        ).fetchone()
        return from_cents(row['total'])

    @staticmethod
    def create(net_id: Optional[str], reason: Optional[str], amount,
               description: str = '', borrow_id: Optional[str] = None,
               staff_net_id: Optional[str] = None) -> Tuple['Fine', str]:
        """Apply a new unpaid fine to a student.

        Every input is validated before anything is written.

        Args:
            net_id: NetID of the selected student.
            reason: Short reason shown to the student.
            amount: Fine amount; must be greater than zero.
            description: Optional staff notes.
            borrow_id: Borrow record the fine relates to (optional).
            staff_net_id: NetID of the staff member applying it (optional).

        Returns:
            Tuple of (fine, message).

        Raises:
            ValidationError: No student selected, bad amount or reason.
            NotFoundError: Unknown student, staff member or borrow record.
        """
        if not isinstance(net_id, str) or not net_id.strip():
            raise ValidationError('A student must be selected before applying a fine')
        amount = to_amount(amount, maximum=Decimal(str(current_app.config['MAX_FINE_AMOUNT'])))
        if amount <= 0:
            raise ValidationError('amount must be greater than zero')
        reason = require_text(reason, 'reason')
        description = optional_text(description, 'description')
        if borrow_id is not None and not isinstance(borrow_id, str):
            raise ValidationError('borrow_id must be a string')
        if staff_net_id is not None and not isinstance(staff_net_id, str):
            raise ValidationError('staff_net_id must be a string')

        student = User.require_student(net_id)

        issued_by = None
        if staff_net_id:
            staff = User.get_by_net_id(staff_net_id)
            if not staff or not staff.is_staff():
                raise NotFoundError(f'Staff member {staff_net_id} not found')
            issued_by = staff.id

        db = get_db()
        if borrow_id:
            row = db.execute('SELECT user_id FROM borrows WHERE id = ?',
                             (borrow_id,)).fetchone()
            if not row or row['user_id'] != student.id:
                raise NotFoundError(f'Borrow record {borrow_id} not found for {student.net_id}')

        fine_id = str(uuid.uuid4())
        try:
            db.execute('''
                INSERT INTO fines (id, user_id, borrow_id, reason, description,
                                   amount_cents, status, issued_date, issued_by)
                VALUES (?, ?, ?, ?, ?, ?, 'unpaid', ?, ?)
            ''', (fine_id, student.id, borrow_id, reason, description or '',
                  to_cents(amount), now_timestamp(), issued_by))
            SystemLog.add('Fine Applied',
                          f'{amount:.2f} fine for {student.net_id}: {reason}',
                          'info', issued_by, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error applying fine to %s', student.net_id)
            raise

        Notification.create(
            student.id, 'fine', 'New fine applied',
            f'A fine of ${amount:.2f} was applied to your account: {reason}.',
            borrow_id=borrow_id, fine_id=fine_id
        )
        return Fine.get_by_id(fine_id), f'Fine of ${amount:.2f} applied to {student.name}'

    def record_payment(self, method: Optional[str]) -> Tuple['Fine', str]:
        """Mark this fine as paid.

        The update only matches an unpaid row, so paying twice (or two
        concurrent payments) can never record a second payment.

        Raises:
            ValidationError: Unknown payment method.
            StateConflictError: The fine is already paid.
        """
        methods = current_app.config['PAYMENT_METHODS']
        method = optional_text(method, 'method').lower()
        if method not in methods:
            raise ValidationError('method must be one of: ' + ', '.join(methods))

        db = get_db()
        receipt = 'R-' + uuid.uuid4().hex[:8].upper()
        paid_date = now_timestamp()
        try:
            cursor = db.execute('''
                UPDATE fines
                SET status = 'paid', paid_date = ?, payment_method = ?, receipt_number = ?
                WHERE id = ? AND status = 'unpaid'
            ''', (paid_date, method, receipt, self.id))
            if cursor.rowcount == 0:
                db.rollback()
                current = Fine.get_by_id(self.id)
                raise StateConflictError(
                    'Fine already paid',
                    current_state=current.status if current else None,
                    fine_id=self.id
                )
            SystemLog.add('Fine Paid',
                          f'Fine {self.id} paid by {method} ({self.amount:.2f}), receipt {receipt}',
                          'info', self.user_id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error recording payment for fine %s', self.id)
            raise

        Notification.create(
            self.user_id, 'fine', 'Payment received',
            f'Payment received for fine {receipt}. Amount: ${self.amount:.2f}.',
            fine_id=self.id
        )
        return Fine.get_by_id(self.id), f'Payment recorded. Receipt {receipt}'

    @staticmethod
    def pay(fine_id: str, method: Optional[str],
            user_id: Optional[str] = None) -> Tuple['Fine', str]:
        """Look up a fine (optionally owned by user_id) and record its payment."""
        fine = Fine.get_by_id(fine_id)
        if not fine or (user_id is not None and fine.user_id != user_id):
            raise NotFoundError(f'Fine {fine_id} not found')
        return fine.record_payment(method)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'borrow_id': self.borrow_id,
            'reason': self.reason,
            'description': self.description,
            'amount': float(self.amount),
            'status': self.status,
            'issued_date': self.issued_date,
            'paid_date': self.paid_date,
            'payment_method': self.payment_method,
            'receipt_number': self.receipt_number,
        }
