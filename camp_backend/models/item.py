"""Equipment item model.

Items are soft deleted: a retired item keeps its row so borrow history and
fines still resolve, but it no longer appears in the catalogue.
"""
import logging
import sqlite3
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from flask import current_app

from errors import NotFoundError, StateConflictError, ValidationError
from models.database import get_db
from models.system_log import SystemLog
from utils.helpers import like_pattern, optional_text, require_text

logger = logging.getLogger(__name__)

ITEM_STATUSES = ('available', 'reserved', 'checked-out', 'maintenance')
ITEM_CONDITIONS = ('excellent', 'good', 'fair', 'poor', 'damaged', 'needs-repair')

# Statuses staff may set directly; the others follow the borrow lifecycle
STAFF_STATUSES = ('available', 'maintenance')

EDITABLE_FIELDS = ('name', 'category', 'location', 'description', 'condition', 'status')


class Item:
    def __init__(self, id, name=None, category=None, location=None, status=None,
                 description='', condition='good', is_active=1):
        self.id = id
        self.name = name
        self.category = category
        self.location = location
        self.description = description or ''
        self.condition = condition
        self.status = status
        self.is_active = bool(is_active)

    @staticmethod
    def get_by_id(item_id: str, include_retired: bool = False) -> Optional['Item']:
        db = get_db()
        row = db.execute('SELECT * FROM items WHERE id = ?', (item_id,)).fetchone()
        if not row or not (row['is_active'] or include_retired):
            return None
        return Item(**dict(row))

    @staticmethod
    def require(item_id: str) -> 'Item':
        item = Item.get_by_id(item_id)
        if not item:
            raise NotFoundError(f'Item {item_id} not found')
        return item

    @staticmethod
    def get_all(status: Optional[str] = None) -> List['Item']:
        db = get_db()
        if status:
            rows = db.execute('''
                SELECT * FROM items WHERE is_active = 1 AND status = ? ORDER BY name
            ''', (status,)).fetchall()
        else:
            rows = db.execute('SELECT * FROM items WHERE is_active = 1 ORDER BY name').fetchall()
        return [Item(**dict(row)) for row in rows]

    @staticmethod
    def get_inventory(status: Optional[str] = None, category: Optional[str] = None,
                      search: Optional[str] = None, limit: int = 50,
                      offset: int = 0) -> Tuple[List['Item'], int]:
        """Page through the catalogue for the staff inventory screen.

        Args:
            status: Only items with this status.
            category: Only items in this category.
            search: Substring of the item name or location.
            limit: Page size.
            offset: Rows to skip.

        Returns:
            Tuple of (items on this page, total matching items).
        """
        if status and status not in ITEM_STATUSES:
            raise ValidationError('status must be one of: ' + ', '.join(ITEM_STATUSES))

        clauses = ['is_active = 1']
        params: List[Any] = []
        if status:
            clauses.append('status = ?')
            params.append(status)
        if category:
            clauses.append('category = ?')
            params.append(category)
        if search and search.strip():
            clauses.append("(lower(name) LIKE ? ESCAPE '\\' OR lower(location) LIKE ? ESCAPE '\\')")
            pattern = like_pattern(search.strip())
            params.extend([pattern, pattern])
        where = ' AND '.join(clauses)

        db = get_db()
        total = db.execute(f'SELECT COUNT(*) FROM items WHERE {where}', params).fetchone()[0]
        rows = db.execute(f'''
            SELECT * FROM items WHERE {where}
            ORDER BY name
            LIMIT ? OFFSET ?
        ''', params + [limit, offset]).fetchall()
        return [Item(**dict(row)) for row in rows], total

    @staticmethod
    def get_status_counts() -> Dict[str, int]:
        db = get_db()
        counts = dict(db.execute(
            'SELECT status, COUNT(*) FROM items WHERE is_active = 1 GROUP BY status'
        ).fetchall())
        return {status: counts.get(status, 0) for status in ITEM_STATUSES}

    # ---------- Validation ----------
    @staticmethod
    def _clean(field: str, value: Any) -> str:
        if field in ('name', 'location'):
            return require_text(value, field)
        if field == 'description':
            return optional_text(value, field)
        text = require_text(value, field)
        if field == 'category':
            categories = current_app.config['ITEM_CATEGORIES']
            if text not in categories:
                raise ValidationError('category must be one of: ' + ', '.join(categories))
        elif field == 'condition':
            text = text.lower()
            if text not in ITEM_CONDITIONS:
                raise ValidationError('condition must be one of: ' + ', '.join(ITEM_CONDITIONS))
        elif field == 'status':
            text = text.lower()
            if text not in STAFF_STATUSES:
                raise ValidationError('status can only be set to available or maintenance')
        return text

    # ---------- Staff management ----------
    @staticmethod
    def create(data: Mapping[str, Any], staff_id: Optional[str] = None) -> 'Item':
        """Add a new item to the catalogue.

        Raises:
            ValidationError: Missing name or location, or an unknown
                category or condition.
        """
        unknown = set(data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError('Unknown item fields: ' + ', '.join(sorted(unknown)))
        values = {
            'name': Item._clean('name', data.get('name')),
            'category': Item._clean('category', data.get('category', 'Other')),
            'location': Item._clean('location', data.get('location')),
            'description': Item._clean('description', data.get('description')),
            'condition': Item._clean('condition', data.get('condition', 'good')),
            'status': Item._clean('status', data.get('status', 'available')),
        }

        db = get_db()
        item_id = str(uuid.uuid4())
        try:
            db.execute('''
                INSERT INTO items (id, name, category, location, description,
                                   condition, status, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?, 1)
            ''', (item_id, values['name'], values['category'], values['location'],
                  values['description'], values['condition'], values['status']))
            SystemLog.add('Item Added', f'"{values["name"]}" added at {values["location"]}',
                          'info', staff_id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error adding item %s', values['name'])
            raise
        return Item.get_by_id(item_id)

    def update(self, data: Mapping[str, Any], staff_id: Optional[str] = None) -> 'Item':
        """Edit catalogue fields; staff may also move an idle item in or out of maintenance.

        Raises:
            ValidationError: Unknown field or bad value; nothing is written.
            StateConflictError: A status change on an item that is reserved or
                checked out.
        """
        unknown = set(data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError('Unknown item fields: ' + ', '.join(sorted(unknown)))
        if not data:
            raise ValidationError('No fields to update')
        values = {field: Item._clean(field, data[field])
                  for field in EDITABLE_FIELDS if field in data}

        sql = 'UPDATE items SET ' + ', '.join(f'{field} = ?' for field in values)
        sql += ' WHERE id = ? AND is_active = 1'
        params = list(values.values()) + [self.id]
        if 'status' in values:
            sql += ' AND status IN (?, ?)'
            params.extend(STAFF_STATUSES)

        db = get_db()
        try:
            cursor = db.execute(sql, params)
            if cursor.rowcount == 0:
                db.rollback()
                current = Item.require(self.id)
                raise StateConflictError(
                    f'Cannot change the status of a {current.status} item',
                    current_state=current.status,
                    item_id=self.id
                )
            SystemLog.add('Item Updated',
                          f'"{values.get("name", self.name)}" updated: ' + ', '.join(values),
                          'info', staff_id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error updating item %s', self.id)
            raise

        if values.get('status') == 'available' and self.status != 'available':
            from models.waitlist import Waitlist
            Waitlist.notify_next(self.id)
        return Item.require(self.id)

    def retire(self, staff_id: Optional[str] = None) -> str:
        """Soft delete an idle item and close its waitlist."""
        db = get_db()
        try:
            cursor = db.execute('''
                UPDATE items SET is_active = 0
                WHERE id = ? AND is_active = 1 AND status IN (?, ?)
            ''', (self.id,) + STAFF_STATUSES)
            if cursor.rowcount == 0:
                db.rollback()
                current = Item.require(self.id)
                raise StateConflictError(
                    f'Cannot remove a {current.status} item',
                    current_state=current.status,
                    item_id=self.id
                )
            db.execute('''
                UPDATE waitlist SET status = 'cancelled'
                WHERE item_id = ? AND status IN ('waiting', 'notified')
            ''', (self.id,))
            SystemLog.add('Item Removed', f'"{self.name}" removed from the catalogue',
                          'info', staff_id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error removing item %s', self.id)
            raise
        return f'{self.name} removed from the catalogue'

    def set_status(self, status: str, expected: Optional[str] = None) -> bool:
        """Update the item status inside the caller's transaction.

        Args:
            status: New status.
            expected: Only update if the item currently has this status.

        Returns:
            True if the row was updated.
        """
        db = get_db()
        if expected is None:
            cursor = db.execute('UPDATE items SET status = ? WHERE id = ?',
                                (status, self.id))
        else:
            cursor = db.execute(
                'UPDATE items SET status = ? WHERE id = ? AND status = ?',
                (status, self.id, expected)
            )
        if cursor.rowcount:
            self.status = status
        return cursor.rowcount > 0

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'location': self.location,
            'description': self.description,
            'condition': self.condition,
            'status': self.status,
        }
