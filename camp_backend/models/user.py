"""User model module.

Students and staff share one table; students are looked up by NetID or
name from the staff fine workflow.
"""
from typing import Any, Dict, Optional

from errors import NotFoundError, ValidationError
from models.database import get_db
from utils.helpers import like_pattern

MIN_QUERY_LENGTH = 2


class User:
    def __init__(self, id, net_id, first_name, last_name, email, role, **kwargs):
        self.id = id
        self.net_id = net_id
        self.first_name = first_name
        self.last_name = last_name
        self.email = email
        self.role = role
        self.created_at = kwargs.get('created_at')

    @property
    def name(self) -> str:
        return f'{self.first_name} {self.last_name}'

    @property
    def label(self) -> str:
        """Short display label such as 'S. Johnson'."""
        return f'{self.first_name[:1]}. {self.last_name}'

    def is_staff(self) -> bool:
        return self.role == 'staff'

    @staticmethod
    def get_by_id(user_id: str) -> Optional['User']:
        db = get_db()
        row = db.execute('SELECT * FROM users WHERE id = ?', (user_id,)).fetchone()
        return User(**dict(row)) if row else None

    @staticmethod
    def get_by_net_id(net_id: str) -> Optional['User']:
        """Get a user by NetID (case-insensitive)."""
        if not net_id:
            return None
        db = get_db()
        row = db.execute(
            'SELECT * FROM users WHERE lower(net_id) = lower(?)',
            (net_id.strip(),)
        ).fetchone()
        return User(**dict(row)) if row else None

    @staticmethod
    def require_student(net_id: str) -> 'User':
        """Resolve a student by NetID or raise NotFoundError."""
        user = User.get_by_net_id(net_id)
        if not user or user.role != 'student':
            raise NotFoundError(f'Student {net_id} not found')
        return user

    @staticmethod
    def search_student(query: str) -> 'User':
        """Resolve a NetID-or-name query to exactly one student.

        An exact NetID match wins. Otherwise the query is matched as a
        substring of the student's full name.

        Raises:
            ValidationError: Query too short, or more than one name matches.
            NotFoundError: Nothing matches.
        """
        query = (query or '').strip()
        if len(query) < MIN_QUERY_LENGTH:
            raise ValidationError(
                f'Search query must be at least {MIN_QUERY_LENGTH} characters'
            )

        user = User.get_by_net_id(query)
        if user and user.role == 'student':
            return user

        db = get_db()
        rows = db.execute('''
            SELECT * FROM users
            WHERE role = 'student'
              AND lower(first_name || ' ' || last_name) LIKE ? ESCAPE '\\'
            ORDER BY last_name, first_name
        ''', (like_pattern(query),)).fetchall()

        if not rows:
            raise NotFoundError(f'No student matches "{query}"')
        if len(rows) > 1:
            raise ValidationError(
                f'{len(rows)} students match "{query}"; search by NetID instead',
                matches=[row['net_id'] for row in rows]
            )
        return User(**dict(rows[0]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'net_id': self.net_id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
        }

    def to_lookup(self) -> Dict[str, Any]:
        """StudentLookup: the student with their full fine set."""
        from models.fine import Fine

        data = self.to_dict()
        data['fines'] = [fine.to_dict() for fine in Fine.get_by_user(self.id)]
        return data
