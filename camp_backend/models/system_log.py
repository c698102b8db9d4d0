"""System log model for tracking system activities.

This module provides the audit trail of borrowing, fine and preference
actions performed through the API.
"""
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from models.database import get_db
from utils.helpers import format_timestamp, now_timestamp


class SystemLog:
    """System activity log for tracking all system events.

    This class provides static methods for adding and retrieving
    system log entries. No instances are created.
    """

    @staticmethod
    def add(action: str, details: str, log_type: str = 'info',
            user_id: Optional[str] = None, commit: bool = True) -> str:
        """Add a new system log entry.

        Args:
            action: The action being logged.
            details: Detailed description of the action.
            log_type: Log level ('info', 'warning', 'error', 'system').
            user_id: ID of user who performed the action (optional).
            commit: Commit immediately; pass False to join the caller's
                open transaction.

        Returns:
            The ID of the created log entry.
        """
        db = get_db()
        log_id = str(uuid.uuid4())

        db.execute('''
            INSERT INTO system_logs (id, timestamp, action, details, log_type, user_id)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', (log_id, now_timestamp(), action, details, log_type, user_id))
        if commit:
            db.commit()
        return log_id

    @staticmethod
    def get_recent(limit: int = 50, log_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent audit entries, optionally of one type, newest first."""
        db = get_db()
        where, params = ('WHERE log_type = ?', (log_type,)) if log_type else ('', ())
        logs = db.execute(f'''
            SELECT timestamp, action, details, log_type, user_id
            FROM system_logs {where}
            ORDER BY timestamp DESC, rowid DESC
            LIMIT ?
        ''', params + (limit,)).fetchall()
        return [dict(log) for log in logs]

    @staticmethod
    def clear_old_logs(days: int = 30) -> int:
        """Delete logs older than the given number of days.

        Returns:
            Number of deleted entries.
        """
        db = get_db()
        cutoff = format_timestamp(datetime.now() - timedelta(days=days))
        cursor = db.execute('DELETE FROM system_logs WHERE timestamp < ?', (cutoff,))
        db.commit()
        return cursor.rowcount
