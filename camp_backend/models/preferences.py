"""Notification preference model.

One preference row per student. Saving always writes the complete struct
in a single statement so a partially applied update is never visible.
"""
import logging
import sqlite3
from typing import Any, Dict, List, Mapping

from flask import current_app

from errors import ValidationError
from models.database import get_db
from models.system_log import SystemLog
from utils.helpers import now_timestamp

logger = logging.getLogger(__name__)

CHANNELS = ('email', 'sms', 'app')


class NotificationPreferences:
    """Channel switches and reminder lead time for one student.

    Attributes:
        DEFAULTS: Values reported for a student who never saved preferences.
    """

    DEFAULTS: Dict[str, Any] = {
        'email_enabled': True,
        'sms_enabled': False,
        'app_enabled': True,
        'reminder_timing': '24hours',
    }

    def __init__(self, user_id: str, email_enabled: bool, sms_enabled: bool,
                 app_enabled: bool, reminder_timing: str, **kwargs) -> None:
        self.user_id = user_id
        self.email_enabled = bool(email_enabled)
        self.sms_enabled = bool(sms_enabled)
        self.app_enabled = bool(app_enabled)
        self.reminder_timing = reminder_timing
        self.updated_at = kwargs.get('updated_at')

    @property
    def enabled_channels(self) -> List[str]:
        return [channel for channel in CHANNELS
                if getattr(self, f'{channel}_enabled')]

    @property
    def reminder_minutes(self) -> int:
        return current_app.config['REMINDER_TIMINGS'][self.reminder_timing]

    @staticmethod
    def get(user_id: str) -> 'NotificationPreferences':
        """Stored preferences for a user, or the defaults."""
        db = get_db()
        row = db.execute(
            'SELECT * FROM notification_preferences WHERE user_id = ?',
            (user_id,)
        ).fetchone()
        if row:
            return NotificationPreferences(**dict(row))
        return NotificationPreferences(user_id, **NotificationPreferences.DEFAULTS)

    @staticmethod
    def validate(values: Mapping[str, Any]) -> Dict[str, Any]:
        """Check a complete preference struct.

        Raises:
            ValidationError: On the first invalid field; nothing is written.
        """
        for channel in CHANNELS:
            key = f'{channel}_enabled'
            if not isinstance(values.get(key), bool):
                raise ValidationError(f'{key} must be true or false')
        timings = current_app.config['REMINDER_TIMINGS']
        timing = values.get('reminder_timing')
        if not isinstance(timing, str) or timing not in timings:
            raise ValidationError('reminder_timing must be one of: ' + ', '.join(timings))
        return {key: values[key] for key in NotificationPreferences.DEFAULTS}

    @staticmethod
    def save(user_id: str, updates: Mapping[str, Any]) -> 'NotificationPreferences':
        """Merge updates onto the current preferences and store them atomically.

        Unknown keys are rejected. Fields not present keep their current value.
        """
        unknown = set(updates) - set(NotificationPreferences.DEFAULTS)
        if unknown:
            raise ValidationError('Unknown preference fields: ' + ', '.join(sorted(unknown)))

        current = NotificationPreferences.get(user_id).to_dict()
        merged = {key: updates.get(key, current[key])
                  for key in NotificationPreferences.DEFAULTS}
        values = NotificationPreferences.validate(merged)

        db = get_db()
        try:
            db.execute('''
                INSERT INTO notification_preferences
                    (user_id, email_enabled, sms_enabled, app_enabled, reminder_timing, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    email_enabled = excluded.email_enabled,
                    sms_enabled = excluded.sms_enabled,
                    app_enabled = excluded.app_enabled,
                    reminder_timing = excluded.reminder_timing,
                    updated_at = excluded.updated_at
            ''', (user_id, int(values['email_enabled']), int(values['sms_enabled']),
                  int(values['app_enabled']), values['reminder_timing'], now_timestamp()))
            SystemLog.add('Preferences Saved',
                          f'Reminder {values["reminder_timing"]}, channels '
                          f'email={values["email_enabled"]} sms={values["sms_enabled"]} '
                          f'app={values["app_enabled"]}',
                          'info', user_id, commit=False)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error saving preferences for %s', user_id)
            raise
        return NotificationPreferences.get(user_id)

    @staticmethod
    def toggle(user_id: str, channel: str) -> 'NotificationPreferences':
        """Flip one channel switch in a single statement."""
        if channel not in CHANNELS:
            raise ValidationError('channel must be one of: ' + ', '.join(CHANNELS))
        column = f'{channel}_enabled'
        defaults = NotificationPreferences.DEFAULTS

        db = get_db()
        try:
            # Rows are created from the defaults, with the toggled channel flipped
            db.execute(f'''
                INSERT INTO notification_preferences
                    (user_id, email_enabled, sms_enabled, app_enabled, reminder_timing, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    {column} = 1 - notification_preferences.{column},
                    updated_at = excluded.updated_at
            ''', (user_id,
                  int(defaults['email_enabled'] != (channel == 'email')),
                  int(defaults['sms_enabled'] != (channel == 'sms')),
                  int(defaults['app_enabled'] != (channel == 'app')),
                  defaults['reminder_timing'], now_timestamp()))
            db.commit()
        except sqlite3.Error:
            db.rollback()
            logger.exception('Error toggling %s for %s', channel, user_id)
            raise
        return NotificationPreferences.get(user_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'email_enabled': self.email_enabled,
            'sms_enabled': self.sms_enabled,
            'app_enabled': self.app_enabled,
            'reminder_timing': self.reminder_timing,
        }
