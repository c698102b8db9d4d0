"""
Models package

Entities:
    User - students and staff, NetID lookup (user.py)
    Item - borrowable equipment (item.py)
    Borrow - borrow records, Reserved -> Active -> Returned (borrow.py)
    Waitlist - queue for items that are out (waitlist.py)
    Fine - fines and their payment (fine.py)
    NotificationPreferences - per-student reminder settings (preferences.py)
    Notification - in-app inbox with Socket.IO push (notification.py)
    SystemLog - audit trail (system_log.py)
"""
from errors import (CampError, DatabaseUnavailableError, NotFoundError,
                    StateConflictError, ValidationError)
from models.database import bootstrap_database, close_db, get_db
from models.user import User
from models.item import Item
from models.notification import Notification
from models.system_log import SystemLog
from models.preferences import NotificationPreferences
from models.fine import Fine
from models.waitlist import Waitlist
from models.borrow import Borrow

__all__ = [
    'CampError', 'DatabaseUnavailableError', 'NotFoundError',
    'StateConflictError', 'ValidationError',
    'bootstrap_database', 'close_db', 'get_db',
    'User', 'Item', 'Borrow', 'Fine', 'Waitlist',
    'Notification', 'NotificationPreferences', 'SystemLog',
]
