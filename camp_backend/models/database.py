"""Database initialization and connection management.

This module provides per-request connection management, schema
initialization and demo data loading for the borrowing service.

A failed connection never stops the process: startup logs the failure and
keeps serving, and every request that needs the database retries the
connection and raises DatabaseUnavailableError while it is still down.
"""
import logging
import os
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Set

from flask import Flask, current_app, g

from errors import DatabaseUnavailableError
from utils.helpers import format_timestamp

logger = logging.getLogger(__name__)

# Database files whose schema has been created by this process
_ready_paths: Set[str] = set()

SCHEMA = (
    '''
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        net_id TEXT UNIQUE NOT NULL,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        email TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'student' CHECK (role IN ('student', 'staff')),
        created_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS items (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        category TEXT NOT NULL DEFAULT 'Other',
        location TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        condition TEXT NOT NULL DEFAULT 'good',
        status TEXT NOT NULL DEFAULT 'available'
            CHECK (status IN ('available', 'reserved', 'checked-out', 'maintenance')),
        is_active INTEGER NOT NULL DEFAULT 1
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS borrows (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        item_id TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('Reserved', 'Active', 'Returned')),
        pickup_date TEXT,
        due_date TEXT,
        return_date TEXT,
        renewed_count INTEGER NOT NULL DEFAULT 0,
        condition_on_return TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users (id),
        FOREIGN KEY (item_id) REFERENCES items (id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS fines (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        borrow_id TEXT,
        reason TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        amount_cents INTEGER NOT NULL CHECK (amount_cents >= 0),
        status TEXT NOT NULL DEFAULT 'unpaid' CHECK (status IN ('unpaid', 'paid')),
        issued_date TEXT NOT NULL,
        issued_by TEXT,
        paid_date TEXT,
        payment_method TEXT,
        receipt_number TEXT,
        FOREIGN KEY (user_id) REFERENCES users (id),
        FOREIGN KEY (borrow_id) REFERENCES borrows (id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS notification_preferences (
        user_id TEXT PRIMARY KEY,
        email_enabled INTEGER NOT NULL,
        sms_enabled INTEGER NOT NULL,
        app_enabled INTEGER NOT NULL,
        reminder_timing TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users (id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        borrow_id TEXT,
        fine_id TEXT,
        channels TEXT NOT NULL DEFAULT 'app',
        date TEXT NOT NULL,
        is_read INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY (user_id) REFERENCES users (id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS waitlist (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        item_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'waiting'
            CHECK (status IN ('waiting', 'notified', 'expired', 'cancelled', 'fulfilled')),
        position INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        notified_at TEXT,
        expires_at TEXT,
        FOREIGN KEY (user_id) REFERENCES users (id),
        FOREIGN KEY (item_id) REFERENCES items (id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS system_logs (
        id TEXT PRIMARY KEY,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        details TEXT,
        log_type TEXT DEFAULT 'info',
        user_id TEXT
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_borrows_user_status ON borrows (user_id, status)',
    'CREATE INDEX IF NOT EXISTS idx_borrows_due ON borrows (status, due_date)',
    'CREATE INDEX IF NOT EXISTS idx_fines_user_status ON fines (user_id, status)',
    'CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (user_id, is_read, date)',
    'CREATE INDEX IF NOT EXISTS idx_waitlist_item ON waitlist (item_id, status, position)',
    '''
    CREATE UNIQUE INDEX IF NOT EXISTS idx_waitlist_open_entry ON waitlist (user_id, item_id)
    WHERE status IN ('waiting', 'notified')
    ''',
)


def _connect(path: str, timeout: float) -> sqlite3.Connection:
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(path, timeout=timeout)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
    except (OSError, sqlite3.Error) as e:
        raise DatabaseUnavailableError(f'Database unavailable: {e}') from e

    if path not in _ready_paths:
        try:
            init_db(conn)
        except sqlite3.Error as e:
            conn.close()
            raise DatabaseUnavailableError(f'Database unavailable: {e}') from e
        _ready_paths.add(path)
    return conn


def get_db() -> sqlite3.Connection:
    """Get the database connection for the current application context.

    Returns:
        SQLite connection with Row factory enabled.

    Raises:
        DatabaseUnavailableError: If the database cannot be opened.
    """
    if 'db' not in g:
        g.db = _connect(current_app.config['DATABASE_PATH'],
                        current_app.config['DATABASE_TIMEOUT'])
    return g.db


def close_db(e=None):
    """Close database connection"""
    db = g.pop('db', None)
    if db is not None:
        db.close()


def init_db(db: sqlite3.Connection) -> None:
    """Create the schema and, if configured, load demo data."""
    for statement in SCHEMA:
        db.execute(statement)
    db.commit()

    if current_app.config.get('SEED_DEMO_DATA'):
        insert_mock_data(db)


def bootstrap_database(app: Flask) -> bool:
    """Open the database once at startup.

    Returns:
        True if the database is reachable. A failure is logged and the
        application keeps running.
    """
    with app.app_context():
        try:
            get_db()
        except DatabaseUnavailableError as e:
            logger.error('Database connection error: %s', e.message)
            logger.error('Server will continue but database operations will fail')
            return False
        finally:
            close_db()
    logger.info('Database ready at %s', app.config['DATABASE_PATH'])
    return True


def forget_database(path: str) -> None:
    """Drop the cached schema state for a database file."""
    _ready_paths.discard(path)


def insert_mock_data(db: sqlite3.Connection) -> None:
    """Insert demo students, staff, items, borrowals and fines."""
    if db.execute('SELECT COUNT(*) FROM users').fetchone()[0] > 0:
        return  # Data already exists

    now = datetime.now()
    created = format_timestamp(now)

    users = [
        ('si2356', 'Sarah', 'Johnson', 'student'),
        ('ls1842', 'Leah', 'Sullivan', 'student'),
        ('mt2201', 'Michael', 'Thompson', 'student'),
        ('ak1016', 'Akshith', 'Kumar', 'student'),
        ('ew3847', 'Emma', 'Wilson', 'student'),
        ('staff01', 'John', 'Manager', 'staff'),
    ]
    user_ids = {}
    for net_id, first_name, last_name, role in users:
        user_ids[net_id] = str(uuid.uuid4())
        db.execute('''
            INSERT INTO users (id, net_id, first_name, last_name, email, role, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (user_ids[net_id], net_id, first_name, last_name,
              f'{net_id}@univ.edu', role, created))

    items = [
        ('Canon EOS R5', 'Camera', 'Arts Centre', 'checked-out'),
        ('MacBook Pro 16"', 'Laptop', 'IM Lab', 'checked-out'),
        ('Tripod', 'Camera', 'Library', 'checked-out'),
        ('Audio Recorder', 'Lab Equipment', 'IM Lab', 'reserved'),
        ('Lighting Kit', 'Other', 'Media Center', 'reserved'),
        ('DSLR Camera', 'Camera', 'IM Lab', 'available'),
        ('Microphone', 'Musical Instrument', 'Library', 'available'),
        ('Power Drill', 'Other', 'IM Lab', 'available'),
        ('Projector', 'Other', 'Media Center', 'available'),
    ]
    item_ids = {}
    for name, category, location, status in items:
        item_ids[name] = str(uuid.uuid4())
        db.execute('''
            INSERT INTO items (id, name, category, location, status)
            VALUES (?, ?, ?, ?, ?)
        ''', (item_ids[name], name, category, location, status))

    def at(days: float) -> str:
        return format_timestamp(now + timedelta(days=days))

    sarah = user_ids['si2356']
    borrows = [
        # (item, status, pickup, due, returned)
        ('Canon EOS R5', 'Active', at(-5), at(2), None),
        ('MacBook Pro 16"', 'Active', at(-4), at(3), None),
        ('Tripod', 'Active', at(-3), at(5), None),
        ('Audio Recorder', 'Reserved', at(7), None, None),
        ('Lighting Kit', 'Reserved', at(9), None, None),
        ('DSLR Camera', 'Returned', at(-25), at(-18), at(-18)),
        ('Microphone', 'Returned', at(-28), at(-21), at(-21)),
        ('Power Drill', 'Returned', at(-31), at(-24), at(-24)),
    ]
    for item, status, pickup, due, returned in borrows:
        db.execute('''
            INSERT INTO borrows (id, user_id, item_id, status, pickup_date,
                                 due_date, return_date, renewed_count, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
        ''', (str(uuid.uuid4()), sarah, item_ids[item], status, pickup, due,
              returned, created))

    # One overdue loan for the staff overdue view
    db.execute('''
        INSERT INTO borrows (id, user_id, item_id, status, pickup_date,
                             due_date, return_date, renewed_count, created_at)
        VALUES (?, ?, ?, 'Active', ?, ?, NULL, 0, ?)
    ''', (str(uuid.uuid4()), user_ids['mt2201'], item_ids['Projector'],
          at(-10), at(-3), created))
    db.execute("UPDATE items SET status = 'checked-out' WHERE id = ?",
               (item_ids['Projector'],))

    fines = [
        ('Overdue – Audio Recorder', 'late-return', 500),
        ('Damage – Tripod', 'damage', 1200),
    ]
    for reason, description, cents in fines:
        db.execute('''
            INSERT INTO fines (id, user_id, reason, description, amount_cents,
                               status, issued_date)
            VALUES (?, ?, ?, ?, ?, 'unpaid', ?)
        ''', (str(uuid.uuid4()), sarah, reason, description, cents, created))

    db.commit()
    logger.info('Inserted demo data (%d users, %d items)', len(users), len(items))
