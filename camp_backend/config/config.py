"""Configuration file for the C.A.M.P. backend.

This module contains all configuration settings for the equipment-borrowing
service, including the database location, background job switches and the
borrowing/fine business rules.
"""
import os
from decimal import Decimal
from typing import Dict, Tuple


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration class for the Flask application.

    Contains all application settings including:
    - Database connection settings
    - Background scheduler switches
    - Borrowing and fine business rules

    Attributes:
        SECRET_KEY (str): Secret key used by Flask and Socket.IO.
        DATABASE_PATH (str): Absolute path to the SQLite database file.
        DATABASE_TIMEOUT (float): Seconds to wait on a locked database.
        SEED_DEMO_DATA (bool): Load demo students, items and fines on an empty database.
        SCHEDULER_ENABLED (bool): Start the APScheduler reminder jobs.
        LOG_LEVEL (str): Root logging level.
        CORS_ALLOWED_ORIGINS (str): Origins accepted by the Socket.IO endpoint.
        BORROW_DURATION_DAYS (int): Loan period applied at pickup.
        EXTENSION_DAYS (int): Days added to a due date by an extension.
        LATE_FEE_PER_DAY (Decimal): Suggested fine per overdue day.
        MAX_FINE_AMOUNT (Decimal): Largest fine that can be applied.
        WAITLIST_OFFER_HOURS (int): How long a waitlist offer is held.
        PAYMENT_METHODS (Tuple[str, ...]): Accepted payment methods.
        ITEM_CATEGORIES (Tuple[str, ...]): Categories accepted for new items.
        REMINDER_TIMINGS (Dict[str, int]): Reminder lead time in minutes per setting.
    """

    SECRET_KEY: str = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Database configuration
    DATABASE_PATH: str = os.environ.get('DATABASE_PATH') or os.path.join(
        os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'data', 'camp.db'
    )
    DATABASE_TIMEOUT: float = float(os.environ.get('DATABASE_TIMEOUT', 10))
    SEED_DEMO_DATA: bool = _env_flag('SEED_DEMO_DATA', True)

    # Runtime
    SCHEDULER_ENABLED: bool = _env_flag('SCHEDULER_ENABLED', True)
    LOG_LEVEL: str = os.environ.get('LOG_LEVEL', 'INFO')
    CORS_ALLOWED_ORIGINS: str = os.environ.get('CORS_ALLOWED_ORIGINS', '*')
    REMINDER_CHECK_MINUTES: int = 15
    LOG_RETENTION_DAYS: int = 30
    SERVICE_NAME: str = 'camp-backend'

    # Borrowing business rules
    BORROW_DURATION_DAYS: int = int(os.environ.get('BORROW_DURATION_DAYS', 7))
    EXTENSION_DAYS: int = int(os.environ.get('EXTENSION_DAYS', 7))
    LATE_FEE_PER_DAY: Decimal = Decimal(os.environ.get('LATE_FEE_PER_DAY', '5.00'))
    MAX_FINE_AMOUNT: Decimal = Decimal(os.environ.get('MAX_FINE_AMOUNT', '10000.00'))
    WAITLIST_OFFER_HOURS: int = int(os.environ.get('WAITLIST_OFFER_HOURS', 24))
    PAYMENT_METHODS: Tuple[str, ...] = ('cash', 'card', 'online')
    RETURN_CONDITIONS: Tuple[str, ...] = ('excellent', 'good', 'fair', 'poor', 'damaged')
    ITEM_CATEGORIES: Tuple[str, ...] = (
        'Camera', 'Laptop', 'Lab Equipment', 'Sports Gear', 'Musical Instrument', 'Other',
    )
    REMINDER_TIMINGS: Dict[str, int] = {
        '1hour': 60,
        '24hours': 24 * 60,
        '48hours': 48 * 60,
        '1week': 7 * 24 * 60,
    }
