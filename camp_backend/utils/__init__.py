"""Utilities package for the borrowing service.

This package contains request decorators and the date/money helpers
used across the application.
"""
from utils.helpers import (format_timestamp, now_timestamp, parse_timestamp,
                           to_amount)
from utils.decorators import json_body, student_required

__all__ = [
    'format_timestamp',
    'json_body',
    'now_timestamp',
    'parse_timestamp',
    'student_required',
    'to_amount',
]
