"""Date and money helpers shared by models and routes."""
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from errors import ValidationError

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

_INPUT_FORMATS = (
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%dT%H:%M',
    '%Y-%m-%d %H:%M',
    '%Y-%m-%d',
)

CENT = Decimal('0.01')


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def now_timestamp() -> str:
    return format_timestamp(datetime.now())


def parse_timestamp(value: Any, field: str = 'date') -> datetime:
    """Parse a timestamp sent by a client or read from the database.

    Raises:
        ValidationError: If the value is missing or in no known format.
    """
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f'{field} is required')
    text = value.strip()
    # Drop fractional seconds and a trailing Z from ISO strings
    if text.endswith('Z'):
        text = text[:-1]
    if '.' in text:
        text = text.split('.', 1)[0]
    for fmt in _INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValidationError(f'{field} is not a valid date: {value}')


def to_amount(value: Any, field: str = 'amount',
              maximum: Optional[Decimal] = None) -> Decimal:
    """Convert a client-supplied amount to a Decimal with 2 places.

    Raises:
        ValidationError: Missing, non-numeric, or above ``maximum``.
    """
    if value is None or value == '' or isinstance(value, bool):
        raise ValidationError(f'{field} is required')
    if not isinstance(value, (str, int, float, Decimal)):
        raise ValidationError(f'{field} must be a number')
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number')
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a number')
    if maximum is not None and amount > maximum:
        raise ValidationError(f'{field} cannot exceed {maximum:.2f}')
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f'{field} is out of range')


def require_text(value: Any, field: str) -> str:
    """Return a stripped, non-empty string or raise ValidationError."""
    if value is None or value == '':
        raise ValidationError(f'{field} is required')
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string')
    text = value.strip()
    if not text:
        raise ValidationError(f'{field} is required')
    return text


def optional_text(value: Any, field: str, default: str = '') -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string')
    return value.strip()


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: Optional[int]) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(CENT)


def like_pattern(query: str) -> str:
    """Substring pattern for ``LIKE ? ESCAPE '\\'`` with wildcards escaped."""
    escaped = query.lower().replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return f'%{escaped}%'
