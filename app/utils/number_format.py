"""Number, boolean and date parsing for request payloads."""
import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional

CENTS = Decimal('0.01')
# Largest amount a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal('9999999999.99')

TRUE_VALUES = {'true', '1', 'yes', 'on'}
FALSE_VALUES = {'false', '0', 'no', 'off', ''}


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents (half up)."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_decimal(value: Any, field: str, allow_negative: bool = False) -> Decimal:
    """
    Parse a JSON/form number into Decimal.

    Accepts ints, floats and numeric strings ("12.5"). Booleans are rejected.
    Magnitudes above MAX_AMOUNT are rejected.

    Raises:
        ValueError: with a field-specific message
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f'{field} must be a number')

    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field} must be a number')

    if not number.is_finite():
        raise ValueError(f'{field} must be a number')
    if number < 0 and not allow_negative:
        raise ValueError(f'{field} cannot be negative')
    if abs(number) > MAX_AMOUNT:
        raise ValueError(f'{field} cannot exceed {MAX_AMOUNT}')
    return number


def parse_optional_int(value: Any, field: str, minimum: int = 0) -> Optional[int]:
    """Parse an optional integer; None, '' and 'null' mean unset."""
    if value is None or (isinstance(value, str) and value.strip().lower() in ('', 'null', 'none')):
        return None
    if isinstance(value, bool):
        raise ValueError(f'{field} must be an integer')
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field} must be an integer')
    if number != number.to_integral_value():
        raise ValueError(f'{field} must be an integer')
    number = int(number)
    if number < minimum:
        raise ValueError(f'{field} must be at least {minimum}')
    return number


def parse_bool(value: Any, default: bool = False) -> bool:
    """Form fields arrive as strings ('true'/'false'), JSON as real booleans."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return default


def parse_datetime(value: Any, field: str) -> datetime:
    """
    Parse an ISO-8601 date or datetime into a naive UTC datetime.

    Offset-aware inputs are converted to UTC; naive inputs are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or '').strip()
        if not text:
            raise ValueError(f'{field} is required')
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f'{field} must be an ISO-8601 date')

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_id_list(value: Any, field: str) -> List[int]:
    """
    Parse a list of ids from a JSON array, a JSON-encoded string or a single value.

    Multipart forms send arrays as '["1", "2"]' or as repeated fields.
    """
    if value is None or value == '':
        return []

    items = value
    if isinstance(value, str):
        try:
            items = json.loads(value)
        except ValueError:
            items = [value]
    if not isinstance(items, (list, tuple)):
        items = [items]

    ids = []
    for item in items:
        try:
            ids.append(int(str(item).strip()))
        except (TypeError, ValueError):
            raise ValueError(f'{field} must contain numeric ids')
    return ids
