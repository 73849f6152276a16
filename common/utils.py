import datetime
import decimal
import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")


def to_decimal(value, field=None):
    """Coerce user or database input to Decimal without going through float."""
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field or 'value'} must be a number.")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field or 'value'} must be a number.")
    if not result.is_finite():
        raise ValueError(f"{field or 'value'} must be a finite number.")
    return result


def to_money(value):
    return to_decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_json_compatible(value):
    if isinstance(value, dict):
        return {key: to_json_compatible(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json_compatible(item) for item in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime, datetime.time)):
        return value.isoformat()
    return value
