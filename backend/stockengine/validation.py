# Overview: Input coercion for quantities, money and ids used by the services.
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

# Matches the Numeric scales declared on the models
QUANTITY_QUANT = Decimal("0.0001")
COST_QUANT = Decimal("0.0001")
CASH_QUANT = Decimal("0.01")

# Upper bound keeps values inside Numeric(18, 4)
MAX_QUANTITY = Decimal("99999999999999")

# Matches the String(n) note and code columns
MAX_NOTE_LENGTH = 255
MAX_CODE_LENGTH = 64


def to_decimal(value, field: str, *, quant: Decimal = QUANTITY_QUANT) -> Decimal:
    """
    Coerce int/str/Decimal input into a quantized Decimal.

    Floats are accepted but go through str() so 0.1 stays 0.1.
    Booleans and NaN/Infinity are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required and must be numeric")
    if isinstance(value, float):
        value = str(value)
    try:
        dec = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be numeric", value=str(value))
    if not dec.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    dec = dec.quantize(quant, rounding=ROUND_HALF_UP)
    if abs(dec) > MAX_QUANTITY:
        raise ValidationError(f"{field} is out of range")
    return dec


def to_quantity(value, field: str = "quantity") -> Decimal:
    return to_decimal(value, field, quant=QUANTITY_QUANT)


def to_positive_quantity(value, field: str = "quantity") -> Decimal:
    qty = to_quantity(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be positive", value=str(qty))
    return qty


def to_nonzero_quantity(value, field: str = "quantity_change") -> Decimal:
    qty = to_quantity(value, field)
    if qty == 0:
        raise ValidationError(f"{field} cannot be zero")
    return qty


def to_cost(value, field: str = "unit_cost") -> Decimal | None:
    """Unit costs are optional; when given they must be >= 0."""
    if value is None:
        return None
    cost = to_decimal(value, field, quant=COST_QUANT)
    if cost < 0:
        raise ValidationError(f"{field} cannot be negative")
    return cost


def to_cash(value, field: str = "amount") -> Decimal:
    return to_decimal(value, field, quant=CASH_QUANT)


def to_text(value, field: str = "notes", *, max_length: int = MAX_NOTE_LENGTH) -> str | None:
    """Optional free text, rejected when longer than its column holds."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return value


def require_items(items, what: str = "items") -> list:
    if not items:
        raise ValidationError(f"{what} cannot be empty")
    if isinstance(items, (str, bytes, dict)):
        raise ValidationError(f"{what} must be a list")
    return list(items)


def require_key(data: dict, key: str, what: str = "item"):
    if not isinstance(data, dict):
        raise ValidationError(f"{what} must be an object")
    if key not in data or data[key] is None:
        raise ValidationError(f"Missing required field on {what}: {key}")
    return data[key]


def format_decimal(value) -> str | None:
    """Serialize a Decimal column for JSON without float rounding."""
    if value is None:
        return None
    dec = Decimal(value)
    text = format(dec.normalize(), "f")
    return "0" if text in ("-0", "") else text
