from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from core import constants
from core.errors import ValidationError

# Quantities are stored as Numeric(14, 3), prices as Numeric(12, 2)
_MILLI = Decimal("0.001")
_CENT = Decimal("0.01")

TEXT_FIELDS = {
    "name": constants.NAME_MAX_LENGTH,
    "category": constants.CATEGORY_MAX_LENGTH,
    "unit": constants.UNIT_MAX_LENGTH,
    "supplier": constants.SUPPLIER_MAX_LENGTH,
}

NUMBER_FIELDS = {
    "min_stock": (constants.MAX_MIN_STOCK, _MILLI),
    "price": (constants.MAX_PRICE, _CENT),
}

EDITABLE_FIELDS = set(TEXT_FIELDS) | set(NUMBER_FIELDS)


def to_decimal(value) -> Optional[Decimal]:
    """Coerce an int/float/str/Decimal to a finite Decimal, or None if it is not a number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        value = str(value)
    try:
        d = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def _places_error(field: str, d: Decimal, quantum: Decimal) -> Optional[str]:
    # Range is checked first, so quantize never overflows the context precision
    if d != d.quantize(quantum):
        return f"{field} can only have up to {-quantum.as_tuple().exponent} decimal places"
    return None


def _check_text(field: str, value, errors: Dict[str, str]) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        errors[field] = f"{field} is required"
        return None
    if not isinstance(value, str):
        errors[field] = f"{field} must be text"
        return None
    value = value.strip()
    max_length = TEXT_FIELDS[field]
    if len(value) > max_length:
        errors[field] = f"{field} must be at most {max_length} characters"
        return None
    return value


def _check_number(
    field: str, value, maximum: Decimal, errors: Dict[str, str], quantum: Decimal = _MILLI
) -> Optional[Decimal]:
    if value is None:
        errors[field] = f"{field} is required"
        return None
    d = to_decimal(value)
    if d is None:
        errors[field] = f"{field} must be a number"
        return None
    if d < 0:
        errors[field] = f"{field} cannot be negative"
        return None
    if d > maximum:
        errors[field] = f"{field} is too large"
        return None
    problem = _places_error(field, d, quantum)
    if problem:
        errors[field] = problem
        return None
    return d


def validate_item_fields(fields: dict, *, partial: bool = False) -> dict:
    """Validate item attributes and return the cleaned values.

    With ``partial=True`` only the supplied keys are checked (field edits).
    Every violation is collected before raising, so callers see all of them.
    ``quantity`` is never accepted here; quantities move through the ledger.
    """
    errors: Dict[str, str] = {}
    cleaned = {}

    for field in fields:
        if field == "quantity":
            errors["quantity"] = "quantity can only be changed through a quantity adjustment"
        elif field not in EDITABLE_FIELDS:
            errors[field] = "unknown field"

    for field in TEXT_FIELDS:
        if partial and field not in fields:
            continue
        value = _check_text(field, fields.get(field), errors)
        if value is not None:
            cleaned[field] = value

    for field, (maximum, quantum) in NUMBER_FIELDS.items():
        if partial and field not in fields:
            continue
        value = _check_number(field, fields.get(field), maximum, errors, quantum)
        if value is not None:
            cleaned[field] = value

    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_initial_quantity(value) -> Decimal:
    errors: Dict[str, str] = {}
    d = _check_number("quantity", value, constants.MAX_QUANTITY, errors)
    if errors:
        raise ValidationError(errors)
    return d


def validate_delta(value) -> Decimal:
    d = to_decimal(value)
    if d is None:
        raise ValidationError({"delta": "delta must be a number"})
    if abs(d) > constants.MAX_ADJUSTMENT:
        raise ValidationError({"delta": "delta is too large"})
    problem = _places_error("delta", d, _MILLI)
    if problem:
        raise ValidationError({"delta": problem})
    return d
