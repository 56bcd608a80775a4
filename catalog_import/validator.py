"""
Row Validator Module
Checks one raw catalog row against the declared column rules.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union


EXPECTED_HEADER: Tuple[str, ...] = (
    'Handle',
    'Title',
    'Vendor',
    'Variant SKU',
    'Variant Inventory Qty',
    'Variant Price',
    'Variant Barcode',
)

EXPECTED_COLUMN_COUNT = len(EXPECTED_HEADER)

PRICE_DECIMAL_PLACES = 2

# Storage limits: variants.quantity is a 32-bit Integer, variants.price is Numeric(10, 2)
MAX_QUANTITY = 2 ** 31 - 1
MAX_PRICE = Decimal("99999999.99")


class RejectionReason(str, Enum):
    """Why a row was counted as corrupted."""

    COLUMN_COUNT_MISMATCH = "column_count_mismatch"
    SCHEMA_KEY_MISMATCH = "schema_key_mismatch"
    SCHEMA_VALIDATION_FAILED = "schema_validation_failed"


class FieldValueError(ValueError):
    """Raised by a field parser for a value it cannot accept."""


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def __str__(self) -> str:
        return f"'{self.field}': {self.message}"


@dataclass(frozen=True)
class ValidatedRow:
    handle: str
    title: str
    vendor: str
    sku: str
    quantity: int
    price: Decimal
    barcode: Optional[str]


@dataclass(frozen=True)
class RowRejection:
    reason: RejectionReason
    detail: str
    errors: Tuple[FieldError, ...] = field(default_factory=tuple)


ValidationResult = Union[ValidatedRow, RowRejection]


def _parse_text(value: str) -> str:
    return value


def _parse_optional_text(value: str) -> Optional[str]:
    return value or None


def _parse_quantity(value: str) -> int:
    try:
        quantity = int(value)
    except ValueError:
        raise FieldValueError(f"not an integer: {value!r}")
    if quantity < 0:
        raise FieldValueError(f"must not be negative: {quantity}")
    if quantity > MAX_QUANTITY:
        raise FieldValueError(f"exceeds maximum of {MAX_QUANTITY}: {quantity}")
    return quantity


def _parse_price(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation:
        raise FieldValueError(f"not a decimal number: {value!r}")
    if not price.is_finite():
        raise FieldValueError(f"not a finite number: {value!r}")
    if price < 0:
        raise FieldValueError(f"must not be negative: {value}")
    if -price.as_tuple().exponent > PRICE_DECIMAL_PLACES:
        raise FieldValueError(f"more than {PRICE_DECIMAL_PLACES} decimal places: {value}")
    if price > MAX_PRICE:
        raise FieldValueError(f"exceeds maximum of {MAX_PRICE}: {value}")
    return price


@dataclass(frozen=True)
class FieldRule:
    attribute: str
    required: bool
    parser: Callable[[str], Any]


FIELD_RULES: Dict[str, FieldRule] = {
    'Handle': FieldRule('handle', True, _parse_text),
    'Title': FieldRule('title', True, _parse_text),
    'Vendor': FieldRule('vendor', False, _parse_text),
    'Variant SKU': FieldRule('sku', True, _parse_text),
    'Variant Inventory Qty': FieldRule('quantity', True, _parse_quantity),
    'Variant Price': FieldRule('price', True, _parse_price),
    'Variant Barcode': FieldRule('barcode', False, _parse_optional_text),
}

if set(FIELD_RULES) != set(EXPECTED_HEADER):
    raise RuntimeError("FIELD_RULES must cover exactly the expected header")


def validate_row(raw_row: Sequence[str], header: Sequence[str]) -> ValidationResult:
    """
    Validate a raw csv record.

    Args:
        raw_row: Record values in file order
        header: Header names in file order

    Returns:
        ValidatedRow on success, RowRejection describing the first failing check
    """
    if len(raw_row) != len(header) or len(header) != EXPECTED_COLUMN_COUNT:
        return RowRejection(
            RejectionReason.COLUMN_COUNT_MISMATCH,
            f"Expected {len(header)} columns, got {len(raw_row)}",
        )

    row_data = dict(zip(header, raw_row))
    if set(row_data) != set(EXPECTED_HEADER):
        missing = sorted(set(EXPECTED_HEADER) - set(row_data))
        extra = sorted(set(row_data) - set(EXPECTED_HEADER))
        return RowRejection(
            RejectionReason.SCHEMA_KEY_MISMATCH,
            f"Invalid keys in row data (missing: {missing}, unexpected: {extra})",
        )

    values: Dict[str, Any] = {}
    errors: List[FieldError] = []
    for column, rule in FIELD_RULES.items():
        raw_value = (row_data[column] or '').strip()
        if rule.required and not raw_value:
            errors.append(FieldError(column, "required value is missing"))
            continue
        try:
            values[rule.attribute] = rule.parser(raw_value)
        except FieldValueError as e:
            errors.append(FieldError(column, str(e)))

    if errors:
        return RowRejection(
            RejectionReason.SCHEMA_VALIDATION_FAILED,
            '; '.join(str(error) for error in errors),
            tuple(errors),
        )

    return ValidatedRow(**values)
