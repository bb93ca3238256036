"""
Identifiers -- pure formatting of SKUs and voucher numbers.

Responsibility:
    Renders an allocated sequence integer plus descriptive fields into the
    externally visible identifier string, and parses voucher numbers back.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by
    ``SkuService`` and ``VoucherService`` after allocation.

Invariants enforced:
    - Fixed-width zero padding.  The prefix-scan voucher allocator orders
      identifiers as strings; padding is what makes string order agree with
      numeric order.  A sequence that no longer fits its width raises
      ``SequenceOverflowError`` instead of producing a wider string.
    - Codes are uppercase alphanumeric; anything else is stripped.

Formats:
    SKU      KG + CATEGORY + GEMSTONE + (COLOR | XX) + WEIGHT + SEQ(5)
             format_sku("lg", "sap", "red", 5.25, 7) == "KGLGSAPRED52500007"
    Voucher  PREFIX/YEAR/SEQ(6)
             format_voucher_number(VoucherType.EXPENSE, 2024, 42) == "EXP/2024/000042"
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum, unique

from gem_kernel.exceptions import InvalidIdentifierInputError, SequenceOverflowError

SKU_PREFIX = "KG"
SKU_SEQUENCE_WIDTH = 5
MISSING_CODE = "XX"

VOUCHER_SEQUENCE_WIDTH = 6

_NON_ALPHANUMERIC = re.compile(r"[^A-Z0-9]")
_TWO_PLACES = Decimal("0.01")


@unique
class VoucherType(str, Enum):
    """Accounting voucher types."""

    EXPENSE = "EXPENSE"
    PAYMENT = "PAYMENT"
    RECEIPT = "RECEIPT"
    REVERSAL = "REVERSAL"


VOUCHER_PREFIXES: dict[VoucherType, str] = {
    VoucherType.EXPENSE: "EXP",
    VoucherType.PAYMENT: "PAY",
    VoucherType.RECEIPT: "RCT",
    VoucherType.REVERSAL: "REV",
}

_TYPES_BY_PREFIX: dict[str, VoucherType] = {v: k for k, v in VOUCHER_PREFIXES.items()}


def max_sequence(width: int) -> int:
    """Largest sequence that fits in ``width`` digits."""
    return 10**width - 1


def _check_sequence(series: str, sequence: int, width: int) -> None:
    if isinstance(sequence, bool) or not isinstance(sequence, int):
        raise InvalidIdentifierInputError("sequence", sequence, "must be an integer")
    if sequence < 1:
        raise InvalidIdentifierInputError("sequence", sequence, "must be >= 1")
    if sequence > max_sequence(width):
        raise SequenceOverflowError(series, sequence, width)


def normalize_code(value: str | None) -> str:
    """Uppercase and strip every non-alphanumeric character."""
    if not value:
        return ""
    return _NON_ALPHANUMERIC.sub("", value.upper())


def format_weight_suffix(weight_value: Decimal | float | int | str) -> str:
    """
    Weight to two decimal places with the point removed.

    5.25 -> "525", 0.5 -> "050", 12 -> "1200".
    """
    try:
        # str() first so floats round on their shortest repr, not binary noise
        weight = Decimal(str(weight_value))
    except (InvalidOperation, ValueError):
        raise InvalidIdentifierInputError("weight_value", weight_value, "not a number")
    if not weight.is_finite() or weight < 0:
        raise InvalidIdentifierInputError("weight_value", weight_value, "must be >= 0")
    try:
        rounded = weight.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidIdentifierInputError("weight_value", weight_value, "too large")
    return f"{rounded:.2f}".replace(".", "")


def format_sku(
    category_code: str,
    gemstone_code: str,
    color_code: str | None,
    weight_value: Decimal | float | int | str,
    sequence: int,
) -> str:
    """
    Render a SKU from its descriptive codes and an allocated sequence.

    Raises:
        InvalidIdentifierInputError: empty category/gemstone code, negative
            weight, or sequence < 1.
        SequenceOverflowError: sequence needs more than 5 digits.
    """
    category = normalize_code(category_code)
    gemstone = normalize_code(gemstone_code)
    if not category:
        raise InvalidIdentifierInputError("category_code", category_code, "empty after normalization")
    if not gemstone:
        raise InvalidIdentifierInputError("gemstone_code", gemstone_code, "empty after normalization")
    color = normalize_code(color_code) or MISSING_CODE

    _check_sequence("sku", sequence, SKU_SEQUENCE_WIDTH)

    return (
        f"{SKU_PREFIX}{category}{gemstone}{color}"
        f"{format_weight_suffix(weight_value)}"
        f"{sequence:0{SKU_SEQUENCE_WIDTH}d}"
    )


def voucher_prefix(voucher_type: VoucherType | str, year: int) -> str:
    """Search prefix shared by every voucher of a type in a year."""
    return f"{VOUCHER_PREFIXES[VoucherType(voucher_type)]}/{year}/"


def format_voucher_number(voucher_type: VoucherType | str, year: int, sequence: int) -> str:
    """
    Render ``PREFIX/YEAR/NNNNNN``.

    Raises:
        InvalidIdentifierInputError: sequence < 1.
        SequenceOverflowError: sequence needs more than 6 digits.
    """
    prefix = voucher_prefix(voucher_type, year)
    _check_sequence(prefix, sequence, VOUCHER_SEQUENCE_WIDTH)
    return f"{prefix}{sequence:0{VOUCHER_SEQUENCE_WIDTH}d}"


def parse_voucher_suffix(voucher_number: str) -> int | None:
    """Numeric suffix of a voucher number, or None when it is not all digits."""
    suffix = voucher_number.rsplit("/", 1)[-1]
    if not suffix or not suffix.isascii() or not suffix.isdigit():
        return None
    return int(suffix)


def parse_voucher_number(voucher_number: str) -> tuple[VoucherType, int, int] | None:
    """Split a voucher number into ``(type, year, sequence)``; None if malformed."""
    parts = voucher_number.split("/")
    if len(parts) != 3:
        return None
    prefix, year, _ = parts
    voucher_type = _TYPES_BY_PREFIX.get(prefix)
    sequence = parse_voucher_suffix(voucher_number)
    if voucher_type is None or sequence is None or not (year.isascii() and year.isdigit()):
        return None
    return voucher_type, int(year), sequence
