"""
Price codec -- mod-9 check digit for display prices.

Responsibility:
    Appends a self-verifying check digit to an integer price so that a
    price printed on a label or shared page can be re-validated when it is
    typed back in.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Independent of the
    allocators.

Algorithm:
    1. Normalize: round |price| half-up to an integer.
    2. check = (sum of decimal digits) % 9.
    3. encoded = str(normalized) + str(check).

    7850 -> 7+8+5+0 = 20 -> 20 % 9 = 2 -> "78502"

Limitations:
    Only nine check values exist, so a random corruption passes about 11%
    of the time, and because a digit sum ignores order no transposition is
    ever detected.  This is casual tamper evidence for human-facing display,
    not financial-grade verification.  Changing the scheme would invalidate
    every label already printed, so it is kept as is.

Failure modes:
    None -- validation returns False and decoding returns None; nothing raises
    on malformed input.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_MODULUS = 9


@dataclass(frozen=True)
class EncodedPrice:
    """A normalized price and its check-digit rendering. Never persisted."""

    normalized_integer: int
    encoded_string: str
    check_digit: int


def _is_ascii_digits(value: str) -> bool:
    return value.isascii() and value.isdigit()


def _check_digit(digits: str) -> int:
    return sum(int(ch) for ch in digits) % _MODULUS


def normalize_price(price: Decimal | float | int | str) -> int:
    """Round the absolute value half-up to an integer."""
    try:
        amount = abs(Decimal(str(price)))
    except InvalidOperation:
        raise ValueError(f"Not a price: {price!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a finite price: {price!r}")
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def encode_price(price: Decimal | float | int | str) -> EncodedPrice:
    """
    Encode a price with its mod-9 check digit.

    Raises:
        ValueError: price is not a finite number.
    """
    normalized = normalize_price(price)
    digits = str(normalized)
    check = _check_digit(digits)
    return EncodedPrice(
        normalized_integer=normalized,
        encoded_string=f"{digits}{check}",
        check_digit=check,
    )


def validate_price(encoded: str | None) -> bool:
    """True when the last digit is the mod-9 digit sum of the rest."""
    if not encoded or len(encoded) < 2:
        return False
    body, claimed = encoded[:-1], encoded[-1]
    if not _is_ascii_digits(body) or not _is_ascii_digits(claimed):
        return False
    return _check_digit(body) == int(claimed)


def decode_price(encoded: str | None) -> int | None:
    """Base price of a valid encoded string, else None."""
    if not validate_price(encoded):
        return None
    return int(encoded[:-1])
