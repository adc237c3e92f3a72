"""Decimal amount <-> smallest unit conversion.

All balance comparisons happen on integers in the asset's smallest unit.
Floats are never involved.
"""
import re
from decimal import Decimal, InvalidOperation, localcontext

from zkaccount.exceptions import InvalidInputError

NATIVE_DECIMALS = 18

_AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$|^\.\d+$")


def parse_units(amount: str, decimals: int) -> int:
    """Convert a decimal string into an integer amount of smallest units.

    Raises:
        InvalidInputError: If the string is not a plain non-negative decimal or
            carries more fractional digits than the asset supports.
    """
    if amount is None:
        raise InvalidInputError("Amount is required")
    text = str(amount).strip()
    if not text or not _AMOUNT_RE.match(text):
        raise InvalidInputError(f"Amount '{amount}' is not a valid decimal number")

    try:
        value = Decimal(text)
    except InvalidOperation:
        raise InvalidInputError(f"Amount '{amount}' is not a valid decimal number")

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidInputError(
            f"Amount '{amount}' has more than {decimals} decimal places"
        )
    return int(scaled)


def format_units(raw: int, decimals: int) -> str:
    """Render an integer amount of smallest units as an exact decimal string."""
    with localcontext() as ctx:
        ctx.prec = 100
        text = format(Decimal(int(raw)).scaleb(-decimals), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def validate_positive_amount(amount: str) -> Decimal:
    """Check that amount is a decimal string greater than zero."""
    text = (amount or "").strip()
    if not text or not _AMOUNT_RE.match(text):
        raise InvalidInputError("Valid amount greater than 0 is required")
    value = Decimal(text)
    if value <= 0:
        raise InvalidInputError("Valid amount greater than 0 is required")
    return value
