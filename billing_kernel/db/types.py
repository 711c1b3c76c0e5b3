"""
Money and currency helpers.

Monetary columns are Numeric(18, 2) and currency columns String(3) in every
model.  No floats: amounts are ``Decimal`` end to end.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def money_from_str(value: str) -> Decimal:
    """
    Parse a monetary amount from user input.

    Raises:
        ValueError: If the string is not a finite number.
    """
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount


def round_money(amount: Decimal) -> Decimal:
    """Round to the canonical number of decimal places (half up)."""
    quantum = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)
    return amount.quantize(quantum, rounding=DEFAULT_ROUNDING)


def normalize_currency(code: str) -> str:
    """
    Upper-case and validate a three-letter currency code.

    Raises:
        ValueError: If the code is not three ASCII letters.
    """
    normalized = (code or "").strip().upper()
    if not _CURRENCY_RE.match(normalized):
        raise ValueError(f"Invalid currency code: {code!r}")
    return normalized
