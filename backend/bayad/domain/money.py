# backend/bayad/domain/money.py
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


class MoneyError(ValueError):
    """Raised when currency/money parsing or formatting fails."""


CENT = Decimal("0.01")

# Conservative money-token parsing:
# - Optional currency marker before the number ($, ₱, P, PHP)
# - Decimal "." or ","
# - Rejects thousands separators to avoid guessing ("1,234.56")
# - Rejects negatives; a scanned refund line is not a purchasable item
_MONEY_TOKEN_RE = re.compile(
    r"^\s*(?:\$|₱|PHP|P)?\s*(\d{1,7})(?:[.,](\d{1,2}))?\s*$",
    re.IGNORECASE,
)


def parse_amount(
    token: str,
    *,
    max_amount: Decimal = Decimal("10000000"),
) -> Decimal:
    """
    Parse a human/OCR money token into a Decimal.

    Accepts examples:
      "12" -> Decimal("12")
      "12.34" -> Decimal("12.34")
      "₱12.34" / "$12.34" / "PHP 12.34" -> Decimal("12.34")
      "12,34" -> Decimal("12.34")  (decimal comma)

    Rejects:
      "1,234.56" (thousands separator ambiguity)
      "12.345"
      "abc"
      "-12.34" / "5.00-"
    """
    if not isinstance(token, str):
        raise MoneyError("token must be a string")

    s = token.strip()
    if s == "":
        raise MoneyError("token is empty")

    if re.search(r"\d,\d{3}", s):
        raise MoneyError(f"ambiguous thousands separator format: {token}")

    m = _MONEY_TOKEN_RE.match(s)
    if not m:
        raise MoneyError(f"invalid money token: {token}")

    whole, dec_digits = m.group(1), m.group(2)
    if dec_digits is None:
        amount = Decimal(whole)
    else:
        amount = Decimal(f"{whole}.{dec_digits.ljust(2, '0')}")

    if amount > max_amount:
        raise MoneyError("amount exceeds safety limit")

    return amount


def to_decimal(value: object) -> Decimal:
    """
    Convert a typed amount (str, int, float, Decimal) to Decimal without
    rounding. Floats go through str() so 0.1 stays 0.1.
    """
    if isinstance(value, bool):
        raise MoneyError(f"invalid decimal value: {value}")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise MoneyError(f"invalid decimal value: {value}") from e
    if not d.is_finite():
        raise MoneyError(f"invalid decimal value: {value}")
    return d


def round_cents(amount: Decimal) -> Decimal:
    """Round to two places, half-up. Display only; the engine never rounds."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal, *, symbol: str = "₱") -> str:
    """
    Format an amount like "₱1,234.50".
    """
    rounded = round_cents(to_decimal(amount))
    sign = "-" if rounded < 0 else ""
    return f"{sign}{symbol}{abs(rounded):,.2f}"
