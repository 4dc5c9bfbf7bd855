# backend/bayad/services/receipt_parser.py
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence

from bayad.domain.money import MoneyError, parse_amount


class ReceiptParseError(ValueError):
    """Raised when parsing fails or inputs are invalid."""


@dataclass(frozen=True)
class ParsedItem:
    name: str
    price: Decimal


# Price token expected at end of line. We keep it permissive because
# parse_amount() does the strict validation.
#
# Captures examples:
#   12.34
#   $12.34
#   ₱12.34
#   PHP 12.34
#   12,34
#   $12
# A trailing "-" (refund/void) leaves no token at end of line, so those
# lines never match.
_PRICE_AT_END_RE = re.compile(
    r"""
    (?<![A-Za-z0-9.,])     # not glued to a word or number
    (?P<token>
      (?:\$|₱|PHP|P)?\s*     # optional currency marker
      \d{1,7}                # digits
      (?:[.,]\d{1,2})?       # optional decimals
    )
    \s*$                     # end of line
    """,
    re.VERBOSE | re.IGNORECASE,
)

# Common receipt summary lines we skip by default (conservative).
_EXCLUDE_KEYWORDS = (
    "subtotal",
    "sub total",
    "tax",
    "vat",
    "tip",
    "gratuity",
    "service",
    "total",
    "balance",
    "change",
    "cash",
    "card",
    "visa",
    "mastercard",
    "amex",
    "gcash",
    "amount due",
    "discount",
    # metadata / footer
    "date:",
    "time",
    "tin",
    "trans",
    "transaction",
    "customer copy",
    "please retain",
    "receipt",
    "auth",
    "approval",
    "ref",
)

_HAS_LETTER = re.compile(r"[A-Za-z]")
_LONG_DIGIT_RUN = re.compile(r"\d{6,}")          # e.g., transaction IDs, barcodes
_TIME_LIKE = re.compile(r"\b\d{1,2}:\d{2}(:\d{2})?\b")  # 21:41 or 21:41:06
_DIGIT = re.compile(r"\d")
_WORD = re.compile(r"[a-z]+")


def _looks_like_summary_line(text: str) -> bool:
    t = " ".join(text.lower().split())
    words = set(_WORD.findall(t))
    for k in _EXCLUDE_KEYWORDS:
        if " " in k or k.endswith(":"):
            if k in t:
                return True
        elif k in words or any(w.startswith(k) for w in words if len(k) > 4):
            return True
    return False


def extract_items_from_lines(
    lines: Sequence[str],
    *,
    exclude_summary_lines: bool = True,
    min_price: Decimal = Decimal("0.01"),
) -> List[ParsedItem]:
    """
    Extract items from OCR'd receipt lines.

    Conservative approach:
    - Look for a money-like token at end of the line
    - Parse it with parse_amount() (single source of truth)
    - Name is everything before the token
    - Optionally skip summary lines like TOTAL/TAX/etc.
    - Skip items priced below min_price
    """
    if not isinstance(lines, (list, tuple)):
        raise ReceiptParseError("lines must be a sequence of strings")

    items: List[ParsedItem] = []
    for raw in lines:
        if not isinstance(raw, str):
            raise ReceiptParseError("each line must be a string")
        line = raw.strip()
        if not line:
            continue

        if exclude_summary_lines and _looks_like_summary_line(line):
            continue

        m = _PRICE_AT_END_RE.search(line)
        if not m:
            continue

        try:
            price = parse_amount(m.group("token"))
        except MoneyError:
            continue

        if price < min_price:
            continue

        name = line[: m.start("token")].strip(" .:-\t")
        if not name:
            continue

        if _LONG_DIGIT_RUN.search(name):
            continue

        if _TIME_LIKE.search(name):
            continue

        if not _HAS_LETTER.search(name):
            continue

        if len(name) > 60:
            continue

        # mostly digits/punctuation => not a menu item
        digits = len(_DIGIT.findall(name))
        non_space = len([c for c in name if not c.isspace()])
        if non_space > 0 and digits / non_space > 0.60:
            continue

        items.append(ParsedItem(name=name, price=price))

    return items


def extract_items_from_ocr_text(
    ocr_text: str,
    *,
    exclude_summary_lines: bool = True,
    min_price: Decimal = Decimal("0.01"),
) -> List[ParsedItem]:
    """
    Convenience: split OCR text by newlines, then run extract_items_from_lines.
    """
    if not isinstance(ocr_text, str):
        raise ReceiptParseError("ocr_text must be a string")

    return extract_items_from_lines(
        ocr_text.splitlines(),
        exclude_summary_lines=exclude_summary_lines,
        min_price=min_price,
    )
