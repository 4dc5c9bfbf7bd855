from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from PIL import Image, ImageDraw, ImageFont

from bayad.domain.allocation import summarize
from bayad.domain.models import PersonResult, ValidationError
from bayad.domain.money import format_amount

_STATUS_LABELS = {
    "settled": "All settled",
    "partial": "Partially paid",
    "unpaid": "Unpaid",
}


@dataclass(frozen=True)
class Payee:
    """Who to pay and how (e.g. GCash number or bank account)."""
    name: str
    payment_method: str
    payment_details: str = ""
    bank_name: Optional[str] = None
    account_number: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Payee.name must be a non-empty string")
        if not isinstance(self.payment_method, str) or not self.payment_method.strip():
            raise ValidationError("Payee.payment_method must be a non-empty string")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Payee":
        return cls(
            name=data.get("name", ""),
            payment_method=data.get("payment_method", ""),
            payment_details=data.get("payment_details", "") or "",
            bank_name=data.get("bank_name") or None,
            account_number=data.get("account_number") or None,
        )

    def lines(self) -> List[str]:
        out = [f"Pay to: {self.name}", f"Via: {self.payment_method}"]
        if self.payment_details:
            out.append(self.payment_details)
        if self.bank_name:
            out.append(f"Bank: {self.bank_name}")
        if self.account_number:
            out.append(f"Account: {self.account_number}")
        return out


def summary_lines(
    results: Sequence[PersonResult],
    *,
    payee: Optional[Payee] = None,
    title: Optional[str] = None,
    currency_symbol: str = "₱",
) -> List[str]:
    """
    The breakdown as plain lines. People who owe nothing are left out.
    """
    summary = summarize(results)
    lines: List[str] = [title or "Split Overview"]
    lines.append(
        f"Total: {format_amount(summary.grand_total, symbol=currency_symbol)}"
        f" ({_STATUS_LABELS[summary.status]}, {summary.paid_count}/{summary.active_count} paid)"
    )

    for res in results:
        if res.total <= 0:
            continue
        lines.append("")
        mark = "[x]" if res.is_paid else "[ ]"
        lines.append(f"{mark} {res.person.name}: {format_amount(res.total, symbol=currency_symbol)}")
        for li in res.line_items:
            lines.append(f"    {li.item_name}  {format_amount(li.share, symbol=currency_symbol)}")
        if res.discount_amount > 0:
            lines.append(f"    Discount  -{format_amount(res.discount_amount, symbol=currency_symbol)}")

    if payee is not None:
        lines.append("")
        lines.extend(payee.lines())

    return lines


def render_summary_text(
    results: Sequence[PersonResult],
    *,
    payee: Optional[Payee] = None,
    title: Optional[str] = None,
    currency_symbol: str = "₱",
) -> str:
    return "\n".join(summary_lines(results, payee=payee, title=title, currency_symbol=currency_symbol))


def render_summary_png(
    results: Sequence[PersonResult],
    *,
    payee: Optional[Payee] = None,
    title: Optional[str] = None,
    currency_symbol: str = "PHP ",
    width: int = 640,
    padding: int = 24,
    line_height: int = 22,
) -> bytes:
    """
    Draw the breakdown onto a light card and return PNG bytes.

    Pillow's default font has no peso glyph, hence the "PHP " symbol.
    """
    lines = summary_lines(results, payee=payee, title=title, currency_symbol=currency_symbol)
    font = ImageFont.load_default()
    height = padding * 2 + line_height * len(lines)

    img = Image.new("RGB", (width, height), color=(248, 250, 252))
    draw = ImageDraw.Draw(img)
    y = padding
    for idx, text in enumerate(lines):
        fill = (79, 70, 229) if idx == 0 else (30, 41, 59)
        draw.text((padding, y), text, fill=fill, font=font)
        y += line_height

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
