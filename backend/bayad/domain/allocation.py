# backend/bayad/domain/allocation.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Context, Decimal, localcontext
from typing import Dict, List, Mapping, Optional, Sequence

from bayad.domain.models import DiscountSpec, Item, LineItem, Person, PersonResult, ZERO


class AllocationError(ValueError):
    """Raised when allocation inputs are invalid."""


# Fixed arithmetic context so results never depend on the caller's
# decimal.getcontext().
DECIMAL_CONTEXT = Context(prec=28)


def split_share(price: Decimal, assignee_count: int) -> Decimal:
    """
    A single assignee's share of an item: price / n, unrounded.
    """
    if assignee_count <= 0:
        raise AllocationError("assignee_count must be >= 1")
    with localcontext(DECIMAL_CONTEXT):
        return price / Decimal(assignee_count)


def distribute_discount(
    subtotals: Mapping[str, Decimal],
    discount: DiscountSpec,
) -> Dict[str, Decimal]:
    """
    Spread a discount over people given their subtotals.

    subtotals is ordered (people order) and maps person_id -> subtotal.
    Returns person_id -> discount_amount for every key in subtotals.

    The applied amount is capped at the sum of subtotals; the excess is
    dropped. A target id that matches nobody drops the discount entirely.
    """
    amounts = {pid: ZERO for pid in subtotals}

    with localcontext(DECIMAL_CONTEXT):
        global_subtotal = sum(subtotals.values(), ZERO)
        effective = min(discount.amount, global_subtotal)
        if effective <= 0:
            return amounts

        if not discount.targets_everyone:
            if discount.target in amounts:
                amounts[discount.target] = effective
            return amounts

        active = [pid for pid, sub in subtotals.items() if sub > 0]
        if not active:
            return amounts

        if discount.mode == "proportional":
            for pid in active:
                # multiply first; keeps exact ratios like 60/90 * 30 == 20
                amounts[pid] = subtotals[pid] * effective / global_subtotal
        else:
            per_person = effective / Decimal(len(active))
            for pid in active:
                amounts[pid] = per_person

    return amounts


def allocate(
    people: Sequence[Person],
    items: Sequence[Item],
    discount: Optional[DiscountSpec] = None,
    paid: Optional[Mapping[str, bool]] = None,
) -> List[PersonResult]:
    """
    Turn people + items + discount into one PersonResult per person, in
    people order.

    Items with no assignees are skipped. Each assignee of an item gets
    price / n as a line item. Assignee ids that match no person are ignored.
    totals are floored at zero.

    Pure and deterministic: iteration is always items, then each item's
    assigned_person_ids, in the order given.
    """
    if not people:
        raise AllocationError("people must contain at least 1 person")

    discount = discount or DiscountSpec()
    paid = paid or {}

    by_id: Dict[str, PersonResult] = {}
    for p in people:
        if p.id in by_id:
            raise AllocationError(f"duplicate person id: {p.id}")
        by_id[p.id] = PersonResult(person=p)

    with localcontext(DECIMAL_CONTEXT):
        for item in items:
            n = len(item.assigned_person_ids)
            if n == 0:
                continue
            share = split_share(item.price, n)
            for pid in item.assigned_person_ids:
                res = by_id.get(pid)
                if res is None:
                    continue
                res.line_items.append(LineItem(item_name=item.name, share=share))
                res.subtotal += share

        subtotals = {p.id: by_id[p.id].subtotal for p in people}
        discounts = distribute_discount(subtotals, discount)

        results: List[PersonResult] = []
        for p in people:
            res = by_id[p.id]
            res.discount_amount = discounts[p.id]
            res.total = max(ZERO, res.subtotal - res.discount_amount)
            res.is_paid = bool(paid.get(p.id, False))
            results.append(res)

    return results


@dataclass(frozen=True)
class SplitSummary:
    grand_total: Decimal
    active_count: int
    paid_count: int

    @property
    def status(self) -> str:
        if self.active_count > 0 and self.paid_count == self.active_count:
            return "settled"
        if self.paid_count > 0:
            return "partial"
        return "unpaid"

    def to_dict(self) -> Dict[str, object]:
        return {
            "grand_total": str(self.grand_total),
            "active_count": self.active_count,
            "paid_count": self.paid_count,
            "status": self.status,
        }


def summarize(results: Sequence[PersonResult]) -> SplitSummary:
    """
    Grand total plus paid progress among people who owe something.
    """
    with localcontext(DECIMAL_CONTEXT):
        grand_total = sum((r.total for r in results), ZERO)
    active = [r for r in results if r.total > 0]
    return SplitSummary(
        grand_total=grand_total,
        active_count=len(active),
        paid_count=sum(1 for r in active if r.is_paid),
    )
