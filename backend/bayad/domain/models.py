# backend/bayad/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple


class ValidationError(ValueError):
    """Raised when an entity or a requested mutation fails validation."""


AVATAR_COLORS: Tuple[str, ...] = (
    "bg-blue-500",
    "bg-purple-500",
    "bg-pink-500",
    "bg-emerald-500",
    "bg-orange-500",
    "bg-indigo-500",
    "bg-rose-500",
    "bg-cyan-500",
)

DISCOUNT_MODES = ("even", "proportional")
EVERYONE = "everyone"

ZERO = Decimal("0")


def _require_text(value: Any, label: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must be a non-empty string")


def _to_decimal(value: Any, label: str) -> Decimal:
    # bool is an int subclass; never a price
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be numeric")
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"{label} must be numeric") from e
    if not d.is_finite():
        raise ValidationError(f"{label} must be a finite number")
    return d


@dataclass(frozen=True)
class Person:
    """
    A member of the group splitting the bill.
    color_tag is one of AVATAR_COLORS; it only matters for rendering.
    """
    id: str
    name: str
    color_tag: str = AVATAR_COLORS[0]

    def __post_init__(self) -> None:
        _require_text(self.id, "Person.id")
        _require_text(self.name, "Person.name")
        _require_text(self.color_tag, "Person.color_tag")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "color_tag": self.color_tag}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Person":
        return cls(
            id=data["id"],
            name=data["name"],
            color_tag=data.get("color_tag", AVATAR_COLORS[0]),
        )


@dataclass(frozen=True)
class Item:
    """
    A priced line on the bill.

    price is the item's full cost, not a per-person share.
    assigned_person_ids may be empty (excluded from the split), hold one id
    (fully owned) or several (shared equally).
    """
    id: str
    name: str
    price: Decimal
    assigned_person_ids: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _require_text(self.id, "Item.id")
        _require_text(self.name, "Item.name")
        price = _to_decimal(self.price, "Item.price")
        if price < 0:
            raise ValidationError("Item.price must be >= 0")
        object.__setattr__(self, "price", price)

        ids = tuple(self.assigned_person_ids)
        for pid in ids:
            _require_text(pid, "Item.assigned_person_ids entries")
        if len(set(ids)) != len(ids):
            raise ValidationError("Item.assigned_person_ids must be unique")
        object.__setattr__(self, "assigned_person_ids", ids)

    def without_person(self, person_id: str) -> "Item":
        return replace(
            self,
            assigned_person_ids=tuple(pid for pid in self.assigned_person_ids if pid != person_id),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "assigned_person_ids": list(self.assigned_person_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        return cls(
            id=data["id"],
            name=data["name"],
            price=data["price"],
            assigned_person_ids=tuple(data.get("assigned_person_ids", ())),
        )


@dataclass(frozen=True)
class DiscountSpec:
    """
    A single flat discount.

    target is either "everyone" (spread over people with a nonzero subtotal,
    evenly or in proportion to their subtotal) or one Person.id.
    """
    mode: str = "even"
    amount: Decimal = ZERO
    target: str = EVERYONE

    def __post_init__(self) -> None:
        if self.mode not in DISCOUNT_MODES:
            raise ValidationError(f"DiscountSpec.mode must be one of {', '.join(DISCOUNT_MODES)}")
        amount = _to_decimal(self.amount, "DiscountSpec.amount")
        if amount < 0:
            raise ValidationError("DiscountSpec.amount must be >= 0")
        object.__setattr__(self, "amount", amount)
        _require_text(self.target, "DiscountSpec.target")

    @property
    def targets_everyone(self) -> bool:
        return self.target == EVERYONE

    def to_dict(self) -> Dict[str, Any]:
        return {"mode": self.mode, "amount": str(self.amount), "target": self.target}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscountSpec":
        return cls(
            mode=data.get("mode", "even"),
            amount=data.get("amount", "0"),
            target=data.get("target", EVERYONE),
        )


@dataclass(frozen=True)
class LineItem:
    item_name: str
    share: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"item_name": self.item_name, "share": str(self.share)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        return cls(item_name=data["item_name"], share=_to_decimal(data["share"], "LineItem.share"))


@dataclass
class PersonResult:
    """
    One person's slice of the bill.

    Derived by the allocation engine; only stored inside a saved Bill, where
    is_paid is the one field that keeps changing.
    """
    person: Person
    line_items: List[LineItem] = field(default_factory=list)
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total: Decimal = ZERO
    is_paid: bool = False

    def clone(self) -> "PersonResult":
        return PersonResult(
            person=self.person,
            line_items=list(self.line_items),
            subtotal=self.subtotal,
            discount_amount=self.discount_amount,
            total=self.total,
            is_paid=self.is_paid,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "person": self.person.to_dict(),
            "line_items": [li.to_dict() for li in self.line_items],
            "subtotal": str(self.subtotal),
            "discount_amount": str(self.discount_amount),
            "total": str(self.total),
            "is_paid": self.is_paid,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersonResult":
        return cls(
            person=Person.from_dict(data["person"]),
            line_items=[LineItem.from_dict(li) for li in data.get("line_items", [])],
            subtotal=_to_decimal(data.get("subtotal", "0"), "PersonResult.subtotal"),
            discount_amount=_to_decimal(data.get("discount_amount", "0"), "PersonResult.discount_amount"),
            total=_to_decimal(data.get("total", "0"), "PersonResult.total"),
            is_paid=bool(data.get("is_paid", False)),
        )


@dataclass
class Bill:
    """
    A saved split. Only the is_paid flags inside results change after save.
    """
    id: str
    created_at: datetime
    title: str
    total: Decimal
    results: List[PersonResult]

    def __post_init__(self) -> None:
        _require_text(self.id, "Bill.id")
        if not isinstance(self.created_at, datetime):
            raise ValidationError("Bill.created_at must be a datetime")
        if not isinstance(self.title, str):
            raise ValidationError("Bill.title must be a string")

    def result_for(self, person_id: str) -> Optional[PersonResult]:
        for res in self.results:
            if res.person.id == person_id:
                return res
        return None

    def clone(self) -> "Bill":
        return replace(self, results=[r.clone() for r in self.results])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "title": self.title,
            "total": str(self.total),
            "results": [r.to_dict() for r in self.results],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bill":
        return cls(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            title=data.get("title", ""),
            total=_to_decimal(data.get("total", "0"), "Bill.total"),
            results=[PersonResult.from_dict(r) for r in data.get("results", [])],
        )
