# backend/bayad/domain/session.py
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from bayad.db.repository import SessionRepository, default_people
from bayad.domain.allocation import SplitSummary, allocate, summarize
from bayad.domain.history import HistoryStore, default_title
from bayad.domain.models import (
    AVATAR_COLORS,
    Bill,
    DiscountSpec,
    Item,
    Person,
    PersonResult,
    ValidationError,
)
from bayad.domain.money import MoneyError, to_decimal

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def _clean_name(name: object, label: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{label} must be a non-empty string")
    return name.strip()


def _clean_price(price: object, label: str = "price") -> Decimal:
    try:
        d = to_decimal(price)
    except MoneyError as e:
        raise ValidationError(f"{label} must be numeric") from e
    if d < 0:
        raise ValidationError(f"{label} must be >= 0")
    return d


class BillSession:
    """
    The bill being split right now: people, items, discount and paid flags.

    Mutations are synchronous and serialized by a lock. Each one is applied
    in memory first, then written through to the repository; a
    PersistenceFailure from the write propagates but the in-memory change
    stands. `results` is recomputed in full after any mutation.
    """

    def __init__(self, repository: SessionRepository, *, id_factory: Callable[[], str] = _new_id):
        self.repository = repository
        self._id_factory = id_factory
        self._lock = threading.RLock()
        self._people: List[Person] = repository.load_people()
        self._items: List[Item] = repository.load_items()
        self._discount: DiscountSpec = repository.load_discount()
        self._paid: Dict[str, bool] = repository.load_paid()
        self._results: Optional[List[PersonResult]] = None
        self._drop_unknown_people()

    def _drop_unknown_people(self) -> None:
        # Blobs are stored independently, so items and paid flags can outlive
        # a person after a fallback or a half-finished write.
        known = {p.id for p in self._people}
        cleaned = [
            replace(it, assigned_person_ids=tuple(pid for pid in it.assigned_person_ids if pid in known))
            for it in self._items
        ]
        stale_paid = [pid for pid in self._paid if pid not in known]
        if cleaned == self._items and not stale_paid:
            return
        logger.warning(
            "Dropped assignments to unknown people on load (%s stale paid flags)", len(stale_paid)
        )
        self._items = cleaned
        for pid in stale_paid:
            del self._paid[pid]

    # --- read side ---

    @property
    def people(self) -> Tuple[Person, ...]:
        return tuple(self._people)

    @property
    def items(self) -> Tuple[Item, ...]:
        return tuple(self._items)

    @property
    def discount(self) -> DiscountSpec:
        return self._discount

    @property
    def paid(self) -> Mapping[str, bool]:
        return dict(self._paid)

    @property
    def results(self) -> List[PersonResult]:
        with self._lock:
            if self._results is None:
                self._results = allocate(self._people, self._items, self._discount, self._paid)
            return [r.clone() for r in self._results]

    def summary(self) -> SplitSummary:
        return summarize(self.results)

    def person(self, person_id: str) -> Optional[Person]:
        for p in self._people:
            if p.id == person_id:
                return p
        return None

    def item(self, item_id: str) -> Optional[Item]:
        for it in self._items:
            if it.id == item_id:
                return it
        return None

    def _invalidate(self) -> None:
        self._results = None

    # --- people ---

    def add_person(self, name: str) -> Person:
        with self._lock:
            person = Person(
                id=self._id_factory(),
                name=_clean_name(name, "Person name"),
                color_tag=AVATAR_COLORS[len(self._people) % len(AVATAR_COLORS)],
            )
            self._people.append(person)
            self._invalidate()
            self.repository.save_people(self._people)
            return person

    def remove_person(self, person_id: str) -> bool:
        """
        Remove a person and strip them from every item's assignment.
        Unknown ids are a no-op. The last person can never be removed.
        """
        with self._lock:
            if self.person(person_id) is None:
                return False
            if len(self._people) <= 1:
                raise ValidationError("cannot remove the last person")

            self._people = [p for p in self._people if p.id != person_id]
            self._items = [it.without_person(person_id) for it in self._items]
            self._paid.pop(person_id, None)
            self._invalidate()
            logger.info("Removed person %s", person_id)

            self.repository.save_people(self._people)
            self.repository.save_items(self._items)
            self.repository.save_paid(self._paid)
            return True

    # --- items ---

    def _build_item(self, name: object, price: object) -> Item:
        return Item(
            id=self._id_factory(),
            name=_clean_name(name, "Item name"),
            price=_clean_price(price),
            assigned_person_ids=(self._people[0].id,),
        )

    def add_item(self, name: str, price: object) -> Item:
        """New items start out assigned to the first person."""
        with self._lock:
            item = self._build_item(name, price)
            self._items.append(item)
            self._invalidate()
            self.repository.save_items(self._items)
            return item

    def add_items(self, candidates: Iterable[Tuple[object, object]]) -> List[Item]:
        """
        Bulk add (name, price) pairs, e.g. from a receipt scan.
        Either every candidate is valid and all are added, or none are.
        """
        with self._lock:
            new_items = [self._build_item(name, price) for name, price in candidates]
            if not new_items:
                return []
            self._items.extend(new_items)
            self._invalidate()
            self.repository.save_items(self._items)
            return new_items

    def update_item(
        self,
        item_id: str,
        *,
        name: Optional[str] = None,
        price: object = None,
        assigned_person_ids: Optional[Sequence[str]] = None,
    ) -> Optional[Item]:
        with self._lock:
            current = self.item(item_id)
            if current is None:
                return None

            changes: Dict[str, object] = {}
            if name is not None:
                changes["name"] = _clean_name(name, "Item name")
            if price is not None:
                changes["price"] = _clean_price(price)
            if assigned_person_ids is not None:
                known = {p.id for p in self._people}
                ordered: List[str] = []
                for pid in assigned_person_ids:
                    if pid in known and pid not in ordered:
                        ordered.append(pid)
                changes["assigned_person_ids"] = tuple(ordered)

            updated = replace(current, **changes)
            self._replace_item(updated)
            return updated

    def toggle_assignment(self, item_id: str, person_id: str) -> Optional[Item]:
        with self._lock:
            current = self.item(item_id)
            if current is None or self.person(person_id) is None:
                return None
            if person_id in current.assigned_person_ids:
                updated = current.without_person(person_id)
            else:
                updated = replace(current, assigned_person_ids=current.assigned_person_ids + (person_id,))
            self._replace_item(updated)
            return updated

    def _replace_item(self, updated: Item) -> None:
        self._items = [updated if it.id == updated.id else it for it in self._items]
        self._invalidate()
        self.repository.save_items(self._items)

    def remove_item(self, item_id: str) -> bool:
        with self._lock:
            remaining = [it for it in self._items if it.id != item_id]
            if len(remaining) == len(self._items):
                return False
            self._items = remaining
            self._invalidate()
            self.repository.save_items(self._items)
            return True

    # --- discount ---

    def set_discount(self, mode: str, amount: object, target: str = "everyone") -> DiscountSpec:
        with self._lock:
            try:
                amount_d = to_decimal(amount)
            except MoneyError as e:
                raise ValidationError("discount amount must be numeric") from e
            discount = DiscountSpec(mode=mode, amount=amount_d, target=target)
            self._discount = discount
            self._invalidate()
            self.repository.save_discount(discount)
            return discount

    # --- paid flags ---

    def toggle_paid(self, person_id: str) -> Optional[bool]:
        """
        Flip the live paid flag. Returns the new value, or None for an
        unknown person.
        """
        with self._lock:
            if self.person(person_id) is None:
                return None
            self._paid[person_id] = not self._paid.get(person_id, False)
            self._invalidate()
            self.repository.save_paid(self._paid)
            return self._paid[person_id]

    # --- lifecycle ---

    def save_to(self, history: HistoryStore, title: Optional[str] = None) -> Bill:
        """
        Snapshot the current split into history. Without a title, the bill
        is named after its first item.
        """
        with self._lock:
            if not title or not title.strip():
                title = default_title([it.name for it in self._items])
            return history.save(self.results, title, item_count=len(self._items))

    def clear(self) -> None:
        """Back to a single default person, no items, no discount."""
        with self._lock:
            self._people = default_people()
            self._items = []
            self._discount = DiscountSpec()
            self._paid = {}
            self._invalidate()
            logger.info("Cleared live session")
            self.repository.save_people(self._people)
            self.repository.save_items(self._items)
            self.repository.save_discount(self._discount)
            self.repository.save_paid(self._paid)
