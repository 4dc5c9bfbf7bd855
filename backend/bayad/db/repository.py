from __future__ import annotations

import json
import logging
from decimal import InvalidOperation
from typing import Any, Callable, Dict, List, TypeVar

from bayad.db.store import KeyValueStore, PersistenceFailure
from bayad.domain.models import AVATAR_COLORS, Bill, DiscountSpec, Item, Person

logger = logging.getLogger(__name__)

T = TypeVar("T")

PEOPLE = "people"
ITEMS = "items"
DISCOUNT = "discount"
PAID = "paid"
HISTORY = "history"


def default_people() -> List[Person]:
    return [Person(id="1", name="Me", color_tag=AVATAR_COLORS[0])]


class SessionRepository:
    """
    Serializes session state and history as independent JSON blobs in a
    key-value store. Absent or unreadable blobs load as defaults.
    """

    def __init__(self, store: KeyValueStore, *, key_prefix: str = "bayad"):
        self.store = store
        self.key_prefix = key_prefix

    def key(self, name: str) -> str:
        return f"{self.key_prefix}:{name}"

    def _load(self, name: str, decode: Callable[[Any], T], default: Callable[[], T]) -> T:
        try:
            raw = self.store.get(self.key(name))
        except PersistenceFailure:
            logger.exception("Failed to read %s; using defaults", self.key(name))
            return default()
        if raw is None:
            return default()
        try:
            return decode(json.loads(raw.decode("utf-8")))
        except (ValueError, KeyError, TypeError, AttributeError, InvalidOperation) as e:
            # ValidationError is a ValueError
            logger.warning("Corrupt blob at %s (%s); using defaults", self.key(name), e)
            return default()

    def _dump(self, name: str, payload: Any) -> None:
        data = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        try:
            self.store.set(self.key(name), data)
        except PersistenceFailure:
            logger.error("Failed to write %s", self.key(name))
            raise

    # --- session blobs ---

    def load_people(self) -> List[Person]:
        def decode(data: Any) -> List[Person]:
            people = [Person.from_dict(p) for p in data]
            if not people:
                raise ValueError("people list is empty")
            if len({p.id for p in people}) != len(people):
                raise ValueError("duplicate person ids")
            return people

        return self._load(PEOPLE, decode, default_people)

    def save_people(self, people: List[Person]) -> None:
        self._dump(PEOPLE, [p.to_dict() for p in people])

    def load_items(self) -> List[Item]:
        return self._load(ITEMS, lambda data: [Item.from_dict(i) for i in data], list)

    def save_items(self, items: List[Item]) -> None:
        self._dump(ITEMS, [i.to_dict() for i in items])

    def load_discount(self) -> DiscountSpec:
        return self._load(DISCOUNT, DiscountSpec.from_dict, DiscountSpec)

    def save_discount(self, discount: DiscountSpec) -> None:
        self._dump(DISCOUNT, discount.to_dict())

    def load_paid(self) -> Dict[str, bool]:
        def decode(data: Any) -> Dict[str, bool]:
            if not isinstance(data, dict):
                raise ValueError("paid map must be an object")
            return {str(k): bool(v) for k, v in data.items()}

        return self._load(PAID, decode, dict)

    def save_paid(self, paid: Dict[str, bool]) -> None:
        self._dump(PAID, dict(paid))

    # --- history ---

    def load_history(self) -> List[Bill]:
        return self._load(HISTORY, lambda data: [Bill.from_dict(b) for b in data], list)

    def save_history(self, bills: List[Bill]) -> None:
        self._dump(HISTORY, [b.to_dict() for b in bills])

    def delete_history(self) -> None:
        try:
            self.store.delete(self.key(HISTORY))
        except PersistenceFailure:
            logger.error("Failed to delete %s", self.key(HISTORY))
            raise
