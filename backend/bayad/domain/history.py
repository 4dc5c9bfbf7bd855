# backend/bayad/domain/history.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import localcontext
from typing import Callable, List, Optional, Sequence

from bayad.db.repository import SessionRepository
from bayad.domain.allocation import DECIMAL_CONTEXT
from bayad.domain.models import Bill, PersonResult, ValidationError, ZERO

logger = logging.getLogger(__name__)

QUICK_SPLIT_TITLE = "Quick Split"


def default_title(item_names: Sequence[str]) -> str:
    """
    First item's name, with "..." when more items follow.
    """
    if not item_names:
        return QUICK_SPLIT_TITLE
    return item_names[0] + ("..." if len(item_names) > 1 else "")


def _new_bill_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryStore:
    """
    Saved bills, most recent first.

    Bills only enter via save() and only leave via remove()/clear(). The
    only in-place change allowed is flipping a result's is_paid flag.
    Every change is written through to the repository.
    """

    def __init__(
        self,
        repository: SessionRepository,
        *,
        id_factory: Callable[[], str] = _new_bill_id,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self._id_factory = id_factory
        self._clock = clock
        self._bills: List[Bill] = repository.load_history()

    def save(
        self,
        results: Sequence[PersonResult],
        title: Optional[str] = None,
        *,
        item_count: int,
    ) -> Bill:
        if item_count <= 0:
            raise ValidationError("cannot save a bill with no items")

        snapshot = [r.clone() for r in results]
        with localcontext(DECIMAL_CONTEXT):
            total = sum((r.total for r in snapshot), ZERO)

        bill = Bill(
            id=self._id_factory(),
            created_at=self._clock(),
            title=title.strip() if title and title.strip() else QUICK_SPLIT_TITLE,
            total=total,
            results=snapshot,
        )
        self._bills.insert(0, bill)
        logger.info("Saved bill %s (%s people, total %s)", bill.id, len(snapshot), total)
        self._persist()
        return bill

    def _find(self, bill_id: str) -> Optional[Bill]:
        for bill in self._bills:
            if bill.id == bill_id:
                return bill
        return None

    def get(self, bill_id: str) -> Optional[Bill]:
        """Returns a copy; use toggle_paid to change a stored bill."""
        bill = self._find(bill_id)
        return bill.clone() if bill is not None else None

    def list(self) -> List[Bill]:
        return [b.clone() for b in self._bills]

    def remove(self, bill_id: str) -> bool:
        remaining = [b for b in self._bills if b.id != bill_id]
        if len(remaining) == len(self._bills):
            return False
        self._bills = remaining
        logger.info("Removed bill %s", bill_id)
        self._persist()
        return True

    def clear(self) -> None:
        self._bills = []
        logger.info("Cleared bill history")
        self.repository.delete_history()

    def toggle_paid(self, bill_id: str, person_id: str) -> Optional[bool]:
        """
        Flip is_paid for one person inside one bill. Returns the new flag,
        or None when either id is unknown.
        """
        bill = self._find(bill_id)
        if bill is None:
            return None
        result = bill.result_for(person_id)
        if result is None:
            return None
        result.is_paid = not result.is_paid
        self._persist()
        return result.is_paid

    def _persist(self) -> None:
        self.repository.save_history(self._bills)

    def __len__(self) -> int:
        return len(self._bills)
