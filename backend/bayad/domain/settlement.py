# backend/bayad/domain/settlement.py
from __future__ import annotations

from typing import Optional

from bayad.domain.history import HistoryStore
from bayad.domain.session import BillSession


class SettlementTracker:
    """
    Paid/unpaid flags for the live split and for each saved bill.

    Both toggles are their own inverse, and unknown ids are a no-op that
    returns None. A live toggle never touches saved bills, and a historical
    toggle only touches the one bill it names.
    """

    def __init__(self, session: BillSession, history: HistoryStore):
        self.session = session
        self.history = history

    def toggle_paid(self, person_id: str) -> Optional[bool]:
        return self.session.toggle_paid(person_id)

    def toggle_historical_paid(self, bill_id: str, person_id: str) -> Optional[bool]:
        return self.history.toggle_paid(bill_id, person_id)
