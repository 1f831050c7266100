"""
InMemoryLedgerStore - LedgerStore kept in process memory.

Used for local runs without a replica set and by the test suite. Each
operation runs without yielding to the event loop, so a batch is applied
as one unit and a snapshot never observes half of a batch.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from splitcost.models.ledger import LedgerDelta, LedgerEntry, LedgerKey
from splitcost.repositories.ledger_store import LedgerStore


class InMemoryLedgerStore(LedgerStore):

    def __init__(self):
        self._rows: Dict[LedgerKey, LedgerEntry] = {}

    async def read(self, key: LedgerKey, *, timeout: float) -> Optional[LedgerEntry]:
        entry = self._rows.get(key)
        return entry.model_copy() if entry else None

    async def increment(
        self,
        deltas: Sequence[LedgerDelta],
        *,
        currency: str,
        timeout: float
    ) -> None:
        now = datetime.now(timezone.utc)

        # Compute every new amount before touching the table
        pending: Dict[LedgerKey, Decimal] = {}
        for item in deltas:
            current = pending.get(item.key)
            if current is None:
                row = self._rows.get(item.key)
                current = row.amount if row else Decimal("0")
            pending[item.key] = current + item.delta

        for key, amount in pending.items():
            row = self._rows.get(key)
            self._rows[key] = LedgerEntry(
                owner_id=key.owner_id,
                counterparty_id=key.counterparty_id,
                scope_id=key.scope_id,
                amount=amount,
                currency=row.currency if row else currency,
                last_updated=now
            )

    async def ensure(
        self,
        keys: Sequence[LedgerKey],
        *,
        currency: str,
        timeout: float
    ) -> None:
        now = datetime.now(timezone.utc)
        for key in keys:
            if key not in self._rows:
                self._rows[key] = LedgerEntry(
                    owner_id=key.owner_id,
                    counterparty_id=key.counterparty_id,
                    scope_id=key.scope_id,
                    currency=currency,
                    last_updated=now
                )

    async def snapshot(
        self,
        scope_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        *,
        all_scopes: bool = False,
        timeout: float
    ) -> List[LedgerEntry]:
        rows = [
            entry.model_copy()
            for entry in self._rows.values()
            if (all_scopes or entry.scope_id == scope_id)
            and (subject_id is None or entry.owner_id == subject_id)
        ]
        rows.sort(key=lambda e: (e.owner_id, e.counterparty_id, e.scope_id or ""))
        return rows
