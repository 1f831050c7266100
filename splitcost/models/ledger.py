"""
Ledger model - directed net balances between two users.

Design principles:
- One row per (owner, counterparty, scope); scope None is the aggregate
  across all groups and direct expenses
- amount > 0: counterparty owes owner; amount < 0: owner owes counterparty
- Rows are only ever changed by increments, never overwritten
- Mirror symmetry: entry(A, B, s).amount == -entry(B, A, s).amount
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from splitcost.models.base import Money, _utcnow


class LedgerKey(BaseModel):
    """Unique key of a ledger row."""
    model_config = ConfigDict(frozen=True)

    owner_id: str
    counterparty_id: str
    scope_id: Optional[str] = None

    def mirrored(self) -> "LedgerKey":
        return LedgerKey(
            owner_id=self.counterparty_id,
            counterparty_id=self.owner_id,
            scope_id=self.scope_id
        )

    def aggregate(self) -> "LedgerKey":
        return LedgerKey(owner_id=self.owner_id, counterparty_id=self.counterparty_id)


class LedgerDelta(BaseModel):
    """A pending increment of one row."""
    model_config = ConfigDict(frozen=True)

    key: LedgerKey
    delta: Money


class LedgerEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    owner_id: str
    counterparty_id: str
    scope_id: Optional[str] = None

    amount: Money = Decimal("0")
    currency: str = "USD"
    last_updated: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> LedgerKey:
        return LedgerKey(
            owner_id=self.owner_id,
            counterparty_id=self.counterparty_id,
            scope_id=self.scope_id
        )
