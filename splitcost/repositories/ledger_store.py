"""
LedgerStore - the storage contract the balance ledger is written against.

Any backend must provide:
- point read of one row
- atomic batch of increment-on-conflict upserts (all rows change or none)
- batch creation of zeroed rows
- snapshot read with a consistent point-in-time view

Every call takes a caller-supplied timeout; implementations raise
StoreUnavailable or ConflictingWrite instead of hanging or half-applying.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from splitcost.models.ledger import LedgerDelta, LedgerEntry, LedgerKey


class LedgerStore(ABC):

    @abstractmethod
    async def read(self, key: LedgerKey, *, timeout: float) -> Optional[LedgerEntry]:
        """Return one row or None if it was never created."""

    @abstractmethod
    async def increment(
        self,
        deltas: Sequence[LedgerDelta],
        *,
        currency: str,
        timeout: float
    ) -> None:
        """Apply every delta atomically, creating missing rows at 0 first."""

    @abstractmethod
    async def ensure(
        self,
        keys: Sequence[LedgerKey],
        *,
        currency: str,
        timeout: float
    ) -> None:
        """Create zeroed rows for keys that do not exist yet; existing rows are untouched."""

    @abstractmethod
    async def snapshot(
        self,
        scope_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        *,
        all_scopes: bool = False,
        timeout: float
    ) -> List[LedgerEntry]:
        """
        Rows for one scope (None = aggregate scope), optionally limited to
        rows owned by ``subject_id``. ``all_scopes`` ignores ``scope_id``.
        """
