"""
MongoLedgerStore - LedgerStore backed by MongoDB (requires a replica set).

Core mechanics:
1. Every row change is an upsert with $inc, so concurrent adjustments to the
   same row serialize inside MongoDB instead of overwriting each other
2. A batch of deltas runs inside one multi-document transaction
3. Snapshots read inside a snapshot-read-concern transaction
4. Driver failures are translated into the ledger error taxonomy
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, List, Optional, Sequence, TypeVar

from bson import Decimal128
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, DuplicateKeyError, OperationFailure
from pymongo.read_concern import ReadConcern

from splitcost.core.errors import ConflictingWrite, StoreUnavailable
from splitcost.models.ledger import LedgerDelta, LedgerEntry, LedgerKey
from splitcost.repositories.ledger_store import LedgerStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

WRITE_CONFLICT_CODE = 112


def _row_filter(key: LedgerKey) -> dict:
    return {
        "owner_id": key.owner_id,
        "counterparty_id": key.counterparty_id,
        "scope_id": key.scope_id,
    }


def _entry_from_doc(doc: dict) -> LedgerEntry:
    doc.pop("_id", None)
    return LedgerEntry(**doc)


class MongoLedgerStore(LedgerStore):
    """Ledger rows live in the ``ledger_entries`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.ledger_entries

    async def read(self, key: LedgerKey, *, timeout: float) -> Optional[LedgerEntry]:
        doc = await self._run(self.collection.find_one(_row_filter(key)), timeout)
        if not doc:
            return None
        return _entry_from_doc(doc)

    async def increment(
        self,
        deltas: Sequence[LedgerDelta],
        *,
        currency: str,
        timeout: float
    ) -> None:
        if not deltas:
            return

        async def _apply() -> None:
            now = datetime.now(timezone.utc)
            async with await self.db.client.start_session() as session:
                async with session.start_transaction():
                    for item in deltas:
                        await self.collection.update_one(
                            _row_filter(item.key),
                            {
                                "$inc": {"amount": Decimal128(item.delta)},
                                "$set": {"last_updated": now},
                                "$setOnInsert": {"currency": currency},
                            },
                            upsert=True,
                            session=session
                        )

        await self._run(_apply(), timeout)

    async def ensure(
        self,
        keys: Sequence[LedgerKey],
        *,
        currency: str,
        timeout: float
    ) -> None:
        if not keys:
            return

        async def _apply() -> None:
            now = datetime.now(timezone.utc)
            async with await self.db.client.start_session() as session:
                async with session.start_transaction():
                    for key in keys:
                        await self.collection.update_one(
                            _row_filter(key),
                            {
                                "$setOnInsert": {
                                    "amount": Decimal128("0"),
                                    "currency": currency,
                                    "last_updated": now,
                                }
                            },
                            upsert=True,
                            session=session
                        )

        await self._run(_apply(), timeout)

    async def snapshot(
        self,
        scope_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        *,
        all_scopes: bool = False,
        timeout: float
    ) -> List[LedgerEntry]:
        query: dict = {}
        if not all_scopes:
            query["scope_id"] = scope_id
        if subject_id is not None:
            query["owner_id"] = subject_id

        async def _read() -> List[dict]:
            async with await self.db.client.start_session() as session:
                async with session.start_transaction(read_concern=ReadConcern("snapshot")):
                    cursor = self.collection.find(query, session=session).sort(
                        [("owner_id", 1), ("counterparty_id", 1)]
                    )
                    return await cursor.to_list(None)

        docs = await self._run(_read(), timeout)
        return [_entry_from_doc(doc) for doc in docs]

    async def _run(self, operation: Awaitable[T], timeout: float) -> T:
        """Await a driver operation, translating failures."""
        try:
            return await asyncio.wait_for(operation, timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Ledger store timed out", extra={"timeout": timeout})
            raise StoreUnavailable(f"Ledger store did not answer within {timeout}s") from e
        except ConnectionFailure as e:
            logger.warning("Ledger store unreachable", extra={"error": str(e)})
            raise StoreUnavailable(str(e)) from e
        except DuplicateKeyError as e:
            # Two first-touch upserts raced on the unique key
            raise ConflictingWrite(str(e)) from e
        except OperationFailure as e:
            if e.has_error_label("TransientTransactionError") or e.code == WRITE_CONFLICT_CODE:
                raise ConflictingWrite(str(e)) from e
            # e.g. transactions on a standalone mongod (code 20)
            logger.warning(
                "Ledger store refused the operation",
                extra={"code": e.code, "error": str(e)},
            )
            raise StoreUnavailable(str(e)) from e
