from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from splitcost.core.errors import InvalidTransition, NotFound
from splitcost.models.settlement import Settlement, SettlementStatus, check_transition


class SettlementRepository:
    """Repository for settlements; status changes are compare-and-set."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.settlements

    async def insert(self, settlement: Settlement) -> Settlement:
        await self.collection.insert_one(settlement.to_document())
        return settlement

    async def get(self, settlement_id: str) -> Optional[Settlement]:
        doc = await self.collection.find_one({"_id": settlement_id})
        if not doc:
            return None
        return Settlement(**doc)

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[SettlementStatus] = None,
        scope_id: Optional[str] = None
    ) -> List[Settlement]:
        query: dict = {"$or": [{"from_id": user_id}, {"to_id": user_id}]}
        if status is not None:
            query["status"] = status.value
        if scope_id is not None:
            query["scope_id"] = scope_id
        docs = await self.collection.find(query).sort("created_at", -1).to_list(None)
        return [Settlement(**doc) for doc in docs]

    async def transition(
        self,
        settlement_id: str,
        expected: SettlementStatus,
        target: SettlementStatus
    ) -> Settlement:
        """
        Move a settlement from ``expected`` to ``target`` atomically.

        Raises NotFound if the settlement does not exist and
        InvalidTransition if its current status is not ``expected``.
        """
        check_transition(expected, target)
        now = datetime.now(timezone.utc)
        update = {"status": target.value, "updated_at": now}
        if target == SettlementStatus.CONFIRMED:
            update["confirmed_at"] = now

        doc = await self.collection.find_one_and_update(
            {"_id": settlement_id, "status": expected.value},
            {"$set": update},
            return_document=ReturnDocument.AFTER
        )
        if doc:
            return Settlement(**doc)

        current = await self.get(settlement_id)
        if current is None:
            raise NotFound(f"Settlement {settlement_id} not found")
        raise InvalidTransition(
            f"Settlement is {current.status.value}, cannot move to {target.value}"
        )

    async def revert(self, settlement_id: str, current: SettlementStatus) -> None:
        """Undo a claimed transition whose ledger write failed."""
        await self.collection.update_one(
            {"_id": settlement_id, "status": current.value},
            {"$set": {"status": SettlementStatus.PENDING.value, "confirmed_at": None}}
        )

    async def delete_pending(self, settlement_id: str) -> bool:
        result = await self.collection.delete_one(
            {"_id": settlement_id, "status": SettlementStatus.PENDING.value}
        )
        return result.deleted_count > 0
