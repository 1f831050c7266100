"""
ExpenseRepository - expense documents.

Updates and deletes are compare-and-set on (``_id``, ``version``) /
(``_id``, ``deleted``) so the ledger reversal that follows runs exactly once
even when two requests race on the same expense.
"""

from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from splitcost.models.base import to_bson
from splitcost.models.expense import Expense, ExpenseSplit


class ExpenseRepository:
    """Repository for expenses."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.expenses

    async def insert(self, expense: Expense) -> Expense:
        await self.collection.insert_one(expense.to_document())
        return expense

    async def get(self, expense_id: str, include_deleted: bool = False) -> Optional[Expense]:
        query = {"_id": expense_id}
        if not include_deleted:
            query["deleted"] = False
        doc = await self.collection.find_one(query)
        if not doc:
            return None
        return Expense(**doc)

    async def discard(self, expense_id: str) -> None:
        """Hard delete an expense whose ledger batch never applied."""
        await self.collection.delete_one({"_id": expense_id})

    async def list_for_scope(self, scope_id: Optional[str], limit: int = 100) -> List[Expense]:
        docs = await self.collection.find(
            {"scope_id": scope_id, "deleted": False}
        ).sort("created_at", -1).to_list(limit)
        return [Expense(**doc) for doc in docs]

    async def replace_details(
        self,
        expense: Expense,
        changes: dict,
        splits: Optional[List[ExpenseSplit]] = None
    ) -> Optional[Expense]:
        """
        Write new fields (and optionally new splits) if nobody else changed
        the expense since it was read. Returns the updated expense or None
        when the version moved on.
        """
        update = dict(changes)
        if splits is not None:
            update["splits"] = [split.model_dump() for split in splits]
        update["version"] = expense.version + 1
        update["updated_at"] = datetime.now(timezone.utc)

        doc = await self.collection.find_one_and_update(
            {"_id": expense.id, "version": expense.version, "deleted": False},
            {"$set": to_bson(update)},
            return_document=ReturnDocument.AFTER
        )
        if not doc:
            return None
        return Expense(**doc)

    async def restore(self, expense: Expense, failed_version: int) -> None:
        """Put back a previous state after the ledger refused the change."""
        document = expense.to_document()
        document.pop("_id")
        await self.collection.update_one(
            {"_id": expense.id, "version": failed_version},
            {"$set": document}
        )

    async def mark_deleted(self, expense_id: str) -> Optional[Expense]:
        """Soft delete; returns the expense as it was, or None if already deleted."""
        doc = await self.collection.find_one_and_update(
            {"_id": expense_id, "deleted": False},
            {
                "$set": {
                    "deleted": True,
                    "deleted_at": datetime.now(timezone.utc),
                    "updated_at": datetime.now(timezone.utc)
                }
            },
            return_document=ReturnDocument.BEFORE
        )
        if not doc:
            return None
        return Expense(**doc)

    async def unmark_deleted(self, expense_id: str) -> None:
        await self.collection.update_one(
            {"_id": expense_id, "deleted": True},
            {"$set": {"deleted": False, "deleted_at": None}}
        )
