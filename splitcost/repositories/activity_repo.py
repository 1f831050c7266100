from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from splitcost.models.activity import Activity


class ActivityRepository:
    """Append-only activity feed."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.activities

    async def append(self, activity: Activity) -> Activity:
        await self.collection.insert_one(activity.to_document())
        return activity

    async def list_for_scope(self, scope_id: Optional[str], limit: int = 50) -> List[Activity]:
        docs = await self.collection.find({"scope_id": scope_id}).sort(
            "created_at", -1
        ).to_list(limit)
        return [Activity(**doc) for doc in docs]
