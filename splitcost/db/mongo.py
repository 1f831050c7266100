import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from splitcost.core.config import settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes()
    logger.info("Connected to MongoDB", extra={"database": settings.DATABASE_NAME})

async def disconnect_from_mongo():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes():
    """Create database indexes."""
    # One row per (owner, counterparty, scope); scope_id is null for the aggregate
    await mongodb.db["ledger_entries"].create_index(
        [("owner_id", 1), ("counterparty_id", 1), ("scope_id", 1)],
        unique=True
    )
    await mongodb.db["ledger_entries"].create_index([("scope_id", 1)])

    # Expense indexes
    await mongodb.db["expenses"].create_index([("scope_id", 1), ("deleted", 1)])
    await mongodb.db["expenses"].create_index("splits.participant_id")

    # Settlement indexes
    await mongodb.db["settlements"].create_index([("from_id", 1), ("status", 1)])
    await mongodb.db["settlements"].create_index([("to_id", 1), ("status", 1)])

    # Activity feed, newest first per scope
    await mongodb.db["activities"].create_index([("scope_id", 1), ("created_at", -1)])

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
