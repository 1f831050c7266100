from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from splitcost.models.base import MongoModel, _utcnow


class ActivityType(str, Enum):
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    SETTLEMENT_ADDED = "settlement_added"
    SETTLEMENT_CONFIRMED = "settlement_confirmed"
    SETTLEMENT_REJECTED = "settlement_rejected"
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    FRIEND_ACCEPTED = "friend_accepted"


class Activity(MongoModel):
    """Append-only record of a committed ledger mutation."""
    scope_id: Optional[str] = None
    actor_id: str
    type: ActivityType
    reference_id: Optional[str] = None
    message: str
    created_at: datetime = Field(default_factory=_utcnow)
