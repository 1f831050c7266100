from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from splitcost.models.base import MongoModel, Money


class SplitMethod(str, Enum):
    EQUAL = "equal"
    EXACT = "exact"
    PERCENTAGE = "percentage"
    SHARES = "shares"


# Embedded documents don't need MongoModel (no separate _id)
class ExpenseSplit(BaseModel):
    participant_id: str
    owed_amount: Money
    percentage: Optional[Money] = None
    shares: Optional[Money] = None


class Expense(MongoModel):
    scope_id: Optional[str] = None  # group id, None for a direct friend expense
    description: str
    amount: Money
    currency: str = "USD"
    category: str = "general"
    notes: Optional[str] = None

    payer_id: str
    split_method: SplitMethod = SplitMethod.EQUAL
    splits: List[ExpenseSplit] = []

    created_by: str
    version: int = 1
    deleted: bool = False
    deleted_at: Optional[datetime] = None

    def participant_ids(self) -> List[str]:
        return [split.participant_id for split in self.splits]

    def owed_total(self) -> Decimal:
        return sum((split.owed_amount for split in self.splits), Decimal("0"))
