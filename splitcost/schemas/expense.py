from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from splitcost.models.expense import ExpenseSplit, SplitMethod
from splitcost.utils.split_calculation import SplitInput


class ExpenseCreate(BaseModel):
    group_id: Optional[str] = None
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal
    currency: str = "USD"
    category: str = "general"
    notes: Optional[str] = None
    paid_by: Optional[str] = None  # defaults to the acting user
    split_method: SplitMethod = SplitMethod.EQUAL
    splits: List[SplitInput]


class ExpenseUpdate(BaseModel):
    """Fields left out are unchanged; ``splits`` replaces every split."""
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[Decimal] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    paid_by: Optional[str] = None
    split_method: Optional[SplitMethod] = None
    splits: Optional[List[SplitInput]] = None


class ExpenseResponse(BaseModel):
    id: str
    group_id: Optional[str]
    description: str
    amount: Decimal
    currency: str
    payer_id: str
    split_method: SplitMethod
    splits: List[ExpenseSplit]
    version: int
