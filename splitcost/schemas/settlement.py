from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from splitcost.models.settlement import SettlementStatus


class SettlementCreate(BaseModel):
    to_user_id: str
    amount: Decimal
    group_id: Optional[str] = None
    currency: str = "USD"
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class SettlementResponse(BaseModel):
    id: str
    from_user_id: str
    to_user_id: str
    group_id: Optional[str]
    amount: Decimal
    currency: str
    status: SettlementStatus
    created_at: datetime
    confirmed_at: Optional[datetime] = None
