from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class BalanceLine(BaseModel):
    """Signed balance toward one counterparty; positive means they owe you."""
    counterparty_id: str
    amount: Decimal
    currency: str = "USD"


class UserBalanceResponse(BaseModel):
    user_id: str
    total_owed: Decimal   # others owe the user
    total_owe: Decimal    # the user owes others
    net_balance: Decimal
    balances: List[BalanceLine] = []


class GroupBalanceLine(BaseModel):
    scope_id: Optional[str]
    amount: Decimal


class FriendBalanceResponse(BaseModel):
    friend_id: str
    total_balance: Decimal
    by_group: List[GroupBalanceLine] = []


class SimplifiedTransaction(BaseModel):
    from_id: str
    to_id: str
    amount: Decimal


class SimplifiedDebtsResponse(BaseModel):
    scope_id: Optional[str]
    raw: List[SimplifiedTransaction]
    simplified: List[SimplifiedTransaction]
