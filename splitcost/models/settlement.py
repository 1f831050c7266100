"""
Settlement model - a claimed payment from one user to another.

State machine:
    pending -> confirmed   (ledger adjusted, exactly once)
    pending -> rejected    (no ledger effect)
    pending -> removed     (creator cancels, no ledger effect)
confirmed, rejected and removed are terminal.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from splitcost.core.errors import InvalidTransition
from splitcost.models.base import MongoModel, Money


class SettlementStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    REMOVED = "removed"


ALLOWED_TRANSITIONS = {
    SettlementStatus.PENDING: {
        SettlementStatus.CONFIRMED,
        SettlementStatus.REJECTED,
        SettlementStatus.REMOVED,
    },
}


def check_transition(current: SettlementStatus, target: SettlementStatus) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(
            f"Settlement cannot move from {current.value} to {target.value}"
        )


class Settlement(MongoModel):
    from_id: str
    to_id: str
    amount: Money
    currency: str = "USD"
    scope_id: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None

    status: SettlementStatus = SettlementStatus.PENDING
    confirmed_at: Optional[datetime] = None
