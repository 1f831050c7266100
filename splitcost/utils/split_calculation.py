"""Split calculation and validation utilities."""
from decimal import Decimal, ROUND_DOWN
from typing import List, Optional, Sequence

from pydantic import BaseModel

from splitcost.core.errors import ExpenseValidationError
from splitcost.models.base import Money
from splitcost.models.expense import ExpenseSplit, SplitMethod

CENT = Decimal("0.01")
SPLIT_TOLERANCE = Decimal("0.01")
HUNDRED = Decimal("100")


class SplitInput(BaseModel):
    """One participant as sent by the caller; which field is used depends on the method."""
    participant_id: str
    amount: Optional[Money] = None
    percentage: Optional[Money] = None
    shares: Optional[Money] = None


def _distribute(total: Decimal, weights: Sequence[Decimal]) -> List[Decimal]:
    """
    Apportion ``total`` by ``weights`` in whole cents.

    Each share is rounded down to the cent, then the leftover cents are
    handed out one by one to the first participants in input order.
    """
    weight_sum = sum(weights, Decimal("0"))
    if weight_sum <= 0:
        raise ExpenseValidationError("Split weights must sum to a positive value")

    shares = [
        (total * weight / weight_sum).quantize(CENT, rounding=ROUND_DOWN)
        for weight in weights
    ]
    remainder_cents = int((total - sum(shares, Decimal("0"))) / CENT)
    for i in range(remainder_cents):
        shares[i % len(shares)] += CENT
    return shares


def compute_splits(
    amount: Decimal,
    method: SplitMethod,
    inputs: List[SplitInput]
) -> List[ExpenseSplit]:
    """
    Turn caller input into stored splits.

    Rules:
    - amount must be positive and whole cents
    - participants must be unique
    - equal: amount / n, leftover cents to the first participants
    - exact: amounts given, must sum to amount within 0.01
    - percentage: percentages must sum to 100 within 0.01
    - shares: positive weights
    """
    if amount <= 0:
        raise ExpenseValidationError(f"Expense amount must be positive: {amount}")
    if amount != amount.quantize(CENT):
        raise ExpenseValidationError(f"Expense amount must be in whole cents: {amount}")
    if not inputs:
        raise ExpenseValidationError("Expense needs at least one split")

    participant_ids = [split.participant_id for split in inputs]
    if len(set(participant_ids)) != len(participant_ids):
        raise ExpenseValidationError("A participant appears more than once in the splits")

    if method == SplitMethod.EQUAL:
        owed = _distribute(amount, [Decimal("1")] * len(inputs))
        splits = [
            ExpenseSplit(participant_id=s.participant_id, owed_amount=o)
            for s, o in zip(inputs, owed)
        ]

    elif method == SplitMethod.EXACT:
        for s in inputs:
            if s.amount is None or s.amount < 0:
                raise ExpenseValidationError(
                    f"Participant '{s.participant_id}' needs a non-negative amount"
                )
        splits = [
            ExpenseSplit(participant_id=s.participant_id, owed_amount=s.amount)
            for s in inputs
        ]

    elif method == SplitMethod.PERCENTAGE:
        for s in inputs:
            if s.percentage is None or s.percentage < 0:
                raise ExpenseValidationError(
                    f"Participant '{s.participant_id}' needs a non-negative percentage"
                )
        pct_sum = sum((s.percentage for s in inputs), Decimal("0"))
        if abs(pct_sum - HUNDRED) > SPLIT_TOLERANCE:
            raise ExpenseValidationError(
                f"Percentages sum to {pct_sum}, expected 100"
            )
        owed = _distribute(amount, [s.percentage for s in inputs])
        splits = [
            ExpenseSplit(participant_id=s.participant_id, owed_amount=o, percentage=s.percentage)
            for s, o in zip(inputs, owed)
        ]

    elif method == SplitMethod.SHARES:
        for s in inputs:
            if s.shares is None or s.shares <= 0:
                raise ExpenseValidationError(
                    f"Participant '{s.participant_id}' needs a positive share count"
                )
        owed = _distribute(amount, [s.shares for s in inputs])
        splits = [
            ExpenseSplit(participant_id=s.participant_id, owed_amount=o, shares=s.shares)
            for s, o in zip(inputs, owed)
        ]

    else:
        raise ExpenseValidationError(f"Unknown split method: {method}")

    validate_splits(amount, splits)
    return splits


def validate_splits(amount: Decimal, splits: List[ExpenseSplit]) -> None:
    """Check that owed amounts add up to the expense amount (at most 1 cent drift)."""
    owed_sum = sum((split.owed_amount for split in splits), Decimal("0"))
    if abs(owed_sum - amount) > SPLIT_TOLERANCE:
        raise ExpenseValidationError(
            f"Split sum ({owed_sum}) does not equal expense amount ({amount})"
        )
