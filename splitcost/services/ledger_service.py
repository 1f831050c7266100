"""
LedgerService - the balance ledger.

Owns the invariant: for every (A, B, scope) the row amount of A toward B is
the negation of B toward A. All changes go through one atomic store batch
built from pairwise adjustments; group-scoped adjustments carry their
aggregate (scope None) mirror in the same batch, so the aggregate rows are a
maintained cache rather than something recomputed on read.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from splitcost.core.config import settings
from splitcost.models.expense import Expense
from splitcost.models.ledger import LedgerDelta, LedgerEntry, LedgerKey
from splitcost.models.settlement import Settlement
from splitcost.repositories.ledger_store import LedgerStore
from splitcost.schemas.ledger import (
    BalanceLine,
    FriendBalanceResponse,
    GroupBalanceLine,
    SimplifiedDebtsResponse,
    UserBalanceResponse,
)
from splitcost.services.simplifier import net_positions, simplify_debts

DISPLAY_THRESHOLD = Decimal("0.01")
CENT = Decimal("0.01")


def _pair_deltas(
    owner_id: str,
    counterparty_id: str,
    scope_id: Optional[str],
    delta: Decimal,
    with_aggregate: bool = True
) -> List[LedgerDelta]:
    """Both directions of one adjustment, plus the aggregate mirror for a group scope."""
    if owner_id == counterparty_id:
        raise ValueError("A ledger row needs two distinct users")

    key = LedgerKey(owner_id=owner_id, counterparty_id=counterparty_id, scope_id=scope_id)
    deltas = [
        LedgerDelta(key=key, delta=delta),
        LedgerDelta(key=key.mirrored(), delta=-delta),
    ]
    if with_aggregate and scope_id is not None:
        aggregate = key.aggregate()
        deltas.append(LedgerDelta(key=aggregate, delta=delta))
        deltas.append(LedgerDelta(key=aggregate.mirrored(), delta=-delta))
    return deltas


def _expense_deltas(expense: Expense, sign: Decimal) -> List[LedgerDelta]:
    deltas: List[LedgerDelta] = []
    for split in expense.splits:
        # The payer's own share moves no money
        if split.participant_id == expense.payer_id:
            continue
        deltas.extend(
            _pair_deltas(
                expense.payer_id,
                split.participant_id,
                expense.scope_id,
                sign * split.owed_amount
            )
        )
    return deltas


class LedgerService:
    """Balance ledger over an abstract LedgerStore."""

    def __init__(
        self,
        store: LedgerStore,
        timeout: Optional[float] = None,
        currency: Optional[str] = None
    ):
        self.store = store
        self.timeout = timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS
        self.currency = currency or settings.DEFAULT_CURRENCY

    # ===== WRITE PATH =====

    async def adjust(
        self,
        owner_id: str,
        counterparty_id: str,
        scope_id: Optional[str],
        delta: Decimal
    ) -> None:
        """Add ``delta`` to owner->counterparty and ``-delta`` to the mirror, atomically."""
        await self._commit(
            _pair_deltas(owner_id, counterparty_id, scope_id, delta, with_aggregate=False)
        )

    async def apply_expense_created(self, expense: Expense) -> None:
        """Every non-payer participant now owes the payer their split."""
        await self._commit(_expense_deltas(expense, Decimal("1")))

    async def reverse(self, expense: Expense) -> None:
        """Undo ``apply_expense_created`` using the splits stored on ``expense``."""
        await self._commit(_expense_deltas(expense, Decimal("-1")))

    async def replace_expense(self, old: Expense, new: Expense) -> None:
        """Reverse ``old`` then apply ``new`` as one batch; the reversal is ordered first."""
        await self._commit(
            _expense_deltas(old, Decimal("-1")) + _expense_deltas(new, Decimal("1"))
        )

    async def apply_settlement_confirmed(self, settlement: Settlement) -> None:
        """A confirmed payment reduces what the receiver is owed by the payer."""
        await self._commit(
            _pair_deltas(
                settlement.to_id,
                settlement.from_id,
                settlement.scope_id,
                -settlement.amount
            )
        )

    async def link(self, user_a: str, user_b: str, scope_id: Optional[str] = None) -> None:
        """Create zeroed rows for a newly linked pair (friendship or shared group)."""
        key = LedgerKey(owner_id=user_a, counterparty_id=user_b, scope_id=scope_id)
        keys = [key, key.mirrored()]
        if scope_id is not None:
            keys.extend([key.aggregate(), key.aggregate().mirrored()])
        await self.store.ensure(keys, currency=self.currency, timeout=self.timeout)

    async def _commit(self, deltas: Sequence[LedgerDelta]) -> None:
        if not deltas:
            return
        await self.store.increment(deltas, currency=self.currency, timeout=self.timeout)

    # ===== READ PATH =====

    async def entry(
        self,
        owner_id: str,
        counterparty_id: str,
        scope_id: Optional[str] = None
    ) -> Decimal:
        """Current amount of one row; rows never touched read as 0."""
        row = await self.store.read(
            LedgerKey(owner_id=owner_id, counterparty_id=counterparty_id, scope_id=scope_id),
            timeout=self.timeout
        )
        return row.amount if row else Decimal("0")

    async def snapshot(
        self,
        scope_id: Optional[str] = None,
        subject_id: Optional[str] = None
    ) -> List[LedgerEntry]:
        """
        Rows for one scope, or every scope of ``subject_id`` when the scope
        is None and a subject is given.
        """
        if subject_id is not None and scope_id is None:
            return await self.store.snapshot(
                subject_id=subject_id, all_scopes=True, timeout=self.timeout
            )
        return await self.store.snapshot(
            scope_id, subject_id, timeout=self.timeout
        )

    async def get_user_balance(self, user_id: str) -> UserBalanceResponse:
        """Totals across everything, read from the aggregate rows."""
        rows = await self.store.snapshot(None, user_id, timeout=self.timeout)
        rows = [row for row in rows if abs(row.amount) > DISPLAY_THRESHOLD]
        rows.sort(key=lambda row: abs(row.amount), reverse=True)

        total_owed = sum((row.amount for row in rows if row.amount > 0), Decimal("0"))
        total_owe = sum((-row.amount for row in rows if row.amount < 0), Decimal("0"))

        return UserBalanceResponse(
            user_id=user_id,
            total_owed=total_owed.quantize(CENT),
            total_owe=total_owe.quantize(CENT),
            net_balance=(total_owed - total_owe).quantize(CENT),
            balances=[
                BalanceLine(
                    counterparty_id=row.counterparty_id,
                    amount=row.amount.quantize(CENT),
                    currency=row.currency
                )
                for row in rows
            ]
        )

    async def get_friend_balance(self, user_id: str, friend_id: str) -> FriendBalanceResponse:
        rows = await self.store.snapshot(subject_id=user_id, all_scopes=True, timeout=self.timeout)
        rows = [row for row in rows if row.counterparty_id == friend_id]

        total = next((row.amount for row in rows if row.scope_id is None), Decimal("0"))
        return FriendBalanceResponse(
            friend_id=friend_id,
            total_balance=total.quantize(CENT),
            by_group=[
                GroupBalanceLine(scope_id=row.scope_id, amount=row.amount.quantize(CENT))
                for row in rows
                if row.scope_id is not None
            ]
        )

    async def get_group_balances(self, group_id: str, user_id: str) -> List[BalanceLine]:
        rows = await self.store.snapshot(group_id, user_id, timeout=self.timeout)
        rows.sort(key=lambda row: row.amount, reverse=True)
        return [
            BalanceLine(
                counterparty_id=row.counterparty_id,
                amount=row.amount.quantize(CENT),
                currency=row.currency
            )
            for row in rows
        ]

    async def simplified_debts(self, scope_id: Optional[str]) -> SimplifiedDebtsResponse:
        """Run the simplifier over one scope; never part of a write."""
        rows = await self.store.snapshot(scope_id, timeout=self.timeout)
        net: Dict[str, Decimal] = net_positions(rows)
        return SimplifiedDebtsResponse(
            scope_id=scope_id,
            raw=[
                {
                    "from_id": row.counterparty_id,
                    "to_id": row.owner_id,
                    "amount": row.amount.quantize(CENT)
                }
                for row in rows
                if row.amount > DISPLAY_THRESHOLD
            ],
            simplified=simplify_debts(net)
        )
