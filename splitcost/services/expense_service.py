"""
ExpenseService - expense lifecycle on top of the balance ledger.

Order of every mutation:
1. claim the document change (insert, or compare-and-set on version/deleted)
2. apply the ledger batch, retrying conflicting writes
3. on ledger failure, undo the claim and re-raise
4. record the activity and broadcast (both best-effort)
"""

import logging
from typing import Any, Dict, List, Optional

from splitcost.core.errors import (
    ConflictingWrite,
    InvalidTransition,
    NotAuthorized,
    NotFound,
)
from splitcost.models.activity import ActivityType
from splitcost.models.expense import Expense
from splitcost.realtime.protocol import MessageType
from splitcost.repositories.expense_repo import ExpenseRepository
from splitcost.schemas.expense import ExpenseCreate, ExpenseUpdate
from splitcost.services.activity_service import ActivityEmitter
from splitcost.services.event_publisher import EventPublisher
from splitcost.services.ledger_service import LedgerService
from splitcost.services.retry import retry_conflicts
from splitcost.utils.split_calculation import SplitInput, compute_splits

logger = logging.getLogger(__name__)


def expense_payload(expense: Expense) -> Dict[str, Any]:
    return {
        "expenseId": expense.id,
        "groupId": expense.scope_id,
        "description": expense.description,
        "amount": str(expense.amount),
        "currency": expense.currency,
        "payerId": expense.payer_id,
        "version": expense.version,
    }


def _participants(*expenses: Expense) -> List[str]:
    seen: List[str] = []
    for expense in expenses:
        for user_id in [expense.payer_id] + expense.participant_ids():
            if user_id not in seen:
                seen.append(user_id)
    return seen


class ExpenseService:

    def __init__(
        self,
        ledger: LedgerService,
        expenses: ExpenseRepository,
        emitter: ActivityEmitter,
        publisher: EventPublisher,
        retry_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None
    ):
        self.ledger = ledger
        self.expenses = expenses
        self.emitter = emitter
        self.publisher = publisher
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

    async def _retry(self, operation):
        return await retry_conflicts(operation, self.retry_attempts, self.retry_base_delay)

    async def create_expense(self, actor_id: str, data: ExpenseCreate) -> Expense:
        splits = compute_splits(data.amount, data.split_method, data.splits)
        expense = Expense(
            scope_id=data.group_id,
            description=data.description,
            amount=data.amount,
            currency=data.currency,
            category=data.category,
            notes=data.notes,
            payer_id=data.paid_by or actor_id,
            split_method=data.split_method,
            splits=splits,
            created_by=actor_id
        )
        await self.expenses.insert(expense)

        try:
            await self._retry(lambda: self.ledger.apply_expense_created(expense))
        except Exception:
            logger.warning("Ledger rejected new expense, discarding", extra={"expense_id": expense.id})
            await self.expenses.discard(expense.id)
            raise

        await self.emitter.record(
            ActivityType.EXPENSE_ADDED,
            actor_id,
            f"{expense.description} - {expense.amount} {expense.currency}",
            scope_id=expense.scope_id,
            reference_id=expense.id
        )
        self.publisher.publish(
            MessageType.EXPENSE_ADDED,
            expense_payload(expense),
            actor_id,
            expense.scope_id,
            _participants(expense)
        )
        logger.info("Expense created", extra={"expense_id": expense.id, "scope_id": expense.scope_id})
        return expense

    async def get_expense(self, expense_id: str) -> Expense:
        expense = await self.expenses.get(expense_id)
        if not expense:
            raise NotFound(f"Expense {expense_id} not found")
        return expense

    async def update_expense(self, actor_id: str, expense_id: str, data: ExpenseUpdate) -> Expense:
        expense = await self.get_expense(expense_id)
        self._authorize(actor_id, expense)

        changes = data.model_dump(exclude_unset=True, exclude_none=True, exclude={"splits", "paid_by"})
        if data.paid_by is not None:
            changes["payer_id"] = data.paid_by

        amount = data.amount if data.amount is not None else expense.amount
        method = data.split_method or expense.split_method
        splits = None
        if data.splits is not None or amount != expense.amount or method != expense.split_method:
            inputs = data.splits if data.splits is not None else [
                SplitInput(
                    participant_id=split.participant_id,
                    amount=split.owed_amount,
                    percentage=split.percentage,
                    shares=split.shares
                )
                for split in expense.splits
            ]
            splits = compute_splits(amount, method, inputs)

        updated = await self.expenses.replace_details(expense, changes, splits)
        if updated is None:
            raise ConflictingWrite(f"Expense {expense_id} was modified concurrently")

        if updated.payer_id != expense.payer_id or updated.splits != expense.splits:
            try:
                await self._retry(lambda: self.ledger.replace_expense(expense, updated))
            except Exception:
                logger.warning("Ledger rejected expense update, restoring", extra={"expense_id": expense_id})
                await self.expenses.restore(expense, updated.version)
                raise

        await self.emitter.record(
            ActivityType.EXPENSE_UPDATED,
            actor_id,
            f"Updated: {updated.description}",
            scope_id=updated.scope_id,
            reference_id=updated.id
        )
        self.publisher.publish(
            MessageType.EXPENSE_UPDATED,
            expense_payload(updated),
            actor_id,
            updated.scope_id,
            _participants(expense, updated)
        )
        return updated

    async def delete_expense(self, actor_id: str, expense_id: str) -> Expense:
        expense = await self.expenses.get(expense_id, include_deleted=True)
        if not expense:
            raise NotFound(f"Expense {expense_id} not found")
        self._authorize(actor_id, expense)
        if expense.deleted:
            raise InvalidTransition(f"Expense {expense_id} is already deleted")

        # Only the request that flips the flag reverses the ledger
        claimed = await self.expenses.mark_deleted(expense_id)
        if claimed is None:
            raise InvalidTransition(f"Expense {expense_id} is already deleted")

        try:
            await self._retry(lambda: self.ledger.reverse(claimed))
        except Exception:
            logger.warning("Ledger rejected expense reversal, undeleting", extra={"expense_id": expense_id})
            await self.expenses.unmark_deleted(expense_id)
            raise

        await self.emitter.record(
            ActivityType.EXPENSE_DELETED,
            actor_id,
            f"Deleted: {claimed.description}",
            scope_id=claimed.scope_id,
            reference_id=claimed.id
        )
        self.publisher.publish(
            MessageType.EXPENSE_DELETED,
            {"expenseId": claimed.id, "groupId": claimed.scope_id},
            actor_id,
            claimed.scope_id,
            _participants(claimed)
        )
        return claimed

    async def list_expenses(self, scope_id: Optional[str]) -> List[Expense]:
        return await self.expenses.list_for_scope(scope_id)

    @staticmethod
    def _authorize(actor_id: str, expense: Expense) -> None:
        if actor_id not in (expense.payer_id, expense.created_by):
            raise NotAuthorized("Only the payer or creator can change this expense")
