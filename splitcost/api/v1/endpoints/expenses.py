from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from splitcost.api.v1.deps import get_expense_service, http_error
from splitcost.core.auth import get_current_user_id
from splitcost.core.errors import LedgerError
from splitcost.models.expense import Expense
from splitcost.schemas.expense import ExpenseCreate, ExpenseResponse, ExpenseUpdate
from splitcost.services.expense_service import ExpenseService

router = APIRouter()


def _to_response(expense: Expense) -> ExpenseResponse:
    return ExpenseResponse(
        id=expense.id,
        group_id=expense.scope_id,
        description=expense.description,
        amount=expense.amount,
        currency=expense.currency,
        payer_id=expense.payer_id,
        split_method=expense.split_method,
        splits=expense.splits,
        version=expense.version
    )


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    payload: ExpenseCreate,
    user_id: str = Depends(get_current_user_id),
    service: ExpenseService = Depends(get_expense_service)
):
    """Create an expense and apply it to the ledger."""
    try:
        expense = await service.create_expense(user_id, payload)
    except LedgerError as e:
        raise http_error(e)
    return _to_response(expense)


@router.get("", response_model=List[ExpenseResponse])
async def list_expenses(
    group_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    service: ExpenseService = Depends(get_expense_service)
):
    """List expenses of a group, or direct expenses when no group is given."""
    expenses = await service.list_expenses(group_id)
    if group_id is None:
        expenses = [
            e for e in expenses
            if user_id == e.payer_id or user_id in e.participant_ids()
        ]
    return [_to_response(expense) for expense in expenses]


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ExpenseService = Depends(get_expense_service)
):
    try:
        expense = await service.get_expense(expense_id)
    except LedgerError as e:
        raise http_error(e)
    if expense.scope_id is None and user_id not in [expense.payer_id] + expense.participant_ids():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Expense not found"
        )
    return _to_response(expense)


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: str,
    payload: ExpenseUpdate,
    user_id: str = Depends(get_current_user_id),
    service: ExpenseService = Depends(get_expense_service)
):
    """Update an expense (payer or creator only)."""
    try:
        expense = await service.update_expense(user_id, expense_id, payload)
    except LedgerError as e:
        raise http_error(e)
    return _to_response(expense)


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ExpenseService = Depends(get_expense_service)
):
    """Soft delete an expense and reverse its ledger effect."""
    try:
        await service.delete_expense(user_id, expense_id)
    except LedgerError as e:
        raise http_error(e)
    return {"success": True, "message": "Expense deleted"}
