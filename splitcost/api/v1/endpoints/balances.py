from typing import List

from fastapi import APIRouter, Depends

from splitcost.api.v1.deps import get_ledger, http_error
from splitcost.core.auth import get_current_user_id
from splitcost.core.errors import LedgerError
from splitcost.schemas.ledger import (
    BalanceLine,
    FriendBalanceResponse,
    SimplifiedDebtsResponse,
    UserBalanceResponse,
)
from splitcost.services.ledger_service import LedgerService

router = APIRouter()


@router.get("", response_model=UserBalanceResponse)
async def get_my_balances(
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger)
):
    """Overall balance summary across all groups and friends."""
    try:
        return await ledger.get_user_balance(user_id)
    except LedgerError as e:
        raise http_error(e)


@router.get("/friends/{friend_id}", response_model=FriendBalanceResponse)
async def get_friend_balance(
    friend_id: str,
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger)
):
    try:
        return await ledger.get_friend_balance(user_id, friend_id)
    except LedgerError as e:
        raise http_error(e)


@router.get("/groups/{group_id}", response_model=List[BalanceLine])
async def get_group_balances(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger)
):
    try:
        return await ledger.get_group_balances(group_id, user_id)
    except LedgerError as e:
        raise http_error(e)


@router.get("/groups/{group_id}/simplified", response_model=SimplifiedDebtsResponse)
async def get_simplified_debts(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger)
):
    """Fewest payments that settle the group."""
    try:
        return await ledger.simplified_debts(group_id)
    except LedgerError as e:
        raise http_error(e)
