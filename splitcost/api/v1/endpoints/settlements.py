from typing import List, Optional

from fastapi import APIRouter, Depends, status

from splitcost.api.v1.deps import get_settlement_service, http_error
from splitcost.core.auth import get_current_user_id
from splitcost.core.errors import LedgerError
from splitcost.models.settlement import Settlement, SettlementStatus
from splitcost.schemas.settlement import SettlementCreate, SettlementResponse
from splitcost.services.settlement_service import SettlementService

router = APIRouter()


def _to_response(settlement: Settlement) -> SettlementResponse:
    return SettlementResponse(
        id=settlement.id,
        from_user_id=settlement.from_id,
        to_user_id=settlement.to_id,
        group_id=settlement.scope_id,
        amount=settlement.amount,
        currency=settlement.currency,
        status=settlement.status,
        created_at=settlement.created_at,
        confirmed_at=settlement.confirmed_at
    )


@router.post("", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_settlement(
    payload: SettlementCreate,
    user_id: str = Depends(get_current_user_id),
    service: SettlementService = Depends(get_settlement_service)
):
    """Record a payment to another user; pending until they confirm it."""
    try:
        settlement = await service.create_settlement(user_id, payload)
    except LedgerError as e:
        raise http_error(e)
    return _to_response(settlement)


@router.get("", response_model=List[SettlementResponse])
async def list_settlements(
    status_filter: Optional[SettlementStatus] = None,
    group_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    service: SettlementService = Depends(get_settlement_service)
):
    settlements = await service.list_settlements(user_id, status_filter, group_id)
    return [_to_response(s) for s in settlements]


@router.post("/{settlement_id}/confirm", response_model=SettlementResponse)
async def confirm_settlement(
    settlement_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SettlementService = Depends(get_settlement_service)
):
    """Confirm receipt of a payment (receiver only); adjusts the ledger once."""
    try:
        settlement = await service.confirm_settlement(user_id, settlement_id)
    except LedgerError as e:
        raise http_error(e)
    return _to_response(settlement)


@router.post("/{settlement_id}/reject", response_model=SettlementResponse)
async def reject_settlement(
    settlement_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SettlementService = Depends(get_settlement_service)
):
    try:
        settlement = await service.reject_settlement(user_id, settlement_id)
    except LedgerError as e:
        raise http_error(e)
    return _to_response(settlement)


@router.delete("/{settlement_id}")
async def cancel_settlement(
    settlement_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SettlementService = Depends(get_settlement_service)
):
    """Withdraw a pending settlement (creator only)."""
    try:
        await service.cancel_settlement(user_id, settlement_id)
    except LedgerError as e:
        raise http_error(e)
    return {"success": True, "message": "Settlement cancelled"}
