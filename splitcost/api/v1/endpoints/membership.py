from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from splitcost.api.v1.deps import get_membership_service, http_error
from splitcost.core.auth import get_current_user_id
from splitcost.core.errors import LedgerError
from splitcost.services.membership_service import MembershipService

router = APIRouter()


class MemberJoined(BaseModel):
    member_ids: List[str] = []  # members already in the group


@router.post("/friends/{friend_id}/accepted")
async def friendship_accepted(
    friend_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MembershipService = Depends(get_membership_service)
):
    """Hook: the current user accepted ``friend_id``'s request."""
    try:
        await service.friendship_accepted(user_id, friend_id)
    except LedgerError as e:
        raise http_error(e)
    return {"success": True}


@router.post("/groups/{group_id}/joined")
async def member_joined(
    group_id: str,
    payload: MemberJoined,
    user_id: str = Depends(get_current_user_id),
    service: MembershipService = Depends(get_membership_service)
):
    """Hook: the current user joined ``group_id``."""
    try:
        await service.member_joined(group_id, user_id, payload.member_ids)
    except LedgerError as e:
        raise http_error(e)
    return {"success": True}


@router.post("/groups/{group_id}/left")
async def member_left(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MembershipService = Depends(get_membership_service)
):
    """Hook: the current user leaves ``group_id``; refused with open balances."""
    try:
        await service.member_left(group_id, user_id)
    except LedgerError as e:
        raise http_error(e)
    return {"success": True, "message": "Member removed"}
