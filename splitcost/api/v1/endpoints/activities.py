from typing import List

from fastapi import APIRouter, Depends, Query

from splitcost.core.auth import get_current_user_id
from splitcost.db.mongo import get_db
from splitcost.models.activity import Activity
from splitcost.repositories.activity_repo import ActivityRepository

router = APIRouter()


@router.get("/groups/{group_id}", response_model=List[Activity])
async def list_group_activity(
    group_id: str,
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    db = Depends(get_db)
):
    """Newest first."""
    return await ActivityRepository(db).list_for_scope(group_id, limit)
