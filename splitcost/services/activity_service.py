import asyncio
import logging
from typing import Optional

from splitcost.models.activity import Activity, ActivityType
from splitcost.repositories.activity_repo import ActivityRepository

logger = logging.getLogger(__name__)


class ActivityEmitter:
    """
    Appends activity records after a ledger mutation has committed.

    Recording is best-effort: the mutation already happened, so a failed
    insert is logged as a recoverable gap and never raised to the caller.
    """

    def __init__(self, repo: ActivityRepository, timeout: float = 5.0):
        self.repo = repo
        self.timeout = timeout

    async def record(
        self,
        type: ActivityType,
        actor_id: str,
        message: str,
        scope_id: Optional[str] = None,
        reference_id: Optional[str] = None
    ) -> Optional[Activity]:
        activity = Activity(
            scope_id=scope_id,
            actor_id=actor_id,
            type=type,
            reference_id=reference_id,
            message=message
        )
        try:
            return await asyncio.wait_for(self.repo.append(activity), self.timeout)
        except Exception as e:
            logger.warning(
                "Activity not recorded, recoverable gap",
                extra={
                    "type": type.value,
                    "reference_id": reference_id,
                    "scope_id": scope_id,
                    "error": str(e),
                },
            )
            return None
