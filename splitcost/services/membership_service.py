"""
Link lifecycle hooks called by the facade once a friendship or a group
membership has been stored. They give the new pair zeroed ledger rows so
balance reads list them, then record and announce the change.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from splitcost.core.errors import InvalidTransition
from splitcost.models.activity import ActivityType
from splitcost.realtime.protocol import MessageType
from splitcost.services.activity_service import ActivityEmitter
from splitcost.services.event_publisher import EventPublisher
from splitcost.services.ledger_service import DISPLAY_THRESHOLD, LedgerService
from splitcost.services.retry import retry_conflicts

logger = logging.getLogger(__name__)


class MembershipService:

    def __init__(
        self,
        ledger: LedgerService,
        emitter: ActivityEmitter,
        publisher: EventPublisher,
        retry_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None
    ):
        self.ledger = ledger
        self.emitter = emitter
        self.publisher = publisher
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

    async def friendship_accepted(self, user_id: str, friend_id: str) -> None:
        """``user_id`` accepted a request sent by ``friend_id``."""
        await retry_conflicts(
            lambda: self.ledger.link(user_id, friend_id),
            self.retry_attempts,
            self.retry_base_delay
        )
        await self.emitter.record(
            ActivityType.FRIEND_ACCEPTED,
            user_id,
            friend_id,
            reference_id=friend_id
        )
        self.publisher.notify_user(
            MessageType.FRIEND_ACCEPTED,
            {"friendId": user_id},
            user_id,
            friend_id
        )

    async def member_joined(self, group_id: str, user_id: str, member_ids: Iterable[str]) -> None:
        """Link the new member with every existing member of the group."""
        for member_id in member_ids:
            if member_id == user_id:
                continue
            await retry_conflicts(
                lambda member_id=member_id: self.ledger.link(user_id, member_id, group_id),
                self.retry_attempts,
                self.retry_base_delay
            )

        await self.emitter.record(
            ActivityType.MEMBER_JOINED,
            user_id,
            user_id,
            scope_id=group_id,
            reference_id=user_id
        )
        self.publisher.publish(
            MessageType.MEMBER_JOINED,
            {"groupId": group_id, "memberId": user_id},
            user_id,
            group_id
        )
        self.publisher.direct(MessageType.GROUP_JOINED, {"groupId": group_id}, user_id)

    async def member_left(self, group_id: str, user_id: str, actor_id: Optional[str] = None) -> None:
        """Refuses while the member still has open balances in the group."""
        rows = await self.ledger.snapshot(group_id, user_id)
        unsettled = sum((abs(row.amount) for row in rows), Decimal("0"))
        if unsettled > DISPLAY_THRESHOLD:
            raise InvalidTransition(
                f"Cannot leave with unsettled balances ({unsettled})"
            )

        actor_id = actor_id or user_id
        await self.emitter.record(
            ActivityType.MEMBER_LEFT,
            actor_id,
            user_id,
            scope_id=group_id,
            reference_id=user_id
        )
        self.publisher.publish(
            MessageType.MEMBER_LEFT,
            {"groupId": group_id, "memberId": user_id},
            actor_id,
            group_id
        )
        logger.info("Member left group", extra={"group_id": group_id, "user_id": user_id})
