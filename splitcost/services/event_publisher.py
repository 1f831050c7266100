"""
EventPublisher - routes domain events to realtime channels.

Fan-out rule:
- group-scoped mutation: one broadcast on the group channel
- unscoped (direct) mutation: one broadcast on each other participant's
  personal channel; the actor gets no echo

Delivery is best-effort. A failure here is logged and never reaches the
caller, whose write has already committed.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from splitcost.realtime.hub import HubRegistry
from splitcost.realtime.protocol import (
    MessageType,
    RealtimeMessage,
    group_channel,
    user_channel,
)

logger = logging.getLogger(__name__)


class EventPublisher:

    def __init__(self, hubs: HubRegistry):
        self.hubs = hubs

    def publish(
        self,
        type: MessageType,
        data: Dict[str, Any],
        actor_id: str,
        scope_id: Optional[str],
        participant_ids: Iterable[str] = ()
    ) -> None:
        message = RealtimeMessage.of(type, data, sender=actor_id)
        try:
            if scope_id is not None:
                self.hubs.broadcast(group_channel(scope_id), message)
                return

            notified = set()
            for participant_id in participant_ids:
                if participant_id == actor_id or participant_id in notified:
                    continue
                notified.add(participant_id)
                self.hubs.broadcast(user_channel(participant_id), message)
        except Exception:
            logger.exception(
                "Broadcast failed",
                extra={"type": type.value, "scope_id": scope_id, "actor_id": actor_id},
            )

    def notify_user(self, type: MessageType, data: Dict[str, Any], actor_id: str, user_id: str) -> None:
        """Targeted event on another user's personal channel."""
        self.publish(type, data, actor_id, None, [user_id])

    def direct(self, type: MessageType, data: Dict[str, Any], user_id: str) -> None:
        """Event on a user's own channel, echo included (other devices of the same user)."""
        try:
            self.hubs.broadcast(user_channel(user_id), RealtimeMessage.of(type, data))
        except Exception:
            logger.exception("Broadcast failed", extra={"type": type.value, "user_id": user_id})
