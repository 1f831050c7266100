"""
Wire protocol for the realtime channels.

Every frame is a JSON object ``{type, data, sender?, timestamp}``. Channels
are addressed by key: a group id for group channels, ``user:<id>`` for a
user's personal stream.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from splitcost.core.errors import MalformedMessage

USER_CHANNEL_PREFIX = "user:"


class MessageType(str, Enum):
    # Ledger events
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    SETTLEMENT_ADDED = "settlement_added"
    SETTLEMENT_CONFIRMED = "settlement_confirmed"
    SETTLEMENT_REJECTED = "settlement_rejected"
    SETTLEMENT_REMOVED = "settlement_removed"
    COMMENT_ADDED = "comment_added"

    # Membership events
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPTED = "friend_accepted"
    GROUP_JOINED = "group_joined"

    # Presence and session
    CONNECTED = "connected"
    USER_CONNECTED = "user_connected"
    USER_DISCONNECTED = "user_disconnected"
    USER_TYPING = "user_typing"
    PING = "ping"
    PONG = "pong"
    SYNC_RESPONSE = "sync_response"


class ClientMessageType(str, Enum):
    PING = "ping"
    TYPING = "typing"
    REQUEST_SYNC = "request_sync"
    DISCONNECT = "disconnect"


# Domain events a client may push; the hub rebroadcasts them with its own sender
RELAYED_TYPES = {
    MessageType.EXPENSE_ADDED.value,
    MessageType.EXPENSE_UPDATED.value,
    MessageType.EXPENSE_DELETED.value,
    MessageType.SETTLEMENT_ADDED.value,
    MessageType.SETTLEMENT_CONFIRMED.value,
    MessageType.COMMENT_ADDED.value,
    MessageType.MEMBER_JOINED.value,
    MessageType.MEMBER_LEFT.value,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RealtimeMessage(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    sender: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def of(cls, type: MessageType, data: Optional[Dict[str, Any]] = None, sender: Optional[str] = None) -> "RealtimeMessage":
        return cls(type=type.value, data=data or {}, sender=sender)

    def to_frame(self) -> str:
        return self.model_dump_json(exclude_none=True)


class ClientFrame(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


def parse_frame(raw: str) -> ClientFrame:
    """Parse an inbound text frame; raises MalformedMessage on anything unusable."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedMessage(f"Frame is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedMessage("Frame must be a JSON object")
    if not isinstance(payload.get("type"), str):
        raise MalformedMessage("Frame has no string 'type'")

    data = payload.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedMessage("Frame 'data' must be an object")
    return ClientFrame(type=payload["type"], data=data)


def group_channel(group_id: str) -> str:
    return group_id


def user_channel(user_id: str) -> str:
    return f"{USER_CHANNEL_PREFIX}{user_id}"


def is_user_channel(channel_id: str) -> bool:
    return channel_id.startswith(USER_CHANNEL_PREFIX)


def channel_subject(channel_id: str) -> Optional[str]:
    """The user id behind a personal channel, None for group channels."""
    if is_user_channel(channel_id):
        return channel_id[len(USER_CHANNEL_PREFIX):]
    return None
