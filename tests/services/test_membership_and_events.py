from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from splitcost.core.errors import InvalidTransition
from splitcost.models.activity import ActivityType
from splitcost.realtime.hub import HubRegistry
from splitcost.realtime.protocol import MessageType
from splitcost.services.event_publisher import EventPublisher


@pytest.fixture
def hubs():
    return MagicMock(spec=HubRegistry)


def channels(hubs):
    return [call.args[0] for call in hubs.broadcast.call_args_list]


def test_group_event_goes_to_group_channel_once(hubs):
    EventPublisher(hubs).publish(MessageType.EXPENSE_ADDED, {}, "u1", "g1", ["u1", "u2", "u3"])

    assert channels(hubs) == ["g1"]


def test_direct_event_goes_to_each_other_participant(hubs):
    EventPublisher(hubs).publish(MessageType.EXPENSE_ADDED, {}, "u1", None, ["u1", "u2", "u3", "u2"])

    assert channels(hubs) == ["user:u2", "user:u3"]
    message = hubs.broadcast.call_args.args[1]
    assert message.type == "expense_added"
    assert message.sender == "u1"


def test_broadcast_failure_is_swallowed(hubs):
    hubs.broadcast.side_effect = RuntimeError("hub gone")

    EventPublisher(hubs).publish(MessageType.EXPENSE_DELETED, {}, "u1", "g1")


@pytest.mark.asyncio
async def test_friendship_accepted_links_and_notifies(membership_service, ledger, activity_repo, publisher):
    await membership_service.friendship_accepted("u1", "u2")

    rows = await ledger.snapshot(None)
    assert {(r.owner_id, r.counterparty_id) for r in rows} == {("u1", "u2"), ("u2", "u1")}
    assert activity_repo.activities[0].type == ActivityType.FRIEND_ACCEPTED
    publisher.notify_user.assert_called_once_with(
        MessageType.FRIEND_ACCEPTED, {"friendId": "u1"}, "u1", "u2"
    )


@pytest.mark.asyncio
async def test_member_joined_links_with_every_member(membership_service, ledger, publisher):
    await membership_service.member_joined("g1", "u3", ["u1", "u2", "u3"])

    rows = await ledger.snapshot("g1")
    assert {(r.owner_id, r.counterparty_id) for r in rows} == {
        ("u3", "u1"), ("u1", "u3"), ("u3", "u2"), ("u2", "u3"),
    }
    assert publisher.publish.call_args.args[0] == MessageType.MEMBER_JOINED
    publisher.direct.assert_called_once_with(MessageType.GROUP_JOINED, {"groupId": "g1"}, "u3")


@pytest.mark.asyncio
async def test_member_cannot_leave_with_open_balance(membership_service, ledger, publisher):
    await ledger.adjust("u1", "u2", "g1", Decimal("5"))

    with pytest.raises(InvalidTransition):
        await membership_service.member_left("g1", "u2")
    publisher.publish.assert_not_called()

    await ledger.adjust("u1", "u2", "g1", Decimal("-5"))
    await membership_service.member_left("g1", "u2")
    assert publisher.publish.call_args.args[0] == MessageType.MEMBER_LEFT
