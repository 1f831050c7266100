from typing import Any, Callable, Dict

from splitcost.realtime.protocol import channel_subject
from splitcost.services.ledger_service import LedgerService


async def load_sync_payload(ledger: LedgerService, channel_id: str, subject_id: str) -> Dict[str, Any]:
    """
    Current state for a client that asked to resync.

    Group channel: the caller's balances in the group plus the simplified
    debts. Personal channel: the caller's balance summary.
    """
    personal_subject = channel_subject(channel_id)
    if personal_subject is not None:
        summary = await ledger.get_user_balance(personal_subject)
        return {"channel": channel_id, "balances": summary.model_dump(mode="json")}

    balances = await ledger.get_group_balances(channel_id, subject_id)
    debts = await ledger.simplified_debts(channel_id)
    return {
        "channel": channel_id,
        "groupId": channel_id,
        "balances": [line.model_dump(mode="json") for line in balances],
        "simplified": [tx.model_dump(mode="json") for tx in debts.simplified],
    }


def make_sync_provider(ledger_factory: Callable[[], LedgerService]):
    """Adapt ``load_sync_payload`` to the hub's ``(channel_id, subject_id)`` callback."""
    async def provider(channel_id: str, subject_id: str) -> Dict[str, Any]:
        return await load_sync_payload(ledger_factory(), channel_id, subject_id)
    return provider
