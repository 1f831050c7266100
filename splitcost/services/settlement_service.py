import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from splitcost.core.errors import (
    InvalidTransition,
    NotAuthorized,
    NotFound,
    SettlementValidationError,
)
from splitcost.models.activity import ActivityType
from splitcost.models.settlement import Settlement, SettlementStatus
from splitcost.realtime.protocol import MessageType
from splitcost.repositories.settlement_repo import SettlementRepository
from splitcost.schemas.settlement import SettlementCreate
from splitcost.services.activity_service import ActivityEmitter
from splitcost.services.event_publisher import EventPublisher
from splitcost.services.ledger_service import LedgerService
from splitcost.services.retry import retry_conflicts

logger = logging.getLogger(__name__)


def settlement_payload(settlement: Settlement) -> Dict[str, Any]:
    return {
        "settlementId": settlement.id,
        "groupId": settlement.scope_id,
        "fromUserId": settlement.from_id,
        "toUserId": settlement.to_id,
        "amount": str(settlement.amount),
        "currency": settlement.currency,
        "status": settlement.status.value,
    }


def settlement_message(settlement: Settlement) -> str:
    return (
        f"{settlement.status.value.capitalize()}: {settlement.from_id} paid "
        f"{settlement.to_id} {settlement.amount} {settlement.currency}"
    )


class SettlementService:
    """
    Settlement lifecycle. The ledger is touched only on confirmation, and
    the pending -> confirmed compare-and-set makes that happen once.
    """

    def __init__(
        self,
        ledger: LedgerService,
        settlements: SettlementRepository,
        emitter: ActivityEmitter,
        publisher: EventPublisher,
        retry_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None
    ):
        self.ledger = ledger
        self.settlements = settlements
        self.emitter = emitter
        self.publisher = publisher
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

    async def create_settlement(self, actor_id: str, data: SettlementCreate) -> Settlement:
        if data.amount <= Decimal("0"):
            raise SettlementValidationError("Settlement amount must be positive")
        if data.to_user_id == actor_id:
            raise SettlementValidationError("Cannot settle with yourself")

        settlement = Settlement(
            from_id=actor_id,
            to_id=data.to_user_id,
            amount=data.amount,
            currency=data.currency,
            scope_id=data.group_id,
            payment_method=data.payment_method,
            notes=data.notes
        )
        await self.settlements.insert(settlement)

        await self.emitter.record(
            ActivityType.SETTLEMENT_ADDED,
            actor_id,
            settlement_message(settlement),
            scope_id=settlement.scope_id,
            reference_id=settlement.id
        )
        self._publish(MessageType.SETTLEMENT_ADDED, settlement, actor_id)
        return settlement

    async def get_settlement(self, settlement_id: str) -> Settlement:
        settlement = await self.settlements.get(settlement_id)
        if not settlement:
            raise NotFound(f"Settlement {settlement_id} not found")
        return settlement

    async def confirm_settlement(self, actor_id: str, settlement_id: str) -> Settlement:
        settlement = await self.get_settlement(settlement_id)
        if actor_id != settlement.to_id:
            raise NotAuthorized("Only the receiver can confirm a settlement")

        # Raises InvalidTransition for every caller but the first
        confirmed = await self.settlements.transition(
            settlement_id, SettlementStatus.PENDING, SettlementStatus.CONFIRMED
        )
        try:
            await retry_conflicts(
                lambda: self.ledger.apply_settlement_confirmed(confirmed),
                self.retry_attempts,
                self.retry_base_delay
            )
        except Exception:
            logger.warning(
                "Ledger rejected settlement, back to pending",
                extra={"settlement_id": settlement_id},
            )
            await self.settlements.revert(settlement_id, SettlementStatus.CONFIRMED)
            raise

        await self.emitter.record(
            ActivityType.SETTLEMENT_CONFIRMED,
            actor_id,
            settlement_message(confirmed),
            scope_id=confirmed.scope_id,
            reference_id=confirmed.id
        )
        self._publish(MessageType.SETTLEMENT_CONFIRMED, confirmed, actor_id)
        logger.info("Settlement confirmed", extra={"settlement_id": settlement_id})
        return confirmed

    async def reject_settlement(self, actor_id: str, settlement_id: str) -> Settlement:
        settlement = await self.get_settlement(settlement_id)
        if actor_id != settlement.to_id:
            raise NotAuthorized("Only the receiver can reject a settlement")

        rejected = await self.settlements.transition(
            settlement_id, SettlementStatus.PENDING, SettlementStatus.REJECTED
        )
        await self.emitter.record(
            ActivityType.SETTLEMENT_REJECTED,
            actor_id,
            settlement_message(rejected),
            scope_id=rejected.scope_id,
            reference_id=rejected.id
        )
        self._publish(MessageType.SETTLEMENT_REJECTED, rejected, actor_id)
        return rejected

    async def cancel_settlement(self, actor_id: str, settlement_id: str) -> None:
        """Creator withdraws a pending settlement; the ledger was never touched."""
        settlement = await self.get_settlement(settlement_id)
        if actor_id != settlement.from_id:
            raise NotAuthorized("Only the creator can cancel a settlement")

        if not await self.settlements.delete_pending(settlement_id):
            current = await self.get_settlement(settlement_id)
            raise InvalidTransition(
                f"Settlement is {current.status.value}, only pending settlements can be cancelled"
            )

        settlement.status = SettlementStatus.REMOVED
        self._publish(MessageType.SETTLEMENT_REMOVED, settlement, actor_id)

    async def list_settlements(
        self,
        user_id: str,
        status: Optional[SettlementStatus] = None,
        scope_id: Optional[str] = None
    ) -> List[Settlement]:
        return await self.settlements.list_for_user(user_id, status, scope_id)

    def _publish(self, type: MessageType, settlement: Settlement, actor_id: str) -> None:
        self.publisher.publish(
            type,
            settlement_payload(settlement),
            actor_id,
            settlement.scope_id,
            [settlement.from_id, settlement.to_id]
        )
