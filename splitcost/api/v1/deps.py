from fastapi import Depends, HTTPException, Request, status

from splitcost.core.errors import (
    ConflictingWrite,
    ExpenseValidationError,
    ImbalancedLedger,
    InvalidTransition,
    LedgerError,
    NotAuthorized,
    NotFound,
    SettlementValidationError,
    StoreUnavailable,
)
from splitcost.db.mongo import get_db
from splitcost.realtime.hub import HubRegistry
from splitcost.repositories.activity_repo import ActivityRepository
from splitcost.repositories.expense_repo import ExpenseRepository
from splitcost.repositories.ledger_repo import MongoLedgerStore
from splitcost.repositories.settlement_repo import SettlementRepository
from splitcost.services.activity_service import ActivityEmitter
from splitcost.services.event_publisher import EventPublisher
from splitcost.services.expense_service import ExpenseService
from splitcost.services.ledger_service import LedgerService
from splitcost.services.membership_service import MembershipService
from splitcost.services.settlement_service import SettlementService

_STATUS_BY_ERROR = [
    (NotFound, status.HTTP_404_NOT_FOUND),
    (NotAuthorized, status.HTTP_403_FORBIDDEN),
    (ExpenseValidationError, status.HTTP_400_BAD_REQUEST),
    (SettlementValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (ConflictingWrite, status.HTTP_409_CONFLICT),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ImbalancedLedger, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def http_error(error: LedgerError) -> HTTPException:
    """Translate a domain error into the HTTPException a route raises."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(error)
    )


def get_ledger() -> LedgerService:
    return LedgerService(MongoLedgerStore(get_db()))


def get_hubs(request: Request) -> HubRegistry:
    return request.app.state.hubs


def get_publisher(hubs: HubRegistry = Depends(get_hubs)) -> EventPublisher:
    return EventPublisher(hubs)


def get_emitter(db = Depends(get_db)) -> ActivityEmitter:
    return ActivityEmitter(ActivityRepository(db))


def get_expense_service(
    ledger: LedgerService = Depends(get_ledger),
    emitter: ActivityEmitter = Depends(get_emitter),
    publisher: EventPublisher = Depends(get_publisher),
    db = Depends(get_db)
) -> ExpenseService:
    return ExpenseService(ledger, ExpenseRepository(db), emitter, publisher)


def get_settlement_service(
    ledger: LedgerService = Depends(get_ledger),
    emitter: ActivityEmitter = Depends(get_emitter),
    publisher: EventPublisher = Depends(get_publisher),
    db = Depends(get_db)
) -> SettlementService:
    return SettlementService(ledger, SettlementRepository(db), emitter, publisher)


def get_membership_service(
    ledger: LedgerService = Depends(get_ledger),
    emitter: ActivityEmitter = Depends(get_emitter),
    publisher: EventPublisher = Depends(get_publisher)
) -> MembershipService:
    return MembershipService(ledger, emitter, publisher)
