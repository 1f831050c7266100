import json
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import PyMongoError

from splitcost.core.errors import InvalidTransition, NotFound
from splitcost.models.activity import Activity
from splitcost.models.expense import Expense
from splitcost.models.settlement import Settlement, SettlementStatus, check_transition
from splitcost.repositories.memory_store import InMemoryLedgerStore
from splitcost.services.activity_service import ActivityEmitter
from splitcost.services.event_publisher import EventPublisher
from splitcost.services.expense_service import ExpenseService
from splitcost.services.ledger_service import LedgerService
from splitcost.services.membership_service import MembershipService
from splitcost.services.settlement_service import SettlementService


class FlakyLedgerStore(InMemoryLedgerStore):
    """In-memory store that raises the queued errors on the next increments."""

    def __init__(self):
        super().__init__()
        self.failures: List[Exception] = []
        self.increment_calls = 0

    async def increment(self, deltas, *, currency, timeout):
        self.increment_calls += 1
        if self.failures:
            raise self.failures.pop(0)
        await super().increment(deltas, currency=currency, timeout=timeout)


class FakeConnection:
    """Stands in for a Starlette WebSocket."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[dict] = []
        self.closed_with: Optional[int] = None

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionError("socket gone")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def types(self) -> List[str]:
        return [message["type"] for message in self.sent]

    def of_type(self, type: str) -> List[dict]:
        return [message for message in self.sent if message["type"] == type]


class FakeExpenseRepository:
    """Same compare-and-set behaviour as ExpenseRepository, kept in a dict."""

    def __init__(self):
        self.docs: Dict[str, Expense] = {}

    async def insert(self, expense: Expense) -> Expense:
        self.docs[expense.id] = expense.model_copy(deep=True)
        return expense

    async def get(self, expense_id: str, include_deleted: bool = False) -> Optional[Expense]:
        expense = self.docs.get(expense_id)
        if expense is None or (expense.deleted and not include_deleted):
            return None
        return expense.model_copy(deep=True)

    async def discard(self, expense_id: str) -> None:
        self.docs.pop(expense_id, None)

    async def list_for_scope(self, scope_id, limit: int = 100) -> List[Expense]:
        return [e for e in self.docs.values() if e.scope_id == scope_id and not e.deleted][:limit]

    async def replace_details(self, expense, changes, splits=None):
        stored = self.docs.get(expense.id)
        if stored is None or stored.deleted or stored.version != expense.version:
            return None
        update = dict(changes)
        if splits is not None:
            update["splits"] = splits
        update["version"] = expense.version + 1
        updated = stored.model_copy(update=update, deep=True)
        self.docs[expense.id] = updated
        return updated.model_copy(deep=True)

    async def restore(self, expense: Expense, failed_version: int) -> None:
        stored = self.docs.get(expense.id)
        if stored is not None and stored.version == failed_version:
            self.docs[expense.id] = expense.model_copy(deep=True)

    async def mark_deleted(self, expense_id: str) -> Optional[Expense]:
        stored = self.docs.get(expense_id)
        if stored is None or stored.deleted:
            return None
        self.docs[expense_id] = stored.model_copy(update={"deleted": True}, deep=True)
        return stored

    async def unmark_deleted(self, expense_id: str) -> None:
        stored = self.docs.get(expense_id)
        if stored is not None and stored.deleted:
            self.docs[expense_id] = stored.model_copy(update={"deleted": False}, deep=True)


class FakeSettlementRepository:

    def __init__(self):
        self.docs: Dict[str, Settlement] = {}

    async def insert(self, settlement: Settlement) -> Settlement:
        self.docs[settlement.id] = settlement.model_copy(deep=True)
        return settlement

    async def get(self, settlement_id: str) -> Optional[Settlement]:
        settlement = self.docs.get(settlement_id)
        return settlement.model_copy(deep=True) if settlement else None

    async def list_for_user(self, user_id, status=None, scope_id=None) -> List[Settlement]:
        return [
            s for s in self.docs.values()
            if user_id in (s.from_id, s.to_id)
            and (status is None or s.status == status)
            and (scope_id is None or s.scope_id == scope_id)
        ]

    async def transition(self, settlement_id, expected, target) -> Settlement:
        check_transition(expected, target)
        stored = self.docs.get(settlement_id)
        if stored is None:
            raise NotFound(f"Settlement {settlement_id} not found")
        if stored.status != expected:
            raise InvalidTransition(
                f"Settlement is {stored.status.value}, cannot move to {target.value}"
            )
        updated = stored.model_copy(update={"status": target}, deep=True)
        self.docs[settlement_id] = updated
        return updated.model_copy(deep=True)

    async def revert(self, settlement_id, current) -> None:
        stored = self.docs.get(settlement_id)
        if stored is not None and stored.status == current:
            self.docs[settlement_id] = stored.model_copy(
                update={"status": SettlementStatus.PENDING, "confirmed_at": None}
            )

    async def delete_pending(self, settlement_id) -> bool:
        stored = self.docs.get(settlement_id)
        if stored is None or stored.status != SettlementStatus.PENDING:
            return False
        del self.docs[settlement_id]
        return True


class FakeActivityRepository:

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.error: Exception = PyMongoError("activities unavailable")
        self.activities: List[Activity] = []

    async def append(self, activity: Activity) -> Activity:
        if self.fail:
            raise self.error
        self.activities.append(activity)
        return activity


@pytest.fixture
def store() -> FlakyLedgerStore:
    return FlakyLedgerStore()


@pytest.fixture
def ledger(store) -> LedgerService:
    return LedgerService(store, timeout=1.0, currency="USD")


@pytest.fixture
def activity_repo() -> FakeActivityRepository:
    return FakeActivityRepository()


@pytest.fixture
def emitter(activity_repo) -> ActivityEmitter:
    return ActivityEmitter(activity_repo)


@pytest.fixture
def publisher() -> MagicMock:
    return MagicMock(spec=EventPublisher)


@pytest.fixture
def expense_repo() -> FakeExpenseRepository:
    return FakeExpenseRepository()


@pytest.fixture
def settlement_repo() -> FakeSettlementRepository:
    return FakeSettlementRepository()


@pytest.fixture
def expense_service(ledger, expense_repo, emitter, publisher) -> ExpenseService:
    return ExpenseService(
        ledger, expense_repo, emitter, publisher,
        retry_attempts=3, retry_base_delay=0
    )


@pytest.fixture
def settlement_service(ledger, settlement_repo, emitter, publisher) -> SettlementService:
    return SettlementService(
        ledger, settlement_repo, emitter, publisher,
        retry_attempts=3, retry_base_delay=0
    )


@pytest.fixture
def membership_service(ledger, emitter, publisher) -> MembershipService:
    return MembershipService(ledger, emitter, publisher, retry_attempts=3, retry_base_delay=0)


@pytest.fixture
def mock_db():
    """Motor database double with AsyncMock collections."""
    db = MagicMock()
    db.client = MagicMock()
    db.ledger_entries = MagicMock()
    db.ledger_entries.update_one = AsyncMock()
    db.ledger_entries.find_one = AsyncMock()
    return db


@pytest.fixture
def make_connection():
    """Factory for fake sockets: ``make_connection(fail=True)`` breaks on send."""
    return FakeConnection


@pytest.fixture
def client():
    """HTTP client without the lifespan, so no MongoDB is needed."""
    from fastapi.testclient import TestClient
    from splitcost.main import app

    yield TestClient(app)
    app.dependency_overrides.clear()
