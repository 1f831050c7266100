from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import Decimal128

from splitcost.models.expense import Expense, ExpenseSplit
from splitcost.repositories.expense_repo import ExpenseRepository
from splitcost.schemas.expense import ExpenseUpdate
from splitcost.services.expense_service import ExpenseService


@pytest.fixture
def stored_expense() -> Expense:
    return Expense(
        description="Dinner",
        amount=Decimal("60.00"),
        payer_id="u1",
        created_by="u1",
        splits=[
            ExpenseSplit(participant_id="u1", owed_amount=Decimal("30.00")),
            ExpenseSplit(participant_id="u2", owed_amount=Decimal("30.00")),
        ]
    )


@pytest.fixture
def expenses(mock_db, stored_expense) -> ExpenseRepository:
    mock_db.expenses = MagicMock()
    mock_db.expenses.find_one = AsyncMock(return_value=stored_expense.to_document())
    return ExpenseRepository(mock_db)


@pytest.mark.asyncio
async def test_get_reads_decimal128_amounts(expenses, stored_expense, mock_db):
    expense = await expenses.get(stored_expense.id)

    assert expense.amount == Decimal("60.00")
    assert expense.splits[1].owed_amount == Decimal("30.00")
    assert mock_db.expenses.find_one.call_args.args[0] == {"_id": stored_expense.id, "deleted": False}


@pytest.mark.asyncio
async def test_replace_details_is_compare_and_set(expenses, stored_expense, mock_db):
    mock_db.expenses.find_one_and_update = AsyncMock(return_value=None)

    result = await expenses.replace_details(stored_expense, {"description": "Lunch"})

    assert result is None
    query, update = mock_db.expenses.find_one_and_update.call_args.args
    assert query == {"_id": stored_expense.id, "version": 1, "deleted": False}
    assert update["$set"]["version"] == 2


@pytest.mark.asyncio
async def test_update_with_null_fields_writes_only_real_values(
    expenses, stored_expense, mock_db, ledger, emitter, publisher
):
    after = stored_expense.model_copy(update={"notes": "tip included", "version": 2})
    mock_db.expenses.find_one_and_update = AsyncMock(return_value=after.to_document())
    service = ExpenseService(ledger, expenses, emitter, publisher, retry_attempts=1, retry_base_delay=0)

    updated = await service.update_expense(
        "u1",
        stored_expense.id,
        ExpenseUpdate.model_validate({"amount": None, "description": None, "notes": "tip included"})
    )

    written = mock_db.expenses.find_one_and_update.call_args.args[1]["$set"]
    assert "amount" not in written
    assert "description" not in written
    assert written["notes"] == "tip included"
    assert updated.amount == Decimal("60.00")


@pytest.mark.asyncio
async def test_mark_deleted_returns_previous_state(expenses, stored_expense, mock_db):
    mock_db.expenses.find_one_and_update = AsyncMock(return_value=stored_expense.to_document())

    claimed = await expenses.mark_deleted(stored_expense.id)

    assert claimed.deleted is False
    query, update = mock_db.expenses.find_one_and_update.call_args.args
    assert query == {"_id": stored_expense.id, "deleted": False}
    assert update["$set"]["deleted"] is True


def test_documents_store_decimal128(stored_expense):
    document = stored_expense.to_document()

    assert document["amount"] == Decimal128("60.00")
    assert document["splits"][0]["owed_amount"] == Decimal128("30.00")
    assert document["split_method"] == "equal"
