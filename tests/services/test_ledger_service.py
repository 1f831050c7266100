from decimal import Decimal

import pytest

from splitcost.core.errors import ConflictingWrite, StoreUnavailable
from splitcost.models.expense import Expense, ExpenseSplit, SplitMethod
from splitcost.models.ledger import LedgerKey
from splitcost.models.settlement import Settlement


def make_expense(payer="u1", scope=None, splits=None, amount="60.00") -> Expense:
    splits = splits or [("u1", "20.00"), ("u2", "20.00"), ("u3", "20.00")]
    return Expense(
        scope_id=scope,
        description="Dinner",
        amount=Decimal(amount),
        payer_id=payer,
        split_method=SplitMethod.EQUAL,
        splits=[ExpenseSplit(participant_id=p, owed_amount=Decimal(a)) for p, a in splits],
        created_by=payer
    )


@pytest.mark.asyncio
async def test_adjust_keeps_rows_mirrored(ledger):
    deltas = [Decimal("12.34"), Decimal("-5.00"), Decimal("0.01"), Decimal("100")]
    for delta in deltas:
        await ledger.adjust("a", "b", "g1", delta)

    forward = await ledger.entry("a", "b", "g1")
    backward = await ledger.entry("b", "a", "g1")
    assert forward == Decimal("107.35")
    assert forward + backward == 0


@pytest.mark.asyncio
async def test_adjust_touches_only_its_scope(ledger):
    await ledger.adjust("a", "b", "g1", Decimal("10"))

    assert await ledger.entry("a", "b", "g2") == 0
    assert await ledger.entry("a", "b", None) == 0


@pytest.mark.asyncio
async def test_adjust_rejects_self_pair(ledger):
    with pytest.raises(ValueError):
        await ledger.adjust("a", "a", None, Decimal("1"))


@pytest.mark.asyncio
async def test_equal_split_expense_credits_payer(ledger):
    await ledger.apply_expense_created(make_expense())

    assert await ledger.entry("u1", "u2", None) == Decimal("20.00")
    assert await ledger.entry("u1", "u3", None) == Decimal("20.00")
    assert await ledger.entry("u2", "u1", None) == Decimal("-20.00")
    # Payer's own share creates no row
    assert await ledger.store.read(
        LedgerKey(owner_id="u1", counterparty_id="u1"), timeout=1.0
    ) is None


@pytest.mark.asyncio
async def test_reverse_restores_every_entry(ledger):
    await ledger.adjust("u2", "u3", None, Decimal("7.50"))
    expense = make_expense()

    await ledger.apply_expense_created(expense)
    await ledger.reverse(expense)

    assert await ledger.entry("u1", "u2", None) == Decimal("0.00")
    assert await ledger.entry("u1", "u3", None) == Decimal("0.00")
    assert await ledger.entry("u2", "u1", None) == Decimal("0.00")
    assert await ledger.entry("u2", "u3", None) == Decimal("7.50")


@pytest.mark.asyncio
async def test_group_expense_maintains_aggregate(ledger):
    await ledger.apply_expense_created(make_expense(scope="g1"))
    await ledger.apply_expense_created(make_expense(scope="g2", payer="u2", splits=[("u1", "5.00"), ("u2", "5.00")], amount="10.00"))

    assert await ledger.entry("u1", "u2", "g1") == Decimal("20.00")
    assert await ledger.entry("u2", "u1", "g2") == Decimal("5.00")
    # Aggregate is the sum over scopes
    assert await ledger.entry("u1", "u2", None) == Decimal("15.00")
    assert await ledger.entry("u2", "u1", None) == Decimal("-15.00")


@pytest.mark.asyncio
async def test_replace_expense_reverses_then_applies(ledger):
    old = make_expense()
    new = make_expense(splits=[("u1", "30.00"), ("u2", "30.00")])
    await ledger.apply_expense_created(old)

    await ledger.replace_expense(old, new)

    assert await ledger.entry("u1", "u2", None) == Decimal("30.00")
    assert await ledger.entry("u1", "u3", None) == Decimal("0.00")


@pytest.mark.asyncio
async def test_settlement_reduces_what_receiver_is_owed(ledger):
    await ledger.apply_expense_created(make_expense(scope="g1"))
    settlement = Settlement(from_id="u2", to_id="u1", amount=Decimal("20.00"), scope_id="g1")

    await ledger.apply_settlement_confirmed(settlement)

    assert await ledger.entry("u1", "u2", "g1") == Decimal("0.00")
    assert await ledger.entry("u1", "u2", None) == Decimal("0.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [StoreUnavailable("down"), ConflictingWrite("race")])
async def test_failed_batch_leaves_ledger_untouched(ledger, store, error):
    await ledger.adjust("u1", "u2", None, Decimal("3"))
    store.failures.append(error)

    with pytest.raises(type(error)):
        await ledger.apply_expense_created(make_expense())

    assert await ledger.entry("u1", "u2", None) == Decimal("3")
    assert await ledger.entry("u1", "u3", None) == 0


@pytest.mark.asyncio
async def test_link_creates_zero_rows_once(ledger):
    await ledger.link("a", "b", "g1")
    await ledger.adjust("a", "b", "g1", Decimal("4"))
    await ledger.link("a", "b", "g1")

    rows = await ledger.snapshot("g1")
    assert [(r.owner_id, r.counterparty_id, r.amount) for r in rows] == [
        ("a", "b", Decimal("4")),
        ("b", "a", Decimal("-4")),
    ]
    aggregate = await ledger.snapshot(None)
    assert len(aggregate) == 2


@pytest.mark.asyncio
async def test_snapshot_for_subject_spans_scopes(ledger):
    await ledger.adjust("a", "b", "g1", Decimal("1"))
    await ledger.adjust("a", "c", "g2", Decimal("2"))
    await ledger.adjust("b", "c", "g2", Decimal("3"))

    rows = await ledger.snapshot(subject_id="a")

    assert {(r.counterparty_id, r.scope_id) for r in rows} == {("b", "g1"), ("c", "g2")}


@pytest.mark.asyncio
async def test_user_balance_summary(ledger):
    await ledger.apply_expense_created(make_expense(scope="g1"))
    await ledger.adjust("u4", "u1", None, Decimal("50"))
    await ledger.link("u1", "u5")

    summary = await ledger.get_user_balance("u1")

    assert summary.total_owed == Decimal("40.00")
    assert summary.total_owe == Decimal("50.00")
    assert summary.net_balance == Decimal("-10.00")
    # Zero rows are hidden, biggest first
    assert [line.counterparty_id for line in summary.balances] == ["u4", "u2", "u3"]


@pytest.mark.asyncio
async def test_friend_balance_breakdown(ledger):
    await ledger.apply_expense_created(make_expense(scope="g1"))
    await ledger.adjust("u1", "u2", None, Decimal("-5"))

    breakdown = await ledger.get_friend_balance("u1", "u2")

    assert breakdown.total_balance == Decimal("15.00")
    assert [(g.scope_id, g.amount) for g in breakdown.by_group] == [("g1", Decimal("20.00"))]


@pytest.mark.asyncio
async def test_simplified_debts_for_group(ledger):
    await ledger.apply_expense_created(make_expense(scope="g1"))

    debts = await ledger.simplified_debts("g1")

    assert [(t.from_id, t.to_id, t.amount) for t in debts.simplified] == [
        ("u2", "u1", Decimal("20.00")),
        ("u3", "u1", Decimal("20.00")),
    ]
    assert len(debts.raw) == 2
