from decimal import Decimal

import pytest

from splitcost.core.errors import ImbalancedLedger
from splitcost.models.ledger import LedgerEntry
from splitcost.services.simplifier import net_positions, simplify_debts


def as_tuples(transactions):
    return [(t.from_id, t.to_id, t.amount) for t in transactions]


def settle(net, transactions):
    remaining = dict(net)
    for t in transactions:
        remaining[t.from_id] += t.amount
        remaining[t.to_id] -= t.amount
    return remaining


def test_largest_creditor_is_paid_first():
    net = {"A": Decimal("30"), "B": Decimal("20"), "C": Decimal("-50")}

    result = simplify_debts(net)

    assert as_tuples(result) == [
        ("C", "A", Decimal("30.00")),
        ("C", "B", Decimal("20.00")),
    ]


def test_output_zeroes_every_balance_within_bound():
    net = {
        "a": Decimal("45.50"),
        "b": Decimal("-10.25"),
        "c": Decimal("-20.00"),
        "d": Decimal("12.75"),
        "e": Decimal("-28.00"),
    }

    result = simplify_debts(net)

    assert len(result) <= len(net) - 1
    for amount in settle(net, result).values():
        assert abs(amount) <= Decimal("0.01")


def test_ties_follow_input_order():
    first = simplify_debts({"x": Decimal("10"), "y": Decimal("10"), "z": Decimal("-20")})
    second = simplify_debts({"y": Decimal("10"), "x": Decimal("10"), "z": Decimal("-20")})

    assert as_tuples(first) == [("z", "x", Decimal("10.00")), ("z", "y", Decimal("10.00"))]
    assert as_tuples(second) == [("z", "y", Decimal("10.00")), ("z", "x", Decimal("10.00"))]


def test_same_input_same_output():
    net = {"a": Decimal("5"), "b": Decimal("-2"), "c": Decimal("-3"), "d": Decimal("0")}

    assert as_tuples(simplify_debts(net)) == as_tuples(simplify_debts(dict(net)))


def test_rounding_noise_is_ignored():
    net = {"a": Decimal("0.004"), "b": Decimal("-0.004")}

    assert simplify_debts(net) == []


def test_amounts_rounded_only_at_emission():
    third = Decimal("10") / Decimal("3")
    net = {"a": third * 2, "b": -third, "c": -third}

    result = simplify_debts(net)

    assert as_tuples(result) == [
        ("b", "a", Decimal("3.33")),
        ("c", "a", Decimal("3.33")),
    ]


def test_imbalanced_input_is_rejected():
    with pytest.raises(ImbalancedLedger):
        simplify_debts({"a": Decimal("10"), "b": Decimal("-5")})


def test_empty_input():
    assert simplify_debts({}) == []


def test_net_positions_from_rows():
    rows = [
        LedgerEntry(owner_id="u1", counterparty_id="u2", amount=Decimal("20")),
        LedgerEntry(owner_id="u1", counterparty_id="u3", amount=Decimal("20")),
        LedgerEntry(owner_id="u2", counterparty_id="u1", amount=Decimal("-20")),
        LedgerEntry(owner_id="u3", counterparty_id="u1", amount=Decimal("-20")),
    ]

    net = net_positions(rows)

    assert list(net) == ["u1", "u2", "u3"]
    assert net == {"u1": Decimal("40"), "u2": Decimal("-20"), "u3": Decimal("-20")}
