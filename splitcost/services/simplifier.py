"""
Debt simplification.

Greedy largest-first matching: the biggest debtor pays the biggest creditor
as much as possible, then whoever is exhausted drops out. This keeps the
transaction count at most n - 1 and usually minimal, but it is a heuristic;
some inputs have a shorter solution it will not find.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping

from splitcost.core.errors import ImbalancedLedger
from splitcost.models.ledger import LedgerEntry
from splitcost.schemas.ledger import SimplifiedTransaction

EPSILON = Decimal("0.01")
CENT = Decimal("0.01")


def net_positions(entries: Iterable[LedgerEntry]) -> Dict[str, Decimal]:
    """
    Net position per participant: sum of the rows they own.

    Positive means others owe them. Participants keep the order in which
    they first appear, which is the tie-break order for the simplifier.
    """
    net: Dict[str, Decimal] = {}
    for entry in entries:
        net[entry.owner_id] = net.get(entry.owner_id, Decimal("0")) + entry.amount
        net.setdefault(entry.counterparty_id, Decimal("0"))
    return net


def simplify_debts(
    net: Mapping[str, Decimal],
    epsilon: Decimal = EPSILON
) -> List[SimplifiedTransaction]:
    """
    Reduce net balances to a short list of payments.

    Raises ImbalancedLedger if the balances do not cancel out; nothing is
    emitted in that case. Amounts keep full precision until emission.
    """
    total = sum(net.values(), Decimal("0"))
    if abs(total) > epsilon:
        raise ImbalancedLedger(f"Net balances sum to {total}, expected 0")

    creditors = [[pid, amount] for pid, amount in net.items() if amount > epsilon]
    debtors = [[pid, -amount] for pid, amount in net.items() if amount < -epsilon]

    # list.sort is stable, so equal amounts keep input order
    creditors.sort(key=lambda c: c[1], reverse=True)
    debtors.sort(key=lambda d: d[1], reverse=True)

    transactions: List[SimplifiedTransaction] = []
    i = 0
    j = 0

    while i < len(debtors) and j < len(creditors):
        debtor = debtors[i]
        creditor = creditors[j]

        amount = min(debtor[1], creditor[1])
        if amount > epsilon:
            transactions.append(
                SimplifiedTransaction(
                    from_id=debtor[0],
                    to_id=creditor[0],
                    amount=amount.quantize(CENT, rounding=ROUND_HALF_UP)
                )
            )

        debtor[1] -= amount
        creditor[1] -= amount

        if debtor[1] < epsilon:
            i += 1
        if creditor[1] < epsilon:
            j += 1

    leftover = [d for d in debtors[i:] if d[1] > epsilon] + [c for c in creditors[j:] if c[1] > epsilon]
    if leftover:
        raise ImbalancedLedger(
            f"Unmatched balances after simplification: {[p[0] for p in leftover]}"
        )

    return transactions
