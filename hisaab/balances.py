"""Equal-split balance computation for a single group.

Balances are never stored. Every view recomputes them from the full expense
history, so replaying the same rows always yields the same result.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .money import as_amount, is_material, sum_amounts

Row = Mapping[str, Any]


def total_expense(expenses: Sequence[Row]) -> float:
    # Settlement legs cancel out here, so they never inflate the total
    return sum_amounts(expenses)


def per_person_share(members: Sequence[Row], expenses: Sequence[Row]) -> float:
    if not members:
        return 0.0
    return total_expense(expenses) / len(members)


def compute_balances(members: Sequence[Row], expenses: Sequence[Row]) -> List[Dict[str, Any]]:
    """Return ``paid`` and ``balance`` for every member, largest creditor first.

    ``balance = paid - total / len(members)``. Positive means the group owes
    the member, negative means the member owes the group. The balances of a
    group always sum to zero.
    """
    share = per_person_share(members, expenses)

    paid_map: Dict[Any, float] = {}
    for expense in expenses:
        payer = expense.get("paid_by")
        paid_map[payer] = paid_map.get(payer, 0.0) + as_amount(expense.get("amount"))

    balances = []
    for member in members:
        paid = paid_map.get(member["id"], 0.0)
        balances.append(
            {
                "member_id": member["id"],
                "name": member.get("name"),
                "paid": paid,
                "balance": paid - share,
            }
        )

    # sorted() is stable, ties keep member order
    return sorted(balances, key=lambda row: row["balance"], reverse=True)


def member_balance(member_id: Any, members: Sequence[Row], expenses: Sequence[Row]) -> float:
    for row in compute_balances(members, expenses):
        if row["member_id"] == member_id:
            return row["balance"]
    return 0.0


def outstanding_debt(member_id: Any, members: Sequence[Row], expenses: Sequence[Row]) -> Optional[float]:
    """Amount the member owes the group, or None if it is not worth mentioning."""
    balance = member_balance(member_id, members, expenses)
    if balance < 0 and is_material(-balance):
        return -balance
    return None


def suggest_settlements(balances: Sequence[Row]) -> List[Dict[str, Any]]:
    """Greedy debtor/creditor matching over one group's balance sheet."""
    debtors = []
    creditors = []

    for balance in balances:
        amount = balance["balance"]
        if amount > 0:
            creditors.append({"member_id": balance["member_id"], "name": balance.get("name"), "amount": amount})
        elif amount < 0:
            debtors.append({"member_id": balance["member_id"], "name": balance.get("name"), "amount": -amount})

    debtors.sort(key=lambda row: row["amount"], reverse=True)
    creditors.sort(key=lambda row: row["amount"], reverse=True)

    settlements: List[Dict[str, Any]] = []

    debtor_idx = 0
    creditor_idx = 0

    while debtor_idx < len(debtors) and creditor_idx < len(creditors):
        debtor = debtors[debtor_idx]
        creditor = creditors[creditor_idx]

        settled_amount = min(debtor["amount"], creditor["amount"])
        if is_material(settled_amount):
            settlements.append(
                {
                    "from_member_id": debtor["member_id"],
                    "from_name": debtor["name"],
                    "to_member_id": creditor["member_id"],
                    "to_name": creditor["name"],
                    "amount": round(settled_amount, 2),
                }
            )

        debtor["amount"] -= settled_amount
        creditor["amount"] -= settled_amount

        if debtor["amount"] <= 0:
            debtor_idx += 1
        if creditor["amount"] <= 0:
            creditor_idx += 1

    return settlements
