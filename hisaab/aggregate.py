"""Netted "to receive / to pay" view across every group an identity is in.

Each group is reduced independently: the identity's balance is paired with
every other member's balance using ``min(|mine|, |theirs|)``. This is a
pairwise approximation, not a minimal debt graph. With more than one other
member holding a nonzero balance the per-person amounts can over- or
under-count, and the totals are only loosely bounded by the identity's real
net balance.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .balances import compute_balances
from .money import is_material

Row = Mapping[str, Any]

RECEIVE = "receive"
PAY = "pay"


def _own_member(profile_id: Any, members: Sequence[Row]) -> Optional[Row]:
    for member in members:
        if member.get("profile_id") is not None and member.get("profile_id") == profile_id:
            return member
    return None


def pairwise_amount(user_balance: float, member_balance: float):
    """Return ``(type, amount)`` owed between two members, or ``(None, 0.0)``."""
    if user_balance > 0 and member_balance < 0:
        return RECEIVE, min(user_balance, abs(member_balance))
    if user_balance < 0 and member_balance > 0:
        return PAY, min(abs(user_balance), member_balance)
    return None, 0.0


def group_breakdown(profile_id: Any, group: Row, members: Sequence[Row], expenses: Sequence[Row]) -> List[Dict[str, Any]]:
    user_member = _own_member(profile_id, members)
    if user_member is None:
        return []

    balance_map = {row["member_id"]: row["balance"] for row in compute_balances(members, expenses)}
    user_balance = balance_map.get(user_member["id"], 0.0)

    breakdown = []
    for member in members:
        if member["id"] == user_member["id"]:
            continue
        entry_type, amount = pairwise_amount(user_balance, balance_map.get(member["id"], 0.0))
        if entry_type is None or not is_material(amount):
            continue
        breakdown.append(
            {
                "member_id": member["id"],
                "member_name": member.get("name"),
                "group_id": group.get("id"),
                "group_name": group.get("name") or "Unknown",
                "amount": amount,
                "type": entry_type,
            }
        )
    return breakdown


def aggregate_across_groups(profile_id: Any, per_group_data: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Combine the pairwise breakdown of every group ``profile_id`` belongs to.

    ``per_group_data`` items look like ``{"group": ..., "members": [...],
    "expenses": [...]}``.
    """
    breakdown: List[Dict[str, Any]] = []
    for data in per_group_data:
        breakdown.extend(
            group_breakdown(
                profile_id,
                data.get("group") or {},
                data.get("members") or [],
                data.get("expenses") or [],
            )
        )

    return {
        "total_to_receive": sum((b["amount"] for b in breakdown if b["type"] == RECEIVE), 0.0),
        "total_to_pay": sum((b["amount"] for b in breakdown if b["type"] == PAY), 0.0),
        "breakdown": breakdown,
    }
