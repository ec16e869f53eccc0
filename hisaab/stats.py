from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .money import as_amount
from .settlement import is_settlement

Row = Mapping[str, Any]

RECENT_DAYS = 7
MONTH_DAYS = 30
RECENT_LIST_SIZE = 10


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        # MySQL DATETIME columns come back naive and are stored in UTC
        value = value.replace(tzinfo=timezone.utc)
    return value


def since(days: int, now: Optional[datetime] = None) -> datetime:
    now = _as_datetime(now) or datetime.now(timezone.utc)
    return now - timedelta(days=days)


def _created_after(row: Row, start: datetime) -> bool:
    created = _as_datetime(row.get("created_at"))
    return created is not None and created >= start


def personal_stats(
    own_expenses: Sequence[Row],
    memberships: Sequence[Row],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Spending figures for the entries an identity paid, newest first.

    ``memberships`` are the identity's member rows joined with their group
    (``group_name``, ``unique_code``).
    """
    spending = [e for e in own_expenses if as_amount(e.get("amount")) > 0 and not is_settlement(e)]

    total_paid = sum((as_amount(e["amount"]) for e in spending), 0.0)
    total_transactions = len(spending)
    settlements_count = sum(1 for e in own_expenses if is_settlement(e))

    recent_start = since(RECENT_DAYS, now)
    recent = [e for e in spending if _created_after(e, recent_start)]

    month_start = since(MONTH_DAYS, now)
    monthly_total = sum((as_amount(e["amount"]) for e in spending if _created_after(e, month_start)), 0.0)

    biggest = max(spending, key=lambda e: as_amount(e["amount"]), default=None)

    group_stats: List[Dict[str, Any]] = []
    for membership in memberships:
        group_expenses = [e for e in spending if e.get("paid_by") == membership["id"]]
        group_total = sum((as_amount(e["amount"]) for e in group_expenses), 0.0)
        if group_total > 0:
            group_stats.append(
                {
                    "group_name": membership.get("group_name") or "Unknown",
                    "group_code": membership.get("unique_code") or "",
                    "total": group_total,
                    "count": len(group_expenses),
                }
            )

    return {
        "total_paid": total_paid,
        "total_transactions": total_transactions,
        "settlements_count": settlements_count,
        "recent_total": sum((as_amount(e["amount"]) for e in recent), 0.0),
        "recent_count": len(recent),
        "monthly_total": monthly_total,
        "avg_per_day": monthly_total / MONTH_DAYS,
        "biggest_expense": dict(biggest) if biggest is not None else None,
        "avg_expense": total_paid / total_transactions if total_transactions else 0.0,
        "group_stats": group_stats,
        "recent_expenses": [dict(e) for e in spending[:RECENT_LIST_SIZE]],
    }


def ledger_overview(groups: Sequence[Row], members: Sequence[Row], expenses: Sequence[Row]) -> Dict[str, Any]:
    return {
        "total_groups": len(groups),
        "total_members": len(members),
        "total_expenses": len(expenses),
        # Settlement legs are counted by size, not netted
        "total_amount": sum((abs(as_amount(e.get("amount"))) for e in expenses), 0.0),
    }
