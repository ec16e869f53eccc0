"""Ledger entry construction: plain expenses and settlement pairs.

The ledger only knows equal-split entries. A direct payment from one member
to another is written as two entries that cancel each other in the group
total: the payer's ``paid`` rises by X and the receiver's falls by X, so the
per-person share and every other member's balance stay where they were.
"""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .money import MAX_AMOUNT, as_amount, to_decimal

Row = Mapping[str, Any]

SETTLEMENT_PREFIXES = ("Settlement", "Received")


class EntryKind(str, enum.Enum):
    EXPENSE = "expense"
    SETTLEMENT = "settlement"


class LedgerValidationError(ValueError):
    """Rejected input. ``str(exc)`` is the error code returned to clients."""

    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


def _find_member(member_id: Any, members: Sequence[Row]) -> Optional[Row]:
    # True == 1 in Python, so a JSON boolean would otherwise match member 1
    if member_id is None or isinstance(member_id, bool):
        return None
    for member in members:
        if member["id"] == member_id or str(member["id"]) == str(member_id):
            return member
    return None


def _positive_amount(amount: Any) -> Decimal:
    try:
        amount_decimal = to_decimal(amount)
    except ValueError:
        raise LedgerValidationError("invalid_amount") from None
    if amount_decimal <= 0 or amount_decimal > MAX_AMOUNT:
        raise LedgerValidationError("invalid_amount")
    return amount_decimal


def build_expense(payer_id: Any, amount: Any, description: Optional[str], members: Sequence[Row]) -> Dict[str, Any]:
    """Row for a normal shared expense. Only positive amounts are accepted."""
    description = (description or "").strip()
    if payer_id is None or amount is None or not description:
        raise LedgerValidationError("missing_fields")

    amount_decimal = _positive_amount(amount)

    payer = _find_member(payer_id, members)
    if payer is None:
        raise LedgerValidationError("payer_not_in_group")

    return {
        "group_id": payer["group_id"],
        "paid_by": payer["id"],
        "amount": amount_decimal,
        "description": description,
        "kind": EntryKind.EXPENSE.value,
        "counterparty_id": None,
    }


def encode_settlement(payer_id: Any, receiver_id: Any, amount: Any, members: Sequence[Row]) -> List[Dict[str, Any]]:
    """Encode "payer pays receiver ``amount``" as a zero-sum pair of rows.

    Both rows must be written in the same transaction.
    """
    if payer_id is None or receiver_id is None or amount is None:
        raise LedgerValidationError("missing_fields")

    amount_decimal = _positive_amount(amount)

    payer = _find_member(payer_id, members)
    if payer is None:
        raise LedgerValidationError("payer_not_in_group")
    receiver = _find_member(receiver_id, members)
    # Compared after lookup: 3, 3.0 and "3" all name the same member
    if receiver is not None and receiver["id"] == payer["id"]:
        raise LedgerValidationError("cannot_settle_with_self")
    if receiver is None or receiver["group_id"] != payer["group_id"]:
        raise LedgerValidationError("receiver_not_in_group")

    return [
        {
            "group_id": payer["group_id"],
            "paid_by": payer["id"],
            "amount": amount_decimal,
            "description": f"Settlement to {receiver['name']}",
            "kind": EntryKind.SETTLEMENT.value,
            "counterparty_id": receiver["id"],
        },
        {
            "group_id": payer["group_id"],
            "paid_by": receiver["id"],
            "amount": -amount_decimal,
            "description": f"Received from {payer['name']}",
            "kind": EntryKind.SETTLEMENT.value,
            "counterparty_id": payer["id"],
        },
    ]


def entry_kind(row: Row) -> EntryKind:
    kind = row.get("kind")
    if kind:
        return EntryKind(kind)
    # Rows written before the kind column existed
    description = row.get("description") or ""
    if as_amount(row.get("amount")) < 0 or description.startswith(SETTLEMENT_PREFIXES):
        return EntryKind.SETTLEMENT
    return EntryKind.EXPENSE


def is_settlement(row: Row) -> bool:
    return entry_kind(row) is EntryKind.SETTLEMENT
