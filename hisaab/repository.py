"""SQL access to groups, members, expenses and profiles."""

from __future__ import annotations

import logging
import random
import string
from typing import Any, Dict, List, Optional, Sequence

import mysql.connector

from .config import config
from .db import db

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 10


class DuplicateJoinCodeError(RuntimeError):
    pass


def normalize_join_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def generate_join_code(length: Optional[int] = None) -> str:
    return "".join(random.choices(JOIN_CODE_ALPHABET, k=length or config.JOIN_CODE_LENGTH))


# Profiles

def create_profile(full_name: str, email: str, password_hash: str) -> int:
    return db.execute(
        "INSERT INTO profiles (full_name, email, password) VALUES (%s, %s, %s)",
        (full_name, email, password_hash),
    )


def get_profile_by_email(email: str) -> Optional[Dict[str, Any]]:
    return db.fetch_one(
        "SELECT id, full_name, email, password, is_admin FROM profiles WHERE email=%s",
        (email,),
    )


def get_profile(profile_id: int) -> Optional[Dict[str, Any]]:
    return db.fetch_one(
        "SELECT id, full_name, email, is_admin FROM profiles WHERE id=%s",
        (profile_id,),
    )


# Groups and members

def get_group_by_code(code: str) -> Optional[Dict[str, Any]]:
    return db.fetch_one(
        "SELECT id, name, unique_code, created_by, created_at FROM `groups` WHERE unique_code=%s",
        (normalize_join_code(code),),
    )


def members_of_group(group_id: int) -> List[Dict[str, Any]]:
    return db.fetch_all(
        "SELECT id, group_id, profile_id, name FROM members WHERE group_id=%s ORDER BY id",
        (group_id,),
    )


def create_group(name: str, profile: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a group with a fresh join code and its creator as first member."""
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_join_code()
        try:
            with db.cursor() as cursor:
                cursor.execute(
                    "INSERT INTO `groups` (name, unique_code, created_by) VALUES (%s, %s, %s)",
                    (name, code, profile["id"]),
                )
                group_id = cursor.lastrowid
                cursor.execute(
                    "INSERT INTO members (group_id, profile_id, name) VALUES (%s, %s, %s)",
                    (group_id, profile["id"], profile.get("full_name") or "Admin"),
                )
        except mysql.connector.IntegrityError:
            # unique_code taken, possibly by a concurrent create
            logger.info("Join code %s already in use, retrying", code)
            continue
        break
    else:
        raise DuplicateJoinCodeError("could not allocate a unique join code")

    logger.info("Group %s created with code %s by profile %s", group_id, code, profile["id"])
    return {"id": group_id, "name": name, "unique_code": code, "created_by": profile["id"]}


def join_group(code: str, profile: Dict[str, Any]):
    """Add ``profile`` to the group behind ``code``.

    Returns ``(group, joined)``; ``joined`` is False when the profile was
    already a member. Returns ``(None, False)`` for an unknown code.
    """
    group = get_group_by_code(code)
    if group is None:
        return None, False

    existing = db.fetch_one(
        "SELECT id FROM members WHERE group_id=%s AND profile_id=%s",
        (group["id"], profile["id"]),
    )
    if existing:
        return group, False

    db.execute(
        "INSERT INTO members (group_id, profile_id, name) VALUES (%s, %s, %s)",
        (group["id"], profile["id"], profile.get("full_name") or "Member"),
    )
    logger.info("Profile %s joined group %s", profile["id"], group["id"])
    return group, True


def memberships_of_profile(profile_id: int) -> List[Dict[str, Any]]:
    return db.fetch_all(
        """
        SELECT m.id, m.group_id, m.profile_id, m.name,
               g.name AS group_name, g.unique_code, g.created_at
        FROM members m
        JOIN `groups` g ON g.id = m.group_id
        WHERE m.profile_id=%s
        ORDER BY g.created_at DESC
        """,
        (profile_id,),
    )


# Expenses

def expenses_of_group(group_id: int) -> List[Dict[str, Any]]:
    return db.fetch_all(
        """
        SELECT id, group_id, paid_by, amount, description, kind, counterparty_id, created_at
        FROM expenses
        WHERE group_id=%s
        ORDER BY created_at DESC, id DESC
        """,
        (group_id,),
    )


def expenses_paid_by_profile(profile_id: int) -> List[Dict[str, Any]]:
    return db.fetch_all(
        """
        SELECT e.id, e.group_id, e.paid_by, e.amount, e.description, e.kind,
               e.counterparty_id, e.created_at
        FROM expenses e
        JOIN members m ON m.id = e.paid_by
        WHERE m.profile_id=%s
        ORDER BY e.created_at DESC, e.id DESC
        """,
        (profile_id,),
    )


def insert_expenses(rows: Sequence[Dict[str, Any]]) -> List[int]:
    """Write every row in one transaction; a failure leaves none of them.

    Returns the new row ids in input order.
    """
    expense_ids = db.execute_many(
        """
        INSERT INTO expenses (group_id, paid_by, amount, description, kind, counterparty_id)
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        [
            (
                row["group_id"],
                row["paid_by"],
                str(row["amount"]),
                row["description"],
                row.get("kind"),
                row.get("counterparty_id"),
            )
            for row in rows
        ],
    )
    logger.info("Inserted expense rows %s", expense_ids)
    return expense_ids


def group_data_for_profile(profile_id: int) -> List[Dict[str, Any]]:
    """Members and expenses of every group ``profile_id`` belongs to."""
    data = []
    for membership in memberships_of_profile(profile_id):
        group_id = membership["group_id"]
        data.append(
            {
                "group": {
                    "id": group_id,
                    "name": membership["group_name"],
                    "unique_code": membership["unique_code"],
                },
                "members": members_of_group(group_id),
                "expenses": expenses_of_group(group_id),
            }
        )
    return data


# Administration

def all_groups() -> List[Dict[str, Any]]:
    return db.fetch_all(
        "SELECT id, name, unique_code, created_by, created_at FROM `groups` ORDER BY created_at DESC"
    )


def all_members() -> List[Dict[str, Any]]:
    return db.fetch_all("SELECT id, group_id, profile_id, name FROM members")


def all_expenses() -> List[Dict[str, Any]]:
    return db.fetch_all("SELECT id, group_id, paid_by, amount FROM expenses")


def delete_group(group_id: int) -> bool:
    group = db.fetch_one("SELECT id FROM `groups` WHERE id=%s", (group_id,))
    if not group:
        return False
    # members and expenses go with it (ON DELETE CASCADE)
    db.execute("DELETE FROM `groups` WHERE id=%s", (group_id,))
    logger.warning("Group %s deleted", group_id)
    return True


def member_has_expenses(member_id: int) -> bool:
    row = db.fetch_one(
        "SELECT id FROM expenses WHERE paid_by=%s OR counterparty_id=%s LIMIT 1",
        (member_id, member_id),
    )
    return row is not None


def delete_member(member_id: int) -> bool:
    member = db.fetch_one("SELECT id FROM members WHERE id=%s", (member_id,))
    if not member:
        return False
    db.execute("DELETE FROM members WHERE id=%s", (member_id,))
    logger.warning("Member %s deleted", member_id)
    return True
