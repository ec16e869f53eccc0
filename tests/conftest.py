from datetime import datetime, timezone
from decimal import Decimal
from itertools import count

import mysql.connector
import pytest
from werkzeug.security import generate_password_hash

from hisaab import repository


@pytest.fixture
def members():
    return [
        {"id": 1, "group_id": 10, "profile_id": 100, "name": "Alice"},
        {"id": 2, "group_id": 10, "profile_id": 200, "name": "Bob"},
        {"id": 3, "group_id": 10, "profile_id": 300, "name": "Carol"},
    ]


@pytest.fixture
def dinner(members):
    return [{"id": 1, "group_id": 10, "paid_by": 1, "amount": Decimal("300.00"), "description": "Dinner"}]


class FakeStore:
    """In-memory stand-in for the SQL repository functions."""

    def __init__(self):
        self.ids = count(1)
        self.profiles = {}
        self.groups = {}
        self.members = {}
        self.expenses = {}
        self.fail_inserts = False

    def add_profile(self, name, email, password="secret", is_admin=False):
        profile_id = self.create_profile(name, email, generate_password_hash(password))
        self.profiles[profile_id]["is_admin"] = is_admin
        return profile_id

    def create_profile(self, full_name, email, password_hash):
        profile_id = next(self.ids)
        self.profiles[profile_id] = {
            "id": profile_id,
            "full_name": full_name,
            "email": email,
            "password": password_hash,
            "is_admin": False,
        }
        return profile_id

    def get_profile_by_email(self, email):
        return next((p for p in self.profiles.values() if p["email"] == email), None)

    def get_profile(self, profile_id):
        return self.profiles.get(profile_id)

    def get_group_by_code(self, code):
        code = repository.normalize_join_code(code)
        return next((g for g in self.groups.values() if g["unique_code"] == code), None)

    def members_of_group(self, group_id):
        return [m for m in self.members.values() if m["group_id"] == group_id]

    def create_group(self, name, profile):
        group_id = next(self.ids)
        code = "CODE%02d" % group_id
        self.groups[group_id] = {
            "id": group_id,
            "name": name,
            "unique_code": code,
            "created_by": profile["id"],
            "created_at": datetime(2026, 10, 1, 12, 0),
        }
        self._add_member(group_id, profile)
        return {"id": group_id, "name": name, "unique_code": code, "created_by": profile["id"]}

    def _add_member(self, group_id, profile):
        member_id = next(self.ids)
        self.members[member_id] = {
            "id": member_id,
            "group_id": group_id,
            "profile_id": profile["id"],
            "name": profile.get("full_name"),
        }
        return member_id

    def join_group(self, code, profile):
        group = self.get_group_by_code(code)
        if group is None:
            return None, False
        for member in self.members_of_group(group["id"]):
            if member["profile_id"] == profile["id"]:
                return group, False
        self._add_member(group["id"], profile)
        return group, True

    def memberships_of_profile(self, profile_id):
        result = []
        for member in self.members.values():
            if member["profile_id"] == profile_id:
                group = self.groups[member["group_id"]]
                result.append(
                    {
                        **member,
                        "group_name": group["name"],
                        "unique_code": group["unique_code"],
                        "created_at": group["created_at"],
                    }
                )
        return result

    def expenses_of_group(self, group_id):
        rows = [e for e in self.expenses.values() if e["group_id"] == group_id]
        return sorted(rows, key=lambda e: e["id"], reverse=True)

    def expenses_paid_by_profile(self, profile_id):
        own = {m["id"] for m in self.members.values() if m["profile_id"] == profile_id}
        rows = [e for e in self.expenses.values() if e["paid_by"] in own]
        return sorted(rows, key=lambda e: e["id"], reverse=True)

    def insert_expenses(self, rows):
        if self.fail_inserts:
            raise _store_error()
        expense_ids = []
        for row in rows:
            expense_id = next(self.ids)
            self.expenses[expense_id] = {**row, "id": expense_id, "created_at": datetime.now(timezone.utc)}
            expense_ids.append(expense_id)
        return expense_ids

    def group_data_for_profile(self, profile_id):
        return [
            {
                "group": {"id": m["group_id"], "name": m["group_name"], "unique_code": m["unique_code"]},
                "members": self.members_of_group(m["group_id"]),
                "expenses": self.expenses_of_group(m["group_id"]),
            }
            for m in self.memberships_of_profile(profile_id)
        ]

    def all_groups(self):
        return list(self.groups.values())

    def all_members(self):
        return list(self.members.values())

    def all_expenses(self):
        return list(self.expenses.values())

    def delete_group(self, group_id):
        if group_id not in self.groups:
            return False
        del self.groups[group_id]
        self.members = {k: m for k, m in self.members.items() if m["group_id"] != group_id}
        self.expenses = {k: e for k, e in self.expenses.items() if e["group_id"] != group_id}
        return True

    def member_has_expenses(self, member_id):
        return any(
            e["paid_by"] == member_id or e.get("counterparty_id") == member_id for e in self.expenses.values()
        )

    def delete_member(self, member_id):
        return self.members.pop(member_id, None) is not None


def _store_error():
    return mysql.connector.Error("connection lost")


PATCHED = [
    "create_profile",
    "get_profile_by_email",
    "get_profile",
    "get_group_by_code",
    "members_of_group",
    "create_group",
    "join_group",
    "memberships_of_profile",
    "expenses_of_group",
    "expenses_paid_by_profile",
    "insert_expenses",
    "group_data_for_profile",
    "all_groups",
    "all_members",
    "all_expenses",
    "delete_group",
    "member_has_expenses",
    "delete_member",
]


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    for name in PATCHED:
        monkeypatch.setattr(repository, name, getattr(fake, name))
    return fake


@pytest.fixture
def app(store):
    from hisaab.app import create_app

    flask_app = create_app()
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(store):
    def _login(client, name, email, password="secret", is_admin=False):
        profile_id = store.add_profile(name, email, password, is_admin=is_admin)
        response = client.post("/api/login", json={"email": email, "password": password})
        assert response.status_code == 200
        return profile_id

    return _login
