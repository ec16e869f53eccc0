from __future__ import annotations

import logging
from datetime import datetime
from functools import wraps
from typing import Any, Dict, List, Optional

import mysql.connector
from flask import (
    Flask,
    jsonify,
    request,
    session,
)
from flask_cors import CORS
from werkzeug.security import check_password_hash, generate_password_hash

from . import repository
from .aggregate import aggregate_across_groups
from .balances import compute_balances, outstanding_debt, per_person_share, suggest_settlements, total_expense
from .config import config
from .money import as_amount
from .settlement import LedgerValidationError, build_expense, encode_settlement, entry_kind
from .stats import ledger_overview, personal_stats

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.SECRET_KEY
    app.config["SESSION_COOKIE_NAME"] = config.SESSION_COOKIE_NAME
    app.config["SESSION_COOKIE_HTTPONLY"] = config.SESSION_COOKIE_HTTPONLY
    app.config["SESSION_COOKIE_SAMESITE"] = config.SESSION_COOKIE_SAMESITE

    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(config.LOG_LEVEL)

    CORS(
        app,
        supports_credentials=True,
        resources={r"/api/*": {"origins": config.CORS_ORIGINS}},
    )

    register_routes(app)
    register_error_handlers(app)
    return app


def require_login(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        if "profile_id" not in session:
            return jsonify({"error": "authentication_required"}), 401
        return func(*args, **kwargs)

    return wrapper


def require_admin(func):
    @wraps(func)
    @require_login
    def wrapper(*args, **kwargs):
        profile = repository.get_profile(session["profile_id"])
        if not _is_admin(profile):
            return jsonify({"error": "not_authorized"}), 403
        return func(*args, **kwargs)

    return wrapper


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(mysql.connector.Error)
    def store_error(exc):
        app.logger.error("Ledger store failure: %s", exc)
        return jsonify({"error": "store_unavailable"}), 503


def register_routes(app: Flask) -> None:
    @app.post("/api/register")
    def register():
        payload = request.get_json(force=True) or {}
        full_name = (payload.get("name") or "").strip()
        email, password = _credentials(payload)
        if not (full_name and email and password):
            return jsonify({"error": "missing_fields"}), 400

        if repository.get_profile_by_email(email) is not None:
            return jsonify({"error": "email_in_use"}), 409

        profile = {
            "id": repository.create_profile(full_name, email, generate_password_hash(password)),
            "full_name": full_name,
            "email": email,
        }
        app.logger.info("Profile %s registered", profile["id"])
        return jsonify(_sign_in(profile)), 201

    @app.post("/api/login")
    def login():
        email, password = _credentials(request.get_json(force=True) or {})
        if not (email and password):
            return jsonify({"error": "missing_fields"}), 400

        profile = repository.get_profile_by_email(email)
        # Same answer for an unknown email and a wrong password
        if profile is None or not check_password_hash(profile["password"], password):
            return jsonify({"error": "invalid_credentials"}), 401

        return jsonify(_sign_in(profile))

    @app.post("/api/logout")
    @require_login
    def logout():
        session.clear()
        return jsonify({"status": "ok"})

    @app.get("/api/session")
    def get_session():
        if "profile_id" not in session:
            return jsonify({"authenticated": False})
        return jsonify({"authenticated": True, "profile": _session_profile()})

    @app.get("/api/groups")
    @require_login
    def list_groups():
        memberships = repository.memberships_of_profile(session["profile_id"])
        return jsonify(
            [
                {
                    "id": m["group_id"],
                    "name": m["group_name"],
                    "unique_code": m["unique_code"],
                    "member_id": m["id"],
                }
                for m in memberships
            ]
        )

    @app.post("/api/groups")
    @require_login
    def create_group():
        payload = request.get_json(force=True) or {}
        name = (payload.get("name") or "").strip()

        if not name:
            return jsonify({"error": "missing_group_name"}), 400

        group = repository.create_group(name, _session_profile())
        return jsonify(group), 201

    @app.post("/api/groups/join")
    @require_login
    def join_group():
        payload = request.get_json(force=True) or {}
        code = repository.normalize_join_code(payload.get("code"))

        if not code:
            return jsonify({"error": "missing_code"}), 400

        group, joined = repository.join_group(code, _session_profile())
        if group is None:
            return jsonify({"error": "group_not_found"}), 404

        status = "joined" if joined else "already_joined"
        return jsonify({"status": status, "unique_code": group["unique_code"]})

    @app.get("/api/groups/<code>")
    @require_login
    def get_group(code: str):
        group, members, error = _load_group(code)
        if error:
            return error

        expenses = repository.expenses_of_group(group["id"])
        balances = compute_balances(members, expenses)
        me = _own_member(members)

        return jsonify(
            {
                "group": _serialize_group(group),
                "members": members,
                "expenses": [_serialize_expense(e) for e in expenses],
                "total_expense": total_expense(expenses),
                "per_person_share": per_person_share(members, expenses),
                "balances": balances,
                "settlements": suggest_settlements(balances),
                "debt_alert": outstanding_debt(me["id"], members, expenses),
            }
        )

    @app.post("/api/groups/<code>/expenses")
    @require_login
    def add_expense(code: str):
        group, members, error = _load_group(code)
        if error:
            return error

        payload = request.get_json(force=True) or {}
        me = _own_member(members)

        try:
            row = build_expense(me["id"], payload.get("amount"), payload.get("description"), members)
        except LedgerValidationError as exc:
            return jsonify({"error": str(exc)}), 400

        row = _stored(row, repository.insert_expenses([row])[0])
        app.logger.info("Expense of %s added to group %s by member %s", row["amount"], group["id"], me["id"])
        return jsonify(_written(row)), 201

    @app.post("/api/groups/<code>/settlements")
    @require_login
    def settle_up(code: str):
        group, members, error = _load_group(code)
        if error:
            return error

        payload = request.get_json(force=True) or {}
        me = _own_member(members)

        try:
            rows = encode_settlement(me["id"], payload.get("receiver_id"), payload.get("amount"), members)
        except LedgerValidationError as exc:
            return jsonify({"error": str(exc)}), 400

        rows = [_stored(row, expense_id) for row, expense_id in zip(rows, repository.insert_expenses(rows))]
        app.logger.info(
            "Settlement of %s recorded in group %s: member %s -> member %s",
            rows[0]["amount"],
            group["id"],
            rows[0]["paid_by"],
            rows[1]["paid_by"],
        )
        return jsonify([_written(row) for row in rows]), 201

    @app.get("/api/stats")
    @require_login
    def get_stats():
        profile_id = session["profile_id"]
        memberships = repository.memberships_of_profile(profile_id)
        if not memberships:
            return jsonify({"stats": None, "balances": aggregate_across_groups(profile_id, [])})

        own_expenses = repository.expenses_paid_by_profile(profile_id)
        stats = personal_stats(own_expenses, memberships)
        if stats["biggest_expense"] is not None:
            stats["biggest_expense"] = _serialize_expense(stats["biggest_expense"])
        stats["recent_expenses"] = [_serialize_expense(e) for e in stats["recent_expenses"]]

        balances = aggregate_across_groups(profile_id, repository.group_data_for_profile(profile_id))
        return jsonify({"stats": stats, "balances": balances})

    @app.get("/api/admin/overview")
    @require_admin
    def admin_overview():
        groups = repository.all_groups()
        members = repository.all_members()
        expenses = repository.all_expenses()
        return jsonify(
            {
                "stats": ledger_overview(groups, members, expenses),
                "groups": [_serialize_group(g) for g in groups],
                "members": members,
            }
        )

    @app.delete("/api/admin/groups/<int:group_id>")
    @require_admin
    def admin_delete_group(group_id: int):
        if not repository.delete_group(group_id):
            return jsonify({"error": "group_not_found"}), 404
        return jsonify({"status": "deleted"})

    @app.delete("/api/admin/members/<int:member_id>")
    @require_admin
    def admin_delete_member(member_id: int):
        # Removing a payer would silently change every balance in the group
        if repository.member_has_expenses(member_id):
            return jsonify({"error": "member_has_expenses"}), 409
        if not repository.delete_member(member_id):
            return jsonify({"error": "member_not_found"}), 404
        return jsonify({"status": "deleted"})


def _credentials(payload: Dict[str, Any]):
    """Normalized ``(email, password)`` from a login or register body."""
    return (payload.get("email") or "").strip().lower(), payload.get("password") or ""


def _sign_in(profile: Dict[str, Any]) -> Dict[str, Any]:
    session.clear()
    session["profile_id"] = profile["id"]
    session["profile_name"] = profile["full_name"]
    return {"id": profile["id"], "full_name": profile["full_name"], "email": profile["email"]}


def _session_profile() -> Dict[str, Any]:
    return {"id": session["profile_id"], "full_name": session.get("profile_name")}


def _is_admin(profile: Optional[Dict[str, Any]]) -> bool:
    if not profile:
        return False
    return bool(profile.get("is_admin")) or (profile.get("email") or "").lower() in config.ADMIN_EMAILS


def _own_member(members: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    profile_id = session.get("profile_id")
    for member in members:
        if member.get("profile_id") == profile_id:
            return member
    return None


def _load_group(code: str):
    """Group and members for ``code``, or an error response for the caller."""
    group = repository.get_group_by_code(code)
    if not group:
        return None, None, (jsonify({"error": "group_not_found"}), 404)

    members = repository.members_of_group(group["id"])
    if _own_member(members) is None:
        return group, members, (jsonify({"error": "not_authorized"}), 403)

    return group, members, None


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _serialize_group(group: Dict[str, Any]) -> Dict[str, Any]:
    return {**group, "created_at": _iso(group.get("created_at"))}


def _stored(row: Dict[str, Any], expense_id: int) -> Dict[str, Any]:
    return {**row, "id": expense_id}


def _written(row: Dict[str, Any]) -> Dict[str, Any]:
    # created_at is filled in by the database and not read back after a write
    body = _serialize_expense(row)
    del body["created_at"]
    return body


def _serialize_expense(expense: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": expense.get("id"),
        "group_id": expense.get("group_id"),
        "paid_by": expense.get("paid_by"),
        "amount": as_amount(expense.get("amount")),
        "description": expense.get("description"),
        "kind": entry_kind(expense).value,
        "counterparty_id": expense.get("counterparty_id"),
        "created_at": _iso(expense.get("created_at")),
    }


app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
