from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from velora.config import Config
from velora.db import connect, dump_json, fetch_one, row_to_dict, update_fields
from velora.errors import Conflict, NotFound, ValidationError
from velora.util.time import utcnow_iso

from .security import hash_password


ROLES = ("admin", "user")
FAVORITE_ACTIONS = ("add", "remove")


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _user_from_row(row: Any) -> Dict[str, Any]:
    d = row_to_dict(row, json_fields=("favorites_json",), bool_fields=("email_verified",))
    d["favorites"] = d.pop("favorites_json")
    return d


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    d = dict(user)
    d.pop("password_hash", None)
    # Convenience flag used by the frontend for gating.
    d["is_admin"] = d.get("role") == "admin"
    return d


def get_user_by_id(conn: Any, user_id: str) -> Optional[Dict[str, Any]]:
    uid = (user_id or "").strip()
    if not uid:
        return None
    row = fetch_one(conn, "SELECT * FROM users WHERE id=?", (uid,))
    return _user_from_row(row) if row is not None else None


def get_user_by_email(conn: Any, email: str) -> Optional[Dict[str, Any]]:
    e = normalize_email(email)
    if not e:
        return None
    row = fetch_one(conn, "SELECT * FROM users WHERE email=?", (e,))
    return _user_from_row(row) if row is not None else None


def get_user_by_google_id(conn: Any, google_id: str) -> Optional[Dict[str, Any]]:
    gid = (google_id or "").strip()
    if not gid:
        return None
    row = fetch_one(conn, "SELECT * FROM users WHERE google_id=?", (gid,))
    return _user_from_row(row) if row is not None else None


def create_user(
    conn: Any,
    *,
    username: str,
    email: str,
    password: str | None = None,
    google_id: str | None = None,
    avatar: str | None = None,
    role: str = "user",
    email_verified: bool = False,
) -> Dict[str, Any]:
    """Insert a user. Password is optional (OTP / Google accounts have none)."""
    e = normalize_email(email)
    if not e:
        raise ValidationError("email_blank")
    name = (username or "").strip() or e
    if role not in ROLES:
        raise ValidationError("invalid_role")

    if get_user_by_email(conn, e) is not None:
        raise Conflict("user_exists")

    now = utcnow_iso()
    user_id = str(uuid.uuid4())
    conn.execute(
        """
        INSERT INTO users (id, username, email, password_hash, google_id, avatar, favorites_json, role, email_verified, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?,?,?,?)
        """,
        (
            user_id,
            name,
            e,
            hash_password(password) if password else None,
            (google_id or None),
            (avatar or None),
            "[]",
            role,
            1 if email_verified else 0,
            now,
            now,
        ),
    )
    _debug(f"created user email={e} role={role}")
    user = get_user_by_id(conn, user_id)
    assert user is not None
    return user


def update_user(conn: Any, user_id: str, **fields: Any) -> Dict[str, Any]:
    """Patch profile columns (username, avatar, google_id, email_verified)."""
    allowed = {"username", "avatar", "google_id", "email_verified"}
    patch = {k: v for k, v in fields.items() if k in allowed}
    if "email_verified" in patch:
        patch["email_verified"] = 1 if patch["email_verified"] else 0
    if patch:
        patch["updated_at"] = utcnow_iso()
        if update_fields(conn, "users", "id", user_id, patch) == 0:
            raise NotFound("user_not_found")
    user = get_user_by_id(conn, user_id)
    if user is None:
        raise NotFound("user_not_found")
    return user


def set_user_role(conn: Any, user_id: str, role: str) -> Dict[str, Any]:
    r = (role or "").strip().lower()
    if r not in ROLES:
        raise ValidationError("invalid_role")
    if update_fields(conn, "users", "id", user_id, {"role": r, "updated_at": utcnow_iso()}) == 0:
        raise NotFound("user_not_found")
    _debug(f"role changed user_id={user_id} role={r}")
    user = get_user_by_id(conn, user_id)
    assert user is not None
    return user


def apply_favorite(favorites: List[str], tool_id: str, action: str) -> List[str]:
    """Return the new favorites list. Favorites behave as an insertion-ordered set."""
    tid = (tool_id or "").strip()
    if not tid:
        raise ValidationError("tool_id_blank")
    if action not in FAVORITE_ACTIONS:
        raise ValidationError("invalid_action")

    # Collapse any legacy duplicates while keeping first-seen order.
    out = list(dict.fromkeys(favorites or []))
    if action == "add":
        if tid not in out:
            out.append(tid)
        return out
    return [f for f in out if f != tid]


def update_favorites(conn: Any, user_id: str, tool_id: str, action: str) -> Dict[str, Any]:
    user = get_user_by_id(conn, user_id)
    if user is None:
        raise NotFound("user_not_found")
    favorites = apply_favorite(user.get("favorites") or [], tool_id, action)
    update_fields(
        conn,
        "users",
        "id",
        user_id,
        {"favorites_json": dump_json(favorites), "updated_at": utcnow_iso()},
    )
    user["favorites"] = favorites
    return user


def bootstrap_admin_if_needed(cfg: Config) -> Optional[Dict[str, Any]]:
    """Make sure the configured admin account exists and has role=admin.

    Controlled via environment variables:

    - ADMIN_EMAIL
    - ADMIN_BOOTSTRAP_PASSWORD (no account is created when unset)

    An existing account with ADMIN_EMAIL is promoted instead of duplicated,
    but only once its email is verified. Anyone can register an address by
    password, so an unverified account never becomes admin here.
    """

    email = normalize_email(cfg.ADMIN_EMAIL)
    if not email:
        return None

    with connect(cfg.DB_DSN) as conn:
        existing = get_user_by_email(conn, email)
        if existing is not None:
            if existing.get("role") == "admin":
                return None
            if not existing.get("email_verified"):
                _debug(f"admin account email={email} is unverified; not promoting")
                return None
            return set_user_role(conn, existing["id"], "admin")

        password = cfg.ADMIN_BOOTSTRAP_PASSWORD
        if not password:
            return None

        return create_user(
            conn,
            username=email.split("@")[0],
            email=email,
            password=password,
            role="admin",
            email_verified=True,
        )
