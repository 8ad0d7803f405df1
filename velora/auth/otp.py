"""Email one-time passcodes.

A pending code lives in `pending_otps`, keyed by email:

- requesting a new code replaces the previous one (fresh expiry, attempts=0)
- an expired record is treated as absent and purged when read
- a wrong code bumps `attempts`; once attempts reach the limit the record is
  purged on the next verify, even if that verify carries the right code
- a correct code consumes (deletes) the record
"""

from __future__ import annotations

import hmac
import secrets
from datetime import datetime
from typing import Any, Dict, Optional

from velora.db import fetch_one
from velora.errors import Unauthorized
from velora.util.time import iso_in, to_iso, utcnow, utcnow_iso

from .crud import normalize_email


CODE_LENGTH = 6


def _debug(msg: str) -> None:
    print(f"[otp] {msg}")


def generate_code() -> str:
    """6-digit decimal code, leading zeros allowed."""
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def store_code(conn: Any, email: str, code: str, *, ttl_minutes: int, now: datetime | None = None) -> Dict[str, Any]:
    e = normalize_email(email)
    created = to_iso(now) if now is not None else utcnow_iso()
    expires_at = iso_in(ttl_minutes, now=now)
    conn.execute(
        """
        INSERT INTO pending_otps (email, code, expires_at, attempts, created_at)
        VALUES (?,?,?,0,?)
        ON CONFLICT(email) DO UPDATE SET
            code=excluded.code,
            expires_at=excluded.expires_at,
            attempts=0,
            created_at=excluded.created_at
        """,
        (e, code, expires_at, created),
    )
    return {"email": e, "code": code, "expires_at": expires_at, "attempts": 0, "created_at": created}


def delete_record(conn: Any, email: str) -> bool:
    cur = conn.execute("DELETE FROM pending_otps WHERE email=?", (normalize_email(email),))
    return int(cur.rowcount or 0) > 0


def get_live_record(conn: Any, email: str, *, now: datetime | None = None) -> Optional[Dict[str, Any]]:
    e = normalize_email(email)
    row = fetch_one(conn, "SELECT * FROM pending_otps WHERE email=?", (e,))
    if row is None:
        return None
    rec = dict(row)
    now_iso = to_iso(now) if now is not None else utcnow_iso()
    if str(rec["expires_at"]) < now_iso:
        delete_record(conn, e)
        _debug(f"expired code purged email={e}")
        return None
    return rec


def check_code(
    conn: Any,
    email: str,
    code: str,
    *,
    max_attempts: int,
    now: datetime | None = None,
) -> None:
    """Consume a pending code or raise Unauthorized.

    Side effects happen in the caller's transaction, so the caller must commit
    even when this raises (see velora.auth.service.verify_otp).
    """
    e = normalize_email(email)
    rec = get_live_record(conn, e, now=now)
    if rec is None:
        raise Unauthorized("invalid_or_expired_otp")

    if int(rec.get("attempts") or 0) >= int(max_attempts):
        delete_record(conn, e)
        _debug(f"too many attempts, code purged email={e}")
        raise Unauthorized("too_many_attempts")

    if not hmac.compare_digest(str(rec["code"]), str(code or "").strip()):
        conn.execute("UPDATE pending_otps SET attempts=attempts+1 WHERE email=?", (e,))
        raise Unauthorized("invalid_otp")

    delete_record(conn, e)
