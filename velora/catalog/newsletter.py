from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from email_validator import EmailNotValidError, validate_email

from velora.auth.crud import normalize_email
from velora.db import fetch_all, fetch_one, row_to_dict
from velora.errors import ValidationError
from velora.util.time import utcnow_iso


def _debug(msg: str) -> None:
    print(f"[newsletter] {msg}")


def _sub_from_row(row: Any) -> Dict[str, Any]:
    return row_to_dict(row, bool_fields=("active",))


def get_subscriber(conn: Any, email: str) -> Optional[Dict[str, Any]]:
    row = fetch_one(conn, "SELECT * FROM newsletter_subscribers WHERE email=?", (normalize_email(email),))
    return _sub_from_row(row) if row is not None else None


def subscribe(conn: Any, email: str) -> Dict[str, Any]:
    """Subscribe, or reactivate an earlier (possibly cancelled) subscription."""
    e = normalize_email(email)
    try:
        # Same rule EmailStr applies on the request body.
        validate_email(e, check_deliverability=False)
    except EmailNotValidError:
        raise ValidationError("invalid_email")

    existing = get_subscriber(conn, e)
    if existing is not None:
        if not existing["active"]:
            conn.execute(
                "UPDATE newsletter_subscribers SET active=1, unsubscribed_at=NULL WHERE email=?",
                (e,),
            )
            _debug(f"reactivated email={e}")
        out = get_subscriber(conn, e)
        assert out is not None
        return out

    conn.execute(
        """
        INSERT INTO newsletter_subscribers (id, email, active, subscribed_at)
        VALUES (?,?,1,?)
        """,
        (str(uuid.uuid4()), e, utcnow_iso()),
    )
    _debug(f"subscribed email={e}")
    out = get_subscriber(conn, e)
    assert out is not None
    return out


def unsubscribe(conn: Any, email: str) -> bool:
    """Deactivate a subscription. Returns False if there was none."""
    e = normalize_email(email)
    cur = conn.execute(
        "UPDATE newsletter_subscribers SET active=0, unsubscribed_at=? WHERE email=?",
        (utcnow_iso(), e),
    )
    return int(cur.rowcount or 0) > 0


def list_subscribers(conn: Any, *, active_only: bool = True) -> List[Dict[str, Any]]:
    if active_only:
        rows = fetch_all(conn, "SELECT * FROM newsletter_subscribers WHERE active=1 ORDER BY subscribed_at, email")
    else:
        rows = fetch_all(conn, "SELECT * FROM newsletter_subscribers ORDER BY subscribed_at, email")
    return [_sub_from_row(r) for r in rows]
