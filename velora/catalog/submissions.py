"""Community tool submissions and their review.

Lifecycle: pending -> approved | rejected. Review is admin-only and
happens once; approving also creates the catalog entry.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from velora.config import Config
from velora.db import fetch_all, fetch_one
from velora.errors import Conflict, NotFound, ValidationError
from velora.util.time import utcnow_iso

from .tools import create_tool, is_http_url


STATUSES = ("pending", "approved", "rejected")
REVIEW_OUTCOMES = ("approved", "rejected")
SHORT_DESCRIPTION_MAX = 100


def _debug(msg: str) -> None:
    print(f"[submissions] {msg}")


def create_submission(
    conn: Any,
    *,
    submitted_by: str,
    tool_name: str,
    description: str,
    category: str,
    website: str,
    reasoning: str | None = None,
) -> Dict[str, Any]:
    name = (tool_name or "").strip()
    desc = (description or "").strip()
    cat = (category or "").strip()
    site = (website or "").strip()
    if not name or not desc or not cat:
        raise ValidationError("invalid_submission")
    if not is_http_url(site):
        raise ValidationError("invalid_website")

    sub_id = str(uuid.uuid4())
    conn.execute(
        """
        INSERT INTO submissions (id, tool_name, description, category, website, reasoning, submitted_by, status, created_at)
        VALUES (?,?,?,?,?,?,?,'pending',?)
        """,
        (sub_id, name, desc, cat, site, (reasoning or None), submitted_by, utcnow_iso()),
    )
    _debug(f"new submission id={sub_id} tool={name!r} by={submitted_by}")
    sub = get_submission(conn, sub_id)
    assert sub is not None
    return sub


def get_submission(conn: Any, submission_id: str) -> Optional[Dict[str, Any]]:
    row = fetch_one(conn, "SELECT * FROM submissions WHERE id=?", (submission_id,))
    return dict(row) if row is not None else None


def list_submissions(
    conn: Any,
    *,
    status: str | None = None,
    submitted_by: str | None = None,
) -> List[Dict[str, Any]]:
    where: List[str] = []
    params: List[Any] = []
    if status:
        if status not in STATUSES:
            raise ValidationError("invalid_status")
        where.append("status=?")
        params.append(status)
    if submitted_by:
        where.append("submitted_by=?")
        params.append(submitted_by)

    sql = "SELECT * FROM submissions"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY created_at DESC, id"
    return [dict(r) for r in fetch_all(conn, sql, params)]


def tool_fields_from_submission(sub: Dict[str, Any]) -> Dict[str, Any]:
    """Catalog entry synthesized on approval; ratings/usage/lists start empty."""
    return {
        "name": sub["tool_name"],
        "description": sub["description"],
        "short_description": str(sub["description"])[:SHORT_DESCRIPTION_MAX],
        "category": sub["category"],
        "website": sub["website"],
        "pricing": "Free",
        "features": [],
        "pros": [],
        "cons": [],
        "tags": [],
        "rating": 0,
        "usage_count": 0,
    }


def review_submission(
    conn: Any,
    cfg: Config,
    *,
    submission_id: str,
    reviewer_id: str,
    status: str,
    review_notes: str | None = None,
) -> Dict[str, Any]:
    if status not in REVIEW_OUTCOMES:
        raise ValidationError("invalid_status")

    sub = get_submission(conn, submission_id)
    if sub is None:
        raise NotFound("submission_not_found")
    if sub["status"] != "pending":
        raise Conflict("submission_already_reviewed")

    patch: Dict[str, Any] = {
        "status": status,
        "reviewed_by": reviewer_id,
        "reviewed_at": utcnow_iso(),
        "review_notes": review_notes,
    }
    if status == "approved":
        tool = create_tool(
            conn,
            tool_fields_from_submission(sub),
            approved=bool(cfg.AUTO_PUBLISH_APPROVED_SUBMISSIONS),
        )
        patch["tool_id"] = tool["id"]

    # Guarded on status so a concurrent review can't double-apply.
    cur = conn.execute(
        f"UPDATE submissions SET {', '.join(f'{k}=?' for k in patch)} WHERE id=? AND status='pending'",
        list(patch.values()) + [submission_id],
    )
    if int(cur.rowcount or 0) == 0:
        raise Conflict("submission_already_reviewed")

    _debug(f"submission id={submission_id} {status} by={reviewer_id}")
    out = get_submission(conn, submission_id)
    assert out is not None
    return out
