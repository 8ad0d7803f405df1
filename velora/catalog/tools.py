from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from velora.db import dump_json, fetch_all, fetch_one, row_to_dict, update_fields
from velora.errors import NotFound, ValidationError
from velora.util.time import utcnow_iso


PRICING_TIERS = ("Free", "Paid", "Freemium")
LIST_FIELDS = ("screenshots", "features", "pros", "cons", "tags")
SCALAR_FIELDS = (
    "name",
    "description",
    "short_description",
    "category",
    "pricing",
    "website",
    "logo",
    "rating",
    "usage_count",
    "approved",
)
REQUIRED_FIELDS = ("name", "description", "short_description", "category", "pricing", "website")
NULLABLE_FIELDS = ("logo",)


def _debug(msg: str) -> None:
    print(f"[catalog] {msg}")


def is_http_url(value: Any) -> bool:
    try:
        u = urlparse(str(value or "").strip())
    except ValueError:
        return False
    return u.scheme in ("http", "https") and bool(u.netloc)


def _tool_from_row(row: Any) -> Dict[str, Any]:
    d = row_to_dict(row, json_fields=[f"{f}_json" for f in LIST_FIELDS], bool_fields=("approved",))
    for f in LIST_FIELDS:
        d[f] = d.pop(f"{f}_json")
    d["rating"] = float(d.get("rating") or 0)
    d["usage_count"] = int(d.get("usage_count") or 0)
    return d


def _clean(fields: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
    """Validate tool fields and map them to column values."""
    out: Dict[str, Any] = {}

    if partial:
        # null means "leave as is", except for logo which may be cleared.
        fields = {k: v for k, v in fields.items() if v is not None or k in NULLABLE_FIELDS}

    for k in SCALAR_FIELDS:
        if k not in fields:
            continue
        v = fields[k]
        if k in REQUIRED_FIELDS:
            v = str(v or "").strip()
            if not v:
                raise ValidationError(f"{k}_blank")
        if k == "pricing" and v not in PRICING_TIERS:
            raise ValidationError("invalid_pricing")
        if k == "website" and not is_http_url(v):
            raise ValidationError("invalid_website")
        if k == "rating":
            try:
                v = float(v or 0)
            except (TypeError, ValueError):
                raise ValidationError("invalid_rating")
            if v < 0 or v > 5:
                raise ValidationError("invalid_rating")
        if k == "usage_count":
            try:
                v = int(v or 0)
            except (TypeError, ValueError):
                raise ValidationError("invalid_usage_count")
            if v < 0:
                raise ValidationError("invalid_usage_count")
        if k == "approved":
            v = 1 if v else 0
        out[k] = v

    for k in LIST_FIELDS:
        if k in fields:
            out[f"{k}_json"] = dump_json([str(x) for x in (fields[k] or [])])

    if not partial:
        missing = [k for k in REQUIRED_FIELDS if k not in out]
        if missing:
            raise ValidationError(f"{missing[0]}_blank")
    return out


def create_tool(conn: Any, fields: Dict[str, Any], *, approved: bool = False) -> Dict[str, Any]:
    """Insert a tool. New tools are unapproved unless told otherwise."""
    values = _clean(dict(fields, approved=fields.get("approved", approved)), partial=False)
    now = utcnow_iso()
    tool_id = str(uuid.uuid4())

    row: Dict[str, Any] = {
        "id": tool_id,
        "logo": None,
        "rating": 0.0,
        "usage_count": 0,
        "approved": 0,
        "created_at": now,
        "updated_at": now,
    }
    for f in LIST_FIELDS:
        row[f"{f}_json"] = "[]"
    row.update(values)

    cols = list(row.keys())
    conn.execute(
        f"INSERT INTO tools ({', '.join(cols)}) VALUES ({', '.join(['?'] * len(cols))})",
        [row[c] for c in cols],
    )
    _debug(f"created tool id={tool_id} name={row['name']!r} approved={bool(row['approved'])}")
    tool = get_tool(conn, tool_id)
    assert tool is not None
    return tool


def get_tool(conn: Any, tool_id: str) -> Optional[Dict[str, Any]]:
    row = fetch_one(conn, "SELECT * FROM tools WHERE id=?", (tool_id,))
    return _tool_from_row(row) if row is not None else None


def get_visible_tool(conn: Any, tool_id: str, *, include_unapproved: bool = False) -> Dict[str, Any]:
    tool = get_tool(conn, tool_id)
    if tool is None or (not tool["approved"] and not include_unapproved):
        raise NotFound("tool_not_found")
    return tool


def update_tool(conn: Any, tool_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    values = _clean(fields, partial=True)
    if get_tool(conn, tool_id) is None:
        raise NotFound("tool_not_found")
    if values:
        values["updated_at"] = utcnow_iso()
        update_fields(conn, "tools", "id", tool_id, values)
    tool = get_tool(conn, tool_id)
    assert tool is not None
    return tool


def delete_tool(conn: Any, tool_id: str) -> None:
    cur = conn.execute("DELETE FROM tools WHERE id=?", (tool_id,))
    if int(cur.rowcount or 0) == 0:
        raise NotFound("tool_not_found")
    _debug(f"deleted tool id={tool_id}")


def record_usage(conn: Any, tool_id: str) -> Dict[str, Any]:
    """Count a visit / click-through. Feeds the trending list."""
    tool = get_visible_tool(conn, tool_id)
    conn.execute("UPDATE tools SET usage_count=usage_count+1 WHERE id=?", (tool["id"],))
    tool["usage_count"] += 1
    return tool


def list_tools(conn: Any, *, include_unapproved: bool = False) -> List[Dict[str, Any]]:
    if include_unapproved:
        rows = fetch_all(conn, "SELECT * FROM tools ORDER BY created_at, id")
    else:
        rows = fetch_all(conn, "SELECT * FROM tools WHERE approved=1 ORDER BY created_at, id")
    return [_tool_from_row(r) for r in rows]


# -----------------------------
# Read-side queries (in-memory over an already filtered list)
# -----------------------------


def filter_by_category(tools: Iterable[Dict[str, Any]], category: str) -> List[Dict[str, Any]]:
    c = (category or "").strip().lower()
    return [t for t in tools if str(t.get("category") or "").lower() == c]


def search_tools(tools: Iterable[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    """Case-insensitive substring match over name, description and tags."""
    q = (query or "").strip().lower()
    if not q:
        return list(tools)

    def _hit(t: Dict[str, Any]) -> bool:
        if q in str(t.get("name") or "").lower():
            return True
        if q in str(t.get("description") or "").lower():
            return True
        return any(q in str(tag).lower() for tag in (t.get("tags") or []))

    return [t for t in tools if _hit(t)]


def trending(tools: Iterable[Dict[str, Any]], *, limit: int = 6) -> List[Dict[str, Any]]:
    # sorted() is stable: ties keep catalog order.
    ranked = sorted(tools, key=lambda t: int(t.get("usage_count") or 0), reverse=True)
    return ranked[: max(0, int(limit))]


def pick(tools: Iterable[Dict[str, Any]], ids: List[str]) -> List[Dict[str, Any]]:
    """Tools for the compare view, in the order they were asked for (unknown ids skipped)."""
    by_id = {t["id"]: t for t in tools}
    seen: List[str] = []
    for i in ids:
        if i in by_id and i not in seen:
            seen.append(i)
    return [by_id[i] for i in seen]
