from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """UTC datetime as ISO-8601 string with Z."""
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return to_iso(utcnow())


def iso_in(minutes: int, *, now: datetime | None = None) -> str:
    return to_iso((now or utcnow()) + timedelta(minutes=minutes))


def parse_iso(s: str) -> datetime:
    return datetime.fromisoformat(str(s).replace("Z", "+00:00"))
