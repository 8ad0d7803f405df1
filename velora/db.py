from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence
from urllib.parse import urlparse

from velora.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def _detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    try:
        scheme = urlparse(s).scheme.lower()
    except Exception:
        scheme = ""
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    return "sqlite"


def _qmark_to_pct(sql: str) -> str:
    """Convert SQLite qmark placeholders (?) to psycopg2 placeholders (%s).

    Skips '?' inside single-quoted literals. Not a SQL parser, but our
    statements never put '?' anywhere else.
    """
    out: List[str] = []
    in_single = False
    for ch in sql:
        if ch == "'":
            in_single = not in_single
            out.append(ch)
        elif ch == "?" and not in_single:
            out.append("%s")
        elif ch == "%" and not in_single:
            # Literal % must be doubled for psycopg2 (LIKE patterns are always bound params here).
            out.append("%%")
        else:
            out.append(ch)
    return "".join(out)


class PGCursor:
    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()

    @property
    def rowcount(self) -> int:
        try:
            return int(self._cur.rowcount or 0)
        except Exception:
            return 0


class PGConnection:
    """A tiny adapter that makes psycopg2 connections look like sqlite3 connections."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        wrapper = PGCursor(self._conn.cursor())
        wrapper.execute(sql, params)
        return wrapper

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Open one transaction against SQLite or Postgres.

    Commits when the block exits cleanly, rolls back on any exception.

    - SQLite: uses WAL + NORMAL sync.
    - Postgres: uses psycopg2 (RealDictCursor) so rows behave like dicts.
    """
    dsn = (db_dsn or "").strip()
    dialect = _detect_dialect(dsn)

    if dialect == "postgres":
        try:
            import psycopg2
            import psycopg2.extras
        except Exception as e:
            raise RuntimeError(
                "Postgres selected but psycopg2 is not installed. "
                "Install psycopg2-binary and try again."
            ) from e

        raw = psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor)
        conn = PGConnection(raw)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return

    # Support sqlite:///path style
    if dsn.lower().startswith("sqlite:///"):
        dsn = dsn[len("sqlite:///") :]

    Path(dsn).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(dsn, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")  # 5s
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_dsn: str) -> None:
    """Create all tables (idempotent)."""
    dialect = _detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect}) at {db_dsn}")
    with connect(db_dsn) as conn:
        ddl = get_schema_sql(dialect)
        if dialect == "postgres":
            # Naive split is OK for our schema (no ';' inside statements).
            for stmt in [s.strip() for s in ddl.split(";") if s.strip()]:
                conn.execute(stmt)
        else:
            conn.executescript(ddl)


# -----------------------------
# Row helpers
# -----------------------------


def row_to_dict(row: Any, *, json_fields: Sequence[str] = (), bool_fields: Sequence[str] = ()) -> Dict[str, Any]:
    """Turn a DB row into a plain dict, decoding JSON list columns and 0/1 flags."""
    d = dict(row)
    for k in json_fields:
        raw = d.get(k)
        if raw is None or raw == "":
            d[k] = []
        elif isinstance(raw, str):
            d[k] = json.loads(raw)
    for k in bool_fields:
        if k in d:
            d[k] = bool(d[k])
    return d


def dump_json(value: Any) -> str:
    return json.dumps(list(value or []), ensure_ascii=False)


def fetch_one(conn: Any, sql: str, params: Sequence[Any] = ()) -> Optional[Any]:
    return conn.execute(sql, tuple(params)).fetchone()


def fetch_all(conn: Any, sql: str, params: Sequence[Any] = ()) -> List[Any]:
    return list(conn.execute(sql, tuple(params)).fetchall())


def update_fields(conn: Any, table: str, key_col: str, key: Any, fields: Dict[str, Any]) -> int:
    """Patch the given columns of one row. Returns the number of rows touched.

    Column names come from code-level whitelists only, never from request bodies.
    """
    if not fields:
        return 0
    sets = ", ".join([f"{k}=?" for k in fields])
    params = list(fields.values()) + [key]
    cur = conn.execute(f"UPDATE {table} SET {sets} WHERE {key_col}=?", params)
    return int(cur.rowcount or 0)
