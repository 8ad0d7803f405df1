"""Database schema for Velora.

One table per collection (users, tools, submissions, newsletter subscribers,
pending OTPs). Every request runs inside a single transaction, so a write
either lands completely or not at all.

Timestamps are ISO-8601 TEXT (UTC, with 'Z'); they sort lexicographically in
time order, which is what the OTP expiry check relies on. List-valued fields
(favorites, tags, ...) are JSON arrays stored as TEXT.

NOTE: The Postgres schema is generated from the SQLite schema with a small set
of type transformations.
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
-- Users / Auth
-- password_hash is NULL for accounts created via OTP or Google sign-in.
-- email_verified is set once the owner has proven the address (OTP or Google).
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT,
    google_id TEXT UNIQUE,
    avatar TEXT,
    favorites_json TEXT NOT NULL DEFAULT '[]',
    role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('admin','user')),
    email_verified INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- At most one live code per email.
CREATE TABLE IF NOT EXISTS pending_otps (
    email TEXT PRIMARY KEY,
    code TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tools (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL,
    short_description TEXT NOT NULL,
    category TEXT NOT NULL,
    pricing TEXT NOT NULL CHECK (pricing IN ('Free','Paid','Freemium')),
    website TEXT NOT NULL,
    logo TEXT,
    screenshots_json TEXT NOT NULL DEFAULT '[]',
    features_json TEXT NOT NULL DEFAULT '[]',
    pros_json TEXT NOT NULL DEFAULT '[]',
    cons_json TEXT NOT NULL DEFAULT '[]',
    rating REAL NOT NULL DEFAULT 0,
    usage_count INTEGER NOT NULL DEFAULT 0,
    tags_json TEXT NOT NULL DEFAULT '[]',
    approved INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tools_approved_usage ON tools (approved, usage_count);

CREATE TABLE IF NOT EXISTS submissions (
    id TEXT PRIMARY KEY,
    tool_name TEXT NOT NULL,
    description TEXT NOT NULL,
    category TEXT NOT NULL,
    website TEXT NOT NULL,
    reasoning TEXT,
    submitted_by TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending','approved','rejected')),
    reviewed_by TEXT,
    reviewed_at TEXT,
    review_notes TEXT,
    tool_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_submissions_status_created ON submissions (status, created_at);
CREATE INDEX IF NOT EXISTS idx_submissions_submitted_by ON submissions (submitted_by, created_at);

CREATE TABLE IF NOT EXISTS newsletter_subscribers (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    active INTEGER NOT NULL DEFAULT 1,
    subscribed_at TEXT NOT NULL,
    unsubscribed_at TEXT
);
"""


def _to_postgres(sql: str) -> str:
    s = sql
    # Keep ratings as doubles.
    s = re.sub(r"\bREAL\b", "DOUBLE PRECISION", s)
    # Strip SQL comments so the naive ';' split in init_db stays safe.
    s = re.sub(r"--[^\n]*", "", s)
    return s


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "sqlite").lower()
    if d == "postgres":
        return _to_postgres(SCHEMA_SQLITE)
    return SCHEMA_SQLITE
