from __future__ import annotations

import hashlib

from listkeeper.core.db import Database, DatabaseError

SCHEMA_V1_SQL = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL COLLATE NOCASE UNIQUE
);

CREATE TABLE IF NOT EXISTS channels (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS subscriptions (
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    channel_id TEXT NOT NULL REFERENCES channels(id) ON DELETE CASCADE,
    PRIMARY KEY (user_id, channel_id)
);

CREATE TABLE IF NOT EXISTS queue (
    id TEXT PRIMARY KEY,
    msg_id TEXT NOT NULL,
    subject TEXT NOT NULL,
    channel_id TEXT,
    channel_name TEXT,
    destination TEXT NOT NULL,
    user_id TEXT,
    sent INTEGER NOT NULL DEFAULT 0,
    bounced INTEGER NOT NULL DEFAULT 0,
    created_at_utc TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_queue_user ON queue(user_id);
""".strip()


def schema_hash() -> str:
    return hashlib.sha256(SCHEMA_V1_SQL.encode("utf-8")).hexdigest()


def ensure_schema_v1(db: Database) -> None:
    db.conn.executescript(SCHEMA_V1_SQL)
    _set_meta_if_missing(db, "schema_version", "1")
    _set_meta_if_missing(db, "schema_hash", schema_hash())


def verify_schema_hash(db: Database) -> None:
    stored = db.query_value("SELECT value FROM meta WHERE key='schema_hash'")
    if stored is None:
        raise DatabaseError("Database missing schema_hash meta key")
    if stored != schema_hash():
        raise DatabaseError(
            "Database schema hash mismatch. Refusing to run.\n"
            "This build expects a different frozen schema."
        )


def _set_meta_if_missing(db: Database, key: str, value: str) -> None:
    db.exec("INSERT OR IGNORE INTO meta (key, value) VALUES (?, ?)", (key, value))
