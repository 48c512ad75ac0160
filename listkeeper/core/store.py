from __future__ import annotations

import sqlite3

from listkeeper.core.db import Database

# Queries used by mailbox triage.


def count_subscriptions(db: Database, *, user_id: str, channel_id: str) -> int:
    value = db.query_value(
        "SELECT COUNT(*) FROM subscriptions WHERE user_id=? AND channel_id=?",
        (user_id, channel_id),
    )
    return int(value or 0)


def delete_subscription(db: Database, *, user_id: str, channel_id: str) -> int:
    return db.exec(
        "DELETE FROM subscriptions WHERE user_id=? AND channel_id=?",
        (user_id, channel_id),
    )


def find_queued_send(db: Database, queue_id: str) -> sqlite3.Row | None:
    return db.query_one("SELECT * FROM queue WHERE id=?", (queue_id,))


def mark_bounced(db: Database, queue_id: str) -> int:
    return db.exec("UPDATE queue SET bounced=1 WHERE id=?", (queue_id,))
