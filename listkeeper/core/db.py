from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from dataclasses import dataclass
from pathlib import Path


class DatabaseError(RuntimeError):
    pass


@dataclass(frozen=True)
class Database(AbstractContextManager["Database"]):
    conn: sqlite3.Connection

    @classmethod
    def open(cls, path: Path | str) -> "Database":
        # Autocommit: every subscription delete / bounce mark lands on its
        # own, a failed poll keeps whatever was done before it.
        conn = sqlite3.connect(path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return cls(conn=conn)

    def __exit__(self, exc_type, exc, tb) -> None:
        self.conn.close()

    def exec(self, sql: str, params: tuple[object, ...] = ()) -> int:
        cur = self.conn.execute(sql, params)
        return cur.rowcount

    def query_one(
        self, sql: str, params: tuple[object, ...] = ()
    ) -> sqlite3.Row | None:
        cur = self.conn.execute(sql, params)
        return cur.fetchone()

    def query_value(self, sql: str, params: tuple[object, ...] = ()) -> str | None:
        row = self.query_one(sql, params)
        if row is None:
            return None
        return str(row[0])
