"""DuckDB-backed log of received wire events.

PUBLIC API:
  - EventStore: Append-only event table with recent/count queries
"""

import json
import logging
import threading
import time

import duckdb

logger = logging.getLogger(__name__)


class EventStore:
    """Wire events stored AS-IS, in receive order.

    The connection is shared between the channel thread and API handlers, so
    every statement runs under one lock.
    """

    def __init__(self, database: str = ":memory:"):
        self.db = duckdb.connect(database)
        self.db.execute(
            "CREATE TABLE IF NOT EXISTS events (seq BIGINT, type VARCHAR, received DOUBLE, event VARCHAR)"
        )
        self._lock = threading.Lock()
        self._seq = 0

    def append(self, message: dict) -> int:
        """Store one wire message. Returns its sequence number."""
        with self._lock:
            self._seq += 1
            self.db.execute(
                "INSERT INTO events VALUES (?, ?, ?, ?)",
                [self._seq, str(message.get("type", "")), time.time(), json.dumps(message)],
            )
            return self._seq

    def recent(self, limit: int = 50, event_type: str | None = None) -> list[dict]:
        """Latest events, oldest first."""
        sql = "SELECT seq, event FROM events"
        params: list = []
        if event_type:
            sql += " WHERE type = ?"
            params.append(event_type)
        sql += " ORDER BY seq DESC LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self.db.execute(sql, params).fetchall()
        return [{"seq": seq, **json.loads(event)} for seq, event in reversed(rows)]

    def count(self, event_type: str | None = None) -> int:
        with self._lock:
            if event_type:
                return self.db.execute("SELECT COUNT(*) FROM events WHERE type = ?", [event_type]).fetchone()[0]
            return self.db.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def counts_by_type(self) -> dict[str, int]:
        with self._lock:
            rows = self.db.execute("SELECT type, COUNT(*) FROM events GROUP BY type ORDER BY type").fetchall()
        return {event_type: count for event_type, count in rows}

    def clear(self) -> None:
        with self._lock:
            self.db.execute("DELETE FROM events")
            self._seq = 0

    def close(self) -> None:
        with self._lock:
            self.db.close()
