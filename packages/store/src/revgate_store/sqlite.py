"""SQLiteJobStore: single-file store for hosts that prefer one database over a tree of JSON files.

Schema:
  jobs    : one row per job key; the full record is kept as JSON, with
             status and timestamps duplicated into columns for listing.
  reviews : one row per review artifact, named like the file backend
             (``<key>.json``) so review names are portable between backends.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from revgate_core.models import utc_now
from revgate_store.base import BaseJobStore, JobCorruptError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    key          TEXT PRIMARY KEY,
    status       TEXT NOT NULL,
    created_at   TEXT,
    updated_at   TEXT,
    record_json  TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_jobs_updated ON jobs (updated_at);

CREATE TABLE IF NOT EXISTS reviews (
    name           TEXT PRIMARY KEY,
    key            TEXT NOT NULL,
    saved_at       TEXT NOT NULL,
    artifact_json  TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_reviews_saved ON reviews (saved_at);
"""


def _loads(raw: str, what: str) -> dict:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise JobCorruptError(f"{what} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise JobCorruptError(f"{what} does not contain a JSON object")
    return data


class SQLiteJobStore(BaseJobStore):
    """Stores jobs and reviews in a local SQLite database file.

    Configure via .revgate.yml: ``store: sqlite`` and optionally
    ``store_path: /path/to/revgate.db`` (default ``<data dir>/revgate.db``).
    """

    def __init__(self, db_path: str):
        # The worker and the attach client are separate processes on one file.
        self._conn = sqlite3.connect(db_path, timeout=30)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def _read_record(self, key: str) -> dict | None:
        row = self._conn.execute("SELECT record_json FROM jobs WHERE key=?", (key,)).fetchone()
        if row is None:
            return None
        return _loads(row["record_json"], f"Job record {key}")

    def _write_record(self, key: str, record: dict) -> None:
        now = utc_now()
        created_at = record.get("request", {}).get("created_at") or now
        self._conn.execute(
            """
            INSERT INTO jobs (key, status, created_at, updated_at, record_json)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
              status=excluded.status,
              created_at=excluded.created_at,
              updated_at=excluded.updated_at,
              record_json=excluded.record_json
            """,
            (key, record.get("status", ""), created_at, now, json.dumps(record)),
        )
        self._conn.commit()

    def _list_records(self, limit: int) -> list[dict]:
        rows = self._conn.execute(
            "SELECT key, record_json FROM jobs ORDER BY updated_at DESC, key LIMIT ?",
            (limit,),
        ).fetchall()
        records = []
        for row in rows:
            try:
                records.append(_loads(row["record_json"], f"Job record {row['key']}"))
            except JobCorruptError as e:
                logger.warning("Skipping job record %s: %s", row["key"], e)
        return records

    def _write_review(self, name: str, key: str, artifact: dict) -> str:
        self._conn.execute(
            """
            INSERT INTO reviews (name, key, saved_at, artifact_json)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
              saved_at=excluded.saved_at,
              artifact_json=excluded.artifact_json
            """,
            (name, key, utc_now(), json.dumps(artifact)),
        )
        self._conn.commit()
        return name

    def _read_review(self, name: str) -> dict | None:
        row = self._conn.execute("SELECT artifact_json FROM reviews WHERE name=?", (name,)).fetchone()
        if row is None:
            return None
        return _loads(row["artifact_json"], f"Review {name}")

    def _latest_review_name(self) -> str | None:
        row = self._conn.execute("SELECT name FROM reviews ORDER BY saved_at DESC, rowid DESC LIMIT 1").fetchone()
        return row["name"] if row else None

    def close(self) -> None:
        self._conn.close()
