"""SQLite history of capture outcomes."""

from typing import Optional

import aiosqlite

from config import settings
from models import CaptureOutcome

_DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS capture_outcomes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_name TEXT NOT NULL,
    success INTEGER NOT NULL,
    skipped INTEGER NOT NULL DEFAULT 0,
    path TEXT,
    url TEXT,
    error TEXT,
    reason TEXT,                    -- e.g. 'off-hours'
    duration_ms INTEGER,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_outcomes_job ON capture_outcomes(job_name, created_at);
"""


async def init_db():
    async with aiosqlite.connect(settings.db_path) as db:
        await db.executescript(_DB_SCHEMA)
        await db.commit()


async def get_db() -> aiosqlite.Connection:
    db = await aiosqlite.connect(settings.db_path)
    db.row_factory = aiosqlite.Row
    return db


async def record_outcome(outcome: CaptureOutcome) -> None:
    db = await get_db()
    try:
        await db.execute(
            """INSERT INTO capture_outcomes
               (job_name, success, skipped, path, url, error, reason,
                duration_ms, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                outcome.job_name, int(outcome.success), int(outcome.skipped),
                outcome.path, outcome.url, outcome.error, outcome.reason,
                outcome.duration_ms, outcome.created_at,
            ),
        )
        await db.commit()
    finally:
        await db.close()


def outcome_from_row(row) -> CaptureOutcome:
    return CaptureOutcome(
        job_name=row["job_name"],
        success=bool(row["success"]),
        skipped=bool(row["skipped"]),
        path=row["path"],
        url=row["url"],
        error=row["error"],
        reason=row["reason"],
        duration_ms=row["duration_ms"],
        created_at=row["created_at"],
    )


async def list_outcomes(limit: int = 50, offset: int = 0, job_name: Optional[str] = None) -> list[CaptureOutcome]:
    db = await get_db()
    try:
        q = "SELECT * FROM capture_outcomes"
        params: list = []
        if job_name:
            q += " WHERE job_name = ?"
            params.append(job_name)
        q += " ORDER BY id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        cursor = await db.execute(q, params)
        rows = await cursor.fetchall()
    finally:
        await db.close()
    return [outcome_from_row(r) for r in rows]
