"""SQLite database — sessions and the export audit log.

Uses aiosqlite for async access. The database file lives at
backend/data/nfs-manager.db unless NFS_MANAGER_DB points elsewhere.
"""

import os
import time
import uuid
import logging

import aiosqlite

import config

logger = logging.getLogger(__name__)

_db: aiosqlite.Connection | None = None

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id          TEXT PRIMARY KEY,
    username    TEXT NOT NULL,
    created_at  REAL NOT NULL,
    expires_at  REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS audit_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp   REAL NOT NULL,
    username    TEXT NOT NULL,
    action      TEXT NOT NULL,
    target      TEXT NOT NULL,
    detail      TEXT DEFAULT '',
    success     INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action ON audit_log(action);
"""


async def get_db() -> aiosqlite.Connection:
    """Get the database connection, creating it if needed."""
    global _db
    if _db is None:
        os.makedirs(os.path.dirname(config.DB_PATH), exist_ok=True)
        _db = await aiosqlite.connect(config.DB_PATH)
        _db.row_factory = aiosqlite.Row
        await _db.executescript(SCHEMA)
        await _db.commit()
        logger.info("Database initialized at %s", config.DB_PATH)
    return _db


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None


# --- Session helpers ---

SESSION_LIFETIME = 86400  # 24 hours


async def create_session(username: str) -> str:
    """Create a new session, return the session ID."""
    db = await get_db()
    session_id = uuid.uuid4().hex
    now = time.time()
    await db.execute(
        "INSERT INTO sessions (id, username, created_at, expires_at) VALUES (?, ?, ?, ?)",
        (session_id, username, now, now + SESSION_LIFETIME),
    )
    await db.commit()
    return session_id


async def get_session(session_id: str) -> dict | None:
    """Look up a session by ID. Returns None if expired or not found."""
    db = await get_db()
    cursor = await db.execute(
        "SELECT id, username, created_at, expires_at FROM sessions WHERE id = ?",
        (session_id,),
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    if row["expires_at"] < time.time():
        await db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        await db.commit()
        return None
    return dict(row)


async def delete_session(session_id: str) -> None:
    db = await get_db()
    await db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
    await db.commit()


async def cleanup_sessions() -> int:
    """Delete all expired sessions. Returns count deleted."""
    db = await get_db()
    cursor = await db.execute(
        "DELETE FROM sessions WHERE expires_at < ?", (time.time(),)
    )
    await db.commit()
    return cursor.rowcount


# --- Audit log helpers ---


async def audit_log(
    username: str, action: str, target: str, detail: str = "", success: bool = True
) -> None:
    """Record an export change (or a failed attempt at one)."""
    db = await get_db()
    await db.execute(
        "INSERT INTO audit_log (timestamp, username, action, target, detail, success) VALUES (?, ?, ?, ?, ?, ?)",
        (time.time(), username, action, target, detail, int(success)),
    )
    await db.commit()


async def get_audit_log(limit: int = 100, offset: int = 0, action: str | None = None) -> list[dict]:
    """Retrieve recent audit log entries, newest first, optionally for one action."""
    db = await get_db()
    if action:
        cursor = await db.execute(
            "SELECT * FROM audit_log WHERE action = ? ORDER BY timestamp DESC LIMIT ? OFFSET ?",
            (action, limit, offset),
        )
    else:
        cursor = await db.execute(
            "SELECT * FROM audit_log ORDER BY timestamp DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows]
