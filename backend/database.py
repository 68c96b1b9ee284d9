"""SQLite database connection management and initialization."""

from typing import Any, Iterable

import aiosqlite

from backend.config import settings
from backend.migrations.runner import run_migrations

# Global connection reference
_db: aiosqlite.Connection | None = None


async def get_db() -> aiosqlite.Connection:
    """Get the database connection. Raises if not initialized."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db


async def init_db() -> None:
    """Initialize the database connection and run migrations."""
    global _db

    settings.db_path.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(settings.db_path))

    # WAL for concurrent readers while uploads are being written
    await _db.execute("PRAGMA journal_mode=WAL")
    # Share deletion cascades to security, files and upload sessions
    await _db.execute("PRAGMA foreign_keys=ON")
    await _db.execute("PRAGMA busy_timeout=5000")

    await _db.commit()

    await run_migrations(_db)


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None


async def fetch_one(sql: str, params: Iterable[Any] = ()) -> dict | None:
    """Run a query and return the first row as a dict, or None."""
    db = await get_db()
    cursor = await db.execute(sql, tuple(params))
    columns = [desc[0] for desc in cursor.description]
    row = await cursor.fetchone()
    if row is None:
        return None
    return dict(zip(columns, row))


async def fetch_all(sql: str, params: Iterable[Any] = ()) -> list[dict]:
    """Run a query and return every row as a dict."""
    db = await get_db()
    cursor = await db.execute(sql, tuple(params))
    columns = [desc[0] for desc in cursor.description]
    rows = await cursor.fetchall()
    return [dict(zip(columns, row)) for row in rows]
