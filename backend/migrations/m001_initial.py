"""Initial database schema.

Creates the share, security, file and upload session tables.
"""

import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    """Create the initial database schema."""

    # ── Shares table ─────────────────────────────────────────────────────
    # expiration is an ISO timestamp; the Unix epoch means "never expires".
    # created_at is written by the application with microsecond precision
    # because share tokens are bound to it.
    await db.execute("""
        CREATE TABLE shares (
            id              TEXT PRIMARY KEY,
            name            TEXT,
            description     TEXT,
            expiration      TEXT NOT NULL,
            upload_locked   INTEGER NOT NULL DEFAULT 0,
            is_zip_ready    INTEGER NOT NULL DEFAULT 0,
            views           INTEGER NOT NULL DEFAULT 0,
            removed_reason  TEXT,
            created_at      TEXT NOT NULL
        )
    """)
    await db.execute("CREATE INDEX idx_shares_expiration ON shares(expiration)")

    # ── Share security table ─────────────────────────────────────────────
    await db.execute("""
        CREATE TABLE share_security (
            share_id        TEXT PRIMARY KEY REFERENCES shares(id) ON DELETE CASCADE,
            password_hash   TEXT,
            max_views       INTEGER
        )
    """)

    # ── Files table ──────────────────────────────────────────────────────
    await db.execute("""
        CREATE TABLE files (
            id          TEXT PRIMARY KEY,
            share_id    TEXT NOT NULL REFERENCES shares(id) ON DELETE CASCADE,
            name        TEXT NOT NULL,
            size        INTEGER NOT NULL DEFAULT 0,
            status      TEXT NOT NULL DEFAULT 'receiving',
            created_at  TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)
    await db.execute("CREATE INDEX idx_files_share_id ON files(share_id)")

    # ── Upload sessions table ────────────────────────────────────────────
    await db.execute("""
        CREATE TABLE upload_sessions (
            file_id           TEXT PRIMARY KEY REFERENCES files(id) ON DELETE CASCADE,
            share_id          TEXT NOT NULL REFERENCES shares(id) ON DELETE CASCADE,
            expected_index    INTEGER NOT NULL DEFAULT 0,
            accumulated_size  INTEGER NOT NULL DEFAULT 0,
            updated_at        TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)
    await db.execute(
        "CREATE INDEX idx_upload_sessions_share_id ON upload_sessions(share_id)"
    )

    await db.commit()
