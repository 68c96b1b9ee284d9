"""Add public single-file link columns to files."""

import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    await db.execute("ALTER TABLE files ADD COLUMN public_token TEXT")
    await db.execute("ALTER TABLE files ADD COLUMN public_token_expires_at TEXT")
    await db.execute(
        "CREATE UNIQUE INDEX idx_files_public_token ON files(public_token)"
    )
    await db.commit()
