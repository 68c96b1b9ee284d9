"""File record service: lookups and removal of a share's files.

Only files whose upload finished (status ``complete``) are visible outside the
upload assembler.
"""

import logging

from backend.database import fetch_all, fetch_one, get_db
from backend.services import chunk_store
from backend.services.exceptions import NotFoundError

logger = logging.getLogger(__name__)

STATUS_RECEIVING = "receiving"
STATUS_COMPLETE = "complete"

_PUBLIC_COLUMNS = "id, share_id, name, size, status, created_at"


async def list_files(share_id: str) -> list[dict]:
    """List a share's complete files in display order (name, then id)."""
    return await fetch_all(
        f"""SELECT {_PUBLIC_COLUMNS} FROM files
           WHERE share_id = ? AND status = ?
           ORDER BY name ASC, id ASC""",
        (share_id, STATUS_COMPLETE),
    )


async def get_file(share_id: str, file_id: str) -> dict | None:
    """Get a complete file of a share, or None."""
    return await fetch_one(
        f"""SELECT {_PUBLIC_COLUMNS} FROM files
           WHERE share_id = ? AND id = ? AND status = ?""",
        (share_id, file_id, STATUS_COMPLETE),
    )


async def get_file_record(file_id: str) -> dict | None:
    """Get a file row regardless of share or upload status."""
    return await fetch_one("SELECT * FROM files WHERE id = ?", (file_id,))


async def count_files(share_id: str) -> int:
    db = await get_db()
    cursor = await db.execute(
        "SELECT COUNT(*) FROM files WHERE share_id = ? AND status = ?",
        (share_id, STATUS_COMPLETE),
    )
    return (await cursor.fetchone())[0]


async def delete_file(share_id: str, file_id: str) -> None:
    """Delete a file record and its bytes, whatever its upload status."""
    db = await get_db()
    cursor = await db.execute(
        "DELETE FROM files WHERE share_id = ? AND id = ?",
        (share_id, file_id),
    )
    await db.commit()
    if cursor.rowcount == 0:
        raise NotFoundError("File not found")

    chunk_store.delete_file(share_id, file_id)
    logger.info("delete_file: removed %s from share %s", file_id, share_id)


async def discard_incomplete_files(share_id: str) -> int:
    """Delete files whose upload never finished. Returns how many were removed."""
    rows = await fetch_all(
        "SELECT id FROM files WHERE share_id = ? AND status = ?",
        (share_id, STATUS_RECEIVING),
    )
    if not rows:
        return 0

    db = await get_db()
    await db.execute(
        "DELETE FROM files WHERE share_id = ? AND status = ?",
        (share_id, STATUS_RECEIVING),
    )
    await db.commit()

    for row in rows:
        chunk_store.delete_file(share_id, row["id"])
    logger.info("discard_incomplete_files: dropped %d unfinished uploads in share %s",
                len(rows), share_id)
    return len(rows)
