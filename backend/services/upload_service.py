"""Chunked upload assembly.

Each logical file is uploaded as chunks ``0..total_chunks-1``, strictly in
order. The server keeps an upload session per file id::

    NEW --chunk 0--> RECEIVING --chunk expected_index--> RECEIVING
                               --chunk total_chunks-1--> COMPLETE

The session (``expected_index``, ``accumulated_size``) is stored in the
``upload_sessions`` table rather than inferred from the size on disk. A chunk
with any other index is rejected with the index the client must resume from;
nothing is written in that case. Uploads of different files are independent.

Chunks of one file are committed one at a time. When the same index arrives
twice concurrently, the first commit wins and the other is rejected like any
out-of-order chunk. The session only advances through a compare-and-set on
``expected_index``.
"""

import asyncio
import contextlib
import logging
import sqlite3
import uuid

from backend.config import settings
from backend.database import fetch_one, get_db
from backend.services import chunk_store, file_service
from backend.services.exceptions import (
    FileUploadCompleteError,
    InvalidRequestError,
    NotFoundError,
    PayloadTooLargeError,
    ShareLockedError,
    StorageIOError,
    UnexpectedChunkIndexError,
)
from backend.services.share_service import get_share

logger = logging.getLogger(__name__)

# Per-file commit locks, dropped once nobody waits on them
_file_locks: dict[str, asyncio.Lock] = {}
_lock_users: dict[str, int] = {}


@contextlib.asynccontextmanager
async def _file_lock(file_id: str):
    lock = _file_locks.setdefault(file_id, asyncio.Lock())
    _lock_users[file_id] = _lock_users.get(file_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _lock_users[file_id] -= 1
        if _lock_users[file_id] == 0:
            del _lock_users[file_id]
            del _file_locks[file_id]


def _parse_file_id(value: str) -> str:
    """Canonical form of a client-supplied file id, which must be a UUID."""
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise InvalidRequestError("Invalid file id", error="invalid_file_id")


async def get_upload_session(file_id: str) -> dict | None:
    """Get the in-progress upload session of a file, or None."""
    return await fetch_one(
        "SELECT * FROM upload_sessions WHERE file_id = ?", (file_id,)
    )


async def _ordering_error(file_id: str) -> UnexpectedChunkIndexError:
    """Rejection carrying the index the session currently waits for."""
    session = await get_upload_session(file_id)
    return UnexpectedChunkIndexError(session["expected_index"] if session else 0)


async def _check_share_size(share_id: str, incoming: int) -> None:
    if settings.max_share_size_mb == 0:
        return
    current = await asyncio.to_thread(chunk_store.share_size_on_disk, share_id)
    if current + incoming > settings.max_share_size_bytes:
        raise PayloadTooLargeError(
            "Max share size exceeded", error="share_size_exceeded"
        )


async def receive_chunk(
    share_id: str,
    data: bytes,
    chunk_index: int,
    total_chunks: int,
    file_name: str,
    file_id: str | None = None,
) -> dict:
    """Commit one chunk of a file upload.

    Returns ``{"id", "name"}`` of the file the chunk belongs to. The client
    sends the returned id with every following chunk.
    """
    share = await get_share(share_id)
    if share is None:
        raise NotFoundError("Share not found")
    if share["upload_locked"]:
        raise ShareLockedError()

    if total_chunks < 1 or chunk_index < 0 or chunk_index >= total_chunks:
        raise InvalidRequestError(
            f"Chunk index {chunk_index} out of range for {total_chunks} chunks",
            error="invalid_chunk",
        )
    if len(data) > settings.max_chunk_size_bytes:
        raise PayloadTooLargeError(
            f"Chunk exceeds {settings.max_chunk_size_mb}MB", error="chunk_too_large"
        )

    file_id = _parse_file_id(file_id) if file_id else None
    if file_id is None:
        if chunk_index != 0:
            raise UnexpectedChunkIndexError(0)
        return await _start_file(share_id, data, total_chunks, file_name, str(uuid.uuid4()))

    async with _file_lock(file_id):
        return await _commit_chunk(
            share_id, data, chunk_index, total_chunks, file_name, file_id
        )


async def _commit_chunk(
    share_id: str,
    data: bytes,
    chunk_index: int,
    total_chunks: int,
    file_name: str,
    file_id: str,
) -> dict:
    record = await file_service.get_file_record(file_id)
    if record is not None and record["share_id"] != share_id:
        # A file id from another share is treated like an unknown one
        raise NotFoundError("File not found")

    if record is None:
        if chunk_index != 0:
            raise UnexpectedChunkIndexError(0)
        return await _start_file(share_id, data, total_chunks, file_name, file_id)

    if record["status"] == file_service.STATUS_COMPLETE:
        raise FileUploadCompleteError()

    session = await get_upload_session(file_id)
    if session is None:
        raise UnexpectedChunkIndexError(0)
    if chunk_index != session["expected_index"]:
        raise UnexpectedChunkIndexError(session["expected_index"])

    await _check_share_size(share_id, len(data))
    offset = session["accumulated_size"]
    await asyncio.to_thread(chunk_store.append_chunk, share_id, file_id, offset, data)

    if chunk_index == total_chunks - 1:
        await _finish_file(file_id, chunk_index, offset + len(data))
    else:
        await _advance_session(file_id, chunk_index, offset + len(data))

    return {"id": file_id, "name": record["name"]}


async def _start_file(
    share_id: str,
    data: bytes,
    total_chunks: int,
    file_name: str,
    file_id: str,
) -> dict:
    """NEW -> RECEIVING (or straight to COMPLETE for single-chunk files).

    The rows go in before any byte is written; a second first chunk for the
    same id fails on the primary key and is reported as an ordering error.
    """
    await _check_share_size(share_id, len(data))

    db = await get_db()
    try:
        await db.execute(
            "INSERT INTO files (id, share_id, name, size, status) VALUES (?, ?, ?, 0, ?)",
            (file_id, share_id, file_name, file_service.STATUS_RECEIVING),
        )
        await db.execute(
            """INSERT INTO upload_sessions (file_id, share_id, expected_index, accumulated_size)
               VALUES (?, ?, 0, 0)""",
            (file_id, share_id),
        )
        await db.commit()
    except sqlite3.IntegrityError:
        await db.rollback()
        raise await _ordering_error(file_id)

    logger.info("receive_chunk: started %s (%s) in share %s, %d chunks",
                file_id, file_name, share_id, total_chunks)

    try:
        await asyncio.to_thread(chunk_store.append_chunk, share_id, file_id, 0, data)
    except StorageIOError:
        await file_service.delete_file(share_id, file_id)
        raise

    if total_chunks == 1:
        await _finish_file(file_id, 0, len(data))
    else:
        await _advance_session(file_id, 0, len(data))

    return {"id": file_id, "name": file_name}


async def _advance_session(file_id: str, chunk_index: int, size: int) -> None:
    """Move the session past ``chunk_index``, only if it still expects it."""
    db = await get_db()
    cursor = await db.execute(
        """UPDATE upload_sessions
           SET expected_index = ?, accumulated_size = ?, updated_at = datetime('now')
           WHERE file_id = ? AND expected_index = ?""",
        (chunk_index + 1, size, file_id, chunk_index),
    )
    await db.commit()
    if cursor.rowcount == 0:
        raise await _ordering_error(file_id)


async def _finish_file(file_id: str, chunk_index: int, size: int) -> None:
    """RECEIVING -> COMPLETE: the file becomes visible and immutable."""
    db = await get_db()
    cursor = await db.execute(
        "DELETE FROM upload_sessions WHERE file_id = ? AND expected_index = ?",
        (file_id, chunk_index),
    )
    if cursor.rowcount == 0:
        await db.commit()
        raise await _ordering_error(file_id)

    await db.execute(
        "UPDATE files SET size = ?, status = ? WHERE id = ?",
        (size, file_service.STATUS_COMPLETE, file_id),
    )
    await db.commit()
    logger.info("receive_chunk: completed %s (%d bytes)", file_id, size)
