"""Archive builder: zips all files of a share in the background.

Builds run off the request path (``start_archive_build``) and report
completion through the share's ``is_zip_ready`` flag. A failed build leaves
no archive behind and the flag false; the next finalize starts over.
"""

import asyncio
import logging
import os
import zipfile
from pathlib import Path

from backend.config import settings
from backend.database import fetch_one, get_db
from backend.services import chunk_store, file_service
from backend.services.exceptions import ArchiveBuildError, NotFoundError

logger = logging.getLogger(__name__)

# In-flight builds, keyed by share id
_pending_builds: dict[str, asyncio.Task] = {}


def _write_archive(
    target: Path,
    entries: list[tuple[str, Path]],
    compression_level: int,
) -> None:
    """Stream each (entry name, source path) pair into a new zip at ``target``."""
    tmp_path = target.with_name(target.name + ".tmp")
    try:
        with zipfile.ZipFile(
            tmp_path, "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compression_level,
        ) as archive:
            for entry_name, source in entries:
                archive.write(source, arcname=entry_name)
        os.replace(tmp_path, target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


async def build_archive(share_id: str, compression_level: int | None = None) -> Path:
    """Build ``archive.zip`` for a share, replacing any previous archive.

    Entries use the files' display names, sanitized and made unique, in the
    files' display order. Raises ArchiveBuildError on any failure.
    """
    if compression_level is None:
        compression_level = settings.zip_compression_level

    files = await file_service.list_files(share_id)

    entries = []
    taken: set[str] = set()
    for f in files:
        name = chunk_store.ensure_unique_name(chunk_store.sanitize_filename(f["name"]), taken)
        taken.add(name)
        entries.append((name, chunk_store.get_object_path(share_id, f["id"])))

    target = chunk_store.get_archive_file_path(share_id)
    try:
        await asyncio.to_thread(_write_archive, target, entries, compression_level)
    except (OSError, zipfile.BadZipFile, ValueError) as e:
        raise ArchiveBuildError(f"Archive build for share {share_id} failed: {e}") from e

    logger.info("build_archive: %s -> %s (%d entries)", share_id, target, len(entries))
    return target


async def _build_and_mark_ready(share_id: str, superseded: asyncio.Task | None) -> None:
    if superseded is not None:
        # The older build still writes to the same temporary file
        await asyncio.gather(superseded, return_exceptions=True)

    try:
        await build_archive(share_id)
    except ArchiveBuildError:
        logger.exception("Archive build failed for share %s", share_id)
        raise

    if _pending_builds.get(share_id) is not asyncio.current_task():
        logger.info("build_archive: %s superseded by a newer build", share_id)
        return

    # A share reopened while the build ran keeps is_zip_ready = 0
    db = await get_db()
    await db.execute(
        "UPDATE shares SET is_zip_ready = 1 WHERE id = ? AND upload_locked = 1",
        (share_id,),
    )
    await db.commit()


def _forget(share_id: str, task: asyncio.Task) -> None:
    if _pending_builds.get(share_id) is task:
        del _pending_builds[share_id]
    if not task.cancelled():
        # Retrieve the exception so asyncio does not report it as unhandled
        task.exception()


def start_archive_build(share_id: str) -> asyncio.Task:
    """Start a background build of the share's current files.

    A build already running for the share is superseded: the new one starts
    after it and only the newest build may mark the share ready.
    """
    running = _pending_builds.get(share_id)
    if running is not None and running.done():
        running = None

    task = asyncio.create_task(_build_and_mark_ready(share_id, running))
    _pending_builds[share_id] = task
    task.add_done_callback(lambda t: _forget(share_id, t))
    if running is not None:
        logger.info("start_archive_build: superseding running build for %s", share_id)
    logger.info("start_archive_build: queued archive for share %s", share_id)
    return task


async def wait_for_archive(share_id: str) -> bool:
    """Wait for the share's running build. Returns True if the archive is ready."""
    task = _pending_builds.get(share_id)
    if task is not None:
        try:
            await asyncio.shield(task)
        except ArchiveBuildError:
            return False
    row = await fetch_one("SELECT is_zip_ready FROM shares WHERE id = ?", (share_id,))
    return bool(row and row["is_zip_ready"])


async def wait_for_all_builds() -> None:
    """Wait for every in-flight build, ignoring their failures."""
    tasks = list(_pending_builds.values())
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


async def get_archive_path(share_id: str) -> Path:
    """Path of the share's finished archive."""
    row = await fetch_one("SELECT is_zip_ready FROM shares WHERE id = ?", (share_id,))
    if not row or not row["is_zip_ready"]:
        raise NotFoundError("Archive is not ready", error="archive_not_ready")

    path = chunk_store.get_archive_file_path(share_id)
    if not path.is_file():
        raise NotFoundError("Archive is not ready", error="archive_not_ready")
    return path
