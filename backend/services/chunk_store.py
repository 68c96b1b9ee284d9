"""Chunk store: byte storage for share files, keyed by (share_id, file_id).

Layout::

    <share_dir>/<share_id>/<file_id>      file bytes
    <share_dir>/<share_id>/archive.zip    archive of all files

Objects are always stored under their file id, never under the display name.
"""

import logging
import os
import re
import shutil
from pathlib import Path
from typing import BinaryIO

from backend.config import settings
from backend.services.exceptions import NotFoundError, StorageIOError

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "archive.zip"

# Share ids and file ids only ever use these characters
SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")

# Characters invalid in Windows/Linux filenames
INVALID_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
TRAILING_DOTS_SPACES = re.compile(r'[\s.]+$')

# Windows reserved filenames
RESERVED_NAMES = frozenset({
    "CON", "PRN", "AUX", "NUL",
    "COM1", "COM2", "COM3", "COM4", "COM5", "COM6", "COM7", "COM8", "COM9",
    "LPT1", "LPT2", "LPT3", "LPT4", "LPT5", "LPT6", "LPT7", "LPT8", "LPT9",
})


def _check_id(value: str) -> str:
    if not value or not SAFE_ID.match(value):
        raise NotFoundError(f"Invalid identifier: {value!r}")
    return value


def get_share_dir(share_id: str) -> Path:
    """Get the storage root of a share."""
    return settings.share_dir / _check_id(share_id)


def get_object_path(share_id: str, file_id: str) -> Path:
    """Get the backing path of a file. Does not check existence."""
    return get_share_dir(share_id) / _check_id(file_id)


def get_archive_file_path(share_id: str) -> Path:
    """Get the fixed archive path of a share. Does not check existence."""
    return get_share_dir(share_id) / ARCHIVE_NAME


def ensure_share_directory(share_id: str) -> Path:
    """Create the share's storage root. No-op when it already exists."""
    path = get_share_dir(share_id)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.exception("ensure_share_directory: cannot create %s", path)
        raise StorageIOError() from e
    return path


def append_chunk(share_id: str, file_id: str, offset: int, data: bytes) -> int:
    """Write ``data`` at ``offset`` and drop anything stored past it.

    Writing the same chunk twice at the same offset leaves the same bytes.
    Empty data still materializes the file. Returns the resulting length.
    """
    path = get_object_path(share_id, file_id)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        mode = "r+b" if path.exists() else "wb"
        with open(path, mode) as f:
            f.seek(offset)
            f.write(data)
            f.truncate(offset + len(data))
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        logger.exception("append_chunk: write failed for %s at offset %d", path, offset)
        raise StorageIOError() from e
    return offset + len(data)


def open_for_read(share_id: str, file_id: str) -> BinaryIO:
    """Open a stored file for reading. Caller closes the handle."""
    path = get_file_path(share_id, file_id)
    try:
        return open(path, "rb")
    except FileNotFoundError:
        raise NotFoundError("File not found")
    except OSError as e:
        logger.exception("open_for_read: cannot open %s", path)
        raise StorageIOError() from e


def get_file_path(share_id: str, file_id: str) -> Path:
    """Get the path of an existing stored file."""
    path = get_object_path(share_id, file_id)
    if not path.is_file():
        raise NotFoundError("File not found")
    return path


def delete_file(share_id: str, file_id: str) -> None:
    """Remove a single stored file. Missing files are ignored."""
    path = get_object_path(share_id, file_id)
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.exception("delete_file: cannot remove %s", path)
        raise StorageIOError() from e


def delete_all(share_id: str) -> None:
    """Remove a share's storage tree. An already missing tree is not an error."""
    path = get_share_dir(share_id)
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as e:
        logger.exception("delete_all: cannot remove %s", path)
        raise StorageIOError() from e
    logger.info("delete_all: removed storage for share %s", share_id)


def share_size_on_disk(share_id: str) -> int:
    """Total bytes stored for a share's files, excluding the archive."""
    path = get_share_dir(share_id)
    total = 0
    if path.exists():
        for f in path.iterdir():
            if f.is_file() and f.name != ARCHIVE_NAME:
                total += f.stat().st_size
    return total


# ── Display names ────────────────────────────────────────────────────────────

def sanitize_filename(name: str) -> str:
    """Sanitize a display name for use as an archive entry name.

    Removes invalid characters, handles reserved names, and ensures
    the result is non-empty.
    """
    sanitized = INVALID_CHARS.sub("", name)
    sanitized = TRAILING_DOTS_SPACES.sub("", sanitized)
    sanitized = sanitized.strip()

    if not sanitized:
        sanitized = "Unknown"

    name_upper = sanitized.split(".")[0].upper()
    if name_upper in RESERVED_NAMES:
        sanitized = f"_{sanitized}"

    return sanitized


def ensure_unique_name(name: str, taken: set[str]) -> str:
    """Append a counter to ``name`` until it is not in ``taken``."""
    if name not in taken:
        return name

    path = Path(name)
    stem = path.stem
    ext = path.suffix
    counter = 1
    while True:
        new_name = f"{stem} ({counter}){ext}"
        if new_name not in taken:
            return new_name
        counter += 1
