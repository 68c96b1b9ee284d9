"""Share service: create, finalize, update and remove shares."""

import logging
import re
import secrets
import string
from datetime import datetime, timedelta, timezone

from markdown_it import MarkdownIt

from backend.auth import hash_password
from backend.config import settings
from backend.database import fetch_one, get_db
from backend.services import archive_service, chunk_store, file_service
from backend.services.exceptions import InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

# Unix epoch is the "never expires" sentinel
NEVER_EXPIRES = datetime(1970, 1, 1, tzinfo=timezone.utc)

SHARE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,50}$")
_SHARE_ID_ALPHABET = string.ascii_letters + string.digits
_GENERATED_ID_LENGTH = 10

# "<amount>-<unit>", e.g. "7-days" or "1-hour"
_RELATIVE_EXPIRATION = re.compile(r"^(\d+)-(minute|hour|day|week|month|year)s?$")
_UNIT_DELTAS = {
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}

_markdown = MarkdownIt("commonmark", {"html": False})


# ── Timestamps ───────────────────────────────────────────────────────────────

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def never_expires(expiration: datetime) -> bool:
    return expiration == NEVER_EXPIRES


def parse_expiration(value: str | None, now: datetime | None = None) -> datetime:
    """Turn "never", "<n>-<unit>" or an ISO timestamp into an absolute expiration."""
    if value is None or value == "never":
        return NEVER_EXPIRES

    now = now or utcnow()
    match = _RELATIVE_EXPIRATION.match(value.strip().lower())
    if match:
        amount, unit = int(match.group(1)), match.group(2)
        if amount == 0:
            return NEVER_EXPIRES
        return now + amount * _UNIT_DELTAS[unit]

    try:
        return parse_timestamp(value)
    except ValueError:
        raise InvalidRequestError(
            f"Invalid expiration: {value!r}", error="invalid_expiration"
        )


def _check_max_expiration(expiration: datetime) -> None:
    if settings.max_expiration_days == 0:
        return
    limit = utcnow() + timedelta(days=settings.max_expiration_days)
    if never_expires(expiration) or expiration > limit:
        raise InvalidRequestError(
            "Expiration date exceeds maximum expiration date",
            error="expiration_exceeds_maximum",
        )


def is_expired(share: dict, now: datetime | None = None) -> bool:
    expiration = parse_timestamp(share["expiration"])
    if never_expires(expiration):
        return False
    return (now or utcnow()) > expiration


def has_security_policy(share: dict) -> bool:
    return bool(share.get("has_password") or share.get("max_views"))


# ── Lookups ──────────────────────────────────────────────────────────────────

def _row_to_share(row: dict) -> dict:
    share = dict(row)
    share["upload_locked"] = bool(share["upload_locked"])
    share["is_zip_ready"] = bool(share["is_zip_ready"])
    share["has_password"] = bool(share.pop("password_hash", None))
    share["description_html"] = (
        _markdown.render(share["description"]) if share.get("description") else None
    )
    return share


async def get_share(share_id: str) -> dict | None:
    """Get a share with its security summary, or None."""
    row = await fetch_one(
        """SELECT s.*, sec.password_hash, sec.max_views
           FROM shares s
           LEFT JOIN share_security sec ON sec.share_id = s.id
           WHERE s.id = ?""",
        (share_id,),
    )
    if row is None:
        return None
    return _row_to_share(row)


async def get_password_hash(share_id: str) -> str | None:
    row = await fetch_one(
        "SELECT password_hash FROM share_security WHERE share_id = ?", (share_id,)
    )
    return row["password_hash"] if row else None


async def get_visible_share(share_id: str) -> dict:
    """Get a share that may be served: present, not removed and not expired."""
    share = await get_share(share_id)
    if share is None:
        raise NotFoundError("Share not found")
    if share["removed_reason"]:
        raise NotFoundError(share["removed_reason"], error="share_removed")
    if is_expired(share):
        raise NotFoundError("Share not found")
    return share


async def get_completed_share(share_id: str) -> dict:
    """Get a visible share whose uploads are finalized.

    A share still receiving files is reported exactly like a missing one.
    """
    share = await get_visible_share(share_id)
    if not share["upload_locked"]:
        raise NotFoundError("Share not found")
    return share


async def get_share_with_files(share_id: str) -> dict:
    """Get a completed, visible share together with its files."""
    share = await get_completed_share(share_id)
    share["files"] = await file_service.list_files(share_id)
    share["size"] = sum(f["size"] for f in share["files"])
    return share


async def is_share_id_available(share_id: str) -> bool:
    row = await fetch_one("SELECT 1 AS taken FROM shares WHERE id = ?", (share_id,))
    return row is None


async def _generate_share_id() -> str:
    while True:
        candidate = "".join(
            secrets.choice(_SHARE_ID_ALPHABET) for _ in range(_GENERATED_ID_LENGTH)
        )
        if await is_share_id_available(candidate):
            return candidate


# ── Mutations ────────────────────────────────────────────────────────────────

async def create_share(
    share_id: str | None = None,
    name: str | None = None,
    description: str | None = None,
    expiration: str | None = "never",
    password: str | None = None,
    max_views: int | None = None,
) -> dict:
    """Create an empty, unlocked share and its storage directory."""
    if share_id is None:
        share_id = await _generate_share_id()
    elif not SHARE_ID_PATTERN.match(share_id):
        raise InvalidRequestError(
            "Share id must be 3-50 letters, digits, '-' or '_'",
            error="invalid_share_id",
        )
    elif not await is_share_id_available(share_id):
        raise InvalidRequestError("Share id already in use", error="share_id_taken")

    expiration_at = parse_expiration(expiration)
    _check_max_expiration(expiration_at)

    chunk_store.ensure_share_directory(share_id)

    db = await get_db()
    await db.execute(
        """INSERT INTO shares (id, name, description, expiration, created_at)
           VALUES (?, ?, ?, ?, ?)""",
        (share_id, name, description, format_timestamp(expiration_at),
         format_timestamp(utcnow())),
    )
    if password or max_views:
        await db.execute(
            """INSERT INTO share_security (share_id, password_hash, max_views)
               VALUES (?, ?, ?)""",
            (share_id, hash_password(password) if password else None, max_views or None),
        )
    await db.commit()

    logger.info("create_share: %s (expires %s, protected=%s)",
                share_id, format_timestamp(expiration_at), bool(password or max_views))
    return await get_share(share_id)


async def update_share(
    share_id: str,
    name: str | None = None,
    description: str | None = None,
    expiration: str | None = None,
    password: str | None = None,
    max_views: int | None = None,
) -> dict:
    """Update the fields that were provided; None leaves a field unchanged."""
    share = await get_share(share_id)
    if share is None:
        raise NotFoundError("Share not found")

    updates = {}
    if name is not None:
        updates["name"] = name
    if description is not None:
        updates["description"] = description
    if expiration is not None:
        expiration_at = parse_expiration(expiration)
        _check_max_expiration(expiration_at)
        updates["expiration"] = format_timestamp(expiration_at)

    db = await get_db()
    if updates:
        set_clause = ", ".join(f"{key} = ?" for key in updates)
        await db.execute(
            f"UPDATE shares SET {set_clause} WHERE id = ?",
            (*updates.values(), share_id),
        )

    if password or max_views is not None:
        await db.execute(
            "INSERT OR IGNORE INTO share_security (share_id) VALUES (?)", (share_id,)
        )
        if password:
            await db.execute(
                "UPDATE share_security SET password_hash = ? WHERE share_id = ?",
                (hash_password(password), share_id),
            )
        if max_views is not None:
            await db.execute(
                "UPDATE share_security SET max_views = ? WHERE share_id = ?",
                (max_views or None, share_id),
            )
    await db.commit()

    return await get_share(share_id)


async def complete_share(share_id: str) -> dict:
    """Finalize a share: lock uploads and start the archive build.

    Unfinished uploads are discarded. The archive is only built for shares
    holding more than one file; single files are served directly.
    """
    share = await get_share(share_id)
    if share is None:
        raise NotFoundError("Share not found")
    if share["upload_locked"]:
        raise InvalidRequestError("Share already completed", error="share_already_completed")

    await file_service.discard_incomplete_files(share_id)
    file_count = await file_service.count_files(share_id)
    if file_count == 0:
        raise InvalidRequestError(
            "You need at least one file in your share to complete it.",
            error="share_empty",
        )

    db = await get_db()
    cursor = await db.execute(
        """UPDATE shares SET upload_locked = 1, is_zip_ready = 0
           WHERE id = ? AND upload_locked = 0""",
        (share_id,),
    )
    await db.commit()
    if cursor.rowcount == 0:
        raise InvalidRequestError("Share already completed", error="share_already_completed")

    logger.info("complete_share: %s locked with %d files", share_id, file_count)

    if file_count > 1:
        archive_service.start_archive_build(share_id)

    return await get_share(share_id)


async def revert_complete(share_id: str) -> dict:
    """Unlock a finalized share so files can be added again."""
    db = await get_db()
    cursor = await db.execute(
        "UPDATE shares SET upload_locked = 0, is_zip_ready = 0 WHERE id = ?",
        (share_id,),
    )
    await db.commit()
    if cursor.rowcount == 0:
        raise NotFoundError("Share not found")
    return await get_share(share_id)


async def increment_views(share_id: str) -> None:
    db = await get_db()
    await db.execute("UPDATE shares SET views = views + 1 WHERE id = ?", (share_id,))
    await db.commit()


async def mark_share_removed(share_id: str, reason: str) -> None:
    """Make a share permanently inaccessible (moderation, malware sweep)."""
    db = await get_db()
    cursor = await db.execute(
        "UPDATE shares SET removed_reason = ? WHERE id = ?", (reason, share_id)
    )
    await db.commit()
    if cursor.rowcount == 0:
        raise NotFoundError("Share not found")
    logger.warning("mark_share_removed: %s removed (%s)", share_id, reason)


async def delete_share(share_id: str) -> None:
    """Delete a share, its files and its storage tree."""
    db = await get_db()
    cursor = await db.execute("DELETE FROM shares WHERE id = ?", (share_id,))
    await db.commit()
    if cursor.rowcount == 0:
        raise NotFoundError("Share not found")

    chunk_store.delete_all(share_id)
    logger.info("delete_share: %s deleted", share_id)
