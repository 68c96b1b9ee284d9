"""Access tokens for share owners, protected shares and public single-file links.

Three separate trust mechanisms:

* Share tokens are stateless JWTs minted after the password and view checks.
  They are bound to one share incarnation through the share's creation time,
  and expire with the share.
* Public file tokens are random bearer strings stored on the file row. Each
  grants access to exactly one file, without the share password, until its
  own expiry.
* Owner tokens are JWTs handed out once, when the share is created. They
  authorize management calls (uploads, finalize, edits, deletion) and never
  expire on their own; deleting the share invalidates them.
"""

import logging
import secrets
from datetime import timedelta

from jose import JWTError

from backend.auth import decode_token, encode_token, verify_password
from backend.database import fetch_one, get_db
from backend.services import file_service
from backend.services.exceptions import (
    NotFoundError,
    PasswordRequiredError,
    ViewLimitExceededError,
    WrongPasswordError,
)
from backend.services.share_service import (
    format_timestamp,
    get_password_hash,
    get_completed_share,
    get_share,
    increment_views,
    is_expired,
    never_expires,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

SHARE_TOKEN_KIND = "share"
OWNER_TOKEN_KIND = "owner"


def share_created_at_claim(share: dict) -> int:
    """Millisecond creation timestamp that identifies one incarnation of a share id."""
    return int(parse_timestamp(share["created_at"]).timestamp() * 1000)


# ── Share capability tokens ──────────────────────────────────────────────────

async def issue_share_token(share_id: str, password: str | None = None) -> str:
    """Check password and view cap, count one view, and mint a share token."""
    share = await get_completed_share(share_id)

    password_hash = await get_password_hash(share_id)
    if password_hash:
        if not password:
            raise PasswordRequiredError()
        if not verify_password(password, password_hash):
            raise WrongPasswordError()

    max_views = share.get("max_views")
    if max_views and share["views"] >= max_views:
        raise ViewLimitExceededError()

    await increment_views(share_id)

    now = utcnow()
    claims = {
        "kind": SHARE_TOKEN_KIND,
        "share_id": share_id,
        "share_created_at": share_created_at_claim(share),
        "iat": int(now.timestamp()),
    }
    expiration = parse_timestamp(share["expiration"])
    token = encode_token(claims, None if never_expires(expiration) else expiration)

    logger.info("issue_share_token: issued token for share %s (views=%d)",
                share_id, share["views"] + 1)
    return token


def _claims_match(claims: dict, kind: str, share: dict) -> bool:
    return (
        claims.get("kind") == kind
        and claims.get("share_id") == share["id"]
        and claims.get("share_created_at") == share_created_at_claim(share)
    )


async def verify_share_token(share_id: str, token: str | None) -> bool:
    """True if ``token`` is a valid, unexpired token for the current share ``share_id``."""
    if not token:
        return False

    share = await get_share(share_id)
    if share is None:
        return False

    expiration = parse_timestamp(share["expiration"])
    try:
        claims = decode_token(token, verify_exp=not never_expires(expiration))
    except JWTError:
        return False

    return _claims_match(claims, SHARE_TOKEN_KIND, share)


# ── Owner tokens ─────────────────────────────────────────────────────────────

def issue_owner_token(share: dict) -> str:
    """Token that lets its holder manage ``share``. Valid for the share's lifetime."""
    claims = {
        "kind": OWNER_TOKEN_KIND,
        "share_id": share["id"],
        "share_created_at": share_created_at_claim(share),
        "iat": int(utcnow().timestamp()),
    }
    return encode_token(claims)


async def verify_owner_token(share_id: str, token: str | None) -> bool:
    if not token:
        return False

    share = await get_share(share_id)
    if share is None:
        return False

    try:
        claims = decode_token(token, verify_exp=False)
    except JWTError:
        return False

    return _claims_match(claims, OWNER_TOKEN_KIND, share)


# ── Public file tokens ───────────────────────────────────────────────────────

def _public_token_active(file_row: dict) -> bool:
    if not file_row.get("public_token"):
        return False
    expires_at = file_row.get("public_token_expires_at")
    return not expires_at or parse_timestamp(expires_at) > utcnow()


async def create_public_file_token(
    share_id: str,
    file_id: str,
    expires_in_days: int | None = None,
) -> dict:
    """Create a public link for one file, or return the active one."""
    if await file_service.get_file(share_id, file_id) is None:
        raise NotFoundError("File not found")

    row = await file_service.get_file_record(file_id)
    if _public_token_active(row):
        return _public_token_info(row)

    token = secrets.token_urlsafe(16)
    expires_at = None
    if expires_in_days:
        expires_at = format_timestamp(utcnow() + timedelta(days=expires_in_days))

    db = await get_db()
    await db.execute(
        "UPDATE files SET public_token = ?, public_token_expires_at = ? WHERE id = ?",
        (token, expires_at, file_id),
    )
    await db.commit()
    logger.info("create_public_file_token: file %s in share %s", file_id, share_id)

    return _public_token_info(await file_service.get_file_record(file_id))


def _public_token_info(row: dict) -> dict:
    return {
        "file_id": row["id"],
        "token": row["public_token"],
        "expires_at": row["public_token_expires_at"],
    }


async def revoke_public_file_token(share_id: str, file_id: str) -> None:
    db = await get_db()
    cursor = await db.execute(
        """UPDATE files SET public_token = NULL, public_token_expires_at = NULL
           WHERE share_id = ? AND id = ? AND public_token IS NOT NULL""",
        (share_id, file_id),
    )
    await db.commit()
    if cursor.rowcount == 0:
        raise NotFoundError("No public link for this file")


async def get_file_by_public_token(token: str) -> dict:
    """Resolve a public token to its file. Expired tokens clear themselves."""
    row = await fetch_one(
        "SELECT * FROM files WHERE public_token = ? AND status = ?",
        (token, file_service.STATUS_COMPLETE),
    )
    if row is None:
        raise NotFoundError("File not found or expired")

    if not _public_token_active(row):
        db = await get_db()
        await db.execute(
            "UPDATE files SET public_token = NULL, public_token_expires_at = NULL WHERE id = ?",
            (row["id"],),
        )
        await db.commit()
        raise NotFoundError("File not found or expired")

    share = await get_share(row["share_id"])
    if (
        share is None
        or not share["upload_locked"]
        or share["removed_reason"]
        or is_expired(share)
    ):
        raise NotFoundError("File not found or expired")

    return {
        "id": row["id"],
        "share_id": row["share_id"],
        "name": row["name"],
        "size": row["size"],
    }
