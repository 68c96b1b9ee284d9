"""Retention: purge expired shares and abandoned uploads."""

import asyncio
import logging
from datetime import timedelta

from backend.database import fetch_all
from backend.services.exceptions import NotFoundError
from backend.services.share_service import (
    delete_share,
    is_expired,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)


async def _delete_all(share_ids: list[str]) -> int:
    deleted = 0
    for share_id in share_ids:
        try:
            await delete_share(share_id)
            deleted += 1
        except NotFoundError:
            # Deleted concurrently by its owner
            continue
    return deleted


async def delete_expired_shares() -> int:
    """Delete every share past its expiration. Never-expiring shares are kept."""
    now = utcnow()
    rows = await fetch_all("SELECT id, expiration FROM shares")
    expired = [row["id"] for row in rows if is_expired(row, now)]

    deleted = await _delete_all(expired)
    if deleted:
        logger.info("delete_expired_shares: deleted %d expired shares", deleted)
    return deleted


async def delete_abandoned_shares(max_age_hours: int) -> int:
    """Delete shares that were never finalized within ``max_age_hours``."""
    cutoff = utcnow() - timedelta(hours=max_age_hours)
    rows = await fetch_all("SELECT id, created_at FROM shares WHERE upload_locked = 0")
    abandoned = [row["id"] for row in rows if parse_timestamp(row["created_at"]) < cutoff]

    deleted = await _delete_all(abandoned)
    if deleted:
        logger.info("delete_abandoned_shares: deleted %d unfinished shares", deleted)
    return deleted


async def run_cleanup_once(abandoned_share_hours: int) -> tuple[int, int]:
    expired = await delete_expired_shares()
    abandoned = await delete_abandoned_shares(abandoned_share_hours)
    return expired, abandoned


async def run_cleanup_loop(interval_minutes: int, abandoned_share_hours: int) -> None:
    """Run the retention pass forever. A failing pass is logged and retried next time."""
    while True:
        try:
            await run_cleanup_once(abandoned_share_hours)
        except Exception:
            logger.exception("Retention pass failed")
        await asyncio.sleep(interval_minutes * 60)
