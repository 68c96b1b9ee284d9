"""Tests for the retention pass."""

import pytest

from backend.config import settings
from backend.services import cleanup_service, share_service


async def _backdate(db, share_id: str, column: str, value: str) -> None:
    await db.execute(f"UPDATE shares SET {column} = ? WHERE id = ?", (value, share_id))
    await db.commit()


@pytest.mark.asyncio
async def test_expired_shares_are_deleted(db, upload):
    await share_service.create_share(share_id="stale", expiration="1-day")
    await upload("stale", "a.txt", [b"a"])
    await share_service.complete_share("stale")
    await share_service.create_share(share_id="fresh", expiration="1-day")
    await share_service.create_share(share_id="forever")

    await _backdate(db, "stale", "expiration", "2000-01-01T00:00:00+00:00")

    assert await cleanup_service.delete_expired_shares() == 1
    assert await share_service.get_share("stale") is None
    assert not (settings.share_dir / "stale").exists()
    assert await share_service.get_share("fresh") is not None
    assert await share_service.get_share("forever") is not None


@pytest.mark.asyncio
async def test_abandoned_uploads_are_deleted(db, upload):
    await share_service.create_share(share_id="abandoned")
    await upload("abandoned", "a.txt", [b"a"])
    await share_service.create_share(share_id="finished")
    await upload("finished", "a.txt", [b"a"])
    await share_service.complete_share("finished")
    await share_service.create_share(share_id="in-progress")

    for share_id in ("abandoned", "finished"):
        await _backdate(db, share_id, "created_at", "2000-01-01T00:00:00+00:00")

    assert await cleanup_service.delete_abandoned_shares(max_age_hours=24) == 1
    assert await share_service.get_share("abandoned") is None
    assert await share_service.get_share("finished") is not None
    assert await share_service.get_share("in-progress") is not None


@pytest.mark.asyncio
async def test_run_cleanup_once(db):
    await share_service.create_share(share_id="old-expired", expiration="1-day")
    await share_service.create_share(share_id="old-draft")
    await _backdate(db, "old-expired", "expiration", "2000-01-01T00:00:00+00:00")
    await _backdate(db, "old-draft", "created_at", "2000-01-01T00:00:00+00:00")

    assert await cleanup_service.run_cleanup_once(abandoned_share_hours=24) == (1, 1)
    assert await cleanup_service.run_cleanup_once(abandoned_share_hours=24) == (0, 0)
