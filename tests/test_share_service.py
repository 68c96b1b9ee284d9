"""Tests for the share lifecycle."""

from datetime import datetime, timedelta, timezone

import pytest

from backend.config import settings
from backend.services import file_service, share_service
from backend.services.exceptions import InvalidRequestError, NotFoundError
from backend.services.share_service import NEVER_EXPIRES, parse_expiration


# ── Expiration parsing ───────────────────────────────────────────────────────

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("value,delta", [
    ("1-minute", timedelta(minutes=1)),
    ("30-minutes", timedelta(minutes=30)),
    ("24-hours", timedelta(hours=24)),
    ("7-days", timedelta(days=7)),
    ("2-weeks", timedelta(weeks=2)),
    ("1-month", timedelta(days=30)),
    ("1-year", timedelta(days=365)),
])
def test_parse_relative_expiration(value, delta):
    assert parse_expiration(value, now=NOW) == NOW + delta


@pytest.mark.parametrize("value", ["never", None, "0-days"])
def test_parse_never(value):
    assert parse_expiration(value, now=NOW) == NEVER_EXPIRES


def test_parse_absolute_expiration():
    assert parse_expiration("2030-05-01T00:00:00+00:00") == datetime(
        2030, 5, 1, tzinfo=timezone.utc
    )


def test_parse_invalid_expiration():
    with pytest.raises(InvalidRequestError) as exc_info:
        parse_expiration("soon")
    assert exc_info.value.error == "invalid_expiration"


def test_is_expired():
    past = {"expiration": "2000-01-01T00:00:00+00:00"}
    future = {"expiration": "2999-01-01T00:00:00+00:00"}
    never = {"expiration": share_service.format_timestamp(NEVER_EXPIRES)}
    assert share_service.is_expired(past)
    assert not share_service.is_expired(future)
    assert not share_service.is_expired(never)


# ── Create / get ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_share_with_chosen_id(db):
    share = await share_service.create_share(share_id="my-share", name="Holiday")
    assert share["id"] == "my-share"
    assert share["name"] == "Holiday"
    assert share["upload_locked"] is False
    assert share["is_zip_ready"] is False
    assert share["views"] == 0
    assert share["has_password"] is False
    assert (settings.share_dir / "my-share").is_dir()


@pytest.mark.asyncio
async def test_create_share_generates_id(db):
    share = await share_service.create_share()
    assert share_service.SHARE_ID_PATTERN.match(share["id"])


@pytest.mark.asyncio
async def test_share_id_must_be_unique(db):
    await share_service.create_share(share_id="taken")
    assert not await share_service.is_share_id_available("taken")
    assert await share_service.is_share_id_available("free")

    with pytest.raises(InvalidRequestError) as exc_info:
        await share_service.create_share(share_id="taken")
    assert exc_info.value.error == "share_id_taken"


@pytest.mark.asyncio
async def test_invalid_share_id_rejected(db):
    with pytest.raises(InvalidRequestError):
        await share_service.create_share(share_id="../x")


@pytest.mark.asyncio
async def test_password_is_hashed(db):
    await share_service.create_share(share_id="secret", password="hunter2", max_views=3)
    stored = await share_service.get_password_hash("secret")
    assert stored and stored != "hunter2"

    share = await share_service.get_share("secret")
    assert share["has_password"] is True
    assert share["max_views"] == 3
    assert "password_hash" not in share


@pytest.mark.asyncio
async def test_description_rendered_without_raw_html(db):
    share = await share_service.create_share(
        share_id="desc", description="**bold** <script>x</script>"
    )
    assert "<strong>bold</strong>" in share["description_html"]
    assert "<script>" not in share["description_html"]


@pytest.mark.asyncio
async def test_max_expiration_enforced(db):
    original = settings.max_expiration_days
    settings.max_expiration_days = 7
    try:
        with pytest.raises(InvalidRequestError) as exc_info:
            await share_service.create_share(expiration="never")
        assert exc_info.value.error == "expiration_exceeds_maximum"
        with pytest.raises(InvalidRequestError):
            await share_service.create_share(expiration="8-days")
        share = await share_service.create_share(expiration="7-days")
        assert share is not None
    finally:
        settings.max_expiration_days = original


@pytest.mark.asyncio
async def test_visible_share_hides_expired(db):
    await share_service.create_share(share_id="old", expiration="1-day")
    await db.execute(
        "UPDATE shares SET expiration = '2000-01-01T00:00:00+00:00' WHERE id = 'old'"
    )
    await db.commit()

    with pytest.raises(NotFoundError) as exc_info:
        await share_service.get_visible_share("old")
    assert exc_info.value.error == "not_found"


@pytest.mark.asyncio
async def test_removed_share_reports_reason(db):
    await share_service.create_share(share_id="bad")
    await share_service.mark_share_removed("bad", "Malware detected")

    with pytest.raises(NotFoundError) as exc_info:
        await share_service.get_visible_share("bad")
    assert exc_info.value.error == "share_removed"
    assert exc_info.value.message == "Malware detected"


# ── Finalize ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_complete_locks_share_once(db, upload):
    await share_service.create_share(share_id="fin")
    await upload("fin", "a.txt", [b"abc"])

    share = await share_service.complete_share("fin")
    assert share["upload_locked"] is True

    with pytest.raises(InvalidRequestError) as exc_info:
        await share_service.complete_share("fin")
    assert exc_info.value.error == "share_already_completed"


@pytest.mark.asyncio
async def test_complete_empty_share_rejected(db):
    await share_service.create_share(share_id="empty")
    with pytest.raises(InvalidRequestError) as exc_info:
        await share_service.complete_share("empty")
    assert exc_info.value.error == "share_empty"
    assert (await share_service.get_share("empty"))["upload_locked"] is False


@pytest.mark.asyncio
async def test_complete_discards_unfinished_uploads(db, upload):
    from backend.services.upload_service import receive_chunk

    await share_service.create_share(share_id="partial")
    await upload("partial", "done.txt", [b"abc"])
    unfinished = await receive_chunk("partial", b"half", 0, 2, "half.txt")

    await share_service.complete_share("partial")

    assert [f["name"] for f in await file_service.list_files("partial")] == ["done.txt"]
    assert await file_service.get_file_record(unfinished["id"]) is None
    assert not (settings.share_dir / "partial" / unfinished["id"]).exists()


@pytest.mark.asyncio
async def test_single_file_share_builds_no_archive(db, upload):
    await share_service.create_share(share_id="single")
    await upload("single", "a.txt", [b"abc"])
    await share_service.complete_share("single")

    from backend.services.archive_service import wait_for_archive
    assert await wait_for_archive("single") is False
    assert not (settings.share_dir / "single" / "archive.zip").exists()


@pytest.mark.asyncio
async def test_get_share_with_files(db, upload):
    await share_service.create_share(share_id="listing")
    await upload("listing", "b.txt", [b"bb"])
    await upload("listing", "a.txt", [b"a"])

    with pytest.raises(NotFoundError):
        # Not visible before finalize
        await share_service.get_share_with_files("listing")

    await share_service.complete_share("listing")
    share = await share_service.get_share_with_files("listing")
    assert [f["name"] for f in share["files"]] == ["a.txt", "b.txt"]
    assert share["size"] == 3


@pytest.mark.asyncio
async def test_revert_complete_reopens_uploads(db, upload):
    await share_service.create_share(share_id="reopen")
    await upload("reopen", "a.txt", [b"a"])
    await upload("reopen", "b.txt", [b"b"])
    await share_service.complete_share("reopen")

    from backend.services.archive_service import wait_for_archive
    assert await wait_for_archive("reopen") is True

    share = await share_service.revert_complete("reopen")
    assert share["upload_locked"] is False
    assert share["is_zip_ready"] is False
    await upload("reopen", "c.txt", [b"c"])


# ── Update / delete ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_update_share(db):
    await share_service.create_share(share_id="upd", name="Before")
    share = await share_service.update_share(
        "upd", name="After", expiration="2-days", password="pw", max_views=5
    )
    assert share["name"] == "After"
    assert share["has_password"] is True
    assert share["max_views"] == 5
    assert not share_service.is_expired(share)

    share = await share_service.update_share("upd", max_views=0)
    assert share["max_views"] is None
    assert share["name"] == "After"


@pytest.mark.asyncio
async def test_update_missing_share(db):
    with pytest.raises(NotFoundError):
        await share_service.update_share("ghost", name="x")


@pytest.mark.asyncio
async def test_delete_share_cascades(db, upload):
    await share_service.create_share(share_id="gone", password="pw")
    result = await upload("gone", "a.txt", [b"abc"])

    await share_service.delete_share("gone")

    assert await share_service.get_share("gone") is None
    assert await file_service.get_file_record(result["id"]) is None
    assert await share_service.get_password_hash("gone") is None
    assert not (settings.share_dir / "gone").exists()

    with pytest.raises(NotFoundError):
        await share_service.delete_share("gone")


@pytest.mark.asyncio
async def test_delete_file(db, upload):
    await share_service.create_share(share_id="rmfile")
    result = await upload("rmfile", "a.txt", [b"abc"])

    await file_service.delete_file("rmfile", result["id"])
    assert await file_service.get_file("rmfile", result["id"]) is None
    with pytest.raises(NotFoundError):
        await file_service.delete_file("rmfile", result["id"])
