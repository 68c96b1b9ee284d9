"""Shared test fixtures for all test modules."""

import os
import tempfile

import pytest

# ── Environment overrides (must be set before importing backend modules) ─────
_tmp = tempfile.mkdtemp(prefix="sv_pytest_")
os.environ["SHAREVAULT_DATA_DIR"] = _tmp
os.environ["SHAREVAULT_SHARE_DIR"] = os.path.join(_tmp, "shares")
os.environ["SHAREVAULT_DB_PATH"] = os.path.join(_tmp, "test.db")
os.environ["SHAREVAULT_SECRET_KEY"] = "pytest-secret-key"
os.environ["SHAREVAULT_CLEANUP_INTERVAL_MINUTES"] = "0"


@pytest.fixture
async def db(tmp_path):
    """Fresh database and share directory for one test."""
    import backend.database as db_mod
    from backend.config import settings

    original = (settings.db_path, settings.share_dir)
    settings.db_path = tmp_path / "sharevault.db"
    settings.share_dir = tmp_path / "shares"

    if db_mod._db is not None:
        await db_mod.close_db()
    await db_mod.init_db()

    yield await db_mod.get_db()

    from backend.services.archive_service import wait_for_all_builds
    await wait_for_all_builds()
    await db_mod.close_db()
    settings.db_path, settings.share_dir = original


@pytest.fixture
def upload():
    """Upload a file as an ordered list of chunks; returns the last response."""
    from backend.services.upload_service import receive_chunk

    async def _upload(share_id: str, name: str, chunks: list[bytes]) -> dict:
        result = None
        file_id = None
        for index, chunk in enumerate(chunks):
            result = await receive_chunk(
                share_id, chunk, index, len(chunks), name, file_id=file_id
            )
            file_id = result["id"]
        return result

    return _upload


@pytest.fixture
def completed_share(db, upload):
    """Factory for a finalized share holding the given {name: bytes} files."""
    from backend.services import share_service

    async def _make(files: dict[str, bytes], **share_kwargs) -> dict:
        share = await share_service.create_share(**share_kwargs)
        for name, content in files.items():
            await upload(share["id"], name, [content])
        return await share_service.complete_share(share["id"])

    return _make
