"""ShareVault FastAPI application."""

import asyncio
import contextlib
import logging
import secrets
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.config import settings
from backend.database import close_db, init_db
from backend.routers import files, public_files, shares
from backend.services import archive_service, cleanup_service

# Configure logging so our INFO messages appear in container logs
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
# Keep noisy libraries at WARNING
logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logging.getLogger("multipart").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"
DEFAULT_SECRET_SENTINEL = "change-me-to-a-random-string"


def _ensure_secret_key() -> None:
    """Auto-generate a persistent secret key if the user hasn't set one."""
    if settings.secret_key != DEFAULT_SECRET_SENTINEL:
        return  # User explicitly set SHAREVAULT_SECRET_KEY, use it as-is

    key_file = settings.data_dir / ".secret_key"
    if key_file.exists():
        stored = key_file.read_text().strip()
        if stored:
            settings.secret_key = stored
            logger.info("Loaded auto-generated secret key from %s", key_file)
            return

    new_key = secrets.token_hex(32)
    key_file.write_text(new_key)
    settings.secret_key = new_key
    logger.warning(
        "Generated new secret key (saved to %s). "
        "Set SHAREVAULT_SECRET_KEY env var to use your own.",
        key_file,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.share_dir.mkdir(parents=True, exist_ok=True)
    _ensure_secret_key()
    await init_db()

    cleanup_task = None
    if settings.cleanup_interval_minutes > 0:
        cleanup_task = asyncio.create_task(
            cleanup_service.run_cleanup_loop(
                settings.cleanup_interval_minutes,
                settings.abandoned_share_hours,
            )
        )

    yield

    # Shutdown
    if cleanup_task is not None:
        cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup_task
    await archive_service.wait_for_all_builds()
    await close_db()


app = FastAPI(
    title="ShareVault",
    description="Self-hosted file sharing with chunked uploads",
    version=VERSION,
    lifespan=lifespan,
)

# CORS: localhost defaults plus any extra origins from SHAREVAULT_CORS_ORIGINS
_cors_origins = ["http://localhost:3000", "http://localhost:8080"]
if settings.cors_origins:
    _cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(shares.router)
app.include_router(files.router)
app.include_router(public_files.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": VERSION}
