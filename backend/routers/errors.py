"""Service error translation and dependencies shared by the routers."""

import logging

from fastapi import Header, HTTPException, Request

from backend.services import token_service
from backend.services.exceptions import (
    NotShareOwnerError,
    OwnerTokenRequiredError,
    ShareVaultError,
    StorageIOError,
)

logger = logging.getLogger(__name__)


def http_error(exc: ShareVaultError) -> HTTPException:
    """HTTPException carrying the exception's discriminator as ``detail``.

    Storage failures are opaque to clients; the cause is in the server log.
    """
    if isinstance(exc, StorageIOError):
        return HTTPException(
            status_code=exc.status_code,
            detail={"error": exc.error, "message": StorageIOError.default_message},
        )
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def share_token_cookie(share_id: str) -> str:
    return f"share_{share_id}_token"


async def get_share_token(
    share_id: str,
    request: Request,
    x_share_token: str | None = Header(default=None),
) -> str | None:
    """Capability token from the ``X-Share-Token`` header or the share cookie."""
    if x_share_token:
        return x_share_token
    return request.cookies.get(share_token_cookie(share_id))


async def read_body(request: Request) -> bytes:
    return await request.body()


async def require_share_owner(
    share_id: str,
    x_owner_token: str | None = Header(default=None),
) -> None:
    """FastAPI dependency for management routes: ``X-Owner-Token`` must match the share.

    The token is the ``owner_token`` returned when the share was created.
    """
    if not x_owner_token:
        raise http_error(OwnerTokenRequiredError())
    if not await token_service.verify_owner_token(share_id, x_owner_token):
        raise http_error(NotShareOwnerError())
