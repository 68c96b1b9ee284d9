"""Share routes: lifecycle management and capability token issuance."""

from fastapi import APIRouter, Depends, Response

from backend.models.share import (
    ShareCreate,
    ShareCreatedResponse,
    ShareResponse,
    ShareTokenRequest,
    ShareTokenResponse,
    ShareUpdate,
    ShareWithFilesResponse,
)
from backend.routers.errors import (
    get_share_token,
    http_error,
    require_share_owner,
    share_token_cookie,
)
from backend.services import delivery_service, share_service, token_service
from backend.services.exceptions import ShareVaultError

router = APIRouter(prefix="/api/shares", tags=["shares"])


@router.post("", response_model=ShareCreatedResponse)
async def create_share(data: ShareCreate):
    """Create an empty share that files can be uploaded into.

    The response carries the ``owner_token``; send it as ``X-Owner-Token`` on
    every upload and management call. It is not shown again.
    """
    security = data.security
    try:
        share = await share_service.create_share(
            share_id=data.id,
            name=data.name,
            description=data.description,
            expiration=data.expiration,
            password=security.password if security else None,
            max_views=security.max_views if security else None,
        )
    except ShareVaultError as e:
        raise http_error(e)
    return {**share, "owner_token": token_service.issue_owner_token(share)}


@router.get("/{share_id}/available")
async def is_share_id_available(share_id: str):
    return {"is_available": await share_service.is_share_id_available(share_id)}


@router.get("/{share_id}/metadata", response_model=ShareResponse)
async def get_share_metadata(share_id: str):
    """Share details without files; no token needed."""
    try:
        return await share_service.get_completed_share(share_id)
    except ShareVaultError as e:
        raise http_error(e)


@router.get("/{share_id}", response_model=ShareWithFilesResponse)
async def get_share(share_id: str, share_token: str | None = Depends(get_share_token)):
    """Completed share with its files. Protected shares need a capability token."""
    try:
        await delivery_service.authorize_share_access(share_id, share_token)
        return await share_service.get_share_with_files(share_id)
    except ShareVaultError as e:
        raise http_error(e)


@router.patch(
    "/{share_id}", response_model=ShareResponse, dependencies=[Depends(require_share_owner)]
)
async def update_share(share_id: str, data: ShareUpdate):
    security = data.security
    try:
        return await share_service.update_share(
            share_id,
            name=data.name,
            description=data.description,
            expiration=data.expiration,
            password=security.password if security else None,
            max_views=security.max_views if security else None,
        )
    except ShareVaultError as e:
        raise http_error(e)


@router.post(
    "/{share_id}/complete",
    response_model=ShareResponse,
    dependencies=[Depends(require_share_owner)],
)
async def complete_share(share_id: str):
    """Finalize the share. The archive is built in the background."""
    try:
        return await share_service.complete_share(share_id)
    except ShareVaultError as e:
        raise http_error(e)


@router.delete(
    "/{share_id}/complete",
    response_model=ShareResponse,
    dependencies=[Depends(require_share_owner)],
)
async def revert_complete(share_id: str):
    try:
        return await share_service.revert_complete(share_id)
    except ShareVaultError as e:
        raise http_error(e)


@router.delete("/{share_id}", dependencies=[Depends(require_share_owner)])
async def delete_share(share_id: str):
    try:
        await share_service.delete_share(share_id)
    except ShareVaultError as e:
        raise http_error(e)
    return {"message": "Share deleted"}


@router.post("/{share_id}/token", response_model=ShareTokenResponse)
async def issue_share_token(
    share_id: str,
    response: Response,
    data: ShareTokenRequest | None = None,
):
    """Exchange the password (if any) for a capability token. Counts one view."""
    try:
        token = await token_service.issue_share_token(
            share_id, data.password if data else None
        )
    except ShareVaultError as e:
        raise http_error(e)

    response.set_cookie(
        share_token_cookie(share_id),
        token,
        path=f"/api/shares/{share_id}",
        httponly=True,
        samesite="lax",
    )
    return {"token": token}
