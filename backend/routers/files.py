"""File routes: chunked upload, metadata, download/preview and archive fetch."""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from backend.config import settings
from backend.models.file import (
    FileMetadataResponse,
    FileUploadResponse,
    PublicFileTokenResponse,
)
from backend.routers.errors import (
    get_share_token,
    http_error,
    read_body,
    require_share_owner,
)
from backend.services import (
    archive_service,
    chunk_store,
    delivery_service,
    file_service,
    token_service,
    upload_service,
)
from backend.services.exceptions import ShareVaultError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shares/{share_id}/files", tags=["files"])


@router.post(
    "", response_model=FileUploadResponse, dependencies=[Depends(require_share_owner)]
)
async def upload_chunk(
    share_id: str,
    name: str = Query(..., min_length=1),
    chunk_index: int = Query(..., ge=0),
    total_chunks: int = Query(..., ge=1),
    file_id: str | None = None,
    body: bytes = Depends(read_body),
):
    """Upload one chunk of a file as the raw request body.

    The first chunk returns the file id; send it with every following chunk.
    On an ordering error the response carries ``expected_chunk_index``.
    """
    try:
        return await upload_service.receive_chunk(
            share_id,
            body,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            file_name=name,
            file_id=file_id,
        )
    except ShareVaultError as e:
        raise http_error(e)


@router.get("/zip")
async def get_zip(share_id: str, share_token: str | None = Depends(get_share_token)):
    """Download the prebuilt archive of a multi-file share."""
    try:
        await delivery_service.authorize_share_access(share_id, share_token)
        path = await archive_service.get_archive_path(share_id)
    except ShareVaultError as e:
        raise http_error(e)

    return FileResponse(
        path,
        media_type="application/zip",
        headers={
            "Content-Disposition": delivery_service.content_disposition(
                "attachment", f"{share_id}.zip"
            ),
            "X-Content-Type-Options": "nosniff",
        },
    )


@router.get("/{file_id}/metadata", response_model=FileMetadataResponse)
async def get_file_metadata(share_id: str, file_id: str):
    """Name, size and preview information; no token needed, never returns bytes."""
    try:
        return await delivery_service.get_file_metadata(share_id, file_id)
    except ShareVaultError as e:
        raise http_error(e)


async def _serve_file(
    share_id: str,
    file_id: str,
    share_token: str | None,
    download: str | None,
    preview: str | None,
) -> FileResponse:
    try:
        _, file = await delivery_service.authorize_file_access(share_id, file_id, share_token)
        path = chunk_store.get_file_path(share_id, file_id)
    except ShareVaultError as e:
        raise http_error(e)

    headers = delivery_service.build_file_headers(
        file["name"],
        download=delivery_service.parse_flag(download, default=True),
        preview=delivery_service.parse_flag(preview, default=False),
    )
    return FileResponse(
        path,
        media_type=delivery_service.resolve_mime_type(file["name"]),
        headers=headers,
    )


@router.get("/{file_id}/{filename}")
async def get_file_with_name(
    share_id: str,
    file_id: str,
    filename: str,
    download: str | None = None,
    preview: str | None = None,
    share_token: str | None = Depends(get_share_token),
):
    """Same as the plain file route; the trailing file name is cosmetic."""
    return await _serve_file(share_id, file_id, share_token, download, preview)


@router.get("/{file_id}")
async def get_file(
    share_id: str,
    file_id: str,
    download: str | None = None,
    preview: str | None = None,
    share_token: str | None = Depends(get_share_token),
):
    """Stream a file. Supports HTTP range requests."""
    return await _serve_file(share_id, file_id, share_token, download, preview)


@router.delete("/{file_id}", dependencies=[Depends(require_share_owner)])
async def delete_file(share_id: str, file_id: str):
    try:
        await file_service.delete_file(share_id, file_id)
    except ShareVaultError as e:
        raise http_error(e)
    return {"message": "File deleted"}


@router.post(
    "/{file_id}/public-token",
    response_model=PublicFileTokenResponse,
    dependencies=[Depends(require_share_owner)],
)
async def create_public_token(
    share_id: str,
    file_id: str,
    expires_in_days: int | None = Query(default=None, ge=1),
):
    """Create (or return) a public link that serves this single file."""
    try:
        info = await token_service.create_public_file_token(share_id, file_id, expires_in_days)
    except ShareVaultError as e:
        raise http_error(e)
    return {**info, "url": f"{settings.base_url}/f/{info['token']}"}


@router.delete("/{file_id}/public-token", dependencies=[Depends(require_share_owner)])
async def revoke_public_token(share_id: str, file_id: str):
    try:
        await token_service.revoke_public_file_token(share_id, file_id)
    except ShareVaultError as e:
        raise http_error(e)
    return {"message": "Public link revoked"}
