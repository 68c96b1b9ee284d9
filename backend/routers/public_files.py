"""Public single-file links (no share password)."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from backend.services import chunk_store, delivery_service, token_service
from backend.services.exceptions import ShareVaultError

router = APIRouter(tags=["public"])


@router.get("/f/{token}")
async def get_public_file(token: str, download: str | None = None):
    """Serve the file behind a public token. Any failure is a plain 404."""
    try:
        file = await token_service.get_file_by_public_token(token)
        path = chunk_store.get_file_path(file["share_id"], file["id"])
    except ShareVaultError:
        raise HTTPException(
            status_code=404,
            detail={"error": "not_found", "message": "File not found or expired"},
        )

    as_download = delivery_service.parse_flag(download, default=True)
    headers = delivery_service.build_file_headers(
        file["name"],
        download=as_download,
        preview=not as_download,
        public=True,
    )
    return FileResponse(
        path,
        media_type=delivery_service.resolve_mime_type(file["name"]),
        headers=headers,
    )
