"""Delivery gate: authorize file fetches and derive response headers.

Response shaping depends only on the file name and the caller's intent
(download, inline, preview), never on stored state.
"""

import mimetypes
from pathlib import PurePath
from urllib.parse import quote

from backend.services import file_service
from backend.services.exceptions import (
    NotFoundError,
    PasswordRequiredError,
    PrivateShareError,
    TokenRequiredError,
    WrongPasswordError,
)
from backend.services.share_service import get_completed_share, has_security_policy
from backend.services.token_service import verify_share_token

DEFAULT_MIME_TYPE = "application/octet-stream"

OFFICE_EXTENSIONS = frozenset({"doc", "docx", "xls", "xlsx", "ppt", "pptx"})
CODE_EXTENSIONS = frozenset({
    "js", "ts", "jsx", "tsx", "py", "java", "cpp", "c", "h",
    "css", "html", "xml", "json", "yaml", "yml",
})

CSP_DOWNLOAD = "sandbox"
CSP_INLINE = "sandbox allow-same-origin"
CSP_PDF = "frame-ancestors 'self'; object-src 'none'"
CSP_MEDIA = "media-src 'self'; object-src 'none'"
CSP_IMAGE = "img-src 'self'; object-src 'none'"
CSP_STRICT = "default-src 'none'; script-src 'none'"


# ── Content negotiation ──────────────────────────────────────────────────────

def _extension(name: str) -> str:
    return PurePath(name).suffix.lstrip(".").lower()


def resolve_mime_type(name: str) -> str:
    """MIME type from the file name's extension, generic binary when unknown."""
    return mimetypes.guess_type(name, strict=False)[0] or DEFAULT_MIME_TYPE


def get_preview_type(mime_type: str, name: str) -> str:
    ext = _extension(name)
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    if mime_type.startswith("audio/"):
        return "audio"
    if mime_type == "application/pdf":
        return "pdf"
    if mime_type.startswith("text/"):
        return "text"
    if ext in OFFICE_EXTENSIONS:
        return "office"
    if ext in CODE_EXTENSIONS:
        return "code"
    return "unsupported"


def supports_preview(mime_type: str, name: str) -> bool:
    return get_preview_type(mime_type, name) != "unsupported"


def content_disposition(disposition_type: str, filename: str) -> str:
    """Content-Disposition value, RFC 5987 encoded when the name is not plain ASCII."""
    quoted = quote(filename)
    if quoted != filename:
        return f"{disposition_type}; filename*=utf-8''{quoted}"
    return f'{disposition_type}; filename="{filename}"'


def _preview_policy(mime_type: str, fallback: str) -> dict:
    if mime_type == "application/pdf":
        return {"Content-Security-Policy": CSP_PDF, "X-Frame-Options": "SAMEORIGIN"}
    if mime_type.startswith("video/") or mime_type.startswith("audio/"):
        return {"Content-Security-Policy": CSP_MEDIA}
    if mime_type.startswith("image/"):
        return {"Content-Security-Policy": CSP_IMAGE}
    return {"Content-Security-Policy": fallback}


def build_file_headers(
    name: str,
    download: bool = True,
    preview: bool = False,
    public: bool = False,
) -> dict:
    """Disposition and embedding policy for serving ``name``.

    - download: attachment, fully sandboxed
    - inline preview: policy tailored to the media class; public links fall
      back to a same-origin sandbox instead of the strict policy
    - inline without preview: same-origin sandbox
    """
    mime_type = resolve_mime_type(name)
    headers = {"X-Content-Type-Options": "nosniff"}

    if download:
        headers["Content-Disposition"] = content_disposition("attachment", name)
        headers["Content-Security-Policy"] = CSP_DOWNLOAD
    elif preview:
        headers["Content-Disposition"] = content_disposition("inline", name)
        headers.update(_preview_policy(mime_type, CSP_INLINE if public else CSP_STRICT))
    else:
        headers["Content-Disposition"] = content_disposition("inline", name)
        headers["Content-Security-Policy"] = CSP_INLINE

    return headers


def parse_flag(value: str | None, default: bool) -> bool:
    """Query flag parsing: only "true"/"false" (any case) are meaningful."""
    if value is None:
        return default
    return value.strip().lower() not in ("false", "0", "no")


# ── Authorization ────────────────────────────────────────────────────────────

async def authorize_share_access(share_id: str, token: str | None) -> dict:
    """Share must be visible and, when protected, ``token`` must verify."""
    share = await get_completed_share(share_id)

    if has_security_policy(share) and not await verify_share_token(share_id, token):
        if share["has_password"]:
            if not token:
                raise PasswordRequiredError()
            raise WrongPasswordError("Share token is invalid or expired")
        if not token:
            raise TokenRequiredError()
        raise PrivateShareError()

    return share


async def authorize_file_access(
    share_id: str,
    file_id: str,
    token: str | None,
) -> tuple[dict, dict]:
    """Run every delivery check and return (share, file)."""
    share = await authorize_share_access(share_id, token)

    file = await file_service.get_file(share_id, file_id)
    if file is None:
        raise NotFoundError("File not found")
    return share, file


async def get_file_metadata(share_id: str, file_id: str) -> dict:
    """Name, size and type of a file, available before any password is supplied."""
    await get_completed_share(share_id)

    file = await file_service.get_file(share_id, file_id)
    if file is None:
        raise NotFoundError("File not found")

    mime_type = resolve_mime_type(file["name"])
    return {
        "id": file["id"],
        "name": file["name"],
        "size": file["size"],
        "mime_type": mime_type,
        "supports_preview": supports_preview(mime_type, file["name"]),
        "preview_type": get_preview_type(mime_type, file["name"]),
    }
