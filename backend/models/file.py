"""Pydantic models for share files."""

from pydantic import BaseModel


class ShareFile(BaseModel):
    id: str
    name: str
    size: int


class FileUploadResponse(BaseModel):
    id: str
    name: str


class FileMetadataResponse(BaseModel):
    id: str
    name: str
    size: int
    mime_type: str
    supports_preview: bool
    preview_type: str


class PublicFileTokenResponse(BaseModel):
    file_id: str
    token: str
    url: str
    expires_at: str | None = None
