"""Pydantic models for shares and share tokens."""

from pydantic import BaseModel, Field

from backend.models.file import ShareFile


class ShareSecurity(BaseModel):
    password: str | None = Field(default=None, min_length=1, max_length=72)
    max_views: int | None = Field(default=None, ge=0)


class ShareCreate(BaseModel):
    id: str | None = Field(default=None, pattern=r"^[A-Za-z0-9_-]{3,50}$")
    name: str | None = Field(default=None, min_length=3, max_length=30)
    description: str | None = Field(default=None, max_length=512)
    expiration: str = "never"  # e.g. "7-days", "24-hours", "never"
    security: ShareSecurity | None = None


class ShareUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=30)
    description: str | None = Field(default=None, max_length=512)
    expiration: str | None = None
    security: ShareSecurity | None = None


class ShareResponse(BaseModel):
    id: str
    name: str | None = None
    description: str | None = None
    description_html: str | None = None
    expiration: str
    upload_locked: bool = False
    is_zip_ready: bool = False
    views: int = 0
    has_password: bool = False
    max_views: int | None = None
    created_at: str


class ShareCreatedResponse(ShareResponse):
    owner_token: str


class ShareWithFilesResponse(ShareResponse):
    files: list[ShareFile] = []
    size: int = 0


class ShareTokenRequest(BaseModel):
    password: str | None = None


class ShareTokenResponse(BaseModel):
    token: str
