"""Service-level exceptions.

Every exception carries an HTTP status and a machine-readable ``error``
discriminator so clients can branch on it (prompt for a password, resume an
upload at another chunk, show "not found", ...).
"""


class ShareVaultError(Exception):
    """Base exception for share, upload and delivery failures."""

    status_code = 400
    error = "bad_request"
    default_message = "Bad request"

    def __init__(self, message: str | None = None, error: str | None = None, **extra):
        self.message = message or self.default_message
        if error is not None:
            self.error = error
        self.extra = extra
        super().__init__(self.message)

    def to_detail(self) -> dict:
        """Serializable payload for an HTTP error response."""
        return {"error": self.error, "message": self.message, **self.extra}


class InvalidRequestError(ShareVaultError):
    """Request is well-formed but violates a rule (taken id, bad expiration, ...)."""

    error = "invalid_request"
    default_message = "Invalid request"


class NotFoundError(ShareVaultError):
    """Share or file absent, removed or expired.

    All three collapse to the same surface so existence does not leak. A
    removed share uses the ``share_removed`` discriminator and its reason as
    the message.
    """

    status_code = 404
    error = "not_found"
    default_message = "Not found"


class ForbiddenError(ShareVaultError):
    status_code = 403
    error = "forbidden"
    default_message = "Access denied"


class PasswordRequiredError(ForbiddenError):
    error = "share_password_required"
    default_message = "This share is password protected"


class WrongPasswordError(ForbiddenError):
    error = "wrong_password"
    default_message = "Wrong password"


class ViewLimitExceededError(ForbiddenError):
    error = "share_max_views_exceeded"
    default_message = "Maximum views exceeded"


class TokenRequiredError(ForbiddenError):
    error = "share_token_required"
    default_message = "A share token is required"


class PrivateShareError(ForbiddenError):
    error = "private_share"
    default_message = "This share is private"


class OwnerTokenRequiredError(ShareVaultError):
    """Management call without the owner token handed out at share creation."""

    status_code = 401
    error = "owner_token_required"
    default_message = "Owner token required"


class NotShareOwnerError(ForbiddenError):
    error = "not_share_owner"
    default_message = "Owner token does not match this share"


class UnexpectedChunkIndexError(ShareVaultError):
    """Chunk arrived out of order. The client resumes at ``expected_chunk_index``."""

    error = "unexpected_chunk_index"
    default_message = "Unexpected chunk received"

    def __init__(self, expected_chunk_index: int, message: str | None = None):
        self.expected_chunk_index = expected_chunk_index
        super().__init__(message, expected_chunk_index=expected_chunk_index)


class ShareLockedError(ShareVaultError):
    error = "share_locked"
    default_message = "Share is already completed"


class FileUploadCompleteError(ShareVaultError):
    error = "file_upload_complete"
    default_message = "File upload is already complete"


class PayloadTooLargeError(ShareVaultError):
    status_code = 413
    error = "payload_too_large"
    default_message = "Payload too large"


class StorageIOError(ShareVaultError):
    """Disk or permission failure in the chunk store. Never retried internally."""

    status_code = 500
    error = "storage_error"
    default_message = "Internal storage error"


class ArchiveBuildError(ShareVaultError):
    """Archive generation failed; reported to the finalize flow only."""

    status_code = 500
    error = "archive_build_failed"
    default_message = "Archive build failed"
