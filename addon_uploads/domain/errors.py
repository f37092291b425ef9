"""Domain exceptions raised by the upload, storage and download pipeline."""

from __future__ import annotations


class AddonUploadError(Exception):
    """Base exception carrying a stable error code and an HTTP status."""

    code = "addon_upload_error"
    status = 400

    def __init__(self, message: str, *, code: str | None = None, status: int | None = None):
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        super().__init__(message)


class SecurityError(AddonUploadError):
    """Anti-forgery token missing or invalid."""

    code = "security_check_failed"
    status = 403


class InvalidTypeError(AddonUploadError):
    """Extension not allowed or content does not match the extension."""

    code = "invalid_file_type"
    status = 415


class PayloadTooLargeError(AddonUploadError):
    """Upload exceeds the configured size ceiling."""

    code = "payload_too_large"
    status = 413


class StorageError(AddonUploadError):
    """Storage root could not be prepared or the file could not be moved."""

    code = "storage_failed"
    status = 500


class DeletionError(AddonUploadError):
    """Stored file exists but could not be removed."""

    code = "delete_failed"
    status = 500


class NotFoundError(AddonUploadError):
    """Requested file is not in the storage root."""

    code = "not_found"
    status = 404
