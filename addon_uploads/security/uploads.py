"""Admission checks applied to files posted with the add-to-cart form."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Final, Iterable

from addon_uploads.domain.errors import InvalidTypeError, PayloadTooLargeError, SecurityError
from addon_uploads.security.nonces import UPLOAD_ACTION, NonceManager

PNG_MAGIC: Final = b"\x89PNG\r\n\x1a\n"
JPEG_MAGIC: Final = b"\xff\xd8\xff"
GIF_MAGICS: Final = (b"GIF87a", b"GIF89a")
RIFF_MAGIC: Final = b"RIFF"
WEBP_MAGIC: Final = b"WEBP"
BMP_MAGIC: Final = b"BM"
PDF_MAGIC: Final = b"%PDF-"
HEAD_BYTES: Final = 16

# Extensions whose content we know how to confirm.
EXTENSION_MEDIA_TYPES: Final[dict[str, str]] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "jpe": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "pdf": "application/pdf",
}


@dataclass(frozen=True, slots=True)
class RawUpload:
    """Upload as received: client-supplied name, spooled temp file, size."""

    original_name: str
    temp_path: Path
    size: int


@dataclass(frozen=True, slots=True)
class AdmittedFile:
    """Upload that passed every admission check but is not stored yet."""

    original_name: str
    temp_path: Path
    size: int
    extension: str
    media_type: str


def file_extension(name: str) -> str:
    """Return the lowercase extension of the last path component."""
    base = PurePosixPath(name.replace("\\", "/")).name
    return os.path.splitext(base)[1].lstrip(".").lower()


def sniff_media_type(head: bytes) -> str | None:
    """Return detected media type or None if the content is not recognised."""
    if head.startswith(PNG_MAGIC):
        return "image/png"
    if head.startswith(JPEG_MAGIC):
        return "image/jpeg"
    if head.startswith(GIF_MAGICS):
        return "image/gif"
    if head.startswith(RIFF_MAGIC) and head[8:12] == WEBP_MAGIC:
        return "image/webp"
    if head.startswith(PDF_MAGIC):
        return "application/pdf"
    if head.startswith(BMP_MAGIC):
        return "image/bmp"
    return None


def sniff_file(path: Path) -> str | None:
    """Read the leading bytes of a file and sniff its type."""
    with open(path, "rb") as handle:
        head = handle.read(HEAD_BYTES)
    return sniff_media_type(head)


def _human_size(num_bytes: int) -> str:
    if num_bytes >= 1_000_000:
        return f"{num_bytes / 1_000_000:g} MB"
    return f"{num_bytes / 1000:g} KB"


def is_present(upload: RawUpload | None) -> bool:
    return upload is not None and bool(upload.original_name)


class UploadValidator:
    """Decide whether a posted file may be stored.

    The allow-set is injected so callers can widen or narrow it without
    touching this class.
    """

    def __init__(
        self,
        allowed_extensions: Iterable[str],
        nonce_manager: NonceManager,
        max_bytes: int,
    ):
        self.allowed_extensions = frozenset(ext.lower() for ext in allowed_extensions)
        self.nonce_manager = nonce_manager
        self.max_bytes = max_bytes

    def rejection_message(self) -> str:
        allowed = ", ".join(sorted(ext.upper() for ext in self.allowed_extensions))
        return f"Invalid file type. Only {allowed} files are allowed."

    def check_token(self, token: str | None, context: str = "") -> None:
        if not self.nonce_manager.verify(token, UPLOAD_ACTION, context):
            raise SecurityError("Security check failed. Please try again.")

    def check_type(self, upload: RawUpload) -> tuple[str, str]:
        extension = file_extension(upload.original_name)
        if extension not in self.allowed_extensions:
            raise InvalidTypeError(self.rejection_message())

        expected = EXTENSION_MEDIA_TYPES.get(extension)
        detected = sniff_file(upload.temp_path)
        if expected is None or detected != expected:
            raise InvalidTypeError(self.rejection_message())
        return extension, detected

    def validate(self, upload: RawUpload, token: str | None, context: str = "") -> AdmittedFile:
        """Run token, size and type checks in that order."""
        self.check_token(token, context)
        if upload.size > self.max_bytes:
            raise PayloadTooLargeError(f"Maximum upload size is {_human_size(self.max_bytes)}")
        extension, media_type = self.check_type(upload)
        return AdmittedFile(
            original_name=upload.original_name,
            temp_path=upload.temp_path,
            size=upload.size,
            extension=extension,
            media_type=media_type,
        )
