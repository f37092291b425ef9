"""Secure download gate for stored attachments."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import urlencode

from addon_uploads.adapters.storage import Storage
from addon_uploads.domain.errors import NotFoundError

logger = logging.getLogger(__name__)

DOWNLOAD_ACTION = "addon_uploads_secure_download"
DOWNLOAD_ROUTE = "/api/v1/admin-post"


@dataclass(frozen=True, slots=True)
class DownloadTarget:
    """Stored file resolved for streaming."""

    path: Path
    file_name: str
    size: int


def download_url(site_url: str, file_name: str) -> str:
    """Link to the download gate for a stored file name."""
    query = urlencode({"action": DOWNLOAD_ACTION, "file": file_name})
    return f"{site_url.rstrip('/')}{DOWNLOAD_ROUTE}?{query}"


def normalize_name(requested: str) -> str | None:
    """Reduce a requested name to a bare file name, or None if unusable."""
    name = PurePosixPath(requested.replace("\\", "/")).name
    if not name or name in (".", "..") or name.startswith("."):
        return None
    return name


class RetrievalGate:
    """Map a requested file name to a file directly inside the storage root."""

    def __init__(self, storage: Storage, root: Path):
        self.storage = storage
        self.root = Path(root)

    def resolve(self, requested: str) -> DownloadTarget:
        name = normalize_name(requested)
        if name is None:
            raise NotFoundError("File does not exist.")

        root = self.root.resolve()
        path = (root / name).resolve()
        # Symlinks pointing out of the root count as missing.
        if path.parent != root or not self.storage.exists(path):
            logger.info("Download requested for missing file %r", name)
            raise NotFoundError("File does not exist.")

        return DownloadTarget(path=path, file_name=name, size=self.storage.size(path))
