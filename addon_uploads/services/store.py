"""Persist admitted uploads under the storage root."""

from __future__ import annotations

import logging
import time
from pathlib import Path, PurePosixPath
from typing import Callable

from werkzeug.utils import secure_filename

from addon_uploads.adapters.storage import Storage
from addon_uploads.domain.errors import DeletionError, NotFoundError, StorageError
from addon_uploads.domain.models import AttachmentRecord
from addon_uploads.security.uploads import EXTENSION_MEDIA_TYPES, AdmittedFile, file_extension

logger = logging.getLogger(__name__)

ACCESS_STUB_NAME = ".htaccess"
GATE_ENTRY_POINT = "admin-post"


def access_stub_content(extensions) -> str:
    """Directory rules: embed images, deny everything else, allow the gate."""
    images = (
        ext for ext in extensions if EXTENSION_MEDIA_TYPES.get(ext, "").startswith("image/")
    )
    pattern = "|".join(sorted(images))
    return (
        "# Allow images to be displayed in <img> tags but block direct access\n"
        f'<FilesMatch "\\.({pattern})$">\n'
        "    Require all granted\n"
        "</FilesMatch>\n"
        "# Deny access to this directory\n"
        "<Files *>\n"
        "    Order Deny,Allow\n"
        "    Deny from all\n"
        "</Files>\n"
        "# Allow access to the secure download entry point\n"
        f'<FilesMatch "{GATE_ENTRY_POINT}">\n'
        "    Order Allow,Deny\n"
        "    Allow from all\n"
        "</FilesMatch>\n"
    )


def build_file_name(original_name: str, timestamp: float) -> str:
    """Return `<unix-timestamp>-<sanitized-name>` with a lowercase extension.

    Two uploads of the same name within one second collide; the later one
    replaces the earlier file.
    """
    extension = file_extension(original_name)
    base = PurePosixPath(original_name.replace("\\", "/")).name
    stem = base[: -(len(extension) + 1)] if extension else base
    safe_stem = secure_filename(stem) or "upload"
    name = f"{safe_stem}.{extension}" if extension else safe_stem
    return f"{int(timestamp)}-{name}"


class AttachmentStore:
    """Moves admitted files into the storage root and removes them again."""

    def __init__(
        self,
        storage: Storage,
        root: Path,
        base_url: str,
        allowed_extensions=("jpg", "jpeg", "png", "gif", "webp"),
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.allowed_extensions = frozenset(allowed_extensions)
        self._clock = clock

    def prepare_root(self) -> None:
        """Create the storage root and its access stub if needed."""
        try:
            self.storage.ensure_dir(self.root)
        except OSError as exc:
            logger.error("Cannot create upload directory %s: %s", self.root, exc)
            raise StorageError("Failed to create upload directory.") from exc

        stub_path = self.root / ACCESS_STUB_NAME
        if self.storage.exists(stub_path):
            return
        try:
            if self.storage.create_if_absent(
                stub_path, access_stub_content(self.allowed_extensions)
            ):
                logger.info("Wrote access stub %s", stub_path)
        except OSError:
            # The stub only matters where directory rules are honoured.
            logger.warning("Could not write access stub %s", stub_path, exc_info=True)

    def persist(self, admitted: AdmittedFile) -> AttachmentRecord:
        """Store an admitted upload and return its attachment record."""
        self.prepare_root()

        file_name = build_file_name(admitted.original_name, self._clock())
        destination = self.root / file_name
        try:
            self.storage.write(admitted.temp_path, destination)
        except OSError as exc:
            logger.error("Failed to move upload to %s: %s", destination, exc)
            self.storage.discard(destination)
            raise StorageError("Failed to move file to upload folder.") from exc

        return AttachmentRecord(
            file_path=str(destination.resolve()),
            file_url=f"{self.base_url}/{file_name}",
            file_name=file_name,
        )

    def delete(self, file_path: str) -> None:
        """Remove a stored file.

        Raises NotFoundError when the file is already gone and DeletionError
        when it exists but cannot be removed.
        """
        path = Path(file_path)
        if not self.storage.exists(path):
            raise NotFoundError("Invalid file or file does not exist.")
        try:
            self.storage.delete(path)
        except OSError as exc:
            raise DeletionError("Failed to delete the file.") from exc
