"""
Filesystem adapters for the addon uploads service.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class Storage(Protocol):
    """Filesystem operations the store and the download gate rely on."""

    def ensure_dir(self, path: Path) -> None: ...

    def write(self, source: Path, destination: Path) -> None: ...

    def create_if_absent(self, path: Path, content: str) -> bool: ...

    def delete(self, path: Path) -> None: ...

    def exists(self, path: Path) -> bool: ...

    def size(self, path: Path) -> int: ...

    def discard(self, path: Path) -> None: ...


class LocalStorage:
    """Local disk implementation of `Storage`."""

    def ensure_dir(self, path: Path) -> None:
        """Create the directory and its parents if missing."""
        path.mkdir(parents=True, exist_ok=True)

    def write(self, source: Path, destination: Path) -> None:
        """Move a spooled upload into place, overwriting the destination."""
        shutil.move(str(source), str(destination))
        os.chmod(destination, 0o644)

    def create_if_absent(self, path: Path, content: str) -> bool:
        """Write content only when the file does not exist yet.

        Returns False when another writer got there first.
        """
        try:
            with open(path, "x", encoding="utf-8") as handle:
                handle.write(content)
        except FileExistsError:
            logger.debug("Skipping existing file %s", path)
            return False
        return True

    def delete(self, path: Path) -> None:
        path.unlink()

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def size(self, path: Path) -> int:
        return path.stat().st_size

    def discard(self, path: Path) -> None:
        """Best-effort removal of a partially written file."""
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove partial file %s", path, exc_info=True)
