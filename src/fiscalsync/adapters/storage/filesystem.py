"""Storage adapter using local filesystem."""

import logging
import os
import tempfile
from pathlib import Path

from ...ports.storage import ArchiveStoragePort

logger = logging.getLogger(__name__)


class FilesystemAdapter(ArchiveStoragePort):
    """Archive implementation using local filesystem."""

    def write(self, path: Path, content: bytes) -> int:
        """Write via a temp file and rename so readers never see partial XML."""
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        size = path.stat().st_size
        logger.debug(f"Stored: {path} ({size} bytes)")
        return size

    def remove(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Already gone: {path}")
            return False
        logger.info(f"Removed: {path}")
        return True
