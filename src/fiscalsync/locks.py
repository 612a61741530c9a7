"""Per-subscriber run locks shared by every fiscalsync process."""

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout

from .errors import RunInProgressError

logger = logging.getLogger(__name__)


class RunLocks:
    """Non-blocking file locks keyed by subscriber id.

    The scheduler daemon and manual CLI runs are separate processes, so the
    lock lives on disk under `directory`.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path(self, subscriber_id: str) -> Path:
        name = re.sub(r"[^\w.-]", "_", subscriber_id)
        return self.directory / f"{name}.lock"

    @contextmanager
    def hold(self, subscriber_id: str) -> Iterator[None]:
        """Hold the subscriber's lock, or raise RunInProgressError at once."""
        self.directory.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self.path(subscriber_id), timeout=0)
        try:
            lock.acquire()
        except Timeout as e:
            raise RunInProgressError(
                f"Run already in progress for {subscriber_id}"
            ) from e

        logger.debug(f"Acquired run lock for {subscriber_id}")
        try:
            yield
        finally:
            lock.release()
