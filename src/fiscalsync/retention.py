"""Delete archived documents past their retention window."""

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from .ports.outcomes import OutcomeStorePort
from .ports.storage import ArchiveStoragePort

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Removes expired outcome records together with their files."""

    def __init__(
        self,
        outcomes: OutcomeStorePort,
        storage: ArchiveStoragePort,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.outcomes = outcomes
        self.storage = storage
        self._now = now

    def purge_expired(self, now: datetime | None = None) -> int:
        """Remove every outcome whose expiry is in the past.

        Returns number of records deleted. A failure on one record is logged
        and does not stop the others.
        """
        cutoff = now or self._now()
        expired = self.outcomes.list_expired(cutoff)

        if not expired:
            logger.info("No expired documents found")
            return 0

        deleted = 0
        for outcome in expired:
            try:
                if outcome.file_path:
                    self.storage.remove(Path(outcome.file_path))
                if self.outcomes.delete(outcome.id):
                    deleted += 1
            except Exception as e:
                logger.error(f"Error deleting outcome {outcome.id}: {e}")

        logger.info(f"Cleanup complete: {deleted} expired documents removed")
        return deleted

    def remove(self, outcome_id: str) -> bool:
        """Delete one outcome and its file on request."""
        outcome = self.outcomes.get(outcome_id)
        if outcome is None:
            return False
        if outcome.file_path:
            self.storage.remove(Path(outcome.file_path))
        return self.outcomes.delete(outcome_id)
