"""Assemble adapters and services from settings."""

import logging
from dataclasses import dataclass

from .adapters.directory import YamlSubscriberDirectory
from .adapters.outcomes import SQLiteOutcomeStore
from .adapters.source import SiegAdapter
from .adapters.storage import FilesystemAdapter
from .config import Settings
from .domain.archive import ArchiveWriter
from .domain.pacing import Pacer
from .domain.services import SyncService
from .locks import RunLocks
from .ports.directory import SubscriberDirectoryPort
from .retention import RetentionSweeper

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Everything a CLI command or the scheduler needs."""

    settings: Settings
    directory: SubscriberDirectoryPort
    outcomes: SQLiteOutcomeStore
    source: SiegAdapter
    service: SyncService
    sweeper: RetentionSweeper

    def close(self) -> None:
        self.source.close()
        self.outcomes.close()


def build_components(
    settings: Settings, directory: SubscriberDirectoryPort | None = None
) -> Components:
    """Wire the production adapters."""
    directory = directory or YamlSubscriberDirectory(settings.paths.registry)
    outcomes = SQLiteOutcomeStore(settings.paths.database)
    storage = FilesystemAdapter()
    source = SiegAdapter(
        base_url=settings.source.base_url,
        page_size=settings.source.page_size,
        max_attempts=settings.source.max_attempts,
        retry_delay=settings.source.retry_delay,
        timeout=settings.source.timeout,
    )
    writer = ArchiveWriter(
        storage=storage,
        outcomes=outcomes,
        default_root=settings.paths.storage,
        default_retention_days=settings.retention.default_days,
    )
    service = SyncService(
        directory=directory,
        source=source,
        outcomes=outcomes,
        writer=writer,
        pacer=Pacer(settings.source.pacing_interval),
        window_days=settings.schedule.window_days,
        locks=RunLocks(settings.paths.data / "locks"),
    )
    sweeper = RetentionSweeper(outcomes=outcomes, storage=storage)

    logger.debug(f"Outcome store: {settings.paths.database}")
    logger.debug(f"Registry: {settings.paths.registry}")
    return Components(
        settings=settings,
        directory=directory,
        outcomes=outcomes,
        source=source,
        service=service,
        sweeper=sweeper,
    )
