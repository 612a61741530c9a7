"""Time-based triggers for scheduled synchronization runs."""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from functools import partial

import schedule

from .config import ScheduleConfig, Settings, parse_time
from .domain.models import RetrievalMode, Schedule
from .domain.services import SyncService
from .errors import FiscalSyncError, RunInProgressError
from .ports.directory import SubscriberDirectoryPort
from .retention import RetentionSweeper

logger = logging.getLogger(__name__)

DAILY = "daily"
TWICE_DAILY = "2x/day"
FOUR_TIMES_DAILY = "4x/day"
WEEKLY = "weekly"

FREQUENCY_ALIASES = {
    "daily": DAILY,
    "2x/day": TWICE_DAILY,
    "2x ao dia": TWICE_DAILY,
    "4x/day": FOUR_TIMES_DAILY,
    "4x ao dia": FOUR_TIMES_DAILY,
    "weekly": WEEKLY,
}
HOUR_OFFSETS = {
    DAILY: (0,),
    TWICE_DAILY: (0, 12),
    FOUR_TIMES_DAILY: (0, 6, 12, 18),
    WEEKLY: (0,),
}
WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
WEEKDAY_UNITS = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]
HOUSEKEEPING_JOB = "housekeeping"
SWEEP_JOB = "sweep-all"
SYSTEM_TAG = "system"
SUBSCRIBER_TAG = "subscribers"


@dataclass(frozen=True, order=True)
class Trigger:
    """A wall-clock time, optionally restricted to one weekday (0=Monday)."""

    hour: int
    minute: int
    weekday: int | None = None

    @property
    def at(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def every(self, scheduler: schedule.Scheduler) -> schedule.Job:
        """Unscheduled job on `scheduler` that fires at this trigger."""
        job = scheduler.every()
        if self.weekday is None:
            return job.day.at(self.at)
        return getattr(job, WEEKDAY_UNITS[self.weekday]).at(self.at)

    def __str__(self) -> str:
        prefix = f"{WEEKDAYS[self.weekday]} " if self.weekday is not None else ""
        return f"{prefix}{self.at}"


def normalize_frequency(frequency: str | None) -> str:
    """Map a frequency tag to a known one; unknown tags mean daily."""
    key = (frequency or "").strip().lower()
    if key not in FREQUENCY_ALIASES:
        logger.debug(f"Unknown frequency {frequency!r}, treating as daily")
        return DAILY
    return FREQUENCY_ALIASES[key]


def derive_triggers(preference: Schedule, weekly_weekday: int = 0) -> list[Trigger]:
    """Concrete daily (or weekly) trigger times for a schedule preference.

    2x/day adds +12h and 4x/day adds +6h/+12h/+18h to every listed time,
    wrapping around midnight.
    """
    frequency = normalize_frequency(preference.frequency)
    weekday = weekly_weekday if frequency == WEEKLY else None

    triggers: set[Trigger] = set()
    for value in preference.times:
        try:
            hour, minute = parse_time(value)
        except ValueError as e:
            logger.warning(f"Ignoring schedule time: {e}")
            continue
        for offset in HOUR_OFFSETS[frequency]:
            triggers.add(Trigger((hour + offset) % 24, minute, weekday))
    return sorted(triggers, key=lambda t: (t.weekday or 0, t.hour, t.minute))


def daily_trigger(value: str) -> Trigger:
    hour, minute = parse_time(value)
    return Trigger(hour, minute)


class ScheduleManager:
    """Keeps per-subscriber jobs in sync with their schedule preferences.

    Jobs live on a `schedule.Scheduler`, one scheduler job per trigger,
    tagged with the job name. Due jobs are handed to a bounded executor so
    a long run never delays the others.

    Two system jobs run alongside them: the daily housekeeping job, which
    re-derives every subscriber job and purges expired documents, and an
    optional daily sweep over all subscribers.
    """

    def __init__(
        self,
        directory: SubscriberDirectoryPort,
        service: SyncService,
        sweeper: RetentionSweeper,
        config: ScheduleConfig,
        executor: Executor | None = None,
        scheduler: schedule.Scheduler | None = None,
    ) -> None:
        self.directory = directory
        self.service = service
        self.sweeper = sweeper
        self.config = config
        self.executor = executor or ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="fiscalsync-run"
        )
        self.scheduler = scheduler or schedule.Scheduler()
        self._lock = threading.RLock()
        self._fired: list[Future] = []
        self._system_jobs: dict[str, list[Trigger]] = {}
        self._subscriber_jobs: dict[str, list[Trigger]] = {}
        self._register_system_jobs()

    def _register(
        self, name: str, triggers: list[Trigger], action: Callable[[], object], tag: str
    ) -> None:
        for trigger in triggers:
            trigger.every(self.scheduler).do(self._submit, name, action).tag(name, tag)

    def _register_system_jobs(self) -> None:
        housekeeping = [daily_trigger(self.config.housekeeping_time)]
        self._register(HOUSEKEEPING_JOB, housekeeping, self.housekeeping, SYSTEM_TAG)
        self._system_jobs[HOUSEKEEPING_JOB] = housekeeping

        if self.config.sweep_time:
            sweep = [daily_trigger(self.config.sweep_time)]
            action = partial(self.service.run_all, RetrievalMode.SCHEDULED)
            self._register(SWEEP_JOB, sweep, action, SYSTEM_TAG)
            self._system_jobs[SWEEP_JOB] = sweep

    @property
    def jobs(self) -> dict[str, list[Trigger]]:
        """Trigger times per job name, system jobs first."""
        with self._lock:
            return {**self._system_jobs, **self._subscriber_jobs}

    def next_run(self, name: str) -> datetime | None:
        with self._lock:
            runs = [job.next_run for job in self.scheduler.get_jobs(name)]
        return min(runs) if runs else None

    def refresh(self) -> dict[str, list[Trigger]]:
        """Re-derive subscriber jobs from current preferences."""
        planned: dict[str, tuple[list[Trigger], Callable[[], object]]] = {}
        weekday = self.config.weekly_weekday

        for subscriber in self.directory.list_subscribers():
            if not subscriber.verified or not subscriber.has_credential:
                logger.debug(f"Subscriber {subscriber.id} not eligible for scheduling")
                continue

            if subscriber.schedule and subscriber.schedule.times:
                triggers = derive_triggers(subscriber.schedule, weekday)
                if triggers:
                    action = partial(
                        self.service.run_for_subscriber,
                        subscriber.id,
                        RetrievalMode.SCHEDULED,
                    )
                    planned[f"subscriber:{subscriber.id}"] = (triggers, action)
            else:
                logger.debug(f"Subscriber {subscriber.id} has no schedule configured")

            for tax_id in self.directory.active_tax_identifiers(subscriber.id):
                if not (tax_id.schedule and tax_id.schedule.times):
                    continue
                triggers = derive_triggers(tax_id.schedule, weekday)
                if triggers:
                    action = partial(
                        self.service.run_for_tax_identifier,
                        subscriber.id,
                        tax_id.id,
                        mode=RetrievalMode.SCHEDULED,
                    )
                    planned[f"cnpj:{subscriber.id}:{tax_id.id}"] = (triggers, action)

        with self._lock:
            self.scheduler.clear(SUBSCRIBER_TAG)
            for name, (triggers, action) in planned.items():
                self._register(name, triggers, action, SUBSCRIBER_TAG)
            self._subscriber_jobs = {
                name: triggers for name, (triggers, _) in planned.items()
            }
            jobs = dict(self._subscriber_jobs)

        for name, triggers in jobs.items():
            logger.info(f"Scheduled {name} at {', '.join(map(str, triggers))}")
        logger.info(f"Schedules refreshed: {len(jobs)} jobs")
        return jobs

    def housekeeping(self) -> int:
        """Refresh schedules, then purge expired documents.

        The purge runs even when the refresh fails; the refresh error is
        raised afterwards.
        """
        logger.info("Refreshing download schedules")
        try:
            self.refresh()
        finally:
            logger.info("Cleaning up expired documents")
            purged = self.sweeper.purge_expired()
        return purged

    def _submit(self, name: str, action: Callable[[], object]) -> Future:
        logger.info(f"Running scheduled job {name}")
        future = self.executor.submit(self._execute, name, action)
        self._fired.append(future)
        return future

    def _execute(self, name: str, action: Callable[[], object]) -> object:
        try:
            return action()
        except RunInProgressError as e:
            logger.warning(f"Skipping {name}: {e}")
        except FiscalSyncError as e:
            logger.error(f"Job {name} failed: {e}")
        except Exception as e:
            logger.exception(f"Job {name} crashed: {e}")
        return None

    def tick(self) -> list[Future]:
        """Hand every due job to the executor. Returns the submitted futures.

        A job whose time passed while the loop was busy runs once, then
        waits for its next trigger.
        """
        with self._lock:
            self._fired = []
            self.scheduler.run_pending()
            fired, self._fired = self._fired, []
        return fired

    def run_forever(
        self, stop: threading.Event | None = None, poll_interval: float = 1.0
    ) -> None:
        """Run pending jobs every `poll_interval` seconds until stopped."""
        stop = stop or threading.Event()
        self.refresh()

        try:
            while not stop.is_set():
                self.tick()
                stop.wait(poll_interval)
        except KeyboardInterrupt:
            logger.info("Shutting down...")
        finally:
            self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


def run_scheduler(settings: Settings) -> None:
    """Run the scheduler daemon."""
    from .wiring import build_components

    components = build_components(settings)
    manager = ScheduleManager(
        directory=components.directory,
        service=components.service,
        sweeper=components.sweeper,
        config=settings.schedule,
    )

    logger.info(f"Registry: {settings.paths.registry}")
    logger.info(f"Outcomes: {settings.paths.database}")
    logger.info(f"Default storage: {settings.paths.storage}")
    logger.info(f"Housekeeping at {settings.schedule.housekeeping_time}")
    if settings.schedule.sweep_time:
        logger.info(f"Sweep of all subscribers at {settings.schedule.sweep_time}")

    try:
        manager.run_forever()
    finally:
        components.close()
