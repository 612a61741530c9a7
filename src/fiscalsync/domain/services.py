"""Domain services - orchestrate the synchronization sweep."""

import logging
import tempfile
from collections.abc import Callable, Iterable, Iterator
from datetime import date, timedelta
from pathlib import Path

from ..errors import (
    ConfigurationError,
    FiscalSyncError,
    ParseError,
    SubscriberNotFound,
)
from ..locks import RunLocks
from ..ports.directory import SubscriberDirectoryPort
from ..ports.outcomes import OutcomeStorePort
from ..ports.source import DocumentSourcePort
from .archive import ArchiveWriter
from .guard import DuplicateGuard
from .models import (
    DocumentCategory,
    OutcomeStatus,
    Plan,
    RetrievalMode,
    RunSummary,
    Subscriber,
    TaxIdentifier,
    UnitResult,
)
from .pacing import Pacer
from .parser import CATEGORY_SPECS, parse_document

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [DocumentCategory.NFE]
DEFAULT_WINDOW_DAYS = 5

DateRange = tuple[date, date]


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every day from start to end, inclusive."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def rolling_window(days: int, today: date) -> DateRange:
    """The `days` days up to and including `today`."""
    return today - timedelta(days=max(days, 1) - 1), today


def resolve_categories(values: Iterable[DocumentCategory | str]) -> list[DocumentCategory]:
    """Coerce category names, dropping unknown ones with a warning."""
    categories: list[DocumentCategory] = []
    for value in values:
        try:
            category = DocumentCategory(value)
        except ValueError:
            logger.warning(f"Skipping invalid document type: {value}")
            continue
        if category not in categories:
            categories.append(category)
    return categories


class SyncService:
    """Drives the category x date x CNPJ x page sweep for a subscriber.

    Pipeline per document:
        1. Parse and fingerprint
        2. Duplicate check
        3. Archive and record outcome

    This is the error boundary: a failing unit never aborts its siblings.
    """

    def __init__(
        self,
        directory: SubscriberDirectoryPort,
        source: DocumentSourcePort,
        outcomes: OutcomeStorePort,
        writer: ArchiveWriter,
        pacer: Pacer | None = None,
        window_days: Callable[[Plan], int] | None = None,
        today: Callable[[], date] = date.today,
        locks: RunLocks | None = None,
    ) -> None:
        self.directory = directory
        self.source = source
        self.outcomes = outcomes
        self.writer = writer
        self.guard = DuplicateGuard(outcomes)
        self.pacer = pacer or Pacer(2.0)
        self.window_days = window_days or (lambda plan: DEFAULT_WINDOW_DAYS)
        self.today = today
        self.locks = locks or RunLocks(Path(tempfile.gettempdir()) / "fiscalsync-locks")

    def run_for_subscriber(
        self,
        subscriber_id: str,
        mode: RetrievalMode = RetrievalMode.MANUAL,
        categories: Iterable[DocumentCategory | str] | None = None,
        date_range: DateRange | None = None,
    ) -> RunSummary:
        """Sweep all active CNPJs of a subscriber.

        Raises ConfigurationError (no credential), SubscriberNotFound and
        RunInProgressError before any network call. Everything after that
        is reported through the returned summary.
        """
        subscriber = self._load_subscriber(subscriber_id)
        tax_ids = self.directory.active_tax_identifiers(subscriber_id)
        return self._run(subscriber, tax_ids, mode, categories, date_range)

    def run_for_tax_identifier(
        self,
        subscriber_id: str,
        tax_identifier_id: str,
        categories: Iterable[DocumentCategory | str] | None = None,
        date_range: DateRange | None = None,
        mode: RetrievalMode = RetrievalMode.MANUAL,
    ) -> RunSummary:
        """Sweep a single CNPJ of a subscriber."""
        subscriber = self._load_subscriber(subscriber_id)
        matches = [
            t
            for t in self.directory.active_tax_identifiers(subscriber_id)
            if t.id == tax_identifier_id
        ]
        if not matches:
            raise SubscriberNotFound(
                f"CNPJ {tax_identifier_id} not found or not active for {subscriber_id}"
            )
        return self._run(subscriber, matches, mode, categories, date_range)

    def run_all(self, mode: RetrievalMode = RetrievalMode.SCHEDULED) -> list[RunSummary]:
        """Sweep every verified subscriber with a credential, one after another."""
        eligible = [
            s for s in self.directory.list_subscribers() if s.verified and s.has_credential
        ]
        logger.info(f"Starting sweep for {len(eligible)} subscribers")

        summaries = []
        for subscriber in eligible:
            try:
                summaries.append(self.run_for_subscriber(subscriber.id, mode))
            except FiscalSyncError as e:
                logger.warning(f"Skipped {subscriber.id}: {e}")
                summaries.append(
                    RunSummary(subscriber_id=subscriber.id, mode=mode, skipped_reason=str(e))
                )
        return summaries

    def _load_subscriber(self, subscriber_id: str) -> Subscriber:
        subscriber = self.directory.get_subscriber(subscriber_id)
        if subscriber is None:
            raise SubscriberNotFound(f"Subscriber not found: {subscriber_id}")
        if not subscriber.has_credential:
            raise ConfigurationError(f"No SIEG API key configured for {subscriber_id}")
        return subscriber

    def _categories(
        self,
        requested: Iterable[DocumentCategory | str] | None,
        subscriber: Subscriber,
        tax_id: TaxIdentifier,
    ) -> list[DocumentCategory]:
        if requested is not None:
            return resolve_categories(requested)
        return resolve_categories(
            tax_id.document_types or subscriber.document_types or DEFAULT_CATEGORIES
        )

    def _run(
        self,
        subscriber: Subscriber,
        tax_ids: list[TaxIdentifier],
        mode: RetrievalMode,
        categories: Iterable[DocumentCategory | str] | None,
        date_range: DateRange | None,
    ) -> RunSummary:
        summary = RunSummary(subscriber_id=subscriber.id, mode=mode)
        if not tax_ids:
            logger.warning(f"Subscriber {subscriber.id} has no active CNPJs")
            summary.skipped_reason = "No active CNPJs"
            return summary

        if categories is not None:
            categories = list(categories)
        start, end = date_range or rolling_window(
            self.window_days(subscriber.plan), self.today()
        )
        if start > end:
            raise ValueError(f"Start date {start} is after end date {end}")

        plan: dict[DocumentCategory, list[TaxIdentifier]] = {}
        for tax_id in tax_ids:
            for category in self._categories(categories, subscriber, tax_id):
                plan.setdefault(category, []).append(tax_id)

        with self.locks.hold(subscriber.id):
            logger.info(
                f"Run for {subscriber.id} ({mode.value}): "
                f"{', '.join(c.value for c in plan)} from {start} to {end}, "
                f"{len(tax_ids)} CNPJs"
            )
            for category, members in plan.items():
                for day in iter_days(start, end):
                    for tax_id in members:
                        summary.units.append(
                            self._run_unit(subscriber, tax_id, category, day, mode)
                        )

        logger.info(
            f"Run for {subscriber.id} done: seen={summary.seen} "
            f"archived={summary.archived} duplicates={summary.duplicates} "
            f"failures={summary.failures}"
        )
        return summary

    def _run_unit(
        self,
        subscriber: Subscriber,
        tax_id: TaxIdentifier,
        category: DocumentCategory,
        day: date,
        mode: RetrievalMode,
    ) -> UnitResult:
        """Page through one (CNPJ, category, day) until a short page or error."""
        unit = UnitResult(cnpj=tax_id.cnpj, category=category, day=day)
        offset = 0

        try:
            while True:
                self.pacer.wait(subscriber.id)
                page = self.source.fetch(
                    subscriber.credential or "", tax_id.cnpj, day, category, offset
                )
                if page.failed:
                    unit.error = page.error
                    break

                unit.pages += 1
                request = {
                    "cnpj": tax_id.cnpj,
                    "date": day.isoformat(),
                    "category": category.value,
                    "xml_type": CATEGORY_SPECS[category].xml_type,
                    "offset": offset,
                }
                for raw in page.documents:
                    self._process(raw, unit, subscriber, tax_id, mode, request)

                if not page.has_more:
                    break
                offset += self.source.page_size
        except ConfigurationError:
            raise
        except Exception as e:
            logger.exception(f"Unit {tax_id.cnpj}/{category.value}/{day} failed: {e}")
            unit.error = str(e)

        if unit.error:
            logger.warning(
                f"Unit {tax_id.cnpj}/{category.value}/{day} ended early: {unit.error}"
            )
        return unit

    def _process(
        self,
        raw: bytes,
        unit: UnitResult,
        subscriber: Subscriber,
        tax_id: TaxIdentifier,
        mode: RetrievalMode,
        request: dict,
    ) -> None:
        unit.seen += 1

        try:
            fields = parse_document(raw, unit.category)
        except ParseError as e:
            logger.warning(f"Could not extract data from XML, skipping: {e}")
            unit.parse_errors += 1
            return

        if self.guard.is_duplicate(tax_id.id, fields.document_number, fields.fingerprint):
            logger.debug(f"{fields.document_number or 'unknown'} already downloaded")
            unit.duplicates += 1
            return

        outcome = self.writer.archive(raw, fields, subscriber, tax_id, mode, request)
        if outcome.status == OutcomeStatus.SUCCESS:
            unit.archived += 1
            logger.info(f"Saved {outcome.file_path}")
        else:
            unit.write_failures += 1
