"""Archive writer - canonical placement and outcome recording."""

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from ..ports.outcomes import OutcomeStorePort
from ..ports.storage import ArchiveStoragePort
from .models import (
    DocumentOutcome,
    ExtractedFields,
    OutcomeStatus,
    RetrievalMode,
    Subscriber,
    TaxIdentifier,
)
from .parser import CATEGORY_SPECS

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "pt_BR"
MONTH_NAMES: dict[str, list[str]] = {
    "pt_BR": [
        "Janeiro", "Fevereiro", "Marco", "Abril", "Maio", "Junho",
        "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
    ],
    "en_US": [
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ],
}
PLACEHOLDER = re.compile(r"\{(\w+)\}")


def month_name(month: str, locale: str = DEFAULT_LOCALE) -> str:
    """Locale month name for a zero-padded month number.

    Unknown locales fall back to pt_BR, invalid months to the raw value.
    """
    names = MONTH_NAMES.get(locale) or MONTH_NAMES[DEFAULT_LOCALE]
    try:
        index = int(month)
    except ValueError:
        return month
    if 1 <= index <= 12:
        return names[index - 1]
    return month


def sanitize_component(name: str) -> str:
    """Make a single path component safe (no separators, no traversal)."""
    name = name.replace("\x00", "")
    name = name.replace("..", "_")
    name = re.sub(r'[<>:"/\\|?*]', "_", name)
    name = name.strip(". ")
    return name or "unknown"


def render_storage_root(template: str, cnpj: str, subscriber_id: str) -> Path:
    """Expand a possibly templated storage root.

    {CNPJ} and {SUBSCRIBER} are substituted. Segments holding any other
    placeholder, such as {YEAR}/{MONTH}, are dropped since the archive
    layout already contains them.
    """
    values = {"CNPJ": cnpj, "SUBSCRIBER": subscriber_id}
    parts = []
    for segment in Path(template).expanduser().parts:
        names = {n.upper() for n in PLACEHOLDER.findall(segment)}
        if names - values.keys():
            continue
        parts.append(
            PLACEHOLDER.sub(lambda m: values[m.group(1).upper()], segment)
        )
    return Path(*parts) if parts else Path(".")


class ArchiveWriter:
    """Writes accepted documents and records their outcome.

    The only component with filesystem and outcome-store write side effects.
    """

    def __init__(
        self,
        storage: ArchiveStoragePort,
        outcomes: OutcomeStorePort,
        default_root: Path,
        default_retention_days: int = 30,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.storage = storage
        self.outcomes = outcomes
        self.default_root = default_root
        self.default_retention_days = default_retention_days
        self._now = now

    def storage_root(self, subscriber: Subscriber, tax_id: TaxIdentifier) -> Path:
        template = tax_id.storage_directory or subscriber.storage_directory
        if not template:
            return self.default_root
        return render_storage_root(template, tax_id.cnpj, subscriber.id)

    def build_path(
        self,
        fields: ExtractedFields,
        subscriber: Subscriber,
        tax_id: TaxIdentifier,
    ) -> Path:
        """{root}/{FOLDER}/{direction}/{year}/{month}/{issuer}/{number}.xml"""
        spec = CATEGORY_SPECS[fields.category]
        return (
            self.storage_root(subscriber, tax_id)
            / spec.folder
            / fields.direction.value
            / fields.year
            / month_name(fields.month, subscriber.locale)
            / sanitize_component(fields.issuer)
            / self.file_name(fields)
        )

    @staticmethod
    def file_name(fields: ExtractedFields) -> str:
        return f"{sanitize_component(fields.document_number or 'unknown')}.xml"

    def expiry(self, subscriber: Subscriber, retrieved_at: datetime) -> datetime:
        days = subscriber.retention_days or self.default_retention_days
        return retrieved_at + timedelta(days=days)

    def archive(
        self,
        raw: bytes,
        fields: ExtractedFields,
        subscriber: Subscriber,
        tax_id: TaxIdentifier,
        mode: RetrievalMode,
        request: dict[str, Any] | None = None,
    ) -> DocumentOutcome:
        """Store a document and record the outcome.

        Write failures produce a failed outcome instead of raising. If the
        outcome cannot be recorded, the written file is removed again and the
        store error propagates.
        """
        retrieved_at = self._now()
        metadata = {
            "fingerprint": fields.fingerprint,
            "issuer": fields.issuer,
            "direction": fields.direction.value,
            "year": fields.year,
            "month": fields.month,
            "request": request or {},
        }
        outcome = DocumentOutcome(
            file_name=self.file_name(fields),
            file_path="",
            file_size=0,
            category=fields.category,
            document_number=fields.document_number,
            document_date=fields.emission_date,
            retrieved_at=retrieved_at,
            status=OutcomeStatus.SUCCESS,
            mode=mode,
            tax_identifier_id=tax_id.id,
            subscriber_id=subscriber.id,
            expires_at=self.expiry(subscriber, retrieved_at),
            metadata=metadata,
        )

        try:
            path = self.build_path(fields, subscriber, tax_id)
            outcome.file_size = self.storage.write(path, raw)
            outcome.file_path = str(path)
        except OSError as e:
            logger.error(f"Failed to write {outcome.file_name}: {e}")
            outcome.status = OutcomeStatus.FAILED
            outcome.error_message = f"Error saving file: {e}"
            outcome.file_path = ""
            outcome.file_size = 0

        try:
            return self.outcomes.add(outcome)
        except Exception:
            if outcome.file_path:
                logger.error(f"Could not record outcome, removing {outcome.file_path}")
                self.storage.remove(Path(outcome.file_path))
            raise
