"""Domain models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class DocumentCategory(str, Enum):
    """Kinds of fiscal documents kept by the custody API."""

    NFE = "nfe"  # invoice
    NFCE = "nfce"  # consumer invoice
    CTE = "cte"  # transport manifest
    NFSE = "nfse"  # service note
    CFE = "cfe"  # SAT fiscal coupon


class Direction(str, Enum):
    """In/out classification; values are the folder labels on disk."""

    INBOUND = "entrada"
    OUTBOUND = "saida"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PROCESSING = "processing"


class RetrievalMode(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class Plan(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


@dataclass
class Schedule:
    """Subscriber schedule preference, e.g. daily at 08:00."""

    frequency: str
    times: list[str] = field(default_factory=list)


@dataclass
class Subscriber:
    """Subscriber record as supplied by the surrounding application."""

    id: str
    credential: str | None = None
    document_types: list[DocumentCategory] = field(default_factory=list)
    storage_directory: str | None = None  # may hold {CNPJ}/{SUBSCRIBER}
    retention_days: int | None = None
    locale: str = "pt_BR"
    plan: Plan = Plan.FREE
    notifications: dict[str, bool] = field(default_factory=dict)
    schedule: Schedule | None = None
    verified: bool = True

    @property
    def has_credential(self) -> bool:
        return bool(self.credential and self.credential.strip())


@dataclass
class TaxIdentifier:
    """Registered CNPJ belonging to a subscriber."""

    id: str
    cnpj: str
    subscriber_id: str
    active: bool = True
    document_types: list[DocumentCategory] | None = None
    storage_directory: str | None = None
    schedule: Schedule | None = None


@dataclass
class ExtractedFields:
    """Classification fields pulled out of one document."""

    category: DocumentCategory
    emission_date: date | None
    year: str
    month: str
    issuer: str
    document_number: str | None
    direction: Direction
    fingerprint: str


@dataclass
class DocumentOutcome:
    """Persisted result of one retrieval attempt."""

    file_name: str
    file_path: str
    file_size: int
    category: DocumentCategory
    document_number: str | None
    document_date: date | None
    retrieved_at: datetime
    status: OutcomeStatus
    mode: RetrievalMode
    tax_identifier_id: str
    subscriber_id: str
    expires_at: datetime
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    @property
    def fingerprint(self) -> str | None:
        return self.metadata.get("fingerprint")


@dataclass
class FetchPage:
    """One page returned by the document source."""

    documents: list[bytes] = field(default_factory=list)
    has_more: bool = False
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class UnitResult:
    """Counters for one (tax identifier, category, date) unit."""

    cnpj: str
    category: DocumentCategory
    day: date
    seen: int = 0
    archived: int = 0
    duplicates: int = 0
    parse_errors: int = 0
    write_failures: int = 0
    pages: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class RunSummary:
    """Aggregated counters for one run."""

    subscriber_id: str
    mode: RetrievalMode
    units: list[UnitResult] = field(default_factory=list)
    skipped_reason: str | None = None

    @property
    def seen(self) -> int:
        return sum(u.seen for u in self.units)

    @property
    def archived(self) -> int:
        return sum(u.archived for u in self.units)

    @property
    def duplicates(self) -> int:
        return sum(u.duplicates for u in self.units)

    @property
    def parse_errors(self) -> int:
        return sum(u.parse_errors for u in self.units)

    @property
    def write_failures(self) -> int:
        return sum(u.write_failures for u in self.units)

    @property
    def failures(self) -> int:
        return sum(1 for u in self.units if not u.success)

    @property
    def failed_units(self) -> list[UnitResult]:
        return [u for u in self.units if not u.success]
