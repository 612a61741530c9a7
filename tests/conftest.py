"""Shared test fixtures."""

from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fiscalsync.adapters.outcomes import SQLiteOutcomeStore
from fiscalsync.adapters.storage import FilesystemAdapter
from fiscalsync.domain.archive import ArchiveWriter
from fiscalsync.domain.models import (
    DocumentCategory,
    FetchPage,
    Schedule,
    Subscriber,
    TaxIdentifier,
)
from fiscalsync.domain.pacing import Pacer
from fiscalsync.domain.services import SyncService
from fiscalsync.locks import RunLocks
from fiscalsync.ports.directory import SubscriberDirectoryPort
from fiscalsync.ports.source import DocumentSourcePort

CNPJ = "11222333000181"
ISSUER = "99888777000166"
FIXED_NOW = datetime(2024, 3, 12, 9, 30)


def nfe_xml(
    number: str | None = "1001",
    issuer: str = ISSUER,
    emitted: str = "2024-03-10T10:20:30-03:00",
    direction: str | None = "1",
    wrapped: bool = True,
) -> bytes:
    """Minimal NF-e document, optionally inside <nfeProc>."""
    number_tag = f"<nNF>{number}</nNF>" if number is not None else ""
    direction_tag = f"<tpNF>{direction}</tpNF>" if direction is not None else ""
    nfe = (
        '<NFe xmlns="http://www.portalfiscal.inf.br/nfe">'
        '<infNFe Id="NFe1" versao="4.00">'
        f"<ide><dhEmi>{emitted}</dhEmi>{number_tag}{direction_tag}</ide>"
        f"<emit><CNPJ>{issuer}</CNPJ></emit>"
        "</infNFe></NFe>"
    )
    if wrapped:
        nfe = f'<nfeProc xmlns="http://www.portalfiscal.inf.br/nfe">{nfe}</nfeProc>'
    return f'<?xml version="1.0" encoding="UTF-8"?>{nfe}'.encode()


def nfe_batch(count: int, start: int = 1) -> list[bytes]:
    return [nfe_xml(number=str(n)) for n in range(start, start + count)]


class FakeSource(DocumentSourcePort):
    """Serves scripted pages keyed by (day, offset)."""

    page_size = 50

    def __init__(self) -> None:
        self.pages: dict[tuple[date, int], FetchPage] = {}
        self.failing_days: set[date] = set()
        self.calls: list[tuple[str, str, date, DocumentCategory, int]] = []

    def serve(self, day: date, documents: list[bytes]) -> None:
        """Split documents into pages of page_size for a day."""
        offset = 0
        while True:
            chunk = documents[offset : offset + self.page_size]
            self.pages[(day, offset)] = FetchPage(
                documents=chunk, has_more=len(chunk) == self.page_size
            )
            if len(chunk) < self.page_size:
                break
            offset += self.page_size

    def fetch(self, credential, cnpj, day, category, offset=0) -> FetchPage:
        self.calls.append((credential, cnpj, day, category, offset))
        if day in self.failing_days:
            return FetchPage(error="HTTP 503: unavailable")
        return self.pages.get((day, offset), FetchPage())


@pytest.fixture
def subscriber(tmp_path: Path) -> Subscriber:
    return Subscriber(
        id="acme",
        credential="key%2fsecret",
        document_types=[DocumentCategory.NFE],
        storage_directory=str(tmp_path / "archive"),
        retention_days=7,
        schedule=Schedule(frequency="daily", times=["08:00"]),
    )


@pytest.fixture
def tax_id() -> TaxIdentifier:
    return TaxIdentifier(id="acme-1", cnpj=CNPJ, subscriber_id="acme")


@pytest.fixture
def directory(subscriber: Subscriber, tax_id: TaxIdentifier) -> MagicMock:
    mock = MagicMock(spec=SubscriberDirectoryPort)
    mock.get_subscriber.side_effect = (
        lambda sid: subscriber if sid == subscriber.id else None
    )
    mock.list_subscribers.return_value = [subscriber]
    mock.active_tax_identifiers.return_value = [tax_id]
    return mock


@pytest.fixture
def store(tmp_path: Path) -> SQLiteOutcomeStore:
    outcome_store = SQLiteOutcomeStore(tmp_path / "outcomes.sqlite3")
    yield outcome_store
    outcome_store.close()


@pytest.fixture
def writer(tmp_path: Path, store: SQLiteOutcomeStore) -> ArchiveWriter:
    return ArchiveWriter(
        storage=FilesystemAdapter(),
        outcomes=store,
        default_root=tmp_path / "default",
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def service(
    directory: MagicMock,
    source: FakeSource,
    store: SQLiteOutcomeStore,
    tmp_path: Path,
    writer: ArchiveWriter,
) -> SyncService:
    return SyncService(
        directory=directory,
        source=source,
        outcomes=store,
        writer=writer,
        pacer=Pacer(0),
        today=lambda: date(2024, 3, 12),
        locks=RunLocks(tmp_path / "locks"),
    )


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def make_nfe():
    """Builder for NF-e payloads."""
    return nfe_xml


@pytest.fixture
def make_batch():
    """Builder for numbered NF-e batches."""
    return nfe_batch
