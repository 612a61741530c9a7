"""Subscriber directory backed by a YAML registry file.

Example::

    subscribers:
      - id: acme
        credential: "abc%2fdef"
        plan: starter
        document_types: [nfe, cte]
        storage:
          directory: ~/XML/{SUBSCRIBER}
          retention_days: 15
        schedule:
          frequency: 2x/day
          times: ["08:00"]
        tax_identifiers:
          - id: acme-matriz
            cnpj: "11.222.333/0001-81"
"""

import logging
import re
import threading
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ...domain.models import (
    DocumentCategory,
    Plan,
    Schedule,
    Subscriber,
    TaxIdentifier,
)
from ...errors import ConfigurationError
from ...ports.directory import SubscriberDirectoryPort

logger = logging.getLogger(__name__)

MISSING = -1.0


def digits(value: str) -> str:
    return re.sub(r"\D", "", value)


class ScheduleEntry(BaseModel):
    frequency: str = "daily"
    times: list[str] = Field(default_factory=list)


class StorageEntry(BaseModel):
    directory: str | None = None
    retention_days: int | None = Field(default=None, gt=0)


class TaxIdentifierEntry(BaseModel):
    id: str
    cnpj: str
    active: bool = True
    document_types: list[DocumentCategory] | None = None
    directory: str | None = None
    schedule: ScheduleEntry | None = None

    @field_validator("cnpj", mode="before")
    @classmethod
    def normalize_cnpj(cls, v: str | int) -> str:
        value = digits(str(v))
        if len(value) != 14:
            raise ValueError(f"CNPJ must have 14 digits: {v!r}")
        return value


class SubscriberEntry(BaseModel):
    id: str
    credential: str | None = None
    verified: bool = True
    plan: Plan = Plan.FREE
    locale: str = "pt_BR"
    document_types: list[DocumentCategory] = Field(
        default_factory=lambda: [DocumentCategory.NFE]
    )
    storage: StorageEntry = Field(default_factory=StorageEntry)
    notifications: dict[str, bool] = Field(default_factory=dict)
    schedule: ScheduleEntry | None = None
    tax_identifiers: list[TaxIdentifierEntry] = Field(default_factory=list)


class RegistryFile(BaseModel):
    subscribers: list[SubscriberEntry] = Field(default_factory=list)


def _schedule(entry: ScheduleEntry | None) -> Schedule | None:
    if entry is None:
        return None
    return Schedule(frequency=entry.frequency, times=list(entry.times))


class YamlSubscriberDirectory(SubscriberDirectoryPort):
    """Read-only directory loaded from YAML.

    The file is re-read when its modification time changes, so edits to
    schedules or credentials are picked up without a restart.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._mtime: float | None = None
        self._subscribers: dict[str, Subscriber] = {}
        self._tax_ids: dict[str, list[TaxIdentifier]] = {}

    def _load(self) -> None:
        with self._lock:
            if not self.path.exists():
                if self._mtime != MISSING:
                    logger.warning(f"Subscriber registry not found: {self.path}")
                self._mtime = MISSING
                self._subscribers, self._tax_ids = {}, {}
                return

            mtime = self.path.stat().st_mtime
            if mtime == self._mtime:
                return

            try:
                data = yaml.safe_load(self.path.read_text()) or {}
                registry = RegistryFile.model_validate(data)
            except (yaml.YAMLError, ValidationError) as e:
                raise ConfigurationError(f"Invalid registry {self.path}: {e}") from e

            subscribers: dict[str, Subscriber] = {}
            tax_ids: dict[str, list[TaxIdentifier]] = {}
            for entry in registry.subscribers:
                subscribers[entry.id] = Subscriber(
                    id=entry.id,
                    credential=entry.credential,
                    document_types=list(entry.document_types),
                    storage_directory=entry.storage.directory,
                    retention_days=entry.storage.retention_days,
                    locale=entry.locale,
                    plan=entry.plan,
                    notifications=dict(entry.notifications),
                    schedule=_schedule(entry.schedule),
                    verified=entry.verified,
                )
                tax_ids[entry.id] = [
                    TaxIdentifier(
                        id=t.id,
                        cnpj=t.cnpj,
                        subscriber_id=entry.id,
                        active=t.active,
                        document_types=t.document_types,
                        storage_directory=t.directory,
                        schedule=_schedule(t.schedule),
                    )
                    for t in entry.tax_identifiers
                ]

            self._subscribers, self._tax_ids = subscribers, tax_ids
            self._mtime = mtime
            logger.info(f"Loaded {len(subscribers)} subscribers from {self.path}")

    def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        self._load()
        return self._subscribers.get(subscriber_id)

    def list_subscribers(self) -> list[Subscriber]:
        self._load()
        return list(self._subscribers.values())

    def active_tax_identifiers(self, subscriber_id: str) -> list[TaxIdentifier]:
        self._load()
        return [t for t in self._tax_ids.get(subscriber_id, []) if t.active]
