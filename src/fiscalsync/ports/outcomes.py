"""Outcome store port - interface for persisted retrieval outcomes."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..domain.models import DocumentCategory, DocumentOutcome, OutcomeStatus


class OutcomeStorePort(ABC):
    """Interface for the durable outcome store."""

    @abstractmethod
    def add(self, outcome: "DocumentOutcome") -> "DocumentOutcome":
        """Persist a new outcome. Returns it with `id` assigned."""
        pass

    @abstractmethod
    def get(self, outcome_id: str) -> "DocumentOutcome | None":
        pass

    @abstractmethod
    def find_successful_by_number(
        self, tax_identifier_id: str, document_number: str
    ) -> "DocumentOutcome | None":
        pass

    @abstractmethod
    def find_successful_by_fingerprint(
        self, tax_identifier_id: str, fingerprint: str
    ) -> "DocumentOutcome | None":
        pass

    @abstractmethod
    def list_expired(self, now: datetime) -> list["DocumentOutcome"]:
        """Outcomes whose expiry lies strictly before `now`."""
        pass

    @abstractmethod
    def list_outcomes(
        self,
        subscriber_id: str | None = None,
        tax_identifier_id: str | None = None,
        category: "DocumentCategory | None" = None,
        status: "OutcomeStatus | None" = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list["DocumentOutcome"]:
        """List outcomes, newest first, filtered on retrieval time and fields."""
        pass

    @abstractmethod
    def delete(self, outcome_id: str) -> bool:
        """Delete a record. Returns False if it did not exist."""
        pass
