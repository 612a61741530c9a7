"""Directory port - read-only view of subscribers and tax identifiers."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..domain.models import Subscriber, TaxIdentifier


class SubscriberDirectoryPort(ABC):
    """Interface to the application that owns subscribers and CNPJs."""

    @abstractmethod
    def get_subscriber(self, subscriber_id: str) -> "Subscriber | None":
        pass

    @abstractmethod
    def list_subscribers(self) -> list["Subscriber"]:
        pass

    @abstractmethod
    def active_tax_identifiers(self, subscriber_id: str) -> list["TaxIdentifier"]:
        pass
