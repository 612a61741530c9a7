"""Source port - interface for the document custody API."""

from abc import ABC, abstractmethod
from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..domain.models import DocumentCategory, FetchPage


class DocumentSourcePort(ABC):
    """Interface for paginated document retrieval."""

    page_size: int = 50

    @abstractmethod
    def fetch(
        self,
        credential: str,
        cnpj: str,
        day: date,
        category: "DocumentCategory",
        offset: int = 0,
    ) -> "FetchPage":
        """Fetch one page of documents issued by `cnpj` on `day`.

        Returns a page with `error` set once retries are exhausted.
        Raises ConfigurationError if the credential is blank.
        """
        pass
