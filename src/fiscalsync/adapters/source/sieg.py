"""Document source adapter for the SIEG custody API."""

import base64
import binascii
import logging
from datetime import date

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ...domain.models import DocumentCategory, FetchPage
from ...domain.parser import CATEGORY_SPECS
from ...errors import ConfigurationError, SourceError
from ...ports.source import DocumentSourcePort

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.sieg.com"
ENDPOINT = "BaixarXmlsV2"
NOT_FOUND_MESSAGE = "Nenhum arquivo XML localizado"


def mask_credential(credential: str) -> str:
    """Show only the edges of an API key in logs."""
    if len(credential) <= 6:
        return "***"
    return f"{credential[:3]}...{credential[-3:]}"


def is_not_found(response: httpx.Response) -> bool:
    """True for the API's "no document matched" answer."""
    if response.status_code != 404:
        return False
    try:
        data = response.json()
    except ValueError:
        return NOT_FOUND_MESSAGE in response.text
    if isinstance(data, list):
        return any(NOT_FOUND_MESSAGE in str(item) for item in data)
    return NOT_FOUND_MESSAGE in str(data)


def decode_documents(data: object) -> list[bytes]:
    """Decode the base64 XML list from a successful response body."""
    if not isinstance(data, dict) or not isinstance(data.get("xmls"), list):
        raise SourceError("Malformed response: missing 'xmls' list")
    documents = []
    for item in data["xmls"]:
        try:
            documents.append(base64.b64decode(item, validate=True))
        except (binascii.Error, TypeError, ValueError) as e:
            raise SourceError(f"Malformed response: bad base64 payload ({e})") from e
    return documents


class SiegAdapter(DocumentSourcePort):
    """Paginated document retrieval from the SIEG API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        page_size: int = 50,
        max_attempts: int = 5,
        retry_delay: float = 5.0,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.client = client or httpx.Client(
            timeout=timeout, headers={"Content-Type": "application/json"}
        )

    def close(self) -> None:
        self.client.close()

    def fetch(
        self,
        credential: str,
        cnpj: str,
        day: date,
        category: DocumentCategory,
        offset: int = 0,
    ) -> FetchPage:
        if not credential or not credential.strip():
            raise ConfigurationError("No SIEG API key configured")

        key = credential.strip()
        payload = {
            "XmlType": CATEGORY_SPECS[category].xml_type,
            "Take": self.page_size,
            "Skip": offset,
            "DataEmissaoInicio": day.isoformat(),
            "DataEmissaoFim": day.isoformat(),
            "CnpjEmit": cnpj,
            "Downloadevent": False,
        }
        logger.info(
            f"Fetching {category.value} for {cnpj} on {day} "
            f"(skip {offset}, key {mask_credential(key)})"
        )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(SourceError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            documents = retrying(self._request, key, payload)
        except SourceError as e:
            logger.error(
                f"All {self.max_attempts} attempts failed for {cnpj} on {day}: {e}"
            )
            return FetchPage(error=str(e))

        return FetchPage(
            documents=documents, has_more=len(documents) == self.page_size
        )

    def _request(self, key: str, payload: dict) -> list[bytes]:
        # The key is appended verbatim: keys are issued already URL-encoded.
        url = f"{self.base_url}/{ENDPOINT}?api_key={key}"
        try:
            response = self.client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise SourceError(f"Request failed: {e}") from e

        if is_not_found(response):
            logger.debug("No documents for this query")
            return []

        if not response.is_success:
            raise SourceError(
                f"HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SourceError(f"Malformed response: {e}") from e

        return decode_documents(data)
