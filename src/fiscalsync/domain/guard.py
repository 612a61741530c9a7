"""Duplicate detection against previously archived documents."""

import logging

from ..ports.outcomes import OutcomeStorePort

logger = logging.getLogger(__name__)


class DuplicateGuard:
    """Decides whether a document was already archived for a CNPJ.

    A document is a duplicate when a successful outcome exists for the same
    tax identifier with either the same document number or the same content
    fingerprint. Older records may lack a fingerprint, hence the number check.
    """

    def __init__(self, outcomes: OutcomeStorePort) -> None:
        self.outcomes = outcomes

    def is_duplicate(
        self,
        tax_identifier_id: str,
        document_number: str | None,
        fingerprint: str,
    ) -> bool:
        if document_number:
            existing = self.outcomes.find_successful_by_number(
                tax_identifier_id, document_number
            )
            if existing is not None:
                logger.debug(f"Duplicate by number: {document_number}")
                return True

        existing = self.outcomes.find_successful_by_fingerprint(
            tax_identifier_id, fingerprint
        )
        if existing is not None:
            logger.debug(f"Duplicate by fingerprint: {fingerprint}")
            return True

        return False
