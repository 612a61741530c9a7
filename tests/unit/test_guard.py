"""Unit tests for duplicate detection."""

from unittest.mock import MagicMock

import pytest

from fiscalsync.domain.guard import DuplicateGuard
from fiscalsync.domain.models import DocumentCategory, RetrievalMode
from fiscalsync.domain.parser import parse_document
from fiscalsync.ports.outcomes import OutcomeStorePort


@pytest.fixture
def outcomes() -> MagicMock:
    mock = MagicMock(spec=OutcomeStorePort)
    mock.find_successful_by_number.return_value = None
    mock.find_successful_by_fingerprint.return_value = None
    return mock


class TestDuplicateGuard:
    """Tests for DuplicateGuard with a mocked store."""

    def test_no_match_is_not_duplicate(self, outcomes: MagicMock) -> None:
        guard = DuplicateGuard(outcomes)
        assert guard.is_duplicate("t1", "1001", "abc") is False

    def test_number_match(self, outcomes: MagicMock) -> None:
        outcomes.find_successful_by_number.return_value = object()
        guard = DuplicateGuard(outcomes)
        assert guard.is_duplicate("t1", "1001", "abc") is True
        outcomes.find_successful_by_fingerprint.assert_not_called()

    def test_fingerprint_match(self, outcomes: MagicMock) -> None:
        outcomes.find_successful_by_fingerprint.return_value = object()
        guard = DuplicateGuard(outcomes)
        assert guard.is_duplicate("t1", "1001", "abc") is True

    def test_null_number_skips_number_lookup(self, outcomes: MagicMock) -> None:
        guard = DuplicateGuard(outcomes)
        guard.is_duplicate("t1", None, "abc")
        outcomes.find_successful_by_number.assert_not_called()
        outcomes.find_successful_by_fingerprint.assert_called_once_with("t1", "abc")


class TestDuplicateGuardWithStore:
    """Tests against real archived outcomes."""

    def test_same_fingerprint_different_number(
        self, store, writer, subscriber, tax_id, make_nfe
    ) -> None:
        raw = make_nfe(number="1001")
        fields = parse_document(raw, DocumentCategory.NFE)
        writer.archive(raw, fields, subscriber, tax_id, RetrievalMode.MANUAL)

        guard = DuplicateGuard(store)
        assert guard.is_duplicate(tax_id.id, "2002", fields.fingerprint) is True

    def test_same_number_different_fingerprint(
        self, store, writer, subscriber, tax_id, make_nfe
    ) -> None:
        raw = make_nfe(number="1001")
        fields = parse_document(raw, DocumentCategory.NFE)
        writer.archive(raw, fields, subscriber, tax_id, RetrievalMode.MANUAL)

        guard = DuplicateGuard(store)
        assert guard.is_duplicate(tax_id.id, "1001", "0" * 32) is True

    def test_scoped_to_tax_identifier(
        self, store, writer, subscriber, tax_id, make_nfe
    ) -> None:
        raw = make_nfe(number="1001")
        fields = parse_document(raw, DocumentCategory.NFE)
        writer.archive(raw, fields, subscriber, tax_id, RetrievalMode.MANUAL)

        guard = DuplicateGuard(store)
        assert guard.is_duplicate("other-cnpj", "1001", fields.fingerprint) is False

    def test_failed_outcome_is_not_duplicate(
        self, store, writer, subscriber, tax_id, make_nfe, monkeypatch
    ) -> None:
        raw = make_nfe(number="1001")
        fields = parse_document(raw, DocumentCategory.NFE)

        def broken_write(path, content):
            raise OSError("disk full")

        monkeypatch.setattr(writer.storage, "write", broken_write)
        writer.archive(raw, fields, subscriber, tax_id, RetrievalMode.MANUAL)

        guard = DuplicateGuard(store)
        assert guard.is_duplicate(tax_id.id, "1001", fields.fingerprint) is False
