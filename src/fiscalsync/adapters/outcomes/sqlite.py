"""Outcome store backed by SQLite."""

import json
import logging
import sqlite3
import threading
import uuid
from datetime import date, datetime
from pathlib import Path

from ...domain.models import (
    DocumentCategory,
    DocumentOutcome,
    OutcomeStatus,
    RetrievalMode,
)
from ...ports.outcomes import OutcomeStorePort

logger = logging.getLogger(__name__)

COLUMNS = (
    "id",
    "file_name",
    "file_path",
    "file_size",
    "category",
    "document_number",
    "document_date",
    "retrieved_at",
    "status",
    "error_message",
    "mode",
    "tax_identifier_id",
    "subscriber_id",
    "expires_at",
    "fingerprint",
    "metadata",
)


def _timestamp(value: datetime) -> str:
    # Fixed width so lexical order matches chronological order
    return value.isoformat(sep="T", timespec="microseconds")


class SQLiteOutcomeStore(OutcomeStorePort):
    """Thread-safe outcome store in a single SQLite file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

        self.conn = sqlite3.connect(str(self.path), check_same_thread=False, timeout=30.0)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()
        logger.debug(f"Opened outcome store at {self.path}")

    def _init_schema(self) -> None:
        schema_path = Path(__file__).parent / "schema.sql"
        self.conn.executescript(schema_path.read_text())
        self.conn.commit()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def add(self, outcome: DocumentOutcome) -> DocumentOutcome:
        if outcome.id is None:
            outcome.id = uuid.uuid4().hex
        row = {
            "id": outcome.id,
            "file_name": outcome.file_name,
            "file_path": outcome.file_path,
            "file_size": outcome.file_size,
            "category": outcome.category.value,
            "document_number": outcome.document_number,
            "document_date": (
                outcome.document_date.isoformat() if outcome.document_date else None
            ),
            "retrieved_at": _timestamp(outcome.retrieved_at),
            "status": outcome.status.value,
            "error_message": outcome.error_message,
            "mode": outcome.mode.value,
            "tax_identifier_id": outcome.tax_identifier_id,
            "subscriber_id": outcome.subscriber_id,
            "expires_at": _timestamp(outcome.expires_at),
            "fingerprint": outcome.fingerprint,
            "metadata": json.dumps(outcome.metadata, default=str),
        }
        placeholders = ", ".join(f":{c}" for c in COLUMNS)
        with self._lock:
            self.conn.execute(
                f"INSERT INTO outcomes ({', '.join(COLUMNS)}) VALUES ({placeholders})",
                row,
            )
            self.conn.commit()
        return outcome

    def get(self, outcome_id: str) -> DocumentOutcome | None:
        rows = self._select("WHERE id = ?", (outcome_id,))
        return rows[0] if rows else None

    def find_successful_by_number(
        self, tax_identifier_id: str, document_number: str
    ) -> DocumentOutcome | None:
        rows = self._select(
            "WHERE tax_identifier_id = ? AND document_number = ? AND status = ? LIMIT 1",
            (tax_identifier_id, document_number, OutcomeStatus.SUCCESS.value),
        )
        return rows[0] if rows else None

    def find_successful_by_fingerprint(
        self, tax_identifier_id: str, fingerprint: str
    ) -> DocumentOutcome | None:
        rows = self._select(
            "WHERE tax_identifier_id = ? AND fingerprint = ? AND status = ? LIMIT 1",
            (tax_identifier_id, fingerprint, OutcomeStatus.SUCCESS.value),
        )
        return rows[0] if rows else None

    def list_expired(self, now: datetime) -> list[DocumentOutcome]:
        return self._select("WHERE expires_at < ?", (_timestamp(now),))

    def list_outcomes(
        self,
        subscriber_id: str | None = None,
        tax_identifier_id: str | None = None,
        category: DocumentCategory | None = None,
        status: OutcomeStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[DocumentOutcome]:
        clauses = []
        params: list = []
        if subscriber_id is not None:
            clauses.append("subscriber_id = ?")
            params.append(subscriber_id)
        if tax_identifier_id is not None:
            clauses.append("tax_identifier_id = ?")
            params.append(tax_identifier_id)
        if category is not None:
            clauses.append("category = ?")
            params.append(category.value)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if start is not None:
            clauses.append("retrieved_at >= ?")
            params.append(_timestamp(start))
        if end is not None:
            clauses.append("retrieved_at <= ?")
            params.append(_timestamp(end))

        sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql += " ORDER BY retrieved_at DESC"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        return self._select(sql, tuple(params))

    def delete(self, outcome_id: str) -> bool:
        with self._lock:
            cursor = self.conn.execute("DELETE FROM outcomes WHERE id = ?", (outcome_id,))
            self.conn.commit()
        return cursor.rowcount > 0

    def _select(self, where: str, params: tuple) -> list[DocumentOutcome]:
        with self._lock:
            rows = self.conn.execute(
                f"SELECT * FROM outcomes {where}".strip(), params
            ).fetchall()
        return [self._to_outcome(row) for row in rows]

    @staticmethod
    def _to_outcome(row: sqlite3.Row) -> DocumentOutcome:
        metadata = json.loads(row["metadata"] or "{}")
        if row["fingerprint"] and "fingerprint" not in metadata:
            metadata["fingerprint"] = row["fingerprint"]
        return DocumentOutcome(
            id=row["id"],
            file_name=row["file_name"],
            file_path=row["file_path"],
            file_size=row["file_size"],
            category=DocumentCategory(row["category"]),
            document_number=row["document_number"],
            document_date=(
                date.fromisoformat(row["document_date"]) if row["document_date"] else None
            ),
            retrieved_at=datetime.fromisoformat(row["retrieved_at"]),
            status=OutcomeStatus(row["status"]),
            error_message=row["error_message"],
            mode=RetrievalMode(row["mode"]),
            tax_identifier_id=row["tax_identifier_id"],
            subscriber_id=row["subscriber_id"],
            expires_at=datetime.fromisoformat(row["expires_at"]),
            metadata=metadata,
        )
