"""
Idempotent storage for ingestion.

Raw payloads upsert on run_id. The normalized report is replaced wholesale
per (run_id, user_id); score and account rows upsert on their natural keys
inside the same transaction. Any database failure rolls back and surfaces as
StorageError (E_DB_UPSERT).
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.canonical import CreditReport, serialize
from ...models.db_models import (
    IngestionEventDB,
    IngestionRunDB,
    NormalizedAccountDB,
    NormalizedReportDB,
    NormalizedScoreDB,
    RawReportDB,
)
from ..parsing.normalizers import iso_to_date
from .errors import StorageError

logger = logging.getLogger(__name__)


SCORE_KEY = ["user_id", "bureau", "run_id"]
ACCOUNT_KEY = ["user_id", "creditor", "account_number_mask", "bureau", "opened_on", "category"]
RAW_KEY = ["run_id"]

# Never overwritten by an upsert
IMMUTABLE_COLUMNS = {"id", "created_at"}

UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _dedupe(rows: Iterable[Dict[str, Any]], key: Sequence[str]) -> List[Dict[str, Any]]:
    """Collapse rows sharing a natural key, last one wins."""
    by_key: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        by_key[tuple(row[col] for col in key)] = row
    return list(by_key.values())


class IngestionStore:
    """
    Storage operations for ingestion runs.

    Usage:
        store = IngestionStore(db)
        store.save_raw(run_id, user_id, collected_at, payload)
        counts = store.replace_report(report)
    """

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Upsert primitive
    # -------------------------------------------------------------------------

    def _upsert(self, model, rows: List[Dict[str, Any]], key: Sequence[str]) -> int:
        if not rows:
            return 0
        now = datetime.utcnow()
        for row in rows:
            row.setdefault("id", str(uuid4()))
            row.setdefault("created_at", now)
            if "updated_at" in model.__table__.c:
                row["updated_at"] = now

        insert = UPSERT_INSERTS.get(self.db.get_bind().dialect.name)
        if insert is None:
            return self._upsert_by_query(model, rows, key)

        stmt = insert(model.__table__).values(rows)
        update_columns = {
            col: stmt.excluded[col]
            for col in rows[0]
            if col not in IMMUTABLE_COLUMNS and col not in key
        }
        stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=update_columns)
        self.db.execute(stmt)
        return len(rows)

    def _upsert_by_query(self, model, rows: List[Dict[str, Any]], key: Sequence[str]) -> int:
        for row in rows:
            query = self.db.query(model)
            for col in key:
                query = query.filter(getattr(model, col) == row[col])
            existing = query.first()
            if existing is None:
                self.db.add(model(**row))
                continue
            for col, value in row.items():
                if col not in IMMUTABLE_COLUMNS:
                    setattr(existing, col, value)
        self.db.flush()
        return len(rows)

    # -------------------------------------------------------------------------
    # Raw payloads
    # -------------------------------------------------------------------------

    def save_raw(self, run_id: str, user_id: str, collected_at: str, payload: Any) -> None:
        """Store the inbound payload verbatim, keyed by run_id."""
        try:
            self._upsert(RawReportDB, [{
                "run_id": run_id,
                "user_id": user_id,
                "collected_at": collected_at,
                "payload": payload,
            }], RAW_KEY)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Raw upsert failed for run {run_id}: {e}")
            raise StorageError(f"Failed to store raw payload for run {run_id}: {e}") from e
        logger.info(f"Stored raw payload for run {run_id}")

    def load_raw(self, run_id: str) -> Optional[RawReportDB]:
        return self.db.query(RawReportDB).filter(RawReportDB.run_id == run_id).first()

    def raw_collected_at(self, run_id: str) -> Optional[str]:
        raw = self.load_raw(run_id)
        return raw.collected_at if raw else None

    # -------------------------------------------------------------------------
    # Normalized report
    # -------------------------------------------------------------------------

    def _score_rows(self, report: CreditReport) -> List[Dict[str, Any]]:
        return [
            {
                "run_id": report.run_id,
                "user_id": report.user_id,
                "bureau": score.bureau or "",
                "score": score.score,
                "status": score.status or "",
                "position": score.position,
                "collected_at": report.collected_at,
            }
            for score in report.scores
        ]

    def _account_rows(self, report: CreditReport) -> List[Dict[str, Any]]:
        return [
            {
                "run_id": report.run_id,
                "user_id": report.user_id,
                "creditor": account.creditor or "",
                "account_number_mask": account.account_number_mask or "",
                "bureau": account.bureau or "",
                "opened_on": iso_to_date(account.opened_on),
                "category": account.category.value,
                "account_type": account.account_type,
                "balance": account.balance,
                "high_balance": account.high_balance,
                "credit_limit": account.credit_limit,
                "past_due": account.past_due,
                "reported_on": iso_to_date(account.reported_on),
                "closed_on": iso_to_date(account.closed_on),
                "last_activity_on": iso_to_date(account.last_activity_on),
                "account_status": account.account_status,
                "payment_status": account.payment_status,
                "remarks": list(account.remarks),
                "is_negative": account.is_negative,
                "status": account.status or "",
                "position": account.position,
            }
            for account in report.accounts.all()
        ]

    def replace_report(self, report: CreditReport) -> Dict[str, int]:
        """
        Replace everything stored for (run_id, user_id) with this report.

        Returns the number of score and account rows written.
        """
        run_id, user_id = report.run_id, report.user_id
        try:
            self.db.query(NormalizedReportDB).filter(
                NormalizedReportDB.run_id == run_id,
                NormalizedReportDB.user_id == user_id,
            ).delete(synchronize_session=False)
            self.db.query(NormalizedScoreDB).filter(
                NormalizedScoreDB.run_id == run_id,
                NormalizedScoreDB.user_id == user_id,
            ).delete(synchronize_session=False)
            self.db.query(NormalizedAccountDB).filter(
                NormalizedAccountDB.run_id == run_id,
                NormalizedAccountDB.user_id == user_id,
            ).delete(synchronize_session=False)

            self.db.add(NormalizedReportDB(
                id=str(uuid4()),
                run_id=run_id,
                user_id=user_id,
                collected_at=report.collected_at,
                version=report.version,
                report_json=serialize(report),
            ))
            self.db.flush()

            counts = {
                "scores": self._upsert(NormalizedScoreDB, _dedupe(self._score_rows(report), SCORE_KEY), SCORE_KEY),
                "accounts": self._upsert(NormalizedAccountDB, _dedupe(self._account_rows(report), ACCOUNT_KEY), ACCOUNT_KEY),
            }
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Normalized upsert failed for run {run_id}: {e}")
            raise StorageError(f"Failed to store normalized report for run {run_id}: {e}") from e

        logger.info(f"Stored normalized report for run {run_id}: {counts}")
        return counts

    def get_report(self, run_id: str, user_id: str) -> Optional[NormalizedReportDB]:
        return self.db.query(NormalizedReportDB).filter(
            NormalizedReportDB.run_id == run_id,
            NormalizedReportDB.user_id == user_id,
        ).first()

    # -------------------------------------------------------------------------
    # Runs & events
    # -------------------------------------------------------------------------

    def start_run(self, run_id: str, user_id: str, source: str) -> IngestionRunDB:
        """Open (or reopen) a run in the processing state."""
        run = self.db.query(IngestionRunDB).filter(
            IngestionRunDB.run_id == run_id,
            IngestionRunDB.user_id == user_id,
        ).first()
        if run is None:
            run = IngestionRunDB(id=str(uuid4()), run_id=run_id, user_id=user_id)
            self.db.add(run)
        run.source = source
        run.status = "processing"
        run.error_code = None
        run.error_message = None
        run.started_at = datetime.utcnow()
        run.finished_at = None
        self._commit(f"start run {run_id}")
        return run

    def finish_run(
        self,
        run_id: str,
        user_id: str,
        status: str,
        row_counts: Optional[Dict[str, int]] = None,
        missing_bureaus: Optional[List[str]] = None,
        confidence_score: Optional[int] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Optional[IngestionRunDB]:
        run = self.db.query(IngestionRunDB).filter(
            IngestionRunDB.run_id == run_id,
            IngestionRunDB.user_id == user_id,
        ).first()
        if run is None:
            logger.warning(f"finish_run: no run {run_id} for user {user_id}")
            return None
        run.status = status
        run.row_counts = row_counts
        run.missing_bureaus = missing_bureaus
        run.confidence_score = confidence_score
        run.error_code = error_code
        run.error_message = error_message
        run.finished_at = datetime.utcnow()
        self._commit(f"finish run {run_id}")
        return run

    def get_run(self, run_id: str) -> Optional[IngestionRunDB]:
        return self.db.query(IngestionRunDB).filter(
            IngestionRunDB.run_id == run_id
        ).order_by(IngestionRunDB.started_at.desc()).first()

    def emit_event(
        self,
        run_id: str,
        event_type: str,
        step: Optional[str] = None,
        message: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        row_counts: Optional[Dict[str, int]] = None,
        missing_bureaus: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IngestionEventDB:
        """Append an event for a run. Events are never updated."""
        event = IngestionEventDB(
            id=str(uuid4()),
            run_id=run_id,
            user_id=user_id,
            event_type=event_type,
            step=step,
            message=message,
            status=status,
            row_counts=row_counts,
            missing_bureaus=missing_bureaus,
            metadata_json=metadata,
            created_at=datetime.utcnow(),
        )
        self.db.add(event)
        self._commit(f"event {event_type}/{step} for run {run_id}")
        return event

    def list_events(self, run_id: str) -> List[IngestionEventDB]:
        return self.db.query(IngestionEventDB).filter(
            IngestionEventDB.run_id == run_id
        ).order_by(IngestionEventDB.created_at.asc()).all()

    def _commit(self, what: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Commit failed ({what}): {e}")
            raise StorageError(f"Failed to {what}: {e}") from e
