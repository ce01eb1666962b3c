"""
Report Normalizer - Ingestion Service

Entry point for every ingestion:

    validate -> open run -> store raw -> normalize -> replace report
             -> completeness -> terminal status + outbound event

A run always ends completed, partial or failed. Hard failures mark the run
failed, emit an error event and are re-raised to the caller.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from ...config import IngestionConfig
from ...models.canonical import PayloadKind, RunStatus
from ..normalization import CanonicalModelBuilder, check_completeness
from ..parsing import parse_report_text
from .errors import IngestionError, RawPayloadNotFoundError, SchemaInvalidError
from .scrape_client import ScrapeClient
from .storage import IngestionStore

logger = logging.getLogger(__name__)


RAW_TEXT_KEYS = ("rawText", "raw_text", "text")

DRY_RUN_ID = "dry-run"
DRY_RUN_USER_ID = "00000000-0000-0000-0000-000000000000"

SAMPLE_CAPTURED_LISTS: Dict[str, Any] = {
    "Credit Score": [
        {"text": "TransUnion 712", "Position": 0},
        {"text": "Equifax 705", "Position": 1},
        {"text": "Experian 698", "Position": 2},
    ],
    "Personal Information": [
        {"Name": "JANE SAMPLE", "Current Address": "100 Main St, Springfield, IL 62701", "Position": 0},
    ],
    "Consumer Statement": [
        {"bureau": "TransUnion", "text": ""},
    ],
    "Real Estate Accounts": [
        {
            "creditor": "ABC Mortgage",
            "Mask": "****1234",
            "bureau": "TransUnion",
            "Balance": "$250,000",
            "HighBalance": "$300,000",
            "Opened": "06/15/2018",
            "Status": "Open",
            "Position": 0,
        },
    ],
    "Revolving Accounts": [
        {
            "creditor": "XYZ Bank",
            "Mask": "****5678",
            "bureau": "Experian",
            "Balance": "$450",
            "Limit": "$2,000",
            "Opened": "03/01/2020",
            "Status": "Open",
            "Position": 0,
        },
    ],
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# =============================================================================
# REQUEST / RESULT TYPES
# =============================================================================

@dataclass
class IngestRequest:
    run_id: Optional[str] = None
    user_id: Optional[str] = None
    payload: Any = None
    collected_at: Optional[str] = None
    dry_run: bool = False


@dataclass
class IngestPayload:
    """The inbound payload, tagged by shape."""
    kind: PayloadKind
    captured_lists: Any = None
    raw_text: Optional[str] = None

    @classmethod
    def from_raw(cls, payload: Any) -> "IngestPayload":
        if not isinstance(payload, Mapping):
            raise SchemaInvalidError(f"payload must be an object, got {type(payload).__name__}")
        for key in RAW_TEXT_KEYS:
            if isinstance(payload.get(key), str):
                return cls(kind=PayloadKind.RAW_TEXT, raw_text=payload[key])
        return cls(kind=PayloadKind.CAPTURED_LISTS, captured_lists=payload)


@dataclass
class IngestionEvent:
    """Outbound notification emitted when a run reaches a terminal state."""
    run_id: str
    status: RunStatus
    row_counts: Dict[str, int] = field(default_factory=dict)
    missing_bureaus: Optional[List[str]] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        event = {"runId": self.run_id, "status": self.status.value, "rowCounts": self.row_counts}
        if self.missing_bureaus:
            event["missingBureaus"] = self.missing_bureaus
        if self.error_code:
            event["errorCode"] = self.error_code
        return event


@dataclass
class IngestionOutcome:
    run_id: str
    user_id: str
    status: RunStatus
    row_counts: Dict[str, int] = field(default_factory=dict)
    missing_bureaus: List[str] = field(default_factory=list)
    confidence_score: Optional[int] = None
    warnings: List[str] = field(default_factory=list)
    dry_run: bool = False


# =============================================================================
# SERVICE
# =============================================================================

class IngestionService:
    """
    Orchestrates ingestion runs.

    Usage:
        service = IngestionService(db, config)
        outcome = service.ingest(IngestRequest(run_id=..., user_id=..., payload=...))
    """

    def __init__(
        self,
        db: Session,
        config: IngestionConfig,
        scrape_client: Optional[ScrapeClient] = None,
        text_source: Optional[Callable[[str], str]] = None,
        on_event: Optional[Callable[[IngestionEvent], None]] = None,
    ):
        self.config = config
        self.store = IngestionStore(db)
        self.builder = CanonicalModelBuilder(version=config.schema_version)
        self.scrape_client = scrape_client
        self.text_source = text_source
        self.on_event = on_event

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def ingest(self, request: IngestRequest) -> IngestionOutcome:
        """Ingest one payload for (run_id, user_id)."""
        source = "dry_run" if request.dry_run else None
        if request.dry_run:
            request = IngestRequest(
                run_id=request.run_id or DRY_RUN_ID,
                user_id=request.user_id or DRY_RUN_USER_ID,
                payload={"capturedLists": SAMPLE_CAPTURED_LISTS},
                collected_at=request.collected_at,
                dry_run=True,
            )

        if not request.run_id or not request.user_id:
            raise SchemaInvalidError("runId and userId are required")
        run_id, user_id = request.run_id, request.user_id
        try:
            if request.payload is None:
                raise SchemaInvalidError("payload is required")
            payload = IngestPayload.from_raw(request.payload)
        except SchemaInvalidError as e:
            # The run is identifiable, so the rejection is recorded against it
            self.store.start_run(run_id, user_id, source or "invalid")
            self._fail(run_id, user_id, e)
            raise

        collected_at = request.collected_at or self.store.raw_collected_at(run_id) or _now_iso()

        self.store.start_run(run_id, user_id, source or payload.kind.value)
        self.store.emit_event(run_id, "step", step="start", user_id=user_id,
                              message=f"Ingesting {payload.kind.value} payload")
        try:
            self.store.save_raw(run_id, user_id, collected_at, request.payload)
            return self._normalize(run_id, user_id, collected_at, payload, dry_run=request.dry_run)
        except Exception as e:
            self._fail(run_id, user_id, e)
            raise

    def reprocess(self, run_id: str) -> IngestionOutcome:
        """Re-run normalization from the stored raw payload; upstream is not contacted."""
        raw = self.store.load_raw(run_id)
        if raw is None:
            raise RawPayloadNotFoundError(f"No raw payload stored for run {run_id}")
        payload = IngestPayload.from_raw(raw.payload)

        self.store.start_run(run_id, raw.user_id, payload.kind.value)
        self.store.emit_event(run_id, "step", step="reprocess", user_id=raw.user_id,
                              message="Re-normalizing stored raw payload")
        try:
            return self._normalize(run_id, raw.user_id, raw.collected_at or _now_iso(), payload)
        except Exception as e:
            self._fail(run_id, raw.user_id, e)
            raise

    def ingest_document(self, run_id: str, user_id: str, report_id: str) -> IngestionOutcome:
        """Ingest the extracted text of an uploaded report document."""
        if self.text_source is None:
            raise IngestionError("No document text source configured")
        text = self.text_source(report_id)
        return self.ingest(IngestRequest(
            run_id=run_id,
            user_id=user_id,
            payload={"rawText": text or "", "reportId": report_id},
        ))

    def collect_scrape_run(self, robot_id: str, run_id: str, user_id: str) -> IngestionOutcome:
        """Wait for a scrape robot run to finish, then ingest what it captured."""
        if self.scrape_client is None:
            raise IngestionError("No scrape client configured")

        self.store.start_run(run_id, user_id, PayloadKind.CAPTURED_LISTS.value)
        self.store.emit_event(run_id, "step", step="poll", user_id=user_id,
                              message=f"Waiting for robot {robot_id}")
        try:
            run = self.scrape_client.wait_for_run(robot_id, run_id)
            if run.captured_lists is not None:
                payload = {"capturedLists": run.captured_lists}
            elif run.download_url:
                self.store.emit_event(run_id, "step", step="download", user_id=user_id,
                                      message="Downloading captured data")
                payload = self.scrape_client.download_captured_data(run.download_url)
            else:
                payload = {"capturedLists": {}}
        except Exception as e:
            self._fail(run_id, user_id, e)
            raise

        return self.ingest(IngestRequest(run_id=run_id, user_id=user_id, payload=payload))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _normalize(
        self,
        run_id: str,
        user_id: str,
        collected_at: str,
        payload: IngestPayload,
        dry_run: bool = False,
    ) -> IngestionOutcome:
        confidence: Optional[int] = None
        warnings: List[str] = []

        if payload.kind == PayloadKind.RAW_TEXT:
            result = parse_report_text(payload.raw_text)
            if result.errors:
                raise SchemaInvalidError(f"Cannot parse document text: {'; '.join(result.errors)}")
            report = self.builder.from_parse_result(run_id, user_id, collected_at, result)
            confidence = result.confidence_score
            warnings.extend(result.warnings)
        else:
            try:
                report = self.builder.from_captured_lists(run_id, user_id, collected_at, payload.captured_lists)
            except TypeError as e:
                raise SchemaInvalidError(f"Cannot parse captured lists: {e}") from e

        self.store.replace_report(report)
        row_counts = report.row_counts()

        status = RunStatus.COMPLETED
        missing: List[str] = []
        # An empty document is a completed run with zero rows, not a partial one
        if payload.kind == PayloadKind.CAPTURED_LISTS and row_counts["total"] > 0:
            completeness = check_completeness(report)
            missing = completeness.missing_bureaus
            if completeness.is_partial:
                status = RunStatus.PARTIAL
                warnings.append(f"Missing bureau data: {', '.join(missing)}")
                self._warn(run_id, user_id, "partial", f"Missing bureaus: {', '.join(missing)}",
                           {"missing_bureaus": missing})

        if row_counts["total"] == 0:
            warnings.append("No rows extracted")
            self._warn(run_id, user_id, "empty", "Payload produced zero rows")

        if confidence is not None and confidence < self.config.low_confidence_threshold:
            warnings.append(f"Low parse confidence ({confidence})")
            self._warn(run_id, user_id, "low_confidence", f"Parse confidence {confidence}",
                       {"confidence_score": confidence})

        self.store.finish_run(
            run_id, user_id, status.value,
            row_counts=row_counts,
            missing_bureaus=missing,
            confidence_score=confidence,
        )
        self._publish(IngestionEvent(
            run_id=run_id,
            status=status,
            row_counts=row_counts,
            missing_bureaus=missing or None,
        ), user_id, event_type="done")

        logger.info(f"Run {run_id} {status.value}: {row_counts['total']} rows, missing={missing}")
        return IngestionOutcome(
            run_id=run_id,
            user_id=user_id,
            status=status,
            row_counts=row_counts,
            missing_bureaus=missing,
            confidence_score=confidence,
            warnings=warnings,
            dry_run=dry_run,
        )

    def _warn(self, run_id: str, user_id: str, step: str, message: str, metadata: Optional[dict] = None) -> None:
        logger.warning(f"Run {run_id}: {message}")
        self.store.emit_event(run_id, "warn", step=step, message=message, user_id=user_id, metadata=metadata)

    def _publish(self, event: IngestionEvent, user_id: str, event_type: str, message: Optional[str] = None) -> None:
        self.store.emit_event(
            event.run_id,
            event_type,
            step=event.status.value,
            message=message,
            user_id=user_id,
            status=event.status.value,
            row_counts=event.row_counts,
            missing_bureaus=event.missing_bureaus,
            metadata=event.to_dict(),
        )
        if self.on_event is not None:
            self.on_event(event)

    def _fail(self, run_id: str, user_id: str, error: Exception) -> None:
        """Mark the run failed and emit the error event."""
        code = error.code if isinstance(error, IngestionError) else "E_INTERNAL"
        message = str(error)
        logger.error(f"Run {run_id} failed [{code}]: {message}")
        try:
            self.store.finish_run(run_id, user_id, RunStatus.FAILED.value,
                                  error_code=code, error_message=message)
            self._publish(IngestionEvent(run_id=run_id, status=RunStatus.FAILED, error_code=code),
                          user_id, event_type="error", message=message)
        except IngestionError as storage_error:
            logger.error(f"Could not record failure of run {run_id}: {storage_error}")
