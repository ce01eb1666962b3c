"""
Report Normalizer - Ingestion API Router

Internal endpoints for report ingestion. Callers are the upload pipeline and
the scrape webhook, authenticated with the internal API key.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..config import IngestionConfig
from ..database import get_db
from ..services.ingestion import (
    IngestionError,
    IngestionOutcome,
    IngestionService,
    IngestRequest,
    ScrapeClient,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ingest", tags=["ingest"])


# =============================================================================
# PYDANTIC MODELS FOR API
# =============================================================================

class IngestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_id: Optional[str] = Field(default=None, alias="runId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    collected_at: Optional[str] = Field(default=None, alias="collectedAt")
    payload: Any = None
    dry_run: bool = Field(default=False, alias="dryRun")


class ScrapeCollectBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")


class IngestResponse(BaseModel):
    ok: bool = True
    run_id: str
    status: str
    row_counts: Dict[str, int]
    missing_bureaus: List[str] = []
    confidence_score: Optional[int] = None
    warnings: List[str] = []
    dry_run: bool = False


class RunResponse(BaseModel):
    run_id: str
    user_id: str
    source: Optional[str]
    status: str
    row_counts: Optional[Dict[str, int]]
    missing_bureaus: Optional[List[str]]
    confidence_score: Optional[int]
    error_code: Optional[str]
    error_message: Optional[str]
    started_at: Optional[str]
    finished_at: Optional[str]


class EventResponse(BaseModel):
    event_type: str
    step: Optional[str]
    message: Optional[str]
    status: Optional[str]
    row_counts: Optional[Dict[str, int]]
    missing_bureaus: Optional[List[str]]
    created_at: Optional[str]


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_config(request: Request) -> IngestionConfig:
    return request.app.state.config


async def verify_internal_key(
    x_internal_key: str = Header(...),
    config: IngestionConfig = Depends(get_config),
):
    """Verify internal API key for ingestion endpoints."""
    if x_internal_key != config.internal_api_key:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


def get_ingestion_service(
    db: Session = Depends(get_db),
    config: IngestionConfig = Depends(get_config),
) -> IngestionService:
    return IngestionService(db, config)


def _to_response(outcome: IngestionOutcome) -> IngestResponse:
    return IngestResponse(
        run_id=outcome.run_id,
        status=outcome.status.value,
        row_counts=outcome.row_counts,
        missing_bureaus=outcome.missing_bureaus,
        confidence_score=outcome.confidence_score,
        warnings=outcome.warnings,
        dry_run=outcome.dry_run,
    )


def _http_error(e: IngestionError) -> HTTPException:
    return HTTPException(status_code=e.http_status, detail=e.to_dict())


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", response_model=IngestResponse)
async def ingest_report(
    body: IngestBody,
    service: IngestionService = Depends(get_ingestion_service),
    _: bool = Depends(verify_internal_key),
):
    """
    Ingest a captured-lists payload or a raw-text envelope.

    Body: {runId, userId, collectedAt?, payload, dryRun?}
    """
    try:
        outcome = service.ingest(IngestRequest(
            run_id=body.run_id,
            user_id=body.user_id,
            payload=body.payload,
            collected_at=body.collected_at,
            dry_run=body.dry_run,
        ))
    except IngestionError as e:
        raise _http_error(e)
    return _to_response(outcome)


@router.get("/health", response_model=IngestResponse)
async def ingest_health(
    service: IngestionService = Depends(get_ingestion_service),
    _: bool = Depends(verify_internal_key),
):
    """End-to-end check: ingest the built-in sample report as a dry run."""
    try:
        outcome = service.ingest(IngestRequest(dry_run=True))
    except IngestionError as e:
        raise _http_error(e)
    return _to_response(outcome)


@router.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(
    run_id: str,
    service: IngestionService = Depends(get_ingestion_service),
    _: bool = Depends(verify_internal_key),
):
    run = service.store.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return RunResponse(
        run_id=run.run_id,
        user_id=run.user_id,
        source=run.source,
        status=run.status,
        row_counts=run.row_counts,
        missing_bureaus=run.missing_bureaus,
        confidence_score=run.confidence_score,
        error_code=run.error_code,
        error_message=run.error_message,
        started_at=_iso(run.started_at),
        finished_at=_iso(run.finished_at),
    )


@router.get("/runs/{run_id}/events", response_model=List[EventResponse])
async def list_run_events(
    run_id: str,
    service: IngestionService = Depends(get_ingestion_service),
    _: bool = Depends(verify_internal_key),
):
    return [
        EventResponse(
            event_type=event.event_type,
            step=event.step,
            message=event.message,
            status=event.status,
            row_counts=event.row_counts,
            missing_bureaus=event.missing_bureaus,
            created_at=_iso(event.created_at),
        )
        for event in service.store.list_events(run_id)
    ]


@router.post("/runs/{run_id}/reprocess", response_model=IngestResponse)
async def reprocess_run(
    run_id: str,
    service: IngestionService = Depends(get_ingestion_service),
    _: bool = Depends(verify_internal_key),
):
    """Re-normalize a run from its stored raw payload."""
    try:
        outcome = service.reprocess(run_id)
    except IngestionError as e:
        raise _http_error(e)
    return _to_response(outcome)


@router.post("/scrape/{robot_id}/{run_id}", response_model=IngestResponse)
def collect_scrape_run(
    robot_id: str,
    run_id: str,
    body: ScrapeCollectBody,
    service: IngestionService = Depends(get_ingestion_service),
    config: IngestionConfig = Depends(get_config),
    _: bool = Depends(verify_internal_key),
):
    """Wait for a scrape robot run to finish and ingest its captured lists."""
    with ScrapeClient(config) as client:
        service.scrape_client = client
        try:
            outcome = service.collect_scrape_run(robot_id, run_id, body.user_id)
        except IngestionError as e:
            raise _http_error(e)
    return _to_response(outcome)
