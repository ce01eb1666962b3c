"""Report Normalizer - Ingestion Layer

Run orchestration, idempotent storage and the upstream scrape client.
"""
from .errors import (
    IngestionError,
    SchemaInvalidError,
    StorageError,
    RawPayloadNotFoundError,
    ScrapeError,
    AuthBadCredentialsError,
    RobotNotFoundError,
    RunFailedError,
    RunTimeoutError,
    DownloadError,
)
from .scrape_client import ScrapeClient, ScrapeRunStatus
from .service import (
    IngestionService,
    IngestRequest,
    IngestPayload,
    IngestionEvent,
    IngestionOutcome,
)
from .storage import IngestionStore

__all__ = [
    "IngestionError", "SchemaInvalidError", "StorageError", "RawPayloadNotFoundError",
    "ScrapeError", "AuthBadCredentialsError", "RobotNotFoundError",
    "RunFailedError", "RunTimeoutError", "DownloadError",
    "ScrapeClient", "ScrapeRunStatus",
    "IngestionService", "IngestRequest", "IngestPayload", "IngestionEvent", "IngestionOutcome",
    "IngestionStore",
]
