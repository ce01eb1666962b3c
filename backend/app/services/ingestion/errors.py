"""
Ingestion error taxonomy.

Every hard failure carries a stable code that ends up on the run record, the
error event and the HTTP response.
"""
from typing import Optional


class IngestionError(Exception):
    """Base class for ingestion failures."""
    code = "E_INGESTION"
    http_status = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class SchemaInvalidError(IngestionError):
    """Missing run/user id, or a payload that cannot be parsed at all."""
    code = "E_SCHEMA_INVALID"
    http_status = 400


class StorageError(IngestionError):
    """Raw or normalized write failed; the transaction was rolled back."""
    code = "E_DB_UPSERT"
    http_status = 500


class RawPayloadNotFoundError(IngestionError):
    code = "E_RAW_NOT_FOUND"
    http_status = 404


class ScrapeError(IngestionError):
    """Failure talking to the upstream scrape service."""
    code = "E_SCRAPE"
    http_status = 502


class AuthBadCredentialsError(ScrapeError):
    code = "AUTH_BAD_CREDENTIALS"
    http_status = 502


class RobotNotFoundError(ScrapeError):
    code = "ROBOT_NOT_FOUND"
    http_status = 404


class RunFailedError(ScrapeError):
    code = "RUN_FAILED"
    http_status = 502


class RunTimeoutError(ScrapeError):
    code = "RUN_TIMEOUT"
    http_status = 504


class DownloadError(ScrapeError):
    """Captured data could not be fetched after every retry."""
    code = "E_DOWNLOAD_FAILED"
    http_status = 502
