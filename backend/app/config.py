"""
Report Normalizer - Runtime Configuration

All tunables for ingestion live on one IngestionConfig that is built once at
the entry point and handed to the services that need it.
"""
import os
from dataclasses import dataclass
from typing import Tuple


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


@dataclass(frozen=True)
class IngestionConfig:
    """Settings for ingestion, scrape polling and download retries."""
    internal_api_key: str = "ingest-internal-key-change-in-production"

    # Upstream scrape API
    scrape_api_base: str = "https://api.browse.ai/v2"
    scrape_api_key: str = ""
    scrape_request_timeout: float = 30.0

    # Polling: adaptive interval grows from initial to max, bounded by timeout
    poll_initial_interval: float = 1.0
    poll_max_interval: float = 10.0
    poll_backoff_factor: float = 1.5
    poll_timeout: float = 300.0

    # Waits between download attempts (first attempt is immediate)
    download_retry_waits: Tuple[float, ...] = (30.0, 90.0)

    low_confidence_threshold: int = 50
    schema_version: str = "v1"

    @classmethod
    def from_env(cls) -> "IngestionConfig":
        """Build config from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            internal_api_key=os.getenv("INGEST_INTERNAL_KEY", defaults.internal_api_key),
            scrape_api_base=os.getenv("SCRAPE_API_BASE", defaults.scrape_api_base).rstrip("/"),
            scrape_api_key=os.getenv("SCRAPE_API_KEY", defaults.scrape_api_key),
            scrape_request_timeout=_env_float("SCRAPE_REQUEST_TIMEOUT_SECONDS", defaults.scrape_request_timeout),
            poll_initial_interval=_env_float("SCRAPE_POLL_INITIAL_SECONDS", defaults.poll_initial_interval),
            poll_max_interval=_env_float("SCRAPE_POLL_MAX_SECONDS", defaults.poll_max_interval),
            poll_backoff_factor=_env_float("SCRAPE_POLL_BACKOFF", defaults.poll_backoff_factor),
            poll_timeout=_env_float("SCRAPE_POLL_TIMEOUT_SECONDS", defaults.poll_timeout),
            low_confidence_threshold=_env_int("LOW_CONFIDENCE_THRESHOLD", defaults.low_confidence_threshold),
        )
