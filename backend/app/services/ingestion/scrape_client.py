"""
Client for the upstream scrape robot API.

Two operations matter to ingestion:
- wait_for_run: poll a robot task with an adaptive interval until it
  finishes, fails, or the wall-clock budget runs out
- download_captured_data: fetch captured lists from a result URL, retrying
  on a fixed schedule before giving up
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import httpx
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_chain,
    wait_exponential,
    wait_fixed,
    wait_none,
)

from ...config import IngestionConfig
from .errors import (
    AuthBadCredentialsError,
    DownloadError,
    RobotNotFoundError,
    RunFailedError,
    RunTimeoutError,
    ScrapeError,
)

logger = logging.getLogger(__name__)


QUEUED = "queued"
IN_PROGRESS = "in-progress"
SUCCESSFUL = "successful"
FAILED = "failed"

STATUS_ALIASES = {
    "queued": QUEUED,
    "pending": QUEUED,
    "in-progress": IN_PROGRESS,
    "in_progress": IN_PROGRESS,
    "running": IN_PROGRESS,
    "successful": SUCCESSFUL,
    "succeeded": SUCCESSFUL,
    "completed": SUCCESSFUL,
    "failed": FAILED,
    "error": FAILED,
}


@dataclass
class ScrapeRunStatus:
    status: str
    result: Dict[str, Any] = field(default_factory=dict)

    @property
    def captured_lists(self) -> Optional[Any]:
        return self.result.get("capturedLists")

    @property
    def download_url(self) -> Optional[str]:
        return self.result.get("downloadUrl") or self.result.get("capturedDataUrl")


class ScrapeClient:
    """
    Synchronous client for robot task status and captured data.

    `sleep` and `clock` are injectable so polling and retry schedules can be
    driven without real waiting.
    """

    def __init__(
        self,
        config: IngestionConfig,
        http: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.sleep = sleep
        self.clock = clock
        self.http = http or httpx.Client(
            base_url=config.scrape_api_base,
            timeout=httpx.Timeout(config.scrape_request_timeout),
            headers=self._get_headers(),
        )

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.scrape_api_key}",
            "Accept": "application/json",
        }

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "ScrapeClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _handle_response_error(self, response: httpx.Response, robot_id: str) -> None:
        if response.status_code in (401, 403):
            raise AuthBadCredentialsError(
                f"Scrape API rejected credentials (HTTP {response.status_code})"
            )
        if response.status_code == 404:
            raise RobotNotFoundError(f"Robot or task not found for robot {robot_id}")
        if response.status_code >= 400:
            raise ScrapeError(f"Scrape API error (HTTP {response.status_code}): {response.text[:200]}")

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            f"Retrying scrape request (attempt {retry_state.attempt_number}) "
            f"after {retry_state.outcome.exception()}"
        )

    # -------------------------------------------------------------------------
    # Status polling
    # -------------------------------------------------------------------------

    def get_run_status(self, robot_id: str, run_id: str) -> ScrapeRunStatus:
        """Current status of one robot task. Transport errors are retried briefly."""
        retrying = Retrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            sleep=self.sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    response = self.http.get(f"/robots/{robot_id}/tasks/{run_id}")
        except httpx.TransportError as e:
            raise ScrapeError(f"Scrape API unreachable: {e}") from e

        self._handle_response_error(response, robot_id)
        body = response.json()
        task = body.get("result") if isinstance(body.get("result"), dict) else body
        raw_status = str(task.get("status", "")).lower()
        status = STATUS_ALIASES.get(raw_status, IN_PROGRESS)
        return ScrapeRunStatus(status=status, result=task)

    def wait_for_run(self, robot_id: str, run_id: str) -> ScrapeRunStatus:
        """
        Poll until the task succeeds.

        The interval starts at poll_initial_interval and grows by
        poll_backoff_factor up to poll_max_interval. Raises RunFailedError if
        the task fails and RunTimeoutError once poll_timeout has elapsed.
        """
        deadline = self.clock() + self.config.poll_timeout
        interval = self.config.poll_initial_interval
        polls = 0

        while True:
            run = self.get_run_status(robot_id, run_id)
            polls += 1

            if run.status == SUCCESSFUL:
                logger.info(f"Scrape run {run_id} succeeded after {polls} polls")
                return run
            if run.status == FAILED:
                reason = run.result.get("userFriendlyError") or run.result.get("error") or "unknown error"
                raise RunFailedError(f"Scrape run {run_id} failed: {reason}")

            remaining = deadline - self.clock()
            if remaining <= 0:
                raise RunTimeoutError(
                    f"Scrape run {run_id} still {run.status} after {self.config.poll_timeout:.0f}s ({polls} polls)"
                )

            logger.debug(f"Scrape run {run_id} is {run.status}; next poll in {min(interval, remaining):.1f}s")
            self.sleep(min(interval, remaining))
            interval = min(interval * self.config.poll_backoff_factor, self.config.poll_max_interval)

    # -------------------------------------------------------------------------
    # Captured data download
    # -------------------------------------------------------------------------

    def download_captured_data(self, url: str) -> Dict[str, Any]:
        """
        Fetch captured data JSON. The first attempt is immediate, later ones
        follow download_retry_waits; after the last one DownloadError is raised.
        """
        waits = self.config.download_retry_waits
        retrying = Retrying(
            stop=stop_after_attempt(len(waits) + 1),
            wait=wait_chain(*[wait_fixed(w) for w in waits]) if waits else wait_none(),
            retry=retry_if_exception_type(httpx.HTTPError),
            sleep=self.sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    response = self.http.get(url)
                    response.raise_for_status()
                    return response.json()
        except httpx.HTTPError as e:
            raise DownloadError(f"Could not download captured data from {url}: {e}") from e
