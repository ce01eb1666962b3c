"""
Tests for the scrape robot client: adaptive polling, the wall-clock timeout,
upstream error classes and the download retry schedule.

HTTP is served by httpx.MockTransport and time by a fake clock, so no test
actually waits.
"""
import json

import httpx
import pytest

from app.config import IngestionConfig
from app.services.ingestion import (
    AuthBadCredentialsError,
    DownloadError,
    RobotNotFoundError,
    RunFailedError,
    RunTimeoutError,
    ScrapeClient,
    ScrapeError,
    ScrapeRunStatus,
)


TASK_PATH = "/v2/robots/robot-1/tasks/task-1"
DOWNLOAD_URL = "https://files.scrape.test/task-1.json"


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def time(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class Upstream:
    """Serves a scripted sequence of responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def task(status, **result):
    return httpx.Response(200, json={"statusCode": 200, "result": dict(result, status=status)})


@pytest.fixture
def clock():
    return FakeClock()


def make_client(config, upstream, clock):
    http = httpx.Client(base_url=config.scrape_api_base, transport=httpx.MockTransport(upstream))
    return ScrapeClient(config, http=http, sleep=clock.sleep, clock=clock.time)


# =============================================================================
# TEST: STATUS
# =============================================================================

class TestRunStatus:
    """Tests for get_run_status."""

    def test_status_request(self, config, clock):
        upstream = Upstream(task("in-progress"))
        with make_client(config, upstream, clock) as client:
            run = client.get_run_status("robot-1", "task-1")

        assert run.status == "in-progress"
        assert upstream.requests[0].url.path == TASK_PATH

    @pytest.mark.parametrize("raw,expected", [
        ("queued", "queued"),
        ("running", "in-progress"),
        ("SUCCESSFUL", "successful"),
        ("failed", "failed"),
        ("something-new", "in-progress"),
    ])
    def test_status_aliases(self, config, clock, raw, expected):
        with make_client(config, Upstream(task(raw)), clock) as client:
            assert client.get_run_status("robot-1", "task-1").status == expected

    def test_unwrapped_body(self, config, clock):
        upstream = Upstream(httpx.Response(200, json={"status": "successful", "capturedLists": {"A": []}}))
        with make_client(config, upstream, clock) as client:
            run = client.get_run_status("robot-1", "task-1")
        assert run.captured_lists == {"A": []}

    @pytest.mark.parametrize("status_code,error", [
        (401, AuthBadCredentialsError),
        (403, AuthBadCredentialsError),
        (404, RobotNotFoundError),
        (500, ScrapeError),
    ])
    def test_error_classes(self, config, clock, status_code, error):
        upstream = Upstream(httpx.Response(status_code, json={"message": "nope"}))
        with make_client(config, upstream, clock) as client:
            with pytest.raises(error):
                client.get_run_status("robot-1", "task-1")

    def test_error_codes(self):
        assert AuthBadCredentialsError("x").code == "AUTH_BAD_CREDENTIALS"
        assert RobotNotFoundError("x").code == "ROBOT_NOT_FOUND"
        assert RunFailedError("x").code == "RUN_FAILED"
        assert RunTimeoutError("x").code == "RUN_TIMEOUT"

    def test_transport_error_retried(self, config, clock):
        upstream = Upstream(httpx.ConnectError("connection refused"), task("successful"))
        with make_client(config, upstream, clock) as client:
            run = client.get_run_status("robot-1", "task-1")

        assert run.status == "successful"
        assert len(upstream.requests) == 2
        assert clock.sleeps == [1]

    def test_transport_error_exhausted(self, config, clock):
        upstream = Upstream(httpx.ConnectError("connection refused"))
        with make_client(config, upstream, clock) as client:
            with pytest.raises(ScrapeError):
                client.get_run_status("robot-1", "task-1")
        assert len(upstream.requests) == 3

    def test_download_url_keys(self):
        assert ScrapeRunStatus("successful", {"downloadUrl": "a"}).download_url == "a"
        assert ScrapeRunStatus("successful", {"capturedDataUrl": "b"}).download_url == "b"
        assert ScrapeRunStatus("successful").download_url is None


# =============================================================================
# TEST: POLLING
# =============================================================================

class TestWaitForRun:
    """Adaptive polling until a terminal status or timeout."""

    def test_backoff_grows_until_success(self, config, clock):
        upstream = Upstream(
            task("queued"),
            task("in-progress"),
            task("in-progress"),
            task("successful", capturedLists={"Credit Score": ["Equifax 705"]}),
        )
        with make_client(config, upstream, clock) as client:
            run = client.wait_for_run("robot-1", "task-1")

        assert run.status == "successful"
        assert run.captured_lists == {"Credit Score": ["Equifax 705"]}
        assert clock.sleeps == [1.0, 1.5, 2.25]

    def test_immediate_success_does_not_sleep(self, config, clock):
        with make_client(config, Upstream(task("successful")), clock) as client:
            client.wait_for_run("robot-1", "task-1")
        assert clock.sleeps == []

    def test_interval_capped_and_timeout_enforced(self, config, clock):
        upstream = Upstream(task("in-progress"))
        with make_client(config, upstream, clock) as client:
            with pytest.raises(RunTimeoutError) as exc_info:
                client.wait_for_run("robot-1", "task-1")

        assert exc_info.value.code == "RUN_TIMEOUT"
        assert max(clock.sleeps) == 10.0
        assert clock.sleeps[-2] == 10.0
        assert sum(clock.sleeps) == pytest.approx(300.0)
        assert len(upstream.requests) == len(clock.sleeps) + 1

    def test_custom_timeout(self, clock):
        config = IngestionConfig(scrape_api_base="https://scrape.test/v2", poll_timeout=5.0)
        with make_client(config, Upstream(task("queued")), clock) as client:
            with pytest.raises(RunTimeoutError):
                client.wait_for_run("robot-1", "task-1")
        assert clock.sleeps == [1.0, 1.5, 2.25, 0.25]

    def test_failed_run(self, config, clock):
        upstream = Upstream(task("in-progress"), task("failed", userFriendlyError="Login page changed"))
        with make_client(config, upstream, clock) as client:
            with pytest.raises(RunFailedError) as exc_info:
                client.wait_for_run("robot-1", "task-1")
        assert "Login page changed" in str(exc_info.value)

    def test_bad_credentials_stop_polling(self, config, clock):
        upstream = Upstream(httpx.Response(401))
        with make_client(config, upstream, clock) as client:
            with pytest.raises(AuthBadCredentialsError):
                client.wait_for_run("robot-1", "task-1")
        assert len(upstream.requests) == 1


# =============================================================================
# TEST: DOWNLOAD
# =============================================================================

class TestDownloadCapturedData:
    """Download retries: immediate, then 30s, then 90s."""

    PAYLOAD = {"capturedLists": {"Credit Score": ["TransUnion 712"]}}

    def test_first_attempt_succeeds(self, config, clock):
        upstream = Upstream(httpx.Response(200, json=self.PAYLOAD))
        with make_client(config, upstream, clock) as client:
            assert client.download_captured_data(DOWNLOAD_URL) == self.PAYLOAD

        assert clock.sleeps == []
        assert str(upstream.requests[0].url) == DOWNLOAD_URL

    def test_retries_on_schedule(self, config, clock):
        upstream = Upstream(
            httpx.Response(503),
            httpx.ConnectError("reset"),
            httpx.Response(200, content=json.dumps(self.PAYLOAD).encode()),
        )
        with make_client(config, upstream, clock) as client:
            assert client.download_captured_data(DOWNLOAD_URL) == self.PAYLOAD

        assert clock.sleeps == [30.0, 90.0]

    def test_gives_up_after_schedule(self, config, clock):
        upstream = Upstream(httpx.Response(500))
        with make_client(config, upstream, clock) as client:
            with pytest.raises(DownloadError) as exc_info:
                client.download_captured_data(DOWNLOAD_URL)

        assert exc_info.value.code == "E_DOWNLOAD_FAILED"
        assert len(upstream.requests) == 3
        assert clock.sleeps == [30.0, 90.0]

    def test_no_retry_waits_means_one_attempt(self, clock):
        config = IngestionConfig(scrape_api_base="https://scrape.test/v2", download_retry_waits=())
        upstream = Upstream(httpx.Response(500))
        with make_client(config, upstream, clock) as client:
            with pytest.raises(DownloadError):
                client.download_captured_data(DOWNLOAD_URL)
        assert len(upstream.requests) == 1


# =============================================================================
# TEST: CONFIG
# =============================================================================

class TestConfigFromEnv:
    """Polling and retry settings come from the environment."""

    def test_defaults(self, monkeypatch):
        for name in ("SCRAPE_POLL_INITIAL_SECONDS", "SCRAPE_POLL_MAX_SECONDS", "SCRAPE_POLL_TIMEOUT_SECONDS"):
            monkeypatch.delenv(name, raising=False)
        config = IngestionConfig.from_env()
        assert config.poll_initial_interval == 1.0
        assert config.poll_max_interval == 10.0
        assert config.poll_timeout == 300.0
        assert config.download_retry_waits == (30.0, 90.0)

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("SCRAPE_POLL_TIMEOUT_SECONDS", "60")
        monkeypatch.setenv("SCRAPE_API_BASE", "https://scrape.example/v2/")
        monkeypatch.setenv("LOW_CONFIDENCE_THRESHOLD", "")
        config = IngestionConfig.from_env()
        assert config.poll_timeout == 60.0
        assert config.scrape_api_base == "https://scrape.example/v2"
        assert config.low_confidence_threshold == 50

    def test_authorization_header(self, config):
        client = ScrapeClient(config)
        try:
            assert client.http.headers["Authorization"] == "Bearer test-scrape-key"
        finally:
            client.close()
