"""HTTP result sink tests using httpx.MockTransport."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from trivia_bots.bot.agent import AgentResult
from trivia_bots.bot.coordinator import SessionRecord, SessionStatus
from trivia_bots.bot.pool import PoolResults
from trivia_bots.config import Settings
from trivia_bots.persistence.sink import HttpResultSink, ResultSink, build_result_sink
from trivia_bots.utils.errors import PersistenceError

BASE_URL = "http://admin.test"


class Recorder:
    """Captures requests and answers with a fixed status."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})

    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


def _sink(recorder: Recorder, api_key: str | None = "secret") -> HttpResultSink:
    return HttpResultSink(BASE_URL, api_key=api_key, transport=httpx.MockTransport(recorder))


def _record() -> SessionRecord:
    started = datetime(2024, 5, 1, 19, 0, tzinfo=timezone.utc)
    return SessionRecord(
        session_id="session-abc",
        game_url="https://www.crowd.live/TEST1",
        league="North",
        status=SessionStatus.COMPLETED,
        start_time=started,
        end_time=started.replace(minute=30),
        results=PoolResults(
            total_players=2,
            completed=1,
            failed=1,
            players={
                "player-1": AgentResult(
                    profile_id="player-1", joined=True, questions_answered=10, final_rank=3
                ),
                "player-2": AgentResult(profile_id="player-2", error="Failed to join game"),
            },
        ),
    )


class TestHttpResultSink:
    def test_satisfies_protocol(self):
        assert isinstance(_sink(Recorder()), ResultSink)

    @pytest.mark.asyncio
    async def test_notify_status_patches_session(self):
        recorder = Recorder()

        await _sink(recorder).notify_status("session-abc", "running", {"player_count": 4})

        (request,) = recorder.requests
        assert request.method == "PATCH"
        assert request.url == f"{BASE_URL}/api/v1/sessions/session-abc"
        assert request.headers["X-API-Key"] == "secret"
        assert recorder.bodies() == [{"status": "running", "player_count": 4}]

    @pytest.mark.asyncio
    async def test_save_posts_summary_then_player_results(self):
        recorder = Recorder()

        await _sink(recorder).save_session_result(_record())

        summary, results = recorder.bodies()
        assert [r.url.path for r in recorder.requests] == [
            "/api/v1/sessions",
            "/api/v1/sessions/session-abc/results",
        ]
        assert summary["status"] == "completed"
        assert summary["duration"] == 1800.0
        assert summary["completed"] == 1
        assert "players" not in summary
        assert [r["player_id"] for r in results["results"]] == ["player-1", "player-2"]
        assert results["results"][1]["error"] == "Failed to join game"

    @pytest.mark.asyncio
    async def test_no_api_key_header_when_unset(self):
        recorder = Recorder()

        await _sink(recorder, api_key=None).notify_status("session-abc", "running", {})

        assert "X-API-Key" not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_rejection_becomes_persistence_error(self):
        sink = _sink(Recorder(status_code=500))

        with pytest.raises(PersistenceError) as exc_info:
            await sink.notify_status("session-abc", "failed", {})

        assert exc_info.value.details == {"session_id": "session-abc", "status": "failed"}

    @pytest.mark.asyncio
    async def test_save_rejection_becomes_persistence_error(self):
        with pytest.raises(PersistenceError, match="session-abc"):
            await _sink(Recorder(status_code=422)).save_session_result(_record())


class TestBuildResultSink:
    def test_absent_without_backend(self):
        assert build_result_sink(Settings(_env_file=None, admin_backend_url=None)) is None

    def test_http_sink_with_backend(self):
        settings = Settings(_env_file=None, admin_backend_url=BASE_URL, internal_api_key="k")

        assert isinstance(build_result_sink(settings), HttpResultSink)
