"""SessionCoordinator lifecycle tests."""

import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from trivia_bots.bot.agent import AgentResult, AgentTimings
from trivia_bots.bot.coordinator import SessionCoordinator, SessionStatus
from trivia_bots.bot.pool import BotPool, PoolResults, make_agent_factory
from trivia_bots.persistence.sink import ResultSink
from trivia_bots.utils.errors import (
    ConfigurationError,
    InvalidSessionStateError,
    PersistenceError,
)

GAME_URL = "https://www.crowd.live/TEST1"


def _results(completed: int = 2, failed: int = 0) -> PoolResults:
    players = {
        f"player-{i}": AgentResult(profile_id=f"player-{i}", joined=True)
        for i in range(completed)
    }
    players.update({
        f"failed-{i}": AgentResult(profile_id=f"failed-{i}", error="Failed to join game")
        for i in range(failed)
    })
    return PoolResults(
        total_players=completed + failed, completed=completed, failed=failed, players=players
    )


@pytest.fixture
def pool() -> MagicMock:
    pool = MagicMock(spec=BotPool)
    pool.start_all = AsyncMock(return_value=_results())
    pool.stop_all = AsyncMock()
    pool.clear = AsyncMock()
    pool.get_stats.return_value = {"total_players": 2, "active_players": 0}
    return pool


@pytest.fixture
def sink() -> AsyncMock:
    return AsyncMock(spec=ResultSink)


@pytest.fixture
def make_coordinator(settings, behavior, pool, sink, make_profile):
    def _make(players=None, game_url=GAME_URL, **options) -> SessionCoordinator:
        if players is None:
            players = [make_profile("player-0"), make_profile("player-1")]
        options.setdefault("pool_factory", lambda: pool)
        options.setdefault("sink", sink)
        return SessionCoordinator(
            game_url=game_url,
            players=players,
            settings=settings,
            behavior=behavior,
            **options,
        )

    return _make


# =============================================================================
# Configuration
# =============================================================================


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_empty_roster_is_rejected_without_transition(self, make_coordinator, pool):
        coordinator = make_coordinator(players=[])

        with pytest.raises(ConfigurationError, match="No players"):
            await coordinator.start()

        assert coordinator.status == SessionStatus.IDLE
        pool.start_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_url_is_rejected_without_transition(self, make_coordinator):
        coordinator = make_coordinator(game_url="   ")

        with pytest.raises(ConfigurationError, match="No game URL"):
            await coordinator.start()

        assert coordinator.status == SessionStatus.IDLE

    def test_session_id_format(self, make_coordinator):
        coordinator = make_coordinator()

        assert re.fullmatch(r"session-[0-9a-f]{32}", coordinator.session_id)

    def test_setters_update_the_record(self, make_coordinator, make_profile):
        coordinator = make_coordinator(players=[])

        coordinator.set_game_url("https://www.crowd.live/OTHER")
        coordinator.set_players([make_profile("player-7")])
        coordinator.add_player(make_profile("player-8"))

        assert coordinator.record.game_url == "https://www.crowd.live/OTHER"
        assert [p.bot_id for p in coordinator.record.players] == ["player-7", "player-8"]


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_successful_run_completes_and_persists(self, make_coordinator, pool, sink):
        coordinator = make_coordinator(stagger_range=(0, 10), max_concurrent=5)

        record = await coordinator.start()

        assert record.status == SessionStatus.COMPLETED
        assert record.start_time is not None
        assert record.end_time >= record.start_time
        assert record.duration is not None
        assert record.results.completed == 2
        pool.add_agents.assert_called_once()
        pool.start_all.assert_awaited_once_with(
            GAME_URL, stagger_range=(0, 10), max_concurrent=5
        )
        sink.save_session_result.assert_awaited_once_with(record)
        statuses = [call.args[1] for call in sink.notify_status.await_args_list]
        assert statuses == ["running", "completed"]

    @pytest.mark.asyncio
    async def test_initialize_twice_is_rejected(self, make_coordinator):
        coordinator = make_coordinator()
        await coordinator.initialize()

        assert coordinator.status == SessionStatus.INITIALIZING
        with pytest.raises(InvalidSessionStateError):
            await coordinator.initialize()

    @pytest.mark.asyncio
    async def test_finished_session_cannot_start_again(self, make_coordinator):
        coordinator = make_coordinator()
        await coordinator.start()

        with pytest.raises(InvalidSessionStateError):
            await coordinator.start()

    @pytest.mark.asyncio
    async def test_pool_failure_marks_session_failed(self, make_coordinator, pool, sink):
        pool.start_all.side_effect = RuntimeError("pool exploded")
        coordinator = make_coordinator()

        with pytest.raises(RuntimeError, match="pool exploded"):
            await coordinator.start()

        assert coordinator.status == SessionStatus.FAILED
        assert coordinator.record.end_time is not None
        statuses = [call.args[1] for call in sink.notify_status.await_args_list]
        assert statuses == ["running", "failed"]
        sink.save_session_result.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_during_run_keeps_stopped(self, make_coordinator, pool):
        coordinator = make_coordinator()

        async def run_then_get_stopped(*args, **kwargs):
            await coordinator.stop()
            return _results(completed=0, failed=2)

        pool.start_all.side_effect = run_then_get_stopped

        record = await coordinator.start()

        assert record.status == SessionStatus.STOPPED
        pool.stop_all.assert_awaited()

    @pytest.mark.asyncio
    async def test_stop_while_reporting_running_skips_launch(
        self, make_coordinator, pool, sink
    ):
        coordinator = make_coordinator()
        pool.get_results.return_value = _results(completed=0, failed=0)

        async def stop_on_running(session_id, status, fields):
            if status == "running":
                await coordinator.stop()

        sink.notify_status.side_effect = stop_on_running

        record = await coordinator.start()

        assert record.status == SessionStatus.STOPPED
        pool.start_all.assert_not_called()
        pool.stop_all.assert_awaited()
        statuses = [call.args[1] for call in sink.notify_status.await_args_list]
        assert statuses == ["running", "stopped"]

    @pytest.mark.asyncio
    async def test_failure_after_stop_reports_stopped(self, make_coordinator, pool, sink):
        coordinator = make_coordinator()

        async def stop_then_fail(*args, **kwargs):
            await coordinator.stop()
            raise RuntimeError("browser crashed during shutdown")

        pool.start_all.side_effect = stop_then_fail

        with pytest.raises(RuntimeError, match="browser crashed"):
            await coordinator.start()

        assert coordinator.status == SessionStatus.STOPPED
        statuses = [call.args[1] for call in sink.notify_status.await_args_list]
        assert statuses == ["running", "stopped"]

    @pytest.mark.asyncio
    async def test_pool_limit_applies_without_override(self, make_coordinator, pool):
        coordinator = make_coordinator(stagger_range=(0, 0))

        await coordinator.start()

        pool.start_all.assert_awaited_once_with(
            GAME_URL, stagger_range=(0, 0), max_concurrent=None
        )

    @pytest.mark.asyncio
    async def test_stop_is_idempotent_and_safe_before_start(self, make_coordinator):
        coordinator = make_coordinator()

        await coordinator.stop()
        await coordinator.stop()

        assert coordinator.status == SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, make_coordinator, pool):
        coordinator = make_coordinator()
        await coordinator.start()

        await coordinator.cleanup()
        await coordinator.cleanup()

        pool.clear.assert_awaited_once()
        assert coordinator.pool is None

    @pytest.mark.asyncio
    async def test_add_player_after_initialize_registers_agent(
        self, make_coordinator, make_profile, pool
    ):
        coordinator = make_coordinator()
        await coordinator.initialize()

        coordinator.add_player(make_profile("player-9"))

        pool.add_agent.assert_called_once()

    @pytest.mark.asyncio
    async def test_status_snapshot(self, make_coordinator):
        coordinator = make_coordinator()
        await coordinator.start()

        status = coordinator.get_status()

        assert status["status"] == "completed"
        assert status["player_count"] == 2
        assert status["pool_stats"]["total_players"] == 2


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    @pytest.mark.asyncio
    async def test_sink_failures_do_not_change_outcome(self, make_coordinator, sink):
        sink.notify_status.side_effect = PersistenceError("backend down")
        sink.save_session_result.side_effect = PersistenceError("backend down")
        coordinator = make_coordinator()

        record = await coordinator.start()

        assert record.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_runs_without_sink(self, make_coordinator):
        coordinator = make_coordinator(sink=None)

        record = await coordinator.start()

        assert record.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_record_serialisation(self, make_coordinator):
        coordinator = make_coordinator(league="Premier")
        record = await coordinator.start()

        data = record.to_dict()

        assert data["session_id"] == coordinator.session_id
        assert data["status"] == "completed"
        assert data["league"] == "Premier"
        assert data["total_players"] == 2
        assert data["completed"] == 2
        assert set(data["players"]) == {"player-0", "player-1"}


# =============================================================================
# End to end with scripted browsers
# =============================================================================


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_session_plays_through_real_pool(
        self, settings, behavior, make_profile, isolated_driver_factory
    ):
        def pool_factory() -> BotPool:
            agent_factory = make_agent_factory(
                behavior,
                settings,
                driver_factory=isolated_driver_factory,
                background_polling=False,
                timings=AgentTimings.instant(),
            )
            return BotPool(agent_factory, settings, max_concurrent=2)

        players = [make_profile(f"player-{i}") for i in range(3)]
        coordinator = SessionCoordinator(
            game_url=GAME_URL,
            players=players,
            settings=settings,
            behavior=behavior,
            pool_factory=pool_factory,
            stagger_range=(0, 0),
        )

        record = await coordinator.start()
        peak = coordinator.pool.peak_active
        await coordinator.cleanup()

        assert record.status == SessionStatus.COMPLETED
        assert record.results.completed == 3
        assert all(r.questions_answered == 1 for r in record.results.players.values())
        assert peak <= 2
