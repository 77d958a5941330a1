"""BotAgent tests.

Covers the join sequence, the two-tier retry/recovery policy, the
phase-dispatch loop and its consecutive-error threshold.
"""

import pytest

from trivia_bots.bot.phase import GamePhase
from trivia_bots.utils.errors import RecoverableSessionError, TransientDriverError

GAME_URL = "https://www.crowd.live/TEST1"


# =============================================================================
# Full run
# =============================================================================


class TestRun:
    @pytest.mark.asyncio
    async def test_registers_answers_and_finishes(self, make_agent, script, pages, driver_factory):
        script.signals = [
            pages.registration(),
            pages.question(),
            pages.question(),
            pages.question(),
            pages.ended(),
        ]
        agent = make_agent()

        result = await agent.run(GAME_URL)

        assert result.error is None
        assert result.joined is True
        assert result.questions_answered == 1
        assert result.correct_answers == 1
        assert result.final_rank == 3
        assert result.final_score == 120
        assert driver_factory.created[0].registered is True
        assert len(script.submissions) == 1
        assert agent.record.phase == GamePhase.GAME_ENDED

    @pytest.mark.asyncio
    async def test_cleanup_always_closes_driver(self, make_agent, script, pages, driver_factory):
        script.signals = [pages.question(), pages.ended()]
        agent = make_agent()

        await agent.run(GAME_URL)

        assert all(driver.closed for driver in driver_factory.created)
        assert agent.is_running is False
        # Second cleanup is a no-op
        await agent.cleanup()

    @pytest.mark.asyncio
    async def test_stopped_agent_never_opens_the_game(self, make_agent, script, pages, driver_factory):
        script.signals = [pages.question(), pages.ended()]
        agent = make_agent()
        agent.stop()

        result = await agent.run(GAME_URL)

        assert script.navigations == 0
        assert driver_factory.created == []
        assert result.joined is False
        assert result.error == "Stopped"

    @pytest.mark.asyncio
    async def test_wrong_answer_is_not_counted_correct(self, make_agent, script, pages, behavior):
        script.signals = [pages.question()] * 4 + [pages.ended()]
        script.answer_result = False
        agent = make_agent()

        result = await agent.run(GAME_URL)

        assert result.questions_answered == 1
        assert result.correct_answers == 0
        assert behavior.get_state(agent.profile).streak == -1

    @pytest.mark.asyncio
    async def test_failed_submission_is_not_counted(self, make_agent, script, pages):
        script.signals = [pages.question()] * 4 + [pages.ended()]
        script.submit_result = False
        agent = make_agent()

        result = await agent.run(GAME_URL)

        assert result.error is None
        assert result.questions_answered == 0


# =============================================================================
# Join sequence
# =============================================================================


class TestJoin:
    @pytest.mark.asyncio
    async def test_no_show_finishes_without_error(self, make_agent, make_profile, script):
        agent = make_agent(make_profile(no_show_chance=1.0))

        result = await agent.run(GAME_URL)

        assert result.joined is False
        assert result.error is None
        assert script.navigations == 0

    @pytest.mark.asyncio
    async def test_join_click_failure_is_terminal(self, make_agent, script, pages):
        script.signals = [pages.registration()]
        script.click_join_result = False
        agent = make_agent()

        result = await agent.run(GAME_URL)

        assert result.joined is False
        assert result.error == "Failed to join game"

    @pytest.mark.asyncio
    async def test_skips_registration_when_already_in_game(self, make_agent, script, pages, driver_factory):
        script.signals = [pages.question()] * 4 + [pages.ended()]
        agent = make_agent()

        result = await agent.run(GAME_URL)

        assert result.joined is True
        assert driver_factory.created[0].registered is False

    @pytest.mark.asyncio
    async def test_game_already_ended_records_error(self, make_agent, script, pages):
        script.signals = [pages.ended()]
        agent = make_agent()

        result = await agent.run(GAME_URL)

        assert result.joined is True
        assert result.error == "Game did not start"

    @pytest.mark.asyncio
    async def test_game_start_timeout_records_error(self, make_agent, script, pages):
        script.signals = [pages.waiting()]
        agent = make_agent(game_start_timeout=0.05)

        result = await agent.run(GAME_URL)

        assert result.error == "Game did not start"
        assert result.questions_answered == 0


# =============================================================================
# Retry and recovery
# =============================================================================


class TestRetryAndRecovery:
    @pytest.mark.asyncio
    async def test_recovers_twice_during_navigation_then_joins(
        self, make_agent, script, pages, driver_factory
    ):
        script.signals = [pages.question()] * 4 + [pages.ended()]
        script.navigate_errors = [
            RecoverableSessionError("Target closed"),
            RecoverableSessionError("Target closed"),
            None,
        ]
        agent = make_agent(max_recoveries=3, retry_attempts=3)

        result = await agent.run(GAME_URL)

        assert result.error is None
        assert result.joined is True
        # The join confirmed the session, which refills the budget
        assert agent.record.retry_count == 0
        assert len(driver_factory.created) == 3
        # Recovery does not navigate on behalf of an operation that navigates
        assert script.navigations == 3

    @pytest.mark.asyncio
    async def test_recovery_budget_exhaustion_fails_agent(self, make_agent, script):
        script.navigate_errors = [RecoverableSessionError("Browser closed")] * 5
        agent = make_agent(max_recoveries=1, retry_attempts=3)

        result = await agent.run(GAME_URL)

        assert result.joined is False
        assert result.error == "Max recoveries (1) exceeded"
        assert agent.record.retry_count == 1

    @pytest.mark.asyncio
    async def test_ordinary_failure_retries_without_new_browser(
        self, make_agent, script, pages, driver_factory
    ):
        script.signals = [pages.question()] * 4 + [pages.ended()]
        script.navigate_errors = [TransientDriverError("Timeout 30000ms exceeded"), None]
        agent = make_agent()

        result = await agent.run(GAME_URL)

        assert result.error is None
        assert len(driver_factory.created) == 1
        assert script.navigations == 2

    @pytest.mark.asyncio
    async def test_ordinary_failures_exhaust_attempts(self, make_agent, script):
        script.navigate_errors = [TransientDriverError("net::ERR_NAME_NOT_RESOLVED")] * 3
        agent = make_agent(retry_attempts=3)

        result = await agent.run(GAME_URL)

        assert result.error == "net::ERR_NAME_NOT_RESOLVED"
        assert script.navigations == 3

    @pytest.mark.asyncio
    async def test_session_lost_mid_game_is_recovered(
        self, make_agent, script, pages, driver_factory
    ):
        script.signals = [pages.question()] * 4 + [pages.ended()]
        script.read_errors = [None, None, None, RecoverableSessionError("Page crashed")]
        agent = make_agent()

        result = await agent.run(GAME_URL)

        assert result.error is None
        assert agent.record.retry_count == 1
        assert len(driver_factory.created) == 2
        # The rebuilt session navigates back to the game
        assert script.navigations == 2

    def test_needs_recovery_matches_signatures(self, make_agent):
        agent = make_agent()

        assert agent.needs_recovery(Exception("Target page, context or browser has been closed"))
        assert agent.needs_recovery(RecoverableSessionError("gone"))
        assert not agent.needs_recovery(TransientDriverError("Timeout"))
        assert not agent.needs_recovery(ValueError("bad value"))


# =============================================================================
# Dispatch loop
# =============================================================================


class TestPlayLoop:
    @pytest.mark.asyncio
    async def test_gives_up_after_consecutive_errors(self, make_agent, script, pages):
        script.signals = [pages.question(), pages.question(), pages.error()]
        agent = make_agent()

        result = await agent.run(GAME_URL)

        assert result.error == "Too many errors (10 consecutive)"
        assert result.succeeded is False

    @pytest.mark.asyncio
    async def test_threshold_is_configurable(self, make_agent, script, pages):
        script.signals = [pages.question(), pages.question(), pages.error()]
        agent = make_agent(max_consecutive_errors=3)

        result = await agent.run(GAME_URL)

        assert result.error == "Too many errors (3 consecutive)"

    @pytest.mark.asyncio
    async def test_non_error_phase_resets_error_count(self, make_agent, script, pages):
        script.signals = (
            [pages.question(), pages.question(), pages.question()]
            + [pages.error()] * 2
            + [pages.reveal()]
            + [pages.error()] * 2
            + [pages.ended()]
        )
        agent = make_agent(max_consecutive_errors=3)

        result = await agent.run(GAME_URL)

        assert result.error is None

    @pytest.mark.asyncio
    async def test_status_snapshot(self, make_agent, script, pages):
        script.signals = [pages.question()] * 4 + [pages.ended()]
        agent = make_agent()

        await agent.run(GAME_URL)
        status = agent.get_status()

        assert status["profile_id"] == agent.bot_id
        assert status["phase"] == "game_ended"
        assert status["question_number"] == 1
        assert status["running"] is False
