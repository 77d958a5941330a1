"""Per-bot supervisor.

One BotAgent plays one profile through one game:

    initialize → join → wait for game start → phase-dispatch loop → cleanup

Failures are handled in two tiers. Ordinary failures are retried in place
with a linear backoff. Session loss (browser or page gone) triggers a full
recovery: silent teardown, a fixed delay, a fresh driver, and navigation back
to the last URL. Recoveries draw from a budget that lasts for the agent's
lifetime and is refilled only by a confirmed join.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from trivia_bots.bot.behavior import BehaviorModel
from trivia_bots.bot.phase import GamePhase, PhaseDetector
from trivia_bots.bot.profile import BotProfile
from trivia_bots.config import Settings, get_settings
from trivia_bots.driver.base import BrowserDriver, parse_ranking
from trivia_bots.logging_config import bind_context
from trivia_bots.utils.errors import (
    JoinFailedError,
    PhaseWaitTimeoutError,
    RecoverableSessionError,
    RecoveryBudgetExceededError,
    is_session_loss,
)
from trivia_bots.utils.timing import sleep_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

DriverFactory = Callable[[BotProfile], BrowserDriver]

GAME_START_PHASES = (
    GamePhase.COUNTDOWN,
    GamePhase.QUESTION,
    GamePhase.ANSWER_REVEAL,
    GamePhase.BETWEEN_QUESTIONS,
    GamePhase.GAME_ENDED,
)

IDLE_PHASES = (
    GamePhase.RANKING,
    GamePhase.ANSWER_REVEAL,
    GamePhase.BETWEEN_QUESTIONS,
    GamePhase.WAITING,
    GamePhase.COUNTDOWN,
)


@dataclass(frozen=True)
class AgentTimings:
    """Fixed pauses of the play loop, in seconds."""

    phase_wait: float = 0.5
    after_question: float = 0.5
    after_continue: float = 1.0
    after_error: float = 1.0
    before_result: float = 1.5
    no_answer_wait: float = 2.0
    ranking_wait: float = 3.0
    ranking_settle: float = 1.0
    post_registration: tuple[float, float] = (0.5, 1.5)
    post_join: tuple[float, float] = (1.0, 2.0)
    join_delay_scale: float = 1.0  # applied to the drawn join delay

    @classmethod
    def instant(cls) -> "AgentTimings":
        """No pauses at all; used by tests and dry runs."""
        return cls(
            phase_wait=0,
            after_question=0,
            after_continue=0,
            after_error=0,
            before_result=0,
            no_answer_wait=0,
            ranking_wait=0,
            ranking_settle=0,
            post_registration=(0, 0),
            post_join=(0, 0),
            join_delay_scale=0,
        )


@dataclass
class AgentResult:
    """Outcome of one bot's run."""

    profile_id: str
    nickname: str = ""
    joined: bool = False
    questions_answered: int = 0
    correct_answers: int = 0
    final_score: Optional[int] = None
    final_rank: Optional[int] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def accuracy(self) -> Optional[float]:
        if not self.questions_answered:
            return None
        return self.correct_answers / self.questions_answered

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AgentRecord:
    """Live bookkeeping of one agent, read by the pool."""

    profile_id: str
    phase: GamePhase = GamePhase.UNKNOWN
    question_number: int = 0
    retry_count: int = 0
    last_error: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    result: AgentResult = field(init=False)

    def __post_init__(self) -> None:
        self.result = AgentResult(profile_id=self.profile_id)


class BotAgent:
    """Drives one browser session end to end for a single profile."""

    def __init__(
        self,
        profile: BotProfile,
        behavior: BehaviorModel,
        driver_factory: DriverFactory,
        settings: Settings | None = None,
        *,
        max_recoveries: int | None = None,
        retry_attempts: int | None = None,
        retry_backoff: float | None = None,
        recovery_delay: float | None = None,
        max_consecutive_errors: int | None = None,
        answer_delay_cap_ms: int | None = None,
        poll_interval: float | None = None,
        game_start_timeout: float | None = None,
        countdown_timeout: float | None = None,
        background_polling: bool = True,
        timings: AgentTimings | None = None,
    ):
        settings = settings or get_settings()

        self.profile = profile
        self.behavior = behavior
        self._driver_factory = driver_factory

        self.max_recoveries = _pick(max_recoveries, settings.agent_max_recoveries)
        self.retry_attempts = _pick(retry_attempts, settings.agent_retry_attempts)
        self.retry_backoff = _pick(retry_backoff, settings.agent_retry_backoff)
        self.recovery_delay = _pick(recovery_delay, settings.agent_recovery_delay)
        self.max_consecutive_errors = _pick(
            max_consecutive_errors, settings.agent_max_consecutive_errors
        )
        self.answer_delay_cap_ms = _pick(answer_delay_cap_ms, settings.answer_delay_cap_ms)
        self.poll_interval = _pick(poll_interval, settings.phase_poll_interval)
        self.game_start_timeout = _pick(game_start_timeout, settings.game_start_timeout)
        self.countdown_timeout = _pick(countdown_timeout, settings.countdown_timeout)
        self.background_polling = background_polling
        self.timings = timings or AgentTimings()

        self.record = AgentRecord(profile_id=profile.bot_id)
        self.record.result.nickname = profile.nickname

        self._driver: Optional[BrowserDriver] = None
        self._detector: Optional[PhaseDetector] = None
        self._url: Optional[str] = None
        self._running = False
        self._stopped = False
        self._budget_exhausted = False

    @property
    def bot_id(self) -> str:
        return self.profile.bot_id

    @property
    def result(self) -> AgentResult:
        return self.record.result

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def driver(self) -> BrowserDriver:
        if self._driver is None:
            raise RecoverableSessionError("Browser closed")
        return self._driver

    @property
    def detector(self) -> PhaseDetector:
        if self._detector is None:
            raise RecoverableSessionError("Browser closed")
        return self._detector

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, url: str) -> AgentResult:
        """Play one game and return the outcome. Always cleans up."""
        bind_context(bot_id=self.bot_id)
        self._url = url
        self.record.started_at = time.time()
        self.behavior.reset_player(self.profile)

        try:
            if self._stopped:
                logger.info(f"[AGENT] {self.profile.nickname} stopped before start, not joining")
                self.result.error = self.result.error or "Stopped"
                return self.result

            await self.initialize()

            if not await self.join_game(url):
                return self.result

            if not await self.wait_for_game_start():
                self.result.error = self.result.error or "Game did not start"
                return self.result

            await self.play_game()

            accuracy = self.result.accuracy
            logger.info(
                f"[AGENT] {self.profile.nickname} run complete: "
                f"{self.result.correct_answers}/{self.result.questions_answered} correct"
                + (f" ({accuracy * 100:.1f}%)" if accuracy is not None else "")
            )
            return self.result
        except Exception as e:
            self.record.last_error = str(e)
            self.result.error = str(e)
            logger.error(f"[AGENT] {self.profile.nickname} run failed: {e}")
            return self.result
        finally:
            self.record.finished_at = time.time()
            await self.cleanup()

    async def initialize(self) -> None:
        """Start a fresh driver and attach the phase detector to it."""
        driver = self._driver_factory(self.profile)
        self._driver = driver
        await driver.start()

        if self._detector is None:
            self._detector = PhaseDetector(
                driver, bot_id=self.bot_id, poll_interval=self.poll_interval
            )
            self._detector.on_phase_change(self._on_phase_change)
        else:
            self._detector.driver = driver

        logger.debug(f"[AGENT] {self.profile.nickname} initialized")

    def _on_phase_change(self, phase: GamePhase, previous: Optional[GamePhase]) -> None:
        self.record.phase = phase

    def stop(self) -> None:
        """Ask the agent to wind down cooperatively."""
        self._running = False
        self._stopped = True
        logger.info(f"[AGENT] {self.profile.nickname} stopped")

    async def cleanup(self) -> None:
        """Release the browser. Idempotent and never raises."""
        self._running = False
        if self._detector is not None:
            await self._detector.stop_polling()
        await self._teardown()

    async def _teardown(self) -> None:
        driver, self._driver = self._driver, None
        if driver is None:
            return
        try:
            await driver.close()
        except Exception as e:
            logger.debug(f"[AGENT] {self.bot_id} teardown error ignored: {e}")

    # ------------------------------------------------------------------
    # Retry and recovery
    # ------------------------------------------------------------------

    @staticmethod
    def needs_recovery(error: BaseException) -> bool:
        """Whether a failure means the browser session itself is gone."""
        return is_session_loss(error)

    async def attempt_recovery(self, renavigate: bool = True) -> bool:
        """Tear down and rebuild the browser session.

        Returns:
            True if the session was rebuilt, False if the budget is spent or
            the rebuild itself failed
        """
        if self._stopped:
            return False

        if self.record.retry_count >= self.max_recoveries:
            logger.error(
                f"[AGENT] {self.profile.nickname} max recoveries "
                f"({self.max_recoveries}) exceeded, giving up"
            )
            self._budget_exhausted = True
            self._running = False
            return False

        self.record.retry_count += 1
        logger.info(
            f"[AGENT] {self.profile.nickname} recovery attempt "
            f"{self.record.retry_count}/{self.max_recoveries}"
        )

        try:
            await self._teardown()
            await asyncio.sleep(self.recovery_delay)
            await self.initialize()
            if renavigate and self._url:
                await self.driver.navigate_to_game(self._url)
        except Exception as e:
            logger.error(f"[AGENT] {self.profile.nickname} recovery failed: {e}")
            return False

        logger.info(f"[AGENT] {self.profile.nickname} recovery successful")
        return True

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        max_attempts: int | None = None,
        navigates: bool = False,
    ) -> T:
        """Run an operation, retrying ordinary failures and recovering lost sessions.

        Args:
            operation: Zero-argument coroutine factory; must look the driver up
                on each call since recovery replaces it
            name: Operation name for logs
            max_attempts: Attempts before giving up
            navigates: The operation loads the game page itself, so recovery
                need not navigate first

        Raises:
            RecoveryBudgetExceededError: If a session loss could not be recovered
                because the lifetime budget is spent
            Exception: The last failure once attempts are exhausted
        """
        attempts = max_attempts or self.retry_attempts
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except Exception as e:
                last_error = e
                self.record.last_error = str(e)
                logger.warning(
                    f"[AGENT] {self.profile.nickname} {name} failed "
                    f"(attempt {attempt}/{attempts}): {e}"
                )
                if self._stopped or attempt >= attempts:
                    break

                if self.needs_recovery(e):
                    if not await self.attempt_recovery(renavigate=not navigates):
                        break
                else:
                    await asyncio.sleep(self.retry_backoff * attempt)

        if self._budget_exhausted:
            raise RecoveryBudgetExceededError(self.max_recoveries, cause=str(last_error))
        raise last_error

    # ------------------------------------------------------------------
    # Join and start
    # ------------------------------------------------------------------

    async def join_game(self, url: str) -> bool:
        """Join the game; False when the profile decided not to show up.

        Raises:
            JoinFailedError: If the join control could not be clicked
        """
        decision = self.behavior.join_timing(self.profile)
        if not decision.should_join:
            logger.info(f"[AGENT] {self.profile.nickname} will not join ({decision.reason})")
            return False

        if decision.delay_ms > 0:
            logger.info(
                f"[AGENT] {self.profile.nickname} joining {decision.reason}, "
                f"delay: {decision.delay_ms}ms"
            )
            await sleep_ms(decision.delay_ms * self.timings.join_delay_scale)

        if self._stopped:
            return False

        await self.with_retry(
            lambda: self.driver.navigate_to_game(url), "Navigate to game", navigates=True
        )

        phase = await self.detector.detect_phase()
        if phase == GamePhase.REGISTRATION:
            await self.with_retry(
                lambda: self.driver.fill_registration_form(self.profile), "Fill registration"
            )
            await self._random_pause(self.timings.post_registration)

            joined = await self.with_retry(lambda: self.driver.click_join(), "Click join button")
            if not joined:
                raise JoinFailedError()

            await self._random_pause(self.timings.post_join)

        self.result.joined = True
        self.record.retry_count = 0
        logger.info(f"[AGENT] {self.profile.nickname} successfully joined game")
        return True

    async def wait_for_game_start(self) -> bool:
        """Wait until the first question (or a countdown to it) shows up."""
        logger.info(f"[AGENT] {self.profile.nickname} waiting for game to start")
        try:
            phase = await self.detector.wait_for_phase(
                GAME_START_PHASES, timeout=self.game_start_timeout
            )
        except PhaseWaitTimeoutError:
            logger.error(f"[AGENT] {self.profile.nickname} timeout waiting for game start")
            return False

        if phase == GamePhase.GAME_ENDED:
            logger.info(f"[AGENT] {self.profile.nickname} game has already ended")
            return False

        if phase == GamePhase.COUNTDOWN:
            logger.info(f"[AGENT] {self.profile.nickname} countdown started")
            try:
                await self.detector.wait_for_phase(
                    (GamePhase.QUESTION, GamePhase.GAME_ENDED), timeout=self.countdown_timeout
                )
            except PhaseWaitTimeoutError:
                logger.warning(
                    f"[AGENT] {self.profile.nickname} countdown finished but no question detected"
                )

        if await self.detector.detect_phase() == GamePhase.GAME_ENDED:
            logger.info(f"[AGENT] {self.profile.nickname} game has already ended")
            return False

        logger.info(f"[AGENT] {self.profile.nickname} game started")
        return True

    # ------------------------------------------------------------------
    # Play
    # ------------------------------------------------------------------

    async def play_game(self) -> AgentResult:
        """Dispatch on the observed phase until the game ends or the agent stops."""
        self._running = True
        consecutive_errors = 0

        if self.background_polling:
            self.detector.start_polling(self.poll_interval)

        try:
            while self._running:
                phase = await self.detector.detect_phase()

                if self.detector.last_error is not None and self.needs_recovery(
                    self.detector.last_error
                ):
                    if not await self._recover_in_game(self.detector.last_error):
                        break
                    continue

                try:
                    if phase == GamePhase.ERROR:
                        consecutive_errors += 1
                        logger.warning(
                            f"[AGENT] {self.profile.nickname} error state "
                            f"({consecutive_errors}/{self.max_consecutive_errors})"
                        )
                        if not self._give_up_after(consecutive_errors):
                            await asyncio.sleep(self.timings.after_error)
                        continue

                    if phase != GamePhase.UNKNOWN:
                        consecutive_errors = 0

                    if phase == GamePhase.QUESTION:
                        await self.handle_question()
                        await asyncio.sleep(self.timings.after_question)
                    elif phase == GamePhase.GAME_ENDED:
                        await self._finish_game()
                    elif phase == GamePhase.REGISTRATION:
                        logger.info(f"[AGENT] {self.profile.nickname} registration/welcome screen detected")
                        await self.driver.handle_returning_player()
                        await asyncio.sleep(self.timings.after_continue)
                    else:
                        await asyncio.sleep(self.timings.phase_wait)

                except Exception as e:
                    if self.needs_recovery(e):
                        if not await self._recover_in_game(e):
                            break
                        continue
                    consecutive_errors += 1
                    self.record.last_error = str(e)
                    logger.warning(f"[AGENT] {self.profile.nickname} error in game loop: {e}")
                    if not self._give_up_after(consecutive_errors):
                        await asyncio.sleep(self.timings.after_error)
        finally:
            self._running = False
            if self._detector is not None:
                await self._detector.stop_polling()

        return self.result

    def _give_up_after(self, consecutive_errors: int) -> bool:
        """Stop the loop once the consecutive error threshold is reached."""
        if consecutive_errors < self.max_consecutive_errors:
            return False
        self.result.error = f"Too many errors ({consecutive_errors} consecutive)"
        logger.error(f"[AGENT] {self.profile.nickname} too many errors, stopping")
        self._running = False
        return True

    async def _recover_in_game(self, error: BaseException) -> bool:
        logger.warning(f"[AGENT] {self.profile.nickname} session lost mid-game: {error}")
        if await self.attempt_recovery():
            return True
        if not self._stopped:
            if self._budget_exhausted:
                self.result.error = str(RecoveryBudgetExceededError(self.max_recoveries, str(error)))
            else:
                self.result.error = f"Recovery failed: {error}"
        return False

    async def _finish_game(self) -> None:
        logger.info(f"[AGENT] {self.profile.nickname} game ended")
        try:
            score = await self.driver.get_current_score()
        except Exception as e:
            logger.debug(f"[AGENT] {self.bot_id} final score unavailable: {e}")
            score = None
        if score is not None:
            self.result.final_score = score

        logger.info(
            f"[AGENT] {self.profile.nickname} final score: "
            f"{self.result.correct_answers}/{self.result.questions_answered} correct"
        )
        self._running = False

    async def handle_question(self) -> None:
        """Answer the question on screen."""
        self.record.question_number += 1
        number = self.record.question_number

        question = await self.driver.get_question_text()
        logger.info(f"[AGENT] {self.profile.nickname} QUESTION {number}: {question}")

        answers = await self.driver.get_answer_options()
        if not answers.options:
            logger.warning(f"[AGENT] {self.profile.nickname} no answer options found, skipping")
            await asyncio.sleep(self.timings.no_answer_wait)
            await self.log_ranking()
            return

        decision = self.behavior.select_answer(self.profile, answers.options, None, difficulty=0.5)
        index = min(decision.index, len(answers.options) - 1)

        await sleep_ms(min(decision.delay_ms, self.answer_delay_cap_ms))

        submitted = await self.driver.submit_answer(index, answers.modality)
        if not submitted:
            logger.error(f"[AGENT] {self.profile.nickname} ANSWERED: FAILED TO SUBMIT")
            await asyncio.sleep(self.timings.no_answer_wait)
            await self.log_ranking()
            return

        self.result.questions_answered += 1
        logger.info(
            f"[AGENT] {self.profile.nickname} ANSWERED: {answers.label(index)} "
            f"({decision.reason})"
        )

        await asyncio.sleep(self.timings.before_result)
        was_correct = await self.driver.check_answer_result()
        if was_correct is True:
            self.result.correct_answers += 1
            self.behavior.record_answer(self.profile, True)
            logger.info(f"[AGENT] {self.profile.nickname} RESULT: CORRECT")
        elif was_correct is False:
            self.behavior.record_answer(self.profile, False)
            logger.info(f"[AGENT] {self.profile.nickname} RESULT: WRONG")
        else:
            logger.info(f"[AGENT] {self.profile.nickname} RESULT: could not determine")

        await self.log_ranking()

    async def log_ranking(self) -> None:
        """Best-effort read of the ranking screen for telemetry."""
        await asyncio.sleep(self.timings.ranking_wait)
        try:
            snapshot = parse_ranking(await self.driver.snapshot_ranking_text())
        except Exception as e:
            logger.info(f"[AGENT] {self.profile.nickname} RANKING: (page loading...)")
            logger.debug(f"[AGENT] {self.bot_id} ranking unavailable: {e}")
        else:
            if snapshot.rank is not None:
                self.result.final_rank = snapshot.rank
            if snapshot.points is not None:
                self.result.final_score = snapshot.points
            logger.info(f"[AGENT] {self.profile.nickname} {snapshot.describe()}")

        await asyncio.sleep(self.timings.ranking_settle)

    async def _random_pause(self, bounds: tuple[float, float]) -> None:
        low, high = bounds
        if high <= 0:
            await asyncio.sleep(0)
            return
        await asyncio.sleep(self.behavior.rng.uniform(low, high))

    def get_status(self) -> dict[str, Any]:
        return {
            "profile_id": self.bot_id,
            "nickname": self.profile.nickname,
            "phase": self.record.phase.value,
            "question_number": self.record.question_number,
            "retry_count": self.record.retry_count,
            "running": self._running,
            "last_error": self.record.last_error,
        }


def _pick(value: Optional[T], default: T) -> T:
    return default if value is None else value
