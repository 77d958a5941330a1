"""Game phase detection.

The platform exposes no transition table, so every detection re-derives the
phase from a fresh snapshot of page signals. Ambiguity is resolved by a fixed
precedence order (see ``classify_phase``):

 1. welcome-back markers         → REGISTRATION
 2. registration form present    → REGISTRATION
 3. game-ended keywords          → GAME_ENDED
 4. answer controls and timer>0  → QUESTION
 5. "your ranking" marker        → RANKING
 6. timer == 0 or time ran out   → ANSWER_REVEAL
 7. waiting-room keywords        → WAITING
 8. a timer but nothing above    → BETWEEN_QUESTIONS
 9. error keywords               → ERROR
10. signed-in-but-idle markers   → WAITING
11. otherwise keep the committed phase
"""

import asyncio
import inspect
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Optional, Union

from trivia_bots.utils.async_utils import cancel_task_safe, create_safe_task
from trivia_bots.utils.errors import PhaseWaitTimeoutError

if TYPE_CHECKING:
    from trivia_bots.driver.base import BrowserDriver

logger = logging.getLogger(__name__)


class GamePhase(str, Enum):
    """Externally observed stage of the trivia game."""

    REGISTRATION = "registration"
    WAITING = "waiting"
    COUNTDOWN = "countdown"
    QUESTION = "question"
    ANSWER_REVEAL = "answer_reveal"
    RANKING = "ranking"
    BETWEEN_QUESTIONS = "between_questions"
    GAME_ENDED = "game_ended"
    ERROR = "error"
    UNKNOWN = "unknown"


WELCOME_BACK_MARKERS = ("welcome back", "continue playing")
GAME_ENDED_MARKERS = ("you finished", "game over", "thank you for playing", "final results")
RANKING_MARKER = "your ranking"
TIME_UP_MARKERS = ("time has run out", "time's up")
WAITING_MARKERS = ("will be activated shortly", "waiting", "game will start", "hang tight")
ERROR_MARKERS = ("something went wrong", "unable to join", "error occurred")
SIGNED_IN_MARKERS = ("sign out", "my profile")

TIMER_PATTERN = re.compile(r"(\d+):(\d{2})")


@dataclass(frozen=True)
class PageSignals:
    """Raw snapshot read from the page by a driver.

    Attributes:
        text: Visible page text (lower-cased on construction via ``from_page``)
        answer_controls: Number of visible answer buttons
        registration_form: Whether nickname/registration inputs are present
    """

    text: str = ""
    answer_controls: int = 0
    registration_form: bool = False

    @classmethod
    def from_page(
        cls, text: str, answer_controls: int = 0, registration_form: bool = False
    ) -> "PageSignals":
        return cls(
            text=(text or "").lower(),
            answer_controls=answer_controls,
            registration_form=registration_form,
        )

    @property
    def timer_seconds(self) -> int:
        return parse_timer(self.text)


def parse_timer(text: str) -> int:
    """Parse the first ``m:ss`` timer in the text.

    Returns:
        Remaining seconds, or -1 when no timer is shown
    """
    match = TIMER_PATTERN.search(text or "")
    if not match:
        return -1
    return int(match.group(1)) * 60 + int(match.group(2))


def _contains_any(text: str, markers: Iterable[str]) -> bool:
    return any(marker in text for marker in markers)


def classify_phase(signals: PageSignals, current: GamePhase = GamePhase.UNKNOWN) -> GamePhase:
    """Classify page signals into a phase.

    Pure function. When no rule applies the committed ``current`` phase is
    returned unchanged so transient blank reads never flicker to UNKNOWN.
    """
    text = signals.text
    timer = parse_timer(text)

    if _contains_any(text, WELCOME_BACK_MARKERS):
        return GamePhase.REGISTRATION
    if signals.registration_form:
        return GamePhase.REGISTRATION
    if _contains_any(text, GAME_ENDED_MARKERS):
        return GamePhase.GAME_ENDED
    if signals.answer_controls > 0 and timer > 0:
        return GamePhase.QUESTION
    if RANKING_MARKER in text:
        return GamePhase.RANKING
    if timer == 0 or _contains_any(text, TIME_UP_MARKERS):
        return GamePhase.ANSWER_REVEAL
    if _contains_any(text, WAITING_MARKERS):
        return GamePhase.WAITING
    if timer >= 0:
        return GamePhase.BETWEEN_QUESTIONS
    if _contains_any(text, ERROR_MARKERS):
        return GamePhase.ERROR
    if _contains_any(text, SIGNED_IN_MARKERS):
        return GamePhase.WAITING
    return current


PhaseCallback = Callable[[GamePhase, Optional[GamePhase]], Union[None, Awaitable[None]]]


class PhaseDetector:
    """Tracks the committed phase of one agent's page.

    Usage:
        detector = PhaseDetector(driver, bot_id="player-1")
        detector.on_phase_change(lambda new, old: ...)
        phase = await detector.wait_for_phase({GamePhase.QUESTION}, timeout=60)
    """

    def __init__(
        self,
        driver: "BrowserDriver",
        bot_id: str = "",
        poll_interval: float = 0.5,
    ):
        self._driver = driver
        self._bot_id = bot_id
        self._poll_interval = poll_interval

        self.current_phase: GamePhase = GamePhase.UNKNOWN
        self.previous_phase: Optional[GamePhase] = None
        self.question_number: int = 0
        # Failure of the most recent read, cleared by the next good one
        self.last_error: Optional[BaseException] = None

        self._callbacks: list[PhaseCallback] = []
        self._pending: set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def driver(self) -> "BrowserDriver":
        return self._driver

    @driver.setter
    def driver(self, driver: "BrowserDriver") -> None:
        """Swap the driver after a session recovery."""
        self._driver = driver

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def detect_phase(self) -> GamePhase:
        """Read fresh signals and commit the classified phase.

        A failed read keeps the committed phase.
        """
        try:
            signals = await self._driver.read_page_signals()
        except Exception as e:
            self.last_error = e
            logger.debug(
                f"[PHASE] {self._bot_id} page not readable, keeping {self.current_phase.value}: {e}"
            )
            return self.current_phase

        self.last_error = None
        logger.debug(
            f"[PHASE] {self._bot_id} buttons={signals.answer_controls} "
            f"timer={signals.timer_seconds}s form={signals.registration_form}"
        )
        return self.set_state(classify_phase(signals, self.current_phase))

    def set_state(self, phase: GamePhase) -> GamePhase:
        """Commit a phase; a no-op when it equals the committed one."""
        if phase == self.current_phase:
            return self.current_phase

        self.previous_phase = self.current_phase
        self.current_phase = phase
        logger.debug(
            f"[PHASE] {self._bot_id} {self.previous_phase.value} → {phase.value}"
        )

        if phase == GamePhase.QUESTION and self.previous_phase != GamePhase.QUESTION:
            self.question_number += 1
            logger.info(f"[PHASE] {self._bot_id} question {self.question_number} started")

        for callback in list(self._callbacks):
            self._notify(callback, phase, self.previous_phase)

        return self.current_phase

    def _notify(
        self, callback: PhaseCallback, phase: GamePhase, previous: Optional[GamePhase]
    ) -> None:
        try:
            result = callback(phase, previous)
        except Exception as e:
            logger.error(f"[PHASE] State change callback error: {e}")
            return

        if inspect.isawaitable(result):
            task = create_safe_task(
                _await(result), name=f"phase-callback-{self._bot_id}"
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    def on_phase_change(self, callback: PhaseCallback) -> None:
        """Register an observer called as ``callback(new_phase, previous_phase)``."""
        self._callbacks.append(callback)

    async def wait_for_phase(
        self, targets: Iterable[GamePhase], timeout: float = 30.0
    ) -> GamePhase:
        """Poll until one of the target phases is observed.

        GAME_ENDED always ends the wait, whatever the targets. ERROR does not,
        since it is often a transient navigation state.

        Raises:
            PhaseWaitTimeoutError: If no target is seen before the deadline
        """
        wanted = set(targets)
        deadline = time.monotonic() + timeout

        while time.monotonic() < deadline:
            phase = await self.detect_phase()
            if phase in wanted or phase == GamePhase.GAME_ENDED:
                return phase
            await asyncio.sleep(self._poll_interval)

        raise PhaseWaitTimeoutError([p.value for p in wanted], timeout)

    async def wait_for_phase_change(self, timeout: float = 30.0) -> GamePhase:
        """Poll until the committed phase differs from the current one."""
        start_phase = self.current_phase
        deadline = time.monotonic() + timeout

        while time.monotonic() < deadline:
            phase = await self.detect_phase()
            if phase != start_phase:
                return phase
            await asyncio.sleep(self._poll_interval)

        raise PhaseWaitTimeoutError([f"not {start_phase.value}"], timeout)

    def start_polling(self, interval: float = 1.0) -> asyncio.Task:
        """Start background classification; returns the polling task."""
        if self.is_polling:
            return self._poll_task

        async def _poll() -> None:
            while True:
                try:
                    await self.detect_phase()
                except Exception as e:
                    logger.error(f"[PHASE] Polling error: {e}")
                await asyncio.sleep(interval)

        self._poll_task = create_safe_task(_poll(), name=f"phase-poll-{self._bot_id}")
        return self._poll_task

    async def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        await cancel_task_safe(task)

    def get_state_info(self) -> dict[str, Any]:
        return {
            "current": self.current_phase.value,
            "previous": self.previous_phase.value if self.previous_phase else None,
            "question_number": self.question_number,
        }

    def reset(self) -> None:
        """Reset for a new game."""
        self.current_phase = GamePhase.UNKNOWN
        self.previous_phase = None
        self.question_number = 0
        self.last_error = None


async def _await(awaitable: Awaitable[None]) -> None:
    await awaitable
