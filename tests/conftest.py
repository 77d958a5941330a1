"""Shared fixtures for the bot fleet tests.

The browser is replaced by ScriptedDriver, which serves page signals from a
shared DriverScript. The script outlives individual drivers so a recovery
(which builds a fresh driver) continues where the previous one stopped.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Callable, Optional

import pytest

from trivia_bots.bot.agent import AgentTimings, BotAgent
from trivia_bots.bot.behavior import BehaviorModel
from trivia_bots.bot.phase import PageSignals
from trivia_bots.bot.profile import BotProfile, create_profile
from trivia_bots.config import Settings
from trivia_bots.driver.base import (
    AnswerOption,
    AnswerOptions,
    BrowserDriver,
    QuestionModality,
)


# =============================================================================
# Page signal helpers
# =============================================================================


def registration_page() -> PageSignals:
    return PageSignals.from_page("Enter your nickname to join", registration_form=True)


def question_page(seconds: int = 20) -> PageSignals:
    return PageSignals.from_page(f"Question 1 0:{seconds:02d} Which city?", answer_controls=4)


def reveal_page() -> PageSignals:
    return PageSignals.from_page("Time's up! 0:00")


def ended_page() -> PageSignals:
    return PageSignals.from_page("Game over - thank you for playing")


def error_page() -> PageSignals:
    return PageSignals.from_page("Something went wrong")


def waiting_page() -> PageSignals:
    return PageSignals.from_page("The game will start soon, hang tight")


# =============================================================================
# Scripted driver
# =============================================================================


@dataclass
class DriverScript:
    """What the fake page shows and how its calls fail.

    ``signals`` is consumed one entry per read; the last entry repeats.
    Error queues are consumed one entry per call; ``None`` means success.
    """

    signals: list[PageSignals] = field(default_factory=lambda: [ended_page()])
    navigate_errors: list[Optional[Exception]] = field(default_factory=list)
    read_errors: list[Optional[Exception]] = field(default_factory=list)
    click_join_result: bool = True
    options: int = 4
    submit_result: bool = True
    answer_result: Optional[bool] = True
    ranking_text: str = "Your ranking: #3 with 120 points"
    score: Optional[int] = 120

    reads: int = 0
    navigations: int = 0
    submissions: list[tuple[int, QuestionModality]] = field(default_factory=list)

    def next_signals(self) -> PageSignals:
        index = min(self.reads, len(self.signals) - 1)
        self.reads += 1
        return self.signals[index]


class ScriptedDriver(BrowserDriver):
    def __init__(self, script: DriverScript):
        self.script = script
        self.started = False
        self.closed = False
        self.registered = False

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def navigate_to_game(self, url: str) -> None:
        self.script.navigations += 1
        if self.script.navigate_errors:
            error = self.script.navigate_errors.pop(0)
            if error is not None:
                raise error

    async def read_page_signals(self) -> PageSignals:
        if self.script.read_errors:
            error = self.script.read_errors.pop(0)
            if error is not None:
                raise error
        return self.script.next_signals()

    async def detect_registration_present(self) -> bool:
        return True

    async def fill_registration_form(self, profile: BotProfile) -> None:
        self.registered = True

    async def click_join(self) -> bool:
        return self.script.click_join_result

    async def handle_returning_player(self) -> bool:
        return True

    async def get_question_text(self) -> str:
        return "Which city hosts the final?"

    async def get_answer_options(self) -> AnswerOptions:
        return AnswerOptions(
            modality=QuestionModality.MULTIPLE_CHOICE,
            options=[AnswerOption(i, f"Option {i}", "letter") for i in range(self.script.options)],
        )

    async def submit_answer(self, index: int, modality: QuestionModality) -> bool:
        self.script.submissions.append((index, modality))
        return self.script.submit_result

    async def check_answer_result(self) -> Optional[bool]:
        return self.script.answer_result

    async def get_current_score(self) -> Optional[int]:
        return self.script.score

    async def snapshot_ranking_text(self) -> str:
        return self.script.ranking_text


class DriverFactory:
    """Builds ScriptedDrivers over one script and remembers them."""

    def __init__(self, script: DriverScript):
        self.script = script
        self.created: list[ScriptedDriver] = []

    def __call__(self, profile: BotProfile) -> ScriptedDriver:
        driver = ScriptedDriver(self.script)
        self.created.append(driver)
        return driver


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        stagger_min_ms=0,
        stagger_max_ms=0,
        admission_poll_interval=0.01,
        agent_recovery_delay=0,
        agent_retry_backoff=0,
        phase_poll_interval=0,
        answer_delay_cap_ms=0,
        game_start_timeout=1.0,
        countdown_timeout=1.0,
    )


@pytest.fixture
def make_profile() -> Callable[..., BotProfile]:
    """Profiles that always show up on time."""

    def _make(bot_id: str = "player-1", **overrides) -> BotProfile:
        data = {
            "bot_id": bot_id,
            "nickname": f"Bot{bot_id[-1]}",
            "name": "Test Player",
            "email": f"{bot_id}@example.com",
            "no_show_chance": 0.0,
            "late_join_chance": 0.0,
        }
        data.update(overrides)
        return create_profile(**data)

    return _make


@pytest.fixture
def behavior() -> BehaviorModel:
    return BehaviorModel(rng=random.Random(42))


@pytest.fixture
def script() -> DriverScript:
    return DriverScript()


@pytest.fixture
def driver_factory(script: DriverScript) -> DriverFactory:
    return DriverFactory(script)


@pytest.fixture
def make_agent(behavior, driver_factory, settings, make_profile) -> Callable[..., BotAgent]:
    """Agents with no pauses and no background polling."""

    def _make(profile: BotProfile | None = None, **options) -> BotAgent:
        options.setdefault("background_polling", False)
        options.setdefault("timings", AgentTimings.instant())
        return BotAgent(
            profile or make_profile(),
            behavior,
            driver_factory,
            settings,
            **options,
        )

    return _make


@pytest.fixture
def pages() -> SimpleNamespace:
    """Canned page snapshots for scripting the fake browser."""
    return SimpleNamespace(
        registration=registration_page,
        question=question_page,
        reveal=reveal_page,
        ended=ended_page,
        error=error_page,
        waiting=waiting_page,
    )


class IsolatedDriverFactory:
    """Gives every profile its own script, built by ``make_script``."""

    def __init__(self, make_script: Callable[[], DriverScript]):
        self._make_script = make_script
        self.scripts: dict[str, DriverScript] = {}

    def __call__(self, profile: BotProfile) -> ScriptedDriver:
        script = self.scripts.setdefault(profile.bot_id, self._make_script())
        return ScriptedDriver(script)


@pytest.fixture
def isolated_driver_factory() -> IsolatedDriverFactory:
    """Per-profile scripts that answer one question and then see the game end."""
    return IsolatedDriverFactory(
        lambda: DriverScript(signals=[question_page()] * 4 + [ended_page()])
    )
