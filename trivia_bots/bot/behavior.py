"""Behavior model for human-like answering.

Decides whether a bot answers correctly, which option it clicks, how long it
"thinks", and when (or whether) it joins. Mutable per-profile counters live in
PlayerRunState records owned by one BehaviorModel instance; each record is
touched only by the agent playing that profile.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Sequence

from trivia_bots.bot.profile import BotProfile
from trivia_bots.utils.timing import random_delay

AnswerReason = Literal["correct-known", "intentional-wrong", "guess-biased", "guess-random"]
JoinReason = Literal["no-show", "late", "on-time"]

MIN_PROBABILITY = 0.10
MAX_PROBABILITY = 0.95

HOT_STREAK = 3
STREAK_MODIFIER = 0.10
FATIGUE_PER_ANSWER = 0.02
FATIGUE_WEIGHT = 0.5
DIFFICULTY_WEIGHT = 0.2
CONSISTENCY_VARIANCE = 0.2

PERSONALITY_DELAY_FACTOR = {
    "fast": 0.7,
    "cautious": 1.3,
    "normal": 1.0,
}

LATE_JOIN_RANGE_MS = (30_000, 120_000)
ON_TIME_JOIN_RANGE_MS = (1_000, 10_000)


@dataclass
class PlayerRunState:
    """Mutable per-profile counters for one session."""

    questions_answered: int = 0
    correct_answers: int = 0
    streak: int = 0  # positive = consecutive correct, negative = consecutive wrong
    last_answer_correct: Optional[bool] = None
    fatigue: float = 0.0

    @property
    def is_hot(self) -> bool:
        return self.streak >= HOT_STREAK

    @property
    def is_cold(self) -> bool:
        return self.streak <= -HOT_STREAK

    def record_answer(self, was_correct: bool) -> None:
        self.questions_answered += 1
        if was_correct:
            self.correct_answers += 1
            self.streak = max(0, self.streak) + 1
        else:
            self.streak = min(0, self.streak) - 1
        self.last_answer_correct = was_correct
        self.fatigue += FATIGUE_PER_ANSWER

    def accuracy_modifier(self) -> float:
        """Streak bonus/penalty minus the fatigue penalty."""
        modifier = 0.0
        if self.is_hot:
            modifier += STREAK_MODIFIER
        if self.is_cold:
            modifier -= STREAK_MODIFIER
        modifier -= self.fatigue * FATIGUE_WEIGHT
        return modifier

    def reset(self) -> None:
        self.questions_answered = 0
        self.correct_answers = 0
        self.streak = 0
        self.last_answer_correct = None
        self.fatigue = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "questions_answered": self.questions_answered,
            "correct_answers": self.correct_answers,
            "accuracy": (
                self.correct_answers / self.questions_answered
                if self.questions_answered
                else 0.0
            ),
            "current_streak": self.streak,
            "is_hot": self.is_hot,
            "is_cold": self.is_cold,
            "fatigue": self.fatigue,
        }


@dataclass(frozen=True)
class AnswerDecision:
    """Which option to pick and how long to wait before submitting."""

    index: int
    delay_ms: int
    reason: AnswerReason
    expected_correct: bool


@dataclass(frozen=True)
class JoinDecision:
    """Outcome of the join-timing draw."""

    should_join: bool
    delay_ms: int
    reason: JoinReason


@dataclass(frozen=True)
class TypingCorrection:
    position: int
    wrong_char: str
    delay_ms: int


@dataclass
class TypingPlan:
    text: str
    delays_ms: list[int] = field(default_factory=list)
    corrections: list[TypingCorrection] = field(default_factory=list)

    @property
    def total_ms(self) -> int:
        return sum(self.delays_ms) + sum(c.delay_ms for c in self.corrections)


class BehaviorModel:
    """Statistical model of one fleet's answering behaviour.

    Pass an explicit ``random.Random`` to make every draw reproducible.
    """

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()
        self._states: dict[str, PlayerRunState] = {}

    @property
    def rng(self) -> random.Random:
        return self._rng

    def get_state(self, profile: BotProfile) -> PlayerRunState:
        """Get or create the run state for a profile."""
        state = self._states.get(profile.bot_id)
        if state is None:
            state = PlayerRunState()
            self._states[profile.bot_id] = state
        return state

    # ------------------------------------------------------------------
    # Correctness
    # ------------------------------------------------------------------

    def correctness_probability(
        self,
        profile: BotProfile,
        state: PlayerRunState | None = None,
        category: str | None = None,
        difficulty: float = 0.5,
    ) -> float:
        """Probability that the next answer is correct, in [0.10, 0.95]."""
        state = state if state is not None else self.get_state(profile)

        probability = profile.category_accuracy(category)
        probability += state.accuracy_modifier()
        probability -= difficulty * DIFFICULTY_WEIGHT

        variance = (1 - profile.consistency) * CONSISTENCY_VARIANCE
        probability += (self._rng.random() - 0.5) * variance

        return max(MIN_PROBABILITY, min(MAX_PROBABILITY, probability))

    def decide_correctness(
        self,
        profile: BotProfile,
        state: PlayerRunState | None = None,
        category: str | None = None,
        difficulty: float = 0.5,
    ) -> bool:
        """Bernoulli draw against the correctness probability."""
        probability = self.correctness_probability(profile, state, category, difficulty)
        return self._rng.random() < probability

    # ------------------------------------------------------------------
    # Answer selection
    # ------------------------------------------------------------------

    def select_answer(
        self,
        profile: BotProfile,
        options: Sequence[Any],
        correct_index: int | None = None,
        category: str | None = None,
        difficulty: float = 0.5,
    ) -> AnswerDecision:
        """Pick an option index and a pre-submission delay.

        Raises:
            ValueError: If there are no options to choose from
        """
        if not options:
            raise ValueError("Cannot select an answer without options")

        should_be_correct = self.decide_correctness(
            profile, category=category, difficulty=difficulty
        )
        delay = self.answer_delay(profile, difficulty)
        count = len(options)

        if correct_index is not None:
            if should_be_correct:
                index, reason = correct_index, "correct-known"
            else:
                wrong = [i for i in range(count) if i != correct_index]
                # Single-option questions leave nothing to get wrong
                index = self._rng.choice(wrong) if wrong else correct_index
                reason = "intentional-wrong"
        elif should_be_correct:
            # Earlier options are favoured when guessing
            weights = [max(0.1, 1 - i * 0.2) for i in range(count)]
            index, reason = self.weighted_index(weights), "guess-biased"
        else:
            index, reason = self._rng.randrange(count), "guess-random"

        return AnswerDecision(
            index=index,
            delay_ms=delay,
            reason=reason,
            expected_correct=should_be_correct,
        )

    def weighted_index(self, weights: Sequence[float]) -> int:
        total = sum(weights)
        remaining = self._rng.random() * total
        for i, weight in enumerate(weights):
            remaining -= weight
            if remaining <= 0:
                return i
        return len(weights) - 1

    def record_answer(self, profile: BotProfile, was_correct: bool) -> PlayerRunState:
        """Feed an observed answer result back into the run state."""
        state = self.get_state(profile)
        state.record_answer(was_correct)
        return state

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def answer_delay(self, profile: BotProfile, difficulty: float = 0.5) -> int:
        """Thinking time in ms, always within the profile's reaction envelope."""
        reaction = profile.reaction_time

        delay = float(reaction.average_ms)
        delay += (self._rng.random() - 0.5) * reaction.spread * 0.3
        delay += difficulty * random_delay(500, 2000, self._rng)

        if profile.personality == "random":
            delay *= 0.5 + self._rng.random()
        else:
            delay *= PERSONALITY_DELAY_FACTOR.get(profile.personality, 1.0)

        return max(reaction.min_ms, min(reaction.max_ms, math.floor(delay)))

    def join_timing(self, profile: BotProfile) -> JoinDecision:
        """Decide whether and when a bot joins.

        The no-show draw always happens before the late-join draw.
        """
        if self._rng.random() < profile.no_show_chance:
            return JoinDecision(should_join=False, delay_ms=0, reason="no-show")

        if self._rng.random() < profile.late_join_chance:
            delay = random_delay(*LATE_JOIN_RANGE_MS, rng=self._rng)
            return JoinDecision(should_join=True, delay_ms=delay, reason="late")

        delay = random_delay(*ON_TIME_JOIN_RANGE_MS, rng=self._rng)
        return JoinDecision(should_join=True, delay_ms=delay, reason="on-time")

    def plan_typing(self, profile: BotProfile, text: str) -> TypingPlan:
        """Per-character delays with occasional pauses and typo corrections."""
        if profile.personality == "fast":
            low, high = 30, 80
        elif profile.personality == "cautious":
            low, high = 80, 200
        else:
            low, high = 50, 120

        plan = TypingPlan(text=text)
        for i, char in enumerate(text):
            delay = random_delay(low, high, self._rng)
            if char in " .,":
                delay += random_delay(50, 150, self._rng)
            if self._rng.random() < 0.05:
                delay += random_delay(200, 500, self._rng)
            plan.delays_ms.append(delay)

            if i > 0 and self._rng.random() < 0.02:
                shifted = max(32, ord(char) + self._rng.randint(-2, 2))
                plan.corrections.append(
                    TypingCorrection(
                        position=i,
                        wrong_char=chr(shifted),
                        delay_ms=random_delay(100, 300, self._rng),
                    )
                )
        return plan

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    def reset_player(self, profile: BotProfile) -> None:
        """Zero the run state at the start of a session."""
        self.get_state(profile).reset()

    def get_player_stats(self, profile: BotProfile) -> dict[str, Any]:
        return self.get_state(profile).to_dict()
