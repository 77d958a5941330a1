"""Browser driver interface.

Everything the agent knows about the game page comes through a BrowserDriver.
Any call may raise TransientDriverError (retry in place) or
RecoverableSessionError (tear the session down and start again).
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from trivia_bots.bot.phase import PageSignals
    from trivia_bots.bot.profile import BotProfile


class QuestionModality(str, Enum):
    """How a question expects to be answered."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    NUMBER_INPUT = "number_input"
    TEXT_INPUT = "text_input"
    DRAG_REORDER = "drag_reorder"
    CLICKABLE_AREA = "clickable_area"
    IMAGE = "image"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AnswerOption:
    index: int
    text: str
    kind: str = "generic"


@dataclass
class AnswerOptions:
    """Options found on the current question."""

    modality: QuestionModality = QuestionModality.UNKNOWN
    options: list[AnswerOption] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.options)

    def label(self, index: int) -> str:
        """Human-readable label of an option, for logs."""
        if self.modality == QuestionModality.MULTIPLE_CHOICE and index < len(self.options):
            text = " ".join(self.options[index].text.split())[:50]
            return f"{chr(65 + index)}. {text}"
        if self.modality == QuestionModality.NUMBER_INPUT:
            return "Random number (1-100)"
        if self.modality == QuestionModality.TRUE_FALSE:
            return "True" if index == 0 else "False"
        return f"Option {index + 1}"


@dataclass(frozen=True)
class RankingSnapshot:
    rank: Optional[int] = None
    points: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.rank is None and self.points is None

    def describe(self) -> str:
        if self.rank is not None:
            suffix = f" | POINTS: {self.points}" if self.points is not None else ""
            return f"RANKING: #{self.rank}{suffix}"
        if self.points is not None:
            return f"RANKING: ? | POINTS: {self.points}"
        return "RANKING: (waiting for next question...)"


_RANK_PATTERNS = (
    re.compile(r"your ranking[:\s]*#?(\d+)", re.IGNORECASE),
    re.compile(r"#(\d+)\s*(?:place|rank)", re.IGNORECASE),
    re.compile(r"(\d+)(?:st|nd|rd|th)\s*place", re.IGNORECASE),
    re.compile(r"(?:rank|place)[:\s]*#?(\d+)", re.IGNORECASE),
)
_POINTS_PATTERN = re.compile(r"(\d+)\s*point", re.IGNORECASE)


def parse_ranking(text: str) -> RankingSnapshot:
    """Extract the bot's rank and points from a ranking screen's text."""
    text = text or ""
    rank = None
    for pattern in _RANK_PATTERNS:
        match = pattern.search(text)
        if match:
            rank = int(match.group(1))
            break

    points_match = _POINTS_PATTERN.search(text)
    points = int(points_match.group(1)) if points_match else None
    return RankingSnapshot(rank=rank, points=points)


class BrowserDriver(ABC):
    """One bot's browser session on the game page."""

    @abstractmethod
    async def start(self) -> None:
        """Launch the browser and open a page."""

    @abstractmethod
    async def close(self) -> None:
        """Tear the session down. Must be safe on a partially started driver."""

    @abstractmethod
    async def navigate_to_game(self, url: str) -> None:
        pass

    @abstractmethod
    async def read_page_signals(self) -> "PageSignals":
        """Snapshot the raw signals used for phase classification."""

    @abstractmethod
    async def detect_registration_present(self) -> bool:
        pass

    @abstractmethod
    async def fill_registration_form(self, profile: "BotProfile") -> None:
        pass

    @abstractmethod
    async def click_join(self) -> bool:
        pass

    @abstractmethod
    async def handle_returning_player(self) -> bool:
        """Click through a "welcome back" screen; False when none is shown."""

    @abstractmethod
    async def get_question_text(self) -> str:
        pass

    @abstractmethod
    async def get_answer_options(self) -> AnswerOptions:
        pass

    @abstractmethod
    async def submit_answer(self, index: int, modality: QuestionModality) -> bool:
        pass

    @abstractmethod
    async def check_answer_result(self) -> Optional[bool]:
        """True when correct, False when wrong, None when undetermined."""

    @abstractmethod
    async def get_current_score(self) -> Optional[int]:
        pass

    @abstractmethod
    async def snapshot_ranking_text(self) -> str:
        pass
