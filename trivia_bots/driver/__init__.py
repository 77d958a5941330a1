"""Browser drivers for the game page."""

from trivia_bots.driver.base import (
    AnswerOption,
    AnswerOptions,
    BrowserDriver,
    QuestionModality,
    RankingSnapshot,
    parse_ranking,
)

__all__ = [
    "AnswerOption",
    "AnswerOptions",
    "BrowserDriver",
    "QuestionModality",
    "RankingSnapshot",
    "parse_ranking",
]
