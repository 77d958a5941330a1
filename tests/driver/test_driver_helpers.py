"""Driver-side helpers that need no browser: ranking text, phones, error mapping."""

import pytest
from playwright.async_api import Error as PlaywrightError

from trivia_bots.driver.base import (
    AnswerOption,
    AnswerOptions,
    QuestionModality,
    RankingSnapshot,
    parse_ranking,
)
from trivia_bots.driver.playwright_driver import PlaywrightDriver, translate_error
from trivia_bots.driver.selectors import (
    DEFAULT_DIAL_CODE,
    DEFAULT_PHONE_LENGTH,
    country_phone_length,
    split_phone,
)
from trivia_bots.utils.errors import RecoverableSessionError, TransientDriverError


# =============================================================================
# Ranking
# =============================================================================


class TestParseRanking:
    @pytest.mark.parametrize(
        "text,rank,points",
        [
            ("Your ranking: #4 with 350 points", 4, 350),
            ("YOUR RANKING 12", 12, None),
            ("#2 place overall", 2, None),
            ("You finished 3rd place - 90 Points", 3, 90),
            ("Rank: 7", 7, None),
            ("1200 points so far", None, 1200),
            ("Waiting for the next question", None, None),
            ("", None, None),
        ],
    )
    def test_patterns(self, text, rank, points):
        assert parse_ranking(text) == RankingSnapshot(rank=rank, points=points)

    def test_describe(self):
        assert RankingSnapshot(4, 350).describe() == "RANKING: #4 | POINTS: 350"
        assert RankingSnapshot(None, 90).describe() == "RANKING: ? | POINTS: 90"
        assert RankingSnapshot().is_empty


class TestAnswerOptions:
    def test_labels_by_modality(self):
        choice = AnswerOptions(
            QuestionModality.MULTIPLE_CHOICE,
            [AnswerOption(0, "A.  Paris"), AnswerOption(1, "B. Rome")],
        )
        assert choice.label(1) == "B. B. Rome"
        assert len(choice) == 2

        assert AnswerOptions(QuestionModality.TRUE_FALSE).label(0) == "True"
        assert AnswerOptions(QuestionModality.TRUE_FALSE).label(1) == "False"
        assert AnswerOptions(QuestionModality.NUMBER_INPUT).label(0) == "Random number (1-100)"
        assert AnswerOptions(QuestionModality.IMAGE).label(2) == "Option 3"


# =============================================================================
# Phones
# =============================================================================


class TestPhones:
    @pytest.mark.parametrize(
        "phone,expected",
        [
            ("+14155551234", ("1", "4155551234")),
            ("+49 151 1234 5678", ("49", "15112345678")),
            ("+353 87 123 4567", ("353", "871234567")),
            ("0151 2345678", (DEFAULT_DIAL_CODE, "01512345678")),
        ],
    )
    def test_split_phone(self, phone, expected):
        assert split_phone(phone) == expected

    def test_country_phone_length(self):
        assert country_phone_length("+1") == 10
        assert country_phone_length("44") == 10
        assert country_phone_length("+999") == DEFAULT_PHONE_LENGTH


# =============================================================================
# Error mapping
# =============================================================================


class TestErrorMapping:
    def test_closed_target_is_session_loss(self):
        error = translate_error(PlaywrightError("Target closed"), "click_join")

        assert isinstance(error, RecoverableSessionError)
        assert error.recoverable
        assert error.details == {"operation": "click_join"}

    def test_timeout_is_transient(self):
        error = translate_error(PlaywrightError("Timeout 30000ms exceeded."), "navigate_to_game")

        assert isinstance(error, TransientDriverError)
        assert not error.recoverable
        assert "navigate_to_game" in error.message

    @pytest.mark.asyncio
    async def test_unstarted_driver_reports_closed_browser(self, settings):
        driver = PlaywrightDriver(bot_id="player-1", settings=settings)

        with pytest.raises(RecoverableSessionError, match="Browser closed"):
            await driver.navigate_to_game("https://www.crowd.live/TEST1")

        assert driver.is_started is False
        # Closing a driver that never started is a no-op
        await driver.close()
