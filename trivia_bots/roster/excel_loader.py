"""Roster loading from spreadsheet exports.

Reads the league workbook (``.xlsx``) and turns participant rows into
BotProfiles. Column names vary between exports, so every field is looked up
through a list of aliases (exact, case-insensitive, then partial match).
"""

import logging
import random
import re
import time
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from trivia_bots.bot.profile import BotProfile, create_profile
from trivia_bots.config import get_settings

logger = logging.getLogger(__name__)

GAME_URL_BASE = "https://www.crowd.live"
DEFAULT_EMAIL_DOMAIN = "tysn.game"
UNASSIGNED_TEAM = "Unassigned"

PARTICIPANT_SHEETS = ("participant", "player", "character")
GAME_SHEETS = ("game", "schedule")

ID_COLUMNS = ("Participant ID", "ParticipantID", "ID", "PlayerID", "CharacterID")
NAME_COLUMNS = ("Participant Name", "Name", "PlayerName", "CharacterName", "Full Name")
EMAIL_COLUMNS = ("Email", "E-mail")
PHONE_COLUMNS = ("Phone", "PhoneNumber", "Phone Number", "Mobile")
ACCURACY_COLUMNS = ("Percent Correct", "PercentCorrect", "Accuracy", "Avg Percent Correct")
TEAM_COLUMNS = ("Team", "Club", "ClubName")

DEFAULT_ACCURACY = 0.7
MIN_ACCURACY = 0.5
MAX_ACCURACY = 0.95


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:  # NaN
        return True
    return isinstance(value, str) and not value.strip()


def find_value(row: dict[str, Any], *names: str) -> Any:
    """Look a field up by alias: exact key, case-insensitive, then substring."""
    for name in names:
        if not _is_blank(row.get(name)):
            return row[name]
        lowered = name.lower()
        for key, value in row.items():
            if str(key).lower() == lowered and not _is_blank(value):
                return value
        for key, value in row.items():
            if lowered in str(key).lower() and not _is_blank(value):
                return value
    return None


def parse_accuracy(value: Any) -> float:
    """Convert a percent-correct cell to a 0-1 accuracy, clamped to [0.5, 0.95]."""
    accuracy = DEFAULT_ACCURACY
    if not _is_blank(value):
        try:
            parsed = float(str(value).strip().rstrip("%"))
        except ValueError:
            parsed = 0.0
        if parsed > 1:
            accuracy = parsed / 100
        elif parsed > 0:
            accuracy = parsed
    return min(MAX_ACCURACY, max(MIN_ACCURACY, accuracy))


def _as_text(value: Any) -> str:
    # Integers read from spreadsheets come back as floats ("42.0")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class ExcelRosterLoader:
    """Loads bot profiles from a league workbook."""

    def __init__(self, path: str | Path | None = None, rng: random.Random | None = None):
        self.path = Path(path) if path else get_settings().players_file
        self._rng = rng or random.Random()
        self._sheets: Optional[dict[str, pd.DataFrame]] = None

    # ------------------------------------------------------------------
    # Workbook access
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """Read every sheet of the workbook into memory.

        Returns:
            False if the file is missing or unreadable
        """
        if not self.path.exists():
            logger.warning(f"[ROSTER] Excel file not found: {self.path}")
            return False

        try:
            self._sheets = pd.read_excel(self.path, sheet_name=None, engine="openpyxl")
        except Exception as e:
            logger.error(f"[ROSTER] Failed to load Excel file {self.path}: {e}")
            return False

        logger.info(f"[ROSTER] Loaded Excel file: {self.path}")
        logger.info(f"[ROSTER] Sheets found: {', '.join(self._sheets)}")
        return True

    @property
    def sheet_names(self) -> list[str]:
        return list(self._sheets or {})

    def _ensure_loaded(self) -> bool:
        return self._sheets is not None or self.load()

    def find_sheet(self, partial_name: str) -> Optional[str]:
        """First sheet whose name contains ``partial_name`` (case-insensitive)."""
        if not self._ensure_loaded():
            return None
        needle = partial_name.lower()
        return next((name for name in self.sheet_names if needle in name.lower()), None)

    def get_sheet_rows(self, sheet_name: str) -> list[dict[str, Any]]:
        if not self._ensure_loaded():
            return []
        frame = self._sheets.get(sheet_name)
        if frame is None:
            logger.warning(f"[ROSTER] Sheet not found: {sheet_name}")
            return []
        frame = frame.dropna(how="all")
        return frame.to_dict(orient="records")

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    def load_profiles(
        self,
        limit: int = 50,
        team: str | None = None,
        sheet_name: str | None = None,
    ) -> list[BotProfile]:
        """Load bot profiles from the participants sheet.

        Args:
            limit: Maximum number of profiles returned
            team: Only keep players whose team contains this text
            sheet_name: Explicit sheet; detected by name when omitted

        Returns:
            Profiles in sheet order (empty when the workbook is unavailable)
        """
        if not self._ensure_loaded():
            logger.warning("[ROSTER] Excel file unavailable, returning empty roster")
            return []

        sheet = sheet_name
        if sheet is None:
            sheet = next(
                (found for found in map(self.find_sheet, PARTICIPANT_SHEETS) if found),
                self.sheet_names[0] if self.sheet_names else None,
            )
        if sheet is None:
            logger.warning("[ROSTER] Workbook has no sheets")
            return []

        logger.info(f"[ROSTER] Loading players from sheet: {sheet}")
        rows = self.get_sheet_rows(sheet)
        if not rows:
            logger.warning("[ROSTER] No data found in sheet")
            return []

        logger.debug(f"[ROSTER] Available columns: {', '.join(map(str, rows[0]))}")

        profiles: list[BotProfile] = []
        needle = team.lower() if team else None
        for index, row in enumerate(rows):
            profile = self.row_to_profile(row, index)
            if profile is None:
                continue
            if needle and not (profile.team and needle in profile.team.lower()):
                continue
            profiles.append(profile)
            if len(profiles) >= limit:
                break

        if team:
            logger.info(f"[ROSTER] Loaded {len(profiles)} players for team: {team}")
        else:
            logger.info(f"[ROSTER] Loaded {len(profiles)} players from Excel")
        return profiles

    def row_to_profile(self, row: dict[str, Any], index: int = 0) -> Optional[BotProfile]:
        """Map one spreadsheet row to a profile; rows without a name are skipped.

        Args:
            row: Column name to cell value
            index: Row position, part of the generated id when the row has none
        """
        name = find_value(row, *NAME_COLUMNS)
        if _is_blank(name):
            return None
        name = _as_text(name)

        raw_id = find_value(row, *ID_COLUMNS)
        if _is_blank(raw_id):
            slug = re.sub(r"\s+", "-", name).lower()
            profile_id = f"player-{slug}-{int(time.time() * 1000)}-{index}"
        else:
            profile_id = _as_text(raw_id)

        accuracy = parse_accuracy(find_value(row, *ACCURACY_COLUMNS))

        if accuracy > 0.8:
            personality = "fast"
        elif accuracy < 0.65:
            personality = "cautious"
        elif self._rng.random() > 0.8:
            personality = "random"
        else:
            personality = "normal"

        email = find_value(row, *EMAIL_COLUMNS)
        phone = find_value(row, *PHONE_COLUMNS)
        team = find_value(row, *TEAM_COLUMNS)

        return create_profile(
            bot_id=profile_id,
            nickname=f"{name.split()[0]}{self._rng.randint(1, 99)}",
            name=name,
            email=_as_text(email) if not _is_blank(email) else f"{profile_id}@{DEFAULT_EMAIL_DOMAIN}",
            phone=(
                _as_text(phone)
                if not _is_blank(phone)
                else f"+1415555{self._rng.randint(1000, 9999)}"
            ),
            accuracy=accuracy,
            personality=personality,
            team=_as_text(team) if not _is_blank(team) else None,
            reaction_time={
                "min": 1500 + self._rng.randrange(1000),
                "max": 5000 + self._rng.randrange(2000),
                "average": 3000 + self._rng.randrange(1500),
            },
            late_join_chance=self._rng.random() * 0.1,
            no_show_chance=self._rng.random() * 0.05,
        )

    def load_players_by_team(self, limit: int = 50) -> dict[str, list[BotProfile]]:
        """Group loaded profiles by team; players without one are "Unassigned"."""
        teams: dict[str, list[BotProfile]] = {}
        for profile in self.load_profiles(limit=limit):
            teams.setdefault(profile.team or UNASSIGNED_TEAM, []).append(profile)

        logger.info(f"[ROSTER] Loaded players into {len(teams)} teams")
        return teams

    def get_teams(self) -> list[str]:
        teams = {profile.team for profile in self.load_profiles(limit=500) if profile.team}
        return sorted(teams)

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    def load_games(self) -> list[dict[str, Any]]:
        """Scheduled games that carry a join code."""
        if not self._ensure_loaded():
            return []

        sheet = next((found for found in map(self.find_sheet, GAME_SHEETS) if found), None)
        if sheet is None:
            logger.warning("[ROSTER] No games sheet found")
            return []

        games = []
        for row in self.get_sheet_rows(sheet):
            code = find_value(row, "CrowdpurrCode", "Crowdpurr Code", "Code")
            if _is_blank(code):
                continue
            game_id = find_value(row, "GameID", "Game ID")
            games.append({
                "game_id": None if _is_blank(game_id) else _as_text(game_id),
                "league": row.get("League"),
                "season": row.get("Season"),
                "week": row.get("Week"),
                "date": row.get("Date"),
                "code": _as_text(code),
                "url": self.get_game_url(_as_text(code)),
            })
        return games

    @staticmethod
    def get_game_url(code: str) -> str:
        return f"{GAME_URL_BASE}/{code}"
