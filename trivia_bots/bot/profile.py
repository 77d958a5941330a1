"""Bot profile definitions.

A profile is the static identity and behavioural parameters of one bot.
Profiles are built by the roster loader and are read-only everywhere else.
"""

import random
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

Personality = Literal["fast", "cautious", "random", "normal"]

PERSONALITIES: tuple[Personality, ...] = ("fast", "cautious", "random", "normal")

EMAIL_DOMAINS = ["gmail.com", "yahoo.com", "outlook.com", "hotmail.com"]


@dataclass(frozen=True)
class ReactionTime:
    """Reaction-time envelope in milliseconds."""

    min_ms: int = 2000
    max_ms: int = 10000
    average_ms: int = 5000

    @property
    def spread(self) -> int:
        return self.max_ms - self.min_ms


@dataclass(frozen=True)
class BotProfile:
    """Bot profile with identity and behavioural parameters."""

    bot_id: str
    nickname: str

    # Identity used for registration forms
    name: str = "Anonymous"
    email: str = "player@example.com"
    phone: str = ""
    country_code: str = "+1"
    team: Optional[str] = None

    # Performance
    accuracy: float = 0.70
    # Per-category overrides of the baseline, e.g. {"hockey": 0.8}
    knowledge_areas: dict[str, float] = field(default_factory=dict)

    # Timing and personality
    reaction_time: ReactionTime = field(default_factory=ReactionTime)
    personality: Personality = "normal"
    consistency: float = 0.8  # 1.0 = no answer variance

    # Join behaviour
    late_join_chance: float = 0.10
    no_show_chance: float = 0.03
    early_leave_chance: float = 0.02

    def category_accuracy(self, category: str | None) -> float:
        """Accuracy for a category, falling back to the baseline."""
        if category and self.knowledge_areas.get(category):
            return self.knowledge_areas[category]
        return self.accuracy

    def to_dict(self) -> dict[str, Any]:
        return {
            "bot_id": self.bot_id,
            "nickname": self.nickname,
            "name": self.name,
            "email": self.email,
            "team": self.team,
            "accuracy": self.accuracy,
            "personality": self.personality,
            "consistency": self.consistency,
            "reaction_time": {
                "min": self.reaction_time.min_ms,
                "max": self.reaction_time.max_ms,
                "average": self.reaction_time.average_ms,
            },
        }


def generate_bot_id() -> str:
    return f"player-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def create_profile(**overrides: Any) -> BotProfile:
    """Create a profile, filling unspecified fields with defaults.

    ``reaction_time`` may be a ReactionTime, a dict with min/max/average keys,
    or a "min-max-average" string as found in spreadsheets.
    """
    data = dict(overrides)

    reaction = data.pop("reaction_time", None)
    if isinstance(reaction, str):
        parts = [int(p) for p in reaction.split("-")]
        reaction = ReactionTime(*parts)
    elif isinstance(reaction, dict):
        reaction = ReactionTime(
            min_ms=int(reaction.get("min", ReactionTime.min_ms)),
            max_ms=int(reaction.get("max", ReactionTime.max_ms)),
            average_ms=int(reaction.get("average", ReactionTime.average_ms)),
        )
    if reaction is not None:
        data["reaction_time"] = reaction

    areas = data.pop("knowledge_areas", None)
    if areas:
        data["knowledge_areas"] = {str(k): float(v) for k, v in areas.items()}

    if not data.get("bot_id"):
        data["bot_id"] = generate_bot_id()
    data.setdefault("nickname", "Player")

    return BotProfile(**data)


def validate_profile(profile: BotProfile) -> list[str]:
    """Validate a profile.

    Returns:
        List of validation errors (empty when valid)
    """
    errors: list[str] = []

    if not profile.bot_id:
        errors.append("Profile must have an id")
    if not profile.nickname:
        errors.append("Profile must have a nickname")
    if not profile.email:
        errors.append("Profile must have an email")

    if not 0 <= profile.accuracy <= 1:
        errors.append("Accuracy must be between 0 and 1")
    if not 0 <= profile.consistency <= 1:
        errors.append("Consistency must be between 0 and 1")

    if profile.reaction_time.min_ms >= profile.reaction_time.max_ms:
        errors.append("Reaction time min must be less than max")

    if profile.personality not in PERSONALITIES:
        errors.append(f"Personality must be one of: {', '.join(PERSONALITIES)}")

    return errors


def generate_random_phone(country_code: str = "+1", rng: random.Random | None = None) -> str:
    """Generate a random phone number for the given dial code."""
    rng = rng or random
    area = rng.randint(100, 999)
    exchange = rng.randint(100, 999)
    subscriber = rng.randint(1000, 9999)
    return f"{country_code}{area}{exchange}{subscriber}"


def generate_email(nickname: str, rng: random.Random | None = None) -> str:
    """Generate a plausible email address from a nickname."""
    rng = rng or random
    sanitized = re.sub(r"[^a-z0-9]", "", nickname.lower()) or "player"
    return f"{sanitized}{rng.randint(0, 999)}@{rng.choice(EMAIL_DOMAINS)}"
