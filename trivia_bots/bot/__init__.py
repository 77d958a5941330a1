"""Trivia bot fleet.

Simulated players that join a browser-hosted trivia game, register, and
answer questions with human-like accuracy and timing.

Key components:
- SessionCoordinator: Owns one playthrough and its lifecycle
- BotPool: Admits agents under a concurrency ceiling with staggered launches
- BotAgent: Plays one profile through one game, with retry and recovery
- PhaseDetector: Classifies the page into game phases
- BehaviorModel: Decides correctness, answer timing and join timing
"""

from trivia_bots.bot.agent import AgentResult, BotAgent
from trivia_bots.bot.behavior import BehaviorModel
from trivia_bots.bot.coordinator import SessionCoordinator, SessionRecord, SessionStatus
from trivia_bots.bot.phase import GamePhase, PhaseDetector
from trivia_bots.bot.pool import BotPool, PoolResults
from trivia_bots.bot.profile import BotProfile, create_profile

__all__ = [
    "SessionCoordinator",
    "SessionRecord",
    "SessionStatus",
    "BotPool",
    "PoolResults",
    "BotAgent",
    "AgentResult",
    "PhaseDetector",
    "GamePhase",
    "BehaviorModel",
    "BotProfile",
    "create_profile",
]
