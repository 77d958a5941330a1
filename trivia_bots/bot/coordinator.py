"""Session coordinator.

Owns one BotPool per playthrough and its lifecycle:

    IDLE → INITIALIZING → RUNNING → COMPLETED | FAILED | STOPPED

Status changes are reported to an optional result sink on a best-effort
basis; a failing or missing sink never changes the session outcome.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from trivia_bots.bot.behavior import BehaviorModel
from trivia_bots.bot.pool import BotPool, PoolResults, make_agent_factory
from trivia_bots.bot.profile import BotProfile
from trivia_bots.config import Settings, get_settings
from trivia_bots.persistence.sink import ResultSink
from trivia_bots.utils.errors import ConfigurationError, InvalidSessionStateError

logger = logging.getLogger(__name__)

PoolFactory = Callable[[], BotPool]


class SessionStatus(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


TERMINAL_STATUSES = (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.STOPPED)


def generate_session_id() -> str:
    return f"session-{uuid.uuid4().hex}"


@dataclass
class SessionRecord:
    """One playthrough, mutated only by its coordinator."""

    session_id: str
    game_url: str = ""
    players: list[BotProfile] = field(default_factory=list)
    league: Optional[str] = None
    status: SessionStatus = SessionStatus.IDLE
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    results: Optional[PoolResults] = None

    @property
    def duration(self) -> Optional[float]:
        """Run time in seconds, once the session has ended."""
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "session_id": self.session_id,
            "game_url": self.game_url,
            "league": self.league,
            "status": self.status.value,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "total_players": len(self.players),
        }
        if self.results is not None:
            data.update(self.results.to_dict())
        return data


class SessionCoordinator:
    """Runs one session of the bot fleet against a game URL.

    Usage:
        coordinator = SessionCoordinator(game_url=url, players=profiles)
        record = await coordinator.start()
        await coordinator.cleanup()
    """

    def __init__(
        self,
        game_url: str | None = None,
        players: Iterable[BotProfile] | None = None,
        *,
        settings: Settings | None = None,
        behavior: BehaviorModel | None = None,
        pool_factory: PoolFactory | None = None,
        sink: ResultSink | None = None,
        max_concurrent: int | None = None,
        stagger_range: tuple[int, int] | None = None,
        headless: bool | None = None,
        league: str | None = None,
    ):
        self._settings = settings or get_settings()
        self._behavior = behavior or BehaviorModel()
        self._sink = sink
        self._max_concurrent = max_concurrent
        self._stagger_range = stagger_range or self._settings.stagger_range
        self._headless = headless
        self._pool_factory = pool_factory or self._default_pool_factory
        self._pool: Optional[BotPool] = None

        self.record = SessionRecord(
            session_id=generate_session_id(),
            game_url=game_url if game_url is not None else self._settings.game_url,
            players=list(players or []),
            league=league,
        )

    def _default_pool_factory(self) -> BotPool:
        agent_factory = make_agent_factory(
            self._behavior, self._settings, headless=self._headless
        )
        return BotPool(
            agent_factory,
            self._settings,
            max_concurrent=self._max_concurrent or self._settings.max_concurrent_bots,
        )

    @property
    def session_id(self) -> str:
        return self.record.session_id

    @property
    def status(self) -> SessionStatus:
        return self.record.status

    @property
    def pool(self) -> Optional[BotPool]:
        return self._pool

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def set_game_url(self, url: str) -> None:
        self.record.game_url = url
        logger.info(f"[SESSION] Game URL set: {url}")

    def set_players(self, players: Iterable[BotProfile]) -> None:
        self.record.players = list(players)
        logger.info(f"[SESSION] {len(self.record.players)} players set for session")

    def add_player(self, player: BotProfile) -> None:
        self.record.players.append(player)
        if self._pool is not None:
            self._pool.add_agent(player)

    async def initialize(self) -> None:
        """Create the pool and register the roster.

        Raises:
            InvalidSessionStateError: If the session is not idle
        """
        if self.record.status != SessionStatus.IDLE:
            raise InvalidSessionStateError(self.record.status.value, "initialize")

        self.record.status = SessionStatus.INITIALIZING
        logger.info(f"[SESSION] Initializing session {self.session_id}")

        self._pool = self._pool_factory()
        self._pool.add_agents(self.record.players)

        logger.info(f"[SESSION] Session initialized with {len(self.record.players)} players")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> SessionRecord:
        """Run the whole fleet and return the finished record.

        Raises:
            ConfigurationError: If the roster is empty or no URL is set
            InvalidSessionStateError: If the session already ran
        """
        if not self.record.players:
            raise ConfigurationError("No players in session")
        if not (self.record.game_url or "").strip():
            raise ConfigurationError("No game URL set")

        if self._pool is None:
            await self.initialize()
        elif self.record.status != SessionStatus.INITIALIZING:
            raise InvalidSessionStateError(self.record.status.value, "start")

        self.record.status = SessionStatus.RUNNING
        self.record.start_time = datetime.now(timezone.utc)
        logger.info(
            f"[SESSION] Starting session {self.session_id} at "
            f"{self.record.start_time.isoformat()}"
        )
        logger.info(f"[SESSION] Game URL: {self.record.game_url}")
        logger.info(f"[SESSION] Players: {len(self.record.players)}")

        await self._notify_status(
            SessionStatus.RUNNING,
            {
                "start_time": self.record.start_time.isoformat(),
                "game_url": self.record.game_url,
                "total_players": len(self.record.players),
            },
        )

        try:
            if self.record.status != SessionStatus.RUNNING:
                # stop() landed while "running" was being reported
                logger.info(f"[SESSION] Session {self.record.status.value} before launch")
                results = self._pool.get_results()
            else:
                # None lets the pool apply its own limit
                results = await self._pool.start_all(
                    self.record.game_url,
                    stagger_range=self._stagger_range,
                    max_concurrent=self._max_concurrent,
                )
        except Exception as e:
            self.record.end_time = datetime.now(timezone.utc)
            if self.record.status != SessionStatus.STOPPED:
                self.record.status = SessionStatus.FAILED
            logger.error(f"[SESSION] Session failed: {e}")
            await self._notify_status(
                self.record.status, {"end_time": self.record.end_time.isoformat()}
            )
            raise

        self.record.end_time = datetime.now(timezone.utc)
        self.record.results = results
        if self.record.status == SessionStatus.RUNNING:
            self.record.status = SessionStatus.COMPLETED

        logger.info(
            f"[SESSION] Session {self.record.status.value} in {self.record.duration:.1f} seconds "
            f"({results.completed} completed, {results.failed} failed)"
        )

        await self._save_result()
        await self._notify_status(
            self.record.status,
            {
                "end_time": self.record.end_time.isoformat(),
                "duration": self.record.duration,
                "completed": results.completed,
                "failed": results.failed,
            },
        )
        return self.record

    async def stop(self) -> None:
        """Stop all agents. Safe to call at any time, any number of times."""
        logger.info(f"[SESSION] Stopping session {self.session_id}")

        if self._pool is not None:
            await self._pool.stop_all()

        if self.record.status == SessionStatus.RUNNING:
            self.record.status = SessionStatus.STOPPED
            self.record.end_time = datetime.now(timezone.utc)

    async def cleanup(self) -> None:
        """Release every pool resource. Safe to call repeatedly."""
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.clear()
        logger.info(f"[SESSION] Session {self.session_id} cleaned up")

    def get_status(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.record.status.value,
            "game_url": self.record.game_url,
            "player_count": len(self.record.players),
            "start_time": self.record.start_time.isoformat() if self.record.start_time else None,
            "end_time": self.record.end_time.isoformat() if self.record.end_time else None,
            "pool_stats": self._pool.get_stats() if self._pool else None,
        }

    # ------------------------------------------------------------------
    # Persistence (best effort)
    # ------------------------------------------------------------------

    async def _notify_status(self, status: SessionStatus, fields: dict[str, Any]) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.notify_status(self.session_id, status.value, fields)
        except Exception as e:
            logger.warning(f"[SESSION] Failed to report status {status.value}: {e}")

    async def _save_result(self) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.save_session_result(self.record)
            logger.info(f"[SESSION] Results saved for {self.session_id}")
        except Exception as e:
            logger.warning(f"[SESSION] Could not save session results: {e}")
