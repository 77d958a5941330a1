"""Worker pool.

Admits agents one at a time in roster order, never letting more than
``max_concurrent`` run at once, with a random stagger between launches to
mimic players trickling in.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from trivia_bots.bot.agent import AgentResult, BotAgent, DriverFactory
from trivia_bots.bot.behavior import BehaviorModel
from trivia_bots.bot.profile import BotProfile
from trivia_bots.config import Settings, get_settings
from trivia_bots.utils.async_utils import KeyedLocks
from trivia_bots.utils.errors import AgentNotFoundError
from trivia_bots.utils.timing import random_delay

logger = logging.getLogger(__name__)

AgentFactory = Callable[[BotProfile], BotAgent]


def make_agent_factory(
    behavior: BehaviorModel,
    settings: Settings | None = None,
    driver_factory: DriverFactory | None = None,
    headless: bool | None = None,
    **agent_options: Any,
) -> AgentFactory:
    """Build the factory the pool uses to create one agent per profile.

    Without a driver factory every agent gets its own PlaywrightDriver.
    """
    settings = settings or get_settings()

    if driver_factory is None:
        from trivia_bots.driver.playwright_driver import PlaywrightDriver

        def driver_factory(profile: BotProfile) -> PlaywrightDriver:
            return PlaywrightDriver(bot_id=profile.bot_id, settings=settings, headless=headless)

    def factory(profile: BotProfile) -> BotAgent:
        return BotAgent(profile, behavior, driver_factory, settings, **agent_options)

    return factory


@dataclass
class PoolResults:
    """Aggregated outcome of a pool run."""

    total_players: int = 0
    completed: int = 0
    failed: int = 0
    players: dict[str, AgentResult] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_players": self.total_players,
            "completed": self.completed,
            "failed": self.failed,
            "players": {pid: result.to_dict() for pid, result in self.players.items()},
        }


class BotPool:
    """Bounded-concurrency pool of bot agents."""

    def __init__(
        self,
        agent_factory: AgentFactory,
        settings: Settings | None = None,
        *,
        max_concurrent: int | None = None,
        admission_poll_interval: float | None = None,
        rng: random.Random | None = None,
    ):
        self._settings = settings or get_settings()
        self._agent_factory = agent_factory
        self.max_concurrent = max_concurrent or self._settings.max_concurrent_bots
        self._poll_interval = (
            self._settings.admission_poll_interval
            if admission_poll_interval is None
            else admission_poll_interval
        )
        self._rng = rng or random.Random()

        self._agents: dict[str, BotAgent] = {}
        self._active: set[str] = set()
        self._tasks: dict[str, asyncio.Task] = {}
        self._results: dict[str, AgentResult] = {}
        self._locks = KeyedLocks()
        self._running = False
        # Sticky until clear()
        self._stop_requested = False
        self._peak_active = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def peak_active(self) -> int:
        """Highest number of simultaneously active agents seen so far."""
        return self._peak_active

    @property
    def total_count(self) -> int:
        return len(self._agents)

    def get_agent(self, profile_id: str) -> Optional[BotAgent]:
        return self._agents.get(profile_id)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_agent(self, profile: BotProfile) -> bool:
        """Register an agent for a profile; duplicates are ignored with a warning."""
        if profile.bot_id in self._agents:
            logger.warning(f"[POOL] Player {profile.bot_id} already in pool")
            return False

        self._agents[profile.bot_id] = self._agent_factory(profile)
        logger.debug(f"[POOL] Added player to pool: {profile.bot_id}")
        return True

    def add_agents(self, profiles: Iterable[BotProfile]) -> int:
        """Register many profiles.

        Returns:
            Number of agents actually added
        """
        added = sum(1 for profile in profiles if self.add_agent(profile))
        logger.info(f"[POOL] Added {added} players to pool. Total: {len(self._agents)}")
        return added

    async def remove_agent(self, profile_id: str) -> bool:
        """Stop, tear down and forget one agent."""
        async with self._locks.get(profile_id):
            agent = self._agents.pop(profile_id, None)
            if agent is None:
                return False

            agent.stop()
            task = self._tasks.pop(profile_id, None)
            if task is not None and not task.done():
                task.cancel()
            await agent.cleanup()
            self._active.discard(profile_id)

        self._locks.discard(profile_id)
        logger.debug(f"[POOL] Removed player from pool: {profile_id}")
        return True

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def _mark_active(self, profile_id: str) -> None:
        self._active.add(profile_id)
        self._peak_active = max(self._peak_active, len(self._active))

    async def _run_agent(self, profile_id: str, url: str) -> AgentResult:
        """Run an agent that is already marked active."""
        agent = self._agents.get(profile_id)
        if agent is None:
            self._active.discard(profile_id)
            raise AgentNotFoundError(profile_id)

        logger.info(f"[POOL] Starting bot: {profile_id}")
        try:
            result = await agent.run(url)
        except asyncio.CancelledError:
            agent.result.error = agent.result.error or "Stopped"
            self._results[profile_id] = agent.result
            raise
        except Exception as e:
            logger.error(f"[POOL] Bot {profile_id} failed: {e}")
            result = AgentResult(profile_id=profile_id, nickname=agent.profile.nickname, error=str(e))
        finally:
            self._active.discard(profile_id)
            self._tasks.pop(profile_id, None)

        self._results[profile_id] = result
        return result

    async def start_agent(self, profile_id: str, url: str) -> Optional[AgentResult]:
        """Run a single agent to completion.

        Raises:
            AgentNotFoundError: If no agent is registered for the id
        """
        async with self._locks.get(profile_id):
            if profile_id not in self._agents:
                raise AgentNotFoundError(profile_id)
            if profile_id in self._active:
                logger.warning(f"[POOL] Player {profile_id} is already running")
                return None
            self._mark_active(profile_id)

        return await self._run_agent(profile_id, url)

    async def _wait_for_slot(self, limit: int) -> None:
        while len(self._active) >= limit and self._running:
            await asyncio.sleep(self._poll_interval)

    async def start_all(
        self,
        url: str,
        stagger_range: tuple[int, int] | None = None,
        max_concurrent: int | None = None,
    ) -> PoolResults:
        """Launch every registered agent and wait for all of them.

        Args:
            url: Game URL
            stagger_range: (min_ms, max_ms) delay before each launch after the first
            max_concurrent: Ceiling on simultaneously active agents

        Returns:
            Aggregated results
        """
        limit = max_concurrent or self.max_concurrent
        low, high = stagger_range or self._settings.stagger_range
        if self._stop_requested:
            logger.warning("[POOL] Stop already requested, not admitting any bots")
            return self.get_results()

        profile_ids = list(self._agents)
        launched: list[asyncio.Task] = []

        self._running = True
        logger.info(f"[POOL] Starting {len(profile_ids)} bots (max concurrent: {limit})")

        for i, profile_id in enumerate(profile_ids):
            await self._wait_for_slot(limit)
            if not self._running:
                break

            if i > 0:
                await asyncio.sleep(random_delay(low, high, self._rng) / 1000)
                await self._wait_for_slot(limit)
                if not self._running:
                    break

            if profile_id not in self._agents or profile_id in self._active:
                logger.warning(f"[POOL] Skipping {profile_id}: removed or already running")
                continue

            # Marked before the task exists so the ceiling holds even transiently
            self._mark_active(profile_id)
            task = asyncio.create_task(self._run_agent(profile_id, url), name=f"agent-{profile_id}")
            self._tasks[profile_id] = task
            launched.append(task)

        if launched:
            await asyncio.gather(*launched, return_exceptions=True)

        self._running = False
        logger.info("[POOL] All bots completed")
        return self.get_results()

    async def stop_all(self) -> None:
        """Halt admission and tear down every agent, whatever it is doing."""
        logger.info("[POOL] Stopping all bots")
        self._stop_requested = True
        self._running = False

        agents = list(self._agents.values())
        for agent in agents:
            agent.stop()
        for task in list(self._tasks.values()):
            if not task.done():
                task.cancel()

        await asyncio.gather(*(agent.cleanup() for agent in agents), return_exceptions=True)
        self._active.clear()
        logger.info("[POOL] All bots stopped")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_results(self) -> PoolResults:
        """Partition recorded outcomes into completed (no error) and failed."""
        results = PoolResults(total_players=len(self._agents))
        for profile_id, result in self._results.items():
            if result.error is None:
                results.completed += 1
            else:
                results.failed += 1
            results.players[profile_id] = result
        return results

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_players": len(self._agents),
            "active_players": len(self._active),
            "peak_active": self._peak_active,
            "max_concurrent": self.max_concurrent,
            "is_running": self._running,
            "finished": len(self._results),
        }

    async def clear(self) -> None:
        """Stop everything and forget all agents and results."""
        await self.stop_all()
        self._agents.clear()
        self._results.clear()
        self._tasks.clear()
        self._locks.clear()
        self._stop_requested = False
        logger.info("[POOL] Player pool cleared")
