"""Timing helpers for human-like pacing.

All delays are expressed in milliseconds to match profile reaction times.
"""

import asyncio
import random


def random_delay(min_ms: int, max_ms: int, rng: random.Random | None = None) -> int:
    """Uniform integer delay in [min_ms, max_ms] (inclusive)."""
    rng = rng or random
    if max_ms <= min_ms:
        return int(min_ms)
    return rng.randint(int(min_ms), int(max_ms))


async def sleep_ms(ms: float) -> None:
    """Sleep for a duration given in milliseconds."""
    if ms > 0:
        await asyncio.sleep(ms / 1000)
    else:
        # Still yield so callers remain cooperative
        await asyncio.sleep(0)


async def random_sleep(min_ms: int, max_ms: int, rng: random.Random | None = None) -> int:
    """Sleep for a random duration within a range and return it."""
    delay = random_delay(min_ms, max_ms, rng)
    await sleep_ms(delay)
    return delay
