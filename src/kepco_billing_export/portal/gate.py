from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import GateTimeout


logger = logging.getLogger(__name__)
T = TypeVar("T")


async def poll_until(
    probe: Callable[[], Awaitable[Optional[T]]],
    *,
    timeout_s: float,
    interval_s: float,
    description: str = "condition",
) -> T:
    """
    Await `probe()` every `interval_s` seconds until it returns a truthy value, and return that value.

    Probe errors count as "not yet" (the page is often mid-render). Raises GateTimeout once
    `timeout_s` has elapsed without success. The probe always runs at least once.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max(0.0, float(timeout_s))
    attempts = 0

    while True:
        attempts += 1
        try:
            result = await probe()
        except Exception as e:
            logger.debug("Probe for %s failed (attempt %d): %s", description, attempts, e)
            result = None
        if result:
            return result

        remaining = deadline - loop.time()
        if remaining <= 0:
            raise GateTimeout(f"Timed out after {timeout_s:.1f}s waiting for {description} ({attempts} probes)")
        await asyncio.sleep(min(float(interval_s), remaining))
