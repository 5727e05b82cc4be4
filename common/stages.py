"""
Simulated pipeline stages.

Each service models its processing stages as async methods on a Stages class.
The default implementations only sleep for a bounded time; a subclass can
substitute real I/O per stage without touching the order in which a pipeline
calls them.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class SimulatedStages:
    """Base class holding the latency scale for simulated work."""

    def __init__(self, delay_scale: float = 1.0) -> None:
        if delay_scale < 0:
            raise ValueError("delay_scale must be >= 0")
        self.delay_scale = delay_scale

    async def work(self, stage: str, delay_ms: int) -> None:
        """Stand-in for one bounded unit of work."""
        logger.debug("stage %s (%d ms)", stage, delay_ms)
        await asyncio.sleep(delay_ms * self.delay_scale / 1000.0)
