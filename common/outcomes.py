"""
Result values for best-effort side effects.

A notification publish or a callback must never fail the request that
triggered it. best_effort() runs one such operation and folds any failure into
a SideEffect value that the caller can log or return alongside its primary
outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffect:
    """Outcome of one best-effort operation."""

    name: str
    ok: bool
    detail: str = ""


@dataclass
class Outcome:
    """Primary response text plus the side effects attempted while producing it."""

    response: str
    side_effects: list[SideEffect] = field(default_factory=list)

    def failed_side_effects(self) -> list[SideEffect]:
        return [s for s in self.side_effects if not s.ok]


async def best_effort(name: str, order_id: str, op: Awaitable[object]) -> SideEffect:
    """Await op; on any exception log a warning and return a failed SideEffect."""
    try:
        result = await op
    except Exception as e:
        logger.warning("%s for order %s failed: %s", name, order_id, e)
        return SideEffect(name=name, ok=False, detail=f"{type(e).__name__}: {e}")
    logger.info("%s for order %s succeeded", name, order_id)
    return SideEffect(name=name, ok=True, detail="" if result is None else str(result))
