"""Backoff node: linear delay before the next write attempt."""

from __future__ import annotations

import asyncio
import logging

from dual_storage.graph.state import RecordState

logger = logging.getLogger(__name__)


async def run(state: RecordState, *, base_delay_s: float = 1.0) -> RecordState:
    attempt = int(state.get("attempt", 1))
    delay_s = base_delay_s * attempt
    logger.info(
        "Retrying %s %s in %.2fs (attempt %d/%d): %s",
        state.get("record_type"),
        state.get("record_id"),
        delay_s,
        attempt + 1,
        state.get("max_retries", 1),
        state.get("last_error"),
    )
    if delay_s > 0:
        await asyncio.sleep(delay_s)
    return {"status": "writing"}
