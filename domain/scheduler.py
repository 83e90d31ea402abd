# domain/scheduler.py
"""
Per-session round timer.

One asyncio task per running session sleeps until the session's current
deadline and then asks the session to advance. The session, not the timer,
decides whether that wake is still valid: every advance bumps a generation
counter, so a wake armed for an older round (because everybody submitted
early, or the game ended) is a no-op and the loop simply re-arms.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from domain.session import GameSession

logger = logging.getLogger(__name__)

IDLE = "IDLE"
RUNNING = "RUNNING"
ENDED = "ENDED"


class RoundScheduler:

    def __init__(self, session: "GameSession"):
        self.session = session
        self.status = IDLE  # IDLE | RUNNING | ENDED
        self.task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def start(self) -> asyncio.Task:
        """Arm the timer on the running event loop. Starting twice is a no-op."""
        if self.status == RUNNING and self.task is not None:
            return self.task
        if self.status == ENDED:
            raise RuntimeError("scheduler already ended")
        self._loop = asyncio.get_running_loop()
        self.status = RUNNING
        self.task = self._loop.create_task(round_ticker(self))
        return self.task

    def stop(self) -> None:
        """Move to ENDED and cancel the pending wake, from any thread."""
        if self.status == ENDED:
            return
        self.status = ENDED
        task, loop = self.task, self._loop
        if task is None or task.done() or loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            # the ticker ending its own game just falls out of its loop
            if asyncio.current_task() is not task:
                task.cancel()
        else:
            loop.call_soon_threadsafe(task.cancel)


async def round_ticker(scheduler: RoundScheduler) -> None:
    session = scheduler.session
    logger.info("game %s: round timer armed (%d ms/round)",
                session.session_id, session.round_duration_ms)
    try:
        while scheduler.status == RUNNING:
            generation, deadline_ms = session.round_deadline()
            if generation is None:
                break
            delay = max(0.0, (deadline_ms - session.now_ms()) / 1000.0)
            await asyncio.sleep(delay)
            if scheduler.status != RUNNING:
                break
            try:
                advanced = session.advance_if_due(generation)
            except Exception:
                # nobody awaits this task; log and stop instead of dying silently
                logger.exception("game %s: round timer failed", session.session_id)
                break
            if not advanced:
                logger.debug("game %s: stale wake for generation %d",
                             session.session_id, generation)
    except asyncio.CancelledError:
        logger.debug("game %s: round timer cancelled", session.session_id)
        raise
    finally:
        scheduler.status = ENDED
        logger.info("game %s: round timer stopped", session.session_id)
