"""Drive pick-window expiry for active draft sessions.

The turn clock never fires on its own. ExpiryDriver keeps one asyncio task per
active session that sleeps until the armed deadline, and a periodic sweep that
catches deadlines armed by other processes or before a restart. Both invoke
DraftSessionManager.expire_pick() with the pick index they observed, so a
stale wake-up is a no-op.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from draft.logic.events import StatusChangedEvent, TurnStartedEvent
from draft.logic.exceptions import DraftError
from draft.logic.picks import expiry_due

if TYPE_CHECKING:
    from datetime import datetime

    from draft.logic.events import DraftEvent
    from draft.session.manager import DraftSessionManager

logger = structlog.get_logger()

DEFAULT_POLL_SECONDS = 1.0

# sleep slightly past the deadline so the wake-up observes it as expired
_WAKE_MARGIN_SECONDS = 0.01


class ExpiryDriver:
    def __init__(
        self,
        manager: DraftSessionManager,
        *,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        grace_seconds: float = 0,
    ) -> None:
        self._manager = manager
        self._poll_seconds = poll_seconds
        self._grace_seconds = grace_seconds
        self._tasks: dict[str, asyncio.Task[None]] = {}  # session_id -> deadline task
        self._sweep_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def pending(self, session_id: str) -> asyncio.Task[None] | None:
        return self._tasks.get(session_id)

    async def start(self) -> None:
        """Subscribe to engine events and start the sweep loop."""
        if self.running:
            return
        self._manager.event_bus.add_listener(self.on_event)
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info("expiry driver started", poll_seconds=self._poll_seconds)

    async def stop(self) -> None:
        self._manager.event_bus.remove_listener(self.on_event)
        tasks = list(self._tasks.values())
        if self._sweep_task is not None:
            tasks.append(self._sweep_task)
        self._tasks.clear()
        self._sweep_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("expiry driver stopped")

    def on_event(self, event: DraftEvent) -> None:
        """Re-arm on every new turn, disarm when a session stops being active."""
        if isinstance(event, TurnStartedEvent):
            self.schedule(event.session_id, event.overall_pick - 1, event.timer_expires_at)
        elif isinstance(event, StatusChangedEvent):
            self.cancel(event.session_id)

    def schedule(self, session_id: str, pick_index: int, expires_at: datetime) -> None:
        self.cancel(session_id)
        delay = self._manager.clock.remaining(expires_at) + self._grace_seconds + _WAKE_MARGIN_SECONDS
        self._tasks[session_id] = asyncio.create_task(self._run_deadline(session_id, pick_index, delay))

    def cancel(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        # a deadline task re-arms the next turn from inside itself; don't cancel it mid-commit
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run_deadline(self, session_id: str, pick_index: int, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self._expire(session_id, pick_index)
        except asyncio.CancelledError:
            pass
        finally:
            if self._tasks.get(session_id) is asyncio.current_task():
                del self._tasks[session_id]

    async def _expire(self, session_id: str, pick_index: int) -> None:
        try:
            await self._manager.expire_pick(session_id, pick_index)
        except DraftError as e:
            logger.warning("expiry transition failed", session_id=session_id, error_code=e.code, error=e.message)

    async def sweep(self) -> int:
        """Expire every overdue pick among active sessions. Returns how many were due."""
        now = self._manager.clock.now()
        due = [
            session
            for session in await self._manager.list_active_sessions()
            if expiry_due(session, self._manager.clock, now, self._grace_seconds)
        ]
        # sessions lock independently, so one slow commit doesn't hold up the rest
        await asyncio.gather(*(self._expire(session.id, session.current_pick_index) for session in due))
        return len(due)

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await self.sweep()
            except DraftError as e:
                logger.warning("expiry sweep failed", error_code=e.code, error=e.message)
            await asyncio.sleep(self._poll_seconds)
