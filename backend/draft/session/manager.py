"""Draft session manager: the engine's serialization gate.

Every mutating operation on a session runs under that session's asyncio.Lock
and ends in one conditional store write. A StaleSessionError (another process
wrote first) makes the operation re-read the session and re-validate from
scratch, so the loser of a race sees the domain error the fresh state
implies. Committed changes are published as events after the lock is released;
outbound notifications are delivered by a background task so a slow webhook
never holds up a pick or an expiry.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from draft.logic.analytics import summarize_draft
from draft.logic.autopick import choose_autopick
from draft.logic.enums import DraftAction, DraftStatus, OrderType, PickType
from draft.logic.events import derive_events
from draft.logic.exceptions import (
    PlayerNotEligibleError,
    SessionNotActiveError,
    SessionNotFoundError,
    StaleSessionError,
    StorageUnavailableError,
    TeamNotInDraftError,
)
from draft.logic.machine import apply_action, new_session
from draft.logic.picks import available_pool, commit_pick, expiry_due, is_player_eligible, validate_pick
from draft.logic.projector import project_status
from draft.logic.settings import EngineSettings
from draft.logic.types import DraftQueue
from draft.session.broadcast import DraftEventBus
from draft.session.notifier import LoggingNotifier, Notifier

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence
    from datetime import datetime

    from draft.logic.analytics import DraftAnalytics
    from draft.logic.clock import TurnClock
    from draft.logic.events import DraftEvent
    from draft.logic.projector import DraftStatusView
    from draft.logic.types import DraftPick, DraftSession, PlayerRecord
    from draft.store.repository import DraftRepository, PlayerDirectory

logger = structlog.get_logger()

AUTOPICK_ACTOR = "system"

DEFAULT_OUTBOX_SIZE = 1024


class DraftSessionManager:
    def __init__(  # noqa: PLR0913
        self,
        repository: DraftRepository,
        players: PlayerDirectory,
        clock: TurnClock,
        *,
        settings: EngineSettings | None = None,
        event_bus: DraftEventBus | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._repository = repository
        self._players = players
        self._clock = clock
        self._settings = settings or EngineSettings()
        self._event_bus = event_bus or DraftEventBus()
        self._notifier = notifier or LoggingNotifier()
        self._session_locks: dict[str, asyncio.Lock] = {}  # session_id -> Lock
        self._finished_sessions: set[str] = set()  # terminal sessions whose lock is dropped on release
        self._outbox: asyncio.Queue[DraftEvent] = asyncio.Queue(maxsize=DEFAULT_OUTBOX_SIZE)
        self._delivery_task: asyncio.Task[None] | None = None

    @property
    def clock(self) -> TurnClock:
        return self._clock

    @property
    def event_bus(self) -> DraftEventBus:
        return self._event_bus

    @property
    def repository(self) -> DraftRepository:
        return self._repository

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @contextlib.asynccontextmanager
    async def _serialized(self, session_id: str) -> AsyncIterator[None]:
        """Hold the session's lock for the duration of the block.

        Unknown ids raise SessionNotFoundError before a lock is created. Once
        a session is seen terminal its lock is dropped on release; any later
        writer that races a still-queued one is caught by the version check.
        """
        lock = self._session_locks.get(session_id)
        if lock is None:
            await self._load(session_id)
            lock = self._session_locks.setdefault(session_id, asyncio.Lock())
        try:
            async with lock:
                yield
        finally:
            if session_id in self._finished_sessions and not lock.locked():
                self._finished_sessions.discard(session_id)
                if self._session_locks.get(session_id) is lock:
                    del self._session_locks[session_id]

    def _track(self, session: DraftSession) -> DraftSession:
        if session.is_terminal:
            self._finished_sessions.add(session.id)
        return session

    async def _load(self, session_id: str) -> DraftSession:
        session = await self._repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def _load_with_picks(self, session_id: str) -> tuple[DraftSession, list[DraftPick]]:
        snapshot = await self._repository.get_session_with_picks(session_id)
        if snapshot is None:
            raise SessionNotFoundError(session_id)
        return snapshot

    def _conflicts_exhausted(self, session_id: str) -> StorageUnavailableError:
        logger.error("conditional write kept conflicting", attempts=self._settings.max_commit_attempts)
        return StorageUnavailableError(f"draft session {session_id!r} is being modified concurrently, try again")

    def _dispatch(self, events: Sequence[DraftEvent]) -> None:
        """Publish committed events and queue them for the notifier. Never blocks on delivery."""
        for event in events:
            self._event_bus.publish(event)
        if self._delivery_task is None or self._delivery_task.done():
            self._delivery_task = asyncio.create_task(self._deliver_notifications())
        for event in events:
            try:
                self._outbox.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("notification outbox full, dropping event", event_type=event.type)

    async def _deliver_notifications(self) -> None:
        while True:
            event = await self._outbox.get()
            try:
                await self._notifier.notify(event)
            except Exception:
                logger.exception("failed to deliver notification", event_type=event.type)
            finally:
                self._outbox.task_done()

    async def flush_notifications(self) -> None:
        """Wait until every queued event has been handed to the notifier."""
        await self._outbox.join()

    async def aclose(self) -> None:
        """Stop notification delivery and close the notifier. Undelivered events are dropped."""
        if self._delivery_task is not None:
            self._delivery_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._delivery_task
            self._delivery_task = None
        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()
        await self._notifier.aclose()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def create_session(  # noqa: PLR0913
        self,
        *,
        league_id: str,
        season_id: str,
        name: str,
        team_ids: list[str],
        total_rounds: int,
        pick_timer_seconds: int,
        order_type: OrderType = OrderType.SNAKE,
        custom_order: list[str] | None = None,
        auto_pick_enabled: bool = True,
        created_by: str = "system",
    ) -> DraftSession:
        session = new_session(
            league_id=league_id,
            season_id=season_id,
            name=name,
            team_ids=team_ids,
            total_rounds=total_rounds,
            pick_timer_seconds=pick_timer_seconds,
            now=self._clock.now(),
            order_type=order_type,
            custom_order=custom_order,
            auto_pick_enabled=auto_pick_enabled,
            created_by=created_by,
        )
        await self._repository.create_session(session)
        logger.info(
            "draft session created",
            session_id=session.id,
            teams=session.team_count,
            total_picks=session.total_picks,
            status=session.status,
        )
        return session

    async def get_session(self, session_id: str) -> DraftSession:
        return await self._load(session_id)

    async def list_sessions(
        self,
        *,
        league_id: str | None = None,
        season_id: str | None = None,
        status: DraftStatus | None = None,
        include_archived: bool = False,
        limit: int | None = 50,
    ) -> list[DraftSession]:
        return await self._repository.list_sessions(
            league_id=league_id,
            season_id=season_id,
            status=status,
            include_archived=include_archived,
            limit=limit,
        )

    async def start(self, session_id: str) -> DraftSession:
        return await self.apply(session_id, DraftAction.START)

    async def pause(self, session_id: str) -> DraftSession:
        return await self.apply(session_id, DraftAction.PAUSE)

    async def resume(self, session_id: str) -> DraftSession:
        return await self.apply(session_id, DraftAction.RESUME)

    async def cancel(self, session_id: str) -> DraftSession:
        return await self.apply(session_id, DraftAction.CANCEL)

    async def archive(self, session_id: str) -> DraftSession:
        return await self.apply(session_id, DraftAction.ARCHIVE)

    async def apply(self, session_id: str, action: DraftAction) -> DraftSession:
        """Run an administrative state-machine event against a session."""
        async with self._serialized(session_id):
            for _ in range(self._settings.max_commit_attempts):
                before = self._track(await self._load(session_id))
                now = self._clock.now()
                after = apply_action(before, action, self._clock, now)
                try:
                    await self._repository.update_session(after, expected_version=before.version)
                except StaleSessionError:
                    logger.info("session changed concurrently, retrying", session_id=session_id, action=action)
                    continue
                self._track(after)
                break
            else:
                raise self._conflicts_exhausted(session_id)

        logger.info("draft session transitioned", session_id=session_id, action=action, status=after.status)
        self._dispatch(derive_events(before, after, now))
        return after

    # ------------------------------------------------------------------
    # Picks
    # ------------------------------------------------------------------

    async def submit_pick(
        self,
        session_id: str,
        *,
        team_id: str,
        player_id: str,
        picked_by: str = "",
    ) -> DraftPick:
        """Validate and commit a manual pick for the team on the clock."""
        # the pick window is judged by arrival time, not by when the lock frees up
        requested_at = self._clock.now()
        player = await self._players.get_player(player_id)

        async with self._serialized(session_id):
            for _ in range(self._settings.max_commit_attempts):
                before = self._track(await self._load(session_id))
                picked_player_ids = await self._repository.get_picked_player_ids(session_id)
                validate_pick(
                    before,
                    team_id=team_id,
                    player_id=player_id,
                    player=player,
                    picked_player_ids=picked_player_ids,
                    requested_at=requested_at,
                    clock=self._clock,
                    grace_seconds=self._settings.late_pick_grace_seconds,
                )
                now = self._clock.now()
                after, pick = commit_pick(
                    before,
                    player_id=player_id,
                    clock=self._clock,
                    now=now,
                    picked_by=picked_by or team_id,
                )
                queue = await self._queue_without(session_id, team_id, player_id, now, updated_by=pick.picked_by)
                try:
                    await self._repository.commit_pick(after, pick, expected_version=before.version, queue=queue)
                except StaleSessionError:
                    logger.info("session changed concurrently, re-validating pick", session_id=session_id)
                    continue
                self._track(after)
                break
            else:
                raise self._conflicts_exhausted(session_id)

        logger.info(
            "pick committed",
            session_id=session_id,
            team_id=team_id,
            player_id=player_id,
            overall_pick=pick.overall_pick,
        )
        self._dispatch(derive_events(before, after, now, pick))
        return pick

    async def expire_pick(self, session_id: str, expected_pick_index: int) -> DraftPick | None:
        """Resolve the pick at ``expected_pick_index`` if its window has run out.

        Returns None (and writes nothing) when the session is no longer active,
        the cursor has moved on, or the deadline has not passed yet. Otherwise
        autopicks from the team's queue or the best available player, or
        records a skipped slot when autopick is off or the pool is empty.
        """
        if await self._repository.get_session(session_id) is None:
            return None
        async with self._serialized(session_id):
            for _ in range(self._settings.max_commit_attempts):
                before = await self._repository.get_session(session_id)
                if before is None or self._track(before).current_pick_index != expected_pick_index:
                    return None
                now = self._clock.now()
                if not expiry_due(before, self._clock, now, self._settings.late_pick_grace_seconds):
                    return None

                team_id = before.draft_order[before.current_pick_index]
                player_id = None
                queue = None
                if before.auto_pick_enabled:
                    player_id, queue = await self._choose_autopick(before, team_id, now)
                pick_type = PickType.AUTO if player_id is not None else PickType.SKIPPED

                after, pick = commit_pick(
                    before,
                    player_id=player_id,
                    clock=self._clock,
                    now=now,
                    pick_type=pick_type,
                    picked_by=AUTOPICK_ACTOR,
                )
                try:
                    await self._repository.commit_pick(after, pick, expected_version=before.version, queue=queue)
                except StaleSessionError:
                    logger.info("session changed concurrently, re-checking expiry", session_id=session_id)
                    continue
                self._track(after)
                break
            else:
                raise self._conflicts_exhausted(session_id)

        logger.info(
            "pick window expired",
            session_id=session_id,
            team_id=team_id,
            pick_type=pick_type,
            player_id=player_id,
            overall_pick=pick.overall_pick,
        )
        self._dispatch(derive_events(before, after, now, pick))
        return pick

    async def _choose_autopick(
        self,
        session: DraftSession,
        team_id: str,
        now: datetime,
    ) -> tuple[str | None, DraftQueue | None]:
        picked_player_ids = await self._repository.get_picked_player_ids(session.id)
        players = await self._players.list_players(session.league_id)
        available = available_pool(session, players, picked_player_ids)
        queue = await self._repository.get_queue(session.id, team_id)
        player_id = choose_autopick(queue, available)
        if player_id is None:
            return None, None
        return player_id, await self._queue_without(session.id, team_id, player_id, now, queue=queue)

    async def _queue_without(
        self,
        session_id: str,
        team_id: str,
        player_id: str,
        now: datetime,
        *,
        queue: DraftQueue | None = None,
        updated_by: str = AUTOPICK_ACTOR,
    ) -> DraftQueue | None:
        """The team's queue with a just-picked player removed, or None if unchanged."""
        if queue is None:
            queue = await self._repository.get_queue(session_id, team_id)
        if queue is None or player_id not in queue.player_ids:
            return None
        return queue.model_copy(
            update={
                "player_ids": tuple(p for p in queue.player_ids if p != player_id),
                "updated_at": now,
                "updated_by": updated_by,
            },
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def get_status(self, session_id: str) -> DraftStatusView:
        """Current status snapshot. Lock-free; never transitions the session."""
        session, picks = await self._load_with_picks(session_id)
        players = await self._players.list_players(session.league_id)
        picked_player_ids = {p.player_id for p in picks if p.player_id is not None}
        return project_status(
            session,
            picks=picks,
            available=available_pool(session, players, picked_player_ids),
            clock=self._clock,
            recent_window=self._settings.recent_picks_window,
        )

    async def get_picks(self, session_id: str) -> list[DraftPick]:
        await self._load(session_id)
        return await self._repository.list_picks(session_id)

    async def get_analytics(self, session_id: str) -> DraftAnalytics:
        session, picks = await self._load_with_picks(session_id)
        return summarize_draft(session, picks)

    # ------------------------------------------------------------------
    # Team queues and the player directory
    # ------------------------------------------------------------------

    async def get_queue(self, session_id: str, team_id: str) -> DraftQueue:
        session = await self._load(session_id)
        if team_id not in session.team_ids:
            raise TeamNotInDraftError(team_id)
        queue = await self._repository.get_queue(session_id, team_id)
        if queue is None:
            return DraftQueue(session_id=session_id, team_id=team_id, updated_at=session.created_at)
        return queue

    async def set_queue(
        self,
        session_id: str,
        team_id: str,
        player_ids: Sequence[str],
        *,
        updated_by: str = "",
    ) -> DraftQueue:
        """Replace a team's preference list. Duplicate ids keep their first position."""
        ordered = tuple(dict.fromkeys(player_ids))
        async with self._serialized(session_id):
            session = self._track(await self._load(session_id))
            if session.is_terminal:
                raise SessionNotActiveError(session.status)
            if team_id not in session.team_ids:
                raise TeamNotInDraftError(team_id)
            for player_id in ordered:
                if not is_player_eligible(session, await self._players.get_player(player_id)):
                    raise PlayerNotEligibleError(player_id)
            queue = DraftQueue(
                session_id=session_id,
                team_id=team_id,
                player_ids=ordered,
                updated_at=self._clock.now(),
                updated_by=updated_by or team_id,
            )
            await self._repository.save_queue(queue)
        logger.info("draft queue updated", session_id=session_id, team_id=team_id, size=len(ordered))
        return queue

    async def upsert_players(self, players: Sequence[PlayerRecord]) -> int:
        await self._players.upsert_players(players)
        return len(players)

    async def list_active_sessions(self) -> list[DraftSession]:
        return await self._repository.list_sessions(status=DraftStatus.ACTIVE, limit=None)
