"""
Session state machine.

scheduled -> active -> {paused <-> active} -> completed, with cancelled reachable
from any non-terminal state and archive (soft delete) allowed only from a
terminal state. All functions are pure: they take a session and return a new
one, or raise InvalidTransitionError for an event that is not valid in the
current state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import uuid4

from draft.logic.enums import DraftAction, DraftStatus, OrderType
from draft.logic.exceptions import InvalidDraftConfigurationError, InvalidTransitionError
from draft.logic.order import generate_draft_order
from draft.logic.types import (
    ActivePhase,
    CancelledPhase,
    CompletedPhase,
    DraftSession,
    PausedPhase,
    ScheduledPhase,
)

if TYPE_CHECKING:
    from datetime import datetime

    from draft.logic.clock import TurnClock

ALLOWED_ACTIONS: dict[DraftStatus, frozenset[DraftAction]] = {
    DraftStatus.SCHEDULED: frozenset({DraftAction.START, DraftAction.CANCEL}),
    DraftStatus.ACTIVE: frozenset({DraftAction.PAUSE, DraftAction.CANCEL, DraftAction.COMPLETE}),
    DraftStatus.PAUSED: frozenset({DraftAction.RESUME, DraftAction.CANCEL}),
    DraftStatus.COMPLETED: frozenset({DraftAction.ARCHIVE}),
    DraftStatus.CANCELLED: frozenset({DraftAction.ARCHIVE}),
}


def new_session(  # noqa: PLR0913
    *,
    league_id: str,
    season_id: str,
    name: str,
    team_ids: list[str],
    total_rounds: int,
    pick_timer_seconds: int,
    now: datetime,
    order_type: OrderType = OrderType.SNAKE,
    custom_order: list[str] | None = None,
    auto_pick_enabled: bool = True,
    created_by: str = "system",
    session_id: str | None = None,
) -> DraftSession:
    """Build a new session in scheduled status.

    A zero-round draft has nothing to pick and is created already completed.
    """
    if pick_timer_seconds <= 0:
        raise InvalidDraftConfigurationError(f"pick_timer_seconds must be positive, got {pick_timer_seconds}")
    draft_order = generate_draft_order(team_ids, total_rounds, order_type, custom_order)
    phase = ScheduledPhase() if draft_order else CompletedPhase(completed_at=now)
    return DraftSession(
        id=session_id or uuid4().hex,
        league_id=league_id,
        season_id=season_id,
        name=name,
        team_ids=tuple(team_ids),
        order_type=order_type,
        total_rounds=total_rounds,
        draft_order=tuple(draft_order),
        pick_timer_seconds=pick_timer_seconds,
        auto_pick_enabled=auto_pick_enabled,
        phase=phase,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )


def _check_allowed(session: DraftSession, action: DraftAction) -> None:
    if action not in ALLOWED_ACTIONS[session.status]:
        raise InvalidTransitionError(session.status, action)


def touch(session: DraftSession, now: datetime, **updates: object) -> DraftSession:
    """Return a copy with the given updates, a bumped version and a new updated_at."""
    updated_at = max(now, session.updated_at)
    return session.model_copy(update={**updates, "version": session.version + 1, "updated_at": updated_at})


def arm_turn(session: DraftSession, clock: TurnClock, now: datetime) -> ActivePhase:
    """Active phase for the pick at the cursor with a full, fresh pick window."""
    return ActivePhase(
        turn_started_at=now,
        timer_expires_at=clock.arm(session.pick_timer_seconds, at=now),
    )


def apply_action(session: DraftSession, action: DraftAction, clock: TurnClock, now: datetime) -> DraftSession:
    """Apply an administrative event and return the transitioned session."""
    _check_allowed(session, action)

    if action == DraftAction.START:
        return touch(session, now, phase=arm_turn(session, clock, now), started_at=now)
    if action == DraftAction.PAUSE:
        return touch(session, now, phase=PausedPhase(paused_at=now))
    if action == DraftAction.RESUME:
        # partially elapsed time is not preserved across a pause
        return touch(session, now, phase=arm_turn(session, clock, now))
    if action == DraftAction.CANCEL:
        return touch(session, now, phase=CancelledPhase(cancelled_at=now, cancelled_from=session.status))
    if action == DraftAction.COMPLETE:
        if session.current_pick_index < session.total_picks:
            raise InvalidTransitionError(session.status, action)
        return touch(session, now, phase=CompletedPhase(completed_at=now))
    # ARCHIVE
    if session.archived_at is not None:
        raise InvalidTransitionError(session.status, action)
    return touch(session, now, archived_at=now)


def advance_cursor(session: DraftSession, clock: TurnClock, now: datetime) -> DraftSession:
    """Move past the pick at the cursor.

    Re-arms the turn clock for the next pick, or completes the session when the
    cursor reaches the end of the draft order.
    """
    _check_allowed(session, DraftAction.COMPLETE)
    next_index = session.current_pick_index + 1
    if next_index > session.total_picks:
        raise InvalidTransitionError(session.status, DraftAction.COMPLETE)
    advanced = session.model_copy(update={"current_pick_index": next_index})
    if next_index == session.total_picks:
        return touch(advanced, now, phase=CompletedPhase(completed_at=now))
    return touch(advanced, now, phase=arm_turn(advanced, clock, now))
