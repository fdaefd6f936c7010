"""
Pick validation and application.

validate_pick() runs the checks in a fixed order and raises the first
violation. commit_pick() assumes validation passed and returns the advanced
session together with the new DraftPick; the caller persists both in one
store transaction so the pick and the cursor advance are atomic.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from draft.logic.enums import DraftStatus, PickType
from draft.logic.exceptions import (
    NotYourTurnError,
    PickWindowExpiredError,
    PlayerAlreadyPickedError,
    PlayerNotEligibleError,
    SessionNotActiveError,
)
from draft.logic.machine import advance_cursor
from draft.logic.types import ActivePhase, DraftPick

if TYPE_CHECKING:
    from collections.abc import Collection
    from datetime import datetime

    from draft.logic.clock import TurnClock
    from draft.logic.types import DraftSession, PlayerRecord


def check_session_active(session: DraftSession) -> None:
    if session.status != DraftStatus.ACTIVE:
        raise SessionNotActiveError(session.status)


def is_player_eligible(session: DraftSession, player: PlayerRecord | None) -> bool:
    return player is not None and player.eligible and player.league_id == session.league_id


def validate_pick(  # noqa: PLR0913
    session: DraftSession,
    *,
    team_id: str,
    player_id: str,
    player: PlayerRecord | None,
    picked_player_ids: Collection[str],
    requested_at: datetime,
    clock: TurnClock,
    grace_seconds: float = 0,
) -> None:
    """Raise the first rule the proposed pick violates, in this order:

    1. session is active
    2. the team is on the clock
    3. the player exists and is draft-eligible in the session's league
    4. the player has not been picked in this session
    5. the pick was requested before the deadline (plus grace)
    """
    check_session_active(session)
    if team_id != session.current_team_id:
        raise NotYourTurnError(team_id, session.current_team_id)
    if not is_player_eligible(session, player):
        raise PlayerNotEligibleError(player_id)
    if player_id in picked_player_ids:
        raise PlayerAlreadyPickedError(player_id)
    if clock.expired(session.timer_expires_at, at=requested_at, grace_seconds=grace_seconds):
        raise PickWindowExpiredError


def expiry_due(session: DraftSession, clock: TurnClock, now: datetime, grace_seconds: float = 0) -> bool:
    """True once the pick on the clock is past deadline plus grace, when manual picks stop being accepted."""
    expires_at = session.timer_expires_at
    if session.status != DraftStatus.ACTIVE or expires_at is None:
        return False
    return clock.expired(expires_at, at=now, grace_seconds=grace_seconds)


def commit_pick(  # noqa: PLR0913
    session: DraftSession,
    *,
    player_id: str | None,
    clock: TurnClock,
    now: datetime,
    pick_type: PickType = PickType.MANUAL,
    picked_by: str = "",
) -> tuple[DraftSession, DraftPick]:
    """Record the pick at the cursor and advance the session past it."""
    check_session_active(session)
    index = session.current_pick_index
    round_number, pick_number = session.slot_for_index(index)
    team_id = session.draft_order[index]

    # picked_at never goes backwards within a session, even if the wall clock does
    picked_at = max(now, session.updated_at)
    duration = 0.0
    if isinstance(session.phase, ActivePhase):
        duration = max(0.0, (picked_at - session.phase.turn_started_at).total_seconds())

    pick = DraftPick(
        session_id=session.id,
        round=round_number,
        pick_number=pick_number,
        overall_pick=index + 1,
        team_id=team_id,
        player_id=player_id,
        pick_type=pick_type,
        picked_at=picked_at,
        pick_duration_seconds=round(duration, 3),
        picked_by=picked_by,
    )
    return advance_cursor(session, clock, picked_at), pick


def available_pool(
    session: DraftSession,
    players: Collection[PlayerRecord],
    picked_player_ids: Collection[str],
) -> list[PlayerRecord]:
    """Eligible players of the session's league not yet picked, in directory order."""
    return [p for p in players if is_player_eligible(session, p) and p.id not in picked_player_ids]
