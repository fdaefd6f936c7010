"""
Read model served to polling and subscribed clients.

project_status() is a pure function of a session snapshot and the wall clock.
It never transitions the session, even when it observes an expired timer: it
reports time_remaining == 0 and leaves the expiry transition to the driver.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel

from draft.logic.enums import DraftStatus, PickType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from draft.logic.clock import TurnClock
    from draft.logic.types import DraftPick, DraftSession, PlayerRecord

DEFAULT_RECENT_PICKS_WINDOW = 5


class RecentPickView(BaseModel):
    round: int
    pick: int
    overall_pick: int
    team_id: str
    player_id: str | None
    pick_type: PickType
    picked_at: datetime


class AvailablePlayerView(BaseModel):
    id: str
    name: str
    position: str
    draft_value: float


class DraftStatusView(BaseModel):
    session_id: str
    status: DraftStatus
    current_round: int
    current_pick: int
    current_pick_index: int
    total_picks: int
    current_team_id: str | None
    timer_expires_at: datetime | None
    time_remaining: float
    recent_picks: list[RecentPickView]
    available_players: list[AvailablePlayerView]


def project_status(  # noqa: PLR0913
    session: DraftSession,
    *,
    picks: Sequence[DraftPick],
    available: Sequence[PlayerRecord],
    clock: TurnClock,
    now: datetime | None = None,
    recent_window: int = DEFAULT_RECENT_PICKS_WINDOW,
) -> DraftStatusView:
    """Build the status view. ``picks`` may be in any order; the newest are reported first."""
    now = now if now is not None else clock.now()
    newest_first = sorted(picks, key=lambda p: p.overall_pick, reverse=True)[:recent_window]
    return DraftStatusView(
        session_id=session.id,
        status=session.status,
        current_round=session.current_round,
        current_pick=session.current_pick,
        current_pick_index=session.current_pick_index,
        total_picks=session.total_picks,
        current_team_id=session.current_team_id,
        timer_expires_at=session.timer_expires_at,
        time_remaining=round(clock.remaining(session.timer_expires_at, at=now), 3),
        recent_picks=[
            RecentPickView(
                round=p.round,
                pick=p.pick_number,
                overall_pick=p.overall_pick,
                team_id=p.team_id,
                player_id=p.player_id,
                pick_type=p.pick_type,
                picked_at=p.picked_at,
            )
            for p in newest_first
        ],
        available_players=[
            AvailablePlayerView(id=p.id, name=p.name, position=p.position, draft_value=p.draft_value)
            for p in available
        ],
    )
