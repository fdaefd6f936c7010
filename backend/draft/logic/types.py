"""
Pydantic models for draft state.

A DraftSession is immutable: every transition returns a new instance via
model_copy(update=...). The session status is carried by a tagged phase so
that only an Active session can hold a timer deadline.
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from draft.logic.enums import TERMINAL_STATUSES, DraftStatus, OrderType, PickType


class ScheduledPhase(BaseModel, frozen=True):
    status: Literal[DraftStatus.SCHEDULED] = DraftStatus.SCHEDULED


class ActivePhase(BaseModel, frozen=True):
    status: Literal[DraftStatus.ACTIVE] = DraftStatus.ACTIVE
    turn_started_at: datetime
    timer_expires_at: datetime


class PausedPhase(BaseModel, frozen=True):
    status: Literal[DraftStatus.PAUSED] = DraftStatus.PAUSED
    paused_at: datetime


class CompletedPhase(BaseModel, frozen=True):
    status: Literal[DraftStatus.COMPLETED] = DraftStatus.COMPLETED
    completed_at: datetime


class CancelledPhase(BaseModel, frozen=True):
    status: Literal[DraftStatus.CANCELLED] = DraftStatus.CANCELLED
    cancelled_at: datetime
    cancelled_from: DraftStatus


DraftPhase = Annotated[
    ScheduledPhase | ActivePhase | PausedPhase | CompletedPhase | CancelledPhase,
    Field(discriminator="status"),
]


class DraftSession(BaseModel, frozen=True):
    """One live or completed draft event (the aggregate root)."""

    id: str
    league_id: str
    season_id: str
    name: str
    team_ids: tuple[str, ...]
    order_type: OrderType = OrderType.SNAKE
    total_rounds: int
    draft_order: tuple[str, ...]
    pick_timer_seconds: int
    auto_pick_enabled: bool = True
    phase: DraftPhase
    # 0-based flattened index of the pick on the clock == number of committed picks
    current_pick_index: int = 0
    version: int = 0
    created_by: str = "system"
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    archived_at: datetime | None = None

    @property
    def status(self) -> DraftStatus:
        return self.phase.status

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def team_count(self) -> int:
        return len(self.team_ids)

    @property
    def total_picks(self) -> int:
        return len(self.draft_order)

    @property
    def picks_remaining(self) -> int:
        return self.total_picks - self.current_pick_index

    @property
    def timer_expires_at(self) -> datetime | None:
        if isinstance(self.phase, ActivePhase):
            return self.phase.timer_expires_at
        return None

    @property
    def current_team_id(self) -> str | None:
        """Team owning the pick at the cursor; None once the draft is over."""
        if self.is_terminal or self.current_pick_index >= self.total_picks:
            return None
        return self.draft_order[self.current_pick_index]

    @property
    def current_round(self) -> int:
        """1-based round of the cursor, 0 before the draft has started."""
        if self.started_at is None or self.total_picks == 0:
            return 0
        if self.current_pick_index >= self.total_picks:
            return self.total_rounds
        return self.current_pick_index // self.team_count + 1

    @property
    def current_pick(self) -> int:
        """1-based position of the cursor within its round, 0 before the draft has started."""
        if self.started_at is None or self.total_picks == 0:
            return 0
        if self.current_pick_index >= self.total_picks:
            return self.team_count
        return self.current_pick_index % self.team_count + 1

    def slot_for_index(self, index: int) -> tuple[int, int]:
        """Return (round, pick_number) for a flattened 0-based pick index."""
        return index // self.team_count + 1, index % self.team_count + 1


class DraftPick(BaseModel, frozen=True):
    """One committed selection. Append-only; player_id is None only for skipped slots."""

    session_id: str
    round: int
    pick_number: int
    overall_pick: int
    team_id: str
    player_id: str | None
    pick_type: PickType = PickType.MANUAL
    picked_at: datetime
    pick_duration_seconds: float = 0.0
    picked_by: str = ""


class DraftQueue(BaseModel, frozen=True):
    """A team's preferred players, in priority order, consulted by autopick."""

    session_id: str
    team_id: str
    player_ids: tuple[str, ...] = ()
    updated_at: datetime
    updated_by: str = ""


class PlayerRecord(BaseModel, frozen=True):
    """Player directory entry as seen by the draft."""

    id: str
    name: str
    league_id: str
    position: str = ""
    draft_value: float = 0.0
    eligible: bool = True
