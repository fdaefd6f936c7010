"""Domain events emitted by the draft engine.

Events are informational: subscribers (push feed, notification webhook) are
told about committed changes but are never consulted before a commit.
derive_events() computes the events implied by a before/after pair so the
session manager emits the same set regardless of which operation ran.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel

from draft.logic.enums import DraftStatus
from draft.logic.types import DraftPick

if TYPE_CHECKING:
    from draft.logic.types import DraftSession


class EventType(StrEnum):
    STATUS_CHANGED = "status_changed"
    PICK_COMMITTED = "pick_committed"
    TURN_STARTED = "turn_started"


class DraftEvent(BaseModel):
    type: EventType
    session_id: str
    occurred_at: datetime


class StatusChangedEvent(DraftEvent):
    type: Literal[EventType.STATUS_CHANGED] = EventType.STATUS_CHANGED
    status: DraftStatus
    previous_status: DraftStatus


class PickCommittedEvent(DraftEvent):
    type: Literal[EventType.PICK_COMMITTED] = EventType.PICK_COMMITTED
    pick: DraftPick


class TurnStartedEvent(DraftEvent):
    """The "your turn" notification for the team now on the clock."""

    type: Literal[EventType.TURN_STARTED] = EventType.TURN_STARTED
    team_id: str
    round: int
    pick: int
    overall_pick: int
    timer_expires_at: datetime


def derive_events(
    before: DraftSession,
    after: DraftSession,
    now: datetime,
    pick: DraftPick | None = None,
) -> list[DraftEvent]:
    """Events implied by a committed transition, in delivery order."""
    events: list[DraftEvent] = []
    if pick is not None:
        events.append(PickCommittedEvent(session_id=after.id, occurred_at=now, pick=pick))
    if after.status != before.status:
        events.append(
            StatusChangedEvent(
                session_id=after.id,
                occurred_at=now,
                status=after.status,
                previous_status=before.status,
            ),
        )
    turn_changed = after.status != before.status or after.current_pick_index != before.current_pick_index
    if after.status == DraftStatus.ACTIVE and turn_changed and after.timer_expires_at is not None:
        events.append(
            TurnStartedEvent(
                session_id=after.id,
                occurred_at=now,
                team_id=after.draft_order[after.current_pick_index],
                round=after.current_round,
                pick=after.current_pick,
                overall_pick=after.current_pick_index + 1,
                timer_expires_at=after.timer_expires_at,
            ),
        )
    return events
