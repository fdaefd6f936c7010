from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

from draft.logic.enums import PickType
from draft.logic.types import CompletedPhase

if TYPE_CHECKING:
    from collections.abc import Sequence

    from draft.logic.types import DraftPick, DraftSession


class DraftAnalytics(BaseModel):
    session_id: str
    total_picks: int
    auto_picks: int
    skipped_picks: int
    average_pick_seconds: float
    longest_pick_seconds: float
    shortest_pick_seconds: float
    teams_participating: int
    completion_seconds: float | None  # None until the draft completes


def summarize_draft(session: DraftSession, picks: Sequence[DraftPick]) -> DraftAnalytics:
    """Pick timing summary; skipped slots count toward totals but not toward timings."""
    durations = [p.pick_duration_seconds for p in picks if p.pick_type != PickType.SKIPPED]
    completion = None
    if isinstance(session.phase, CompletedPhase) and session.started_at is not None:
        completion = round((session.phase.completed_at - session.started_at).total_seconds(), 3)
    return DraftAnalytics(
        session_id=session.id,
        total_picks=len(picks),
        auto_picks=sum(1 for p in picks if p.pick_type == PickType.AUTO),
        skipped_picks=sum(1 for p in picks if p.pick_type == PickType.SKIPPED),
        average_pick_seconds=round(sum(durations) / len(durations), 3) if durations else 0.0,
        longest_pick_seconds=max(durations, default=0.0),
        shortest_pick_seconds=min(durations, default=0.0),
        teams_participating=session.team_count,
        completion_seconds=completion,
    )
