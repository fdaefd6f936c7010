"""Choose a player for a pick whose window expired."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from draft.logic.types import DraftQueue, PlayerRecord


def best_available(available: Sequence[PlayerRecord]) -> PlayerRecord | None:
    """Highest draft_value wins; ties go to the lowest player id so the choice is deterministic."""
    if not available:
        return None
    return min(available, key=lambda p: (-p.draft_value, p.id))


def choose_autopick(queue: DraftQueue | None, available: Sequence[PlayerRecord]) -> str | None:
    """Return the player id to pick on expiry, or None when the slot must be skipped.

    The team's queue is consulted first (first entry still available);
    otherwise the best available player from the pool is taken.
    """
    available_ids = {p.id for p in available}
    if queue is not None:
        for player_id in queue.player_ids:
            if player_id in available_ids:
                return player_id
    best = best_available(available)
    return best.id if best is not None else None
