from pydantic import BaseModel, Field

from draft.logic.projector import DEFAULT_RECENT_PICKS_WINDOW


class EngineSettings(BaseModel, frozen=True):
    """Tunables of the draft engine that do not depend on the hosting server."""

    recent_picks_window: int = Field(default=DEFAULT_RECENT_PICKS_WINDOW, ge=1)
    # manual picks are still accepted this long after the deadline unless the
    # expiry transition already committed the slot
    late_pick_grace_seconds: float = Field(default=0, ge=0)
    # bounded re-read/re-validate loop when a conditional write loses a race
    max_commit_attempts: int = Field(default=3, ge=1)
