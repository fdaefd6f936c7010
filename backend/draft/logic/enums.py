from enum import StrEnum


class DraftStatus(StrEnum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({DraftStatus.COMPLETED, DraftStatus.CANCELLED})


class OrderType(StrEnum):
    SNAKE = "snake"
    LINEAR = "linear"
    CUSTOM = "custom"


class PickType(StrEnum):
    MANUAL = "manual"
    AUTO = "auto"
    SKIPPED = "skipped"


class DraftAction(StrEnum):
    """Administrative events accepted by the session state machine."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"
    COMPLETE = "complete"
    ARCHIVE = "archive"


class DraftErrorCode(StrEnum):
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_NOT_ACTIVE = "session_not_active"
    INVALID_TRANSITION = "invalid_transition"
    NOT_YOUR_TURN = "not_your_turn"
    PLAYER_ALREADY_PICKED = "player_already_picked"
    PICK_WINDOW_EXPIRED = "pick_window_expired"
    PLAYER_NOT_ELIGIBLE = "player_not_eligible"
    TEAM_NOT_IN_DRAFT = "team_not_in_draft"
    INVALID_DRAFT_CONFIGURATION = "invalid_draft_configuration"
    STORAGE_UNAVAILABLE = "storage_unavailable"
