"""Typed domain exceptions for draft rule violations.

Every rejection the engine can produce is a subclass of DraftError carrying a
DraftErrorCode, so the HTTP boundary can map them once and clients can tell
"not your turn" from "too late" from "already taken". None of them are
retried by the engine; the caller decides whether to resubmit.
"""

from draft.logic.enums import DraftAction, DraftErrorCode, DraftStatus


class DraftError(Exception):
    """Base exception for draft rule violations."""

    code: DraftErrorCode

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class SessionNotFoundError(DraftError):
    code = DraftErrorCode.SESSION_NOT_FOUND

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"draft session {session_id!r} not found")


class SessionNotActiveError(DraftError):
    code = DraftErrorCode.SESSION_NOT_ACTIVE

    def __init__(self, status: DraftStatus) -> None:
        self.status = status
        super().__init__(f"draft session is {status.value}, not active")


class InvalidTransitionError(DraftError):
    code = DraftErrorCode.INVALID_TRANSITION

    def __init__(self, status: DraftStatus, action: DraftAction) -> None:
        self.status = status
        self.action = action
        super().__init__(f"cannot {action.value} a draft session that is {status.value}")


class NotYourTurnError(DraftError):
    code = DraftErrorCode.NOT_YOUR_TURN

    def __init__(self, team_id: str, current_team_id: str | None) -> None:
        self.team_id = team_id
        self.current_team_id = current_team_id
        super().__init__(f"team {team_id!r} is not on the clock (current: {current_team_id!r})")


class PlayerAlreadyPickedError(DraftError):
    code = DraftErrorCode.PLAYER_ALREADY_PICKED

    def __init__(self, player_id: str) -> None:
        self.player_id = player_id
        super().__init__(f"player {player_id!r} has already been drafted")


class PickWindowExpiredError(DraftError):
    code = DraftErrorCode.PICK_WINDOW_EXPIRED

    def __init__(self) -> None:
        super().__init__("the pick window for this turn has expired")


class PlayerNotEligibleError(DraftError):
    code = DraftErrorCode.PLAYER_NOT_ELIGIBLE

    def __init__(self, player_id: str) -> None:
        self.player_id = player_id
        super().__init__(f"player {player_id!r} does not exist or is not draft-eligible")


class TeamNotInDraftError(DraftError):
    code = DraftErrorCode.TEAM_NOT_IN_DRAFT

    def __init__(self, team_id: str) -> None:
        self.team_id = team_id
        super().__init__(f"team {team_id!r} is not participating in this draft")


class InvalidDraftConfigurationError(DraftError):
    code = DraftErrorCode.INVALID_DRAFT_CONFIGURATION


class StorageUnavailableError(DraftError):
    """The session store failed after retries; nothing was written."""

    code = DraftErrorCode.STORAGE_UNAVAILABLE


class StaleSessionError(Exception):
    """A conditional write lost against a concurrent writer.

    Internal to the store/manager seam: the manager re-reads and re-validates,
    so clients see the domain error the fresh state implies instead.
    """

    def __init__(self, session_id: str, expected_version: int) -> None:
        self.session_id = session_id
        self.expected_version = expected_version
        super().__init__(f"draft session {session_id!r} changed since version {expected_version}")
