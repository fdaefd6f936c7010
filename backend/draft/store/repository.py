"""Abstract interfaces for draft persistence and the player directory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from draft.logic.enums import DraftStatus
    from draft.logic.types import DraftPick, DraftQueue, DraftSession, PlayerRecord


class DraftRepository(ABC):
    """Document-style store for sessions (keyed by id), their picks and queues.

    Session writes are conditional on the version the caller read; a lost
    race raises StaleSessionError and nothing is written. Transient failures
    surface as StorageUnavailableError after retries.
    """

    @abstractmethod
    async def create_session(self, session: DraftSession) -> None: ...

    @abstractmethod
    async def get_session(self, session_id: str) -> DraftSession | None: ...

    @abstractmethod
    async def list_sessions(
        self,
        *,
        league_id: str | None = None,
        season_id: str | None = None,
        status: DraftStatus | None = None,
        include_archived: bool = False,
        limit: int | None = 50,
    ) -> list[DraftSession]:
        """Sessions matching all given filters, newest first."""
        ...

    @abstractmethod
    async def update_session(self, session: DraftSession, *, expected_version: int) -> None: ...

    @abstractmethod
    async def commit_pick(
        self,
        session: DraftSession,
        pick: DraftPick,
        *,
        expected_version: int,
        queue: DraftQueue | None = None,
    ) -> None:
        """Insert the pick and write the advanced session in one transaction.

        When ``queue`` is given it is saved in the same transaction.
        """
        ...

    @abstractmethod
    async def list_picks(self, session_id: str) -> list[DraftPick]:
        """All picks of a session in pick order."""
        ...

    @abstractmethod
    async def get_session_with_picks(self, session_id: str) -> tuple[DraftSession, list[DraftPick]] | None:
        """The session and its picks read from one consistent snapshot, or None if unknown.

        The picks always agree with the session's cursor, even while other
        processes are committing.
        """
        ...

    @abstractmethod
    async def get_picked_player_ids(self, session_id: str) -> set[str]: ...

    @abstractmethod
    async def get_queue(self, session_id: str, team_id: str) -> DraftQueue | None: ...

    @abstractmethod
    async def save_queue(self, queue: DraftQueue) -> None: ...


class PlayerDirectory(ABC):
    """External source of truth for player existence and draft eligibility."""

    @abstractmethod
    async def get_player(self, player_id: str) -> PlayerRecord | None: ...

    @abstractmethod
    async def list_players(self, league_id: str) -> list[PlayerRecord]:
        """Players of a league, best draft_value first."""
        ...

    @abstractmethod
    async def upsert_players(self, players: Sequence[PlayerRecord]) -> None: ...
