from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from draft.logic.clock import TurnClock
from draft.logic.machine import new_session
from draft.logic.settings import EngineSettings
from draft.logic.types import PlayerRecord
from draft.session.broadcast import DraftEventBus
from draft.session.manager import DraftSessionManager
from draft.store.connection import Database
from draft.store.sqlite import SqliteDraftRepository, SqlitePlayerDirectory
from draft.tests.mocks.clock import ManualClock
from draft.tests.mocks.notifier import RecordingNotifier

if TYPE_CHECKING:
    from collections.abc import Sequence

    from draft.logic.types import DraftSession

LEAGUE_ID = "league-1"
SEASON_ID = "2026"


def make_players(count: int = 6, *, league_id: str = LEAGUE_ID) -> list[PlayerRecord]:
    """Players p1..pN; p1 has the highest draft_value."""
    return [
        PlayerRecord(
            id=f"p{i}",
            name=f"Player {i}",
            league_id=league_id,
            position="F",
            draft_value=float(100 - i),
        )
        for i in range(1, count + 1)
    ]


def make_session(
    clock: TurnClock,
    team_ids: Sequence[str] = ("A", "B"),
    *,
    total_rounds: int = 2,
    pick_timer_seconds: int = 60,
    **kwargs: object,
) -> DraftSession:
    return new_session(
        league_id=LEAGUE_ID,
        season_id=SEASON_ID,
        name="Test draft",
        team_ids=list(team_ids),
        total_rounds=total_rounds,
        pick_timer_seconds=pick_timer_seconds,
        now=clock.now(),
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def turn_clock(manual_clock):
    return TurnClock(manual_clock)


@pytest.fixture
def database():
    db = Database(":memory:")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def repository(database):
    return SqliteDraftRepository(database)


@pytest.fixture
def directory(database):
    return SqlitePlayerDirectory(database)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def event_bus():
    return DraftEventBus()


@pytest.fixture
async def manager(repository, directory, turn_clock, notifier, event_bus):
    await directory.upsert_players(make_players())
    manager = DraftSessionManager(
        repository,
        directory,
        turn_clock,
        settings=EngineSettings(),
        event_bus=event_bus,
        notifier=notifier,
    )
    yield manager
    await manager.aclose()


async def create_draft(manager: DraftSessionManager, teams: Sequence[str] = ("A", "B"), **kwargs: object):
    options: dict[str, object] = {"total_rounds": 2, "pick_timer_seconds": 60}
    options.update(kwargs)
    return await manager.create_session(
        league_id=LEAGUE_ID,
        season_id=SEASON_ID,
        name="Test draft",
        team_ids=list(teams),
        **options,  # type: ignore[arg-type]
    )
