"""Tests for DraftSessionManager: lifecycle, pick serialization, queues and the read side."""

import asyncio
import time

import pytest

from draft.logic.enums import DraftStatus, PickType
from draft.logic.events import EventType
from draft.logic.exceptions import (
    InvalidDraftConfigurationError,
    InvalidTransitionError,
    NotYourTurnError,
    PickWindowExpiredError,
    PlayerAlreadyPickedError,
    PlayerNotEligibleError,
    SessionNotActiveError,
    SessionNotFoundError,
    StaleSessionError,
    StorageUnavailableError,
    TeamNotInDraftError,
)
from draft.logic.settings import EngineSettings
from draft.session.manager import DraftSessionManager
from draft.store.sqlite import SqliteDraftRepository
from draft.tests.conftest import create_draft, make_players
from draft.tests.mocks.notifier import RecordingNotifier


async def _started(manager, teams=("A", "B"), **kwargs):
    session = await create_draft(manager, teams, **kwargs)
    return await manager.start(session.id)


class TestLifecycle:
    async def test_create_persists_scheduled_session(self, manager):
        session = await create_draft(manager)
        stored = await manager.get_session(session.id)
        assert stored.status == DraftStatus.SCHEDULED
        assert stored.draft_order == ("A", "B", "B", "A")

    async def test_create_rejects_bad_configuration(self, manager):
        with pytest.raises(InvalidDraftConfigurationError):
            await create_draft(manager, ("A", "A"))

    async def test_zero_round_draft_is_completed(self, manager):
        session = await create_draft(manager, total_rounds=0)
        assert session.status == DraftStatus.COMPLETED

    async def test_unknown_session(self, manager):
        with pytest.raises(SessionNotFoundError):
            await manager.start("missing")

    async def test_full_lifecycle(self, manager):
        session = await create_draft(manager)
        assert (await manager.start(session.id)).status == DraftStatus.ACTIVE
        assert (await manager.pause(session.id)).status == DraftStatus.PAUSED
        assert (await manager.resume(session.id)).status == DraftStatus.ACTIVE
        assert (await manager.cancel(session.id)).status == DraftStatus.CANCELLED
        archived = await manager.archive(session.id)
        assert archived.archived_at is not None
        assert await manager.list_sessions() == []
        assert [s.id for s in await manager.list_sessions(include_archived=True)] == [session.id]

    async def test_invalid_transition_is_not_persisted(self, manager):
        session = await create_draft(manager)
        with pytest.raises(InvalidTransitionError):
            await manager.pause(session.id)
        assert (await manager.get_session(session.id)).version == session.version

    async def test_events_published_and_notified(self, manager, notifier, event_bus):
        session = await create_draft(manager)
        queue = event_bus.subscribe(session.id)
        await manager.start(session.id)
        await manager.flush_notifications()
        assert notifier.types() == ["status_changed", "turn_started"]
        assert queue.get_nowait().type == EventType.STATUS_CHANGED
        assert queue.get_nowait().type == EventType.TURN_STARTED

    async def test_notifier_failure_does_not_fail_operation(self, repository, directory, turn_clock):
        failing = RecordingNotifier(fail=True)
        manager = DraftSessionManager(repository, directory, turn_clock, notifier=failing)
        session = await create_draft(manager)
        started = await manager.start(session.id)
        assert started.status == DraftStatus.ACTIVE
        await manager.flush_notifications()
        assert len(failing.events) == 2
        await manager.aclose()


class TestSubmitPick:
    async def test_scenario_two_teams_two_rounds(self, manager, manual_clock):
        session = await _started(manager)
        for team_id, player_id in [("A", "p1"), ("B", "p2"), ("B", "p3"), ("A", "p4")]:
            manual_clock.advance(3)
            await manager.submit_pick(session.id, team_id=team_id, player_id=player_id)

        final = await manager.get_session(session.id)
        assert final.status == DraftStatus.COMPLETED
        assert final.current_pick_index == 4
        picks = await manager.get_picks(session.id)
        assert [(p.team_id, p.player_id) for p in picks] == [("A", "p1"), ("B", "p2"), ("B", "p3"), ("A", "p4")]

        with pytest.raises(SessionNotActiveError):
            await manager.submit_pick(session.id, team_id="A", player_id="p5")

    async def test_pick_records_submitter(self, manager):
        session = await _started(manager)
        pick = await manager.submit_pick(session.id, team_id="A", player_id="p1", picked_by="gm-alice")
        assert pick.picked_by == "gm-alice"
        assert pick.pick_type == PickType.MANUAL

    async def test_wrong_team(self, manager):
        session = await _started(manager)
        with pytest.raises(NotYourTurnError):
            await manager.submit_pick(session.id, team_id="B", player_id="p1")
        assert (await manager.get_session(session.id)).current_pick_index == 0

    async def test_already_picked(self, manager):
        session = await _started(manager)
        await manager.submit_pick(session.id, team_id="A", player_id="p1")
        with pytest.raises(PlayerAlreadyPickedError):
            await manager.submit_pick(session.id, team_id="B", player_id="p1")

    async def test_unknown_player(self, manager):
        session = await _started(manager)
        with pytest.raises(PlayerNotEligibleError):
            await manager.submit_pick(session.id, team_id="A", player_id="ghost")

    async def test_late_pick_is_rejected(self, manager, manual_clock):
        session = await _started(manager)
        manual_clock.advance(61)
        with pytest.raises(PickWindowExpiredError):
            await manager.submit_pick(session.id, team_id="A", player_id="p1")

    async def test_late_pick_within_grace(self, repository, directory, turn_clock, manual_clock):
        manager = DraftSessionManager(
            repository,
            directory,
            turn_clock,
            settings=EngineSettings(late_pick_grace_seconds=5),
        )
        await directory.upsert_players(make_players())
        session = await _started(manager)
        manual_clock.advance(63)
        pick = await manager.submit_pick(session.id, team_id="A", player_id="p1")
        assert pick.pick_type == PickType.MANUAL

        manual_clock.advance(66)
        with pytest.raises(PickWindowExpiredError):
            await manager.submit_pick(session.id, team_id="B", player_id="p2")

    async def test_paused_session_rejects_picks(self, manager):
        session = await _started(manager)
        await manager.pause(session.id)
        with pytest.raises(SessionNotActiveError):
            await manager.submit_pick(session.id, team_id="A", player_id="p1")

    async def test_pick_events(self, manager, notifier):
        session = await _started(manager)
        await manager.flush_notifications()
        notifier.events.clear()
        await manager.submit_pick(session.id, team_id="A", player_id="p1")
        await manager.flush_notifications()
        assert notifier.types() == ["pick_committed", "turn_started"]
        assert notifier.events[1].team_id == "B"


class TestConcurrency:
    async def test_concurrent_picks_for_same_slot_have_one_winner(self, manager):
        session = await _started(manager)
        results = await asyncio.gather(
            manager.submit_pick(session.id, team_id="A", player_id="p1"),
            manager.submit_pick(session.id, team_id="A", player_id="p2"),
            return_exceptions=True,
        )
        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], NotYourTurnError)
        assert len(await manager.get_picks(session.id)) == 1

    async def test_many_concurrent_submissions(self, manager):
        session = await _started(manager, ("A", "B", "C"), total_rounds=1)
        attempts = [
            manager.submit_pick(session.id, team_id=team, player_id=f"p{i}")
            for i, team in enumerate(["A", "A", "B", "C", "B", "C"], start=1)
        ]
        await asyncio.gather(*attempts, return_exceptions=True)
        picks = await manager.get_picks(session.id)
        assert [p.overall_pick for p in picks] == list(range(1, len(picks) + 1))
        assert len({p.player_id for p in picks}) == len(picks)

    async def test_cancel_wins_over_waiting_pick(self, manager):
        session = await _started(manager)
        results = await asyncio.gather(
            manager.cancel(session.id),
            manager.submit_pick(session.id, team_id="A", player_id="p1"),
            return_exceptions=True,
        )
        assert results[0].status == DraftStatus.CANCELLED
        assert isinstance(results[1], SessionNotActiveError)
        assert await manager.get_picks(session.id) == []

    async def test_lost_cross_process_race_revalidates(self, database, directory, turn_clock):
        """A rival process commits between our read and write; we re-read and see NotYourTurn."""
        rival = DraftSessionManager(SqliteDraftRepository(database), directory, turn_clock)

        class RacingRepository(SqliteDraftRepository):
            raced = False

            async def commit_pick(self, session, pick, *, expected_version, queue=None):
                if not RacingRepository.raced:
                    RacingRepository.raced = True
                    await rival.submit_pick(session.id, team_id="A", player_id="p2")
                await super().commit_pick(session, pick, expected_version=expected_version, queue=queue)

        await directory.upsert_players(make_players())
        manager = DraftSessionManager(RacingRepository(database), directory, turn_clock)
        session = await _started(manager)

        with pytest.raises(NotYourTurnError):
            await manager.submit_pick(session.id, team_id="A", player_id="p1")
        picks = await manager.get_picks(session.id)
        assert [p.player_id for p in picks] == ["p2"]

    async def test_persistent_conflicts_surface_as_storage_unavailable(self, database, directory, turn_clock):
        class AlwaysStale(SqliteDraftRepository):
            async def update_session(self, session, *, expected_version):
                raise StaleSessionError(session.id, expected_version)

        manager = DraftSessionManager(AlwaysStale(database), directory, turn_clock)
        session = await create_draft(manager)
        with pytest.raises(StorageUnavailableError):
            await manager.start(session.id)


class TestQueues:
    async def test_empty_queue_by_default(self, manager):
        session = await create_draft(manager)
        queue = await manager.get_queue(session.id, "A")
        assert queue.player_ids == ()

    async def test_set_queue_dedupes_preserving_order(self, manager):
        session = await create_draft(manager)
        queue = await manager.set_queue(session.id, "A", ["p3", "p1", "p3"], updated_by="gm")
        assert queue.player_ids == ("p3", "p1")
        assert (await manager.get_queue(session.id, "A")).player_ids == ("p3", "p1")

    async def test_unknown_team(self, manager):
        session = await create_draft(manager)
        with pytest.raises(TeamNotInDraftError):
            await manager.set_queue(session.id, "Z", ["p1"])
        with pytest.raises(TeamNotInDraftError):
            await manager.get_queue(session.id, "Z")

    async def test_unknown_player(self, manager):
        session = await create_draft(manager)
        with pytest.raises(PlayerNotEligibleError):
            await manager.set_queue(session.id, "A", ["p1", "ghost"])

    async def test_terminal_session_rejects_queue_updates(self, manager):
        session = await create_draft(manager)
        await manager.cancel(session.id)
        with pytest.raises(SessionNotActiveError):
            await manager.set_queue(session.id, "A", ["p1"])

    async def test_picked_player_leaves_own_queue(self, manager):
        session = await _started(manager)
        await manager.set_queue(session.id, "A", ["p1", "p2"])
        await manager.submit_pick(session.id, team_id="A", player_id="p1")
        assert (await manager.get_queue(session.id, "A")).player_ids == ("p2",)


class TestReadSide:
    async def test_status_view(self, manager, manual_clock):
        session = await _started(manager)
        await manager.submit_pick(session.id, team_id="A", player_id="p1")
        manual_clock.advance(20)
        view = await manager.get_status(session.id)
        assert view.status == DraftStatus.ACTIVE
        assert view.current_team_id == "B"
        assert view.current_pick_index == 1
        assert view.time_remaining == pytest.approx(40)
        assert [p.player_id for p in view.recent_picks] == ["p1"]
        assert "p1" not in [p.id for p in view.available_players]
        assert view.available_players[0].id == "p2"

    async def test_status_never_transitions(self, manager, manual_clock):
        session = await _started(manager)
        manual_clock.advance(3600)
        view = await manager.get_status(session.id)
        assert view.time_remaining == 0
        stored = await manager.get_session(session.id)
        assert stored.current_pick_index == 0
        assert stored.version == 1

    async def test_analytics(self, manager, manual_clock):
        session = await _started(manager)
        manual_clock.advance(8)
        await manager.submit_pick(session.id, team_id="A", player_id="p1")
        analytics = await manager.get_analytics(session.id)
        assert analytics.total_picks == 1
        assert analytics.average_pick_seconds == pytest.approx(8)

    async def test_upsert_players(self, manager):
        assert await manager.upsert_players(make_players(2, league_id="league-2")) == 2


class TestSessionLocks:
    async def test_unknown_sessions_leave_no_locks(self, manager):
        for i in range(1000):
            with pytest.raises(SessionNotFoundError):
                await manager.submit_pick(f"missing-{i}", team_id="A", player_id="p1")
        with pytest.raises(SessionNotFoundError):
            await manager.set_queue("missing", "A", ["p1"])
        with pytest.raises(SessionNotFoundError):
            await manager.pause("missing")
        assert await manager.expire_pick("missing", 0) is None
        assert manager._session_locks == {}

    async def test_active_session_keeps_its_lock(self, manager):
        session = await _started(manager)
        assert session.id in manager._session_locks

    async def test_cancelled_session_releases_its_lock(self, manager):
        session = await _started(manager)
        await manager.cancel(session.id)
        assert session.id not in manager._session_locks

    async def test_completed_and_archived_session_releases_its_lock(self, manager):
        session = await _started(manager, total_rounds=1)
        await manager.submit_pick(session.id, team_id="A", player_id="p1")
        await manager.submit_pick(session.id, team_id="B", player_id="p2")
        assert (await manager.get_session(session.id)).status == DraftStatus.COMPLETED
        assert session.id not in manager._session_locks

        archived = await manager.archive(session.id)
        assert archived.archived_at is not None
        assert session.id not in manager._session_locks

    async def test_rejected_write_on_finished_session_releases_its_lock(self, manager):
        session = await _started(manager)
        await manager.cancel(session.id)
        with pytest.raises(SessionNotActiveError):
            await manager.submit_pick(session.id, team_id="A", player_id="p1")
        assert manager._session_locks == {}


class TestNotificationDelivery:
    @pytest.fixture
    async def slow_manager(self, repository, directory, turn_clock):
        await directory.upsert_players(make_players())
        manager = DraftSessionManager(repository, directory, turn_clock, notifier=RecordingNotifier(delay=1.0))
        yield manager
        await manager.aclose()

    async def test_slow_notifier_does_not_delay_picks(self, slow_manager):
        session = await _started(slow_manager)
        started = time.monotonic()
        pick = await slow_manager.submit_pick(session.id, team_id="A", player_id="p1")
        assert time.monotonic() - started < 0.5
        assert pick.overall_pick == 1

    async def test_feed_subscribers_see_events_before_delivery(self, slow_manager):
        session = await create_draft(slow_manager)
        queue = slow_manager.event_bus.subscribe(session.id)
        await slow_manager.start(session.id)
        assert queue.get_nowait().type == EventType.STATUS_CHANGED
        assert slow_manager.notifier.events == []

    async def test_flush_waits_for_delivery(self, manager, notifier):
        await _started(manager)
        await _started(manager)
        await manager.flush_notifications()
        assert notifier.types() == ["status_changed", "turn_started"] * 2

    async def test_aclose_stops_delivery_and_closes_notifier(self, slow_manager):
        await _started(slow_manager)
        await slow_manager.aclose()
        assert slow_manager.notifier.closed
        assert slow_manager.notifier.events == []
