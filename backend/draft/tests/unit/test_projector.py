from datetime import timedelta

import pytest

from draft.logic.analytics import summarize_draft
from draft.logic.enums import DraftAction, DraftStatus, PickType
from draft.logic.machine import apply_action
from draft.logic.picks import commit_pick
from draft.logic.projector import project_status
from draft.tests.conftest import make_players, make_session


def _draft_with_picks(clock, manual_clock, count, teams=("A", "B", "C"), rounds=3, step=10.0):
    session = apply_action(make_session(clock, teams, total_rounds=rounds), DraftAction.START, clock, clock.now())
    picks = []
    for i in range(count):
        manual_clock.advance(step)
        session, pick = commit_pick(session, player_id=f"p{i + 1}", clock=clock, now=manual_clock.now())
        picks.append(pick)
    return session, picks


class TestProjectStatus:
    def test_scheduled_session(self, turn_clock):
        view = project_status(make_session(turn_clock), picks=[], available=make_players(2), clock=turn_clock)
        assert view.status == DraftStatus.SCHEDULED
        assert view.current_round == 0
        assert view.current_pick == 0
        assert view.timer_expires_at is None
        assert view.time_remaining == 0
        assert view.current_team_id == "A"
        assert [p.id for p in view.available_players] == ["p1", "p2"]

    def test_active_session_reports_cursor_and_remaining_time(self, manual_clock, turn_clock):
        session, picks = _draft_with_picks(turn_clock, manual_clock, 4)
        manual_clock.advance(15)
        view = project_status(session, picks=picks, available=[], clock=turn_clock)
        assert view.current_round == 2
        assert view.current_pick == 2
        assert view.current_pick_index == 4
        assert view.total_picks == 9
        assert view.current_team_id == "B"
        assert view.time_remaining == pytest.approx(45)

    def test_recent_picks_newest_first_within_window(self, manual_clock, turn_clock):
        session, picks = _draft_with_picks(turn_clock, manual_clock, 7)
        view = project_status(session, picks=list(reversed(picks)), available=[], clock=turn_clock, recent_window=3)
        assert [p.overall_pick for p in view.recent_picks] == [7, 6, 5]

    def test_default_window_is_five(self, manual_clock, turn_clock):
        session, picks = _draft_with_picks(turn_clock, manual_clock, 7)
        view = project_status(session, picks=picks, available=[], clock=turn_clock)
        assert len(view.recent_picks) == 5

    def test_expired_timer_reports_zero_without_transition(self, manual_clock, turn_clock):
        session, picks = _draft_with_picks(turn_clock, manual_clock, 1)
        manual_clock.advance(600)
        view = project_status(session, picks=picks, available=[], clock=turn_clock)
        assert view.time_remaining == 0
        assert view.status == DraftStatus.ACTIVE
        assert view.current_pick_index == 1

    def test_completed_session(self, manual_clock, turn_clock):
        session, picks = _draft_with_picks(turn_clock, manual_clock, 4, teams=("A", "B"), rounds=2)
        view = project_status(session, picks=picks, available=[], clock=turn_clock)
        assert view.status == DraftStatus.COMPLETED
        assert view.current_team_id is None
        assert view.current_round == 2
        assert view.current_pick_index == view.total_picks == 4


class TestAnalytics:
    def test_timings_and_completion(self, manual_clock, turn_clock):
        session, picks = _draft_with_picks(turn_clock, manual_clock, 4, teams=("A", "B"), rounds=2, step=10)
        analytics = summarize_draft(session, picks)
        assert analytics.total_picks == 4
        assert analytics.average_pick_seconds == pytest.approx(10)
        assert analytics.longest_pick_seconds == pytest.approx(10)
        assert analytics.shortest_pick_seconds == pytest.approx(10)
        assert analytics.teams_participating == 2
        assert analytics.completion_seconds == pytest.approx(40)

    def test_skipped_picks_excluded_from_timings(self, manual_clock, turn_clock):
        session = apply_action(make_session(turn_clock), DraftAction.START, turn_clock, turn_clock.now())
        manual_clock.advance(5)
        session, manual = commit_pick(session, player_id="p1", clock=turn_clock, now=manual_clock.now())
        manual_clock.advance(61)
        session, skipped = commit_pick(
            session,
            player_id=None,
            clock=turn_clock,
            now=manual_clock.now(),
            pick_type=PickType.SKIPPED,
        )
        analytics = summarize_draft(session, [manual, skipped])
        assert analytics.skipped_picks == 1
        assert analytics.auto_picks == 0
        assert analytics.average_pick_seconds == pytest.approx(5)
        assert analytics.completion_seconds is None

    def test_empty_draft(self, turn_clock):
        analytics = summarize_draft(make_session(turn_clock), [])
        assert analytics.total_picks == 0
        assert analytics.average_pick_seconds == 0
        assert analytics.completion_seconds is None

    def test_timer_is_relative_to_turn_start(self, manual_clock, turn_clock):
        session, _ = _draft_with_picks(turn_clock, manual_clock, 1)
        assert session.timer_expires_at == manual_clock.now() + timedelta(seconds=60)
