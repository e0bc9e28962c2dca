"""
Tests for TestSession

Tests cover:
- Answer mutations and visibility recomputation
- Cursor behaviour when the visible list changes
- Countdown, expiry and the single submission
"""
import random
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from examportal.engine import TestSession

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def started(test, **kwargs):
    session = TestSession(test, "user-1", user_email="ann@example.com", user_name="Ann Lee", **kwargs)
    session.start(now=T0)
    return session


class TestSessionSetup:
    def test_answers_start_empty(self, mixed_test):
        session = TestSession(mixed_test, "user-1")
        assert set(session.answers) == {q.id for q in mixed_test.questions}
        assert session.answers["q-multi"].value == []
        assert session.answers["q-single"].value == ""
        assert session.status == TestSession.STATUS_NOT_STARTED

    def test_visibility_computed_up_front(self, linked_test):
        session = TestSession(linked_test, "user-1")
        assert session.visible_questions == {"q1", "q3"}
        assert [q.id for q in session.visible_question_list()] == ["q1", "q3"]

    def test_question_order_without_shuffle(self, mixed_test):
        assert TestSession(mixed_test, "u").question_order == [q.id for q in mixed_test.questions]

    def test_shuffle_uses_given_random(self, mixed_test):
        shuffled = replace(mixed_test, shuffle_questions=True)
        first = TestSession(shuffled, "u", rng=random.Random(7)).question_order
        second = TestSession(shuffled, "u", rng=random.Random(7)).question_order
        assert first == second
        assert sorted(first) == sorted(q.id for q in mixed_test.questions)


class TestAnswering:
    def test_trigger_reveals_and_hides(self, linked_test):
        session = started(linked_test)
        session.select_option("q1", "a")
        assert "q2" in session.visible_questions
        session.select_option("q1", "b")
        assert "q2" not in session.visible_questions

    def test_cursor_moves_off_hidden_question(self, linked_test):
        session = started(linked_test)
        session.select_option("q1", "a")
        session.go_to(1)
        assert session.current_question().id == "q2"
        session.select_option("q1", "b")
        assert session.current_question().id == "q3"

    def test_cursor_follows_question_when_list_grows(self, linked_test):
        session = started(linked_test)
        session.next_question()
        assert session.current_question().id == "q3"
        session.select_option("q1", "a")
        assert session.current_question().id == "q3"
        assert session.current_question_idx == 2

    def test_invalid_mutations_are_ignored(self, mixed_test):
        session = started(mixed_test)
        session.select_option("q-single", "nope")
        session.select_option("q-multi", "x")
        session.select_option("ghost", "x")
        session.set_text("q-single", "typed")
        assert session.answers["q-single"].value == ""
        assert session.answers["q-multi"].value == []

    def test_toggle_option(self, mixed_test):
        session = started(mixed_test)
        session.toggle_option("q-multi", "x")
        session.toggle_option("q-multi", "z")
        session.toggle_option("q-multi", "z")
        session.toggle_option("q-multi", "y", checked=True)
        session.toggle_option("q-multi", "y", checked=True)
        assert session.answers["q-multi"].value == ["x", "y"]
        session.toggle_option("q-multi", "x", checked=False)
        assert session.answers["q-multi"].value == ["y"]

    def test_matching_keeps_one_right_per_left(self, mixed_test):
        session = started(mixed_test)
        session.match_pair("q-match", "France", "Lima")
        session.match_pair("q-match", "France", "Paris")
        session.match_pair("q-match", "Japan", "Tokyo")
        session.match_pair("q-match", "Atlantis", "Paris")
        session.match_pair("q-match", "Peru", "Oslo")
        assert session.answers["q-match"].matches == {"France": "Paris", "Japan": "Tokyo"}
        session.clear_match("q-match", "Japan")
        assert session.answers["q-match"].matches == {"France": "Paris"}

    def test_set_text(self, mixed_test):
        session = started(mixed_test)
        session.set_text("q-text", "My answer")
        assert session.answers["q-text"].value == "My answer"


class TestNavigation:
    def test_next_and_previous_stop_at_ends(self, mixed_test):
        session = started(mixed_test)
        assert not session.previous_question()
        assert session.next_question()
        assert session.next_question()
        assert session.next_question()
        assert not session.next_question()
        assert session.current_question().id == "q-match"
        assert session.progress() == 1.0

    def test_summary(self, mixed_test):
        session = started(mixed_test)
        session.select_option("q-single", "x")
        summary = session.get_session_summary(now=T0 + timedelta(seconds=30))
        assert summary["questions_answered"] == 1
        assert summary["questions_skipped"] == 3
        assert summary["total_questions"] == 4
        assert summary["time_remaining_sec"] == 570


class TestTimerAndSubmit:
    def test_countdown(self, mixed_test):
        session = TestSession(mixed_test, "u")
        assert session.time_remaining(now=T0) == 600
        assert not session.is_expired(now=T0 + timedelta(hours=1))
        session.start(now=T0)
        assert session.time_remaining(now=T0 + timedelta(seconds=61)) == 539
        assert not session.is_expired(now=T0 + timedelta(seconds=599))
        assert session.is_expired(now=T0 + timedelta(seconds=600))
        assert session.time_remaining(now=T0 + timedelta(seconds=900)) == 0

    def test_zero_limit_never_expires(self, mixed_test):
        session = started(replace(mixed_test, time_limit="0"))
        assert not session.is_expired(now=T0 + timedelta(days=1))

    def test_submit_is_idempotent(self, mixed_test):
        session = started(mixed_test)
        session.select_option("q-single", "x")
        first = session.submit(now=T0 + timedelta(seconds=100))
        second = session.submit(now=T0 + timedelta(seconds=700))
        assert first is second
        assert first.time_spent == 100
        assert session.is_completed

    def test_time_spent_capped_at_limit(self, mixed_test):
        session = started(mixed_test)
        result = session.submit(now=T0 + timedelta(seconds=2000))
        assert result.time_spent == 600

    def test_mutations_after_submit_ignored(self, mixed_test):
        session = started(mixed_test)
        session.submit(now=T0)
        session.select_option("q-single", "x")
        assert session.answers["q-single"].value == ""

    def test_hidden_answers_are_not_scored(self, linked_test):
        session = started(linked_test)
        session.select_option("q1", "b")
        session.select_option("q2", "c")
        result = session.submit(now=T0 + timedelta(seconds=10))
        assert result.visible_questions == ("q1", "q3")
        assert result.total_points == 2
        assert result.score == 0
        assert result.user_email == "ann@example.com"
        assert result.user_name == "Ann Lee"
