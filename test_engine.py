"""
Tests for the scoring & visibility engine

Tests cover:
- Visible question set for plain and linked tests
- Per-type scoring (single, multiple, text, matching with partial credit)
- Result totals, rounding and pass/fail
"""
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from examportal.definitions import FreeTextQuestion, MultipleChoiceQuestion, Test
from examportal.engine import (
    Answer,
    Result,
    compute_result,
    compute_visible_questions,
    ordered_visible_questions,
    score_question,
)


class TestVisibility:
    def test_unlinked_test_shows_everything(self, mixed_test):
        """Without links every question is visible whatever the answers."""
        everything = {q.id for q in mixed_test.questions}
        assert compute_visible_questions(mixed_test, {}) == everything
        answers = {"q-single": Answer("q-single", "y"), "q-multi": Answer("q-multi", ["z"])}
        assert compute_visible_questions(mixed_test, answers) == everything

    def test_linked_target_hidden_until_triggered(self, linked_test):
        assert compute_visible_questions(linked_test, {}) == {"q1", "q3"}
        answers = {"q1": Answer("q1", "a")}
        assert compute_visible_questions(linked_test, answers) == {"q1", "q2", "q3"}

    def test_switching_away_hides_target(self, linked_test):
        answers = {"q1": Answer("q1", "a")}
        assert "q2" in compute_visible_questions(linked_test, answers)
        answers["q1"] = Answer("q1", "b")
        first = compute_visible_questions(linked_test, answers)
        second = compute_visible_questions(linked_test, answers)
        assert "q2" not in first
        assert first == second

    def test_multiple_choice_trigger_uses_intersection(self, linked_test):
        q1 = linked_test.questions[0]
        multi = MultipleChoiceQuestion(
            id="q1", text=q1.text, options=q1.options, correct_answers=("a",),
            linked_question_id="q2", linked_answer_ids=("a",),
        )
        test = replace(linked_test, questions=(multi,) + linked_test.questions[1:])
        assert "q2" in compute_visible_questions(test, {"q1": Answer("q1", ["b", "a"])})
        assert "q2" not in compute_visible_questions(test, {"q1": Answer("q1", ["b"])})

    def test_raw_values_and_empty_strings(self, linked_test):
        assert "q2" in compute_visible_questions(linked_test, {"q1": "a"})
        assert "q2" not in compute_visible_questions(linked_test, {"q1": ""})
        assert "q2" not in compute_visible_questions(linked_test, {"q1": 42})

    def test_idempotent(self, linked_test):
        answers = {"q1": Answer("q1", "a")}
        assert compute_visible_questions(linked_test, answers) == compute_visible_questions(linked_test, answers)

    def test_ordered_visible_follows_test_order(self, linked_test):
        ordered = ordered_visible_questions(linked_test, {"q3", "q1"})
        assert [q.id for q in ordered] == ["q1", "q3"]
        ordered = ordered_visible_questions(linked_test, {"q3", "q1"}, order=["q3", "q2", "q1"])
        assert [q.id for q in ordered] == ["q3", "q1"]


class TestChoiceScoring:
    def test_single_choice(self, single_question):
        assert score_question(single_question, Answer("q-single", "x")).awarded == 2
        assert score_question(single_question, Answer("q-single", "y")).awarded == 0
        assert score_question(single_question, Answer("q-single", "")).awarded == 0
        assert score_question(single_question, None).awarded == 0

    def test_multiple_choice_requires_exact_set(self, multiple_question):
        assert score_question(multiple_question, Answer("q-multi", ["y", "x"])).awarded == 3
        assert score_question(multiple_question, Answer("q-multi", ["x"])).awarded == 0
        assert score_question(multiple_question, Answer("q-multi", ["x", "y", "z"])).awarded == 0
        assert score_question(multiple_question, Answer("q-multi", [])).awarded == 0

    def test_free_text_never_awarded(self, text_question):
        scored = score_question(text_question, Answer("q-text", "a thoughtful essay"))
        assert scored.awarded == 0
        assert scored.possible == 1


class TestMatchingScoring:
    def test_perfect_match_awards_question_points(self, matching_question):
        """All pairs right gives the question's points, not the pair-weight sum."""
        answer = Answer("q-match", matches={"France": "Paris", "Japan": "Tokyo", "Peru": "Lima"})
        scored = score_question(matching_question, answer)
        assert scored.awarded == 10
        assert scored.is_correct
        assert scored.matching.correct_count == 3
        assert scored.matching.total_pair_points == 10

    def test_partial_match_is_proportional(self, matching_question):
        answer = Answer("q-match", matches={"France": "Lima", "Japan": "Tokyo", "Peru": "Paris"})
        scored = score_question(matching_question, answer)
        assert float(scored.awarded) == pytest.approx(10 * 2 / 6)
        assert scored.matching.correct_count == 1
        assert scored.matching.total_pairs == 3
        assert scored.matching.earned_points == pytest.approx(3.3333, abs=1e-3)
        assert not scored.is_correct

    def test_unanswered_matching_scores_zero(self, matching_question):
        scored = score_question(matching_question, None)
        assert scored.awarded == 0
        assert scored.matching.correct_count == 0

    def test_unknown_pairs_earn_nothing(self, matching_question):
        answer = Answer("q-match", matches={"Atlantis": "Paris", "France": "Tokyo"})
        assert score_question(matching_question, answer).awarded == 0


class TestComputeResult:
    def test_totals_over_visible_only(self, linked_test):
        answers = {"q1": Answer("q1", "a"), "q2": Answer("q2", "c")}
        hidden = compute_result(linked_test, answers, {"q1", "q3"}, user_id="u1")
        assert hidden.total_points == 2
        assert hidden.score == 1
        shown = compute_result(linked_test, answers, compute_visible_questions(linked_test, answers), user_id="u1")
        assert shown.total_points == 7
        assert shown.score == 6
        assert shown.visible_questions == ("q1", "q2", "q3")

    def test_percentage_and_pass(self, mixed_test):
        answers = {
            "q-single": Answer("q-single", "x"),
            "q-multi": Answer("q-multi", ["x", "y"]),
            "q-match": Answer("q-match", matches={"Japan": "Tokyo"}),
        }
        result = compute_result(mixed_test, answers, {q.id for q in mixed_test.questions})
        # 2 + 3 + 10 * 2/6 out of 16
        assert result.total_points == 16
        assert result.score == pytest.approx(5 + 10 / 3)
        assert result.percentage == 52
        assert result.passed
        assert set(result.matching_results) == {"q-match"}

    def test_percentage_rounds_half_up(self, single_question):
        """2 of 16 points is 12.5%, which rounds up to 13."""
        essay = FreeTextQuestion(id="q-essay", text="Discuss", points=14)
        test = Test(id="t", title="T", description="D", passing_score=13, questions=(single_question, essay))
        result = compute_result(test, {"q-single": Answer("q-single", "x")}, {"q-single", "q-essay"})
        assert result.percentage == 13
        assert result.passed

    def test_zero_total_points(self):
        test = Test(id="t", title="T", description="D", questions=(FreeTextQuestion(id="q", text="Why?", points=1),))
        result = compute_result(test, {}, set())
        assert result.total_points == 0
        assert result.percentage == 0
        assert result.passed is False

    def test_free_text_only_test(self):
        test = Test(id="t", title="T", description="D", questions=(FreeTextQuestion(id="q", text="Why?", points=4),))
        result = compute_result(test, {"q": Answer("q", "Because")}, {"q"})
        assert result.total_points == 4
        assert result.score == 0
        assert result.percentage == 0
        assert not result.passed

    def test_malformed_answers_do_not_raise(self, mixed_test):
        answers = {"q-single": 12, "q-multi": {"answer": None}, "q-match": "Paris", "ghost": "x"}
        result = compute_result(mixed_test, answers, {q.id for q in mixed_test.questions})
        assert result.score == 0

    @pytest.mark.parametrize(
        "raw",
        [
            {"matching_answers": [{"left": "France", "right": ["Paris"]}]},
            {"matching_answers": [{"left": ["France"], "right": "Paris"}]},
            {"matching_answers": ["France=Paris", None]},
            {"matching_answers": {"left": "France", "right": "Paris"}},
            Answer("q-match", matches=None),
            Answer("q-match", matches={"France": ["Paris"]}),
        ],
    )
    def test_malformed_matching_answers_score_zero(self, mixed_test, raw):
        result = compute_result(mixed_test, {"q-match": raw}, {q.id for q in mixed_test.questions})
        assert result.score == 0
        assert result.matching_results["q-match"].correct_count == 0

    def test_well_formed_pairs_survive_next_to_bad_ones(self, matching_question):
        raw = {"matching_answers": [{"left": "France", "right": "Paris"}, {"left": "Japan", "right": 7}]}
        scored = score_question(matching_question, raw)
        assert scored.matching.correct_count == 1

    def test_result_metadata_and_dict(self, linked_test):
        when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        result = compute_result(
            linked_test, {"q1": Answer("q1", "b")}, {"q1", "q3"}, user_id="u1",
            user_email="ann@example.com", user_name="Ann Lee", time_spent=42, completed_at=when,
        )
        data = result.to_dict()
        assert data["completed_at"] == "2026-01-02T03:04:05+00:00"
        assert data["user_email"] == "ann@example.com"
        assert data["time_spent"] == 42
        assert data["answers"] == [{"question_id": "q1", "answer": "b"}]
        assert Result.from_dict(data) == result
