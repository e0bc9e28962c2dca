"""
Tests for the authoring draft

Tests cover:
- Question working copies (options, correct answers, pairs, links, type switches)
- Saving questions into a test draft and building the Test
- Image upload conversion
"""
import base64

import pytest

from examportal.authoring import QuestionDraft, TestDraft, image_to_data_url
from examportal.definitions import (
    FreeTextQuestion,
    MatchingQuestion,
    MultipleChoiceQuestion,
    SingleChoiceQuestion,
    ValidationError,
)


def choice_draft(qtype="single", text="Pick one"):
    draft = QuestionDraft(text=text)
    draft.set_type(qtype)
    for label in ("Red", "Green", "Blue"):
        draft.add_option(label)
    return draft


class TestQuestionDraft:
    def test_option_ids_are_generated(self):
        draft = choice_draft()
        assert [o.id for o in draft.options] == ["option-1", "option-2", "option-3"]
        draft.remove_option("option-2")
        assert draft.add_option("Yellow").id == "option-2"

    def test_blank_option_rejected(self):
        with pytest.raises(ValidationError):
            QuestionDraft().add_option("   ")

    def test_single_choice_replaces_correct_answer(self):
        draft = choice_draft("single")
        draft.toggle_correct_answer("option-1")
        draft.toggle_correct_answer("option-3")
        assert draft.correct_answers == ["option-3"]

    def test_multiple_choice_toggles_correct_answers(self):
        draft = choice_draft("multiple")
        draft.toggle_correct_answer("option-1")
        draft.toggle_correct_answer("option-3")
        draft.toggle_correct_answer("option-1")
        assert draft.correct_answers == ["option-3"]

    def test_removing_option_cleans_references(self):
        draft = choice_draft("multiple")
        draft.toggle_correct_answer("option-1")
        draft.toggle_correct_answer("option-2")
        draft.set_link("question-9")
        draft.toggle_linked_answer("option-2")
        draft.remove_option("option-2")
        assert draft.correct_answers == ["option-1"]
        assert draft.linked_answer_ids == []

    def test_set_type_resets(self):
        draft = choice_draft("multiple")
        draft.toggle_correct_answer("option-1")
        draft.set_type("single")
        assert draft.correct_answers == []
        assert len(draft.options) == 3
        draft.set_type("text")
        assert draft.options == []
        draft.add_pair("a", "1")
        draft.set_type("matching")
        assert draft.matching_pairs == []

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            QuestionDraft().set_type("essay")

    def test_pairs(self):
        draft = QuestionDraft(type="matching", text="Match")
        draft.add_pair("France", "Paris")
        draft.add_pair("Japan", "Tokyo", 3)
        with pytest.raises(ValidationError):
            draft.add_pair("France", "Lyon")
        with pytest.raises(ValidationError):
            draft.add_pair("Chile", "")
        draft.remove_pair(0)
        draft.remove_pair(10)
        assert [(p.left, p.points) for p in draft.matching_pairs] == [("Japan", 3)]

    def test_changing_link_target_clears_triggers(self):
        draft = choice_draft()
        draft.set_link("question-2")
        draft.toggle_linked_answer("option-1")
        draft.set_link("question-3")
        assert draft.linked_answer_ids == []
        draft.set_link(None)
        assert draft.linked_question_id is None

    def test_to_question_builds_variant(self):
        assert isinstance(choice_draft("single").to_question(), SingleChoiceQuestion)
        assert isinstance(choice_draft("multiple").to_question(), MultipleChoiceQuestion)
        assert isinstance(QuestionDraft(type="text", text="?").to_question(), FreeTextQuestion)
        assert isinstance(QuestionDraft(type="matching", text="?").to_question(), MatchingQuestion)


class TestTestDraft:
    def make_draft(self):
        draft = TestDraft(title="Colours", description="About colours", time_limit="15:00", passing_score=60)
        q = choice_draft("single", "Sky colour?")
        q.toggle_correct_answer("option-3")
        draft.save_question(q)
        essay = QuestionDraft(type="text", text="Favourite colour and why?")
        draft.save_question(essay)
        return draft

    def test_save_assigns_question_ids(self):
        draft = self.make_draft()
        assert draft.question_ids() == ["question-1", "question-2"]

    def test_save_validates_question(self):
        draft = TestDraft()
        with pytest.raises(ValidationError) as exc:
            draft.save_question(choice_draft("single"))
        assert "correct_answers" in exc.value.fields
        assert draft.questions == []

    def test_save_replaces_edited_question(self):
        draft = self.make_draft()
        edit = draft.edit_question("question-1")
        edit.text = "Colour of a clear sky?"
        draft.save_question(edit)
        assert len(draft.questions) == 2
        assert draft.get_question("question-1").text == "Colour of a clear sky?"

    def test_link_target_must_be_in_draft(self):
        draft = self.make_draft()
        q = choice_draft("single", "Do you like green?")
        q.toggle_correct_answer("option-1")
        q.set_link("question-99")
        q.toggle_linked_answer("option-1")
        with pytest.raises(ValidationError) as exc:
            draft.save_question(q)
        assert exc.value.fields == ["linked_question_id"]

    def test_linked_questions_and_removal(self):
        draft = self.make_draft()
        edit = draft.edit_question("question-1")
        edit.set_link("question-2")
        edit.toggle_linked_answer("option-3")
        draft.save_question(edit)
        assert [q.id for q in draft.linkable_questions("question-1")] == ["question-2"]

        draft.remove_question("question-2")
        assert draft.get_question("question-1").linked_question_id is None

    def test_build_returns_validated_test(self):
        test = self.make_draft().build(test_id="t-1")
        assert test.id == "t-1"
        assert test.passing_score == 60
        assert [q.type for q in test.questions] == ["single", "text"]

    def test_build_reports_all_problems(self):
        draft = TestDraft(time_limit="soon")
        with pytest.raises(ValidationError) as exc:
            draft.build()
        assert {"title", "description", "time_limit", "questions"} <= set(exc.value.fields)

    def test_reopen_saved_test(self, linked_test):
        draft = TestDraft.from_test(linked_test)
        assert draft.test_id == "t-linked"
        assert draft.build() == linked_test


class TestImages:
    def test_data_url(self):
        url = image_to_data_url(b"\x89PNG", "image/png")
        assert url == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()

    def test_rejects_non_images(self):
        with pytest.raises(ValidationError) as exc:
            image_to_data_url(b"%PDF", "application/pdf")
        assert exc.value.fields == ["image_url"]

    def test_rejects_large_files(self):
        with pytest.raises(ValidationError):
            image_to_data_url(b"0" * (2 * 1024 * 1024 + 1), "image/jpeg")
