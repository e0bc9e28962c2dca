"""
Authoring workflow for the admin test editor.

A TestDraft holds the test fields and saved questions; a QuestionDraft is the mutable
working copy of the question being edited. Nothing here touches storage: `build()`
hands back a validated Test for DatabaseClient.create_test / update_test.
"""
import base64
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from engine import (
    DEFAULT_PAIR_POINTS,
    DEFAULT_PASSING_SCORE,
    DEFAULT_POINTS,
    DEFAULT_TIME_LIMIT,
    MAX_IMAGE_BYTES,
    QUESTION_TYPES,
)
from examportal.definitions import (
    ChoiceQuestion,
    FreeTextQuestion,
    MatchingPair,
    MatchingQuestion,
    MultipleChoiceQuestion,
    Option,
    Question,
    SingleChoiceQuestion,
    Test,
    ValidationError,
    clear_links_to,
    validate_question,
    validate_test,
)

logger = logging.getLogger(__name__)


def _next_id(prefix: str, existing: Iterable[str]) -> str:
    taken = set(existing)
    n = 1
    while f"{prefix}-{n}" in taken:
        n += 1
    return f"{prefix}-{n}"


def image_to_data_url(data: bytes, content_type: str) -> str:
    """Embed an uploaded image as a base64 data URL. Only images up to 2 MB are accepted."""
    if not (content_type or "").startswith("image/"):
        raise ValidationError([("image_url", "Only image files can be uploaded")])
    if len(data) > MAX_IMAGE_BYTES:
        raise ValidationError([("image_url", "Image must be 2 MB or smaller")])
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


@dataclass
class QuestionDraft:
    id: Optional[str] = None
    type: str = SingleChoiceQuestion.type
    text: str = ""
    points: int = DEFAULT_POINTS
    image_url: Optional[str] = None
    options: List[Option] = field(default_factory=list)
    correct_answers: List[str] = field(default_factory=list)
    matching_pairs: List[MatchingPair] = field(default_factory=list)
    linked_question_id: Optional[str] = None
    linked_answer_ids: List[str] = field(default_factory=list)

    @property
    def is_choice(self) -> bool:
        return self.type in (SingleChoiceQuestion.type, MultipleChoiceQuestion.type)

    def set_type(self, qtype: str):
        """Switch question type. Correct answers always reset; text drops options, matching starts with no pairs."""
        if qtype not in QUESTION_TYPES:
            raise ValidationError([("type", f"Unknown question type: {qtype!r}")])
        self.type = qtype
        self.correct_answers = []
        if qtype == FreeTextQuestion.type:
            self.options = []
        if qtype == MatchingQuestion.type:
            self.matching_pairs = []

    # ----- options -----

    def add_option(self, text: str, image_url: Optional[str] = None) -> Option:
        if not (text or "").strip() and not image_url:
            raise ValidationError([("options", "Option text is required")])
        option = Option(id=_next_id("option", (o.id for o in self.options)), text=(text or "").strip(), image_url=image_url)
        self.options.append(option)
        return option

    def remove_option(self, option_id: str):
        """Remove an option along with any correct-answer or trigger reference to it."""
        self.options = [o for o in self.options if o.id != option_id]
        self.correct_answers = [a for a in self.correct_answers if a != option_id]
        self.linked_answer_ids = [a for a in self.linked_answer_ids if a != option_id]

    def toggle_correct_answer(self, option_id: str):
        if self.type == SingleChoiceQuestion.type:
            self.correct_answers = [option_id]
        elif option_id in self.correct_answers:
            self.correct_answers = [a for a in self.correct_answers if a != option_id]
        else:
            self.correct_answers = self.correct_answers + [option_id]

    # ----- matching pairs -----

    def add_pair(self, left: str, right: str, points: int = DEFAULT_PAIR_POINTS) -> MatchingPair:
        left, right = (left or "").strip(), (right or "").strip()
        if not left or not right:
            raise ValidationError([("matching_pairs", "Both sides of a pair are required")])
        if any(p.left == left for p in self.matching_pairs):
            raise ValidationError([("matching_pairs", f"Left value {left!r} is already used")])
        pair = MatchingPair(left=left, right=right, points=points or DEFAULT_PAIR_POINTS)
        self.matching_pairs.append(pair)
        return pair

    def remove_pair(self, index: int):
        if 0 <= index < len(self.matching_pairs):
            del self.matching_pairs[index]

    # ----- links -----

    def set_link(self, question_id: Optional[str]):
        if question_id != self.linked_question_id:
            self.linked_answer_ids = []
        self.linked_question_id = question_id or None

    def toggle_linked_answer(self, option_id: str):
        if option_id in self.linked_answer_ids:
            self.linked_answer_ids = [a for a in self.linked_answer_ids if a != option_id]
        else:
            self.linked_answer_ids = self.linked_answer_ids + [option_id]

    # ----- conversion -----

    def to_question(self) -> Question:
        common = dict(
            id=self.id or "",
            text=(self.text or "").strip(),
            points=self.points,
            image_url=self.image_url,
            linked_question_id=self.linked_question_id,
            linked_answer_ids=tuple(self.linked_answer_ids),
        )
        if self.type == SingleChoiceQuestion.type:
            return SingleChoiceQuestion(options=tuple(self.options), correct_answers=tuple(self.correct_answers), **common)
        if self.type == MultipleChoiceQuestion.type:
            return MultipleChoiceQuestion(options=tuple(self.options), correct_answers=tuple(self.correct_answers), **common)
        if self.type == MatchingQuestion.type:
            return MatchingQuestion(matching_pairs=tuple(self.matching_pairs), **common)
        return FreeTextQuestion(**common)

    @classmethod
    def from_question(cls, question: Question) -> "QuestionDraft":
        draft = cls(
            id=question.id,
            type=question.type,
            text=question.text,
            points=question.points,
            image_url=question.image_url,
            linked_question_id=question.linked_question_id,
            linked_answer_ids=list(question.linked_answer_ids),
        )
        if isinstance(question, ChoiceQuestion):
            draft.options = list(question.options)
            draft.correct_answers = list(question.correct_answers)
        elif isinstance(question, MatchingQuestion):
            draft.matching_pairs = list(question.matching_pairs)
        return draft


@dataclass
class TestDraft:
    """The test being created or edited. Saving replaces the whole stored test."""

    title: str = ""
    description: str = ""
    time_limit: str = DEFAULT_TIME_LIMIT
    passing_score: int = DEFAULT_PASSING_SCORE
    shuffle_questions: bool = False
    image_url: Optional[str] = None
    questions: List[Question] = field(default_factory=list)
    test_id: Optional[str] = None
    created_at: Optional[str] = None
    created_by: Optional[str] = None

    __test__ = False

    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    def get_question(self, question_id: str) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)

    def new_question(self) -> QuestionDraft:
        return QuestionDraft()

    def edit_question(self, question_id: str) -> Optional[QuestionDraft]:
        question = self.get_question(question_id)
        return QuestionDraft.from_question(question) if question else None

    def linkable_questions(self, exclude_id: Optional[str] = None) -> List[Question]:
        """Questions that `exclude_id` may reveal: everything but itself."""
        return [q for q in self.questions if q.id != exclude_id]

    def save_question(self, draft: QuestionDraft) -> Question:
        """Validate the working copy and add it, or replace the saved question with the same id."""
        if not draft.id:
            draft.id = _next_id("question", self.question_ids())
        question = draft.to_question()

        ids = set(self.question_ids()) | {question.id}
        errors = validate_question(question, question_ids=ids)
        if errors:
            raise ValidationError(errors)

        for i, existing in enumerate(self.questions):
            if existing.id == question.id:
                self.questions[i] = question
                break
        else:
            self.questions.append(question)
        logger.debug(f"Saved question {question.id} ({question.type}) in draft {self.test_id or '(new)'}")
        return question

    def remove_question(self, question_id: str):
        remaining = tuple(q for q in self.questions if q.id != question_id)
        self.questions = list(clear_links_to(remaining, question_id))

    def build(self, test_id: Optional[str] = None) -> Test:
        """Return the validated Test; raises ValidationError listing every problem."""
        test = Test(
            id=test_id or self.test_id or "",
            title=(self.title or "").strip(),
            description=(self.description or "").strip(),
            time_limit=(self.time_limit or "").strip(),
            passing_score=self.passing_score,
            shuffle_questions=bool(self.shuffle_questions),
            questions=tuple(self.questions),
            image_url=self.image_url,
            created_at=self.created_at,
            created_by=self.created_by,
        )
        return validate_test(test)

    @classmethod
    def from_test(cls, test: Test) -> "TestDraft":
        return cls(
            title=test.title,
            description=test.description,
            time_limit=test.time_limit,
            passing_score=test.passing_score,
            shuffle_questions=test.shuffle_questions,
            image_url=test.image_url,
            questions=list(test.questions),
            test_id=test.id or None,
            created_at=test.created_at,
            created_by=test.created_by,
        )
