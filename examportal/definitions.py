"""
Test definition model: options, matching pairs, the four question variants and the Test itself.
Validation collects every broken invariant and raises a single ValidationError naming the fields.
"""
import logging
import re
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import ClassVar, Dict, List, Mapping, Optional, Set, Tuple, Union

from engine import (
    DEFAULT_PAIR_POINTS,
    DEFAULT_PASSING_SCORE,
    DEFAULT_POINTS,
    DEFAULT_TIME_LIMIT,
    MIN_CHOICE_OPTIONS,
    MIN_MATCHING_PAIRS,
)

logger = logging.getLogger(__name__)

_TIME_LIMIT_RE = re.compile(r"^\d{1,4}(:[0-5]?\d)?$")
_LEADING_INT_RE = re.compile(r"\s*(\d+)")


class ValidationError(Exception):
    """A test or question breaks one or more structural rules.

    `errors` is an ordered list of (field, message) pairs, e.g.
    ("questions[1].options", "At least 2 options are required").
    """

    def __init__(self, errors: List[Tuple[str, str]]):
        self.errors = list(errors)
        super().__init__("; ".join(f"{name}: {message}" for name, message in self.errors))

    @property
    def fields(self) -> List[str]:
        return [name for name, _ in self.errors]


@dataclass(frozen=True)
class Option:
    id: str
    text: str
    image_url: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {"id": self.id, "text": self.text}
        if self.image_url:
            data["image_url"] = self.image_url
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Option":
        return cls(id=str(data.get("id") or ""), text=data.get("text") or "", image_url=data.get("image_url") or None)


@dataclass(frozen=True)
class MatchingPair:
    left: str
    right: str
    points: int = DEFAULT_PAIR_POINTS

    def to_dict(self) -> Dict:
        return {"left": self.left, "right": self.right, "points": self.points}

    @classmethod
    def from_dict(cls, data: Dict) -> "MatchingPair":
        return cls(
            left=data.get("left") or "",
            right=data.get("right") or "",
            points=data.get("points") or DEFAULT_PAIR_POINTS,
        )


@dataclass(frozen=True)
class QuestionBase:
    """Fields every question variant carries."""

    type: ClassVar[str] = ""

    id: str
    text: str
    points: int = DEFAULT_POINTS
    image_url: Optional[str] = None
    linked_question_id: Optional[str] = None
    linked_answer_ids: Tuple[str, ...] = ()

    def _common_dict(self) -> Dict:
        data = {"id": self.id, "type": self.type, "text": self.text, "points": self.points}
        if self.image_url:
            data["image_url"] = self.image_url
        if self.linked_question_id:
            data["linked_question_id"] = self.linked_question_id
            data["linked_answer_ids"] = list(self.linked_answer_ids)
        return data


@dataclass(frozen=True)
class ChoiceQuestion(QuestionBase):
    options: Tuple[Option, ...] = ()
    correct_answers: Tuple[str, ...] = ()

    def option_ids(self) -> List[str]:
        return [opt.id for opt in self.options]

    def to_dict(self) -> Dict:
        data = self._common_dict()
        data["options"] = [opt.to_dict() for opt in self.options]
        data["correct_answers"] = list(self.correct_answers)
        return data


@dataclass(frozen=True)
class SingleChoiceQuestion(ChoiceQuestion):
    type: ClassVar[str] = "single"


@dataclass(frozen=True)
class MultipleChoiceQuestion(ChoiceQuestion):
    type: ClassVar[str] = "multiple"


@dataclass(frozen=True)
class FreeTextQuestion(QuestionBase):
    type: ClassVar[str] = "text"

    def to_dict(self) -> Dict:
        return self._common_dict()


@dataclass(frozen=True)
class MatchingQuestion(QuestionBase):
    type: ClassVar[str] = "matching"

    matching_pairs: Tuple[MatchingPair, ...] = ()

    def left_values(self) -> List[str]:
        return [pair.left for pair in self.matching_pairs]

    def right_values(self) -> List[str]:
        """Shared pick-list offered for every left value (first occurrence order)."""
        seen = []
        for pair in self.matching_pairs:
            if pair.right not in seen:
                seen.append(pair.right)
        return seen

    def total_pair_points(self) -> int:
        return sum(pair.points or DEFAULT_PAIR_POINTS for pair in self.matching_pairs)

    def to_dict(self) -> Dict:
        data = self._common_dict()
        data["matching_pairs"] = [pair.to_dict() for pair in self.matching_pairs]
        return data


Question = Union[SingleChoiceQuestion, MultipleChoiceQuestion, FreeTextQuestion, MatchingQuestion]

_QUESTION_CLASSES = {
    SingleChoiceQuestion.type: SingleChoiceQuestion,
    MultipleChoiceQuestion.type: MultipleChoiceQuestion,
    FreeTextQuestion.type: FreeTextQuestion,
    MatchingQuestion.type: MatchingQuestion,
}


def question_from_dict(data: Dict) -> Question:
    """Build the right question variant from its stored dict. Fields of other variants are dropped."""
    qtype = data.get("type") or SingleChoiceQuestion.type
    cls = _QUESTION_CLASSES.get(qtype)
    if cls is None:
        raise ValidationError([("type", f"Unknown question type: {qtype!r}")])

    common = {
        "id": str(data.get("id") or ""),
        "text": data.get("text") or "",
        "points": data.get("points", DEFAULT_POINTS),
        "image_url": data.get("image_url") or None,
        "linked_question_id": data.get("linked_question_id") or None,
        "linked_answer_ids": tuple(data.get("linked_answer_ids") or ()),
    }
    if issubclass(cls, ChoiceQuestion):
        return cls(
            options=tuple(Option.from_dict(o) for o in data.get("options") or []),
            correct_answers=tuple(data.get("correct_answers") or ()),
            **common,
        )
    if cls is MatchingQuestion:
        return cls(
            matching_pairs=tuple(MatchingPair.from_dict(p) for p in data.get("matching_pairs") or []),
            **common,
        )
    return cls(**common)


def question_to_dict(question: Question) -> Dict:
    return question.to_dict()


@dataclass(frozen=True)
class Test:
    id: str = ""
    title: str = ""
    description: str = ""
    time_limit: str = DEFAULT_TIME_LIMIT
    passing_score: int = DEFAULT_PASSING_SCORE
    shuffle_questions: bool = False
    questions: Tuple[Question, ...] = ()
    image_url: Optional[str] = None
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    _by_id: Mapping[str, Question] = field(init=False, repr=False, compare=False)

    # pytest would otherwise try to collect this class
    __test__ = False

    def __post_init__(self):
        object.__setattr__(self, "_by_id", MappingProxyType({q.id: q for q in self.questions}))

    @property
    def question_map(self) -> Mapping[str, Question]:
        return self._by_id

    def get_question(self, question_id: str) -> Optional[Question]:
        return self._by_id.get(question_id)

    @property
    def time_limit_seconds(self) -> int:
        return parse_time_limit(self.time_limit)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "time_limit": self.time_limit,
            "passing_score": self.passing_score,
            "shuffle_questions": self.shuffle_questions,
            "questions": [question_to_dict(q) for q in self.questions],
            "image_url": self.image_url,
            "created_at": self.created_at,
            "created_by": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Test":
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("title") or "",
            description=data.get("description") or "",
            time_limit=data.get("time_limit") or DEFAULT_TIME_LIMIT,
            passing_score=data.get("passing_score", DEFAULT_PASSING_SCORE),
            shuffle_questions=bool(data.get("shuffle_questions")),
            questions=tuple(question_from_dict(q) for q in data.get("questions") or []),
            image_url=data.get("image_url") or None,
            created_at=data.get("created_at"),
            created_by=data.get("created_by"),
        )


# ============= Time limits =============

def _leading_int(part: str) -> int:
    match = _LEADING_INT_RE.match(part or "")
    return int(match.group(1)) if match else 0


def parse_time_limit(time_limit: Optional[str]) -> int:
    """Convert an "mm:ss" limit to seconds. Unreadable parts count as 0."""
    if not time_limit:
        return 0
    parts = str(time_limit).split(":")
    minutes = _leading_int(parts[0])
    seconds = _leading_int(parts[1]) if len(parts) > 1 else 0
    return minutes * 60 + seconds


def format_time(seconds: int) -> str:
    """Format seconds as m:ss for the countdown."""
    seconds = max(0, int(seconds))
    minutes, rest = divmod(seconds, 60)
    return f"{minutes}:{rest:02d}"


# ============= Validation =============

def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_question(question: Question, prefix: str = "", question_ids: Optional[Set[str]] = None) -> List[Tuple[str, str]]:
    """
    Return the (field, message) problems of one question.

    Link targets are only checked when `question_ids` (the ids of the whole test) is given;
    the authoring form checks a question on its own before the test exists.
    """
    errors: List[Tuple[str, str]] = []

    if not question.id:
        errors.append((f"{prefix}id", "Question id is required"))
    if not (question.text or "").strip():
        errors.append((f"{prefix}text", "Question text is required"))
    if not _is_positive_int(question.points):
        errors.append((f"{prefix}points", "Points must be a positive whole number"))

    match question:
        case MatchingQuestion():
            if len(question.matching_pairs) < MIN_MATCHING_PAIRS:
                errors.append((f"{prefix}matching_pairs", f"At least {MIN_MATCHING_PAIRS} matching pairs are required"))
            lefts = set()
            for i, pair in enumerate(question.matching_pairs):
                if not (pair.left or "").strip() or not (pair.right or "").strip():
                    errors.append((f"{prefix}matching_pairs[{i}]", "Both sides of a pair are required"))
                if not _is_positive_int(pair.points):
                    errors.append((f"{prefix}matching_pairs[{i}].points", "Pair points must be a positive whole number"))
                if pair.left in lefts:
                    errors.append((f"{prefix}matching_pairs[{i}].left", f"Left value {pair.left!r} is used twice"))
                lefts.add(pair.left)
        case SingleChoiceQuestion() | MultipleChoiceQuestion():
            option_ids = question.option_ids()
            if len(question.options) < MIN_CHOICE_OPTIONS:
                errors.append((f"{prefix}options", f"At least {MIN_CHOICE_OPTIONS} options are required"))
            if any(not oid for oid in option_ids) or len(set(option_ids)) != len(option_ids):
                errors.append((f"{prefix}options", "Option ids must be present and unique"))
            if not question.correct_answers:
                errors.append((f"{prefix}correct_answers", "Select at least one correct answer"))
            elif not set(question.correct_answers) <= set(option_ids):
                errors.append((f"{prefix}correct_answers", "Correct answers must be options of this question"))
            elif isinstance(question, SingleChoiceQuestion) and len(set(question.correct_answers)) != 1:
                errors.append((f"{prefix}correct_answers", "A single-choice question has exactly one correct answer"))
        case FreeTextQuestion():
            pass
        case _:
            errors.append((f"{prefix}type", f"Unsupported question type: {type(question).__name__}"))

    errors.extend(_validate_link(question, prefix, question_ids))
    return errors


def _validate_link(question: Question, prefix: str, question_ids: Optional[Set[str]]) -> List[Tuple[str, str]]:
    errors: List[Tuple[str, str]] = []
    if not question.linked_question_id:
        if question.linked_answer_ids:
            errors.append((f"{prefix}linked_answer_ids", "Trigger answers need a linked question"))
        return errors

    if not isinstance(question, ChoiceQuestion):
        errors.append((f"{prefix}linked_question_id", "Only choice questions can reveal a linked question"))
        return errors
    if question.linked_question_id == question.id:
        errors.append((f"{prefix}linked_question_id", "A question cannot be linked to itself"))
    elif question_ids is not None and question.linked_question_id not in question_ids:
        errors.append((f"{prefix}linked_question_id", f"Linked question {question.linked_question_id!r} does not exist"))
    if not question.linked_answer_ids:
        errors.append((f"{prefix}linked_answer_ids", "Select at least one answer that reveals the linked question"))
    elif not set(question.linked_answer_ids) <= set(question.option_ids()):
        errors.append((f"{prefix}linked_answer_ids", "Trigger answers must be options of this question"))
    return errors


def collect_errors(test: Test) -> List[Tuple[str, str]]:
    errors: List[Tuple[str, str]] = []

    if not (test.title or "").strip():
        errors.append(("title", "Title is required"))
    if not (test.description or "").strip():
        errors.append(("description", "Description is required"))
    if not _is_positive_int(test.passing_score) or test.passing_score > 100:
        errors.append(("passing_score", "Passing score must be between 1 and 100"))
    if not _TIME_LIMIT_RE.match(str(test.time_limit or "").strip()) or parse_time_limit(test.time_limit) <= 0:
        errors.append(("time_limit", "Time limit must look like mm:ss and be longer than zero"))
    if not test.questions:
        errors.append(("questions", "Add at least one question"))

    ids = [q.id for q in test.questions]
    if len(set(ids)) != len(ids):
        errors.append(("questions", "Question ids must be unique"))

    id_set = set(ids)
    for i, question in enumerate(test.questions):
        errors.extend(validate_question(question, prefix=f"questions[{i}].", question_ids=id_set))
    return errors


def validate_test(test: Test) -> Test:
    """Raise ValidationError listing every problem, or return the test unchanged."""
    errors = collect_errors(test)
    if errors:
        logger.debug(f"Test {test.id or '(new)'} failed validation: {errors}")
        raise ValidationError(errors)
    return test


def is_valid(test: Test) -> bool:
    return not collect_errors(test)


# ============= Editing =============

def clear_links_to(questions: Tuple[Question, ...], question_id: str) -> Tuple[Question, ...]:
    """Drop every link that targets `question_id`."""
    return tuple(
        replace(q, linked_question_id=None, linked_answer_ids=()) if q.linked_question_id == question_id else q
        for q in questions
    )


def remove_question(test: Test, question_id: str) -> Test:
    """Return a copy of the test without the question and without links pointing at it."""
    remaining = tuple(q for q in test.questions if q.id != question_id)
    return replace(test, questions=clear_links_to(remaining, question_id))
