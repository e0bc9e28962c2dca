"""
Test-taking engine: visible-question resolution for linked questions, per-type scoring
(partial credit for matching pairs) and the timed session that produces one Result.
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union
from uuid import uuid4

from engine import DEFAULT_PAIR_POINTS
from examportal.definitions import (
    ChoiceQuestion,
    FreeTextQuestion,
    MatchingQuestion,
    MultipleChoiceQuestion,
    Question,
    SingleChoiceQuestion,
    Test,
    parse_time_limit,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


# ============= Answers =============

@dataclass
class Answer:
    """
    One test-taker response.

    `value` is an option id (single choice), a list of option ids (multiple choice) or free text.
    `matches` maps each left value to the chosen right value (matching); one right value per left.
    """

    question_id: str
    value: Union[str, List[str]] = ""
    matches: Dict[str, str] = field(default_factory=dict)

    def selected_ids(self) -> Set[str]:
        """Selection as a set of option ids; a single answer becomes a singleton."""
        if isinstance(self.value, str):
            return {self.value} if self.value else set()
        if isinstance(self.value, (list, tuple, set, frozenset)):
            return {v for v in self.value if isinstance(v, str) and v}
        return set()

    def is_empty(self) -> bool:
        if self.matches:
            return False
        if isinstance(self.value, str):
            return not self.value.strip()
        return not self.selected_ids()

    def to_dict(self) -> Dict:
        data = {"question_id": self.question_id, "answer": self.value}
        if self.matches:
            data["matching_answers"] = [{"left": left, "right": right} for left, right in self.matches.items()]
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Answer":
        matches = {}
        pairs = data.get("matching_answers")
        for pair in pairs if isinstance(pairs, list) else []:
            if not isinstance(pair, dict):
                continue
            left, right = pair.get("left"), pair.get("right")
            if isinstance(left, str) and left and isinstance(right, str):
                matches[left] = right
        value = data.get("answer", "")
        if value is None:
            value = ""
        return cls(question_id=str(data.get("question_id") or ""), value=value, matches=matches)


AnswerSet = Dict[str, Answer]


def empty_answer(question: Question) -> Answer:
    if isinstance(question, MultipleChoiceQuestion):
        return Answer(question.id, value=[])
    return Answer(question.id)


def empty_answers(test: Test) -> AnswerSet:
    return {q.id: empty_answer(q) for q in test.questions}


def _as_answer(question_id: str, raw) -> Optional[Answer]:
    """Accept an Answer, its stored dict, or a bare value. Anything else counts as unanswered."""
    if raw is None:
        return None
    if isinstance(raw, Answer):
        return raw
    if isinstance(raw, dict):
        return Answer.from_dict({"question_id": question_id, **raw})
    if isinstance(raw, (str, list, tuple, set, frozenset)):
        return Answer(question_id, value=raw if isinstance(raw, str) else list(raw))
    return None


# ============= Visibility =============

def linked_targets(test: Test) -> Set[str]:
    """Ids that some other question reveals; they start hidden."""
    return {
        q.linked_question_id
        for q in test.questions
        if q.linked_question_id and q.linked_question_id != q.id
    }


def compute_visible_questions(test: Test, answers: Optional[Dict] = None) -> Set[str]:
    """
    Questions currently eligible to be answered and scored.

    Questions nobody links to are always visible. A linked target becomes visible when the
    declaring choice question's current selection shares an id with its trigger answers.
    Only direct links are resolved; the result depends on nothing but (test, answers).
    """
    answers = answers or {}
    visible = {q.id for q in test.questions} - linked_targets(test)

    for question in test.questions:
        if not isinstance(question, ChoiceQuestion) or not question.linked_question_id:
            continue
        if question.linked_question_id not in test.question_map:
            continue
        answer = _as_answer(question.id, answers.get(question.id))
        if answer is None:
            continue
        if answer.selected_ids() & set(question.linked_answer_ids):
            visible.add(question.linked_question_id)
    return visible


def ordered_visible_questions(test: Test, visible: Iterable[str], order: Optional[List[str]] = None) -> List[Question]:
    """Visible questions in display order (test order unless `order` is given)."""
    visible = set(visible)
    ids = order if order is not None else [q.id for q in test.questions]
    return [test.question_map[qid] for qid in ids if qid in visible and qid in test.question_map]


# ============= Scoring =============

@dataclass(frozen=True)
class MatchingBreakdown:
    """Presentation-only detail for a matching question."""

    correct_count: int
    total_pairs: int
    earned_points: float
    total_pair_points: int
    question_text: str = ""

    def to_dict(self) -> Dict:
        return {
            "correct_count": self.correct_count,
            "total_pairs": self.total_pairs,
            "earned_points": self.earned_points,
            "total_pair_points": self.total_pair_points,
            "question_text": self.question_text,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "MatchingBreakdown":
        return cls(
            correct_count=int(data.get("correct_count") or 0),
            total_pairs=int(data.get("total_pairs") or 0),
            earned_points=float(data.get("earned_points") or 0),
            total_pair_points=int(data.get("total_pair_points") or 0),
            question_text=data.get("question_text") or "",
        )


@dataclass(frozen=True)
class QuestionScore:
    question_id: str
    awarded: Decimal
    possible: int
    is_correct: bool
    matching: Optional[MatchingBreakdown] = None


def _score_matching(question: MatchingQuestion, answer: Optional[Answer]) -> QuestionScore:
    weights = {(p.left, p.right): Decimal(p.points or DEFAULT_PAIR_POINTS) for p in question.matching_pairs}
    total_pair_points = sum(weights.values(), ZERO)
    points = Decimal(question.points)

    correct_count = 0
    earned = ZERO
    matches = answer.matches if answer and isinstance(answer.matches, dict) else {}
    for left, right in matches.items():
        if not isinstance(left, str) or not isinstance(right, str):
            continue
        weight = weights.get((left, right))
        if weight is not None:
            correct_count += 1
            earned += weight

    perfect = bool(question.matching_pairs) and correct_count == len(question.matching_pairs)
    if perfect:
        # Every pair right: the question's own points, not the pair-weight sum
        awarded = points
    elif total_pair_points > 0:
        awarded = points * earned / total_pair_points
    else:
        awarded = ZERO

    breakdown = MatchingBreakdown(
        correct_count=correct_count,
        total_pairs=len(question.matching_pairs),
        earned_points=float(awarded),
        total_pair_points=question.points,
        question_text=question.text,
    )
    return QuestionScore(question.id, awarded, question.points, perfect, breakdown)


def score_question(question: Question, raw_answer=None) -> QuestionScore:
    """Points awarded for one question. Missing or malformed answers score zero."""
    answer = _as_answer(question.id, raw_answer)
    selected = answer.selected_ids() if answer else set()

    match question:
        case SingleChoiceQuestion():
            correct = len(selected) == 1 and selected <= set(question.correct_answers)
        case MultipleChoiceQuestion():
            correct = bool(selected) and selected == set(question.correct_answers)
        case FreeTextQuestion():
            # Graded by hand, if at all; the points still count toward the total
            return QuestionScore(question.id, ZERO, question.points, False)
        case MatchingQuestion():
            return _score_matching(question, answer)
        case _:
            logger.error(f"No scoring rule for question {question.id!r} of type {type(question).__name__}")
            return QuestionScore(question.id, ZERO, 0, False)

    awarded = Decimal(question.points) if correct else ZERO
    return QuestionScore(question.id, awarded, question.points, correct)


def _percentage(score: Decimal, total_points: int) -> int:
    if total_points <= 0:
        return 0
    return int((score * HUNDRED / Decimal(total_points)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Result:
    """Immutable record of one completed attempt."""

    test_id: str
    user_id: str
    answers: Dict[str, Answer]
    visible_questions: Tuple[str, ...]
    score: float
    total_points: int
    percentage: int
    passed: bool
    completed_at: str
    user_email: str = ""
    user_name: str = ""
    time_spent: int = 0
    matching_results: Dict[str, MatchingBreakdown] = field(default_factory=dict)
    id: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {
            "test_id": self.test_id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "user_name": self.user_name,
            "answers": [a.to_dict() for a in self.answers.values()],
            "visible_questions": list(self.visible_questions),
            "score": self.score,
            "total_points": self.total_points,
            "percentage": self.percentage,
            "passed": self.passed,
            "time_spent": self.time_spent,
            "matching_results": {qid: b.to_dict() for qid, b in self.matching_results.items()},
            "completed_at": self.completed_at,
        }
        if self.id:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Result":
        answers = {}
        for raw in data.get("answers") or []:
            answer = Answer.from_dict(raw)
            answers[answer.question_id] = answer
        return cls(
            id=data.get("id"),
            test_id=str(data.get("test_id") or ""),
            user_id=str(data.get("user_id") or ""),
            user_email=data.get("user_email") or "",
            user_name=data.get("user_name") or "",
            answers=answers,
            visible_questions=tuple(data.get("visible_questions") or ()),
            score=float(data.get("score") or 0),
            total_points=int(data.get("total_points") or 0),
            percentage=int(data.get("percentage") or 0),
            passed=bool(data.get("passed")),
            time_spent=int(data.get("time_spent") or 0),
            matching_results={
                qid: MatchingBreakdown.from_dict(b) for qid, b in (data.get("matching_results") or {}).items()
            },
            completed_at=data.get("completed_at") or "",
        )


def compute_result(
    test: Test,
    answers: Optional[Dict],
    visible_questions: Iterable[str],
    user_id: str = "",
    user_email: str = "",
    user_name: str = "",
    time_spent: int = 0,
    completed_at: Optional[datetime] = None,
) -> Result:
    """
    Score an attempt over the visible questions only.

    Hidden questions are left out of both the score and the total. Free-text points count
    toward the total but are never awarded. A total of zero gives 0% and a fail.
    """
    answers = answers or {}
    visible = set(visible_questions or ())

    score = ZERO
    total_points = 0
    matching_results: Dict[str, MatchingBreakdown] = {}
    for question in test.questions:
        if question.id not in visible:
            continue
        total_points += question.points
        scored = score_question(question, answers.get(question.id))
        score += scored.awarded
        if scored.matching is not None:
            matching_results[question.id] = scored.matching

    percentage = _percentage(score, total_points)
    passed = total_points > 0 and percentage >= test.passing_score

    stored_answers = {}
    for qid, raw in answers.items():
        answer = _as_answer(qid, raw)
        if answer is not None:
            stored_answers[qid] = answer

    completed_at = completed_at or datetime.now(timezone.utc)
    return Result(
        test_id=test.id,
        user_id=user_id,
        user_email=user_email,
        user_name=user_name,
        answers=stored_answers,
        visible_questions=tuple(q.id for q in test.questions if q.id in visible),
        score=float(score),
        total_points=total_points,
        percentage=percentage,
        passed=passed,
        time_spent=time_spent,
        matching_results=matching_results,
        completed_at=completed_at.isoformat(),
    )


# ============= Session =============

class TestSession:
    """Manages one attempt at a test: answers, visible questions, countdown and the single submission."""

    __test__ = False

    STATUS_NOT_STARTED = "not_started"
    STATUS_IN_PROGRESS = "in_progress"
    STATUS_COMPLETED = "completed"

    def __init__(
        self,
        test: Test,
        user_id: str,
        user_email: str = "",
        user_name: str = "",
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize a test session.

        Args:
            test: validated test definition
            user_id: identity stamped onto the result
            rng: random source for question shuffling (tests pass a seeded one)
        """
        self.session_id = uuid4()
        self.test = test
        self.user_id = user_id
        self.user_email = user_email
        self.user_name = user_name

        order = list(test.questions)
        if test.shuffle_questions:
            (rng or random).shuffle(order)
        self.question_order: List[str] = [q.id for q in order]

        self.answers: AnswerSet = empty_answers(test)
        self.visible_questions: Set[str] = compute_visible_questions(test, self.answers)

        self.time_limit_seconds = parse_time_limit(test.time_limit)
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None
        self.status = self.STATUS_NOT_STARTED
        self.result: Optional[Result] = None

        self.current_question_idx = 0

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # ----- lifecycle -----

    def start(self, now: Optional[datetime] = None):
        if self.status != self.STATUS_NOT_STARTED:
            return
        self.started_at = now or self._now()
        self.status = self.STATUS_IN_PROGRESS
        logger.info(f"Test session {self.session_id}: started test {self.test.id} for user {self.user_id}")

    @property
    def is_completed(self) -> bool:
        return self.status == self.STATUS_COMPLETED

    def time_remaining(self, now: Optional[datetime] = None) -> int:
        """Seconds left; the full limit before start, 0 once the deadline has passed."""
        if self.started_at is None:
            return self.time_limit_seconds
        elapsed = ((now or self._now()) - self.started_at).total_seconds()
        return max(0, self.time_limit_seconds - int(elapsed))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.time_limit_seconds <= 0 or self.started_at is None:
            return False
        return self.time_remaining(now) <= 0

    def time_spent(self, now: Optional[datetime] = None) -> int:
        if self.started_at is None:
            return 0
        elapsed = int(((now or self._now()) - self.started_at).total_seconds())
        if self.time_limit_seconds > 0:
            elapsed = min(elapsed, self.time_limit_seconds)
        return max(0, elapsed)

    def submit(self, now: Optional[datetime] = None) -> Result:
        """
        Score whatever answers exist right now. Safe to call from the timer after a manual submit:
        the first result is returned again.
        """
        if self.result is not None:
            return self.result

        now = now or self._now()
        if self.started_at is None:
            self.started_at = now
        self.visible_questions = compute_visible_questions(self.test, self.answers)
        self.result = compute_result(
            self.test,
            self.answers,
            self.visible_questions,
            user_id=self.user_id,
            user_email=self.user_email,
            user_name=self.user_name,
            time_spent=self.time_spent(now),
            completed_at=now,
        )
        self.ended_at = now
        self.status = self.STATUS_COMPLETED
        logger.info(
            f"Session {self.session_id} completed: Score={self.result.score:.2f}/{self.result.total_points}, "
            f"{self.result.percentage}%, Pass={self.result.passed}"
        )
        return self.result

    # ----- answering -----

    def _answer_for(self, question_id: str, kinds) -> Tuple[Optional[Question], Optional[Answer]]:
        if self.is_completed:
            logger.warning(f"Session {self.session_id}: ignoring answer to {question_id} after submission")
            return None, None
        question = self.test.get_question(question_id)
        if question is None:
            logger.warning(f"Session {self.session_id}: question {question_id} not found")
            return None, None
        if not isinstance(question, kinds):
            logger.warning(f"Session {self.session_id}: wrong answer kind for {question.type} question {question_id}")
            return None, None
        answer = self.answers.setdefault(question_id, empty_answer(question))
        return question, answer

    def _refresh(self):
        """Recompute visibility after an answer change and keep the cursor on a visible question."""
        current = self.current_question()
        self.visible_questions = compute_visible_questions(self.test, self.answers)
        ids = [q.id for q in self.visible_question_list()]
        if current is not None and current.id in ids:
            self.current_question_idx = ids.index(current.id)
        else:
            self.current_question_idx = max(0, min(self.current_question_idx, len(ids) - 1))

    def select_option(self, question_id: str, option_id: str):
        question, answer = self._answer_for(question_id, SingleChoiceQuestion)
        if answer is None:
            return
        if option_id not in question.option_ids():
            logger.warning(f"Session {self.session_id}: option {option_id} is not part of {question_id}")
            return
        answer.value = option_id
        self._refresh()

    def toggle_option(self, question_id: str, option_id: str, checked: Optional[bool] = None):
        question, answer = self._answer_for(question_id, MultipleChoiceQuestion)
        if answer is None:
            return
        if option_id not in question.option_ids():
            logger.warning(f"Session {self.session_id}: option {option_id} is not part of {question_id}")
            return
        current = [v for v in (answer.value if isinstance(answer.value, list) else []) if v]
        if checked is None:
            checked = option_id not in current
        if checked and option_id not in current:
            current.append(option_id)
        elif not checked:
            current = [v for v in current if v != option_id]
        answer.value = current
        self._refresh()

    def set_text(self, question_id: str, text: str):
        _, answer = self._answer_for(question_id, FreeTextQuestion)
        if answer is None:
            return
        answer.value = text or ""
        self._refresh()

    def match_pair(self, question_id: str, left: str, right: str):
        question, answer = self._answer_for(question_id, MatchingQuestion)
        if answer is None:
            return
        if left not in question.left_values() or right not in question.right_values():
            logger.warning(f"Session {self.session_id}: unknown pair ({left!r}, {right!r}) for {question_id}")
            return
        answer.matches[left] = right
        self._refresh()

    def clear_match(self, question_id: str, left: str):
        _, answer = self._answer_for(question_id, MatchingQuestion)
        if answer is None:
            return
        answer.matches.pop(left, None)
        self._refresh()

    # ----- navigation -----

    def visible_question_list(self) -> List[Question]:
        return ordered_visible_questions(self.test, self.visible_questions, self.question_order)

    def current_question(self) -> Optional[Question]:
        questions = self.visible_question_list()
        if not questions or self.current_question_idx >= len(questions):
            return None
        return questions[self.current_question_idx]

    def next_question(self) -> bool:
        if self.current_question_idx < len(self.visible_question_list()) - 1:
            self.current_question_idx += 1
            return True
        return False

    def previous_question(self) -> bool:
        if self.current_question_idx > 0:
            self.current_question_idx -= 1
            return True
        return False

    def go_to(self, index: int):
        count = len(self.visible_question_list())
        self.current_question_idx = max(0, min(index, count - 1))

    def progress(self) -> float:
        count = len(self.visible_question_list())
        return (self.current_question_idx + 1) / count if count else 0.0

    def get_session_summary(self, now: Optional[datetime] = None) -> Dict:
        """Real-time summary for display during the test."""
        questions = self.visible_question_list()
        answered = sum(1 for q in questions if not self.answers.get(q.id, empty_answer(q)).is_empty())
        return {
            "session_id": str(self.session_id),
            "status": self.status,
            "current_question": self.current_question_idx + 1,
            "total_questions": len(questions),
            "questions_answered": answered,
            "questions_skipped": len(questions) - answered,
            "time_remaining_sec": self.time_remaining(now),
        }
