"""Shared fixtures: small tests built directly from the definition model."""
from unittest.mock import MagicMock

import pytest

from examportal.definitions import (
    FreeTextQuestion,
    MatchingPair,
    MatchingQuestion,
    MultipleChoiceQuestion,
    Option,
    SingleChoiceQuestion,
    Test,
)


def options(*ids):
    return tuple(Option(id=i, text=f"Option {i}") for i in ids)


@pytest.fixture
def single_question():
    return SingleChoiceQuestion(id="q-single", text="Pick x", points=2, options=options("x", "y"), correct_answers=("x",))


@pytest.fixture
def multiple_question():
    return MultipleChoiceQuestion(
        id="q-multi", text="Pick x and y", points=3, options=options("x", "y", "z"), correct_answers=("x", "y")
    )


@pytest.fixture
def text_question():
    return FreeTextQuestion(id="q-text", text="Explain", points=1)


@pytest.fixture
def matching_question():
    return MatchingQuestion(
        id="q-match",
        text="Match capitals",
        points=10,
        matching_pairs=(
            MatchingPair("France", "Paris", 1),
            MatchingPair("Japan", "Tokyo", 2),
            MatchingPair("Peru", "Lima", 3),
        ),
    )


@pytest.fixture
def mixed_test(single_question, multiple_question, text_question, matching_question):
    return Test(
        id="t-mixed",
        title="Mixed",
        description="One of each",
        time_limit="10:00",
        passing_score=50,
        questions=(single_question, multiple_question, text_question, matching_question),
    )


@pytest.fixture
def linked_test():
    """q1 reveals q2 when "a" is chosen; q3 is always visible."""
    q1 = SingleChoiceQuestion(
        id="q1",
        text="Do you drive?",
        options=options("a", "b"),
        correct_answers=("a",),
        linked_question_id="q2",
        linked_answer_ids=("a",),
    )
    q2 = SingleChoiceQuestion(id="q2", text="What car?", points=5, options=options("c", "d"), correct_answers=("c",))
    q3 = FreeTextQuestion(id="q3", text="Anything else?")
    return Test(id="t-linked", title="Linked", description="Conditional", time_limit="05:00", questions=(q1, q2, q3))


@pytest.fixture
def mock_client():
    """Supabase client double; every query chain ends in .execute() returning `client.response`."""
    client = MagicMock()
    query = client.table.return_value
    for method in ("select", "insert", "update", "upsert", "delete", "eq", "order", "limit"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=[])
    return client
