from __future__ import annotations

from datetime import datetime, timedelta, timezone
import random

import pytest

from classquiz.core.backend import Backend, create_memory_backend
from classquiz.core.backend.fixtures import seed_catalog
from classquiz.core.models import Teacher
from classquiz.core.services.class_roster import ClassRoster
from classquiz.core.services.question_bank import AnswerDraft, QuestionBank, QuestionDraft
from classquiz.core.services.session_manager import SessionManager


class FixedClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def backend() -> Backend:
    backend = create_memory_backend()
    seed_catalog(backend.store)
    return backend


@pytest.fixture
def store(backend):
    return backend.store


@pytest.fixture
def failures(backend):
    return backend.store.failures


@pytest.fixture
def teacher(store) -> Teacher:
    row = store.insert("teachers", [{"email": "teacher1@school.edu"}])[0]
    return Teacher.from_row(row)


@pytest.fixture
def other_teacher(store) -> Teacher:
    row = store.insert("teachers", [{"email": "teacher2@school.edu"}])[0]
    return Teacher.from_row(row)


@pytest.fixture
def courses(store) -> dict[str, str]:
    return {row["name"]: row["id"] for row in store.select("courses")}


@pytest.fixture
def tags(store) -> dict[str, str]:
    return {row["name"]: row["id"] for row in store.select("tags")}


@pytest.fixture
def roster(store) -> ClassRoster:
    return ClassRoster(store)


@pytest.fixture
def question_bank(backend) -> QuestionBank:
    return QuestionBank(backend.store, backend.storage)


@pytest.fixture
def session_manager(store, question_bank, clock) -> SessionManager:
    return SessionManager(store, question_bank, rng=random.Random(7), clock=clock)


@pytest.fixture
def algebra_class(roster, teacher):
    creation = roster.create_class(teacher, "Algebra I", ["ana@school.edu", "ben@school.edu"])
    return creation.school_class


@pytest.fixture
def make_question(question_bank, teacher, courses):
    """Factory for stored questions; the first answer is the correct one unless told otherwise."""

    def factory(title, course="Mathematics", tag_ids=(), answers=("Right", "Wrong"), correct_index=0):
        draft = QuestionDraft(
            title=title,
            content=f"What about **{title}**?",
            course_id=courses[course],
            answers=[AnswerDraft(content=text, is_correct=i == correct_index) for i, text in enumerate(answers)],
            tag_ids=list(tag_ids),
        )
        return question_bank.create_question(teacher, draft).question

    return factory
