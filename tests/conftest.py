from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from classroom_app.core.document_store import InMemoryDocumentStore
from classroom_app.core.identity_provider import InMemoryIdentityProvider
from classroom_app.core.models import LessonPage, QuizQuestion
from classroom_app.core.services.attempt_ledger import AttemptLedger
from classroom_app.core.services.class_repository import ClassRepository
from classroom_app.core.services.content_repository import ContentRepository
from classroom_app.core.services.identity_gate import IdentityGate, RoleDirectory
from classroom_app.core.services.view_ledger import ViewLedger

START = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)
CATEGORY = "School-based Subjects"


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)


@dataclass
class SeededCourse:
    teacher_id: str
    course_id: str
    unit_id: str
    lesson_id: str
    page_id: str
    quiz_id: str


def two_questions() -> list[QuizQuestion]:
    return [
        QuizQuestion(text="$2 + 2$?", options=["4", "5", "6", "7"], correct_option_index=0),
        QuizQuestion(text="$3 \\cdot 3$?", options=["6", "9", "12", "3"], correct_option_index=1),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def provider() -> InMemoryIdentityProvider:
    return InMemoryIdentityProvider()


@pytest.fixture
def roles() -> RoleDirectory:
    return RoleDirectory(
        {
            "srcsteach01@srcs.edu": "teacher",
            "srcslearn01@srcs.edu": "student",
            "admin001@srcs.edu": "admin",
        }
    )


@pytest.fixture
def gate(store, provider, roles) -> IdentityGate:
    return IdentityGate(store, provider, roles)


@pytest.fixture
def content(store) -> ContentRepository:
    return ContentRepository(store)


@pytest.fixture
def classes(store, content) -> ClassRepository:
    return ClassRepository(store, content)


@pytest.fixture
def attempts(store, content, clock) -> AttemptLedger:
    return AttemptLedger(store, content, clock=clock)


@pytest.fixture
def views(store, clock) -> ViewLedger:
    return ViewLedger(store, clock=clock)


@pytest.fixture
def seeded(content) -> SeededCourse:
    """A course with one unit, one lesson holding a page and a two-question quiz."""
    course = content.create_course("teacher-1", "Algebra I", CATEGORY)
    unit_id = content.add_unit(course.id, "Numbers")
    lesson_id = content.add_lesson(
        course.id,
        unit_id,
        "Arithmetic",
        pages=[LessonPage(id="", title="Intro", content="# Sums\n\n$1 + 1 = 2$")],
    )
    quiz_id = content.add_quiz(course.id, unit_id, lesson_id, "Warm-up", two_questions())
    page_id = content.get_lesson(course.id, unit_id, lesson_id).pages[0].id
    return SeededCourse(
        teacher_id="teacher-1",
        course_id=course.id,
        unit_id=unit_id,
        lesson_id=lesson_id,
        page_id=page_id,
        quiz_id=quiz_id,
    )


@pytest.fixture
def questions() -> list[QuizQuestion]:
    return two_questions()
