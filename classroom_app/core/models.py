"""Domain records for the classroom service.

Each record converts to and from the camelCase dictionaries kept in the
document store. A course is one document: units, lessons, pages and quizzes
are nested inside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator
from uuid import uuid4

from classroom_app.constants.course_constants import DEFAULT_GENDER
from classroom_app.core.errors import NotFoundError, ValidationError


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class SubmissionType(str, Enum):
    ON_TIME = "on-time"
    LATE = "late"


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | str) -> datetime:
    """Return ``value`` as an aware UTC datetime. Naive values are taken as UTC."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True)
class UserProfile:
    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    gender: str = DEFAULT_GENDER

    def to_document(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role.value,
            "gender": self.gender,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "UserProfile":
        return cls(
            id=doc_id,
            email=data.get("email", ""),
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            role=Role(data.get("role", Role.STUDENT.value)),
            gender=data.get("gender") or DEFAULT_GENDER,
        )


@dataclass(slots=True)
class QuizQuestion:
    """Multiple-choice question with exactly four options."""

    text: str
    options: list[str]
    correct_option_index: int
    explanation: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "options": list(self.options),
            "correctOptionIndex": self.correct_option_index,
            "explanation": self.explanation,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "QuizQuestion":
        return cls(
            text=data.get("text", ""),
            options=list(data.get("options", [])),
            correct_option_index=int(data.get("correctOptionIndex", 0)),
            explanation=data.get("explanation"),
        )


@dataclass(slots=True)
class Quiz:
    id: str
    title: str
    questions: list[QuizQuestion] = field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "questions": [question.to_document() for question in self.questions],
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Quiz":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            questions=[QuizQuestion.from_document(item) for item in data.get("questions", [])],
        )


@dataclass(slots=True)
class LessonPage:
    id: str
    title: str
    content: str = ""

    def to_document(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "content": self.content}

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "LessonPage":
        return cls(id=data["id"], title=data.get("title", ""), content=data.get("content", ""))


@dataclass(slots=True)
class Lesson:
    id: str
    title: str
    study_guide_url: str | None = None
    pages: list[LessonPage] = field(default_factory=list)
    quizzes: list[Quiz] = field(default_factory=list)

    def find_quiz(self, quiz_id: str) -> Quiz:
        for quiz in self.quizzes:
            if quiz.id == quiz_id:
                return quiz
        raise NotFoundError(f"Quiz {quiz_id} not found in lesson {self.id}.")

    def find_page(self, page_id: str) -> LessonPage:
        for page in self.pages:
            if page.id == page_id:
                return page
        raise NotFoundError(f"Page {page_id} not found in lesson {self.id}.")

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "studyGuideUrl": self.study_guide_url or "",
            "pages": [page.to_document() for page in self.pages],
            "quizzes": [quiz.to_document() for quiz in self.quizzes],
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Lesson":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            study_guide_url=data.get("studyGuideUrl") or None,
            pages=[LessonPage.from_document(item) for item in data.get("pages", [])],
            quizzes=[Quiz.from_document(item) for item in data.get("quizzes") or []],
        )


@dataclass(slots=True)
class Unit:
    id: str
    title: str
    lessons: list[Lesson] = field(default_factory=list)

    def find_lesson(self, lesson_id: str) -> Lesson:
        for lesson in self.lessons:
            if lesson.id == lesson_id:
                return lesson
        raise NotFoundError(f"Lesson {lesson_id} not found in unit {self.id}.")

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "lessons": [lesson.to_document() for lesson in self.lessons],
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Unit":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            lessons=[Lesson.from_document(item) for item in data.get("lessons") or []],
        )


@dataclass(slots=True)
class Course:
    """A course aggregate. Unit ids and lesson ids are unique within it."""

    id: str
    title: str
    category: str
    teacher_id: str
    units: list[Unit] = field(default_factory=list)

    def find_unit(self, unit_id: str) -> Unit:
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        raise NotFoundError(f"Unit {unit_id} not found in course {self.id}.")

    def find_lesson(self, unit_id: str, lesson_id: str) -> Lesson:
        return self.find_unit(unit_id).find_lesson(lesson_id)

    def find_quiz(self, quiz_id: str) -> Quiz | None:
        """Scan every unit and lesson for the quiz; ``None`` when absent."""
        for _, _, quiz in self.iter_quizzes():
            if quiz.id == quiz_id:
                return quiz
        return None

    def iter_quizzes(self) -> Iterator[tuple[Unit, Lesson, Quiz]]:
        for unit in self.units:
            for lesson in unit.lessons:
                for quiz in lesson.quizzes:
                    yield unit, lesson, quiz

    def validate_ids(self) -> None:
        unit_ids = [unit.id for unit in self.units]
        if len(unit_ids) != len(set(unit_ids)):
            raise ValidationError(f"Course {self.id} has duplicate unit ids.")
        lesson_ids = [lesson.id for unit in self.units for lesson in unit.lessons]
        if len(lesson_ids) != len(set(lesson_ids)):
            raise ValidationError(f"Course {self.id} has duplicate lesson ids.")

    def to_document(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "category": self.category,
            "teacherId": self.teacher_id,
            "units": [unit.to_document() for unit in self.units],
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Course":
        course = cls(
            id=doc_id,
            title=data.get("title", ""),
            category=data.get("category", ""),
            teacher_id=data.get("teacherId", ""),
            units=[Unit.from_document(item) for item in data.get("units") or []],
        )
        course.validate_ids()
        return course


@dataclass(slots=True)
class AccessGrant:
    """Visibility window and quiz allow-list binding one lesson to one class."""

    share_pages: bool
    quiz_ids: list[str]
    available_from: datetime
    available_until: datetime

    def to_document(self) -> dict[str, Any]:
        return {
            "sharePages": self.share_pages,
            "quizIds": list(self.quiz_ids),
            "availableFrom": self.available_from,
            "availableUntil": self.available_until,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "AccessGrant":
        return cls(
            share_pages=bool(data.get("sharePages", True)),
            quiz_ids=list(data.get("quizIds", [])),
            available_from=ensure_utc(data["availableFrom"]),
            available_until=ensure_utc(data["availableUntil"]),
        )


# course id -> unit id -> lesson id -> grant
GrantTree = dict[str, dict[str, dict[str, AccessGrant]]]


@dataclass(slots=True)
class SchoolClass:
    id: str
    name: str
    teacher_id: str
    code: str
    grade_level: str
    students: list[str] = field(default_factory=list)
    access_grants: GrantTree = field(default_factory=dict)

    def iter_grants(self) -> Iterator[tuple[str, str, str, AccessGrant]]:
        for course_id, units in self.access_grants.items():
            for unit_id, lessons in units.items():
                for lesson_id, grant in lessons.items():
                    yield course_id, unit_id, lesson_id, grant

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "teacherId": self.teacher_id,
            "code": self.code,
            "gradeLevel": self.grade_level,
            "students": list(self.students),
            "accessGrants": {
                course_id: {
                    unit_id: {lesson_id: grant.to_document() for lesson_id, grant in lessons.items()}
                    for unit_id, lessons in units.items()
                }
                for course_id, units in self.access_grants.items()
            },
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "SchoolClass":
        grants: GrantTree = {}
        for course_id, units in (data.get("accessGrants") or {}).items():
            for unit_id, lessons in (units or {}).items():
                for lesson_id, grant in (lessons or {}).items():
                    grants.setdefault(course_id, {}).setdefault(unit_id, {})[lesson_id] = (
                        AccessGrant.from_document(grant)
                    )
        return cls(
            id=doc_id,
            name=data.get("name", ""),
            teacher_id=data.get("teacherId", ""),
            code=data.get("code", ""),
            grade_level=data.get("gradeLevel", ""),
            students=list(data.get("students", [])),
            access_grants=grants,
        )


@dataclass(slots=True)
class Submission:
    """One quiz attempt. Never modified after it is written."""

    id: str
    student_id: str
    course_id: str
    quiz_id: str
    answers: list[int]
    score: int
    total_questions: int
    percentage: float
    submitted_at: datetime
    submission_type: SubmissionType

    def to_document(self) -> dict[str, Any]:
        return {
            "studentId": self.student_id,
            "courseId": self.course_id,
            "quizId": self.quiz_id,
            "answers": list(self.answers),
            "score": self.score,
            "totalQuestions": self.total_questions,
            "percentage": self.percentage,
            "submittedAt": self.submitted_at,
            "submissionType": self.submission_type.value,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Submission":
        return cls(
            id=doc_id,
            student_id=data["studentId"],
            course_id=data.get("courseId", ""),
            quiz_id=data["quizId"],
            answers=list(data.get("answers", [])),
            score=int(data.get("score", 0)),
            total_questions=int(data.get("totalQuestions", 0)),
            percentage=float(data.get("percentage", 0.0)),
            submitted_at=ensure_utc(data["submittedAt"]),
            submission_type=SubmissionType(data.get("submissionType", SubmissionType.ON_TIME.value)),
        )


@dataclass(slots=True)
class ViewRecord:
    id: str
    student_id: str
    class_id: str
    course_id: str
    lesson_id: str
    viewed_at: datetime

    @staticmethod
    def record_id(student_id: str, lesson_id: str) -> str:
        return f"{student_id}_{lesson_id}"

    def to_document(self) -> dict[str, Any]:
        return {
            "studentId": self.student_id,
            "classId": self.class_id,
            "courseId": self.course_id,
            "lessonId": self.lesson_id,
            "viewedAt": self.viewed_at,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "ViewRecord":
        return cls(
            id=doc_id,
            student_id=data["studentId"],
            class_id=data.get("classId", ""),
            course_id=data.get("courseId", ""),
            lesson_id=data["lessonId"],
            viewed_at=ensure_utc(data["viewedAt"]),
        )
