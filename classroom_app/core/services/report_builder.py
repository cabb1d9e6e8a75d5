"""Per-class score report joining members, shared quizzes and submissions.

Building a report only reads. Running it twice without writes in between
gives equal results.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
from typing import Any, Sequence

from classroom_app.constants.course_constants import ID_IN_QUERY_LIMIT, USERS
from classroom_app.core.document_store import DOCUMENT_ID, DocumentStore, FieldFilter
from classroom_app.core.models import Submission, UserProfile
from classroom_app.core.services.attempt_ledger import AttemptLedger
from classroom_app.core.services.class_repository import ClassRepository
from classroom_app.core.services.content_repository import ContentRepository

logger = logging.getLogger(__name__)

_MAX_LOOKUP_WORKERS = 4


@dataclass(slots=True)
class ReportQuiz:
    quiz_id: str
    title: str
    course_title: str
    lesson_title: str
    question_count: int


@dataclass(frozen=True, slots=True)
class ReportCell:
    first_attempt_score: int
    highest_score: int


@dataclass(slots=True)
class StudentRow:
    """One line of the tabular report."""

    student_id: str
    last_name: str
    first_name: str
    gender: str
    scores: dict[str, ReportCell | None]
    total_first_attempt_score: int


@dataclass(slots=True)
class ClassReport:
    class_id: str
    students: list[UserProfile]
    quizzes: list[ReportQuiz]
    matrix: dict[tuple[str, str], ReportCell] = field(default_factory=dict)

    def cell(self, student_id: str, quiz_id: str) -> ReportCell | None:
        return self.matrix.get((student_id, quiz_id))

    def quiz_overview(self) -> list[tuple[str, int]]:
        return [(quiz.title, quiz.question_count) for quiz in self.quizzes]

    def student_rows(self, order_by: str | None = None) -> list[StudentRow]:
        """Rows for every student, ordered by ``lastName``, ``gender`` or class order."""
        students = list(self.students)
        if order_by == "lastName":
            students.sort(key=lambda profile: profile.last_name or "")
        elif order_by == "gender":
            students.sort(key=lambda profile: profile.gender or "Z")
        elif order_by is not None:
            raise ValueError(f"Unknown report ordering {order_by!r}.")

        rows: list[StudentRow] = []
        for profile in students:
            scores = {quiz.quiz_id: self.cell(profile.id, quiz.quiz_id) for quiz in self.quizzes}
            rows.append(
                StudentRow(
                    student_id=profile.id,
                    last_name=profile.last_name,
                    first_name=profile.first_name,
                    gender=profile.gender,
                    scores=scores,
                    total_first_attempt_score=sum(
                        cell.first_attempt_score for cell in scores.values() if cell is not None
                    ),
                )
            )
        return rows

    def to_dict(self) -> dict[str, Any]:
        matrix: dict[str, dict[str, dict[str, int]]] = {}
        for (student_id, quiz_id), cell in self.matrix.items():
            matrix.setdefault(student_id, {})[quiz_id] = {
                "firstAttemptScore": cell.first_attempt_score,
                "highestScore": cell.highest_score,
            }
        return {
            "classId": self.class_id,
            "students": [{"id": profile.id, **profile.to_document()} for profile in self.students],
            "quizzes": [
                {
                    "quizId": quiz.quiz_id,
                    "title": quiz.title,
                    "courseTitle": quiz.course_title,
                    "lessonTitle": quiz.lesson_title,
                    "questionCount": quiz.question_count,
                }
                for quiz in self.quizzes
            ],
            "matrix": matrix,
        }


def summarize_attempts(submissions: Sequence[Submission]) -> ReportCell | None:
    if not submissions:
        return None
    first = min(submissions, key=lambda submission: submission.submitted_at)
    return ReportCell(
        first_attempt_score=first.score,
        highest_score=max(submission.score for submission in submissions),
    )


class ReportBuilder:
    def __init__(
        self,
        store: DocumentStore,
        classes: ClassRepository,
        content: ContentRepository,
        attempts: AttemptLedger,
    ) -> None:
        self._store = store
        self._classes = classes
        self._content = content
        self._attempts = attempts

    def build_report(self, class_id: str) -> ClassReport:
        school_class = self._classes.get_class(class_id)
        student_ids = list(dict.fromkeys(school_class.students))

        profiles = self._load_profiles(student_ids)
        students = [profiles[student_id] for student_id in student_ids if student_id in profiles]

        course_ids = list(school_class.access_grants)
        courses = self._content.courses_by_ids(course_ids)
        quizzes: list[ReportQuiz] = []
        seen: set[str] = set()
        for course_id in course_ids:
            course = courses.get(course_id)
            if course is None:
                continue
            for _, lesson, quiz in course.iter_quizzes():
                if quiz.id in seen:
                    continue
                seen.add(quiz.id)
                quizzes.append(
                    ReportQuiz(
                        quiz_id=quiz.id,
                        title=quiz.title,
                        course_title=course.title,
                        lesson_title=lesson.title,
                        question_count=len(quiz.questions),
                    )
                )

        grouped: dict[tuple[str, str], list[Submission]] = {}
        for submission in self._attempts.submissions_for_students(student_ids):
            grouped.setdefault((submission.student_id, submission.quiz_id), []).append(submission)

        matrix: dict[tuple[str, str], ReportCell] = {}
        for profile in students:
            for quiz in quizzes:
                cell = summarize_attempts(grouped.get((profile.id, quiz.quiz_id), []))
                if cell is not None:
                    matrix[(profile.id, quiz.quiz_id)] = cell

        logger.info(
            "Built report for class %s: %d student(s), %d quiz(zes)", class_id, len(students), len(quizzes)
        )
        return ClassReport(class_id=class_id, students=students, quizzes=quizzes, matrix=matrix)

    def _load_profiles(self, student_ids: list[str]) -> dict[str, UserProfile]:
        """Look up profiles in id-chunks, issued concurrently and merged by id."""
        if not student_ids:
            return {}
        chunks = [
            student_ids[start:start + ID_IN_QUERY_LIMIT]
            for start in range(0, len(student_ids), ID_IN_QUERY_LIMIT)
        ]
        profiles: dict[str, UserProfile] = {}
        with ThreadPoolExecutor(max_workers=min(_MAX_LOOKUP_WORKERS, len(chunks))) as executor:
            for snapshots in executor.map(self._fetch_chunk, chunks):
                for item in snapshots:
                    profiles[item.id] = UserProfile.from_document(item.id, item.data)
        return profiles

    def _fetch_chunk(self, chunk: list[str]):
        return self._store.query(USERS, [FieldFilter(DOCUMENT_ID, "in", chunk)])
