"""Service recording quiz submissions and enforcing the attempt limit."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Callable, Sequence

from classroom_app.constants.course_constants import ID_IN_QUERY_LIMIT, MAX_QUIZ_ATTEMPTS, SUBMISSIONS
from classroom_app.core.document_store import DocumentStore, FieldFilter, Unsubscribe
from classroom_app.core.errors import LimitExceededError, NotFoundError, ValidationError
from classroom_app.core.models import Quiz, Submission, SubmissionType, utc_now
from classroom_app.core.services.content_repository import ContentRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QuizResult:
    submission_id: str
    score: int
    total_questions: int
    percentage: float


def score_answers(quiz: Quiz, answers: Sequence[int]) -> tuple[int, int, float]:
    """Return (score, total questions, percentage) for ``answers`` against ``quiz``.

    Answers are matched to questions by position. Missing answers count as
    wrong; extra answers are ignored.
    """
    total = len(quiz.questions)
    score = sum(
        1
        for index, question in enumerate(quiz.questions)
        if index < len(answers) and answers[index] == question.correct_option_index
    )
    percentage = (score / total) * 100 if total else 0.0
    return score, total, percentage


class AttemptLedger:
    """Append-only ledger of quiz submissions, at most three per student and quiz."""

    def __init__(
        self,
        store: DocumentStore,
        content: ContentRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._content = content
        self._clock = clock

    def submit_quiz(
        self,
        student_id: str,
        course_id: str,
        quiz_id: str,
        answers: Sequence[int],
        is_late: bool,
    ) -> QuizResult:
        if not course_id:
            raise ValidationError("Course ID is missing.")

        # Counting and writing under one transaction keeps concurrent
        # submissions from both passing the limit check.
        with self._store.transaction():
            prior = self.attempts(student_id, quiz_id)
            if prior >= MAX_QUIZ_ATTEMPTS:
                logger.warning("Student %s hit the attempt limit on quiz %s", student_id, quiz_id)
                raise LimitExceededError(
                    f"You have already reached the maximum of {MAX_QUIZ_ATTEMPTS} attempts for this quiz."
                )

            course = self._content.find_course(course_id)
            if course is None:
                raise NotFoundError("Course data could not be found for this quiz.")
            quiz = course.find_quiz(quiz_id)
            if quiz is None:
                raise NotFoundError("Quiz not found.")

            score, total, percentage = score_answers(quiz, answers)
            submission = Submission(
                id="",
                student_id=student_id,
                course_id=course_id,
                quiz_id=quiz_id,
                answers=list(answers),
                score=score,
                total_questions=total,
                percentage=percentage,
                submitted_at=self._clock(),
                submission_type=SubmissionType.LATE if is_late else SubmissionType.ON_TIME,
            )
            submission.id = self._store.add(SUBMISSIONS, submission.to_document())

        logger.info(
            "Student %s submitted quiz %s (attempt %d): %d/%d",
            student_id,
            quiz_id,
            prior + 1,
            score,
            total,
        )
        return QuizResult(
            submission_id=submission.id,
            score=score,
            total_questions=total,
            percentage=percentage,
        )

    def attempts(self, student_id: str, quiz_id: str) -> int:
        return len(
            self._store.query(
                SUBMISSIONS,
                [FieldFilter("studentId", "==", student_id), FieldFilter("quizId", "==", quiz_id)],
            )
        )

    def submissions_for_student(self, student_id: str) -> list[Submission]:
        return self._to_submissions(
            self._store.query(SUBMISSIONS, [FieldFilter("studentId", "==", student_id)])
        )

    def submissions_for_students(self, student_ids: Sequence[str]) -> list[Submission]:
        unique_ids = list(dict.fromkeys(student_ids))
        submissions: list[Submission] = []
        for start in range(0, len(unique_ids), ID_IN_QUERY_LIMIT):
            chunk = unique_ids[start:start + ID_IN_QUERY_LIMIT]
            submissions.extend(
                self._to_submissions(self._store.query(SUBMISSIONS, [FieldFilter("studentId", "in", chunk)]))
            )
        return submissions

    def subscribe_student_submissions(
        self, student_id: str, callback: Callable[[list[Submission]], None]
    ) -> Unsubscribe:
        return self._store.subscribe(
            SUBMISSIONS,
            [FieldFilter("studentId", "==", student_id)],
            lambda snapshots: callback(self._to_submissions(snapshots)),
        )

    @staticmethod
    def _to_submissions(snapshots) -> list[Submission]:
        return [Submission.from_document(item.id, item.data) for item in snapshots]
