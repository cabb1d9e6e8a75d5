"""Derived view of everything shared with one student.

Nothing here is stored. The view is rebuilt from the student's classes, the
courses their grants point at, the student's view records and submissions.
Inputs may be momentarily out of step (a grant naming a lesson the course
snapshot does not have yet); such entries are skipped until the next rebuild.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
import logging
from threading import Lock
from typing import Callable, Iterable, Mapping

from classroom_app.constants.course_constants import MAX_QUIZ_ATTEMPTS
from classroom_app.core.errors import NotFoundError
from classroom_app.core.models import Course, SchoolClass, Submission, utc_now
from classroom_app.core.services.access_schedule import ItemStatus, is_overdue, item_status
from classroom_app.core.services.attempt_ledger import AttemptLedger
from classroom_app.core.services.class_repository import ClassRepository
from classroom_app.core.services.content_repository import ContentRepository
from classroom_app.core.services.view_ledger import ViewLedger

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DashboardItem:
    kind: str  # "lesson" or "quiz"
    item_id: str
    title: str
    class_id: str
    class_name: str
    course_id: str
    course_title: str
    unit_id: str
    unit_title: str
    lesson_id: str
    lesson_title: str
    available_from: datetime
    available_until: datetime
    is_overdue: bool
    status: ItemStatus
    attempts: int = 0


def compose_items(
    classes: Iterable[SchoolClass],
    courses: Mapping[str, Course],
    viewed_lesson_ids: set[str],
    attempts_by_quiz: Mapping[str, int],
    now: datetime,
) -> list[DashboardItem]:
    """Join grants to content and classify every lesson and granted quiz."""
    items: list[DashboardItem] = []
    for school_class in classes:
        for course_id, unit_id, lesson_id, grant in school_class.iter_grants():
            course = courses.get(course_id)
            if course is None:
                continue
            try:
                unit = course.find_unit(unit_id)
                lesson = unit.find_lesson(lesson_id)
            except NotFoundError:
                continue

            overdue = is_overdue(now, grant)
            common = dict(
                class_id=school_class.id,
                class_name=school_class.name,
                course_id=course.id,
                course_title=course.title,
                unit_id=unit.id,
                unit_title=unit.title,
                lesson_id=lesson.id,
                lesson_title=lesson.title,
                available_from=grant.available_from,
                available_until=grant.available_until,
                is_overdue=overdue,
            )
            if grant.share_pages:
                items.append(
                    DashboardItem(
                        kind="lesson",
                        item_id=lesson.id,
                        title=lesson.title,
                        status=item_status(now, grant, lesson.id in viewed_lesson_ids),
                        **common,
                    )
                )
            for quiz in lesson.quizzes:
                if quiz.id not in grant.quiz_ids:
                    continue
                attempts = attempts_by_quiz.get(quiz.id, 0)
                items.append(
                    DashboardItem(
                        kind="quiz",
                        item_id=quiz.id,
                        title=quiz.title,
                        status=item_status(now, grant, attempts >= MAX_QUIZ_ATTEMPTS),
                        attempts=attempts,
                        **common,
                    )
                )
    return items


def count_attempts(submissions: Iterable[Submission]) -> dict[str, int]:
    return dict(Counter(submission.quiz_id for submission in submissions))


def group_by_status(items: Iterable[DashboardItem]) -> dict[ItemStatus, list[DashboardItem]]:
    grouped: dict[ItemStatus, list[DashboardItem]] = {status: [] for status in ItemStatus}
    for item in items:
        grouped[item.status].append(item)
    return grouped


class StudentDashboard:
    """Builds the dashboard on demand or keeps it current through subscriptions."""

    def __init__(
        self,
        classes: ClassRepository,
        content: ContentRepository,
        attempts: AttemptLedger,
        views: ViewLedger,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._classes = classes
        self._content = content
        self._attempts = attempts
        self._views = views
        self._clock = clock

    def build(self, student_id: str) -> list[DashboardItem]:
        enrolled = self._classes.classes_for_student(student_id)
        course_ids = {course_id for school_class in enrolled for course_id in school_class.access_grants}
        return compose_items(
            enrolled,
            self._content.courses_by_ids(course_ids),
            self._views.viewed_lesson_ids(student_id),
            count_attempts(self._attempts.submissions_for_student(student_id)),
            self._clock(),
        )

    def watch(self, student_id: str, callback: Callable[[list[DashboardItem]], None]) -> Callable[[], None]:
        """Call ``callback`` with a rebuilt view whenever any input changes."""
        watcher = _DashboardWatcher(student_id, callback, self._clock)
        unsubscribers = [
            self._classes.subscribe_student_classes(student_id, watcher.on_classes),
            self._content.subscribe_courses(watcher.on_courses),
            self._attempts.subscribe_student_submissions(student_id, watcher.on_submissions),
            self._views.subscribe_student_views(student_id, watcher.on_views),
        ]

        def unsubscribe() -> None:
            for unsubscribe_one in unsubscribers:
                unsubscribe_one()
            watcher.stop()

        return unsubscribe


class _DashboardWatcher:
    def __init__(
        self,
        student_id: str,
        callback: Callable[[list[DashboardItem]], None],
        clock: Callable[[], datetime],
    ) -> None:
        self._student_id = student_id
        self._callback = callback
        self._clock = clock
        self._lock = Lock()
        self._active = True
        self._classes: list[SchoolClass] | None = None
        self._courses: dict[str, Course] | None = None
        self._attempts: dict[str, int] | None = None
        self._viewed: set[str] | None = None

    def on_classes(self, classes: list[SchoolClass]) -> None:
        with self._lock:
            self._classes = classes
        self._publish()

    def on_courses(self, courses: list[Course]) -> None:
        with self._lock:
            self._courses = {course.id: course for course in courses}
        self._publish()

    def on_submissions(self, submissions: list[Submission]) -> None:
        with self._lock:
            self._attempts = count_attempts(submissions)
        self._publish()

    def on_views(self, viewed: set[str]) -> None:
        with self._lock:
            self._viewed = viewed
        self._publish()

    def stop(self) -> None:
        with self._lock:
            self._active = False

    def _publish(self) -> None:
        with self._lock:
            if not self._active:
                return
            if self._classes is None or self._courses is None or self._attempts is None or self._viewed is None:
                return
            items = compose_items(self._classes, self._courses, self._viewed, self._attempts, self._clock())
        logger.debug("Dashboard for %s rebuilt with %d item(s)", self._student_id, len(items))
        self._callback(items)
