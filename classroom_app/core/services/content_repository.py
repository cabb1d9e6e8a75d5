"""Service owning the Course/Unit/Lesson/Quiz aggregate.

Units, lessons and quizzes are nested in the course document, so every nested
edit reads the whole course, changes it in memory and writes all units back.
Two editors working from the same snapshot overwrite each other: the last
write wins for the whole document.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Sequence, TypeVar

from classroom_app.constants.course_constants import (
    COURSE_CATEGORIES,
    COURSES,
    ID_IN_QUERY_LIMIT,
    OPTIONS_PER_QUESTION,
)
from classroom_app.core.document_store import DOCUMENT_ID, DocumentStore, FieldFilter, Unsubscribe
from classroom_app.core.errors import NotFoundError, ValidationError
from classroom_app.core.models import Course, Lesson, LessonPage, Quiz, QuizQuestion, Unit, new_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContentRepository:
    """CRUD over courses and everything nested inside them."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # --- Courses ---

    def create_course(self, teacher_id: str, title: str, category: str) -> Course:
        course = Course(
            id="",
            title=_require_text(title, "Course title"),
            category=self._validate_category(category),
            teacher_id=teacher_id,
        )
        course.id = self._store.add(COURSES, course.to_document())
        logger.info("Teacher %s created course %s (%s)", teacher_id, course.id, course.title)
        return course

    def edit_course(self, course_id: str, title: str, category: str) -> None:
        self.get_course(course_id)
        self._store.update(
            COURSES,
            course_id,
            {"title": _require_text(title, "Course title"), "category": self._validate_category(category)},
        )

    def get_course(self, course_id: str) -> Course:
        snapshot = self._store.get(COURSES, course_id)
        if snapshot is None:
            raise NotFoundError(f"Course {course_id} not found.")
        return Course.from_document(snapshot.id, snapshot.data)

    def find_course(self, course_id: str) -> Course | None:
        snapshot = self._store.get(COURSES, course_id)
        if snapshot is None:
            return None
        return Course.from_document(snapshot.id, snapshot.data)

    def list_courses(self, category: str | None = None) -> list[Course]:
        filters = [FieldFilter("category", "==", category)] if category else []
        return [Course.from_document(item.id, item.data) for item in self._store.query(COURSES, filters)]

    def courses_by_ids(self, course_ids: Iterable[str]) -> dict[str, Course]:
        """Fetch courses in id-chunks the store's ``in`` filter accepts."""
        unique_ids = list(dict.fromkeys(course_ids))
        courses: dict[str, Course] = {}
        for start in range(0, len(unique_ids), ID_IN_QUERY_LIMIT):
            chunk = unique_ids[start:start + ID_IN_QUERY_LIMIT]
            for item in self._store.query(COURSES, [FieldFilter(DOCUMENT_ID, "in", chunk)]):
                courses[item.id] = Course.from_document(item.id, item.data)
        return courses

    def save_course(self, course: Course) -> None:
        """Write a whole, previously read course back to the store."""
        course.validate_ids()
        self._store.set(COURSES, course.id, course.to_document())

    def subscribe_courses(self, callback: Callable[[list[Course]], None]) -> Unsubscribe:
        return self._store.subscribe(
            COURSES,
            [],
            lambda snapshots: callback([Course.from_document(item.id, item.data) for item in snapshots]),
        )

    # --- Units ---

    def add_unit(self, course_id: str, title: str) -> str:
        unit = Unit(id=new_id("unit"), title=_require_text(title, "Unit title"))
        self._rewrite(course_id, lambda course: course.units.append(unit))
        return unit.id

    def edit_unit(self, course_id: str, unit_id: str, title: str) -> None:
        cleaned = _require_text(title, "Unit title")

        def rename(course: Course) -> None:
            course.find_unit(unit_id).title = cleaned

        self._rewrite(course_id, rename)

    def delete_unit(self, course_id: str, unit_id: str) -> None:
        def remove(course: Course) -> None:
            course.units.remove(course.find_unit(unit_id))

        self._rewrite(course_id, remove)

    # --- Lessons ---

    def add_lesson(
        self,
        course_id: str,
        unit_id: str,
        title: str,
        study_guide_url: str | None = None,
        pages: Sequence[LessonPage] = (),
    ) -> str:
        lesson = Lesson(
            id=new_id("lesson"),
            title=_require_text(title, "Lesson title"),
            study_guide_url=(study_guide_url or "").strip() or None,
            pages=self._prepare_pages(pages),
        )
        self._rewrite(course_id, lambda course: course.find_unit(unit_id).lessons.append(lesson))
        return lesson.id

    def edit_lesson(
        self,
        course_id: str,
        unit_id: str,
        lesson_id: str,
        title: str | None = None,
        study_guide_url: str | None = None,
        pages: Sequence[LessonPage] | None = None,
    ) -> None:
        def apply(course: Course) -> None:
            lesson = course.find_lesson(unit_id, lesson_id)
            if title is not None:
                lesson.title = _require_text(title, "Lesson title")
            if study_guide_url is not None:
                lesson.study_guide_url = study_guide_url.strip() or None
            if pages is not None:
                lesson.pages = self._prepare_pages(pages)

        self._rewrite(course_id, apply)

    def delete_lesson(self, course_id: str, unit_id: str, lesson_id: str) -> None:
        def remove(course: Course) -> None:
            unit = course.find_unit(unit_id)
            unit.lessons.remove(unit.find_lesson(lesson_id))

        self._rewrite(course_id, remove)

    def get_lesson(self, course_id: str, unit_id: str, lesson_id: str) -> Lesson:
        return self.get_course(course_id).find_lesson(unit_id, lesson_id)

    # --- Quizzes ---

    def add_quiz(
        self,
        course_id: str,
        unit_id: str,
        lesson_id: str,
        title: str,
        questions: Sequence[QuizQuestion],
    ) -> str:
        quiz = Quiz(
            id=new_id("quiz"),
            title=_require_text(title, "Quiz title"),
            questions=self._prepare_questions(questions),
        )
        self._rewrite(course_id, lambda course: course.find_lesson(unit_id, lesson_id).quizzes.append(quiz))
        logger.info("Added quiz %s with %d question(s) to lesson %s", quiz.id, len(quiz.questions), lesson_id)
        return quiz.id

    def edit_quiz(
        self,
        course_id: str,
        unit_id: str,
        lesson_id: str,
        quiz_id: str,
        title: str | None = None,
        questions: Sequence[QuizQuestion] | None = None,
    ) -> None:
        def apply(course: Course) -> None:
            quiz = course.find_lesson(unit_id, lesson_id).find_quiz(quiz_id)
            if title is not None:
                quiz.title = _require_text(title, "Quiz title")
            if questions is not None:
                quiz.questions = self._prepare_questions(questions)

        self._rewrite(course_id, apply)

    def lesson_quiz_ids(self, course_id: str, unit_id: str, lesson_id: str) -> list[str]:
        """Current quiz ids under a lesson; empty when any part of the path is missing."""
        course = self.find_course(course_id)
        if course is None:
            return []
        try:
            lesson = course.find_lesson(unit_id, lesson_id)
        except NotFoundError:
            return []
        return [quiz.id for quiz in lesson.quizzes]

    # --- Internals ---

    def _rewrite(self, course_id: str, mutate: Callable[[Course], T]) -> T:
        course = self.get_course(course_id)
        result = mutate(course)
        course.validate_ids()
        self._store.update(COURSES, course_id, {"units": [unit.to_document() for unit in course.units]})
        return result

    @staticmethod
    def _validate_category(category: str) -> str:
        if category not in COURSE_CATEGORIES:
            raise ValidationError(f"Unknown course category {category!r}.")
        return category

    @staticmethod
    def _prepare_pages(pages: Sequence[LessonPage]) -> list[LessonPage]:
        prepared: list[LessonPage] = []
        for page in pages:
            prepared.append(
                LessonPage(
                    id=page.id or new_id("page"),
                    title=page.title.strip(),
                    content=page.content,
                )
            )
        return prepared

    @classmethod
    def _prepare_questions(cls, questions: Sequence[QuizQuestion]) -> list[QuizQuestion]:
        if not questions:
            raise ValidationError("Quiz must contain at least one question.")
        return [cls._prepare_question(question) for question in questions]

    @staticmethod
    def _prepare_question(question: QuizQuestion) -> QuizQuestion:
        """Validate and normalize a question before storage."""
        cleaned_text = question.text.strip()
        if not cleaned_text:
            raise ValidationError("Question text must not be empty.")
        if len(question.options) != OPTIONS_PER_QUESTION:
            raise ValidationError(f"Each question must have exactly {OPTIONS_PER_QUESTION} options.")
        options = [option.strip() for option in question.options]
        if any(not option for option in options):
            raise ValidationError("Option text cannot be empty.")
        if not 0 <= question.correct_option_index < OPTIONS_PER_QUESTION:
            raise ValidationError("Correct option index must be between 0 and 3.")
        explanation = (question.explanation or "").strip() or None
        return QuizQuestion(
            text=cleaned_text,
            options=options,
            correct_option_index=question.correct_option_index,
            explanation=explanation,
        )


def _require_text(value: str, label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} must not be empty.")
    return cleaned
