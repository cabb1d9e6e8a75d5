"""Service owning classes, their membership and their access grants."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
import secrets
import string
from typing import Callable, Mapping

from classroom_app.constants.course_constants import CLASSES, CLASS_CODE_LENGTH, DEFAULT_GRADE_LEVEL
from classroom_app.core.document_store import ArrayRemove, ArrayUnion, DocumentStore, FieldFilter, Unsubscribe
from classroom_app.core.errors import NotFoundError, ValidationError
from classroom_app.core.models import AccessGrant, SchoolClass, ensure_utc
from classroom_app.core.services.content_repository import ContentRepository

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(slots=True)
class LessonSelection:
    """A lesson picked for sharing, located by its unit."""

    unit_id: str


class ClassRepository:
    def __init__(self, store: DocumentStore, content: ContentRepository) -> None:
        self._store = store
        self._content = content

    # --- Class lifecycle ---

    def create_class(self, teacher_id: str, name: str, grade_level: str | None = None) -> SchoolClass:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Class name must not be empty.")
        school_class = SchoolClass(
            id="",
            name=cleaned,
            teacher_id=teacher_id,
            code=generate_class_code(),
            grade_level=(grade_level or "").strip() or DEFAULT_GRADE_LEVEL,
        )
        school_class.id = self._store.add(CLASSES, school_class.to_document())
        logger.info("Teacher %s created class %s with code %s", teacher_id, school_class.id, school_class.code)
        return school_class

    def rename_class(self, class_id: str, name: str) -> None:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Class name must not be empty.")
        self.get_class(class_id)
        self._store.update(CLASSES, class_id, {"name": cleaned})

    def delete_class(self, class_id: str) -> None:
        self.get_class(class_id)
        self._store.delete(CLASSES, class_id)
        logger.info("Deleted class %s", class_id)

    def get_class(self, class_id: str) -> SchoolClass:
        snapshot = self._store.get(CLASSES, class_id)
        if snapshot is None:
            raise NotFoundError(f"Class {class_id} not found.")
        return SchoolClass.from_document(snapshot.id, snapshot.data)

    def classes_for_teacher(self, teacher_id: str) -> list[SchoolClass]:
        return self._query([FieldFilter("teacherId", "==", teacher_id)])

    def classes_for_student(self, student_id: str) -> list[SchoolClass]:
        return self._query([FieldFilter("students", "array-contains", student_id)])

    def subscribe_teacher_classes(
        self, teacher_id: str, callback: Callable[[list[SchoolClass]], None]
    ) -> Unsubscribe:
        return self._subscribe([FieldFilter("teacherId", "==", teacher_id)], callback)

    def subscribe_student_classes(
        self, student_id: str, callback: Callable[[list[SchoolClass]], None]
    ) -> Unsubscribe:
        return self._subscribe([FieldFilter("students", "array-contains", student_id)], callback)

    # --- Membership ---

    def join_class(self, student_id: str, code: str) -> str:
        cleaned = (code or "").strip().upper()
        if not cleaned:
            raise ValidationError("Class code is required.")
        matches = self._store.query(CLASSES, [FieldFilter("code", "==", cleaned)])
        if not matches:
            logger.warning("Student %s used unknown class code %s", student_id, cleaned)
            raise NotFoundError("Invalid class code.")
        class_id = matches[0].id
        self._store.update(CLASSES, class_id, {"students": ArrayUnion(student_id)})
        logger.info("Student %s joined class %s", student_id, class_id)
        return class_id

    def remove_student(self, class_id: str, student_id: str) -> None:
        self.get_class(class_id)
        self._store.update(CLASSES, class_id, {"students": ArrayRemove(student_id)})

    # --- Access grants ---

    def grant_access(
        self,
        class_id: str,
        course_id: str,
        selection: Mapping[str, LessonSelection],
        available_from: datetime | None,
        available_until: datetime | None,
    ) -> None:
        """Share lessons of one course with a class for a time window.

        Each selected lesson gets a fresh grant that replaces any earlier one.
        Its quiz list is the lesson's quizzes right now; quizzes added later
        are not part of the grant until the lesson is shared again.
        """
        if not class_id:
            raise ValidationError("Please select a class.")
        if not selection:
            raise ValidationError("Please select at least one lesson.")
        if available_from is None or available_until is None:
            raise ValidationError("Please select both 'Available From' and 'Available Until' dates.")
        start = ensure_utc(available_from)
        end = ensure_utc(available_until)
        if start > end:
            raise ValidationError("'Available From' must not be later than 'Available Until'.")
        self.get_class(class_id)

        changes: dict[str, object] = {}
        for lesson_id, choice in selection.items():
            grant = AccessGrant(
                share_pages=True,
                quiz_ids=self._content.lesson_quiz_ids(course_id, choice.unit_id, lesson_id),
                available_from=start,
                available_until=end,
            )
            changes[_grant_path(course_id, choice.unit_id, lesson_id)] = grant.to_document()
        self._store.update(CLASSES, class_id, changes)
        logger.info(
            "Shared %d lesson(s) of course %s with class %s until %s",
            len(selection),
            course_id,
            class_id,
            end.isoformat(),
        )

    def revoke_access(self, class_id: str, course_id: str, unit_id: str, lesson_id: str) -> None:
        school_class = self.get_class(class_id)
        lessons = school_class.access_grants.get(course_id, {}).get(unit_id, {})
        if lesson_id not in lessons:
            raise NotFoundError(f"Lesson {lesson_id} is not shared with class {class_id}.")
        del lessons[lesson_id]
        self._store.update(CLASSES, class_id, {"accessGrants": school_class.to_document()["accessGrants"]})

    # --- Internals ---

    def _query(self, filters: list[FieldFilter]) -> list[SchoolClass]:
        return [SchoolClass.from_document(item.id, item.data) for item in self._store.query(CLASSES, filters)]

    def _subscribe(
        self, filters: list[FieldFilter], callback: Callable[[list[SchoolClass]], None]
    ) -> Unsubscribe:
        return self._store.subscribe(
            CLASSES,
            filters,
            lambda snapshots: callback([SchoolClass.from_document(item.id, item.data) for item in snapshots]),
        )


def generate_class_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(CLASS_CODE_LENGTH))


def _grant_path(course_id: str, unit_id: str, lesson_id: str) -> str:
    return f"accessGrants.{course_id}.{unit_id}.{lesson_id}"
