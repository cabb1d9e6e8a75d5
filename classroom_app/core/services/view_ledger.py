"""Service recording the first time a student opens a shared lesson."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Callable

from classroom_app.constants.course_constants import VIEW_RECORDS
from classroom_app.core.document_store import DocumentStore, FieldFilter, Unsubscribe
from classroom_app.core.models import ViewRecord, utc_now

logger = logging.getLogger(__name__)


class ViewLedger:
    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    def record_lesson_view(self, student_id: str, class_id: str, course_id: str, lesson_id: str) -> bool:
        """Write the view record unless one exists. Returns True when a record was created."""
        record_id = ViewRecord.record_id(student_id, lesson_id)
        with self._store.transaction():
            if self._store.get(VIEW_RECORDS, record_id) is not None:
                return False
            record = ViewRecord(
                id=record_id,
                student_id=student_id,
                class_id=class_id,
                course_id=course_id,
                lesson_id=lesson_id,
                viewed_at=self._clock(),
            )
            self._store.set(VIEW_RECORDS, record_id, record.to_document())
        logger.info("Student %s viewed lesson %s for the first time", student_id, lesson_id)
        return True

    def viewed_lesson_ids(self, student_id: str) -> set[str]:
        snapshots = self._store.query(VIEW_RECORDS, [FieldFilter("studentId", "==", student_id)])
        return {item.data["lessonId"] for item in snapshots}

    def subscribe_student_views(
        self, student_id: str, callback: Callable[[set[str]], None]
    ) -> Unsubscribe:
        return self._store.subscribe(
            VIEW_RECORDS,
            [FieldFilter("studentId", "==", student_id)],
            lambda snapshots: callback({item.data["lessonId"] for item in snapshots}),
        )
