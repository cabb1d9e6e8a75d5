from datetime import timedelta

import pytest

from classroom_app.core.services.access_schedule import ItemStatus
from classroom_app.core.services.class_repository import LessonSelection
from classroom_app.core.services.student_dashboard import StudentDashboard, group_by_status


@pytest.fixture
def dashboard(classes, content, attempts, views, clock):
    return StudentDashboard(classes, content, attempts, views, clock=clock)


@pytest.fixture
def enrolled(classes, seeded, clock):
    school_class = classes.create_class(seeded.teacher_id, "Section A")
    classes.join_class("s1", school_class.code)
    classes.grant_access(
        school_class.id,
        seeded.course_id,
        {seeded.lesson_id: LessonSelection(unit_id=seeded.unit_id)},
        clock() - timedelta(hours=1),
        clock() + timedelta(hours=1),
    )
    return school_class


def by_kind(items):
    return {item.kind: item for item in items}


def test_view_is_recorded_once(views, clock):
    assert views.record_lesson_view("s1", "c1", "k1", "l1") is True
    clock.advance(hours=1)
    assert views.record_lesson_view("s1", "c1", "k1", "l1") is False

    assert views.viewed_lesson_ids("s1") == {"l1"}
    assert views.viewed_lesson_ids("s2") == set()


def test_view_record_id_joins_student_and_lesson(views, store):
    views.record_lesson_view("s1", "c1", "k1", "l1")
    assert store.get("viewRecords", "s1_l1").data["classId"] == "c1"


def test_dashboard_lists_shared_lesson_and_quiz(dashboard, enrolled, seeded):
    items = by_kind(dashboard.build("s1"))

    assert items["lesson"].item_id == seeded.lesson_id
    assert items["lesson"].status is ItemStatus.ACTIVE
    assert items["quiz"].item_id == seeded.quiz_id
    assert items["quiz"].attempts == 0
    assert items["quiz"].class_name == "Section A"
    assert items["quiz"].course_title == "Algebra I"
    assert not items["quiz"].is_overdue


def test_completion_and_overdue_status(dashboard, enrolled, seeded, views, attempts, clock):
    views.record_lesson_view("s1", enrolled.id, seeded.course_id, seeded.lesson_id)
    attempts.submit_quiz("s1", seeded.course_id, seeded.quiz_id, [0, 1], is_late=False)
    items = by_kind(dashboard.build("s1"))
    assert items["lesson"].status is ItemStatus.COMPLETED
    assert items["quiz"].status is ItemStatus.ACTIVE
    assert items["quiz"].attempts == 1

    clock.advance(hours=2)
    items = by_kind(dashboard.build("s1"))
    assert items["lesson"].status is ItemStatus.COMPLETED
    assert items["quiz"].status is ItemStatus.OVERDUE
    assert items["quiz"].is_overdue

    for _ in range(2):
        attempts.submit_quiz("s1", seeded.course_id, seeded.quiz_id, [0, 1], is_late=True)
    assert by_kind(dashboard.build("s1"))["quiz"].status is ItemStatus.COMPLETED


def test_quiz_added_after_sharing_is_not_listed(dashboard, enrolled, seeded, content, questions):
    content.add_quiz(seeded.course_id, seeded.unit_id, seeded.lesson_id, "Bonus", questions)
    quizzes = [item for item in dashboard.build("s1") if item.kind == "quiz"]
    assert [item.item_id for item in quizzes] == [seeded.quiz_id]


def test_grant_pointing_at_deleted_lesson_is_skipped(dashboard, enrolled, seeded, content):
    content.delete_lesson(seeded.course_id, seeded.unit_id, seeded.lesson_id)
    assert dashboard.build("s1") == []


def test_students_outside_the_class_see_nothing(dashboard, enrolled):
    assert dashboard.build("s2") == []


def test_group_by_status_has_every_bucket(dashboard, enrolled):
    grouped = group_by_status(dashboard.build("s1"))
    assert set(grouped) == set(ItemStatus)
    assert len(grouped[ItemStatus.ACTIVE]) == 2


def test_watch_rebuilds_on_each_input_and_stops_after_unsubscribe(
    dashboard, enrolled, seeded, attempts, views
):
    published = []
    unsubscribe = dashboard.watch("s1", published.append)
    assert len(published) == 1
    assert {item.kind for item in published[-1]} == {"lesson", "quiz"}

    attempts.submit_quiz("s1", seeded.course_id, seeded.quiz_id, [0, 1], is_late=False)
    assert by_kind(published[-1])["quiz"].attempts == 1

    views.record_lesson_view("s1", enrolled.id, seeded.course_id, seeded.lesson_id)
    assert by_kind(published[-1])["lesson"].status is ItemStatus.COMPLETED

    count = len(published)
    unsubscribe()
    attempts.submit_quiz("s1", seeded.course_id, seeded.quiz_id, [0, 1], is_late=False)
    assert len(published) == count
