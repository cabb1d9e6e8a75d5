from datetime import timedelta

import pytest

from classroom_app.core.errors import NotFoundError
from classroom_app.core.models import Role, UserProfile
from classroom_app.core.services.class_repository import LessonSelection
from classroom_app.core.services.report_builder import ReportBuilder, ReportCell


def add_student(store, student_id, first_name, last_name, gender="Not specified"):
    profile = UserProfile(
        id=student_id,
        email=f"{student_id}@srcs.edu",
        first_name=first_name,
        last_name=last_name,
        role=Role.STUDENT,
        gender=gender,
    )
    store.set("users", student_id, profile.to_document())


@pytest.fixture
def reports(store, classes, content, attempts):
    return ReportBuilder(store, classes, content, attempts)


@pytest.fixture
def shared_class(classes, seeded, clock):
    school_class = classes.create_class(seeded.teacher_id, "Section A")
    classes.grant_access(
        school_class.id,
        seeded.course_id,
        {seeded.lesson_id: LessonSelection(unit_id=seeded.unit_id)},
        clock() - timedelta(hours=1),
        clock() + timedelta(hours=1),
    )
    return school_class


def test_first_and_highest_scores(reports, store, classes, attempts, shared_class, seeded, clock):
    add_student(store, "a", "Ana", "Reyes", "Female")
    add_student(store, "b", "Ben", "Cruz", "Male")
    classes.join_class("a", shared_class.code)
    classes.join_class("b", shared_class.code)

    attempts.submit_quiz("a", seeded.course_id, seeded.quiz_id, [0, 0], is_late=False)
    clock.advance(minutes=10)
    attempts.submit_quiz("a", seeded.course_id, seeded.quiz_id, [0, 1], is_late=False)

    report = reports.build_report(shared_class.id)

    assert report.cell("a", seeded.quiz_id) == ReportCell(first_attempt_score=1, highest_score=2)
    assert report.cell("b", seeded.quiz_id) is None
    assert report.quiz_overview() == [("Warm-up", 2)]
    assert [profile.id for profile in report.students] == ["a", "b"]


def test_first_attempt_is_the_earliest_not_the_first_stored(
    reports, store, classes, attempts, shared_class, seeded, clock
):
    add_student(store, "a", "Ana", "Reyes")
    classes.join_class("a", shared_class.code)
    clock.advance(minutes=30)
    attempts.submit_quiz("a", seeded.course_id, seeded.quiz_id, [0, 1], is_late=False)
    clock.advance(minutes=-20)
    attempts.submit_quiz("a", seeded.course_id, seeded.quiz_id, [1, 1], is_late=False)

    assert reports.build_report(shared_class.id).cell("a", seeded.quiz_id) == ReportCell(1, 2)


def test_report_is_idempotent(reports, store, classes, attempts, shared_class, seeded):
    add_student(store, "a", "Ana", "Reyes")
    classes.join_class("a", shared_class.code)
    attempts.submit_quiz("a", seeded.course_id, seeded.quiz_id, [0, 1], is_late=False)

    assert reports.build_report(shared_class.id).to_dict() == reports.build_report(shared_class.id).to_dict()


def test_rows_order_and_totals(reports, store, classes, attempts, shared_class, seeded):
    add_student(store, "a", "Ana", "Zamora", "Female")
    add_student(store, "b", "Ben", "Cruz", "Male")
    add_student(store, "c", "Cai", "Lim")
    for student_id in ("a", "b", "c"):
        classes.join_class(student_id, shared_class.code)
    attempts.submit_quiz("b", seeded.course_id, seeded.quiz_id, [0, 1], is_late=False)

    report = reports.build_report(shared_class.id)

    assert [row.last_name for row in report.student_rows("lastName")] == ["Cruz", "Lim", "Zamora"]
    assert [row.gender for row in report.student_rows("gender")] == ["Female", "Male", "Not specified"]
    assert [row.student_id for row in report.student_rows()] == ["a", "b", "c"]
    totals = {row.student_id: row.total_first_attempt_score for row in report.student_rows()}
    assert totals == {"a": 0, "b": 2, "c": 0}
    with pytest.raises(ValueError):
        report.student_rows("score")


def test_large_class_spans_lookup_chunks(reports, store, classes, attempts, shared_class, seeded):
    student_ids = [f"s{index:03d}" for index in range(75)]
    for student_id in student_ids:
        add_student(store, student_id, "First", student_id)
        classes.join_class(student_id, shared_class.code)
        attempts.submit_quiz(student_id, seeded.course_id, seeded.quiz_id, [0, 1], is_late=False)

    report = reports.build_report(shared_class.id)

    assert [profile.id for profile in report.students] == student_ids
    assert all(report.cell(student_id, seeded.quiz_id) == ReportCell(2, 2) for student_id in student_ids)


def test_members_without_profiles_and_missing_class(reports, classes, shared_class):
    classes.join_class("ghost", shared_class.code)
    assert reports.build_report(shared_class.id).students == []
    with pytest.raises(NotFoundError):
        reports.build_report("missing")
