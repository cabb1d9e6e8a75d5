from datetime import timedelta

import pytest

from classroom_app.core.classroom_manager import ClassroomManager
from classroom_app.core.errors import AuthError, LimitExceededError, NotFoundError, ValidationError
from classroom_app.core.models import LessonPage, Role, SubmissionType
from classroom_app.core.services.class_repository import LessonSelection
from classroom_app.core.services.identity_gate import RoleDirectory


@pytest.fixture
def manager(clock):
    manager = ClassroomManager(roles=RoleDirectory(), clock=clock)
    manager.identity.register_account("srcsteach01", "teach-pass", "teacher")
    manager.identity.register_account("srcslearn01", "learn-pass", "student")
    return manager


@pytest.fixture
def setup(manager, clock, questions):
    teacher = manager.login("srcsteach01", "teach-pass", "teacher")
    student = manager.login("srcslearn01", "learn-pass", "student")
    course = manager.create_course(teacher.principal_id, "Algebra I", "School-based Subjects")
    unit_id = manager.content.add_unit(course.id, "Numbers")
    lesson_id = manager.add_lesson(
        course.id, unit_id, "Arithmetic", pages=[LessonPage(id="", title="Intro", content="$1+1$")]
    )
    quiz_id = manager.add_quiz(course.id, unit_id, lesson_id, "Warm-up", questions)
    school_class = manager.create_class(teacher.principal_id, "Section A")
    manager.join_class(student.principal_id, school_class.code)
    manager.grant_access(
        school_class.id,
        course.id,
        {lesson_id: LessonSelection(unit_id=unit_id)},
        clock() - timedelta(hours=1),
        clock() + timedelta(hours=1),
    )
    return {
        "teacher": teacher,
        "student": student,
        "course_id": course.id,
        "unit_id": unit_id,
        "lesson_id": lesson_id,
        "quiz_id": quiz_id,
        "class_id": school_class.id,
    }


def test_require_session_checks_roles(manager, setup):
    student_token = setup["student"].token
    assert manager.require_session(student_token).principal_id == setup["student"].principal_id
    with pytest.raises(PermissionError):
        manager.require_session(student_token, Role.TEACHER, Role.ADMIN)
    with pytest.raises(AuthError):
        manager.require_session("no-such-token")


def test_open_lesson_records_the_view_once(manager, setup):
    student_id = setup["student"].principal_id
    lesson = manager.open_lesson(
        student_id, setup["class_id"], setup["course_id"], setup["unit_id"], setup["lesson_id"]
    )
    manager.open_lesson(student_id, setup["class_id"], setup["course_id"], setup["unit_id"], setup["lesson_id"])

    assert lesson.pages[0].title == "Intro"
    assert manager.views.viewed_lesson_ids(student_id) == {setup["lesson_id"]}


def test_open_lesson_requires_membership_and_a_grant(manager, setup):
    with pytest.raises(AuthError):
        manager.open_lesson("outsider", setup["class_id"], setup["course_id"], setup["unit_id"], setup["lesson_id"])
    with pytest.raises(NotFoundError):
        manager.open_lesson(
            setup["student"].principal_id, setup["class_id"], setup["course_id"], setup["unit_id"], "lesson_x"
        )


def test_lateness_comes_from_the_class_grant(manager, setup, clock):
    student_id = setup["student"].principal_id
    manager.submit_quiz(student_id, setup["course_id"], setup["quiz_id"], [0, 1], class_id=setup["class_id"])
    clock.advance(hours=2)
    manager.submit_quiz(
        student_id, setup["course_id"], setup["quiz_id"], [0, 1], is_late=False, class_id=setup["class_id"]
    )
    manager.submit_quiz(student_id, setup["course_id"], setup["quiz_id"], [0, 1], is_late=True)

    kinds = [item.submission_type for item in manager.attempts.submissions_for_student(student_id)]
    assert sorted(kind.value for kind in kinds) == sorted(
        [SubmissionType.ON_TIME.value, SubmissionType.LATE.value, SubmissionType.LATE.value]
    )


def test_import_quiz_uses_parsed_title(manager, setup):
    quiz_id = manager.import_quiz(
        setup["course_id"],
        setup["unit_id"],
        setup["lesson_id"],
        "TITLE: Imported\n\nQ: 1+1?\nA: 1\nB: 2\nC: 3\nD: 4\nCORRECT: B\n",
    )
    quiz = manager.content.get_course(setup["course_id"]).find_quiz(quiz_id)
    assert quiz.title == "Imported"
    assert quiz.questions[0].correct_option_index == 1


def test_dashboard_and_report_through_the_facade(manager, setup):
    student_id = setup["student"].principal_id
    manager.submit_quiz(student_id, setup["course_id"], setup["quiz_id"], [0, 0])

    assert {item.kind for item in manager.student_dashboard(student_id)} == {"lesson", "quiz"}
    report = manager.build_report(setup["class_id"])
    assert report.cell(student_id, setup["quiz_id"]).first_attempt_score == 1


def test_render_lesson_page(manager, setup):
    page_id = manager.content.get_lesson(setup["course_id"], setup["unit_id"], setup["lesson_id"]).pages[0].id
    html = manager.render_lesson_page(setup["course_id"], setup["unit_id"], setup["lesson_id"], page_id)
    assert "<title>Intro</title>" in html


def test_watch_dashboard_follows_submissions(manager, setup):
    student_id = setup["student"].principal_id
    published = []
    unsubscribe = manager.watch_dashboard(student_id, published.append)

    manager.submit_quiz(student_id, setup["course_id"], setup["quiz_id"], [0, 1])
    unsubscribe()

    quiz_item = next(item for item in published[-1] if item.kind == "quiz")
    assert quiz_item.attempts == 1


def test_missing_course_id_is_a_validation_error_even_with_a_class(manager, setup):
    with pytest.raises(ValidationError):
        manager.submit_quiz(
            setup["student"].principal_id, "", setup["quiz_id"], [0, 1], class_id=setup["class_id"]
        )


def test_attempt_limit_wins_after_the_grant_is_revoked(manager, setup):
    student_id = setup["student"].principal_id
    for _ in range(3):
        manager.submit_quiz(student_id, setup["course_id"], setup["quiz_id"], [0, 1], class_id=setup["class_id"])
    manager.classes.revoke_access(setup["class_id"], setup["course_id"], setup["unit_id"], setup["lesson_id"])

    with pytest.raises(LimitExceededError):
        manager.submit_quiz(student_id, setup["course_id"], setup["quiz_id"], [0, 1], class_id=setup["class_id"])


def test_submission_outside_a_grant_keeps_the_callers_lateness(manager, setup):
    student_id = setup["student"].principal_id
    manager.classes.revoke_access(setup["class_id"], setup["course_id"], setup["unit_id"], setup["lesson_id"])

    manager.submit_quiz(
        student_id, setup["course_id"], setup["quiz_id"], [0, 1], is_late=True, class_id=setup["class_id"]
    )

    [submission] = manager.attempts.submissions_for_student(student_id)
    assert submission.submission_type is SubmissionType.LATE


def test_shared_quiz_requires_a_grant(manager, setup):
    student_id = setup["student"].principal_id
    assert manager.shared_quiz(student_id, setup["course_id"], setup["quiz_id"]).title == "Warm-up"

    manager.classes.revoke_access(setup["class_id"], setup["course_id"], setup["unit_id"], setup["lesson_id"])
    with pytest.raises(NotFoundError):
        manager.shared_quiz(student_id, setup["course_id"], setup["quiz_id"])
