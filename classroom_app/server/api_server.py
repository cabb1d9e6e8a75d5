"""FastAPI server exposing the classroom service."""

from __future__ import annotations

from datetime import datetime
import logging

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field
import uvicorn

from classroom_app.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION, QUIZ_IMPORT_HELP_TEXT
from classroom_app.constants.course_constants import COURSE_CATEGORIES, MAX_QUIZ_ATTEMPTS
from classroom_app.constants.network_constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    SESSION_COOKIE,
    SESSION_COOKIE_MAX_AGE_SECONDS,
)
from classroom_app.core.classroom_manager import ClassroomManager
from classroom_app.core.errors import AuthError, LimitExceededError, NotFoundError, ValidationError
from classroom_app.core.models import Course, Lesson, LessonPage, QuizQuestion, Role, SchoolClass, UserProfile
from classroom_app.core.quiz_exporter import quiz_to_text
from classroom_app.core.services.class_repository import LessonSelection
from classroom_app.core.services.identity_gate import Session
from classroom_app.core.services.student_dashboard import DashboardItem, group_by_status

logger = logging.getLogger(__name__)

_STAFF = (Role.TEACHER, Role.ADMIN)


class LoginPayload(BaseModel):
    username: str
    password: str
    role: Role


class ProfilePayload(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    gender: str | None = None


class AccountPayload(BaseModel):
    email: str
    first_name: str
    last_name: str
    role: Role = Role.STUDENT


class ClassPayload(BaseModel):
    name: str
    grade_level: str | None = None


class RenamePayload(BaseModel):
    name: str


class JoinPayload(BaseModel):
    code: str


class LessonChoicePayload(BaseModel):
    unit_id: str


class AccessPayload(BaseModel):
    course_id: str
    lessons: dict[str, LessonChoicePayload]
    available_from: datetime | None = None
    available_until: datetime | None = None


class CoursePayload(BaseModel):
    title: str
    category: str


class TitlePayload(BaseModel):
    title: str


class PagePayload(BaseModel):
    id: str | None = None
    title: str = ""
    content: str = ""


class LessonPayload(BaseModel):
    title: str
    study_guide_url: str | None = None
    pages: list[PagePayload] = Field(default_factory=list)


class LessonEditPayload(BaseModel):
    title: str | None = None
    study_guide_url: str | None = None
    pages: list[PagePayload] | None = None


class QuestionPayload(BaseModel):
    text: str
    options: list[str]
    correct_option_index: int
    explanation: str | None = None


class QuizPayload(BaseModel):
    title: str
    questions: list[QuestionPayload]


class QuizEditPayload(BaseModel):
    title: str | None = None
    questions: list[QuestionPayload] | None = None


class QuizImportPayload(BaseModel):
    text: str
    title: str | None = None


class OpenLessonPayload(BaseModel):
    class_id: str
    course_id: str
    unit_id: str
    lesson_id: str


class SubmissionPayload(BaseModel):
    course_id: str
    quiz_id: str
    answers: list[int]
    is_late: bool = False
    class_id: str | None = None


def _profile_payload(profile: UserProfile) -> dict[str, object]:
    return {"id": profile.id, **profile.to_document()}


def _class_payload(school_class: SchoolClass) -> dict[str, object]:
    return {"id": school_class.id, **school_class.to_document()}


def _course_payload(course: Course) -> dict[str, object]:
    return {"id": course.id, **course.to_document()}


def _student_lesson_payload(lesson: Lesson) -> dict[str, object]:
    """Lesson as a student sees it: pages and quiz titles, no answers."""
    return {
        "id": lesson.id,
        "title": lesson.title,
        "studyGuideUrl": lesson.study_guide_url,
        "pages": [page.to_document() for page in lesson.pages],
        "quizzes": [{"id": quiz.id, "title": quiz.title, "questionCount": len(quiz.questions)} for quiz in lesson.quizzes],
    }


def _dashboard_payload(item: DashboardItem) -> dict[str, object]:
    return {
        "type": item.kind,
        "id": item.item_id,
        "title": item.title,
        "classId": item.class_id,
        "className": item.class_name,
        "courseId": item.course_id,
        "courseTitle": item.course_title,
        "unitId": item.unit_id,
        "unitTitle": item.unit_title,
        "lessonId": item.lesson_id,
        "lessonTitle": item.lesson_title,
        "availableFrom": item.available_from.isoformat(),
        "deadline": item.available_until.isoformat(),
        "isOverdue": item.is_overdue,
        "status": item.status.value,
        "attempts": item.attempts,
        "maxAttempts": MAX_QUIZ_ATTEMPTS if item.kind == "quiz" else None,
    }


def _pages(payloads: list[PagePayload]) -> list[LessonPage]:
    return [LessonPage(id=page.id or "", title=page.title, content=page.content) for page in payloads]


def _questions(payloads: list[QuestionPayload]) -> list[QuizQuestion]:
    return [
        QuizQuestion(
            text=question.text,
            options=list(question.options),
            correct_option_index=question.correct_option_index,
            explanation=question.explanation,
        )
        for question in payloads
    ]


def _error_response(status_code: int):
    def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def _session_dependency(manager: ClassroomManager, *roles: Role):
    def dependency(request: Request) -> Session:
        return manager.require_session(request.cookies.get(SESSION_COOKIE), *roles)

    return dependency


def create_api_app(manager: ClassroomManager) -> FastAPI:
    """Create a FastAPI application wired to the provided classroom manager."""
    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION)

    app.add_exception_handler(ValidationError, _error_response(422))
    app.add_exception_handler(NotFoundError, _error_response(404))
    app.add_exception_handler(LimitExceededError, _error_response(409))
    app.add_exception_handler(AuthError, _error_response(401))
    app.add_exception_handler(PermissionError, _error_response(403))

    any_session = _session_dependency(manager)
    staff_session = _session_dependency(manager, *_STAFF)
    admin_session = _session_dependency(manager, Role.ADMIN)
    student_session = _session_dependency(manager, Role.STUDENT)

    @app.get("/about")
    def about() -> dict[str, object]:
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "license": APP_LICENSE,
            "about": APP_ABOUT_TEXT,
            "quizImportHelp": QUIZ_IMPORT_HELP_TEXT,
        }

    # --- Sessions & profiles ---

    @app.post("/login")
    def login(payload: LoginPayload, response: Response) -> dict[str, object]:
        session = manager.login(payload.username, payload.password, payload.role)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=session.token,
            max_age=SESSION_COOKIE_MAX_AGE_SECONDS,
            samesite="lax",
            httponly=True,
        )
        return {"profile": _profile_payload(session.profile)}

    @app.post("/logout", status_code=204)
    def logout(request: Request) -> Response:
        token = request.cookies.get(SESSION_COOKIE)
        if token:
            manager.logout(token)
        response = Response(status_code=204)
        response.delete_cookie(SESSION_COOKIE)
        return response

    @app.get("/profile")
    def get_profile(session: Session = Depends(any_session)) -> dict[str, object]:
        return _profile_payload(session.profile)

    @app.patch("/profile")
    def update_profile(payload: ProfilePayload, session: Session = Depends(any_session)) -> dict[str, object]:
        profile = manager.identity.update_profile(
            session.principal_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
            gender=payload.gender,
        )
        return _profile_payload(profile)

    @app.get("/accounts")
    def list_accounts(session: Session = Depends(admin_session)) -> list[dict[str, object]]:
        return [_profile_payload(profile) for profile in manager.identity.list_accounts()]

    @app.post("/accounts", status_code=201)
    def provision_account(payload: AccountPayload, session: Session = Depends(admin_session)) -> dict[str, object]:
        profile, password = manager.provision_account(
            payload.email, payload.first_name, payload.last_name, payload.role
        )
        return {"profile": _profile_payload(profile), "password": password}

    @app.delete("/accounts/{user_id}", status_code=204)
    def delete_account(user_id: str, session: Session = Depends(admin_session)) -> Response:
        if user_id == session.principal_id:
            raise PermissionError("You cannot delete your own account.")
        manager.identity.delete_account(user_id)
        return Response(status_code=204)

    @app.get("/students")
    def list_students(session: Session = Depends(staff_session)) -> list[dict[str, object]]:
        return [_profile_payload(profile) for profile in manager.identity.list_students()]

    # --- Classes ---

    @app.get("/classes")
    def list_classes(session: Session = Depends(any_session)) -> list[dict[str, object]]:
        if session.profile.role is Role.STUDENT:
            classes = manager.classes.classes_for_student(session.principal_id)
        else:
            classes = manager.classes.classes_for_teacher(session.principal_id)
        return [_class_payload(school_class) for school_class in classes]

    @app.post("/classes", status_code=201)
    def create_class(payload: ClassPayload, session: Session = Depends(staff_session)) -> dict[str, object]:
        school_class = manager.create_class(session.principal_id, payload.name, payload.grade_level)
        return {"id": school_class.id, "code": school_class.code}

    @app.patch("/classes/{class_id}")
    def rename_class(class_id: str, payload: RenamePayload, session: Session = Depends(staff_session)) -> dict[str, object]:
        manager.classes.rename_class(class_id, payload.name)
        return _class_payload(manager.classes.get_class(class_id))

    @app.delete("/classes/{class_id}", status_code=204)
    def delete_class(class_id: str, session: Session = Depends(staff_session)) -> Response:
        manager.classes.delete_class(class_id)
        return Response(status_code=204)

    @app.post("/classes/join")
    def join_class(payload: JoinPayload, session: Session = Depends(student_session)) -> dict[str, object]:
        return {"classId": manager.join_class(session.principal_id, payload.code)}

    @app.delete("/classes/{class_id}/students/{student_id}", status_code=204)
    def remove_student(class_id: str, student_id: str, session: Session = Depends(staff_session)) -> Response:
        manager.classes.remove_student(class_id, student_id)
        return Response(status_code=204)

    @app.post("/classes/{class_id}/access", status_code=204)
    def grant_access(class_id: str, payload: AccessPayload, session: Session = Depends(staff_session)) -> Response:
        selection = {
            lesson_id: LessonSelection(unit_id=choice.unit_id) for lesson_id, choice in payload.lessons.items()
        }
        manager.grant_access(class_id, payload.course_id, selection, payload.available_from, payload.available_until)
        return Response(status_code=204)

    @app.delete("/classes/{class_id}/access/{course_id}/{unit_id}/{lesson_id}", status_code=204)
    def revoke_access(
        class_id: str,
        course_id: str,
        unit_id: str,
        lesson_id: str,
        session: Session = Depends(staff_session),
    ) -> Response:
        manager.classes.revoke_access(class_id, course_id, unit_id, lesson_id)
        return Response(status_code=204)

    @app.get("/classes/{class_id}/report")
    def class_report(
        class_id: str,
        order_by: str | None = None,
        session: Session = Depends(staff_session),
    ) -> dict[str, object]:
        report = manager.build_report(class_id)
        try:
            rows = report.student_rows(order_by)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        payload = report.to_dict()
        payload["quizOverview"] = [
            {"title": title, "questionCount": count} for title, count in report.quiz_overview()
        ]
        payload["rows"] = [
            {
                "studentId": row.student_id,
                "lastName": row.last_name,
                "firstName": row.first_name,
                "gender": row.gender,
                "scores": {
                    quiz_id: None
                    if cell is None
                    else {"firstAttemptScore": cell.first_attempt_score, "highestScore": cell.highest_score}
                    for quiz_id, cell in row.scores.items()
                },
                "totalFirstAttemptScore": row.total_first_attempt_score,
            }
            for row in rows
        ]
        return payload

    # --- Courses ---

    @app.get("/courses/categories")
    def course_categories() -> list[str]:
        return list(COURSE_CATEGORIES)

    @app.get("/courses")
    def list_courses(category: str | None = None, session: Session = Depends(staff_session)) -> list[dict[str, object]]:
        return [_course_payload(course) for course in manager.content.list_courses(category)]

    @app.post("/courses", status_code=201)
    def create_course(payload: CoursePayload, session: Session = Depends(staff_session)) -> dict[str, object]:
        course = manager.create_course(session.principal_id, payload.title, payload.category)
        return {"id": course.id}

    @app.get("/courses/{course_id}")
    def get_course(course_id: str, session: Session = Depends(staff_session)) -> dict[str, object]:
        return _course_payload(manager.content.get_course(course_id))

    @app.patch("/courses/{course_id}", status_code=204)
    def edit_course(course_id: str, payload: CoursePayload, session: Session = Depends(staff_session)) -> Response:
        manager.content.edit_course(course_id, payload.title, payload.category)
        return Response(status_code=204)

    @app.post("/courses/{course_id}/units", status_code=201)
    def add_unit(course_id: str, payload: TitlePayload, session: Session = Depends(staff_session)) -> dict[str, object]:
        return {"id": manager.content.add_unit(course_id, payload.title)}

    @app.patch("/courses/{course_id}/units/{unit_id}", status_code=204)
    def edit_unit(
        course_id: str, unit_id: str, payload: TitlePayload, session: Session = Depends(staff_session)
    ) -> Response:
        manager.content.edit_unit(course_id, unit_id, payload.title)
        return Response(status_code=204)

    @app.delete("/courses/{course_id}/units/{unit_id}", status_code=204)
    def delete_unit(course_id: str, unit_id: str, session: Session = Depends(staff_session)) -> Response:
        manager.content.delete_unit(course_id, unit_id)
        return Response(status_code=204)

    @app.post("/courses/{course_id}/units/{unit_id}/lessons", status_code=201)
    def add_lesson(
        course_id: str, unit_id: str, payload: LessonPayload, session: Session = Depends(staff_session)
    ) -> dict[str, object]:
        lesson_id = manager.add_lesson(
            course_id, unit_id, payload.title, payload.study_guide_url, _pages(payload.pages)
        )
        return {"id": lesson_id}

    @app.patch("/courses/{course_id}/units/{unit_id}/lessons/{lesson_id}", status_code=204)
    def edit_lesson(
        course_id: str,
        unit_id: str,
        lesson_id: str,
        payload: LessonEditPayload,
        session: Session = Depends(staff_session),
    ) -> Response:
        manager.content.edit_lesson(
            course_id,
            unit_id,
            lesson_id,
            title=payload.title,
            study_guide_url=payload.study_guide_url,
            pages=None if payload.pages is None else _pages(payload.pages),
        )
        return Response(status_code=204)

    @app.delete("/courses/{course_id}/units/{unit_id}/lessons/{lesson_id}", status_code=204)
    def delete_lesson(
        course_id: str, unit_id: str, lesson_id: str, session: Session = Depends(staff_session)
    ) -> Response:
        manager.content.delete_lesson(course_id, unit_id, lesson_id)
        return Response(status_code=204)

    @app.get(
        "/courses/{course_id}/units/{unit_id}/lessons/{lesson_id}/pages/{page_id}",
        response_class=HTMLResponse,
    )
    def render_page(
        course_id: str, unit_id: str, lesson_id: str, page_id: str, session: Session = Depends(any_session)
    ) -> str:
        return manager.render_lesson_page(course_id, unit_id, lesson_id, page_id)

    @app.post("/courses/{course_id}/units/{unit_id}/lessons/{lesson_id}/quizzes", status_code=201)
    def add_quiz(
        course_id: str,
        unit_id: str,
        lesson_id: str,
        payload: QuizPayload,
        session: Session = Depends(staff_session),
    ) -> dict[str, object]:
        quiz_id = manager.add_quiz(course_id, unit_id, lesson_id, payload.title, _questions(payload.questions))
        return {"id": quiz_id}

    @app.post("/courses/{course_id}/units/{unit_id}/lessons/{lesson_id}/quizzes/import", status_code=201)
    def import_quiz(
        course_id: str,
        unit_id: str,
        lesson_id: str,
        payload: QuizImportPayload,
        session: Session = Depends(staff_session),
    ) -> dict[str, object]:
        return {"id": manager.import_quiz(course_id, unit_id, lesson_id, payload.text, payload.title)}

    @app.patch("/courses/{course_id}/units/{unit_id}/lessons/{lesson_id}/quizzes/{quiz_id}", status_code=204)
    def edit_quiz(
        course_id: str,
        unit_id: str,
        lesson_id: str,
        quiz_id: str,
        payload: QuizEditPayload,
        session: Session = Depends(staff_session),
    ) -> Response:
        manager.content.edit_quiz(
            course_id,
            unit_id,
            lesson_id,
            quiz_id,
            title=payload.title,
            questions=None if payload.questions is None else _questions(payload.questions),
        )
        return Response(status_code=204)

    @app.get(
        "/courses/{course_id}/units/{unit_id}/lessons/{lesson_id}/quizzes/{quiz_id}/export",
        response_class=PlainTextResponse,
    )
    def export_quiz(
        course_id: str,
        unit_id: str,
        lesson_id: str,
        quiz_id: str,
        session: Session = Depends(staff_session),
    ) -> str:
        lesson = manager.content.get_lesson(course_id, unit_id, lesson_id)
        return quiz_to_text(lesson.find_quiz(quiz_id))

    # --- Student activity ---

    @app.get("/dashboard")
    def dashboard(session: Session = Depends(student_session)) -> list[dict[str, object]]:
        return [_dashboard_payload(item) for item in manager.student_dashboard(session.principal_id)]

    @app.get("/dashboard/tabs")
    def dashboard_tabs(session: Session = Depends(student_session)) -> dict[str, list[dict[str, object]]]:
        grouped = group_by_status(manager.student_dashboard(session.principal_id))
        return {status.value: [_dashboard_payload(item) for item in items] for status, items in grouped.items()}

    @app.post("/lessons/open")
    def open_lesson(payload: OpenLessonPayload, session: Session = Depends(student_session)) -> dict[str, object]:
        lesson = manager.open_lesson(
            session.principal_id, payload.class_id, payload.course_id, payload.unit_id, payload.lesson_id
        )
        return _student_lesson_payload(lesson)

    @app.get("/quizzes/{quiz_id}")
    def take_quiz(quiz_id: str, course_id: str, session: Session = Depends(student_session)) -> dict[str, object]:
        quiz = manager.shared_quiz(session.principal_id, course_id, quiz_id)
        return {
            "id": quiz.id,
            "title": quiz.title,
            "questions": [{"text": question.text, "options": question.options} for question in quiz.questions],
            "attempts": manager.attempts.attempts(session.principal_id, quiz.id),
            "maxAttempts": MAX_QUIZ_ATTEMPTS,
        }

    @app.post("/quizzes/submit", status_code=201)
    def submit_quiz(payload: SubmissionPayload, session: Session = Depends(student_session)) -> dict[str, object]:
        result = manager.submit_quiz(
            session.principal_id,
            payload.course_id,
            payload.quiz_id,
            payload.answers,
            is_late=payload.is_late,
            class_id=payload.class_id,
        )
        return {
            "id": result.submission_id,
            "score": result.score,
            "totalQuestions": result.total_questions,
            "percentage": result.percentage,
        }

    return app


def run_api_server(
    manager: ClassroomManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    log_level: str = "info",
) -> None:
    """Serve the API until the process is stopped."""
    app = create_api_app(manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=log_level.lower())
    server = uvicorn.Server(config)
    server.run()
