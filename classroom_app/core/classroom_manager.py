"""Facade wiring the classroom services over one store and identity provider."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Callable, Mapping, Sequence

from classroom_app.core.document_store import DocumentStore, InMemoryDocumentStore
from classroom_app.core.errors import AuthError, NotFoundError
from classroom_app.core.identity_provider import IdentityProvider, InMemoryIdentityProvider
from classroom_app.core.markdown_renderer import renderer
from classroom_app.core.models import (
    AccessGrant,
    Course,
    Lesson,
    LessonPage,
    Quiz,
    QuizQuestion,
    Role,
    SchoolClass,
    UserProfile,
    utc_now,
)
from classroom_app.core.quiz_importer import parse_quiz_text
from classroom_app.core.services.access_schedule import is_overdue
from classroom_app.core.services.attempt_ledger import AttemptLedger, QuizResult
from classroom_app.core.services.class_repository import ClassRepository, LessonSelection
from classroom_app.core.services.content_repository import ContentRepository
from classroom_app.core.services.identity_gate import IdentityGate, RoleDirectory, Session
from classroom_app.core.services.report_builder import ClassReport, ReportBuilder
from classroom_app.core.services.student_dashboard import DashboardItem, StudentDashboard
from classroom_app.core.services.view_ledger import ViewLedger
from classroom_app.core.settings import AppSettings

logger = logging.getLogger(__name__)


class ClassroomManager:
    """Facade for the classroom services used by the HTTP layer."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        provider: IdentityProvider | None = None,
        roles: RoleDirectory | None = None,
        email_domain: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store if store is not None else InMemoryDocumentStore()
        self._provider = provider if provider is not None else InMemoryIdentityProvider()
        self._clock = clock

        # Services
        gate_kwargs = {"email_domain": email_domain} if email_domain else {}
        self.identity = IdentityGate(self._store, self._provider, roles or RoleDirectory(), **gate_kwargs)
        self.content = ContentRepository(self._store)
        self.classes = ClassRepository(self._store, self.content)
        self.attempts = AttemptLedger(self._store, self.content, clock=clock)
        self.views = ViewLedger(self._store, clock=clock)
        self.dashboard = StudentDashboard(self.classes, self.content, self.attempts, self.views, clock=clock)
        self.reports = ReportBuilder(self._store, self.classes, self.content, self.attempts)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ClassroomManager":
        manager = cls(roles=RoleDirectory(settings.role_assignments), email_domain=settings.email_domain)
        for account in settings.seed_accounts:
            manager.identity.register_account(account.email, account.password, account.role)
        logger.info("Seeded %d account(s)", len(settings.seed_accounts))
        return manager

    # --- Identity Delegation ---

    def login(self, username: str, password: str, role: Role | str) -> Session:
        return self.identity.login(username, password, role)

    def logout(self, token: str) -> None:
        self.identity.logout(token)

    def require_session(self, token: str | None, *roles: Role) -> Session:
        """Return the session for ``token``; raise ``AuthError`` if absent or of another role."""
        session = self.identity.require_session(token)
        if roles and session.profile.role not in roles:
            raise PermissionError(f"This action requires one of: {', '.join(role.value for role in roles)}.")
        return session

    def provision_account(self, email: str, first_name: str, last_name: str, role: Role | str) -> tuple[UserProfile, str]:
        return self.identity.provision_account(email, first_name, last_name, role)

    # --- Content Repository Delegation ---

    def create_course(self, teacher_id: str, title: str, category: str) -> Course:
        return self.content.create_course(teacher_id, title, category)

    def add_lesson(
        self,
        course_id: str,
        unit_id: str,
        title: str,
        study_guide_url: str | None = None,
        pages: Sequence[LessonPage] = (),
    ) -> str:
        return self.content.add_lesson(course_id, unit_id, title, study_guide_url, pages)

    def add_quiz(
        self, course_id: str, unit_id: str, lesson_id: str, title: str, questions: Sequence[QuizQuestion]
    ) -> str:
        return self.content.add_quiz(course_id, unit_id, lesson_id, title, questions)

    def import_quiz(
        self, course_id: str, unit_id: str, lesson_id: str, text: str, title: str | None = None
    ) -> str:
        """Parse a plain-text quiz and attach it to a lesson."""
        imported = parse_quiz_text(text)
        quiz_title = title or imported.title or "Imported quiz"
        return self.content.add_quiz(course_id, unit_id, lesson_id, quiz_title, imported.questions)

    def render_lesson_page(self, course_id: str, unit_id: str, lesson_id: str, page_id: str) -> str:
        page = self.content.get_lesson(course_id, unit_id, lesson_id).find_page(page_id)
        return renderer.render_page(page)

    # --- Class Repository Delegation ---

    def create_class(self, teacher_id: str, name: str, grade_level: str | None = None) -> SchoolClass:
        return self.classes.create_class(teacher_id, name, grade_level)

    def join_class(self, student_id: str, code: str) -> str:
        return self.classes.join_class(student_id, code)

    def grant_access(
        self,
        class_id: str,
        course_id: str,
        selection: Mapping[str, LessonSelection],
        available_from: datetime | None,
        available_until: datetime | None,
    ) -> None:
        self.classes.grant_access(class_id, course_id, selection, available_from, available_until)

    # --- Student activity ---

    def open_lesson(self, student_id: str, class_id: str, course_id: str, unit_id: str, lesson_id: str) -> Lesson:
        """Return a lesson shared with the student's class and record the first view."""
        school_class = self._enrolled_class(student_id, class_id)
        if lesson_id not in school_class.access_grants.get(course_id, {}).get(unit_id, {}):
            raise NotFoundError("This lesson is not shared with your class.")
        lesson = self.content.get_lesson(course_id, unit_id, lesson_id)
        self.views.record_lesson_view(student_id, class_id, course_id, lesson_id)
        return lesson

    def shared_quiz(self, student_id: str, course_id: str, quiz_id: str) -> Quiz:
        """Return a quiz granted to one of the student's classes."""
        if self._quiz_grant(student_id, course_id, quiz_id) is None:
            raise NotFoundError("This quiz is not shared with your class.")
        quiz = self.content.get_course(course_id).find_quiz(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found.")
        return quiz

    def submit_quiz(
        self,
        student_id: str,
        course_id: str,
        quiz_id: str,
        answers: Sequence[int],
        is_late: bool = False,
        class_id: str | None = None,
    ) -> QuizResult:
        """Submit an attempt.

        With ``class_id`` lateness comes from that class's grant for the quiz.
        Without a matching grant the caller's ``is_late`` stands, so the
        ledger's own checks decide which error is reported.
        """
        if class_id and course_id:
            grant = self._quiz_grant(student_id, course_id, quiz_id, class_id)
            if grant is not None:
                is_late = is_overdue(self._clock(), grant)
        return self.attempts.submit_quiz(student_id, course_id, quiz_id, answers, is_late)

    def student_dashboard(self, student_id: str) -> list[DashboardItem]:
        return self.dashboard.build(student_id)

    def watch_dashboard(
        self, student_id: str, callback: Callable[[list[DashboardItem]], None]
    ) -> Callable[[], None]:
        return self.dashboard.watch(student_id, callback)

    # --- Reporting Delegation ---

    def build_report(self, class_id: str) -> ClassReport:
        return self.reports.build_report(class_id)

    # --- Internals ---

    def _enrolled_class(self, student_id: str, class_id: str) -> SchoolClass:
        school_class = self.classes.get_class(class_id)
        if student_id not in school_class.students:
            raise AuthError("You are not a member of this class.")
        return school_class

    def _quiz_grant(
        self, student_id: str, course_id: str, quiz_id: str, class_id: str | None = None
    ) -> AccessGrant | None:
        for school_class in self.classes.classes_for_student(student_id):
            if class_id is not None and school_class.id != class_id:
                continue
            for granted_course, _, _, grant in school_class.iter_grants():
                if granted_course == course_id and quiz_id in grant.quiz_ids:
                    return grant
        return None
