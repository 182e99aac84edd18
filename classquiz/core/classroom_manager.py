"""Business logic shared by every API route, wired to one backend."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
import logging
import random

from classquiz.constants import messages
from classquiz.core.backend import Backend, Subscription, create_memory_backend, create_rest_backend
from classquiz.core.backend.fixtures import seed_catalog
from classquiz.core.errors import NotFoundOrDenied, ValidationError
from classquiz.core.image_processing import process_image, validate_image_file
from classquiz.core.models import (
    AuthSession,
    AuthUser,
    ClassMember,
    Course,
    NoQuestionsAvailable,
    ProcessedImage,
    Question,
    Role,
    SchoolClass,
    SessionParticipant,
    Tag,
    Teacher,
    utc_now,
)
from classquiz.core.services.auth_service import AuthService
from classquiz.core.services.class_roster import ClassCreation, ClassDetail, ClassRoster
from classquiz.core.services.dashboards import (
    QuestionFilter,
    StudentDashboard,
    StudentDashboardView,
    TeacherDashboard,
    TeacherDashboardView,
)
from classquiz.core.services.question_bank import QuestionBank, QuestionCreation, QuestionDraft
from classquiz.core.services.quiz_run import AnswerResult, QuizRun
from classquiz.core.services.quiz_runs import QuizRunRegistry
from classquiz.core.services.role_resolver import RoleResolver, build_teacher_lookup
from classquiz.core.services.session_manager import (
    SessionCreation,
    SessionDetail,
    SessionDraft,
    SessionManager,
    compute_remaining,
    is_expired,
)
from classquiz.utils.settings import BACKEND_REST, AppSettings

logger = logging.getLogger(__name__)


class ClassroomManager:
    """Facade over auth, roster, question bank, sessions, quiz runs and dashboards."""

    def __init__(
        self,
        backend: Backend,
        settings: AppSettings | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or AppSettings()
        self.backend = backend

        # Services
        self._auth = AuthService(
            backend.identity,
            dev_mode=self.settings.dev_mode,
            simulated_emails=self.settings.simulated_teacher_emails,
        )
        self._roles = RoleResolver(build_teacher_lookup(self.settings, backend.store))
        self._roster = ClassRoster(backend.store)
        self._questions = QuestionBank(backend.store, backend.storage, self.settings.image_bucket)
        self._sessions = SessionManager(backend.store, self._questions, rng=rng, clock=clock)
        self._runs = QuizRunRegistry(self._sessions, avoid_repeats=self.settings.avoid_repeats)
        self._teacher_dashboard = TeacherDashboard(backend.store, self._questions, clock=clock)
        self._student_dashboard = StudentDashboard(backend.store, clock=clock)

    # --- Auth Delegation ---

    @property
    def dev_mode(self) -> bool:
        return self._auth.dev_mode

    @property
    def simulated_teacher_emails(self) -> tuple[str, ...]:
        return self._auth.simulated_emails

    def sign_up(self, email: str, password: str) -> AuthSession:
        return self._auth.sign_up(email, password)

    def sign_in(self, email: str, password: str) -> AuthSession:
        return self._auth.sign_in(email, password)

    def send_magic_link(self, email: str, redirect_to: str | None = None) -> None:
        self._auth.send_magic_link(email, redirect_to)

    def sign_out(self, access_token: str) -> None:
        self._auth.sign_out(access_token)

    def dev_login(self, email: str) -> AuthSession:
        return self._auth.dev_login(email)

    def current_user(self, access_token: str | None) -> AuthUser | None:
        return self._auth.current_user(access_token)

    def resolve_role(self, email: str | None) -> Role:
        return self._roles.resolve(email)

    def subscribe_to_auth_changes(self) -> Subscription:
        """Log identity changes; the caller unsubscribes at shutdown."""

        def on_change(event: str, session: AuthSession | None) -> None:
            email = session.user.email if session is not None else None
            logger.info("Auth state changed: %s %s", event, email or "")

        return self.backend.identity.on_auth_state_change(on_change)

    # --- Class Roster Delegation ---

    def list_classes(self, teacher: Teacher) -> list[SchoolClass]:
        return self._roster.list_classes(teacher)

    def create_class(
        self, teacher: Teacher, name: str, emails: Sequence[str], description: str | None = None
    ) -> ClassCreation:
        return self._roster.create_class(teacher, name, emails, description)

    def get_class(self, teacher: Teacher, class_id: str) -> ClassDetail:
        return self._roster.get_class(teacher, class_id)

    def update_class(self, teacher: Teacher, class_id: str, name: str, description: str | None = None) -> SchoolClass:
        return self._roster.update_class(teacher, class_id, name, description)

    def add_class_members(self, teacher: Teacher, class_id: str, emails: Sequence[str]) -> list[ClassMember]:
        return self._roster.add_members(teacher, class_id, emails)

    def remove_class_member(self, teacher: Teacher, class_id: str, member_id: str) -> None:
        self._roster.remove_member(teacher, class_id, member_id)

    def delete_class(self, teacher: Teacher, class_id: str) -> None:
        self._roster.delete_class(teacher, class_id)

    # --- Question Bank Delegation ---

    def list_courses(self) -> list[Course]:
        return self._questions.list_courses()

    def list_tags(self) -> list[Tag]:
        return self._questions.list_tags()

    def search_tags(self, term: str, selected_ids: Iterable[str] = ()) -> list[Tag]:
        return QuestionBank.search_tags(self.list_tags(), term, selected_ids)

    def preview_image(self, data: bytes, filename: str, content_type: str | None) -> ProcessedImage:
        """Validate and normalize an upload exactly as question creation will."""
        validation = validate_image_file(content_type, len(data))
        if not validation.valid:
            raise ValidationError(validation.error or messages.IMAGE_INVALID_TYPE)
        return process_image(data, filename)

    def create_question(
        self, teacher: Teacher, draft: QuestionDraft, image: ProcessedImage | None = None
    ) -> QuestionCreation:
        return self._questions.create_question(teacher, draft, image)

    def list_teacher_questions(self, teacher: Teacher) -> list[Question]:
        return self._questions.list_teacher_questions(teacher)

    def candidate_questions(
        self,
        teacher: Teacher,
        course_id: str | None = None,
        tag_ids: Iterable[str] = (),
        term: str = "",
        exclude_ids: Iterable[str] = (),
    ) -> list[Question]:
        candidates = self._questions.candidate_questions(teacher, course_id, tag_ids)
        if term.strip() or exclude_ids:
            candidates = QuestionBank.search_questions(candidates, term, exclude_ids)
        return candidates

    # --- Session Delegation ---

    def create_session(self, teacher: Teacher, draft: SessionDraft) -> SessionCreation:
        SessionManager.validate_draft(draft)
        # The class must belong to the teacher creating the session.
        self._roster.get_class(teacher, draft.class_id)
        return self._sessions.create_session(teacher, draft)

    def open_session(self, role: Role, session_id: str) -> SessionDetail:
        """Load a session the caller may see: its owner, or a member of its class."""
        detail = self._sessions.get_session(session_id)
        if role.is_teacher:
            if detail.session.teacher_id != role.teacher.id:
                raise NotFoundOrDenied(messages.SESSION_NOT_FOUND)
        elif not role.email or not self._roster.is_member(detail.session.class_id, role.email):
            raise NotFoundOrDenied(messages.SESSION_NOT_FOUND)
        return detail

    def join_session(self, role: Role, session_id: str) -> SessionParticipant:
        detail = self.open_session(role, session_id)
        return self._sessions.join_session(detail.session.id, role.email)

    def delete_session(self, teacher: Teacher, session_id: str) -> None:
        self._sessions.delete_session(teacher, session_id)
        self._runs.discard_session(session_id)

    def remaining_time(self, detail: SessionDetail) -> str:
        return compute_remaining(detail.session.expires_at, self._sessions.now())

    def is_session_expired(self, detail: SessionDetail) -> bool:
        return is_expired(detail.session.expires_at, self._sessions.now())

    # --- Quiz Run Delegation ---

    def current_question(self, role: Role, session_id: str) -> tuple[QuizRun, Question | NoQuestionsAvailable]:
        detail = self.open_session(role, session_id)
        run = self._runs.get_or_start(detail, role.email)
        return run, run.current_or_next()

    def next_question(self, role: Role, session_id: str) -> tuple[QuizRun, Question | NoQuestionsAvailable]:
        detail = self.open_session(role, session_id)
        run = self._runs.get_or_start(detail, role.email)
        return run, run.next_question()

    def submit_answer(self, role: Role, session_id: str, answer_id: str | None) -> AnswerResult:
        self.open_session(role, session_id)
        run = self._runs.get(session_id, role.email)
        if run is None:
            raise ValidationError(messages.SESSION_NO_CURRENT_QUESTION)
        return run.submit_answer(answer_id)

    def active_run_count(self) -> int:
        return self._runs.active_count()

    # --- Dashboard Delegation ---

    def teacher_dashboard(self, teacher: Teacher) -> TeacherDashboardView:
        return self._teacher_dashboard.load(teacher)

    def student_dashboard(self, email: str) -> StudentDashboardView:
        return self._student_dashboard.load(email)

    @staticmethod
    def filtered_questions(view: TeacherDashboardView, question_filter: QuestionFilter) -> list[Question]:
        return view.filtered_questions(question_filter)

    # --- Lifecycle ---

    def close(self) -> None:
        """Release backend connections at shutdown."""
        self.backend.close()


def build_backend(settings: AppSettings) -> Backend:
    """Connect to the configured backend; the memory backend is seeded in dev mode."""
    if settings.backend == BACKEND_REST:
        logger.info("Using REST backend at %s", settings.backend_url)
        return create_rest_backend(settings.backend_url, settings.backend_api_key)
    backend = create_memory_backend()
    if settings.dev_mode:
        seed_catalog(backend.store)
        logger.info("Seeded in-memory backend with the development catalog")
    return backend


def build_manager(settings: AppSettings) -> ClassroomManager:
    return ClassroomManager(build_backend(settings), settings)
