"""Read-side views composed for the teacher and student dashboards.

Each dashboard owns its own ``QuestionFilter``; filtering happens in memory
on the fetched list and never modifies it.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
import logging

from classquiz.constants import messages
from classquiz.core.backend.base import DataStore, StoreError
from classquiz.core.errors import BackendError
from classquiz.core.models import Course, Question, QuizSession, SchoolClass, Tag, Teacher, utc_now
from classquiz.core.services.question_bank import QuestionBank
from classquiz.core.services.session_manager import compute_remaining, is_expired

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class QuestionFilter:
    """Course and tag selection of one dashboard."""

    course_id: str | None = None
    tag_ids: frozenset[str] = frozenset()

    def with_course(self, course_id: str | None) -> "QuestionFilter":
        return replace(self, course_id=course_id or None)

    def toggle_tag(self, tag_id: str) -> "QuestionFilter":
        if tag_id in self.tag_ids:
            return replace(self, tag_ids=self.tag_ids - {tag_id})
        return replace(self, tag_ids=self.tag_ids | {tag_id})

    def cleared(self) -> "QuestionFilter":
        return QuestionFilter()

    @property
    def is_active(self) -> bool:
        return bool(self.course_id or self.tag_ids)


def filter_questions(questions: Sequence[Question], question_filter: QuestionFilter) -> list[Question]:
    """Course match AND carrying any of the selected tags."""
    filtered = list(questions)
    if question_filter.course_id:
        filtered = [q for q in filtered if q.course_id == question_filter.course_id]
    if question_filter.tag_ids:
        filtered = [q for q in filtered if q.tag_ids() & question_filter.tag_ids]
    return filtered


@dataclass(slots=True)
class SessionSummary:
    id: str
    name: str
    description: str | None
    created_at: datetime | None
    expires_at: datetime | None
    is_active: bool
    class_name: str | None
    course_name: str | None
    participant_count: int
    is_expired: bool
    time_remaining: str


@dataclass(slots=True)
class ClassSummary:
    id: str
    name: str
    description: str | None
    created_at: datetime | None
    member_count: int


@dataclass(slots=True)
class TeacherDashboardView:
    sessions: list[SessionSummary] = field(default_factory=list)
    classes: list[ClassSummary] = field(default_factory=list)
    courses: list[Course] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    questions: list[Question] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def filtered_questions(self, question_filter: QuestionFilter) -> list[Question]:
        return filter_questions(self.questions, question_filter)


@dataclass(slots=True)
class StudentClassView:
    id: str
    name: str
    description: str | None
    created_at: datetime | None
    teacher_email: str


@dataclass(slots=True)
class StudentSessionView:
    id: str
    name: str
    description: str | None
    created_at: datetime | None
    expires_at: datetime | None
    teacher_email: str
    class_name: str | None
    course_name: str | None
    tags: list[Tag]
    participant_count: int
    has_joined: bool
    is_expired: bool
    time_remaining: str


@dataclass(slots=True)
class StudentDashboardView:
    classes: list[StudentClassView] = field(default_factory=list)
    sessions: list[StudentSessionView] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class _DashboardBase:
    def __init__(self, store: DataStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    def _names(self, table: str, ids: Iterable[str | None], column: str = "name") -> dict[str, str]:
        wanted = sorted({row_id for row_id in ids if row_id})
        if not wanted:
            return {}
        rows = self._store.select(table, in_={"id": wanted})
        return {row["id"]: row.get(column) for row in rows}

    def _counts(self, table: str, column: str, ids: Iterable[str]) -> Counter[str]:
        wanted = list(ids)
        if not wanted:
            return Counter()
        rows = self._store.select(table, in_={column: wanted})
        return Counter(row[column] for row in rows)


class TeacherDashboard(_DashboardBase):
    """Sessions, classes, catalog and questions of one teacher."""

    def __init__(
        self,
        store: DataStore,
        question_bank: QuestionBank,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(store, clock)
        self._question_bank = question_bank

    def load(self, teacher: Teacher) -> TeacherDashboardView:
        view = TeacherDashboardView()
        now = self._clock()

        try:
            view.sessions = self._load_sessions(teacher, now)
        except StoreError as exc:
            logger.error("Loading sessions for %s failed: %s", teacher.email, exc.message)
            view.errors.append(messages.DASHBOARD_SESSIONS_FAILED)

        try:
            view.classes = self._load_classes(teacher)
        except StoreError as exc:
            logger.error("Loading classes for %s failed: %s", teacher.email, exc.message)
            view.errors.append(messages.DASHBOARD_CLASSES_FAILED)

        try:
            view.courses = self._question_bank.list_courses()
            view.tags = self._question_bank.list_tags()
        except BackendError:
            view.errors.append(messages.DASHBOARD_CATALOG_FAILED)

        try:
            view.questions = self._question_bank.list_teacher_questions(teacher)
        except BackendError:
            view.errors.append(messages.DASHBOARD_QUESTIONS_FAILED)
        return view

    def _load_sessions(self, teacher: Teacher, now: datetime) -> list[SessionSummary]:
        rows = self._store.select("sessions", eq={"teacher_id": teacher.id}, order_by="created_at", descending=True)
        sessions = [QuizSession.from_row(row) for row in rows]
        class_names = self._names("classes", (s.class_id for s in sessions))
        course_names = self._names("courses", (s.course_id for s in sessions))
        participants = self._counts("session_participants", "session_id", (s.id for s in sessions))
        return [
            SessionSummary(
                id=session.id,
                name=session.name,
                description=session.description,
                created_at=session.created_at,
                expires_at=session.expires_at,
                is_active=session.is_active,
                class_name=class_names.get(session.class_id),
                course_name=course_names.get(session.course_id) if session.course_id else None,
                participant_count=participants[session.id],
                is_expired=is_expired(session.expires_at, now),
                time_remaining=compute_remaining(session.expires_at, now),
            )
            for session in sessions
        ]

    def _load_classes(self, teacher: Teacher) -> list[ClassSummary]:
        rows = self._store.select("classes", eq={"teacher_id": teacher.id}, order_by="created_at", descending=True)
        classes = [SchoolClass.from_row(row) for row in rows]
        members = self._counts("class_members", "class_id", (c.id for c in classes))
        return [
            ClassSummary(
                id=school_class.id,
                name=school_class.name,
                description=school_class.description,
                created_at=school_class.created_at,
                member_count=members[school_class.id],
            )
            for school_class in classes
        ]


class StudentDashboard(_DashboardBase):
    """Classes a student is enrolled in and the active sessions of those classes."""

    def load(self, email: str) -> StudentDashboardView:
        view = StudentDashboardView()
        try:
            classes = self._load_classes(email)
        except StoreError as exc:
            logger.error("Loading classes for %s failed: %s", email, exc.message)
            view.errors.append(messages.DASHBOARD_CLASSES_FAILED)
            return view
        view.classes = classes

        try:
            view.sessions = self._load_sessions(email, [c.id for c in classes])
        except StoreError as exc:
            logger.error("Loading sessions for %s failed: %s", email, exc.message)
            view.errors.append(messages.DASHBOARD_SESSIONS_FAILED)
        return view

    def _load_classes(self, email: str) -> list[StudentClassView]:
        memberships = self._store.select("class_members", eq={"user_email": email})
        class_ids = sorted({m["class_id"] for m in memberships})
        if not class_ids:
            return []
        classes = [SchoolClass.from_row(row) for row in self._store.select("classes", in_={"id": class_ids})]
        teacher_emails = self._names("teachers", (c.teacher_id for c in classes), column="email")
        views = [
            StudentClassView(
                id=school_class.id,
                name=school_class.name,
                description=school_class.description,
                created_at=school_class.created_at,
                teacher_email=teacher_emails.get(school_class.teacher_id) or "Unknown",
            )
            for school_class in classes
        ]
        return sorted(views, key=lambda view: view.name.lower())

    def _load_sessions(self, email: str, class_ids: list[str]) -> list[StudentSessionView]:
        if not class_ids:
            return []
        now = self._clock()
        rows = self._store.select(
            "sessions",
            eq={"is_active": True},
            in_={"class_id": class_ids},
            order_by="created_at",
            descending=True,
        )
        sessions = [QuizSession.from_row(row) for row in rows]
        session_ids = [s.id for s in sessions]
        teacher_emails = self._names("teachers", (s.teacher_id for s in sessions), column="email")
        class_names = self._names("classes", (s.class_id for s in sessions))
        course_names = self._names("courses", (s.course_id for s in sessions))
        participant_rows = self._store.select("session_participants", in_={"session_id": session_ids}) if sessions else []
        participant_counts = Counter(row["session_id"] for row in participant_rows)
        joined = {row["session_id"] for row in participant_rows if row["user_email"] == email}
        tags_by_session = self._session_tags(session_ids)

        return [
            StudentSessionView(
                id=session.id,
                name=session.name,
                description=session.description,
                created_at=session.created_at,
                expires_at=session.expires_at,
                teacher_email=teacher_emails.get(session.teacher_id) or "Unknown",
                class_name=class_names.get(session.class_id),
                course_name=course_names.get(session.course_id) if session.course_id else None,
                tags=tags_by_session.get(session.id, []),
                participant_count=participant_counts[session.id],
                has_joined=session.id in joined,
                is_expired=is_expired(session.expires_at, now),
                time_remaining=compute_remaining(session.expires_at, now),
            )
            for session in sessions
        ]

    def _session_tags(self, session_ids: list[str]) -> dict[str, list[Tag]]:
        if not session_ids:
            return {}
        links = self._store.select("session_tags", in_={"session_id": session_ids})
        tags = {}
        tag_ids = sorted({link["tag_id"] for link in links})
        if tag_ids:
            tags = {row["id"]: Tag.from_row(row) for row in self._store.select("tags", in_={"id": tag_ids})}
        result: dict[str, list[Tag]] = {}
        for link in links:
            tag = tags.get(link["tag_id"])
            if tag is not None:
                result.setdefault(link["session_id"], []).append(tag)
        return result
