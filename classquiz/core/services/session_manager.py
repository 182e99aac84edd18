"""Session lifecycle: creation, joining, question eligibility and expiry.

A session is Active from creation until it is deleted; it is Expired when
``expires_at`` lies in the past at read time. Expiry is a business check made
before serving a question, not an access rule enforced by the backend.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
import logging
import random

from classquiz.constants import messages
from classquiz.constants.quiz_constants import EXPIRED_LABEL, NO_TIME_LIMIT_LABEL
from classquiz.core.backend.base import DataStore
from classquiz.core.errors import NotFoundOrDenied, PartialFailure, ValidationError
from classquiz.core.models import (
    NoQuestionsAvailable,
    Question,
    QuizSession,
    SessionParticipant,
    Tag,
    Teacher,
    utc_now,
)
from classquiz.core.services.backend_calls import call_backend
from classquiz.core.services.question_bank import QuestionBank
from classquiz.core.services.write_saga import WriteSaga

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionDraft:
    """Session as composed by a teacher, before validation."""

    name: str
    class_id: str
    description: str | None = None
    course_id: str | None = None
    tag_ids: list[str] = field(default_factory=list)
    question_ids: list[str] = field(default_factory=list)
    expires_at: datetime | None = None


@dataclass(slots=True)
class SessionCreation:
    session: QuizSession
    failures: list[PartialFailure] = field(default_factory=list)


@dataclass(slots=True)
class SessionDetail:
    """A session joined with everything needed to run and display it."""

    session: QuizSession
    teacher_email: str | None
    class_name: str | None
    course_name: str | None
    tags: list[Tag]
    participants: list[SessionParticipant]
    question_ids: list[str]

    @property
    def has_explicit_questions(self) -> bool:
        return bool(self.question_ids)


def is_expired(expires_at: datetime | None, now: datetime) -> bool:
    return expires_at is not None and expires_at <= now


def compute_remaining(expires_at: datetime | None, now: datetime) -> str:
    """Describe the time left before ``expires_at``, floored to the minute."""
    if expires_at is None:
        return NO_TIME_LIMIT_LABEL
    seconds = (expires_at - now).total_seconds()
    if seconds <= 0:
        return EXPIRED_LABEL
    total_minutes = int(seconds // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m remaining"
    return f"{minutes}m remaining"


class SessionManager:
    """Creates sessions, records joins and draws eligible questions."""

    def __init__(
        self,
        store: DataStore,
        question_bank: QuestionBank,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._question_bank = question_bank
        self._rng = rng or random.Random()
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # --- Create ---

    def create_session(self, teacher: Teacher, draft: SessionDraft) -> SessionCreation:
        """Persist a session and attach its tags and explicit questions.

        Tag and question links are written after the session row; if they
        fail the session is kept and the failure is only logged.
        """
        name, tag_ids, question_ids = self.validate_draft(draft)

        saga = WriteSaga("create_session")
        row = saga.primary(
            lambda: self._store.insert(
                "sessions",
                [
                    {
                        "name": name,
                        "description": (draft.description or "").strip() or None,
                        "teacher_id": teacher.id,
                        "class_id": draft.class_id,
                        "course_id": draft.course_id or None,
                        "expires_at": draft.expires_at.isoformat() if draft.expires_at else None,
                    }
                ],
            )[0]
        )
        session = QuizSession.from_row(row)
        if tag_ids:
            saga.attach(
                "session_tags",
                lambda: self._store.insert(
                    "session_tags", [{"session_id": session.id, "tag_id": tag_id} for tag_id in tag_ids]
                ),
            )
        if question_ids:
            saga.attach(
                "session_questions",
                lambda: self._store.insert(
                    "session_questions",
                    [
                        {"session_id": session.id, "question_id": question_id, "order_index": index}
                        for index, question_id in enumerate(question_ids)
                    ],
                ),
            )
        logger.info("Teacher %s created session %s (%s)", teacher.email, session.id, session.name)
        return SessionCreation(session=session, failures=saga.failures)

    @staticmethod
    def validate_draft(draft: SessionDraft) -> tuple[str, list[str], list[str]]:
        """Check a draft without touching the backend; returns the cleaned name, tag ids and question ids."""
        name = draft.name.strip()
        if not name or not draft.class_id:
            raise ValidationError(messages.SESSION_NAME_AND_CLASS_REQUIRED)
        tag_ids = list(dict.fromkeys(draft.tag_ids))
        question_ids = list(dict.fromkeys(draft.question_ids))
        if not draft.course_id and not tag_ids and not question_ids:
            raise ValidationError(messages.SESSION_SCOPE_REQUIRED)
        return name, tag_ids, question_ids

    # --- Read ---

    def get_session(self, session_id: str) -> SessionDetail:
        rows = call_backend(lambda: self._store.select("sessions", eq={"id": session_id}, limit=1), "load session")
        if not rows:
            raise NotFoundOrDenied(messages.SESSION_NOT_FOUND)
        session = QuizSession.from_row(rows[0])

        teacher_email = self._lookup_column("teachers", session.teacher_id, "email")
        class_name = self._lookup_column("classes", session.class_id, "name")
        course_name = self._lookup_column("courses", session.course_id, "name") if session.course_id else None

        tag_links = call_backend(
            lambda: self._store.select("session_tags", eq={"session_id": session_id}), "load session tags"
        )
        tags: list[Tag] = []
        if tag_links:
            tag_rows = call_backend(
                lambda: self._store.select("tags", in_={"id": [link["tag_id"] for link in tag_links]}, order_by="name"),
                "load tags",
            )
            tags = [Tag.from_row(row) for row in tag_rows]

        question_links = call_backend(
            lambda: self._store.select("session_questions", eq={"session_id": session_id}, order_by="order_index"),
            "load session questions",
        )
        return SessionDetail(
            session=session,
            teacher_email=teacher_email,
            class_name=class_name,
            course_name=course_name,
            tags=tags,
            participants=self.list_participants(session_id),
            question_ids=[link["question_id"] for link in question_links],
        )

    def list_participants(self, session_id: str) -> list[SessionParticipant]:
        rows = call_backend(
            lambda: self._store.select("session_participants", eq={"session_id": session_id}, order_by="joined_at"),
            "load participants",
        )
        return [SessionParticipant.from_row(row) for row in rows]

    def has_joined(self, session_id: str, email: str) -> bool:
        rows = call_backend(
            lambda: self._store.select(
                "session_participants", eq={"session_id": session_id, "user_email": email}, limit=1
            ),
            "check participation",
        )
        return bool(rows)

    def _lookup_column(self, table: str, row_id: str, column: str) -> str | None:
        rows = call_backend(lambda: self._store.select(table, eq={"id": row_id}, limit=1), f"load {table}")
        return rows[0].get(column) if rows else None

    # --- Join ---

    def join_session(self, session_id: str, email: str) -> SessionParticipant:
        """Record a participant. Repeated joins are not prevented here."""
        row = call_backend(
            lambda: self._store.insert("session_participants", [{"session_id": session_id, "user_email": email}])[0],
            "join session",
        )
        logger.info("%s joined session %s", email, session_id)
        return SessionParticipant.from_row(row)

    # --- Serve ---

    def eligible_questions(self, detail: SessionDetail) -> list[Question]:
        """Questions matching the session scope.

        An explicit question list wins outright. Otherwise the course filter
        and the tag filter (any session tag) are intersected.
        """
        if detail.has_explicit_questions:
            return self._question_bank.questions_with_answers(question_ids=detail.question_ids)

        course_id = detail.session.course_id
        question_ids: list[str] | None = None
        if detail.tags:
            links = call_backend(
                lambda: self._store.select("question_tags", in_={"tag_id": [tag.id for tag in detail.tags]}),
                "load tagged questions",
            )
            question_ids = sorted({link["question_id"] for link in links})
            if not question_ids:
                return []
        if course_id is None and question_ids is None:
            return []
        return self._question_bank.questions_with_answers(question_ids=question_ids, course_id=course_id)

    def fetch_eligible_question(
        self,
        detail: SessionDetail,
        exclude_ids: Iterable[str] = (),
    ) -> Question | NoQuestionsAvailable:
        """Draw one eligible question uniformly at random.

        ``exclude_ids`` removes questions from the draw; when that leaves
        nothing, ``NoQuestionsAvailable`` is returned.
        """
        excluded = set(exclude_ids)
        candidates = [q for q in self.eligible_questions(detail) if q.id not in excluded]
        if not candidates:
            return NoQuestionsAvailable(session_id=detail.session.id)
        candidates.sort(key=lambda q: q.id)
        return self._rng.choice(candidates)

    # --- Delete ---

    def delete_session(self, teacher: Teacher, session_id: str) -> None:
        rows = call_backend(
            lambda: self._store.select("sessions", eq={"id": session_id, "teacher_id": teacher.id}, limit=1),
            "load session",
        )
        if not rows:
            raise NotFoundOrDenied(messages.SESSION_NOT_FOUND)
        call_backend(lambda: self._store.delete("sessions", session_id), "delete session")
        logger.info("Teacher %s deleted session %s", teacher.email, session_id)
