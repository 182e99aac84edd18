"""Domain models for the classroom quiz service.

Rows arrive from the backend as plain dictionaries; every model offers a
``from_row`` constructor so services never index raw rows twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import re
from typing import Any, Union

# Postgres trims trailing zeros from fractional seconds; fromisoformat before 3.11 wants 3 or 6 digits.
_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 value from the backend into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION_PATTERN.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Teacher:
    """A privileged user allowed to author questions and run sessions."""

    id: str
    email: str
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Teacher":
        return cls(id=row["id"], email=row["email"], created_at=parse_timestamp(row.get("created_at")))


@dataclass(slots=True)
class SchoolClass:
    """A group of students owned by exactly one teacher."""

    id: str
    name: str
    teacher_id: str
    description: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SchoolClass":
        return cls(
            id=row["id"],
            name=row["name"],
            teacher_id=row["teacher_id"],
            description=row.get("description"),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass(slots=True)
class ClassMember:
    """A student's enrollment in a class, keyed by email."""

    id: str
    class_id: str
    user_email: str
    joined_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ClassMember":
        return cls(
            id=row["id"],
            class_id=row["class_id"],
            user_email=row["user_email"],
            joined_at=parse_timestamp(row.get("joined_at")),
        )


@dataclass(slots=True)
class Course:
    id: str
    name: str
    description: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Course":
        return cls(id=row["id"], name=row["name"], description=row.get("description"))


@dataclass(slots=True)
class Tag:
    id: str
    name: str
    color: str = "#6366f1"
    description: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Tag":
        return cls(
            id=row["id"],
            name=row["name"],
            color=row.get("color") or "#6366f1",
            description=row.get("description"),
        )


@dataclass(slots=True)
class Answer:
    """One option of a multiple-choice question."""

    id: str
    question_id: str
    content: str
    is_correct: bool
    order_index: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Answer":
        return cls(
            id=row["id"],
            question_id=row["question_id"],
            content=row["content"],
            is_correct=bool(row.get("is_correct")),
            order_index=int(row.get("order_index") or 0),
        )


@dataclass(slots=True)
class Question:
    """Multiple-choice question with between two and eight answers."""

    id: str
    title: str
    content: str
    course_id: str
    teacher_id: str
    image_url: str | None = None
    image_filename: str | None = None
    created_at: datetime | None = None
    answers: list[Answer] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    course: Course | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Question":
        return cls(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            course_id=row["course_id"],
            teacher_id=row["teacher_id"],
            image_url=row.get("image_url"),
            image_filename=row.get("image_filename"),
            created_at=parse_timestamp(row.get("created_at")),
        )

    def tag_ids(self) -> set[str]:
        return {tag.id for tag in self.tags}


@dataclass(slots=True)
class QuizSession:
    """A timed quiz session bound to a class and an eligibility scope."""

    id: str
    name: str
    teacher_id: str
    class_id: str
    description: str | None = None
    course_id: str | None = None
    expires_at: datetime | None = None
    is_active: bool = True
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "QuizSession":
        return cls(
            id=row["id"],
            name=row["name"],
            teacher_id=row["teacher_id"],
            class_id=row["class_id"],
            description=row.get("description"),
            course_id=row.get("course_id"),
            expires_at=parse_timestamp(row.get("expires_at")),
            is_active=bool(row.get("is_active", True)),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass(slots=True)
class SessionParticipant:
    """Represents a student who joined a session."""

    id: str
    session_id: str
    user_email: str
    joined_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SessionParticipant":
        return cls(
            id=row["id"],
            session_id=row["session_id"],
            user_email=row["user_email"],
            joined_at=parse_timestamp(row.get("joined_at")),
        )


@dataclass(slots=True, frozen=True)
class NoQuestionsAvailable:
    """The session's eligibility scope currently matches no questions."""

    session_id: str


# --- Identity ---


@dataclass(slots=True)
class AuthUser:
    id: str
    email: str


@dataclass(slots=True)
class AuthSession:
    """Access token issued by the identity provider for one user."""

    access_token: str
    user: AuthUser


@dataclass(slots=True, frozen=True)
class TeacherRole:
    teacher: Teacher

    @property
    def is_teacher(self) -> bool:
        return True

    @property
    def email(self) -> str:
        return self.teacher.email


@dataclass(slots=True, frozen=True)
class StudentRole:
    """Non-teacher role. ``lookup_failed`` marks a fail-open resolution."""

    email: str
    lookup_failed: bool = False

    @property
    def is_teacher(self) -> bool:
        return False

    @property
    def teacher(self) -> None:
        return None


Role = Union[TeacherRole, StudentRole]


# --- Images ---


@dataclass(slots=True)
class ProcessedImage:
    """A normalized image ready for upload, with its size report."""

    filename: str
    content_type: str
    data: bytes = field(repr=False)
    width: int
    height: int
    preview_data_uri: str = field(repr=False)
    original_size: int
    processed_size: int


@dataclass(slots=True, frozen=True)
class ImageValidation:
    valid: bool
    error: str | None = None
