"""Service for managing classes and their student enrollments."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
import logging

from classquiz.constants import messages
from classquiz.core.backend.base import DataStore
from classquiz.core.email_validation import normalize_email, validate_emails
from classquiz.core.errors import NotFoundOrDenied, PartialFailure, ValidationError
from classquiz.core.models import ClassMember, SchoolClass, Teacher
from classquiz.core.services.backend_calls import call_backend
from classquiz.core.services.write_saga import StepPolicy, WriteSaga

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ClassCreation:
    school_class: SchoolClass
    members: list[ClassMember]
    warnings: list[str] = field(default_factory=list)
    failures: list[PartialFailure] = field(default_factory=list)


@dataclass(slots=True)
class ClassDetail:
    school_class: SchoolClass
    members: list[ClassMember]


class ClassRoster:
    """Creates classes, edits their rosters and deletes them for the owning teacher."""

    def __init__(self, store: DataStore) -> None:
        self._store = store

    def list_classes(self, teacher: Teacher) -> list[SchoolClass]:
        rows = call_backend(
            lambda: self._store.select("classes", eq={"teacher_id": teacher.id}, order_by="name"), "list classes"
        )
        return [SchoolClass.from_row(row) for row in rows]

    def create_class(
        self,
        teacher: Teacher,
        name: str,
        emails: Sequence[str],
        description: str | None = None,
    ) -> ClassCreation:
        """Create a class and enroll its first students.

        The class row is written first; if enrolling the students fails the
        class still exists and the failure is returned as a warning.
        """
        cleaned_name = name.strip()
        if not cleaned_name:
            raise ValidationError(messages.CLASS_NAME_REQUIRED)
        candidates = self._normalize(emails)
        if not candidates:
            raise ValidationError(messages.CLASS_EMAILS_REQUIRED)
        errors = validate_emails(candidates)
        if errors:
            raise ValidationError(errors)

        saga = WriteSaga("create_class")
        row = saga.primary(
            lambda: self._store.insert(
                "classes",
                [{"name": cleaned_name, "description": _blank_to_none(description), "teacher_id": teacher.id}],
            )[0]
        )
        school_class = SchoolClass.from_row(row)

        inserted: list[ClassMember] = []

        def add_members() -> None:
            rows = self._store.insert(
                "class_members",
                [{"class_id": school_class.id, "user_email": email} for email in candidates],
            )
            inserted.extend(ClassMember.from_row(member) for member in rows)

        saga.attach("class_members", add_members, policy=StepPolicy.SURFACE, message=messages.CLASS_MEMBERS_PARTIAL)
        logger.info("Teacher %s created class %s with %d member(s)", teacher.email, school_class.id, len(inserted))
        return ClassCreation(school_class=school_class, members=inserted, warnings=saga.warnings, failures=saga.failures)

    def get_class(self, teacher: Teacher, class_id: str) -> ClassDetail:
        rows = call_backend(
            lambda: self._store.select("classes", eq={"id": class_id, "teacher_id": teacher.id}, limit=1), "load class"
        )
        if not rows:
            raise NotFoundOrDenied(messages.CLASS_NOT_FOUND)
        members = call_backend(
            lambda: self._store.select("class_members", eq={"class_id": class_id}, order_by="joined_at"),
            "load class members",
        )
        return ClassDetail(
            school_class=SchoolClass.from_row(rows[0]),
            members=[ClassMember.from_row(row) for row in members],
        )

    def is_member(self, class_id: str, email: str) -> bool:
        rows = call_backend(
            lambda: self._store.select("class_members", eq={"class_id": class_id, "user_email": email}, limit=1),
            "check class membership",
        )
        return bool(rows)

    def update_class(self, teacher: Teacher, class_id: str, name: str, description: str | None = None) -> SchoolClass:
        cleaned_name = name.strip()
        if not cleaned_name:
            raise ValidationError(messages.CLASS_NAME_REQUIRED)
        self.get_class(teacher, class_id)
        row = call_backend(
            lambda: self._store.update(
                "classes", class_id, {"name": cleaned_name, "description": _blank_to_none(description)}
            ),
            "update class",
        )
        return SchoolClass.from_row(row)

    def add_members(self, teacher: Teacher, class_id: str, emails: Sequence[str]) -> list[ClassMember]:
        candidates = self._normalize(emails)
        if not candidates:
            raise ValidationError(messages.CLASS_MEMBER_EMAILS_REQUIRED)
        detail = self.get_class(teacher, class_id)
        errors = validate_emails(candidates, existing_emails=[member.user_email for member in detail.members])
        if errors:
            raise ValidationError(errors)
        rows = call_backend(
            lambda: self._store.insert(
                "class_members", [{"class_id": class_id, "user_email": email} for email in candidates]
            ),
            "add class members",
        )
        return [ClassMember.from_row(row) for row in rows]

    def remove_member(self, teacher: Teacher, class_id: str, member_id: str) -> None:
        detail = self.get_class(teacher, class_id)
        if not any(member.id == member_id for member in detail.members):
            raise NotFoundOrDenied(messages.CLASS_NOT_FOUND)
        call_backend(lambda: self._store.delete("class_members", member_id), "remove class member")

    def delete_class(self, teacher: Teacher, class_id: str) -> None:
        """Delete a class; the backend removes its members and sessions with it."""
        self.get_class(teacher, class_id)
        call_backend(lambda: self._store.delete("classes", class_id), "delete class")
        logger.info("Teacher %s deleted class %s", teacher.email, class_id)

    @staticmethod
    def _normalize(emails: Sequence[str]) -> list[str]:
        return [normalize_email(email) for email in emails if email.strip()]


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None
