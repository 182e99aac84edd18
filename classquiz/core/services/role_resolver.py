"""Decides whether an authenticated email belongs to a teacher."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
import logging
from typing import Protocol

from classquiz.core.backend.base import DataStore, StoreError
from classquiz.core.errors import BackendError
from classquiz.core.models import Role, StudentRole, Teacher, TeacherRole, utc_now
from classquiz.utils.settings import AppSettings

logger = logging.getLogger(__name__)


class TeacherLookup(Protocol):
    def find_teacher(self, email: str) -> Teacher | None:
        """Return the teacher record for ``email``; raise ``BackendError`` if the lookup failed."""
        ...


class BackendTeacherLookup:
    """Exact email match against the ``teachers`` table."""

    def __init__(self, store: DataStore) -> None:
        self._store = store

    def find_teacher(self, email: str) -> Teacher | None:
        try:
            rows = self._store.select("teachers", eq={"email": email}, limit=1)
        except StoreError as exc:
            raise BackendError(exc.message, code=exc.code) from exc
        return Teacher.from_row(rows[0]) if rows else None


class FixtureTeacherLookup:
    """Synthesizes teacher records for a fixed allow-list of emails.

    Emails outside the list are passed to ``fallback`` when one is given.
    """

    def __init__(
        self,
        emails: Iterable[str],
        fallback: TeacherLookup | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._emails = frozenset(email.lower() for email in emails)
        self._fallback = fallback
        self._clock = clock

    def find_teacher(self, email: str) -> Teacher | None:
        if email.lower() in self._emails:
            return Teacher(id=f"fake-teacher-{email}", email=email, created_at=self._clock())
        if self._fallback is not None:
            return self._fallback.find_teacher(email)
        return None


def build_teacher_lookup(settings: AppSettings, store: DataStore) -> TeacherLookup:
    """Pick the lookup strategy for the configured environment."""
    backend_lookup = BackendTeacherLookup(store)
    if settings.dev_mode:
        return FixtureTeacherLookup(settings.simulated_teacher_emails, fallback=backend_lookup)
    return backend_lookup


class RoleResolver:
    """Maps an identity email to ``TeacherRole`` or ``StudentRole``."""

    def __init__(self, lookup: TeacherLookup) -> None:
        self._lookup = lookup

    def resolve(self, email: str | None) -> Role:
        if not email:
            return StudentRole(email="")
        try:
            teacher = self._lookup.find_teacher(email)
        except BackendError as exc:
            # Fails open to the lower-privilege role; callers can see it via lookup_failed.
            logger.error("Teacher lookup for %s failed, treating as student: %s", email, exc.message)
            return StudentRole(email=email, lookup_failed=True)
        if teacher is None:
            logger.debug("No teacher record for %s", email)
            return StudentRole(email=email)
        return TeacherRole(teacher=teacher)
