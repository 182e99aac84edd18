from datetime import datetime, timezone
import logging

from classquiz.core.models import StudentRole, TeacherRole
from classquiz.core.services.role_resolver import (
    BackendTeacherLookup,
    FixtureTeacherLookup,
    RoleResolver,
    build_teacher_lookup,
)
from classquiz.utils.settings import AppSettings


def test_teacher_record_resolves_to_teacher_role(store, teacher):
    role = RoleResolver(BackendTeacherLookup(store)).resolve("teacher1@school.edu")

    assert isinstance(role, TeacherRole)
    assert role.is_teacher
    assert role.teacher.id == teacher.id
    assert role.email == "teacher1@school.edu"


def test_unknown_email_is_a_student(store, teacher):
    role = RoleResolver(BackendTeacherLookup(store)).resolve("ana@school.edu")

    assert role == StudentRole(email="ana@school.edu")
    assert not role.is_teacher
    assert role.teacher is None
    assert not role.lookup_failed


def test_lookup_failure_fails_open_to_student_and_is_visible(store, failures, teacher, caplog):
    failures.fail("select", "teachers", message="connection reset")

    with caplog.at_level(logging.ERROR):
        role = RoleResolver(BackendTeacherLookup(store)).resolve("teacher1@school.edu")

    assert isinstance(role, StudentRole)
    assert role.lookup_failed
    assert any("connection reset" in record.getMessage() for record in caplog.records)


def test_missing_email_is_a_student_without_lookup(store, failures):
    failures.fail("select", "teachers")

    role = RoleResolver(BackendTeacherLookup(store)).resolve("")

    assert role == StudentRole(email="")


def test_fixture_lookup_synthesizes_teachers():
    fixed = datetime(2026, 1, 5, tzinfo=timezone.utc)
    lookup = FixtureTeacherLookup(["teacher1@school.edu"], clock=lambda: fixed)

    teacher = lookup.find_teacher("teacher1@school.edu")

    assert teacher.id == "fake-teacher-teacher1@school.edu"
    assert teacher.created_at == fixed
    assert lookup.find_teacher("ana@school.edu") is None


def test_fixture_lookup_falls_back_to_backend(store, other_teacher):
    lookup = FixtureTeacherLookup(["teacher1@school.edu"], fallback=BackendTeacherLookup(store))

    assert lookup.find_teacher("teacher2@school.edu").id == other_teacher.id


def test_strategy_follows_dev_mode(store):
    assert isinstance(build_teacher_lookup(AppSettings(dev_mode=True), store), FixtureTeacherLookup)
    assert isinstance(build_teacher_lookup(AppSettings(dev_mode=False), store), BackendTeacherLookup)
