import pytest

from classquiz.constants import messages
from classquiz.core.errors import BackendError, NotFoundOrDenied, ValidationError


def test_create_class_normalizes_and_enrolls(roster, teacher, store):
    creation = roster.create_class(teacher, "  Algebra I ", [" Ana@School.edu ", "ben@school.edu", ""], "Period 2")

    assert creation.school_class.name == "Algebra I"
    assert creation.school_class.description == "Period 2"
    assert sorted(m.user_email for m in creation.members) == ["ana@school.edu", "ben@school.edu"]
    assert creation.warnings == []
    assert len(store.select("class_members", eq={"class_id": creation.school_class.id})) == 2


def test_create_class_validates_before_writing(roster, teacher, store):
    with pytest.raises(ValidationError) as blank_name:
        roster.create_class(teacher, "  ", ["ana@school.edu"])
    assert blank_name.value.messages == [messages.CLASS_NAME_REQUIRED]

    with pytest.raises(ValidationError) as no_emails:
        roster.create_class(teacher, "Algebra I", ["", " "])
    assert no_emails.value.messages == [messages.CLASS_EMAILS_REQUIRED]

    with pytest.raises(ValidationError) as bad_email:
        roster.create_class(teacher, "Algebra I", ["ana@school.edu", "nope", "ana@school.edu"])
    assert bad_email.value.messages == [
        'Email 2: "nope" is not a valid email address',
        "Duplicate emails found: ana@school.edu",
    ]

    assert store.select("classes") == []


def test_member_insert_failure_keeps_class_and_warns(roster, teacher, store, failures):
    failures.fail("insert", "class_members", message="permission denied")

    creation = roster.create_class(teacher, "Algebra I", ["ana@school.edu"])

    assert creation.members == []
    assert creation.warnings == ["Class created but failed to add some members: permission denied"]
    assert creation.failures[0].step == "class_members"
    assert len(store.select("classes")) == 1


def test_class_insert_failure_is_a_backend_error(roster, teacher, store, failures):
    failures.fail("insert", "classes")

    with pytest.raises(BackendError):
        roster.create_class(teacher, "Algebra I", ["ana@school.edu"])
    assert store.select("class_members") == []


def test_get_class_is_owner_scoped(roster, teacher, other_teacher, algebra_class):
    detail = roster.get_class(teacher, algebra_class.id)
    assert [m.user_email for m in detail.members] == ["ana@school.edu", "ben@school.edu"]

    with pytest.raises(NotFoundOrDenied, match=messages.CLASS_NOT_FOUND):
        roster.get_class(other_teacher, algebra_class.id)
    with pytest.raises(NotFoundOrDenied):
        roster.get_class(teacher, "missing")


def test_add_members_checks_existing_enrollment(roster, teacher, algebra_class):
    with pytest.raises(ValidationError) as exc_info:
        roster.add_members(teacher, algebra_class.id, ["ANA@school.edu", "cleo@school.edu"])
    assert exc_info.value.messages == ["These emails are already in the class: ana@school.edu"]

    added = roster.add_members(teacher, algebra_class.id, ["cleo@school.edu"])
    assert [m.user_email for m in added] == ["cleo@school.edu"]
    assert roster.is_member(algebra_class.id, "cleo@school.edu")


def test_update_remove_and_delete(roster, teacher, algebra_class, store):
    updated = roster.update_class(teacher, algebra_class.id, "Algebra II", "  ")
    assert updated.name == "Algebra II"
    assert updated.description is None

    member = roster.get_class(teacher, algebra_class.id).members[0]
    roster.remove_member(teacher, algebra_class.id, member.id)
    assert not roster.is_member(algebra_class.id, member.user_email)

    roster.delete_class(teacher, algebra_class.id)
    assert store.select("classes") == []
    assert store.select("class_members") == []


def test_list_classes_sorted_by_name(roster, teacher, other_teacher):
    roster.create_class(teacher, "Geometry", ["a@school.edu"])
    roster.create_class(teacher, "Algebra", ["b@school.edu"])
    roster.create_class(other_teacher, "Biology", ["c@school.edu"])

    assert [c.name for c in roster.list_classes(teacher)] == ["Algebra", "Geometry"]
