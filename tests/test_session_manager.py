from datetime import datetime, timedelta, timezone

import pytest

from classquiz.constants import messages
from classquiz.core.errors import NotFoundOrDenied, ValidationError
from classquiz.core.models import NoQuestionsAvailable
from classquiz.core.services.session_manager import SessionDraft, compute_remaining, is_expired

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_validation_happens_before_any_backend_call(session_manager, teacher, algebra_class, failures):
    failures.fail("insert", "sessions")

    with pytest.raises(ValidationError) as missing_name:
        session_manager.create_session(teacher, SessionDraft(name=" ", class_id=algebra_class.id, course_id="c"))
    assert missing_name.value.messages == [messages.SESSION_NAME_AND_CLASS_REQUIRED]

    with pytest.raises(ValidationError) as missing_scope:
        session_manager.create_session(teacher, SessionDraft(name="Quiz", class_id=algebra_class.id))
    assert missing_scope.value.messages == [messages.SESSION_SCOPE_REQUIRED]


def test_create_session_links_tags_and_ordered_questions(
    session_manager, teacher, algebra_class, tags, make_question, store
):
    first = make_question("Halves")
    second = make_question("Thirds")

    creation = session_manager.create_session(
        teacher,
        SessionDraft(
            name="Fractions drill",
            class_id=algebra_class.id,
            tag_ids=[tags["Fractions"]],
            question_ids=[second.id, first.id, second.id],
            expires_at=NOW + timedelta(hours=1),
        ),
    )
    session = creation.session

    assert creation.failures == []
    assert session.is_active
    assert session.expires_at == NOW + timedelta(hours=1)
    links = store.select("session_questions", eq={"session_id": session.id}, order_by="order_index")
    assert [(link["question_id"], link["order_index"]) for link in links] == [(second.id, 0), (first.id, 1)]
    assert len(store.select("session_tags", eq={"session_id": session.id})) == 1


def test_link_failure_keeps_the_session(session_manager, teacher, algebra_class, tags, failures, store):
    failures.fail("insert", "session_tags", message="foreign key violation")

    creation = session_manager.create_session(
        teacher, SessionDraft(name="Quiz", class_id=algebra_class.id, tag_ids=[tags["Fractions"]])
    )

    assert [(f.step, f.message, f.surfaced) for f in creation.failures] == [
        ("session_tags", "foreign key violation", False)
    ]
    assert len(store.select("sessions")) == 1


def test_get_session_detail(session_manager, teacher, algebra_class, courses, tags, make_question):
    question = make_question("Halves")
    session = session_manager.create_session(
        teacher,
        SessionDraft(
            name="Quiz",
            class_id=algebra_class.id,
            course_id=courses["Mathematics"],
            tag_ids=[tags["Fractions"]],
            question_ids=[question.id],
        ),
    ).session
    session_manager.join_session(session.id, "ana@school.edu")

    detail = session_manager.get_session(session.id)

    assert detail.teacher_email == "teacher1@school.edu"
    assert detail.class_name == "Algebra I"
    assert detail.course_name == "Mathematics"
    assert [t.name for t in detail.tags] == ["Fractions"]
    assert [p.user_email for p in detail.participants] == ["ana@school.edu"]
    assert detail.question_ids == [question.id]
    assert detail.has_explicit_questions


def test_missing_session_is_not_found(session_manager):
    with pytest.raises(NotFoundOrDenied, match=messages.SESSION_NOT_FOUND):
        session_manager.get_session("missing")


def _session(session_manager, teacher, algebra_class, **scope):
    draft = SessionDraft(name="Quiz", class_id=algebra_class.id, **scope)
    return session_manager.get_session(session_manager.create_session(teacher, draft).session.id)


def test_explicit_single_question_is_always_served(session_manager, teacher, algebra_class, make_question):
    make_question("Other")
    pinned = make_question("Pinned")
    detail = _session(session_manager, teacher, algebra_class, question_ids=[pinned.id])

    for _ in range(10):
        assert session_manager.fetch_eligible_question(detail).id == pinned.id


def test_tag_scope_serves_only_tagged_questions(session_manager, teacher, algebra_class, tags, make_question):
    tagged = {make_question(f"Fraction {i}", tag_ids=[tags["Fractions"]]).id for i in range(3)}
    make_question("Untagged")
    make_question("Lines", tag_ids=[tags["Equations"]])
    detail = _session(session_manager, teacher, algebra_class, tag_ids=[tags["Fractions"]])

    served = {session_manager.fetch_eligible_question(detail).id for _ in range(30)}

    assert served <= tagged
    assert len(served) > 1


def test_course_and_tags_are_intersected(session_manager, teacher, algebra_class, courses, tags, make_question):
    wanted = make_question("Halves", tag_ids=[tags["Fractions"]])
    make_question("Velocity", course="Physics", tag_ids=[tags["Fractions"]])
    make_question("Lines", tag_ids=[tags["Equations"]])
    detail = _session(
        session_manager, teacher, algebra_class, course_id=courses["Mathematics"], tag_ids=[tags["Fractions"]]
    )

    assert [q.id for q in session_manager.eligible_questions(detail)] == [wanted.id]


def test_course_scope(session_manager, teacher, algebra_class, courses, make_question):
    make_question("Halves")
    physics = make_question("Velocity", course="Physics")
    detail = _session(session_manager, teacher, algebra_class, course_id=courses["Physics"])

    assert session_manager.fetch_eligible_question(detail).id == physics.id


def test_tag_without_questions_yields_no_questions(session_manager, teacher, algebra_class, tags, make_question):
    make_question("Halves", tag_ids=[tags["Fractions"]])
    detail = _session(session_manager, teacher, algebra_class, tag_ids=[tags["Recursion"]])

    drawn = session_manager.fetch_eligible_question(detail)

    assert drawn == NoQuestionsAvailable(session_id=detail.session.id)


def test_answers_are_served_in_order(session_manager, teacher, algebra_class, make_question):
    question = make_question("Order", answers=("A", "B", "C", "D"), correct_index=2)
    detail = _session(session_manager, teacher, algebra_class, question_ids=[question.id])

    served = session_manager.fetch_eligible_question(detail)

    assert [a.content for a in served.answers] == ["A", "B", "C", "D"]
    assert [a.is_correct for a in served.answers] == [False, False, True, False]


def test_exclusions_can_exhaust_the_pool(session_manager, teacher, algebra_class, make_question):
    question = make_question("Only")
    detail = _session(session_manager, teacher, algebra_class, question_ids=[question.id])

    assert isinstance(session_manager.fetch_eligible_question(detail, exclude_ids=[question.id]), NoQuestionsAvailable)


def test_compute_remaining():
    assert compute_remaining(NOW + timedelta(minutes=90), NOW) == "1h 30m remaining"
    assert compute_remaining(NOW + timedelta(minutes=45, seconds=59), NOW) == "45m remaining"
    assert compute_remaining(NOW + timedelta(seconds=30), NOW) == "0m remaining"
    assert compute_remaining(NOW - timedelta(minutes=1), NOW) == "Expired"
    assert compute_remaining(NOW, NOW) == "Expired"
    assert compute_remaining(None, NOW) == "no limit"


def test_is_expired():
    assert is_expired(NOW, NOW)
    assert is_expired(NOW - timedelta(seconds=1), NOW)
    assert not is_expired(NOW + timedelta(seconds=1), NOW)
    assert not is_expired(None, NOW)


def test_duplicate_joins_are_recorded(session_manager, teacher, algebra_class, courses):
    detail = _session(session_manager, teacher, algebra_class, course_id=courses["Mathematics"])

    assert not session_manager.has_joined(detail.session.id, "ana@school.edu")
    session_manager.join_session(detail.session.id, "ana@school.edu")
    session_manager.join_session(detail.session.id, "ana@school.edu")

    assert session_manager.has_joined(detail.session.id, "ana@school.edu")
    assert len(session_manager.list_participants(detail.session.id)) == 2


def test_only_the_owner_deletes(session_manager, teacher, other_teacher, algebra_class, courses, store):
    detail = _session(session_manager, teacher, algebra_class, course_id=courses["Mathematics"])
    session_manager.join_session(detail.session.id, "ana@school.edu")

    with pytest.raises(NotFoundOrDenied):
        session_manager.delete_session(other_teacher, detail.session.id)

    session_manager.delete_session(teacher, detail.session.id)
    assert store.select("sessions") == []
    assert store.select("session_participants") == []
