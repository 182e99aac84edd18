from datetime import timedelta

import pytest

from classquiz.constants import messages
from classquiz.core.errors import SessionExpired, ValidationError
from classquiz.core.models import NoQuestionsAvailable
from classquiz.core.services.quiz_run import QuizRun
from classquiz.core.services.quiz_runs import QuizRunRegistry
from classquiz.core.services.session_manager import SessionDraft


def _detail(session_manager, teacher, algebra_class, **scope):
    draft = SessionDraft(name="Quiz", class_id=algebra_class.id, **scope)
    return session_manager.get_session(session_manager.create_session(teacher, draft).session.id)


@pytest.fixture
def single_question(session_manager, teacher, algebra_class, make_question):
    question = make_question("Halves", answers=("1/3", "1/2", "2/3"), correct_index=1)
    detail = _detail(session_manager, teacher, algebra_class, question_ids=[question.id])
    return question, detail


def test_correct_answer_is_the_only_one_marked_correct(session_manager, single_question):
    question, detail = single_question
    run = QuizRun(session_manager, detail, "ana@school.edu")
    served = run.next_question()
    right = next(a for a in served.answers if a.is_correct)

    result = run.submit_answer(right.id)

    assert result.is_correct
    assert run.is_revealed
    assert [r.state for r in result.reveals] == ["neutral", "correct", "neutral"]


def test_wrong_answer_reveals_choice_and_correct_option(session_manager, single_question):
    _, detail = single_question
    run = QuizRun(session_manager, detail, "ana@school.edu")
    served = run.next_question()
    wrong = served.answers[0]

    result = run.submit_answer(wrong.id)

    assert not result.is_correct
    assert result.chosen_answer_id == wrong.id
    assert [r.state for r in result.reveals] == ["incorrect", "correct", "neutral"]


def test_second_submission_returns_the_first_result(session_manager, single_question):
    _, detail = single_question
    run = QuizRun(session_manager, detail, "ana@school.edu")
    served = run.next_question()

    first = run.submit_answer(served.answers[0].id)
    second = run.submit_answer(served.answers[1].id)

    assert second is first
    assert not second.is_correct


def test_submission_errors(session_manager, single_question):
    _, detail = single_question
    run = QuizRun(session_manager, detail, "ana@school.edu")

    with pytest.raises(ValidationError, match=messages.SESSION_NO_CURRENT_QUESTION):
        run.submit_answer("anything")

    run.next_question()
    with pytest.raises(ValidationError, match=messages.SESSION_ANSWER_REQUIRED):
        run.submit_answer(None)
    with pytest.raises(ValidationError, match=messages.SESSION_UNKNOWN_ANSWER):
        run.submit_answer("not-an-answer")


def test_next_question_clears_the_reveal(session_manager, single_question):
    _, detail = single_question
    run = QuizRun(session_manager, detail, "ana@school.edu")
    served = run.current_or_next()
    run.submit_answer(served.answers[0].id)

    again = run.next_question()

    assert again.id == served.id
    assert run.result is None
    assert run.current_or_next() is again


def test_avoid_repeats_cycles_through_every_question(session_manager, teacher, algebra_class, tags, make_question):
    ids = {make_question(f"Q{i}", tag_ids=[tags["Fractions"]]).id for i in range(3)}
    detail = _detail(session_manager, teacher, algebra_class, tag_ids=[tags["Fractions"]])
    run = QuizRun(session_manager, detail, "ana@school.edu", avoid_repeats=True)

    first_round = [run.next_question().id for _ in range(3)]
    fourth = run.next_question()

    assert set(first_round) == ids
    assert fourth.id in ids


def test_expired_session_refuses_to_serve(session_manager, teacher, algebra_class, make_question, clock):
    question = make_question("Halves")
    detail = _detail(
        session_manager,
        teacher,
        algebra_class,
        question_ids=[question.id],
        expires_at=clock.now + timedelta(minutes=5),
    )
    run = QuizRun(session_manager, detail, "ana@school.edu")
    assert run.next_question().id == question.id

    clock.advance(minutes=5)

    assert run.is_expired()
    with pytest.raises(SessionExpired):
        run.next_question()


def test_empty_scope_reports_no_questions(session_manager, teacher, algebra_class, tags):
    detail = _detail(session_manager, teacher, algebra_class, tag_ids=[tags["Geometry"]])
    run = QuizRun(session_manager, detail, "ana@school.edu")

    assert isinstance(run.next_question(), NoQuestionsAvailable)
    assert run.has_no_questions
    assert run.current_question is None


def test_registry_keeps_one_run_per_participant(session_manager, single_question):
    _, detail = single_question
    registry = QuizRunRegistry(session_manager)

    ana = registry.get_or_start(detail, "ana@school.edu")

    assert registry.get_or_start(detail, "ana@school.edu") is ana
    assert registry.get_or_start(detail, "ben@school.edu") is not ana
    assert registry.active_count() == 2

    registry.discard_session(detail.session.id)
    assert registry.get(detail.session.id, "ana@school.edu") is None
    assert registry.active_count() == 0
