"""One participant's pass through a session's questions."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from threading import RLock

from classquiz.constants import messages
from classquiz.core.errors import SessionExpired, ValidationError
from classquiz.core.models import Answer, NoQuestionsAvailable, Question
from classquiz.core.services.session_manager import SessionDetail, SessionManager, is_expired

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AnswerReveal:
    """How one answer option is shown once the question has been answered."""

    answer_id: str
    content: str
    is_correct: bool
    is_selected: bool

    @property
    def state(self) -> str:
        if self.is_correct:
            return "correct"
        if self.is_selected:
            return "incorrect"
        return "neutral"


@dataclass(slots=True, frozen=True)
class AnswerResult:
    question_id: str
    chosen_answer_id: str
    is_correct: bool
    reveals: tuple[AnswerReveal, ...]


class QuizRun:
    """Serves random questions to a participant and grades their answers locally.

    Selection is memoryless unless ``avoid_repeats`` is set, in which case the
    run keeps the ids it has served and only repeats once all were shown.
    """

    def __init__(
        self,
        manager: SessionManager,
        detail: SessionDetail,
        participant_email: str,
        *,
        avoid_repeats: bool = False,
    ) -> None:
        self._manager = manager
        self._detail = detail
        self.participant_email = participant_email
        self._avoid_repeats = avoid_repeats
        self._served_ids: set[str] = set()
        self._current_question: Question | None = None
        self._result: AnswerResult | None = None
        self._exhausted = False
        self._lock = RLock()

    @property
    def session_id(self) -> str:
        return self._detail.session.id

    @property
    def current_question(self) -> Question | None:
        return self._current_question

    @property
    def result(self) -> AnswerResult | None:
        return self._result

    @property
    def is_revealed(self) -> bool:
        return self._result is not None

    @property
    def has_no_questions(self) -> bool:
        return self._exhausted

    def is_expired(self) -> bool:
        return is_expired(self._detail.session.expires_at, self._manager.now())

    def current_or_next(self) -> Question | NoQuestionsAvailable:
        """The question on screen, drawing the first one when nothing is shown yet."""
        with self._lock:
            if self._current_question is not None:
                return self._current_question
            return self.next_question()

    def next_question(self) -> Question | NoQuestionsAvailable:
        """Discard the current question and draw another."""
        with self._lock:
            return self._draw()

    def _draw(self) -> Question | NoQuestionsAvailable:
        if self.is_expired():
            raise SessionExpired(messages.SESSION_EXPIRED)
        self._current_question = None
        self._result = None

        drawn = self._manager.fetch_eligible_question(
            self._detail, exclude_ids=self._served_ids if self._avoid_repeats else ()
        )
        if isinstance(drawn, NoQuestionsAvailable) and self._served_ids:
            logger.debug("Run %s/%s saw every question, starting over", self.session_id, self.participant_email)
            self._served_ids.clear()
            drawn = self._manager.fetch_eligible_question(self._detail)

        if isinstance(drawn, NoQuestionsAvailable):
            self._exhausted = True
            return drawn
        self._exhausted = False
        self._current_question = drawn
        if self._avoid_repeats:
            self._served_ids.add(drawn.id)
        return drawn

    def submit_answer(self, answer_id: str | None) -> AnswerResult:
        """Grade ``answer_id`` against the current question.

        Only the first submission counts; later calls return the same result.
        """
        with self._lock:
            if self._result is not None:
                return self._result
            question = self._current_question
            if question is None:
                raise ValidationError(messages.SESSION_NO_CURRENT_QUESTION)
            if not answer_id:
                raise ValidationError(messages.SESSION_ANSWER_REQUIRED)
            chosen = _find_answer(question.answers, answer_id)
            if chosen is None:
                raise ValidationError(messages.SESSION_UNKNOWN_ANSWER)

            self._result = AnswerResult(
                question_id=question.id,
                chosen_answer_id=chosen.id,
                is_correct=chosen.is_correct,
                reveals=tuple(
                    AnswerReveal(
                        answer_id=answer.id,
                        content=answer.content,
                        is_correct=answer.is_correct,
                        is_selected=answer.id == chosen.id,
                    )
                    for answer in question.answers
                ),
            )
            return self._result


def _find_answer(answers: list[Answer], answer_id: str) -> Answer | None:
    return next((answer for answer in answers if answer.id == answer_id), None)
