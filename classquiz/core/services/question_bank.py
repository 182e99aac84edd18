"""Service for authoring questions and reading the course/tag catalog."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
import logging

from classquiz.constants import messages
from classquiz.constants.quiz_constants import IMAGE_BUCKET, MAX_ANSWERS_PER_QUESTION, MIN_ANSWERS_PER_QUESTION
from classquiz.core.backend.base import DataStore, ObjectStorage, StoreError
from classquiz.core.errors import BackendError, PartialFailure, ValidationError
from classquiz.core.image_processing import build_storage_path
from classquiz.core.models import Answer, Course, ProcessedImage, Question, Tag, Teacher
from classquiz.core.services.backend_calls import call_backend
from classquiz.core.services.write_saga import StepPolicy, WriteSaga

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AnswerDraft:
    content: str
    is_correct: bool = False


@dataclass(slots=True)
class QuestionDraft:
    """Question as typed into the authoring form, before validation."""

    title: str
    content: str
    course_id: str
    answers: list[AnswerDraft]
    tag_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class QuestionCreation:
    question: Question
    warnings: list[str] = field(default_factory=list)
    failures: list[PartialFailure] = field(default_factory=list)


class QuestionBank:
    """Reads and writes questions, their answers and their tags."""

    def __init__(self, store: DataStore, storage: ObjectStorage, image_bucket: str = IMAGE_BUCKET) -> None:
        self._store = store
        self._storage = storage
        self._image_bucket = image_bucket

    # --- Catalog ---

    def list_courses(self) -> list[Course]:
        rows = call_backend(lambda: self._store.select("courses", order_by="name"), "list courses")
        return [Course.from_row(row) for row in rows]

    def list_tags(self) -> list[Tag]:
        rows = call_backend(lambda: self._store.select("tags", order_by="name"), "list tags")
        return [Tag.from_row(row) for row in rows]

    @staticmethod
    def search_tags(tags: Sequence[Tag], term: str, selected_ids: Iterable[str] = ()) -> list[Tag]:
        """Tags whose name contains ``term`` (case-insensitive), minus those already selected."""
        needle = term.strip().lower()
        selected = set(selected_ids)
        return [tag for tag in tags if needle in tag.name.lower() and tag.id not in selected]

    # --- Authoring ---

    def create_question(
        self,
        teacher: Teacher,
        draft: QuestionDraft,
        image: ProcessedImage | None = None,
    ) -> QuestionCreation:
        """Validate and persist a question.

        The image is uploaded first, then the question row is inserted. Tag
        links are best-effort; a failed answer insert is reported back as a
        warning because the question row already exists.
        """
        answers = self._validate_draft(draft)

        image_url = None
        image_filename = None
        if image is not None:
            path = build_storage_path()
            try:
                self._storage.upload(self._image_bucket, path, image.data, image.content_type)
            except StoreError as exc:
                logger.error("Image upload to %s/%s failed: %s", self._image_bucket, path, exc.message)
                raise BackendError(messages.QUESTION_IMAGE_UPLOAD_FAILED.format(error=exc.message), code=exc.code) from exc
            image_url = self._storage.get_public_url(self._image_bucket, path)
            image_filename = image.filename

        saga = WriteSaga("create_question")
        row = saga.primary(
            lambda: self._store.insert(
                "questions",
                [
                    {
                        "title": draft.title.strip(),
                        "content": draft.content.strip(),
                        "course_id": draft.course_id,
                        "teacher_id": teacher.id,
                        "image_url": image_url,
                        "image_filename": image_filename,
                    }
                ],
            )[0]
        )
        question = Question.from_row(row)

        tag_ids = list(dict.fromkeys(draft.tag_ids))
        if tag_ids:
            saga.attach(
                "question_tags",
                lambda: self._store.insert(
                    "question_tags", [{"question_id": question.id, "tag_id": tag_id} for tag_id in tag_ids]
                ),
            )

        def add_answers() -> None:
            rows = self._store.insert(
                "answers",
                [
                    {
                        "question_id": question.id,
                        "content": answer.content.strip(),
                        "is_correct": answer.is_correct,
                        "order_index": index,
                    }
                    for index, answer in enumerate(answers)
                ],
            )
            question.answers = sorted((Answer.from_row(r) for r in rows), key=lambda a: a.order_index)

        saga.attach("answers", add_answers, policy=StepPolicy.SURFACE, message=messages.QUESTION_ANSWERS_FAILED)
        logger.info("Teacher %s created question %s", teacher.email, question.id)
        return QuestionCreation(question=question, warnings=saga.warnings, failures=saga.failures)

    @staticmethod
    def _validate_draft(draft: QuestionDraft) -> list[AnswerDraft]:
        if not draft.title.strip() or not draft.content.strip() or not draft.course_id:
            raise ValidationError(messages.QUESTION_FIELDS_REQUIRED)
        answers = [answer for answer in draft.answers if answer.content.strip()]
        if len(answers) < MIN_ANSWERS_PER_QUESTION:
            raise ValidationError(messages.QUESTION_TOO_FEW_ANSWERS.format(count=MIN_ANSWERS_PER_QUESTION))
        if len(answers) > MAX_ANSWERS_PER_QUESTION:
            raise ValidationError(messages.QUESTION_TOO_MANY_ANSWERS.format(count=MAX_ANSWERS_PER_QUESTION))
        if not any(answer.is_correct for answer in answers):
            raise ValidationError(messages.QUESTION_NO_CORRECT_ANSWER)
        return answers

    # --- Reading ---

    def list_teacher_questions(self, teacher: Teacher) -> list[Question]:
        """The teacher's questions, newest first, with course and tags attached."""
        rows = call_backend(
            lambda: self._store.select(
                "questions", eq={"teacher_id": teacher.id}, order_by="created_at", descending=True
            ),
            "list questions",
        )
        questions = [Question.from_row(row) for row in rows]
        courses = {course.id: course for course in self.list_courses()}
        tags_by_question = self.tags_for_questions([question.id for question in questions])
        for question in questions:
            question.course = courses.get(question.course_id)
            question.tags = tags_by_question.get(question.id, [])
        return questions

    def candidate_questions(
        self,
        teacher: Teacher,
        course_id: str | None = None,
        tag_ids: Iterable[str] = (),
    ) -> list[Question]:
        """Questions a teacher can pin to a new session: course match and any selected tag."""
        selected_tags = set(tag_ids)
        candidates = []
        for question in self.list_teacher_questions(teacher):
            if course_id and question.course_id != course_id:
                continue
            if selected_tags and not question.tag_ids() & selected_tags:
                continue
            candidates.append(question)
        return candidates

    @staticmethod
    def search_questions(questions: Sequence[Question], term: str, exclude_ids: Iterable[str] = ()) -> list[Question]:
        needle = term.strip().lower()
        excluded = set(exclude_ids)
        return [q for q in questions if needle in q.title.lower() and q.id not in excluded]

    def tags_for_questions(self, question_ids: Sequence[str]) -> dict[str, list[Tag]]:
        if not question_ids:
            return {}
        links = call_backend(
            lambda: self._store.select("question_tags", in_={"question_id": list(question_ids)}),
            "load question tags",
        )
        tag_ids = sorted({link["tag_id"] for link in links})
        tags: dict[str, Tag] = {}
        if tag_ids:
            rows = call_backend(lambda: self._store.select("tags", in_={"id": tag_ids}), "load tags")
            tags = {row["id"]: Tag.from_row(row) for row in rows}
        result: dict[str, list[Tag]] = {}
        for link in links:
            tag = tags.get(link["tag_id"])
            if tag is not None:
                result.setdefault(link["question_id"], []).append(tag)
        return result

    def questions_with_answers(
        self,
        *,
        question_ids: Sequence[str] | None = None,
        course_id: str | None = None,
    ) -> list[Question]:
        """Load questions (optionally restricted) with answers sorted by ``order_index``."""
        in_ = {"id": list(question_ids)} if question_ids is not None else None
        eq = {"course_id": course_id} if course_id else None
        rows = call_backend(lambda: self._store.select("questions", eq=eq, in_=in_), "load questions")
        questions = [Question.from_row(row) for row in rows]
        if not questions:
            return []
        answer_rows = call_backend(
            lambda: self._store.select(
                "answers", in_={"question_id": [q.id for q in questions]}, order_by="order_index"
            ),
            "load answers",
        )
        by_question: dict[str, list[Answer]] = {}
        for answer_row in answer_rows:
            answer = Answer.from_row(answer_row)
            by_question.setdefault(answer.question_id, []).append(answer)
        for question in questions:
            question.answers = sorted(by_question.get(question.id, []), key=lambda a: a.order_index)
        return questions
