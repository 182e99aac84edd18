"""FastAPI server exposing the classroom quiz routes as a JSON API."""

from __future__ import annotations

import base64
import binascii
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
import logging

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
import uvicorn

from classquiz.constants import messages
from classquiz.constants.about import APP_NAME, APP_VERSION
from classquiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from classquiz.core.classroom_manager import ClassroomManager
from classquiz.core.errors import (
    BackendError,
    DecodeError,
    EncodeError,
    NotFoundOrDenied,
    SessionExpired,
    ValidationError,
)
from classquiz.core.image_processing import format_file_size
from classquiz.core.markdown_math_renderer import MATHJAX_SCRIPT_URL, renderer
from classquiz.core.models import (
    AuthSession,
    AuthUser,
    NoQuestionsAvailable,
    ProcessedImage,
    Question,
    Role,
    Teacher,
)
from classquiz.core.services.dashboards import QuestionFilter
from classquiz.core.services.question_bank import AnswerDraft, QuestionDraft
from classquiz.core.services.quiz_run import AnswerResult, QuizRun
from classquiz.core.services.session_manager import SessionDetail, SessionDraft

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


class CredentialsPayload(BaseModel):
    """Payload schema for password sign-up and sign-in."""

    email: str = ""
    password: str = ""


class MagicLinkPayload(BaseModel):
    email: str = ""
    redirect_to: str | None = None


class DevLoginPayload(BaseModel):
    email: str = ""


class ImagePayload(BaseModel):
    """An uploaded image carried inline as base64."""

    filename: str
    content_type: str
    data_base64: str


class AnswerDraftPayload(BaseModel):
    content: str = ""
    is_correct: bool = False


class QuestionPayload(BaseModel):
    title: str = ""
    content: str = ""
    course_id: str = ""
    answers: list[AnswerDraftPayload] = Field(default_factory=list)
    tag_ids: list[str] = Field(default_factory=list)
    image: ImagePayload | None = None


class ClassPayload(BaseModel):
    name: str = ""
    description: str | None = None
    emails: list[str] = Field(default_factory=list)


class ClassUpdatePayload(BaseModel):
    name: str = ""
    description: str | None = None


class MembersPayload(BaseModel):
    emails: list[str] = Field(default_factory=list)


class SessionPayload(BaseModel):
    """Payload schema for a new session; at least one scope field must be set."""

    name: str = ""
    class_id: str = ""
    description: str | None = None
    course_id: str | None = None
    tag_ids: list[str] = Field(default_factory=list)
    question_ids: list[str] = Field(default_factory=list)
    expires_at: datetime | None = None


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers."""

    answer_id: str | None = None


@dataclass(slots=True)
class Caller:
    """The authenticated user behind a request and the role it resolved to."""

    user: AuthUser
    role: Role
    access_token: str


def _get_manager_dependency(manager: ClassroomManager):
    def dependency() -> ClassroomManager:
        return manager

    return dependency


def _auth_body(session: AuthSession) -> dict[str, object]:
    return {
        "access_token": session.access_token,
        "token_type": "bearer",
        "user": {"id": session.user.id, "email": session.user.email},
    }


def _decode_image(payload: ImagePayload) -> bytes:
    try:
        return base64.b64decode(payload.data_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(messages.IMAGE_DATA_INVALID) from exc


def _image_report(image: ProcessedImage) -> dict[str, object]:
    return {
        "filename": image.filename,
        "content_type": image.content_type,
        "width": image.width,
        "height": image.height,
        "original_size": image.original_size,
        "processed_size": image.processed_size,
        "original_size_label": format_file_size(image.original_size),
        "processed_size_label": format_file_size(image.processed_size),
        "preview_data_uri": image.preview_data_uri,
    }


def _partial_failures(failures) -> list[dict[str, object]]:
    return [{"step": failure.step, "message": failure.message, "code": failure.code} for failure in failures]


def _student_question(question: Question, result: AnswerResult | None) -> dict[str, object]:
    """Question as shown to a participant; correctness stays hidden until answered."""
    reveals = {reveal.answer_id: reveal for reveal in result.reveals} if result else {}
    answers = []
    for answer in question.answers:
        item: dict[str, object] = {
            "id": answer.id,
            "content": answer.content,
            "content_html": renderer.render_inline(answer.content),
        }
        reveal = reveals.get(answer.id)
        if reveal is not None:
            item["is_correct"] = reveal.is_correct
            item["is_selected"] = reveal.is_selected
            item["state"] = reveal.state
        answers.append(item)
    return {
        "id": question.id,
        "title": question.title,
        "content": question.content,
        "content_html": renderer.render_fragment(question.content),
        "image_url": question.image_url,
        "answers": answers,
    }


def _run_body(run: QuizRun, drawn: Question | NoQuestionsAvailable) -> dict[str, object]:
    if isinstance(drawn, NoQuestionsAvailable):
        return {
            "session_id": drawn.session_id,
            "question": None,
            "message": messages.SESSION_NO_QUESTIONS,
            "answered": False,
            "is_correct": None,
        }
    result = run.result
    return {
        "session_id": run.session_id,
        "question": _student_question(drawn, result),
        "answered": result is not None,
        "is_correct": result.is_correct if result else None,
        "mathjax_url": MATHJAX_SCRIPT_URL,
    }


def create_api_app(manager: ClassroomManager) -> FastAPI:
    """Create a FastAPI application wired to the provided classroom manager."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        subscription = manager.subscribe_to_auth_changes()
        logger.info("%s API started (backend=%s)", APP_NAME, manager.settings.backend)
        try:
            yield
        finally:
            subscription.unsubscribe()
            manager.close()
            logger.info("%s API stopped", APP_NAME)

    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION, lifespan=lifespan)
    manager_dep = _get_manager_dependency(manager)

    # --- Error mapping ---

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.messages[0], "errors": exc.messages})

    @app.exception_handler(DecodeError)
    @app.exception_handler(EncodeError)
    async def handle_image_error(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc), "errors": [str(exc)]})

    @app.exception_handler(BackendError)
    async def handle_backend_error(request: Request, exc: BackendError) -> JSONResponse:
        logger.error("%s %s failed: %s (code=%s)", request.method, request.url.path, exc.message, exc.code)
        return JSONResponse(status_code=502, content={"detail": messages.GENERIC_BACKEND_ERROR})

    @app.exception_handler(NotFoundOrDenied)
    async def handle_not_found(request: Request, exc: NotFoundOrDenied) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(SessionExpired)
    async def handle_expired(request: Request, exc: SessionExpired) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    # --- Authentication dependencies ---

    def current_caller(
        credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> Caller:
        token = credentials.credentials if credentials is not None else None
        user = manager.current_user(token)
        if user is None or token is None:
            raise HTTPException(status_code=401, detail=messages.AUTH_REQUIRED)
        return Caller(user=user, role=manager.resolve_role(user.email), access_token=token)

    def current_teacher(caller: Caller = Depends(current_caller)) -> Teacher:
        if not caller.role.is_teacher:
            raise HTTPException(status_code=403, detail=messages.TEACHER_REQUIRED)
        return caller.role.teacher

    # --- Auth routes ---

    @app.get("/health")
    def health(manager: ClassroomManager = Depends(manager_dep)) -> dict[str, object]:
        return {
            "status": "ok",
            "version": APP_VERSION,
            "backend": manager.settings.backend,
            "active_runs": manager.active_run_count(),
        }

    @app.post("/auth/sign-up", status_code=201)
    def sign_up(payload: CredentialsPayload, manager: ClassroomManager = Depends(manager_dep)) -> dict[str, object]:
        try:
            session = manager.sign_up(payload.email, payload.password)
        except BackendError as exc:
            raise HTTPException(status_code=400, detail=exc.message) from exc
        return _auth_body(session)

    @app.post("/auth/sign-in")
    def sign_in(payload: CredentialsPayload, manager: ClassroomManager = Depends(manager_dep)) -> dict[str, object]:
        try:
            session = manager.sign_in(payload.email, payload.password)
        except BackendError as exc:
            raise HTTPException(status_code=400, detail=exc.message) from exc
        return _auth_body(session)

    @app.post("/auth/magic-link", status_code=202)
    def magic_link(payload: MagicLinkPayload, manager: ClassroomManager = Depends(manager_dep)) -> dict[str, object]:
        manager.send_magic_link(payload.email, payload.redirect_to)
        return {"message": messages.MAGIC_LINK_SENT}

    @app.get("/auth/dev-login")
    def dev_login_options(manager: ClassroomManager = Depends(manager_dep)) -> dict[str, object]:
        return {"enabled": manager.dev_mode, "teacher_emails": list(manager.simulated_teacher_emails)}

    @app.post("/auth/dev-login")
    def dev_login(payload: DevLoginPayload, manager: ClassroomManager = Depends(manager_dep)) -> dict[str, object]:
        if not manager.dev_mode:
            raise HTTPException(status_code=403, detail=messages.DEV_LOGIN_DISABLED)
        return _auth_body(manager.dev_login(payload.email))

    @app.post("/auth/sign-out", status_code=204)
    def sign_out(caller: Caller = Depends(current_caller), manager: ClassroomManager = Depends(manager_dep)) -> Response:
        manager.sign_out(caller.access_token)
        return Response(status_code=204)

    @app.get("/auth/me")
    def me(caller: Caller = Depends(current_caller)) -> dict[str, object]:
        role = caller.role
        return {
            "user": {"id": caller.user.id, "email": caller.user.email},
            "role": "teacher" if role.is_teacher else "student",
            "teacher_id": role.teacher.id if role.is_teacher else None,
            "role_lookup_failed": getattr(role, "lookup_failed", False),
        }

    # --- Dashboards ---

    @app.get("/")
    def dashboard(
        course_id: str | None = None,
        tag_id: list[str] | None = Query(default=None),
        caller: Caller = Depends(current_caller),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        if caller.role.is_teacher:
            view = manager.teacher_dashboard(caller.role.teacher)
            question_filter = QuestionFilter(course_id=course_id or None, tag_ids=frozenset(tag_id or ()))
            return jsonable_encoder(
                {
                    "role": "teacher",
                    "sessions": view.sessions,
                    "classes": view.classes,
                    "courses": view.courses,
                    "tags": view.tags,
                    "questions": manager.filtered_questions(view, question_filter),
                    "question_count": len(view.questions),
                    "filter": {"course_id": question_filter.course_id, "tag_ids": sorted(question_filter.tag_ids)},
                    "errors": view.errors,
                }
            )
        student_view = manager.student_dashboard(caller.user.email)
        return jsonable_encoder(
            {
                "role": "student",
                "classes": student_view.classes,
                "sessions": student_view.sessions,
                "errors": student_view.errors,
                "role_lookup_failed": getattr(caller.role, "lookup_failed", False),
            }
        )

    # --- Question authoring ---

    @app.get("/create-question")
    def question_form(
        tag_search: str = "",
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        tags = manager.search_tags(tag_search) if tag_search.strip() else manager.list_tags()
        return jsonable_encoder({"courses": manager.list_courses(), "tags": tags})

    @app.post("/images/preview")
    def preview_image(
        payload: ImagePayload,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        image = manager.preview_image(_decode_image(payload), payload.filename, payload.content_type)
        return _image_report(image)

    @app.post("/create-question", status_code=201)
    def create_question(
        payload: QuestionPayload,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        draft = QuestionDraft(
            title=payload.title,
            content=payload.content,
            course_id=payload.course_id,
            answers=[AnswerDraft(content=a.content, is_correct=a.is_correct) for a in payload.answers],
            tag_ids=payload.tag_ids,
        )
        image = None
        if payload.image is not None:
            image = manager.preview_image(
                _decode_image(payload.image), payload.image.filename, payload.image.content_type
            )
        creation = manager.create_question(teacher, draft, image)
        return jsonable_encoder(
            {
                "question": creation.question,
                "image": _image_report(image) if image is not None else None,
                "warnings": creation.warnings,
                "partial_failures": _partial_failures(creation.failures),
            }
        )

    # --- Classes ---

    @app.post("/create-class", status_code=201)
    def create_class(
        payload: ClassPayload,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        creation = manager.create_class(teacher, payload.name, payload.emails, payload.description)
        return jsonable_encoder(
            {
                "class": creation.school_class,
                "members": creation.members,
                "warnings": creation.warnings,
                "partial_failures": _partial_failures(creation.failures),
            }
        )

    @app.get("/class/{class_id}")
    def get_class(
        class_id: str,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        detail = manager.get_class(teacher, class_id)
        return jsonable_encoder({"class": detail.school_class, "members": detail.members})

    @app.patch("/class/{class_id}")
    def update_class(
        class_id: str,
        payload: ClassUpdatePayload,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        updated = manager.update_class(teacher, class_id, payload.name, payload.description)
        return jsonable_encoder({"class": updated})

    @app.delete("/class/{class_id}", status_code=204)
    def delete_class(
        class_id: str,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> Response:
        manager.delete_class(teacher, class_id)
        return Response(status_code=204)

    @app.post("/class/{class_id}/members", status_code=201)
    def add_members(
        class_id: str,
        payload: MembersPayload,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        members = manager.add_class_members(teacher, class_id, payload.emails)
        return jsonable_encoder({"members": members})

    @app.delete("/class/{class_id}/members/{member_id}", status_code=204)
    def remove_member(
        class_id: str,
        member_id: str,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> Response:
        manager.remove_class_member(teacher, class_id, member_id)
        return Response(status_code=204)

    # --- Session composition ---

    @app.get("/create-session")
    def session_form(
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return jsonable_encoder(
            {
                "classes": manager.list_classes(teacher),
                "courses": manager.list_courses(),
                "tags": manager.list_tags(),
            }
        )

    @app.get("/create-session/questions")
    def session_candidates(
        course_id: str | None = None,
        tag_id: list[str] | None = Query(default=None),
        search: str = "",
        exclude: list[str] | None = Query(default=None),
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        questions = manager.candidate_questions(
            teacher, course_id, tag_id or (), term=search, exclude_ids=exclude or ()
        )
        return jsonable_encoder({"questions": questions})

    @app.post("/create-session", status_code=201)
    def create_session(
        payload: SessionPayload,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        draft = SessionDraft(
            name=payload.name,
            class_id=payload.class_id,
            description=payload.description,
            course_id=payload.course_id,
            tag_ids=payload.tag_ids,
            question_ids=payload.question_ids,
            expires_at=payload.expires_at,
        )
        creation = manager.create_session(teacher, draft)
        return jsonable_encoder(
            {
                "session": creation.session,
                "warnings": [failure.message for failure in creation.failures if failure.surfaced],
                "partial_failures": _partial_failures(creation.failures),
            }
        )

    # --- Quiz loop ---

    def _session_detail_body(detail: SessionDetail, caller: Caller) -> dict[str, object]:
        return jsonable_encoder(
            {
                "session": detail.session,
                "teacher_email": detail.teacher_email,
                "class_name": detail.class_name,
                "course_name": detail.course_name,
                "tags": detail.tags,
                "participants": detail.participants,
                "participant_count": len(detail.participants),
                "question_ids": detail.question_ids,
                "has_joined": any(p.user_email == caller.user.email for p in detail.participants),
                "is_owner": caller.role.is_teacher and caller.role.teacher.id == detail.session.teacher_id,
                "is_expired": manager.is_session_expired(detail),
                "time_remaining": manager.remaining_time(detail),
            }
        )

    @app.get("/session/{session_id}")
    def get_session(
        session_id: str,
        caller: Caller = Depends(current_caller),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _session_detail_body(manager.open_session(caller.role, session_id), caller)

    @app.delete("/session/{session_id}", status_code=204)
    def delete_session(
        session_id: str,
        teacher: Teacher = Depends(current_teacher),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> Response:
        manager.delete_session(teacher, session_id)
        return Response(status_code=204)

    @app.post("/session/{session_id}/join", status_code=201)
    def join_session(
        session_id: str,
        caller: Caller = Depends(current_caller),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        participant = manager.join_session(caller.role, session_id)
        return jsonable_encoder({"participant": participant})

    @app.get("/session/{session_id}/question")
    def current_question(
        session_id: str,
        caller: Caller = Depends(current_caller),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        run, drawn = manager.current_question(caller.role, session_id)
        return _run_body(run, drawn)

    @app.post("/session/{session_id}/answer")
    def submit_answer(
        session_id: str,
        payload: AnswerPayload,
        caller: Caller = Depends(current_caller),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        manager.submit_answer(caller.role, session_id, payload.answer_id)
        run, drawn = manager.current_question(caller.role, session_id)
        return _run_body(run, drawn)

    @app.post("/session/{session_id}/next")
    def next_question(
        session_id: str,
        caller: Caller = Depends(current_caller),
        manager: ClassroomManager = Depends(manager_dep),
    ) -> dict[str, object]:
        run, drawn = manager.next_question(caller.role, session_id)
        return _run_body(run, drawn)

    return app


def run_api_server(
    manager: ClassroomManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    log_level: str = "info",
) -> None:
    """Serve the API in the current thread until interrupted."""
    app = create_api_app(manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=log_level.lower())
    uvicorn.Server(config).run()

