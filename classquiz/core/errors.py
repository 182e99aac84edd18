"""Error taxonomy shared by the service layer and the HTTP server."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class ClassQuizError(Exception):
    """Base class for every failure the service reports to a user."""


class ValidationError(ClassQuizError):
    """Input was rejected before any backend call was made."""

    def __init__(self, messages: str | Sequence[str]) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages: list[str] = list(messages)
        super().__init__("; ".join(self.messages))


class BackendError(ClassQuizError):
    """A call to the external data store, identity provider or storage failed."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class NotFoundOrDenied(ClassQuizError):
    """A lookup returned nothing; missing and forbidden look the same."""


class SessionExpired(ClassQuizError):
    """A question was requested from a session whose expiry has passed."""


class DecodeError(ClassQuizError):
    """Uploaded bytes could not be decoded as an image."""


class EncodeError(ClassQuizError):
    """Re-encoding a decoded image produced no output."""


@dataclass(slots=True, frozen=True)
class PartialFailure:
    """An auxiliary write that failed after its primary row was persisted."""

    step: str
    message: str
    code: str | None = None
    surfaced: bool = False
