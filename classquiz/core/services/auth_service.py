"""Identity flows: sign-up, sign-in, magic links, sign-out and token lookup."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from threading import Lock
from uuid import uuid4

from classquiz.constants import messages
from classquiz.core.backend.base import IdentityProvider
from classquiz.core.email_validation import normalize_email
from classquiz.core.errors import ValidationError
from classquiz.core.models import AuthSession, AuthUser
from classquiz.core.services.backend_calls import call_backend

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthService:
    """Thin layer over the identity provider with input checks up front.

    In development mode ``dev_login`` issues local tokens for any email
    without contacting the provider; ``current_user`` accepts both kinds.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        *,
        dev_mode: bool = False,
        simulated_emails: Iterable[str] = (),
    ) -> None:
        self._identity = identity
        self._dev_mode = dev_mode
        self.simulated_emails = tuple(simulated_emails)
        self._dev_lock = Lock()
        self._dev_tokens: dict[str, AuthUser] = {}

    @property
    def dev_mode(self) -> bool:
        return self._dev_mode

    def sign_up(self, email: str, password: str) -> AuthSession:
        email = self._check_credentials(email, password, check_length=True)
        session = call_backend(lambda: self._identity.sign_up(email, password), "sign up")
        logger.info("New account registered for %s", email)
        return session

    def sign_in(self, email: str, password: str) -> AuthSession:
        email = self._check_credentials(email, password)
        return call_backend(lambda: self._identity.sign_in_with_password(email, password), "sign in")

    def send_magic_link(self, email: str, redirect_to: str | None = None) -> None:
        email = normalize_email(email)
        if not email:
            raise ValidationError(messages.EMAIL_REQUIRED)
        call_backend(lambda: self._identity.sign_in_with_otp(email, redirect_to), "send magic link")
        logger.info("Magic link requested for %s", email)

    def sign_out(self, access_token: str) -> None:
        with self._dev_lock:
            if self._dev_tokens.pop(access_token, None) is not None:
                return
        call_backend(lambda: self._identity.sign_out(access_token), "sign out")

    def current_user(self, access_token: str | None) -> AuthUser | None:
        """The user behind ``access_token``, or ``None`` for an unknown token."""
        if not access_token:
            return None
        with self._dev_lock:
            dev_user = self._dev_tokens.get(access_token)
        if dev_user is not None:
            return dev_user
        return call_backend(lambda: self._identity.get_user(access_token), "load current user")

    def dev_login(self, email: str) -> AuthSession:
        """Simulated sign-in for local development."""
        if not self._dev_mode:
            raise ValidationError(messages.DEV_LOGIN_DISABLED)
        email = normalize_email(email)
        if not email:
            raise ValidationError(messages.EMAIL_REQUIRED)
        user = AuthUser(id=f"dev-user-{email}", email=email)
        token = f"dev-{uuid4().hex}"
        with self._dev_lock:
            self._dev_tokens[token] = user
        logger.info("Development login for %s", email)
        return AuthSession(access_token=token, user=user)

    @staticmethod
    def _check_credentials(email: str, password: str, check_length: bool = False) -> str:
        email = normalize_email(email)
        if not email:
            raise ValidationError(messages.EMAIL_REQUIRED)
        if not password:
            raise ValidationError(messages.PASSWORD_REQUIRED)
        if check_length and len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(messages.PASSWORD_TOO_SHORT)
        return email
