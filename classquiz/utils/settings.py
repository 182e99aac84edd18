"""Runtime settings loaded from the environment (and an optional .env file)."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
import os

from dotenv import load_dotenv

from classquiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from classquiz.constants.quiz_constants import IMAGE_BUCKET, SIMULATED_TEACHER_EMAILS

BACKEND_MEMORY = "memory"
BACKEND_REST = "rest"
_BACKENDS = (BACKEND_MEMORY, BACKEND_REST)
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class ConfigurationError(ValueError):
    """Raised when an environment variable holds an unusable value."""


@dataclass(slots=True, frozen=True)
class AppSettings:
    """Everything the service needs to know about its surroundings."""

    backend: str = BACKEND_MEMORY
    backend_url: str | None = None
    backend_api_key: str | None = None
    dev_mode: bool = False
    simulated_teacher_emails: tuple[str, ...] = SIMULATED_TEACHER_EMAILS
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    image_bucket: str = IMAGE_BUCKET
    avoid_repeats: bool = False


def load_settings(env: Mapping[str, str] | None = None) -> AppSettings:
    """Build settings from ``env`` or, when omitted, from ``os.environ`` after loading .env."""
    if env is None:
        load_dotenv()
        env = os.environ

    backend = env.get("CLASSQUIZ_BACKEND", BACKEND_MEMORY).strip().lower()
    if backend not in _BACKENDS:
        raise ConfigurationError(f"CLASSQUIZ_BACKEND must be one of {', '.join(_BACKENDS)}, got '{backend}'.")

    backend_url = env.get("CLASSQUIZ_BACKEND_URL") or None
    backend_api_key = env.get("CLASSQUIZ_BACKEND_KEY") or None
    if backend == BACKEND_REST and not (backend_url and backend_api_key):
        raise ConfigurationError("CLASSQUIZ_BACKEND_URL and CLASSQUIZ_BACKEND_KEY are required for the rest backend.")

    log_level = env.get("CLASSQUIZ_LOG_LEVEL", "INFO").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"Unknown log level '{log_level}'.")

    simulated = env.get("CLASSQUIZ_SIMULATED_TEACHERS")
    if simulated is None:
        simulated_emails = SIMULATED_TEACHER_EMAILS
    else:
        simulated_emails = tuple(email.strip().lower() for email in simulated.split(",") if email.strip())

    return AppSettings(
        backend=backend,
        backend_url=backend_url.rstrip("/") if backend_url else None,
        backend_api_key=backend_api_key,
        dev_mode=_parse_bool(env, "CLASSQUIZ_DEV_MODE"),
        simulated_teacher_emails=simulated_emails,
        host=env.get("CLASSQUIZ_HOST", DEFAULT_HOST),
        port=_parse_port(env.get("CLASSQUIZ_PORT")),
        log_level=log_level,
        image_bucket=env.get("CLASSQUIZ_IMAGE_BUCKET", IMAGE_BUCKET),
        avoid_repeats=_parse_bool(env, "CLASSQUIZ_AVOID_REPEATS"),
    )


def _parse_bool(env: Mapping[str, str], name: str) -> bool:
    raw = env.get(name, "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got '{raw}'.")


def _parse_port(raw: str | None) -> int:
    if raw is None or not raw.strip():
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"CLASSQUIZ_PORT must be an integer, got '{raw}'.") from exc
    if not 0 < port < 65536:
        raise ConfigurationError("CLASSQUIZ_PORT must be between 1 and 65535.")
    return port
