"""Translation of backend failures into the service error taxonomy."""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import TypeVar

from classquiz.core.backend.base import StoreError
from classquiz.core.errors import BackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_backend(action: Callable[[], T], context: str) -> T:
    """Run one backend call; log and re-raise failures as ``BackendError``."""
    try:
        return action()
    except StoreError as exc:
        logger.error("%s failed: %s (code=%s)", context, exc.message, exc.code)
        raise BackendError(exc.message, code=exc.code) from exc
