"""Multi-row writes issued as independent calls against the data store.

A saga has one primary write and any number of auxiliary writes that attach
rows to it. The primary must succeed; auxiliary failures are recorded
according to their ``StepPolicy``. There is no compensation: rows written
earlier are never rolled back.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
import logging
from typing import TypeVar

from classquiz.core.backend.base import StoreError
from classquiz.core.errors import BackendError, PartialFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StepPolicy(Enum):
    BEST_EFFORT = "best_effort"  # log and continue
    SURFACE = "surface"  # log, continue, and report to the user


class WriteSaga:
    """Runs a primary write followed by auxiliary writes that never roll it back."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.failures: list[PartialFailure] = []
        self._primary_done = False

    def primary(self, action: Callable[[], T]) -> T:
        """Run the primary write; a failure aborts the saga with ``BackendError``."""
        try:
            result = action()
        except StoreError as exc:
            logger.error("%s failed: %s (code=%s)", self.name, exc.message, exc.code)
            raise BackendError(exc.message, code=exc.code) from exc
        self._primary_done = True
        return result

    def attach(
        self,
        step: str,
        action: Callable[[], object],
        *,
        policy: StepPolicy = StepPolicy.BEST_EFFORT,
        message: str = "{error}",
    ) -> bool:
        """Run an auxiliary write. Returns ``False`` when it failed and was recorded."""
        if not self._primary_done:
            raise RuntimeError("Auxiliary writes require a successful primary write.")
        try:
            action()
        except StoreError as exc:
            logger.warning("%s: step %s failed: %s (code=%s)", self.name, step, exc.message, exc.code)
            self.failures.append(
                PartialFailure(
                    step=step,
                    message=message.format(error=exc.message),
                    code=exc.code,
                    surfaced=policy is StepPolicy.SURFACE,
                )
            )
            return False
        return True

    @property
    def warnings(self) -> list[str]:
        """Messages of failures that must be shown to the user."""
        return [failure.message for failure in self.failures if failure.surfaced]
