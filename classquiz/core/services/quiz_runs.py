"""Registry of active quiz runs, one per session participant."""

from __future__ import annotations

from threading import Lock

from classquiz.core.services.quiz_run import QuizRun
from classquiz.core.services.session_manager import SessionDetail, SessionManager


class QuizRunRegistry:
    """Keeps each participant's run alive between requests."""

    def __init__(self, manager: SessionManager, *, avoid_repeats: bool = False) -> None:
        self._lock = Lock()
        self._manager = manager
        self._avoid_repeats = avoid_repeats
        self._runs: dict[tuple[str, str], QuizRun] = {}

    def get(self, session_id: str, email: str) -> QuizRun | None:
        with self._lock:
            return self._runs.get((session_id, email))

    def get_or_start(self, detail: SessionDetail, email: str) -> QuizRun:
        """Return the participant's run, starting one on first use."""
        key = (detail.session.id, email)
        with self._lock:
            run = self._runs.get(key)
            if run is None:
                run = QuizRun(self._manager, detail, email, avoid_repeats=self._avoid_repeats)
                self._runs[key] = run
            return run

    def discard_session(self, session_id: str) -> None:
        """Forget every run of a deleted session."""
        with self._lock:
            for key in [key for key in self._runs if key[0] == session_id]:
                del self._runs[key]

    def active_count(self) -> int:
        with self._lock:
            return len(self._runs)
