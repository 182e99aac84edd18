import pytest

from classquiz.core.backend.base import StoreError
from classquiz.core.errors import BackendError
from classquiz.core.services.write_saga import StepPolicy, WriteSaga


def _failing(message, code="23503"):
    def action():
        raise StoreError(message, code)

    return action


def test_primary_failure_is_a_backend_error():
    saga = WriteSaga("create class")

    with pytest.raises(BackendError) as exc_info:
        saga.primary(_failing("permission denied", "42501"))

    assert exc_info.value.code == "42501"
    with pytest.raises(RuntimeError):
        saga.attach("class_members", lambda: None)


def test_auxiliary_failures_are_recorded_and_never_roll_back(caplog):
    written = []
    saga = WriteSaga("create question")
    saga.primary(lambda: written.append("question"))

    surfaced = saga.attach("answers", _failing("timeout"), policy=StepPolicy.SURFACE, message="Answers lost: {error}")
    assert surfaced is False
    assert saga.attach("question_tags", _failing("fk violation")) is False
    assert saga.attach("audit", lambda: written.append("audit")) is True

    assert written == ["question", "audit"]
    assert [(f.step, f.surfaced) for f in saga.failures] == [("answers", True), ("question_tags", False)]
    assert saga.warnings == ["Answers lost: timeout"]
    assert "step question_tags failed" in caplog.text
