import pytest

from classquiz.constants import messages
from classquiz.core.backend.base import SIGNED_IN, SIGNED_OUT
from classquiz.core.errors import BackendError, ValidationError
from classquiz.core.services.auth_service import AuthService


@pytest.fixture
def identity(backend):
    return backend.identity


@pytest.fixture
def auth(identity):
    return AuthService(identity)


@pytest.mark.parametrize(
    ("email", "password", "message"),
    [
        ("  ", "secret1", messages.EMAIL_REQUIRED),
        ("ana@school.edu", "", messages.PASSWORD_REQUIRED),
        ("ana@school.edu", "short", messages.PASSWORD_TOO_SHORT),
    ],
)
def test_sign_up_checks_input_before_the_provider(auth, failures, email, password, message):
    failures.fail("sign_up", "auth")

    with pytest.raises(ValidationError) as exc_info:
        auth.sign_up(email, password)

    assert exc_info.value.messages == [message]


def test_sign_up_then_sign_in(auth):
    created = auth.sign_up(" Ana@School.edu ", "secret1")
    assert created.user.email == "ana@school.edu"

    session = auth.sign_in("ana@school.edu", "secret1")

    assert session.user.id == created.user.id
    assert auth.current_user(session.access_token) == session.user


def test_wrong_password_is_a_backend_error(auth):
    auth.sign_up("ana@school.edu", "secret1")

    with pytest.raises(BackendError) as exc_info:
        auth.sign_in("ana@school.edu", "secret2")

    assert exc_info.value.message == "Invalid login credentials"
    assert exc_info.value.code == "invalid_credentials"


def test_magic_link_signs_in_once_clicked(auth, identity):
    with pytest.raises(ValidationError, match=messages.EMAIL_REQUIRED):
        auth.send_magic_link("")

    auth.send_magic_link("Ben@School.edu", "http://localhost:8080/")
    session = identity.complete_magic_link("ben@school.edu")

    assert auth.current_user(session.access_token).email == "ben@school.edu"


def test_sign_out_invalidates_the_token(auth):
    session = auth.sign_up("ana@school.edu", "secret1")

    auth.sign_out(session.access_token)

    assert auth.current_user(session.access_token) is None
    assert auth.current_user(None) is None


def test_dev_login_requires_dev_mode(auth):
    with pytest.raises(ValidationError, match=messages.DEV_LOGIN_DISABLED):
        auth.dev_login("ana@school.edu")


def test_dev_login_tokens(identity, failures):
    auth = AuthService(identity, dev_mode=True, simulated_emails=["teacher1@school.edu"])

    session = auth.dev_login(" Ana@School.edu ")

    assert auth.dev_mode
    assert auth.simulated_emails == ("teacher1@school.edu",)
    assert session.user.id == "dev-user-ana@school.edu"
    assert session.access_token.startswith("dev-")
    failures.fail("get_user", "auth")
    assert auth.current_user(session.access_token).email == "ana@school.edu"

    failures.fail("sign_out", "auth")
    auth.sign_out(session.access_token)
    failures.clear()
    assert auth.current_user(session.access_token) is None


def test_listeners_see_sign_in_and_sign_out(auth, identity):
    events = []
    subscription = identity.on_auth_state_change(lambda event, session: events.append(event))

    session = auth.sign_up("ana@school.edu", "secret1")
    auth.sign_out(session.access_token)
    subscription.unsubscribe()
    auth.sign_in("ana@school.edu", "secret1")

    assert events == [SIGNED_IN, SIGNED_OUT]
