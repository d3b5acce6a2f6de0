import pytest

from gatepass.auth import TokenService
from gatepass.errors import ErrorCode, Forbidden, Unauthenticated

ADMINS = {"admin": "gate-pw", "alice": "alice-pw"}


@pytest.fixture
def tokens() -> TokenService:
    return TokenService("secret", ADMINS)


def test_user_token_round_trip(tokens):
    payer = tokens.read_user_token(
        tokens.issue_user_token("user-1", "user1@example.com")
    )
    assert payer.user_id == "user-1"
    assert payer.email == "user1@example.com"


def test_user_token_drops_invalid_email(tokens):
    payer = tokens.read_user_token(tokens.issue_user_token("user-1", "nope"))
    assert payer.email is None


@pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
def test_bad_user_tokens(tokens, token):
    with pytest.raises(Unauthenticated) as exc:
        tokens.read_user_token(token)
    assert exc.value.status_code == 401


def test_token_from_another_secret_is_rejected(tokens):
    other = TokenService("other-secret", ADMINS)
    with pytest.raises(Unauthenticated):
        tokens.read_user_token(other.issue_user_token("user-1"))


def test_expired_user_token():
    tokens = TokenService("secret", ADMINS, user_ttl_seconds=-1)
    with pytest.raises(Unauthenticated) as exc:
        tokens.read_user_token(tokens.issue_user_token("user-1"))
    assert exc.value.message == "Token expired"


def test_admin_login(tokens):
    session = tokens.read_admin_token(tokens.login("alice", "alice-pw"))
    assert session.admin_id == "alice"


@pytest.mark.parametrize("username,password", [
    ("alice", "gate-pw"),
    ("admin", ""),
    ("mallory", "gate-pw"),
    ("", ""),
    ("\u00e9", "\ud800"),
    ("admin", "gate-pw\u00e9"),
])
def test_admin_login_rejects_bad_credentials(tokens, username, password):
    with pytest.raises(Unauthenticated) as exc:
        tokens.login(username, password)
    assert exc.value.message == "Invalid credentials."


def test_user_token_is_not_an_admin_token(tokens):
    with pytest.raises(Unauthenticated):
        tokens.read_admin_token(tokens.issue_user_token("admin"))


def test_removed_admin_is_forbidden(tokens):
    token = tokens.login("alice", "alice-pw")
    reduced = TokenService("secret", {"admin": "gate-pw"})
    with pytest.raises(Forbidden) as exc:
        reduced.read_admin_token(token)
    assert exc.value.code is ErrorCode.FORBIDDEN
    assert exc.value.message == "Unauthorized"
