import asyncio
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from core.authorization import TokenAuthenticator
from core.errors import DENIAL_MESSAGE, AuthenticationError

SECRET = "classroom-assistant-test-signing-key-0001"
OTHER_SECRET = "someone-elses-signing-key-not-ours-0002"


def _token(role, secret=SECRET, **claims):
    return "Bearer " + jwt.encode({"sub": "u1", "role": role, **claims}, secret, algorithm="HS256")


def test_verified_token_supplies_the_role():
    authenticator = TokenAuthenticator(SECRET)

    assert authenticator.resolve_role(_token("Teacher")) == "teacher"
    assert authenticator.verify(_token("student"))["sub"] == "u1"


def test_request_context_role_wins_over_token():
    authenticator = TokenAuthenticator(SECRET)

    assert authenticator.resolve_role(_token("student"), {"role": "super_admin"}) == "super_admin"


@pytest.mark.parametrize(
    "token",
    [
        _token("super_admin", secret=OTHER_SECRET),
        _token("super_admin", exp=datetime.now(tz=timezone.utc) - timedelta(minutes=5)),
        "Bearer not-a-jwt",
        "",
    ],
)
def test_unverifiable_tokens_carry_no_role(token):
    authenticator = TokenAuthenticator(SECRET)

    assert authenticator.resolve_role(token) is None
    with pytest.raises(AuthenticationError):
        authenticator.verify(token)


def test_without_a_secret_no_token_is_trusted():
    authenticator = TokenAuthenticator()

    assert not authenticator.enabled
    assert authenticator.resolve_role(_token("super_admin")) is None


def test_forged_admin_token_cannot_invite_teachers(make_dialogue, backend):
    backend.seed("courses", [{"id": "1", "name": "Math 101"}])
    dialogue = make_dialogue(authenticator=TokenAuthenticator(SECRET))
    forged = _token("super_admin", secret=OTHER_SECRET)

    result = asyncio.run(dialogue.handle_turn("c1", "invite teachers prof@x.com to math 101", forged))

    assert result.response.kind == "failed"
    assert result.response.message == DENIAL_MESSAGE
    assert backend.calls == []


def test_signed_admin_token_can_invite_teachers(make_dialogue, backend):
    backend.seed("courses", [{"id": "1", "name": "Math 101"}])
    dialogue = make_dialogue(authenticator=TokenAuthenticator(SECRET))

    result = asyncio.run(dialogue.handle_turn("c1", "invite teachers prof@x.com to math 101", _token("super_admin")))

    assert result.response.kind == "completed"
    assert backend.count("create", "invitations") == 1
