from datetime import timedelta

import pytest

from models.dynamodb import utc_now
from services.credentials import CredentialService
from services.sessions import SessionService
from utils.errors import AccountLocked, AuthenticationFailed

SECRET = "unit-test-secret"


class FakeClock:
    def __init__(self):
        self.now = utc_now()

    def __call__(self):
        return self.now


@pytest.fixture
def credentials():
    return CredentialService(SECRET)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions(table, credentials, clock):
    return SessionService(table, credentials, clock=clock)


@pytest.fixture
def alice_user(table, alice):
    return table.get_user(alice)


def test_start_session_stores_refresh_token(sessions, credentials, table, alice_user):
    tokens = sessions.start_session(alice_user)

    assert tokens["token_type"] == "Bearer"
    assert credentials.verify_token(tokens["access_token"]).id == alice_user.user_id
    claims = credentials.decode_refresh_token(tokens["refresh_token"])
    record = table.get_refresh_token(alice_user.user_id, claims["jti"])
    assert record.is_revoked is False
    assert record.token_hash != tokens["refresh_token"]


def test_refresh_issues_access_token(sessions, credentials, alice_user):
    tokens = sessions.start_session(alice_user)

    access_token = sessions.refresh(tokens["refresh_token"])

    assert credentials.verify_token(access_token).email == "alice@example.com"


def test_access_token_cannot_refresh(sessions, alice_user):
    tokens = sessions.start_session(alice_user)

    with pytest.raises(AuthenticationFailed):
        sessions.refresh(tokens["access_token"])
    with pytest.raises(AuthenticationFailed):
        sessions.refresh("not-a-jwt")


def test_revoked_token_cannot_refresh(sessions, alice_user):
    tokens = sessions.start_session(alice_user)

    assert sessions.revoke(tokens["refresh_token"]) is True

    with pytest.raises(AuthenticationFailed):
        sessions.refresh(tokens["refresh_token"])


def test_revoke_ignores_unknown_tokens(sessions, credentials, alice_user):
    unstored, _ = credentials.issue_refresh_token(alice_user)

    assert sessions.revoke("not-a-jwt") is False
    assert sessions.revoke(unstored) is False


def test_expired_record_cannot_refresh(sessions, clock, alice_user):
    tokens = sessions.start_session(alice_user)

    clock.now += timedelta(days=8)

    with pytest.raises(AuthenticationFailed):
        sessions.refresh(tokens["refresh_token"])


def test_remember_me_outlives_default_lifetime(sessions, clock, alice_user):
    tokens = sessions.start_session(alice_user, remember_me=True)

    clock.now += timedelta(days=8)

    assert sessions.refresh(tokens["refresh_token"])


def test_token_must_match_stored_hash(sessions, credentials, table, alice_user):
    token, record = credentials.issue_refresh_token(alice_user)
    record.token_hash = "0" * 64
    table.put_refresh_token(record)

    with pytest.raises(AuthenticationFailed):
        sessions.refresh(token)


def test_deleted_user_cannot_refresh(sessions, user_service, alice_user):
    tokens = sessions.start_session(alice_user)
    user_service.delete_user(alice_user.user_id)

    with pytest.raises(AuthenticationFailed):
        sessions.refresh(tokens["refresh_token"])


def test_locked_user_cannot_refresh(sessions, table, clock, alice_user):
    tokens = sessions.start_session(alice_user)
    alice_user.lockout_until = clock.now + timedelta(minutes=15)
    table.put_user(alice_user)

    with pytest.raises(AccountLocked):
        sessions.refresh(tokens["refresh_token"])
