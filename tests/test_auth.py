"""Tests for the login flow."""

import pytest

from devark.storage.tokens import SecretTokenStorage
from devark.sync.api_client import AuthCompletion, AuthSession, TokenVerification
from devark.sync.auth import AuthService


class FakeSecrets(dict):
    def store(self, key, value):
        self[key] = value

    def delete(self, key):
        self.pop(key, None)


class FakeApi:
    def __init__(self, completions=(), stream_token="stream-token-123", valid=True):
        self.completions = list(completions)
        self.stream_token = stream_token
        self.valid = valid
        self.token = None
        self.polls = 0

    def create_auth_session(self):
        return AuthSession(auth_url="https://app.test/auth?source=ide_extension", token="sess-1")

    def check_auth_completion(self, token):
        self.polls += 1
        if self.completions:
            return self.completions.pop(0)
        return AuthCompletion(success=False)

    def stream_auth_token(self, token, timeout=300.0):
        if isinstance(self.stream_token, Exception):
            raise self.stream_token
        return self.stream_token

    def set_token(self, token):
        self.token = token

    def verify_token(self):
        return TokenVerification(valid=self.valid and self.token is not None, user_id="u1")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_service(api, clock, opened=None):
    opened = opened if opened is not None else []
    return AuthService(
        SecretTokenStorage(FakeSecrets()),
        api,
        open_browser=opened.append,
        sleep=clock.sleep,
        clock=clock,
    )


class TestAuthService:
    """Tests for AuthService."""

    def test_start_login_opens_browser(self, clock):
        opened = []
        service = make_service(FakeApi(), clock, opened)
        session = service.start_login()
        assert opened == [session.auth_url]
        assert service.pending.token == "sess-1"

    def test_completion_token_is_stored(self, clock):
        api = FakeApi(completions=[
            AuthCompletion(success=False),
            AuthCompletion(success=True, user_id=1, token="api-token-abc"),
        ])
        service = make_service(api, clock)
        service.start_login()

        assert service.wait_for_completion(interval=2.0)
        assert service.get_token() == "api-token-abc"
        assert api.token == "api-token-abc"
        assert service.pending is None
        assert api.polls == 2

    def test_completion_without_token_reads_stream(self, clock):
        api = FakeApi(completions=[AuthCompletion(success=True)])
        service = make_service(api, clock)
        service.start_login()
        assert service.wait_for_completion()
        assert service.get_token() == "stream-token-123"

    def test_times_out(self, clock):
        api = FakeApi()
        service = make_service(api, clock)
        service.start_login()
        assert not service.wait_for_completion(timeout=10, interval=2)
        assert api.polls == 5
        assert service.get_token() is None

    def test_wait_without_pending_session(self, clock):
        assert not make_service(FakeApi(), clock).wait_for_completion()

    def test_stream_failure(self, clock):
        api = FakeApi(stream_token=RuntimeError("Authentication session expired"))
        service = make_service(api, clock)
        service.start_login()
        assert not service.wait_for_stream()
        assert service.get_token() is None

    def test_logout(self, clock):
        api = FakeApi(completions=[AuthCompletion(success=True, token="api-token-abc")])
        service = make_service(api, clock)
        service.start_login()
        service.wait_for_completion()
        assert service.current_user() == {"id": "u1"}

        service.logout()
        assert service.get_token() is None
        assert api.token is None
        assert not service.verify()
        assert service.current_user() is None
