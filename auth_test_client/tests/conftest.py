"""
Shared fixtures: explicit Settings (no env needed), a controllable clock, and a fake token endpoint
built on httpx.MockTransport.
"""
import httpx
import pytest

from auth_test_client.config import Settings


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings():
    return Settings(
        client_id="test-client",
        client_secret="test-secret",
        redirect_uri="http://127.0.0.1:3000/auth/callback",
        authorize_url="https://as.example/oauth/authorize",
        token_url="https://as.example/oauth/token",
        userinfo_url="https://as.example/oauth/userinfo",
        auth_server_url="https://as.example",
        scope="openid profile email offline_access",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token_requests():
    """Requests seen by the fake token endpoint, in order."""
    return []


@pytest.fixture
def make_http_client(token_requests):
    """Build an httpx.Client whose token endpoint returns the given response (or raises)."""

    def _make(status_code=200, json=None, text=None, exc=None):
        def handler(request: httpx.Request) -> httpx.Response:
            token_requests.append(request)
            if exc is not None:
                raise exc
            if json is not None:
                return httpx.Response(status_code, json=json)
            return httpx.Response(status_code, text=text or "")

        return httpx.Client(transport=httpx.MockTransport(handler))

    return _make
