"""Tests for the flow controller: authorize URL, callback validation order, token exchange."""
import logging
from dataclasses import replace
from urllib.parse import parse_qs, urlparse

import httpx
import jwt
import pytest

from auth_test_client.errors import (
    AuthServerError,
    ExpiredStateError,
    MissingCodeError,
    MissingStateError,
    ReplayedStateError,
    TokenExchangeError,
    TransportError,
)
from auth_test_client.flow import FlowController, FlowState, build_authorize_url, id_token_claims
from auth_test_client.state_store import InMemoryStateStore


@pytest.fixture
def store(clock):
    return InMemoryStateStore(ttl_seconds=600, clock=clock)


def _controller(settings, store, http_client):
    return FlowController(settings, store, http_client)


def test_build_authorize_url_includes_required_params():
    url = build_authorize_url(
        authorize_url="https://as.example/oauth/authorize",
        client_id="client1",
        redirect_uri="https://client.example/auth/callback",
        scope="openid profile",
        state="mystate",
    )
    assert url.startswith("https://as.example/oauth/authorize?")
    params = parse_qs(urlparse(url).query)
    assert params["client_id"] == ["client1"]
    assert params["redirect_uri"] == ["https://client.example/auth/callback"]
    assert params["response_type"] == ["code"]
    assert params["scope"] == ["openid profile"]
    assert params["state"] == ["mystate"]
    assert "redirect_uri=https%3A%2F%2Fclient.example%2Fauth%2Fcallback" in url


def test_build_authorize_url_keeps_existing_query():
    url = build_authorize_url(
        authorize_url="https://as.example/authorize?tenant=abc",
        client_id="c",
        redirect_uri="https://c/cb",
        scope="openid",
        state="s",
    )
    assert url.startswith("https://as.example/authorize?tenant=abc&")
    assert parse_qs(urlparse(url).query)["tenant"] == ["abc"]


def test_initiate_state_matches_fresh_store_record(settings, store, make_http_client):
    flow = _controller(settings, store, make_http_client())
    redirect = flow.initiate()
    assert parse_qs(urlparse(redirect.url).query)["state"] == [redirect.state]
    assert len(store) == 1
    store.validate_and_consume(redirect.state)


def test_callback_success_posts_form_and_completes(settings, store, make_http_client, token_requests):
    flow = _controller(settings, store, make_http_client(json={"access_token": "abc", "token_type": "Bearer"}))
    state = flow.initiate().state

    outcome = flow.handle_callback(code="auth-code-xyz", state=state)

    assert outcome.state is FlowState.COMPLETED
    assert outcome.ok
    assert outcome.tokens == {"access_token": "abc", "token_type": "Bearer"}
    assert len(token_requests) == 1
    req = token_requests[0]
    assert req.method == "POST"
    assert str(req.url) == settings.token_url
    assert req.headers["content-type"] == "application/x-www-form-urlencoded"
    assert parse_qs(req.content.decode()) == {
        "grant_type": ["authorization_code"],
        "client_id": ["test-client"],
        "client_secret": ["test-secret"],
        "redirect_uri": ["http://127.0.0.1:3000/auth/callback"],
        "code": ["auth-code-xyz"],
    }


def test_callback_error_takes_precedence(settings, store, make_http_client, token_requests):
    flow = _controller(settings, store, make_http_client())
    state = flow.initiate().state
    outcome = flow.handle_callback(
        code="c", state=state, error="access_denied", error_description="User cancelled"
    )
    assert outcome.state is FlowState.FAILED
    assert isinstance(outcome.error, AuthServerError)
    assert outcome.error.message == "User cancelled"
    assert outcome.error.status_code == 400
    assert token_requests == []


def test_callback_error_without_description_uses_error_code(settings, store, make_http_client):
    flow = _controller(settings, store, make_http_client())
    outcome = flow.handle_callback(code=None, state=None, error="invalid_scope")
    assert outcome.error.message == "invalid_scope"


def test_callback_missing_code(settings, store, make_http_client):
    flow = _controller(settings, store, make_http_client())
    state = flow.initiate().state
    outcome = flow.handle_callback(code=None, state=state)
    assert isinstance(outcome.error, MissingCodeError)
    assert outcome.error.status_code == 400


def test_callback_missing_state(settings, store, make_http_client, token_requests):
    flow = _controller(settings, store, make_http_client())
    outcome = flow.handle_callback(code="c", state=None)
    assert isinstance(outcome.error, MissingStateError)
    assert token_requests == []


def test_callback_unknown_state(settings, store, make_http_client, token_requests):
    flow = _controller(settings, store, make_http_client())
    outcome = flow.handle_callback(code="c", state="forged")
    assert isinstance(outcome.error, MissingStateError)
    assert token_requests == []


def test_callback_expired_state(settings, store, clock, make_http_client, token_requests):
    flow = _controller(settings, store, make_http_client(json={"access_token": "abc"}))
    state = flow.initiate().state
    clock.advance(601)
    outcome = flow.handle_callback(code="c", state=state)
    assert isinstance(outcome.error, ExpiredStateError)
    assert token_requests == []


def test_callback_replayed_state(settings, store, make_http_client, token_requests):
    flow = _controller(settings, store, make_http_client(json={"access_token": "abc"}))
    state = flow.initiate().state
    assert flow.handle_callback(code="c", state=state).ok
    outcome = flow.handle_callback(code="c", state=state)
    assert isinstance(outcome.error, ReplayedStateError)
    assert len(token_requests) == 1


def test_exchange_non_2xx_carries_status_and_body(settings, store, make_http_client):
    flow = _controller(settings, store, make_http_client(status_code=401, json={"error": "invalid_client"}))
    state = flow.initiate().state
    outcome = flow.handle_callback(code="c", state=state)
    assert isinstance(outcome.error, TokenExchangeError)
    assert outcome.error.status_code == 500
    assert outcome.error.upstream_status == 401
    assert "invalid_client" in outcome.error.body
    assert "401" in outcome.error.message
    assert "invalid_client" in outcome.error.message


def test_exchange_non_json_error_body_passed_through(settings, store, make_http_client):
    flow = _controller(settings, store, make_http_client(status_code=503, text="Service Unavailable"))
    with pytest.raises(TokenExchangeError) as exc:
        flow.exchange_code("c")
    assert exc.value.upstream_status == 503
    assert "Service Unavailable" in exc.value.body


def test_exchange_success_without_access_token(settings, store, make_http_client):
    flow = _controller(settings, store, make_http_client(json={"token_type": "Bearer"}))
    with pytest.raises(TokenExchangeError) as exc:
        flow.exchange_code("c")
    assert "access_token" in exc.value.message


def test_exchange_success_non_json(settings, store, make_http_client):
    flow = _controller(settings, store, make_http_client(text="<html>login</html>"))
    with pytest.raises(TokenExchangeError) as exc:
        flow.exchange_code("c")
    assert "not JSON" in exc.value.message


def test_exchange_transport_failure(settings, store, make_http_client, token_requests):
    flow = _controller(settings, store, make_http_client(exc=httpx.ConnectError("connection refused")))
    state = flow.initiate().state
    outcome = flow.handle_callback(code="c", state=state)
    assert isinstance(outcome.error, TransportError)
    assert outcome.error.status_code == 500
    assert "connection refused" in outcome.error.message
    # no retry
    assert len(token_requests) == 1


def test_id_token_claims_decoded_without_verification():
    id_token = jwt.encode({"sub": "42", "iss": "https://as.example"}, "k" * 32, algorithm="HS256")
    claims = id_token_claims({"access_token": "a", "id_token": id_token})
    assert claims == {"sub": "42", "iss": "https://as.example"}


def test_id_token_claims_absent_or_garbage():
    assert id_token_claims({"access_token": "a"}) is None
    assert id_token_claims({"access_token": "a", "id_token": "not-a-jwt"}) is None


def test_exchange_malformed_token_url_is_transport_error(settings, store, make_http_client, token_requests, caplog):
    bad = replace(settings, token_url="http://[::1/token")
    flow = _controller(bad, store, make_http_client(json={"access_token": "abc"}))
    state = flow.initiate().state
    with caplog.at_level(logging.ERROR, logger="auth_test_client.flow"):
        outcome = flow.handle_callback(code="auth-code-xyz", state=state)
    assert outcome.state is FlowState.FAILED
    assert isinstance(outcome.error, TransportError)
    assert outcome.error.status_code == 500
    assert "InvalidURL" in outcome.error.message
    assert token_requests == []
    assert "kind=transport_error" in caplog.text
    assert "code=auth-cod..." in caplog.text


def test_flow_state_transitions_logged(settings, store, make_http_client, caplog):
    flow = _controller(settings, store, make_http_client(json={"access_token": "abc"}))
    with caplog.at_level(logging.DEBUG, logger="auth_test_client.flow"):
        redirect = flow.initiate()
        outcome = flow.handle_callback(code="c", state=redirect.state)
    assert redirect.flow_state is FlowState.AWAITING_CALLBACK
    assert outcome.state is FlowState.COMPLETED
    assert "idle -> awaiting_callback" in caplog.text
    assert "awaiting_callback -> exchanging" in caplog.text
    assert "exchanging -> completed" in caplog.text


def test_failed_validation_never_reaches_exchanging(settings, store, make_http_client, caplog):
    flow = _controller(settings, store, make_http_client())
    with caplog.at_level(logging.DEBUG, logger="auth_test_client.flow"):
        outcome = flow.handle_callback(code="c", state="forged")
    assert outcome.state is FlowState.FAILED
    assert "awaiting_callback -> failed" in caplog.text
    assert "exchanging" not in caplog.text
