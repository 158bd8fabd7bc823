"""
Authorization Code Flow controller: redirect to the AS /authorize, then validate the callback
and exchange the code at the token endpoint.

Each login attempt moves IDLE -> AWAITING_CALLBACK -> EXCHANGING -> COMPLETED | FAILED and is keyed
by its own state token. Failures are terminal (no retry) and always logged.
"""
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
import jwt

from auth_test_client.config import Settings
from auth_test_client.errors import (
    AuthServerError,
    FlowError,
    MissingCodeError,
    MissingStateError,
    TokenExchangeError,
    TransportError,
)
from auth_test_client.state_store import StateStore

logger = logging.getLogger(__name__)


class FlowState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class LoginRedirect:
    state: str
    url: str
    flow_state: FlowState = FlowState.AWAITING_CALLBACK


@dataclass
class FlowOutcome:
    state: FlowState
    tokens: dict[str, Any] | None = None
    error: FlowError | None = None

    @property
    def ok(self) -> bool:
        return self.state is FlowState.COMPLETED


def _prefix(value: str | None, length: int = 8) -> str:
    """First few chars of a token/code for logs; never log the full value."""
    if not value:
        return "<none>"
    return value[:length] + "..." if len(value) > length else value


def _transition(state: str | None, old: FlowState, new: FlowState) -> FlowState:
    logger.debug("Flow %s: %s -> %s", _prefix(state), old.value, new.value)
    return new


def build_authorize_url(
    *,
    authorize_url: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
) -> str:
    """AS /authorize URL with the code-flow params. Keeps any query already on authorize_url."""
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
        "state": state,
    }
    sep = "&" if "?" in authorize_url else "?"
    return f"{authorize_url}{sep}{urlencode(params)}"


def id_token_claims(tokens: dict[str, Any]) -> dict[str, Any] | None:
    """
    Claims of the id_token in a token response, for display only. Signature is NOT verified;
    returns None when there is no id_token or it is not a decodable JWT.
    """
    id_token = tokens.get("id_token")
    if not id_token or not isinstance(id_token, str):
        return None
    try:
        return jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning("id_token is not a decodable JWT: %s", e)
        return None


class FlowController:
    def __init__(self, settings: Settings, state_store: StateStore, http_client: httpx.Client):
        self.settings = settings
        self.state_store = state_store
        self.http_client = http_client

    def initiate(self) -> LoginRedirect:
        """Idle -> AwaitingCallback: issue a state token and build the redirect to the AS."""
        state = self.state_store.create()
        url = build_authorize_url(
            authorize_url=self.settings.authorize_url,
            client_id=self.settings.client_id,
            redirect_uri=self.settings.redirect_uri,
            scope=self.settings.scope,
            state=state,
        )
        logger.info("Initiating OAuth flow (state=%s). Redirecting to: %s", _prefix(state), self.settings.authorize_url)
        flow_state = _transition(state, FlowState.IDLE, FlowState.AWAITING_CALLBACK)
        return LoginRedirect(state=state, url=url, flow_state=flow_state)

    def handle_callback(
        self,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> FlowOutcome:
        """AwaitingCallback -> Exchanging -> Completed, or Failed at the first problem."""
        current = FlowState.AWAITING_CALLBACK
        try:
            self._validate_callback(code=code, state=state, error=error, error_description=error_description)
            current = _transition(state, current, FlowState.EXCHANGING)
            tokens = self.exchange_code(code)
        except FlowError as e:
            self._log_failure(e, code=code, state=state)
            return FlowOutcome(state=_transition(state, current, FlowState.FAILED), error=e)
        logger.info(
            "Successfully exchanged code for tokens (state=%s, fields=%s)",
            _prefix(state),
            sorted(tokens),
        )
        return FlowOutcome(state=_transition(state, current, FlowState.COMPLETED), tokens=tokens)

    def _validate_callback(
        self,
        *,
        code: str | None,
        state: str | None,
        error: str | None,
        error_description: str | None,
    ) -> None:
        if error:
            raise AuthServerError(error, error_description)
        if not code:
            raise MissingCodeError()
        if not state:
            raise MissingStateError("Missing state parameter.")
        logger.info("Received authorization code %s (state=%s)", _prefix(code), _prefix(state))
        self.state_store.validate_and_consume(state)

    def exchange_code(self, code: str) -> dict[str, Any]:
        """Exchanging: one POST to the token endpoint. Raises TransportError / TokenExchangeError."""
        s = self.settings
        try:
            r = self.http_client.post(
                s.token_url,
                data={
                    "grant_type": "authorization_code",
                    "client_id": s.client_id,
                    "client_secret": s.client_secret,
                    "redirect_uri": s.redirect_uri,
                    "code": code,
                },
                headers={"Accept": "application/json"},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        if not r.is_success:
            raise TokenExchangeError(r.status_code, _error_body(r), r.reason_phrase)

        try:
            data = r.json()
        except ValueError:
            raise TokenExchangeError(r.status_code, f"response is not JSON: {r.text[:500]}", r.reason_phrase) from None
        if not isinstance(data, dict) or not data.get("access_token"):
            raise TokenExchangeError(
                r.status_code, f"response has no access_token: {json.dumps(data)[:500]}", r.reason_phrase
            )
        return data

    def _log_failure(self, e: FlowError, *, code: str | None, state: str | None) -> None:
        if isinstance(e, TokenExchangeError):
            logger.error(
                "Token exchange failed: kind=%s upstream_status=%s code=%s state=%s body=%s",
                e.kind,
                e.upstream_status,
                _prefix(code),
                _prefix(state),
                e.body,
            )
        elif isinstance(e, TransportError):
            logger.error(
                "Token exchange failed: kind=%s url=%s code=%s state=%s detail=%s",
                e.kind,
                self.settings.token_url,
                _prefix(code),
                _prefix(state),
                e.detail,
            )
        elif isinstance(e, AuthServerError):
            logger.warning("OAuth Callback Error: %s - %s (state=%s)", e.error, e.description, _prefix(state))
        else:
            logger.warning(
                "OAuth Callback rejected: kind=%s code=%s state=%s: %s",
                e.kind,
                _prefix(code),
                _prefix(state),
                e.message,
            )


def _error_body(r: httpx.Response) -> str:
    """Upstream error body: compact JSON when it parses, raw text otherwise."""
    try:
        return json.dumps(r.json())
    except ValueError:
        return r.text or "(no body)"
