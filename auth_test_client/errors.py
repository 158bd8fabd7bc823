"""
Error taxonomy for a login attempt. Every FlowError is terminal for its attempt and
carries the HTTP status the callback responds with (400 client-attributable, 500 upstream).
"""


class ConfigError(Exception):
    """Invalid or missing configuration, raised at startup."""


class FlowError(Exception):
    kind = "flow_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthServerError(FlowError):
    """AS redirected back with ?error=...; description is passed through verbatim."""

    kind = "auth_server_error"
    status_code = 400

    def __init__(self, error: str, description: str | None = None):
        super().__init__(description or error)
        self.error = error
        self.description = description


class MissingCodeError(FlowError):
    kind = "missing_code"
    status_code = 400

    def __init__(self, message: str = "No authorization code received."):
        super().__init__(message)


class StateValidationError(FlowError):
    status_code = 400


class MissingStateError(StateValidationError):
    kind = "missing_state"

    def __init__(self, message: str = "Missing or unknown state parameter. Please try logging in again."):
        super().__init__(message)


class ExpiredStateError(StateValidationError):
    kind = "expired_state"

    def __init__(self, message: str = "State parameter expired. Please try logging in again."):
        super().__init__(message)


class ReplayedStateError(StateValidationError):
    kind = "replayed_state"

    def __init__(self, message: str = "State parameter was already used. Please try logging in again."):
        super().__init__(message)


class TokenExchangeError(FlowError):
    """Token endpoint answered, but not with a usable token payload."""

    kind = "token_exchange_error"
    status_code = 500

    def __init__(self, upstream_status: int, body: str, reason: str = ""):
        label = f"{upstream_status} {reason}".strip()
        super().__init__(f"Token exchange failed: {label} - {body}")
        self.upstream_status = upstream_status
        self.body = body


class TransportError(FlowError):
    """Token endpoint could not be reached."""

    kind = "transport_error"
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(f"Token exchange failed: could not reach token endpoint: {detail}")
        self.detail = detail
