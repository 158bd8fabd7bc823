"""
Client configuration. All values come from the environment and are validated once at startup.
Required: client id/secret, redirect URI, and the auth server base URL (or both full endpoint URLs).
"""
import os
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlparse

from auth_test_client.errors import ConfigError

DEFAULT_AUTHORIZE_PATH = "/oauth/authorize"
DEFAULT_TOKEN_PATH = "/oauth/token"
DEFAULT_USERINFO_PATH = "/oauth/userinfo"
DEFAULT_CALLBACK_PATH = "/auth/callback"

# openid + offline_access so the AS returns id_token and refresh_token when it supports them
DEFAULT_SCOPE = "openid profile email offline_access"

# State tokens older than this are rejected (10 minutes for the user to log in)
DEFAULT_STATE_TTL_SECONDS = 600

DEFAULT_TOKEN_TIMEOUT_SECONDS = 10.0
DEFAULT_PORT = 3000

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True)
class Settings:
    client_id: str
    client_secret: str
    redirect_uri: str
    authorize_url: str
    token_url: str
    userinfo_url: str | None = None
    auth_server_url: str | None = None
    scope: str = DEFAULT_SCOPE
    state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
    token_timeout_seconds: float = DEFAULT_TOKEN_TIMEOUT_SECONDS
    app_url: str | None = None
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    @property
    def callback_path(self) -> str:
        """Path the AS redirects back to; must match the registered redirect URI."""
        path = urlparse(self.redirect_uri).path
        return path or DEFAULT_CALLBACK_PATH


def _get(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name, "").strip()
    return value or None


def _endpoint(environ: Mapping[str, str], url_var: str, path_var: str, default_path: str, base: str | None) -> str | None:
    """Full URL from url_var wins; otherwise base URL + path (path_var or default)."""
    full = _get(environ, url_var)
    if full:
        return full
    if not base:
        return None
    return f"{base}{_get(environ, path_var) or default_path}"


def _positive_number(environ: Mapping[str, str], name: str, default, cast):
    raw = _get(environ, name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _check_url(name: str, url: str) -> None:
    """Endpoint URLs must be absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError as e:
        raise ConfigError(f"{name} is not a valid URL ({e}): {url!r}") from None
    if parsed.scheme not in ("http", "https") or not host:
        raise ConfigError(f"{name} must be an absolute http(s) URL, got {url!r}")


def _log_level(environ: Mapping[str, str]) -> str:
    level = (_get(environ, "LOG_LEVEL") or "INFO").upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
    return level


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Build Settings from environment variables. Raises ConfigError listing every missing
    required variable, so misconfiguration shows up at startup instead of at token exchange.
    """
    if environ is None:
        environ = os.environ

    base = _get(environ, "AUTH_SERVER_URL")
    if base:
        base = base.rstrip("/")

    authorize_url = _endpoint(environ, "OAUTH_AUTHORIZE_URL", "OAUTH_AUTHORIZE_PATH", DEFAULT_AUTHORIZE_PATH, base)
    token_url = _endpoint(environ, "OAUTH_TOKEN_URL", "OAUTH_TOKEN_PATH", DEFAULT_TOKEN_PATH, base)
    userinfo_url = _get(environ, "OAUTH_USERINFO_URL") or (f"{base}{DEFAULT_USERINFO_PATH}" if base else None)

    client_id = _get(environ, "OAUTH_CLIENT_ID")
    client_secret = _get(environ, "OAUTH_CLIENT_SECRET")
    redirect_uri = _get(environ, "OAUTH_REDIRECT_URI")

    missing = [
        name
        for name, value in [
            ("OAUTH_CLIENT_ID", client_id),
            ("OAUTH_CLIENT_SECRET", client_secret),
            ("OAUTH_REDIRECT_URI", redirect_uri),
        ]
        if not value
    ]
    if not authorize_url:
        missing.append("AUTH_SERVER_URL or OAUTH_AUTHORIZE_URL")
    if not token_url:
        missing.append("AUTH_SERVER_URL or OAUTH_TOKEN_URL")
    if missing:
        raise ConfigError("Missing required configuration: " + ", ".join(missing))

    _check_url("OAUTH_AUTHORIZE_URL" if _get(environ, "OAUTH_AUTHORIZE_URL") else "AUTH_SERVER_URL", authorize_url)
    _check_url("OAUTH_TOKEN_URL" if _get(environ, "OAUTH_TOKEN_URL") else "AUTH_SERVER_URL", token_url)
    _check_url("OAUTH_REDIRECT_URI", redirect_uri)

    return Settings(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        authorize_url=authorize_url,
        token_url=token_url,
        userinfo_url=userinfo_url,
        auth_server_url=base,
        scope=_get(environ, "OAUTH_SCOPE") or DEFAULT_SCOPE,
        state_ttl_seconds=_positive_number(environ, "OAUTH_STATE_TTL_SECONDS", DEFAULT_STATE_TTL_SECONDS, int),
        token_timeout_seconds=_positive_number(
            environ, "OAUTH_TOKEN_TIMEOUT_SECONDS", DEFAULT_TOKEN_TIMEOUT_SECONDS, float
        ),
        app_url=_get(environ, "APP_URL"),
        port=_positive_number(environ, "PORT", DEFAULT_PORT, int),
        log_level=_log_level(environ),
    )
