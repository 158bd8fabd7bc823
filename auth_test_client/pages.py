"""
HTML pages for the test client. Every interpolated value is escaped.
"""
import html
import json
from typing import Any

from fastapi.responses import HTMLResponse

from auth_test_client.config import Settings
from auth_test_client.errors import AuthServerError, FlowError


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
{body}
</body>
</html>""",
        status_code=status_code,
    )


def _code(value: str | None) -> str:
    return f"<code>{html.escape(value)}</code>" if value else "<em>(not set)</em>"


def home_page(settings: Settings, login_path: str = "/login") -> HTMLResponse:
    """Shows the configured AS endpoints and a link to start the flow."""
    title = "Auth Test App"
    if settings.app_url:
        title += f" ({settings.app_url})"
    return _page(
        "OAuth Test Client",
        f"""  <h1>Welcome to the {html.escape(title)}!</h1>
  <p>This application is designed to test your authentication server.</p>
  <p>Your configured Auth Server: {_code(settings.auth_server_url)}</p>
  <p>Your Client ID: {_code(settings.client_id)}</p>
  <p>Your Redirect URI: {_code(settings.redirect_uri)}</p>
  <p>Requested scope: {_code(settings.scope)}</p>
  <hr>
  <p><strong>OAuth Endpoints:</strong></p>
  <ul>
    <li>Authorization: {_code(settings.authorize_url)}</li>
    <li>Token: {_code(settings.token_url)}</li>
    <li>User Info: {_code(settings.userinfo_url)}</li>
  </ul>
  <hr>
  <p><a href="{html.escape(login_path)}">Click here to initiate the OAuth/OIDC login flow</a></p>
  <p>Check the server logs for more details during the flow.</p>""",
    )


def success_page(tokens: dict[str, Any], claims: dict[str, Any] | None = None) -> HTMLResponse:
    """Token payload as indented JSON; decoded (unverified) id_token claims when present."""
    claims_html = ""
    if claims is not None:
        claims_html = f"""
  <h2>ID token claims (signature not verified)</h2>
  <pre>{html.escape(json.dumps(claims, indent=2))}</pre>"""
    return _page(
        "Authentication Successful",
        f"""  <h1>Authentication Successful!</h1>
  <p>Authorization Code received and exchanged for tokens.</p>
  <pre>{html.escape(json.dumps(tokens, indent=2))}</pre>{claims_html}
  <p><a href="/">Go back to home</a></p>""",
    )


def error_page(error: FlowError) -> HTMLResponse:
    """400 for client-attributable failures, 500 for token endpoint failures (error.status_code)."""
    if isinstance(error, AuthServerError):
        detail = f"<p>Error code: <code>{html.escape(error.error)}</code></p>"
    else:
        detail = f"<p>Kind: <code>{html.escape(error.kind)}</code></p>"
    return _page(
        "Authentication failed",
        f"""  <h1>Authentication failed</h1>
  <p>{html.escape(error.message)}</p>
  {detail}
  <p><a href="/">Home</a></p>""",
        status_code=error.status_code,
    )
