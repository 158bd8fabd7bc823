"""
HTTP surface: GET /, /health, /favicon.ico, /login and the callback (path taken from the redirect URI).
"""
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse

from auth_test_client.config import Settings
from auth_test_client.flow import FlowController, id_token_claims
from auth_test_client.pages import error_page, home_page, success_page

LOGIN_PATH = "/login"


def get_flow(request: Request) -> FlowController:
    """Dependency: the controller wired onto app.state by create_app."""
    return request.app.state.flow


def build_router(settings: Settings) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "auth_test_client"}

    @router.get("/favicon.ico", include_in_schema=False)
    def favicon():
        return Response(status_code=204)

    @router.get("/", response_class=HTMLResponse)
    def home(flow: FlowController = Depends(get_flow)):
        """Configured endpoints and a login link."""
        return home_page(flow.settings, login_path=LOGIN_PATH)

    @router.get(LOGIN_PATH)
    def login(flow: FlowController = Depends(get_flow)):
        """Issue a state token and redirect to the AS /authorize."""
        redirect = flow.initiate()
        return RedirectResponse(url=redirect.url, status_code=302)

    def callback(
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
        flow: FlowController = Depends(get_flow),
    ):
        """
        AS redirects here with ?code=...&state=... or ?error=...&error_description=...
        Validates state, exchanges the code and shows the token response.
        """
        outcome = flow.handle_callback(code=code, state=state, error=error, error_description=error_description)
        if not outcome.ok:
            return error_page(outcome.error)
        return success_page(outcome.tokens, id_token_claims(outcome.tokens))

    router.add_api_route(settings.callback_path, callback, methods=["GET"], response_class=HTMLResponse)
    return router
