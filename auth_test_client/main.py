"""
OAuth 2.0 / OIDC Authorization Code Flow test client.
Point it at an authorization server, log in via /login and see the token response at the callback.
Run: python -m auth_test_client.main (port from PORT, default 3000).
"""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from auth_test_client.config import Settings, load_settings
from auth_test_client.flow import FlowController
from auth_test_client.routes import build_router
from auth_test_client.state_store import InMemoryStateStore, StateStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    state_store: StateStore | None = None,
    http_client: httpx.Client | None = None,
) -> FastAPI:
    """
    Build the app. Settings are loaded from the environment when not given (raises ConfigError
    on missing values). An http client created here is closed on shutdown; a passed-in one is not.
    """
    if settings is None:
        settings = load_settings()
    if state_store is None:
        state_store = InMemoryStateStore(ttl_seconds=settings.state_ttl_seconds)
    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.Client(timeout=settings.token_timeout_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Auth Server URL: %s", settings.auth_server_url)
        logger.info("OAuth Client ID: %s", settings.client_id)
        logger.info("OAuth Redirect URI: %s (callback path %s)", settings.redirect_uri, settings.callback_path)
        yield
        if owns_client:
            http_client.close()

    app = FastAPI(title="Auth Test Client", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.flow = FlowController(settings, state_store, http_client)
    app.include_router(build_router(settings))
    return app


if __name__ == "__main__":
    import uvicorn

    _settings = load_settings()
    logging.basicConfig(
        level=_settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "auth_test_client.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=_settings.port,
    )
