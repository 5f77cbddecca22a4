"""Sign-in gateway - runs in front of a single-page app.

Signs users in through an external OAuth2 identity provider, admits only
allow-listed email addresses and keeps a server-side session per browser.

Routes (GET only, everything else is 404):
- /                 status page
- /signin           start the authorization code flow
- /callback         provider redirect target
- /fetch-user-info  identity fetch + allow-list check
- /signout          end the session
"""
import logging

from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from supabase import create_client, Client

from config import Config, load_config
from logging_config import LEVELS, setup_logging
from oauth.client import OAuthClient
from oauth.endpoints import init_gateway, render_error, router as auth_router
from oauth.errors import GatewayError, NotFound, UpstreamError
from oauth.middleware import GetOnlyMiddleware
from oauth.stores import KVStore, create_store

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_supabase_client(config: Config):
    """Supabase client, or None when not configured."""
    if not (config.supabase_url and config.supabase_key):
        return None
    client: Client = create_client(config.supabase_url, config.supabase_key)
    return client


def create_app(
    config: Config,
    store: KVStore = None,
    oauth_client: OAuthClient = None,
    supabase_client=None,
) -> FastAPI:
    """Build the FastAPI app around one configuration."""
    if store is None:
        store = create_store(config, supabase_client)

    if not config.is_valid():
        logger.warning(f"[STARTUP] Missing configuration: {', '.join(config.missing())}")
    if config.session_secret_generated:
        logger.warning("[STARTUP] SESSION_SECRET not set, sessions will not survive a restart")
    logger.info(f"[STARTUP] BASE_URL: {config.base_url}")
    logger.info(f"[STARTUP] Secure cookies: {config.cookie_secure}")
    logger.info(f"[STARTUP] Allow-list size: {len(config.allowed_emails)}")

    app = FastAPI(
        title="Simple OAuth Gate",
        description="OAuth2 sign-in gateway with an email allow-list",
        version=VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(GetOnlyMiddleware)

    init_gateway(app, config, store, oauth_client)
    app.include_router(auth_router)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if isinstance(exc, UpstreamError):
            logger.error(f"[HTTP] Upstream failure on {request.url.path}: {exc.detail}")
        return render_error(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return render_error(NotFound())
        error = GatewayError(str(exc.detail))
        error.status_code = exc.status_code
        return render_error(error)

    return app


# ============== Module App ==============

config = load_config()
supabase = create_supabase_client(config)
setup_logging(
    service_name=config.service_name,
    supabase_client=supabase,
    level=LEVELS.get(config.log_level, logging.INFO),
    json_output=config.log_json,
)
app = create_app(config, supabase_client=supabase)


# ============== Main Entry Point ==============

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting gateway on {config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port)
