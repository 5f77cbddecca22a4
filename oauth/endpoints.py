"""Sign-in flow endpoints.

This module contains the five routes of the gateway:
- Status page (/)
- Start of the authorization code flow (/signin)
- Provider redirect target (/callback)
- Identity fetch and allow-list check (/fetch-user-info)
- Sign out (/signout)

No state is kept in the process between requests; everything goes through
the session manager and the state binding, which share one store.
"""

import html
import logging
from dataclasses import dataclass

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from logging_config import mask
from oauth.client import OAuthClient
from oauth.errors import (
    AuthorizationDenied,
    GatewayError,
    MissingCode,
    MissingState,
    MissingStateKey,
    ProviderDenied,
    UpstreamError,
)
from oauth.gate import AllowList
from oauth.sessions import SessionManager
from oauth.state import StateBinding
from oauth.stores import KVStore
from oauth.templates import ERROR_PAGE, ERROR_TITLES, INDEX_PAGE, SIGNED_IN_AS

logger = logging.getLogger(__name__)

# Router for sign-in endpoints
router = APIRouter(tags=["auth"])


@dataclass
class Gateway:
    """Everything a request handler needs, built once at startup."""

    config: object
    store: KVStore
    state: StateBinding
    sessions: SessionManager
    allow_list: AllowList
    oauth_client: OAuthClient


def init_gateway(app: FastAPI, config, store: KVStore, oauth_client: OAuthClient = None) -> Gateway:
    """Wire the components and attach them to the app.

    Must be called before the app serves requests.
    """
    gateway = Gateway(
        config=config,
        store=store,
        state=StateBinding(store, ttl_seconds=config.state_ttl),
        sessions=SessionManager(store, config),
        allow_list=AllowList(config.allowed_emails),
        oauth_client=oauth_client or OAuthClient(config),
    )
    app.state.gateway = gateway
    return gateway


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def render_error(error: GatewayError) -> HTMLResponse:
    """HTML page for a gateway error. Only the public message is shown."""
    status_code = error.status_code
    body = ERROR_PAGE.format(
        status_code=status_code,
        title=ERROR_TITLES.get(status_code, "Error"),
        message=html.escape(error.message),
    )
    return HTMLResponse(body, status_code=status_code)


# ============== Status Page ==============

@router.get("/")
async def index(request: Request, gateway: Gateway = Depends(get_gateway)):
    """Sign-in status."""
    session_id = gateway.sessions.read_session_id(request)
    email = await gateway.sessions.current_email(session_id)

    body = INDEX_PAGE.format(
        authorization_endpoint=html.escape(gateway.oauth_client.authorization_endpoint),
        token_endpoint=html.escape(gateway.oauth_client.token_endpoint),
        scope=html.escape(gateway.oauth_client.scope),
        signed_in="true" if email else "false",
        signed_in_as=SIGNED_IN_AS.format(email=html.escape(email)) if email else "",
    )
    return HTMLResponse(body)


# ============== Authorization Code Flow ==============

@router.get("/signin")
async def signin(request: Request, gateway: Gateway = Depends(get_gateway)):
    """Start the flow: bind a fresh state to this browser and go to the provider."""
    if await gateway.sessions.is_signed_in(request):
        return RedirectResponse(url="/", status_code=302)

    pending = await gateway.state.begin()
    url = gateway.oauth_client.authorization_url(pending.state_value)

    response = RedirectResponse(url=url, status_code=302)
    gateway.sessions.set_state_cookie(response, pending.state_key)
    logger.info("[SIGNIN] Redirecting to identity provider")
    return response


@router.get("/callback")
async def callback(
    request: Request,
    code: str = "",
    state: str = "",
    error: str = "",
    gateway: Gateway = Depends(get_gateway),
):
    """Provider redirect target.

    Nothing is sent to the token endpoint unless the state checks pass.
    """
    sessions = gateway.sessions
    try:
        if not state:
            raise MissingState()
        state_key = sessions.read_state_key(request)
        if not state_key:
            raise MissingStateKey()
        await gateway.state.validate_and_consume(state_key, state)

        if error:
            raise ProviderDenied(detail=error)
        if not code:
            raise MissingCode()

        tokens = await gateway.oauth_client.exchange_code(code)
    except UpstreamError as e:
        logger.exception(f"[CALLBACK] Token exchange failed: {e.detail}")
        response = render_error(e)
        sessions.clear_state_cookie(response)
        return response
    except GatewayError as e:
        logger.info(f"[CALLBACK] Rejected callback: {type(e).__name__} {e.detail or ''}".rstrip())
        response = render_error(e)
        sessions.clear_state_cookie(response)
        return response

    # A stale session on this browser is replaced, not left behind
    await sessions.terminate(sessions.read_session_id(request))

    session_id = sessions.new_session_id()
    await sessions.stash_tokens(session_id, tokens)
    logger.info(f"[CALLBACK] Tokens obtained, pending session {mask(session_id)}")

    response = RedirectResponse(url="/fetch-user-info", status_code=302)
    sessions.clear_state_cookie(response)
    sessions.set_session_cookie(response, session_id)
    return response


@router.get("/fetch-user-info")
async def fetch_user_info(request: Request, gateway: Gateway = Depends(get_gateway)):
    """Resolve the user's email and admit or reject the session."""
    sessions = gateway.sessions

    session_id = sessions.read_session_id(request)
    if session_id is None:
        return RedirectResponse(url="/signin", status_code=302)

    tokens = await sessions.take_tokens(session_id)
    if tokens is None:
        if await sessions.current_email(session_id):
            return RedirectResponse(url="/", status_code=302)
        # The cookie points at nothing; drop it with the redirect
        response = RedirectResponse(url="/signin", status_code=302)
        sessions.clear_auth_cookies(response)
        return response

    try:
        user_info = await gateway.oauth_client.fetch_user_info(tokens.access_token)
    except UpstreamError as e:
        logger.exception(f"[USERINFO] Fetching user info failed: {e.detail}")
        await sessions.terminate(session_id)
        response = render_error(e)
        sessions.clear_auth_cookies(response)
        return response

    email = user_info["email"]
    verified = user_info.get("verified_email", user_info.get("email_verified", True))
    if verified is False or not gateway.allow_list.check(email):
        logger.warning(f"[USERINFO] Access denied for {email} (verified={verified})")
        await sessions.terminate(session_id)
        response = render_error(AuthorizationDenied())
        sessions.clear_auth_cookies(response)
        return response

    await sessions.establish(session_id, email)
    return RedirectResponse(url="/", status_code=302)


@router.get("/signout")
async def signout(request: Request, gateway: Gateway = Depends(get_gateway)):
    """Drop the session (if any) and expire every auth cookie."""
    session_id = gateway.sessions.read_session_id(request)
    await gateway.sessions.terminate(session_id)

    response = RedirectResponse(url="/", status_code=302)
    gateway.sessions.clear_auth_cookies(response)
    logger.info("[SIGNOUT] Signed out" if session_id else "[SIGNOUT] No session, cookies cleared")
    return response
