"""Server-side sessions and the cookies that point at them.

Store records (see oauth.stores):
- ("oauth_tokens", session_id) -> provider tokens, only between /callback
  and /fetch-user-info, consumed on first read
- ("user_email", session_id) -> {"email", "created_at"}, for the session lifetime

A session counts as signed in only when its cookie verifies AND the
user_email record exists.
"""

import logging
import secrets
import time
from typing import Optional

from fastapi import Request, Response

from logging_config import mask
from oauth.client import OAuthTokens
from oauth.jwt_utils import create_session_token, verify_session_token
from oauth.stores import KVStore, OAUTH_TOKENS, USER_EMAIL

logger = logging.getLogger(__name__)

SESSION_COOKIE = "oauth-session"
STATE_COOKIE = "oauth-state"
HOST_PREFIX = "__Host-"


def cookie_name(base: str, secure: bool) -> str:
    """Browsers only accept the __Host- prefix on Secure cookies."""
    return f"{HOST_PREFIX}{base}" if secure else base


def auth_cookie_names() -> list[str]:
    """Every cookie name this gateway may have set, in either mode."""
    names = []
    for base in (SESSION_COOKIE, STATE_COOKIE):
        names.append(cookie_name(base, secure=True))
        names.append(cookie_name(base, secure=False))
    return names


class SessionManager:
    """Creates, reads and tears down sessions."""

    def __init__(self, store: KVStore, config):
        self.store = store
        self.config = config

    @property
    def session_cookie_name(self) -> str:
        return cookie_name(SESSION_COOKIE, self.config.cookie_secure)

    @property
    def state_cookie_name(self) -> str:
        return cookie_name(STATE_COOKIE, self.config.cookie_secure)

    # ============== Identity ==============

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(32)

    def session_cookie_value(self, session_id: str) -> str:
        return create_session_token(
            session_id,
            self.config.session_secret,
            expires_in=self.config.session_max_age,
            issuer=self.config.base_url,
        )

    def read_session_id(self, request: Request) -> Optional[str]:
        """Session id from a correctly signed, unexpired cookie."""
        token = request.cookies.get(self.session_cookie_name)
        payload = verify_session_token(token, self.config.session_secret, issuer=self.config.base_url)
        if not payload:
            return None
        return payload["sid"]

    def read_state_key(self, request: Request) -> Optional[str]:
        return request.cookies.get(self.state_cookie_name) or None

    async def is_signed_in(self, request: Request) -> Optional[str]:
        session_id = self.read_session_id(request)
        if session_id is None:
            return None
        if await self.current_email(session_id) is None:
            return None
        return session_id

    # ============== Records ==============

    async def establish(self, session_id: str, email: str) -> None:
        # Tokens must not outlive session establishment
        await self.store.delete((OAUTH_TOKENS, session_id))
        record = {"email": email, "created_at": int(time.time())}
        await self.store.set((USER_EMAIL, session_id), record, ttl=self.config.session_max_age)
        logger.info(f"[SESSION] Session {mask(session_id)} established for {email}")

    async def current_email(self, session_id: Optional[str]) -> Optional[str]:
        if not session_id:
            return None
        record = await self.store.get((USER_EMAIL, session_id))
        if not record:
            return None
        return record.get("email")

    async def terminate(self, session_id: Optional[str]) -> None:
        """Drop every record of the session. Safe to call repeatedly."""
        if not session_id:
            return
        await self.store.delete((USER_EMAIL, session_id))
        await self.store.delete((OAUTH_TOKENS, session_id))
        logger.info(f"[SESSION] Session {mask(session_id)} terminated")

    async def stash_tokens(self, session_id: str, tokens: OAuthTokens) -> None:
        await self.store.set((OAUTH_TOKENS, session_id), tokens.to_dict(), ttl=self.config.tokens_ttl)

    async def take_tokens(self, session_id: str) -> Optional[OAuthTokens]:
        """Read and delete the pending tokens of a session.

        Two concurrent requests for one session may both read the record
        before either delete lands. Both then run the same user-info check
        and end in the same establish or terminate.
        """
        key = (OAUTH_TOKENS, session_id)
        data = await self.store.get(key)
        await self.store.delete(key)
        if data is None:
            return None
        return OAuthTokens.from_dict(data)

    # ============== Cookies ==============

    def set_session_cookie(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            self.session_cookie_name,
            self.session_cookie_value(session_id),
            max_age=self.config.session_max_age,
            path="/",
            secure=self.config.cookie_secure,
            httponly=True,
            samesite="lax",
        )

    def set_state_cookie(self, response: Response, state_key: str) -> None:
        response.set_cookie(
            self.state_cookie_name,
            state_key,
            max_age=self.config.state_ttl,
            path="/",
            secure=self.config.cookie_secure,
            httponly=True,
            samesite="lax",
        )

    def _clear(self, response: Response, name: str) -> None:
        response.delete_cookie(
            name,
            path="/",
            secure=name.startswith(HOST_PREFIX) or self.config.cookie_secure,
            httponly=True,
            samesite="lax",
        )

    def clear_state_cookie(self, response: Response) -> None:
        self._clear(response, self.state_cookie_name)

    def clear_auth_cookies(self, response: Response) -> None:
        """Expire every auth cookie in one response."""
        for name in auth_cookie_names():
            self._clear(response, name)
