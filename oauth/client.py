"""OAuth 2.0 client for the upstream identity provider.

Builds the authorization URL, exchanges the authorization code for tokens
and fetches the user's profile. Defaults target Google; any provider that
speaks the plain authorization code flow works via the endpoint settings.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx

from oauth.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class OAuthTokens:
    """Tokens returned by the provider's token endpoint."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    scope: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "OAuthTokens":
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            expires_in=data.get("expires_in"),
            refresh_token=data.get("refresh_token"),
            id_token=data.get("id_token"),
            scope=data.get("scope"),
        )

    def to_dict(self) -> dict:
        return asdict(self)


class OAuthClient:
    """Authorization code flow against one provider."""

    def __init__(self, config, transport: httpx.AsyncBaseTransport = None):
        self.config = config
        self._transport = transport

    @property
    def authorization_endpoint(self) -> str:
        return self.config.authorization_endpoint

    @property
    def token_endpoint(self) -> str:
        return self.config.token_endpoint

    @property
    def scope(self) -> str:
        return self.config.scope

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.http_timeout, transport=self._transport)

    def authorization_url(self, state: str) -> str:
        """Provider URL the browser is sent to, carrying `state`."""
        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "scope": self.config.scope,
            "state": state,
            "access_type": "online",
        }
        return f"{self.config.authorization_endpoint}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange an authorization code for tokens.

        Codes are single use, so a failure here is final.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        try:
            async with self._http() as client:
                response = await client.post(
                    self.config.token_endpoint,
                    data=data,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                detail=f"Token endpoint returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(detail=f"Token endpoint request failed: {e!r}") from e
        except ValueError as e:
            raise UpstreamError(detail="Token endpoint returned invalid JSON") from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise UpstreamError(detail="Token endpoint response has no access_token")

        logger.info("[OAUTH] Authorization code exchanged for tokens")
        return OAuthTokens.from_dict(payload)

    async def fetch_user_info(self, access_token: str) -> dict:
        """Fetch the signed-in user's profile; must include an email."""
        try:
            async with self._http() as client:
                response = await client.get(
                    self.config.userinfo_endpoint,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
                user_info = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                detail=f"User-info endpoint returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(detail=f"User-info request failed: {e!r}") from e
        except ValueError as e:
            raise UpstreamError(detail="User-info endpoint returned invalid JSON") from e

        if not isinstance(user_info, dict) or not user_info.get("email"):
            raise UpstreamError(detail="User-info response has no email")

        return user_info
