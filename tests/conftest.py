# Shared fixtures: an in-memory store, a fake identity provider behind
# httpx.MockTransport, and a TestClient speaking https so Secure cookies
# round-trip.

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from config import Config
from oauth.client import OAuthClient
from oauth.stores import MemoryKVStore

BASE_URL = "https://gate.example.com"

TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class FakeProvider:
    """Token and user-info endpoints of an identity provider."""

    def __init__(self):
        self.email = "a@b.com"
        self.verified = True
        self.token_status = 200
        self.userinfo_status = 200
        self.token_error: Exception | None = None
        self.calls: list[httpx.Request] = []

    def token_calls(self) -> list[httpx.Request]:
        return [r for r in self.calls if str(r.url) == TOKEN_URL]

    def userinfo_calls(self) -> list[httpx.Request]:
        return [r for r in self.calls if str(r.url) == USERINFO_URL]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if str(request.url) == TOKEN_URL:
            if self.token_error is not None:
                raise self.token_error
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={
                "access_token": "access-token-1",
                "token_type": "Bearer",
                "expires_in": 3599,
                "scope": "email profile",
                "id_token": "id-token-1",
            })
        if str(request.url) == USERINFO_URL:
            if self.userinfo_status != 200:
                return httpx.Response(self.userinfo_status, json={"error": "invalid_token"})
            assert request.headers["Authorization"] == "Bearer access-token-1"
            return httpx.Response(200, json={
                "id": "1234",
                "email": self.email,
                "verified_email": self.verified,
            })
        return httpx.Response(404)


def make_config(**overrides) -> Config:
    data = {
        "GOOGLE_CLIENT_ID": "client-id",
        "GOOGLE_CLIENT_SECRET": "client-secret",
        "BASE_URL": BASE_URL,
        "ALLOWED_EMAILS": "a@b.com",
        "SESSION_SECRET": "test-session-secret",
    }
    data.update(overrides)
    return Config(data)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def store():
    return MemoryKVStore()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def oauth_client(config, provider):
    return OAuthClient(config, transport=httpx.MockTransport(provider.handler))


@pytest.fixture
def app(config, store, oauth_client):
    from main import create_app

    return create_app(config, store=store, oauth_client=oauth_client)


@pytest.fixture
def client(app):
    return TestClient(app, base_url=BASE_URL)


def start_sign_in(client) -> str:
    """GET /signin and return the state sent to the provider."""
    response = client.get("/signin", follow_redirects=False)
    assert response.status_code == 302
    query = parse_qs(urlparse(response.headers["location"]).query)
    return query["state"][0]


def sign_in(client, provider, email="a@b.com"):
    """Run the whole flow and return the /fetch-user-info response."""
    provider.email = email
    state = start_sign_in(client)
    response = client.get(
        "/callback", params={"code": "auth-code", "state": state}, follow_redirects=False
    )
    assert response.status_code == 302
    assert response.headers["location"] == "/fetch-user-info"
    return client.get("/fetch-user-info", follow_redirects=False)
