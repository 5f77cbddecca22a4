# Tests for the sign-in flow routes (oauth/endpoints.py, oauth/middleware.py)

import asyncio
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import httpx
from fastapi.testclient import TestClient

from conftest import BASE_URL, sign_in, start_sign_in
from oauth.stores import SupabaseKVStore

STATE_COOKIE = "__Host-oauth-state"
SESSION_COOKIE = "__Host-oauth-session"


def _records(store, prefix):
    return asyncio.run(store.list((prefix,)))


def _set_cookies(response) -> list[str]:
    return response.headers.get_list("set-cookie")


# ---------------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------------


class TestIndex:
    def test_signed_out(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Signed in: false" in response.text
        assert "Signed in as" not in response.text
        assert 'href="/signin"' in response.text
        assert 'href="/signout"' in response.text

    def test_shows_provider_settings(self, client):
        response = client.get("/")
        assert "accounts.google.com/o/oauth2/v2/auth" in response.text
        assert "oauth2.googleapis.com/token" in response.text

    def test_forged_session_cookie_is_ignored(self, client):
        client.cookies.set(SESSION_COOKIE, "not-signed", domain="gate.example.com")
        assert "Signed in: false" in client.get("/").text


# ---------------------------------------------------------------------------
# Full flow scenarios
# ---------------------------------------------------------------------------


class TestSignInFlow:
    def test_allowed_email_signs_in(self, client, provider, store):
        response = sign_in(client, provider, "a@b.com")
        assert response.status_code == 302
        assert response.headers["location"] == "/"

        page = client.get("/").text
        assert "Signed in: true" in page
        assert "Signed in as: a@b.com" in page

        [(key, record)] = _records(store, "user_email")
        assert record["email"] == "a@b.com"
        assert _records(store, "oauth_tokens") == []
        assert _records(store, "oauth_state") == []

    def test_denied_email_gets_403_and_no_session(self, client, provider, store):
        response = sign_in(client, provider, "c@d.com")
        assert response.status_code == 403
        assert "Access denied" in response.text
        assert "c@d.com" not in response.text

        assert _records(store, "user_email") == []
        assert _records(store, "oauth_tokens") == []
        cleared = _set_cookies(response)
        assert any(h.startswith(f"{SESSION_COOKIE}=") and "Max-Age=0" in h for h in cleared)

        assert "Signed in: false" in client.get("/").text

    def test_allow_list_ignores_case(self, client, provider):
        response = sign_in(client, provider, "A@B.com")
        assert response.status_code == 302
        assert "Signed in: true" in client.get("/").text

    def test_unverified_email_is_denied(self, client, provider, store):
        provider.verified = False
        response = sign_in(client, provider, "a@b.com")
        assert response.status_code == 403
        assert _records(store, "user_email") == []

    def test_signin_when_signed_in_redirects_home(self, client, provider):
        sign_in(client, provider)
        response = client.get("/signin", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/"

    def test_fetch_user_info_twice_keeps_session(self, client, provider):
        sign_in(client, provider)
        response = client.get("/fetch-user-info", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert len(provider.userinfo_calls()) == 1


# ---------------------------------------------------------------------------
# GET /signin
# ---------------------------------------------------------------------------


class TestSignin:
    def test_redirects_to_provider_and_sets_state_cookie(self, client, store):
        response = client.get("/signin", follow_redirects=False)
        assert response.status_code == 302

        location = urlparse(response.headers["location"])
        assert location.netloc == "accounts.google.com"
        state = parse_qs(location.query)["state"][0]

        [header] = [h for h in _set_cookies(response) if h.startswith(f"{STATE_COOKIE}=")]
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "SameSite=lax" in header
        assert "Path=/" in header

        state_key = client.cookies.get(STATE_COOKIE)
        assert state_key and state_key != state
        assert _records(store, "oauth_state") == [(("oauth_state", state_key), state)]

    def test_each_signin_gets_its_own_pair(self, client, store):
        first = start_sign_in(client)
        second = start_sign_in(client)
        assert first != second
        assert len(_records(store, "oauth_state")) == 2


# ---------------------------------------------------------------------------
# GET /callback
# ---------------------------------------------------------------------------


class TestCallback:
    def test_missing_state_param(self, client, provider):
        start_sign_in(client)
        response = client.get("/callback", params={"code": "c"}, follow_redirects=False)
        assert response.status_code == 400
        assert "State is missing in query parameters." in response.text
        assert provider.token_calls() == []

    def test_missing_state_key_cookie(self, client, provider):
        response = client.get(
            "/callback", params={"code": "c", "state": "s"}, follow_redirects=False
        )
        assert response.status_code == 400
        assert "State key is missing in cookies." in response.text
        assert provider.token_calls() == []

    def test_state_mismatch(self, client, provider):
        start_sign_in(client)
        response = client.get(
            "/callback", params={"code": "c", "state": "forged"}, follow_redirects=False
        )
        assert response.status_code == 400
        assert "Invalid OAuth state." in response.text
        assert provider.token_calls() == []

    def test_unknown_state_key(self, client, provider):
        client.cookies.set(STATE_COOKIE, "never-issued", domain="gate.example.com")
        response = client.get(
            "/callback", params={"code": "c", "state": "s"}, follow_redirects=False
        )
        assert response.status_code == 400
        assert "Invalid OAuth state." in response.text
        assert provider.token_calls() == []

    def test_malformed_state_key_on_supabase_store(self, config, oauth_client, provider):
        from main import create_app

        app = create_app(config, store=SupabaseKVStore(MagicMock()), oauth_client=oauth_client)
        client = TestClient(app, base_url=BASE_URL)
        client.cookies.set(STATE_COOKIE, "a/b", domain="gate.example.com")

        response = client.get(
            "/callback", params={"code": "c", "state": "s"}, follow_redirects=False
        )
        assert response.status_code == 400
        assert "Invalid OAuth state." in response.text
        assert provider.token_calls() == []

    def test_replayed_callback_is_rejected(self, client, provider):
        state = start_sign_in(client)
        state_key = client.cookies.get(STATE_COOKIE)
        first = client.get(
            "/callback", params={"code": "c", "state": state}, follow_redirects=False
        )
        assert first.status_code == 302

        client.cookies.set(STATE_COOKIE, state_key, domain="gate.example.com")
        replay = client.get(
            "/callback", params={"code": "c", "state": state}, follow_redirects=False
        )
        assert replay.status_code == 400
        assert len(provider.token_calls()) == 1

    def test_success_clears_state_cookie_and_sets_session(self, client, store):
        state = start_sign_in(client)
        response = client.get(
            "/callback", params={"code": "c", "state": state}, follow_redirects=False
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/fetch-user-info"

        headers = _set_cookies(response)
        assert any(h.startswith(f"{STATE_COOKIE}=") and "Max-Age=0" in h for h in headers)
        assert any(h.startswith(f"{SESSION_COOKIE}=") and "HttpOnly" in h for h in headers)
        assert client.cookies.get(STATE_COOKIE) is None

        # Tokens wait for /fetch-user-info; nobody is signed in yet
        assert len(_records(store, "oauth_tokens")) == 1
        assert _records(store, "user_email") == []
        assert "Signed in: false" in client.get("/").text

    def test_provider_error_param(self, client, provider, store):
        state = start_sign_in(client)
        response = client.get(
            "/callback", params={"error": "access_denied", "state": state}, follow_redirects=False
        )
        assert response.status_code == 400
        assert provider.token_calls() == []
        assert _records(store, "oauth_state") == []

    def test_provider_error_with_forged_state_is_invalid_state(self, client, provider):
        start_sign_in(client)
        response = client.get(
            "/callback", params={"error": "access_denied", "state": "forged"}, follow_redirects=False
        )
        assert response.status_code == 400
        assert "Invalid OAuth state." in response.text
        assert provider.token_calls() == []

    def test_missing_code(self, client, provider):
        state = start_sign_in(client)
        response = client.get("/callback", params={"state": state}, follow_redirects=False)
        assert response.status_code == 400
        assert provider.token_calls() == []

    def test_token_exchange_failure_is_500(self, client, provider, store):
        provider.token_status = 400
        state = start_sign_in(client)
        response = client.get(
            "/callback", params={"code": "c", "state": state}, follow_redirects=False
        )
        assert response.status_code == 500
        assert "invalid_grant" not in response.text
        assert _records(store, "oauth_tokens") == []

    def test_token_exchange_timeout_is_500(self, client, provider, caplog):
        provider.token_error = httpx.ConnectTimeout("timed out")
        state = start_sign_in(client)
        response = client.get(
            "/callback", params={"code": "c", "state": state}, follow_redirects=False
        )
        assert response.status_code == 500

        [record] = [r for r in caplog.records if r.name == "oauth.endpoints" and r.levelname == "ERROR"]
        assert record.exc_info is not None


# ---------------------------------------------------------------------------
# GET /fetch-user-info
# ---------------------------------------------------------------------------


class TestFetchUserInfo:
    def test_without_session_redirects_to_signin(self, client):
        response = client.get("/fetch-user-info", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/signin"

    def test_userinfo_failure_rolls_back(self, client, provider, store):
        provider.userinfo_status = 500
        state = start_sign_in(client)
        client.get("/callback", params={"code": "c", "state": state}, follow_redirects=False)

        response = client.get("/fetch-user-info", follow_redirects=False)
        assert response.status_code == 500
        assert _records(store, "oauth_tokens") == []
        assert _records(store, "user_email") == []

    def test_expired_handoff_redirects_to_signin(self, client, provider, store):
        state = start_sign_in(client)
        client.get("/callback", params={"code": "c", "state": state}, follow_redirects=False)
        [(key, _tokens)] = _records(store, "oauth_tokens")
        asyncio.run(store.delete(key))

        response = client.get("/fetch-user-info", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/signin"
        cleared = _set_cookies(response)
        assert any(h.startswith(f"{SESSION_COOKIE}=") and "Max-Age=0" in h for h in cleared)
        assert client.cookies.get(SESSION_COOKIE) is None


# ---------------------------------------------------------------------------
# GET /signout
# ---------------------------------------------------------------------------


class TestSignout:
    def test_signout_ends_session(self, client, provider, store):
        sign_in(client, provider)
        response = client.get("/signout", follow_redirects=False)
        assert response.status_code == 302
        assert _records(store, "user_email") == []
        assert "Signed in: false" in client.get("/").text

    def test_signout_clears_every_auth_cookie(self, client):
        response = client.get("/signout", follow_redirects=False)
        headers = _set_cookies(response)
        for name in ("__Host-oauth-session", "oauth-session", "__Host-oauth-state", "oauth-state"):
            assert any(h.startswith(f"{name}=") and "Max-Age=0" in h for h in headers), name

    def test_signout_is_idempotent(self, client):
        assert client.get("/signout", follow_redirects=False).status_code == 302
        assert client.get("/signout", follow_redirects=False).status_code == 302


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class TestRouting:
    def test_unknown_path_is_404(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert "Not found." in response.text

    def test_non_get_is_404(self, client):
        for method in ("POST", "PUT", "DELETE", "PATCH"):
            response = client.request(method, "/signin")
            assert response.status_code == 404, method

    def test_post_to_callback_does_not_exchange(self, client, provider):
        response = client.post("/callback", params={"code": "c", "state": "s"})
        assert response.status_code == 404
        assert provider.token_calls() == []
