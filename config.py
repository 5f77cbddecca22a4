"""Config management for simple-oauth-gate.

The configuration is read once from the environment at process start and
handed to every component. Nothing below mutates it afterwards.
"""
import os
import secrets
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from dotenv import load_dotenv


DEFAULT_SCOPE = (
    "https://www.googleapis.com/auth/userinfo.profile "
    "https://www.googleapis.com/auth/userinfo.email"
)
DEFAULT_AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
DEFAULT_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
DEFAULT_USERINFO_ENDPOINT = "https://www.googleapis.com/oauth2/v2/userinfo"

STATE_TTL_SECONDS = 10 * 60
TOKENS_TTL_SECONDS = 5 * 60
SESSION_MAX_AGE_SECONDS = 90 * 24 * 60 * 60  # 90 days
HTTP_TIMEOUT_SECONDS = 10.0

REQUIRED_VARIABLES = ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "BASE_URL", "ALLOWED_EMAILS")


def parse_allowed_emails(raw: Optional[str]) -> frozenset:
    """Parse a comma separated allow-list into lower-cased addresses."""
    if not raw:
        return frozenset()
    return frozenset(e.strip().lower() for e in raw.split(",") if e.strip())


def _parse_bool(raw: Optional[str]) -> Optional[bool]:
    if raw is None or raw.strip() == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration container (read-only)."""

    def __init__(self, data: dict = None):
        self._data = MappingProxyType(dict(data or {}))
        self._allowed_emails = parse_allowed_emails(self._data.get("ALLOWED_EMAILS"))
        # A random secret invalidates every session on restart; fine for local runs
        self._session_secret_generated = not self._data.get("SESSION_SECRET")
        self._session_secret = self._data.get("SESSION_SECRET") or secrets.token_urlsafe(64)

    @property
    def client_id(self) -> str:
        return self._data.get("GOOGLE_CLIENT_ID", "")

    @property
    def client_secret(self) -> str:
        return self._data.get("GOOGLE_CLIENT_SECRET", "")

    @property
    def base_url(self) -> str:
        return self._data.get("BASE_URL", "http://localhost:8000").rstrip("/")

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url}/callback"

    @property
    def scope(self) -> str:
        return self._data.get("OAUTH_SCOPE") or DEFAULT_SCOPE

    @property
    def authorization_endpoint(self) -> str:
        return self._data.get("OAUTH_AUTHORIZATION_ENDPOINT") or DEFAULT_AUTHORIZATION_ENDPOINT

    @property
    def token_endpoint(self) -> str:
        return self._data.get("OAUTH_TOKEN_ENDPOINT") or DEFAULT_TOKEN_ENDPOINT

    @property
    def userinfo_endpoint(self) -> str:
        return self._data.get("OAUTH_USERINFO_ENDPOINT") or DEFAULT_USERINFO_ENDPOINT

    @property
    def allowed_emails(self) -> frozenset:
        return self._allowed_emails

    @property
    def session_secret(self) -> str:
        return self._session_secret

    @property
    def session_secret_generated(self) -> bool:
        return self._session_secret_generated

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies unless overridden; defaults to the BASE_URL scheme."""
        override = _parse_bool(self._data.get("COOKIE_SECURE"))
        if override is not None:
            return override
        return self.base_url.startswith("https://")

    @property
    def state_ttl(self) -> int:
        return int(self._data.get("STATE_TTL_SECONDS") or STATE_TTL_SECONDS)

    @property
    def tokens_ttl(self) -> int:
        return int(self._data.get("TOKENS_TTL_SECONDS") or TOKENS_TTL_SECONDS)

    @property
    def session_max_age(self) -> int:
        return int(self._data.get("SESSION_MAX_AGE_SECONDS") or SESSION_MAX_AGE_SECONDS)

    @property
    def http_timeout(self) -> float:
        return float(self._data.get("HTTP_TIMEOUT_SECONDS") or HTTP_TIMEOUT_SECONDS)

    @property
    def supabase_url(self) -> str:
        return self._data.get("SUPABASE_URL", "")

    @property
    def supabase_key(self) -> str:
        return self._data.get("SUPABASE_KEY", "")

    @property
    def kv_table(self) -> str:
        return self._data.get("KV_TABLE") or "kv_entries"

    @property
    def host(self) -> str:
        return self._data.get("HOST") or "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self._data.get("PORT") or 8000)

    @property
    def service_name(self) -> str:
        return self._data.get("SERVICE_NAME") or "oauth-gate"

    @property
    def log_level(self) -> str:
        return (self._data.get("LOG_LEVEL") or "INFO").upper()

    @property
    def log_json(self) -> bool:
        return (self._data.get("LOG_FORMAT") or "plain").lower() == "json"

    def missing(self) -> list[str]:
        """Names of required variables that are not set."""
        return [name for name in REQUIRED_VARIABLES if not self._data.get(name)]

    def is_valid(self) -> bool:
        """Check if config has required fields."""
        return not self.missing()


def load_env_file() -> None:
    """Load .env from the working directory, if present."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)


def load_config(environ: Mapping[str, str] = None) -> Config:
    """Build the process configuration from the environment."""
    if environ is None:
        load_env_file()
        environ = os.environ
    return Config(dict(environ))
