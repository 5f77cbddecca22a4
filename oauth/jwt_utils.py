"""JWT utilities for the session cookie.

The cookie carries only a signed session id. The email lives in the store
under that id, so a valid signature alone never signs anybody in.
"""

import logging
import time
from typing import Optional

import jwt

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
TOKEN_TYPE = "session"


def create_session_token(
    session_id: str,
    secret: str,
    expires_in: int,
    issuer: str = None,
) -> str:
    """Create a signed session cookie value.

    Args:
        session_id: Opaque session identifier
        secret: HMAC signing secret
        expires_in: Lifetime in seconds, same as the cookie max-age
        issuer: Optional issuer (the gateway's base URL)

    Returns:
        A signed JWT string
    """
    now = int(time.time())
    payload = {
        "sid": session_id,
        "iat": now,
        "exp": now + expires_in,
        "type": TOKEN_TYPE,
    }
    if issuer:
        payload["iss"] = issuer
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def verify_session_token(token: str, secret: str, issuer: str = None) -> Optional[dict]:
    """Verify and decode a session cookie value.

    Returns:
        The payload (sid, iat, exp, type) if valid, None otherwise.
    """
    if not token:
        return None

    try:
        options = {"require": ["exp", "iat", "sid"]}
        if issuer:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[JWT_ALGORITHM],
                options=options,
                issuer=issuer
            )
        else:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[JWT_ALGORITHM],
                options=options
            )
    except jwt.ExpiredSignatureError:
        logger.debug("[JWT] Session token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"[JWT] Invalid session token: {e}")
        return None

    if payload.get("type") != TOKEN_TYPE or not payload.get("sid"):
        logger.debug("[JWT] Token is not a session token")
        return None

    return payload
