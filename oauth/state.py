"""OAuth `state` binding (CSRF protection).

At sign-in the browser receives a random state key in a cookie, and the
provider receives a separate random state value. The store maps one to the
other for a few minutes. The callback only passes if the cookie's key still
maps to the exact value the provider echoed back.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from logging_config import mask
from oauth.errors import MissingStateKey, StateMismatch, StateNotFound
from oauth.stores import KVStore, OAUTH_STATE

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32  # 256 bits


@dataclass(frozen=True)
class PendingAuthState:
    state_key: str
    state_value: str


class StateBinding:
    """Issues and consumes state key/value pairs."""

    def __init__(self, store: KVStore, ttl_seconds: int):
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def begin(self) -> PendingAuthState:
        pending = PendingAuthState(
            state_key=secrets.token_urlsafe(TOKEN_BYTES),
            state_value=secrets.token_urlsafe(TOKEN_BYTES),
        )
        await self.store.set((OAUTH_STATE, pending.state_key), pending.state_value, ttl=self.ttl_seconds)
        logger.info(f"[STATE] Issued state key {mask(pending.state_key)}")
        return pending

    async def validate_and_consume(self, state_key: Optional[str], returned_state: Optional[str]) -> None:
        """Check the echoed state against the stored one.

        The record is deleted as soon as it has been read, whether or not
        it matched, so each pair is good for one attempt.

        Raises:
            MissingStateKey: no state key cookie.
            StateNotFound: expired, already used, or never issued.
            StateMismatch: stored value differs from `returned_state`.
        """
        if not state_key:
            raise MissingStateKey()

        key = (OAUTH_STATE, state_key)
        stored = await self.store.get(key)
        if stored is None:
            logger.warning(f"[STATE] No pending state for key {mask(state_key)}")
            raise StateNotFound()

        await self.store.delete(key)

        if not returned_state or not hmac.compare_digest(
            str(stored).encode("utf-8"), returned_state.encode("utf-8")
        ):
            logger.warning(f"[STATE] State mismatch for key {mask(state_key)}")
            raise StateMismatch()

        logger.info(f"[STATE] State validated for key {mask(state_key)}")
