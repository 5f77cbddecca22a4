"""Email allow-list.

Comparison is case-insensitive: both the configured addresses and the
provider's email are stripped and lower-cased.
"""

import logging
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class AllowList:
    """Immutable set of authorized email addresses."""

    def __init__(self, emails: Iterable[str]):
        self._emails = frozenset(e.strip().lower() for e in emails if e and e.strip())
        if not self._emails:
            logger.warning("[GATE] Allow-list is empty, every sign-in will be denied")

    def __len__(self) -> int:
        return len(self._emails)

    def __contains__(self, email) -> bool:
        return self.check(email)

    def check(self, email: Optional[str]) -> bool:
        if not email or not isinstance(email, str):
            return False
        allowed = email.strip().lower() in self._emails
        if not allowed:
            logger.warning(f"[GATE] Email not on allow-list: {email}")
        return allowed
