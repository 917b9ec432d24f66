"""Signed member tokens for the links agent bots hand out.

A bot knows which Telegram member joined its chat; the signing page does not.
The bot signs `(chat_id, member_id, expiry)` with a secret shared with the API,
so a challenge can only name a member who actually received a sign link.
"""

import hashlib
import hmac
import time
from typing import Any, Callable, Optional

from app.lib.logger import configure_logger

logger = configure_logger(__name__)


class MemberLinkSigner:
    def __init__(
        self,
        secret: str,
        ttl_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("secret must not be empty")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._key = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _digest(self, chat_id: Any, member_id: Any, expires_at: int) -> str:
        message = f"{chat_id}:{member_id}:{expires_at}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def sign(self, chat_id: Any, member_id: Any) -> str:
        """Token of the form `<expiry>.<hex hmac-sha256>`."""
        expires_at = int(self._clock()) + self.ttl_seconds
        return f"{expires_at}.{self._digest(chat_id, member_id, expires_at)}"

    def verify(self, chat_id: Any, member_id: Any, token: Optional[str]) -> bool:
        if not token:
            return False
        expiry, _, digest = token.partition(".")
        try:
            expires_at = int(expiry)
        except ValueError:
            return False
        if self._clock() >= expires_at:
            logger.debug(
                "Member token expired",
                extra={"chat_id": str(chat_id), "member_id": str(member_id)},
            )
            return False
        expected = self._digest(chat_id, member_id, expires_at)
        return hmac.compare_digest(expected.encode("ascii"), digest.encode("utf-8"))


def build_member_link_signer(
    secret: str, ttl_seconds: int = 86400
) -> Optional[MemberLinkSigner]:
    if not secret:
        logger.warning(
            "SHAREGATE_MEMBER_LINK_SECRET is not set, member ids are not verified",
            extra={"event_type": "member_link_unsigned"},
        )
        return None
    return MemberLinkSigner(secret, ttl_seconds=ttl_seconds)
