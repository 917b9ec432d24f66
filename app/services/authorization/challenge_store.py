"""Single-use signing challenges, kept in process memory."""

import secrets
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional

from cachetools import TTLCache

from app.lib.logger import configure_logger
from app.lib.utils import normalize_address

from .errors import (
    ChallengeAlreadyUsedError,
    ChallengeCapacityError,
    ChallengeContextMismatchError,
    ChallengeExpiredError,
    ChallengeNotFoundError,
)

logger = configure_logger(__name__)


def _default_token() -> str:
    return secrets.token_urlsafe(32)


@dataclass
class Challenge:
    value: str
    chat_id: str
    user: str
    issued_at: float
    expires_at: float
    consumed: bool = False
    # Telegram user id the grant applies to, when the challenge came from a bot link
    member_id: Optional[str] = None

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


class ChallengeStore:
    """Issues challenges and consumes each one at most once.

    Entries stay in the cache for `ttl_seconds + retention_seconds` so that a
    replay or a late attempt is reported as already used or expired rather than
    unknown. The cache is bounded. When it is full, consumed and expired
    entries are dropped to make room; live challenges are never evicted, and
    a new issue is refused with ChallengeCapacityError instead.
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        retention_seconds: int = 300,
        max_entries: int = 100000,
        clock: Callable[[], float] = time.time,
        token_factory: Callable[[], str] = _default_token,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._token_factory = token_factory
        self._lock = threading.Lock()
        self._challenges: TTLCache = TTLCache(
            maxsize=max_entries,
            ttl=ttl_seconds + max(retention_seconds, 0),
            timer=clock,
        )

    def _make_room(self, now: float) -> None:
        cache = self._challenges
        cache.expire()
        if len(cache) < cache.maxsize:
            return
        spent = [
            value
            for value, challenge in cache.items()
            if challenge.consumed or now >= challenge.expires_at
        ]
        for value in spent:
            del cache[value]
        if len(cache) >= cache.maxsize:
            logger.warning(
                "Challenge store full",
                extra={"event_type": "challenge_store_full", "size": len(cache)},
            )
            raise ChallengeCapacityError("Challenge store is full of live challenges")

    def issue(
        self, chat_id: str, user: str, member_id: Optional[str] = None
    ) -> Challenge:
        now = self._clock()
        with self._lock:
            self._make_room(now)
            value = self._token_factory()
            while value in self._challenges:
                value = self._token_factory()
            challenge = Challenge(
                value=value,
                chat_id=str(chat_id),
                user=normalize_address(user),
                issued_at=now,
                expires_at=now + self.ttl_seconds,
                member_id=str(member_id) if member_id is not None else None,
            )
            self._challenges[value] = challenge

        logger.info(
            "Challenge issued",
            extra={
                "event_type": "challenge_issued",
                "chat_id": challenge.chat_id,
                "user": challenge.user,
            },
        )
        return replace(challenge)

    def consume(self, value: str, chat_id: str, user: str) -> Challenge:
        """Validate a challenge for this chat and user and mark it used.

        Raises:
            ChallengeNotFoundError: never issued, or dropped after retention
            ChallengeAlreadyUsedError: consumed by an earlier call
            ChallengeExpiredError: presented after its expiry
            ChallengeContextMismatchError: issued for another chat or user
        """
        with self._lock:
            challenge = self._challenges.get(value)
            if challenge is None:
                raise ChallengeNotFoundError("Challenge not found")
            if challenge.consumed:
                raise ChallengeAlreadyUsedError("Challenge already used")
            if self._clock() >= challenge.expires_at:
                raise ChallengeExpiredError("Challenge expired")
            if challenge.chat_id != str(chat_id) or challenge.user != normalize_address(
                user
            ):
                raise ChallengeContextMismatchError(
                    "Challenge was issued for a different chat or user"
                )
            # Mutated in place so the retention window is not restarted
            challenge.consumed = True
            return replace(challenge)

    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)
