"""Chain adapter interface with shared timeout and retry handling."""

import asyncio
from abc import ABC, abstractmethod
from functools import wraps
from typing import Any, Awaitable, Callable, ClassVar, Optional

from app.lib.logger import configure_logger
from app.lib.utils import normalize_address

from .errors import ChainUnreachableError
from .models import ShareBalance, TradeBatch

logger = configure_logger(__name__)


def retry_on_unreachable(func: Callable[..., Awaitable[Any]]):
    """Retry an adapter coroutine when the chain could not be reached.

    Only infrastructure failures are retried. Signature checks and balance
    answers are final.
    """

    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        for attempt in range(self.MAX_ATTEMPTS):
            try:
                return await func(self, *args, **kwargs)
            except ChainUnreachableError as e:
                if attempt == self.MAX_ATTEMPTS - 1:
                    logger.error(
                        "Chain request failed after all attempts",
                        extra={
                            "chain_type": self.chain_type,
                            "function": func.__name__,
                            "attempts": self.MAX_ATTEMPTS,
                            "error": str(e),
                        },
                    )
                    raise

                retry_delay = self.retry_delay * (2**attempt)  # Exponential backoff
                logger.warning(
                    "Chain request failed, retrying",
                    extra={
                        "chain_type": self.chain_type,
                        "function": func.__name__,
                        "attempt": attempt + 1,
                        "retry_delay_seconds": retry_delay,
                        "error": str(e),
                    },
                )
                await asyncio.sleep(retry_delay)

    return wrapper


class ChainAdapter(ABC):
    """Everything chain-specific the authorization and sync code needs.

    Adding a chain means adding one subclass and registering it; orchestration
    code only talks to this interface.
    """

    chain_type: ClassVar[str]

    # First attempt plus one retry
    MAX_ATTEMPTS: ClassVar[int] = 2

    def __init__(self, timeout_seconds: float = 8.0, retry_delay: float = 0.5):
        self.timeout_seconds = timeout_seconds
        self.retry_delay = retry_delay

    async def _with_timeout(self, awaitable: Awaitable[Any], operation: str) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ChainUnreachableError(
                f"{self.chain_type} {operation} timed out after {self.timeout_seconds}s"
            ) from e

    def normalize_address(self, address: Optional[str]) -> str:
        return normalize_address(address)

    @abstractmethod
    def verify_signature(
        self, message: str, signature: str, claimed_address: str
    ) -> bool:
        """Check that `signature` over `message` was made by `claimed_address`.

        Never raises: malformed input of any kind yields False.
        """
        pass

    @abstractmethod
    async def get_share_balance(
        self, user_address: str, subject_address: str
    ) -> ShareBalance:
        """Fetch how many shares of the subject the user holds.

        Raises:
            ChainUnreachableError: RPC failure, timeout or stale index
            UnknownSubjectError: the subject has no share market
            InvalidAddressError: an address is malformed for this chain
        """
        pass

    @abstractmethod
    async def fetch_trades(
        self, last_synced_block: int, metadata: Optional[str] = None
    ) -> TradeBatch:
        """Fetch the next page of trade events after the stored cursor."""
        pass

    async def close(self) -> None:
        """Release network resources held by the adapter."""
        return None
