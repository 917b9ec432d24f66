from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class ShareBalance:
    """Live holding of `user_address` in `subject_address`; never cached."""

    user_address: str
    subject_address: str
    chain_type: str
    shares_amount: int


@dataclass(frozen=True)
class TradeEvent:
    """A buy or sell of subject shares, addresses in storage form."""

    trader: str
    subject: str
    is_buy: bool
    share_amount: int


@dataclass
class TradeBatch:
    """One page of trade events plus the cursor to persist after applying them."""

    events: List[TradeEvent] = field(default_factory=list)
    last_synced_block: int = 0
    metadata: Optional[str] = None
    has_more: bool = False
