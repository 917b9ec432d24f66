"""Chain adapters.

This module provides per-chain signature verification, share balance lookups and
trade event ingestion behind a single interface.
"""

from app.services.integrations.chains.base import ChainAdapter
from app.services.integrations.chains.errors import (
    ChainAdapterError,
    ChainUnreachableError,
    InvalidAddressError,
    StaleIndexError,
    UnknownSubjectError,
    UnsupportedChainError,
)
from app.services.integrations.chains.models import ShareBalance, TradeBatch, TradeEvent
from app.services.integrations.chains.monad import MonadChainAdapter
from app.services.integrations.chains.registry import (
    ChainAdapterRegistry,
    build_chain_adapters,
)
from app.services.integrations.chains.sui import SuiChainAdapter

__all__ = [
    "ChainAdapter",
    "ChainAdapterRegistry",
    "build_chain_adapters",
    "MonadChainAdapter",
    "SuiChainAdapter",
    "ShareBalance",
    "TradeBatch",
    "TradeEvent",
    "ChainAdapterError",
    "ChainUnreachableError",
    "StaleIndexError",
    "UnknownSubjectError",
    "InvalidAddressError",
    "UnsupportedChainError",
]
