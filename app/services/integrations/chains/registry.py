from typing import Dict, Iterable, List, Optional

from app.backend.abstract import AbstractBackend
from app.config import Config
from app.lib.logger import configure_logger

from .base import ChainAdapter
from .errors import UnsupportedChainError
from .monad import MonadChainAdapter
from .sui import SuiChainAdapter

logger = configure_logger(__name__)


class ChainAdapterRegistry:
    """Lookup of chain adapters by their chain_type string."""

    def __init__(self, adapters: Optional[Iterable[ChainAdapter]] = None):
        self._adapters: Dict[str, ChainAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ChainAdapter) -> None:
        self._adapters[adapter.chain_type] = adapter
        logger.debug("Chain adapter registered", extra={"chain_type": adapter.chain_type})

    def get(self, chain_type: str) -> ChainAdapter:
        adapter = self._adapters.get((chain_type or "").lower())
        if adapter is None:
            raise UnsupportedChainError(chain_type)
        return adapter

    def chain_types(self) -> List[str]:
        return sorted(self._adapters)

    def __contains__(self, chain_type: str) -> bool:
        return (chain_type or "").lower() in self._adapters

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()


def build_chain_adapters(config: Config, backend: AbstractBackend) -> ChainAdapterRegistry:
    """Build adapters for every chain listed in SHAREGATE_ENABLED_CHAINS."""
    chain = config.chain
    registry = ChainAdapterRegistry()
    for chain_type in chain.enabled_chains:
        name = chain_type.lower()
        if name == MonadChainAdapter.chain_type:
            if not chain.monad_rpc_url or not chain.monad_shares_contract:
                logger.warning(
                    "Monad enabled without RPC URL or shares contract, skipping",
                    extra={"chain_type": name},
                )
                continue
            registry.register(
                MonadChainAdapter(
                    rpc_url=chain.monad_rpc_url,
                    shares_contract=chain.monad_shares_contract,
                    timeout_seconds=chain.rpc_timeout_seconds,
                    retry_delay=chain.retry_delay_seconds,
                    block_batch_size=chain.monad_block_batch_size,
                )
            )
        elif name == SuiChainAdapter.chain_type:
            if not chain.sui_package_id:
                logger.warning(
                    "Sui enabled without package id, skipping",
                    extra={"chain_type": name},
                )
                continue
            registry.register(
                SuiChainAdapter(
                    rpc_url=chain.sui_rpc_url,
                    package_id=chain.sui_package_id,
                    backend=backend,
                    timeout_seconds=chain.rpc_timeout_seconds,
                    retry_delay=chain.retry_delay_seconds,
                    event_page_size=chain.sui_event_page_size,
                    max_sync_lag_seconds=chain.sui_max_sync_lag_seconds,
                )
            )
        else:
            logger.warning("Unknown chain in configuration", extra={"chain_type": name})

    logger.info(
        "Chain adapters ready",
        extra={"chains": ",".join(registry.chain_types())},
    )
    return registry
