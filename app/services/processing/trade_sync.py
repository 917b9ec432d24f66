"""Keeps the indexed `trades` table in step with on-chain Trade events."""

from dataclasses import dataclass
from typing import Dict, Optional

from app.backend.abstract import AbstractBackend
from app.backend.models import SyncStatusBase, UserMappingBase
from app.lib.logger import configure_logger
from app.services.agents.registry import AgentRegistry
from app.services.authorization.errors import GrantDeliveryFailedError
from app.services.communication.telegram_bot_service import ChatGateway
from app.services.integrations.chains.models import TradeEvent
from app.services.integrations.chains.registry import ChainAdapterRegistry

logger = configure_logger(__name__)


@dataclass
class SyncResult:
    chain_type: str
    processed: int = 0
    failed: int = 0
    last_synced_block: int = 0
    has_more: bool = False


class TradeSyncService:
    """Applies one page of trade events per call and advances the cursor.

    When a sale drops a mapped member's holding to zero the member loses
    posting rights in the subject's chat; a later buy restores them.
    """

    def __init__(
        self,
        backend: AbstractBackend,
        chains: ChainAdapterRegistry,
        agents: AgentRegistry,
        gateway: ChatGateway,
        start_blocks: Optional[Dict[str, int]] = None,
    ):
        self.backend = backend
        self.chains = chains
        self.agents = agents
        self.gateway = gateway
        self.start_blocks = start_blocks or {}

    async def sync_chain(self, chain_type: str) -> SyncResult:
        adapter = self.chains.get(chain_type)
        status = self.backend.get_sync_status(chain_type)
        if status is not None:
            last_synced_block, metadata = status.last_synced_block, status.metadata
        else:
            # The start block itself has not been synced yet
            last_synced_block = max(self.start_blocks.get(chain_type, 0) - 1, 0)
            metadata = None

        batch = await adapter.fetch_trades(last_synced_block, metadata)
        result = SyncResult(chain_type=chain_type, has_more=batch.has_more)

        for event in batch.events:
            try:
                await self._apply(chain_type, event)
                result.processed += 1
            except Exception as e:
                result.failed += 1
                logger.error(
                    "Failed to apply trade event",
                    extra={
                        "event_type": "trade_apply_error",
                        "chain_type": chain_type,
                        "trader": event.trader,
                        "subject": event.subject,
                        "error": str(e),
                    },
                    exc_info=True,
                )

        self.backend.update_sync_status(
            chain_type,
            SyncStatusBase(
                last_synced_block=batch.last_synced_block, metadata=batch.metadata
            ),
        )
        result.last_synced_block = batch.last_synced_block

        logger.info(
            "Trade sync completed",
            extra={
                "event_type": "trade_sync",
                "chain_type": chain_type,
                "processed": result.processed,
                "failed": result.failed,
                "last_synced_block": result.last_synced_block,
            },
        )
        return result

    async def _apply(self, chain_type: str, event: TradeEvent) -> None:
        delta = event.share_amount if event.is_buy else -event.share_amount
        new_amount = self.backend.apply_trade(
            event.trader, event.subject, chain_type, delta
        )
        if new_amount is None:
            logger.warning(
                "Sell for a holding that was never indexed",
                extra={
                    "chain_type": chain_type,
                    "trader": event.trader,
                    "subject": event.subject,
                },
            )
            return

        mapping = self.backend.get_user_mapping(event.trader, chain_type)
        if mapping is None:
            return

        if not event.is_buy and new_amount == 0 and not mapping.is_banned:
            await self._set_membership(chain_type, event, mapping.telegram_id, banned=True)
        elif event.is_buy and new_amount > 0 and mapping.is_banned:
            await self._set_membership(chain_type, event, mapping.telegram_id, banned=False)

    async def _set_membership(
        self, chain_type: str, event: TradeEvent, telegram_id: str, banned: bool
    ) -> None:
        agent = self.agents.get_by_subject(event.subject, chain_type)
        if agent is None:
            logger.debug(
                "No agent for traded subject",
                extra={"chain_type": chain_type, "subject": event.subject},
            )
            return

        try:
            if banned:
                await self.gateway.revoke(agent, telegram_id)
            else:
                await self.gateway.grant(agent, telegram_id)
        except GrantDeliveryFailedError as e:
            # Leave the flag unchanged so the next trade retries
            logger.warning(
                "Membership change not delivered",
                extra={
                    "agent_name": agent.agent_name,
                    "member_id": telegram_id,
                    "banned": banned,
                    "error": str(e),
                },
            )
            return

        self.backend.update_user_mapping(
            event.trader, chain_type, UserMappingBase(is_banned=banned)
        )
        logger.info(
            "Member banned" if banned else "Member unbanned",
            extra={
                "event_type": "member_banned" if banned else "member_unbanned",
                "agent_name": agent.agent_name,
                "member_id": telegram_id,
                "chain_type": chain_type,
            },
        )
