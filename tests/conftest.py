from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from app.backend.abstract import AbstractBackend, DuplicateRecordError
from app.backend.models import (
    SyncStatus,
    SyncStatusBase,
    TelegramBot,
    TelegramBotBase,
    TelegramBotCreate,
    TelegramBotFilter,
    Trade,
    TradeFilter,
    UserMapping,
    UserMappingBase,
    UserMappingCreate,
)

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeBackend(AbstractBackend):
    """In-memory backend with the same uniqueness and ordering rules as Postgres."""

    def __init__(self):
        self.bots: Dict[str, TelegramBot] = {}
        self.mappings: Dict[Tuple[str, str], UserMapping] = {}
        self.trades: Dict[Tuple[str, str, str], Trade] = {}
        self.sync: Dict[str, SyncStatus] = {}
        self._tick = 0
        self.now = BASE_TIME

    def create_telegram_bot(self, new_bot: TelegramBotCreate) -> TelegramBot:
        if new_bot.agent_name in self.bots:
            raise DuplicateRecordError("duplicate key", "telegram_bots_pkey")
        if any(b.subject_address == new_bot.subject_address for b in self.bots.values()):
            raise DuplicateRecordError(
                "duplicate key", "telegram_bots_subject_address_key"
            )
        if any(b.chat_group_id == new_bot.chat_group_id for b in self.bots.values()):
            raise DuplicateRecordError("duplicate key", "telegram_bots_chat_group_id_key")
        self._tick += 1
        bot = TelegramBot(
            **new_bot.model_dump(), created_at=BASE_TIME + timedelta(seconds=self._tick)
        )
        self.bots[bot.agent_name] = bot
        return bot

    def get_telegram_bot(self, agent_name: str) -> Optional[TelegramBot]:
        return self.bots.get(agent_name)

    def _filter_bots(self, filters: Optional[TelegramBotFilter]) -> List[TelegramBot]:
        bots = list(self.bots.values())
        if filters:
            for field in ("agent_name", "chat_group_id", "subject_address", "chain_type"):
                value = getattr(filters, field)
                if value is not None:
                    bots = [b for b in bots if getattr(b, field) == value]
        return bots

    def list_telegram_bots(
        self,
        filters: Optional[TelegramBotFilter] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[TelegramBot]:
        bots = sorted(self._filter_bots(filters), key=lambda b: b.agent_name)
        bots.sort(key=lambda b: b.created_at, reverse=True)
        if limit is None:
            return bots[offset:]
        return bots[offset : offset + limit]

    def count_telegram_bots(self, filters: Optional[TelegramBotFilter] = None) -> int:
        return len(self._filter_bots(filters))

    def update_telegram_bot(
        self, agent_name: str, update_data: TelegramBotBase
    ) -> Optional[TelegramBot]:
        bot = self.bots.get(agent_name)
        if bot is None:
            return None
        updated = bot.model_copy(update=update_data.model_dump(exclude_none=True))
        self.bots[agent_name] = updated
        return updated

    def upsert_user_mapping(self, mapping: UserMappingCreate) -> UserMapping:
        record = UserMapping(**mapping.model_dump())
        self.mappings[(record.address, record.chain_type)] = record
        return record

    def get_user_mapping(self, address: str, chain_type: str) -> Optional[UserMapping]:
        return self.mappings.get((address, chain_type))

    def update_user_mapping(
        self, address: str, chain_type: str, update_data: UserMappingBase
    ) -> Optional[UserMapping]:
        record = self.mappings.get((address, chain_type))
        if record is None:
            return None
        updated = record.model_copy(update=update_data.model_dump(exclude_none=True))
        self.mappings[(address, chain_type)] = updated
        return updated

    def apply_trade(
        self, trader: str, subject: str, chain_type: str, delta: int
    ) -> Optional[int]:
        key = (trader, subject, chain_type)
        current = self.trades.get(key)
        if current is None:
            if delta < 0:
                return None
            amount = delta
        else:
            amount = max(current.share_amount + delta, 0)
        self.trades[key] = Trade(
            trader=trader, subject=subject, chain_type=chain_type, share_amount=amount
        )
        return amount

    def get_trade(self, trader: str, subject: str, chain_type: str) -> Optional[Trade]:
        return self.trades.get((trader, subject, chain_type))

    def list_trades(self, filters: Optional[TradeFilter] = None) -> List[Trade]:
        trades = list(self.trades.values())
        if filters:
            for field in ("trader", "subject", "chain_type"):
                value = getattr(filters, field)
                if value is not None:
                    trades = [t for t in trades if getattr(t, field) == value]
        return trades

    def get_sync_status(self, chain_type: str) -> Optional[SyncStatus]:
        return self.sync.get(chain_type)

    def update_sync_status(
        self, chain_type: str, update_data: SyncStatusBase
    ) -> SyncStatus:
        status = SyncStatus(
            chain_type=chain_type, updated_at=self.now, **update_data.model_dump()
        )
        self.sync[chain_type] = status
        return status


MONAD_SUBJECT = "0x" + "ab" * 20
CHAT_ID = "-1001234567890"


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def monad_agent(backend):
    return backend.create_telegram_bot(
        TelegramBotCreate(
            agent_name="alpha",
            subject_address=MONAD_SUBJECT[2:],
            bot_token="123:token",
            chat_group_id=CHAT_ID,
            invite_url="https://t.me/+alpha",
            bio="First agent",
        )
    )
