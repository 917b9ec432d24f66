from abc import ABC, abstractmethod
from typing import List, Optional

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


class BackendError(Exception):
    """Base exception for storage failures."""

    pass


class DuplicateRecordError(BackendError):
    """A unique constraint rejected a write.

    `constraint` names the violated constraint (or the column it covers) so
    callers can tell which uniqueness rule fired.
    """

    def __init__(self, message: str, constraint: Optional[str] = None):
        super().__init__(message)
        self.constraint = constraint


class AbstractBackend(ABC):
    # ----------- TELEGRAM BOTS (AGENTS) -----------
    @abstractmethod
    def create_telegram_bot(self, new_bot: TelegramBotCreate) -> TelegramBot:
        """Insert an agent row.

        Raises:
            DuplicateRecordError: agent_name or subject_address already taken
        """
        pass

    @abstractmethod
    def get_telegram_bot(self, agent_name: str) -> Optional[TelegramBot]:
        pass

    @abstractmethod
    def list_telegram_bots(
        self,
        filters: Optional[TelegramBotFilter] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[TelegramBot]:
        """List agents, most recently created first (ties by agent_name)."""
        pass

    @abstractmethod
    def count_telegram_bots(self, filters: Optional[TelegramBotFilter] = None) -> int:
        pass

    @abstractmethod
    def update_telegram_bot(
        self, agent_name: str, update_data: TelegramBotBase
    ) -> Optional[TelegramBot]:
        pass

    # ----------- USER MAPPINGS -----------
    @abstractmethod
    def upsert_user_mapping(self, mapping: UserMappingCreate) -> UserMapping:
        pass

    @abstractmethod
    def get_user_mapping(self, address: str, chain_type: str) -> Optional[UserMapping]:
        pass

    @abstractmethod
    def update_user_mapping(
        self, address: str, chain_type: str, update_data: UserMappingBase
    ) -> Optional[UserMapping]:
        pass

    # ----------- TRADES -----------
    @abstractmethod
    def apply_trade(
        self, trader: str, subject: str, chain_type: str, delta: int
    ) -> Optional[int]:
        """Atomically add `delta` shares to a holding and return the new amount.

        A positive delta creates the holding when missing. A negative delta on a
        missing holding changes nothing and returns None. Amounts never go below 0.
        """
        pass

    @abstractmethod
    def get_trade(self, trader: str, subject: str, chain_type: str) -> Optional[Trade]:
        pass

    @abstractmethod
    def list_trades(self, filters: Optional[TradeFilter] = None) -> List[Trade]:
        pass

    # ----------- SYNC STATUS -----------
    @abstractmethod
    def get_sync_status(self, chain_type: str) -> Optional[SyncStatus]:
        pass

    @abstractmethod
    def update_sync_status(
        self, chain_type: str, update_data: SyncStatusBase
    ) -> SyncStatus:
        pass
