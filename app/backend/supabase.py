import re
from datetime import datetime, timezone
from typing import List, Optional

from postgrest.exceptions import APIError
from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError
from supabase import Client

from app.backend.abstract import AbstractBackend, BackendError, DuplicateRecordError
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
from app.lib.logger import configure_logger

logger = configure_logger(__name__)

UNIQUE_VIOLATION = "23505"
_CONSTRAINT_RE = re.compile(r'unique constraint "([^"]+)"')

# Plain SQL for the holdings arithmetic: PostgREST can't express "x = x + n"
_ADD_SHARES_SQL = text(
    """
    INSERT INTO trades (trader, subject, chain_type, share_amount)
    VALUES (:trader, :subject, :chain_type, :delta)
    ON CONFLICT (trader, subject, chain_type)
    DO UPDATE SET share_amount = trades.share_amount + EXCLUDED.share_amount
    RETURNING share_amount
    """
)
_SUBTRACT_SHARES_SQL = text(
    """
    UPDATE trades SET share_amount = GREATEST(share_amount + :delta, 0)
    WHERE trader = :trader AND subject = :subject AND chain_type = :chain_type
    RETURNING share_amount
    """
)


def _duplicate_error(error: APIError) -> DuplicateRecordError:
    match = _CONSTRAINT_RE.search(error.message or "")
    constraint = match.group(1) if match else None
    return DuplicateRecordError(error.message or "duplicate key", constraint)


def _execute(query, operation: str):
    try:
        return query.execute()
    except APIError as e:
        if e.code == UNIQUE_VIOLATION:
            raise _duplicate_error(e) from e
        raise BackendError(f"{operation} failed: {e.message}") from e


class SupabaseBackend(AbstractBackend):
    def __init__(self, client: Client, sqlalchemy_engine: Engine):
        self.client = client
        self.sqlalchemy_engine = sqlalchemy_engine

        try:
            with self.sqlalchemy_engine.connect():
                logger.info("SQLAlchemy connection successful!")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")

    # ----------------------------------------------------------------
    # 1. TELEGRAM BOTS (AGENTS)
    # ----------------------------------------------------------------
    def create_telegram_bot(self, new_bot: TelegramBotCreate) -> TelegramBot:
        payload = new_bot.model_dump(exclude_unset=False, mode="json")
        response = _execute(
            self.client.table("telegram_bots").insert(payload), "telegram_bots insert"
        )
        data = response.data or []
        if not data:
            raise BackendError("No data returned from telegram_bots insert.")
        return TelegramBot(**data[0])

    def get_telegram_bot(self, agent_name: str) -> Optional[TelegramBot]:
        query = (
            self.client.table("telegram_bots")
            .select("*")
            .eq("agent_name", agent_name)
            .limit(1)
        )
        response = _execute(query, "telegram_bots select")
        data = response.data or []
        if not data:
            return None
        return TelegramBot(**data[0])

    def _apply_bot_filters(self, query, filters: Optional[TelegramBotFilter]):
        if filters:
            if filters.agent_name is not None:
                query = query.eq("agent_name", filters.agent_name)
            if filters.chat_group_id is not None:
                query = query.eq("chat_group_id", filters.chat_group_id)
            if filters.subject_address is not None:
                query = query.eq("subject_address", filters.subject_address)
            if filters.chain_type is not None:
                query = query.eq("chain_type", filters.chain_type)
        return query

    def list_telegram_bots(
        self,
        filters: Optional[TelegramBotFilter] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[TelegramBot]:
        query = self._apply_bot_filters(
            self.client.table("telegram_bots").select("*"), filters
        )
        query = query.order("created_at", desc=True).order("agent_name")
        if limit is not None:
            query = query.range(offset, offset + limit - 1)
        response = _execute(query, "telegram_bots select")
        data = response.data or []
        return [TelegramBot(**row) for row in data]

    def count_telegram_bots(self, filters: Optional[TelegramBotFilter] = None) -> int:
        query = self._apply_bot_filters(
            self.client.table("telegram_bots").select("agent_name", count="exact"),
            filters,
        )
        response = _execute(query, "telegram_bots count")
        return response.count or 0

    def update_telegram_bot(
        self, agent_name: str, update_data: TelegramBotBase
    ) -> Optional[TelegramBot]:
        payload = update_data.model_dump(exclude_none=True, mode="json")
        if not payload:
            return self.get_telegram_bot(agent_name)
        query = (
            self.client.table("telegram_bots")
            .update(payload)
            .eq("agent_name", agent_name)
        )
        response = _execute(query, "telegram_bots update")
        updated = response.data or []
        if not updated:
            return None
        return TelegramBot(**updated[0])

    # ----------------------------------------------------------------
    # 2. USER MAPPINGS
    # ----------------------------------------------------------------
    def upsert_user_mapping(self, mapping: UserMappingCreate) -> UserMapping:
        payload = mapping.model_dump(mode="json")
        query = (
            self.client.table("user_mappings")
            .upsert(payload, on_conflict="address,chain_type")
        )
        response = _execute(query, "user_mappings upsert")
        data = response.data or []
        if not data:
            raise BackendError("No data returned from user_mappings upsert.")
        return UserMapping(**data[0])

    def get_user_mapping(self, address: str, chain_type: str) -> Optional[UserMapping]:
        query = (
            self.client.table("user_mappings")
            .select("*")
            .eq("address", address)
            .eq("chain_type", chain_type)
            .limit(1)
        )
        response = _execute(query, "user_mappings select")
        data = response.data or []
        if not data:
            return None
        return UserMapping(**data[0])

    def update_user_mapping(
        self, address: str, chain_type: str, update_data: UserMappingBase
    ) -> Optional[UserMapping]:
        payload = update_data.model_dump(exclude_none=True, mode="json")
        if not payload:
            return self.get_user_mapping(address, chain_type)
        query = (
            self.client.table("user_mappings")
            .update(payload)
            .eq("address", address)
            .eq("chain_type", chain_type)
        )
        response = _execute(query, "user_mappings update")
        updated = response.data or []
        if not updated:
            return None
        return UserMapping(**updated[0])

    # ----------------------------------------------------------------
    # 3. TRADES
    # ----------------------------------------------------------------
    def apply_trade(
        self, trader: str, subject: str, chain_type: str, delta: int
    ) -> Optional[int]:
        statement = _ADD_SHARES_SQL if delta >= 0 else _SUBTRACT_SHARES_SQL
        params = {
            "trader": trader,
            "subject": subject,
            "chain_type": chain_type,
            "delta": delta,
        }
        try:
            with self.sqlalchemy_engine.begin() as connection:
                row = connection.execute(statement, params).fetchone()
        except SQLAlchemyError as e:
            raise BackendError(f"trades update failed: {e}") from e
        if row is None:
            return None
        return int(row[0])

    def get_trade(self, trader: str, subject: str, chain_type: str) -> Optional[Trade]:
        trades = self.list_trades(
            TradeFilter(trader=trader, subject=subject, chain_type=chain_type)
        )
        return trades[0] if trades else None

    def list_trades(self, filters: Optional[TradeFilter] = None) -> List[Trade]:
        query = self.client.table("trades").select("*")
        if filters:
            if filters.trader is not None:
                query = query.eq("trader", filters.trader)
            if filters.subject is not None:
                query = query.eq("subject", filters.subject)
            if filters.chain_type is not None:
                query = query.eq("chain_type", filters.chain_type)
        response = _execute(query, "trades select")
        data = response.data or []
        return [Trade(**row) for row in data]

    # ----------------------------------------------------------------
    # 4. SYNC STATUS
    # ----------------------------------------------------------------
    def get_sync_status(self, chain_type: str) -> Optional[SyncStatus]:
        query = (
            self.client.table("sync_status")
            .select("*")
            .eq("chain_type", chain_type)
            .limit(1)
        )
        response = _execute(query, "sync_status select")
        data = response.data or []
        if not data:
            return None
        return SyncStatus(**data[0])

    def update_sync_status(
        self, chain_type: str, update_data: SyncStatusBase
    ) -> SyncStatus:
        payload = update_data.model_dump(mode="json")
        payload["chain_type"] = chain_type
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
        query = (
            self.client.table("sync_status")
            .upsert(payload, on_conflict="chain_type")
        )
        response = _execute(query, "sync_status upsert")
        data = response.data or []
        if not data:
            raise BackendError("No data returned from sync_status upsert.")
        return SyncStatus(**data[0])
