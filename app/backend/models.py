from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class CustomBaseModel(BaseModel):
    model_config = ConfigDict(
        json_encoders={datetime: lambda v: v.isoformat()},
        arbitrary_types_allowed=True,
    )


def _to_int(value):
    """Postgres NUMERIC comes back as int, float, str or Decimal depending on the client."""
    if value is None or isinstance(value, int):
        return value
    return int(Decimal(str(value)))


class TelegramBotBase(CustomBaseModel):
    """Base model for agents: a Telegram bot bound to one on-chain subject."""

    bio: Optional[str] = None
    invite_url: Optional[str] = None


class TelegramBotCreate(TelegramBotBase):
    agent_name: str
    subject_address: str
    bot_token: str
    chat_group_id: str
    invite_url: str
    chain_type: str = "monad"


class TelegramBot(TelegramBotCreate):
    created_at: datetime


class TelegramBotFilter(CustomBaseModel):
    agent_name: Optional[str] = None
    chat_group_id: Optional[str] = None
    subject_address: Optional[str] = None
    chain_type: Optional[str] = None


class UserMappingBase(CustomBaseModel):
    telegram_id: Optional[str] = None
    is_banned: Optional[bool] = None


class UserMappingCreate(UserMappingBase):
    address: str
    chain_type: str
    telegram_id: str
    is_banned: bool = False


class UserMapping(UserMappingCreate):
    pass


class TradeBase(CustomBaseModel):
    share_amount: int = 0

    @field_validator("share_amount", mode="before")
    @classmethod
    def coerce_amount(cls, value):
        return _to_int(value)


class Trade(TradeBase):
    """Indexed share holding of `trader` in `subject` on one chain."""

    trader: str
    subject: str
    chain_type: str


class TradeFilter(CustomBaseModel):
    trader: Optional[str] = None
    subject: Optional[str] = None
    chain_type: Optional[str] = None


class SyncStatusBase(CustomBaseModel):
    last_synced_block: int = 0
    # Chain-specific cursor detail, e.g. the full Sui EventID as JSON
    metadata: Optional[str] = None


class SyncStatus(SyncStatusBase):
    chain_type: str
    updated_at: Optional[datetime] = None
