"""Tests for backend models."""

from decimal import Decimal

import pytest

from app.backend.models import (
    SyncStatus,
    TelegramBotBase,
    TelegramBotCreate,
    Trade,
    UserMappingBase,
)


@pytest.mark.parametrize(
    "raw,expected",
    [(5, 5), ("12", 12), (Decimal("7"), 7), (3.0, 3), ("1000000000000000000000", 10**21)],
)
def test_trade_share_amount_from_numeric(raw, expected):
    """Postgres NUMERIC values arrive in several Python types."""
    trade = Trade(trader="aa", subject="bb", chain_type="monad", share_amount=raw)
    assert trade.share_amount == expected


def test_telegram_bot_defaults_to_monad():
    bot = TelegramBotCreate(
        agent_name="alpha",
        subject_address="ab" * 20,
        bot_token="1:token",
        chat_group_id="-1",
        invite_url="https://t.me/+alpha",
    )
    assert bot.chain_type == "monad"
    assert bot.bio is None


def test_partial_updates_drop_unset_fields():
    """Update models only carry the fields being changed."""
    assert TelegramBotBase(bio="new").model_dump(exclude_none=True) == {"bio": "new"}
    assert UserMappingBase(is_banned=True).model_dump(exclude_none=True) == {
        "is_banned": True
    }


def test_sync_status_metadata_optional():
    status = SyncStatus.model_validate({"chain_type": "sui", "last_synced_block": 42})
    assert status.metadata is None
    assert status.updated_at is None
