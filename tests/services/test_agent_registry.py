from unittest.mock import MagicMock

import pytest

from app.backend.abstract import DuplicateRecordError
from app.services.agents.registry import (
    AgentNotFoundError,
    AgentRegistry,
    DuplicateChatError,
    DuplicateNameError,
    DuplicateSubjectError,
    InvalidAgentError,
    InvalidPaginationError,
)


def _subject(n: int) -> str:
    return "0x" + f"{n:040x}"


@pytest.fixture
def registry(backend):
    return AgentRegistry(backend)


def _register(registry, name, n, **kwargs):
    return registry.register(
        agent_name=name,
        subject_address=_subject(n),
        bot_token=f"{n}:token",
        chat_group_id=f"-100{n}",
        invite_url=f"https://t.me/+{name}",
        **kwargs,
    )


class TestRegister:
    def test_register_normalizes_subject(self, registry):
        agent = registry.register(
            agent_name="alpha",
            subject_address="0xABCDEF" + "0" * 34,
            bot_token="1:token",
            chat_group_id=-1001,
            invite_url="https://t.me/+alpha",
            bio="hello",
        )
        assert agent.subject_address == "abcdef" + "0" * 34
        assert agent.chat_group_id == "-1001"
        assert agent.chain_type == "monad"
        assert agent.bio == "hello"

    def test_duplicate_name(self, registry):
        first = _register(registry, "alpha", 1)
        with pytest.raises(DuplicateNameError):
            _register(registry, "alpha", 2)
        assert registry.get_by_name("alpha") == first

    def test_duplicate_subject(self, registry):
        _register(registry, "alpha", 1)
        with pytest.raises(DuplicateSubjectError):
            _register(registry, "beta", 1)

    def test_duplicate_subject_ignores_prefix_and_case(self, registry):
        registry.register(
            agent_name="alpha",
            subject_address="0x" + "AB" * 20,
            bot_token="1:token",
            chat_group_id="-1",
            invite_url="https://t.me/+a",
        )
        with pytest.raises(DuplicateSubjectError):
            registry.register(
                agent_name="beta",
                subject_address="ab" * 20,
                bot_token="2:token",
                chat_group_id="-2",
                invite_url="https://t.me/+b",
            )

    def test_duplicate_chat(self, registry):
        first = _register(registry, "alpha", 1)
        with pytest.raises(DuplicateChatError):
            registry.register(
                agent_name="beta",
                subject_address=_subject(2),
                bot_token="2:token",
                chat_group_id=" -1001 ",
                invite_url="https://t.me/+beta",
            )
        assert registry.get_by_chat_id("-1001") == first
        with pytest.raises(AgentNotFoundError):
            registry.get_by_name("beta")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("agent_name", "  "),
            ("bot_token", ""),
            ("chat_group_id", ""),
            ("subject_address", "not-hex"),
            ("invite_url", "https://t.me/" + "x" * 200),
        ],
    )
    def test_invalid_fields(self, registry, field, value):
        data = dict(
            agent_name="alpha",
            subject_address=_subject(1),
            bot_token="1:token",
            chat_group_id="-1",
            invite_url="https://t.me/+alpha",
        )
        data[field] = value
        with pytest.raises(InvalidAgentError):
            registry.register(**data)

    def test_storage_race_maps_to_duplicate_subject(self):
        backend = MagicMock()
        backend.get_telegram_bot.return_value = None
        backend.count_telegram_bots.return_value = 0
        backend.create_telegram_bot.side_effect = DuplicateRecordError(
            "duplicate key", "telegram_bots_subject_address_key"
        )
        with pytest.raises(DuplicateSubjectError):
            _register(AgentRegistry(backend), "alpha", 1)

    def test_storage_race_maps_to_duplicate_name(self):
        backend = MagicMock()
        backend.get_telegram_bot.return_value = None
        backend.count_telegram_bots.return_value = 0
        backend.create_telegram_bot.side_effect = DuplicateRecordError(
            "duplicate key", "telegram_bots_pkey"
        )
        with pytest.raises(DuplicateNameError):
            _register(AgentRegistry(backend), "alpha", 1)


    def test_storage_race_maps_to_duplicate_chat(self):
        backend = MagicMock()
        backend.get_telegram_bot.return_value = None
        backend.count_telegram_bots.return_value = 0
        backend.create_telegram_bot.side_effect = DuplicateRecordError(
            "duplicate key", "telegram_bots_chat_group_id_key"
        )
        with pytest.raises(DuplicateChatError):
            _register(AgentRegistry(backend), "alpha", 1)


class TestLookup:
    def test_get_by_name(self, registry):
        _register(registry, "alpha", 1)
        assert registry.get_by_name("alpha").agent_name == "alpha"

    def test_get_by_name_missing(self, registry):
        with pytest.raises(AgentNotFoundError):
            registry.get_by_name("ghost")

    def test_get_by_chat_id(self, registry):
        _register(registry, "alpha", 1)
        _register(registry, "beta", 2)
        assert registry.get_by_chat_id("-1002").agent_name == "beta"
        assert registry.get_by_chat_id("-999") is None

    def test_get_by_subject(self, registry):
        _register(registry, "alpha", 1)
        assert registry.get_by_subject(_subject(1).upper(), "monad").agent_name == "alpha"
        assert registry.get_by_subject(_subject(1), "sui") is None


class TestList:
    def test_pages_cover_every_agent_once(self, registry):
        for n in range(15):
            _register(registry, f"agent{n:02d}", n + 1)

        first, total = registry.list(page=1, page_size=10)
        second, total_again = registry.list(page=2, page_size=10)

        assert total == total_again == 15
        assert len(first) == 10
        assert len(second) == 5
        names = [a.agent_name for a in first + second]
        assert len(set(names)) == 15
        # Newest first
        assert names[0] == "agent14"
        assert names[-1] == "agent00"

    def test_page_past_end_is_empty(self, registry):
        _register(registry, "alpha", 1)
        items, total = registry.list(page=5, page_size=10)
        assert items == []
        assert total == 1

    @pytest.mark.parametrize("page,page_size", [(0, 10), (1, 0), (-1, 5), (1, 101)])
    def test_invalid_pagination(self, registry, page, page_size):
        with pytest.raises(InvalidPaginationError):
            registry.list(page=page, page_size=page_size)


class TestUpdateProfile:
    def test_update_bio_only(self, registry):
        _register(registry, "alpha", 1, bio="old")
        updated = registry.update_profile("alpha", bio="new")
        assert updated.bio == "new"
        assert updated.invite_url == "https://t.me/+alpha"

    def test_update_missing_agent(self, registry):
        with pytest.raises(AgentNotFoundError):
            registry.update_profile("ghost", bio="new")
