"""Agent registration and lookup.

An agent is a Telegram bot bound to one chat group and one on-chain subject.
The authorization pipeline only needs `get_by_chat_id`; the rest backs the
admin and listing endpoints.
"""

from typing import List, Optional, Tuple

from app.backend.abstract import AbstractBackend, DuplicateRecordError
from app.backend.models import (
    TelegramBot,
    TelegramBotBase,
    TelegramBotCreate,
    TelegramBotFilter,
)
from app.lib.logger import configure_logger
from app.lib.utils import is_hex_address, normalize_address, page_offset

logger = configure_logger(__name__)

MAX_PAGE_SIZE = 100
MAX_INVITE_URL_LENGTH = 128

SUBJECT_CONSTRAINT = "telegram_bots_subject_address_key"
NAME_CONSTRAINT = "telegram_bots_pkey"
CHAT_CONSTRAINT = "telegram_bots_chat_group_id_key"


class AgentError(Exception):
    """Base exception for agent registry failures."""

    pass


class InvalidAgentError(AgentError):
    """Registration or update data failed validation."""

    pass


class DuplicateNameError(AgentError):
    """An agent with this name already exists."""

    pass


class DuplicateSubjectError(AgentError):
    """The subject is already bound to another agent."""

    pass


class DuplicateChatError(AgentError):
    """The chat group is already managed by another agent."""

    pass


class AgentNotFoundError(AgentError):
    """No agent with this name."""

    pass


class InvalidPaginationError(AgentError):
    """page or page_size out of range."""

    pass


class AgentRegistry:
    def __init__(self, backend: AbstractBackend):
        self.backend = backend

    def _validate_invite_url(self, invite_url: Optional[str]) -> None:
        if invite_url is not None and len(invite_url) > MAX_INVITE_URL_LENGTH:
            raise InvalidAgentError(
                f"invite_url must be at most {MAX_INVITE_URL_LENGTH} characters"
            )

    def register(
        self,
        agent_name: str,
        subject_address: str,
        bot_token: str,
        chat_group_id: str,
        invite_url: str,
        bio: Optional[str] = None,
        chain_type: str = "monad",
    ) -> TelegramBot:
        """Create an agent.

        A subject and a chat group each bind at most one agent. The uniqueness
        rules are checked up front for a clear error and enforced again by the
        database, whose violations are mapped back to the same errors.

        Raises:
            InvalidAgentError: missing fields or malformed subject address
            DuplicateNameError: agent_name is taken
            DuplicateSubjectError: subject_address is bound to another agent
            DuplicateChatError: chat_group_id is managed by another agent
        """
        agent_name = (agent_name or "").strip()
        if not agent_name:
            raise InvalidAgentError("agent_name is required")
        if not (bot_token or "").strip():
            raise InvalidAgentError("bot_token is required")
        if not str(chat_group_id or "").strip():
            raise InvalidAgentError("chat_group_id is required")
        if not is_hex_address(subject_address):
            raise InvalidAgentError("subject_address must be a hex address")
        self._validate_invite_url(invite_url)

        subject = normalize_address(subject_address)
        chat_id = str(chat_group_id).strip()

        if self.backend.get_telegram_bot(agent_name) is not None:
            raise DuplicateNameError(f"Agent {agent_name} already exists")
        if self.backend.count_telegram_bots(TelegramBotFilter(subject_address=subject)):
            raise DuplicateSubjectError(f"Subject {subject} is already bound to an agent")
        if self.backend.count_telegram_bots(TelegramBotFilter(chat_group_id=chat_id)):
            raise DuplicateChatError(f"Chat {chat_id} is already managed by an agent")

        try:
            agent = self.backend.create_telegram_bot(
                TelegramBotCreate(
                    agent_name=agent_name,
                    subject_address=subject,
                    bot_token=bot_token.strip(),
                    chat_group_id=chat_id,
                    invite_url=invite_url,
                    bio=bio,
                    chain_type=(chain_type or "monad").lower(),
                )
            )
        except DuplicateRecordError as e:
            # Lost a race with a concurrent registration
            if e.constraint == SUBJECT_CONSTRAINT:
                raise DuplicateSubjectError(
                    f"Subject {subject} is already bound to an agent"
                ) from e
            if e.constraint == CHAT_CONSTRAINT:
                raise DuplicateChatError(
                    f"Chat {chat_id} is already managed by an agent"
                ) from e
            raise DuplicateNameError(f"Agent {agent_name} already exists") from e

        logger.info(
            "Agent registered",
            extra={
                "event_type": "agent_registered",
                "agent_name": agent.agent_name,
                "subject_address": agent.subject_address,
                "chain_type": agent.chain_type,
            },
        )
        return agent

    def get_by_name(self, agent_name: str) -> TelegramBot:
        agent = self.backend.get_telegram_bot(agent_name)
        if agent is None:
            raise AgentNotFoundError(f"Agent {agent_name} not found")
        return agent

    def get_by_chat_id(self, chat_id: str) -> Optional[TelegramBot]:
        agents = self.backend.list_telegram_bots(
            TelegramBotFilter(chat_group_id=str(chat_id)), limit=1
        )
        return agents[0] if agents else None

    def get_by_subject(self, subject_address: str, chain_type: str) -> Optional[TelegramBot]:
        agents = self.backend.list_telegram_bots(
            TelegramBotFilter(
                subject_address=normalize_address(subject_address),
                chain_type=chain_type,
            ),
            limit=1,
        )
        return agents[0] if agents else None

    def list(self, page: int = 1, page_size: int = 10) -> Tuple[List[TelegramBot], int]:
        """One page of agents, newest first, plus the total count."""
        if page < 1 or page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise InvalidPaginationError("Invalid pagination parameters")
        items = self.backend.list_telegram_bots(
            offset=page_offset(page, page_size), limit=page_size
        )
        total = self.backend.count_telegram_bots()
        return items, total

    def list_all(self) -> List[TelegramBot]:
        return self.backend.list_telegram_bots()

    def update_profile(
        self,
        agent_name: str,
        bio: Optional[str] = None,
        invite_url: Optional[str] = None,
    ) -> TelegramBot:
        self._validate_invite_url(invite_url)
        updated = self.backend.update_telegram_bot(
            agent_name, TelegramBotBase(bio=bio, invite_url=invite_url)
        )
        if updated is None:
            raise AgentNotFoundError(f"Agent {agent_name} not found")
        logger.info(
            "Agent profile updated",
            extra={"event_type": "agent_updated", "agent_name": agent_name},
        )
        return updated
