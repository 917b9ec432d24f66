"""Challenge-response authorization of chat members against on-chain shares."""

import asyncio
from dataclasses import dataclass
from typing import Optional, Set

from app.backend.abstract import AbstractBackend, BackendError
from app.backend.models import TelegramBot, UserMappingCreate
from app.lib.logger import configure_logger
from app.lib.utils import normalize_address
from app.services.agents.registry import AgentRegistry
from app.services.communication.telegram_bot_service import ChatGateway
from app.services.integrations.chains.errors import ChainAdapterError
from app.services.integrations.chains.registry import ChainAdapterRegistry

from .challenge_store import Challenge, ChallengeStore
from .errors import (
    AuthorizationError,
    GrantDeliveryFailedError,
    InsufficientSharesError,
    InvalidChallengeError,
    InvalidMemberTokenError,
    InvalidSignatureError,
    UnknownChatError,
)
from .member_link import MemberLinkSigner
from .share_authorizer import ShareAuthorizer

logger = configure_logger(__name__)

INTERNAL_ERROR = "internal error"


@dataclass
class AuthorizationResult:
    success: bool
    error: Optional[str] = None


class AuthorizationService:
    """Turns a signed challenge into a posting grant.

    Checks run in a fixed order and stop at the first failure:

    1. the chat must belong to a registered agent
    2. the chain_type must have an adapter
    3. the challenge must be consumable for this chat and user
    4. the signature must recover to the user
    5. the user's share balance for the agent's subject must be readable
    6. the balance must meet the threshold

    Only then is the grant delivered. The chain_type is resolved before the
    challenge is consumed, so a request for an unsupported chain leaves the
    challenge usable.
    """

    def __init__(
        self,
        challenges: ChallengeStore,
        agents: AgentRegistry,
        chains: ChainAdapterRegistry,
        authorizer: ShareAuthorizer,
        gateway: ChatGateway,
        backend: Optional[AbstractBackend] = None,
        redelivery_attempts: int = 3,
        redelivery_delay: float = 5.0,
        member_links: Optional[MemberLinkSigner] = None,
    ):
        self.challenges = challenges
        self.agents = agents
        self.chains = chains
        self.authorizer = authorizer
        self.gateway = gateway
        self.backend = backend
        self.redelivery_attempts = redelivery_attempts
        self.redelivery_delay = redelivery_delay
        self.member_links = member_links
        self._redeliveries: Set[asyncio.Task] = set()

    def _resolve_agent(self, chat_id: str) -> TelegramBot:
        agent = self.agents.get_by_chat_id(chat_id)
        if agent is None:
            raise UnknownChatError(f"No agent bound to chat {chat_id}")
        return agent

    def issue_challenge(
        self,
        chat_id: str,
        user: str,
        member_id: Optional[str] = None,
        member_token: Optional[str] = None,
    ) -> Challenge:
        """Issue a challenge for a known chat.

        When member links are signed, a member_id is only attached if
        member_token was issued for this chat and member.

        Raises:
            UnknownChatError: no agent is bound to chat_id
            InvalidMemberTokenError: member_token does not vouch for member_id
            ChallengeCapacityError: the challenge store is full
        """
        self._resolve_agent(chat_id)
        if member_id is not None and self.member_links is not None:
            if not self.member_links.verify(str(chat_id), str(member_id), member_token):
                raise InvalidMemberTokenError(
                    f"Member {member_id} is not vouched for in chat {chat_id}"
                )
        return self.challenges.issue(chat_id, user, member_id=member_id)

    async def verify(
        self,
        challenge: str,
        chat_id: str,
        signature: str,
        user: str,
        chain_type: str = "monad",
    ) -> AuthorizationResult:
        log_context = {
            "chat_id": chat_id,
            "user": normalize_address(user),
            "chain_type": chain_type,
        }
        try:
            await self._authorize(challenge, chat_id, signature, user, chain_type)
        except asyncio.CancelledError:
            logger.info(
                "Authorization cancelled",
                extra={"event_type": "authorization_cancelled", **log_context},
            )
            raise
        except (AuthorizationError, ChainAdapterError) as e:
            logger.info(
                "Authorization denied",
                extra={
                    "event_type": "authorization_denied",
                    "reason": type(e).__name__,
                    "error": str(e),
                    **log_context,
                },
            )
            return AuthorizationResult(success=False, error=e.client_message)
        except Exception as e:
            logger.error(
                "Unexpected error during authorization",
                extra={"event_type": "authorization_error", "error": str(e), **log_context},
                exc_info=True,
            )
            return AuthorizationResult(success=False, error=INTERNAL_ERROR)

        logger.info(
            "Authorization granted",
            extra={"event_type": "authorization_granted", **log_context},
        )
        return AuthorizationResult(success=True)

    async def _authorize(
        self,
        challenge_value: str,
        chat_id: str,
        signature: str,
        user: str,
        chain_type: str,
    ) -> None:
        agent = self._resolve_agent(chat_id)
        adapter = self.chains.get(chain_type)

        challenge = self.challenges.consume(challenge_value, chat_id, user)

        if not adapter.verify_signature(challenge.value, signature, user):
            raise InvalidSignatureError("Signature does not match user")

        balance = await adapter.get_share_balance(user, agent.subject_address)
        if not self.authorizer.decide(balance):
            raise InsufficientSharesError(
                f"Holds {balance.shares_amount}, needs {self.authorizer.threshold}"
            )

        if not challenge.member_id:
            logger.info(
                "No chat member attached to challenge, nothing to grant",
                extra={"agent_name": agent.agent_name},
            )
            return

        self._record_member(balance.user_address, adapter.chain_type, challenge.member_id)
        try:
            await self.gateway.grant(agent, challenge.member_id)
        except GrantDeliveryFailedError as e:
            logger.warning(
                "Grant delivery failed, scheduling redelivery",
                extra={
                    "event_type": "grant_delivery_failed",
                    "agent_name": agent.agent_name,
                    "member_id": challenge.member_id,
                    "error": str(e),
                },
            )
            self._schedule_redelivery(agent, challenge.member_id)

    def _record_member(self, address: str, chain_type: str, member_id: str) -> None:
        if self.backend is None:
            return
        try:
            self.backend.upsert_user_mapping(
                UserMappingCreate(
                    address=address,
                    chain_type=chain_type,
                    telegram_id=member_id,
                    is_banned=False,
                )
            )
        except BackendError as e:
            logger.warning(
                "Failed to record user mapping",
                extra={"address": address, "chain_type": chain_type, "error": str(e)},
            )

    def _schedule_redelivery(self, agent: TelegramBot, member_id: str) -> None:
        task = asyncio.create_task(self._redeliver(agent, member_id))
        self._redeliveries.add(task)
        task.add_done_callback(self._redeliveries.discard)

    async def _redeliver(self, agent: TelegramBot, member_id: str) -> None:
        for attempt in range(self.redelivery_attempts):
            await asyncio.sleep(self.redelivery_delay * (2**attempt))
            try:
                await self.gateway.grant(agent, member_id)
            except GrantDeliveryFailedError as e:
                logger.warning(
                    "Grant redelivery failed",
                    extra={
                        "agent_name": agent.agent_name,
                        "member_id": member_id,
                        "attempt": attempt + 1,
                        "error": str(e),
                    },
                )
                continue
            logger.info(
                "Grant redelivered",
                extra={"agent_name": agent.agent_name, "member_id": member_id},
            )
            return
        logger.error(
            "Grant could not be delivered",
            extra={
                "event_type": "grant_delivery_abandoned",
                "agent_name": agent.agent_name,
                "member_id": member_id,
            },
        )

    async def close(self) -> None:
        for task in list(self._redeliveries):
            task.cancel()
        if self._redeliveries:
            await asyncio.gather(*self._redeliveries, return_exceptions=True)
