from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from telegram import (
    Bot,
    ChatPermissions,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Update,
)
from telegram.error import Forbidden, TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from app.backend.models import TelegramBot
from app.config import TelegramConfig
from app.lib.logger import configure_logger
from app.services.agents.registry import AgentRegistry
from app.services.authorization.errors import GrantDeliveryFailedError
from app.services.authorization.member_link import MemberLinkSigner

logger = configure_logger(__name__)

# Permissions restored to a member who proved share ownership
POSTING_PERMISSIONS = ChatPermissions(
    can_send_messages=True,
    can_send_audios=True,
    can_send_documents=True,
    can_send_photos=True,
    can_send_videos=True,
    can_send_video_notes=True,
    can_send_voice_notes=True,
    can_send_polls=True,
    can_send_other_messages=True,
    can_add_web_page_previews=True,
)


class ChatGateway(ABC):
    """Grants and revokes a member's right to post in an agent's chat."""

    @abstractmethod
    async def grant(self, agent: TelegramBot, member_id: str) -> None:
        """Raises GrantDeliveryFailedError when the platform refuses."""
        pass

    @abstractmethod
    async def revoke(self, agent: TelegramBot, member_id: str) -> None:
        """Raises GrantDeliveryFailedError when the platform refuses."""
        pass


class TelegramChatGateway(ChatGateway):
    """ChatGateway that restricts members through each agent's own bot."""

    def __init__(self, bot_factory: Callable[[str], Bot] = Bot):
        self._bot_factory = bot_factory

    async def _restrict(
        self,
        agent: TelegramBot,
        member_id: str,
        permissions: ChatPermissions,
        action: str,
    ) -> None:
        try:
            async with self._bot_factory(agent.bot_token) as bot:
                await bot.restrict_chat_member(
                    chat_id=agent.chat_group_id,
                    user_id=int(member_id),
                    permissions=permissions,
                )
        except (TelegramError, ValueError) as e:
            raise GrantDeliveryFailedError(
                f"Telegram {action} failed for member {member_id}: {e}"
            ) from e

        logger.info(
            f"Telegram member {action} applied",
            extra={
                "event_type": f"member_{action}",
                "agent_name": agent.agent_name,
                "member_id": member_id,
            },
        )

    async def grant(self, agent: TelegramBot, member_id: str) -> None:
        await self._restrict(agent, member_id, POSTING_PERMISSIONS, "grant")

    async def revoke(self, agent: TelegramBot, member_id: str) -> None:
        await self._restrict(
            agent, member_id, ChatPermissions.no_permissions(), "revoke"
        )


class AgentBotManager:
    """Runs one polling Telegram bot per registered agent.

    Each bot mutes members joining its chat and sends them a link to the
    signing page, where they prove share ownership to get posting rights back.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        telegram_config: TelegramConfig,
        application_factory: Optional[Callable[[str], Application]] = None,
        link_signer: Optional[MemberLinkSigner] = None,
    ):
        self.registry = registry
        self.config = telegram_config
        self.link_signer = link_signer
        self._application_factory = application_factory or (
            lambda token: Application.builder().token(token).build()
        )
        self._apps: Dict[str, Application] = {}

    @property
    def running_agents(self):
        return sorted(self._apps)

    def build_sign_link(self, agent: TelegramBot, member_id: Any) -> str:
        params = {
            "chat_id": agent.chat_group_id,
            "member": str(member_id),
            "subject": agent.subject_address,
            "chain_type": agent.chain_type,
        }
        if self.link_signer is not None:
            params["member_token"] = self.link_signer.sign(
                agent.chat_group_id, str(member_id)
            )
        query = urlencode(params)
        return f"{self.config.sign_page_url}?{query}"

    def _new_members_handler(self, agent: TelegramBot):
        async def handle(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
            message = update.effective_message
            if message is None:
                return
            for member in message.new_chat_members or []:
                if member.is_bot:
                    continue
                await self._welcome_member(agent, message, member, context.bot)

        return handle

    async def _welcome_member(self, agent: TelegramBot, message, member, bot) -> None:
        try:
            await bot.restrict_chat_member(
                chat_id=message.chat_id,
                user_id=member.id,
                permissions=ChatPermissions.no_permissions(),
            )
        except TelegramError as e:
            logger.warning(
                "Failed to mute new member",
                extra={
                    "agent_name": agent.agent_name,
                    "member_id": member.id,
                    "error": str(e),
                },
            )

        keyboard = InlineKeyboardMarkup(
            [
                [
                    InlineKeyboardButton(
                        text=self.config.sign_button_text,
                        url=self.build_sign_link(agent, member.id),
                    )
                ]
            ]
        )
        try:
            await bot.send_message(
                chat_id=member.id,
                text=self.config.join_message,
                reply_markup=keyboard,
            )
        except Forbidden:
            # Members who never started the bot can't be messaged directly
            await message.reply_text(
                f"{member.full_name}, {self.config.join_message}",
                reply_markup=keyboard,
            )

        logger.info(
            "Sign link sent to new member",
            extra={
                "event_type": "member_joined",
                "agent_name": agent.agent_name,
                "member_id": member.id,
            },
        )

    async def start_agent(self, agent: TelegramBot) -> None:
        app = self._application_factory(agent.bot_token)
        app.add_handler(
            MessageHandler(
                filters.StatusUpdate.NEW_CHAT_MEMBERS,
                self._new_members_handler(agent),
            )
        )
        await app.initialize()
        await app.start()
        await app.updater.start_polling(allowed_updates=Update.ALL_TYPES)
        self._apps[agent.agent_name] = app
        logger.info(
            "Agent bot started",
            extra={"event_type": "agent_bot_started", "agent_name": agent.agent_name},
        )

    async def refresh(self) -> None:
        """Start bots for agents registered since the last refresh."""
        if not self.config.enabled:
            return
        for agent in self.registry.list_all():
            if agent.agent_name in self._apps:
                continue
            try:
                await self.start_agent(agent)
            except Exception as e:
                logger.error(
                    "Failed to start agent bot",
                    extra={
                        "event_type": "agent_bot_start_error",
                        "agent_name": agent.agent_name,
                        "error": str(e),
                    },
                    exc_info=True,
                )

    async def shutdown(self) -> None:
        for agent_name, app in list(self._apps.items()):
            try:
                await app.updater.stop()
                await app.stop()
                await app.shutdown()
            except Exception as e:
                logger.error(
                    "Error stopping agent bot",
                    extra={"agent_name": agent_name, "error": str(e)},
                )
            finally:
                self._apps.pop(agent_name, None)
        logger.info("Agent bots stopped", extra={"event_type": "agent_bots_stopped"})
