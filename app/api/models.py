from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, BeforeValidator, Field
from typing_extensions import Annotated


def _as_str(value):
    # Telegram chat and user ids arrive as JSON numbers from some clients
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


TelegramId = Annotated[str, BeforeValidator(_as_str)]


class VerifySignatureRequest(BaseModel):
    """Request body for proving share ownership with a signed challenge."""

    challenge: str = Field(..., description="Challenge value issued by /challenge")
    chat_id: TelegramId = Field(..., description="Telegram chat group id of the agent")
    signature: str = Field(
        ...,
        description="Signature over the challenge (hex for monad, base64 for sui)",
    )
    user: str = Field(..., description="Wallet address that signed the challenge")
    chain_type: str = Field(default="monad", description="Chain of the subject")


class ChallengeRequest(BaseModel):
    """Request body for issuing a signing challenge."""

    chat_id: TelegramId = Field(..., description="Telegram chat group id of the agent")
    user: str = Field(..., description="Wallet address that will sign")
    member_id: Optional[TelegramId] = Field(
        None, description="Telegram user id that should receive posting rights"
    )
    member_token: Optional[str] = Field(
        None, description="Token from the bot's sign link that vouches for member_id"
    )


class ChallengeResponse(BaseModel):
    success: bool
    challenge: Optional[str] = None
    expires_at: Optional[datetime] = None
    error: Optional[str] = None


class StatusResponse(BaseModel):
    """Generic success/error envelope."""

    success: bool
    error: Optional[str] = None


class AddTelegramBotRequest(BaseModel):
    """Request body for registering an agent bot."""

    bot_token: str = Field(..., description="Telegram bot token")
    chat_group_id: TelegramId = Field(
        ..., description="Telegram chat group the bot manages"
    )
    subject_address: str = Field(..., description="On-chain subject bound to the chat")
    agent_name: str = Field(..., description="Unique agent name")
    invite_url: str = Field(..., description="Invite link to the chat group")
    bio: Optional[str] = Field(None, description="Optional agent description")
    chain_type: str = Field(default="monad", description="Chain of the subject")


class UpdateAgentRequest(BaseModel):
    bio: Optional[str] = None
    invite_url: Optional[str] = None


class AgentSummary(BaseModel):
    agent_name: str
    subject_address: str
    created_at: datetime


class AgentListResponse(BaseModel):
    agents: List[AgentSummary]
    total: int
    page: int
    page_size: int


class AgentView(BaseModel):
    """Public view of an agent; never includes the bot token."""

    agent_name: str
    subject_address: str
    chat_group_id: str
    invite_url: Optional[str] = None
    bio: Optional[str] = None
    chain_type: str
    created_at: datetime


class AgentLookupResponse(BaseModel):
    agent: Optional[AgentView] = None
    success: bool
    error: Optional[str] = None


class AgentDetailResponse(BaseModel):
    agent_name: str
    subject_address: str
    invite_url: str
    bio: Optional[str] = None
    success: bool
    error: Optional[str] = None


class ShareHolding(BaseModel):
    subject_address: str
    # Decimal string; holdings can exceed what JSON numbers represent exactly
    shares_amount: str


class UserSharesResponse(BaseModel):
    user_address: str
    shares: List[ShareHolding]
    chain_type: str
