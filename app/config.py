import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

from app.lib.logger import configure_logger

logger = configure_logger(__name__)

load_dotenv()


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class DatabaseConfig:
    backend: str = os.getenv("SHAREGATE_BACKEND", "supabase")
    user: str = os.getenv("SHAREGATE_SUPABASE_USER", "")
    password: str = os.getenv("SHAREGATE_SUPABASE_PASSWORD", "")
    host: str = os.getenv("SHAREGATE_SUPABASE_HOST", "")
    port: str = os.getenv("SHAREGATE_SUPABASE_PORT", "")
    dbname: str = os.getenv("SHAREGATE_SUPABASE_DBNAME", "")
    url: str = os.getenv("SHAREGATE_SUPABASE_URL", "")
    service_key: str = os.getenv("SHAREGATE_SUPABASE_SERVICE_KEY", "")


@dataclass
class TelegramConfig:
    enabled: bool = os.getenv("SHAREGATE_TELEGRAM_BOTS_ENABLED", "false").lower() == "true"
    sign_page_url: str = os.getenv(
        "SHAREGATE_SIGN_PAGE_URL", "http://127.0.0.1:3000/web3-sign"
    )
    join_message: str = os.getenv(
        "SHAREGATE_JOIN_MESSAGE", "Please sign to verify wallet ownership:"
    )
    sign_button_text: str = os.getenv("SHAREGATE_SIGN_BUTTON_TEXT", "ClickToSign")
    # Shared by the bots and the API; empty leaves member ids on /challenge unchecked
    member_link_secret: str = os.getenv("SHAREGATE_MEMBER_LINK_SECRET", "")
    member_link_ttl_seconds: int = int(
        os.getenv("SHAREGATE_MEMBER_LINK_TTL_SECONDS", "86400")
    )


@dataclass
class ChainConfig:
    """Per-chain RPC settings."""

    enabled_chains: List[str] = field(
        default_factory=lambda: _env_list("SHAREGATE_ENABLED_CHAINS", "monad,sui")
    )
    rpc_timeout_seconds: float = float(
        os.getenv("SHAREGATE_CHAIN_RPC_TIMEOUT_SECONDS", "8")
    )
    retry_delay_seconds: float = float(
        os.getenv("SHAREGATE_CHAIN_RETRY_DELAY_SECONDS", "0.5")
    )

    monad_rpc_url: str = os.getenv("SHAREGATE_MONAD_RPC_URL", "")
    monad_shares_contract: str = os.getenv("SHAREGATE_MONAD_SHARES_CONTRACT", "")
    monad_start_block: int = int(os.getenv("SHAREGATE_MONAD_START_BLOCK", "0"))
    monad_block_batch_size: int = int(
        os.getenv("SHAREGATE_MONAD_BLOCK_BATCH_SIZE", "100")
    )

    sui_rpc_url: str = os.getenv(
        "SHAREGATE_SUI_RPC_URL", "https://fullnode.mainnet.sui.io:443"
    )
    sui_package_id: str = os.getenv("SHAREGATE_SUI_PACKAGE_ID", "")
    sui_event_page_size: int = int(os.getenv("SHAREGATE_SUI_EVENT_PAGE_SIZE", "100"))
    # 0 disables the freshness check
    sui_max_sync_lag_seconds: int = int(
        os.getenv("SHAREGATE_SUI_MAX_SYNC_LAG_SECONDS", "600")
    )


@dataclass
class AuthConfig:
    challenge_ttl_seconds: int = int(
        os.getenv("SHAREGATE_CHALLENGE_TTL_SECONDS", "300")
    )
    challenge_retention_seconds: int = int(
        os.getenv("SHAREGATE_CHALLENGE_RETENTION_SECONDS", "300")
    )
    challenge_max_entries: int = int(
        os.getenv("SHAREGATE_CHALLENGE_MAX_ENTRIES", "100000")
    )
    min_shares: int = int(os.getenv("SHAREGATE_MIN_SHARES", "1"))
    grant_redelivery_attempts: int = int(
        os.getenv("SHAREGATE_GRANT_REDELIVERY_ATTEMPTS", "3")
    )
    grant_redelivery_delay_seconds: float = float(
        os.getenv("SHAREGATE_GRANT_REDELIVERY_DELAY_SECONDS", "5")
    )


@dataclass
class SchedulerConfig:
    # trade_sync job
    trade_sync_enabled: bool = (
        os.getenv("SHAREGATE_TRADE_SYNC_ENABLED", "true").lower() == "true"
    )
    trade_sync_interval_seconds: int = int(
        os.getenv("SHAREGATE_TRADE_SYNC_INTERVAL_SECONDS", "15")
    )

    # agent_bot_refresh job
    agent_bot_refresh_enabled: bool = (
        os.getenv("SHAREGATE_AGENT_BOT_REFRESH_ENABLED", "true").lower() == "true"
    )
    agent_bot_refresh_interval_seconds: int = int(
        os.getenv("SHAREGATE_AGENT_BOT_REFRESH_INTERVAL_SECONDS", "60")
    )


@dataclass
class APIConfig:
    admin_token: str = os.getenv("SHAREGATE_ADMIN_TOKEN", "")
    cors_origins: List[str] = field(
        default_factory=lambda: _env_list("SHAREGATE_CORS_ORIGINS", "*")
    )


@dataclass
class Config:
    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    api: APIConfig = field(default_factory=APIConfig)

    @classmethod
    def load(cls) -> "Config":
        """Load and validate configuration"""
        config = cls()
        if config.auth.min_shares < 1:
            raise ValueError("SHAREGATE_MIN_SHARES must be at least 1")
        logger.info(
            "Configuration loaded successfully",
            extra={"enabled_chains": ",".join(config.chain.enabled_chains)},
        )
        return config


# Global configuration instance
config = Config.load()
