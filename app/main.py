from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import agents, signature, users
from app.backend.abstract import AbstractBackend
from app.config import Config, config
from app.lib.logger import configure_logger, setup_uvicorn_logging
from app.middleware.logging import LoggingMiddleware
from app.services.agents.registry import AgentRegistry
from app.services.authorization.challenge_store import ChallengeStore
from app.services.authorization.member_link import build_member_link_signer
from app.services.authorization.service import AuthorizationService
from app.services.authorization.share_authorizer import ShareAuthorizer
from app.services.communication.telegram_bot_service import TelegramChatGateway
from app.services.integrations.chains.registry import build_chain_adapters

# Configure module logger
logger = configure_logger(__name__)


def init_services(app: FastAPI, backend: AbstractBackend, app_config: Config) -> None:
    """Attach the authorization stack to app.state for the route dependencies."""
    chains = build_chain_adapters(app_config, backend)
    agent_registry = AgentRegistry(backend)
    auth = app_config.auth

    app.state.backend = backend
    app.state.chain_registry = chains
    app.state.agent_registry = agent_registry
    app.state.authorization_service = AuthorizationService(
        challenges=ChallengeStore(
            ttl_seconds=auth.challenge_ttl_seconds,
            retention_seconds=auth.challenge_retention_seconds,
            max_entries=auth.challenge_max_entries,
        ),
        agents=agent_registry,
        chains=chains,
        authorizer=ShareAuthorizer(threshold=auth.min_shares),
        gateway=TelegramChatGateway(),
        backend=backend,
        redelivery_attempts=auth.grant_redelivery_attempts,
        redelivery_delay=auth.grant_redelivery_delay_seconds,
        member_links=build_member_link_signer(
            app_config.telegram.member_link_secret,
            app_config.telegram.member_link_ttl_seconds,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run web server startup and shutdown tasks."""
    # Configure logging after uvicorn is fully initialized
    setup_uvicorn_logging()
    logger.info("Starting FastAPI web server...")

    from app.backend.factory import get_backend

    init_services(app, get_backend(), config)
    # Background services (trade sync, agent bots) are handled by worker.py
    logger.info("Web server startup complete")

    yield

    logger.info("Shutting down FastAPI web server...")
    await app.state.authorization_service.close()
    await app.state.chain_registry.close()
    logger.info("Web server shutdown complete")


# Define app
app = FastAPI(
    title="Sharegate Backend",
    description="Share-gated Telegram chat authorization API",
    version="0.1.0",
    lifespan=lifespan,
)

# Add logging middleware first
app.add_middleware(LoggingMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials="*" not in config.api.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Simple health check endpoint
@app.get("/")
async def health_check():
    """Simple health check endpoint."""
    return {"status": "healthy"}


# Load API routes
app.include_router(signature.router)
app.include_router(agents.router)
app.include_router(users.router)
