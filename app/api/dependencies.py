from typing import Optional

from fastapi import Header, HTTPException, Request

from app.backend.abstract import AbstractBackend
from app.config import config
from app.lib.logger import configure_logger
from app.services.agents.registry import AgentRegistry
from app.services.authorization.service import AuthorizationService
from app.services.integrations.chains.registry import ChainAdapterRegistry

# Configure logger
logger = configure_logger(__name__)


def get_backend(request: Request) -> AbstractBackend:
    return request.app.state.backend


def get_agent_registry(request: Request) -> AgentRegistry:
    return request.app.state.agent_registry


def get_authorization_service(request: Request) -> AuthorizationService:
    return request.app.state.authorization_service


def get_chain_registry(request: Request) -> ChainAdapterRegistry:
    return request.app.state.chain_registry


async def verify_admin_auth(authorization: Optional[str] = Header(None)) -> None:
    """
    Verify admin authentication using Bearer token.

    Admin routes are open when SHAREGATE_ADMIN_TOKEN is not configured.

    Args:
        authorization: The Authorization header value

    Raises:
        HTTPException: If authentication fails
    """
    expected_token = config.api.admin_token
    if not expected_token:
        return

    if not authorization:
        logger.error("Missing Authorization header for admin route")
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    if not authorization.startswith("Bearer "):
        logger.error("Invalid Authorization header format for admin route")
        raise HTTPException(
            status_code=401, detail="Invalid Authorization format. Use 'Bearer <token>'"
        )

    token = authorization.split(" ", 1)[1]
    if token != expected_token:
        logger.error("Invalid admin authentication token")
        raise HTTPException(status_code=401, detail="Invalid authentication token")
