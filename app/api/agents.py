from typing import Optional

from fastapi import APIRouter, Depends, Query
from starlette.responses import JSONResponse

from app.api.dependencies import get_agent_registry, verify_admin_auth
from app.api.models import (
    AddTelegramBotRequest,
    AgentDetailResponse,
    AgentListResponse,
    AgentLookupResponse,
    AgentSummary,
    AgentView,
    StatusResponse,
    UpdateAgentRequest,
)
from app.backend.abstract import BackendError
from app.lib.logger import configure_logger
from app.services.agents.registry import (
    AgentNotFoundError,
    AgentRegistry,
    DuplicateChatError,
    DuplicateNameError,
    DuplicateSubjectError,
    InvalidAgentError,
    InvalidPaginationError,
)

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(tags=["agents"])


def _status(status_code: int, success: bool, error: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=StatusResponse(success=success, error=error).model_dump(
            exclude_none=True
        ),
    )


def _log_storage_error(
    message: str, error: BackendError, agent_name: Optional[str] = None
) -> None:
    logger.error(
        message,
        extra={"agent_name": agent_name, "error": str(error)},
        exc_info=True,
    )


@router.post("/add_tg_bot")
async def add_tg_bot(
    body: AddTelegramBotRequest,
    registry: AgentRegistry = Depends(get_agent_registry),
    _: None = Depends(verify_admin_auth),
) -> JSONResponse:
    """Register an agent bot bound to a chat group and an on-chain subject."""
    try:
        registry.register(
            agent_name=body.agent_name,
            subject_address=body.subject_address,
            bot_token=body.bot_token,
            chat_group_id=body.chat_group_id,
            invite_url=body.invite_url,
            bio=body.bio,
            chain_type=body.chain_type,
        )
    except DuplicateNameError:
        return _status(409, False, "Agent name already exists")
    except DuplicateSubjectError:
        return _status(409, False, "Subject address already bound to an agent")
    except DuplicateChatError:
        return _status(409, False, "Chat group already managed by an agent")
    except InvalidAgentError as e:
        return _status(400, False, str(e))
    except BackendError as e:
        logger.error(
            "Failed to register agent",
            extra={"agent_name": body.agent_name, "error": str(e)},
            exc_info=True,
        )
        return _status(500, False, "Failed to register agent")

    return _status(200, True)


@router.get("/agents")
async def list_agents(
    page: int = Query(1, description="1-based page number"),
    page_size: int = Query(10, description="Agents per page"),
    registry: AgentRegistry = Depends(get_agent_registry),
) -> JSONResponse:
    """List agents, most recently registered first."""
    try:
        agents, total = registry.list(page, page_size)
    except InvalidPaginationError as e:
        return _status(400, False, str(e))
    except BackendError as e:
        _log_storage_error("Failed to list agents", e)
        return _status(500, False, "Failed to list agents")

    response = AgentListResponse(
        agents=[
            AgentSummary(
                agent_name=agent.agent_name,
                subject_address=agent.subject_address,
                created_at=agent.created_at,
            )
            for agent in agents
        ],
        total=total,
        page=page,
        page_size=page_size,
    )
    return JSONResponse(content=response.model_dump(mode="json"))


@router.get("/agents/{agent_name}")
async def get_agent(
    agent_name: str,
    registry: AgentRegistry = Depends(get_agent_registry),
) -> JSONResponse:
    """Look up an agent by name; `agent` is null when there is none."""
    try:
        agent = registry.get_by_name(agent_name)
    except AgentNotFoundError:
        return JSONResponse(
            content=AgentLookupResponse(agent=None, success=True).model_dump(
                mode="json", exclude={"error"}
            )
        )
    except BackendError as e:
        _log_storage_error("Failed to load agent", e, agent_name)
        return _status(500, False, "Failed to load agent")

    response = AgentLookupResponse(
        agent=AgentView(**agent.model_dump(exclude={"bot_token"})),
        success=True,
    )
    return JSONResponse(content=response.model_dump(mode="json", exclude={"error"}))


@router.patch("/agents/{agent_name}")
async def update_agent(
    agent_name: str,
    body: UpdateAgentRequest,
    registry: AgentRegistry = Depends(get_agent_registry),
    _: None = Depends(verify_admin_auth),
) -> JSONResponse:
    """Update an agent's bio or invite link."""
    try:
        registry.update_profile(agent_name, bio=body.bio, invite_url=body.invite_url)
    except AgentNotFoundError:
        return _status(404, False, "Agent not found")
    except InvalidAgentError as e:
        return _status(400, False, str(e))
    except BackendError as e:
        _log_storage_error("Failed to update agent", e, agent_name)
        return _status(500, False, "Failed to update agent")
    return _status(200, True)


@router.get("/agent/detail/{agent_name}")
async def get_agent_detail(
    agent_name: str,
    registry: AgentRegistry = Depends(get_agent_registry),
) -> JSONResponse:
    """Public profile of an agent."""
    try:
        agent = registry.get_by_name(agent_name)
    except AgentNotFoundError:
        response = AgentDetailResponse(
            agent_name="",
            subject_address="",
            invite_url="",
            bio=None,
            success=False,
            error="Agent not found",
        )
        return JSONResponse(status_code=404, content=response.model_dump())
    except BackendError as e:
        _log_storage_error("Failed to load agent detail", e, agent_name)
        response = AgentDetailResponse(
            agent_name="",
            subject_address="",
            invite_url="",
            bio=None,
            success=False,
            error="Failed to load agent",
        )
        return JSONResponse(status_code=500, content=response.model_dump())

    response = AgentDetailResponse(
        agent_name=agent.agent_name,
        subject_address=agent.subject_address,
        invite_url=agent.invite_url or "",
        bio=agent.bio,
        success=True,
    )
    return JSONResponse(content=response.model_dump(exclude={"error"}))
