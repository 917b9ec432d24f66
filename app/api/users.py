from fastapi import APIRouter, Depends, HTTPException
from starlette.responses import JSONResponse

from app.api.dependencies import get_backend, get_chain_registry
from app.api.models import ShareHolding, StatusResponse, UserSharesResponse
from app.backend.abstract import AbstractBackend
from app.backend.models import TradeFilter
from app.lib.logger import configure_logger
from app.lib.utils import normalize_address
from app.services.integrations.chains.registry import ChainAdapterRegistry

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_address}/shares/{chain_type}")
async def get_user_shares(
    user_address: str,
    chain_type: str,
    backend: AbstractBackend = Depends(get_backend),
    chains: ChainAdapterRegistry = Depends(get_chain_registry),
) -> JSONResponse:
    """Indexed share holdings of a user on one chain."""
    chain_type = chain_type.lower()
    if chain_type not in chains:
        return JSONResponse(
            status_code=400,
            content=StatusResponse(success=False, error="unsupported chain").model_dump(),
        )

    address = normalize_address(user_address)
    try:
        trades = backend.list_trades(TradeFilter(trader=address, chain_type=chain_type))
    except Exception as e:
        logger.error(
            "Failed to load user shares",
            extra={"user": address, "chain_type": chain_type, "error": str(e)},
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to load user shares")

    response = UserSharesResponse(
        user_address=address,
        shares=[
            ShareHolding(
                subject_address=trade.subject,
                shares_amount=str(trade.share_amount),
            )
            for trade in trades
        ],
        chain_type=chain_type,
    )
    return JSONResponse(content=response.model_dump())
