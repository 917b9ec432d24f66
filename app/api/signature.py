import asyncio
from contextlib import suppress

from fastapi import APIRouter, Depends, Request
from starlette.responses import JSONResponse

from app.api.dependencies import get_authorization_service
from app.api.models import (
    ChallengeRequest,
    ChallengeResponse,
    StatusResponse,
    VerifySignatureRequest,
)
from app.lib.logger import configure_logger
from app.lib.utils import is_hex_address
from app.services.authorization.errors import (
    ChallengeCapacityError,
    InvalidMemberTokenError,
    UnknownChatError,
)
from app.services.authorization.service import AuthorizationService

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(tags=["authorization"])

DISCONNECT_POLL_SECONDS = 0.1


def _challenge_error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ChallengeResponse(success=False, error=error).model_dump(
            exclude_none=True
        ),
    )


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@router.post("/challenge")
async def issue_challenge(
    body: ChallengeRequest,
    service: AuthorizationService = Depends(get_authorization_service),
) -> JSONResponse:
    """Issue a single-use challenge for a wallet to sign."""
    if not is_hex_address(body.user):
        return _challenge_error(400, "invalid address")

    try:
        challenge = service.issue_challenge(
            body.chat_id, body.user, body.member_id, body.member_token
        )
    except UnknownChatError as e:
        logger.info(
            "Challenge refused for unknown chat",
            extra={"chat_id": body.chat_id, "error": str(e)},
        )
        return _challenge_error(404, e.client_message)
    except InvalidMemberTokenError as e:
        logger.info(
            "Challenge refused for unverified member",
            extra={"chat_id": body.chat_id, "member_id": body.member_id, "error": str(e)},
        )
        return _challenge_error(403, e.client_message)
    except ChallengeCapacityError as e:
        return _challenge_error(503, e.client_message)

    response = ChallengeResponse(
        success=True,
        challenge=challenge.value,
        expires_at=challenge.expires_at_datetime,
    )
    return JSONResponse(content=response.model_dump(mode="json", exclude_none=True))


@router.post("/verify-signature")
async def verify_signature(
    request: Request,
    body: VerifySignatureRequest,
    service: AuthorizationService = Depends(get_authorization_service),
) -> JSONResponse:
    """Verify a signed challenge and grant posting rights to share holders.

    Always answers 200; the outcome is in `success` and `error`. If the client
    disconnects before the verification finishes, it is cancelled and nothing
    is granted.
    """
    logger.debug(
        "Signature verification requested",
        extra={
            "event_type": "verify_signature",
            "chat_id": body.chat_id,
            "chain_type": body.chain_type,
        },
    )

    verification = asyncio.create_task(
        service.verify(
            challenge=body.challenge,
            chat_id=body.chat_id,
            signature=body.signature,
            user=body.user,
            chain_type=body.chain_type,
        )
    )
    watcher = asyncio.create_task(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait(
            {verification, watcher}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        verification.cancel()
        raise
    finally:
        watcher.cancel()

    if verification not in done:
        verification.cancel()
        with suppress(asyncio.CancelledError):
            await verification
        logger.info(
            "Client disconnected, verification cancelled",
            extra={"event_type": "verify_signature_cancelled", "chat_id": body.chat_id},
        )
        result = StatusResponse(success=False, error="client disconnected")
    else:
        outcome = verification.result()
        result = StatusResponse(success=outcome.success, error=outcome.error)

    return JSONResponse(content=result.model_dump(exclude_none=True))
