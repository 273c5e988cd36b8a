from fastapi import APIRouter, Depends, Request, Response

from linecast.domain.signaling.signaling_domain import SignalingService
from linecast.schemas import SessionDescription
from linecast.shared.api.utils import ApiSuccess
from linecast.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter()


def get_signaling_service(request: Request) -> SignalingService:
    """Get the SignalingService created for this app at startup."""
    return request.app.state.signaling_service


def _too_large(limit: int) -> AppError:
    return AppError(
        f"Offer exceeds {limit} bytes",
        errcode=AppErrorCode.E_PAYLOAD_TOO_LARGE,
        status_code=HttpStatusCode.PAYLOAD_TOO_LARGE,
    )


async def read_body(request: Request, limit: int) -> bytes:
    """Read the request body, refusing anything larger than ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared is not None:
        try:
            declared_size = int(declared)
        except ValueError as exc:
            raise AppError(
                f"Invalid Content-Length: {declared}",
                errcode=AppErrorCode.E_INVALID_REQUEST,
                status_code=HttpStatusCode.BAD_REQUEST,
            ) from exc
        if declared_size > limit:
            raise _too_large(limit)

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise _too_large(limit)
    return bytes(body)


@router.post("/offer")
async def offer(
    request: Request,
    service: SignalingService = Depends(get_signaling_service),
) -> Response:
    """Answer a serialized offer with a serialized answer."""
    body = await read_body(request, service.max_offer_bytes)

    description = SessionDescription.from_wire(body)
    answer = await service.answer_offer(description)

    return Response(content=answer.to_wire(), media_type="application/json")


@router.get("/health", response_model=ApiSuccess)
async def health(service: SignalingService = Depends(get_signaling_service)):
    lifecycle = service.lifecycle
    return ApiSuccess(
        results={
            "state": lifecycle.state.value,
            "active_sessions": len(lifecycle.registry),
        }
    )
