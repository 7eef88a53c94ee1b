from fastapi import APIRouter, Depends

from app.dependencies import get_lifecycle
from app.errors import ErrorType
from app.exceptions import AppException
from app.schemas.generation import RequestSnapshot
from app.services.request_lifecycle import RequestLifecycleManager

router = APIRouter(prefix="/api/v1/requests", tags=["requests"])


@router.get("", response_model=list[RequestSnapshot])
async def active_requests(lifecycle: RequestLifecycleManager = Depends(get_lifecycle)):
    """Requests that have not reached a terminal status."""
    return [state.snapshot() for state in lifecycle.get_active_requests()]


@router.get("/{request_id}", response_model=RequestSnapshot)
async def request_state(request_id: str, lifecycle: RequestLifecycleManager = Depends(get_lifecycle)):
    state = lifecycle.get_request_state(request_id)
    if state is None:
        raise AppException(ErrorType.NOT_FOUND, f"Request {request_id} not found")
    return state.snapshot()


@router.post("/{request_id}/cancel")
async def cancel_request(request_id: str, lifecycle: RequestLifecycleManager = Depends(get_lifecycle)):
    state = lifecycle.get_request_state(request_id)
    if state is None:
        raise AppException(ErrorType.NOT_FOUND, f"Request {request_id} not found")

    cancelled = lifecycle.cancel_request(request_id)
    return {"request_id": request_id, "cancelled": cancelled, "status": state.status.value}
