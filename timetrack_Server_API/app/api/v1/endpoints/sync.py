# sync.py
# Description: FastAPI endpoints for the multi-device push/pull sync exchange.
#
# Imports
import asyncio
from typing import Optional
#
# 3rd-party imports
from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    status,
)
# API Rate Limiter
from slowapi import Limiter
from slowapi.util import get_remote_address
from loguru import logger
#
# Local Imports
from timetrack_Server_API.app.api.v1.API_Deps.TimeTracking_DB_Deps import get_sync_coordinator
from timetrack_Server_API.app.api.v1.schemas.sync_schemas import (
    SyncRequest, SyncResponse, SyncStatusResponse, SkippedRecordResponse
)
from timetrack_Server_API.app.api.v1.schemas.time_tracking_schemas import (
    ProjectResponse, SessionResponse, DetailResponse
)
from timetrack_Server_API.app.core.AuthNZ.User_DB_Handling import get_request_user, User
from timetrack_Server_API.app.core.config import settings
from timetrack_Server_API.app.core.Sync.core import SyncCoordinator
from timetrack_Server_API.app.core.Sync.exceptions import (
    AuthorizationError, ValidationError as SyncValidationError, StorageError, SyncTimeoutError
)
from timetrack_Server_API.app.core.Sync.models import (
    ProjectRecord, SessionRecord, PushBatch, PullResult, format_timestamp
)
#
#
#######################################################################################################################
#
# Functions:

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)

_ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": DetailResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": DetailResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": DetailResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": DetailResponse},
}


def handle_sync_errors(e: Exception, owner: str):
    """Translates sync-engine failures into one pass/fail HTTP outcome with a machine-readable category."""
    if isinstance(e, AuthorizationError):
        logger.warning(f"[{owner}] Sync rejected, unauthorized: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail={"category": e.category, "message": str(e)})
    elif isinstance(e, SyncValidationError):
        logger.warning(f"[{owner}] Sync rejected, bad request: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail={"category": e.category, "message": str(e)})
    elif isinstance(e, SyncTimeoutError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            detail={"category": e.category, "message": str(e)},
                            headers={"Retry-After": "1"})
    elif isinstance(e, StorageError):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail={"category": e.category,
                                    "message": "Sync failed and nothing was applied. Retry the whole batch."})
    else:
        logger.exception(f"[{owner}] Unexpected error during sync")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail={"category": "internal", "message": "Internal server error."})


def _build_batch(payload: SyncRequest) -> PushBatch:
    return PushBatch(
        projects=[ProjectRecord.from_dict(p.model_dump()) for p in payload.local_projects],
        sessions=[SessionRecord.from_dict(s.model_dump()) for s in payload.local_sessions],
        deleted_project_ids=list(payload.deleted_projects),
        deleted_session_ids=list(payload.deleted_sessions),
    )


def _to_response(result: PullResult) -> SyncResponse:
    return SyncResponse(
        last_sync_time=result.as_of,
        previous_sync_time=result.previous_sync_time,
        pull_mode=result.pull_mode,
        server_projects=[ProjectResponse.from_record(r) for r in result.projects],
        server_sessions=[SessionResponse.from_record(r) for r in result.sessions],
        skipped=[SkippedRecordResponse(entity=s.entity, id=s.record_id, category=s.category, message=s.message)
                 for s in result.skipped],
    )


# --- FastAPI Endpoint Definitions ---

@router.post("",
             response_model=SyncResponse,
             status_code=status.HTTP_200_OK,
             summary="Push local changes and pull the merged state",
             responses=_ERROR_RESPONSES)
@limiter.limit(settings["SYNC_RATE_LIMIT"])
async def sync_data(
    request: Request,
    payload: SyncRequest,
    current_user: User = Depends(get_request_user),
    coordinator: SyncCoordinator = Depends(get_sync_coordinator)
):
    """
    Applies a device's push batch atomically and returns every project and
    session the user owns (tombstones included), or only the changed ones when
    the server runs in delta mode. A success response means the whole batch
    committed.
    """
    device_id = payload.device_id or current_user.device_id
    batch = _build_batch(payload)
    client_cursor = format_timestamp(payload.last_sync_time) if payload.last_sync_time else None
    logger.info(f"[{current_user.id}] Sync request from device '{device_id}'.")
    try:
        # The coordinator is synchronous; run it off the event loop
        result = await asyncio.to_thread(coordinator.sync, current_user.id, device_id, batch, client_cursor)
    except Exception as e:
        handle_sync_errors(e, current_user.id)
    return _to_response(result)


@router.get("",
            response_model=SyncResponse,
            summary="Pull the merged state without pushing",
            responses=_ERROR_RESPONSES)
@limiter.limit(settings["SYNC_RATE_LIMIT"])
async def pull_data(
    request: Request,
    device_id: Optional[str] = Query(None, description="Device pulling. Defaults to the token's device_id claim."),
    current_user: User = Depends(get_request_user),
    coordinator: SyncCoordinator = Depends(get_sync_coordinator)
):
    """A pull-only exchange: an empty push that still advances the device cursor."""
    device_id = device_id or current_user.device_id
    try:
        result = await asyncio.to_thread(coordinator.sync, current_user.id, device_id, PushBatch(), None)
    except Exception as e:
        handle_sync_errors(e, current_user.id)
    return _to_response(result)


@router.get("/status",
            response_model=SyncStatusResponse,
            summary="Last sync time for the user or one device",
            responses=_ERROR_RESPONSES)
async def sync_status(
    device_id: Optional[str] = Query(None, description="Restrict to one device"),
    current_user: User = Depends(get_request_user),
    coordinator: SyncCoordinator = Depends(get_sync_coordinator)
):
    try:
        last_sync_time = await asyncio.to_thread(coordinator.status, current_user.id, device_id)
    except Exception as e:
        handle_sync_errors(e, current_user.id)
    return SyncStatusResponse(last_sync_time=last_sync_time, device_id=device_id)

#
# End of sync.py
#######################################################################################################################
