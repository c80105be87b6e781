# app/api/v1/endpoints/time_tracking.py
# Description: Single-record endpoints for projects and timer sessions. Listings hide tombstones.
#
# Imports
import asyncio
from typing import List
#
# 3rd-party Libraries
from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    status,
)
from loguru import logger
#
# Local Imports
from timetrack_Server_API.app.api.v1.API_Deps.TimeTracking_DB_Deps import get_timetrack_db
from timetrack_Server_API.app.api.v1.schemas.time_tracking_schemas import (
    ProjectCreate, ProjectUpdate, ProjectResponse,
    SessionCreate, SessionUpdate, SessionResponse,
    DetailResponse, wire_to_fields
)
from timetrack_Server_API.app.core.AuthNZ.User_DB_Handling import get_request_user, User
from timetrack_Server_API.app.core.DB_Management.TimeTracking_DB import (
    TimeTrackingDB, InputError, ConflictError, NotFoundError, TimeTrackingDBError
)
#
#######################################################################################################################
#
# Functions:

projects_router = APIRouter()
sessions_router = APIRouter()


# --- Helper for Exception Handling ---
def handle_db_errors(e: Exception, entity_type: str = "resource"):
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, InputError):
        logger.warning(f"Input error for {entity_type}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail={"category": "bad-request", "message": str(e)})
    elif isinstance(e, NotFoundError):
        logger.info(f"{entity_type} not found: {e}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail={"category": "not-found", "message": f"{entity_type.capitalize()} not found"})
    elif isinstance(e, ConflictError):
        logger.warning(f"Conflict error for {entity_type} (ID: {e.entity_id}): {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT,
                            detail={"category": "conflict",
                                    "message": f"A {entity_type} with the provided identifier already exists."})
    elif isinstance(e, TimeTrackingDBError):
        logger.error(f"Database error for {entity_type}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail={"category": "internal",
                                    "message": f"A database error occurred while processing your request for {entity_type}."})
    else:
        logger.error(f"Unexpected error for {entity_type}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail={"category": "internal",
                                    "message": f"An unexpected error occurred while processing your request for {entity_type}."})


_NOT_FOUND = {status.HTTP_404_NOT_FOUND: {"model": DetailResponse}}


# --- Project Endpoints ---
@projects_router.post(
    "/",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
    responses={status.HTTP_409_CONFLICT: {"model": DetailResponse}}
)
async def create_project(
        project_in: ProjectCreate,
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    fields = wire_to_fields(project_in.model_dump(exclude={"id"}))
    try:
        logger.info(f"[{current_user.id}] Creating project: Name='{project_in.name[:30]}'")
        record = await asyncio.to_thread(db.create_project, current_user.id, fields, project_in.id)
        return ProjectResponse.from_record(record)
    except Exception as e:
        handle_db_errors(e, "project")


@projects_router.get(
    "/",
    response_model=List[ProjectResponse],
    summary="List active projects"
)
async def list_projects(
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    try:
        records = await asyncio.to_thread(db.list_projects, current_user.id)
        return [ProjectResponse.from_record(r) for r in records]
    except Exception as e:
        handle_db_errors(e, "projects list")


@projects_router.get(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Get an active project by ID",
    responses=_NOT_FOUND
)
async def get_project(
        project_id: str,
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    try:
        record = await asyncio.to_thread(db.get_project, current_user.id, project_id)
        if not record:
            raise NotFoundError(f"Project '{project_id}' not found.", entity="projects", entity_id=project_id)
        return ProjectResponse.from_record(record)
    except Exception as e:
        handle_db_errors(e, "project")


@projects_router.put(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Update a project",
    responses=_NOT_FOUND
)
async def update_project(
        project_id: str,
        project_in: ProjectUpdate,
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    update_data = wire_to_fields(project_in.model_dump(exclude_unset=True))
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail={"category": "bad-request", "message": "No fields provided for update."})
    try:
        logger.info(f"[{current_user.id}] Updating project {project_id}: DataKeys={list(update_data.keys())}")
        record = await asyncio.to_thread(db.update_project, current_user.id, project_id, update_data)
        return ProjectResponse.from_record(record)
    except Exception as e:
        handle_db_errors(e, "project")


@projects_router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete a project",
    responses=_NOT_FOUND
)
async def delete_project(
        project_id: str,
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    try:
        logger.info(f"[{current_user.id}] Soft-deleting project {project_id}")
        await asyncio.to_thread(db.delete_project, current_user.id, project_id)
    except Exception as e:
        handle_db_errors(e, "project")


# --- Session Endpoints ---
@sessions_router.post(
    "/",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a timer session",
    responses={status.HTTP_409_CONFLICT: {"model": DetailResponse}}
)
async def create_session(
        session_in: SessionCreate,
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    fields = wire_to_fields(session_in.model_dump(exclude={"id"}))
    try:
        logger.info(f"[{current_user.id}] Creating session: {fields['start_time']} -> {fields['end_time']}")
        record = await asyncio.to_thread(db.create_session, current_user.id, fields, session_in.id)
        return SessionResponse.from_record(record)
    except Exception as e:
        handle_db_errors(e, "session")


@sessions_router.get(
    "/",
    response_model=List[SessionResponse],
    summary="List active sessions, newest first"
)
async def list_sessions(
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    try:
        records = await asyncio.to_thread(db.list_sessions, current_user.id)
        return [SessionResponse.from_record(r) for r in records]
    except Exception as e:
        handle_db_errors(e, "sessions list")


@sessions_router.get(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Get an active session by ID",
    responses=_NOT_FOUND
)
async def get_session(
        session_id: str,
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    try:
        record = await asyncio.to_thread(db.get_session, current_user.id, session_id)
        if not record:
            raise NotFoundError(f"Session '{session_id}' not found.", entity="sessions", entity_id=session_id)
        return SessionResponse.from_record(record)
    except Exception as e:
        handle_db_errors(e, "session")


@sessions_router.put(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Update a session",
    responses=_NOT_FOUND
)
async def update_session(
        session_id: str,
        session_in: SessionUpdate,
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    update_data = wire_to_fields(session_in.model_dump(exclude_unset=True))
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail={"category": "bad-request", "message": "No fields provided for update."})
    try:
        logger.info(f"[{current_user.id}] Updating session {session_id}: DataKeys={list(update_data.keys())}")
        record = await asyncio.to_thread(db.update_session, current_user.id, session_id, update_data)
        return SessionResponse.from_record(record)
    except Exception as e:
        handle_db_errors(e, "session")


@sessions_router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete a session",
    responses=_NOT_FOUND
)
async def delete_session(
        session_id: str,
        current_user: User = Depends(get_request_user),
        db: TimeTrackingDB = Depends(get_timetrack_db)
):
    try:
        logger.info(f"[{current_user.id}] Soft-deleting session {session_id}")
        await asyncio.to_thread(db.delete_session, current_user.id, session_id)
    except Exception as e:
        handle_db_errors(e, "session")

#
# End of time_tracking.py
#######################################################################################################################
