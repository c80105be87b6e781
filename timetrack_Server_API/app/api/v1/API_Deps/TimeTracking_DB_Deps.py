# TimeTracking_DB_Deps.py
# Description: FastAPI dependencies handing the process-wide store and a sync coordinator to endpoints.
#
# Imports
from pathlib import Path
from typing import Optional, Union
#
# 3rd-party Libraries
from fastapi import Depends, HTTPException, Request, status
from loguru import logger
#
# Local Imports
from timetrack_Server_API.app.core.config import settings
from timetrack_Server_API.app.core.DB_Management.TimeTracking_DB import TimeTrackingDB
from timetrack_Server_API.app.core.Sync.core import SyncCoordinator
#
#######################################################################################################################
#
# Functions:

def create_timetrack_db(db_path: Optional[Union[str, Path]] = None) -> TimeTrackingDB:
    """Builds the store once at process start. Defaults to settings["TIMETRACK_DB_PATH"]."""
    path = db_path or settings["TIMETRACK_DB_PATH"]
    logger.info(f"Opening TimeTracking DB at: {path}")
    return TimeTrackingDB(path)


async def get_timetrack_db(request: Request) -> TimeTrackingDB:
    """Returns the store attached to the application in its lifespan."""
    db = getattr(request.app.state, "timetrack_db", None)
    if db is None:
        logger.error("TimeTracking DB is not attached to app.state; was the lifespan run?")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail={"category": "internal", "message": "Storage is not configured."})
    return db


async def get_sync_coordinator(db: TimeTrackingDB = Depends(get_timetrack_db)) -> SyncCoordinator:
    """A fresh coordinator per request; it holds no state beyond the injected store."""
    return SyncCoordinator(
        db,
        pull_mode=settings["SYNC_PULL_MODE"],
        delta_overlap_ms=settings["SYNC_DELTA_OVERLAP_MS"],
        timeout_seconds=settings["SYNC_TIMEOUT_SECONDS"],
    )

#
# End of TimeTracking_DB_Deps.py
#######################################################################################################################
