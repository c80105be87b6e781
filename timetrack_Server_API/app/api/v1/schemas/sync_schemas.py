# sync_schemas.py
# Description: This file contains the models used for the sync API.
#
# Imports
from datetime import datetime
from typing import List, Optional
#
# 3rd-party Libraries
from pydantic import BaseModel, Field, ConfigDict
#
# Local Imports
from timetrack_Server_API.app.api.v1.schemas.time_tracking_schemas import ProjectResponse, SessionResponse
#
########################################################################################################################
#
# Functions:

# --- Pydantic Models ---

class SyncProject(BaseModel):
    """
    A project as pushed by a device. Only `name` and `color` are required, and
    those are checked by the sync engine so a bad record fails the whole push
    with a bad-request category. `user_id`, `created_at` and `updated_at` are
    accepted for round-tripping but never trusted.
    """
    id: Optional[str] = Field(None, description="Record UUID. Generated by the server when absent.")
    user_id: Optional[str] = Field(None, description="Ignored; the authenticated owner is always used.")
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    device_id: Optional[str] = Field(None, description="Originating device. Defaults to the pushing device.")
    is_deleted: Optional[bool] = Field(None, description="Omit to keep the stored flag. False restores a tombstone; "
                                                         "true hides the record.")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class SyncSession(BaseModel):
    """A completed timer interval as pushed by a device."""
    id: Optional[str] = None
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: Optional[str] = None
    device_id: Optional[str] = None
    is_deleted: Optional[bool] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class SyncRequest(BaseModel):
    """
    One push from a device. Corresponds to the request body for POST /sync.
    """
    device_id: Optional[str] = Field(None, description="The unique ID of the device sending these changes.")
    last_sync_time: Optional[datetime] = Field(None, description="The device's own cursor. Scopes delta pulls.")
    local_projects: List[SyncProject] = Field(default_factory=list)
    local_sessions: List[SyncSession] = Field(default_factory=list)
    deleted_projects: List[str] = Field(default_factory=list, description="Project ids to tombstone.")
    deleted_sessions: List[str] = Field(default_factory=list, description="Session ids to tombstone.")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "device_id": "phone-7",
                "last_sync_time": "2024-03-02T17:30:12.123456Z",
                "local_projects": [
                    {"id": "4f1c2b9e-8a3d-4c7e-9f10-2b6a5d3e1c00", "name": "Personal", "color": "#22aa55"}
                ],
                "local_sessions": [
                    {
                        "id": "9b2e7f40-1c5d-4e8a-b3f6-7d0c2a1e5f99",
                        "project_id": "4f1c2b9e-8a3d-4c7e-9f10-2b6a5d3e1c00",
                        "start_time": "2024-03-03T08:00:00Z",
                        "end_time": "2024-03-03T09:15:00Z",
                        "description": "Reading",
                    }
                ],
                "deleted_projects": [],
                "deleted_sessions": ["0c6d8e2a-55b1-4f3e-a9d7-1e2f3a4b5c6d"],
            }
        }
    )


class SkippedRecordResponse(BaseModel):
    entity: str = Field(..., description="'projects' or 'sessions'")
    id: str
    category: str = Field("conflict-skipped")
    message: str


class SyncResponse(BaseModel):
    """
    The authoritative post-merge state. Tombstoned records are included.
    """
    last_sync_time: str = Field(..., description="Server time of this exchange (asOf). Store it as the device cursor.")
    previous_sync_time: str = Field(..., description="The device's cursor before this exchange; epoch on first sync.")
    pull_mode: str = Field(..., description="'full' or 'delta'")
    server_projects: List[ProjectResponse] = Field(default_factory=list)
    server_sessions: List[SessionResponse] = Field(default_factory=list)
    skipped: List[SkippedRecordResponse] = Field(default_factory=list,
                                                 description="Pushed records not applied because their id belongs to another owner.")


class SyncStatusResponse(BaseModel):
    last_sync_time: str
    device_id: Optional[str] = None

#
# End of sync_schemas.py
#######################################################################################################################
