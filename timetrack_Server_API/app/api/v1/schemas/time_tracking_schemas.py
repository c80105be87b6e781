# app/api/v1/schemas/time_tracking_schemas.py
#
# Imports
from datetime import datetime
from typing import Optional, Dict, Any
# 3rd-party Libraries
from pydantic import BaseModel, Field, ConfigDict
#
# Local Imports
from timetrack_Server_API.app.core.DB_Management.TimeTracking_DB import normalize_timestamp
#
#######################################################################################################################
#
# Schemas:

# Wire names differ from storage names: user_id <-> owner, device_id <-> origin_device, is_deleted <-> deleted.
_WIRE_TO_STORE = {"device_id": "origin_device", "is_deleted": "deleted"}


def wire_to_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    fields = {}
    for key, value in data.items():
        if key in ("start_time", "end_time") and value is not None:
            value = normalize_timestamp(value)
        fields[_WIRE_TO_STORE.get(key, key)] = value
    return fields


class DetailResponse(BaseModel):
    detail: Dict[str, str]


# --- Project Schemas ---
class ProjectCreate(BaseModel):
    id: Optional[str] = Field(None, description="Optional client-provided UUID. If None, one is generated.")
    name: str = Field(..., min_length=1, max_length=255, description="Project name")
    description: Optional[str] = Field(None, description="Free-form description")
    color: str = Field(..., min_length=1, max_length=32, description="Display color, e.g. '#3366ff'")
    device_id: Optional[str] = Field(None, description="Device the project was created on")


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, min_length=1, max_length=32)
    device_id: Optional[str] = None
    is_deleted: Optional[bool] = Field(None, description="Set false to restore a deleted project")


class ProjectResponse(BaseModel):
    id: str
    user_id: str = Field(..., description="Owner of the record")
    name: str
    description: Optional[str] = None
    color: str
    device_id: Optional[str] = Field(None, description="Device that last wrote the record")
    is_deleted: bool
    created_at: str
    updated_at: str

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "4f1c2b9e-8a3d-4c7e-9f10-2b6a5d3e1c00",
                "user_id": "00000000-0000-4000-8000-000000000001",
                "name": "Work",
                "description": "Client projects",
                "color": "#3366ff",
                "device_id": "laptop-1",
                "is_deleted": False,
                "created_at": "2024-03-01T09:00:00.000000Z",
                "updated_at": "2024-03-02T17:30:12.123456Z",
            }
        }
    )

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ProjectResponse":
        return cls(
            id=record["id"],
            user_id=record["owner"],
            name=record["name"],
            description=record.get("description"),
            color=record["color"],
            device_id=record.get("origin_device"),
            is_deleted=bool(record.get("deleted")),
            created_at=record["created_at"],
            updated_at=record["updated_at"],
        )


# --- Session Schemas ---
class SessionCreate(BaseModel):
    id: Optional[str] = Field(None, description="Optional client-provided UUID. If None, one is generated.")
    project_id: Optional[str] = Field(None, description="Project this interval belongs to. Not checked for existence.")
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    device_id: Optional[str] = None


class SessionUpdate(BaseModel):
    project_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: Optional[str] = None
    device_id: Optional[str] = None
    is_deleted: Optional[bool] = Field(None, description="Set false to restore a deleted session")


class SessionResponse(BaseModel):
    id: str
    user_id: str
    project_id: Optional[str] = None
    start_time: str
    end_time: str
    description: Optional[str] = None
    device_id: Optional[str] = None
    is_deleted: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "SessionResponse":
        return cls(
            id=record["id"],
            user_id=record["owner"],
            project_id=record.get("project_id"),
            start_time=record["start_time"],
            end_time=record["end_time"],
            description=record.get("description"),
            device_id=record.get("origin_device"),
            is_deleted=bool(record.get("deleted")),
            created_at=record["created_at"],
            updated_at=record["updated_at"],
        )

#
# End of time_tracking_schemas.py
#######################################################################################################################
