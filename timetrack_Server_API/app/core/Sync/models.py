# Sync/models.py
# Description: In-memory shapes of a push batch and a pull result.
#
# Imports
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List
#
# Local Imports
from timetrack_Server_API.app.core.DB_Management.TimeTracking_DB import (
    parse_timestamp, format_timestamp, normalize_timestamp, EPOCH_TIMESTAMP
)
#
########################################################################################################################
#
# Functions:

__all__ = [
    "ProjectRecord", "SessionRecord", "PushBatch", "PullResult", "SkippedRecord",
    "parse_timestamp", "format_timestamp", "normalize_timestamp", "EPOCH_TIMESTAMP",
]


def _first_present(data: Dict[str, Any], *keys: str, default=None):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _optional_flag(value) -> Optional[bool]:
    # None means the sender did not say; the stored flag is left alone.
    return None if value is None else bool(value)


@dataclass
class ProjectRecord:
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    origin_device: Optional[str] = None
    deleted: Optional[bool] = None

    collection = "projects"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectRecord":
        """Builds a record from a wire dict. Owner and timestamps supplied by the client are dropped."""
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            description=data.get("description"),
            color=data.get("color"),
            origin_device=_first_present(data, "origin_device", "device_id"),
            deleted=_optional_flag(_first_present(data, "deleted", "is_deleted")),
        )

    def to_fields(self) -> Dict[str, Any]:
        fields = asdict(self)
        fields.pop("id")
        return fields


@dataclass
class SessionRecord:
    id: Optional[str] = None
    project_id: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    description: Optional[str] = None
    origin_device: Optional[str] = None
    deleted: Optional[bool] = None

    collection = "sessions"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        return cls(
            id=data.get("id"),
            project_id=data.get("project_id"),
            start_time=normalize_timestamp(data.get("start_time")) if data.get("start_time") else None,
            end_time=normalize_timestamp(data.get("end_time")) if data.get("end_time") else None,
            description=data.get("description"),
            origin_device=_first_present(data, "origin_device", "device_id"),
            deleted=_optional_flag(_first_present(data, "deleted", "is_deleted")),
        )

    def to_fields(self) -> Dict[str, Any]:
        fields = asdict(self)
        fields.pop("id")
        return fields


@dataclass
class PushBatch:
    projects: List[ProjectRecord] = field(default_factory=list)
    sessions: List[SessionRecord] = field(default_factory=list)
    deleted_project_ids: List[str] = field(default_factory=list)
    deleted_session_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PushBatch":
        return cls(
            projects=[ProjectRecord.from_dict(p) for p in data.get("local_projects") or data.get("projects") or []],
            sessions=[SessionRecord.from_dict(s) for s in data.get("local_sessions") or data.get("sessions") or []],
            deleted_project_ids=list(data.get("deleted_projects") or data.get("deleted_project_ids") or []),
            deleted_session_ids=list(data.get("deleted_sessions") or data.get("deleted_session_ids") or []),
        )

    def is_empty(self) -> bool:
        return not (self.projects or self.sessions or self.deleted_project_ids or self.deleted_session_ids)


@dataclass
class SkippedRecord:
    entity: str
    record_id: str
    message: str
    category: str = "conflict-skipped"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PullResult:
    as_of: str
    previous_sync_time: str
    pull_mode: str
    projects: List[Dict[str, Any]] = field(default_factory=list)
    sessions: List[Dict[str, Any]] = field(default_factory=list)
    skipped: List[SkippedRecord] = field(default_factory=list)

#
# End of Sync/models.py
########################################################################################################################
