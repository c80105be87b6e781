# Sync/core.py
# Description: Orchestrates one push/pull sync exchange for a device.
#
# Imports
import sqlite3
import time
import uuid
from typing import Optional, List, Union
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
from timetrack_Server_API.app.core.DB_Management.TimeTracking_DB import (
    TimeTrackingDB, TimeTrackingDBError, InputError, normalize_record_id
)
from timetrack_Server_API.app.core.Sync.conflict import ConflictResolver, LastArrivalWinsStrategy
from timetrack_Server_API.app.core.Sync.exceptions import (
    SyncError, AuthorizationError, ValidationError, OwnershipMismatch, StorageError, SyncTimeoutError
)
from timetrack_Server_API.app.core.Sync.models import (
    ProjectRecord, SessionRecord, PushBatch, PullResult, SkippedRecord
)
from timetrack_Server_API.app.core.Sync.state import CursorTracker, PULL_MODE_FULL, PULL_MODE_DELTA
from timetrack_Server_API.app.core.Sync.tombstone import TombstoneManager
#
########################################################################################################################
#
# Functions:

class SyncCoordinator:
    """
    Runs a sync exchange: apply a device's push batch, advance its cursor, and
    return the owner's authoritative records.

    Every step of one exchange shares a single write transaction. Either the
    whole batch commits together with the cursor move, or nothing does. The
    coordinator holds no record state between calls; the store it is given is
    the only shared resource.
    """

    def __init__(self, store: TimeTrackingDB, resolver: Optional[ConflictResolver] = None,
                 tombstones: Optional[TombstoneManager] = None, cursors: Optional[CursorTracker] = None,
                 pull_mode: str = PULL_MODE_FULL, delta_overlap_ms: int = 0,
                 timeout_seconds: Optional[float] = 30):
        if pull_mode not in (PULL_MODE_FULL, PULL_MODE_DELTA):
            raise ValueError(f"Unknown pull mode: '{pull_mode}'")
        self.store = store
        self.resolver = resolver or LastArrivalWinsStrategy(store)
        self.tombstones = tombstones or TombstoneManager(store)
        self.cursors = cursors or CursorTracker(store)
        self.pull_mode = pull_mode
        self.delta_overlap_ms = delta_overlap_ms
        self.timeout_seconds = timeout_seconds

    # --- Validation (runs before any transaction) ---
    @staticmethod
    def _check_owner(owner: Optional[str]) -> str:
        if not isinstance(owner, str) or not owner.strip():
            raise AuthorizationError("Missing owner context for sync request.")
        return owner

    @staticmethod
    def _normalize_id(value: Optional[str], entity: str) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            return str(uuid.uuid4())
        try:
            return normalize_record_id(value)
        except InputError as e:
            raise ValidationError(str(e), entity=entity, record_id=str(value)) from e

    @staticmethod
    def _normalize_delete_id(value) -> str:
        # Deletes of ids that cannot exist are ignored later, so a bad id is not an error here
        try:
            return normalize_record_id(value)
        except InputError:
            return str(value)

    def _prepare_record(self, record: Union[ProjectRecord, SessionRecord],
                        device_id: str) -> Union[ProjectRecord, SessionRecord]:
        entity = record.collection
        record_id = self._normalize_id(record.id, entity)
        fields = record.to_fields()
        deleted = fields.pop("deleted", None)
        if not fields.get("origin_device"):
            fields["origin_device"] = device_id
        try:
            cleaned = self.store.validate_fields(entity, fields)
        except InputError as e:
            raise ValidationError(str(e), entity=entity, record_id=record_id) from e
        # Absent flag stays None so an overwrite leaves the stored one as it is
        cleaned["deleted"] = None if deleted is None else bool(deleted)
        return type(record)(id=record_id, **cleaned)

    def prepare_batch(self, device_id: Optional[str], batch: PushBatch) -> PushBatch:
        """
        Validates a push and returns a normalized copy: every record has a
        canonical id and a default origin device, and timestamps are canonical.
        The client's owner value never survives this step.

        Raises:
            ValidationError: On the first malformed record. Nothing is applied.
        """
        if not device_id or not str(device_id).strip():
            raise ValidationError("device_id is required for sync.")
        return PushBatch(
            projects=[self._prepare_record(p, device_id) for p in batch.projects],
            sessions=[self._prepare_record(s, device_id) for s in batch.sessions],
            deleted_project_ids=[self._normalize_delete_id(i) for i in batch.deleted_project_ids if i],
            deleted_session_ids=[self._normalize_delete_id(i) for i in batch.deleted_session_ids if i],
        )

    def _check_deadline(self, deadline: Optional[float], owner: str, stage: str):
        if deadline is not None and time.monotonic() >= deadline:
            logger.error(f"[{owner}] Sync exceeded {self.timeout_seconds}s during {stage}; rolling back.")
            raise SyncTimeoutError(f"Sync timed out after {self.timeout_seconds}s during {stage}. Retry the whole batch.")

    # --- Exchange ---
    def sync(self, owner: Optional[str], device_id: Optional[str], batch: Optional[PushBatch] = None,
             client_cursor: Optional[str] = None) -> PullResult:
        """
        Applies `batch` for `owner` from `device_id` and returns the pull payload.

        Args:
            owner: Authenticated owner id from the identity layer.
            device_id: The syncing device; its cursor is advanced.
            batch: Upserts and deletes. None or empty means a pull-only exchange.
            client_cursor: The device's own last_sync_time, used to scope delta pulls.

        Returns:
            PullResult: asOf timestamp, previous cursor, projects and sessions
            (tombstones included), and any records skipped for ownership.

        Raises:
            AuthorizationError: No owner.
            ValidationError: Malformed push; nothing applied.
            StorageError: The transaction failed or timed out and was rolled back. Safe to retry.
        """
        owner = self._check_owner(owner)
        prepared = self.prepare_batch(device_id, batch or PushBatch())
        deadline = time.monotonic() + self.timeout_seconds if self.timeout_seconds is not None else None
        skipped: List[SkippedRecord] = []

        logger.info(f"[{owner}] Sync from device '{device_id}': {len(prepared.projects)} project(s), "
                    f"{len(prepared.sessions)} session(s), {len(prepared.deleted_project_ids)} project delete(s), "
                    f"{len(prepared.deleted_session_ids)} session delete(s).")
        try:
            with self.store.transaction(immediate=True) as conn:
                # Read the clock only once the write lock is held so asOf orders with commits.
                # A clock behind the stored watermark is pulled forward past it.
                now = self.store.write_timestamp(conn, owner, self.store.current_timestamp())

                for record in [*prepared.projects, *prepared.sessions]:
                    self._check_deadline(deadline, owner, "upserts")
                    try:
                        self.resolver.apply(conn, owner, record, now)
                    except OwnershipMismatch as e:
                        logger.warning(f"[{owner}] Skipped {e.entity} record {e.record_id}: id owned by another user.")
                        skipped.append(SkippedRecord(entity=e.entity, record_id=e.record_id, message=str(e)))

                self._check_deadline(deadline, owner, "tombstones")
                self.tombstones.tombstone(conn, "projects", owner, prepared.deleted_project_ids, now)
                self.tombstones.tombstone(conn, "sessions", owner, prepared.deleted_session_ids, now)

                previous = self.cursors.advance(conn, owner, device_id, now)
                updated_since = self.cursors.pull_scope(self.pull_mode, previous, client_cursor,
                                                        self.delta_overlap_ms)

                self._check_deadline(deadline, owner, "read-back")
                projects = self.store.fetch_records(conn, "projects", owner, include_deleted=True,
                                                    updated_since=updated_since)
                sessions = self.store.fetch_records(conn, "sessions", owner, include_deleted=True,
                                                    updated_since=updated_since)
        except SyncError:
            raise
        except (TimeTrackingDBError, sqlite3.Error) as e:
            logger.error(f"[{owner}] Sync transaction for device '{device_id}' rolled back: {e}")
            raise StorageError(f"Sync failed and was rolled back: {e}") from e

        logger.info(f"[{owner}] Sync committed for device '{device_id}' at {now}. Returning "
                    f"{len(projects)} project(s), {len(sessions)} session(s); {len(skipped)} skipped.")
        return PullResult(
            as_of=now,
            previous_sync_time=previous,
            pull_mode=self.pull_mode,
            projects=projects,
            sessions=sessions,
            skipped=skipped,
        )

    def status(self, owner: Optional[str], device_id: Optional[str] = None) -> str:
        """Last sync time for the owner (or one device). Informational only."""
        owner = self._check_owner(owner)
        try:
            return self.cursors.status(owner, device_id)
        except (TimeTrackingDBError, sqlite3.Error) as e:
            logger.error(f"[{owner}] Failed to read sync status: {e}")
            raise StorageError(f"Failed to read sync status: {e}") from e

#
# End of Sync/core.py
########################################################################################################################
