# Sync/state.py
# Description: Per-device sync watermarks and the pull-scope policy built on them.
#
# Imports
import sqlite3
from datetime import timedelta
from typing import Optional
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
from timetrack_Server_API.app.core.DB_Management.TimeTracking_DB import TimeTrackingDB
from timetrack_Server_API.app.core.Sync.models import EPOCH_TIMESTAMP, parse_timestamp, format_timestamp
#
########################################################################################################################
#
# Functions:

PULL_MODE_FULL = "full"
PULL_MODE_DELTA = "delta"


class CursorTracker:
    """Keeps one last_sync_time row per (owner, device) in the store."""

    def __init__(self, store: TimeTrackingDB):
        self.store = store

    def advance(self, conn: sqlite3.Connection, owner: str, device_id: str, sync_time: str) -> str:
        """
        Moves the device's cursor to `sync_time` inside the caller's transaction.

        Returns:
            str: The previous cursor value, or the epoch on the device's first sync.
        """
        previous = self.store.get_cursor(conn, owner, device_id)
        self.store.upsert_cursor(conn, owner, device_id, sync_time)
        if previous is None:
            logger.info(f"[{owner}] First sync for device '{device_id}'.")
            return EPOCH_TIMESTAMP
        logger.debug(f"[{owner}] Advanced cursor for device '{device_id}' from {previous} to {sync_time}.")
        return previous

    def status(self, owner: str, device_id: Optional[str] = None) -> str:
        return self.store.get_sync_status(owner, device_id)

    @staticmethod
    def pull_scope(pull_mode: str, previous: str, client_cursor: Optional[str] = None,
                   overlap_ms: int = 0) -> Optional[str]:
        """
        Returns the `updated_since` bound for a pull, or None for a full pull.

        In delta mode the client's own cursor takes precedence over the stored
        one. The bound is moved back by `overlap_ms` to absorb clock skew
        between server instances; the overlap only ever re-sends records.
        """
        if pull_mode != PULL_MODE_DELTA:
            return None
        cursor_dt = parse_timestamp(client_cursor) or parse_timestamp(previous)
        if cursor_dt is None:
            return None
        if overlap_ms:
            cursor_dt = cursor_dt - timedelta(milliseconds=overlap_ms)
        bound = format_timestamp(cursor_dt)
        if bound <= EPOCH_TIMESTAMP:
            return None
        return bound

#
# End of Sync/state.py
########################################################################################################################
