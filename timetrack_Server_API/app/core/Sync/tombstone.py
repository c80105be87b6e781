# Sync/tombstone.py
# Description: Logical deletion of owned records so deletions propagate to every device.
#
# Imports
import sqlite3
from typing import List, Iterable
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
from timetrack_Server_API.app.core.DB_Management.TimeTracking_DB import TimeTrackingDB
#
########################################################################################################################
#
# Functions:

class TombstoneManager:
    """Marks records deleted instead of removing them. Pulls keep returning tombstones."""

    def __init__(self, store: TimeTrackingDB):
        self.store = store

    def tombstone(self, conn: sqlite3.Connection, collection: str, owner: str, record_ids: Iterable[str],
                  now: str) -> List[str]:
        """
        Tombstones every id in `record_ids` that the owner holds.

        Unknown ids and ids held by another owner are ignored. Deleting an
        already deleted record re-stamps its updated_at.

        Returns:
            List[str]: The ids that were tombstoned, in request order without duplicates.
        """
        unique_ids = list(dict.fromkeys(rid for rid in record_ids if rid))
        if not unique_ids:
            return []
        tombstoned = self.store.mark_deleted(conn, collection, owner, unique_ids, now)
        ignored = len(unique_ids) - len(tombstoned)
        if ignored:
            logger.debug(f"[{owner}] Ignored {ignored} {collection} delete(s) for unknown or foreign ids.")
        logger.debug(f"[{owner}] Tombstoned {len(tombstoned)} {collection} record(s).")
        return tombstoned

#
# End of Sync/tombstone.py
########################################################################################################################
