# Sync/conflict.py
# Description: Decides how an incoming pushed record lands on server state.
#
# Imports
import sqlite3
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, Union
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
from timetrack_Server_API.app.core.DB_Management.TimeTracking_DB import TimeTrackingDB
from timetrack_Server_API.app.core.Sync.exceptions import OwnershipMismatch
from timetrack_Server_API.app.core.Sync.models import ProjectRecord, SessionRecord
#
########################################################################################################################
#
# Functions:

CREATE = "create"
OVERWRITE = "overwrite"
SKIP_OWNERSHIP = "skip_ownership"


class ConflictResolver(ABC):
    """Abstract base class for conflict resolution strategies."""

    def __init__(self, store: TimeTrackingDB):
        self.store = store

    @abstractmethod
    def resolve(self, existing_row: Optional[Dict[str, Any]], owner: str) -> str:
        """
        Determines the outcome for an incoming record.

        Args:
            existing_row: Current server row with this id (any owner), or None if the id is unknown.
            owner: The authenticated owner making the push.

        Returns:
            'create': Insert the record.
            'overwrite': Replace the existing record.
            'skip_ownership': The id belongs to someone else; leave it untouched.
        """
        pass

    def apply(self, conn: sqlite3.Connection, owner: str, record: Union[ProjectRecord, SessionRecord],
              now: str) -> str:
        """
        Resolves and writes one record inside the caller's transaction.

        Raises:
            OwnershipMismatch: If the id exists under another owner. Nothing is written.
        """
        collection = record.collection
        existing = self.store.fetch_record_row(conn, collection, record.id)
        decision = self.resolve(existing, owner)
        fields = record.to_fields()

        if decision == CREATE:
            fields["deleted"] = bool(fields.get("deleted"))
            self.store.insert_record(conn, collection, owner, record.id, fields, now)
        elif decision == OVERWRITE:
            # An upsert that does not carry the flag keeps the stored one
            if fields.get("deleted") is None:
                fields.pop("deleted", None)
            if not self.store.overwrite_record(conn, collection, owner, record.id, fields, now):
                decision = SKIP_OWNERSHIP

        if decision == SKIP_OWNERSHIP:
            raise OwnershipMismatch(f"{collection} id '{record.id}' belongs to another owner; record skipped.",
                                    entity=collection, record_id=record.id)
        return decision


class LastArrivalWinsStrategy(ConflictResolver):
    """
    The push that reaches the server last replaces the whole record.

    No client timestamps or versions are compared. Two offline edits to the
    same record resolve to whichever commits second.
    """

    def resolve(self, existing_row: Optional[Dict[str, Any]], owner: str) -> str:
        if existing_row is None:
            logger.debug("Conflict resolution: id unknown. Outcome: create.")
            return CREATE
        if existing_row.get("owner") != owner:
            logger.debug(f"Conflict resolution (ID: {existing_row.get('id')}): owned by another user. Outcome: skip.")
            return SKIP_OWNERSHIP
        logger.debug(f"Conflict resolution (ID: {existing_row.get('id')}): same owner. Outcome: overwrite.")
        return OVERWRITE

#
# End of Sync/conflict.py
########################################################################################################################
