# TimeTracking_DB.py
# Description: DB Library for time-tracking Projects, timer Sessions and per-device sync cursors.
#
# Imports
import sqlite3
import threading
import uuid
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Dict, Optional, Any, Union
#
# Third-Party Libraries
#
# Local Imports
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)

EPOCH_TIMESTAMP = "1970-01-01T00:00:00.000000Z"


# --- Timestamp Helpers ---
def format_timestamp(dt: datetime) -> str:
    """Formats a datetime as a UTC ISO-8601 string with microseconds and a 'Z' suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec='microseconds').replace('+00:00', 'Z')


def parse_timestamp(ts_str: Optional[str]) -> Optional[datetime]:
    """Parses an ISO-8601 string (with or without 'Z') into an aware UTC datetime. Returns None if unparseable."""
    if not ts_str:
        return None
    try:
        dt = datetime.fromisoformat(ts_str.strip().replace('Z', '+00:00'))
    except (ValueError, AttributeError):
        logger.warning(f"Could not parse timestamp string: {ts_str!r}")
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_timestamp(value: Union[str, datetime, None]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return format_timestamp(value)
    dt = parse_timestamp(value)
    return format_timestamp(dt) if dt else None


def normalize_record_id(value: Any) -> str:
    """Canonical lowercase UUID string for a client-supplied record id. Raises InputError if it is not a UUID."""
    try:
        return str(uuid.UUID(str(value).strip()))
    except (ValueError, AttributeError):
        raise InputError(f"Record id '{value}' is not a valid UUID.")


# --- Custom Exceptions ---
class TimeTrackingDBError(Exception):
    """Base exception for TimeTrackingDB related errors."""
    pass


class SchemaError(TimeTrackingDBError):
    """Exception for schema version mismatches or migration failures."""
    pass


class InputError(ValueError):
    """Custom exception for input validation errors."""
    pass


class ConflictError(TimeTrackingDBError):
    """Indicates a conflict on a unique constraint (e.g. a record id that is already taken)."""

    def __init__(self, message="Conflict detected.", entity: Optional[str] = None, entity_id: Any = None):
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id

    def __str__(self):
        base = super().__str__()
        details = []
        if self.entity:
            details.append(f"Entity: {self.entity}")
        if self.entity_id:
            details.append(f"ID: {self.entity_id}")
        return f"{base} ({', '.join(details)})" if details else base


class NotFoundError(TimeTrackingDBError):
    """Raised by single-record operations when the id does not exist for the owner."""

    def __init__(self, message="Record not found.", entity: Optional[str] = None, entity_id: Any = None):
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


# --- Collection Definitions ---
# Mutable fields are the ones a push or an update may overwrite.
COLLECTIONS: Dict[str, Dict[str, Any]] = {
    "projects": {
        "table": "projects",
        "mutable_fields": ["name", "description", "color", "origin_device", "deleted"],
        "order_by": "created_at DESC",
    },
    "sessions": {
        "table": "timer_sessions",
        "mutable_fields": ["project_id", "start_time", "end_time", "description", "origin_device", "deleted"],
        "order_by": "start_time DESC",
    },
}


# --- Database Class ---
class TimeTrackingDB:
    _CURRENT_SCHEMA_VERSION = 1
    _SCHEMA_NAME = "timetrack_sync_schema"

    _FULL_SCHEMA_SQL_V1 = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS db_schema_version(
  schema_name TEXT PRIMARY KEY NOT NULL,
  version INTEGER NOT NULL
);
INSERT OR IGNORE INTO db_schema_version (schema_name, version) VALUES ('timetrack_sync_schema', 0);

CREATE TABLE IF NOT EXISTS projects(
  id            TEXT PRIMARY KEY,
  owner         TEXT NOT NULL,
  name          TEXT NOT NULL,
  description   TEXT,
  color         TEXT NOT NULL,
  origin_device TEXT,
  deleted       BOOLEAN NOT NULL DEFAULT 0,
  created_at    TEXT NOT NULL,
  updated_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects(owner);
CREATE INDEX IF NOT EXISTS idx_projects_owner_updated ON projects(owner, updated_at);

-- project_id is a soft reference; sessions may point at unknown projects
CREATE TABLE IF NOT EXISTS timer_sessions(
  id            TEXT PRIMARY KEY,
  owner         TEXT NOT NULL,
  project_id    TEXT,
  start_time    TEXT NOT NULL,
  end_time      TEXT NOT NULL,
  description   TEXT,
  origin_device TEXT,
  deleted       BOOLEAN NOT NULL DEFAULT 0,
  created_at    TEXT NOT NULL,
  updated_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sessions_owner ON timer_sessions(owner);
CREATE INDEX IF NOT EXISTS idx_sessions_owner_updated ON timer_sessions(owner, updated_at);

CREATE TABLE IF NOT EXISTS device_sync_cursors(
  owner          TEXT NOT NULL,
  device_id      TEXT NOT NULL,
  last_sync_time TEXT NOT NULL,
  PRIMARY KEY (owner, device_id)
);

UPDATE db_schema_version SET version = 1 WHERE schema_name = 'timetrack_sync_schema' AND version = 0;
    """

    def __init__(self, db_path: Union[str, Path]):
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(db_path).resolve() if not self.is_memory_db else Path(":memory:")

        if self.is_memory_db:
            # Shared-cache URI so every thread-local connection sees the same in-memory database
            self.db_path_str = f"file:timetrack_mem_{uuid.uuid4().hex}?mode=memory&cache=shared"
        else:
            self.db_path_str = str(self.db_path)
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise TimeTrackingDBError(f"Failed to create database directory {self.db_path.parent}: {e}")

        logger.info(f"Initializing TimeTrackingDB for path: {self.db_path_str}")
        self._local = threading.local()
        self._connections_lock = threading.Lock()
        self._all_connections: List[sqlite3.Connection] = []
        try:
            self._initialize_schema()
            logger.debug(f"TimeTrackingDB initialization completed successfully for {self.db_path_str}")
        except (TimeTrackingDBError, sqlite3.Error) as e:
            logger.critical(f"FATAL: DB Initialization failed for {self.db_path_str}: {e}", exc_info=True)
            self.close_connection()
            if isinstance(e, SchemaError):
                raise
            raise TimeTrackingDBError(f"Database initialization failed: {e}") from e

    # --- Connection Management ---
    def _get_thread_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn:
            try:
                conn.execute("SELECT 1")
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(
                    f"Thread-local connection for {self.db_path_str} was closed or became unusable. Reopening.")
                conn = None

        if not conn:
            try:
                conn = sqlite3.connect(
                    self.db_path_str,
                    check_same_thread=False,
                    timeout=15,
                    uri=self.is_memory_db,
                )
                conn.row_factory = sqlite3.Row
                if not self.is_memory_db:
                    conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA foreign_keys = ON;")
                self._local.conn = conn
                with self._connections_lock:
                    self._all_connections.append(conn)
                logger.debug(f"Opened SQLite connection to {self.db_path_str} for thread {threading.get_ident()}")
            except sqlite3.Error as e:
                logger.error(f"Failed to connect to database {self.db_path_str}: {e}", exc_info=True)
                self._local.conn = None
                raise TimeTrackingDBError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
        return self._local.conn

    def get_connection(self) -> sqlite3.Connection:
        return self._get_thread_connection()

    def close_connection(self):
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            try:
                if conn.in_transaction:
                    logger.warning(
                        f"Connection to {self.db_path_str} is in an uncommitted transaction during close. Rolling back.")
                    conn.rollback()
                conn.close()
                logger.debug(f"Closed connection for thread {threading.get_ident()} to {self.db_path_str}.")
            except sqlite3.Error as e:
                logger.warning(f"Error during SQLite connection close for {self.db_path_str}: {e}")
            finally:
                self._local.conn = None
                with self._connections_lock:
                    if conn in self._all_connections:
                        self._all_connections.remove(conn)

    def close_all_connections(self):
        """Closes every connection this instance opened, from any thread. Used at app shutdown."""
        with self._connections_lock:
            conns, self._all_connections = self._all_connections, []
        for conn in conns:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Error closing connection to {self.db_path_str}: {e}")
        self._local.conn = None
        logger.info(f"Closed {len(conns)} connection(s) to {self.db_path_str}.")

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[Union[tuple, Dict[str, Any]]] = None) -> sqlite3.Cursor:
        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"Executing SQL: {query[:300]}... Params: {str(params)[:200]}...")
            cursor.execute(query, params or ())
            return cursor
        except sqlite3.IntegrityError as e:
            logger.warning(f"Integrity constraint violation: {query[:300]}... Error: {e}")
            if "unique constraint failed" in str(e).lower():
                raise ConflictError(message=f"Unique constraint violation: {e}") from e
            raise TimeTrackingDBError(f"Database constraint violation: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {query[:300]}... Error: {e}", exc_info=True)
            raise TimeTrackingDBError(f"Query execution failed: {e}") from e

    # --- Transaction Context ---
    def transaction(self, immediate: bool = False) -> 'TransactionContextManager':
        return TransactionContextManager(self, immediate=immediate)

    # --- Schema Initialization ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        try:
            cursor = conn.execute("SELECT version FROM db_schema_version WHERE schema_name = ? LIMIT 1",
                                  (self._SCHEMA_NAME,))
            result = cursor.fetchone()
            return result['version'] if result else 0
        except sqlite3.Error as e:
            if "no such table" in str(e).lower():
                return 0
            logger.error(f"Could not determine database schema version for '{self._SCHEMA_NAME}': {e}", exc_info=True)
            raise SchemaError(f"Could not determine schema version for '{self._SCHEMA_NAME}': {e}") from e

    def _apply_schema_v1(self, conn: sqlite3.Connection):
        logger.info(f"Applying schema Version 1 for '{self._SCHEMA_NAME}' to DB: {self.db_path_str}...")
        try:
            conn.executescript(self._FULL_SCHEMA_SQL_V1)
        except sqlite3.Error as e:
            logger.error(f"[{self._SCHEMA_NAME} V1] Schema application failed: {e}", exc_info=True)
            raise SchemaError(f"DB schema V1 setup failed for '{self._SCHEMA_NAME}': {e}") from e
        final_version = self._get_db_version(conn)
        if final_version != 1:
            raise SchemaError(f"[{self._SCHEMA_NAME}] Schema version update check failed. Expected 1, got: {final_version}")
        logger.info(f"[{self._SCHEMA_NAME}] Schema 1 applied and version confirmed for DB: {self.db_path_str}.")

    def _initialize_schema(self):
        conn = self.get_connection()
        current_db_version = self._get_db_version(conn)
        target_version = self._CURRENT_SCHEMA_VERSION
        logger.info(
            f"Checking DB schema '{self._SCHEMA_NAME}'. Current version: {current_db_version}. Code supports: {target_version}")

        if current_db_version == target_version:
            logger.debug(f"Database schema '{self._SCHEMA_NAME}' is up to date.")
            return
        if current_db_version > target_version:
            raise SchemaError(
                f"Database schema '{self._SCHEMA_NAME}' version ({current_db_version}) is newer than supported by code ({target_version}). Aborting.")
        if current_db_version == 0:
            self._apply_schema_v1(conn)
        # Add future migrations here:
        # if current_db_version == 1: self._migrate_schema_v1_to_v2(conn)

    # --- Internal Helpers ---
    def _get_current_utc_timestamp_iso(self) -> str:
        return format_timestamp(datetime.now(timezone.utc))

    def current_timestamp(self) -> str:
        return self._get_current_utc_timestamp_iso()

    def _generate_uuid(self) -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _next_updated_at(previous: Optional[str], now: str) -> str:
        """Returns `now`, or one microsecond past `previous` if `now` would not be strictly later."""
        prev_dt = parse_timestamp(previous)
        now_dt = parse_timestamp(now)
        if prev_dt is not None and now_dt is not None and now_dt <= prev_dt:
            return format_timestamp(prev_dt + timedelta(microseconds=1))
        return now

    def owner_watermark(self, conn: sqlite3.Connection, owner: str) -> Optional[str]:
        """Latest updated_at or cursor time stored for the owner, or None if the owner has nothing yet."""
        row = conn.execute("""
            SELECT MAX(ts) AS watermark FROM (
              SELECT MAX(updated_at) AS ts FROM projects WHERE owner = ?
              UNION ALL SELECT MAX(updated_at) FROM timer_sessions WHERE owner = ?
              UNION ALL SELECT MAX(last_sync_time) FROM device_sync_cursors WHERE owner = ?
            )
        """, (owner, owner, owner)).fetchone()
        return row['watermark'] if row else None

    def write_timestamp(self, conn: sqlite3.Connection, owner: str, now: Optional[str] = None) -> str:
        """
        Timestamp for a write made inside `conn`'s transaction.

        Never earlier than anything already stored for the owner, so a server
        whose clock runs behind cannot stamp records below another device's
        cursor. Call it while holding the write lock.
        """
        now = now or self._get_current_utc_timestamp_iso()
        stamp = self._next_updated_at(self.owner_watermark(conn, owner), now)
        if stamp != now:
            logger.warning(f"Clock for owner {owner} read {now}, behind stored data; using {stamp}.")
        return stamp

    @staticmethod
    def _collection(collection: str) -> Dict[str, Any]:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise InputError(f"Unknown collection: '{collection}'")

    @staticmethod
    def _lookup_id(record_id: str) -> str:
        # Ids that are not UUIDs cannot have been stored, but the lookup still runs and finds nothing
        try:
            return normalize_record_id(record_id)
        except InputError:
            return record_id

    @staticmethod
    def _row_to_record(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
        if row is None:
            return None
        record = dict(row)
        record['deleted'] = bool(record.get('deleted'))
        return record

    # --- Validation ---
    def validate_fields(self, collection: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Checks the required fields of a full record and normalizes its timestamps.

        Projects need a non-empty `name` and a `color`. Sessions need parseable
        `start_time` and `end_time` with end not before start. Returns a copy
        with timestamps in canonical form.

        Raises:
            InputError: If a required field is missing or malformed.
        """
        self._collection(collection)
        cleaned = dict(fields)
        if collection == "projects":
            name = cleaned.get('name')
            if not isinstance(name, str) or not name.strip():
                raise InputError("Project name is required and cannot be empty.")
            cleaned['name'] = name.strip()
            if not cleaned.get('color'):
                raise InputError("Project color is required.")
        else:
            start = parse_timestamp(cleaned['start_time']) if isinstance(cleaned.get('start_time'), str) else cleaned.get('start_time')
            end = parse_timestamp(cleaned['end_time']) if isinstance(cleaned.get('end_time'), str) else cleaned.get('end_time')
            if not isinstance(start, datetime):
                raise InputError("Session start_time is required and must be an ISO-8601 timestamp.")
            if not isinstance(end, datetime):
                raise InputError("Session end_time is required and must be an ISO-8601 timestamp.")
            if end < start:
                raise InputError("Session end_time cannot be before start_time.")
            cleaned['start_time'] = format_timestamp(start)
            cleaned['end_time'] = format_timestamp(end)
        cleaned['deleted'] = bool(cleaned.get('deleted', False))
        return cleaned

    # --- Connection-level Operations (caller owns the transaction) ---
    def fetch_record_row(self, conn: sqlite3.Connection, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Fetches a record by id regardless of owner; callers use it to make ownership decisions."""
        table = self._collection(collection)['table']
        row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(row)

    def insert_record(self, conn: sqlite3.Connection, collection: str, owner: str, record_id: str,
                      fields: Dict[str, Any], now: str) -> None:
        meta = self._collection(collection)
        columns = meta['mutable_fields']
        values = [fields.get(col) for col in columns]
        values[columns.index('deleted')] = 1 if fields.get('deleted') else 0
        placeholders = ", ".join("?" for _ in range(len(columns) + 4))
        query = (f"INSERT INTO {meta['table']} (id, owner, {', '.join(columns)}, created_at, updated_at) "
                 f"VALUES ({placeholders})")
        try:
            conn.execute(query, (record_id, owner, *values, now, now))
        except sqlite3.IntegrityError as e:
            if "unique constraint failed" in str(e).lower():
                raise ConflictError(f"{collection} record '{record_id}' already exists.",
                                    entity=collection, entity_id=record_id) from e
            raise TimeTrackingDBError(f"Database integrity error inserting {collection} record: {e}") from e
        logger.debug(f"Inserted {collection} record {record_id} for owner {owner}.")

    def overwrite_record(self, conn: sqlite3.Connection, collection: str, owner: str, record_id: str,
                         fields: Dict[str, Any], now: str) -> bool:
        """
        Replaces the given mutable fields of an owned record and advances updated_at.
        Returns False when no record with this id exists for the owner.
        """
        meta = self._collection(collection)
        row = conn.execute(f"SELECT updated_at FROM {meta['table']} WHERE id = ? AND owner = ?",
                           (record_id, owner)).fetchone()
        if row is None:
            return False
        columns = [col for col in meta['mutable_fields'] if col in fields]
        set_values = [(1 if fields[col] else 0) if col == 'deleted' else fields[col] for col in columns]
        stamp = self._next_updated_at(row['updated_at'], now)
        set_clause = ", ".join([f"{col} = ?" for col in columns] + ["updated_at = ?"])
        cursor = conn.execute(f"UPDATE {meta['table']} SET {set_clause} WHERE id = ? AND owner = ?",
                              (*set_values, stamp, record_id, owner))
        logger.debug(f"Overwrote {collection} record {record_id} for owner {owner} (updated_at={stamp}).")
        return cursor.rowcount == 1

    def mark_deleted(self, conn: sqlite3.Connection, collection: str, owner: str, record_ids: List[str],
                     now: str) -> List[str]:
        """Sets deleted=1 on each owned record in `record_ids`. Returns the ids actually tombstoned."""
        table = self._collection(collection)['table']
        tombstoned = []
        for record_id in record_ids:
            row = conn.execute(f"SELECT updated_at FROM {table} WHERE id = ? AND owner = ?",
                               (record_id, owner)).fetchone()
            if row is None:
                continue
            stamp = self._next_updated_at(row['updated_at'], now)
            conn.execute(f"UPDATE {table} SET deleted = 1, updated_at = ? WHERE id = ? AND owner = ?",
                         (stamp, record_id, owner))
            tombstoned.append(record_id)
        return tombstoned

    def fetch_records(self, conn: sqlite3.Connection, collection: str, owner: str, *,
                      include_deleted: bool = True, updated_since: Optional[str] = None) -> List[Dict[str, Any]]:
        meta = self._collection(collection)
        query = f"SELECT * FROM {meta['table']} WHERE owner = ?"
        params: List[Any] = [owner]
        if not include_deleted:
            query += " AND deleted = 0"
        if updated_since is not None:
            query += " AND updated_at > ?"
            params.append(updated_since)
        query += f" ORDER BY {meta['order_by']}"
        return [self._row_to_record(row) for row in conn.execute(query, params).fetchall()]

    def get_cursor(self, conn: sqlite3.Connection, owner: str, device_id: str) -> Optional[str]:
        row = conn.execute("SELECT last_sync_time FROM device_sync_cursors WHERE owner = ? AND device_id = ?",
                           (owner, device_id)).fetchone()
        return row['last_sync_time'] if row else None

    def upsert_cursor(self, conn: sqlite3.Connection, owner: str, device_id: str, last_sync_time: str) -> None:
        conn.execute("""
            INSERT INTO device_sync_cursors (owner, device_id, last_sync_time) VALUES (?, ?, ?)
            ON CONFLICT(owner, device_id) DO UPDATE SET last_sync_time = excluded.last_sync_time
        """, (owner, device_id, last_sync_time))

    # --- Read Operations ---
    def list_records(self, collection: str, owner: str, include_deleted: bool = False,
                     updated_since: Optional[str] = None) -> List[Dict[str, Any]]:
        conn = self.get_connection()
        try:
            return self.fetch_records(conn, collection, owner, include_deleted=include_deleted,
                                      updated_since=updated_since)
        except sqlite3.Error as e:
            logger.error(f"Error listing {collection} for owner {owner}: {e}", exc_info=True)
            raise TimeTrackingDBError(f"Failed to list {collection}: {e}") from e

    def get_record(self, collection: str, owner: str, record_id: str,
                   include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        table = self._collection(collection)['table']
        record_id = self._lookup_id(record_id)
        query = f"SELECT * FROM {table} WHERE id = ? AND owner = ?"
        if not include_deleted:
            query += " AND deleted = 0"
        cursor = self.execute_query(query, (record_id, owner))
        return self._row_to_record(cursor.fetchone())

    def get_sync_status(self, owner: str, device_id: Optional[str] = None) -> str:
        """Latest sync time for the device, or across all of the owner's devices. Epoch if never synced."""
        query = "SELECT MAX(last_sync_time) AS last_sync_time FROM device_sync_cursors WHERE owner = ?"
        params: List[Any] = [owner]
        if device_id:
            query += " AND device_id = ?"
            params.append(device_id)
        row = self.execute_query(query, tuple(params)).fetchone()
        return row['last_sync_time'] if row and row['last_sync_time'] else EPOCH_TIMESTAMP

    # --- Single-Record Operations ---
    def _create_record(self, collection: str, owner: str, data: Dict[str, Any],
                       record_id: Optional[str] = None) -> Dict[str, Any]:
        fields = self.validate_fields(collection, data)
        if record_id and str(record_id).strip():
            final_id = normalize_record_id(record_id)
        else:
            final_id = self._generate_uuid()
        try:
            with self.transaction(immediate=True) as conn:
                now = self.write_timestamp(conn, owner)
                if self.fetch_record_row(conn, collection, final_id) is not None:
                    raise ConflictError(f"{collection} record '{final_id}' already exists.",
                                        entity=collection, entity_id=final_id)
                self.insert_record(conn, collection, owner, final_id, fields, now)
                created = self.fetch_record_row(conn, collection, final_id)
        except sqlite3.Error as e:
            raise TimeTrackingDBError(f"Database error creating {collection} record: {e}") from e
        logger.info(f"Created {collection} record {final_id} for owner {owner}.")
        return created

    def _update_record(self, collection: str, owner: str, record_id: str,
                       update_data: Dict[str, Any]) -> Dict[str, Any]:
        if not update_data:
            raise InputError(f"No data provided for {collection} update.")
        record_id = self._lookup_id(record_id)
        meta = self._collection(collection)
        if 'deleted' in update_data and update_data['deleted'] is None:
            update_data = {k: v for k, v in update_data.items() if k != 'deleted'}
        unknown = [key for key in update_data if key not in meta['mutable_fields']]
        for key in unknown:
            logger.warning(f"Attempted to update immutable or unknown field '{key}' in {collection} {record_id}, skipping.")
        try:
            with self.transaction(immediate=True) as conn:
                now = self.write_timestamp(conn, owner)
                existing = self.fetch_record_row(conn, collection, record_id)
                if existing is None or existing['owner'] != owner:
                    raise NotFoundError(f"{collection} record '{record_id}' not found.",
                                        entity=collection, entity_id=record_id)
                merged = {key: existing[key] for key in meta['mutable_fields']}
                merged.update({k: v for k, v in update_data.items() if k in meta['mutable_fields']})
                fields = self.validate_fields(collection, merged)
                self.overwrite_record(conn, collection, owner, record_id, fields, now)
                updated = self.fetch_record_row(conn, collection, record_id)
        except sqlite3.Error as e:
            raise TimeTrackingDBError(f"Database error updating {collection} record {record_id}: {e}") from e
        logger.info(f"Updated {collection} record {record_id} for owner {owner}.")
        return updated

    def _delete_record(self, collection: str, owner: str, record_id: str) -> None:
        record_id = self._lookup_id(record_id)
        try:
            with self.transaction(immediate=True) as conn:
                now = self.write_timestamp(conn, owner)
                if not self.mark_deleted(conn, collection, owner, [record_id], now):
                    raise NotFoundError(f"{collection} record '{record_id}' not found.",
                                        entity=collection, entity_id=record_id)
        except sqlite3.Error as e:
            raise TimeTrackingDBError(f"Database error deleting {collection} record {record_id}: {e}") from e
        logger.info(f"Soft-deleted {collection} record {record_id} for owner {owner}.")

    def create_project(self, owner: str, data: Dict[str, Any], project_id: Optional[str] = None) -> Dict[str, Any]:
        return self._create_record("projects", owner, data, project_id)

    def get_project(self, owner: str, project_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        return self.get_record("projects", owner, project_id, include_deleted)

    def list_projects(self, owner: str, include_deleted: bool = False,
                      updated_since: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.list_records("projects", owner, include_deleted, updated_since)

    def update_project(self, owner: str, project_id: str, update_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._update_record("projects", owner, project_id, update_data)

    def delete_project(self, owner: str, project_id: str) -> None:
        self._delete_record("projects", owner, project_id)

    def create_session(self, owner: str, data: Dict[str, Any], session_id: Optional[str] = None) -> Dict[str, Any]:
        return self._create_record("sessions", owner, data, session_id)

    def get_session(self, owner: str, session_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        return self.get_record("sessions", owner, session_id, include_deleted)

    def list_sessions(self, owner: str, include_deleted: bool = False,
                      updated_since: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.list_records("sessions", owner, include_deleted, updated_since)

    def update_session(self, owner: str, session_id: str, update_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._update_record("sessions", owner, session_id, update_data)

    def delete_session(self, owner: str, session_id: str) -> None:
        self._delete_record("sessions", owner, session_id)


class TransactionContextManager:
    def __init__(self, db_instance: TimeTrackingDB, immediate: bool = False):
        self.db = db_instance
        self.immediate = immediate
        self.conn: Optional[sqlite3.Connection] = None
        self.is_outermost_transaction = False

    def __enter__(self) -> sqlite3.Connection:
        self.conn = self.db.get_connection()
        if not self.conn.in_transaction:
            # IMMEDIATE takes the write lock up front so concurrent writers queue instead of interleaving
            try:
                self.conn.execute("BEGIN IMMEDIATE" if self.immediate else "BEGIN")
            except sqlite3.Error as e:
                logger.error(f"Failed to begin transaction on thread {threading.get_ident()}: {e}")
                raise TimeTrackingDBError(f"Failed to begin transaction: {e}") from e
            self.is_outermost_transaction = True
            logger.debug(f"Transaction started (outermost, immediate={self.immediate}) on thread {threading.get_ident()}.")
        else:
            logger.debug(f"Entering nested transaction block on thread {threading.get_ident()}.")
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.conn:
            logger.error("Transaction context: Connection is None in __exit__.")
            return False

        if self.is_outermost_transaction:
            if exc_type:
                logger.error(
                    f"Transaction (outermost) failed, rolling back on thread {threading.get_ident()}: {exc_type.__name__} - {exc_val}")
                try:
                    self.conn.rollback()
                    logger.debug(f"Rollback successful on thread {threading.get_ident()}.")
                except sqlite3.Error as rb_err:
                    logger.critical(f"Rollback FAILED on thread {threading.get_ident()}: {rb_err}", exc_info=True)
            else:
                try:
                    self.conn.commit()
                    logger.debug(f"Transaction (outermost) committed successfully on thread {threading.get_ident()}.")
                except sqlite3.Error as commit_err:
                    logger.error(f"Commit FAILED on thread {threading.get_ident()}, attempting rollback: {commit_err}",
                                 exc_info=True)
                    try:
                        self.conn.rollback()
                    except sqlite3.Error as rb_err_after_commit_fail:
                        logger.critical(f"Rollback after failed commit also FAILED: {rb_err_after_commit_fail}",
                                        exc_info=True)
                    raise TimeTrackingDBError(f"Commit failed: {commit_err}") from commit_err
        elif exc_type:
            logger.debug(f"Exception in nested transaction block on thread {threading.get_ident()}: {exc_type.__name__}. "
                         f"Outermost transaction will handle rollback.")
        return False

#
# End of TimeTracking_DB.py
########################################################################################################################
