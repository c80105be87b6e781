# Sync/exceptions.py
# Description: Error taxonomy for one sync exchange.
#
########################################################################################################################

class SyncError(Exception):
    """Base exception for the sync engine."""
    category = "internal"
    retryable = False


class AuthorizationError(SyncError):
    """Missing or invalid owner context. Fatal for the request."""
    category = "unauthorized"


class ValidationError(SyncError):
    """A malformed push. Detected before the transaction opens; nothing is applied."""
    category = "bad-request"

    def __init__(self, message, entity=None, record_id=None, *args):
        super().__init__(message, *args)
        self.entity = entity
        self.record_id = record_id

    def __str__(self):
        base = super().__str__()
        details = []
        if self.entity: details.append(f"Entity: {self.entity}")
        if self.record_id: details.append(f"ID: {self.record_id}")
        return f"{base} ({', '.join(details)})" if details else base


class OwnershipMismatch(SyncError):
    """A pushed id already exists under a different owner. Skipped per record, never fatal to the batch."""
    category = "conflict-skipped"

    def __init__(self, message, entity=None, record_id=None, *args):
        super().__init__(message, *args)
        self.entity = entity
        self.record_id = record_id


class StorageError(SyncError):
    """Transaction or connection failure. The batch was rolled back and is safe to resubmit."""
    category = "internal"
    retryable = True


class SyncTimeoutError(StorageError):
    """The exchange ran past its deadline and was rolled back. The API answers 503 with Retry-After."""

#
# End of Sync/exceptions.py
########################################################################################################################
