class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class AuthorizationError(DomainError):
    """Raised when a role or scope is not permitted to perform an action."""


class StorageError(DomainError):
    """Raised when the authoritative store rejects or fails a call."""


class ReferentialIntegrityError(StorageError):
    """Raised when a write would break a reference (e.g. area still has workers)."""


class DuplicateRecordError(StorageError):
    """Raised when a unique key already exists in the store."""


class RecordNotFoundError(StorageError):
    """Raised when the targeted row does not exist in the store."""


class ConcurrentModificationError(StorageError):
    """Raised when a record changed in the store after the caller read it."""
