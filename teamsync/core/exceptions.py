"""
teamsync exceptions.

Every failure the core knows how to classify derives from TeamSyncError.
The action boundary (teamsync.services.actions) converts these into
ActionResult values; nothing here is meant to escape to the caller.
"""

from typing import Optional


class TeamSyncError(Exception):
    """Base exception for data-store core errors."""
    pass


class ProviderAuthError(TeamSyncError):
    """
    Raised when the identity provider rejects an operation.

    Attributes:
        category: User-facing category (see teamsync.auth.base.AuthErrorCategory).
        code: The raw provider error code, kept for logging.
    """

    def __init__(self, message: str, category: str = "unknown", code: Optional[str] = None) -> None:
        self.category = category
        self.code = code
        super().__init__(message)


class PermissionDeniedError(TeamSyncError):
    """Raised when the remote store refuses access to a collection or document."""

    def __init__(self, message: str, collection: Optional[str] = None) -> None:
        self.collection = collection
        super().__init__(message)


class TransientSyncError(TeamSyncError):
    """Raised for network failures, timeouts and server-side errors."""
    pass


class ValidationError(TeamSyncError):
    """Raised when a mutation is rejected before any write is issued."""
    pass


class DuplicateCodeError(ValidationError):
    """Raised when an employee identifying code is already in use."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Matricule '{code}' is already assigned to another employee")


class MalformedCodeError(ValidationError):
    """Raised when an employee identifying code is empty or not alphanumeric."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Matricule '{code}' must be a non-empty alphanumeric code")


class InvariantViolationError(ValidationError):
    """Raised when a mutation would break a standing safety rule."""
    pass


class NotFoundError(TeamSyncError):
    """
    Raised when the mutation target is missing.

    Either the local mirror has no record for the logical id, or the
    remote store has no document under the resolved handle.
    """

    def __init__(self, message: str, collection: Optional[str] = None, logical_id: Optional[object] = None) -> None:
        self.collection = collection
        self.logical_id = logical_id
        super().__init__(message)
