"""Framework-level building blocks: configuration, logging, errors, ids."""

from teamsync.core.config import SyncSettings, get_settings
from teamsync.core.exceptions import (
    DuplicateCodeError,
    InvariantViolationError,
    MalformedCodeError,
    NotFoundError,
    PermissionDeniedError,
    ProviderAuthError,
    TeamSyncError,
    TransientSyncError,
    ValidationError,
)

__all__ = [
    "SyncSettings",
    "get_settings",
    "TeamSyncError",
    "ProviderAuthError",
    "PermissionDeniedError",
    "TransientSyncError",
    "ValidationError",
    "DuplicateCodeError",
    "MalformedCodeError",
    "InvariantViolationError",
    "NotFoundError",
]
