"""
FastAPI dependencies.

The SyncContext lives in app.state; routes receive it through
`SyncContextDep` / `ActionsDep`.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from teamsync.app_context import SyncContext
from teamsync.services.actions import DataStoreActions


def get_sync_context(request: Request) -> SyncContext:
    """
    FastAPI dependency for the running SyncContext.

    Raises:
        HTTPException: 503 if the application has no context attached.
    """
    context = getattr(request.app.state, "sync_context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync context not initialized",
        )
    return context


def get_actions(context: Annotated[SyncContext, Depends(get_sync_context)]) -> DataStoreActions:
    return context.actions


SyncContextDep = Annotated[SyncContext, Depends(get_sync_context)]
ActionsDep = Annotated[DataStoreActions, Depends(get_actions)]
