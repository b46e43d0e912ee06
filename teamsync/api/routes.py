"""
Data-store API routes.

Reads serve the reactive fields of the SyncContext; writes call the
action surface. Action routes always answer 200 with the ActionResult,
so a client branches on `ok`, not on the status code.
"""

import logging
from enum import Enum
from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException, status

from teamsync.api.dependencies import ActionsDep, SyncContextDep
from teamsync.api.schemas import (
    ActionResponse,
    BonusRequest,
    CredentialsRequest,
    PlanningRequest,
    SettingsRequest,
    SignUpRequest,
)
from teamsync.app_context import STATE_FIELDS
from teamsync.auth.base import Principal
from teamsync.models import DocumentModel
from teamsync.services.actions import ActionResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["teamsync"])


class EntityKind(str, Enum):
    EMPLOYEES = "employees"
    TEAMS = "teams"
    ACCOUNTS = "accounts"
    TRAININGS = "trainings"


# kind -> (create, update, delete) action names
ENTITY_ACTIONS: Dict[EntityKind, tuple] = {
    EntityKind.EMPLOYEES: ("add_employee", "update_employee", "delete_employee"),
    EntityKind.TEAMS: ("add_team", "update_team", "delete_team"),
    EntityKind.ACCOUNTS: ("add_account", "update_account", "delete_account"),
    EntityKind.TRAININGS: ("add_training", "update_training", "delete_training"),
}


def _serialize(value: Any) -> Any:
    if isinstance(value, DocumentModel):
        return value.to_document()
    if isinstance(value, Principal):
        return {
            "uid": value.uid,
            "email": value.email,
            "emailVerified": value.email_verified,
            "displayName": value.display_name,
        }
    return value


def _respond(result: ActionResult) -> ActionResponse:
    return ActionResponse(ok=result.ok, error=result.error, category=result.category, value=_serialize(result.value))


# =============================================================================
# State
# =============================================================================


@router.get("/health")
async def health_check(context: SyncContextDep) -> Dict[str, Any]:
    """Health check with sync status."""
    return {
        "status": "degraded" if context.permission_error else "healthy",
        "signed_in": context.principal is not None,
        "mirrors": context.mirrors.list_mirrors(),
    }


@router.get("/state")
async def get_state(context: SyncContextDep) -> Dict[str, Any]:
    """Every reactive field, as of now."""
    return context.snapshot_state()


@router.get("/state/{field}")
async def get_state_field(field: str, context: SyncContextDep) -> Dict[str, Any]:
    if field not in STATE_FIELDS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown state field '{field}'")
    return {field: context.state(field)}


# =============================================================================
# Session
# =============================================================================


@router.post("/session/login", response_model=ActionResponse)
async def login(body: CredentialsRequest, actions: ActionsDep) -> ActionResponse:
    return _respond(await actions.login(body.email, body.secret))


@router.post("/session/signup", response_model=ActionResponse)
async def sign_up(body: SignUpRequest, actions: ActionsDep) -> ActionResponse:
    return _respond(await actions.sign_up(body.email, body.secret, body.profile))


@router.post("/session/logout", response_model=ActionResponse)
async def logout(actions: ActionsDep) -> ActionResponse:
    return _respond(await actions.logout())


@router.post("/session/resend-verification", response_model=ActionResponse)
async def resend_verification(actions: ActionsDep) -> ActionResponse:
    return _respond(await actions.resend_verification())


# =============================================================================
# Keyed collections
# =============================================================================


@router.put("/planning", response_model=ActionResponse)
async def set_planning_item(body: PlanningRequest, actions: ActionsDep) -> ActionResponse:
    return _respond(await actions.set_planning_item(body.employee_id, body.date, body.shift))


@router.put("/bonuses", response_model=ActionResponse)
async def set_bonus(body: BonusRequest, actions: ActionsDep) -> ActionResponse:
    return _respond(await actions.set_bonus(body.employee_id, body.month, body.amount))


@router.patch("/settings", response_model=ActionResponse)
async def update_settings(body: SettingsRequest, actions: ActionsDep) -> ActionResponse:
    return _respond(await actions.update_settings(body.key, body.value))


# =============================================================================
# Entities
# =============================================================================


@router.post("/{kind}", response_model=ActionResponse)
async def create_entity(
    kind: EntityKind,
    actions: ActionsDep,
    fields: Dict[str, Any] = Body(...),
) -> ActionResponse:
    create, _, _ = ENTITY_ACTIONS[kind]
    return _respond(await getattr(actions, create)(fields))


@router.patch("/{kind}/{entity_id}", response_model=ActionResponse)
async def update_entity(
    kind: EntityKind,
    entity_id: int,
    actions: ActionsDep,
    fields: Dict[str, Any] = Body(...),
) -> ActionResponse:
    _, update, _ = ENTITY_ACTIONS[kind]
    return _respond(await getattr(actions, update)(entity_id, fields))


@router.delete("/{kind}/{entity_id}", response_model=ActionResponse)
async def delete_entity(kind: EntityKind, entity_id: int, actions: ActionsDep) -> ActionResponse:
    _, _, delete = ENTITY_ACTIONS[kind]
    return _respond(await getattr(actions, delete)(entity_id))
