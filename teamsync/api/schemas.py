"""
Request/response schemas for the HTTP surface.

Entity payloads stay free-form dicts: field validation belongs to the
action layer, which reports problems as ActionResult failures.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelSchema(BaseModel):
    """Accepts camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CredentialsRequest(BaseModel):
    email: str = Field(..., min_length=1, description="Principal email address")
    secret: str = Field(..., min_length=1, description="Password")


class SignUpRequest(CredentialsRequest):
    profile: Dict[str, Any] = Field(default_factory=dict, description="Profile fields (name)")


class PlanningRequest(CamelSchema):
    employee_id: int
    date: str = Field(..., description="ISO date (YYYY-MM-DD)")
    shift: Optional[str] = Field(default=None, description="Shift or absence label; empty clears the cell")


class BonusRequest(CamelSchema):
    employee_id: int
    month: str = Field(..., description="YYYY-MM")
    amount: float = Field(..., description="Amount; 0 removes the bonus")


class SettingsRequest(BaseModel):
    key: str = Field(..., min_length=1, description="Settings field (camelCase or snake_case)")
    value: Any = None


class ActionResponse(BaseModel):
    """Serialized ActionResult."""

    ok: bool
    error: Optional[str] = None
    category: Optional[str] = None
    value: Any = None
