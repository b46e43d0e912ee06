"""
Entity models for the synchronized data-store core.

Documents are stored with camelCase field names; models accept camelCase
or snake_case on input and always serialize camelCase. Every id-typed
field goes through teamsync.core.ids so numeric strings written by older
clients compare equal to integers.

Each record also carries `doc_handle`, the physical key the remote store
holds it under. It is filled in by the collection mirrors and never
written back to the store.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from teamsync.core.ids import VIRTUAL_ACCOUNT_ID, to_logical_id, to_logical_ids


class Collection(str, Enum):
    """Remote collections mirrored by the core."""

    EMPLOYEES = "employees"
    TEAMS = "teams"
    ACCOUNTS = "accounts"
    PLANNING = "planning"
    BONUSES = "bonuses"
    TRAININGS = "trainings"
    AUDIT_LOG = "audit_log"
    CONFIG = "config"

    def __str__(self) -> str:
        return self.value


SETTINGS_HANDLE = "settings"

ROLES = ("admin", "editor", "manager", "viewer")


def _empty_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class DocumentModel(BaseModel):
    """Base for every stored document."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    doc_handle: Optional[str] = Field(default=None, exclude=True)

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the remote store (camelCase, JSON-safe, no handle)."""
        return self.model_dump(by_alias=True, mode="json")


class Entity(DocumentModel):
    """A document identified by a logical id."""

    id: int

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> int:
        logical_id = to_logical_id(value)
        if logical_id is None:
            raise ValueError(f"invalid logical id: {value!r}")
        return logical_id


# =============================================================================
# People & Teams
# =============================================================================


class Employee(Entity):
    matricule: str = ""
    first_name: str = ""
    last_name: str = ""
    birth_date: Optional[str] = None
    category: str = ""
    assignment: str = ""
    default_shift: Optional[str] = None
    team_id: Optional[int] = None
    team_function: Optional[str] = None
    is_bonus_eligible: bool = False
    entry_date: Optional[str] = None
    exit_date: Optional[str] = None

    @field_validator("team_id", mode="before")
    @classmethod
    def _normalize_team_id(cls, value: Any) -> Optional[int]:
        return to_logical_id(value)

    @field_validator("birth_date", "entry_date", "exit_date", "default_shift", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        return _empty_to_none(value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return not self.exit_date


class Team(Entity):
    name: str = ""
    leader_id: Optional[int] = None
    members: List[int] = Field(default_factory=list)

    @field_validator("leader_id", mode="before")
    @classmethod
    def _normalize_leader(cls, value: Any) -> Optional[int]:
        return to_logical_id(value)

    @field_validator("members", mode="before")
    @classmethod
    def _normalize_members(cls, value: Any) -> List[int]:
        return to_logical_ids(value)


class Account(Entity):
    """Application-level profile ("User")."""

    name: str = ""
    email: str = ""
    role: str = "viewer"
    active: bool = False
    email_verified: bool = False
    employee_id: Optional[int] = None

    @field_validator("employee_id", mode="before")
    @classmethod
    def _normalize_employee_id(cls, value: Any) -> Optional[int]:
        return to_logical_id(value)

    @property
    def is_active_admin(self) -> bool:
        return self.role == "admin" and self.active

    @property
    def is_virtual(self) -> bool:
        return self.id == VIRTUAL_ACCOUNT_ID

    def matches_email(self, email: Optional[str]) -> bool:
        if not email:
            return False
        return self.email.strip().lower() == email.strip().lower()


# =============================================================================
# Planning & Bonuses (composite keys)
# =============================================================================


def planning_key(employee_id: int, date_iso: str) -> str:
    return f"{employee_id}_{date_iso}"


def bonus_key(employee_id: int, month: str) -> str:
    return f"{employee_id}_{month}"


class PlanningEntry(DocumentModel):
    employee_id: int
    date: str
    shift: str

    @field_validator("employee_id", mode="before")
    @classmethod
    def _normalize_employee_id(cls, value: Any) -> int:
        logical_id = to_logical_id(value)
        if logical_id is None:
            raise ValueError(f"invalid employee id: {value!r}")
        return logical_id

    @property
    def key(self) -> str:
        return planning_key(self.employee_id, self.date)


class Bonus(DocumentModel):
    id: str = ""
    employee_id: int
    month: str
    amount: int | float = 0

    @field_validator("employee_id", mode="before")
    @classmethod
    def _normalize_employee_id(cls, value: Any) -> int:
        logical_id = to_logical_id(value)
        if logical_id is None:
            raise ValueError(f"invalid employee id: {value!r}")
        return logical_id

    @property
    def key(self) -> str:
        return bonus_key(self.employee_id, self.month)


# =============================================================================
# Trainings
# =============================================================================


class TrainingStatus(str, Enum):
    """Training workflow states, in workflow order."""

    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    VALIDATED = "validated"
    ARCHIVED = "archived"

    def __str__(self) -> str:
        return self.value


class TrainingParticipant(DocumentModel):
    employee_id: int
    present: bool = False

    @field_validator("employee_id", mode="before")
    @classmethod
    def _normalize_employee_id(cls, value: Any) -> int:
        logical_id = to_logical_id(value)
        if logical_id is None:
            raise ValueError(f"invalid employee id: {value!r}")
        return logical_id


class Training(Entity):
    title: str = ""
    description: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    session_count: int = 1
    session_dates: List[str] = Field(default_factory=list)
    # 0 targets every team
    target_team_ids: List[int] = Field(default_factory=list)
    status: TrainingStatus = TrainingStatus.PLANNED
    participants: List[TrainingParticipant] = Field(default_factory=list)

    @field_validator("target_team_ids", mode="before")
    @classmethod
    def _normalize_targets(cls, value: Any) -> List[int]:
        return to_logical_ids(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        return _empty_to_none(value)


# =============================================================================
# Audit & Settings
# =============================================================================


class AuditLogEntry(Entity):
    timestamp: str
    action: str
    details: str = ""
    user: str = ""


class Shift(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    start: str = ""
    end: str = ""
    color: str = "#3b82f6"


class AbsenceType(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    color: str = "#9ca3af"


class Holiday(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str
    name: str
    type: Literal["civil", "religious"] = "civil"


class AppSettings(DocumentModel):
    categories: List[str] = Field(default_factory=list)
    shifts: List[Shift] = Field(default_factory=list)
    assignments: List[str] = Field(default_factory=list)
    absence_types: List[AbsenceType] = Field(default_factory=list)
    holidays: List[Holiday] = Field(default_factory=list)
    date_format: str = "DD/MM/YYYY"
    language: Literal["fr", "en"] = "fr"


DEFAULT_ABSENCE_COLOR = "#9ca3af"

DEFAULT_SETTINGS = AppSettings(
    categories=["Operator", "Technician", "Supervisor"],
    shifts=[
        Shift(name="Morning", start="06:00", end="14:00", color="#f59e0b"),
        Shift(name="Afternoon", start="14:00", end="22:00", color="#3b82f6"),
        Shift(name="Night", start="22:00", end="06:00", color="#6366f1"),
    ],
    assignments=["Production", "Logistics", "Maintenance"],
    absence_types=[
        AbsenceType(name="Leave", color="#10b981"),
        AbsenceType(name="Sick", color="#ef4444"),
        AbsenceType(name="Training", color="#8b5cf6"),
    ],
    holidays=[],
    date_format="DD/MM/YYYY",
    language="fr",
)


# =============================================================================
# Transient state
# =============================================================================


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    message: str
    type: Literal["success", "error", "info"] = "info"
