"""
Field validation for mutation requests.

Requests arrive as plain dicts using either the wire (camelCase) or the
Python (snake_case) field names. Everything here raises
teamsync.core.exceptions.ValidationError subclasses, never pydantic's own
error type, so the action boundary can surface a specific message.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import ValidationError as ModelValidationError
from pydantic.alias_generators import to_camel

from teamsync.core.exceptions import DuplicateCodeError, MalformedCodeError, ValidationError
from teamsync.models import ROLES, Account, DocumentModel, Employee, Training

ModelT = TypeVar("ModelT", bound=DocumentModel)

MATRICULE_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
IMMUTABLE_FIELDS = frozenset({"id", "doc_handle"})


def normalize_fields(model: Type[DocumentModel], fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Translate request keys to model field names.

    Raises:
        ValidationError: On unknown fields or attempts to change the id.
    """
    names: Dict[str, str] = {}
    for name, info in model.model_fields.items():
        names[name] = name
        names[to_camel(name)] = name
        if info.alias:
            names[info.alias] = name

    normalized: Dict[str, Any] = {}
    for key, value in (fields or {}).items():
        name = names.get(key)
        if name is None:
            raise ValidationError(f"Unknown field '{key}' for {model.__name__}")
        if name in IMMUTABLE_FIELDS:
            raise ValidationError(f"Field '{key}' cannot be changed")
        normalized[name] = value
    return normalized


def build_model(model: Type[ModelT], data: Mapping[str, Any]) -> ModelT:
    """Validate data into a model, converting pydantic errors."""
    try:
        return model.model_validate(dict(data))
    except ModelValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or model.__name__
        raise ValidationError(f"Invalid value for {location}: {first.get('msg')}") from e


def merge(current: ModelT, changes: Mapping[str, Any]) -> ModelT:
    """Apply normalized changes to a record, re-validating the result."""
    data = current.model_dump()
    data.update(changes)
    merged = build_model(type(current), data)
    return merged.model_copy(update={"doc_handle": current.doc_handle})


def wire_patch(record: DocumentModel, names: Iterable[str]) -> Dict[str, Any]:
    """Wire-format values of the given fields of a record."""
    return record.model_dump(by_alias=True, mode="json", include=set(names))


# =============================================================================
# Employees
# =============================================================================


def normalize_matricule(code: Any) -> str:
    text = str(code or "").strip()
    if not MATRICULE_PATTERN.match(text):
        raise MalformedCodeError(text)
    return text


def check_matricule_unique(code: str, employees: Iterable[Employee], exclude_id: Optional[int] = None) -> None:
    wanted = code.strip().lower()
    for employee in employees:
        if employee.id == exclude_id:
            continue
        if employee.matricule.strip().lower() == wanted:
            raise DuplicateCodeError(code)


def _parse_date(value: Optional[str], label: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value).date()
    except ValueError as e:
        raise ValidationError(f"{label} must be an ISO date (YYYY-MM-DD), got '{value}'") from e


def check_employee_dates(employee: Employee) -> None:
    birth = _parse_date(employee.birth_date, "Birth date")
    entry = _parse_date(employee.entry_date, "Entry date")
    exit_ = _parse_date(employee.exit_date, "Exit date")

    if birth and entry and entry < birth:
        raise ValidationError("Entry date cannot be before birth date")
    if birth and exit_ and exit_ < birth:
        raise ValidationError("Exit date cannot be before birth date")
    if entry and exit_ and exit_ < entry:
        raise ValidationError("Exit date cannot be before entry date")


# =============================================================================
# Accounts
# =============================================================================


def check_account(account: Account, accounts: Iterable[Account], exclude_id: Optional[int] = None) -> None:
    email = account.email.strip()
    if "@" not in email:
        raise ValidationError(f"'{account.email}' is not a valid email address")
    if account.role not in ROLES:
        raise ValidationError(f"Unknown role '{account.role}' (expected one of {', '.join(ROLES)})")
    for other in accounts:
        if other.id == exclude_id or other.is_virtual:
            continue
        if other.matches_email(email):
            raise ValidationError(f"An account already exists for {email}")


# =============================================================================
# Trainings, planning, bonuses
# =============================================================================


def check_training(training: Training) -> None:
    if not training.title.strip():
        raise ValidationError("Training title is required")
    start = _parse_date(training.start_date, "Start date")
    end = _parse_date(training.end_date, "End date")
    if start and end and start > end:
        raise ValidationError("Start date must be before end date")
    if training.session_count < 0:
        raise ValidationError("Session count cannot be negative")


def check_planning_date(value: str) -> str:
    parsed = _parse_date(value, "Planning date")
    if parsed is None:
        raise ValidationError("Planning date is required")
    return parsed.isoformat()


def check_bonus(month: str, amount: Any) -> Tuple[str, float]:
    month = str(month or "").strip()
    if not MONTH_PATTERN.match(month):
        raise ValidationError(f"Bonus month must be YYYY-MM, got '{month}'")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationError("Bonus amount must be a number")
    if amount < 0:
        raise ValidationError("Bonus amount cannot be negative")
    return month, amount
