"""
Public action surface.

Every operation a client can trigger goes through DataStoreActions and
comes back as an ActionResult; no exception escapes. The conversion is
done once, by the action_boundary decorator:

    ProviderAuthError, ValidationError -> specific message, error notification
    NotFoundError                      -> silent failure
    PermissionDeniedError              -> process-wide flag, operator guidance once
    TransientSyncError                 -> logged, generic error notification
    anything else                      -> logged with traceback, generic notification

A successful mutation writes exactly one audit entry and shows one
success notification. Cascades run in the background (see
teamsync.services.integrity).
"""

import functools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, TypeVar

from teamsync.auth.base import Principal
from teamsync.core.exceptions import (
    DuplicateCodeError,
    InvariantViolationError,
    MalformedCodeError,
    NotFoundError,
    PermissionDeniedError,
    ProviderAuthError,
    TransientSyncError,
    ValidationError,
)
from teamsync.core.ids import VIRTUAL_ACCOUNT_ID, to_logical_id
from teamsync.models import (
    SETTINGS_HANDLE,
    Account,
    AppSettings,
    Bonus,
    Collection,
    DocumentModel,
    Employee,
    PlanningEntry,
    Team,
    Training,
    TrainingStatus,
    bonus_key,
    planning_key,
)
from teamsync.services.notifications import describe_changes
from teamsync.services.validation import (
    build_model,
    check_account,
    check_bonus,
    check_employee_dates,
    check_matricule_unique,
    check_planning_date,
    check_training,
    merge,
    normalize_fields,
    normalize_matricule,
    wire_patch,
)
from teamsync.sync.mirror import PERMISSION_GUIDANCE

if TYPE_CHECKING:
    from teamsync.app_context import SyncContext

logger = logging.getLogger(__name__)

T = TypeVar("T")

GENERIC_TRANSIENT_MESSAGE = "Connection problem. Your change was not saved, please try again."
GENERIC_ERROR_MESSAGE = "An unexpected error occurred."
PERMISSION_MESSAGE = "Access to the data store was denied."


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a public action."""

    ok: bool
    error: Optional[str] = None
    category: Optional[str] = None
    value: Any = None

    @classmethod
    def success(cls, value: Any = None) -> "ActionResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, category: str) -> "ActionResult":
        return cls(ok=False, error=error, category=category)

    def __bool__(self) -> bool:
        return self.ok


def _validation_category(error: ValidationError) -> str:
    if isinstance(error, DuplicateCodeError):
        return "duplicate_code"
    if isinstance(error, MalformedCodeError):
        return "malformed_code"
    if isinstance(error, InvariantViolationError):
        return "invariant_violation"
    return "validation"


def action_boundary(name: str) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[ActionResult]]]:
    """
    Convert an action coroutine's outcome into an ActionResult.

    Args:
        name: Action name used in log lines.
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[ActionResult]]:
        @functools.wraps(func)
        async def wrapper(self: "DataStoreActions", *args: Any, **kwargs: Any) -> ActionResult:
            notifications = self._context.notifications
            try:
                value = await func(self, *args, **kwargs)
            except ProviderAuthError as e:
                logger.info(f"{name}: identity provider refused ({e.category}, code={e.code})")
                notifications.notify(str(e), "error")
                return ActionResult.failure(str(e), e.category)
            except ValidationError as e:
                logger.info(f"{name}: rejected: {e}")
                notifications.notify(str(e), "error")
                return ActionResult.failure(str(e), _validation_category(e))
            except NotFoundError as e:
                logger.debug(f"{name}: target not found: {e}")
                return ActionResult.failure(str(e), "not_found")
            except PermissionDeniedError as e:
                health = self._context.health
                health.permission_error = True
                if not health.guidance_logged:
                    health.guidance_logged = True
                    logger.error(PERMISSION_GUIDANCE.format(collection=e.collection or "?"))
                else:
                    logger.debug(f"{name}: permission denied: {e}")
                return ActionResult.failure(PERMISSION_MESSAGE, "permission_denied")
            except TransientSyncError as e:
                logger.warning(f"{name}: transient failure: {e}")
                notifications.notify(GENERIC_TRANSIENT_MESSAGE, "error")
                return ActionResult.failure(GENERIC_TRANSIENT_MESSAGE, "transient")
            except Exception as e:
                logger.exception(f"{name}: unexpected error: {e}")
                notifications.notify(GENERIC_ERROR_MESSAGE, "error")
                return ActionResult.failure(GENERIC_ERROR_MESSAGE, "unexpected")
            return ActionResult.success(value)

        return wrapper

    return decorator


class DataStoreActions:
    """
    Mutating operations on the mirrored collections, plus session actions.

    Reads come from the local snapshots; writes go to the remote store and
    become visible once the owning mirror republishes.
    """

    def __init__(self, context: "SyncContext") -> None:
        self._context = context

    @property
    def _snapshots(self):
        return self._context.snapshots

    @property
    def _store(self):
        return self._context.store

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require(self, collection: Collection, logical_id: Any, label: str) -> Any:
        normalized = to_logical_id(logical_id)
        record = self._snapshots.get(collection).get(normalized) if normalized is not None else None
        if record is None:
            raise NotFoundError(f"{label} {logical_id!r} not found", collection=collection.value, logical_id=logical_id)
        return record

    async def _create(self, collection: Collection, record: DocumentModel) -> None:
        await self._store.set(collection, str(record.id), record.to_document())

    async def _patch(self, collection: Collection, current: DocumentModel, updated: DocumentModel, names: Any) -> None:
        handle = await self._context.resolver.resolve(collection, current.id)
        await self._store.update(collection, handle, wire_patch(updated, names))

    async def _delete(self, collection: Collection, logical_id: int, label: str) -> None:
        if not await self._context.resolver.delete_all(collection, logical_id):
            raise NotFoundError(f"{label} {logical_id} is already deleted", collection=collection.value, logical_id=logical_id)

    async def _write_cell(self, collection: Collection, key: str, existing: Optional[DocumentModel], record: DocumentModel) -> None:
        """Write a composite-key record and drop any other copy of the same cell."""
        handle = (existing.doc_handle if existing is not None else None) or key
        await self._store.set(collection, handle, record.to_document())
        for ghost in await self._context.resolver.composite_handles(collection, key):
            if ghost != handle:
                await self._store.delete(collection, ghost)

    async def _done(self, action: str, details: str, message: str) -> None:
        await self._context.audit.record(action, details)
        self._context.notifications.notify(message, "success")

    @staticmethod
    def _diff(current: DocumentModel, updated: DocumentModel, names: Any) -> str:
        return describe_changes(wire_patch(current, names), wire_patch(updated, names)) or "no changes"

    async def wait_for_cascades(self) -> None:
        """Wait until every background cascade write has finished."""
        await self._context.integrity.wait()

    # =========================================================================
    # Session
    # =========================================================================

    @action_boundary("login")
    async def login(self, email: str, secret: str) -> Principal:
        return await self._context.session.login(email, secret)

    @action_boundary("sign_up")
    async def sign_up(self, email: str, secret: str, profile_fields: Optional[Dict[str, Any]] = None) -> Account:
        account = await self._context.session.sign_up(email, secret, profile_fields)
        self._context.notifications.notify(
            f"Account created. A verification email was sent to {account.email}.", "success"
        )
        return account

    @action_boundary("logout")
    async def logout(self) -> None:
        await self._context.session.logout()

    @action_boundary("resend_verification")
    async def resend_verification(self) -> str:
        email = await self._context.session.resend_verification()
        self._context.notifications.notify(f"Verification email sent to {email}", "info")
        return email

    # =========================================================================
    # Employees
    # =========================================================================

    @action_boundary("add_employee")
    async def add_employee(self, fields: Dict[str, Any]) -> Employee:
        data = normalize_fields(Employee, fields)
        data["matricule"] = normalize_matricule(data.get("matricule"))
        employee = build_model(Employee, {**data, "id": self._context.minter.next_id()})
        check_matricule_unique(employee.matricule, self._snapshots.get(Collection.EMPLOYEES))
        check_employee_dates(employee)

        await self._create(Collection.EMPLOYEES, employee)
        if employee.team_id is not None:
            self._context.integrity.on_employee_team_changed(employee.id, None, employee.team_id)

        await self._done(
            "CREATE_EMPLOYEE",
            f"{employee.full_name} ({employee.matricule})",
            f"Employee {employee.full_name} added",
        )
        return employee

    @action_boundary("update_employee")
    async def update_employee(self, employee_id: Any, fields: Dict[str, Any]) -> Employee:
        current: Employee = self._require(Collection.EMPLOYEES, employee_id, "Employee")
        changes = normalize_fields(Employee, fields)
        if "matricule" in changes:
            changes["matricule"] = normalize_matricule(changes["matricule"])
        updated = merge(current, changes)
        if "matricule" in changes:
            check_matricule_unique(updated.matricule, self._snapshots.get(Collection.EMPLOYEES), exclude_id=current.id)
        check_employee_dates(updated)

        await self._patch(Collection.EMPLOYEES, current, updated, changes)
        if updated.team_id != current.team_id:
            self._context.integrity.on_employee_team_changed(current.id, current.team_id, updated.team_id)

        if current.is_active and not updated.is_active:
            action = "EMPLOYEE_EXIT"
        elif not current.is_active and updated.is_active:
            action = "EMPLOYEE_ENTRY"
        else:
            action = "UPDATE_EMPLOYEE"
        await self._done(
            action,
            f"{updated.full_name}: {self._diff(current, updated, changes)}",
            f"Employee {updated.full_name} updated",
        )
        return updated

    @action_boundary("delete_employee")
    async def delete_employee(self, employee_id: Any) -> int:
        current: Employee = self._require(Collection.EMPLOYEES, employee_id, "Employee")
        await self._delete(Collection.EMPLOYEES, current.id, "Employee")
        self._context.integrity.on_employee_deleted(current.id)
        await self._done(
            "DELETE_EMPLOYEE",
            f"{current.full_name} ({current.matricule})",
            f"Employee {current.full_name} deleted",
        )
        return current.id

    # =========================================================================
    # Teams
    # =========================================================================

    @action_boundary("add_team")
    async def add_team(self, fields: Dict[str, Any]) -> Team:
        data = normalize_fields(Team, fields)
        team = build_model(Team, {**data, "id": self._context.minter.next_id()})
        if not team.name.strip():
            raise ValidationError("Team name is required")

        await self._create(Collection.TEAMS, team)
        self._context.integrity.on_team_created(team.id, team.members)

        await self._done("CREATE_TEAM", f"{team.name} ({len(team.members)} members)", f"Team {team.name} created")
        return team

    @action_boundary("update_team")
    async def update_team(self, team_id: Any, fields: Dict[str, Any]) -> Team:
        current: Team = self._require(Collection.TEAMS, team_id, "Team")
        changes = normalize_fields(Team, fields)
        updated = merge(current, changes)
        if not updated.name.strip():
            raise ValidationError("Team name is required")

        await self._patch(Collection.TEAMS, current, updated, changes)
        if "members" in changes:
            self._context.integrity.on_team_members_changed(current.id, current.members, updated.members)

        await self._done(
            "UPDATE_TEAM",
            f"{updated.name}: {self._diff(current, updated, changes)}",
            f"Team {updated.name} updated",
        )
        return updated

    @action_boundary("delete_team")
    async def delete_team(self, team_id: Any) -> int:
        current: Team = self._require(Collection.TEAMS, team_id, "Team")
        await self._delete(Collection.TEAMS, current.id, "Team")
        self._context.integrity.on_team_deleted(current.id)
        await self._done("DELETE_TEAM", current.name, f"Team {current.name} deleted")
        return current.id

    # =========================================================================
    # Accounts
    # =========================================================================

    def _require_account(self, account_id: Any) -> Account:
        if to_logical_id(account_id) == VIRTUAL_ACCOUNT_ID:
            raise NotFoundError("The virtual account is not stored", collection=Collection.ACCOUNTS.value, logical_id=account_id)
        return self._require(Collection.ACCOUNTS, account_id, "Account")

    @action_boundary("add_account")
    async def add_account(self, fields: Dict[str, Any]) -> Account:
        data = normalize_fields(Account, fields)
        account = build_model(Account, {**data, "id": self._context.minter.next_id()})
        check_account(account, self._snapshots.get(Collection.ACCOUNTS))

        await self._create(Collection.ACCOUNTS, account)
        await self._done(
            "CREATE_USER",
            f"{account.email} ({account.role})",
            f"User {account.name or account.email} created",
        )
        return account

    @action_boundary("update_account")
    async def update_account(self, account_id: Any, fields: Dict[str, Any]) -> Account:
        current = self._require_account(account_id)
        changes = normalize_fields(Account, fields)
        updated = merge(current, changes)
        if "email" in changes or "role" in changes:
            check_account(updated, self._snapshots.get(Collection.ACCOUNTS), exclude_id=current.id)
        self._context.guard.check_account_update(current, updated)

        await self._patch(Collection.ACCOUNTS, current, updated, changes)
        await self._done(
            "UPDATE_USER",
            f"{updated.email}: {self._diff(current, updated, changes)}",
            f"User {updated.name or updated.email} updated",
        )
        return updated

    @action_boundary("delete_account")
    async def delete_account(self, account_id: Any) -> int:
        current = self._require_account(account_id)
        self._context.guard.check_account_deletion(current)
        await self._delete(Collection.ACCOUNTS, current.id, "Account")
        await self._done("DELETE_USER", current.email, f"User {current.name or current.email} deleted")
        return current.id

    # =========================================================================
    # Trainings
    # =========================================================================

    @action_boundary("add_training")
    async def add_training(self, fields: Dict[str, Any]) -> Training:
        data = normalize_fields(Training, fields)
        training = build_model(Training, {**data, "id": self._context.minter.next_id()})
        check_training(training)

        await self._create(Collection.TRAININGS, training)
        await self._done(
            "CREATE_TRAINING",
            f"{training.title} ({training.status.value})",
            f"Training {training.title} created",
        )
        return training

    @action_boundary("update_training")
    async def update_training(self, training_id: Any, fields: Dict[str, Any]) -> Training:
        current: Training = self._require(Collection.TRAININGS, training_id, "Training")
        changes = normalize_fields(Training, fields)
        updated = merge(current, changes)
        status_changed = updated.status != current.status
        if status_changed and updated.status == TrainingStatus.PLANNED:
            # Back to planning: attendance no longer applies
            changes["participants"] = []
            updated = merge(current, changes)
        check_training(updated)

        await self._patch(Collection.TRAININGS, current, updated, changes)
        if status_changed:
            await self._done(
                "TRAINING_STATUS_CHANGE",
                f"{updated.title}: {current.status.value} -> {updated.status.value}",
                f"Training {updated.title} is now {updated.status.value}",
            )
        else:
            await self._done(
                "UPDATE_TRAINING",
                f"{updated.title}: {self._diff(current, updated, changes)}",
                f"Training {updated.title} updated",
            )
        return updated

    @action_boundary("delete_training")
    async def delete_training(self, training_id: Any) -> int:
        current: Training = self._require(Collection.TRAININGS, training_id, "Training")
        await self._delete(Collection.TRAININGS, current.id, "Training")
        await self._done("DELETE_TRAINING", current.title, f"Training {current.title} deleted")
        return current.id

    # =========================================================================
    # Planning & bonuses
    # =========================================================================

    @action_boundary("set_planning_item")
    async def set_planning_item(self, employee_id: Any, date: str, shift: Optional[str]) -> Optional[PlanningEntry]:
        """Assign a shift (or absence) to an employee on a date; an empty shift clears the cell."""
        employee: Employee = self._require(Collection.EMPLOYEES, employee_id, "Employee")
        date_iso = check_planning_date(date)
        key = planning_key(employee.id, date_iso)
        existing: Optional[PlanningEntry] = self._snapshots.get(Collection.PLANNING).get(key)
        shift = (shift or "").strip() or None

        entry = None
        if shift is None:
            if not await self._context.resolver.delete_composite(Collection.PLANNING, key):
                raise NotFoundError(f"No planning entry for {key}", collection=Collection.PLANNING.value)
        else:
            entry = PlanningEntry(employee_id=employee.id, date=date_iso, shift=shift)
            await self._write_cell(Collection.PLANNING, key, existing, entry)

        change = describe_changes({"shift": existing.shift if existing else None}, {"shift": shift})
        await self._done(
            "UPDATE_PLANNING",
            f"{employee.full_name} {date_iso}: {change}",
            f"Planning updated for {employee.full_name}",
        )
        return entry

    @action_boundary("set_bonus")
    async def set_bonus(self, employee_id: Any, month: str, amount: Any) -> Optional[Bonus]:
        """Set an employee's bonus for a month; an amount of 0 removes it."""
        employee: Employee = self._require(Collection.EMPLOYEES, employee_id, "Employee")
        month, amount = check_bonus(month, amount)
        key = bonus_key(employee.id, month)
        existing: Optional[Bonus] = self._snapshots.get(Collection.BONUSES).get(key)

        bonus = None
        if amount == 0:
            if not await self._context.resolver.delete_composite(Collection.BONUSES, key):
                raise NotFoundError(f"No bonus for {key}", collection=Collection.BONUSES.value)
        else:
            bonus = Bonus(id=key, employee_id=employee.id, month=month, amount=amount)
            await self._write_cell(Collection.BONUSES, key, existing, bonus)

        change = describe_changes({"amount": existing.amount if existing else 0}, {"amount": amount})
        await self._done(
            "UPDATE_BONUS",
            f"{employee.full_name} {month}: {change}",
            f"Bonus updated for {employee.full_name}",
        )
        return bonus

    # =========================================================================
    # Settings
    # =========================================================================

    @action_boundary("update_settings")
    async def update_settings(self, key: str, value: Any) -> AppSettings:
        changes = normalize_fields(AppSettings, {key: value})
        current = self._context.settings
        updated = merge(current, changes)
        try:
            await self._store.update(Collection.CONFIG, SETTINGS_HANDLE, wire_patch(updated, changes))
        except NotFoundError:
            logger.info("Settings document missing, writing it in full")
            await self._store.set(Collection.CONFIG, SETTINGS_HANDLE, updated.to_document())

        await self._done(
            "UPDATE_SETTINGS",
            self._diff(current, updated, changes),
            "Settings saved",
        )
        return updated
