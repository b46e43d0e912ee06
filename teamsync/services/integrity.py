"""
Relational Integrity Engine.

The remote store has no foreign keys and no multi-document transactions,
so the side effects of a mutation on the records that reference it are
issued here as separate writes:

    employee deleted      -> leaves every team (member and leader), loses
                             its bonuses, is unlinked from accounts
    employee changes team -> old team drops it, new team lists it
    team created          -> initial members point at the team
    team members changed  -> added members point at the team and leave
                             their previous team, removed members stop
                             pointing at it
    team deleted          -> employees stop pointing at it

Which records to touch is decided synchronously from the current
snapshots when the primary mutation succeeds; the writes themselves run
as background tasks. Member lists are never computed up front: each team
write is an edit applied to the team document as stored at the time the
write runs, serialized per team. A failed cascade write is logged and
counted, never rolled back into the primary operation.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from teamsync.models import Account, Bonus, Collection, Employee, Team
from teamsync.store.base import DocumentStore
from teamsync.sync.resolver import IdentityResolver
from teamsync.sync.snapshots import SnapshotStore

logger = logging.getLogger(__name__)

# Team -> partial update (empty when nothing changes)
TeamEdit = Callable[[Team], Dict[str, Any]]


def without_member(employee_id: int, clear_leader: bool = False) -> TeamEdit:
    """Edit dropping an employee from a team's members (and leadership)."""

    def edit(team: Team) -> Dict[str, Any]:
        patch: Dict[str, Any] = {}
        if employee_id in team.members:
            patch["members"] = [member for member in team.members if member != employee_id]
        if clear_leader and team.leader_id == employee_id:
            patch["leaderId"] = None
        return patch

    return edit


def with_member(employee_id: int) -> TeamEdit:
    """Edit appending an employee to a team's members."""

    def edit(team: Team) -> Dict[str, Any]:
        if employee_id in team.members:
            return {}
        return {"members": [*team.members, employee_id]}

    return edit


class RelationalIntegrityEngine:
    """Plans and issues cascade writes."""

    def __init__(
        self,
        store: DocumentStore,
        snapshots: SnapshotStore,
        resolver: IdentityResolver,
    ) -> None:
        self._store = store
        self._snapshots = snapshots
        self._resolver = resolver
        self._tasks: Set[asyncio.Task] = set()
        self._team_locks: Dict[int, asyncio.Lock] = {}
        self.failures = 0

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _schedule(self, description: str, write: Awaitable[Any]) -> None:
        task = asyncio.create_task(self._run(description, write))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, description: str, write: Awaitable[Any]) -> None:
        try:
            await write
            logger.debug(f"Cascade done: {description}")
        except Exception as e:
            self.failures += 1
            logger.error(f"Cascade failed ({description}): {type(e).__name__}: {e}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait(self) -> None:
        """Wait for every scheduled cascade write to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _update(self, collection: str, logical_id: int, patch: Dict[str, Any]) -> None:
        handle = await self._resolver.resolve(collection, logical_id)
        await self._store.update(collection, handle, patch)

    def _update_later(self, collection: str, logical_id: int, patch: Dict[str, Any]) -> None:
        self._schedule(f"update {collection}/{logical_id} {sorted(patch)}", self._update(collection, logical_id, patch))

    async def _edit_team(self, team_id: int, edit: TeamEdit) -> None:
        lock = self._team_locks.setdefault(team_id, asyncio.Lock())
        async with lock:
            handle = await self._resolver.resolve(Collection.TEAMS, team_id)
            document = await self._store.get_document(Collection.TEAMS, handle)
            if document is None:
                logger.debug(f"Team {team_id} is no longer stored, nothing to edit")
                return
            patch = edit(Team.model_validate({**document.data, "id": team_id}))
            if patch:
                await self._store.update(Collection.TEAMS, handle, patch)

    def _edit_team_later(self, team_id: int, edit: TeamEdit, description: str) -> None:
        self._schedule(f"{description} (team {team_id})", self._edit_team(team_id, edit))

    # =========================================================================
    # Employees
    # =========================================================================

    def on_employee_deleted(self, employee_id: int) -> int:
        """Detach a deleted employee from teams, bonuses and accounts. Returns the number of writes."""
        writes = 0

        for team_id in dict.fromkeys(team.id for team in self.referencing_teams(employee_id)):
            self._edit_team_later(team_id, without_member(employee_id, clear_leader=True), f"drop employee {employee_id}")
            writes += 1

        bonus: Bonus
        for bonus in self._snapshots.get(Collection.BONUSES):
            if bonus.employee_id == employee_id:
                handle = bonus.doc_handle or bonus.key
                self._schedule(f"delete bonus {handle}", self._store.delete(Collection.BONUSES, handle))
                writes += 1

        account: Account
        for account in self._snapshots.get(Collection.ACCOUNTS):
            if account.employee_id == employee_id:
                self._update_later(Collection.ACCOUNTS, account.id, {"employeeId": None})
                writes += 1

        if writes:
            logger.info(f"Employee {employee_id} deleted: {writes} cascade write(s) scheduled")
        return writes

    def on_employee_team_changed(self, employee_id: int, old_team_id: Optional[int], new_team_id: Optional[int]) -> int:
        """Keep team member lists in line with an employee's own team reference."""
        if old_team_id == new_team_id:
            return 0
        writes = 0
        if old_team_id is not None:
            self._edit_team_later(old_team_id, without_member(employee_id), f"employee {employee_id} left")
            writes += 1
        if new_team_id is not None:
            self._edit_team_later(new_team_id, with_member(employee_id), f"employee {employee_id} joined")
            writes += 1
        return writes

    # =========================================================================
    # Teams
    # =========================================================================

    def on_team_members_changed(self, team_id: int, old_members: Iterable[int], new_members: Iterable[int]) -> int:
        """Point added members at the team, take them off their previous team, detach removed ones."""
        old_set = list(old_members)
        new_set = list(new_members)
        added = [member for member in new_set if member not in old_set]
        removed = [member for member in old_set if member not in new_set]

        employees = self._snapshots.get(Collection.EMPLOYEES)
        writes = 0

        for member in added:
            employee: Optional[Employee] = employees.get(member)
            if employee is None:
                logger.warning(f"Team {team_id} lists unknown employee {member}")
                continue
            if employee.team_id != team_id:
                self._update_later(Collection.EMPLOYEES, member, {"teamId": team_id})
                writes += 1
                if employee.team_id is not None:
                    self._edit_team_later(employee.team_id, without_member(member), f"employee {member} moved to team {team_id}")
                    writes += 1

        for member in removed:
            employee = employees.get(member)
            # Only detach employees that still point here (they may have moved on)
            if employee is not None and employee.team_id == team_id:
                self._update_later(Collection.EMPLOYEES, member, {"teamId": None})
                writes += 1

        return writes

    def on_team_created(self, team_id: int, members: Iterable[int]) -> int:
        return self.on_team_members_changed(team_id, [], members)

    def on_team_deleted(self, team_id: int) -> int:
        """Clear the team reference of every employee that pointed at a deleted team."""
        writes = 0
        employee: Employee
        for employee in self._snapshots.get(Collection.EMPLOYEES):
            if employee.team_id == team_id:
                self._update_later(Collection.EMPLOYEES, employee.id, {"teamId": None})
                writes += 1
        return writes

    def referencing_teams(self, employee_id: int) -> List[Team]:
        """Teams that list an employee as member or leader."""
        return [
            team for team in self._snapshots.get(Collection.TEAMS)
            if employee_id in team.members or team.leader_id == employee_id
        ]
