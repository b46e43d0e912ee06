"""
Tests for the public action surface, run against the full stack.
"""

import pytest

from teamsync.core.exceptions import TransientSyncError
from teamsync.models import TrainingStatus
from teamsync.services.actions import ActionResult


def _audit(ctx, action):
    return [entry for entry in ctx.audit_log if entry.action == action]


async def _add_employee(ctx, settle, **fields):
    data = {"matricule": "E1", "firstName": "Ada", "lastName": "Lovelace"}
    data.update(fields)
    result = await ctx.actions.add_employee(data)
    assert result.ok, result.error
    await settle(ctx)
    return result.value


class TestActionResult:
    """Test cases for ActionResult."""

    def test_truthiness(self):
        assert ActionResult.success(1)
        assert not ActionResult.failure("nope", "validation")


class TestEmployees:
    """Test cases for employee actions."""

    @pytest.mark.asyncio
    async def test_add_employee(self, admin_context, settle):
        employee = await _add_employee(admin_context, settle)

        assert [e.id for e in admin_context.employees] == [employee.id]
        assert admin_context.employees[0].doc_handle == str(employee.id)
        entries = _audit(admin_context, "CREATE_EMPLOYEE")
        assert len(entries) == 1
        assert entries[0].user == "admin@example.com"
        assert admin_context.notifications_list[-1].type == "success"

    @pytest.mark.asyncio
    async def test_codes_stay_unique_case_insensitively(self, admin_context, settle):
        await _add_employee(admin_context, settle, matricule="ab12")
        other = await _add_employee(admin_context, settle, matricule="CD34")

        duplicate = await admin_context.actions.add_employee({"matricule": " AB12 ", "firstName": "X"})
        renamed = await admin_context.actions.update_employee(other.id, {"matricule": "Ab12"})
        await settle(admin_context)

        assert duplicate.category == "duplicate_code"
        assert renamed.category == "duplicate_code"
        codes = [e.matricule.strip().lower() for e in admin_context.employees]
        assert sorted(codes) == ["ab12", "cd34"]

    @pytest.mark.asyncio
    async def test_malformed_code(self, admin_context):
        result = await admin_context.actions.add_employee({"matricule": "AB-12"})
        assert result.category == "malformed_code"
        assert admin_context.notifications_list[-1].type == "error"

    @pytest.mark.asyncio
    async def test_update_keeps_own_code(self, admin_context, settle):
        employee = await _add_employee(admin_context, settle, matricule="AB12")

        result = await admin_context.actions.update_employee(employee.id, {"matricule": "ab12", "category": "Operator"})
        await settle(admin_context)

        assert result.ok
        assert admin_context.employees[0].category == "Operator"
        details = _audit(admin_context, "UPDATE_EMPLOYEE")[0].details
        assert "category: empty -> Operator" in details

    @pytest.mark.asyncio
    async def test_exit_and_entry_tags(self, admin_context, settle):
        employee = await _add_employee(admin_context, settle, entryDate="2020-01-01")

        await admin_context.actions.update_employee(employee.id, {"exitDate": "2024-06-30"})
        await settle(admin_context)
        await admin_context.actions.update_employee(employee.id, {"exitDate": None})
        await settle(admin_context)

        assert len(_audit(admin_context, "EMPLOYEE_EXIT")) == 1
        assert len(_audit(admin_context, "EMPLOYEE_ENTRY")) == 1

    @pytest.mark.asyncio
    async def test_dates_validated(self, admin_context):
        result = await admin_context.actions.add_employee(
            {"matricule": "E9", "birthDate": "2000-01-01", "entryDate": "1990-01-01"}
        )
        assert result.category == "validation"

    @pytest.mark.asyncio
    async def test_delete_cascades_to_team_and_bonuses(self, admin_context, settle):
        leader = await _add_employee(admin_context, settle, matricule="L1")
        member = await _add_employee(admin_context, settle, matricule="M1")
        team_result = await admin_context.actions.add_team(
            {"name": "Night", "leaderId": leader.id, "members": [leader.id, member.id]}
        )
        await admin_context.actions.set_bonus(leader.id, "2024-05", 100)
        await settle(admin_context)

        result = await admin_context.actions.delete_employee(leader.id)
        await settle(admin_context)

        assert result.ok
        team = admin_context.teams[0]
        assert team.id == team_result.value.id
        assert team.members == [member.id]
        assert team.leader_id is None
        assert admin_context.bonuses == {}
        assert [e.id for e in admin_context.employees] == [member.id]

    @pytest.mark.asyncio
    async def test_delete_twice_is_silent_noop(self, admin_context, settle):
        employee = await _add_employee(admin_context, settle)
        await admin_context.actions.add_team({"name": "Day"})
        await admin_context.actions.delete_employee(employee.id)
        await settle(admin_context)
        notifications_before = len(admin_context.notifications_list)

        again = await admin_context.actions.delete_employee(employee.id)

        assert not again.ok
        assert again.category == "not_found"
        assert len(admin_context.notifications_list) == notifications_before
        assert [team.name for team in admin_context.teams] == ["Day"]
        assert all(status["status"] == "running" for status in admin_context.mirrors.list_mirrors())

    @pytest.mark.asyncio
    async def test_delete_with_stale_mirror_reports_not_found(self, admin_context, settle, memory_store):
        employee = await _add_employee(admin_context, settle)
        await memory_store.delete("employees", str(employee.id))

        result = await admin_context.actions.delete_employee(employee.id)

        assert result.category == "not_found"


class TestTeams:
    """Test cases for team actions."""

    @pytest.mark.asyncio
    async def test_creation_and_membership_changes_update_employees(self, admin_context, settle):
        first = await _add_employee(admin_context, settle, matricule="A1")
        second = await _add_employee(admin_context, settle, matricule="A2")

        created = await admin_context.actions.add_team({"name": "Night", "members": [first.id]})
        await settle(admin_context)
        team_id = created.value.id
        assert {e.id: e.team_id for e in admin_context.employees} == {first.id: team_id, second.id: None}

        await admin_context.actions.update_team(team_id, {"members": [second.id]})
        await settle(admin_context)
        assert {e.id: e.team_id for e in admin_context.employees} == {first.id: None, second.id: team_id}

        await admin_context.actions.delete_team(team_id)
        await settle(admin_context)
        assert all(e.team_id is None for e in admin_context.employees)
        assert admin_context.teams == ()

    @pytest.mark.asyncio
    async def test_employee_team_change_moves_membership(self, admin_context, settle):
        employee = await _add_employee(admin_context, settle)
        day = (await admin_context.actions.add_team({"name": "Day", "members": [employee.id]})).value
        night = (await admin_context.actions.add_team({"name": "Night"})).value
        await settle(admin_context)

        await admin_context.actions.update_employee(employee.id, {"teamId": night.id})
        await settle(admin_context)

        teams = {team.id: team.members for team in admin_context.teams}
        assert teams == {day.id: [], night.id: [employee.id]}

    @pytest.mark.asyncio
    async def test_name_required(self, admin_context):
        result = await admin_context.actions.add_team({"name": " "})
        assert result.category == "validation"


class TestAccounts:
    """Test cases for account actions and the last-admin rule."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("change", [{"role": "viewer"}, {"active": False}])
    async def test_sole_admin_cannot_be_demoted(self, admin_context, settle, memory_store, change):
        admin = admin_context.current_account
        before = memory_store.raw("accounts")

        result = await admin_context.actions.update_account(admin.id, change)
        await settle(admin_context)

        assert result.category == "invariant_violation"
        assert memory_store.raw("accounts") == before
        assert admin_context.current_account.is_active_admin

    @pytest.mark.asyncio
    async def test_sole_admin_cannot_be_deleted(self, admin_context, memory_store):
        before = memory_store.raw("accounts")
        result = await admin_context.actions.delete_account(admin_context.current_account.id)
        assert result.category == "invariant_violation"
        assert memory_store.raw("accounts") == before

    @pytest.mark.asyncio
    async def test_admin_can_step_down_when_another_exists(self, admin_context, settle):
        added = await admin_context.actions.add_account(
            {"name": "Second", "email": "second@example.com", "role": "admin", "active": True}
        )
        await settle(admin_context)

        result = await admin_context.actions.update_account(admin_context.current_account.id, {"role": "editor"})
        await settle(admin_context)

        assert added.ok
        assert result.ok
        assert admin_context.current_account.role == "editor"
        assert len(_audit(admin_context, "UPDATE_USER")) == 1

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, admin_context):
        result = await admin_context.actions.add_account({"email": "ADMIN@example.com"})
        assert result.category == "validation"

    @pytest.mark.asyncio
    async def test_virtual_account_cannot_be_changed(self, admin_context):
        update = await admin_context.actions.update_account(0, {"name": "x"})
        delete = await admin_context.actions.delete_account(0)
        assert update.category == "not_found"
        assert delete.category == "not_found"

    @pytest.mark.asyncio
    async def test_delete_viewer(self, admin_context, settle):
        added = await admin_context.actions.add_account({"email": "viewer@example.com"})
        await settle(admin_context)

        result = await admin_context.actions.delete_account(added.value.id)
        await settle(admin_context)

        assert result.ok
        assert [account.email for account in admin_context.accounts] == ["admin@example.com"]


class TestTrainings:
    """Test cases for training actions."""

    @pytest.mark.asyncio
    async def test_status_change_writes_single_audit_entry(self, admin_context, settle):
        created = await admin_context.actions.add_training({"title": "Safety", "status": "planned"})
        await settle(admin_context)

        result = await admin_context.actions.update_training(created.value.id, {"status": "done"})
        await settle(admin_context)

        assert result.ok
        assert admin_context.trainings[0].status is TrainingStatus.DONE
        assert len(_audit(admin_context, "TRAINING_STATUS_CHANGE")) == 1
        assert _audit(admin_context, "UPDATE_TRAINING") == []

    @pytest.mark.asyncio
    async def test_back_to_planned_resets_participants(self, admin_context, settle):
        created = await admin_context.actions.add_training({
            "title": "Safety",
            "status": "in_progress",
            "participants": [{"employeeId": 1, "present": True}],
        })
        await settle(admin_context)

        await admin_context.actions.update_training(created.value.id, {"status": "planned"})
        await settle(admin_context)

        assert admin_context.trainings[0].participants == []

    @pytest.mark.asyncio
    async def test_plain_update_and_delete(self, admin_context, settle):
        created = await admin_context.actions.add_training({"title": "Safety"})
        await settle(admin_context)

        await admin_context.actions.update_training(created.value.id, {"description": "Yearly refresher"})
        await admin_context.actions.delete_training(created.value.id)
        await settle(admin_context)

        assert len(_audit(admin_context, "UPDATE_TRAINING")) == 1
        assert len(_audit(admin_context, "DELETE_TRAINING")) == 1
        assert admin_context.trainings == ()

    @pytest.mark.asyncio
    async def test_invalid_status(self, admin_context):
        result = await admin_context.actions.add_training({"title": "Safety", "status": "someday"})
        assert result.category == "validation"


class TestPlanningAndBonuses:
    """Test cases for keyed collections."""

    @pytest.mark.asyncio
    async def test_set_and_clear_planning(self, admin_context, settle):
        employee = await _add_employee(admin_context, settle)
        key = f"{employee.id}_2024-03-01"

        await admin_context.actions.set_planning_item(employee.id, "2024-03-01", "Morning")
        await settle(admin_context)
        assert admin_context.planning == {key: "Morning"}

        await admin_context.actions.set_planning_item(employee.id, "2024-03-01", "")
        await settle(admin_context)
        assert admin_context.planning == {}
        assert len(_audit(admin_context, "UPDATE_PLANNING")) == 2

    @pytest.mark.asyncio
    async def test_bonus_zero_removes(self, admin_context, settle):
        employee = await _add_employee(admin_context, settle)
        key = f"{employee.id}_2024-05"

        await admin_context.actions.set_bonus(employee.id, "2024-05", 150)
        await settle(admin_context)
        assert admin_context.bonuses == {key: 150}

        result = await admin_context.actions.set_bonus(employee.id, "2024-05", 0)
        await settle(admin_context)
        assert result.ok
        assert key not in admin_context.bonuses

        again = await admin_context.actions.set_bonus(employee.id, "2024-05", 0)
        assert again.category == "not_found"

    @pytest.mark.asyncio
    async def test_bonus_for_unknown_employee(self, admin_context):
        result = await admin_context.actions.set_bonus(12345, "2024-05", 10)
        assert result.category == "not_found"


class TestSettings:
    """Test cases for settings updates."""

    @pytest.mark.asyncio
    async def test_update_language(self, admin_context, settle):
        result = await admin_context.actions.update_settings("language", "en")
        await settle(admin_context)

        assert result.ok
        assert admin_context.settings.language == "en"
        assert _audit(admin_context, "UPDATE_SETTINGS")[0].details == "language: fr -> en"

    @pytest.mark.asyncio
    async def test_unknown_key(self, admin_context):
        result = await admin_context.actions.update_settings("theme", "dark")
        assert result.category == "validation"


class TestFailureTaxonomy:
    """Test cases for the action boundary."""

    @pytest.mark.asyncio
    async def test_transient_failure(self, admin_context, memory_store):
        memory_store.fail_next("set", TransientSyncError("offline"))

        result = await admin_context.actions.add_team({"name": "Night"})

        assert result.category == "transient"
        assert admin_context.notifications_list[-1].type == "error"

    @pytest.mark.asyncio
    async def test_permission_denied_sets_flag(self, admin_context, memory_store):
        memory_store.deny("teams")

        result = await admin_context.actions.add_team({"name": "Night"})

        assert result.category == "permission_denied"
        assert admin_context.permission_error

    @pytest.mark.asyncio
    async def test_unexpected_error(self, admin_context, memory_store):
        memory_store.fail_next("set", RuntimeError("bug"))

        result = await admin_context.actions.add_team({"name": "Night"})

        assert result.category == "unexpected"
        assert result.error == "An unexpected error occurred."

    @pytest.mark.asyncio
    async def test_cascade_failure_does_not_fail_primary(self, admin_context, settle, memory_store):
        employee = await _add_employee(admin_context, settle)
        memory_store.fail_next("update", RuntimeError("cascade rejected"))

        result = await admin_context.actions.add_team({"name": "Night", "members": [employee.id]})
        await settle(admin_context)

        assert result.ok
        assert admin_context.integrity.failures == 1
        assert [team.name for team in admin_context.teams] == ["Night"]


class TestGhostDocuments:
    """Test cases for records stored under more than one handle."""

    @pytest.mark.asyncio
    async def test_ghost_copy_does_not_hide_the_sole_admin(self, admin_context, settle, memory_store):
        admin = admin_context.current_account
        await memory_store.set("accounts", "legacyAutoId", memory_store.raw("accounts")[str(admin.id)])
        await settle(admin_context)
        before = memory_store.raw("accounts")

        deleted = await admin_context.actions.delete_account(admin.id)
        demoted = await admin_context.actions.update_account(admin.id, {"role": "viewer"})
        await settle(admin_context)

        assert deleted.category == "invariant_violation"
        assert demoted.category == "invariant_violation"
        assert memory_store.raw("accounts") == before
        assert admin_context.current_account.is_active_admin

    @pytest.mark.asyncio
    async def test_bonus_zero_removes_every_copy(self, admin_context, settle, memory_store):
        employee = await _add_employee(admin_context, settle)
        await admin_context.actions.set_bonus(employee.id, "2024-01", 10)
        await memory_store.set("bonuses", "autoXYZ", {"employeeId": employee.id, "month": "2024-01", "amount": 10})
        await settle(admin_context)

        result = await admin_context.actions.set_bonus(employee.id, "2024-01", 0)
        await settle(admin_context)

        assert result.ok
        assert admin_context.bonuses == {}
        assert memory_store.raw("bonuses") == {}

    @pytest.mark.asyncio
    async def test_bonus_write_replaces_stale_copy(self, admin_context, settle, memory_store):
        employee = await _add_employee(admin_context, settle)
        await memory_store.set("bonuses", "autoXYZ", {"employeeId": employee.id, "month": "2024-01", "amount": 10})
        await memory_store.set("bonuses", "autoABC", {"employeeId": str(employee.id), "month": "2024-01", "amount": 5})
        await settle(admin_context)

        result = await admin_context.actions.set_bonus(employee.id, "2024-01", 40)
        await settle(admin_context)

        assert result.ok
        assert [doc["amount"] for doc in memory_store.raw("bonuses").values()] == [40]
        assert admin_context.bonuses == {f"{employee.id}_2024-01": 40}

    @pytest.mark.asyncio
    async def test_clearing_planning_removes_every_copy(self, admin_context, settle, memory_store):
        employee = await _add_employee(admin_context, settle)
        await admin_context.actions.set_planning_item(employee.id, "2024-03-01", "Morning")
        await memory_store.set("planning", "legacy-cell", {"employeeId": employee.id, "date": "2024-03-01", "shift": "Night"})
        await settle(admin_context)

        result = await admin_context.actions.set_planning_item(employee.id, "2024-03-01", None)
        await settle(admin_context)

        assert result.ok
        assert admin_context.planning == {}
        assert memory_store.raw("planning") == {}


class TestBackToBackActions:
    """Test cases for actions issued before the mirrors catch up."""

    @pytest.mark.asyncio
    async def test_two_employees_join_the_same_team(self, admin_context, settle):
        team = (await admin_context.actions.add_team({"name": "Night"})).value
        await settle(admin_context)

        first = await admin_context.actions.add_employee({"matricule": "A1", "teamId": team.id})
        second = await admin_context.actions.add_employee({"matricule": "A2", "teamId": team.id})
        await settle(admin_context)

        assert admin_context.teams[0].members == [first.value.id, second.value.id]

    @pytest.mark.asyncio
    async def test_two_members_deleted_stay_deleted(self, admin_context, settle):
        first = await _add_employee(admin_context, settle, matricule="A1")
        second = await _add_employee(admin_context, settle, matricule="A2")
        third = await _add_employee(admin_context, settle, matricule="A3")
        await admin_context.actions.add_team({"name": "Night", "members": [first.id, second.id, third.id]})
        await settle(admin_context)

        await admin_context.actions.delete_employee(first.id)
        await admin_context.actions.delete_employee(second.id)
        await settle(admin_context)

        assert admin_context.teams[0].members == [third.id]

    @pytest.mark.asyncio
    async def test_member_taken_by_another_team_leaves_the_first(self, admin_context, settle):
        employee = await _add_employee(admin_context, settle)
        day = (await admin_context.actions.add_team({"name": "Day", "members": [employee.id]})).value
        night = (await admin_context.actions.add_team({"name": "Night"})).value
        await settle(admin_context)

        await admin_context.actions.update_team(night.id, {"members": [employee.id]})
        await settle(admin_context)

        teams = {team.id: team.members for team in admin_context.teams}
        assert teams == {day.id: [], night.id: [employee.id]}
        assert admin_context.employees[0].team_id == night.id
