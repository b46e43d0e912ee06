"""
Tests for mutation field validation.
"""

import pytest

from teamsync.core.exceptions import DuplicateCodeError, MalformedCodeError, ValidationError
from teamsync.models import Account, AppSettings, Employee, Training
from teamsync.services.validation import (
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


class TestNormalizeFields:
    """Test cases for normalize_fields."""

    def test_accepts_both_spellings(self):
        assert normalize_fields(Employee, {"firstName": "A", "last_name": "B"}) == {
            "first_name": "A",
            "last_name": "B",
        }

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError, match="Unknown field"):
            normalize_fields(Employee, {"nickname": "x"})

    def test_id_cannot_change(self):
        with pytest.raises(ValidationError, match="cannot be changed"):
            normalize_fields(Employee, {"id": 3})

    def test_settings_keys(self):
        assert normalize_fields(AppSettings, {"dateFormat": "YYYY-MM-DD"}) == {"date_format": "YYYY-MM-DD"}


class TestMerge:
    """Test cases for merge and wire_patch."""

    def test_merge_keeps_handle(self):
        current = Employee(id=1, first_name="A").model_copy(update={"doc_handle": "legacy-1"})
        updated = merge(current, {"first_name": "B"})
        assert updated.first_name == "B"
        assert updated.doc_handle == "legacy-1"

    def test_merge_revalidates(self):
        current = Employee(id=1)
        with pytest.raises(ValidationError):
            merge(current, {"is_bonus_eligible": "not-a-bool"})

    def test_wire_patch_uses_camel_case(self):
        employee = Employee(id=1, team_id=4, first_name="A")
        assert wire_patch(employee, {"team_id"}) == {"teamId": 4}


class TestMatricule:
    """Test cases for employee code rules."""

    def test_trimmed(self):
        assert normalize_matricule("  AB12 ") == "AB12"

    @pytest.mark.parametrize("code", ["", "   ", None, "AB-12", "AB 12", "é1"])
    def test_malformed(self, code):
        with pytest.raises(MalformedCodeError):
            normalize_matricule(code)

    def test_unique_case_insensitive(self):
        employees = [Employee(id=1, matricule="ab12")]
        with pytest.raises(DuplicateCodeError):
            check_matricule_unique("AB12", employees)

    def test_unique_excludes_self(self):
        employees = [Employee(id=1, matricule="ab12")]
        check_matricule_unique("AB12", employees, exclude_id=1)


class TestEmployeeDates:
    """Test cases for employee date ordering."""

    def test_valid(self):
        check_employee_dates(Employee(id=1, birth_date="1990-01-01", entry_date="2015-06-01", exit_date="2020-01-01"))

    @pytest.mark.parametrize("fields, message", [
        ({"birth_date": "2000-01-01", "entry_date": "1999-01-01"}, "Entry date"),
        ({"birth_date": "2000-01-01", "exit_date": "1999-01-01"}, "Exit date cannot be before birth"),
        ({"entry_date": "2020-01-01", "exit_date": "2019-12-31"}, "Exit date cannot be before entry"),
    ])
    def test_invalid_order(self, fields, message):
        with pytest.raises(ValidationError, match=message):
            check_employee_dates(Employee(id=1, **fields))

    def test_not_iso(self):
        with pytest.raises(ValidationError, match="ISO date"):
            check_employee_dates(Employee(id=1, birth_date="01/02/1990"))


class TestAccountRules:
    """Test cases for account validation."""

    def test_email_needs_at(self):
        with pytest.raises(ValidationError, match="not a valid email"):
            check_account(Account(id=1, email="nobody"), [])

    def test_unknown_role(self):
        with pytest.raises(ValidationError, match="Unknown role"):
            check_account(Account(id=1, email="a@example.com", role="owner"), [])

    def test_duplicate_email(self):
        existing = [Account(id=2, email="A@example.com")]
        with pytest.raises(ValidationError, match="already exists"):
            check_account(Account(id=1, email="a@example.com"), existing)

    def test_virtual_account_does_not_count(self):
        existing = [Account(id=0, email="a@example.com")]
        check_account(Account(id=1, email="a@example.com"), existing)


class TestTrainingRules:
    """Test cases for training validation."""

    def test_title_required(self):
        with pytest.raises(ValidationError, match="title"):
            check_training(Training(id=1, title="  "))

    def test_start_before_end(self):
        with pytest.raises(ValidationError, match="Start date"):
            check_training(Training(id=1, title="T", start_date="2024-05-02", end_date="2024-05-01"))

    def test_no_target_is_fine(self):
        check_training(Training(id=1, title="Safety"))


class TestPlanningAndBonus:
    """Test cases for planning dates and bonus values."""

    def test_planning_date_normalized(self):
        assert check_planning_date("2024-03-01T00:00:00") == "2024-03-01"

    @pytest.mark.parametrize("value", ["2024-01-01garbage", "2024-01-01 x", "2024-01-0"])
    def test_planning_date_trailing_garbage_rejected(self, value):
        with pytest.raises(ValidationError, match="ISO date"):
            check_planning_date(value)

    def test_planning_date_required(self):
        with pytest.raises(ValidationError):
            check_planning_date("")

    def test_bonus_ok(self):
        assert check_bonus(" 2024-03 ", 120) == ("2024-03", 120)

    @pytest.mark.parametrize("month, amount", [
        ("2024-13", 10),
        ("2024-3", 10),
        ("2024-03", -1),
        ("2024-03", "10"),
        ("2024-03", True),
    ])
    def test_bonus_invalid(self, month, amount):
        with pytest.raises(ValidationError):
            check_bonus(month, amount)
