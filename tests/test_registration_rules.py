"""Unit tests for registration step rules and the wizard state machine (no HTTP)."""

import pytest

from liftingtracker.core.auth import verify_password
from liftingtracker.services.registration import TOTAL_STEPS, RegistrationWizard
from liftingtracker.services.registration_rules import describe_rules, first_failure

STEP1_OK = {
    "email": "lifter@example.com",
    "password": "longenough",
    "confirm_password": "longenough",
    "terms_accepted": True,
}


@pytest.mark.parametrize(
    "changes, message",
    [
        ({"email": ""}, "Email is required"),
        ({"email": "not-an-email"}, "Please enter a valid email address"),
        ({"password": "", "confirm_password": ""}, "Password is required"),
        ({"password": "short", "confirm_password": "short"}, "Password must be at least 8 characters"),
        ({"confirm_password": "different1"}, "Passwords do not match"),
        ({"terms_accepted": False}, "You must accept the terms and conditions"),
    ],
)
def test_step1_reports_first_failure(changes, message):
    assert first_failure(1, {**STEP1_OK, **changes}) == message


def test_step1_whitespace_password_counts_as_present():
    spaces = "   "
    data = {**STEP1_OK, "password": spaces, "confirm_password": spaces}
    assert first_failure(1, data) == "Password must be at least 8 characters"


def test_step1_empty_email_wins_over_other_failures():
    assert first_failure(1, {"email": "", "password": "x", "terms_accepted": False}) == "Email is required"


def test_step1_valid():
    assert first_failure(1, STEP1_OK) is None
    assert first_failure(1, {**STEP1_OK, "terms_accepted": "on"}) is None


@pytest.mark.parametrize(
    "username, ok",
    [("abc", True), ("lifter_99", True), ("a" * 20, True), ("ab", False), ("a" * 21, False), ("bad name", False), ("bad-name", False)],
)
def test_step2_username_pattern(username, ok):
    data = {"first_name": "Ada", "last_name": "Lift", "username": username}
    result = first_failure(2, data)
    if ok:
        assert result is None
    else:
        assert result == "Username must be 3-20 characters, letters, numbers, and underscores only"


def test_step2_required_fields_in_order():
    assert first_failure(2, {"first_name": "", "last_name": "", "username": ""}) == "First name is required"
    assert first_failure(2, {"first_name": "Ada", "last_name": "", "username": ""}) == "Last name is required"
    assert first_failure(2, {"first_name": "Ada", "last_name": "Lift", "username": ""}) == "Username is required"


def test_step3_has_no_rules():
    assert first_failure(3, {}) is None


def test_step4_macros_must_total_100():
    fields = ("protein_percentage", "carbs_percentage", "fat_percentage")
    assert first_failure(4, dict(zip(fields, ("30", "40", "29")))) == "Macro percentages must total 100%"
    assert first_failure(4, dict(zip(fields, ("30", "40", "30")))) is None
    # Non-numeric input counts as zero
    assert first_failure(4, dict(zip(fields, ("abc", "60", "40")))) is None


def test_unknown_step():
    assert first_failure(7, {}) == "Invalid registration step"


def test_describe_rules_covers_every_step():
    rules = describe_rules()
    assert set(rules) == {"1", "2", "3", "4"}
    assert rules["1"]["rules"][0] == {"kind": "required", "field": "email", "message": "Email is required"}
    assert rules["3"]["rules"] == []
    assert rules["4"]["rules"][0]["total"] == 100


def test_prev_never_goes_below_step_one():
    wizard = RegistrationWizard()
    wizard.prev()
    assert wizard.current_step == 1


def test_next_on_step_one_hashes_password_and_drops_plaintext():
    wizard = RegistrationWizard()
    wizard.merge(STEP1_OK)
    assert wizard.next() is None
    assert wizard.current_step == 2
    assert "password" not in wizard.data
    assert "confirm_password" not in wizard.data
    assert verify_password("longenough", wizard.data["password_hash"])
    assert "password_hash" not in wizard.public_fields()


def test_next_failure_keeps_step_and_values():
    wizard = RegistrationWizard()
    wizard.merge({**STEP1_OK, "email": "nope"})
    assert wizard.next() == "Please enter a valid email address"
    assert wizard.current_step == 1
    assert wizard.data["email"] == "nope"


def test_passwords_ignored_after_step_one():
    wizard = RegistrationWizard(current_step=2)
    wizard.merge({"password": "sneaky-change", "first_name": " Ada ", "not_a_field": "x"})
    assert "password" not in wizard.data
    assert wizard.data["first_name"] == "Ada"
    assert "not_a_field" not in wizard.data


def test_next_is_capped_at_last_step():
    wizard = RegistrationWizard(current_step=TOTAL_STEPS)
    assert wizard.next() is None
    assert wizard.current_step == TOTAL_STEPS


def test_complete_requires_last_step():
    wizard = RegistrationWizard(current_step=2)
    assert wizard.check_complete() == "Please finish all registration steps first"


def test_complete_revalidates_last_step():
    wizard = RegistrationWizard(current_step=TOTAL_STEPS, data={"password_hash": "x"})
    wizard.merge({"protein_percentage": "50"})
    assert wizard.check_complete() == "Macro percentages must total 100%"
    wizard.merge({"protein_percentage": "30"})
    assert wizard.check_complete() is None


def test_list_fields_are_normalised():
    wizard = RegistrationWizard(current_step=4)
    wizard.merge({"dietary_restrictions": "vegan", "allergies": ["nuts", " ", "dairy "]})
    assert wizard.data["dietary_restrictions"] == ["vegan"]
    assert wizard.data["allergies"] == ["nuts", "dairy"]
