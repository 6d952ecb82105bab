"""
Registration step rules, declared once as data.

The server runs `first_failure` on every wizard submission; `describe_rules` serialises
the same rules for the browser so client-side checks cannot drift from the server's.
Rule order inside a step is the order messages are reported in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from liftingtracker.core.coerce import parse_int

EMAIL_PATTERN = r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_]{3,20}$"
ACCEPTED_VALUES = (True, 1, "1", "on", "true", "yes")


def _text(data: dict, field: str) -> str:
    value = data.get(field)
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class Required:
    field: str
    message: str
    # Passwords keep surrounding whitespace, so an all-space value counts as present
    strip: bool = True

    def check(self, data: dict) -> bool:
        if self.strip:
            return _text(data, self.field) != ""
        return (data.get(self.field) or "") != ""

    def describe(self) -> dict:
        return {"kind": "required", "field": self.field, "message": self.message}


@dataclass(frozen=True)
class EmailFormat:
    field: str
    message: str

    def check(self, data: dict) -> bool:
        return re.match(EMAIL_PATTERN, _text(data, self.field)) is not None

    def describe(self) -> dict:
        return {"kind": "pattern", "field": self.field, "pattern": EMAIL_PATTERN, "message": self.message}


@dataclass(frozen=True)
class MinLength:
    field: str
    length: int
    message: str

    def check(self, data: dict) -> bool:
        return len(data.get(self.field) or "") >= self.length

    def describe(self) -> dict:
        return {"kind": "min_length", "field": self.field, "length": self.length, "message": self.message}


@dataclass(frozen=True)
class MatchesField:
    field: str
    other: str
    message: str

    def check(self, data: dict) -> bool:
        return (data.get(self.field) or "") == (data.get(self.other) or "")

    def describe(self) -> dict:
        return {"kind": "matches", "field": self.field, "other": self.other, "message": self.message}


@dataclass(frozen=True)
class Accepted:
    field: str
    message: str

    def check(self, data: dict) -> bool:
        value = data.get(self.field)
        if isinstance(value, str):
            value = value.strip().lower()
        return value in ACCEPTED_VALUES

    def describe(self) -> dict:
        return {"kind": "accepted", "field": self.field, "message": self.message}


@dataclass(frozen=True)
class Pattern:
    field: str
    pattern: str
    message: str

    def check(self, data: dict) -> bool:
        return re.match(self.pattern, _text(data, self.field)) is not None

    def describe(self) -> dict:
        return {"kind": "pattern", "field": self.field, "pattern": self.pattern, "message": self.message}


@dataclass(frozen=True)
class SumEquals:
    fields: tuple[str, ...]
    total: int
    message: str

    def check(self, data: dict) -> bool:
        return sum(parse_int(data.get(f)) for f in self.fields) == self.total

    def describe(self) -> dict:
        return {"kind": "sum_equals", "fields": list(self.fields), "total": self.total, "message": self.message}


STEP_RULES: dict[int, tuple] = {
    1: (
        Required("email", "Email is required"),
        EmailFormat("email", "Please enter a valid email address"),
        Required("password", "Password is required", strip=False),
        MinLength("password", 8, "Password must be at least 8 characters"),
        MatchesField("password", "confirm_password", "Passwords do not match"),
        Accepted("terms_accepted", "You must accept the terms and conditions"),
    ),
    2: (
        Required("first_name", "First name is required"),
        Required("last_name", "Last name is required"),
        Required("username", "Username is required"),
        Pattern("username", USERNAME_PATTERN, "Username must be 3-20 characters, letters, numbers, and underscores only"),
    ),
    3: (),
    4: (
        SumEquals(
            ("protein_percentage", "carbs_percentage", "fat_percentage"),
            100,
            "Macro percentages must total 100%",
        ),
    ),
}

STEP_TITLES = {
    1: "Create Account",
    2: "Personal Information",
    3: "Physical Attributes",
    4: "Fitness Goals",
}


def first_failure(step: int, data: dict) -> str | None:
    """Message of the first rule that fails for `step`, or None when the step is valid."""
    if step not in STEP_RULES:
        return "Invalid registration step"
    for rule in STEP_RULES[step]:
        if not rule.check(data):
            return rule.message
    return None


def describe_rules() -> dict:
    return {
        str(step): {"title": STEP_TITLES[step], "rules": [rule.describe() for rule in rules]}
        for step, rules in STEP_RULES.items()
    }
