"""Lenient numeric parsing for form-style input: leading numeric prefix wins, anything else is 0."""

import re

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_int(value) -> int:
    if value is None or isinstance(value, bool):
        return int(bool(value))
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    m = _INT_PREFIX.match(str(value))
    return int(m.group(1)) if m else 0


def parse_float(value) -> float:
    if value is None or isinstance(value, bool):
        return float(bool(value))
    if isinstance(value, (int, float)):
        return float(value)
    m = _FLOAT_PREFIX.match(str(value))
    return float(m.group(1)) if m else 0.0


def parse_optional_float(value) -> float | None:
    """None for blank input; otherwise parse_float."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_float(value)


def parse_optional_int(value) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_int(value)
