"""Leaf value rules: FHIR primitive representations, fixed and pattern values."""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from typing import Any

# Regex patterns for FHIR primitive string representations
PATTERNS = {
    "id": re.compile(r"^[A-Za-z0-9\-\.]{1,64}$"),
    "uri": re.compile(r"^\S*$"),
    "code": re.compile(r"^[^\s]+( [^\s]+)*$"),
    "oid": re.compile(r"^urn:oid:[0-2](\.(0|[1-9][0-9]*))+$"),
    "uuid": re.compile(r"^urn:uuid:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"),
    "base64Binary": re.compile(r"^(\s*([0-9a-zA-Z+/=]){4}\s*)+$"),
    "date": re.compile(r"^\d{4}(-(0[1-9]|1[0-2])(-(0[1-9]|[12]\d|3[01]))?)?$"),
    "dateTime": re.compile(
        r"^\d{4}(-(0[1-9]|1[0-2])(-(0[1-9]|[12]\d|3[01])"
        r"(T([01]\d|2[0-3]):[0-5]\d:([0-5]\d|60)(\.\d+)?(Z|[+-]((0\d|1[0-3]):[0-5]\d|14:00)))?)?)?$"
    ),
    "instant": re.compile(
        r"^\d{4}-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])"
        r"T([01]\d|2[0-3]):[0-5]\d:([0-5]\d|60)(\.\d+)?(Z|[+-]((0\d|1[0-3]):[0-5]\d|14:00))$"
    ),
    "time": re.compile(r"^([01]\d|2[0-3]):[0-5]\d:([0-5]\d|60)(\.\d+)?$"),
    "integer64": re.compile(r"^(0|[-+]?[1-9]\d*)$"),
}

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

# FHIRPath system types used by some element definitions (e.g. Element.id)
SYSTEM_TYPE_PREFIX = "http://hl7.org/fhirpath/System."
SYSTEM_TYPES = {
    "String": "string",
    "Boolean": "boolean",
    "Integer": "integer",
    "Decimal": "decimal",
    "Date": "date",
    "DateTime": "dateTime",
    "Time": "time",
}


def _type_name(value: Any) -> str:
    return type(value).__name__


def _check_string(value: Any, fmt: str | None, check_formats: bool) -> str | None:
    if not isinstance(value, str):
        return f"Expected string, got {_type_name(value)}"
    if not value.strip():
        return "String value must not be empty"
    if fmt and check_formats and not PATTERNS[fmt].match(value):
        return f"Invalid {fmt} format: {value!r}"
    return None


def _check_boolean(value: Any) -> str | None:
    if not isinstance(value, bool):
        return f"Expected boolean, got {_type_name(value)}"
    return None


def _check_integer(value: Any, minimum: int = INT32_MIN) -> str | None:
    if not isinstance(value, int) or isinstance(value, bool):
        return f"Expected integer, got {_type_name(value)}"
    if value < minimum or value > INT32_MAX:
        return f"Integer {value} out of range [{minimum}, {INT32_MAX}]"
    return None


def _check_decimal(value: Any) -> str | None:
    if not isinstance(value, int | float) or isinstance(value, bool):
        return f"Expected number, got {_type_name(value)}"
    if isinstance(value, float) and not math.isfinite(value):
        return f"Decimal must be finite, got {value}"
    return None


def _string_check(fmt: str | None = None) -> Callable[[Any, bool], str | None]:
    return lambda value, check_formats: _check_string(value, fmt, check_formats)


PRIMITIVE_CHECKS: dict[str, Callable[[Any, bool], str | None]] = {
    "boolean": lambda value, _: _check_boolean(value),
    "integer": lambda value, _: _check_integer(value),
    "positiveInt": lambda value, _: _check_integer(value, minimum=1),
    "unsignedInt": lambda value, _: _check_integer(value, minimum=0),
    "decimal": lambda value, _: _check_decimal(value),
    "integer64": _string_check("integer64"),
    "string": _string_check(),
    "markdown": _string_check(),
    "xhtml": _string_check(),
    "code": _string_check("code"),
    "id": _string_check("id"),
    "uri": _string_check("uri"),
    "url": _string_check("uri"),
    "canonical": _string_check("uri"),
    "oid": _string_check("oid"),
    "uuid": _string_check("uuid"),
    "base64Binary": _string_check("base64Binary"),
    "date": _string_check("date"),
    "dateTime": _string_check("dateTime"),
    "instant": _string_check("instant"),
    "time": _string_check("time"),
}


def builtin_primitive(type_name: str | None) -> str | None:
    """Return the FHIR primitive a type name denotes, or None."""
    if not type_name:
        return None
    if type_name.startswith(SYSTEM_TYPE_PREFIX):
        return SYSTEM_TYPES.get(type_name[len(SYSTEM_TYPE_PREFIX) :])
    if type_name in PRIMITIVE_CHECKS:
        return type_name
    return None


def check_primitive(type_name: str, value: Any, check_formats: bool = True) -> str | None:
    """Check a JSON value against a primitive type.

    Types without a dedicated rule accept any JSON scalar.

    Returns:
        An error message, or None when the value conforms.
    """
    check = PRIMITIVE_CHECKS.get(builtin_primitive(type_name) or "")
    if check is not None:
        return check(value, check_formats)
    if isinstance(value, str | int | float | bool):
        return None
    return f"Expected a primitive value for {type_name}, got {_type_name(value)}"


def values_equal(left: Any, right: Any) -> bool:
    """Deep JSON equality that keeps booleans distinct from numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(values_equal(left[k], right[k]) for k in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right, strict=True)
        )
    if isinstance(left, dict | list) or isinstance(right, dict | list):
        return False
    return bool(left == right)


def matches_pattern(value: Any, pattern: Any) -> bool:
    """Check that `value` contains `pattern`.

    Objects must carry every pattern key with a matching value (extra keys
    are allowed); every pattern list item must match some value item;
    scalars must be equal.
    """
    if isinstance(pattern, dict):
        return isinstance(value, dict) and all(
            key in value and matches_pattern(value[key], sub) for key, sub in pattern.items()
        )
    if isinstance(pattern, list):
        return isinstance(value, list) and all(
            any(matches_pattern(item, sub) for item in value) for sub in pattern
        )
    return values_equal(value, pattern)
