"""Core type definitions for fhirschema."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Marker values accepted for an unbounded `max`
UNBOUNDED_MARKERS = frozenset({"*", "unbounded"})


class SchemaKind(Enum):
    """Kind of a FHIR Schema."""

    PRIMITIVE_TYPE = "primitive-type"
    COMPLEX_TYPE = "complex-type"
    RESOURCE = "resource"
    LOGICAL = "logical"


class ErrorType(Enum):
    """Kinds of validation errors."""

    SCHEMA_NOT_FOUND = "SchemaNotFound"
    CYCLIC_BASE = "CyclicBase"
    INVALID_SCHEMA = "InvalidSchema"
    TYPE_MISMATCH = "TypeMismatch"
    CARDINALITY_ERROR = "CardinalityError"
    SLICE_CARDINALITY_ERROR = "SliceCardinalityError"
    UNKNOWN_ELEMENT = "UnknownElement"
    REQUIRED_ELEMENT_MISSING = "RequiredElementMissing"
    EXCLUDED_ELEMENT_PRESENT = "ExcludedElementPresent"
    CHOICE_CONFLICT = "ChoiceConflict"
    UNMATCHED_SLICE = "UnmatchedSlice"
    INVALID_PATH = "InvalidPath"
    FIXED_VALUE_MISMATCH = "FixedValueMismatch"
    PATTERN_MISMATCH = "PatternMismatch"


def parse_max(value: int | str | None) -> int | None:
    """Return the numeric upper bound, or None when unbounded or unset.

    Raises:
        ValueError: If the value is neither a number nor an unbounded marker.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if value in UNBOUNDED_MARKERS:
            return None
        if value.isdigit():
            return int(value)
    raise ValueError(f"Invalid max {value!r}: expected a number, \"*\" or \"unbounded\"")


def _union(target: list[str], values: list[str]) -> None:
    """Append values not yet present, keeping first-seen order."""
    for value in values:
        if value not in target:
            target.append(value)


@dataclass
class Binding:
    """Terminology binding (structural only, never checked against code systems)."""

    value_set: str
    strength: str = "example"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Binding:
        return cls(value_set=data.get("valueSet", ""), strength=data.get("strength", "example"))

    def to_dict(self) -> dict[str, Any]:
        return {"valueSet": self.value_set, "strength": self.strength}


@dataclass
class Constraint:
    """Invariant carried through enumeration. Expressions are not evaluated."""

    expression: str
    severity: str = "error"
    human: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Constraint:
        return cls(
            expression=data.get("expression", ""),
            severity=data.get("severity", "error"),
            human=data.get("human", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"expression": self.expression, "severity": self.severity}
        if self.human:
            result["human"] = self.human
        return result


@dataclass
class SliceDefinition:
    """A named slice of a repeated element.

    Entries belong to the slice when their `url` equals the slice `url`
    (extension slices) or when they contain the `match` pattern.
    """

    url: str | None = None
    match: Any = None
    min: int | None = None
    max: int | str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SliceDefinition:
        return cls(
            url=data.get("url"),
            match=data.get("match"),
            min=data.get("min"),
            max=data.get("max"),
        )

    def merge(self, other: SliceDefinition) -> None:
        """Override attributes set on a more specific slice."""
        for attr in ("url", "match", "min", "max"):
            value = getattr(other, attr)
            if value is not None:
                setattr(self, attr, copy.deepcopy(value))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for attr in ("url", "match", "min", "max"):
            value = getattr(self, attr)
            if value is not None:
                result[attr] = value
        return result


@dataclass
class Slicing:
    """Slices declared on a repeated element."""

    slices: dict[str, SliceDefinition] = field(default_factory=dict)
    rules: str | None = None  # "open" or "closed"

    @property
    def closed(self) -> bool:
        return self.rules == "closed"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Slicing:
        return cls(
            slices={
                name: SliceDefinition.from_dict(slice_data)
                for name, slice_data in (data.get("slices") or {}).items()
            },
            rules=data.get("rules"),
        )

    def merge(self, other: Slicing) -> None:
        for name, slice_def in other.slices.items():
            if name in self.slices:
                self.slices[name].merge(slice_def)
            else:
                self.slices[name] = copy.deepcopy(slice_def)
        if other.rules is not None:
            self.rules = other.rules

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "slices": {name: s.to_dict() for name, s in self.slices.items()}
        }
        if self.rules is not None:
            result["rules"] = self.rules
        return result


# Element attributes that later schemas replace rather than merge.
# Maps the FHIR Schema (JSON) key to the dataclass attribute.
SCALAR_ATTRIBUTES: dict[str, str] = {
    "type": "type",
    "array": "array",
    "scalar": "scalar",
    "min": "min",
    "max": "max",
    "fixed": "fixed",
    "pattern": "pattern",
    "refers": "refers",
    "choices": "choices",
    "choiceOf": "choice_of",
    "modifier": "modifier",
    "mustSupport": "must_support",
    "summary": "summary",
    "path": "path",
    "short": "short",
    "definition": "definition",
}

# Keys with dedicated handling in EnumeratedElement.from_dict
_STRUCTURAL_KEYS = frozenset(
    {
        "binding",
        "required",
        "excluded",
        "constraints",
        "elements",
        "extensions",
        "slicing",
        "definedIn",
    }
)


@dataclass
class EnumeratedElement:
    """An element definition merged across every schema that declares it.

    Besides the element definition attributes it records `defined_in`, the
    ordered schema names/URLs that contributed to the element, and `slicing`
    for sliced repeated elements. Nested `elements` form a tree mirroring the
    schema structure.
    """

    type: str | None = None
    array: bool | None = None
    scalar: bool | None = None
    min: int | None = None
    max: int | str | None = None
    binding: Binding | None = None
    required: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
    fixed: Any = None
    pattern: Any = None
    constraints: dict[str, Constraint] = field(default_factory=dict)
    refers: list[str] | None = None
    choices: list[str] | None = None
    choice_of: str | None = None
    modifier: bool | None = None
    must_support: bool | None = None
    summary: bool | None = None
    path: str | None = None
    short: str | None = None
    definition: str | None = None
    defined_in: list[str] = field(default_factory=list)
    elements: dict[str, EnumeratedElement] = field(default_factory=dict)
    slicing: Slicing | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_array(self) -> bool:
        return bool(self.array) and not self.scalar

    @property
    def max_count(self) -> int | None:
        return parse_max(self.max)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source: str | None = None) -> EnumeratedElement:
        """Build an element from its FHIR Schema representation.

        Args:
            data: Element definition (or schema) mapping.
            source: Schema name/URL recorded in `defined_in` on this element
                and every nested element.
        """
        element = cls()
        if source:
            element.defined_in.append(source)
        elif data.get("definedIn"):
            element.defined_in.extend(data["definedIn"])

        for key, value in data.items():
            if key in SCALAR_ATTRIBUTES:
                setattr(element, SCALAR_ATTRIBUTES[key], copy.deepcopy(value))
            elif key not in _STRUCTURAL_KEYS:
                element.extra[key] = copy.deepcopy(value)

        if data.get("binding"):
            element.binding = Binding.from_dict(data["binding"])
        _union(element.required, list(data.get("required") or []))
        _union(element.excluded, list(data.get("excluded") or []))
        for constraint_id, constraint in (data.get("constraints") or {}).items():
            element.constraints[constraint_id] = Constraint.from_dict(constraint)
        for name, child in (data.get("elements") or {}).items():
            element.elements[name] = cls.from_dict(child, source)
        if data.get("slicing"):
            element.slicing = Slicing.from_dict(data["slicing"])
        if data.get("extensions"):
            element.add_extension_slices(data["extensions"], source)
        return element

    def add_extension_slices(
        self, extensions: Mapping[str, Mapping[str, Any]], source: str | None = None
    ) -> None:
        """Record extension definitions as slices of the `extension` child."""
        extension = self.elements.get("extension")
        if extension is None:
            extension = EnumeratedElement(type="Extension", array=True)
            self.elements["extension"] = extension
        if source and source not in extension.defined_in:
            extension.defined_in.append(source)
        if extension.slicing is None:
            extension.slicing = Slicing()
        extension.slicing.merge(
            Slicing(
                slices={
                    name: SliceDefinition.from_dict(definition)
                    for name, definition in extensions.items()
                }
            )
        )

    def merge(self, other: EnumeratedElement) -> None:
        """Merge a more specific definition of the same element into this one.

        Scalar attributes are replaced; `elements`, `required`, `excluded`,
        `constraints`, slices and `defined_in` are merged.
        """
        for attr in SCALAR_ATTRIBUTES.values():
            value = getattr(other, attr)
            if value is not None:
                setattr(self, attr, copy.deepcopy(value))
        if other.binding is not None:
            self.binding = copy.deepcopy(other.binding)
        _union(self.required, other.required)
        _union(self.excluded, other.excluded)
        _union(self.defined_in, other.defined_in)
        self.constraints.update(copy.deepcopy(other.constraints))
        self.extra.update(copy.deepcopy(other.extra))

        for name, child in other.elements.items():
            if name in self.elements:
                self.elements[name].merge(child)
            else:
                self.elements[name] = copy.deepcopy(child)

        if other.slicing is not None:
            if self.slicing is None:
                self.slicing = Slicing()
            self.slicing.merge(other.slicing)

    def to_dict(self) -> dict[str, Any]:
        """Return the FHIR Schema (camelCase) representation."""
        result: dict[str, Any] = {}
        for key, attr in SCALAR_ATTRIBUTES.items():
            value = getattr(self, attr)
            if value is not None:
                result[key] = value
        if self.binding is not None:
            result["binding"] = self.binding.to_dict()
        if self.required:
            result["required"] = list(self.required)
        if self.excluded:
            result["excluded"] = list(self.excluded)
        if self.constraints:
            result["constraints"] = {k: c.to_dict() for k, c in self.constraints.items()}
        result.update(self.extra)
        result["definedIn"] = list(self.defined_in)
        if self.elements:
            result["elements"] = {name: el.to_dict() for name, el in self.elements.items()}
        if self.slicing is not None:
            result["slicing"] = self.slicing.to_dict()
        return result


@dataclass
class EnumeratedSchema:
    """Merged view of one or more schemas and their base chains."""

    schema_names: list[str]
    root: EnumeratedElement
    kind: SchemaKind | None = None
    type_names: list[str] = field(default_factory=list)

    @property
    def elements(self) -> dict[str, EnumeratedElement]:
        return self.root.elements

    @property
    def required(self) -> list[str]:
        return self.root.required

    @property
    def excluded(self) -> list[str]:
        return self.root.excluded

    @property
    def constraints(self) -> dict[str, Constraint]:
        return self.root.constraints

    @property
    def defined_in(self) -> list[str]:
        return self.root.defined_in

    @property
    def is_resource(self) -> bool:
        return self.kind == SchemaKind.RESOURCE


# Element shapes: how the validator treats a value found at an element.


@dataclass(frozen=True)
class TypedElement:
    """Element with a static type and/or inline nested elements."""

    type_name: str | None
    has_inline_elements: bool = False


@dataclass(frozen=True)
class ChoiceMember:
    """One typed variant of a choice group (e.g. valueString of value[x])."""

    group: str
    type_name: str | None


@dataclass(frozen=True)
class ChoiceGroup:
    """Declaration of a choice group; never present in data itself."""

    choices: tuple[str, ...]


@dataclass(frozen=True)
class DynamicResource:
    """Position accepting any resource, discriminated by `resourceType`."""

    fallback: str | None = None


ElementShape = TypedElement | ChoiceMember | ChoiceGroup | DynamicResource

# Types whose positions accept any resource
ABSTRACT_RESOURCE_TYPES = frozenset({"Resource", "DomainResource"})


def element_shape(element: EnumeratedElement) -> ElementShape:
    """Classify an enumerated element."""
    if element.choices is not None:
        return ChoiceGroup(choices=tuple(element.choices))
    if element.choice_of is not None:
        return ChoiceMember(group=element.choice_of, type_name=element.type)
    if element.type in ABSTRACT_RESOURCE_TYPES and not element.elements:
        return DynamicResource(fallback=element.type)
    if element.type is None and not element.elements:
        return DynamicResource()
    return TypedElement(type_name=element.type, has_inline_elements=bool(element.elements))
