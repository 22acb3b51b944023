"""Element enumeration: merging schemas and their base chains into one element tree."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from fhirschema.core.exceptions import CyclicBaseError, InvalidSchemaError, SchemaNotFoundError
from fhirschema.core.types import EnumeratedElement, EnumeratedSchema, SchemaKind, parse_max
from fhirschema.schemas.resolver import Schema, ValidationContext

logger = logging.getLogger(__name__)

# Schema-level keys that describe the root element of the tree
_ROOT_KEYS = ("elements", "required", "excluded", "constraints", "extensions")


def schema_label(schema: Schema, requested: str) -> str:
    """Name recorded in `definedIn` for a schema."""
    return schema.get("name") or schema.get("url") or requested


def _identifiers(schema: Schema, requested: str) -> set[str]:
    ids = {requested}
    for key in ("name", "url"):
        if schema.get(key):
            ids.add(schema[key])
    return ids


def resolve_base_chain(ctx: ValidationContext, name: str) -> list[tuple[str, Schema]]:
    """Resolve a schema and its ancestors.

    Args:
        ctx: Context providing the schema resolver.
        name: Schema name or URL.

    Returns:
        (requested name, schema) pairs ordered root-to-leaf, ending with `name`.

    Raises:
        SchemaNotFoundError: If the schema or one of its ancestors is unknown.
        CyclicBaseError: If the base chain revisits a schema.
    """
    chain: list[tuple[str, Schema]] = []
    visited: set[str] = set()
    current: str | None = name

    while current:
        if current in visited:
            raise CyclicBaseError(name, [label for label, _ in chain] + [current])
        schema = ctx.resolve(current)
        if schema is None:
            raise SchemaNotFoundError(current)
        ids = _identifiers(schema, current)
        if ids & visited:
            raise CyclicBaseError(name, [label for label, _ in chain] + [current])
        visited |= ids
        chain.append((current, schema))
        current = schema.get("base")

    chain.reverse()
    logger.debug("Base chain for %s: %s", name, [label for label, _ in chain])
    return chain


def contributing_schemas(
    ctx: ValidationContext, schema_names: Iterable[str]
) -> list[tuple[str, Schema]]:
    """Order the schemas contributing to a merge: ancestors first, each schema once."""
    contributors: list[tuple[str, Schema]] = []
    seen: set[str] = set()
    for name in schema_names:
        for requested, schema in resolve_base_chain(ctx, name):
            ids = _identifiers(schema, requested)
            if ids & seen:
                continue
            seen |= ids
            contributors.append((requested, schema))
    return contributors


def _root_element(schema: Schema, label: str) -> EnumeratedElement:
    data: dict[str, Any] = {key: schema[key] for key in _ROOT_KEYS if key in schema}
    return EnumeratedElement.from_dict(data, label)


def _parse_kind(value: Any, label: str) -> SchemaKind | None:
    if not value:
        return None
    try:
        return SchemaKind(value)
    except ValueError:
        raise InvalidSchemaError(label, f"unknown kind {value!r}") from None


def _check_bounds(element: EnumeratedElement, label: str, path: str = "") -> None:
    """Reject `max` values on the element, its slices and descendants that are not bounds."""
    bounds = [(path, element.max)]
    if element.slicing is not None:
        bounds += [
            (f"{path}:{name}", slice_def.max) for name, slice_def in element.slicing.slices.items()
        ]
    for where, value in bounds:
        try:
            parse_max(value)
        except ValueError as e:
            raise InvalidSchemaError(label, f"{e} at {where or '<root>'}") from None
    for name, child in element.elements.items():
        _check_bounds(child, label, f"{path}.{name}" if path else name)


def enumerate_schema(ctx: ValidationContext, schema_names: Iterable[str]) -> EnumeratedSchema:
    """Merge schemas into a single enumerated tree.

    Later contributors replace scalar attributes of earlier ones and merge
    nested elements, required/excluded names, constraints and slices.

    Args:
        ctx: Context providing the schema resolver.
        schema_names: Schema names or URLs, merged in the given order.

    Returns:
        EnumeratedSchema with the merged root element.

    Raises:
        SchemaNotFoundError: If a schema cannot be resolved.
        CyclicBaseError: If a base chain is cyclic.
        InvalidSchemaError: If a schema has an unknown kind or a malformed `max`.
    """
    names = list(schema_names)
    root = EnumeratedElement()
    kind: SchemaKind | None = None
    type_names: list[str] = []

    for requested, schema in contributing_schemas(ctx, names):
        label = schema_label(schema, requested)
        contribution = _root_element(schema, label)
        _check_bounds(contribution, label)
        root.merge(contribution)
        kind = _parse_kind(schema.get("kind"), label) or kind
        for type_name in (schema.get("name"), schema.get("type")):
            if type_name and type_name not in type_names:
                type_names.append(type_name)

    return EnumeratedSchema(schema_names=names, root=root, kind=kind, type_names=type_names)


def enumerate_elements(
    ctx: ValidationContext, schema_names: Iterable[str]
) -> dict[str, EnumeratedElement]:
    """Enumerate all elements of the given schemas, including inherited ones.

    Example:
        >>> from fhirschema.schemas import create_context
        >>> ctx = create_context([{"name": "A", "elements": {"a": {"type": "string"}}}])
        >>> enumerate_elements(ctx, ["A"])["a"].defined_in
        ['A']
    """
    return enumerate_schema(ctx, schema_names).elements


def overlay_element(base: EnumeratedSchema | None, element: EnumeratedElement) -> EnumeratedSchema:
    """Combine a type's enumerated tree with an element's inline constraints.

    The base tree is copied, so cached trees stay untouched.
    """
    structure = EnumeratedElement(
        required=list(element.required),
        excluded=list(element.excluded),
        elements=element.elements,
        constraints=element.constraints,
    )
    root = EnumeratedElement()
    if base is None:
        root.merge(structure)
        return EnumeratedSchema(schema_names=[], root=root)

    root.merge(base.root)
    root.merge(structure)
    return EnumeratedSchema(
        schema_names=list(base.schema_names),
        root=root,
        kind=base.kind,
        type_names=list(base.type_names),
    )
