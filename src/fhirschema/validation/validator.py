"""Document validation against enumerated FHIR Schema element trees."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from fhirschema.core.exceptions import FHIRSchemaError
from fhirschema.core.types import (
    ChoiceGroup,
    ChoiceMember,
    DynamicResource,
    EnumeratedElement,
    EnumeratedSchema,
    ErrorType,
    SchemaKind,
    SliceDefinition,
    Slicing,
    element_shape,
    parse_max,
)
from fhirschema.schemas.resolver import ValidationContext
from fhirschema.validation.enumerator import enumerate_schema, overlay_element
from fhirschema.validation.values import (
    builtin_primitive,
    check_primitive,
    matches_pattern,
    values_equal,
)

logger = logging.getLogger(__name__)

PathItem = str | int


@dataclass
class ValidationError:
    """A single validation error."""

    type: ErrorType
    path: list[PathItem]
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def path_str(self) -> str:
        """Dotted path with indices, e.g. ``name[0].given``."""
        text = ""
        for item in self.path:
            if isinstance(item, int):
                text += f"[{item}]"
            else:
                text += f".{item}" if text else item
        return text

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type.value, "path": list(self.path)}
        if self.message:
            result["message"] = self.message
        result.update(self.details)
        return result


@dataclass
class ValidationResult:
    """Result of validating a document or a single element value."""

    schema_names: list[str] = field(default_factory=list)
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_count(self) -> int:
        """Return number of errors."""
        return len(self.errors)

    def add_error(
        self,
        error_type: ErrorType,
        path: Sequence[PathItem],
        message: str = "",
        **details: Any,
    ) -> None:
        """Add a validation error."""
        self.errors.append(
            ValidationError(type=error_type, path=list(path), message=message, details=details)
        )

    def errors_at(self, path: Sequence[PathItem]) -> list[ValidationError]:
        """Return errors located at or below `path`."""
        prefix = list(path)
        return [e for e in self.errors if e.path[: len(prefix)] == prefix]

    def to_dict(self) -> dict[str, Any]:
        return {"errors": [e.to_dict() for e in self.errors]}


@dataclass
class ValidationOptions:
    """Options for document validation."""

    # Report array entries that match no declared slice
    closed_slices: bool = False

    # Lexical checks of primitive string formats (date, id, uri, ...)
    check_formats: bool = True

    # Validate extensions against the schema their `url` resolves to
    resolve_extension_urls: bool = True


class DocumentValidator:
    """Validates documents against one or more FHIR Schemas.

    Enumerated trees are memoised for the lifetime of the validator, so a
    validator should not outlive the schemas its resolver returns.
    """

    def __init__(self, ctx: ValidationContext, options: ValidationOptions | None = None) -> None:
        """Initialize validator.

        Args:
            ctx: Context providing the schema resolver.
            options: Validation options.
        """
        self.ctx = ctx
        self.options = options or ValidationOptions()
        self._trees: dict[tuple[str, ...], EnumeratedSchema] = {}
        self._primitives: dict[str, str | None] = {}
        # Keyed by element identity; the element is kept so its id stays valid
        self._overlays: dict[
            tuple[int, tuple[str, ...]],
            tuple[EnumeratedElement, EnumeratedSchema, FHIRSchemaError | None],
        ] = {}
        self._companions: dict[tuple[bool | None, bool | None], EnumeratedElement] = {}

    def _enumerate(self, names: Sequence[str]) -> EnumeratedSchema:
        key = tuple(names)
        if key not in self._trees:
            self._trees[key] = enumerate_schema(self.ctx, key)
        return self._trees[key]

    def _report_schema_error(
        self, exc: FHIRSchemaError, path: Sequence[PathItem], result: ValidationResult
    ) -> None:
        result.add_error(exc.error_type, path, str(exc), **exc.details())

    def _primitive_type(self, type_name: str | None) -> str | None:
        """Return the primitive type name for `type_name`, or None for complex types."""
        if not type_name:
            return None
        if type_name not in self._primitives:
            primitive = builtin_primitive(type_name)
            if primitive is None:
                schema = self.ctx.resolve(type_name)
                if schema is not None and schema.get("kind") == SchemaKind.PRIMITIVE_TYPE.value:
                    primitive = schema.get("name") or type_name
            self._primitives[type_name] = primitive
        return self._primitives[type_name]

    def _is_primitive_element(self, element: EnumeratedElement) -> bool:
        return not element.elements and self._primitive_type(element.type) is not None

    def _child_tree(
        self, element: EnumeratedElement, extra: Sequence[str]
    ) -> tuple[EnumeratedSchema, FHIRSchemaError | None]:
        """Tree for the fields of a composite value.

        Trees are memoised per element and extra schema names. When the type
        cannot be enumerated but the element declares inline elements, the
        tree holds only the inline elements and the enumeration error is
        returned alongside it.

        Raises:
            FHIRSchemaError: If the type cannot be enumerated and the element
                declares no inline elements.
        """
        key = (id(element), tuple(extra))
        cached = self._overlays.get(key)
        if cached is not None and cached[0] is element:
            return cached[1], cached[2]

        names = [element.type, *extra] if element.type else list(extra)
        base = None
        error = None
        if names:
            try:
                base = self._enumerate(names)
            except FHIRSchemaError as e:
                if not element.elements:
                    raise
                error = e
        tree = overlay_element(base, element)
        self._overlays[key] = (element, tree, error)
        return tree, error

    def _extension_profiles(self, element: EnumeratedElement, value: Any) -> list[str]:
        """Schemas an extension entry is validated against besides its element type."""
        if not self.options.resolve_extension_urls or element.type != "Extension":
            return []
        if not isinstance(value, dict):
            return []
        url = value.get("url")
        if isinstance(url, str) and self.ctx.resolve(url) is not None:
            return [url]
        return []

    # --- entry points ---

    def validate(self, schema_names: Sequence[str], data: Any) -> ValidationResult:
        """Validate a document.

        Args:
            schema_names: Schema names or URLs the document must conform to.
                When empty, the document's `resourceType` is used.
            data: The document (parsed JSON).

        Returns:
            ValidationResult with every detected error.
        """
        names = list(schema_names)
        result = ValidationResult(schema_names=names)
        if not names and isinstance(data, dict) and isinstance(data.get("resourceType"), str):
            names = [data["resourceType"]]
        if not names:
            result.add_error(
                ErrorType.SCHEMA_NOT_FOUND, [], "No schema given and no resourceType in data"
            )
            return result

        try:
            schema = self._enumerate(names)
        except FHIRSchemaError as e:
            self._report_schema_error(e, [], result)
            return result

        self._validate_root(schema, data, result)
        logger.debug("Validated against %s: %d errors", names, result.error_count)
        return result

    def validate_element_value(
        self, schema_names: Sequence[str], path: Sequence[str], value: Any
    ) -> ValidationResult:
        """Validate a single value against the element addressed by `path`.

        Args:
            schema_names: Schema names or URLs.
            path: Element names from the schema root, e.g. ``["contact", "name"]``.
            value: The value found at that element.

        Returns:
            ValidationResult; errors are located under `path`.
        """
        result = ValidationResult(schema_names=list(schema_names))
        try:
            schema = self._enumerate(list(schema_names))
        except FHIRSchemaError as e:
            self._report_schema_error(e, [], result)
            return result

        element = self._lookup(schema, path)
        if element is None:
            result.add_error(
                ErrorType.INVALID_PATH, list(path), f"No element at {'.'.join(path) or '<root>'}"
            )
            return result

        self._validate_element(element, value, list(path), result)
        return result

    def _lookup(self, schema: EnumeratedSchema, path: Sequence[str]) -> EnumeratedElement | None:
        if not path:
            return None
        tree = schema
        element = None
        for i, name in enumerate(path):
            element = tree.elements.get(name)
            if element is None or isinstance(element_shape(element), ChoiceGroup):
                return None
            if i == len(path) - 1:
                break
            if self._is_primitive_element(element) or isinstance(
                element_shape(element), DynamicResource
            ):
                return None
            try:
                tree, _ = self._child_tree(element, [])
            except FHIRSchemaError:
                return None
        return element

    # --- traversal ---

    def _validate_root(self, schema: EnumeratedSchema, data: Any, result: ValidationResult) -> None:
        if schema.kind == SchemaKind.PRIMITIVE_TYPE:
            type_name = (schema.type_names or schema.schema_names)[-1]
            message = check_primitive(type_name, data, self.options.check_formats)
            if message:
                result.add_error(ErrorType.TYPE_MISMATCH, [], message)
            return

        if not isinstance(data, dict):
            result.add_error(
                ErrorType.TYPE_MISMATCH, [], f"Expected object, got {type(data).__name__}"
            )
            return

        resource_type = data.get("resourceType")
        if schema.is_resource and resource_type is not None:
            if resource_type not in schema.type_names:
                result.add_error(
                    ErrorType.TYPE_MISMATCH,
                    ["resourceType"],
                    f"resourceType {resource_type!r} does not match {schema.type_names}",
                    expected=list(schema.type_names),
                )

        self._validate_object(
            schema, data, [], result, resource=schema.kind in (None, SchemaKind.RESOURCE)
        )

    def _validate_object(
        self,
        tree: EnumeratedSchema,
        data: dict[str, Any],
        path: list[PathItem],
        result: ValidationResult,
        resource: bool = False,
    ) -> None:
        elements = tree.elements

        for key, value in data.items():
            if key == "resourceType" and (resource or tree.is_resource):
                continue

            element = elements.get(key)
            if element is None and key.startswith("_"):
                primitive = elements.get(key[1:])
                if primitive is not None and self._is_primitive_element(primitive):
                    self._validate_companion(primitive, value, [*path, key], result)
                    continue

            shape = element_shape(element) if element is not None else None
            if element is None or isinstance(shape, ChoiceGroup):
                result.add_error(
                    ErrorType.UNKNOWN_ELEMENT, [*path, key], f"Unknown element {key!r}"
                )
                continue

            if isinstance(shape, ChoiceMember):
                group = elements.get(shape.group)
                if group is not None and group.choices is not None and key not in group.choices:
                    result.add_error(
                        ErrorType.CHOICE_CONFLICT,
                        [*path, key],
                        f"{key!r} is not an allowed choice of {shape.group!r}",
                        choices=list(group.choices),
                    )

            self._validate_element(element, value, [*path, key], result)

        self._check_choices(elements, tree.required, data, path, result)
        self._check_required(elements, tree.required, data, path, result)
        self._check_excluded(elements, tree.excluded, data, path, result)

        for name, element in elements.items():
            if element.slicing is not None and name not in data:
                self._check_slice_counts(element.slicing, {}, [*path, name], result)

    def _check_choices(
        self,
        elements: dict[str, EnumeratedElement],
        required: list[str],
        data: dict[str, Any],
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        for name, element in elements.items():
            if element.choices is None:
                continue
            present = [
                key
                for key in data
                if key in element.choices
                and key in elements
                and elements[key].choice_of == name
            ]
            if len(present) > 1:
                result.add_error(
                    ErrorType.CHOICE_CONFLICT,
                    [*path, name],
                    f"Only one of {element.choices} may be present, found {present}",
                    present=present,
                )
            elif not present and name in required:
                result.add_error(
                    ErrorType.REQUIRED_ELEMENT_MISSING,
                    [*path, name],
                    f"Required element {name!r} is missing (one of {element.choices})",
                )

    def _check_required(
        self,
        elements: dict[str, EnumeratedElement],
        required: list[str],
        data: dict[str, Any],
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        for name in required:
            element = elements.get(name)
            if element is not None and element.choices is not None:
                continue
            if name not in data and f"_{name}" not in data:
                result.add_error(
                    ErrorType.REQUIRED_ELEMENT_MISSING,
                    [*path, name],
                    f"Required element {name!r} is missing",
                )

    def _check_excluded(
        self,
        elements: dict[str, EnumeratedElement],
        excluded: list[str],
        data: dict[str, Any],
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        for name in excluded:
            element = elements.get(name)
            if element is not None and element.choices is not None:
                names = [k for k in data if k in elements and elements[k].choice_of == name]
            else:
                names = [k for k in (name, f"_{name}") if k in data]
            for key in names:
                result.add_error(
                    ErrorType.EXCLUDED_ELEMENT_PRESENT,
                    [*path, key],
                    f"Element {key!r} is not allowed",
                )

    def _validate_element(
        self,
        element: EnumeratedElement,
        value: Any,
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        if not element.is_array:
            if isinstance(value, list):
                result.add_error(
                    ErrorType.TYPE_MISMATCH, path, "Expected a single value, got array"
                )
                return
            self._validate_value(element, value, path, result)
            return

        if not isinstance(value, list):
            result.add_error(
                ErrorType.TYPE_MISMATCH, path, f"Expected array, got {type(value).__name__}"
            )
            return

        count = len(value)
        if element.min is not None and count < element.min:
            result.add_error(
                ErrorType.CARDINALITY_ERROR,
                path,
                f"Expected at least {element.min} items, got {count}",
                min=element.min,
                count=count,
            )
        max_count = element.max_count
        if max_count is not None and count > max_count:
            result.add_error(
                ErrorType.CARDINALITY_ERROR,
                path,
                f"Expected at most {max_count} items, got {count}",
                max=element.max,
                count=count,
            )

        if element.slicing is not None:
            self._match_slices(element.slicing, value, path, result)

        primitive = self._is_primitive_element(element)
        for i, item in enumerate(value):
            if item is None and primitive:
                # Placeholder aligned with the `_name` companion array
                continue
            self._validate_value(element, item, [*path, i], result)

    def _validate_value(
        self,
        element: EnumeratedElement,
        value: Any,
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        """Validate one (non-array) value against an element definition."""
        if value is None:
            result.add_error(ErrorType.TYPE_MISMATCH, path, "Null is not a valid value")
            return

        if element.fixed is not None and not values_equal(value, element.fixed):
            result.add_error(
                ErrorType.FIXED_VALUE_MISMATCH,
                path,
                "Value does not equal the fixed value",
                expected=element.fixed,
            )
        if element.pattern is not None and not matches_pattern(value, element.pattern):
            result.add_error(
                ErrorType.PATTERN_MISMATCH,
                path,
                "Value does not match the pattern",
                expected=element.pattern,
            )

        shape = element_shape(element)
        if isinstance(shape, DynamicResource):
            self._validate_resource(shape, value, path, result)
            return

        primitive = None if element.elements else self._primitive_type(element.type)
        if primitive is not None:
            if isinstance(value, dict | list):
                result.add_error(
                    ErrorType.TYPE_MISMATCH,
                    path,
                    f"Expected {primitive}, got {type(value).__name__}",
                )
                return
            message = check_primitive(primitive, value, self.options.check_formats)
            if message:
                result.add_error(ErrorType.TYPE_MISMATCH, path, message, expected=primitive)
            return

        if not isinstance(value, dict):
            result.add_error(
                ErrorType.TYPE_MISMATCH,
                path,
                f"Expected object of type {element.type or 'BackboneElement'}, "
                f"got {type(value).__name__}",
            )
            return

        try:
            tree, error = self._child_tree(element, self._extension_profiles(element, value))
        except FHIRSchemaError as e:
            self._report_schema_error(e, path, result)
            return
        if error is not None:
            self._report_schema_error(error, path, result)
        self._validate_object(tree, value, path, result)

    def _validate_resource(
        self,
        shape: DynamicResource,
        value: Any,
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        if not isinstance(value, dict):
            result.add_error(
                ErrorType.TYPE_MISMATCH, path, f"Expected resource, got {type(value).__name__}"
            )
            return

        resource_type = value.get("resourceType")
        if isinstance(resource_type, str):
            name = resource_type
        elif shape.fallback is not None:
            name = shape.fallback
        else:
            result.add_error(ErrorType.TYPE_MISMATCH, path, "Resource without resourceType")
            return

        try:
            tree = self._enumerate([name])
        except FHIRSchemaError as e:
            self._report_schema_error(e, path, result)
            return
        self._validate_object(tree, value, path, result, resource=True)

    def _validate_companion(
        self,
        element: EnumeratedElement,
        value: Any,
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        """Validate the `_name` companion (id and extensions) of a primitive element."""
        companion = self._companions.setdefault(
            (element.array, element.scalar),
            EnumeratedElement(type="Element", array=element.array, scalar=element.scalar),
        )
        if not element.is_array:
            self._validate_companion_item(companion, value, path, result)
            return
        if not isinstance(value, list):
            result.add_error(
                ErrorType.TYPE_MISMATCH, path, f"Expected array, got {type(value).__name__}"
            )
            return
        for i, item in enumerate(value):
            if item is not None:
                self._validate_companion_item(companion, item, [*path, i], result)

    def _validate_companion_item(
        self,
        companion: EnumeratedElement,
        value: Any,
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        if not isinstance(value, dict):
            result.add_error(
                ErrorType.TYPE_MISMATCH, path, f"Expected object, got {type(value).__name__}"
            )
            return
        if self.ctx.resolve("Element") is None:
            return
        self._validate_value(companion, value, path, result)

    # --- slicing ---

    def _slice_matches(self, slice_def: SliceDefinition, item: Any) -> bool:
        if slice_def.url is not None:
            if not isinstance(item, dict) or item.get("url") != slice_def.url:
                return False
        if slice_def.match is not None:
            return matches_pattern(item, slice_def.match)
        return slice_def.url is not None

    def _match_slices(
        self,
        slicing: Slicing,
        items: list[Any],
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        """Assign entries to slices and check each slice's cardinality."""
        slices = slicing.slices
        counts = {name: 0 for name in slices}
        closed = self.options.closed_slices or slicing.closed

        for i, item in enumerate(items):
            matched = next(
                (
                    name
                    for name, slice_def in slices.items()
                    if self._slice_matches(slice_def, item)
                ),
                None,
            )
            if matched is not None:
                counts[matched] += 1
            elif closed:
                result.add_error(
                    ErrorType.UNMATCHED_SLICE,
                    [*path, i],
                    "Entry does not match any declared slice",
                    slices=list(slices),
                )

        self._check_slice_counts(slicing, counts, path, result)

    def _check_slice_counts(
        self,
        slicing: Slicing,
        counts: dict[str, int],
        path: list[PathItem],
        result: ValidationResult,
    ) -> None:
        for name, slice_def in slicing.slices.items():
            count = counts.get(name, 0)
            max_count = parse_max(slice_def.max)
            if slice_def.min is not None and count < slice_def.min:
                result.add_error(
                    ErrorType.SLICE_CARDINALITY_ERROR,
                    path,
                    f"Slice {name!r} requires at least {slice_def.min} entries, found {count}",
                    slice=name,
                    min=slice_def.min,
                    count=count,
                )
            if max_count is not None and count > max_count:
                result.add_error(
                    ErrorType.SLICE_CARDINALITY_ERROR,
                    path,
                    f"Slice {name!r} allows at most {max_count} entries, found {count}",
                    slice=name,
                    max=slice_def.max,
                    count=count,
                )


def validate(
    ctx: ValidationContext,
    schema_names: Sequence[str],
    data: Any,
    options: ValidationOptions | None = None,
) -> ValidationResult:
    """Validate a document against one or more schemas.

    Args:
        ctx: Context providing the schema resolver.
        schema_names: Schema names or URLs.
        data: Parsed JSON document.
        options: Validation options.

    Returns:
        ValidationResult; `errors` is empty when the document conforms.
    """
    return DocumentValidator(ctx, options).validate(schema_names, data)


def validate_element_value(
    ctx: ValidationContext,
    schema_names: Sequence[str],
    path: Sequence[str],
    value: Any,
    options: ValidationOptions | None = None,
) -> ValidationResult:
    """Validate a value against the element found at `path` of the given schemas."""
    return DocumentValidator(ctx, options).validate_element_value(schema_names, path, value)


def validate_batch(
    ctx: ValidationContext,
    schema_names: Sequence[str],
    documents: Iterable[Any],
    options: ValidationOptions | None = None,
) -> list[ValidationResult]:
    """Validate several documents, sharing enumerated trees between them.

    Args:
        ctx: Context providing the schema resolver.
        schema_names: Schema names (empty to use each document's resourceType).
        documents: Parsed JSON documents.
        options: Validation options.

    Returns:
        One ValidationResult per document.
    """
    validator = DocumentValidator(ctx, options)
    return [validator.validate(schema_names, document) for document in documents]


def get_validation_summary(results: list[ValidationResult]) -> dict[str, Any]:
    """Get summary statistics for validation results.

    Args:
        results: List of validation results.

    Returns:
        Summary dictionary.
    """
    total = len(results)
    valid = sum(1 for r in results if r.is_valid)
    invalid = total - valid
    total_errors = sum(r.error_count for r in results)

    error_types: dict[str, int] = {}
    for result in results:
        for error in result.errors:
            error_types[error.type.value] = error_types.get(error.type.value, 0) + 1

    return {
        "total_documents": total,
        "valid_documents": valid,
        "invalid_documents": invalid,
        "validation_rate": valid / total if total > 0 else 0,
        "total_errors": total_errors,
        "error_types": error_types,
    }
