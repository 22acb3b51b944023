"""Core module for fhirschema."""

from fhirschema.core.exceptions import (
    CyclicBaseError,
    FHIRSchemaError,
    InvalidSchemaError,
    SchemaNotFoundError,
)
from fhirschema.core.types import (
    Binding,
    ChoiceGroup,
    ChoiceMember,
    Constraint,
    DynamicResource,
    ElementShape,
    EnumeratedElement,
    EnumeratedSchema,
    ErrorType,
    SchemaKind,
    SliceDefinition,
    Slicing,
    TypedElement,
    element_shape,
)

__all__ = [
    "Binding",
    "ChoiceGroup",
    "ChoiceMember",
    "Constraint",
    "CyclicBaseError",
    "DynamicResource",
    "ElementShape",
    "EnumeratedElement",
    "EnumeratedSchema",
    "ErrorType",
    "FHIRSchemaError",
    "InvalidSchemaError",
    "SchemaKind",
    "SchemaNotFoundError",
    "SliceDefinition",
    "Slicing",
    "TypedElement",
    "element_shape",
]
