"""fhirschema - structural validation of FHIR data against FHIR Schemas."""

from fhirschema.core.exceptions import (
    CyclicBaseError,
    FHIRSchemaError,
    InvalidSchemaError,
    SchemaNotFoundError,
)
from fhirschema.core.types import EnumeratedElement, EnumeratedSchema, ErrorType
from fhirschema.schemas.resolver import InMemoryResolver, ValidationContext, create_context
from fhirschema.validation import (
    ValidationError,
    ValidationOptions,
    ValidationResult,
    enumerate_elements,
    enumerate_schema,
    validate,
    validate_element_value,
)

__version__ = "0.1.0"

__all__ = [
    "CyclicBaseError",
    "EnumeratedElement",
    "EnumeratedSchema",
    "ErrorType",
    "FHIRSchemaError",
    "InvalidSchemaError",
    "InMemoryResolver",
    "SchemaNotFoundError",
    "ValidationContext",
    "ValidationError",
    "ValidationOptions",
    "ValidationResult",
    "create_context",
    "enumerate_elements",
    "enumerate_schema",
    "validate",
    "validate_element_value",
]
