"""Element enumeration and document validation."""

from fhirschema.validation.enumerator import enumerate_elements, enumerate_schema
from fhirschema.validation.validator import (
    DocumentValidator,
    ValidationError,
    ValidationOptions,
    ValidationResult,
    get_validation_summary,
    validate,
    validate_batch,
    validate_element_value,
)

__all__ = [
    "DocumentValidator",
    "ValidationError",
    "ValidationOptions",
    "ValidationResult",
    "enumerate_elements",
    "enumerate_schema",
    "get_validation_summary",
    "validate",
    "validate_batch",
    "validate_element_value",
]
