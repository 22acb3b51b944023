"""Exceptions raised by schema enumeration."""

from __future__ import annotations

from fhirschema.core.types import ErrorType


class FHIRSchemaError(Exception):
    """Base class for errors that prevent building an element tree."""

    error_type: ErrorType

    def __init__(self, message: str, schema_name: str) -> None:
        super().__init__(message)
        self.schema_name = schema_name

    def details(self) -> dict[str, object]:
        """Return the detail fields reported alongside a validation error."""
        return {"schema": self.schema_name}


class SchemaNotFoundError(FHIRSchemaError, LookupError):
    """A requested or referenced schema could not be resolved."""

    error_type = ErrorType.SCHEMA_NOT_FOUND

    def __init__(self, schema_name: str) -> None:
        super().__init__(f"Schema not found: {schema_name}", schema_name)


class CyclicBaseError(FHIRSchemaError, ValueError):
    """A schema's base chain revisits one of its own ancestors."""

    error_type = ErrorType.CYCLIC_BASE

    def __init__(self, schema_name: str, chain: list[str]) -> None:
        super().__init__(
            f"Cyclic base chain for {schema_name}: {' -> '.join(chain)}", schema_name
        )
        self.chain = chain

    def details(self) -> dict[str, object]:
        return {"schema": self.schema_name, "chain": list(self.chain)}


class InvalidSchemaError(FHIRSchemaError, ValueError):
    """A schema carries a value enumeration cannot interpret."""

    error_type = ErrorType.INVALID_SCHEMA

    def __init__(self, schema_name: str, reason: str) -> None:
        super().__init__(f"Invalid schema {schema_name}: {reason}", schema_name)
        self.reason = reason

    def details(self) -> dict[str, object]:
        return {"schema": self.schema_name, "reason": self.reason}
