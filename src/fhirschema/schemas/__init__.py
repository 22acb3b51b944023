"""Schema resolvers: in-memory, directory and package backed."""

from fhirschema.schemas.loader import SchemaLoader
from fhirschema.schemas.package import (
    DELIMITER_MARKER,
    PackageRegistry,
    load_package_schemas,
    read_package_meta,
)
from fhirschema.schemas.resolver import (
    ChainResolver,
    InMemoryResolver,
    SchemaResolver,
    ValidationContext,
    create_context,
)

__all__ = [
    "DELIMITER_MARKER",
    "ChainResolver",
    "InMemoryResolver",
    "PackageRegistry",
    "SchemaLoader",
    "SchemaResolver",
    "ValidationContext",
    "create_context",
    "load_package_schemas",
    "read_package_meta",
]
