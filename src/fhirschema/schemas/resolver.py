"""Schema resolver capability and in-memory implementations."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

Schema = Mapping[str, Any]


@runtime_checkable
class SchemaResolver(Protocol):
    """Maps a schema name or URL to a schema definition, or None if unknown."""

    def __call__(self, name: str) -> Schema | None:
        ...


@dataclass
class ValidationContext:
    """Context passed to enumeration and validation.

    Only `schema_resolver` is read by the engine.
    """

    schema_resolver: SchemaResolver

    def resolve(self, name: str) -> Schema | None:
        """Resolve a schema name or URL."""
        return self.schema_resolver(name)


class InMemoryResolver:
    """Resolves schemas held in memory, indexed by both name and URL.

    Example:
        >>> resolver = InMemoryResolver([{"name": "Patient", "kind": "resource"}])
        >>> resolver("Patient")["kind"]
        'resource'
    """

    def __init__(self, schemas: Iterable[Schema] | Mapping[str, Schema] = ()) -> None:
        self._schemas: dict[str, Schema] = {}
        if isinstance(schemas, Mapping):
            for key, schema in schemas.items():
                self._schemas[key] = schema
                self.add(schema)
        else:
            for schema in schemas:
                self.add(schema)

    def add(self, schema: Schema) -> None:
        """Index a schema under its name and URL."""
        if schema.get("name"):
            self._schemas[schema["name"]] = schema
        if schema.get("url"):
            self._schemas[schema["url"]] = schema

    def __call__(self, name: str) -> Schema | None:
        return self._schemas.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def names(self) -> list[str]:
        """Return every key the resolver answers for."""
        return list(self._schemas)


class ChainResolver:
    """Asks several resolvers in order and returns the first schema found."""

    def __init__(self, resolvers: Iterable[SchemaResolver]) -> None:
        self.resolvers = list(resolvers)

    def __call__(self, name: str) -> Schema | None:
        for resolver in self.resolvers:
            schema = resolver(name)
            if schema is not None:
                return schema
        return None


def create_context(schemas: Iterable[Schema] | Mapping[str, Schema]) -> ValidationContext:
    """Create a context resolving the given schemas from memory."""
    return ValidationContext(schema_resolver=InMemoryResolver(schemas))
