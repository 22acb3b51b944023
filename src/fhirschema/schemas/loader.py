"""Directory-backed schema loader (JSON and YAML FHIR Schema files)."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

SCHEMA_SUFFIXES = (".json", ".yaml", ".yml")


def _read_schema_file(path: Path) -> list[dict[str, Any]]:
    """Parse a schema file holding one schema or a list of schemas."""
    with open(path) as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if isinstance(data, Mapping):
        return [dict(data)]
    if isinstance(data, list) and all(isinstance(item, Mapping) for item in data):
        return [dict(item) for item in data]
    raise ValueError(f"Invalid schema file (expected a mapping or a list of mappings): {path}")


class SchemaLoader:
    """Loads FHIR Schema definitions from a directory and resolves them by name or URL.

    Every `.json`, `.yaml` and `.yml` file below the directory is read on
    first use. A file may contain a single schema or a list of schemas.
    The loader is itself a schema resolver:

        >>> loader = SchemaLoader("schemas")  # doctest: +SKIP
        >>> ctx = ValidationContext(schema_resolver=loader)  # doctest: +SKIP
    """

    def __init__(self, schema_dir: str | Path) -> None:
        """Initialize schema loader.

        Args:
            schema_dir: Root directory containing schema files.
        """
        self.schema_dir = Path(schema_dir)
        self._cache: dict[str, dict[str, Any]] | None = None

    def _index(self) -> dict[str, dict[str, Any]]:
        if self._cache is not None:
            return self._cache

        if not self.schema_dir.exists():
            raise FileNotFoundError(f"Schema directory not found: {self.schema_dir}")

        index: dict[str, dict[str, Any]] = {}
        for path in sorted(self.schema_dir.rglob("*")):
            if path.suffix not in SCHEMA_SUFFIXES or not path.is_file():
                continue
            for schema in _read_schema_file(path):
                if not schema.get("name") and not schema.get("url"):
                    raise ValueError(f"Schema without name or url in {path}")
                if schema.get("name"):
                    index[schema["name"]] = schema
                if schema.get("url"):
                    index[schema["url"]] = schema

        logger.debug("Indexed %d schema keys from %s", len(index), self.schema_dir)
        self._cache = index
        return index

    def load_schema(self, name: str) -> dict[str, Any]:
        """Load a schema by name or URL.

        Raises:
            FileNotFoundError: If no schema file defines the name.
        """
        schema = self.resolve(name)
        if schema is None:
            raise FileNotFoundError(f"FHIR schema not found: {name} in {self.schema_dir}")
        return schema

    def resolve(self, name: str) -> dict[str, Any] | None:
        """Return the schema for a name or URL, or None."""
        return self._index().get(name)

    def __call__(self, name: str) -> dict[str, Any] | None:
        return self.resolve(name)

    def list_schemas(self) -> list[str]:
        """List the names of all schemas in the directory.

        Returns:
            Sorted schema names (URL-only schemas are listed by URL).
        """
        names = {schema.get("name") or schema["url"] for schema in self._index().values()}
        return sorted(names)

    def clear_cache(self) -> None:
        """Clear the schema cache."""
        self._cache = None
