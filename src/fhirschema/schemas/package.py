"""FHIR Schema packages stored in a local registry directory.

A package is a gzip-compressed NDJSON file. The first line holds the package
metadata (including its `dependencies`), followed by StructureDefinitions, a
delimiter line containing ``fhir-schema/delimiter`` and finally the FHIR
Schema entries. The registry directory mirrors the published registry layout:

    <registry>/<url-quoted coordinate>/package.ndjson.gz

e.g. ``registry/hl7.fhir.r4.core%234.0.1/package.ndjson.gz``.
"""

from __future__ import annotations

import gzip
import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any
from urllib.parse import quote

from fhirschema.schemas.resolver import InMemoryResolver, ValidationContext

logger = logging.getLogger(__name__)

PACKAGE_FILE_NAME = "package.ndjson.gz"
DELIMITER_MARKER = "fhir-schema/delimiter"


def iter_package_lines(path: str | Path) -> Iterator[str]:
    """Yield the non-empty lines of a package file."""
    with gzip.open(path, "rt", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                yield line


def read_package_meta(path: str | Path) -> dict[str, Any] | None:
    """Return the metadata object on the first line of a package file."""
    for line in iter_package_lines(path):
        meta = json.loads(line)
        return meta if isinstance(meta, dict) else None
    return None


def normalize_package_deps(deps: Iterable[str] | None) -> list[str]:
    """Strip the leading marker character from dependency coordinates."""
    if not deps:
        return []
    return [dep[1:] if dep and not dep[0].isalnum() else dep for dep in deps]


def _is_fhir_schema(entry: Any) -> bool:
    # StructureDefinitions carry `differential` instead of an `elements` mapping
    if not isinstance(entry, dict):
        return False
    return isinstance(entry.get("elements"), dict) or entry.get("kind") == "primitive-type"


def load_package_schemas(path: str | Path) -> dict[str, dict[str, Any]]:
    """Load the FHIR Schema entries of a package file.

    Args:
        path: Path to a ``package.ndjson.gz`` file.

    Returns:
        Mapping of schema name and URL to schema.
    """
    schemas: dict[str, dict[str, Any]] = {}
    past_delimiter = False

    for line in iter_package_lines(path):
        if DELIMITER_MARKER in line:
            past_delimiter = True
            continue
        if not past_delimiter:
            continue

        schema = json.loads(line)
        if not _is_fhir_schema(schema):
            continue
        if schema.get("name"):
            schemas[schema["name"]] = schema
        if schema.get("url"):
            schemas[schema["url"]] = schema

    return schemas


class PackageRegistry:
    """Local registry of FHIR Schema packages."""

    def __init__(self, registry_dir: str | Path) -> None:
        """Initialize package registry.

        Args:
            registry_dir: Directory holding one sub-directory per package coordinate.
        """
        self.registry_dir = Path(registry_dir)

    def package_path(self, coordinate: str) -> Path:
        """Return the package file path for a coordinate (e.g. 'hl7.fhir.r4.core#4.0.1')."""
        return self.registry_dir / quote(coordinate, safe="") / PACKAGE_FILE_NAME

    def get_package_meta(self, coordinate: str) -> dict[str, Any] | None:
        path = self.package_path(coordinate)
        if not path.exists():
            return None
        return read_package_meta(path)

    def get_package_deps(self, coordinate: str) -> list[str]:
        """Return the direct dependencies of a package."""
        meta = self.get_package_meta(coordinate)
        if not meta:
            return []
        return normalize_package_deps(meta.get("dependencies"))

    def resolve_deps(self, coordinates: Iterable[str]) -> list[str]:
        """Resolve the transitive dependency tree of the given packages.

        Returns:
            The requested coordinates followed by their dependencies,
            level by level, each listed once.
        """
        visited: list[str] = []
        enqueued = list(dict.fromkeys(coordinates))

        while enqueued:
            visited.extend(enqueued)
            children: list[str] = []
            for coordinate in enqueued:
                for dep in self.get_package_deps(coordinate):
                    if dep not in visited and dep not in children:
                        children.append(dep)
            enqueued = children

        return visited

    def load_package(self, coordinate: str) -> dict[str, dict[str, Any]]:
        """Load the schemas of one package; a missing package yields no schemas."""
        path = self.package_path(coordinate)
        if not path.exists():
            logger.warning("Package not found in registry: %s", coordinate)
            return {}
        schemas = load_package_schemas(path)
        logger.debug("Loaded %d schema keys from %s", len(schemas), coordinate)
        return schemas

    def load_schemas(self, coordinates: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Load the schemas of packages and all their dependencies.

        Requested packages take precedence over the packages they depend on:
        packages are applied dependencies first, so a profile package can
        redefine a core schema. This is the reverse of the published
        fhirschema registry client, which applies packages in resolution
        order and lets dependencies win when two packages define the same
        schema name or URL.
        """
        all_schemas: dict[str, dict[str, Any]] = {}
        for coordinate in reversed(self.resolve_deps(coordinates)):
            all_schemas.update(self.load_package(coordinate))
        return all_schemas

    def create_context(self, coordinates: Iterable[str]) -> ValidationContext:
        """Create a validation context from packages and their dependencies."""
        return ValidationContext(schema_resolver=InMemoryResolver(self.load_schemas(coordinates)))
