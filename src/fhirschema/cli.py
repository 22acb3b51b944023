"""Command-line interface for fhirschema."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import yaml

from fhirschema.core.exceptions import FHIRSchemaError
from fhirschema.schemas.loader import SchemaLoader
from fhirschema.schemas.package import PackageRegistry
from fhirschema.schemas.resolver import (
    ChainResolver,
    InMemoryResolver,
    SchemaResolver,
    ValidationContext,
)
from fhirschema.validation import (
    ValidationOptions,
    ValidationResult,
    enumerate_schema,
    get_validation_summary,
    validate_batch,
    validate_element_value,
)


def build_context(
    schema_dir: Path | None, package_dir: Path | None, packages: tuple[str, ...]
) -> ValidationContext:
    """Build a validation context from a schema directory and registry packages.

    Schemas in the directory take precedence over package schemas.
    """
    resolvers: list[SchemaResolver] = []
    if schema_dir is not None:
        resolvers.append(SchemaLoader(schema_dir))
    if packages:
        if package_dir is None:
            raise click.ClickException("--package requires --package-dir")
        registry = PackageRegistry(package_dir)
        resolvers.append(InMemoryResolver(registry.load_schemas(packages)))
    if not resolvers:
        raise click.ClickException("No schema source: use --schema-dir or --package")
    return ValidationContext(schema_resolver=ChainResolver(resolvers))


def load_documents(input_file: Path) -> list[Any]:
    """Load documents from a JSON file (object or array) or an NDJSON file."""
    text = input_file.read_text()
    if input_file.suffix == ".ndjson":
        return [json.loads(line) for line in text.splitlines() if line.strip()]
    data = json.loads(text)
    return data if isinstance(data, list) else [data]


def _format_result(label: str, result: ValidationResult) -> list[str]:
    if result.is_valid:
        return [f"{label}: OK"]
    lines = [f"{label}: {result.error_count} error(s)"]
    for error in result.errors:
        location = error.path_str or "<root>"
        lines.append(f"  [{error.type.value}] {location}: {error.message}")
    return lines


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--schema-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    envvar="FHIRSCHEMA_SCHEMA_DIR",
    default=None,
    help="Directory of FHIR Schema JSON/YAML files",
)
@click.option(
    "--package-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    envvar="FHIRSCHEMA_PACKAGE_DIR",
    default=None,
    help="Local FHIR Schema package registry",
)
@click.option(
    "--package",
    "packages",
    multiple=True,
    help="Package coordinate to load, e.g. hl7.fhir.r4.core#4.0.1 (repeatable)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    schema_dir: Path | None,
    package_dir: Path | None,
    packages: tuple[str, ...],
    verbose: bool,
) -> None:
    """fhirschema - Validate FHIR data against FHIR Schemas."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["schema_dir"] = schema_dir
    ctx.obj["package_dir"] = package_dir
    ctx.obj["packages"] = packages


def _context(ctx: click.Context) -> ValidationContext:
    return build_context(ctx.obj["schema_dir"], ctx.obj["package_dir"], ctx.obj["packages"])


@cli.command()
@click.argument(
    "input_files", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path)
)
@click.option(
    "--schema",
    "-s",
    "schemas",
    multiple=True,
    help="Schema name or URL (repeatable; default: each document's resourceType)",
)
@click.option("--closed-slices", is_flag=True, help="Report entries matching no declared slice")
@click.option("--no-format-checks", is_flag=True, help="Skip lexical checks of primitive values")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text)",
)
@click.pass_context
def validate(
    ctx: click.Context,
    input_files: tuple[Path, ...],
    schemas: tuple[str, ...],
    closed_slices: bool,
    no_format_checks: bool,
    output_format: str,
) -> None:
    """Validate documents against FHIR Schemas.

    Examples:

        fhirschema --schema-dir schemas validate patient.json

        fhirschema --schema-dir schemas validate -s us-core-patient patients.ndjson
    """
    context = _context(ctx)
    options = ValidationOptions(closed_slices=closed_slices, check_formats=not no_format_checks)

    labelled: list[tuple[str, ValidationResult]] = []
    for input_file in input_files:
        try:
            documents = load_documents(input_file)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Invalid JSON in {input_file}: {e}") from e
        try:
            results = validate_batch(context, list(schemas), documents, options)
        except (FileNotFoundError, ValueError) as e:
            raise click.ClickException(str(e)) from e
        for i, result in enumerate(results):
            label = str(input_file) if len(results) == 1 else f"{input_file}[{i}]"
            labelled.append((label, result))

    all_results = [result for _, result in labelled]
    summary = get_validation_summary(all_results)

    if output_format == "json":
        output = {
            "results": [{"document": label, **result.to_dict()} for label, result in labelled],
            "summary": summary,
        }
        click.echo(json.dumps(output, indent=2, default=str))
    else:
        for label, result in labelled:
            for line in _format_result(label, result):
                click.echo(line)
        click.echo(
            f"{summary['valid_documents']}/{summary['total_documents']} document(s) valid"
        )

    if summary["invalid_documents"]:
        sys.exit(1)


@cli.command()
@click.option("--schema", "-s", "schemas", multiple=True, required=True, help="Schema name or URL")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "yaml"]),
    default="json",
    help="Output format (default: json)",
)
@click.pass_context
def elements(ctx: click.Context, schemas: tuple[str, ...], output_format: str) -> None:
    """Print the enumerated elements of one or more schemas.

    Example:

        fhirschema --schema-dir schemas elements -s Patient
    """
    context = _context(ctx)
    try:
        schema = enumerate_schema(context, list(schemas))
    except FHIRSchemaError as e:
        raise click.ClickException(str(e)) from e

    tree = {name: element.to_dict() for name, element in schema.elements.items()}
    if output_format == "yaml":
        click.echo(yaml.safe_dump(tree, sort_keys=False))
    else:
        click.echo(json.dumps(tree, indent=2))


@cli.command("check-value")
@click.argument("path")
@click.argument("value")
@click.option("--schema", "-s", "schemas", multiple=True, required=True, help="Schema name or URL")
@click.pass_context
def check_value(ctx: click.Context, path: str, value: str, schemas: tuple[str, ...]) -> None:
    """Validate a single JSON VALUE against the element at a dotted PATH.

    Example:

        fhirschema --schema-dir schemas check-value -s Patient birthDate '"1980-01-01"'
    """
    context = _context(ctx)
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"VALUE must be JSON: {e}") from e

    result = validate_element_value(context, list(schemas), path.split("."), parsed)
    for line in _format_result(path, result):
        click.echo(line)
    if not result.is_valid:
        sys.exit(1)


@cli.command("list-schemas")
@click.pass_context
def list_schemas(ctx: click.Context) -> None:
    """List schemas available in the schema directory."""
    schema_dir = ctx.obj["schema_dir"]
    if schema_dir is None:
        raise click.ClickException("--schema-dir is required")

    loader = SchemaLoader(schema_dir)
    try:
        names = loader.list_schemas()
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Available schemas in {schema_dir}:")
    click.echo()
    for name in names:
        click.echo(f"  - {name}")


def main() -> None:
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
