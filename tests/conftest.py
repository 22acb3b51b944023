"""Pytest configuration and fixtures."""

import copy
import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from fhirschema.schemas import ValidationContext, create_context

RACE_URL = "http://example.org/fhir/StructureDefinition/race"
BIRTHSEX_URL = "http://example.org/fhir/StructureDefinition/birthsex"
MRN_SYSTEM = "http://hospital.example.org/mrn"
US_CORE_PATIENT_URL = "http://example.org/fhir/StructureDefinition/us-core-patient"

SCHEMAS: list[dict[str, Any]] = [
    {
        "name": "string",
        "url": "http://hl7.org/fhir/StructureDefinition/string",
        "kind": "primitive-type",
    },
    {
        "name": "Element",
        "url": "http://hl7.org/fhir/StructureDefinition/Element",
        "kind": "complex-type",
        "elements": {
            "id": {"type": "http://hl7.org/fhirpath/System.String", "scalar": True},
            "extension": {"type": "Extension", "array": True},
        },
    },
    {
        "name": "BackboneElement",
        "url": "http://hl7.org/fhir/StructureDefinition/BackboneElement",
        "base": "Element",
        "kind": "complex-type",
        "elements": {"modifierExtension": {"type": "Extension", "array": True}},
    },
    {
        "name": "Extension",
        "url": "http://hl7.org/fhir/StructureDefinition/Extension",
        "base": "Element",
        "kind": "complex-type",
        "required": ["url"],
        "elements": {
            "url": {"type": "uri", "scalar": True},
            "value": {"choices": ["valueString", "valueCode", "valueBoolean"]},
            "valueString": {"type": "string", "choiceOf": "value"},
            "valueCode": {"type": "code", "choiceOf": "value"},
            "valueBoolean": {"type": "boolean", "choiceOf": "value"},
        },
    },
    {
        "name": "HumanName",
        "base": "Element",
        "kind": "complex-type",
        "elements": {
            "use": {"type": "code"},
            "family": {"type": "string"},
            "given": {"type": "string", "array": True},
        },
    },
    {
        "name": "Identifier",
        "base": "Element",
        "kind": "complex-type",
        "elements": {
            "system": {"type": "uri"},
            "value": {"type": "string"},
        },
    },
    {
        "name": "Coding",
        "base": "Element",
        "kind": "complex-type",
        "elements": {
            "system": {"type": "uri"},
            "code": {"type": "code"},
            "display": {"type": "string"},
        },
    },
    {
        "name": "CodeableConcept",
        "base": "Element",
        "kind": "complex-type",
        "elements": {
            "coding": {"type": "Coding", "array": True},
            "text": {"type": "string"},
        },
    },
    {
        "name": "Resource",
        "url": "http://hl7.org/fhir/StructureDefinition/Resource",
        "kind": "resource",
        "elements": {
            "id": {"type": "id"},
            "implicitRules": {"type": "uri"},
        },
    },
    {
        "name": "DomainResource",
        "url": "http://hl7.org/fhir/StructureDefinition/DomainResource",
        "base": "Resource",
        "kind": "resource",
        "elements": {
            "contained": {"type": "Resource", "array": True},
            "extension": {"type": "Extension", "array": True},
            "modifierExtension": {"type": "Extension", "array": True},
        },
    },
    {
        "name": "Patient",
        "url": "http://hl7.org/fhir/StructureDefinition/Patient",
        "base": "DomainResource",
        "kind": "resource",
        "constraints": {
            "pat-1": {
                "expression": "contact.name.exists() or contact.organization.exists()",
                "severity": "error",
                "human": "SHALL at least contain a contact's details",
            }
        },
        "elements": {
            "identifier": {"type": "Identifier", "array": True},
            "active": {"type": "boolean", "modifier": True},
            "name": {"type": "HumanName", "array": True, "summary": True},
            "gender": {
                "type": "code",
                "binding": {
                    "valueSet": "http://hl7.org/fhir/ValueSet/administrative-gender",
                    "strength": "required",
                },
            },
            "birthDate": {"type": "date"},
            "deceased": {"choices": ["deceasedBoolean", "deceasedDateTime"]},
            "deceasedBoolean": {"type": "boolean", "choiceOf": "deceased"},
            "deceasedDateTime": {"type": "dateTime", "choiceOf": "deceased"},
            "maritalStatus": {"type": "CodeableConcept"},
            "contact": {
                "type": "BackboneElement",
                "array": True,
                "elements": {
                    "relationship": {"type": "CodeableConcept", "array": True},
                    "name": {"type": "HumanName"},
                    "gender": {"type": "code"},
                },
            },
        },
    },
    {
        "name": "Bundle",
        "url": "http://hl7.org/fhir/StructureDefinition/Bundle",
        "base": "Resource",
        "kind": "resource",
        "required": ["type"],
        "elements": {
            "type": {"type": "code"},
            "entry": {
                "type": "BackboneElement",
                "array": True,
                "elements": {
                    "fullUrl": {"type": "uri"},
                    "resource": {"type": "Resource"},
                },
            },
        },
    },
    {
        "name": "us-core-patient",
        "url": US_CORE_PATIENT_URL,
        "base": "Patient",
        "type": "Patient",
        "kind": "resource",
        "required": ["name", "gender"],
        "excluded": ["maritalStatus"],
        "elements": {
            "name": {"min": 1, "mustSupport": True},
            "gender": {"mustSupport": True},
            "identifier": {
                "slicing": {
                    "rules": "closed",
                    "slices": {
                        "mrn": {"match": {"system": MRN_SYSTEM}, "min": 1, "max": 1},
                    },
                }
            },
        },
        "extensions": {
            "race": {"url": RACE_URL, "min": 0, "max": 1},
            "birthsex": {"url": BIRTHSEX_URL, "min": 1, "max": 1},
        },
    },
    {
        "name": "birthsex",
        "url": BIRTHSEX_URL,
        "base": "Extension",
        "type": "Extension",
        "kind": "complex-type",
        "required": ["valueCode"],
        "excluded": ["valueBoolean"],
        "elements": {"valueCode": {"type": "code"}},
    },
    {"name": "CycleA", "base": "CycleB", "kind": "complex-type"},
    {"name": "CycleB", "base": "CycleA", "kind": "complex-type"},
    {"name": "Orphan", "base": "Missing", "kind": "complex-type", "elements": {}},
]


@pytest.fixture
def schemas() -> list[dict[str, Any]]:
    """Return a fresh copy of the test schema set."""
    return copy.deepcopy(SCHEMAS)


@pytest.fixture
def ctx(schemas: list[dict[str, Any]]) -> ValidationContext:
    """Context resolving the test schema set from memory."""
    return create_context(schemas)


@pytest.fixture
def patient() -> dict[str, Any]:
    """A Patient document conforming to the Patient schema."""
    return {
        "resourceType": "Patient",
        "id": "example",
        "active": True,
        "name": [{"use": "official", "family": "Doe", "given": ["John", "Q"]}],
        "gender": "male",
        "birthDate": "1980-01-01",
        "deceasedBoolean": False,
        "contact": [{"name": {"family": "Doe", "given": ["Jane"]}, "gender": "female"}],
    }


@pytest.fixture
def us_core_patient(patient: dict[str, Any]) -> dict[str, Any]:
    """A Patient document conforming to the us-core-patient profile."""
    data = copy.deepcopy(patient)
    data["identifier"] = [{"system": MRN_SYSTEM, "value": "MRN001"}]
    data["extension"] = [
        {"url": BIRTHSEX_URL, "valueCode": "M"},
        {"url": RACE_URL, "valueString": "unknown"},
    ]
    return data


@pytest.fixture
def schema_dir(tmp_path: Path, schemas: list[dict[str, Any]]) -> Path:
    """Directory holding the test schemas, split across JSON and YAML files."""
    directory = tmp_path / "schemas"
    (directory / "core").mkdir(parents=True)
    (directory / "profiles").mkdir()

    core = [s for s in schemas if s.get("name") not in ("us-core-patient", "birthsex")]
    (directory / "core" / "core.json").write_text(json.dumps(core))
    for schema in schemas:
        if schema.get("name") in ("us-core-patient", "birthsex"):
            path = directory / "profiles" / f"{schema['name']}.yaml"
            path.write_text(yaml.safe_dump(schema, sort_keys=False))
    return directory
