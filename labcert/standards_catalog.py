from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .schema import (
    CertificateTemplate,
    SchemaContractError,
    Standard,
    standard_from_payload,
    template_from_payload,
)
from .settings import DEFAULT_CATALOG_DIR

logger = logging.getLogger(__name__)

REQUIRED_JSON_FILES = (
    "standards.json",
    "certificate_templates.json",
)

SCHEMA_MAP = {
    "standards.json": "standards.schema.json",
    "certificate_templates.json": "certificate_templates.schema.json",
}


class StandardsCatalogValidationError(RuntimeError):
    pass


@dataclass(frozen=True)
class StandardsCatalog:
    catalog_dir: Path
    version: str
    standards: tuple[Standard, ...]
    templates: tuple[CertificateTemplate, ...]

    def get_standard(self, standard_id: str) -> Standard | None:
        for standard in self.standards:
            if standard.id == standard_id:
                return standard
        return None

    def find_by_code(self, code: str) -> Standard | None:
        for standard in self.standards:
            if standard.code == code:
                return standard
        return None

    def get_template(self, template_id: str) -> CertificateTemplate | None:
        for template in self.templates:
            if template.id == template_id:
                return template
        return None

    @property
    def default_template(self) -> CertificateTemplate:
        for template in self.templates:
            if template.is_default:
                return template
        return self.templates[0]

    def standards_for_category(self, category: str) -> list[Standard]:
        return [item for item in self.standards if category in item.compatible_sample_categories]


def _read_json(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StandardsCatalogValidationError(f"Invalid JSON in '{path}': {exc}") from exc
    if not isinstance(payload, dict):
        raise StandardsCatalogValidationError(f"Expected object JSON in '{path}', got {type(payload).__name__}")
    return payload


def _validate_schema(payload: dict[str, Any], schema_path: Path, data_filename: str) -> None:
    try:
        import jsonschema
    except ModuleNotFoundError as exc:
        raise StandardsCatalogValidationError(
            "Schema validation dependency missing. Install 'jsonschema' to validate the standards catalog."
        ) from exc

    schema = _read_json(schema_path)
    try:
        jsonschema.validate(payload, schema)
    except jsonschema.ValidationError as exc:
        raise StandardsCatalogValidationError(
            f"Schema validation failed for '{data_filename}' with '{schema_path.name}': {exc.message}"
        ) from exc


def _duplicates(values: list[str]) -> list[str]:
    return sorted(value for value, count in Counter(values).items() if count > 1)


def _validate_standard_fields(standard: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    standard_id = standard.get("id")
    fields = standard.get("fields", [])

    for field_id in _duplicates([str(item.get("id")) for item in fields]):
        errors.append(f"standards.json: standard '{standard_id}' repeats field id '{field_id}'.")

    for item in fields:
        field_id = item.get("id")
        value_type = item.get("valueType")
        low = item.get("minLimit")
        high = item.get("maxLimit")
        if value_type != "number" and (low is not None or high is not None):
            errors.append(
                f"standards.json: field '{standard_id}.{field_id}' declares limits but is '{value_type}', not 'number'."
            )
        if low is not None and high is not None and low > high:
            errors.append(
                f"standards.json: field '{standard_id}.{field_id}' has minLimit {low} greater than maxLimit {high}."
            )
        if value_type == "select" and not item.get("options"):
            errors.append(f"standards.json: select field '{standard_id}.{field_id}' has no options.")
    return errors


def _validate_cross_file_integrity(payloads: dict[str, dict[str, Any]]) -> list[str]:
    errors: list[str] = []
    standards = payloads["standards.json"]["standards"]
    templates = payloads["certificate_templates.json"]["templates"]

    for standard_id in _duplicates([str(item.get("id")) for item in standards]):
        errors.append(f"standards.json: duplicate standard id '{standard_id}'.")
    for code in _duplicates([str(item.get("code")) for item in standards]):
        errors.append(f"standards.json: duplicate standard code '{code}'.")
    for standard in standards:
        errors.extend(_validate_standard_fields(standard))

    for template_id in _duplicates([str(item.get("id")) for item in templates]):
        errors.append(f"certificate_templates.json: duplicate template id '{template_id}'.")
    default_count = sum(1 for item in templates if item.get("isDefault"))
    if default_count != 1:
        errors.append(
            f"certificate_templates.json: exactly one template must be default, found {default_count}."
        )
    return errors


def load_standards_catalog(catalog_dir: Path | None = None) -> StandardsCatalog:
    catalog_dir = catalog_dir or DEFAULT_CATALOG_DIR

    if not catalog_dir.exists():
        raise StandardsCatalogValidationError(f"Standards catalog directory not found: '{catalog_dir}'")
    if not catalog_dir.is_dir():
        raise StandardsCatalogValidationError(f"Standards catalog path is not a directory: '{catalog_dir}'")

    payloads: dict[str, dict[str, Any]] = {}
    for filename in REQUIRED_JSON_FILES:
        path = catalog_dir / filename
        if not path.exists():
            raise StandardsCatalogValidationError(f"Required catalog file is missing: '{path}'")
        payloads[filename] = _read_json(path)

    schema_dir = catalog_dir / "schemas"
    if not schema_dir.exists() or not schema_dir.is_dir():
        raise StandardsCatalogValidationError(f"Schema directory is missing: '{schema_dir}'")

    for data_filename, schema_filename in SCHEMA_MAP.items():
        schema_path = schema_dir / schema_filename
        if not schema_path.exists():
            raise StandardsCatalogValidationError(
                f"Required schema file for '{data_filename}' is missing: '{schema_path}'"
            )
        _validate_schema(payloads[data_filename], schema_path, data_filename)

    cross_errors = _validate_cross_file_integrity(payloads)
    if cross_errors:
        joined = "\n- ".join(cross_errors)
        raise StandardsCatalogValidationError(f"Standards catalog cross-validation failed:\n- {joined}")

    try:
        standards = tuple(standard_from_payload(item) for item in payloads["standards.json"]["standards"])
        templates = tuple(
            template_from_payload(item) for item in payloads["certificate_templates.json"]["templates"]
        )
    except SchemaContractError as exc:
        raise StandardsCatalogValidationError(f"Standards catalog could not be decoded: {exc}") from exc

    logger.info(
        "Loaded standards catalog from %s (%s standards, %s templates)",
        catalog_dir,
        len(standards),
        len(templates),
    )
    return StandardsCatalog(
        catalog_dir=catalog_dir,
        version=str(payloads["standards.json"].get("version", "")),
        standards=standards,
        templates=templates,
    )
