from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)


class SchemaContractError(RuntimeError):
    pass


class ValueType(str, Enum):
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"
    TEXT = "text"


class FieldScope(str, Enum):
    GLOBAL = "global"
    SPECIMEN = "specimen"


class SampleStatus(str, Enum):
    PENDING = "pending"
    IN_PROCESS = "in_process"
    APPROVED = "approved"
    REJECTED = "rejected"


STATUS_ALIASES = {
    "pending": SampleStatus.PENDING,
    "pendiente": SampleStatus.PENDING,
    "in_process": SampleStatus.IN_PROCESS,
    "en_proceso": SampleStatus.IN_PROCESS,
    "approved": SampleStatus.APPROVED,
    "aprobado": SampleStatus.APPROVED,
    "rejected": SampleStatus.REJECTED,
    "rechazado": SampleStatus.REJECTED,
}

DRAFT_STATUSES = frozenset({SampleStatus.PENDING, SampleStatus.IN_PROCESS})


@dataclass(frozen=True)
class FieldSchema:
    id: str
    name: str
    value_type: ValueType
    scope: FieldScope | None = None
    unit: str | None = None
    min_limit: float | None = None
    max_limit: float | None = None
    required: bool = False
    options: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "valueType": self.value_type.value,
            "required": self.required,
        }
        if self.scope is not None:
            payload["scope"] = self.scope.value
        if self.unit:
            payload["unit"] = self.unit
        if self.min_limit is not None:
            payload["minLimit"] = self.min_limit
        if self.max_limit is not None:
            payload["maxLimit"] = self.max_limit
        if self.options:
            payload["options"] = list(self.options)
        return payload


@dataclass(frozen=True)
class Standard:
    """A test method ("Norma") and the ordered schema of fields it measures."""

    code: str
    fields: tuple[FieldSchema, ...]
    compatible_sample_categories: frozenset[str] = frozenset()
    id: str | None = None
    name: str = ""
    family: str | None = None
    description: str = ""

    def field_by_id(self, field_id: str) -> FieldSchema | None:
        for item in self.fields:
            if item.id == field_id:
                return item
        return None

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "family": self.family,
            "field_count": len(self.fields),
            "compatibleSampleCategories": sorted(self.compatible_sample_categories),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "family": self.family,
            "description": self.description,
            "fields": [item.to_dict() for item in self.fields],
            "compatibleSampleCategories": sorted(self.compatible_sample_categories),
        }


@dataclass(frozen=True)
class Sample:
    """Snapshot of a sample ("Muestra") as handed over by the data store.

    ``results`` is the flat result bag exactly as stored; ``status`` keeps the
    stored spelling because it is part of the certificate signature.
    """

    id: str
    code: str
    results: Mapping[str, Any] = field(default_factory=dict)
    received_at: str | None = None
    tested_at: str | None = None
    status: str = SampleStatus.PENDING.value
    photographic_evidence: tuple[str, ...] = ()
    project_id: str | None = None
    material_type: str | None = None
    location: str | None = None
    provider: str | None = None

    @property
    def status_kind(self) -> SampleStatus | None:
        return STATUS_ALIASES.get(str(self.status or "").strip().lower())

    @property
    def is_draft(self) -> bool:
        return self.status_kind in DRAFT_STATUSES


@dataclass(frozen=True)
class Project:
    id: str | None = None
    name: str = ""
    client: str = ""
    address: str = ""


@dataclass(frozen=True)
class CompanyIdentity:
    name: str
    address: str = ""
    city: str = ""
    phone: str = ""
    email: str = ""
    logo_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "phone": self.phone,
            "email": self.email,
            "logo_url": self.logo_url,
        }


@dataclass(frozen=True)
class CertificateTemplate:
    id: str = "default"
    name: str = "Default"
    layout: str = "classic"
    primary_color: str = "#000000"
    show_watermark: bool = True
    show_qr: bool = True
    show_border: bool = True
    is_default: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "layout": self.layout,
            "primaryColor": self.primary_color,
            "showWatermark": self.show_watermark,
            "showQr": self.show_qr,
            "showBorder": self.show_border,
            "isDefault": self.is_default,
        }


TEMPLATE_LAYOUTS = ("classic", "modern", "minimal", "bold")


def to_number(value: Any) -> float | None:
    """Finite float for numbers and numeric strings; ``None`` for anything else.

    Booleans are not numbers here even though ``bool`` subclasses ``int``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def format_scalar(value: Any) -> str:
    """Render a stored scalar the way the certificate prints it (``10.0`` -> ``10``)."""
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def _pick(payload: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def _as_stored_str(value: Any) -> str | None:
    """Text exactly as stored (no stripping); only an empty value is absent.

    Used for the inputs of the certificate signature.
    """
    if value is None:
        return None
    text = str(value)
    return text or None


def _clean_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _require_mapping(payload: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise SchemaContractError(f"{what} payload must be an object, got {type(payload).__name__}.")
    return payload


def _parse_value_type(raw: Any, field_id: str) -> ValueType:
    try:
        return ValueType(str(raw).strip().lower())
    except ValueError:
        logger.warning("Field %s has unknown value type %r; treating it as text", field_id, raw)
        return ValueType.TEXT


def _parse_scope(raw: Any) -> FieldScope | None:
    if raw is None:
        return None
    try:
        return FieldScope(str(raw).strip().lower())
    except ValueError:
        return None


def field_from_payload(payload: Any) -> FieldSchema:
    data = _require_mapping(payload, "Field")
    field_id = _clean_optional_str(_pick(data, "id"))
    if not field_id:
        raise SchemaContractError("Field payload is missing 'id'.")
    options = _pick(data, "options", "opciones", default=[])
    return FieldSchema(
        id=field_id,
        name=str(_pick(data, "name", "nombre", default=field_id)),
        value_type=_parse_value_type(_pick(data, "valueType", "value_type", "tipo", "type", default="text"), field_id),
        scope=_parse_scope(_pick(data, "scope")),
        unit=_clean_optional_str(_pick(data, "unit", "unidad")),
        min_limit=to_number(_pick(data, "minLimit", "min_limit", "limiteMin")),
        max_limit=to_number(_pick(data, "maxLimit", "max_limit", "limiteMax")),
        required=bool(_pick(data, "required", "esRequerido", default=False)),
        options=tuple(str(item) for item in options) if isinstance(options, (list, tuple)) else (),
    )


def standard_from_payload(payload: Any) -> Standard:
    data = _require_mapping(payload, "Standard")
    code = _clean_optional_str(_pick(data, "code", "codigo"))
    if not code:
        raise SchemaContractError("Standard payload is missing 'code'.")
    raw_fields = _pick(data, "fields", "campos", default=[])
    if not isinstance(raw_fields, (list, tuple)):
        raise SchemaContractError("Standard 'fields' must be an array.")
    categories = _pick(
        data,
        "compatibleSampleCategories",
        "compatible_sample_categories",
        "tiposMuestraCompatibles",
        default=[],
    )
    return Standard(
        id=_clean_optional_str(_pick(data, "id")),
        code=code,
        name=str(_pick(data, "name", "nombre", default="")),
        family=_clean_optional_str(_pick(data, "family", "tipo")),
        description=str(_pick(data, "description", "descripcion", default="")),
        fields=tuple(field_from_payload(item) for item in raw_fields),
        compatible_sample_categories=frozenset(
            str(item) for item in categories if isinstance(item, str)
        ) if isinstance(categories, (list, tuple, set, frozenset)) else frozenset(),
    )


def sample_from_payload(payload: Any) -> Sample:
    data = _require_mapping(payload, "Sample")
    sample_id = _as_stored_str(_pick(data, "id"))
    if sample_id is None or not sample_id.strip():
        raise SchemaContractError("Sample payload is missing 'id'.")

    results = _pick(data, "results", "resultados", default={})
    if not isinstance(results, Mapping):
        logger.warning("Sample %s carries non-object results (%s); ignoring them", sample_id, type(results).__name__)
        results = {}

    evidence = _pick(data, "photographicEvidence", "photographic_evidence", "evidenciaFotografica", default=[])
    if not isinstance(evidence, (list, tuple)):
        evidence = []

    return Sample(
        id=sample_id,
        code=str(_pick(data, "code", "codigo", default=sample_id)),
        results=dict(results),
        received_at=_as_stored_str(_pick(data, "receivedAt", "received_at", "fechaRecepcion")),
        tested_at=_clean_optional_str(_pick(data, "testedAt", "tested_at", "fechaEnsayo")),
        status=str(_pick(data, "status", "estado", default=SampleStatus.PENDING.value)),
        photographic_evidence=tuple(item for item in evidence if isinstance(item, str) and item.strip()),
        project_id=_clean_optional_str(_pick(data, "projectId", "project_id", "proyectoId")),
        material_type=_clean_optional_str(_pick(data, "materialType", "material_type", "tipoMaterial")),
        location=_clean_optional_str(_pick(data, "location", "ubicacion")),
        provider=_clean_optional_str(_pick(data, "provider", "proveedor")),
    )


def project_from_payload(payload: Any) -> Project:
    data = _require_mapping(payload, "Project")
    return Project(
        id=_clean_optional_str(_pick(data, "id")),
        name=str(_pick(data, "name", "nombre", default="")),
        client=str(_pick(data, "client", "cliente", default="")),
        address=str(_pick(data, "address", "direccion", default="")),
    )


def company_from_payload(payload: Any) -> CompanyIdentity:
    data = _require_mapping(payload, "Company")
    name = _clean_optional_str(_pick(data, "name", "nombre"))
    if not name:
        raise SchemaContractError("Company payload is missing 'name'.")
    return CompanyIdentity(
        name=name,
        address=str(_pick(data, "address", "direccion", default="")),
        city=str(_pick(data, "city", "ciudad", default="")),
        phone=str(_pick(data, "phone", "telefono", default="")),
        email=str(_pick(data, "email", default="")),
        logo_url=_clean_optional_str(_pick(data, "logoUrl", "logo_url")),
    )


def template_from_payload(payload: Any) -> CertificateTemplate:
    data = _require_mapping(payload, "Template")
    layout = str(_pick(data, "layout", default="classic")).strip().lower()
    if layout not in TEMPLATE_LAYOUTS:
        layout = "classic"
    return CertificateTemplate(
        id=str(_pick(data, "id", default="default")),
        name=str(_pick(data, "name", default="Default")),
        layout=layout,
        primary_color=str(_pick(data, "primaryColor", "primary_color", default="#000000")),
        show_watermark=bool(_pick(data, "showWatermark", "show_watermark", default=True)),
        show_qr=bool(_pick(data, "showQr", "show_qr", default=True)),
        show_border=bool(_pick(data, "showBorder", "show_border", default=True)),
        is_default=bool(_pick(data, "isDefault", "is_default", default=False)),
    )


def require_field(value: Any) -> FieldSchema:
    if not isinstance(value, FieldSchema):
        raise SchemaContractError(f"Expected a FieldSchema, got {type(value).__name__}.")
    return value


def require_standard(value: Any) -> Standard:
    if not isinstance(value, Standard):
        raise SchemaContractError(f"Expected a Standard, got {type(value).__name__}.")
    return value


def require_sample(value: Any) -> Sample:
    if not isinstance(value, Sample):
        raise SchemaContractError(f"Expected a Sample, got {type(value).__name__}.")
    return value
