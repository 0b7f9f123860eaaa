from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from .aggregation import aggregate_field, effective_scope
from .charts import select_chart
from .compliance import evaluate_field, evaluate_row_value, format_specification, has_evaluable_data, is_metadata_field
from .results import BooleanValue, FieldValue, Row
from .schema import (
    CertificateTemplate,
    CompanyIdentity,
    FieldScope,
    Project,
    Sample,
    Standard,
    require_sample,
    require_standard,
)
from .settings import CertificateSettings
from .signature import sign
from .specimens import extract_rows

logger = logging.getLogger(__name__)

MAX_EVIDENCE_IMAGES = 4
DEFAULT_TEMPLATE = CertificateTemplate()


def _display_cell(value: FieldValue | None, labels: dict[str, str]) -> str:
    if value is None:
        return "-"
    if isinstance(value, BooleanValue):
        return labels["yes"] if value.value else labels["no"]
    return value.display()


def _compliance_rows(
    standard: Standard,
    sample: Sample,
    rows: list[Row],
    labels: dict[str, str],
    locale: str,
) -> list[dict[str, Any]]:
    table = []
    for field_schema in standard.fields:
        if is_metadata_field(field_schema):
            continue
        aggregate = aggregate_field(field_schema, rows, sample, locale=locale)
        passed = evaluate_field(field_schema, aggregate.raw_value, rows, sample)
        evaluable = has_evaluable_data(field_schema, aggregate.raw_value, rows, sample)
        if evaluable:
            status = "pass" if passed else "fail"
            badge = labels["pass"] if passed else labels["fail"]
        else:
            status = "n/a"
            badge = "-"
        table.append(
            {
                "field_id": field_schema.id,
                "name": field_schema.name,
                "unit": field_schema.unit or "-",
                "specification": format_specification(field_schema),
                "value": aggregate.display_value,
                "raw_value": aggregate.raw_value,
                "passed": passed,
                "status": status,
                "badge": badge,
                "scope": effective_scope(field_schema, rows).value,
                "required": field_schema.required,
            }
        )
    return table


def _specimen_detail(standard: Standard, rows: list[Row], labels: dict[str, str]) -> dict[str, Any] | None:
    if not rows:
        return None
    columns = [
        field_schema
        for field_schema in standard.fields
        if not is_metadata_field(field_schema) and effective_scope(field_schema, rows) is FieldScope.SPECIMEN
    ]
    if not columns:
        return None

    detail_rows = []
    for index, row in enumerate(rows):
        cells = []
        for field_schema in columns:
            value = row.get(field_schema.id)
            out_of_range = not evaluate_row_value(field_schema, value)
            cells.append(
                {
                    "field_id": field_schema.id,
                    "display": _display_cell(value, labels),
                    "out_of_range": out_of_range,
                    "marker": labels["out_of_range"] if out_of_range else None,
                }
            )
        detail_rows.append({"index": index + 1, "cells": cells})

    return {
        "columns": [
            {"field_id": item.id, "name": item.name, "unit": item.unit} for item in columns
        ],
        "rows": detail_rows,
    }


def _sample_info(standard: Standard, sample: Sample, project: Project | None) -> dict[str, Any]:
    return {
        "client": project.client if project else "",
        "project": project.name if project else "",
        "project_address": project.address if project else "",
        "location": sample.location or "",
        "material": sample.material_type or "",
        "provider": sample.provider or "",
        "received_at": sample.received_at,
        "tested_at": sample.tested_at,
        "standard_code": standard.code,
        "standard_name": standard.name,
    }


def build_certificate(
    standard: Standard,
    sample: Sample,
    *,
    project: Project | None = None,
    company: CompanyIdentity | None = None,
    template: CertificateTemplate | None = None,
    settings: CertificateSettings | None = None,
    generated_at: datetime | None = None,
) -> dict[str, Any]:
    """Assemble the certificate view model for one sample.

    The result is a plain dict ready for JSON or for the PDF builder. Every
    verdict in it comes from the extraction, aggregation, compliance, chart and
    signature functions; nothing is re-derived here.
    """
    require_standard(standard)
    require_sample(sample)
    settings = settings or CertificateSettings()
    company = company or settings.company
    template = template or DEFAULT_TEMPLATE
    labels = settings.labels

    rows = extract_rows(standard, sample)
    compliance_table = _compliance_rows(standard, sample, rows, labels, settings.locale)
    chart = select_chart(standard, sample, rows)
    signature = sign(
        sample,
        company,
        base_url=settings.verification_base_url,
        signing_key=settings.signing_key,
    )
    generated = generated_at or datetime.now(timezone.utc)

    logger.info(
        "Assembled certificate for sample %s (%s specimens, chart=%s)",
        sample.id,
        len(rows),
        chart.kind.value if chart else None,
    )

    return {
        "header": {
            "company": company.to_dict(),
            "title": labels["title"],
            "code": sample.code,
            "status": sample.status,
            "status_kind": sample.status_kind.value if sample.status_kind else None,
            "watermark": labels["draft"] if sample.is_draft else labels["original"],
        },
        "sample_info": _sample_info(standard, sample, project),
        "compliance_table": compliance_table,
        "compliant": all(row["passed"] for row in compliance_table),
        "specimen_count": len(rows),
        "chart": chart.to_dict() if chart else None,
        "specimen_detail": _specimen_detail(standard, rows, labels),
        "photographic_evidence": list(sample.photographic_evidence[:MAX_EVIDENCE_IMAGES]),
        "signatories": [dict(item) for item in settings.signatories],
        "signature": signature.to_dict(),
        "template": template.to_dict(),
        "labels": dict(labels),
        "footer": {
            "disclaimer": labels["disclaimer"].format(company=company.name),
            "non_cryptographic_notice": labels["non_cryptographic_notice"],
            "generated_at": generated.isoformat(),
        },
    }
