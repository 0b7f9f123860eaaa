from __future__ import annotations

import io
import logging
import os
import re
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel

from .certificate import build_certificate
from .certificate_pdf_report import CertificatePdfReportBuilder, CertificatePdfReportError
from .schema import (
    CertificateTemplate,
    CompanyIdentity,
    Project,
    SchemaContractError,
    Standard,
    company_from_payload,
    project_from_payload,
    sample_from_payload,
    standard_from_payload,
    template_from_payload,
)
from .sample_export import build_samples_csv
from .settings import CertificateSettings
from .signature import build_validation_url, verify_signature
from .standards_catalog import StandardsCatalogValidationError, load_standards_catalog

logging.basicConfig(
    level=os.getenv("LABCERT_LOG_LEVEL", "INFO").strip().upper() or "INFO",
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SETTINGS = CertificateSettings.from_env()
UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")

app = FastAPI(title="Laboratory Certificate Service", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Fail fast on startup if the standards catalog is missing or invalid.
try:
    CATALOG = load_standards_catalog(SETTINGS.catalog_dir)
except StandardsCatalogValidationError as exc:
    raise RuntimeError(f"Standards catalog validation failed during startup: {exc}") from exc

pdf_builder = CertificatePdfReportBuilder()


class CertificateBody(BaseModel):
    sample: dict[str, Any]
    standard: dict[str, Any] | None = None
    standard_id: str | None = None
    project: dict[str, Any] | None = None
    company: dict[str, Any] | None = None
    template: dict[str, Any] | None = None
    template_id: str | None = None


class VerifyBody(BaseModel):
    sample: dict[str, Any]
    signature: str
    integrity_token: str | None = None


class SampleExportEntry(BaseModel):
    sample: dict[str, Any]
    project_name: str = ""
    standard_code: str = ""


def _resolve_standard(body: CertificateBody) -> Standard:
    if body.standard is not None:
        return standard_from_payload(body.standard)
    if body.standard_id:
        standard = CATALOG.get_standard(body.standard_id)
        if standard is None:
            raise HTTPException(status_code=404, detail=f"Unknown standard_id '{body.standard_id}'")
        return standard
    raise HTTPException(status_code=400, detail="Provide either 'standard' or 'standard_id'.")


def _resolve_template(body: CertificateBody) -> CertificateTemplate:
    if body.template is not None:
        return template_from_payload(body.template)
    if body.template_id:
        template = CATALOG.get_template(body.template_id)
        if template is None:
            raise HTTPException(status_code=404, detail=f"Unknown template_id '{body.template_id}'")
        return template
    return CATALOG.default_template


def _assemble(body: CertificateBody) -> dict[str, Any]:
    try:
        standard = _resolve_standard(body)
        template = _resolve_template(body)
        sample = sample_from_payload(body.sample)
        project: Project | None = project_from_payload(body.project) if body.project is not None else None
        company: CompanyIdentity | None = company_from_payload(body.company) if body.company is not None else None
        return build_certificate(
            standard,
            sample,
            project=project,
            company=company,
            template=template,
            settings=SETTINGS,
        )
    except SchemaContractError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/standards")
async def list_standards():
    return [standard.summary() for standard in CATALOG.standards]


@app.get("/api/standards/{standard_id}")
async def get_standard(standard_id: str):
    standard = CATALOG.get_standard(standard_id)
    if standard is None:
        raise HTTPException(status_code=404, detail="Standard not found")
    return standard.to_dict()


@app.get("/api/certificate-templates")
async def list_certificate_templates():
    return [template.to_dict() for template in CATALOG.templates]


@app.post("/api/certificates")
async def create_certificate(body: CertificateBody):
    return _assemble(body)


@app.post("/api/certificates/pdf")
async def create_certificate_pdf(body: CertificateBody):
    certificate = _assemble(body)
    try:
        pdf_bytes = pdf_builder.build_pdf_bytes(certificate=certificate)
    except CertificatePdfReportError as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    code = certificate["header"]["code"] or "certificado"
    filename = UNSAFE_FILENAME_CHARS.sub("_", code)
    headers = {"Content-Disposition": f'attachment; filename="certificado-{filename}.pdf"'}
    logger.info("Rendered certificate PDF for sample %s (%s bytes)", code, len(pdf_bytes))
    return StreamingResponse(io.BytesIO(pdf_bytes), media_type="application/pdf", headers=headers)


@app.post("/api/certificates/verify")
async def verify_certificate(body: VerifyBody):
    try:
        sample = sample_from_payload(body.sample)
    except SchemaContractError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    valid = verify_signature(
        sample,
        body.signature,
        integrity_token=body.integrity_token,
        signing_key=SETTINGS.signing_key,
    )
    return {
        "valid": valid,
        "validation_url": build_validation_url(sample.id, SETTINGS.verification_base_url),
    }


@app.post("/api/samples/export")
async def export_samples(body: list[SampleExportEntry]):
    try:
        entries = [
            {
                "sample": sample_from_payload(entry.sample),
                "project_name": entry.project_name,
                "standard_code": entry.standard_code,
            }
            for entry in body
        ]
    except SchemaContractError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    csv_text = build_samples_csv(entries)
    headers = {"Content-Disposition": 'attachment; filename="muestras.csv"'}
    return Response(content=csv_text.encode("utf-8"), media_type="text/csv; charset=utf-8", headers=headers)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("labcert.main:app", host="0.0.0.0", port=8000, reload=True)
