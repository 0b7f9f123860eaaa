from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .schema import CompanyIdentity

logger = logging.getLogger(__name__)

DEFAULT_VERIFICATION_BASE_URL = "https://controldecalidad.vercel.app"
DEFAULT_LOCALE = "es"
DEFAULT_CATALOG_DIR = Path(__file__).resolve().parent / "catalog"

DEFAULT_COMPANY = CompanyIdentity(
    name="LABORATORIO DE CONSTRUCCIÓN",
    address="Av. Principal 123, Zona Industrial",
    city="Ciudad de México, CDMX",
    phone="(55) 1234-5678",
    email="contacto@laboratorio.com",
)

DEFAULT_SIGNATORIES: tuple[dict[str, str], ...] = (
    {"name": "Téc. Juan Pérez", "role": "Técnico de Laboratorio", "license": ""},
    {"name": "Ing. María González", "role": "Gerente de Calidad", "license": "12345678"},
)

LABELS: dict[str, dict[str, str]] = {
    "es": {
        "yes": "SI",
        "no": "NO",
        "pass": "CUMPLE",
        "fail": "NO CUMPLE",
        "out_of_range": "Fuera de norma",
        "draft": "BORRADOR",
        "original": "ORIGINAL",
        "title": "INFORME DE ENSAYO",
        "disclaimer": (
            "Este informe no podrá ser reproducido total o parcialmente sin la "
            "autorización por escrito de {company}."
        ),
        "non_cryptographic_notice": (
            "El sello digital es un marcador de integridad visual; no constituye una firma criptográfica."
        ),
    },
    "en": {
        "yes": "YES",
        "no": "NO",
        "pass": "PASS",
        "fail": "FAIL",
        "out_of_range": "Out of range",
        "draft": "DRAFT",
        "original": "ORIGINAL",
        "title": "TEST REPORT",
        "disclaimer": (
            "This report may not be reproduced in whole or in part without the "
            "written authorization of {company}."
        ),
        "non_cryptographic_notice": (
            "The digital seal is a visual tamper-evidence marker, not a cryptographic signature."
        ),
    },
}


def labels_for(locale: str | None) -> dict[str, str]:
    return LABELS.get(str(locale or "").strip().lower(), LABELS[DEFAULT_LOCALE])


@dataclass(frozen=True)
class CertificateSettings:
    verification_base_url: str = DEFAULT_VERIFICATION_BASE_URL
    locale: str = DEFAULT_LOCALE
    signing_key: str | None = None
    company: CompanyIdentity = DEFAULT_COMPANY
    signatories: tuple[dict[str, str], ...] = DEFAULT_SIGNATORIES
    catalog_dir: Path = field(default=DEFAULT_CATALOG_DIR)

    @property
    def labels(self) -> dict[str, str]:
        return labels_for(self.locale)

    @classmethod
    def from_env(cls) -> "CertificateSettings":
        locale = os.getenv("LABCERT_LOCALE", DEFAULT_LOCALE).strip().lower()
        if locale not in LABELS:
            logger.warning("Unsupported LABCERT_LOCALE %r; falling back to %s", locale, DEFAULT_LOCALE)
            locale = DEFAULT_LOCALE
        catalog_dir = os.getenv("LABCERT_CATALOG_DIR")
        return cls(
            verification_base_url=os.getenv(
                "LABCERT_VERIFICATION_BASE_URL", DEFAULT_VERIFICATION_BASE_URL
            ).strip().rstrip("/"),
            locale=locale,
            signing_key=_clean_optional_env(os.getenv("LABCERT_SIGNING_KEY")),
            company=CompanyIdentity(
                name=os.getenv("LABCERT_COMPANY_NAME", DEFAULT_COMPANY.name),
                address=os.getenv("LABCERT_COMPANY_ADDRESS", DEFAULT_COMPANY.address),
                city=os.getenv("LABCERT_COMPANY_CITY", DEFAULT_COMPANY.city),
                phone=os.getenv("LABCERT_COMPANY_PHONE", DEFAULT_COMPANY.phone),
                email=os.getenv("LABCERT_COMPANY_EMAIL", DEFAULT_COMPANY.email),
                logo_url=_clean_optional_env(os.getenv("LABCERT_COMPANY_LOGO_URL")),
            ),
            signatories=_parse_signatories(os.getenv("LABCERT_SIGNATORIES")),
            catalog_dir=Path(catalog_dir) if catalog_dir else DEFAULT_CATALOG_DIR,
        )


def _clean_optional_env(raw_value: str | None) -> str | None:
    if raw_value is None:
        return None
    value = raw_value.strip()
    return value or None


def _parse_signatories(raw_value: str | None) -> tuple[dict[str, str], ...]:
    if not raw_value:
        return DEFAULT_SIGNATORIES
    try:
        payload: Any = json.loads(raw_value)
    except json.JSONDecodeError:
        logger.warning("LABCERT_SIGNATORIES is not valid JSON; using defaults")
        return DEFAULT_SIGNATORIES
    if not isinstance(payload, list):
        return DEFAULT_SIGNATORIES
    signatories = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        signatories.append(
            {
                "name": str(entry.get("name", "")),
                "role": str(entry.get("role", "")),
                "license": str(entry.get("license", "")),
            }
        )
    return tuple(signatories) or DEFAULT_SIGNATORIES

