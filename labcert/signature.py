"""Certificate validation marker.

``signature`` and ``seal`` are display strings for tamper evidence on the
printed certificate. They are NOT cryptographic: no secret is involved and
anyone holding the sample id, reception date and status can recompute them.
When a server-side signing key is configured, ``integrity_token`` adds a
keyed HMAC-SHA256 over the canonical sample content for callers that need a
real integrity check.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .schema import CompanyIdentity, Sample, require_sample
from .settings import DEFAULT_VERIFICATION_BASE_URL

SIGNATURE_LENGTH = 32
VERIFY_PATH_SEGMENT = "/verify/certificado/"


@dataclass(frozen=True)
class SignatureBlock:
    validation_url: str
    signature: str
    seal: str
    original_chain: str
    integrity_token: str | None = None

    @property
    def qr_payload(self) -> str:
        return self.validation_url

    def to_dict(self) -> dict[str, Any]:
        return {
            "validation_url": self.validation_url,
            "signature": self.signature,
            "seal": self.seal,
            "original_chain": self.original_chain,
            "qr_payload": self.qr_payload,
            "integrity_token": self.integrity_token,
        }


def _signature_base(sample: Sample) -> str:
    received_at = "" if sample.received_at is None else str(sample.received_at)
    return f"{sample.id}-{received_at}-{sample.status}"


def compute_signature(sample: Sample) -> str:
    encoded = base64.b64encode(_signature_base(sample).encode("utf-8")).decode("ascii")
    return encoded[:SIGNATURE_LENGTH]


def build_seal(signature: str) -> str:
    return signature + signature[::-1]


def build_validation_url(sample_id: str, base_url: str = DEFAULT_VERIFICATION_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}{VERIFY_PATH_SEGMENT}{sample_id}"


def _format_chain_timestamp(received_at: str | None) -> str:
    if not received_at:
        return ""
    text = str(received_at).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def build_original_chain(company_name: str, sample: Sample, signature: str) -> str:
    timestamp = _format_chain_timestamp(sample.received_at)
    return f"||{company_name}|{sample.id}|{timestamp}|{signature}||"


def _canonical_sample_json(sample: Sample) -> str:
    payload = {
        "id": sample.id,
        "code": sample.code,
        "receivedAt": sample.received_at,
        "status": sample.status,
        "results": dict(sample.results or {}),
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_integrity_token(sample: Sample, signing_key: str) -> str:
    return hmac.new(
        signing_key.encode("utf-8"),
        _canonical_sample_json(sample).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def sign(
    sample: Sample,
    company: CompanyIdentity | None = None,
    *,
    base_url: str = DEFAULT_VERIFICATION_BASE_URL,
    signing_key: str | None = None,
) -> SignatureBlock:
    require_sample(sample)
    signature = compute_signature(sample)
    company_name = company.name if company is not None else ""
    return SignatureBlock(
        validation_url=build_validation_url(sample.id, base_url),
        signature=signature,
        seal=build_seal(signature),
        original_chain=build_original_chain(company_name, sample, signature),
        integrity_token=compute_integrity_token(sample, signing_key) if signing_key else None,
    )


def verify_signature(sample: Sample, signature: str, *, integrity_token: str | None = None, signing_key: str | None = None) -> bool:
    """Recompute the display signature (and the keyed token when both sides have one)."""
    require_sample(sample)
    if not hmac.compare_digest(compute_signature(sample).encode("utf-8"), str(signature or "").encode("utf-8")):
        return False
    if signing_key and integrity_token is not None:
        expected = compute_integrity_token(sample, signing_key)
        return hmac.compare_digest(expected, str(integrity_token))
    return True
