from __future__ import annotations

import base64
import sys
from dataclasses import replace
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from labcert.schema import CompanyIdentity, Sample, SchemaContractError, sample_from_payload  # noqa: E402
from labcert.signature import build_original_chain, sign, verify_signature  # noqa: E402

COMPANY = CompanyIdentity(name="LAB CENTRAL")


def _sample(**overrides) -> Sample:
    base = Sample(
        id="muestra_001",
        code="MUE-2024-001",
        received_at="2024-03-20T10:30:00Z",
        status="aprobado",
        results={"f1": 210},
    )
    return replace(base, **overrides)


def test_signature_is_truncated_base64_of_identity_fields():
    block = sign(_sample(), COMPANY)
    expected = base64.b64encode(b"muestra_001-2024-03-20T10:30:00Z-aprobado").decode("ascii")[:32]

    assert block.signature == expected
    assert len(block.signature) == 32


def test_short_signature_is_not_padded():
    block = sign(Sample(id="a", code="A", received_at=None, status="x"))
    assert block.signature == "YS0teA=="


def test_sign_is_deterministic_and_sensitive_to_each_input():
    reference = sign(_sample(), COMPANY).signature

    assert sign(_sample(), COMPANY).signature == reference
    assert sign(_sample(id="muestra_002"), COMPANY).signature != reference
    assert sign(_sample(received_at="2024-03-21T10:30:00Z"), COMPANY).signature != reference
    assert sign(_sample(status="rechazado"), COMPANY).signature != reference


def test_results_do_not_affect_display_signature():
    assert sign(_sample(results={"f1": 1})).signature == sign(_sample(results={"f1": 2})).signature


def test_seal_is_signature_followed_by_its_reversal():
    for sample in (_sample(), _sample(id="x"), Sample(id="a", code="A", status="x")):
        block = sign(sample)
        half = len(block.signature)
        assert len(block.seal) == 2 * half
        assert block.seal[:half] == block.signature
        assert block.seal[half:] == block.signature[::-1]


def test_validation_url_and_qr_payload():
    block = sign(_sample(), COMPANY, base_url="https://lab.example/")

    assert block.validation_url == "https://lab.example/verify/certificado/muestra_001"
    assert block.qr_payload == block.validation_url


def test_original_chain_normalizes_timestamp():
    sample = _sample()
    chain = build_original_chain("LAB CENTRAL", sample, "SIG")
    assert chain == "||LAB CENTRAL|muestra_001|2024-03-20T10:30:00.000Z|SIG||"

    offset_sample = _sample(received_at="2024-03-20T04:30:00.250-06:00")
    assert "|2024-03-20T10:30:00.250Z|" in build_original_chain("LAB", offset_sample, "SIG")


def test_original_chain_keeps_unparseable_dates_as_stored():
    chain = build_original_chain("LAB", _sample(received_at="ayer"), "SIG")
    assert chain == "||LAB|muestra_001|ayer|SIG||"


def test_integrity_token_only_with_signing_key():
    assert sign(_sample()).integrity_token is None

    keyed = sign(_sample(), signing_key="secret")
    assert keyed.integrity_token is not None
    assert len(keyed.integrity_token) == 64
    assert sign(_sample(results={"f1": 999}), signing_key="secret").integrity_token != keyed.integrity_token
    assert sign(_sample(), signing_key="secret").signature == sign(_sample()).signature


def test_verify_signature():
    sample = _sample()
    block = sign(sample, signing_key="secret")

    assert verify_signature(sample, block.signature) is True
    assert verify_signature(_sample(status="rechazado"), block.signature) is False
    assert verify_signature(sample, "") is False
    assert verify_signature(sample, block.signature, integrity_token=block.integrity_token, signing_key="secret")
    assert not verify_signature(
        _sample(results={"f1": 1}),
        block.signature,
        integrity_token=block.integrity_token,
        signing_key="secret",
    )


def test_sign_requires_a_sample():
    with pytest.raises(SchemaContractError):
        sign({"id": "x"})


def test_decoded_sample_signs_stored_values_without_normalizing():
    sample = sample_from_payload({"id": "m1", "receivedAt": "2024-01-15 ", "status": "aprobado"})

    assert sample.received_at == "2024-01-15 "
    assert sign(sample).signature == base64.b64encode(b"m1-2024-01-15 -aprobado").decode("ascii")[:32]

    padded_id = sample_from_payload({"id": " m1", "receivedAt": "2024-01-15", "status": "aprobado"})
    assert padded_id.id == " m1"
    trimmed_id = sample_from_payload({"id": "m1", "receivedAt": "2024-01-15", "status": "aprobado"})
    assert sign(padded_id).signature != sign(trimmed_id).signature


def test_blank_sample_id_is_still_rejected():
    with pytest.raises(SchemaContractError, match="missing 'id'"):
        sample_from_payload({"id": "   ", "status": "aprobado"})
