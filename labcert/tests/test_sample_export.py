from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from labcert.sample_export import build_samples_csv, sample_csv_row  # noqa: E402
from labcert.schema import Sample, SchemaContractError  # noqa: E402


def test_csv_header_and_quoting():
    sample = Sample(
        id="muestra_001",
        code="MUE-2024-001",
        material_type="Concreto Premezclado",
        received_at="2024-03-20T10:30:00Z",
        tested_at="2024-03-27",
        status="aprobado",
        location="Losa Nivel 1",
        provider="Cemex",
    )

    csv_text = build_samples_csv(
        [{"sample": sample, "project_name": "Torre XYZ", "standard_code": "NMX-C-414"}]
    )

    lines = csv_text.split("\n")
    assert lines[0] == '"Código","Proyecto","Norma","Tipo Material","Fecha Ensayo","Estado","Ubicación","Proveedor"'
    assert lines[1] == (
        '"MUE-2024-001","Torre XYZ","NMX-C-414","Concreto Premezclado",'
        '"2024-03-27","aprobado","Losa Nivel 1","Cemex"'
    )
    assert len(lines) == 2
    assert not csv_text.endswith("\n")


def test_test_date_falls_back_to_reception_date():
    sample = Sample(id="s", code="MUE-2", received_at="2024-03-20T10:30:00Z", status="pendiente")
    assert sample_csv_row(sample)[4] == "2024-03-20T10:30:00Z"
    assert sample_csv_row(Sample(id="s", code="MUE-3", status="pendiente"))[4] == ""


def test_embedded_quotes_are_doubled():
    sample = Sample(id="s", code="MUE-4", status="aprobado", location='Eje "B"')
    csv_text = build_samples_csv([{"sample": sample}])
    assert '"Eje ""B"""' in csv_text
    assert '"MUE-4","",""' in csv_text


def test_empty_export_is_header_only():
    csv_text = build_samples_csv([])
    assert "\n" not in csv_text
    assert csv_text.startswith('"Código"')


def test_row_requires_a_sample():
    with pytest.raises(SchemaContractError):
        sample_csv_row({"code": "MUE-1"})
