from __future__ import annotations

import csv
import io
from typing import Any, Iterable, Mapping

from .schema import Sample, require_sample

SAMPLE_CSV_COLUMNS = (
    "Código",
    "Proyecto",
    "Norma",
    "Tipo Material",
    "Fecha Ensayo",
    "Estado",
    "Ubicación",
    "Proveedor",
)


def sample_csv_row(sample: Sample, *, project_name: str = "", standard_code: str = "") -> list[str]:
    require_sample(sample)
    return [
        sample.code,
        project_name or "",
        standard_code or "",
        sample.material_type or "",
        sample.tested_at or sample.received_at or "",
        sample.status,
        sample.location or "",
        sample.provider or "",
    ]


def build_samples_csv(entries: Iterable[Mapping[str, Any]]) -> str:
    """One quoted row per sample, rows joined by ``\\n`` with no trailing newline.

    Each entry carries ``sample`` plus optional ``project_name`` and
    ``standard_code`` resolved by the caller.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(SAMPLE_CSV_COLUMNS)
    for entry in entries:
        writer.writerow(
            sample_csv_row(
                entry["sample"],
                project_name=str(entry.get("project_name") or ""),
                standard_code=str(entry.get("standard_code") or ""),
            )
        )
    return buffer.getvalue().removesuffix("\n")
