"""Per-standard chart datasets.

Dispatch is a closed table: each ``ChartKind`` names the standard token it
serves and the builder that turns specimen rows into points. Supporting a new
test method means adding a kind, a builder and a ``CHART_RULES`` entry.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence

from .results import FieldValue, Row
from .schema import Sample, Standard, require_sample, require_standard, to_number

logger = logging.getLogger(__name__)

UNKNOWN_AGE_LABEL = "unknown"
UNPARSEABLE_AGE_ORDER = 999
AGE_PREFIX_PATTERN = re.compile(r"\s*([+-]?\d+)")


class ChartKind(str, Enum):
    GRADATION = "gradation"
    COMPACTION = "compaction"
    COMPRESSIVE_STRENGTH = "compressive_strength"


@dataclass(frozen=True)
class ReferenceLine:
    axis: str
    value: float
    label: str

    def to_dict(self) -> dict[str, Any]:
        return {"axis": self.axis, "value": self.value, "label": self.label}


@dataclass(frozen=True)
class ChartSpec:
    kind: ChartKind
    chart_type: str
    x_key: str
    y_key: str
    x_label: str
    y_label: str
    points: tuple[dict[str, Any], ...]
    x_categorical: bool = False
    y_domain: tuple[float, float] | None = None
    reference_lines: tuple[ReferenceLine, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "chart_type": self.chart_type,
            "x_key": self.x_key,
            "y_key": self.y_key,
            "x_label": self.x_label,
            "y_label": self.y_label,
            "points": [dict(point) for point in self.points],
            "x_categorical": self.x_categorical,
            "y_domain": list(self.y_domain) if self.y_domain else None,
            "reference_lines": [line.to_dict() for line in self.reference_lines],
        }


def _number_or_zero(value: FieldValue | None) -> float:
    if value is None:
        return 0.0
    number = value.as_number()
    return number if number is not None else 0.0


def _build_gradation(standard: Standard, sample: Sample, rows: Sequence[Row]) -> ChartSpec | None:
    points = []
    for row in rows:
        mesh = row.get("f_c077_mesh")
        if mesh is None:
            continue
        points.append({"mesh": mesh.display(), "pass_percent": _number_or_zero(row.get("f_c077_pass"))})
    if not points:
        return None
    return ChartSpec(
        kind=ChartKind.GRADATION,
        chart_type="line",
        x_key="mesh",
        y_key="pass_percent",
        x_label="Malla",
        y_label="% Que pasa",
        points=tuple(points),
        x_categorical=True,
        y_domain=(0.0, 100.0),
    )


def _build_compaction(standard: Standard, sample: Sample, rows: Sequence[Row]) -> ChartSpec | None:
    points = [
        {
            "humidity": _number_or_zero(row.get("f_c416_h")),
            "density": _number_or_zero(row.get("f_c416_d")),
        }
        for row in rows
    ]
    if not points:
        return None
    points.sort(key=lambda point: point["humidity"])

    results = sample.results or {}
    reference_lines = []
    optimal_humidity = to_number(results.get("f_c416_opt"))
    if optimal_humidity is not None and optimal_humidity > 0:
        reference_lines.append(ReferenceLine(axis="x", value=optimal_humidity, label="Humedad óptima"))
    max_density = to_number(results.get("f_c416_max"))
    if max_density is not None and max_density > 0:
        reference_lines.append(ReferenceLine(axis="y", value=max_density, label="Densidad máxima"))

    return ChartSpec(
        kind=ChartKind.COMPACTION,
        chart_type="scatter_line",
        x_key="humidity",
        y_key="density",
        x_label="Humedad (%)",
        y_label="Densidad (kg/m³)",
        points=tuple(points),
        reference_lines=tuple(reference_lines),
    )


def _age_sort_key(label: str) -> int:
    match = AGE_PREFIX_PATTERN.match(label)
    if not match:
        return UNPARSEABLE_AGE_ORDER
    return int(match.group(1))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _build_compressive_strength(standard: Standard, sample: Sample, rows: Sequence[Row]) -> ChartSpec | None:
    groups: dict[str, list[float]] = {}
    for row in rows:
        age = row.get("f_c083_age")
        label = age.display() if age is not None else ""
        if not label:
            label = UNKNOWN_AGE_LABEL
        strength = _number_or_zero(row.get("f_c083_4"))
        bucket = groups.setdefault(label, [])
        if strength > 0:
            bucket.append(strength)

    points = [
        {"age": label, "resistencia": _round_half_up(sum(values) / len(values))}
        for label, values in groups.items()
        if values
    ]
    if len(points) <= 1:
        return None
    points.sort(key=lambda point: _age_sort_key(point["age"]))
    return ChartSpec(
        kind=ChartKind.COMPRESSIVE_STRENGTH,
        chart_type="bar",
        x_key="age",
        y_key="resistencia",
        x_label="Edad",
        y_label="Resistencia (kg/cm²)",
        points=tuple(points),
        x_categorical=True,
    )


ChartBuilder = Callable[[Standard, Sample, Sequence[Row]], "ChartSpec | None"]


@dataclass(frozen=True)
class ChartRule:
    kind: ChartKind
    code_token: str
    builder: ChartBuilder


# Priority order; the first matching rule that yields data wins.
CHART_RULES: tuple[ChartRule, ...] = (
    ChartRule(kind=ChartKind.GRADATION, code_token="077", builder=_build_gradation),
    ChartRule(kind=ChartKind.COMPACTION, code_token="416", builder=_build_compaction),
    ChartRule(kind=ChartKind.COMPRESSIVE_STRENGTH, code_token="083", builder=_build_compressive_strength),
)


def resolve_chart_kinds(standard_code: str) -> list[ChartKind]:
    code = str(standard_code or "")
    return [rule.kind for rule in CHART_RULES if rule.code_token in code]


def select_chart(standard: Standard, sample: Sample, rows: Sequence[Row]) -> ChartSpec | None:
    require_standard(standard)
    require_sample(sample)
    if not rows:
        return None
    code = str(standard.code or "")
    for rule in CHART_RULES:
        if rule.code_token not in code:
            continue
        chart = rule.builder(standard, sample, rows)
        if chart is not None:
            logger.debug("Sample %s: %s chart with %s points", sample.id, rule.kind.value, len(chart.points))
            return chart
    return None
