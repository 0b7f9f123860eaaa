from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from .results import BooleanValue, Row, global_field_value
from .schema import FieldSchema, FieldScope, Sample, ValueType, require_field, require_sample
from .settings import labels_for

MISSING_DISPLAY = "-"


@dataclass(frozen=True)
class AggregateResult:
    display_value: str
    raw_value: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"display_value": self.display_value, "raw_value": self.raw_value}


MISSING = AggregateResult(display_value=MISSING_DISPLAY)


def effective_scope(field_schema: FieldSchema, rows: Sequence[Row]) -> FieldScope:
    if field_schema.scope is not None:
        return field_schema.scope
    return FieldScope.SPECIMEN if rows else FieldScope.GLOBAL


def format_mean(mean: float) -> str:
    if float(mean).is_integer():
        return str(int(mean))
    return f"{mean:.2f}"


def aggregate_field(
    field_schema: FieldSchema,
    rows: Sequence[Row],
    sample: Sample,
    *,
    locale: str | None = None,
) -> AggregateResult:
    """Reduce a field to one reportable value.

    Global fields (and any field of a sample without specimens) read the
    sample-level entry. Specimen number fields average the rows that carry a
    parseable value; select and text fields list distinct values in first-seen
    order. Specimen booleans have no aggregate; compliance reads their rows.
    """
    require_field(field_schema)
    require_sample(sample)
    labels = labels_for(locale)

    if not rows or effective_scope(field_schema, rows) is FieldScope.GLOBAL:
        return _aggregate_global(field_schema, sample, labels)

    if field_schema.value_type is ValueType.NUMBER:
        numbers = []
        for row in rows:
            value = row.get(field_schema.id)
            number = value.as_number() if value is not None else None
            if number is not None:
                numbers.append(number)
        if not numbers:
            return MISSING
        mean = sum(numbers) / len(numbers)
        return AggregateResult(display_value=format_mean(mean), raw_value=mean)

    if field_schema.value_type in (ValueType.SELECT, ValueType.TEXT):
        seen: dict[str, None] = {}
        for row in rows:
            value = row.get(field_schema.id)
            if value is not None:
                seen.setdefault(value.display(), None)
        if not seen:
            return MISSING
        return AggregateResult(display_value=", ".join(seen))

    return MISSING


def _aggregate_global(field_schema: FieldSchema, sample: Sample, labels: dict[str, str]) -> AggregateResult:
    value = global_field_value(sample.results, field_schema)
    if value is None:
        return MISSING

    if field_schema.value_type is ValueType.NUMBER:
        return AggregateResult(display_value=value.display(), raw_value=value.as_number())

    if field_schema.value_type is ValueType.BOOLEAN and isinstance(value, BooleanValue):
        return AggregateResult(display_value=labels["yes"] if value.value else labels["no"])

    return AggregateResult(display_value=value.display())
