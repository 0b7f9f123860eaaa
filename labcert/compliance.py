from __future__ import annotations

from typing import Sequence

from .aggregation import effective_scope
from .results import FieldValue, Row, global_field_value, is_literal_false
from .schema import FieldSchema, FieldScope, Sample, ValueType, format_scalar, require_field, require_sample

METADATA_FIELD_MARKER = "qty"


def is_metadata_field(field_schema: FieldSchema) -> bool:
    return METADATA_FIELD_MARKER in field_schema.id


def format_specification(field_schema: FieldSchema) -> str:
    low = field_schema.min_limit
    high = field_schema.max_limit
    if low is not None and high is not None:
        return f"{format_scalar(low)} - {format_scalar(high)}"
    if low is not None:
        return f"≥ {format_scalar(low)}"
    if high is not None:
        return f"≤ {format_scalar(high)}"
    return "-"


def _within_limits(field_schema: FieldSchema, number: float) -> bool:
    if field_schema.min_limit is not None and number < field_schema.min_limit:
        return False
    if field_schema.max_limit is not None and number > field_schema.max_limit:
        return False
    return True


def evaluate_field(
    field_schema: FieldSchema,
    raw_value: float | None,
    rows: Sequence[Row],
    sample: Sample,
) -> bool:
    """Pass/fail for one field. Absent data never fails."""
    require_field(field_schema)
    require_sample(sample)

    if field_schema.value_type is ValueType.NUMBER:
        if raw_value is None:
            return True
        return _within_limits(field_schema, raw_value)

    if field_schema.value_type is ValueType.BOOLEAN:
        if effective_scope(field_schema, rows) is FieldScope.GLOBAL:
            return not is_literal_false(global_field_value(sample.results, field_schema))
        return not any(is_literal_false(row.get(field_schema.id)) for row in rows)

    return True


def evaluate_row_value(field_schema: FieldSchema, value: FieldValue | None) -> bool:
    """Per-specimen check behind the "out of range" marker of the detail table."""
    require_field(field_schema)
    if value is None:
        return True
    if field_schema.value_type is ValueType.NUMBER:
        number = value.as_number()
        if number is None:
            return True
        return _within_limits(field_schema, number)
    if field_schema.value_type is ValueType.BOOLEAN:
        return not is_literal_false(value)
    return True


def has_evaluable_data(
    field_schema: FieldSchema,
    raw_value: float | None,
    rows: Sequence[Row],
    sample: Sample,
) -> bool:
    if field_schema.value_type is ValueType.NUMBER:
        return raw_value is not None
    if field_schema.value_type is ValueType.BOOLEAN:
        if effective_scope(field_schema, rows) is FieldScope.GLOBAL:
            return global_field_value(sample.results, field_schema) is not None
        return any(field_schema.id in row for row in rows)
    return False
