"""Typed view over a sample's flat result bag.

The data store keeps results as ``{"<field id>": value, "<field id>_<n>": value}``.
This module is the only place that understands that key encoding: it decodes
the bag into ``ResultKey -> FieldValue`` entries and encodes them back.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Union

from .schema import FieldSchema, ValueType, format_scalar, to_number

QTY_HINT_KEY = "_qty"
SPECIMEN_KEY_PATTERN = re.compile(r"^(?P<prefix>.+)_(?P<index>\d+)$")


@dataclass(frozen=True)
class NumberValue:
    value: float | int
    kind = "number"

    def as_number(self) -> float | None:
        return to_number(self.value)

    def display(self) -> str:
        return format_scalar(self.value)


@dataclass(frozen=True)
class BooleanValue:
    value: bool
    kind = "boolean"

    def as_number(self) -> float | None:
        return None

    def display(self) -> str:
        return format_scalar(self.value)


@dataclass(frozen=True)
class TextValue:
    value: str
    kind = "text"

    def as_number(self) -> float | None:
        return to_number(self.value)

    def display(self) -> str:
        return self.value


@dataclass(frozen=True)
class SelectValue:
    value: str
    kind = "select"

    def as_number(self) -> float | None:
        return to_number(self.value)

    def display(self) -> str:
        return self.value


FieldValue = Union[NumberValue, BooleanValue, TextValue, SelectValue]
Row = dict[str, FieldValue]


def wrap_value(raw: Any, value_type: ValueType | None = None) -> FieldValue | None:
    """Tag a stored scalar. The tag follows the stored type, not the schema type,
    so a ``"false"`` string in a boolean field stays text."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return BooleanValue(raw)
    if isinstance(raw, (int, float)):
        return NumberValue(raw)
    if isinstance(raw, str):
        if value_type is ValueType.SELECT:
            return SelectValue(raw)
        return TextValue(raw)
    return TextValue(format_scalar(raw))


def is_literal_false(value: FieldValue | None) -> bool:
    return isinstance(value, BooleanValue) and value.value is False


@dataclass(frozen=True)
class ResultKey:
    field_id: str
    specimen_index: int | None = None

    def encode(self) -> str:
        if self.specimen_index is None:
            return self.field_id
        return f"{self.field_id}_{self.specimen_index}"


@dataclass(frozen=True)
class SampleResults:
    entries: Mapping[ResultKey, FieldValue] = field(default_factory=dict)
    extras: Mapping[str, Any] = field(default_factory=dict)

    def global_value(self, field_id: str) -> FieldValue | None:
        return self.entries.get(ResultKey(field_id))

    def specimen_value(self, field_id: str, index: int) -> FieldValue | None:
        return self.entries.get(ResultKey(field_id, index))

    def raw_keys(self) -> list[str]:
        return [key.encode() for key in self.entries] + list(self.extras)

    @property
    def qty_hint(self) -> Any:
        return self.extras.get(QTY_HINT_KEY)


def decode_results(raw: Mapping[str, Any] | None, fields: Iterable[FieldSchema]) -> SampleResults:
    """Bind every stored key to a schema field where possible.

    An exact field id wins over the ``<id>_<n>`` reading, so a field literally
    named ``f_c083_4`` is never mistaken for specimen 4 of ``f_c083``.
    Keys that bind to no field are kept untouched in ``extras``. Null values
    are absent whether or not their key binds.
    """
    if not raw:
        return SampleResults()
    field_types = {item.id: item.value_type for item in fields}
    entries: dict[ResultKey, FieldValue] = {}
    extras: dict[str, Any] = {}

    for key, value in raw.items():
        key = str(key)
        if value is None:
            continue
        if key in field_types:
            wrapped = wrap_value(value, field_types[key])
            if wrapped is not None:
                entries[ResultKey(key)] = wrapped
            continue
        match = SPECIMEN_KEY_PATTERN.match(key)
        if match and match.group("prefix") in field_types:
            field_id = match.group("prefix")
            wrapped = wrap_value(value, field_types[field_id])
            if wrapped is not None:
                entries[ResultKey(field_id, int(match.group("index")))] = wrapped
            continue
        extras[key] = value

    return SampleResults(entries=entries, extras=extras)


def encode_results(results: SampleResults) -> dict[str, Any]:
    payload: dict[str, Any] = dict(results.extras)
    for key, value in results.entries.items():
        payload[key.encode()] = value.value
    return payload


def global_field_value(raw: Mapping[str, Any] | None, field_schema: FieldSchema) -> FieldValue | None:
    if not raw:
        return None
    return wrap_value(raw.get(field_schema.id), field_schema.value_type)
