from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from labcert.aggregation import MISSING, aggregate_field, effective_scope, format_mean  # noqa: E402
from labcert.results import BooleanValue, NumberValue, SelectValue, TextValue  # noqa: E402
from labcert.schema import FieldSchema, FieldScope, Sample, SchemaContractError, Standard, ValueType  # noqa: E402
from labcert.specimens import extract_rows  # noqa: E402

EMPTY_SAMPLE = Sample(id="s1", code="MUE-1")


def _field(value_type: ValueType, scope: FieldScope | None = FieldScope.SPECIMEN, field_id: str = "f") -> FieldSchema:
    return FieldSchema(id=field_id, name="Campo", value_type=value_type, scope=scope)


def test_specimen_number_mean_whole_value():
    rows = [{"f": NumberValue(10)}, {"f": NumberValue(20)}, {"f": NumberValue(30)}]

    result = aggregate_field(_field(ValueType.NUMBER), rows, EMPTY_SAMPLE)

    assert result.raw_value == 20
    assert result.display_value == "20"


def test_specimen_number_mean_fractional_value():
    rows = [{"f": NumberValue(1)}, {"f": NumberValue(2)}]

    result = aggregate_field(_field(ValueType.NUMBER), rows, EMPTY_SAMPLE)

    assert result.raw_value == pytest.approx(1.5)
    assert result.display_value == "1.50"


def test_rows_without_the_field_are_excluded_not_zero():
    rows = [{"f": NumberValue(10)}, {}, {"f": NumberValue(20)}]

    result = aggregate_field(_field(ValueType.NUMBER), rows, EMPTY_SAMPLE)

    assert result.raw_value == 15
    assert result.display_value == "15"


def test_unparseable_specimen_values_are_excluded():
    standard = Standard(code="X", fields=(_field(ValueType.NUMBER),))
    sample = Sample(id="s1", code="MUE-1", results={"f_0": 10, "f_1": "abc", "f_2": "14"})
    rows = extract_rows(standard, sample)

    result = aggregate_field(standard.fields[0], rows, sample)

    assert result.raw_value == 12
    assert result.display_value == "12"


def test_specimen_number_without_values_is_missing():
    rows = [{}, {"f": TextValue("n/a")}]
    assert aggregate_field(_field(ValueType.NUMBER), rows, EMPTY_SAMPLE) == MISSING


def test_select_values_are_deduplicated_in_first_seen_order():
    rows = [
        {"f": SelectValue("7 días")},
        {"f": SelectValue("28 días")},
        {},
        {"f": SelectValue("7 días")},
    ]

    result = aggregate_field(_field(ValueType.SELECT), rows, EMPTY_SAMPLE)

    assert result.display_value == "7 días, 28 días"
    assert result.raw_value is None


def test_specimen_boolean_has_no_aggregate():
    rows = [{"f": BooleanValue(True)}, {"f": BooleanValue(False)}]
    assert aggregate_field(_field(ValueType.BOOLEAN), rows, EMPTY_SAMPLE) == MISSING


def test_global_number_reads_sample_value():
    sample = Sample(id="s1", code="MUE-1", results={"f": 12.5})

    result = aggregate_field(_field(ValueType.NUMBER, scope=FieldScope.GLOBAL), [{"f": NumberValue(1)}], sample)

    assert result.raw_value == 12.5
    assert result.display_value == "12.5"


def test_global_boolean_is_localized():
    field_schema = _field(ValueType.BOOLEAN, scope=FieldScope.GLOBAL)
    yes_sample = Sample(id="s1", code="MUE-1", results={"f": True})
    no_sample = Sample(id="s2", code="MUE-2", results={"f": False})

    assert aggregate_field(field_schema, [], yes_sample).display_value == "SI"
    assert aggregate_field(field_schema, [], no_sample).display_value == "NO"
    assert aggregate_field(field_schema, [], yes_sample, locale="en").display_value == "YES"
    assert aggregate_field(field_schema, [], yes_sample).raw_value is None


def test_global_text_uses_string_form():
    sample = Sample(id="s1", code="MUE-1", results={"f": "Arena limosa"})
    result = aggregate_field(_field(ValueType.TEXT, scope=FieldScope.GLOBAL), [], sample)
    assert result.display_value == "Arena limosa"
    assert result.raw_value is None


def test_missing_global_value_is_placeholder():
    result = aggregate_field(_field(ValueType.NUMBER, scope=FieldScope.GLOBAL), [], EMPTY_SAMPLE)
    assert result.display_value == "-"
    assert result.raw_value is None


def test_specimen_field_of_sample_without_rows_reads_global_value():
    sample = Sample(id="s1", code="MUE-1", results={"f": 7})
    result = aggregate_field(_field(ValueType.NUMBER), [], sample)
    assert result.display_value == "7"
    assert result.raw_value == 7


def test_effective_scope_defaults_follow_rows():
    unscoped = _field(ValueType.NUMBER, scope=None)
    assert effective_scope(unscoped, []) is FieldScope.GLOBAL
    assert effective_scope(unscoped, [{}]) is FieldScope.SPECIMEN
    assert effective_scope(_field(ValueType.NUMBER, scope=FieldScope.GLOBAL), [{}]) is FieldScope.GLOBAL


def test_format_mean():
    assert format_mean(20.0) == "20"
    assert format_mean(1.5) == "1.50"
    assert format_mean(1 / 3) == "0.33"
    assert format_mean(-4.0) == "-4"


def test_null_field_is_a_contract_violation():
    with pytest.raises(SchemaContractError):
        aggregate_field(None, [], EMPTY_SAMPLE)
