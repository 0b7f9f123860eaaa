from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from labcert.compliance import (  # noqa: E402
    evaluate_field,
    evaluate_row_value,
    format_specification,
    has_evaluable_data,
    is_metadata_field,
)
from labcert.results import BooleanValue, NumberValue, SelectValue, TextValue  # noqa: E402
from labcert.schema import FieldSchema, FieldScope, Sample, SchemaContractError, ValueType  # noqa: E402

EMPTY_SAMPLE = Sample(id="s1", code="MUE-1")


def _number(min_limit=None, max_limit=None) -> FieldSchema:
    return FieldSchema(
        id="f",
        name="Resistencia",
        value_type=ValueType.NUMBER,
        scope=FieldScope.GLOBAL,
        min_limit=min_limit,
        max_limit=max_limit,
    )


def _boolean(scope: FieldScope) -> FieldSchema:
    return FieldSchema(id="f", name="Cumplimiento", value_type=ValueType.BOOLEAN, scope=scope)


def test_number_closed_interval():
    field_schema = _number(10, 20)

    assert evaluate_field(field_schema, 25, [], EMPTY_SAMPLE) is False
    assert evaluate_field(field_schema, 15, [], EMPTY_SAMPLE) is True
    assert evaluate_field(field_schema, None, [], EMPTY_SAMPLE) is True
    assert evaluate_field(field_schema, 10, [], EMPTY_SAMPLE) is True
    assert evaluate_field(field_schema, 20, [], EMPTY_SAMPLE) is True
    assert evaluate_field(field_schema, 9.99, [], EMPTY_SAMPLE) is False


def test_number_single_bounds():
    assert evaluate_field(_number(min_limit=200), 180, [], EMPTY_SAMPLE) is False
    assert evaluate_field(_number(min_limit=200), 210, [], EMPTY_SAMPLE) is True
    assert evaluate_field(_number(max_limit=3), 3.5, [], EMPTY_SAMPLE) is False
    assert evaluate_field(_number(), -1000, [], EMPTY_SAMPLE) is True


def test_specimen_boolean_fails_when_any_row_is_false():
    field_schema = _boolean(FieldScope.SPECIMEN)
    failing = [{"f": BooleanValue(True)}, {"f": BooleanValue(False)}, {"f": BooleanValue(True)}]
    passing = [{"f": BooleanValue(True)}, {"f": BooleanValue(True)}]

    assert evaluate_field(field_schema, None, failing, EMPTY_SAMPLE) is False
    assert evaluate_field(field_schema, None, passing, EMPTY_SAMPLE) is True


def test_specimen_boolean_passes_without_rows_or_values():
    field_schema = _boolean(FieldScope.SPECIMEN)
    assert evaluate_field(field_schema, None, [], EMPTY_SAMPLE) is True
    assert evaluate_field(field_schema, None, [{}, {}], EMPTY_SAMPLE) is True


def test_global_boolean_fails_only_on_literal_false():
    field_schema = _boolean(FieldScope.GLOBAL)

    assert evaluate_field(field_schema, None, [], Sample(id="a", code="A", results={"f": False})) is False
    assert evaluate_field(field_schema, None, [], Sample(id="b", code="B", results={"f": True})) is True
    assert evaluate_field(field_schema, None, [], Sample(id="c", code="C", results={"f": "false"})) is True
    assert evaluate_field(field_schema, None, [], EMPTY_SAMPLE) is True


def test_select_and_text_always_pass():
    select = FieldSchema(id="s", name="Edad", value_type=ValueType.SELECT, scope=FieldScope.SPECIMEN)
    text = FieldSchema(id="t", name="Obs", value_type=ValueType.TEXT, scope=FieldScope.GLOBAL)

    assert evaluate_field(select, None, [{"s": SelectValue("x")}], EMPTY_SAMPLE) is True
    assert evaluate_field(text, None, [], Sample(id="a", code="A", results={"t": False})) is True


def test_row_value_flags():
    field_schema = _number(14.8, 15.2)

    assert evaluate_row_value(field_schema, NumberValue(16)) is False
    assert evaluate_row_value(field_schema, NumberValue(15)) is True
    assert evaluate_row_value(field_schema, None) is True
    assert evaluate_row_value(field_schema, TextValue("abc")) is True
    assert evaluate_row_value(_boolean(FieldScope.SPECIMEN), BooleanValue(False)) is False
    assert evaluate_row_value(_boolean(FieldScope.SPECIMEN), TextValue("false")) is True


def test_format_specification():
    assert format_specification(_number(10, 20)) == "10 - 20"
    assert format_specification(_number(0.3, 0.8)) == "0.3 - 0.8"
    assert format_specification(_number(min_limit=200)) == "≥ 200"
    assert format_specification(_number(max_limit=0.035)) == "≤ 0.035"
    assert format_specification(_number()) == "-"


def test_metadata_fields_are_recognized_by_id():
    assert is_metadata_field(FieldSchema(id="f_c083_qty", name="Número", value_type=ValueType.NUMBER))
    assert not is_metadata_field(FieldSchema(id="f_c083_4", name="Resistencia", value_type=ValueType.NUMBER))


def test_has_evaluable_data():
    assert has_evaluable_data(_number(10, 20), 12, [], EMPTY_SAMPLE) is True
    assert has_evaluable_data(_number(10, 20), None, [], EMPTY_SAMPLE) is False
    assert has_evaluable_data(_boolean(FieldScope.SPECIMEN), None, [{"f": BooleanValue(True)}], EMPTY_SAMPLE) is True
    assert has_evaluable_data(_boolean(FieldScope.GLOBAL), None, [], EMPTY_SAMPLE) is False


def test_null_schema_is_a_contract_violation():
    with pytest.raises(SchemaContractError, match="Expected a FieldSchema"):
        evaluate_field(None, 10, [], EMPTY_SAMPLE)
    with pytest.raises(SchemaContractError):
        evaluate_row_value("f", NumberValue(1))
