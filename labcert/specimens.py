from __future__ import annotations

import logging

from .results import SPECIMEN_KEY_PATTERN, Row, SampleResults, decode_results
from .schema import FieldSchema, Sample, Standard, require_sample, require_standard, to_number

logger = logging.getLogger(__name__)

QTY_NAME_MARKERS = ("cantidad", "número")
# Upper bound on inferred specimens; larger counts are clamped.
MAX_SPECIMENS = 200


def find_qty_field(standard: Standard) -> FieldSchema | None:
    for item in standard.fields:
        name = item.name.lower()
        if "qty" in item.id or any(marker in name for marker in QTY_NAME_MARKERS):
            return item
    return None


def _as_count(value: object) -> int | None:
    number = to_number(value)
    if number is None:
        return None
    return _clamp_count(max(0, int(number)))


def _clamp_count(count: int) -> int:
    if count > MAX_SPECIMENS:
        logger.warning("Specimen count %s exceeds the limit of %s; clamping", count, MAX_SPECIMENS)
        return MAX_SPECIMENS
    return count


def _scan_max_index(keys: list[str]) -> int:
    highest = -1
    for key in keys:
        match = SPECIMEN_KEY_PATTERN.match(key)
        if match:
            highest = max(highest, int(match.group("index")))
    return _clamp_count(highest + 1)


def infer_specimen_count(standard: Standard, sample: Sample, decoded: SampleResults | None = None) -> int:
    """Number of specimens, by precedence: ``_qty`` hint, the count field, key scan.

    Total over any result bag: unusable evidence falls through to the next
    tier and the last tier yields 0 when nothing looks like a specimen key.
    """
    require_standard(standard)
    require_sample(sample)
    results = sample.results or {}

    count = _as_count(results.get("_qty"))
    if count is not None:
        logger.debug("Sample %s: %s specimens from _qty hint", sample.id, count)
        return count

    qty_field = find_qty_field(standard)
    if qty_field is not None:
        count = _as_count(results.get(qty_field.id))
        if count is not None:
            logger.debug("Sample %s: %s specimens from field %s", sample.id, count, qty_field.id)
            return count

    if decoded is None:
        decoded = decode_results(results, standard.fields)
    count = _scan_max_index(decoded.raw_keys())
    logger.debug("Sample %s: %s specimens from key scan", sample.id, count)
    return count


def extract_rows(standard: Standard, sample: Sample) -> list[Row]:
    """One row per specimen index; fields without a value for that index are absent."""
    require_standard(standard)
    require_sample(sample)
    decoded = decode_results(sample.results, standard.fields)
    count = infer_specimen_count(standard, sample, decoded)

    rows: list[Row] = []
    for index in range(count):
        row: Row = {}
        for item in standard.fields:
            value = decoded.specimen_value(item.id, index)
            if value is not None:
                row[item.id] = value
        rows.append(row)
    return rows
