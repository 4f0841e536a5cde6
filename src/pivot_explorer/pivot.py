"""Pivot aggregation — pure functions, no side effects."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from pivot_explorer import KEY_SEPARATOR, TOTAL_LABEL, UNASSIGNED_LABEL
from pivot_explorer.models import Aggregator, CellValue, PivotConfig, PivotResult
from pivot_explorer.utils import format_number, is_finite_number

# ── Keys ─────────────────────────────────────────────────────────


def display_string(value: CellValue) -> str:
    """Natural text form of a record value; ``None`` renders as ``""``."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        raise TypeError("record values must be str, number or None, not bool")
    if isinstance(value, (int, float)):
        return format_number(value)
    raise TypeError(f"unsupported record value type: {type(value).__name__}")


def numeric_value(value: CellValue) -> float | None:
    """The value as a float when it is a finite number; text and null give ``None``."""
    if value is None or isinstance(value, str):
        return None
    if is_finite_number(value):
        return float(value)
    return None


def _is_falsy(value: CellValue) -> bool:
    if value is None or isinstance(value, str):
        return not value
    return not value or value != value  # 0, -0.0 and NaN


def row_key(record: Mapping[str, CellValue], row_fields: Sequence[str]) -> str:
    if not row_fields:
        return TOTAL_LABEL
    parts = []
    for name in row_fields:
        value = record.get(name)
        parts.append(UNASSIGNED_LABEL if value is None else display_string(value))
    return KEY_SEPARATOR.join(parts)


def col_key(record: Mapping[str, CellValue], col_field: str | None) -> str:
    # Falsy values share the bucket used when no column field is set.
    if not col_field:
        return TOTAL_LABEL
    value = record.get(col_field)
    if _is_falsy(value):
        return TOTAL_LABEL
    return display_string(value)


# ── Reduction ────────────────────────────────────────────────────


def aggregate_values(values: Sequence[float], aggregator: Aggregator | str) -> float:
    """Reduce *values* with *aggregator*; empty buckets and unknown aggregators give 0."""
    if not values:
        return 0
    kind = Aggregator.coerce(aggregator)
    if kind is Aggregator.SUM:
        return sum(values)
    if kind is Aggregator.COUNT:
        return len(values)
    if kind is Aggregator.AVERAGE:
        return sum(values) / len(values)
    if kind is Aggregator.MIN:
        return min(values)
    if kind is Aggregator.MAX:
        return max(values)
    return 0


# ── Main pivot function ──────────────────────────────────────────


def calculate_pivot(
    records: Iterable[Mapping[str, CellValue]], config: PivotConfig
) -> PivotResult:
    """Group *records* by *config* and aggregate the value field.

    Row and column totals reduce the concatenated raw buckets, not the
    per-cell results, so AVERAGE/MIN/MAX totals stay exact.
    """
    row_seen: set[str] = set()
    col_seen: set[str] = set()
    buckets: dict[tuple[str, str], list[float]] = {}

    for record in records:
        r_key = row_key(record, config.row_fields)
        c_key = col_key(record, config.col_field)
        row_seen.add(r_key)
        col_seen.add(c_key)
        bucket = buckets.setdefault((r_key, c_key), [])
        number = numeric_value(record.get(config.value_field))
        if number is not None:
            bucket.append(number)

    row_keys = tuple(sorted(row_seen))
    col_keys = tuple(sorted(col_seen))
    aggregator = config.aggregator

    matrix: dict[str, dict[str, float]] = {}
    row_totals: dict[str, float] = {}
    all_values: list[float] = []
    for r_key in row_keys:
        cells: dict[str, float] = {}
        row_values: list[float] = []
        for c_key in col_keys:
            nums = buckets.get((r_key, c_key), [])
            cells[c_key] = aggregate_values(nums, aggregator)
            row_values.extend(nums)
        matrix[r_key] = cells
        row_totals[r_key] = aggregate_values(row_values, aggregator)
        all_values.extend(row_values)

    col_totals: dict[str, float] = {}
    for c_key in col_keys:
        col_values: list[float] = []
        for r_key in row_keys:
            col_values.extend(buckets.get((r_key, c_key), []))
        col_totals[c_key] = aggregate_values(col_values, aggregator)

    return PivotResult(
        row_keys=row_keys,
        col_keys=col_keys,
        matrix=matrix,
        row_totals=row_totals,
        col_totals=col_totals,
        grand_total=aggregate_values(all_values, aggregator),
    )
