"""Pivot configuration — smart defaults and validation of untrusted configs."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from pivot_explorer.models import (
    Aggregator,
    CellValue,
    ConfigError,
    ParsedTable,
    PivotConfig,
)


def get_headers(records: Sequence[Mapping[str, CellValue]]) -> list[str]:
    """Field names of the first record, in order."""
    if not records:
        return []
    return list(records[0].keys())


def get_numeric_headers(records: Sequence[Mapping[str, CellValue]]) -> list[str]:
    """Fields whose value in the first record is a number."""
    if not records:
        return []
    first = records[0]
    return [
        name
        for name, value in first.items()
        if isinstance(value, (int, float)) and not isinstance(value, bool)
    ]


def default_config(table: ParsedTable) -> PivotConfig:
    """Group by the first text field and SUM the first numeric field.

    Falls back to the first / last field when no value of the wanted kind
    exists in the first record.  An empty table gives an empty config.
    """
    fields = list(table.fields)
    if not fields:
        return PivotConfig()
    first = table.records[0] if table.records else {}
    numeric = get_numeric_headers([first]) if first else []
    text = [name for name in fields if isinstance(first.get(name), str)]
    value_field = numeric[0] if numeric else fields[-1]
    category = text[0] if text else fields[0]
    return PivotConfig(row_fields=(category,), value_field=value_field, aggregator=Aggregator.SUM)


def sanitize_config(
    candidate: PivotConfig,
    fields: Sequence[str],
    fallback: PivotConfig | None = None,
) -> PivotConfig:
    """Return *candidate* with every field reference checked against *fields*.

    - unknown row fields are dropped; if none survive, the fallback's valid
      row fields are used instead;
    - an unknown column field is cleared;
    - an unknown value field is replaced by the fallback's value field;
    - an unrecognised aggregator is replaced by the fallback's aggregator.

    Raises
    ------
    ConfigError
        If neither *candidate* nor *fallback* names a usable value field.
    """
    known = set(fields)

    row_fields = tuple(name for name in candidate.row_fields if name in known)
    if candidate.row_fields and not row_fields and fallback is not None:
        row_fields = tuple(name for name in fallback.row_fields if name in known)

    col_field = candidate.col_field if candidate.col_field in known else None

    value_field = candidate.value_field
    if value_field not in known:
        if fallback is not None and fallback.value_field in known:
            value_field = fallback.value_field
        else:
            raise ConfigError(
                f"Unknown value field {candidate.value_field!r}. "
                f"Available fields: {', '.join(fields) or '(none)'}"
            )

    aggregator: Aggregator | str = candidate.aggregator
    if Aggregator.coerce(aggregator) is None and fallback is not None:
        aggregator = fallback.aggregator

    return PivotConfig(
        row_fields=row_fields,
        col_field=col_field,
        value_field=value_field,
        aggregator=aggregator,
    )
