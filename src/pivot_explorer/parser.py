"""Tabular parser — raw comma-separated text to typed records.

The dialect is deliberately small: ``"`` toggles a quoted section (commas
inside it are literal) and is itself dropped; there is no ``""`` escape.
Lines whose field count differs from the header are dropped whole.
"""

from __future__ import annotations

import math
import re
from collections import Counter

from pivot_explorer.models import CellValue, ParsedTable, ParseReport

_LINE_BREAK_RE = re.compile(r"\r\n|\n")
_NUMBER_NOISE_RE = re.compile(r"[$,\s]")
_LEADING_NUMBER_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


def split_line(line: str) -> list[str]:
    """Split one line on commas that sit outside quoted sections."""
    fields: list[str] = []
    current: list[str] = []
    in_quote = False
    for char in line:
        if char == '"':
            in_quote = not in_quote
        elif char == "," and not in_quote:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


def _strip_header(name: str) -> str:
    name = name.strip()
    if name.startswith('"'):
        name = name[1:]
    if name.endswith('"'):
        name = name[:-1]
    return name


def _unwrap(raw: str) -> str:
    value = raw.strip()
    if value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value


def infer_value(raw: str) -> CellValue:
    """Return *raw* as a float when it starts with a number, else the trimmed text.

    ``$``, ``,`` and whitespace are ignored for the numeric check, so
    ``"$1,200.50"`` gives ``1200.5``.  Only the leading number is read:
    ``"12%"`` gives ``12.0`` and ``"2024-01-15"`` gives ``2024.0``.
    Digits are ASCII only.  Empty text stays ``""``.
    """
    value = _unwrap(raw)
    clean = _NUMBER_NOISE_RE.sub("", value)
    match = _LEADING_NUMBER_RE.match(clean)
    if match:
        number = float(match.group())
        if math.isfinite(number):
            return number
    return value


def parse_table(content: str) -> ParsedTable:
    """Parse *content* into field names, records and a :class:`ParseReport`."""
    numbered = [
        (idx, line)
        for idx, line in enumerate(_LINE_BREAK_RE.split(content), start=1)
        if line.strip() != ""
    ]
    if not numbered:
        return ParsedTable()

    _, header_line = numbered[0]
    fields = tuple(_strip_header(name) for name in split_line(header_line))
    width = len(fields)

    records: list[dict[str, CellValue]] = []
    dropped_at: list[int] = []
    for line_no, line in numbered[1:]:
        values = split_line(line)
        if len(values) != width:
            dropped_at.append(line_no)
            continue
        records.append({name: infer_value(raw) for name, raw in zip(fields, values)})

    warnings: list[str] = []
    duplicates = sorted(name for name, count in Counter(fields).items() if count > 1)
    if duplicates:
        warnings.append(f"Duplicate header names (last column wins): {', '.join(duplicates)}")
    if dropped_at:
        suffix = "" if len(dropped_at) == 1 else "s"
        warnings.append(
            f"Dropped {len(dropped_at)} line{suffix} with a field count other than {width}"
        )

    report = ParseReport(
        lines_in=len(numbered) - 1,
        rows_out=len(records),
        dropped_lines=len(dropped_at),
        dropped_line_numbers=dropped_at,
        warnings=warnings,
    )
    return ParsedTable(fields=fields, records=tuple(records), report=report)


def parse_csv(content: str) -> list[dict[str, CellValue]]:
    """Parse *content* and return only the records, in line order."""
    return list(parse_table(content).records)
