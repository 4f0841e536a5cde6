"""CSV export of a pivot result.

Row keys are quoted with embedded ``"`` doubled.  The parser in
:mod:`pivot_explorer.parser` does not understand doubled quotes, so a key
containing ``"`` does not survive an export/parse round trip unchanged.
"""

from __future__ import annotations

from pivot_explorer import TOTAL_LABEL
from pivot_explorer.models import PivotConfig, PivotResult
from pivot_explorer.utils import format_number

ROW_TOTAL_LABEL = "Row Total"
GRAND_TOTAL_LABEL = "Grand Total"


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def export_labels(config: PivotConfig) -> tuple[str, str]:
    """Return the ``(row_label, col_label)`` pair used in the export header."""
    row_label = " > ".join(config.row_fields) or TOTAL_LABEL
    col_label = config.col_field or "Values"
    return row_label, col_label


def pivot_to_csv(result: PivotResult, row_label: str, col_label: str) -> str:
    header = [f"{row_label} / {col_label}", *result.col_keys, ROW_TOTAL_LABEL]
    lines = [",".join(_quote(cell) for cell in header)]

    for r_key in result.row_keys:
        cells = result.matrix.get(r_key, {})
        values = [format_number(cells.get(c_key, 0)) for c_key in result.col_keys]
        total = format_number(result.row_totals.get(r_key, 0))
        lines.append(",".join([_quote(r_key), *values, total]))

    col_totals = [format_number(result.col_totals.get(c_key, 0)) for c_key in result.col_keys]
    lines.append(",".join([GRAND_TOTAL_LABEL, *col_totals, format_number(result.grand_total)]))
    return "\n".join(lines)
