"""Excel report writer — produces Pivot_Report.xlsx."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from pivot_explorer import __version__
from pivot_explorer.export import GRAND_TOTAL_LABEL, ROW_TOTAL_LABEL, export_labels
from pivot_explorer.models import Aggregator, ParsedTable, PivotConfig, PivotResult

REPORT_NAME = "Pivot_Report.xlsx"

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
WARN_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")

NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
TOTAL_FILL = PatternFill(start_color="D6E4F0", end_color="D6E4F0", fill_type="solid")

NUMBER_FMT = "#,##0.00"
COUNT_FMT = "#,##0"

_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")


# ── Frames ───────────────────────────────────────────────────────


def pivot_frame(result: PivotResult, row_label: str = "") -> pd.DataFrame:
    """Matrix plus a ``Row Total`` column and a ``Grand Total`` row."""
    columns = [*result.col_keys, ROW_TOTAL_LABEL]
    rows = [
        [*(result.matrix[r][c] for c in result.col_keys), result.row_totals[r]]
        for r in result.row_keys
    ]
    rows.append([*(result.col_totals[c] for c in result.col_keys), result.grand_total])
    index = pd.Index([*result.row_keys, GRAND_TOTAL_LABEL], name=row_label or None)
    return pd.DataFrame(rows, index=index, columns=columns)


def records_frame(table: ParsedTable) -> pd.DataFrame:
    """Records as a DataFrame with columns in header order."""
    columns = list(dict.fromkeys(table.fields))
    return pd.DataFrame(list(table.records), columns=columns)


# ── Helpers ──────────────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int, row: int = 1) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=row, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            width = max(width, len(str(row[0].value or "")))
        ws.column_dimensions[letter].width = min(width + 4, 40)


def _excel_value(val: Any) -> Any:
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        return val
    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"
    return val


def _write_pivot_sheet(
    wb: Workbook, frame: pd.DataFrame, config: PivotConfig, *, title: str
) -> None:
    ws = wb.create_sheet(title="Pivot")
    ws.cell(row=1, column=1, value=title).font = TITLE_FONT
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    ws.cell(row=2, column=1, value=f"Generated {generated}").font = SUBTITLE_FONT

    header_row = 4
    ws.cell(row=header_row, column=1, value=frame.index.name or "")
    for c_idx, name in enumerate(frame.columns, 2):
        ws.cell(row=header_row, column=c_idx, value=_excel_value(name))
    _style_header(ws, len(frame.columns) + 1, row=header_row)

    fmt = COUNT_FMT if config.aggregator is Aggregator.COUNT else NUMBER_FMT
    last_row = header_row + len(frame)
    body = zip(frame.index, frame.itertuples(index=False, name=None))
    for r_idx, (key, values) in enumerate(body, header_row + 1):
        ws.cell(row=r_idx, column=1, value=_excel_value(key)).font = LABEL_FONT
        for c_idx, val in enumerate(values, 2):
            cell = ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
            cell.number_format = fmt
            if r_idx == last_row or c_idx == len(values) + 1:
                cell.fill = TOTAL_FILL
    for c_idx in range(1, len(frame.columns) + 2):
        ws.cell(row=last_row, column=c_idx).fill = TOTAL_FILL
    ws.freeze_panes = f"B{header_row + 1}"
    _auto_width(ws)


def _write_data_sheet(wb: Workbook, frame: pd.DataFrame) -> None:
    ws = wb.create_sheet(title="Data")
    col_names = [str(c) for c in frame.columns]
    if not col_names:
        ws.cell(row=1, column=1, value="No data").font = VALUE_FONT
        return

    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=1, column=c_idx, value=_excel_value(col_name))
    for r_idx, row_vals in enumerate(frame.itertuples(index=False, name=None), 2):
        for c_idx, val in enumerate(row_vals, 1):
            ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
    _style_header(ws, len(col_names))
    ws.freeze_panes = "A2"
    _auto_width(ws)
    if len(frame) > 0:
        ref = f"A1:{get_column_letter(len(col_names))}{len(frame) + 1}"
        table = Table(displayName="Data", ref=ref)
        table.tableStyleInfo = TableStyleInfo(
            name="TableStyleMedium9", showFirstColumn=False,
            showLastColumn=False, showRowStripes=True, showColumnStripes=False,
        )
        ws.add_table(table)


def _write_notes(wb: Workbook, table: ParsedTable, config: PivotConfig) -> None:
    ws = wb.create_sheet(title="Notes")
    report = table.report
    aggregator = config.aggregator
    agg_name = aggregator.value if isinstance(aggregator, Aggregator) else str(aggregator)

    rows: list[tuple[str, Any]] = [
        ("Tool", f"pivot-explorer v{__version__}"),
        ("Rows", " > ".join(config.row_fields) or "(none)"),
        ("Columns", config.col_field or "(none)"),
        ("Values", config.value_field),
        ("Aggregator", agg_name),
        ("Lines in", report.lines_in),
        ("Records", report.rows_out),
        ("Dropped lines", report.dropped_lines),
    ]
    for r_idx, (label, value) in enumerate(rows, 1):
        ws.cell(row=r_idx, column=1, value=label).font = LABEL_FONT
        ws.cell(row=r_idx, column=2, value=_excel_value(value)).font = VALUE_FONT
        for c in (1, 2):
            ws.cell(row=r_idx, column=c).fill = NOTE_FILL

    row = len(rows) + 2
    if report.warnings:
        for warn in report.warnings:
            ws.cell(row=row, column=1, value=f"⚠ {warn}").font = WARN_FONT
            row += 1
    else:
        ws.cell(row=row, column=1, value="No warnings").font = VALUE_FONT

    ws.column_dimensions["A"].width = 18
    ws.column_dimensions["B"].width = 40


# ── Public API ───────────────────────────────────────────────────


def write_report(
    out_dir: Path,
    table: ParsedTable,
    config: PivotConfig,
    result: PivotResult,
) -> Path:
    """Write ``Pivot_Report.xlsx`` and return the path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / REPORT_NAME

    row_label, col_label = export_labels(config)

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)

    _write_pivot_sheet(
        wb,
        pivot_frame(result, row_label=row_label),
        config,
        title=f"{row_label} / {col_label}",
    )
    _write_data_sheet(wb, records_frame(table))
    _write_notes(wb, table, config)

    tmp_path = out_dir / "Pivot_Report.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
