"""CLI entry point for pivot-explorer."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table as RichTable

from pivot_explorer import __version__
from pivot_explorer.assistant import (
    AssistantRequest,
    apply_assistant_reply,
    build_prompt,
    parse_assistant_reply,
)
from pivot_explorer.config import sanitize_config
from pivot_explorer.export import export_labels, pivot_to_csv
from pivot_explorer.io import load_text, write_json, write_text
from pivot_explorer.models import (
    Aggregator,
    ConfigError,
    ParsedTable,
    ParseReport,
    PivotConfig,
    PivotResult,
    RunManifest,
    WorkspaceState,
)
from pivot_explorer.parser import parse_table
from pivot_explorer.pivot import calculate_pivot, display_string
from pivot_explorer.report import write_report
from pivot_explorer.utils import format_number, sha256_file, utcnow_iso
from pivot_explorer.workspace import (
    JsonFileStore,
    MemoryStore,
    WorkspaceStore,
    load_workspace,
    save_workspace,
)

app = typer.Typer(
    name="pivotx",
    help="pivot-explorer — Explore CSV exports with ad-hoc pivot tables.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

PIVOT_CSV_NAME = "pivot_analysis.csv"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {escape(msg)}")


def _warn(msg: str) -> None:
    console.print(f"  [yellow]![/yellow] {escape(msg)}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"pivot-explorer v{__version__}")
        raise typer.Exit()


def _aggregator_name(aggregator: Aggregator | str) -> str:
    return aggregator.value if isinstance(aggregator, Aggregator) else aggregator


def _store_for(workspace: Path | None) -> WorkspaceStore:
    return JsonFileStore(workspace) if workspace else MemoryStore()


def _write_manifest(
    out_dir: Path,
    input_file: Path,
    created_at: str,
    report: ParseReport,
    *,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    sha256 = ""
    try:
        sha256 = sha256_file(input_file)
    except OSError:
        pass

    manifest = RunManifest(
        version=__version__,
        input_path=str(input_file.resolve()),
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        rows_in=report.lines_in,
        rows_out=report.rows_out,
        sha256=sha256,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _write_parse_report(out_dir: Path, report: ParseReport) -> Path:
    return write_json(out_dir / "parse_report.json", report.to_dict())


def _fail(
    out_dir: Path,
    input_file: Path,
    created_at: str,
    *,
    message: str,
    report: ParseReport | None = None,
    error_code: int = 2,
) -> NoReturn:
    """Write failure artifacts, report *message*, and exit with *error_code*."""
    if report is None:
        report = ParseReport()
    report_path = _write_parse_report(out_dir, report)
    manifest_path = _write_manifest(
        out_dir,
        input_file,
        created_at,
        report,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  Parse report -> {escape(str(report_path))}")
    console.print(f"  Manifest     -> {escape(str(manifest_path))}")
    raise typer.Exit(code=error_code)


def _load_table(out_dir: Path, input_file: Path, created_at: str) -> ParsedTable:
    try:
        content = load_text(input_file)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _fail(out_dir, input_file, created_at, message=str(exc))
    table = parse_table(content)
    if table.is_empty:
        _fail(
            out_dir,
            input_file,
            created_at,
            message="Input has no data rows (empty file or every line malformed).",
            report=table.report,
        )
    return table


def _requested_config(
    base: PivotConfig,
    rows: list[str] | None,
    no_rows: bool,
    col: str | None,
    no_col: bool,
    value: str | None,
    agg: Aggregator | None,
) -> PivotConfig:
    row_fields = base.row_fields
    if no_rows:
        row_fields = ()
    elif rows:
        row_fields = tuple(rows)
    col_field = base.col_field
    if no_col:
        col_field = None
    elif col:
        col_field = col
    return PivotConfig(
        row_fields=row_fields,
        col_field=col_field,
        value_field=value if value else base.value_field,
        aggregator=agg if agg else base.aggregator,
    )


def _config_adjustments(requested: PivotConfig, applied: PivotConfig) -> list[str]:
    notes: list[str] = []
    dropped = [name for name in requested.row_fields if name not in applied.row_fields]
    if dropped:
        notes.append(f"Ignored unknown row field(s): {', '.join(dropped)}")
    if requested.col_field and applied.col_field is None:
        notes.append(f"Ignored unknown column field: {requested.col_field}")
    if requested.value_field != applied.value_field:
        notes.append(
            f"Unknown value field {requested.value_field!r}; using {applied.value_field!r}"
        )
    return notes


def _pivot_table(result: PivotResult, config: PivotConfig) -> RichTable:
    row_label, col_label = export_labels(config)
    tbl = RichTable(
        title=escape(f"{_aggregator_name(config.aggregator)} of {config.value_field}"),
        show_lines=False,
    )
    tbl.add_column(escape(f"{row_label} / {col_label}"), style="bold")
    for c_key in result.col_keys:
        tbl.add_column(escape(c_key), justify="right")
    tbl.add_column("Row Total", justify="right", style="cyan")
    for r_key in result.row_keys:
        cells = [format_number(result.matrix[r_key][c]) for c in result.col_keys]
        tbl.add_row(escape(r_key), *cells, format_number(result.row_totals[r_key]))
    tbl.add_row(
        "Grand Total",
        *(format_number(result.col_totals[c]) for c in result.col_keys),
        format_number(result.grand_total),
        style="bold cyan",
    )
    return tbl


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """pivot-explorer CLI."""


# ── pivot command ────────────────────────────────────────────────


@app.command()
def pivot(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to the CSV export.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the pivot CSV, report, parse report and manifest.",
    ),
    rows: list[str] | None = typer.Option(
        None, "--row", "-r",
        help="Row grouping field; repeat for a hierarchy (primary first).",
    ),
    no_rows: bool = typer.Option(
        False, "--no-rows",
        help="Do not group rows (single 'Total' row).",
    ),
    col: str | None = typer.Option(
        None, "--col", "-c",
        help="Column pivot field.",
    ),
    no_col: bool = typer.Option(
        False, "--no-col",
        help="Do not pivot columns (single 'Total' column).",
    ),
    value: str | None = typer.Option(
        None, "--value", "-v",
        help="Numeric field to aggregate.",
    ),
    agg: Aggregator | None = typer.Option(
        None, "--agg", "-a",
        help="Aggregator: SUM, COUNT, AVERAGE, MIN or MAX.",
        case_sensitive=False,
    ),
    workspace: Path | None = typer.Option(
        None, "--workspace", "-w",
        help="Workspace JSON file holding the last configuration; updated after the run.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Build a pivot table from a CSV export."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)

    if not quiet:
        console.print(Panel(
            f"[bold]pivot-explorer[/bold] v{__version__}\n"
            f"Input:  {escape(str(input_file))}\nOutput: {escape(str(out_dir))}",
            title="Pivot Start", border_style="blue",
        ))

    # ── Parse ────────────────────────────────────────────────────
    echo("[blue]>[/blue] Parsing input file …")
    table = _load_table(out_dir, input_file, created_at)
    report = table.report
    echo(f"  {report.rows_out} records x {len(table.fields)} fields")
    if not quiet:
        for w in report.warnings:
            _warn(w)

    try:
        # ── Configure ────────────────────────────────────────────
        store = _store_for(workspace)
        try:
            state = load_workspace(store, table)
        except ValueError as exc:
            _fail(out_dir, input_file, created_at, message=str(exc), report=report)

        requested = _requested_config(state.config, rows, no_rows, col, no_col, value, agg)
        try:
            config = sanitize_config(requested, table.fields, fallback=state.config)
        except ConfigError as exc:
            _fail(out_dir, input_file, created_at, message=str(exc), report=report)
        if not quiet:
            for note in _config_adjustments(requested, config):
                _warn(note)

        # ── Aggregate ────────────────────────────────────────────
        echo("[blue]>[/blue] Aggregating …")
        result = calculate_pivot(table.records, config)
        if not quiet:
            console.print(_pivot_table(result, config))

        # ── Artifacts ────────────────────────────────────────────
        row_label, col_label = export_labels(config)
        csv_path = write_text(out_dir / PIVOT_CSV_NAME, pivot_to_csv(result, row_label, col_label))
        echo(f"  Pivot CSV    -> {escape(str(csv_path))}")
        report_path = write_report(out_dir, table, config, result)
        echo(f"  Report       -> {escape(str(report_path))}")
        parse_path = _write_parse_report(out_dir, report)
        echo(f"  Parse report -> {escape(str(parse_path))}")
        manifest_path = _write_manifest(out_dir, input_file, created_at, report)
        echo(f"  Manifest     -> {escape(str(manifest_path))}")

        if workspace:
            save_workspace(store, WorkspaceState(
                config=config, messages=state.messages, saved_at=state.saved_at,
            ))
            echo(f"  Workspace    -> {escape(str(workspace))}")

        if not quiet:
            console.print(Panel(
                f"[green]Done[/green] — {len(result.row_keys)} rows x "
                f"{len(result.col_keys)} columns -> {escape(str(csv_path))}",
                title="Pivot Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        _fail(
            out_dir,
            input_file,
            created_at,
            message=f"Unexpected internal error: {exc}",
            report=report,
            error_code=1,
        )


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to the CSV export.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the parse report + manifest.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes parse report + manifest.",
    ),
) -> None:
    """Parse a file without aggregating.

    Writes parse_report.json + run_manifest.json only.
    Exit 0 = OK, exit 2 = no usable records.
    """
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)

    table = _load_table(out_dir, input_file, created_at)
    report = table.report
    report_path = _write_parse_report(out_dir, report)
    manifest_path = _write_manifest(out_dir, input_file, created_at, report)

    if not quiet:
        tbl = RichTable(title="Validation Summary", show_lines=True)
        tbl.add_column("Check", style="bold")
        tbl.add_column("Result")
        tbl.add_row("Fields", escape(", ".join(table.fields)))
        tbl.add_row("Lines in", str(report.lines_in))
        tbl.add_row("Records", str(report.rows_out))
        tbl.add_row("Dropped", str(report.dropped_lines))
        if report.dropped_line_numbers:
            tbl.add_row("Dropped at line", ", ".join(map(str, report.dropped_line_numbers)))
        for w in report.warnings:
            tbl.add_row("Warning", f"[yellow]{escape(w)}[/yellow]")
        tbl.add_row("Status", "[green]PASS[/green]")
        console.print(tbl)
    console.print(f"  Parse report -> {escape(str(report_path))}")
    console.print(f"  Manifest     -> {escape(str(manifest_path))}")


# ── log command ──────────────────────────────────────────────────


@app.command()
def log(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to the CSV export.",
        exists=True, readable=True,
    ),
    limit: int = typer.Option(
        50, "--limit", "-n", min=1,
        help="Maximum number of records to show.",
    ),
) -> None:
    """Show the parsed records as a table."""
    try:
        content = load_text(input_file)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    table = parse_table(content)
    if table.is_empty:
        _err("Input has no data rows (empty file or every line malformed).")
        raise typer.Exit(code=2)

    tbl = RichTable(title=f"Raw Data Log — {len(table.records)} records found")
    fields = list(dict.fromkeys(table.fields))
    for name in fields:
        tbl.add_column(escape(name))
    for record in table.records[:limit]:
        tbl.add_row(*(escape(display_string(record.get(name))) for name in fields))
    console.print(tbl)
    if len(table.records) > limit:
        console.print(f"  … {len(table.records) - limit} more")


# ── assist command ───────────────────────────────────────────────


@app.command()
def assist(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to the CSV export.",
        exists=True, readable=True,
    ),
    workspace: Path = typer.Option(
        ..., "--workspace", "-w",
        help="Workspace JSON file to read and update.",
    ),
    query: str = typer.Option(
        ..., "--query",
        help="The question or instruction given to the assistant.",
    ),
    reply: Path | None = typer.Option(
        None, "--reply",
        help="File holding the assistant's JSON reply to apply.",
        exists=True, readable=True,
    ),
    show_prompt: bool = typer.Option(
        False, "--show-prompt",
        help="Print the prompt to send to the assistant and exit.",
    ),
) -> None:
    """Prepare an assistant prompt, or apply the assistant's reply to the workspace."""
    try:
        table = parse_table(load_text(input_file))
    except (FileNotFoundError, ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    store = JsonFileStore(workspace)
    try:
        state = load_workspace(store, table)
    except ValueError as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    request = AssistantRequest(query=query, fields=table.fields, current=state.config)
    if show_prompt or reply is None:
        console.print(build_prompt(request), markup=False, highlight=False)
        return

    try:
        parsed = parse_assistant_reply(load_text(reply), request)
    except (ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    state = save_workspace(store, apply_assistant_reply(state, query, parsed))
    console.print(Panel(escape(parsed.explanation), title="Assistant", border_style="magenta"))
    if parsed.config is not None:
        cfg = state.config
        console.print(escape(
            "  Config: rows="
            f"{list(cfg.row_fields)}, col={cfg.col_field or 'None'}, "
            f"value={cfg.value_field}, agg={_aggregator_name(cfg.aggregator)}"
        ))
    console.print(f"  Workspace -> {escape(str(workspace))}")
