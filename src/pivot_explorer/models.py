"""Data models / typed containers used across the package."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from numbers import Integral
from typing import Any

# A record value is one of three variants: text, number, or null.
# Consumers branch on the variant explicitly (see ``pivot.display_string``).
CellValue = str | float | None
Record = Mapping[str, CellValue]


class ConfigError(ValueError):
    """A pivot configuration cannot be made valid for the current dataset."""


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


class Aggregator(str, Enum):
    """Reduction applied to a bucket of numbers."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVERAGE = "AVERAGE"
    MIN = "MIN"
    MAX = "MAX"

    @classmethod
    def coerce(cls, value: object) -> Aggregator | None:
        """Return the member named by *value* (case-insensitive), else ``None``."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                return None
        return None


@dataclass
class ParseReport:
    """Diagnostics emitted alongside every parse.

    Contract invariant: ``dropped_lines == lines_in - rows_out``.
    """

    lines_in: int = 0
    rows_out: int = 0
    dropped_lines: int = 0
    dropped_line_numbers: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.lines_in = _to_non_negative_int(self.lines_in, "lines_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.dropped_lines = _to_non_negative_int(self.dropped_lines, "dropped_lines")
        self.dropped_line_numbers = [
            _to_non_negative_int(n, "dropped_line_numbers") for n in self.dropped_line_numbers or []
        ]
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.rows_out > self.lines_in:
            raise ValueError("rows_out must be <= lines_in")
        if self.dropped_lines != self.lines_in - self.rows_out:
            raise ValueError("dropped_lines must equal lines_in - rows_out")

    def to_dict(self) -> dict[str, Any]:
        return {
            "lines_in": self.lines_in,
            "rows_out": self.rows_out,
            "dropped_lines": self.dropped_lines,
            "dropped_line_numbers": list(self.dropped_line_numbers),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class ParsedTable:
    """Ordered field names plus the typed records parsed from one text block."""

    fields: tuple[str, ...] = ()
    records: tuple[dict[str, CellValue], ...] = ()
    report: ParseReport = field(default_factory=ParseReport)

    @property
    def is_empty(self) -> bool:
        return not self.records


@dataclass(frozen=True)
class PivotConfig:
    """Which fields to group by and how to reduce the value field."""

    row_fields: tuple[str, ...] = ()
    col_field: str | None = None
    value_field: str = ""
    aggregator: Aggregator | str = Aggregator.SUM

    def __post_init__(self) -> None:
        row_fields = tuple(_to_string_list(self.row_fields, "row_fields"))
        object.__setattr__(self, "row_fields", row_fields)
        if self.col_field is not None and not isinstance(self.col_field, str):
            raise TypeError("col_field must be a string or None")
        if not isinstance(self.value_field, str):
            raise TypeError("value_field must be a string")
        # Unrecognised names stay as raw strings; aggregation then yields zeros.
        known = Aggregator.coerce(self.aggregator)
        if known is not None:
            object.__setattr__(self, "aggregator", known)
        elif not isinstance(self.aggregator, str):
            raise TypeError("aggregator must be an Aggregator or a string")

    def to_dict(self) -> dict[str, Any]:
        aggregator = self.aggregator
        return {
            "rowField": list(self.row_fields),
            "colField": self.col_field,
            "valueField": self.value_field,
            "aggregator": aggregator.value if isinstance(aggregator, Aggregator) else aggregator,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PivotConfig:
        return cls(
            row_fields=data.get("rowField") or (),
            col_field=data.get("colField") or None,
            value_field=data.get("valueField") or "",
            aggregator=data.get("aggregator") or Aggregator.SUM,
        )


@dataclass(frozen=True)
class PivotResult:
    """Dense pivot output; recomputed on every change, never mutated."""

    row_keys: tuple[str, ...]
    col_keys: tuple[str, ...]
    matrix: dict[str, dict[str, float]]
    row_totals: dict[str, float]
    col_totals: dict[str, float]
    grand_total: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowKeys": list(self.row_keys),
            "colKeys": list(self.col_keys),
            "matrix": {r: dict(cells) for r, cells in self.matrix.items()},
            "rowTotals": dict(self.row_totals),
            "colTotals": dict(self.col_totals),
            "grandTotal": self.grand_total,
        }


@dataclass(frozen=True)
class ChatMessage:
    id: str
    role: str
    text: str

    def __post_init__(self) -> None:
        if self.role not in ("user", "assistant"):
            raise ValueError(f"role must be 'user' or 'assistant', got {self.role!r}")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "role": self.role, "text": self.text}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChatMessage:
        return cls(id=str(data["id"]), role=str(data["role"]), text=str(data.get("text", "")))


@dataclass(frozen=True)
class WorkspaceState:
    """Everything a session keeps between runs: the configuration and the chat log."""

    config: PivotConfig = field(default_factory=PivotConfig)
    messages: tuple[ChatMessage, ...] = ()
    saved_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "messages": [m.to_dict() for m in self.messages],
            "savedAt": self.saved_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkspaceState:
        raw_config = data.get("config")
        config = PivotConfig.from_dict(raw_config) if isinstance(raw_config, Mapping) else PivotConfig()
        messages = tuple(ChatMessage.from_dict(m) for m in data.get("messages") or [])
        return cls(config=config, messages=messages, saved_at=str(data.get("savedAt") or ""))


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "pivot-explorer"
    version: str = ""
    input_path: str = ""
    output_dir: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    rows_out: int = 0
    sha256: str = ""
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        if self.status not in ("success", "failed"):
            raise ValueError("status must be 'success' or 'failed'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "input_path": self.input_path,
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "sha256": self.sha256,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
