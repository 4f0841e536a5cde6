"""Workspace state — configuration and chat log, persisted through an injected store."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Protocol

from pivot_explorer.config import default_config, sanitize_config
from pivot_explorer.io import read_json, write_json
from pivot_explorer.models import (
    ChatMessage,
    ConfigError,
    ParsedTable,
    WorkspaceState,
)
from pivot_explorer.utils import utcnow_iso

STORAGE_KEY = "pivot_ai_sheet_workspace_v1"
GREETING = "Hi! I'm your AI Analyst. I've loaded the sheet data. Ask me anything about it!"


class WorkspaceStore(Protocol):
    def load(self) -> dict[str, Any] | None: ...

    def save(self, payload: dict[str, Any]) -> None: ...


class MemoryStore:
    """Dict-backed store, one slot per key."""

    def __init__(self, key: str = STORAGE_KEY) -> None:
        self.key = key
        self.slots: dict[str, dict[str, Any]] = {}

    def load(self) -> dict[str, Any] | None:
        return self.slots.get(self.key)

    def save(self, payload: dict[str, Any]) -> None:
        self.slots[self.key] = payload


class JsonFileStore:
    """Store backed by one JSON file, written atomically."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        payload = read_json(self.path)
        if not isinstance(payload, dict):
            raise ValueError(f"Workspace file {self.path} must hold a JSON object")
        return payload

    def save(self, payload: dict[str, Any]) -> None:
        write_json(self.path, payload)


def load_workspace(store: WorkspaceStore, table: ParsedTable) -> WorkspaceState:
    """Restore the saved workspace for *table*, or start a fresh one.

    A restored configuration is re-validated against the table's fields with
    the smart defaults as fallback, since the sheet may have changed since
    it was saved.
    """
    defaults = default_config(table)
    saved = store.load()
    if saved is None:
        return WorkspaceState(
            config=defaults,
            messages=(ChatMessage(id="1", role="assistant", text=GREETING),),
        )

    try:
        state = WorkspaceState.from_dict(saved)
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Saved workspace is malformed: {exc}") from exc
    try:
        config = sanitize_config(state.config, table.fields, fallback=defaults)
    except ConfigError:
        config = defaults
    return replace(state, config=config)


def save_workspace(store: WorkspaceStore, state: WorkspaceState) -> WorkspaceState:
    """Stamp *state* with the save time, hand it to *store*, and return it."""
    stamped = replace(state, saved_at=utcnow_iso())
    store.save(stamped.to_dict())
    return stamped
