from __future__ import annotations

import json
from pathlib import Path

import pytest

from pivot_explorer.models import Aggregator, ChatMessage, PivotConfig, WorkspaceState
from pivot_explorer.parser import parse_table
from pivot_explorer.workspace import (
    GREETING,
    STORAGE_KEY,
    JsonFileStore,
    MemoryStore,
    load_workspace,
    save_workspace,
)

CSV = "region,product,sales\nEast,Widget,100\nWest,Gadget,30\n"


def test_fresh_workspace_uses_defaults_and_greets() -> None:
    state = load_workspace(MemoryStore(), parse_table(CSV))

    assert state.config == PivotConfig(row_fields=("region",), value_field="sales")
    assert state.messages == (ChatMessage(id="1", role="assistant", text=GREETING),)


def test_memory_store_round_trip_under_storage_key() -> None:
    store = MemoryStore()
    table = parse_table(CSV)
    state = WorkspaceState(
        config=PivotConfig(row_fields=("product",), value_field="sales", aggregator=Aggregator.MAX),
    )

    saved = save_workspace(store, state)

    assert saved.saved_at
    assert STORAGE_KEY in store.slots
    assert load_workspace(store, table) == saved


def test_json_file_store_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "ws" / "workspace.json"
    store = JsonFileStore(path)
    table = parse_table(CSV)
    state = WorkspaceState(
        config=PivotConfig(row_fields=("region", "product"), value_field="sales"),
        messages=(ChatMessage(id="1", role="user", text="hello"),),
    )

    saved = save_workspace(store, state)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["config"]["rowField"] == ["region", "product"]
    assert payload["savedAt"] == saved.saved_at
    assert load_workspace(JsonFileStore(path), table) == saved


def test_json_file_store_missing_file_loads_none(tmp_path: Path) -> None:
    assert JsonFileStore(tmp_path / "absent.json").load() is None


def test_restored_config_is_revalidated_against_current_fields() -> None:
    store = MemoryStore()
    store.save(
        {
            "config": {
                "rowField": ["region", "territory"],
                "colField": "quarter",
                "valueField": "revenue",
                "aggregator": "AVERAGE",
            },
            "messages": [],
            "savedAt": "2026-01-01T00:00:00+00:00",
        }
    )

    state = load_workspace(store, parse_table(CSV))

    assert state.config == PivotConfig(
        row_fields=("region",), col_field=None, value_field="sales",
        aggregator=Aggregator.AVERAGE,
    )
    assert state.saved_at == "2026-01-01T00:00:00+00:00"


def test_malformed_workspace_payloads_raise_value_error(tmp_path: Path) -> None:
    path = tmp_path / "workspace.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError, match="JSON object"):
        load_workspace(JsonFileStore(path), parse_table(CSV))

    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Malformed JSON"):
        load_workspace(JsonFileStore(path), parse_table(CSV))

    store = MemoryStore()
    store.save({"messages": [{"role": "user"}]})
    with pytest.raises(ValueError, match="malformed"):
        load_workspace(store, parse_table(CSV))
