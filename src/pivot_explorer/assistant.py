"""Request/response boundary for the natural-language pivot assistant.

Nothing here talks to a model.  Callers render a prompt with
:func:`build_prompt`, send it to whatever service they use, and hand the raw
reply text back to :func:`parse_assistant_reply`, which validates it like
any other untrusted configuration.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from pivot_explorer.config import sanitize_config
from pivot_explorer.models import (
    Aggregator,
    ChatMessage,
    PivotConfig,
    WorkspaceState,
)

_FENCE_RE = re.compile(r"```(?:json)?")

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "explanation": {
            "type": "string",
            "description": "A friendly, brief explanation of what you did or the answer to the question.",
        },
        "updateConfig": {
            "type": "boolean",
            "description": "Whether the user's request requires updating the pivot table configuration.",
        },
        "config": {
            "type": "object",
            "nullable": True,
            "properties": {
                "rowField": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of field names to group rows by (hierarchical).",
                },
                "colField": {"type": "string", "nullable": True},
                "valueField": {"type": "string"},
                "aggregator": {"type": "string", "enum": [a.value for a in Aggregator]},
            },
        },
    },
    "required": ["explanation", "updateConfig"],
}


class AssistantReplyError(ValueError):
    """The assistant's reply is not the JSON object described by RESPONSE_SCHEMA."""


@dataclass(frozen=True)
class AssistantRequest:
    query: str
    fields: tuple[str, ...]
    current: PivotConfig


@dataclass(frozen=True)
class AssistantReply:
    explanation: str
    config: PivotConfig | None = None


def build_prompt(request: AssistantRequest) -> str:
    current = request.current
    aggregator = current.aggregator
    agg_name = aggregator.value if isinstance(aggregator, Aggregator) else aggregator
    return "\n".join(
        [
            "You are a data analyst helper for a Pivot Table app.",
            "",
            f"The dataset has the following headers: {json.dumps(list(request.fields))}.",
            "",
            "The current Pivot Configuration is:",
            f"- Rows (Group hierarchy): {json.dumps(list(current.row_fields))}",
            f"- Columns: {current.col_field or 'None'}",
            f"- Values: {current.value_field}",
            f"- Aggregator: {agg_name}",
            "",
            f'User Query: "{request.query}"',
            "",
            "Instructions:",
            "1. If the user asks to change the view (e.g., \"Show sales by region\", "
            "\"Group by unit and item\"), generate a new valid configuration.",
            "2. The 'rowField' must be an array of strings. Order matters (primary group first).",
            "3. 'colField' is optional (use null if standard table).",
            "4. Ensure field names match the provided headers EXACTLY. "
            "If you are unsure, pick the closest match.",
        ]
    )


def _decode(text: str) -> dict[str, Any]:
    cleaned = _FENCE_RE.sub("", text).strip()
    try:
        payload = json.loads(cleaned or "{}")
    except json.JSONDecodeError as exc:
        raise AssistantReplyError(f"Assistant reply is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise AssistantReplyError("Assistant reply must be a JSON object")
    return payload


def parse_assistant_reply(text: str, request: AssistantRequest) -> AssistantReply:
    """Decode *text* and, when it asks for one, build a validated new config.

    The reply's ``config`` may be partial: keys it omits keep their current
    values.  Field references are checked with :func:`sanitize_config`
    using the current configuration as the fallback.
    """
    payload = _decode(text)
    explanation = payload.get("explanation")
    if not isinstance(explanation, str):
        raise AssistantReplyError("Assistant reply has no 'explanation' string")

    partial = payload.get("config")
    if not payload.get("updateConfig") or not isinstance(partial, dict):
        return AssistantReply(explanation=explanation)

    merged = request.current.to_dict()
    merged.update({k: v for k, v in partial.items() if k in merged})
    try:
        candidate = PivotConfig.from_dict(merged)
    except TypeError as exc:
        raise AssistantReplyError(f"Assistant config has the wrong shape: {exc}") from exc

    config = sanitize_config(candidate, request.fields, fallback=request.current)
    return AssistantReply(explanation=explanation, config=config)


def apply_assistant_reply(
    state: WorkspaceState, query: str, reply: AssistantReply
) -> WorkspaceState:
    """Return *state* with the exchange appended and the reply's config applied."""
    next_id = len(state.messages) + 1
    messages: Sequence[ChatMessage] = (
        *state.messages,
        ChatMessage(id=str(next_id), role="user", text=query),
        ChatMessage(id=str(next_id + 1), role="assistant", text=reply.explanation),
    )
    config = reply.config if reply.config is not None else state.config
    return replace(state, config=config, messages=tuple(messages))
