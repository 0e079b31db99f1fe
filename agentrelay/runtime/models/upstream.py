"""Typed events produced by the upstream agent service.

Adapters translate their wire format into these models; the run coordinator
only ever sees this vocabulary.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from agentrelay.runtime.models.session import ToolCall, UsageSummary


class InitEvent(BaseModel):
    """Handshake at the start of a run; carries the resume token."""

    kind: Literal["init"] = "init"
    resume_token: str
    model: str | None = None
    tools: list[str] = Field(default_factory=list)


class TextDelta(BaseModel):
    kind: Literal["text_delta"] = "text_delta"
    text: str


class ToolUseStart(BaseModel):
    kind: Literal["tool_use_start"] = "tool_use_start"
    tool_call_id: str
    name: str


class ToolInputDelta(BaseModel):
    """A raw fragment of streamed tool input JSON."""

    kind: Literal["tool_input_delta"] = "tool_input_delta"
    partial_json: str


class AssistantTurn(BaseModel):
    """A complete assistant turn (text blocks plus tool calls)."""

    kind: Literal["assistant_turn"] = "assistant_turn"
    text_blocks: list[str] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)


class ToolResult(BaseModel):
    kind: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    output: str = ""
    is_error: bool = False


class RunResultEvent(BaseModel):
    """Terminal event of a run."""

    kind: Literal["result"] = "result"
    subtype: str = "success"
    cost: float = 0.0
    duration_ms: int = 0
    num_turns: int = 0
    usage: UsageSummary = Field(default_factory=UsageSummary)
    is_error: bool = False


UpstreamEvent = InitEvent | TextDelta | ToolUseStart | ToolInputDelta | AssistantTurn | ToolResult | RunResultEvent
