"""Agent CLI upstream adapter.

Runs the agent CLI as a subprocess in ``stream-json`` mode and translates
its newline-delimited JSON records into typed upstream events::

    {"type": "system", "subtype": "init", "session_id": ..., "model": ..., "tools": [...]}
    {"type": "stream_event", "event": {"type": "content_block_delta", ...}}
    {"type": "assistant", "message": {"content": [...]}}
    {"type": "user", "message": {"content": [{"type": "tool_result", ...}]}}
    {"type": "result", "total_cost_usd": ..., "usage": {...}, ...}

Non-JSON lines (warnings, crash output) are kept for error reporting only.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections import deque
from collections.abc import AsyncGenerator, Sequence
from typing import Any

from loguru import logger

from agentrelay.runtime.errors import RunCancelledError, UpstreamError
from agentrelay.runtime.execution.upstream import RunOptions
from agentrelay.runtime.models.session import ToolCall, UsageSummary
from agentrelay.runtime.models.upstream import (
    AssistantTurn,
    InitEvent,
    RunResultEvent,
    TextDelta,
    ToolInputDelta,
    ToolResult,
    ToolUseStart,
    UpstreamEvent,
)

_STDOUT_LIMIT = 10 * 1024 * 1024
_ERROR_TAIL_LINES = 20


# ---------------------------------------------------------------------------
# Record parsing
# ---------------------------------------------------------------------------


def _tool_result_text(content: Any) -> str:
    """Flatten tool_result content (a string or a list of blocks) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(c.get("text", "") for c in content if isinstance(c, dict) and c.get("type") == "text")
    return ""


def _usage(raw: Any) -> UsageSummary:
    raw = raw if isinstance(raw, dict) else {}
    return UsageSummary(
        input=raw.get("input_tokens") or 0,
        output=raw.get("output_tokens") or 0,
        cache_read=raw.get("cache_read_input_tokens") or 0,
        cache_create=raw.get("cache_creation_input_tokens") or 0,
    )


class StreamJsonParser:
    """Translate raw ``stream-json`` records into upstream events."""

    def parse(self, record: dict[str, Any]) -> list[UpstreamEvent]:
        handler = {
            "system": self._handle_system,
            "stream_event": self._handle_stream_event,
            "assistant": self._handle_assistant,
            "user": self._handle_user,
            "result": self._handle_result,
        }.get(record.get("type", ""))
        return handler(record) if handler else []

    def _handle_system(self, record: dict[str, Any]) -> list[UpstreamEvent]:
        if record.get("subtype") != "init" or not record.get("session_id"):
            return []
        tools = [t if isinstance(t, str) else str(t.get("name", "?")) for t in record.get("tools") or []]
        return [InitEvent(resume_token=record["session_id"], model=record.get("model"), tools=tools)]

    def _handle_stream_event(self, record: dict[str, Any]) -> list[UpstreamEvent]:
        event = record.get("event") or {}
        event_type = event.get("type")

        if event_type == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                return [ToolUseStart(tool_call_id=block.get("id", ""), name=block.get("name", "?"))]

        elif event_type == "content_block_delta":
            delta = event.get("delta") or {}
            if delta.get("type") == "text_delta":
                return [TextDelta(text=delta.get("text", ""))]
            if delta.get("type") == "input_json_delta":
                return [ToolInputDelta(partial_json=delta.get("partial_json", ""))]

        return []

    def _handle_assistant(self, record: dict[str, Any]) -> list[UpstreamEvent]:
        content = (record.get("message") or {}).get("content") or []
        turn = AssistantTurn()
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text":
                turn.text_blocks.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_input = block.get("input")
                turn.tool_calls.append(
                    ToolCall(
                        id=block.get("id", ""),
                        tool=block.get("name", "?"),
                        input=tool_input if isinstance(tool_input, dict) else {},
                    )
                )
        return [turn]

    def _handle_user(self, record: dict[str, Any]) -> list[UpstreamEvent]:
        """Tool results come back as user messages."""
        content = (record.get("message") or {}).get("content")
        blocks = content if isinstance(content, list) else [content]
        return [
            ToolResult(
                tool_call_id=block.get("tool_use_id", ""),
                output=_tool_result_text(block.get("content")),
                is_error=bool(block.get("is_error")),
            )
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "tool_result"
        ]

    def _handle_result(self, record: dict[str, Any]) -> list[UpstreamEvent]:
        return [
            RunResultEvent(
                subtype=record.get("subtype") or "success",
                cost=record.get("total_cost_usd") or 0.0,
                duration_ms=record.get("duration_ms") or 0,
                num_turns=record.get("num_turns") or 0,
                usage=_usage(record.get("usage")),
                is_error=bool(record.get("is_error")),
            )
        ]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AgentCliService:
    """AgentService backed by the agent CLI in ``stream-json`` mode."""

    def __init__(
        self,
        command: str = "claude",
        *,
        permission_mode: str = "bypassPermissions",
        extra_args: Sequence[str] = (),
        kill_timeout: float = 5.0,
    ) -> None:
        self._command = command
        self._permission_mode = permission_mode
        self._extra_args = list(extra_args)
        self._kill_timeout = kill_timeout
        self._parser = StreamJsonParser()

    def build_command(self, prompt: str, options: RunOptions) -> list[str]:
        cmd = [
            self._command,
            "-p",
            prompt,
            "--output-format",
            "stream-json",
            "--verbose",
            "--include-partial-messages",
            "--model",
            options.model,
            "--permission-mode",
            self._permission_mode,
            *self._extra_args,
        ]
        if options.resume_token:
            cmd.extend(["--resume", options.resume_token])
        return cmd

    async def begin_run(self, prompt: str, options: RunOptions) -> AsyncGenerator[UpstreamEvent, None]:
        cmd = self.build_command(prompt, options)
        logger.debug("Agent CLI: starting in {} (resume={})", options.cwd, options.resume_token)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=options.cwd,
                limit=_STDOUT_LIMIT,
            )
        except OSError as exc:
            msg = f"Cannot start agent CLI '{self._command}': {exc}"
            raise UpstreamError(msg) from exc

        if process.stdout is None:
            msg = "Agent CLI stdout missing"
            raise UpstreamError(msg)

        saw_result = False
        non_json_lines: deque[str] = deque(maxlen=_ERROR_TAIL_LINES)
        cancelled = asyncio.ensure_future(options.cancel_signal.wait())
        try:
            while True:
                read = asyncio.ensure_future(process.stdout.readline())
                await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
                if cancelled.done():
                    read.cancel()
                    msg = "Run cancelled"
                    raise RunCancelledError(msg)

                line = read.result()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    record = json.loads(text)
                except json.JSONDecodeError:
                    non_json_lines.append(text)
                    continue
                if not isinstance(record, dict):
                    continue

                for event in self._parser.parse(record):
                    if isinstance(event, RunResultEvent):
                        saw_result = True
                    yield event

            returncode = await process.wait()
            if returncode != 0 and not saw_result:
                detail = "\n".join(non_json_lines) or "no output"
                msg = f"Agent CLI exited with code {returncode}: {detail}"
                raise UpstreamError(msg)
        finally:
            cancelled.cancel()
            await _terminate(process, self._kill_timeout)


async def _terminate(process: asyncio.subprocess.Process, timeout: float) -> None:
    """Terminate the process, wait, then force-kill if still alive."""
    if process.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        process.terminate()
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except TimeoutError:
        logger.warning("Agent CLI pid {} did not exit after SIGTERM, sending SIGKILL", process.pid)
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
