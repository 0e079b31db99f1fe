"""Run coordinator -- drives one upstream run per session.

The coordinator manages the full lifecycle of a run:

1. **Start**: Check-and-set the session's run state, record the prompt
2. **Execute**: Consume the upstream event sequence, translate each event
   into the public vocabulary, update the session, broadcast via the hub
3. **Finalize**: Unregister the run handle, restore a quiescent status and
   broadcast it -- on every exit path

The caller (API layer) is responsible for:

- Creating sessions (``SessionRegistry.create``)
- Attaching subscribers (``SubscriberHub.subscribe``)

Runs execute as background tasks.  Event delivery never blocks the run: the
hub drops subscribers that cannot keep up.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing, contextmanager
from typing import TYPE_CHECKING, Any

from agentrelay.runtime.context import RunHandle
from agentrelay.runtime.errors import ConflictError, NotFoundError, RunCancelledError, ValidationError
from agentrelay.runtime.execution.upstream import RunOptions
from agentrelay.runtime.models.enums import EventType, MessageRole, SessionStatus, StreamStatus
from agentrelay.runtime.models.session import ChatMessage, RunResult, SessionTotals, TextBlock
from agentrelay.runtime.models.upstream import (
    AssistantTurn,
    InitEvent,
    RunResultEvent,
    TextDelta,
    ToolInputDelta,
    ToolResult,
    ToolUseStart,
)
from agentrelay.runtime.registry import RunRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from agentrelay.runtime.execution.upstream import AgentService
    from agentrelay.runtime.hub import SubscriberHub
    from agentrelay.runtime.managers.sessions import SessionRegistry
    from agentrelay.runtime.models.upstream import UpstreamEvent

logger = logging.getLogger(__name__)

DEFAULT_TOOL_OUTPUT_LIMIT = 4000


class RunCoordinator:
    """Enforces one run per session and relays its events to subscribers.

    The coordinator is the only writer of a session's run-state fields
    (status, resume token, usage counters).
    """

    def __init__(
        self,
        sessions: SessionRegistry,
        hub: SubscriberHub,
        agent: AgentService,
        *,
        runs: RunRegistry | None = None,
        tool_output_limit: int = DEFAULT_TOOL_OUTPUT_LIMIT,
        cancel_grace_period: float = 10.0,
    ) -> None:
        self._sessions = sessions
        self._hub = hub
        self._agent = agent
        self._runs = runs if runs is not None else RunRegistry()
        self._tool_output_limit = tool_output_limit
        self._cancel_grace_period = cancel_grace_period
        self._closing: set[str] = set()
        self._handlers: dict[type, Callable[[RunHandle, Any], None]] = {
            InitEvent: self._on_init,
            TextDelta: self._on_text_delta,
            ToolUseStart: self._on_tool_start,
            ToolInputDelta: self._on_tool_input_delta,
            AssistantTurn: self._on_assistant_turn,
            ToolResult: self._on_tool_result,
            RunResultEvent: self._on_result,
        }

    @property
    def runs(self) -> RunRegistry:
        return self._runs

    # -- Control ---------------------------------------------------------------

    def start(self, session_id: str, prompt: str) -> RunHandle:
        """Start a run in the background and return its handle.

        Raises ``ValidationError`` (empty prompt), ``NotFoundError``,
        ``ConflictError`` (already running) or ``ShuttingDownError``.
        Nothing in here yields to the event loop before the handle is
        registered, so two concurrent starts cannot both pass the check.
        """
        if not prompt or not prompt.strip():
            msg = "prompt is required"
            raise ValidationError(msg)

        session = self._sessions.get(session_id)
        if session is None or session_id in self._closing:
            raise NotFoundError(session_id)
        if session_id in self._runs or session.status == SessionStatus.RUNNING:
            raise ConflictError(session_id)

        handle = RunHandle(session_id=session_id)
        self._runs.register(handle)

        self._sessions.update(session_id, status=SessionStatus.RUNNING)
        self._broadcast_status(session_id, StreamStatus.RUNNING)

        user_msg = ChatMessage(role=MessageRole.USER, content=[TextBlock(text=prompt)])
        self._sessions.append_message(session_id, user_msg)
        self._hub.broadcast(session_id, EventType.USER_MESSAGE, user_msg.model_dump(mode="json"))

        options = RunOptions(
            model=session.model,
            cwd=session.cwd,
            resume_token=session.resume_token,
            cancel_signal=handle.cancel_signal,
        )
        handle.task = asyncio.create_task(self._execute(handle, prompt, options), name=f"run-{session_id}")
        return handle

    def cancel(self, session_id: str) -> bool:
        """Signal cancellation to the active run.

        Returns ``False`` if nothing is running or the run was already
        signalled.  Cancellation is cooperative: the run stops at the next
        upstream event boundary.
        """
        handle = self._runs.get(session_id)
        if handle is None or handle.cancelled:
            return False
        handle.cancel()
        logger.info("Run cancel requested for session %s", session_id)
        return True

    async def cancel_and_wait(self, session_id: str, timeout: float | None = None) -> bool:
        """Cancel the active run and wait until it has unwound.

        If the run does not stop within *timeout* (default: the grace
        period), its task is cancelled outright.  Returns whether a run was
        active.
        """
        handle = self._runs.get(session_id)
        if handle is None:
            return False
        handle.cancel()
        task = handle.task
        if task is None or task.done():
            return True

        grace = self._cancel_grace_period if timeout is None else timeout
        done, _ = await asyncio.wait({task}, timeout=grace)
        if not done:
            logger.warning("Run for session %s ignored cancellation for %ss, cancelling task", session_id, grace)
            task.cancel()
            await asyncio.wait({task})
        return True

    def is_running(self, session_id: str) -> bool:
        return session_id in self._runs

    @contextmanager
    def refusing_runs(self, session_id: str) -> Iterator[None]:
        """Treat *session_id* as gone for ``start`` while the block runs.

        Used by delete: the record outlives its last run by a few awaits, and
        no new run may slip in between.
        """
        self._closing.add(session_id)
        try:
            yield
        finally:
            self._closing.discard(session_id)

    async def shutdown(self, timeout: float | None = None) -> None:
        """Refuse new runs, let active ones finish, interrupt the rest."""
        self._runs.begin_shutdown()
        if self._runs.active_count == 0:
            return

        logger.info("Waiting for %d active runs to finish (timeout=%ss)", self._runs.active_count, timeout)
        if await self._runs.wait_until_drained(timeout=timeout):
            return

        interrupted = self._runs.interrupt_all()
        logger.warning("Interrupted %d runs after shutdown timeout", interrupted)
        if await self._runs.wait_until_drained(timeout=self._cancel_grace_period):
            return

        tasks = [h.task for h in self._runs.all_runs() if h.task is not None and not h.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)

    # -- Execution -------------------------------------------------------------

    async def _execute(self, handle: RunHandle, prompt: str, options: RunOptions) -> None:
        session_id = handle.session_id
        final_status = SessionStatus.IDLE
        logger.info("Run started for session %s (resume=%s)", session_id, options.resume_token)

        try:
            async with aclosing(self._agent.begin_run(prompt, options)) as events:
                async for event in events:
                    if handle.cancelled:
                        raise RunCancelledError
                    self._dispatch(handle, event)
            if handle.cancelled and not handle.completed:
                raise RunCancelledError

        except RunCancelledError:
            if handle.completed:
                # Cancelled while the upstream was winding down after its result.
                logger.info("Run completed for session %s (duration=%dms)", session_id, handle.elapsed_ms)
            else:
                self._on_interrupted(handle)

        except asyncio.CancelledError:
            # Task cancelled outright (forced delete / shutdown).
            self._on_interrupted(handle)
            raise

        except Exception as exc:
            if handle.cancelled:
                # The upstream failed because it was told to stop.
                self._on_interrupted(handle)
            else:
                logger.exception("Run failed for session %s", session_id)
                self._finalize_text(handle)
                self._hub.broadcast(session_id, EventType.ERROR, {"message": str(exc) or type(exc).__name__})
                final_status = SessionStatus.ERROR

        else:
            logger.info("Run completed for session %s (duration=%dms)", session_id, handle.elapsed_ms)

        finally:
            self._runs.unregister(session_id, handle)
            if self._sessions.update(session_id, status=final_status) is None:
                logger.info("Session %s was deleted during its run", session_id)
            self._broadcast_status(session_id, StreamStatus(final_status.value))

    def _on_interrupted(self, handle: RunHandle) -> None:
        logger.info("Run interrupted for session %s (duration=%dms)", handle.session_id, handle.elapsed_ms)
        self._finalize_text(handle)
        self._broadcast_status(handle.session_id, StreamStatus.INTERRUPTED)

    def _dispatch(self, handle: RunHandle, event: UpstreamEvent) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug("Ignoring unknown upstream event %r", event)
            return
        handler(handle, event)

    # -- Event handlers --------------------------------------------------------

    def _on_init(self, handle: RunHandle, event: InitEvent) -> None:
        self._sessions.update(handle.session_id, resume_token=event.resume_token)
        self._hub.broadcast(
            handle.session_id,
            EventType.SYSTEM_INIT,
            {"resume_token": event.resume_token, "model": event.model, "tools": event.tools},
        )

    def _on_text_delta(self, handle: RunHandle, event: TextDelta) -> None:
        handle.text_buffer.append(event.text)
        self._hub.broadcast(
            handle.session_id,
            EventType.TEXT_DELTA,
            {"msg_id": handle.current_msg_id(), "text": event.text},
        )

    def _on_tool_start(self, handle: RunHandle, event: ToolUseStart) -> None:
        handle.tool_call_id = event.tool_call_id
        handle.tool_name = event.name
        self._hub.broadcast(
            handle.session_id,
            EventType.TOOL_START,
            {"msg_id": handle.current_msg_id(), "tool_call_id": event.tool_call_id, "tool": event.name},
        )

    def _on_tool_input_delta(self, handle: RunHandle, event: ToolInputDelta) -> None:
        self._hub.broadcast(
            handle.session_id,
            EventType.TOOL_INPUT_DELTA,
            {"msg_id": handle.current_msg_id(), "tool_call_id": handle.tool_call_id, "partial_json": event.partial_json},
        )

    def _on_assistant_turn(self, handle: RunHandle, event: AssistantTurn) -> None:
        message = ChatMessage(
            id=handle.current_msg_id(),
            role=MessageRole.ASSISTANT,
            content=[TextBlock(text=text) for text in event.text_blocks],
            tool_calls=event.tool_calls,
        )
        self._sessions.append_message(handle.session_id, message)
        self._hub.broadcast(handle.session_id, EventType.ASSISTANT_MESSAGE, message.model_dump(mode="json"))
        handle.reset_turn()

    def _on_tool_result(self, handle: RunHandle, event: ToolResult) -> None:
        self._hub.broadcast(
            handle.session_id,
            EventType.TOOL_COMPLETE,
            {
                "msg_id": handle.msg_id,
                "tool_call_id": event.tool_call_id,
                "output": event.output[: self._tool_output_limit],
                "is_error": event.is_error,
            },
        )

    def _on_result(self, handle: RunHandle, event: RunResultEvent) -> None:
        self._finalize_text(handle)
        handle.completed = True
        session = self._sessions.add_usage(
            handle.session_id,
            cost=event.cost,
            input_tokens=event.usage.input,
            output_tokens=event.usage.output,
        )
        result = RunResult(
            **event.model_dump(exclude={"kind"}),
            session_totals=session.totals() if session is not None else SessionTotals(),
        )
        self._hub.broadcast(handle.session_id, EventType.RESULT, result.model_dump(mode="json"))

    # -- Helpers ---------------------------------------------------------------

    def _finalize_text(self, handle: RunHandle) -> None:
        """Persist streamed text that no full assistant turn has finalized."""
        if not handle.text_buffer:
            return
        message = ChatMessage(
            id=handle.current_msg_id(),
            role=MessageRole.ASSISTANT,
            content=[TextBlock(text="".join(handle.text_buffer))],
        )
        self._sessions.append_message(handle.session_id, message)
        self._hub.broadcast(handle.session_id, EventType.ASSISTANT_MESSAGE, message.model_dump(mode="json"))
        handle.reset_turn()

    def _broadcast_status(self, session_id: str, status: StreamStatus) -> None:
        self._hub.broadcast(session_id, EventType.STATUS, {"status": status.value})
