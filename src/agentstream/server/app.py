"""FastAPI application exposing the agent loop as an NDJSON stream."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from ..ai.ai_types import AgentConfig, ModelCapability
from ..ai.orchestration.agent_loop import AgentLoop
from ..ai.orchestration.event_emitter import EventEmitter
from ..ai.orchestration.event_log import ChatEventLogger
from ..ai.orchestration.tools.executor import ExecutorConfig, ToolExecutor
from ..ai.orchestration.tools.preferences import enabled_tool_names, normalize_tool_preferences
from ..ai.orchestration.tools.registry import ToolRegistry
from ..ai.prompts import build_system_turns
from ..chat.conversion import normalize_messages
from ..chat.message_model import Turn, new_id
from ..protocol.framing import MEDIA_TYPE, encode_line
from ..utils.logging import run_logger
from .schemas import StreamRequestBody, describe_validation_error

LOGGER = logging.getLogger(__name__)

STREAM_PATH = "/api/assistant/stream"
THREAD_HEADER = "X-Thread-Id"


@dataclass(slots=True)
class ServerContext:
    """Collaborators shared by every request; none hold per-request state."""

    model: ModelCapability
    registry: ToolRegistry
    config: AgentConfig = field(default_factory=AgentConfig)
    tool_defaults: Mapping[str, bool] = field(default_factory=dict)
    event_logger: ChatEventLogger = field(default_factory=lambda: ChatEventLogger(enabled=False))

    def build_loop(self) -> AgentLoop:
        executor = ToolExecutor(
            self.registry,
            ExecutorConfig(default_timeout=self.config.tool_timeout_seconds),
        )
        return AgentLoop(self.model, executor, config=self.config)


def create_app(
    *,
    model: ModelCapability,
    registry: ToolRegistry,
    config: AgentConfig | None = None,
    tool_defaults: Mapping[str, bool] | None = None,
    event_logger: ChatEventLogger | None = None,
) -> FastAPI:
    """Build the streaming API around ``model`` and the tools in ``registry``."""

    context = ServerContext(
        model=model,
        registry=registry,
        config=(config or AgentConfig()).clamp(),
        tool_defaults=dict(tool_defaults or {}),
        event_logger=event_logger or ChatEventLogger(enabled=False),
    )
    app = FastAPI(title="agentstream", description="Agentic tool-calling chat stream", version="0.1.0")
    app.state.context = context

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "tools": context.registry.list_names()}

    @app.get("/api/tools")
    async def list_tools() -> dict[str, Any]:
        preferences = normalize_tool_preferences(context.registry, defaults=context.tool_defaults)
        return {
            "tools": [
                {
                    "name": spec.name,
                    "description": spec.description,
                    "preference": spec.preference,
                    "enabled": preferences.get(spec.preference, spec.enabled_by_default),
                }
                for spec in context.registry.list_tools()
            ]
        }

    @app.post(STREAM_PATH)
    async def stream_assistant(request: Request):
        try:
            raw = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _error_response(400, "Request body must be a JSON object")
        try:
            body = StreamRequestBody.model_validate(raw)
        except ValidationError as exc:
            return _error_response(422, describe_validation_error(exc))
        try:
            history = normalize_messages(body.messages)
        except ValueError as exc:
            return _error_response(400, str(exc))
        if not history:
            return _error_response(400, "Request contains no non-empty messages")

        thread_id = body.thread_id or new_id("thread-")
        return StreamingResponse(
            _event_stream(context, body, history, thread_id, is_disconnected=request.is_disconnected),
            media_type=MEDIA_TYPE,
            headers={"Cache-Control": "no-cache, no-transform", THREAD_HEADER: thread_id},
        )

    return app


async def _event_stream(
    context: ServerContext,
    body: StreamRequestBody,
    history: list[Turn],
    thread_id: str,
    *,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[bytes]:
    """Run one request and yield encoded records.

    ``is_disconnected`` is polled after every record; once it reports a
    closed connection the cancel event is set, so the loop stops before its
    next model call or tool execution and finishes with ``cancelled``.
    Closing this generator early has the same effect, since the loop is
    closed along with it and never resumes.
    """

    cancel_event = asyncio.Event()
    preferences = normalize_tool_preferences(
        context.registry, body.tool_preferences, defaults=context.tool_defaults
    )
    enabled = enabled_tool_names(context.registry, preferences)
    date_time = body.date_time_context.as_prompt_context() if body.date_time_context else None
    system_turns = build_system_turns(
        history, date_time_context=date_time, document_context=body.document_context
    )
    loop = context.build_loop()
    emitter = EventEmitter(text_chunk_delay=context.config.text_chunk_delay)
    run_id = new_id()
    log = run_logger(LOGGER, run_id=run_id, thread_id=thread_id)
    log.info("Starting agent run (%s turn(s), tools=%s)", len(history), enabled)
    log_run = context.event_logger.start_run(
        run_id=run_id,
        thread_id=thread_id,
        history=[turn.to_dict() for turn in history],
        metadata={**context.config.as_metadata(), "tools": enabled},
    )
    try:
        with log_run:
            transitions = loop.run(
                history,
                system_turns=system_turns,
                max_steps=body.step_budget,
                enabled_tools=enabled,
                cancel_event=cancel_event,
                event_log=log_run,
            )
            async for event in emitter.stream(transitions):
                yield encode_line(event)
                if is_disconnected is not None and not cancel_event.is_set() and await is_disconnected():
                    log.info("Client disconnected; cancelling agent run")
                    cancel_event.set()
    finally:
        cancel_event.set()
        log.debug("Agent run finished")


def _error_response(status_code: int, message: str) -> JSONResponse:
    LOGGER.info("Rejecting stream request: %s", message)
    return JSONResponse(status_code=status_code, content={"error": message})


__all__ = ["STREAM_PATH", "THREAD_HEADER", "ServerContext", "create_app"]
