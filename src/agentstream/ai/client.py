"""Model capability backed by an OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, cast

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..chat.conversion import to_model_messages
from ..chat.message_model import Turn, new_id
from .errors import ModelInvocationError, parse_error_message
from .orchestration.model_types import ModelTurn, ToolCallRequest

LOGGER = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (APIError, APIStatusError, APIConnectionError, RateLimitError, httpx.TimeoutException)


@dataclass(slots=True)
class ClientSettings:
    """Connection and sampling options for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    temperature: float | None = 0.2
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False


@dataclass(slots=True)
class _TurnAccumulator:
    """Folds one streamed completion into a :class:`ModelTurn`."""

    deltas: list[str] = field(default_factory=list)
    final_text: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    # Only raw chunks carry call ids; the "arguments.done" events do not.
    call_ids: dict[int, str] = field(default_factory=dict)

    def feed(self, event: ChatCompletionStreamEvent[Any]) -> None:
        kind = getattr(event, "type", None)
        if kind == "chunk":
            self._remember_call_ids(getattr(event, "chunk", None))
        elif kind == "content.delta":
            delta = getattr(event, "delta", None)
            if delta:
                self.deltas.append(str(delta))
        elif kind == "content.done":
            self.final_text = str(getattr(event, "content", None) or "")
        elif kind == "tool_calls.function.arguments.done":
            self.tool_calls.append(self._tool_call(event))

    def result(self) -> ModelTurn:
        return ModelTurn(text="".join(self.deltas) or self.final_text, tool_calls=self.tool_calls)

    def _remember_call_ids(self, chunk: Any) -> None:
        for choice in getattr(chunk, "choices", None) or ():
            for call in getattr(getattr(choice, "delta", None), "tool_calls", None) or ():
                call_id = getattr(call, "id", None)
                index = getattr(call, "index", None)
                if call_id and index is not None:
                    self.call_ids.setdefault(index, call_id)

    def _tool_call(self, event: Any) -> ToolCallRequest:
        name = getattr(event, "name", None) or ""
        index = getattr(event, "index", None)
        if index is None:
            index = len(self.tool_calls)
        raw = getattr(event, "arguments", None)
        parsed = getattr(event, "parsed_arguments", None)
        if not isinstance(parsed, Mapping):
            parsed = _parse_arguments(raw, name)
        call_id = (getattr(event, "id", None) or self.call_ids.get(index) or "").strip()
        if not call_id:
            call_id = f"{name.strip() or 'tool'}:{index}:{new_id()[:8]}"
        return ToolCallRequest(call_id=call_id, name=name, index=index, arguments=raw, parsed=dict(parsed))


class AIClient:
    """Model capability backed by an OpenAI-compatible chat completions API.

    Each call to :meth:`complete` collects one full model turn. Retries wrap
    the whole turn, so a failed attempt never leaks partial output.
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
            max_retries=0,
        )
        self._models: List[str] | None = None
        self._models_lock = asyncio.Lock()

    async def complete(
        self,
        turns: Sequence[Turn],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> ModelTurn:
        """Return the next assistant turn for ``turns``.

        Raises :class:`ModelInvocationError` once retries are exhausted.
        """
        messages = [cast(ChatCompletionMessageParam, dict(message)) for message in to_model_messages(turns)]
        if not messages:
            raise ValueError("At least one message is required to start a chat")
        payload = self._request_payload(messages, tools)
        LOGGER.debug(
            "Requesting model turn from %s (%d message(s), %d tool(s))",
            self.settings.model,
            len(messages),
            len(tools or ()),
        )
        if self.settings.debug_logging:
            self._log_prompt_payload(payload)

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self.settings.max_retries)),
            wait=wait_exponential(multiplier=self.settings.retry_min_seconds, max=self.settings.retry_max_seconds),
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
        )
        turn = ModelTurn()
        try:
            async for attempt in retrying:
                with attempt:
                    turn = await self._stream_turn(payload)
        except Exception as exc:
            message = parse_error_message(exc)
            LOGGER.warning("Model invocation failed: %s", message)
            raise ModelInvocationError(message, cause=exc) from exc
        return turn

    async def list_models(self, *, force_refresh: bool = False) -> List[str]:
        """Model ids reported by the endpoint, cached after the first call."""
        async with self._models_lock:
            if self._models is None or force_refresh:
                response = await self._client.models.list()
                self._models = [item.id for item in response.data if getattr(item, "id", None)]
            return list(self._models)

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    async def _stream_turn(self, payload: Mapping[str, Any]) -> ModelTurn:
        accumulator = _TurnAccumulator()
        async with self._client.chat.completions.stream(**payload) as stream:
            async for event in stream:
                accumulator.feed(event)
        return accumulator.result()

    def _request_payload(
        self,
        messages: List[ChatCompletionMessageParam],
        tools: Sequence[Mapping[str, Any]] | None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.settings.model, "messages": messages}
        if tools:
            payload["tools"] = list(tools)
        if self.settings.temperature is not None:
            payload["temperature"] = self.settings.temperature
        if self.settings.metadata:
            payload["metadata"] = dict(self.settings.metadata)
        return payload

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            LOGGER.debug("Model request payload:\n%s", json.dumps(payload, ensure_ascii=False, indent=2))
        except (TypeError, ValueError):
            LOGGER.debug("Model request payload (not JSON serializable): %r", payload)


def _parse_arguments(raw: str | None, tool_name: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Tool %s returned arguments that are not valid JSON", tool_name)
        return {}
    if not isinstance(parsed, dict):
        LOGGER.warning("Tool %s arguments decoded to %s, expected an object", tool_name, type(parsed).__name__)
        return {}
    return parsed


__all__ = [
    "AIClient",
    "ClientSettings",
    "ModelInvocationError",
    "parse_error_message",
]
