# src/polyllm/providers/anthropic.py

import logging
from collections.abc import AsyncIterator
from time import monotonic
from typing import Any

import anthropic
from anthropic import NOT_GIVEN, AsyncAnthropic

from polyllm.llms.base import (
    FinishReason,
    GenerateRequest,
    GenerateResponse,
    Message,
    Role,
    StreamDelta,
    TextPart,
    ToolCall,
    ToolCallDelta,
    ToolCallPart,
    Usage,
)
from polyllm.llms.config import ProviderConfig
from polyllm.llms.context import CallContext
from polyllm.llms.errors import (
    AuthenticationError,
    InvalidRequestError,
    LLMError,
    LLMTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
    classify_error,
)
from polyllm.llms.stream import ChunkStream

from ._common import retry_after, run_in_context
from ._tool_schema import tools_to_anthropic_schema

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096  # Anthropic requires max_tokens

_STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_CALL,
    "refusal": FinishReason.CONTENT_FILTER,
}


class AnthropicProvider:
    """Anthropic messages-API provider.

    Stateless. No SDK objects escape the adapter.
    """

    name = "anthropic"

    def __init__(self, config: ProviderConfig | None = None, *, name: str | None = None):
        config = config or ProviderConfig()
        self._client = AsyncAnthropic(
            api_key=config.credential,
            base_url=config.endpoint,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
        )
        if name:
            self.name = name
        self.default_model = config.default_model
        logger.info(
            "Initialized AnthropicProvider with endpoint=%s, timeout=%s",
            config.endpoint or "default",
            config.request_timeout,
        )

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        start = monotonic()
        logger.debug(
            "Calling Anthropic: model=%s, messages=%d, tools=%d",
            request.model,
            len(request.messages),
            len(request.tools),
        )
        try:
            raw = await run_in_context(
                ctx, self._client.messages.create(**self._params(request))
            )
        except Exception as exc:
            raise self._classify(exc)

        return self._normalize_response(raw, request.model, 1000 * (monotonic() - start))

    def stream(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> ChunkStream:
        return ChunkStream(
            self._stream_deltas(request),
            ctx=ctx,
            provider=self.name,
            model=request.model,
        )

    async def aclose(self) -> None:
        await self._client.close()

    def _params(self, request: GenerateRequest) -> dict[str, Any]:
        # Extract system message (Anthropic handles it separately)
        system, messages = self._extract_system(request.messages)
        return {
            "model": request.model,
            "messages": self._convert_messages(messages),
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
            "system": system if system else NOT_GIVEN,
            "temperature": (
                request.temperature if request.temperature is not None else NOT_GIVEN
            ),
            "stop_sequences": list(request.stop) if request.stop else NOT_GIVEN,
            "tools": (
                tools_to_anthropic_schema(request.tools) if request.tools else NOT_GIVEN
            ),
        }

    async def _stream_deltas(self, request: GenerateRequest) -> AsyncIterator[StreamDelta]:
        try:
            response = await self._client.messages.create(
                **self._params(request), stream=True
            )
        except Exception as exc:
            raise self._classify(exc)

        finish_reason: FinishReason | None = None
        try:
            async for event in response:
                if event.type == "message_start":
                    # output_tokens here is provisional; message_delta carries the total
                    yield StreamDelta(
                        usage=Usage(prompt_tokens=event.message.usage.input_tokens or 0)
                    )
                elif event.type == "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        yield StreamDelta(
                            tool_call=ToolCallDelta(
                                index=event.index, id=block.id, name=block.name
                            )
                        )
                    elif block.type == "text" and block.text:
                        yield StreamDelta(text=block.text)
                elif event.type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta":
                        yield StreamDelta(text=delta.text)
                    elif delta.type == "input_json_delta":
                        yield StreamDelta(
                            tool_call=ToolCallDelta(
                                index=event.index, arguments=delta.partial_json
                            )
                        )
                elif event.type == "message_delta":
                    if event.delta.stop_reason:
                        finish_reason = _STOP_REASONS.get(
                            event.delta.stop_reason, FinishReason.ERROR
                        )
                    if event.usage is not None and event.usage.output_tokens:
                        yield StreamDelta(
                            usage=Usage(completion_tokens=event.usage.output_tokens)
                        )
                elif event.type == "message_stop":
                    break
        except Exception as exc:
            raise self._classify(exc)
        finally:
            await response.close()

        yield StreamDelta(finish_reason=finish_reason or FinishReason.STOP)

    def _extract_system(
        self, messages: tuple[Message, ...]
    ) -> tuple[str | None, list[Message]]:
        """Extract system messages from message list.

        Anthropic requires the system prompt as a separate parameter; several
        system messages are joined.
        """
        system_parts = []
        non_system = []

        for m in messages:
            if m.role == Role.SYSTEM:
                system_parts.append(m.text)
            else:
                non_system.append(m)

        return "\n\n".join(system_parts) or None, non_system

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        """Convert Message objects to Anthropic format.

        Internal only. Provider format never leaks outside.
        """
        result = []
        for m in messages:
            if m.role == Role.TOOL:
                # Anthropic tool results have a different structure
                result.append(
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "tool_result",
                                "tool_use_id": m.tool_call_id,
                                "content": m.text,
                            }
                        ],
                    }
                )
            elif m.role == Role.ASSISTANT and m.tool_calls:
                blocks: list[dict] = []
                for part in m.parts:
                    if isinstance(part, TextPart) and part.text:
                        blocks.append({"type": "text", "text": part.text})
                    elif isinstance(part, ToolCallPart):
                        blocks.append(
                            {
                                "type": "tool_use",
                                "id": part.tool_call.id,
                                "name": part.tool_call.name,
                                "input": part.tool_call.arguments,
                            }
                        )
                result.append({"role": "assistant", "content": blocks})
            else:
                result.append({"role": m.role.value, "content": m.text})
        return result

    def _normalize_response(
        self, raw: Any, model: str, latency_ms: float
    ) -> GenerateResponse:
        """Normalize Anthropic response to GenerateResponse.

        This is the boundary. Raw provider objects stop here.
        """
        # Extract content and tool calls from content blocks
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []

        for block in raw.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.id,
                        name=block.name,
                        arguments=block.input if isinstance(block.input, dict) else {},
                    )
                )

        finish_reason = _STOP_REASONS.get(raw.stop_reason, FinishReason.ERROR)
        if tool_calls:
            finish_reason = FinishReason.TOOL_CALL

        return GenerateResponse(
            choices=(Message.assistant("".join(text_parts), tool_calls),),
            finish_reason=finish_reason,
            usage=Usage(
                prompt_tokens=raw.usage.input_tokens,
                completion_tokens=raw.usage.output_tokens,
            ),
            tool_calls=tuple(tool_calls),
            model=model,
            latency_ms=latency_ms,
        )

    def _classify(self, exc: BaseException) -> LLMError:
        """Map Anthropic SDK exceptions onto the error taxonomy."""
        if isinstance(exc, LLMError):
            return exc
        message = str(exc)
        kw: dict[str, Any] = {"provider": self.name, "raw": exc}
        if isinstance(exc, anthropic.APITimeoutError):
            return LLMTimeoutError(message, **kw)
        if isinstance(exc, anthropic.APIConnectionError):
            return ProviderUnavailableError(message, **kw)
        if isinstance(
            exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)
        ):
            return AuthenticationError(message, **kw)
        if isinstance(exc, anthropic.RateLimitError):
            return RateLimitError(message, retry_after=retry_after(exc), **kw)
        if isinstance(
            exc,
            (
                anthropic.BadRequestError,
                anthropic.NotFoundError,
                anthropic.UnprocessableEntityError,
                anthropic.ConflictError,
            ),
        ):
            return InvalidRequestError(message, **kw)
        # 529 "overloaded" lands here too
        if isinstance(exc, anthropic.APIStatusError) and exc.status_code >= 500:
            return ProviderUnavailableError(message, **kw)
        return classify_error(exc, self.name)
