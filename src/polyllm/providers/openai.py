# src/polyllm/providers/openai.py

import json
import logging
from collections.abc import AsyncIterator
from time import monotonic
from typing import Any

import openai
from openai import NOT_GIVEN, AsyncOpenAI

from polyllm.llms.base import (
    FinishReason,
    GenerateRequest,
    GenerateResponse,
    Message,
    Role,
    StreamDelta,
    ToolCall,
    ToolCallDelta,
    Usage,
)
from polyllm.llms.config import ProviderConfig
from polyllm.llms.context import CallContext
from polyllm.llms.errors import (
    AuthenticationError,
    ContentFilteredError,
    InvalidRequestError,
    LLMError,
    LLMTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
    classify_error,
)
from polyllm.llms.stream import ChunkStream

from ._common import retry_after, run_in_context
from ._tool_schema import tools_to_openai_schema

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_CALL,
    "function_call": FinishReason.TOOL_CALL,
    "content_filter": FinishReason.CONTENT_FILTER,
}


class OpenAIProvider:
    """OpenAI chat-completions provider.

    Also serves OpenAI-compatible backends (DeepSeek, vLLM, Ollama, Azure
    proxies) through ``config.endpoint``. Provider objects never escape.
    """

    name = "openai"

    def __init__(self, config: ProviderConfig | None = None, *, name: str | None = None):
        config = config or ProviderConfig()
        self._client = AsyncOpenAI(
            api_key=config.credential,
            base_url=config.endpoint,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
        )
        if name:
            self.name = name
        self.default_model = config.default_model
        logger.info(
            "Initialized OpenAIProvider with endpoint=%s, timeout=%s",
            config.endpoint or "default",
            config.request_timeout,
        )

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        start = monotonic()
        logger.debug(
            "Calling OpenAI: model=%s, messages=%d, tools=%d",
            request.model,
            len(request.messages),
            len(request.tools),
        )
        try:
            raw = await run_in_context(
                ctx, self._client.chat.completions.create(**self._params(request))
            )
        except Exception as exc:
            raise self._classify(exc)

        # Normalize immediately - provider objects never escape
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
        return {
            "model": request.model,
            "messages": self._convert_messages(request.messages),
            "temperature": (
                request.temperature if request.temperature is not None else NOT_GIVEN
            ),
            "max_tokens": request.max_tokens if request.max_tokens else NOT_GIVEN,
            "stop": list(request.stop) if request.stop else NOT_GIVEN,
            "tools": tools_to_openai_schema(request.tools) if request.tools else NOT_GIVEN,
        }

    async def _stream_deltas(self, request: GenerateRequest) -> AsyncIterator[StreamDelta]:
        try:
            response = await self._client.chat.completions.create(
                **self._params(request),
                stream=True,
                stream_options={"include_usage": True},
            )
        except Exception as exc:
            raise self._classify(exc)

        # finish_reason arrives before the trailing usage event; hold it back
        finish_reason: FinishReason | None = None
        try:
            async for event in response:
                usage = self._usage(getattr(event, "usage", None))
                if not event.choices:
                    if usage is not None:
                        yield StreamDelta(usage=usage)
                    continue
                choice = event.choices[0]
                delta = choice.delta
                if delta.content:
                    yield StreamDelta(text=delta.content, usage=usage)
                    usage = None
                for tc in delta.tool_calls or ():
                    yield StreamDelta(
                        tool_call=ToolCallDelta(
                            index=tc.index,
                            id=tc.id,
                            name=tc.function.name if tc.function else None,
                            arguments=(tc.function.arguments or "") if tc.function else "",
                        )
                    )
                if usage is not None:
                    yield StreamDelta(usage=usage)
                if choice.finish_reason:
                    finish_reason = _FINISH_REASONS.get(
                        choice.finish_reason, FinishReason.ERROR
                    )
        except Exception as exc:
            raise self._classify(exc)
        finally:
            await response.close()

        yield StreamDelta(finish_reason=finish_reason or FinishReason.STOP)

    def _convert_messages(self, messages: tuple[Message, ...]) -> list[dict]:
        """Convert Message objects to OpenAI format.

        Internal only. Provider format never leaks outside.
        """
        result = []
        for m in messages:
            msg: dict = {"role": m.role.value, "content": m.text}
            if m.name:
                msg["name"] = m.name
            if m.tool_call_id:
                msg["tool_call_id"] = m.tool_call_id
            if m.role == Role.ASSISTANT and m.tool_calls:
                msg["content"] = m.text or None
                msg["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in m.tool_calls
                ]
            result.append(msg)
        return result

    def _normalize_response(
        self, raw: Any, model: str, latency_ms: float
    ) -> GenerateResponse:
        """Normalize OpenAI response to GenerateResponse.

        This is the boundary. Raw provider objects stop here.
        """
        choices: list[Message] = []
        first_tool_calls: list[ToolCall] = []
        for i, choice in enumerate(raw.choices):
            tool_calls = self._parse_tool_calls(choice.message.tool_calls)
            if i == 0:
                first_tool_calls = tool_calls
            choices.append(Message.assistant(choice.message.content or "", tool_calls))

        if not choices:
            raise ProviderUnavailableError("OpenAI returned no choices", provider=self.name)

        # Map finish reason
        finish_reason = _FINISH_REASONS.get(raw.choices[0].finish_reason, FinishReason.ERROR)
        if first_tool_calls:
            finish_reason = FinishReason.TOOL_CALL

        return GenerateResponse(
            choices=tuple(choices),
            finish_reason=finish_reason,
            usage=self._usage(raw.usage) or Usage(),
            tool_calls=tuple(first_tool_calls),
            model=getattr(raw, "model", None) or model,
            latency_ms=latency_ms,
        )

    def _parse_tool_calls(self, raw_calls: Any) -> list[ToolCall]:
        tool_calls: list[ToolCall] = []
        for tc in raw_calls or ():
            try:
                arguments = json.loads(tc.function.arguments)
            except json.JSONDecodeError:
                logger.warning(
                    "Failed to parse tool call arguments: %s",
                    tc.function.arguments,
                )
                arguments = {}
            tool_calls.append(
                ToolCall(id=tc.id, name=tc.function.name, arguments=arguments)
            )
        return tool_calls

    def _usage(self, raw: Any) -> Usage | None:
        if raw is None:
            return None
        return Usage(
            prompt_tokens=raw.prompt_tokens or 0,
            completion_tokens=raw.completion_tokens or 0,
            total_tokens=getattr(raw, "total_tokens", None),
        )

    def _classify(self, exc: BaseException) -> LLMError:
        """Map OpenAI SDK exceptions onto the error taxonomy."""
        if isinstance(exc, LLMError):
            return exc
        message = str(exc)
        kw: dict[str, Any] = {"provider": self.name, "raw": exc}
        if isinstance(exc, openai.APITimeoutError):
            return LLMTimeoutError(message, **kw)
        if isinstance(exc, openai.APIConnectionError):
            return ProviderUnavailableError(message, **kw)
        if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return AuthenticationError(message, **kw)
        if isinstance(exc, openai.RateLimitError):
            return RateLimitError(message, retry_after=retry_after(exc), **kw)
        if isinstance(exc, openai.BadRequestError) and getattr(exc, "code", None) == "content_filter":
            return ContentFilteredError(message, **kw)
        if isinstance(
            exc,
            (
                openai.BadRequestError,
                openai.NotFoundError,
                openai.UnprocessableEntityError,
                openai.ConflictError,
            ),
        ):
            return InvalidRequestError(message, **kw)
        if isinstance(exc, openai.APIStatusError) and exc.status_code >= 500:
            return ProviderUnavailableError(message, **kw)
        return classify_error(exc, self.name)

