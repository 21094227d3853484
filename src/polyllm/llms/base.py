# src/polyllm/llms/base.py

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from polyllm.tools.tool import Tool

from .errors import InvalidRequestError

if TYPE_CHECKING:
    from .context import CallContext
    from .stream import ChunkStream


class Role(str, Enum):
    """Message role in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Why the model stopped generating."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_CALL = "tool_call"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"


@dataclass(frozen=True)
class ToolCall:
    """Normalized tool call from LLM response.

    Provider-agnostic representation. Never exposes raw provider objects.
    """

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class ToolCallDelta:
    """Fragment of a tool call while streaming.

    ``id`` and ``name`` usually arrive on the first fragment only;
    ``arguments`` is a slice of the JSON argument string.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ToolCallPart:
    tool_call: ToolCall


ContentPart = TextPart | ToolCallPart


@dataclass(frozen=True)
class Message:
    """A single message in the conversation.

    Immutable. Provider-agnostic. ``content`` is either plain text or an
    ordered tuple of parts (text segments and tool-call references).
    """

    role: Role
    content: str | tuple[ContentPart, ...] = ""
    name: str | None = None
    tool_call_id: str | None = None  # Required when role=TOOL

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))
        if self.role == Role.TOOL and not self.tool_call_id:
            raise InvalidRequestError("Tool messages require tool_call_id")

    @property
    def parts(self) -> tuple[ContentPart, ...]:
        if isinstance(self.content, str):
            return (TextPart(self.content),) if self.content else ()
        return self.content

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> tuple[ToolCall, ...]:
        if isinstance(self.content, str):
            return ()
        return tuple(p.tool_call for p in self.content if isinstance(p, ToolCallPart))

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role=Role.SYSTEM, content=text)

    @classmethod
    def user(cls, text: str, *, name: str | None = None) -> Message:
        return cls(role=Role.USER, content=text, name=name)

    @classmethod
    def assistant(
        cls, text: str = "", tool_calls: list[ToolCall] | tuple[ToolCall, ...] = ()
    ) -> Message:
        if not tool_calls:
            return cls(role=Role.ASSISTANT, content=text)
        parts: list[ContentPart] = [TextPart(text)] if text else []
        parts.extend(ToolCallPart(tc) for tc in tool_calls)
        return cls(role=Role.ASSISTANT, content=tuple(parts))

    @classmethod
    def tool(cls, text: str, *, tool_call_id: str, name: str | None = None) -> Message:
        return cls(role=Role.TOOL, content=text, tool_call_id=tool_call_id, name=name)


@dataclass(frozen=True)
class Usage:
    """Token usage. Zero when the provider does not report it."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int | None = None

    def __post_init__(self) -> None:
        if self.total_tokens is None:
            object.__setattr__(
                self, "total_tokens", self.prompt_tokens + self.completion_tokens
            )
        for name in ("prompt_tokens", "completion_tokens", "total_tokens"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,  # type: ignore[operator]
        )


@dataclass(frozen=True)
class GenerateRequest:
    """A single generation call.

    Generation parameters are optional; providers may ignore the ones they
    do not support. Consumed once per call and never mutated.
    """

    model: str
    messages: tuple[Message, ...]
    temperature: float | None = None
    max_tokens: int | None = None
    stop: tuple[str, ...] = ()
    tools: tuple[Tool, ...] = ()
    stream: bool = False
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("messages", "stop", "tools"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))
        if not self.model:
            raise InvalidRequestError("Request model must be non-empty")
        if not self.messages:
            raise InvalidRequestError("Request messages must be non-empty")
        if self.temperature is not None and self.temperature < 0:
            raise InvalidRequestError("temperature must be >= 0")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise InvalidRequestError("max_tokens must be > 0")

    def replace(self, **changes: Any) -> GenerateRequest:
        return replace(self, **changes)


@dataclass(frozen=True)
class GenerateResponse:
    """Normalized LLM response.

    Provider details never leak outside the adapter.
    """

    choices: tuple[Message, ...]
    finish_reason: FinishReason
    usage: Usage = field(default_factory=Usage)
    tool_calls: tuple[ToolCall, ...] = ()
    model: str = ""
    latency_ms: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.choices, tuple):
            object.__setattr__(self, "choices", tuple(self.choices))
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        if not self.choices:
            raise ValueError("GenerateResponse requires at least one choice")

    @property
    def message(self) -> Message:
        return self.choices[0]

    @property
    def content(self) -> str:
        return self.choices[0].text


@dataclass(frozen=True)
class StreamDelta:
    """Raw incremental event produced by a provider stream.

    ``usage`` is an increment, not a running total.
    """

    text: str = ""
    tool_call: ToolCallDelta | None = None
    finish_reason: FinishReason | None = None
    usage: Usage | None = None


@dataclass(frozen=True)
class StreamChunk:
    """One typed unit of a streamed generation.

    ``finish_reason`` and ``usage`` (the accumulated total) are only set on
    the final chunk.
    """

    index: int
    delta: StreamDelta
    is_final: bool = False
    finish_reason: FinishReason | None = None
    error: Exception | None = None
    usage: Usage | None = None

    @property
    def text(self) -> str:
        return self.delta.text


@runtime_checkable
class Provider(Protocol):
    """Capability contract every backend implements.

    Design principles:
    - Stateless per call: every call receives the full request
    - No leakage: provider objects never escape the adapter
    - Classified failures: everything raised is an ``LLMError``
    """

    name: str

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        """Single-shot generation.

        Args:
            request: The request. Never mutated.
            ctx: Optional cancellation handle / deadline.

        Returns:
            Normalized GenerateResponse with finish reason set.

        Raises:
            LLMError: exactly one taxonomy kind. ``RequestCancelledError``
                when ``ctx`` is cancelled or its deadline passes.
        """
        ...

    def stream(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> ChunkStream:
        """Streaming generation.

        Returns immediately. Failures found while streaming arrive as the
        terminal chunk, never as a raised exception.
        """
        ...

    async def aclose(self) -> None: ...
