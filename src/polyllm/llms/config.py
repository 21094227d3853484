# src/polyllm/llms/config.py

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from .errors import InvalidRequestError

_ALIASES = {
    "defaultModel": "default_model",
    "requestTimeout": "request_timeout",
    "maxRetries": "max_retries",
}


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for one provider instance.

    Immutable. Explicit. No magic defaults from environment. Owned by the
    provider; the core never looks inside.
    """

    credential: str | None = None  # Falls back to the SDK's env var
    endpoint: str | None = None  # Base URL override
    default_model: str | None = None
    request_timeout: float = 30.0
    max_retries: int = 0  # SDK-level retries; prefer RetryMiddleware

    def __post_init__(self) -> None:
        for name in ("credential", "endpoint", "default_model"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise InvalidRequestError(f"{name} must be a string, got {value!r}")
        if isinstance(self.request_timeout, bool) or not isinstance(
            self.request_timeout, (int, float)
        ):
            raise InvalidRequestError(
                f"request_timeout must be a number, got {self.request_timeout!r}"
            )
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise InvalidRequestError(
                f"max_retries must be an integer, got {self.max_retries!r}"
            )
        if self.request_timeout <= 0:
            raise InvalidRequestError("request_timeout must be > 0")
        if self.max_retries < 0:
            raise InvalidRequestError("max_retries must be >= 0")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "ProviderConfig":
        """Build a config from loose options.

        Raises:
            InvalidRequestError: on any unrecognised option.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in options.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise InvalidRequestError(f"Unrecognised provider option: {key!r}")
            values[name] = value
        return cls(**values)
