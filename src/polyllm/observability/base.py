# src/polyllm/observability/base.py

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Hook point for a metrics backend (Prometheus, StatsD, OTel, ...).

    polyllm only calls these methods; wiring them to a backend is up to the
    application. Names come from ``polyllm.observability.names``.
    """

    def record_latency(
        self,
        name: str,
        value_ms: float,
        labels: dict[str, str] | None = None,
    ) -> None: ...

    def increment(
        self,
        name: str,
        value: int = 1,
        labels: dict[str, str] | None = None,
    ) -> None: ...


class NoOpMetricsHook:
    """Default hook. Discards everything."""

    def record_latency(
        self, name: str, value_ms: float, labels: dict[str, str] | None = None
    ) -> None:
        pass

    def increment(
        self, name: str, value: int = 1, labels: dict[str, str] | None = None
    ) -> None:
        pass
