from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, MutableMapping, Sized
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Literal, Protocol

import structlog

TELEMETRY_LOGGER_NAME = "playlist_bridge.telemetry"
REDACTED = "[redacted]"

# Provider tokens travel with every conversion request; any attribute whose key
# contains one of these markers is never written out.
SENSITIVE_KEY_MARKERS: frozenset[str] = frozenset(
    {
        "api_key",
        "authorization",
        "cookie",
        "payload",
        "secret",
        "token",
    }
)
_MAX_STRING_LENGTH = 160
_BEARER_PREFIX = "bearer "

TelemetryValue = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    """Writes each event to the dedicated telemetry logger as one structured line."""

    def __init__(self, logger_name: str = TELEMETRY_LOGGER_NAME) -> None:
        self._logger = structlog.get_logger(logger_name)

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(event_name=event_name, attributes=redact_attributes(attributes))

    @contextmanager
    def span(self, prefix: str, **attributes: Any) -> Iterator[dict[str, Any]]:
        """Emits ``<prefix>.start`` then ``<prefix>.finish`` or ``<prefix>.error``.

        The yielded dict collects attributes that are only known once the
        wrapped block completes, such as a response status.
        """
        self.emit(f"{prefix}.start", **attributes)
        started_at = perf_counter()
        outcome: dict[str, Any] = {}
        try:
            yield outcome
        except Exception as exc:
            self.emit(
                f"{prefix}.error",
                **attributes,
                duration_ms=_elapsed_ms(started_at),
                error_type=type(exc).__name__,
            )
            raise
        self.emit(
            f"{prefix}.finish",
            **{**attributes, **outcome, "duration_ms": _elapsed_ms(started_at)},
        )


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if not enabled or sink == "none":
        return TelemetryClient.disabled()
    if sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())

    logging.getLogger(TELEMETRY_LOGGER_NAME).warning(
        "unknown telemetry sink; telemetry disabled sink=%s",
        sink,
    )
    return TelemetryClient.disabled()


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEY_MARKERS)


def redact_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    redacted: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        redacted[key] = REDACTED if is_sensitive_key(key) else _scalar(raw_value)
    return redacted


def scrub_mapping(values: MutableMapping[str, Any]) -> None:
    """Redacts sensitive entries in place, leaving every other value untouched."""
    for key, value in list(values.items()):
        if is_sensitive_key(key) or _looks_like_bearer(value):
            values[key] = REDACTED


def _scalar(value: Any) -> TelemetryValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        if _looks_like_bearer(value):
            return REDACTED
        compact = " ".join(value.split())
        if len(compact) <= _MAX_STRING_LENGTH:
            return compact
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    if isinstance(value, Sized):
        return f"{type(value).__name__}[{len(value)}]"
    return type(value).__name__


def _looks_like_bearer(value: Any) -> bool:
    return isinstance(value, str) and value.lstrip().lower().startswith(_BEARER_PREFIX)


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)
