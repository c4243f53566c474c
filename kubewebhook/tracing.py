"""Tracing interface used by the webhooks and handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional

Context = Optional[Mapping[str, Any]]


class Tracer(ABC):
    """Interface a tracer for the library implements."""

    @abstractmethod
    def with_values(self, values: Mapping[str, Any]) -> "Tracer":
        """Return a tracer that adds ``values`` to every trace it creates."""

    @abstractmethod
    def new_trace(self, ctx: Context, name: str) -> Context:
        """Return a context holding a new trace."""

    @abstractmethod
    def end_trace(self, ctx: Context, err: Optional[BaseException]) -> None:
        """End the trace on ``ctx``; a no-op when there is none."""

    @abstractmethod
    def trace_http_handler(self, name: str, handler: Any) -> Any:
        """Return ``handler`` wrapped so its executions are traced."""

    @abstractmethod
    def trace_http_client(self, name: str, client: Any) -> Any:
        """Return a client based on ``client`` that traces its requests."""

    @abstractmethod
    def trace_func(
        self,
        ctx: Context,
        name: str,
        func: Callable[[Context], Optional[Mapping[str, Any]]],
    ) -> None:
        """Run ``func`` with a traced context; its returned values annotate the trace."""

    @abstractmethod
    def trace_id(self, ctx: Context) -> str:
        """Return the id of the trace on ``ctx``."""

    @abstractmethod
    def add_trace_values(self, ctx: Context, values: Mapping[str, Any]) -> None:
        """Add values to the trace on ``ctx``; a no-op when there is none."""

    @abstractmethod
    def add_trace_event(
        self, ctx: Context, event: str, values: Optional[Mapping[str, Any]]
    ) -> None:
        """Add an event to the trace on ``ctx``; a no-op when there is none."""


def _check_ctx(ctx: Context) -> None:
    if ctx is not None and not isinstance(ctx, Mapping):
        raise TypeError(f"context must be a mapping or None, got {type(ctx).__name__}")


def _check_name(name: str) -> None:
    if not isinstance(name, str):
        raise TypeError(f"trace name must be a string, got {type(name).__name__}")


def _check_values(values: Optional[Mapping[str, Any]]) -> None:
    if values is not None and not isinstance(values, Mapping):
        raise TypeError(f"trace values must be a mapping, got {type(values).__name__}")


class NoopTracer(Tracer):
    """A tracer that records no traces; it checks its inputs and passes contexts through."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        _check_values(values)
        self.values: dict = dict(values or {})

    def with_values(self, values):
        _check_values(values)
        return NoopTracer({**self.values, **(values or {})})

    def new_trace(self, ctx, name):
        _check_ctx(ctx)
        _check_name(name)
        return ctx

    def end_trace(self, ctx, err):
        _check_ctx(ctx)
        if err is not None and not isinstance(err, BaseException):
            raise TypeError(f"trace error must be an exception, got {type(err).__name__}")

    def trace_http_handler(self, name, handler):
        _check_name(name)
        if not callable(handler):
            raise TypeError("handler must be callable")
        return handler

    def trace_http_client(self, name, client):
        _check_name(name)
        if client is None:
            raise TypeError("client can't be None")
        return client

    def trace_func(self, ctx, name, func):
        _check_ctx(ctx)
        _check_name(name)
        func(ctx)

    def trace_id(self, ctx):
        _check_ctx(ctx)
        return ""

    def add_trace_values(self, ctx, values):
        _check_ctx(ctx)
        _check_values(values)

    def add_trace_event(self, ctx, event, values):
        _check_ctx(ctx)
        _check_name(event)
        _check_values(values)


NOOP = NoopTracer()