"""Structured logging used by the webhooks and handlers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

_LOG_VALUES_KEY = "kubewebhook-log-values"


def ctx_with_values(
    parent: Optional[Mapping[str, Any]], kv: Mapping[str, Any]
) -> dict:
    """Return a copy of ``parent`` holding ``kv`` merged over its log values."""
    parent = parent or {}
    merged = {**values_from_ctx(parent), **kv}
    return {**parent, _LOG_VALUES_KEY: merged}


def values_from_ctx(ctx: Optional[Mapping[str, Any]]) -> dict:
    """Return the log values stored in ``ctx``."""
    if not ctx:
        return {}
    values = ctx.get(_LOG_VALUES_KEY)
    return dict(values) if isinstance(values, Mapping) else {}


class Logger(ABC):
    """Interface of the loggers used by the library."""

    @abstractmethod
    def info(self, fmt: str, *args: Any) -> None:
        """Log at info level."""

    @abstractmethod
    def warning(self, fmt: str, *args: Any) -> None:
        """Log at warning level."""

    @abstractmethod
    def error(self, fmt: str, *args: Any) -> None:
        """Log at error level."""

    @abstractmethod
    def debug(self, fmt: str, *args: Any) -> None:
        """Log at debug level."""

    @abstractmethod
    def with_values(self, values: Mapping[str, Any]) -> "Logger":
        """Return a logger that adds ``values`` to every entry."""

    @abstractmethod
    def with_ctx_values(self, ctx: Optional[Mapping[str, Any]]) -> "Logger":
        """Return a logger carrying the log values stored in ``ctx``."""

    @abstractmethod
    def set_values_on_ctx(
        self, parent: Optional[Mapping[str, Any]], values: Mapping[str, Any]
    ) -> Optional[Mapping[str, Any]]:
        """Return a context with ``values`` stored for later logging."""


class NoopLogger(Logger):
    """A logger that discards everything."""

    def info(self, fmt: str, *args: Any) -> None:
        pass

    def warning(self, fmt: str, *args: Any) -> None:
        pass

    def error(self, fmt: str, *args: Any) -> None:
        pass

    def debug(self, fmt: str, *args: Any) -> None:
        pass

    def with_values(self, values: Mapping[str, Any]) -> "NoopLogger":
        return self

    def with_ctx_values(self, ctx: Optional[Mapping[str, Any]]) -> "NoopLogger":
        return self

    def set_values_on_ctx(self, parent, values):
        return parent


NOOP = NoopLogger()


def _format(fmt: str, args: tuple) -> str:
    if not args:
        return fmt
    try:
        return fmt % args
    except (TypeError, ValueError):
        return " ".join([fmt, *map(str, args)])


class StdLogger(Logger):
    """A logger on top of :mod:`logging` carrying structured fields."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._logger = logger if logger is not None else logging.getLogger("kubewebhook")
        self._fields = dict(fields or {})

    @property
    def fields(self) -> dict:
        """The structured fields added to every entry."""
        return dict(self._fields)

    def _log(self, level: int, fmt: str, args: tuple) -> None:
        if not self._logger.isEnabledFor(level):
            return
        message = _format(fmt, args)
        if self._fields:
            rendered = " ".join(f"{k}={v}" for k, v in sorted(self._fields.items()))
            message = f"{message} {rendered}"
        self._logger.log(level, "%s", message, extra={"fields": dict(self._fields)})

    def info(self, fmt: str, *args: Any) -> None:
        self._log(logging.INFO, fmt, args)

    def warning(self, fmt: str, *args: Any) -> None:
        self._log(logging.WARNING, fmt, args)

    def error(self, fmt: str, *args: Any) -> None:
        self._log(logging.ERROR, fmt, args)

    def debug(self, fmt: str, *args: Any) -> None:
        self._log(logging.DEBUG, fmt, args)

    def with_values(self, values: Mapping[str, Any]) -> "StdLogger":
        return StdLogger(self._logger, {**self._fields, **values})

    def with_ctx_values(self, ctx: Optional[Mapping[str, Any]]) -> "StdLogger":
        return self.with_values(values_from_ctx(ctx))

    def set_values_on_ctx(self, parent, values):
        return ctx_with_values(parent, values)