"""Prometheus metrics recorder for webhook review operations."""

from __future__ import annotations

import bisect
import math
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterator, Mapping, Optional, Sequence

PREFIX = "kubewebhook"
DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

_COMMON_LABELS = (
    "webhook_id",
    "webhook_version",
    "resource_namespace",
    "resource_kind",
    "operation",
    "dry_run",
    "success",
)


@dataclass
class MeasureOpCommonData:
    """Data common to every measured review operation; duration is in seconds."""

    webhook_id: str = ""
    webhook_type: str = ""
    admission_review_version: str = ""
    duration: float = 0.0
    success: bool = False
    resource_name: str = ""
    resource_namespace: str = ""
    operation: str = ""
    resource_kind: str = ""
    dry_run: bool = False
    warnings_number: int = 0


@dataclass
class MeasureValidatingOpData(MeasureOpCommonData):
    """Data of a measured validating review operation."""

    allowed: bool = False


@dataclass
class MeasureMutatingOpData(MeasureOpCommonData):
    """Data of a measured mutating review operation."""

    mutated: bool = False


def _format_value(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    number = Decimal(repr(value)).normalize()
    sign, digits, exponent = number.as_tuple()
    sci_exponent = len(digits) + exponent - 1
    if digits != (0,) and (sci_exponent < -4 or sci_exponent >= 21):
        mantissa = str(digits[0])
        if len(digits) > 1:
            mantissa += "." + "".join(map(str, digits[1:]))
        exp_sign = "-" if sci_exponent < 0 else "+"
        return f"{'-' if sign else ''}{mantissa}e{exp_sign}{abs(sci_exponent):02d}"
    return format(number, "f")


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _escape_label(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _bool(value: Any) -> str:
    return str(bool(value)).lower()


_LabelKey = tuple  # tuple of (name, value) pairs sorted by name


class _MetricVec:
    type_name = ""

    def __init__(self, name: str, help_text: str, label_names: Sequence[str]) -> None:
        self.name = name
        self.help = help_text
        self.label_names = tuple(label_names)
        self._lock = threading.Lock()
        self._children: dict = {}

    def _key(self, labels: Mapping[str, Any]) -> _LabelKey:
        if set(labels) != set(self.label_names):
            raise ValueError(
                f"inconsistent label names for {self.name}: "
                f"got {sorted(labels)}, want {sorted(self.label_names)}"
            )
        return tuple(sorted((name, str(value)) for name, value in labels.items()))

    def _samples(self) -> Iterator[tuple[str, _LabelKey, float]]:
        raise NotImplementedError

    def exposition(self) -> list[str]:
        """Render the family in the Prometheus text format; empty when unused."""
        lines = []
        for name, labels, value in self._samples():
            if labels:
                rendered = ",".join(f'{k}="{_escape_label(v)}"' for k, v in labels)
                lines.append(f"{name}{{{rendered}}} {_format_value(value)}")
            else:
                lines.append(f"{name} {_format_value(value)}")
        if not lines:
            return []
        return [
            f"# HELP {self.name} {_escape_help(self.help)}",
            f"# TYPE {self.name} {self.type_name}",
            *lines,
        ]


class _CounterVec(_MetricVec):
    type_name = "counter"

    def add(self, labels: Mapping[str, Any], value: float) -> None:
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        key = self._key(labels)
        with self._lock:
            self._children[key] = self._children.get(key, 0.0) + value

    def _samples(self):
        with self._lock:
            items = sorted(self._children.items())
        for key, value in items:
            yield self.name, key, value


@dataclass
class _HistogramState:
    counts: list
    total: float = 0.0
    count: int = 0


class _HistogramVec(_MetricVec):
    type_name = "histogram"

    def __init__(
        self, name: str, help_text: str, label_names: Sequence[str], buckets: Sequence[float]
    ) -> None:
        if "le" in label_names:
            raise ValueError('"le" is not allowed as label name in histograms')
        bounds = [float(bound) for bound in buckets]
        if bounds and math.isinf(bounds[-1]) and bounds[-1] > 0:
            bounds.pop()
        if any(low >= high for low, high in zip(bounds, bounds[1:])):
            raise ValueError("histogram buckets must be in increasing order")
        super().__init__(name, help_text, label_names)
        self._bounds = bounds

    def observe(self, labels: Mapping[str, Any], value: float) -> None:
        key = self._key(labels)
        with self._lock:
            state = self._children.get(key)
            if state is None:
                state = self._children[key] = _HistogramState(counts=[0] * len(self._bounds))
            index = bisect.bisect_left(self._bounds, value)
            if index < len(self._bounds):
                state.counts[index] += 1
            state.count += 1
            state.total += value

    def _samples(self):
        with self._lock:
            snapshot = sorted(
                ((key, list(state.counts), state.total, state.count) for key, state in self._children.items()),
                key=lambda item: item[0],
            )
        for key, counts, total, count in snapshot:
            cumulative = 0
            for bound, observed in zip(self._bounds, counts):
                cumulative += observed
                yield f"{self.name}_bucket", key + (("le", _format_value(bound)),), cumulative
            yield f"{self.name}_bucket", key + (("le", "+Inf"),), count
            yield f"{self.name}_sum", key, total
            yield f"{self.name}_count", key, count


class Registry:
    """A set of metric collectors rendered in the Prometheus text format."""

    def __init__(self) -> None:
        self._collectors: dict = {}
        self._lock = threading.Lock()

    def register(self, collector: _MetricVec) -> None:
        """Add a collector; a second collector with the same name is an error."""
        with self._lock:
            if collector.name in self._collectors:
                raise ValueError(
                    f"duplicate metrics collector registration attempted: {collector.name}"
                )
            self._collectors[collector.name] = collector

    def render(self) -> str:
        """Return every registered metric in the Prometheus text format."""
        with self._lock:
            collectors = [self._collectors[name] for name in sorted(self._collectors)]
        return "".join(f"{line}\n" for c in collectors for line in c.exposition())


DEFAULT_REGISTRY = Registry()


def _name(subsystem: str, name: str) -> str:
    return f"{PREFIX}_{subsystem}_{name}"


class Recorder:
    """Records webhook review metrics on a Prometheus registry."""

    def __init__(
        self,
        registry: Optional[Registry] = None,
        review_op_buckets: Optional[Sequence[float]] = None,
    ) -> None:
        registry = registry if registry is not None else DEFAULT_REGISTRY
        buckets = DEFAULT_BUCKETS if review_op_buckets is None else review_op_buckets

        self._val_review_duration = _HistogramVec(
            _name("validating_webhook", "review_duration_seconds"),
            "The duration of the admission review handled by a validating webhook.",
            (*_COMMON_LABELS, "allowed"),
            buckets,
        )
        self._mut_review_duration = _HistogramVec(
            _name("mutating_webhook", "review_duration_seconds"),
            "The duration of the admission review handled by a mutating webhook.",
            (*_COMMON_LABELS, "mutated"),
            buckets,
        )
        self._review_warnings = _CounterVec(
            _name("webhook", "review_warnings_total"),
            "The total number warnings the webhooks are returning on the review process.",
            _COMMON_LABELS,
        )
        for collector in (
            self._val_review_duration,
            self._mut_review_duration,
            self._review_warnings,
        ):
            registry.register(collector)

    @staticmethod
    def _common_labels(data: MeasureOpCommonData) -> dict:
        return {
            "webhook_id": data.webhook_id,
            "webhook_version": str(data.admission_review_version),
            "resource_namespace": data.resource_namespace,
            "resource_kind": data.resource_kind,
            "operation": str(data.operation),
            "dry_run": _bool(data.dry_run),
            "success": _bool(data.success),
        }

    def measure_validating_webhook_review_op(self, ctx: Any, data: MeasureValidatingOpData) -> None:
        """Measure a validating webhook review operation."""
        labels = self._common_labels(data)
        self._val_review_duration.observe(
            {**labels, "allowed": _bool(data.allowed)}, float(data.duration)
        )
        self._review_warnings.add(labels, float(data.warnings_number))

    def measure_mutating_webhook_review_op(self, ctx: Any, data: MeasureMutatingOpData) -> None:
        """Measure a mutating webhook review operation."""
        labels = self._common_labels(data)
        self._mut_review_duration.observe(
            {**labels, "mutated": _bool(data.mutated)}, float(data.duration)
        )
        self._review_warnings.add(labels, float(data.warnings_number))