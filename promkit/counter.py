"""Counters: metrics whose value only ever goes up."""

from __future__ import annotations

import math
import threading
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field

from .collector import Metric, SelfCollector, ValueType, WrittenMetric
from .desc import Desc

_UINT64_LIMIT = 1 << 64
_UINT64_MASK = _UINT64_LIMIT - 1


@dataclass(frozen=True)
class _MetricOpts:
    namespace: str = ""
    subsystem: str = ""
    name: str = ""
    help: str = ""
    const_labels: Mapping[str, str] = field(default_factory=dict)

    @property
    def fq_name(self) -> str:
        """Namespace, subsystem and name joined by underscores."""
        if not self.name:
            return ""
        return "_".join(part for part in (self.namespace, self.subsystem, self.name) if part)

    def make_desc(self) -> Desc:
        return Desc(self.fq_name, self.help, None, self.const_labels)


@dataclass(frozen=True)
class CounterOpts(_MetricOpts):
    """Options for creating a counter."""


class _ValueFunc(SelfCollector, Metric):
    """A metric whose value is obtained by calling a function at write time."""

    value_type: ValueType

    def __init__(self, opts: _MetricOpts, function: Callable[[], float]) -> None:
        self.desc = opts.make_desc()
        self._function = function

    def write(self) -> WrittenMetric:
        return WrittenMetric(
            self.value_type, float(self._function()), self.desc.const_label_pairs
        )


class Counter(SelfCollector, Metric):
    """A metric holding a value that never decreases.

    Whole increments are tracked as an integer and fractional ones as a float;
    both parts are summed when the counter is written.
    """

    def __init__(self, opts: CounterOpts) -> None:
        self.desc = opts.make_desc()
        self._labels = self.desc.const_label_pairs
        self._lock = threading.Lock()
        self._float_part = 0.0
        self._int_part = 0

    def add(self, value: float) -> None:
        """Add a non-negative value; raise ValueError for negative values."""
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        with self._lock:
            if math.isfinite(value) and float(value).is_integer() and value < _UINT64_LIMIT:
                self._int_part = (self._int_part + int(value)) & _UINT64_MASK
            else:
                self._float_part += value

    def inc(self) -> None:
        """Add one."""
        with self._lock:
            self._int_part = (self._int_part + 1) & _UINT64_MASK

    @property
    def value(self) -> float:
        with self._lock:
            return self._float_part + float(self._int_part)

    def write(self) -> WrittenMetric:
        return WrittenMetric(ValueType.COUNTER, self.value, self._labels)

    def describe(self) -> Iterator[Desc]:
        yield self.desc

    def collect(self) -> Iterator[Metric]:
        yield self


class CounterFunc(_ValueFunc):
    """A counter whose value comes from a function called at write time.

    The function should honour the counter contract of never going down;
    this is not checked.
    """

    value_type = ValueType.COUNTER

    def __init__(self, opts: CounterOpts, function: Callable[[], float]) -> None:
        super().__init__(opts, function)

    def write(self) -> WrittenMetric:
        return super().write()