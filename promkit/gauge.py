"""Gauges: metrics whose value can go up and down."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from .collector import Metric, SelfCollector, ValueType, WrittenMetric
from .counter import _MetricOpts, _ValueFunc
from .desc import Desc


@dataclass(frozen=True)
class GaugeOpts(_MetricOpts):
    """Options for creating a gauge."""


class Gauge(SelfCollector, Metric):
    """A metric holding a single value that can be set, raised and lowered."""

    def __init__(self, opts: GaugeOpts) -> None:
        self.desc = opts.make_desc()
        self._labels = self.desc.const_label_pairs
        self._lock = threading.Lock()
        self._value = 0.0

    def set(self, value: float) -> None:
        """Set the gauge to an arbitrary value."""
        with self._lock:
            self._value = float(value)

    def set_to_current_time(self) -> None:
        """Set the gauge to the current Unix time in seconds."""
        self.set(time.time_ns() / 1e9)

    def inc(self) -> None:
        self.add(1.0)

    def dec(self) -> None:
        self.add(-1.0)

    def add(self, value: float) -> None:
        """Add a value, which may be negative."""
        with self._lock:
            self._value += value

    def sub(self, value: float) -> None:
        """Subtract a value, which may be negative."""
        self.add(value * -1)

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def write(self) -> WrittenMetric:
        return WrittenMetric(ValueType.GAUGE, self.value, self._labels)

    def describe(self) -> Iterator[Desc]:
        yield self.desc

    def collect(self) -> Iterator[Metric]:
        yield self


class GaugeFunc(_ValueFunc):
    """A gauge whose value comes from a function called at write time."""

    value_type = ValueType.GAUGE

    def __init__(self, opts: GaugeOpts, function: Callable[[], float]) -> None:
        super().__init__(opts, function)

    def write(self) -> WrittenMetric:
        return super().write()