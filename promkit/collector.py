"""Core metric and collector abstractions and the written form of a metric."""

from __future__ import annotations

import enum
import math
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .desc import Desc


class ValueType(enum.Enum):
    """Kind of a single-value metric."""

    COUNTER = 1
    GAUGE = 2
    UNTYPED = 3

    @property
    def field_name(self) -> str:
        return self.name.lower()


_GO_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    "\\": "\\\\",
    '"': '\\"',
}


def _quote(text: str) -> str:
    """Quote a string with escapes for unprintable and undecodable characters."""
    parts = []
    for ch in text:
        code = ord(ch)
        if ch in _GO_ESCAPES:
            parts.append(_GO_ESCAPES[ch])
        elif 0xDC80 <= code <= 0xDCFF:
            parts.append(f"\\x{code - 0xDC00:02x}")
        elif ch.isprintable():
            parts.append(ch)
        elif code < 0x80:
            parts.append(f"\\x{code:02x}")
        elif code <= 0xFFFF:
            parts.append(f"\\u{code:04x}")
        else:
            parts.append(f"\\U{code:08x}")
    return '"' + "".join(parts) + '"'


_PROTO_ESCAPES = {0x0A: "\\n", 0x0D: "\\r", 0x09: "\\t", 0x22: '\\"', 0x5C: "\\\\"}


def _proto_quote(text: str) -> str:
    try:
        data = text.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        data = text.encode("utf-8", "surrogatepass")
    parts = []
    for byte in data:
        if byte in _PROTO_ESCAPES:
            parts.append(_PROTO_ESCAPES[byte])
        elif 0x20 <= byte < 0x7F:
            parts.append(chr(byte))
        else:
            parts.append(f"\\{byte:03o}")
    return '"' + "".join(parts) + '"'


def _format_float(value: float) -> str:
    """Shortest representation, switching to exponent form like ``%g``."""
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign = "-" if value < 0 else ""
    parts = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(d) for d in parts.digits)
    point = len(digits) + parts.exponent
    digits = digits.rstrip("0") or "0"
    exponent = point - 1
    if exponent < -4 or exponent >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "+" if exponent >= 0 else "-"
        return f"{sign}{mantissa}e{exp_sign}{abs(exponent):02d}"
    if point <= 0:
        body = "0." + "0" * (-point) + digits
    elif point >= len(digits):
        body = digits + "0" * (point - len(digits))
    else:
        body = digits[:point] + "." + digits[point:]
    return sign + body


@dataclass(frozen=True, order=True)
class LabelPair:
    """A label name with its value."""

    name: str
    value: str

    def __str__(self) -> str:
        return f"{self.name}={_quote(self.value)}"


@dataclass(frozen=True)
class WrittenMetric:
    """Snapshot of a single metric: its labels, kind and value."""

    value_type: ValueType
    value: float
    labels: tuple[LabelPair, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "labels", tuple(self.labels))

    def __str__(self) -> str:
        parts = [
            f"label:<name:{_proto_quote(pair.name)} value:{_proto_quote(pair.value)} > "
            for pair in self.labels
        ]
        parts.append(
            f"{self.value_type.field_name}:<value:{_format_float(self.value)} > "
        )
        return "".join(parts)


class Metric(ABC):
    """A single sample value with its descriptor."""

    desc: Desc

    @abstractmethod
    def write(self) -> WrittenMetric:
        """Return a snapshot of the current value."""


class Collector(ABC):
    """Anything that can yield descriptors and metrics for collection."""

    @abstractmethod
    def describe(self) -> Iterator[Desc]:
        """Yield every descriptor this collector may produce."""

    @abstractmethod
    def collect(self) -> Iterator[Metric]:
        """Yield the metrics currently held by this collector."""


class SelfCollector(Collector):
    """Mix-in that lets a Metric collect itself."""

    def describe(self) -> Iterator[Desc]:
        yield self.desc  # type: ignore[attr-defined]

    def collect(self) -> Iterator[Metric]:
        yield self  # type: ignore[misc]


def describe_by_collect(collector: Collector) -> Iterable[Desc]:
    """Yield the descriptors of all metrics the collector currently collects."""
    for metric in collector.collect():
        yield metric.desc