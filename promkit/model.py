"""Query result values and the JSON form of sample pairs."""

from __future__ import annotations

import enum
import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Union


class ValueKind(enum.Enum):
    """Kinds of values a query can return."""

    SCALAR = "scalar"
    VECTOR = "vector"
    MATRIX = "matrix"
    STRING = "string"


@dataclass
class SamplePair:
    """A timestamp in milliseconds with its sample value."""

    timestamp: int
    value: float


@dataclass
class Scalar:
    """A single value at a timestamp in milliseconds."""

    value: float
    timestamp: int


@dataclass
class Sample:
    """A labelled value at a timestamp in milliseconds."""

    metric: dict[str, str]
    value: float
    timestamp: int


@dataclass
class SampleStream:
    """A labelled series of sample pairs."""

    metric: dict[str, str]
    values: list[SamplePair] = field(default_factory=list)


QueryValue = Union[Scalar, list[Sample], list[SampleStream]]


def _load(data: Any) -> Any:
    if isinstance(data, (bytes, bytearray, str)):
        return json.loads(data, parse_float=Decimal)
    return data


def _pair_error(message: str) -> ValueError:
    return ValueError(f"unmarshal model.SamplePair: {message}")


def _parse_timestamp(raw: Any) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float, Decimal, str)):
        raise _pair_error(f"invalid timestamp {raw!r}")
    try:
        number = Decimal(repr(raw)) if isinstance(raw, float) else Decimal(raw)
    except InvalidOperation as exc:
        raise _pair_error(f"invalid timestamp {raw!r}") from exc
    if not number.is_finite():
        raise _pair_error(f"invalid timestamp {raw!r}")
    return int((number * 1000).to_integral_value(rounding=ROUND_DOWN))


def _parse_value(raw: Any) -> float:
    if not isinstance(raw, str):
        raise _pair_error(f"sample value must be a string, got {raw!r}")
    if not raw or raw != raw.strip() or "_" in raw:
        raise _pair_error(f"invalid sample value {raw!r}")
    try:
        value = float(raw)
    except ValueError as exc:
        raise _pair_error(f"invalid sample value {raw!r}") from exc
    if math.isinf(value) and raw.lstrip("+-").lower() not in ("inf", "infinity"):
        raise _pair_error(f"sample value {raw!r} out of range")
    return value


def decode_sample_pair(data: Any) -> SamplePair:
    """Decode ``[timestamp, "value"]`` given as JSON text or as a parsed list."""
    items = _load(data)
    if not isinstance(items, list) or not items:
        raise _pair_error("SamplePair must be [timestamp, value]")
    timestamp = _parse_timestamp(items[0])
    if len(items) < 2:
        raise _pair_error("SamplePair missing value")
    value = _parse_value(items[1])
    if len(items) > 2:
        raise _pair_error("SamplePair has too many values, must be [timestamp, value]")
    return SamplePair(timestamp, value)


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    parts = Decimal(repr(magnitude)).as_tuple()
    raw_digits = "".join(str(d) for d in parts.digits)
    point = len(raw_digits) + parts.exponent
    digits = raw_digits.rstrip("0") or "0"
    if magnitude < 1e-6 or magnitude >= 1e21:
        exponent = point - 1
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


def encode_sample_pair(pair: SamplePair) -> str:
    """Encode a pair as ``[seconds,"value"]`` JSON text."""
    millis = int(pair.timestamp)
    sign = "-" if millis < 0 else ""
    seconds, fraction = divmod(abs(millis), 1000)
    stamp = f"{sign}{seconds}" + (f".{fraction:03d}" if fraction else "")
    return f'[{stamp},"{_format_value(float(pair.value))}"]'


def _parse_metric(raw: Any) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"metric must be an object, got {raw!r}")
    metric = {}
    for name, value in raw.items():
        if not isinstance(value, str):
            raise ValueError(f"label value for {name!r} must be a string")
        metric[str(name)] = value
    return metric


def _parse_scalar(raw: Any) -> Scalar:
    pair = decode_sample_pair(raw)
    return Scalar(pair.value, pair.timestamp)


def _parse_vector(raw: Any) -> list[Sample]:
    if not isinstance(raw, list):
        raise ValueError("vector result must be a list")
    samples = []
    for item in raw:
        if not isinstance(item, Mapping) or "value" not in item:
            raise ValueError("vector sample must be an object with a value")
        pair = decode_sample_pair(item["value"])
        samples.append(Sample(_parse_metric(item.get("metric")), pair.value, pair.timestamp))
    return samples


def _parse_matrix(raw: Any) -> list[SampleStream]:
    if not isinstance(raw, list):
        raise ValueError("matrix result must be a list")
    streams = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise ValueError("sample stream must be an object")
        values = item.get("values") or []
        if not isinstance(values, list):
            raise ValueError("sample stream values must be a list")
        streams.append(
            SampleStream(
                _parse_metric(item.get("metric")),
                [decode_sample_pair(value) for value in values],
            )
        )
    return streams


_PARSERS = {
    ValueKind.SCALAR.value: _parse_scalar,
    ValueKind.VECTOR.value: _parse_vector,
    ValueKind.MATRIX.value: _parse_matrix,
}


def decode_query_result(data: Any) -> QueryValue:
    """Decode ``{"resultType": ..., "result": ...}`` into a scalar, vector or matrix."""
    loaded = _load(data)
    if not isinstance(loaded, Mapping):
        raise ValueError("query result must be an object")
    kind = loaded.get("resultType", "")
    parser = _PARSERS.get(kind) if isinstance(kind, str) else None
    if parser is None:
        raise ValueError(f'unexpected value type "{kind}"')
    return parser(loaded.get("result"))