"""Result types of the v1 HTTP API and their decoding from JSON."""

from __future__ import annotations

import enum
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar, Union


class AlertState(str, enum.Enum):
    """State of an alert."""

    FIRING = "firing"
    INACTIVE = "inactive"
    PENDING = "pending"


class ErrorType(str, enum.Enum):
    """Kinds of errors reported by the API."""

    BAD_DATA = "bad_data"
    TIMEOUT = "timeout"
    CANCELED = "canceled"
    EXEC = "execution"
    BAD_RESPONSE = "bad_response"
    SERVER = "server_error"
    CLIENT = "client_error"


class HealthStatus(str, enum.Enum):
    """Health of a scrape target."""

    GOOD = "up"
    UNKNOWN = "unknown"
    BAD = "down"


class RuleType(str, enum.Enum):
    """Kind of a rule."""

    RECORDING = "recording"
    ALERTING = "alerting"


class RuleHealth(str, enum.Enum):
    """Health of a rule."""

    GOOD = "ok"
    UNKNOWN = "unknown"
    BAD = "err"


class MetricType(str, enum.Enum):
    """Type of a metric as reported in target metadata."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    GAUGE_HISTOGRAM = "gaugehistogram"
    SUMMARY = "summary"
    INFO = "info"
    STATESET = "stateset"
    UNKNOWN = "unknown"


class APIError(Exception):
    """An error reported by the API or found in its response.

    ``warnings`` holds the warnings that came with the failed response and
    ``response`` the HTTP response itself, when there is one.
    """

    def __init__(
        self,
        error_type: ErrorType | str,
        msg: str,
        detail: str = "",
        *,
        warnings: list[str] | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(error_type, msg)
        self.type = error_type
        self.msg = msg
        self.detail = detail
        self.warnings = warnings
        self.response = response

    def __str__(self) -> str:
        kind = self.type.value if isinstance(self.type, ErrorType) else str(self.type)
        return f"{kind}: {self.msg}"


@dataclass
class Range:
    """A time range sliced into steps."""

    start: datetime
    end: datetime
    step: timedelta


@dataclass
class AlertManager:
    """A configured alert manager."""

    url: str


@dataclass
class AlertManagersResult:
    """Active and dropped alert managers."""

    active: list[AlertManager] = field(default_factory=list)
    dropped: list[AlertManager] = field(default_factory=list)


@dataclass
class ConfigResult:
    """The loaded configuration as YAML text."""

    yaml: str = ""


@dataclass
class SnapshotResult:
    """Name of a created snapshot."""

    name: str = ""


@dataclass
class Alert:
    """An active alert."""

    active_at: datetime | None = None
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    state: AlertState | str = ""
    value: str = ""


@dataclass
class AlertsResult:
    """All active alerts."""

    alerts: list[Alert] = field(default_factory=list)


@dataclass
class AlertingRule:
    """An alerting rule."""

    name: str = ""
    query: str = ""
    duration: float = 0.0
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    alerts: list[Alert] = field(default_factory=list)
    health: RuleHealth | str = ""
    last_error: str = ""


@dataclass
class RecordingRule:
    """A recording rule."""

    name: str = ""
    query: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    health: RuleHealth | str = ""
    last_error: str = ""


Rule = Union[AlertingRule, RecordingRule]


@dataclass
class RuleGroup:
    """A group of rules, in the order the API returned them."""

    name: str = ""
    file: str = ""
    interval: float = 0.0
    rules: list[Rule] = field(default_factory=list)


@dataclass
class RulesResult:
    """All loaded rule groups."""

    groups: list[RuleGroup] = field(default_factory=list)


@dataclass
class ActiveTarget:
    """An active scrape target."""

    discovered_labels: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    scrape_url: str = ""
    last_error: str = ""
    last_scrape: datetime | None = None
    health: HealthStatus | str = ""


@dataclass
class DroppedTarget:
    """A dropped scrape target."""

    discovered_labels: dict[str, str] = field(default_factory=dict)


@dataclass
class TargetsResult:
    """Active and dropped scrape targets."""

    active: list[ActiveTarget] = field(default_factory=list)
    dropped: list[DroppedTarget] = field(default_factory=list)


@dataclass
class MetricMetadata:
    """Metadata of a metric scraped from a target."""

    target: dict[str, str] = field(default_factory=dict)
    metric: str = ""
    type: MetricType | str = ""
    help: str = ""
    unit: str = ""


_E = TypeVar("_E", bound=enum.Enum)

_TIME_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?"
    r"(?:([Zz])|([+-])(\d{2}):(\d{2}))"
)


def _load(data: Any) -> Any:
    if isinstance(data, (bytes, bytearray, str)):
        return json.loads(data)
    return data


def _object(raw: Any, what: str) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"{what} must be a JSON object")
    return raw


def _list(raw: Any, what: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"{what} must be a JSON array")
    return raw


def _str(raw: Any, what: str) -> str:
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise ValueError(f"{what} must be a string")
    return raw


def _float(raw: Any, what: str) -> float:
    if raw is None:
        return 0.0
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{what} must be a number")
    return float(raw)


def _labels(raw: Any, what: str) -> dict[str, str]:
    return {str(name): _str(value, what) for name, value in _object(raw, what).items()}


def _enum(cls: type[_E], raw: Any, what: str) -> _E | str:
    text = _str(raw, what)
    try:
        return cls(text)
    except ValueError:
        return text


def _parse_time(raw: Any, what: str) -> datetime | None:
    if raw is None:
        return None
    text = _str(raw, what)
    match = _TIME_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"{what}: invalid RFC 3339 time {text!r}")
    year, month, day, hour, minute, second = (int(match[i]) for i in range(1, 7))
    micros = int((match[7] or "")[:6].ljust(6, "0"))
    if match[8]:
        tz = timezone.utc
    else:
        offset = timedelta(hours=int(match[10]), minutes=int(match[11]))
        tz = timezone(-offset if match[9] == "-" else offset)
    return datetime(year, month, day, hour, minute, second, micros, tzinfo=tz)


def _parse_alert(raw: Any) -> Alert:
    obj = _object(raw, "alert")
    return Alert(
        active_at=_parse_time(obj.get("activeAt"), "activeAt"),
        annotations=_labels(obj.get("annotations"), "annotations"),
        labels=_labels(obj.get("labels"), "labels"),
        state=_enum(AlertState, obj.get("state"), "state"),
        value=_str(obj.get("value"), "value"),
    )


_RULE_DECODE_ERROR = "failed to decode JSON into an alerting or recording rule"


def parse_rule(data: Any) -> Rule:
    """Decode an alerting or recording rule, chosen by its ``type`` field."""
    obj = _object(_load(data), "rule")
    kind = obj.get("type")
    if not kind:
        raise ValueError("type field not present in rule")
    if kind == RuleType.ALERTING.value:
        return AlertingRule(
            name=_str(obj.get("name"), "name"),
            query=_str(obj.get("query"), "query"),
            duration=_float(obj.get("duration"), "duration"),
            labels=_labels(obj.get("labels"), "labels"),
            annotations=_labels(obj.get("annotations"), "annotations"),
            alerts=[_parse_alert(item) for item in _list(obj.get("alerts"), "alerts")],
            health=_enum(RuleHealth, obj.get("health"), "health"),
            last_error=_str(obj.get("lastError"), "lastError"),
        )
    if kind == RuleType.RECORDING.value:
        return RecordingRule(
            name=_str(obj.get("name"), "name"),
            query=_str(obj.get("query"), "query"),
            labels=_labels(obj.get("labels"), "labels"),
            health=_enum(RuleHealth, obj.get("health"), "health"),
            last_error=_str(obj.get("lastError"), "lastError"),
        )
    raise ValueError(_RULE_DECODE_ERROR)


def _parse_rule_group(raw: Any) -> RuleGroup:
    obj = _object(raw, "rule group")
    rules = []
    for item in _list(obj.get("rules"), "rules"):
        try:
            rules.append(parse_rule(item))
        except ValueError as exc:
            raise ValueError(_RULE_DECODE_ERROR) from exc
    return RuleGroup(
        name=_str(obj.get("name"), "name"),
        file=_str(obj.get("file"), "file"),
        interval=_float(obj.get("interval"), "interval"),
        rules=rules,
    )


def parse_alerts_result(data: Any) -> AlertsResult:
    """Decode the data of the alerts endpoint."""
    obj = _object(_load(data), "alerts result")
    return AlertsResult([_parse_alert(item) for item in _list(obj.get("alerts"), "alerts")])


def _parse_alert_managers(raw: Any, what: str) -> list[AlertManager]:
    return [
        AlertManager(_str(_object(item, what).get("url"), "url"))
        for item in _list(raw, what)
    ]


def parse_alert_managers_result(data: Any) -> AlertManagersResult:
    """Decode the data of the alertmanagers endpoint."""
    obj = _object(_load(data), "alertmanagers result")
    return AlertManagersResult(
        active=_parse_alert_managers(obj.get("activeAlertManagers"), "activeAlertManagers"),
        dropped=_parse_alert_managers(obj.get("droppedAlertManagers"), "droppedAlertManagers"),
    )


def parse_rules_result(data: Any) -> RulesResult:
    """Decode the data of the rules endpoint."""
    obj = _object(_load(data), "rules result")
    return RulesResult([_parse_rule_group(item) for item in _list(obj.get("groups"), "groups")])


def _parse_active_target(raw: Any) -> ActiveTarget:
    obj = _object(raw, "active target")
    return ActiveTarget(
        discovered_labels=_labels(obj.get("discoveredLabels"), "discoveredLabels"),
        labels=_labels(obj.get("labels"), "labels"),
        scrape_url=_str(obj.get("scrapeUrl"), "scrapeUrl"),
        last_error=_str(obj.get("lastError"), "lastError"),
        last_scrape=_parse_time(obj.get("lastScrape"), "lastScrape"),
        health=_enum(HealthStatus, obj.get("health"), "health"),
    )


def parse_targets_result(data: Any) -> TargetsResult:
    """Decode the data of the targets endpoint."""
    obj = _object(_load(data), "targets result")
    return TargetsResult(
        active=[
            _parse_active_target(item) for item in _list(obj.get("activeTargets"), "activeTargets")
        ],
        dropped=[
            DroppedTarget(
                _labels(_object(item, "dropped target").get("discoveredLabels"), "discoveredLabels")
            )
            for item in _list(obj.get("droppedTargets"), "droppedTargets")
        ],
    )


def parse_metric_metadata(data: Any) -> list[MetricMetadata]:
    """Decode the data of the targets metadata endpoint."""
    result = []
    for item in _list(_load(data), "metadata"):
        obj = _object(item, "metadata entry")
        result.append(
            MetricMetadata(
                target=_labels(obj.get("target"), "target"),
                metric=_str(obj.get("metric"), "metric"),
                type=_enum(MetricType, obj.get("type"), "type"),
                help=_str(obj.get("help"), "help"),
                unit=_str(obj.get("unit"), "unit"),
            )
        )
    return result