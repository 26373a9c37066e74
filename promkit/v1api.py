"""Bindings for the v1 HTTP API of a Prometheus server."""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from operator import itemgetter

import httpx

from .apiclient import Client, Warnings, do_get_fallback
from .model import QueryValue, decode_query_result
from .v1types import (
    AlertManagersResult,
    AlertsResult,
    APIError,
    ConfigResult,
    ErrorType,
    MetricMetadata,
    Range,
    RulesResult,
    SnapshotResult,
    TargetsResult,
    parse_alert_managers_result,
    parse_alerts_result,
    parse_metric_metadata,
    parse_rules_result,
    parse_targets_result,
)

STATUS_API_ERROR = 422
_STATUS_BAD_REQUEST = 400
_STATUS_NO_CONTENT = 204

API_PREFIX = "/api/v1"
EP_ALERTS = API_PREFIX + "/alerts"
EP_ALERT_MANAGERS = API_PREFIX + "/alertmanagers"
EP_QUERY = API_PREFIX + "/query"
EP_QUERY_RANGE = API_PREFIX + "/query_range"
EP_LABELS = API_PREFIX + "/labels"
EP_LABEL_VALUES = API_PREFIX + "/label/:name/values"
EP_SERIES = API_PREFIX + "/series"
EP_TARGETS = API_PREFIX + "/targets"
EP_TARGETS_METADATA = API_PREFIX + "/targets/metadata"
EP_RULES = API_PREFIX + "/rules"
EP_SNAPSHOT = API_PREFIX + "/admin/tsdb/snapshot"
EP_DELETE_SERIES = API_PREFIX + "/admin/tsdb/delete_series"
EP_CLEAN_TOMBSTONES = API_PREFIX + "/admin/tsdb/clean_tombstones"
EP_CONFIG = API_PREFIX + "/status/config"
EP_FLAGS = API_PREFIX + "/status/flags"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _is_api_error(code: int) -> bool:
    return code in (STATUS_API_ERROR, _STATUS_BAD_REQUEST)


def _error_type_and_msg(code: int) -> tuple[ErrorType, str]:
    if code // 100 == 4:
        return ErrorType.CLIENT, f"client error: {code}"
    if code // 100 == 5:
        return ErrorType.SERVER, f"server error: {code}"
    return ErrorType.BAD_RESPONSE, f"bad response code {code}"


def _to_error_type(raw: object) -> ErrorType | str:
    text = raw if isinstance(raw, str) else ""
    try:
        return ErrorType(text)
    except ValueError:
        return text


def _format_plain(value: float) -> str:
    """Shortest decimal form of ``value`` without an exponent."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return format(Decimal(repr(float(value))).normalize(), "f")


def format_time(t: datetime) -> str:
    """Format a time as Unix seconds with a fractional part.

    Naive datetimes are taken to be in local time.
    """
    if t.tzinfo is None:
        t = t.astimezone()
    delta = t - _EPOCH
    seconds = delta // timedelta(seconds=1)
    micros = (delta % timedelta(seconds=1)).microseconds
    return _format_plain(float(seconds) + float(micros * 1000) / 1e9)


class APIClient(Client):
    """Client that unwraps the API's response envelope.

    Bodies returned by ``do`` are the JSON text of the envelope's ``data``.
    Error responses are raised as APIError.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    def url(self, endpoint: str, args: Mapping[str, str] | None = None) -> httpx.URL:
        return self._client.url(endpoint, args)

    def do(self, request: httpx.Request) -> tuple[httpx.Response, bytes, Warnings | None]:
        response, body, warnings = self._client.do(request)
        code = response.status_code

        def error(kind: ErrorType | str, msg: str, detail: str = "") -> APIError:
            return APIError(kind, msg, detail, warnings=warnings, response=response)

        if code // 100 != 2 and not _is_api_error(code):
            kind, msg = _error_type_and_msg(code)
            raise error(kind, msg, bytes(body).decode("utf-8", "replace"))

        envelope: object = {}
        if code != _STATUS_NO_CONTENT:
            try:
                envelope = json.loads(body)
            except ValueError as exc:
                raise error(ErrorType.BAD_RESPONSE, str(exc)) from exc
            if envelope is None:
                envelope = {}
            if not isinstance(envelope, dict):
                raise error(ErrorType.BAD_RESPONSE, "response body is not a JSON object")

        is_error_status = envelope.get("status") == "error"
        if _is_api_error(code) and is_error_status:
            message = envelope.get("error")
            raise error(
                _to_error_type(envelope.get("errorType")),
                message if isinstance(message, str) else "",
            )
        if _is_api_error(code) != is_error_status:
            raise error(ErrorType.BAD_RESPONSE, "inconsistent body for response code")

        data = json.dumps(envelope["data"]).encode() if "data" in envelope else b""
        return response, data, warnings


def _with_params(url: httpx.URL, params: Iterable[tuple[str, str]]) -> httpx.URL:
    url = httpx.URL(url)
    pairs = list(url.params.multi_items()) + list(params)
    return url.copy_with(params=sorted(pairs, key=itemgetter(0)))


def _matches_and_range(
    matches: Sequence[str], start_time: datetime, end_time: datetime
) -> list[tuple[str, str]]:
    params = [("match[]", match) for match in matches]
    params += [("start", format_time(start_time)), ("end", format_time(end_time))]
    return params


class API:
    """Bindings for the v1 API on top of a Client.

    It can be shared between threads if the client can.
    """

    def __init__(self, client: Client) -> None:
        self._client = APIClient(client)

    def _send(
        self,
        method: str,
        endpoint: str,
        *,
        args: Mapping[str, str] | None = None,
        params: Iterable[tuple[str, str]] = (),
    ) -> tuple[bytes, Warnings | None]:
        url = _with_params(self._client.url(endpoint, args), params)
        _, body, warnings = self._client.do(httpx.Request(method, url))
        return body, warnings

    def alerts(self) -> AlertsResult:
        """Return all active alerts."""
        body, _ = self._send("GET", EP_ALERTS)
        return parse_alerts_result(body)

    def alert_managers(self) -> AlertManagersResult:
        """Return the state of alert manager discovery."""
        body, _ = self._send("GET", EP_ALERT_MANAGERS)
        return parse_alert_managers_result(body)

    def clean_tombstones(self) -> None:
        """Remove deleted data from disk and clean up tombstones."""
        self._send("POST", EP_CLEAN_TOMBSTONES)

    def config(self) -> ConfigResult:
        """Return the currently loaded configuration."""
        body, _ = self._send("GET", EP_CONFIG)
        data = json.loads(body) or {}
        yaml_text = data.get("yaml") if isinstance(data, dict) else None
        if yaml_text is not None and not isinstance(yaml_text, str):
            raise ValueError("yaml must be a string")
        return ConfigResult(yaml_text or "")

    def delete_series(
        self, matches: Sequence[str], start_time: datetime, end_time: datetime
    ) -> None:
        """Delete data for the matching series within a time range."""
        self._send(
            "POST", EP_DELETE_SERIES, params=_matches_and_range(matches, start_time, end_time)
        )

    def flags(self) -> dict[str, str]:
        """Return the flags the server was started with."""
        body, _ = self._send("GET", EP_FLAGS)
        data = json.loads(body) or {}
        if not isinstance(data, dict):
            raise ValueError("flags must be a JSON object")
        return {str(name): str(value) for name, value in data.items()}

    def label_names(self) -> tuple[list[str], Warnings | None]:
        """Return all label names, sorted, with any warnings."""
        body, warnings = self._send("GET", EP_LABELS)
        return self._string_list(body), warnings

    def label_values(self, label: str) -> tuple[list[str], Warnings | None]:
        """Return the values of ``label``, with any warnings."""
        body, warnings = self._send("GET", EP_LABEL_VALUES, args={"name": label})
        return self._string_list(body), warnings

    @staticmethod
    def _string_list(body: bytes) -> list[str]:
        data = json.loads(body) or []
        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            raise ValueError("expected a JSON array of strings")
        return data

    def query(
        self, query: str, ts: datetime | None = None
    ) -> tuple[QueryValue, Warnings | None]:
        """Evaluate ``query`` at ``ts``, or at the server's current time if None."""
        params = {"query": query}
        if ts is not None:
            params["time"] = format_time(ts)
        _, body, warnings = do_get_fallback(self._client, self._client.url(EP_QUERY, None), params)
        return decode_query_result(body), warnings

    def query_range(self, query: str, r: Range) -> tuple[QueryValue, Warnings | None]:
        """Evaluate ``query`` over the range ``r``."""
        params = {
            "query": query,
            "start": format_time(r.start),
            "end": format_time(r.end),
            "step": _format_plain(r.step.total_seconds()),
        }
        _, body, warnings = do_get_fallback(
            self._client, self._client.url(EP_QUERY_RANGE, None), params
        )
        return decode_query_result(body), warnings

    def series(
        self, matches: Sequence[str], start_time: datetime, end_time: datetime
    ) -> tuple[list[dict[str, str]], Warnings | None]:
        """Return the label sets of series matching ``matches`` in a time range."""
        body, warnings = self._send(
            "GET", EP_SERIES, params=_matches_and_range(matches, start_time, end_time)
        )
        data = json.loads(body) or []
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise ValueError("expected a JSON array of label sets")
        return [{str(k): str(v) for k, v in item.items()} for item in data], warnings

    def snapshot(self, skip_head: bool) -> SnapshotResult:
        """Create a snapshot of the stored data and return its name."""
        body, _ = self._send(
            "POST", EP_SNAPSHOT, params=[("skip_head", "true" if skip_head else "false")]
        )
        data = json.loads(body) or {}
        name = data.get("name") if isinstance(data, dict) else None
        if name is not None and not isinstance(name, str):
            raise ValueError("name must be a string")
        return SnapshotResult(name or "")

    def rules(self) -> RulesResult:
        """Return the loaded alerting and recording rules."""
        body, _ = self._send("GET", EP_RULES)
        return parse_rules_result(body)

    def targets(self) -> TargetsResult:
        """Return the state of target discovery."""
        body, _ = self._send("GET", EP_TARGETS)
        return parse_targets_result(body)

    def targets_metadata(
        self, match_target: str, metric: str, limit: str
    ) -> list[MetricMetadata]:
        """Return metadata about metrics scraped from matching targets."""
        body, _ = self._send(
            "GET",
            EP_TARGETS_METADATA,
            params=[("match_target", match_target), ("metric", metric), ("limit", limit)],
        )
        return parse_metric_metadata(body)