import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from promkit.apiclient import Client
from promkit.model import SamplePair, SampleStream, Scalar
from promkit.v1api import API, STATUS_API_ERROR, APIClient, format_time
from promkit.v1types import (
    AlertingRule,
    AlertManager,
    APIError,
    ErrorType,
    HealthStatus,
    MetricType,
    Range,
    RecordingRule,
    RuleHealth,
)

T = datetime(2019, 8, 1, 12, 0, tzinfo=timezone.utc)
T_TEXT = "1564660800"
T_MINUS_MINUTE_TEXT = "1564660740"


class FakeClient(Client):
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def url(self, endpoint, args=None):
        path = endpoint
        for name, value in (args or {}).items():
            path = path.replace(":" + name, value)
        return httpx.URL("http://test:9090" + path)

    def do(self, request):
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        status, body, warnings = item
        content = body if isinstance(body, bytes) else json.dumps(body).encode()
        return httpx.Response(status, content=content), content, warnings


def ok(data, warnings=None):
    return 200, {"status": "success", "data": data}, warnings


def form(request):
    return parse_qs(request.content.decode())


def params(request):
    return {key: request.url.params.get_list(key) for key in request.url.params.keys()}


SCALAR = {"resultType": "scalar", "result": [1564660800, "2"]}


# APIClient envelope handling


def do_raw(status, body, warnings=None):
    client = APIClient(FakeClient((status, body, warnings)))
    return client.do(httpx.Request("GET", "http://test:9090/x"))


@pytest.mark.parametrize(
    "status,body,message",
    [
        (
            STATUS_API_ERROR,
            {"status": "error", "data": None, "errorType": "bad_data", "error": "failed"},
            "bad_data: failed",
        ),
        (
            STATUS_API_ERROR,
            {"status": "error", "data": "test", "errorType": "timeout", "error": "timed out"},
            "timeout: timed out",
        ),
        (
            400,
            {
                "status": "error",
                "data": None,
                "errorType": "bad_data",
                "error": "end timestamp must not be before start time",
            },
            "bad_data: end timestamp must not be before start time",
        ),
        (
            STATUS_API_ERROR,
            {"status": "success", "data": "test"},
            "bad_response: inconsistent body for response code",
        ),
        (
            STATUS_API_ERROR,
            {"status": "success", "data": "test", "errorType": "timeout", "error": "timed out"},
            "bad_response: inconsistent body for response code",
        ),
        (
            200,
            {"status": "error", "data": "test", "errorType": "timeout", "error": "timed out"},
            "bad_response: inconsistent body for response code",
        ),
    ],
)
def test_api_client_errors(status, body, message):
    with pytest.raises(APIError) as info:
        do_raw(status, body)
    assert str(info.value) == message
    assert info.value.warnings is None


@pytest.mark.parametrize(
    "status,body,kind,message",
    [
        (500, b"500 error details", ErrorType.SERVER, "server error: 500"),
        (404, b"404 error details", ErrorType.CLIENT, "client error: 404"),
    ],
)
def test_api_client_http_errors_carry_detail(status, body, kind, message):
    with pytest.raises(APIError) as info:
        do_raw(status, body)
    assert info.value.type is kind
    assert info.value.msg == message
    assert info.value.detail == body.decode()


def test_api_client_bad_json():
    with pytest.raises(APIError) as info:
        do_raw(STATUS_API_ERROR, b"bad json")
    assert info.value.type is ErrorType.BAD_RESPONSE


def test_api_client_error_keeps_warnings():
    body = {
        "status": "error",
        "data": "test",
        "errorType": "timeout",
        "error": "timed out",
        "warnings": ["a"],
    }
    with pytest.raises(APIError) as info:
        do_raw(200, body, ["a"])
    assert str(info.value) == "bad_response: inconsistent body for response code"
    assert info.value.warnings == ["a"]


def test_api_client_success_returns_data():
    response, body, warnings = do_raw(200, {"status": "success", "data": "test"}, ["w"])
    assert response.status_code == 200
    assert json.loads(body) == "test"
    assert warnings == ["w"]


def test_api_client_no_content():
    _, body, _ = do_raw(204, b"")
    assert body == b""


# API methods


def test_query():
    fake = FakeClient(ok(SCALAR))
    value, warnings = API(fake).query("2", T)
    assert value == Scalar(2.0, 1564660800000)
    assert warnings is None
    request = fake.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v1/query"
    assert form(request) == {"query": ["2"], "time": [T_TEXT]}


def test_query_with_warnings():
    fake = FakeClient(ok(SCALAR, ["warning"]))
    value, warnings = API(fake).query("2", T)
    assert value == Scalar(2.0, 1564660800000)
    assert warnings == ["warning"]


def test_query_without_time():
    fake = FakeClient(ok(SCALAR))
    API(fake).query("2")
    assert form(fake.requests[0]) == {"query": ["2"]}


def test_query_error_propagates():
    fake = FakeClient(RuntimeError("some error"))
    with pytest.raises(RuntimeError, match="some error"):
        API(fake).query("2", T)


def test_query_server_error():
    fake = FakeClient((500, b"some body", None))
    with pytest.raises(APIError) as info:
        API(fake).query("2", T)
    assert str(info.value) == "server_error: server error: 500"
    assert info.value.detail == "some body"


def test_query_client_error_with_warnings():
    fake = FakeClient((404, b"some body", ["warning"]))
    with pytest.raises(APIError) as info:
        API(fake).query("2", T)
    assert str(info.value) == "client_error: client error: 404"
    assert info.value.warnings == ["warning"]


def test_query_falls_back_to_get():
    fake = FakeClient((405, b"not allowed", None), ok(SCALAR))
    value, _ = API(fake).query("2", T)
    assert value == Scalar(2.0, 1564660800000)
    assert [r.method for r in fake.requests] == ["POST", "GET"]
    assert params(fake.requests[1]) == {"query": ["2"], "time": [T_TEXT]}


def test_query_range():
    matrix = {
        "resultType": "matrix",
        "result": [
            {"metric": {"__name__": "up"}, "values": [[1564660740, "1"], [1564660800, "2"]]}
        ],
    }
    fake = FakeClient(ok(matrix))
    rng = Range(T - timedelta(minutes=1), T, timedelta(minutes=1))
    value, _ = API(fake).query_range("2", rng)
    assert value == [
        SampleStream(
            {"__name__": "up"},
            [SamplePair(1564660740000, 1.0), SamplePair(1564660800000, 2.0)],
        )
    ]
    request = fake.requests[0]
    assert request.url.path == "/api/v1/query_range"
    assert form(request) == {
        "query": ["2"],
        "start": [T_MINUS_MINUTE_TEXT],
        "end": [T_TEXT],
        "step": ["60"],
    }


def test_query_range_error():
    fake = FakeClient(RuntimeError("some error"))
    rng = Range(T - timedelta(minutes=1), T, timedelta(minutes=1))
    with pytest.raises(RuntimeError, match="some error"):
        API(fake).query_range("2", rng)


def test_label_names():
    fake = FakeClient(ok(["val1", "val2"], ["a"]))
    names, warnings = API(fake).label_names()
    assert names == ["val1", "val2"]
    assert warnings == ["a"]
    assert fake.requests[0].method == "GET"
    assert fake.requests[0].url.path == "/api/v1/labels"


def test_label_values():
    fake = FakeClient(ok(["val1", "val2"]))
    values, warnings = API(fake).label_values("mylabel")
    assert values == ["val1", "val2"]
    assert warnings is None
    assert fake.requests[0].url.path == "/api/v1/label/mylabel/values"


def test_label_values_error():
    fake = FakeClient(RuntimeError("some error"))
    with pytest.raises(RuntimeError, match="some error"):
        API(fake).label_values("mylabel")


def test_series():
    series = [{"__name__": "up", "job": "prometheus", "instance": "localhost:9090"}]
    fake = FakeClient(ok(series, ["a"]))
    result, warnings = API(fake).series(["up"], T - timedelta(minutes=1), T)
    assert result == series
    assert warnings == ["a"]
    request = fake.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/api/v1/series"
    assert params(request) == {
        "end": [T_TEXT],
        "match[]": ["up"],
        "start": [T_MINUS_MINUTE_TEXT],
    }


def test_snapshot():
    fake = FakeClient(ok({"name": "20171210T211224Z-2be650b6d019eb54"}))
    result = API(fake).snapshot(True)
    assert result.name == "20171210T211224Z-2be650b6d019eb54"
    request = fake.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v1/admin/tsdb/snapshot"
    assert params(request) == {"skip_head": ["true"]}


def test_clean_tombstones():
    fake = FakeClient((204, b"", None))
    assert API(fake).clean_tombstones() is None
    assert fake.requests[0].method == "POST"
    assert fake.requests[0].url.path == "/api/v1/admin/tsdb/clean_tombstones"


def test_clean_tombstones_error():
    fake = FakeClient(RuntimeError("some error"))
    with pytest.raises(RuntimeError, match="some error"):
        API(fake).clean_tombstones()


def test_delete_series():
    fake = FakeClient(ok(None))
    API(fake).delete_series(["up"], T - timedelta(minutes=1), T)
    request = fake.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v1/admin/tsdb/delete_series"
    assert params(request)["match[]"] == ["up"]
    assert params(request)["start"] == [T_MINUS_MINUTE_TEXT]


def test_config():
    fake = FakeClient(ok({"yaml": "<content of the loaded config file in YAML>"}))
    assert API(fake).config().yaml == "<content of the loaded config file in YAML>"
    assert fake.requests[0].url.path == "/api/v1/status/config"


def test_flags():
    flags = {"log.level": "info", "query.max-concurrency": "20"}
    fake = FakeClient(ok(flags))
    assert API(fake).flags() == flags
    assert fake.requests[0].url.path == "/api/v1/status/flags"


def test_alert_managers():
    fake = FakeClient(
        ok(
            {
                "activeAlertManagers": [{"url": "http://127.0.0.1:9091/api/v1/alerts"}],
                "droppedAlertManagers": [{"url": "http://127.0.0.1:9092/api/v1/alerts"}],
            }
        )
    )
    result = API(fake).alert_managers()
    assert result.active == [AlertManager("http://127.0.0.1:9091/api/v1/alerts")]
    assert result.dropped == [AlertManager("http://127.0.0.1:9092/api/v1/alerts")]


def test_alerts():
    fake = FakeClient(ok({"alerts": [{"state": "firing", "value": "1"}]}))
    result = API(fake).alerts()
    assert result.alerts[0].value == "1"
    assert fake.requests[0].url.path == "/api/v1/alerts"


def test_rules():
    data = {
        "groups": [
            {
                "file": "/rules.yaml",
                "interval": 60,
                "name": "example",
                "rules": [
                    {
                        "alerts": [],
                        "duration": 600,
                        "health": "ok",
                        "labels": {"severity": "page"},
                        "name": "HighRequestLatency",
                        "query": "x > 0.5",
                        "type": "alerting",
                    },
                    {
                        "health": "ok",
                        "name": "job:http_inprogress_requests:sum",
                        "query": "sum(http_inprogress_requests) by (job)",
                        "type": "recording",
                    },
                ],
            }
        ]
    }
    fake = FakeClient(ok(data))
    group = API(fake).rules().groups[0]
    assert group.rules == [
        AlertingRule(
            name="HighRequestLatency",
            query="x > 0.5",
            duration=600.0,
            labels={"severity": "page"},
            health=RuleHealth.GOOD,
        ),
        RecordingRule(
            name="job:http_inprogress_requests:sum",
            query="sum(http_inprogress_requests) by (job)",
            health=RuleHealth.GOOD,
        ),
    ]


def test_targets():
    fake = FakeClient(
        ok(
            {
                "activeTargets": [
                    {
                        "scrapeUrl": "http://127.0.0.1:9090",
                        "lastScrape": "2019-08-01T12:00:00Z",
                        "health": "up",
                    }
                ],
                "droppedTargets": [],
            }
        )
    )
    result = API(fake).targets()
    assert result.active[0].health is HealthStatus.GOOD
    assert result.active[0].last_scrape == T
    assert result.dropped == []


def test_targets_metadata():
    fake = FakeClient(
        ok(
            [
                {
                    "target": {"instance": "127.0.0.1:9090", "job": "prometheus"},
                    "type": "gauge",
                    "help": "Number of goroutines that currently exist.",
                    "unit": "",
                }
            ]
        )
    )
    result = API(fake).targets_metadata('{job="prometheus"}', "go_goroutines", "1")
    assert result[0].type is MetricType.GAUGE
    assert result[0].target == {"instance": "127.0.0.1:9090", "job": "prometheus"}
    assert params(fake.requests[0]) == {
        "limit": ["1"],
        "match_target": ['{job="prometheus"}'],
        "metric": ["go_goroutines"],
    }


def test_targets_metadata_error():
    fake = FakeClient(RuntimeError("some error"))
    with pytest.raises(RuntimeError, match="some error"):
        API(fake).targets_metadata('{job="prometheus"}', "go_goroutines", "1")


@pytest.mark.parametrize(
    "moment,expected",
    [
        (T, "1564660800"),
        (T.replace(microsecond=500000), "1564660800.5"),
        (datetime(2019, 8, 1, 14, 0, tzinfo=timezone(timedelta(hours=2))), "1564660800"),
        (datetime(1970, 1, 1, tzinfo=timezone.utc), "0"),
    ],
)
def test_format_time(moment, expected):
    assert format_time(moment) == expected