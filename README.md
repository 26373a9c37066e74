# promkit

Building blocks for Prometheus monitoring in Python:

- **Metric primitives**: `Counter`, `Gauge`, `CounterFunc` and `GaugeFunc`.
  Each one is described by a `Desc` and collected through the `Collector`
  interface.
- **An HTTP API v1 client**: run PromQL queries and read alerts, rules,
  targets, target metadata, configuration and flags from a Prometheus server.
  It can also call the admin endpoints for snapshots, series deletion and
  tombstone cleanup.

## Installation

```
pip install promkit
```

## Metrics

```python
from promkit.counter import Counter, CounterOpts
from promkit.gauge import Gauge, GaugeOpts, GaugeFunc

requests_served = Counter(CounterOpts(name="requests_total", help="Requests served."))
requests_served.inc()
requests_served.add(2.5)
# requests_served.add(-1) raises ValueError: counter cannot decrease in value

temperature = Gauge(GaugeOpts(name="cpu_temperature_celsius", help="CPU temperature."))
temperature.set(65.3)
temperature.sub(0.3)
temperature.set_to_current_time()

uptime = GaugeFunc(GaugeOpts(name="uptime_seconds", help="Uptime."), lambda: 42.0)

print(requests_served.write())   # counter:<value:3.5 >
print(uptime.write())            # gauge:<value:42 >
```

The options classes (`CounterOpts`, `GaugeOpts`) take `namespace`,
`subsystem`, `name`, `help` and `const_labels`. When `name` is set, the
full metric name is the non-empty parts joined by underscores.

`write()` returns a `WrittenMetric`, which holds the value type, the value
and the label pairs.

Every metric is also a collector of itself: `describe()` yields its `Desc`
and `collect()` yields the metric. `describe_by_collect(collector)` yields
the descriptors of every metric that a collector's `collect()` produces.

A descriptor checks the metric name, the label names and the label values.
When one of these is invalid, the descriptor keeps the problem in its `error`
attribute and does not raise:

```python
from promkit.desc import Desc, new_invalid_desc

desc = Desc("sample_label", "sample label", None, {"a": "\udcff"})
print(desc.error)   # label value "\xff" is not valid UTF-8

broken = new_invalid_desc(RuntimeError("cannot describe"))
```

## Querying a Prometheus server

```python
from datetime import datetime, timedelta, timezone

from promkit.apiclient import Config, HTTPClient
from promkit.v1api import API
from promkit.v1types import APIError, Range

with HTTPClient(Config(address="http://localhost:9090")) as client:
    api = API(client)

    value, warnings = api.query("up", datetime.now(timezone.utc))

    now = datetime.now(timezone.utc)
    matrix, warnings = api.query_range(
        "rate(prometheus_tsdb_head_samples_appended_total[5m])",
        Range(start=now - timedelta(hours=1), end=now, step=timedelta(minutes=1)),
    )

    try:
        rules = api.rules()
    except APIError as err:
        print(err.type, err.msg)
```

`query` and `query_range` return a `Scalar`, a list of `Sample` or a list of
`SampleStream` (see `promkit.model`), together with any warnings. The other
calls return the dataclasses defined in `promkit.v1types`.

`query` and `query_range` send their parameters as a form-encoded POST
request. If the server answers `405 Method Not Allowed`, the request is
repeated as a GET with the parameters in the query string
(`do_get_fallback`). Errors that the server reports are raised as `APIError`
with an `ErrorType`. Responses whose body does not match their status code
are raised the same way. `APIClient` does this unwrapping and can be used on
its own on top of any `Client`.

Sample pairs use the server's wire format. Timestamps are written in seconds
with millisecond precision, and values are written as strings:

```python
from promkit.model import SamplePair, encode_sample_pair, decode_sample_pair

encode_sample_pair(SamplePair(timestamp=1001, value=20.0))   # '[1.001,"20"]'
decode_sample_pair('[1.001,"20"]')   # SamplePair(timestamp=1001, value=20.0)
```

## What the package does not do

The package has no metric registry, no labelled metric vectors, and no
histograms or summaries. It cannot expose metrics over HTTP or push them
anywhere. You collect metrics yourself by calling `collect()` and `write()`.
The package has no command-line program.

## Running the tests

```
pip install -e ".[test]"
pytest
```