"""HTTP client for Prometheus-style HTTP APIs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx

Warnings = list[str]

# Dialing may take up to 30 seconds; reads are not limited.
DEFAULT_TIMEOUT = httpx.Timeout(None, connect=30.0)

_METHOD_NOT_ALLOWED = 405


@dataclass
class Config:
    """Settings for a new client.

    ``transport`` drives the HTTP requests; when it is None the default
    httpx transport is used.
    """

    address: str
    transport: httpx.BaseTransport | None = None


class Client(ABC):
    """Interface of an API client."""

    @abstractmethod
    def url(self, endpoint: str, args: Mapping[str, str] | None = None) -> httpx.URL:
        """Return the URL of ``endpoint`` with ``:name`` placeholders filled in."""

    @abstractmethod
    def do(self, request: httpx.Request) -> tuple[httpx.Response, bytes, Warnings | None]:
        """Send ``request`` and return the response, its body and any warnings."""


def _clean_path(path: str) -> str:
    rooted = path.startswith("/")
    parts: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts and parts[-1] != "..":
                parts.pop()
            elif not rooted:
                parts.append("..")
            continue
        parts.append(segment)
    cleaned = ("/" if rooted else "") + "/".join(parts)
    return cleaned or ("/" if rooted else ".")


def _join_path(*elements: str) -> str:
    joined = "/".join(element for element in elements if element)
    return _clean_path(joined) if joined else ""


def _encode_values(args: Mapping[str, str | Sequence[str]]) -> str:
    pairs = []
    for key in sorted(args):
        values = args[key]
        if isinstance(values, str):
            values = [values]
        pairs.extend((key, value) for value in values)
    return urlencode(pairs)


class HTTPClient(Client):
    """Client talking to the server at the configured address.

    It can be shared between threads.
    """

    def __init__(self, config: Config) -> None:
        try:
            self._endpoint = httpx.URL(config.address)
        except (httpx.InvalidURL, TypeError) as exc:
            raise ValueError(f"invalid address {config.address!r}: {exc}") from exc
        self._base_path = self._endpoint.path.rstrip("/")
        if config.transport is not None:
            self._http = httpx.Client(transport=config.transport, timeout=DEFAULT_TIMEOUT)
        else:
            self._http = httpx.Client(timeout=DEFAULT_TIMEOUT)

    def url(self, endpoint: str, args: Mapping[str, str] | None = None) -> httpx.URL:
        path = _join_path(self._base_path, endpoint)
        for name, value in (args or {}).items():
            path = path.replace(":" + name, value)
        if path and self._endpoint.host and not path.startswith("/"):
            path = "/" + path
        return self._endpoint.copy_with(path=path)

    def do(self, request: httpx.Request) -> tuple[httpx.Response, bytes, Warnings | None]:
        response = self._http.send(request, stream=True)
        try:
            body = response.read()
        finally:
            response.close()
        return response, body, None

    def close(self) -> None:
        """Release the underlying connections."""
        self._http.close()

    def __enter__(self) -> HTTPClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def do_get_fallback(
    client: Client,
    url: httpx.URL | str,
    args: Mapping[str, str | Sequence[str]],
) -> tuple[httpx.Response, bytes, Warnings | None]:
    """POST ``args`` as a form; on a 405 answer repeat the request as a GET.

    A 405 is recognised either in a returned response or in the ``response``
    attribute of an exception raised by the client.
    """
    encoded = _encode_values(args)
    request = httpx.Request(
        "POST",
        str(url),
        content=encoded.encode(),
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    try:
        response, body, warnings = client.do(request)
    except Exception as exc:
        response = getattr(exc, "response", None)
        if not isinstance(response, httpx.Response) or response.status_code != _METHOD_NOT_ALLOWED:
            raise
    else:
        if response.status_code != _METHOD_NOT_ALLOWED:
            return response, body, warnings
    parts = urlsplit(str(url))
    get_url = urlunsplit(parts._replace(query=encoded))
    return client.do(httpx.Request("GET", get_url))