from __future__ import annotations

import asyncio
import json

import pytest
import requests

from preset_sync.client.http_channel import HttpRequestChannel
from preset_sync.errors import ConnectivityError, RemoteRequestError


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "") -> None:
        self.status_code = status_code
        self.text = text
        self.content = text.encode("utf-8")

    def json(self):
        return json.loads(self.text)


class FakeSession:
    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None) -> None:
        self.response = response or FakeResponse()
        self.error = error
        self.calls: list[dict] = []
        self.closed = False

    def request(self, method, url, json=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response

    def close(self) -> None:
        self.closed = True


def _run(channel: HttpRequestChannel, verb: str, url: str, body=None):
    return asyncio.run(channel.request(verb, url, body))


def test_json_reply_and_url_join() -> None:
    session = FakeSession(FakeResponse(200, '{"Presets": []}'))
    channel = HttpRequestChannel("http://host:30010/", session=session, timeout_s=5.0)

    assert _run(channel, "PUT", "/remote/x", {"Value": 1}) == {"Presets": []}
    assert session.calls == [
        {"method": "PUT", "url": "http://host:30010/remote/x", "json": {"Value": 1}, "timeout": 5.0}
    ]


def test_empty_and_non_json_bodies() -> None:
    assert _run(HttpRequestChannel("http://h", session=FakeSession(FakeResponse(200, ""))), "GET", "/a") is None
    text = HttpRequestChannel("http://h", session=FakeSession(FakeResponse(200, "plain")))
    assert _run(text, "GET", "/a") == "plain"


def test_error_status_raises() -> None:
    channel = HttpRequestChannel("http://h", session=FakeSession(FakeResponse(500, "boom")))
    with pytest.raises(RemoteRequestError) as info:
        _run(channel, "GET", "/remote/presets")
    assert info.value.status == 500
    assert info.value.body == "boom"


def test_unreachable_host_raises_connectivity_error() -> None:
    channel = HttpRequestChannel("http://h", session=FakeSession(error=requests.ConnectionError("refused")))
    with pytest.raises(ConnectivityError):
        _run(channel, "GET", "/remote/presets")


def test_close_closes_session() -> None:
    session = FakeSession()
    HttpRequestChannel("http://h", session=session).close()
    assert session.closed
