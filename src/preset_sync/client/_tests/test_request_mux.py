from __future__ import annotations

import asyncio
import json

import pytest

from preset_sync.client.request_mux import RequestMultiplexer
from preset_sync.errors import ConnectivityError, RemoteRequestError, RequestTimeoutError


class Wire:
    def __init__(self) -> None:
        self.frames: list[dict] = []
        self.open = True

    def send_text(self, text: str) -> None:
        if not self.open:
            raise ConnectivityError("closed")
        self.frames.append(json.loads(text))

    def last_request_id(self) -> int:
        return self.frames[-1]["Parameters"]["RequestId"]


class DirectChannel:
    def __init__(self, reply=None, delay: float = 0.0, error: Exception | None = None) -> None:
        self.calls: list[tuple] = []
        self.reply = reply
        self.delay = delay
        self.error = error

    async def request(self, verb, url, body=None):
        self.calls.append((verb, url, body))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


def test_send_wraps_envelope_with_increasing_ids() -> None:
    wire = Wire()
    mux = RequestMultiplexer(wire.send_text)
    assert mux.send("preset.register", {"PresetName": "A"}) == 1
    assert mux.send("preset.unregister", {"PresetName": "A"}) == 2
    assert wire.frames[0] == {"MessageName": "preset.register", "Id": 1, "Parameters": {"PresetName": "A"}}


def test_reply_resolves_matching_request() -> None:
    async def runner() -> None:
        wire = Wire()
        mux = RequestMultiplexer(wire.send_text)

        first = asyncio.ensure_future(mux.get("/remote/presets"))
        second = asyncio.ensure_future(mux.put("/remote/x", {"Value": 1}))
        await asyncio.sleep(0)

        assert [f["MessageName"] for f in wire.frames] == ["http", "http"]
        assert wire.frames[1]["Parameters"]["Verb"] == "PUT"
        assert wire.frames[1]["Parameters"]["Body"] == {"Value": 1}
        first_id = wire.frames[0]["Parameters"]["RequestId"]
        second_id = wire.frames[1]["Parameters"]["RequestId"]

        assert mux.dispatch({"RequestId": second_id, "ResponseCode": 200, "ResponseBody": "b"})
        assert mux.dispatch({"RequestId": first_id, "ResponseCode": 200, "ResponseBody": "a"})
        assert await first == "a"
        assert await second == "b"
        assert mux.pending_count == 0

    asyncio.run(runner())


def test_duplicate_or_unknown_reply_is_not_consumed() -> None:
    async def runner() -> None:
        wire = Wire()
        mux = RequestMultiplexer(wire.send_text)
        pending = asyncio.ensure_future(mux.get("/remote/presets"))
        await asyncio.sleep(0)
        request_id = wire.last_request_id()

        assert mux.dispatch({"RequestId": request_id, "ResponseBody": 1})
        assert not mux.dispatch({"RequestId": request_id, "ResponseBody": 2})
        assert not mux.dispatch({"RequestId": 999})
        assert not mux.dispatch({"Type": "PresetFieldsChanged"})
        assert await pending == 1

    asyncio.run(runner())


def test_error_code_raises_remote_request_error() -> None:
    async def runner() -> None:
        wire = Wire()
        mux = RequestMultiplexer(wire.send_text)
        pending = asyncio.ensure_future(mux.get("/remote/preset/A"))
        await asyncio.sleep(0)

        mux.dispatch({"RequestId": wire.last_request_id(), "ResponseCode": 404, "ResponseBody": "missing"})
        with pytest.raises(RemoteRequestError) as info:
            await pending
        assert info.value.status == 404
        assert info.value.url == "/remote/preset/A"

    asyncio.run(runner())


def test_closed_channel_raises_at_call_time() -> None:
    async def runner() -> None:
        wire = Wire()
        wire.open = False
        mux = RequestMultiplexer(wire.send_text)
        with pytest.raises(ConnectivityError):
            mux.call("GET", "/remote/presets", want_reply=True)
        assert mux.pending_count == 0
        with pytest.raises(ConnectivityError):
            mux.call("PUT", "/remote/x", {"a": 1})

    asyncio.run(runner())


def test_fire_and_forget_call_registers_nothing() -> None:
    async def runner() -> None:
        wire = Wire()
        mux = RequestMultiplexer(wire.send_text)
        assert mux.call("PUT", "/remote/x", {"a": 1}) is None
        assert mux.pending_count == 0
        assert wire.frames[0]["Parameters"]["URL"] == "/remote/x"

    asyncio.run(runner())


def test_timeout_drops_pending_entry() -> None:
    async def runner() -> None:
        wire = Wire()
        mux = RequestMultiplexer(wire.send_text, timeout_s=0.01)
        with pytest.raises(RequestTimeoutError):
            await mux.get("/remote/presets")
        assert mux.pending_count == 0
        assert not mux.dispatch({"RequestId": wire.last_request_id(), "ResponseBody": "late"})

    asyncio.run(runner())


def test_fail_pending_rejects_waiters() -> None:
    async def runner() -> None:
        wire = Wire()
        mux = RequestMultiplexer(wire.send_text)
        pending = asyncio.ensure_future(mux.get("/remote/presets"))
        await asyncio.sleep(0)

        assert mux.fail_pending(ConnectivityError("closed")) == 1
        with pytest.raises(ConnectivityError):
            await pending
        assert mux.pending_count == 0

    asyncio.run(runner())


def test_direct_channel_bypasses_push_channel() -> None:
    async def runner() -> None:
        wire = Wire()
        channel = DirectChannel(reply={"Presets": []})
        mux = RequestMultiplexer(wire.send_text, request_channel=channel)

        assert await mux.get("/remote/presets") == {"Presets": []}
        assert await mux.put("/remote/x", {"Value": "v"}) == {"Presets": []}
        assert channel.calls == [("GET", "/remote/presets", None), ("PUT", "/remote/x", {"Value": "v"})]
        assert wire.frames == []
        assert mux.pending_count == 0

    asyncio.run(runner())


def test_direct_channel_timeout_and_background_failure() -> None:
    async def runner() -> None:
        slow = RequestMultiplexer(Wire().send_text, request_channel=DirectChannel(delay=1.0), timeout_s=0.01)
        with pytest.raises(RequestTimeoutError):
            await slow.get("/remote/presets")

        failing = DirectChannel(error=ConnectivityError("down"))
        mux = RequestMultiplexer(Wire().send_text, request_channel=failing)
        assert mux.call("PUT", "/remote/x", {"a": 1}) is None
        await asyncio.sleep(0.01)
        assert failing.calls == [("PUT", "/remote/x", {"a": 1})]

    asyncio.run(runner())
