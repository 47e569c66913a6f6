from __future__ import annotations

import asyncio

import pytest

from devicebridge.bus.payload import unpack_message
from devicebridge.core.config import Settings
from devicebridge.domain.models import EnergySummary, LightStatus


class FakeBus:
    """In-memory bus: records publishes, feeds subscribers from queues."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, bytes, bool]] = []
        self._queues: dict[str, asyncio.Queue] = {}
        self.fail_publish = False

    def _queue(self, topic: str) -> asyncio.Queue:
        return self._queues.setdefault(topic, asyncio.Queue())

    async def publish(self, topic: str, payload: bytes, retain: bool = False) -> None:
        if self.fail_publish:
            from devicebridge.core.errors import BusError
            raise BusError("broker unavailable", uri=topic)
        self.messages.append((topic, payload, retain))

    async def subscribe(self, topic: str):
        q = self._queue(topic)
        while True:
            yield await q.get()

    def deliver(self, topic: str, payload: bytes) -> None:
        self._queue(topic).put_nowait(payload)

    def on(self, topic: str) -> list:
        """Decoded first-PO values published on ``topic``."""
        return [unpack_message(p)[0].value() for t, p, _ in self.messages if t == topic]


class RecordingLight:
    adapter_id = "recording"

    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list[tuple[str, object]] = []
        self.fail_on = fail_on
        self.state = False
        self.brightness = 0

    async def get_status(self) -> LightStatus:
        return LightStatus(state=self.state, brightness=self.brightness)

    async def set_state(self, on: bool) -> None:
        if self.fail_on == "state":
            raise RuntimeError("relay stuck")
        self.calls.append(("set_state", on))
        self.state = on

    async def set_brightness(self, level: int) -> None:
        if self.fail_on == "brightness":
            raise RuntimeError("dimmer offline")
        self.calls.append(("set_brightness", level))
        self.brightness = level

    async def close(self) -> None:
        pass


class OneShotMeter:
    """Push adapter that yields the given summaries and then ends.

    Exception items are reported through ``on_error`` instead of yielded.
    """

    adapter_id = "oneshot"

    def __init__(self, *summaries: EnergySummary) -> None:
        self._summaries = summaries
        self.closed = False

    async def poll_summary(self, interval_s: float, on_error=None):
        for s in self._summaries:
            if isinstance(s, Exception):
                if on_error is not None:
                    on_error(s)
                continue
            yield s

    async def close(self) -> None:
        self.closed = True


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
def vlight_settings() -> Settings:
    return Settings(
        _env_file=None,
        driver="vlight",
        svc_base_uri="lab/lights/",
        poll_interval="10ms",
    )


@pytest.fixture
def enphase_settings() -> Settings:
    return Settings(
        _env_file=None,
        driver="enphase",
        name="roof",
        svc_base_uri="lab/meters",
        poll_interval="30s",
        api_key="k",
        user_id="u",
        system_name="Home",
    )
