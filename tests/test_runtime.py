from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import FakeBus, OneShotMeter, RecordingLight, wait_until
from devicebridge.bus.payload import PO_XBOS_LIGHT, create_msgpack_po, pack_message
from devicebridge.core.errors import AdapterError
from devicebridge.domain.identifiers import ROOT_NAMESPACE, derive
from devicebridge.domain.models import EnergySummary
from devicebridge.drivers.vlight import VirtualLight
from devicebridge.main import create_app
from devicebridge.services.runtime import DriverRuntime, ENPHASE, VLIGHT, build_runtime

METER = "lab/meters/roof/s.Enphase/enphase1/i.meter"
LIGHT = "lab/lights/s.vlight/vlight/i.xbos.light"


class BrokenMeter(OneShotMeter):
    async def connect(self) -> None:
        raise AdapterError("no system named 'Home'", adapter="oneshot", recoverable=False)


class CrashingMeter(OneShotMeter):
    async def poll_summary(self, interval_s: float, on_error=None):
        raise RuntimeError("stream broke")
        yield


class ClosableBus(FakeBus):
    closed = False

    async def close(self) -> None:
        self.closed = True


def test_uris_follow_service_interface_layout(bus, enphase_settings, vlight_settings):
    meter = DriverRuntime(enphase_settings, bus, OneShotMeter(), ENPHASE)
    light = DriverRuntime(vlight_settings, bus, VirtualLight(), VLIGHT)

    assert meter.iface.uri == METER
    assert meter.iface.signal_uri("CurrentPower") == f"{METER}/signal/CurrentPower"
    assert light.iface.uri == LIGHT
    assert light.iface.slot_uri("state") == f"{LIGHT}/slot/state"
    assert meter.identifiers["CurrentPower"] == derive(ROOT_NAMESPACE, "CurrentPower")
    assert meter.intake is None
    assert light.intake is not None


@pytest.mark.asyncio
async def test_enphase_runtime_registers_units_and_finishes(bus, enphase_settings):
    meter = OneShotMeter(EnergySummary(current_power=250, energy_lifetime=1000, energy_today=42))
    runtime = await build_runtime(enphase_settings, bus=bus, adapter=meter)
    finished = []
    runtime.on_finished(finished.append)

    await runtime.start()
    await wait_until(lambda: finished)
    await runtime.stop()

    assert finished == [None]

    units = {
        t: bus.on(t)[0]["val"]
        for t, _, retain in bus.messages
        if retain and t.endswith("/!meta/UnitofMeasure")
    }
    assert units == {
        f"{METER}/signal/CurrentPower/!meta/UnitofMeasure": "W",
        f"{METER}/signal/EnergyLifetime/!meta/UnitofMeasure": "Wh",
        f"{METER}/signal/EnergyToday/!meta/UnitofMeasure": "Wh",
    }
    assert bus.on(f"{METER}/signal/EnergyToday")[0]["Value"] == 42
    assert meter.closed


@pytest.mark.asyncio
async def test_service_metadata_is_merged(bus):
    from devicebridge.core.config import Settings

    settings = Settings(
        _env_file=None,
        driver="vlight",
        svc_base_uri="lab/lights",
        poll_interval="1s",
        metadata={"Location": "Room 410"},
    )
    runtime = DriverRuntime(settings, bus, VirtualLight(), VLIGHT)

    await runtime.register()

    assert bus.on("lab/lights/s.vlight/!meta/Location")[0]["val"] == "Room 410"


@pytest.mark.asyncio
async def test_adapter_init_failure_closes_bus(enphase_settings):
    bus = ClosableBus()
    with pytest.raises(AdapterError):
        await build_runtime(enphase_settings, bus=bus, adapter=BrokenMeter())
    assert bus.closed


@pytest.mark.asyncio
async def test_vlight_publishes_info_and_applies_commands(bus, vlight_settings):
    light = RecordingLight()
    runtime = DriverRuntime(vlight_settings, bus, light, VLIGHT)

    await runtime.start()
    bus.deliver(
        f"{LIGHT}/slot/state",
        pack_message([create_msgpack_po(PO_XBOS_LIGHT, {"State": True, "Brightness": 80})]),
    )
    await wait_until(lambda: any(i["Brightness"] == 80 for i in bus.on(f"{LIGHT}/signal/info")))
    await runtime.stop()

    assert light.calls == [("set_state", True), ("set_brightness", 80)]
    snap = runtime.snapshot()
    assert snap["commands"]["applied"] == 1
    assert snap["poller"]["poll_failures"] == 0
    assert snap["signals"]["info"]["last"]["State"] is True
    assert snap["signals"]["info"]["uuid"] is None
    assert runtime.identifiers == {}


def test_status_api(bus, vlight_settings):
    runtime = DriverRuntime(vlight_settings, bus, VirtualLight(state=True, brightness=40), VLIGHT)
    app = create_app(runtime)

    with TestClient(app) as client:
        r = client.get("/api/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

        live = client.get("/api/live").json()
        assert live["driver"] == "vlight"
        assert live["interface"] == LIGHT
        assert live["poller"]["mode"] == "pull"
        assert live["commands"]["slot"] == f"{LIGHT}/slot/state"
        assert "now_utc" in live

    assert runtime.scheduler.task is None


def test_shipped_adapters_satisfy_protocols():
    from devicebridge.domain.interfaces import Actuator, PullAdapter, PushAdapter
    from devicebridge.drivers.enphase import EnphaseClient

    light = VirtualLight()
    assert isinstance(light, PullAdapter)
    assert isinstance(light, Actuator)
    assert isinstance(EnphaseClient(api_key="k", user_id="u", system_name="Home"), PushAdapter)


@pytest.mark.asyncio
async def test_virtual_light_round_trip():
    light = VirtualLight()
    await light.set_state(True)
    await light.set_brightness(65)
    status = await light.get_status()
    assert (status.state, status.brightness) == (True, 65)


@pytest.mark.asyncio
async def test_crashed_poll_loop_reports_its_error(bus, enphase_settings):
    runtime = DriverRuntime(enphase_settings, bus, CrashingMeter(), ENPHASE)
    finished = []
    runtime.on_finished(finished.append)

    await runtime.start()
    await wait_until(lambda: finished)
    await runtime.stop()

    assert len(finished) == 1
    assert isinstance(finished[0], RuntimeError)


@pytest.mark.asyncio
async def test_push_failures_show_in_snapshot(bus, enphase_settings):
    meter = OneShotMeter(
        AdapterError("rate limit exceeded", adapter="oneshot"),
        EnergySummary(current_power=1, energy_lifetime=2, energy_today=3),
    )
    runtime = DriverRuntime(enphase_settings, bus, meter, ENPHASE)
    finished = []
    runtime.on_finished(finished.append)

    await runtime.start()
    await wait_until(lambda: finished)
    await runtime.stop()

    poller = runtime.snapshot()["poller"]
    assert poller["poll_failures"] == 1
    assert "rate limit exceeded" in poller["last_error"]
    assert runtime.snapshot()["signals"]["CurrentPower"]["unit"] == "W"
