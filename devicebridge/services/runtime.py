from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from operator import attrgetter
from typing import Callable, Optional

from ..bus.interface import Service, set_metadata
from ..bus.mqtt import MqttBus
from ..bus.payload import PO_TIMESERIES_READING, PO_XBOS_LIGHT
from ..core.config import Settings
from ..core.errors import DeviceBridgeError
from ..core.timeutil import now_ns
from ..domain.identifiers import ROOT_NAMESPACE, derive_all
from ..domain.interfaces import Bus
from ..domain.models import LightInfo, LightStatus, SignalSpec
from ..domain.normalizer import expand
from ..drivers.enphase import ATTRIBUTION, EnphaseClient
from ..drivers.vlight import VirtualLight
from .command_intake import CommandIntake
from .publisher import Publisher
from .scheduler import Mapper, PollScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriverProfile:
    kind: str
    service_type: str
    iface_name: str
    iface_type: str
    mode: str  # "pull" | "push"
    ponum: str
    signals: tuple[SignalSpec, ...] = ()
    # builds records without per-signal identifiers; None means timeseries
    mapper: Optional[Mapper] = None
    outputs: tuple[str, ...] = ()
    slot: Optional[str] = None

    @property
    def signal_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.signals) + self.outputs


def light_info(status: LightStatus, clock: Callable[[], int] = now_ns) -> list[tuple[str, LightInfo]]:
    return [("info", LightInfo(time=clock(), state=status.state, brightness=status.brightness))]


ENPHASE = DriverProfile(
    kind="enphase",
    service_type="s.Enphase",
    iface_name="enphase1",
    iface_type="i.meter",
    mode="push",
    ponum=PO_TIMESERIES_READING,
    signals=(
        SignalSpec("CurrentPower", "W", attrgetter("current_power")),
        SignalSpec("EnergyLifetime", "Wh", attrgetter("energy_lifetime")),
        SignalSpec("EnergyToday", "Wh", attrgetter("energy_today")),
    ),
)

VLIGHT = DriverProfile(
    kind="vlight",
    service_type="s.vlight",
    iface_name="vlight",
    iface_type="i.xbos.light",
    mode="pull",
    ponum=PO_XBOS_LIGHT,
    mapper=light_info,
    outputs=("info",),
    slot="state",
)

PROFILES = {p.kind: p for p in (ENPHASE, VLIGHT)}


class DriverRuntime:
    """Everything one driver process owns, wired together explicitly."""

    def __init__(self, settings: Settings, bus: Bus, adapter, profile: DriverProfile) -> None:
        self.settings = settings
        self.bus = bus
        self.adapter = adapter
        self.profile = profile
        self.lock = asyncio.Lock()

        self.service = Service(bus, settings.svc_base_uri, settings.name, profile.service_type)
        self.iface = self.service.register_interface(profile.iface_name, profile.iface_type)
        self.identifiers = derive_all((s.name for s in profile.signals), ROOT_NAMESPACE)

        mapper = profile.mapper or partial(expand, signals=profile.signals, identifiers=self.identifiers)

        self.publisher = Publisher(self.iface, profile.ponum)
        self.scheduler = PollScheduler(
            adapter,
            self.publisher,
            mapper,
            interval_s=settings.poll_interval_seconds,
            lock=self.lock,
            mode=profile.mode,
        )
        self.intake: Optional[CommandIntake] = None
        if profile.slot:
            self.intake = CommandIntake(self.iface, profile.slot, adapter, lock=self.lock)

        self._on_finished: Optional[Callable[[Optional[BaseException]], None]] = None
        self._stopping = False

    def on_finished(self, callback: Callable[[Optional[BaseException]], None]) -> None:
        """Called once the poll loop ends on its own.

        The callback gets None when the push stream closed normally and the
        exception when the loop died.
        """
        self._on_finished = callback

    async def register(self) -> None:
        for spec in self.profile.signals:
            if spec.unit:
                await set_metadata(self.bus, self.iface.signal_uri(spec.name), "UnitofMeasure", spec.unit)
        if self.settings.metadata:
            await self.service.merge_metadata(self.settings.metadata)
        logger.info("Registered interface %s", self.iface.uri)

    async def start(self) -> None:
        await self.register()
        await self.scheduler.start()
        self.scheduler.task.add_done_callback(self._scheduler_done)
        if self.intake is not None:
            await self.intake.start()

    def _scheduler_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or self._stopping:
            return
        exc = task.exception()
        if isinstance(exc, DeviceBridgeError) and not exc.recoverable:
            logger.error("Poll loop stopped on fatal error: %s", exc.message)
        elif exc is not None:
            logger.error("Poll loop crashed: %r", exc)
        if self._on_finished is not None:
            self._on_finished(exc)

    async def stop(self) -> None:
        self._stopping = True
        if self.intake is not None:
            await self.intake.stop()
        await self.scheduler.stop()
        await self.adapter.close()
        close = getattr(self.bus, "close", None)
        if close is not None:
            await close()
        logger.info("Driver %s stopped", self.profile.kind)

    def snapshot(self) -> dict:
        s = self.scheduler.stats
        units = {spec.name: spec.unit for spec in self.profile.signals}
        out = {
            "driver": self.profile.kind,
            "interface": self.iface.uri,
            "signals": {
                name: {
                    "uri": self.iface.signal_uri(name),
                    "uuid": self.identifiers.get(name),
                    "unit": units.get(name),
                    "last": self.publisher.last_values.get(name),
                }
                for name in self.profile.signal_names
            },
            "poller": {
                "mode": s.mode,
                "interval_s": self.settings.poll_interval_seconds,
                "polls": s.polls,
                "poll_failures": s.poll_failures,
                "published": self.publisher.published,
                "publish_failures": self.publisher.failures,
                "last_poll_utc": s.last_poll_utc.isoformat() if s.last_poll_utc else None,
                "last_error": s.last_error,
            },
            "commands": None,
        }
        if self.intake is not None:
            i = self.intake.stats
            out["commands"] = {
                "slot": self.iface.slot_uri(self.profile.slot),
                "received": i.received,
                "applied": i.applied,
                "dropped": i.dropped,
                "failed": i.failed,
                "last_error": i.last_error,
            }
        return out


def build_adapter(settings: Settings):
    if settings.driver == "enphase":
        return EnphaseClient(
            api_key=settings.api_key,
            user_id=settings.user_id,
            system_name=settings.system_name,
            base_url=settings.enphase_api_url,
            timeout=settings.http_timeout_seconds,
        )
    return VirtualLight()


async def build_runtime(settings: Settings, bus: Optional[Bus] = None, adapter=None) -> DriverRuntime:
    """Connect bus and adapter. AdapterError/BusError here are fatal."""
    profile = PROFILES[settings.driver]
    if profile.kind == "enphase":
        # Enphase API terms require attribution
        logger.info(ATTRIBUTION)

    if bus is None:
        bus = MqttBus.from_settings(settings)
    connect = getattr(bus, "connect", None)
    if connect is not None:
        await connect()

    if adapter is None:
        adapter = build_adapter(settings)
    connect = getattr(adapter, "connect", None)
    if connect is not None:
        try:
            await connect()
        except Exception:
            await adapter.close()
            close = getattr(bus, "close", None)
            if close is not None:
                await close()
            raise

    return DriverRuntime(settings, bus, adapter, profile)
