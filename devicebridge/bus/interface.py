"""
Service and interface addressing on the bus.

URI layout:
    service    {base}/{service_name}/{service_type}   (name may be empty)
    interface  {service}/{iface_name}/{iface_type}
    signal     {interface}/signal/{signal}
    slot       {interface}/slot/{slot}
    metadata   {uri}/!meta/{key}   (retained)
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from ..core.timeutil import now_ns
from ..domain.interfaces import Bus
from .payload import PO_METADATA, PayloadObject, create_msgpack_po, pack_message

logger = logging.getLogger(__name__)


def _join(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


async def set_metadata(bus: Bus, uri: str, key: str, value: str) -> None:
    po = create_msgpack_po(PO_METADATA, {"val": value, "ts": now_ns()})
    await bus.publish(_join(uri, "!meta", key), pack_message([po]), retain=True)
    logger.debug("Metadata %s/!meta/%s = %s", uri, key, value)


class Interface:
    def __init__(self, bus: Bus, uri: str) -> None:
        self._bus = bus
        self.uri = uri

    def signal_uri(self, signal: str) -> str:
        return _join(self.uri, "signal", signal)

    def slot_uri(self, slot: str) -> str:
        return _join(self.uri, "slot", slot)

    async def publish_signal(self, signal: str, *pos: PayloadObject) -> None:
        await self._bus.publish(self.signal_uri(signal), pack_message(pos))

    def subscribe_slot(self, slot: str) -> AsyncIterator[bytes]:
        return self._bus.subscribe(self.slot_uri(slot))


class Service:
    def __init__(self, bus: Bus, base_uri: str, name: str, service_type: str) -> None:
        self._bus = bus
        self.uri = _join(base_uri, name, service_type)

    def register_interface(self, iface_name: str, iface_type: str) -> Interface:
        return Interface(self._bus, _join(self.uri, iface_name, iface_type))

    async def merge_metadata(self, metadata: dict[str, str]) -> None:
        for key, value in metadata.items():
            await set_metadata(self._bus, self.uri, key, value)
