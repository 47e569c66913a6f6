from __future__ import annotations

import logging
from typing import Any

from ..bus.interface import Interface
from ..bus.payload import create_msgpack_po
from ..core.errors import BusError, PayloadError

logger = logging.getLogger(__name__)


class Publisher:
    """Encodes records and emits them on the interface's output signals."""

    def __init__(self, interface: Interface, ponum: str) -> None:
        self._iface = interface
        self._ponum = ponum
        self.published = 0
        self.failures = 0
        self.last_values: dict[str, Any] = {}

    async def publish(self, signal: str, record) -> bool:
        try:
            po = create_msgpack_po(self._ponum, record.to_wire())
            await self._iface.publish_signal(signal, po)
        except (PayloadError, BusError) as e:
            self.failures += 1
            logger.error("Publish to %s failed: %s", self._iface.signal_uri(signal), e)
            return False

        self.published += 1
        self.last_values[signal] = record.to_wire()
        logger.debug("Published %s %s", signal, record)
        return True
