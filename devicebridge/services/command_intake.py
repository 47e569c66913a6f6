from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, ValidationError

from ..bus.interface import Interface
from ..bus.payload import PO_XBOS_LIGHT, get_one_po, unpack_message
from ..core.errors import AdapterError, BusError, PartialApplyError, PayloadError
from ..domain.interfaces import Actuator
from ..domain.models import Command

logger = logging.getLogger(__name__)


class CommandPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    state: StrictBool = Field(alias="State")
    brightness: StrictInt = Field(alias="Brightness")

    def to_command(self) -> Command:
        return Command(state=self.state, brightness=self.brightness)


@dataclass
class IntakeStats:
    received: int = 0
    applied: int = 0
    dropped: int = 0
    failed: int = 0
    last_error: Optional[str] = None


class CommandIntake:
    """Consumes actuation messages from an input slot and applies them."""

    def __init__(
        self,
        interface: Interface,
        slot: str,
        adapter: Actuator,
        lock: Optional[asyncio.Lock] = None,
        ponum: str = PO_XBOS_LIGHT,
    ) -> None:
        self._iface = interface
        self._slot = slot
        self._adapter = adapter
        self._lock = lock or asyncio.Lock()
        self._ponum = ponum
        self._task: Optional[asyncio.Task] = None
        self.stats = IntakeStats()

    def _drop(self, reason: str) -> None:
        self.stats.dropped += 1
        self.stats.last_error = reason
        logger.warning("Received actuation command %s, dropping", reason)

    def decode(self, data: bytes) -> Optional[Command]:
        """Return the command carried by ``data`` or None if it must be dropped."""
        try:
            pos = unpack_message(data)
        except PayloadError as e:
            self._drop(f"with unreadable envelope ({e.message})")
            return None

        po = get_one_po(pos, self._ponum)
        if po is None:
            self._drop("without valid PO")
            return None
        if len(po.contents) < 1:
            self._drop("with invalid PO")
            return None

        try:
            return CommandPayload.model_validate(po.value()).to_command()
        except PayloadError as e:
            self._drop(f"that cannot be decoded ({e.message})")
        except ValidationError as e:
            self._drop(f"with bad fields ({e.error_count()} errors: {e.errors()[0]['msg']})")
        return None

    async def apply(self, cmd: Command) -> None:
        """Apply state then brightness while holding the adapter lock."""
        adapter_id = self._adapter.adapter_id
        async with self._lock:
            try:
                await self._adapter.set_state(cmd.state)
            except Exception as e:
                raise AdapterError(f"set_state failed: {e}", adapter=adapter_id) from e
            try:
                await self._adapter.set_brightness(cmd.brightness)
            except Exception as e:
                raise PartialApplyError(["state"], "brightness", e, adapter=adapter_id) from e

    async def handle(self, data: bytes) -> bool:
        self.stats.received += 1
        cmd = self.decode(data)
        if cmd is None:
            return False

        try:
            await self.apply(cmd)
        except AdapterError as e:
            self.stats.failed += 1
            self.stats.last_error = e.message
            logger.error("Actuation failed: %s", e.message)
            return False

        self.stats.applied += 1
        logger.info("Applied command state=%s brightness=%s", cmd.state, cmd.brightness)
        return True

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"slot_{self._slot}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        logger.info("Listening for commands on %s", self._iface.slot_uri(self._slot))
        try:
            async for data in self._iface.subscribe_slot(self._slot):
                try:
                    await self.handle(data)
                except Exception as e:
                    self.stats.failed += 1
                    logger.exception("Command handler error: %s", e)
        except BusError as e:
            logger.error("Command subscription ended: %s", e)
