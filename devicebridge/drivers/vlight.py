from __future__ import annotations

import logging

from ..domain.models import LightStatus

logger = logging.getLogger(__name__)


class VirtualLight:
    """In-memory dimmable light."""

    adapter_id = "vlight"

    def __init__(self, state: bool = False, brightness: int = 0) -> None:
        self._state = bool(state)
        self._brightness = int(brightness)

    async def get_status(self) -> LightStatus:
        return LightStatus(state=self._state, brightness=self._brightness)

    async def set_state(self, on: bool) -> None:
        self._state = bool(on)
        logger.info("LIGHT set_state=%s", self._state)

    async def set_brightness(self, level: int) -> None:
        self._brightness = int(level)
        logger.info("LIGHT set_brightness=%s", self._brightness)

    async def close(self) -> None:
        pass
