from __future__ import annotations

from typing import Any, AsyncIterator, Callable, Optional, Protocol, runtime_checkable


@runtime_checkable
class PullAdapter(Protocol):
    adapter_id: str

    async def get_status(self) -> Any:
        ...


@runtime_checkable
class PushAdapter(Protocol):
    adapter_id: str

    def poll_summary(
        self,
        interval_s: float,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> AsyncIterator[Any]:
        ...


@runtime_checkable
class Actuator(Protocol):
    adapter_id: str

    async def set_state(self, on: bool) -> None:
        ...

    async def set_brightness(self, level: int) -> None:
        ...


@runtime_checkable
class Bus(Protocol):
    async def publish(self, topic: str, payload: bytes, retain: bool = False) -> None:
        ...

    def subscribe(self, topic: str) -> AsyncIterator[bytes]:
        ...
