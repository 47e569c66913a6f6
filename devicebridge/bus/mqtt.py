"""MQTT transport for the driver bus."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import AsyncIterator, Optional

from aiomqtt import Client, MqttError

from ..core.config import Settings
from ..core.errors import BusError

logger = logging.getLogger(__name__)


def _payload_bytes(payload) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    return str(payload).encode()


class MqttBus:
    """
    Thin wrapper around one aiomqtt client.

    One connection is shared by every publisher and the (single) slot
    subscriber of the process.
    """

    def __init__(
        self,
        host: str,
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: Optional[str] = None,
        qos: int = 0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._client_id = client_id
        self._qos = qos
        self._client: Optional[Client] = None
        self._stack: Optional[AsyncExitStack] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MqttBus":
        return cls(
            host=settings.mqtt_host,
            port=settings.mqtt_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            client_id=settings.mqtt_client_id,
            qos=settings.mqtt_qos,
        )

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        if self._client is not None:
            return
        stack = AsyncExitStack()
        client = Client(
            hostname=self._host,
            port=self._port,
            username=self._username,
            password=self._password,
            identifier=self._client_id,
        )
        try:
            await stack.enter_async_context(client)
        except MqttError as e:
            await stack.aclose()
            raise BusError(f"cannot connect to {self._host}:{self._port}: {e}", recoverable=False) from e
        self._stack = stack
        self._client = client
        logger.info("MQTT connected to %s:%s", self._host, self._port)

    async def close(self) -> None:
        stack, self._stack, self._client = self._stack, None, None
        if stack is not None:
            try:
                await stack.aclose()
            except MqttError as e:
                logger.warning("MQTT disconnect failed: %s", e)
            logger.info("MQTT disconnected")

    def _require(self) -> Client:
        if self._client is None:
            raise BusError("not connected")
        return self._client

    async def publish(self, topic: str, payload: bytes, retain: bool = False) -> None:
        client = self._require()
        try:
            await client.publish(topic, payload=payload, qos=self._qos, retain=retain)
        except MqttError as e:
            raise BusError(str(e), uri=topic) from e

    async def subscribe(self, topic: str) -> AsyncIterator[bytes]:
        client = self._require()
        try:
            await client.subscribe(topic, qos=self._qos)
        except MqttError as e:
            raise BusError(f"subscribe failed: {e}", uri=topic) from e
        logger.info("MQTT subscribed to %s", topic)

        try:
            async for message in client.messages:
                if message.topic.matches(topic):
                    yield _payload_bytes(message.payload)
        except MqttError as e:
            raise BusError(f"connection lost: {e}", uri=topic, recoverable=False) from e
