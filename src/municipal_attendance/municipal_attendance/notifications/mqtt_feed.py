from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from ..core.enums import ChangeFamily
from .feed import ChangeFeed

logger = logging.getLogger("municipal_attendance.mqtt")


def _default_client() -> mqtt.Client:
    return mqtt.Client(callback_api_version=mqtt.CallbackAPIVersion.VERSION2)


class MQTTChangeFeed(ChangeFeed):
    """Change feed bridged over an MQTT broker so several processes see each other's writes.

    Topic layout: ``<base_topic>/<family>`` where family is the watched table name.
    Payload: ``{"origin": <feed id>, "family": <family>}``; messages this feed
    published itself are already delivered locally and are skipped.
    """

    def __init__(
        self,
        *,
        broker: str,
        port: int = 1883,
        base_topic: str = "municipal_attendance",
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_factory: Callable[[], mqtt.Client] = _default_client,
    ):
        super().__init__()
        self._host = broker.replace("mqtt://", "").replace("tcp://", "").strip()
        self._port = int(port)
        self._base_topic = base_topic.rstrip("/")
        self._origin = uuid.uuid4().hex

        self.client = client_factory()
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        if username and password:
            self.client.username_pw_set(username, password)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected: Optional[asyncio.Event] = None

    @property
    def origin(self) -> str:
        return self._origin

    def topic_for(self, family: ChangeFamily) -> str:
        return f"{self._base_topic}/{ChangeFamily(family).value}"

    # ---------- MQTT CALLBACKS (network thread) ----------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error("[MQTT] Connection failed (%s)", reason_code)
            return

        topic = f"{self._base_topic}/#"
        client.subscribe(topic)
        logger.info("[MQTT] Connected & subscribed: %s", topic)
        if self._loop is not None and self._connected is not None:
            self._loop.call_soon_threadsafe(self._connected.set)

    def _on_message(self, client, userdata, msg):
        family = self.parse_topic(msg.topic)
        if family is None:
            logger.warning("[MQTT] Ignoring message on unknown topic: %s", msg.topic)
            return
        if self.parse_origin(msg.payload) == self._origin:
            return
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._deliver, family)

    # ---------- PARSER ----------

    def parse_topic(self, topic: str) -> Optional[ChangeFamily]:
        prefix, _, name = topic.rpartition("/")
        if prefix != self._base_topic:
            return None
        try:
            return ChangeFamily(name)
        except ValueError:
            return None

    @staticmethod
    def parse_origin(payload: bytes) -> Optional[str]:
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        return data.get("origin") if isinstance(data, dict) else None

    # ---------- PUBLIC API ----------

    async def start(self) -> None:
        if self._connected is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._connected = asyncio.Event()
        logger.info("[MQTT] Connecting to %s:%s", self._host, self._port)
        self.client.connect_async(self._host, self._port, 60)
        self.client.loop_start()

    async def wait_connected(self) -> None:
        if self._connected is None:
            await self.start()
        await self._connected.wait()

    def publish(self, family: ChangeFamily) -> None:
        family = ChangeFamily(family)
        super().publish(family)
        payload = json.dumps({"origin": self._origin, "family": family.value})
        self.client.publish(self.topic_for(family), payload)
        logger.debug("[MQTT] -> %s", self.topic_for(family))

    def close(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()
        super().close()
