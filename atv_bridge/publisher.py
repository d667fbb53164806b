"""MQTT distribution of device snapshots."""

import json
import logging
from typing import Dict, Optional

import paho.mqtt.client as mqtt

from atv_remote.store import Snapshot

logger = logging.getLogger(__name__)


class MqttStatePublisher:
    """Publishes every poller snapshot to an MQTT broker.

    Topics (all retained):
        <base>/<device_id>/state      JSON snapshot
        <base>/<device_id>/available  online/offline
        <base>/bridge/status          online/offline (last will)
    """

    def __init__(self, config: dict, client: Optional[mqtt.Client] = None):
        """Initialize the publisher.

        Args:
            config: The ``mqtt`` section of the bridge configuration
            client: Pre-built paho client (mainly for tests)
        """
        self.config = config
        self.base_topic = config.get("base_topic", "atv-bridge").rstrip("/")
        self._available: Dict[str, bool] = {}
        self._client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.get("client_id", "atv-bridge"),
        )

        username = config.get("username")
        if username:
            self._client.username_pw_set(username, config.get("password"))

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect

        # Last Will and Testament
        self._client.will_set(self.status_topic, payload="offline", qos=1, retain=True)

    @property
    def status_topic(self) -> str:
        return f"{self.base_topic}/bridge/status"

    def state_topic(self, device_id: str) -> str:
        return f"{self.base_topic}/{device_id}/state"

    def availability_topic(self, device_id: str) -> str:
        return f"{self.base_topic}/{device_id}/available"

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")
            return
        logger.info("Connected to MQTT broker")
        client.publish(self.status_topic, "online", qos=1, retain=True)
        # Broker may have restarted; republish availability it lost
        for device_id, available in self._available.items():
            client.publish(self.availability_topic(device_id), "online" if available else "offline",
                           qos=1, retain=True)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        logger.warning(f"Disconnected from MQTT broker: {reason_code}")

    def start(self) -> None:
        """Connect in the background; paho retries until the broker answers."""
        host = self.config.get("host", "localhost")
        port = int(self.config.get("port", 1883))
        logger.info(f"Connecting to MQTT broker at {host}:{port}")
        self._client.connect_async(host, port, keepalive=60)
        self._client.loop_start()

    def stop(self) -> None:
        if self._client.is_connected():
            for device_id in self._available:
                self._client.publish(self.availability_topic(device_id), "offline", qos=1, retain=True)
            self._client.publish(self.status_topic, "offline", qos=1, retain=True)
        self._client.loop_stop()
        self._client.disconnect()

    def __call__(self, device_id: str, snapshot: Snapshot) -> None:
        """Poller listener: publish one snapshot."""
        self._client.publish(self.state_topic(device_id), json.dumps(snapshot.to_dict()), qos=0, retain=True)
        if self._available.get(device_id) != snapshot.connected:
            self._available[device_id] = snapshot.connected
            value = "online" if snapshot.connected else "offline"
            self._client.publish(self.availability_topic(device_id), value, qos=1, retain=True)
            logger.info(f"Availability of {device_id}: {value}")

    def forget(self, device_id: str) -> None:
        """Clear the retained topics of a device that was removed."""
        self._available.pop(device_id, None)
        self._client.publish(self.state_topic(device_id), "", qos=0, retain=True)
        self._client.publish(self.availability_topic(device_id), "", qos=1, retain=True)
