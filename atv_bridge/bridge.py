"""Main bridge class for atv-bridge."""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from atv_remote.connection import ConnectionManager
from atv_remote.credentials import Credentials, CredentialStore, decode_credential
from atv_remote.errors import InvalidParameter, MissingParameters
from atv_remote.pairing import PairingCoordinator
from atv_remote.poller import StatePoller
from atv_remote.scenes import Scene, SceneEngine
from atv_remote.session import SessionFactory
from atv_remote.store import DeviceStore, JsonFileStore, MemoryStore
from atv_remote.sync import SyncDispatcher, SyncGroup
from atv_remote.wol import wake_tv

from .config import DEFAULT_CONFIG, deep_merge
from .publisher import MqttStatePublisher

logger = logging.getLogger(__name__)


class AndroidTVBridge:
    """Owns every store and manager of one bridge process."""

    def __init__(
        self,
        config: Optional[dict] = None,
        session_factory: Optional[Callable[..., Any]] = None,
        publisher: Optional[MqttStatePublisher] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the bridge.

        Args:
            config: Configuration dictionary (merged over the defaults)
            session_factory: Callable (device_id, host, client_name=None) -> session.
                Defaults to real Android TV Remote sessions.
            publisher: Snapshot publisher; built from ``mqtt`` config when enabled
            clock: Timestamp source
        """
        self.config = deep_merge(DEFAULT_CONFIG, config or {})
        self.clock = clock
        self.started_at: Optional[float] = None

        timing = self.config["timing"]
        session_config = self.config["session"]
        options = self.config["options"]

        data_dir = self.config["storage"].get("data_dir")
        self.data_dir = Path(data_dir).expanduser() if data_dir else None

        if self.data_dir is not None:
            self.credentials = CredentialStore(self.data_dir / "credentials.json", self.data_dir / "certs")
            scene_store = JsonFileStore(self.data_dir / "scenes.json", Scene.from_dict)
            group_store = JsonFileStore(self.data_dir / "sync_groups.json", SyncGroup.from_dict)
        else:
            self.credentials = CredentialStore()
            scene_store = MemoryStore()
            group_store = MemoryStore()

        self.session_factory = session_factory or SessionFactory(
            self.credentials,
            client_name=session_config["client_name"],
            api_port=session_config["api_port"],
            pair_port=session_config["pair_port"],
        )

        self.devices = DeviceStore()
        self.poller = StatePoller(
            self.devices,
            interval=timing["poll_interval"],
            activity_timeout=timing["activity_timeout"],
            clock=clock,
        )
        self.connection = ConnectionManager(
            self.devices,
            self.credentials,
            self.session_factory,
            poller=self.poller,
            activity_timeout=timing["activity_timeout"],
            reconnect_delay=timing["reconnect_delay"],
            min_reconnect_interval=timing["min_reconnect_interval"],
            auto_reconnect=options["auto_reconnect"],
            clock=clock,
        )
        self.pairing = PairingCoordinator(
            self.credentials,
            self.connection,
            self.session_factory,
            display_timeout=timing["pairing_display_timeout"],
            ttl=timing["pairing_ttl"],
            client_name=session_config["client_name"],
            clock=clock,
        )
        self.scenes = SceneEngine(
            scene_store,
            self.connection,
            app_settle_delay=timing["app_settle_delay"],
            volume_step_delay=timing["volume_step_delay"],
            key_delay=timing["key_delay"],
        )
        self.sync = SyncDispatcher(group_store, self.connection, volume_step_delay=timing["volume_step_delay"])

        self.publisher = publisher
        if self.publisher is None and self.config["mqtt"].get("enabled"):
            self.publisher = MqttStatePublisher(self.config["mqtt"])
        if self.publisher is not None:
            self.poller.add_listener(self.publisher)

    async def start(self):
        """Start the bridge and reconnect every saved device."""
        logger.info("Starting atv-bridge...")
        self.started_at = self.clock()

        if self.publisher is not None:
            self.publisher.start()

        if self.config["options"].get("auto_connect", True):
            for entry in self.credentials.list_devices():
                device_id = entry["device_id"]
                try:
                    await self.connection.connect(device_id)
                except Exception as e:
                    # Transport failures have already armed a reconnect
                    logger.warning(f"Could not connect saved device {device_id}: {e}")

        logger.info("atv-bridge started")

    async def stop(self):
        """Stop the bridge."""
        logger.info("Stopping atv-bridge...")
        self.pairing.shutdown()
        await self.connection.shutdown()
        self.poller.stop_all()
        if self.publisher is not None:
            try:
                self.publisher.stop()
            except Exception as e:
                logger.debug(f"Error stopping MQTT publisher: {e}")
        logger.info("atv-bridge stopped")

    async def connect(
        self,
        device_id: str,
        host: Optional[str] = None,
        certificate: Optional[str] = None,
        private_key: Optional[str] = None,
    ):
        """Connect a device, storing hub-supplied credentials first.

        Certificate and key arrive transport-encoded (base64). When both are
        omitted the credentials saved at pairing are used.
        """
        if not device_id:
            raise MissingParameters("deviceId is required")

        credentials = None
        if certificate or private_key:
            if not certificate or not private_key:
                raise MissingParameters("certificate and privateKey must be supplied together")
            if not host:
                stored = self.credentials.get(device_id)
                host = stored.host if stored else None
            if not host:
                raise MissingParameters("host is required")
            try:
                credentials = Credentials(
                    device_id=device_id,
                    host=host,
                    certificate=decode_credential(certificate, "certificate"),
                    private_key=decode_credential(private_key, "privateKey"),
                    paired_at=self.clock(),
                )
            except ValueError as err:
                raise InvalidParameter(str(err)) from err

        return await self.connection.connect(device_id, host=host, credentials=credentials)

    async def disconnect(self, device_id: str) -> bool:
        if not device_id:
            raise MissingParameters("deviceId is required")
        known = await self.connection.disconnect(device_id)
        if known and self.publisher is not None:
            self.publisher.forget(device_id)
        return known

    async def unpair(self, device_id: str) -> bool:
        """Forget a device: abandon pairing, disconnect and delete its credentials.

        Returns:
            True if the device had credentials or a session
        """
        if not device_id:
            raise MissingParameters("deviceId is required")
        self.pairing.cancel(device_id)
        known = await self.disconnect(device_id)
        removed = self.credentials.delete(device_id)
        logger.info(f"Unpaired {device_id}")
        return known or removed

    def status(self, device_id: str) -> Dict[str, Any]:
        """Current liveness and cached state of a device."""
        if not device_id:
            raise MissingParameters("deviceId is required")
        state = self.devices.get(device_id)
        if state is None:
            return {
                "connected": False,
                "state": {
                    "powerState": None,
                    "volume": None,
                    "muted": None,
                    "currentApp": None,
                    "lastActivity": None,
                },
            }
        snapshot = state.build_snapshot(self.clock(), self.connection.activity_timeout)
        return {
            "connected": snapshot.connected,
            "status": state.status.value,
            "state": snapshot.state_dict(),
        }

    def power_state(self, device_id: str) -> Dict[str, Any]:
        if not device_id:
            raise MissingParameters("deviceId is required")
        state = self.devices.get(device_id)
        return {
            "deviceId": device_id,
            "connected": self.connection.is_live(device_id),
            "powerState": state.power_state if state else None,
        }

    def wake(self, mac: Optional[str], device_id: Optional[str] = None, host: Optional[str] = None) -> bool:
        """Send Wake-on-LAN to a TV in deep standby.

        The device's stored host, when known, adds its subnet broadcast.
        """
        if not mac:
            raise MissingParameters("mac is required")
        if not host and device_id:
            state = self.devices.get(device_id)
            stored = self.credentials.get(device_id)
            host = (state.host if state else None) or (stored.host if stored else None)
        try:
            return wake_tv(mac, host)
        except ValueError as err:
            raise InvalidParameter(str(err)) from err

    def list_devices(self):
        return self.connection.list_devices()

    def health(self) -> Dict[str, Any]:
        summary = self.connection.health()
        summary.update({
            "status": "ok",
            "pairedDevices": len(self.credentials.list_devices()),
            "pendingPairings": len(self.pairing.pending()),
            "scenes": len(self.scenes.list()),
            "syncGroups": len(self.sync.list_groups()),
            "uptime": round(self.clock() - self.started_at, 1) if self.started_at else 0.0,
        })
        return summary

