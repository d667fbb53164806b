"""Connection manager: per-device session state machines.

Each device moves through DISCONNECTED -> CONNECTING -> CONNECTED and back.
The manager owns every per-device task (event pump, reconnect timer) and
starts/stops the device's poller, so disconnecting is one operation that
cancels everything scheduled for that device.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Union

from .credentials import CredentialStore, Credentials
from .errors import (
    BridgeError,
    DeviceNotConnected,
    InvalidParameter,
    MissingParameters,
    NotPaired,
    TransportError,
)
from .keys import KEY_VOLUME_DOWN, KEY_VOLUME_MUTE, KEY_VOLUME_UP, get_key
from .session import AppChanged, Error, PowerChanged, Ready, Unpaired, VolumeChanged
from .store import ConnectionStatus, DeviceState, DeviceStore

_LOGGER = logging.getLogger(__name__)

DEFAULT_ACTIVITY_TIMEOUT = 300.0
DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_MIN_RECONNECT_INTERVAL = 30.0
DEFAULT_VOLUME_STEP_DELAY = 0.15


class ConnectionManager:
    """Owns the long-lived session of every device."""

    def __init__(
        self,
        store: DeviceStore,
        credentials: CredentialStore,
        session_factory: Callable[..., Any],
        poller=None,
        activity_timeout: float = DEFAULT_ACTIVITY_TIMEOUT,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        min_reconnect_interval: float = DEFAULT_MIN_RECONNECT_INTERVAL,
        auto_reconnect: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the connection manager.

        Args:
            store: Device state registry
            credentials: Paired-device credential storage
            session_factory: Callable (device_id, host) -> session
            poller: StatePoller started/stopped with each connection
            activity_timeout: Seconds without traffic before a device is not live
            reconnect_delay: Delay before a reconnect attempt
            min_reconnect_interval: Minimum seconds between reconnect attempts
            auto_reconnect: Arm reconnects after transport failures
            clock: Timestamp source
        """
        self.store = store
        self.credentials = credentials
        self.session_factory = session_factory
        self.poller = poller
        self.activity_timeout = activity_timeout
        self.reconnect_delay = reconnect_delay
        self.min_reconnect_interval = min_reconnect_interval
        self.auto_reconnect = auto_reconnect
        self.clock = clock

        self._locks: Dict[str, asyncio.Lock] = {}
        self._connect_locks: Dict[str, asyncio.Lock] = {}
        self._event_tasks: Dict[str, asyncio.Task] = {}
        self._reconnect_tasks: Dict[str, asyncio.Task] = {}

    def _command_lock(self, device_id: str) -> asyncio.Lock:
        lock = self._locks.get(device_id)
        if lock is None:
            lock = self._locks[device_id] = asyncio.Lock()
        return lock

    def _connect_lock(self, device_id: str) -> asyncio.Lock:
        lock = self._connect_locks.get(device_id)
        if lock is None:
            lock = self._connect_locks[device_id] = asyncio.Lock()
        return lock

    # Queries
    def status(self, device_id: str) -> ConnectionStatus:
        state = self.store.get(device_id)
        return state.status if state else ConnectionStatus.DISCONNECTED

    def is_connected(self, device_id: str) -> bool:
        """True if the device holds a completed session."""
        state = self.store.get(device_id)
        return bool(state and state.status == ConnectionStatus.CONNECTED and state.session is not None)

    def is_live(self, device_id: str) -> bool:
        """Activity-window liveness, the connection status reported to callers."""
        state = self.store.get(device_id)
        return bool(state and state.is_live(self.clock(), self.activity_timeout))

    def reconnect_pending(self, device_id: str) -> bool:
        task = self._reconnect_tasks.get(device_id)
        return task is not None and not task.done()

    def list_devices(self) -> List[Dict[str, Any]]:
        """Summaries of paired and in-use devices.

        Reads without locking; values may be a poll interval stale.
        """
        now = self.clock()
        devices: Dict[str, Dict[str, Any]] = {}
        for entry in self.credentials.list_devices():
            devices[entry["device_id"]] = {
                "deviceId": entry["device_id"],
                "host": entry.get("host"),
                "name": entry.get("name"),
                "paired": True,
                "status": ConnectionStatus.DISCONNECTED.value,
                "connected": False,
                "lastActivity": None,
            }
        for state in self.store.list():
            info = devices.setdefault(state.device_id, {
                "deviceId": state.device_id,
                "name": None,
                "paired": state.device_id in self.credentials,
            })
            info.update({
                "host": state.host or info.get("host"),
                "status": state.status.value,
                "connected": state.is_live(now, self.activity_timeout),
                "lastActivity": state.last_activity,
            })
        return list(devices.values())

    # Connection lifecycle
    async def connect(
        self,
        device_id: str,
        host: Optional[str] = None,
        credentials: Optional[Credentials] = None,
    ) -> DeviceState:
        """Connect to a paired device, reusing a live session.

        Args:
            device_id: Device identifier
            host: TV address (defaults to the address stored at pairing)
            credentials: Certificate material to store before connecting

        Returns:
            The device's state record

        Raises:
            MissingParameters: No device_id, or no host known
            NotPaired: No credentials stored, or the TV rejected them
            TransportError: TV unreachable
        """
        if not device_id:
            raise MissingParameters("deviceId is required")

        async with self._connect_lock(device_id):
            state = self.store.get(device_id)
            if state and state.status == ConnectionStatus.CONNECTED and state.session is not None:
                _LOGGER.debug("Device %s already connected, reusing session", device_id)
                return state

            if credentials is not None:
                self.credentials.save(credentials)
            stored = self.credentials.get(device_id)
            if stored is None or not stored.certificate or not stored.private_key:
                raise NotPaired(f"Device '{device_id}' has no stored credentials")

            certfile, keyfile = self.credentials.pem_paths(device_id)
            if not certfile.exists() or not keyfile.exists():
                self.credentials.write_pem_files(stored)

            host = host or stored.host or (state.host if state else "")
            if not host:
                raise MissingParameters(f"No host known for device '{device_id}'")
            if host != stored.host:
                self.credentials.update_host(device_id, host)

            session = self.session_factory(device_id, host)
            return await self._open(device_id, host, session)

    async def adopt(self, device_id: str, host: str, session) -> DeviceState:
        """Take over a freshly paired session and connect it."""
        async with self._connect_lock(device_id):
            return await self._open(device_id, host, session)

    async def _open(self, device_id: str, host: str, session) -> DeviceState:
        state = self.store.get_or_create(device_id, host)
        if state.session is not None and state.session is not session:
            _LOGGER.debug("Tearing down previous session for %s", device_id)
            self._release(state)

        self._cancel_reconnect(device_id)
        state.session = session
        state.status = ConnectionStatus.CONNECTING
        _LOGGER.info("Connecting to %s at %s", device_id, host)

        try:
            await session.connect()
        except NotPaired:
            _LOGGER.warning("Device %s rejected its certificate, credentials removed", device_id)
            self._release(state)
            self.credentials.delete(device_id)
            raise
        except BridgeError as err:
            _LOGGER.warning("Connection to %s failed: %s", device_id, err)
            self._release(state)
            self._arm_reconnect(device_id)
            raise
        except asyncio.CancelledError:
            self._release(state)
            raise

        if self.store.get(device_id) is not state or state.session is not session:
            # Disconnected or superseded while the handshake was in flight
            _LOGGER.info("Connection to %s abandoned during handshake", device_id)
            try:
                session.close()
            except Exception as e:
                _LOGGER.debug("Error closing session for %s: %s", device_id, e)
            raise DeviceNotConnected(f"Device '{device_id}' was disconnected while connecting")

        state.status = ConnectionStatus.CONNECTED
        state.touch(self.clock())
        state.reconcile(session)
        self._event_tasks[device_id] = asyncio.ensure_future(self._pump_events(device_id, session))
        if self.poller is not None:
            self.poller.start(device_id)
        _LOGGER.info("Connected to %s", device_id)
        return state

    async def disconnect(self, device_id: str) -> bool:
        """Cancel every timer for a device, release its session and forget it.

        Returns:
            True if the device was known
        """
        self._cancel_reconnect(device_id)
        if self.poller is not None:
            self.poller.stop(device_id)
        connect_lock = self._connect_locks.get(device_id)
        if connect_lock is not None and not connect_lock.locked():
            del self._connect_locks[device_id]
        state = self.store.get(device_id)
        if state is None:
            return False
        self._release(state)
        self.store.delete(device_id)
        self._locks.pop(device_id, None)
        _LOGGER.info("Disconnected %s", device_id)
        return True

    async def shutdown(self) -> None:
        """Disconnect every device."""
        for device_id in list(self.store.keys()) + list(self._reconnect_tasks):
            await self.disconnect(device_id)

    def _release(self, state: DeviceState) -> None:
        """Drop the session handle; the record is left DISCONNECTED."""
        task = self._event_tasks.pop(state.device_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        if state.session is not None:
            try:
                state.session.close()
            except Exception as e:
                _LOGGER.debug("Error closing session for %s: %s", state.device_id, e)
        state.session = None
        state.status = ConnectionStatus.DISCONNECTED

    # Reconnection
    def _arm_reconnect(self, device_id: str) -> bool:
        """Schedule one reconnect attempt, rate-limited per device.

        At most one attempt is armed at a time. A failure less than
        ``min_reconnect_interval`` after the previous attempt arms nothing.

        Returns:
            True if a new attempt was scheduled
        """
        if not self.auto_reconnect:
            return False
        if self.reconnect_pending(device_id):
            _LOGGER.debug("Reconnect for %s already pending", device_id)
            return False
        state = self.store.get(device_id)
        if state is None:
            return False

        if state.last_reconnect_attempt is not None:
            elapsed = self.clock() - state.last_reconnect_attempt
            if elapsed < self.min_reconnect_interval:
                _LOGGER.info(
                    "Not reconnecting to %s, last attempt was %.1fs ago", device_id, elapsed
                )
                return False

        delay = self.reconnect_delay
        _LOGGER.info("Reconnecting to %s in %.1fs", device_id, delay)
        self._reconnect_tasks[device_id] = asyncio.ensure_future(self._reconnect_after(device_id, delay))
        return True

    async def _reconnect_after(self, device_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_tasks.pop(device_id, None)
        state = self.store.get(device_id)
        if state is None:
            return
        state.last_reconnect_attempt = self.clock()
        try:
            await self.connect(device_id)
        except BridgeError as err:
            _LOGGER.info("Reconnect to %s failed: %s", device_id, err)
        except Exception:
            _LOGGER.exception("Unexpected error reconnecting to %s", device_id)

    def _cancel_reconnect(self, device_id: str) -> None:
        task = self._reconnect_tasks.pop(device_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def handle_transport_failure(self, device_id: str, reason: str) -> None:
        """Mark a device DISCONNECTED and arm the throttled reconnect."""
        state = self.store.get(device_id)
        if state is None:
            return
        _LOGGER.warning("Lost connection to %s: %s", device_id, reason)
        self._release(state)
        self._arm_reconnect(device_id)

    def _handle_unpaired(self, device_id: str) -> None:
        state = self.store.get(device_id)
        if state is None:
            return
        _LOGGER.warning("Device %s reports we are no longer paired", device_id)
        self._release(state)
        self._cancel_reconnect(device_id)
        self.credentials.delete(device_id)

    # Event stream
    async def _pump_events(self, device_id: str, session) -> None:
        """Drive one device's state machine from its session's events."""
        while True:
            event = await session.events.get()
            state = self.store.get(device_id)
            if state is None or state.session is not session:
                return

            if isinstance(event, Error):
                self.handle_transport_failure(device_id, event.reason)
                return
            if isinstance(event, Unpaired):
                self._handle_unpaired(device_id)
                return

            if isinstance(event, PowerChanged):
                state.power_state = "on" if event.is_on else "off"
            elif isinstance(event, VolumeChanged):
                state.volume = event.level
                state.muted = event.muted
            elif isinstance(event, AppChanged):
                state.current_app = event.app
            elif isinstance(event, Ready):
                state.status = ConnectionStatus.CONNECTED
            state.touch(self.clock())

    # Commands
    def _require_connected(self, device_id: str) -> DeviceState:
        if not device_id:
            raise MissingParameters("deviceId is required")
        state = self.store.get(device_id)
        if state is None or state.status != ConnectionStatus.CONNECTED or state.session is None:
            raise DeviceNotConnected(f"Device '{device_id}' is not connected")
        return state

    async def _command(self, device_id: str, label: str, send) -> DeviceState:
        """Run one command on a device's session, in submission order.

        ``send`` receives the session and returns an awaitable. Success
        counts as activity; a transport failure disconnects the device and
        arms a reconnect, then propagates.
        """
        self._require_connected(device_id)
        async with self._command_lock(device_id):
            state = self._require_connected(device_id)
            session = state.session
            _LOGGER.debug("%s -> %s", label, device_id)
            try:
                await send(session)
            except TransportError as err:
                if state.session is session:
                    self.handle_transport_failure(device_id, str(err))
                raise
            state.touch(self.clock())
            return state

    async def send_key(self, device_id: str, key: Union[int, str]) -> DeviceState:
        """Send a key press.

        Volume and mute keys update the cached state optimistically; the
        next poll reconciles it with what the TV reports.
        """
        if key is None or key == "":
            raise MissingParameters("keyCode or keyName is required")
        try:
            code = get_key(key)
        except ValueError as err:
            raise InvalidParameter(str(err)) from err

        state = await self._command(device_id, f"key {code}", lambda s: s.send_key(code))
        if code == KEY_VOLUME_UP and state.volume is not None:
            state.volume = min(100, state.volume + 1)
        elif code == KEY_VOLUME_DOWN and state.volume is not None:
            state.volume = max(0, state.volume - 1)
        elif code == KEY_VOLUME_MUTE and state.muted is not None:
            state.muted = not state.muted
        return state

    async def volume_step(self, device_id: str, up: bool) -> DeviceState:
        return await self.send_key(device_id, KEY_VOLUME_UP if up else KEY_VOLUME_DOWN)

    async def toggle_mute(self, device_id: str) -> DeviceState:
        return await self.send_key(device_id, KEY_VOLUME_MUTE)

    async def launch_app(self, device_id: str, app_url: str) -> DeviceState:
        """Launch an app by deep link."""
        if not app_url:
            raise MissingParameters("appUrl is required")
        state = await self._command(device_id, f"launch {app_url}", lambda s: s.launch_app(app_url))
        state.current_app = app_url
        return state

    async def send_text(self, device_id: str, text: str) -> DeviceState:
        """Type text into the focused field."""
        if not text:
            raise MissingParameters("text is required")
        return await self._command(device_id, "text", lambda s: s.send_text(text))

    async def set_volume(
        self,
        device_id: str,
        target: int,
        step_delay: float = DEFAULT_VOLUME_STEP_DELAY,
    ) -> int:
        """Converge volume on ``target`` with discrete up/down presses.

        Open loop: the step count comes from the cached volume and the TV is
        not read back between steps.

        Returns:
            Signed number of steps sent (negative means down)
        """
        try:
            target = int(target)
        except (TypeError, ValueError) as err:
            raise InvalidParameter(f"Invalid volume: {target!r}") from err
        if not 0 <= target <= 100:
            raise InvalidParameter(f"Volume must be 0-100, got {target}")

        state = self._require_connected(device_id)
        if state.volume is None:
            _LOGGER.warning("Volume of %s unknown, skipping volume change", device_id)
            return 0

        steps = target - state.volume
        for i in range(abs(steps)):
            if i and step_delay:
                await asyncio.sleep(step_delay)
            await self.volume_step(device_id, steps > 0)
        _LOGGER.debug("Volume of %s moved %+d steps to %d", device_id, steps, target)
        return steps

    def health(self) -> Dict[str, Any]:
        states = self.store.list()
        now = self.clock()
        return {
            "knownDevices": len(states),
            "connectedDevices": sum(1 for s in states if s.is_live(now, self.activity_timeout)),
            "pendingReconnects": sum(1 for d in list(self._reconnect_tasks) if self.reconnect_pending(d)),
        }
