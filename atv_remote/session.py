"""Session client adapter for the Android TV Remote protocol.

Wraps ``androidtvremote2.AndroidTVRemote`` so the rest of the bridge sees:
- coroutines for every call into the TV (each one a suspension point)
- the bridge error taxonomy instead of library exceptions
- a typed event stream instead of ad hoc callbacks

Example usage:
    session = RemoteSession("192.168.1.50", "cert.pem", "key.pem")
    await session.connect()
    event = await session.events.get()
    await session.send_key(KEY_HOME)
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from androidtvremote2 import AndroidTVRemote, CannotConnect, ConnectionClosed, InvalidAuth

from .errors import HandshakeRejected, InvalidParameter, NotPaired, TransportError

_LOGGER = logging.getLogger(__name__)

DEFAULT_CLIENT_NAME = "Android TV Bridge"
DEFAULT_API_PORT = 6466
DEFAULT_PAIR_PORT = 6467


# Events emitted by a session, consumed by one state-machine loop per device
@dataclass(frozen=True)
class Ready:
    """Session is up and the TV answered."""


@dataclass(frozen=True)
class Error:
    """Session dropped or a call failed."""

    reason: str


@dataclass(frozen=True)
class Unpaired:
    """TV no longer accepts our certificate."""


@dataclass(frozen=True)
class PowerChanged:
    """TV reported its power state."""

    is_on: bool


@dataclass(frozen=True)
class VolumeChanged:
    """TV reported its volume."""

    level: int
    muted: bool


@dataclass(frozen=True)
class AppChanged:
    """TV reported the foreground app."""

    app: str


SessionEvent = Union[Ready, Error, Unpaired, PowerChanged, VolumeChanged, AppChanged]


def scale_volume(level: Optional[int], maximum: Optional[int]) -> Optional[int]:
    """Scale a TV-native volume level to 0-100."""
    if level is None:
        return None
    if not maximum or maximum == 100:
        return max(0, min(100, int(level)))
    return max(0, min(100, round(int(level) * 100 / int(maximum))))


class RemoteSession:
    """One encrypted remote-control session to a TV."""

    def __init__(
        self,
        host: str,
        certfile: Union[str, Path],
        keyfile: Union[str, Path],
        client_name: str = DEFAULT_CLIENT_NAME,
        api_port: int = DEFAULT_API_PORT,
        pair_port: int = DEFAULT_PAIR_PORT,
        remote: Optional[AndroidTVRemote] = None,
    ):
        """Initialize the session.

        Args:
            host: TV IP address or hostname
            certfile: Client certificate path (PEM)
            keyfile: Client private key path (PEM)
            client_name: Name shown on the TV while pairing
            api_port: Remote control port (default 6466)
            pair_port: Pairing port (default 6467)
            remote: Pre-built library client (mainly for tests)
        """
        self.host = host
        self.certfile = Path(certfile)
        self.keyfile = Path(keyfile)
        self.events: "asyncio.Queue[SessionEvent]" = asyncio.Queue()
        self._remote = remote or AndroidTVRemote(
            client_name=client_name,
            certfile=str(self.certfile),
            keyfile=str(self.keyfile),
            host=host,
            api_port=api_port,
            pair_port=pair_port,
        )
        self._callbacks_registered = False
        self._closed = False

    # Library callbacks -> event stream
    def _on_is_on(self, is_on: bool) -> None:
        self._emit(PowerChanged(bool(is_on)))

    def _on_current_app(self, app: str) -> None:
        self._emit(AppChanged(app))

    def _on_volume_info(self, volume_info: dict) -> None:
        level = scale_volume(volume_info.get("level"), volume_info.get("max"))
        self._emit(VolumeChanged(level if level is not None else 0, bool(volume_info.get("muted"))))

    def _on_is_available(self, is_available: bool) -> None:
        if is_available:
            self._emit(Ready())
        else:
            self._emit(Error("connection to TV lost"))

    def _emit(self, event: SessionEvent) -> None:
        if self._closed:
            return
        _LOGGER.debug("Session %s event: %s", self.host, event)
        self.events.put_nowait(event)

    def _register_callbacks(self) -> None:
        if self._callbacks_registered:
            return
        self._remote.add_is_on_updated_callback(self._on_is_on)
        self._remote.add_current_app_updated_callback(self._on_current_app)
        self._remote.add_volume_info_updated_callback(self._on_volume_info)
        self._remote.add_is_available_updated_callback(self._on_is_available)
        self._callbacks_registered = True

    def _unregister_callbacks(self) -> None:
        if not self._callbacks_registered:
            return
        self._remote.remove_is_on_updated_callback(self._on_is_on)
        self._remote.remove_current_app_updated_callback(self._on_current_app)
        self._remote.remove_volume_info_updated_callback(self._on_volume_info)
        self._remote.remove_is_available_updated_callback(self._on_is_available)
        self._callbacks_registered = False

    # Current values as last reported by the TV
    @property
    def is_on(self) -> Optional[bool]:
        """Power state, None until reported."""
        return self._remote.is_on

    @property
    def current_app(self) -> Optional[str]:
        """Foreground app package, None until reported."""
        return self._remote.current_app

    @property
    def volume(self) -> Optional[int]:
        """Volume scaled to 0-100, None until reported."""
        info = self._remote.volume_info
        if not info:
            return None
        return scale_volume(info.get("level"), info.get("max"))

    @property
    def muted(self) -> Optional[bool]:
        """Mute state, None until reported."""
        info = self._remote.volume_info
        if not info:
            return None
        return bool(info.get("muted"))

    # Connection
    async def ensure_certificate(self) -> bool:
        """Generate a self-signed client certificate if none exists.

        Returns:
            True if a new certificate was generated
        """
        self.certfile.parent.mkdir(parents=True, exist_ok=True)
        return await self._remote.async_generate_cert_if_missing()

    async def connect(self) -> None:
        """Open the remote-control session.

        Raises:
            NotPaired: TV rejected the client certificate
            TransportError: TV unreachable or connection dropped
        """
        self._register_callbacks()
        try:
            await self._remote.async_connect()
        except InvalidAuth as err:
            raise NotPaired(f"TV at {self.host} rejected the client certificate") from err
        except (CannotConnect, ConnectionClosed, OSError) as err:
            raise TransportError(f"Cannot connect to {self.host}: {err}") from err
        if self._closed:
            # Closed while the handshake was in flight
            self._remote.disconnect()
            raise TransportError(f"Session to {self.host} was closed while connecting")
        self._emit(Ready())

    async def start_pairing(self) -> None:
        """Ask the TV to display a pairing code.

        Returns once the TV has acknowledged the request and shows the code.
        """
        try:
            await self._remote.async_start_pairing()
        except (CannotConnect, ConnectionClosed, OSError) as err:
            raise TransportError(f"Cannot start pairing with {self.host}: {err}") from err

    async def finish_pairing(self, code: str) -> None:
        """Send the code shown on the TV.

        Raises:
            HandshakeRejected: TV declined the code
            TransportError: Pairing connection dropped
        """
        try:
            await self._remote.async_finish_pairing(code)
        except (InvalidAuth, ValueError) as err:
            raise HandshakeRejected(f"TV at {self.host} rejected pairing code") from err
        except (ConnectionClosed, CannotConnect, OSError) as err:
            raise TransportError(f"Pairing with {self.host} failed: {err}") from err

    def read_credentials(self) -> Tuple[bytes, bytes]:
        """Read the client certificate and key issued for this session.

        Returns:
            (certificate, private_key) PEM bytes; empty bytes when missing
        """
        cert = self.certfile.read_bytes() if self.certfile.exists() else b""
        key = self.keyfile.read_bytes() if self.keyfile.exists() else b""
        return cert, key

    def close(self) -> None:
        """Tear down the session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._unregister_callbacks()
        self._remote.disconnect()
        _LOGGER.debug("Session to %s closed", self.host)

    # Commands
    async def send_key(self, key_code: Union[int, str]) -> None:
        """Send a short key press."""
        await self._call(self._remote.send_key_command, key_code)

    async def launch_app(self, app_link: str) -> None:
        """Launch an app by deep link or package id."""
        await self._call(self._remote.send_launch_app_command, app_link)

    async def send_text(self, text: str) -> None:
        """Type text into the focused input field."""
        await self._call(self._remote.send_text, text)

    async def _call(self, func, *args) -> None:
        if self._closed:
            raise TransportError(f"Session to {self.host} is closed")
        try:
            func(*args)
        except ConnectionClosed as err:
            raise TransportError(f"Connection to {self.host} closed: {err}") from err
        except ValueError as err:
            raise InvalidParameter(str(err)) from err
        # Yield so a burst of commands does not starve the event pumps
        await asyncio.sleep(0)


class SessionFactory:
    """Creates sessions whose certificate files live in the credential store."""

    def __init__(
        self,
        credentials,
        client_name: str = DEFAULT_CLIENT_NAME,
        api_port: int = DEFAULT_API_PORT,
        pair_port: int = DEFAULT_PAIR_PORT,
    ):
        self._credentials = credentials
        self.client_name = client_name
        self.api_port = api_port
        self.pair_port = pair_port

    def __call__(self, device_id: str, host: str, client_name: Optional[str] = None) -> RemoteSession:
        certfile, keyfile = self._credentials.pem_paths(device_id)
        return RemoteSession(
            host,
            certfile,
            keyfile,
            client_name=client_name or self.client_name,
            api_port=self.api_port,
            pair_port=self.pair_port,
        )
