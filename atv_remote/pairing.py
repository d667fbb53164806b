"""Pairing coordinator: two-phase pairing handshake per device.

1. ``start_pairing`` opens a session in pairing mode and waits briefly for
   the TV to display a one-time code.
2. ``complete_pairing`` sends the code typed by the user, stores the issued
   certificate and hands the session to the connection manager.

Pairings that are never completed expire after ``ttl`` seconds.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .credentials import Credentials, CredentialStore
from .errors import (
    BridgeError,
    CertificateUnavailable,
    InvalidCodeFormat,
    MissingParameters,
    NoPairingInProgress,
    TransportError,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_DISPLAY_TIMEOUT = 10.0
DEFAULT_PAIRING_TTL = 300.0

PAIRING_CODE_RE = re.compile(r"^[A-Za-z0-9]{6}$")


def normalize_code(code: Any) -> str:
    """Validate a pairing code and upper-case it.

    Raises:
        InvalidCodeFormat: Not exactly six alphanumeric characters
    """
    code = str(code).strip() if code is not None else ""
    if not PAIRING_CODE_RE.match(code):
        raise InvalidCodeFormat(f"Pairing code must be exactly 6 letters or digits, got {code!r}")
    return code.upper()


@dataclass
class PairingSession:
    """One in-flight pairing."""

    device_id: str
    host: str
    name: str
    session: Any
    started_at: float
    code_displayed: bool = False
    start_task: Optional[asyncio.Task] = None
    expiry_task: Optional[asyncio.Task] = field(default=None, repr=False)


class PairingCoordinator:
    """Drives short-lived pairing handshakes."""

    def __init__(
        self,
        credentials: CredentialStore,
        connection,
        session_factory: Callable[..., Any],
        display_timeout: float = DEFAULT_DISPLAY_TIMEOUT,
        ttl: Optional[float] = DEFAULT_PAIRING_TTL,
        client_name: str = "Android TV Bridge",
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the coordinator.

        Args:
            credentials: Where issued certificates are stored
            connection: ConnectionManager that takes over paired sessions
            session_factory: Callable (device_id, host, client_name) -> session
            display_timeout: Seconds to wait for the TV to show the code
            ttl: Seconds before an uncompleted pairing is discarded (None: never)
            client_name: Default name shown on the TV
            clock: Timestamp source
        """
        self.credentials = credentials
        self.connection = connection
        self.session_factory = session_factory
        self.display_timeout = display_timeout
        self.ttl = ttl
        self.client_name = client_name
        self.clock = clock
        self._pending: Dict[str, PairingSession] = {}

    def pending(self) -> List[str]:
        """Device ids with a pairing in progress."""
        return list(self._pending)

    def get(self, device_id: str) -> Optional[PairingSession]:
        return self._pending.get(device_id)

    async def start_pairing(self, device_id: str, host: str, name: Optional[str] = None) -> bool:
        """Begin pairing and wait for the TV to display its code.

        Returns:
            True if the TV confirmed the code is on screen within the timeout

        Raises:
            MissingParameters: device_id or host missing
            TransportError: TV unreachable on the pairing port
        """
        if not device_id or not host:
            raise MissingParameters("deviceId and host are required")

        self.cancel(device_id)
        name = name or self.client_name
        session = self.session_factory(device_id, host, client_name=name)
        pairing = PairingSession(
            device_id=device_id,
            host=host,
            name=name,
            session=session,
            started_at=self.clock(),
        )
        self._pending[device_id] = pairing
        _LOGGER.info("Starting pairing with %s at %s", device_id, host)

        try:
            await session.ensure_certificate()
        except OSError as err:
            self._discard(device_id, pairing)
            raise TransportError(f"Cannot create client certificate: {err}") from err

        pairing.start_task = asyncio.ensure_future(session.start_pairing())
        done, _ = await asyncio.wait({pairing.start_task}, timeout=self.display_timeout)

        if pairing.start_task in done:
            err = pairing.start_task.exception()
            if err is not None:
                self._discard(device_id, pairing)
                if isinstance(err, BridgeError):
                    raise err
                raise TransportError(f"Pairing start failed: {err}") from err
            pairing.code_displayed = True
            _LOGGER.info("Pairing code displayed on %s", device_id)
        else:
            _LOGGER.warning("No pairing code confirmation from %s after %ss", device_id, self.display_timeout)

        if self.ttl:
            pairing.expiry_task = asyncio.ensure_future(self._expire(device_id, pairing))
        return pairing.code_displayed

    async def complete_pairing(self, device_id: str, code: Any) -> Credentials:
        """Send the pairing code and promote the device to connected.

        Returns:
            Issued credentials (already stored)

        Raises:
            MissingParameters, NoPairingInProgress, InvalidCodeFormat,
            HandshakeRejected, CertificateUnavailable, TransportError
        """
        if not device_id or code is None or code == "":
            raise MissingParameters("deviceId and code are required")

        pairing = self._pending.pop(device_id, None)
        if pairing is None:
            raise NoPairingInProgress(f"No pairing in progress for '{device_id}'")
        self._cancel_expiry(pairing)
        previously_paired = device_id in self.credentials
        adopting = False

        try:
            normalized = normalize_code(code)
            if pairing.start_task is not None and not pairing.start_task.done():
                await pairing.start_task
            elif pairing.start_task is not None and pairing.start_task.exception() is not None:
                raise TransportError(f"Pairing start failed: {pairing.start_task.exception()}")

            await pairing.session.finish_pairing(normalized)

            certificate, private_key = pairing.session.read_credentials()
            if not certificate or not private_key:
                raise CertificateUnavailable(f"No certificate issued for '{device_id}'")

            credentials = Credentials(
                device_id=device_id,
                host=pairing.host,
                certificate=certificate,
                private_key=private_key,
                name=pairing.name,
                paired_at=self.clock(),
            )
            self.credentials.save(credentials)
            adopting = True
            await self.connection.adopt(device_id, pairing.host, pairing.session)
        except Exception as err:
            _LOGGER.warning("Pairing with %s failed: %s", device_id, err)
            self._close(pairing)
            if adopting:
                await self.connection.disconnect(device_id)
            if not previously_paired:
                self.credentials.delete(device_id)
            raise

        _LOGGER.info("Paired with %s", device_id)
        return credentials

    def cancel(self, device_id: str) -> bool:
        """Abandon a pairing in progress.

        Returns:
            True if a pairing was discarded
        """
        pairing = self._pending.pop(device_id, None)
        if pairing is None:
            return False
        self._cancel_expiry(pairing)
        self._close(pairing)
        _LOGGER.info("Pairing with %s abandoned", device_id)
        return True

    def shutdown(self) -> None:
        for device_id in list(self._pending):
            self.cancel(device_id)

    async def _expire(self, device_id: str, pairing: PairingSession) -> None:
        await asyncio.sleep(self.ttl)
        if self._pending.get(device_id) is pairing:
            _LOGGER.info("Pairing with %s expired after %ss", device_id, self.ttl)
            self._discard(device_id, pairing)

    def _discard(self, device_id: str, pairing: PairingSession) -> None:
        if self._pending.get(device_id) is pairing:
            del self._pending[device_id]
        self._cancel_expiry(pairing)
        self._close(pairing)

    @staticmethod
    def _cancel_expiry(pairing: PairingSession) -> None:
        task = pairing.expiry_task
        pairing.expiry_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    @staticmethod
    def _close(pairing: PairingSession) -> None:
        if pairing.start_task is not None and not pairing.start_task.done():
            pairing.start_task.cancel()
        try:
            pairing.session.close()
        except Exception as e:
            _LOGGER.debug("Error closing pairing session for %s: %s", pairing.device_id, e)
