"""Android TV remote control library.

Long-lived Android TV Remote (v2) sessions with pairing, automatic
reconnection, state polling, scenes and multi-room sync groups.
"""

from .connection import ConnectionManager
from .credentials import Credentials, CredentialStore
from .errors import (
    BridgeError,
    CertificateUnavailable,
    DeviceNotConnected,
    HandshakeRejected,
    InsufficientGroupSize,
    InvalidCodeFormat,
    InvalidParameter,
    MissingParameters,
    NoPairingInProgress,
    NotPaired,
    SceneNotFound,
    SyncGroupNotFound,
    TransportError,
)
from .keys import ALL_KEYS, KEY_NAME_MAP, get_key
from .pairing import PairingCoordinator
from .poller import StatePoller
from .scenes import Scene, SceneEngine
from .session import RemoteSession, SessionFactory
from .store import ConnectionStatus, DeviceState, DeviceStore, JsonFileStore, MemoryStore, Snapshot
from .sync import SyncDispatcher, SyncGroup
from .wol import wake_tv

__version__ = "1.0.0"
__all__ = [
    "ALL_KEYS",
    "BridgeError",
    "CertificateUnavailable",
    "ConnectionManager",
    "ConnectionStatus",
    "Credentials",
    "CredentialStore",
    "DeviceNotConnected",
    "DeviceState",
    "DeviceStore",
    "HandshakeRejected",
    "InsufficientGroupSize",
    "InvalidCodeFormat",
    "InvalidParameter",
    "JsonFileStore",
    "KEY_NAME_MAP",
    "MemoryStore",
    "MissingParameters",
    "NoPairingInProgress",
    "NotPaired",
    "PairingCoordinator",
    "RemoteSession",
    "Scene",
    "SceneEngine",
    "SceneNotFound",
    "SessionFactory",
    "Snapshot",
    "StatePoller",
    "SyncDispatcher",
    "SyncGroup",
    "SyncGroupNotFound",
    "TransportError",
    "get_key",
    "wake_tv",
]
