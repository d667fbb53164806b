"""Device state and keyed stores.

All registries (devices, scenes, sync groups) share one small interface,
``get/put/delete/list``, and are created per bridge instance.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, TypeVar

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ConnectionStatus(Enum):
    """Connection state of one device."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of a device published by the poller."""

    device_id: str
    connected: bool
    power_state: Optional[str]
    volume: Optional[int]
    muted: Optional[bool]
    current_app: Optional[str]
    last_activity: Optional[float]
    taken_at: float

    def state_dict(self) -> Dict[str, Any]:
        """State fields as reported to the hub."""
        return {
            "powerState": self.power_state,
            "volume": self.volume,
            "muted": self.muted,
            "currentApp": self.current_app,
            "lastActivity": self.last_activity,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "connected": self.connected,
            "state": self.state_dict(),
            "takenAt": self.taken_at,
        }


@dataclass
class DeviceState:
    """Last-known state of one TV and ownership of its session."""

    device_id: str
    host: str = ""
    session: Any = None
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    power_state: Optional[str] = None
    volume: Optional[int] = None
    muted: Optional[bool] = None
    current_app: Optional[str] = None
    last_activity: Optional[float] = None
    last_reconnect_attempt: Optional[float] = None
    snapshot: Optional[Snapshot] = None

    def touch(self, now: float) -> None:
        """Record confirmed traffic."""
        self.last_activity = now

    def reconcile(self, session) -> None:
        """Copy values the session client has reported into this record."""
        if session.is_on is not None:
            self.power_state = "on" if session.is_on else "off"
        if session.volume is not None:
            self.volume = session.volume
        if session.muted is not None:
            self.muted = session.muted
        if session.current_app:
            self.current_app = session.current_app

    def is_live(self, now: float, activity_timeout: float) -> bool:
        """Activity-window liveness: a session exists and traffic is recent."""
        if self.session is None or self.last_activity is None:
            return False
        return now - self.last_activity < activity_timeout

    def build_snapshot(self, now: float, activity_timeout: float) -> Snapshot:
        return Snapshot(
            device_id=self.device_id,
            connected=self.is_live(now, activity_timeout),
            power_state=self.power_state,
            volume=self.volume,
            muted=self.muted,
            current_app=self.current_app,
            last_activity=self.last_activity,
            taken_at=now,
        )


class MemoryStore(Generic[T]):
    """Dict-backed keyed store."""

    def __init__(self):
        self._items: Dict[str, T] = {}

    def get(self, key: str) -> Optional[T]:
        return self._items.get(key)

    def put(self, key: str, value: T) -> None:
        self._items[key] = value

    def delete(self, key: str) -> bool:
        """Remove an entry. Returns False if it did not exist."""
        return self._items.pop(key, None) is not None

    def list(self) -> List[T]:
        return list(self._items.values())

    def keys(self) -> List[str]:
        return list(self._items.keys())

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))


class JsonFileStore(MemoryStore[T]):
    """Keyed store persisted to a JSON file on every change.

    Values are serialised with ``to_dict`` and restored with ``loader``.
    """

    def __init__(self, path: Path, loader: Callable[[Dict[str, Any]], T]):
        super().__init__()
        self.path = Path(path)
        self._loader = loader
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, "r") as f:
                raw = json.load(f)
            self._items = {key: self._loader(value) for key, value in raw.items()}
        except (json.JSONDecodeError, IOError, KeyError, TypeError, ValueError) as e:
            _LOGGER.warning("Could not load %s, starting empty: %s", self.path, e)
            self._items = {}

    def _save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump({key: value.to_dict() for key, value in self._items.items()}, f, indent=2)

    def put(self, key: str, value: T) -> None:
        super().put(key, value)
        self._save()

    def delete(self, key: str) -> bool:
        removed = super().delete(key)
        if removed:
            self._save()
        return removed


class DeviceStore(MemoryStore[DeviceState]):
    """In-memory registry of device state, one entry per device_id."""

    def get_or_create(self, device_id: str, host: str = "") -> DeviceState:
        state = self.get(device_id)
        if state is None:
            state = DeviceState(device_id=device_id, host=host)
            self.put(device_id, state)
        elif host:
            state.host = host
        return state
