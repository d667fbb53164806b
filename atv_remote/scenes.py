"""Scene engine: saved, replayable target states."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .errors import DeviceNotConnected, InvalidParameter, MissingParameters, SceneNotFound

_LOGGER = logging.getLogger(__name__)

DEFAULT_APP_SETTLE_DELAY = 2.0
DEFAULT_VOLUME_STEP_DELAY = 0.15
DEFAULT_KEY_DELAY = 0.3


@dataclass
class Scene:
    """Named bundle of target state plus a key sequence."""

    name: str
    volume: Optional[int] = None
    muted: Optional[bool] = None
    current_app: Optional[str] = None
    keys: List[Union[int, str]] = field(default_factory=list)
    description: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "volume": self.volume,
            "muted": self.muted,
            "currentApp": self.current_app,
            "keys": list(self.keys),
            "description": self.description,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: Optional[str] = None) -> "Scene":
        """Build a scene from request or stored data, validating fields.

        Raises:
            InvalidParameter: A field has the wrong type or range
        """
        if not isinstance(data, dict):
            raise InvalidParameter("scene must be an object")
        name = name or data.get("name")
        if not name:
            raise MissingParameters("sceneName is required")

        volume = data.get("volume")
        if volume is not None:
            if isinstance(volume, bool):
                raise InvalidParameter(f"Invalid volume: {volume!r}")
            try:
                volume = int(volume)
            except (TypeError, ValueError) as err:
                raise InvalidParameter(f"Invalid volume: {volume!r}") from err
            if not 0 <= volume <= 100:
                raise InvalidParameter(f"Volume must be 0-100, got {volume}")

        muted = data.get("muted")
        if muted is not None and not isinstance(muted, bool):
            raise InvalidParameter(f"muted must be true or false, got {muted!r}")

        app = data.get("currentApp", data.get("current_app"))
        if app is not None and not isinstance(app, str):
            raise InvalidParameter("currentApp must be a string")
        # The hub captures "unknown" when it has no app to restore
        if app in ("", "unknown"):
            app = None

        keys = data.get("keys") or []
        if not isinstance(keys, list):
            raise InvalidParameter("keys must be a list")
        for key in keys:
            if isinstance(key, bool) or not isinstance(key, (int, str)) or key == "":
                raise InvalidParameter(f"Invalid key in scene: {key!r}")

        return cls(
            name=name,
            volume=volume,
            muted=muted,
            current_app=app,
            keys=list(keys),
            description=data.get("description"),
            created_at=data.get("createdAt") or data.get("created_at") or time.time(),
        )


class SceneEngine:
    """Saves scenes and replays them on a device."""

    def __init__(
        self,
        store,
        connection,
        app_settle_delay: float = DEFAULT_APP_SETTLE_DELAY,
        volume_step_delay: float = DEFAULT_VOLUME_STEP_DELAY,
        key_delay: float = DEFAULT_KEY_DELAY,
    ):
        self.store = store
        self.connection = connection
        self.app_settle_delay = app_settle_delay
        self.volume_step_delay = volume_step_delay
        self.key_delay = key_delay

    def save(self, name: str, data: Dict[str, Any]) -> Scene:
        """Create or overwrite a scene."""
        if not name:
            raise MissingParameters("sceneName is required")
        if data is None:
            raise MissingParameters("scene is required")
        payload = dict(data)
        payload.pop("createdAt", None)
        payload.pop("created_at", None)
        scene = Scene.from_dict(payload, name=name)
        self.store.put(name, scene)
        _LOGGER.info("Saved scene '%s'", name)
        return scene

    def get(self, name: str) -> Scene:
        scene = self.store.get(name)
        if scene is None:
            raise SceneNotFound(f"Scene '{name}' not found")
        return scene

    def list(self) -> List[Scene]:
        return sorted(self.store.list(), key=lambda s: s.name)

    def delete(self, name: str) -> None:
        if not self.store.delete(name):
            raise SceneNotFound(f"Scene '{name}' not found")
        _LOGGER.info("Deleted scene '%s'", name)

    async def execute(self, name: str, device_id: str) -> Dict[str, Any]:
        """Replay a scene on a device.

        Order: app launch (then settle), volume convergence, mute toggle,
        key sequence.

        Returns:
            Summary with the app launched, volume steps and keys sent
        """
        if not name or not device_id:
            raise MissingParameters("sceneName and deviceId are required")
        scene = self.get(name)
        if not self.connection.is_connected(device_id):
            raise DeviceNotConnected(f"Device '{device_id}' is not connected")

        _LOGGER.info("Executing scene '%s' on %s", name, device_id)
        result: Dict[str, Any] = {"app": None, "volumeSteps": 0, "muteToggled": False, "keysSent": 0}

        if scene.current_app:
            await self.connection.launch_app(device_id, scene.current_app)
            result["app"] = scene.current_app
            await asyncio.sleep(self.app_settle_delay)

        if scene.volume is not None:
            result["volumeSteps"] = await self.connection.set_volume(
                device_id, scene.volume, step_delay=self.volume_step_delay
            )

        if scene.muted is not None:
            state = self.connection.store.get(device_id)
            if state is not None and state.muted is not None and state.muted != scene.muted:
                await self.connection.toggle_mute(device_id)
                result["muteToggled"] = True

        for i, key in enumerate(scene.keys):
            if i and self.key_delay:
                await asyncio.sleep(self.key_delay)
            await self.connection.send_key(device_id, key)
            result["keysSent"] += 1

        return result
