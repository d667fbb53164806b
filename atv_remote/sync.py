"""Sync dispatcher: one logical command fanned out to a group of TVs."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import (
    BridgeError,
    DeviceNotConnected,
    InsufficientGroupSize,
    InvalidParameter,
    MissingParameters,
    SyncGroupNotFound,
)

_LOGGER = logging.getLogger(__name__)

COMMAND_TYPES = ("key", "app", "volume")


@dataclass
class SyncGroup:
    """Named set of devices that receive the same commands.

    ``primary`` is informational only; dispatch treats all members alike.
    """

    name: str
    device_ids: List[str]
    primary: str = ""
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "deviceIds": list(self.device_ids),
            "primary": self.primary,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncGroup":
        device_ids = list(data["deviceIds"])
        return cls(
            name=data["name"],
            device_ids=device_ids,
            primary=data.get("primary") or device_ids[0],
            created_at=data.get("createdAt") or time.time(),
        )


@dataclass
class MemberResult:
    """Outcome of a dispatched command on one member."""

    device_id: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"deviceId": self.device_id, "success": self.success}
        if self.error is not None:
            result["error"] = self.error
        return result


def validate_command(command: Dict[str, Any]) -> Dict[str, Any]:
    """Check a sync command and return it normalised.

    Accepted shapes:
        {"type": "key", "keyCode": 24} or {"type": "key", "keyName": "HOME"}
        {"type": "app", "appUrl": "https://www.netflix.com/title"}
        {"type": "volume", "volume": 30}
    """
    if not isinstance(command, dict) or not command.get("type"):
        raise MissingParameters("command.type is required")

    command_type = str(command["type"]).lower()
    if command_type not in COMMAND_TYPES:
        raise InvalidParameter(f"Unknown command type '{command['type']}', expected one of {', '.join(COMMAND_TYPES)}")

    if command_type == "key":
        key = command.get("keyCode")
        if key is None or key == "":
            key = command.get("keyName")
        if key is None or key == "":
            raise MissingParameters("command.keyCode or command.keyName is required")
        return {"type": "key", "key": key}

    if command_type == "app":
        if not command.get("appUrl"):
            raise MissingParameters("command.appUrl is required")
        return {"type": "app", "appUrl": command["appUrl"]}

    volume = command.get("volume")
    if volume is None or volume == "":
        raise MissingParameters("command.volume is required")
    try:
        volume = int(volume)
    except (TypeError, ValueError) as err:
        raise InvalidParameter(f"Invalid volume: {volume!r}") from err
    if not 0 <= volume <= 100:
        raise InvalidParameter(f"Volume must be 0-100, got {volume}")
    return {"type": "volume", "volume": volume}


class SyncDispatcher:
    """Manages sync groups and fans commands out to their members."""

    def __init__(self, store, connection, volume_step_delay: float = 0.15):
        self.store = store
        self.connection = connection
        self.volume_step_delay = volume_step_delay

    def create_group(self, name: str, device_ids: List[str]) -> SyncGroup:
        """Create or replace a group of currently connected devices."""
        if not name or device_ids is None:
            raise MissingParameters("groupName and deviceIds are required")
        if isinstance(device_ids, str):
            device_ids = [d.strip() for d in device_ids.split(",")]
        members = list(dict.fromkeys(d for d in device_ids if d))
        if len(members) < 2:
            raise InsufficientGroupSize(f"Sync group needs at least 2 devices, got {len(members)}")

        offline = [d for d in members if not self.connection.is_connected(d)]
        if offline:
            raise DeviceNotConnected(f"Devices not connected: {', '.join(offline)}")

        group = SyncGroup(name=name, device_ids=members, primary=members[0])
        self.store.put(name, group)
        _LOGGER.info("Created sync group '%s' with %d devices", name, len(members))
        return group

    def get_group(self, name: str) -> SyncGroup:
        group = self.store.get(name)
        if group is None:
            raise SyncGroupNotFound(f"Sync group '{name}' not found")
        return group

    def list_groups(self) -> List[SyncGroup]:
        return sorted(self.store.list(), key=lambda g: g.name)

    def delete_group(self, name: str) -> None:
        if not self.store.delete(name):
            raise SyncGroupNotFound(f"Sync group '{name}' not found")
        _LOGGER.info("Deleted sync group '%s'", name)

    async def dispatch(self, name: str, command: Dict[str, Any]) -> List[MemberResult]:
        """Send one command to every member concurrently.

        Returns after every member has finished; a member's failure is
        reported in its result and never affects the others.
        """
        if not name:
            raise MissingParameters("groupName is required")
        group = self.get_group(name)
        command = validate_command(command)
        _LOGGER.info("Dispatching %s to sync group '%s'", command["type"], name)

        results = await asyncio.gather(
            *(self._run_member(device_id, command) for device_id in group.device_ids)
        )
        failed = [r.device_id for r in results if not r.success]
        if failed:
            _LOGGER.warning("Sync command to '%s' failed on %s", name, ", ".join(failed))
        return list(results)

    async def _run_member(self, device_id: str, command: Dict[str, Any]) -> MemberResult:
        try:
            if command["type"] == "key":
                await self.connection.send_key(device_id, command["key"])
            elif command["type"] == "app":
                await self.connection.launch_app(device_id, command["appUrl"])
            else:
                await self.connection.set_volume(
                    device_id, command["volume"], step_delay=self.volume_step_delay
                )
        except BridgeError as err:
            return MemberResult(device_id, False, str(err))
        except Exception as err:
            _LOGGER.exception("Unexpected error sending to %s", device_id)
            return MemberResult(device_id, False, f"TransportError: {err}")
        return MemberResult(device_id, True)
