"""State poller: periodic snapshot of every connected device."""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from .store import DeviceStore, Snapshot

_LOGGER = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0

SnapshotListener = Callable[[str, Snapshot], None]


class StatePoller:
    """Reconciles each device's state with its session and republishes it.

    Listeners are called synchronously, in registration order, with
    ``(device_id, snapshot)`` after every tick.
    """

    def __init__(
        self,
        store: DeviceStore,
        interval: float = DEFAULT_POLL_INTERVAL,
        activity_timeout: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.interval = interval
        self.activity_timeout = activity_timeout
        self.clock = clock
        self._listeners: List[SnapshotListener] = []
        self._tasks: Dict[str, asyncio.Task] = {}

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def is_running(self, device_id: str) -> bool:
        task = self._tasks.get(device_id)
        return task is not None and not task.done()

    def start(self, device_id: str) -> None:
        """Start polling a device, replacing any existing timer for it."""
        self.stop(device_id)
        self._tasks[device_id] = asyncio.ensure_future(self._run(device_id))
        _LOGGER.debug("Polling %s every %ss", device_id, self.interval)

    def stop(self, device_id: str) -> None:
        task = self._tasks.pop(device_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def stop_all(self) -> None:
        for device_id in list(self._tasks):
            self.stop(device_id)

    def snapshot(self, device_id: str) -> Optional[Snapshot]:
        """Latest stored snapshot for a device."""
        state = self.store.get(device_id)
        return state.snapshot if state else None

    async def _run(self, device_id: str) -> None:
        while True:
            if self.store.get(device_id) is None:
                self._tasks.pop(device_id, None)
                return
            try:
                self.poll_once(device_id)
            except Exception as e:
                _LOGGER.error("Poll error for %s: %s", device_id, e, exc_info=True)
            await asyncio.sleep(self.interval)

    def poll_once(self, device_id: str) -> Optional[Snapshot]:
        """Run one tick for a device: reconcile, snapshot, notify."""
        state = self.store.get(device_id)
        if state is None:
            return None

        if state.session is not None:
            state.reconcile(state.session)

        snapshot = state.build_snapshot(self.clock(), self.activity_timeout)
        previous = state.snapshot
        state.snapshot = snapshot
        if previous is not None and previous.connected != snapshot.connected:
            _LOGGER.info("Device %s is now %s", device_id, "live" if snapshot.connected else "stale")

        for listener in list(self._listeners):
            try:
                listener(device_id, snapshot)
            except Exception:
                _LOGGER.exception("Snapshot listener failed for %s", device_id)
        return snapshot
