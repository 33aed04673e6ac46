"""
Telemetry Store
Observable map of flight id -> latest telemetry snapshot
The simulator publishes into it; the API and WebSocket feed read from it
"""

import logging
from typing import Callable, Dict, List, Optional, Protocol

from models import TelemetrySnapshot

logger = logging.getLogger(__name__)

# Called with (flight_id, snapshot); snapshot is None when the flight was removed
TelemetryListener = Callable[[str, Optional[TelemetrySnapshot]], None]


class TelemetrySink(Protocol):
    """Port the simulator writes telemetry through"""

    def publish(self, snapshot: TelemetrySnapshot) -> None:
        ...

    def retract(self, flight_id: str) -> None:
        ...

    def clear(self) -> None:
        ...


class TelemetryStore:
    """In-memory telemetry store with synchronous change notification"""

    def __init__(self):
        self._drones: Dict[str, TelemetrySnapshot] = {}
        self._listeners: List[TelemetryListener] = []

    def publish(self, snapshot: TelemetrySnapshot) -> None:
        """Insert or replace the snapshot for its flight"""
        self._drones[snapshot.flight_id] = snapshot
        self._notify(snapshot.flight_id, snapshot)

    def retract(self, flight_id: str) -> None:
        """Remove a flight's telemetry; unknown ids are ignored"""
        if self._drones.pop(flight_id, None) is not None:
            self._notify(flight_id, None)

    def clear(self) -> None:
        """Remove all telemetry"""
        flight_ids = list(self._drones)
        self._drones.clear()
        for flight_id in flight_ids:
            self._notify(flight_id, None)

    def get(self, flight_id: str) -> Optional[TelemetrySnapshot]:
        return self._drones.get(flight_id)

    def all(self) -> List[TelemetrySnapshot]:
        return list(self._drones.values())

    def flight_ids(self) -> List[str]:
        return list(self._drones)

    def subscribe(self, listener: TelemetryListener) -> Callable[[], None]:
        """
        Register a change listener

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, flight_id: str, snapshot: Optional[TelemetrySnapshot]):
        for listener in list(self._listeners):
            try:
                listener(flight_id, snapshot)
            except Exception:
                logger.exception("Telemetry listener failed for %s", flight_id)

    def __len__(self):
        return len(self._drones)

    def __contains__(self, flight_id):
        return flight_id in self._drones


# Process-wide default store
telemetry_store = TelemetryStore()
