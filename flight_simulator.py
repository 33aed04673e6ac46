"""
Flight Telemetry Simulator
Simulates in-flight drones moving along two-point routes and publishes
per-tick telemetry to the telemetry store
Each flight follows its route there-and-back and reacts to operator commands
"""

import asyncio
import logging
import random
import time
from typing import Dict, List, Optional, Union

from models import (
    Coordinate, FlightCommand, FlightDirection, FlightMode,
    SimulatorStatus, TelemetrySnapshot
)
from telemetry_store import TelemetrySink, telemetry_store
import config
import flight_motion

logger = logging.getLogger(__name__)


# Mode each command switches to
COMMAND_TRANSITIONS: Dict[FlightCommand, FlightMode] = {
    FlightCommand.TAKEOFF: FlightMode.AUTO,
    FlightCommand.LAND: FlightMode.LANDING,
    FlightCommand.RTL: FlightMode.RTL,
    FlightCommand.EMERGENCY_STOP: FlightMode.EMERGENCY,
    FlightCommand.PAUSE: FlightMode.PAUSED,
    FlightCommand.HOVER: FlightMode.HOVER,
    FlightCommand.RESUME: FlightMode.AUTO,
}

# Terminal modes only leave on these commands
TERMINAL_MODE_COMMANDS: Dict[FlightMode, tuple] = {
    FlightMode.LANDING: (FlightCommand.TAKEOFF,),
    FlightMode.EMERGENCY: (FlightCommand.TAKEOFF,),
}


class SimulatedFlight:
    """Simulates a single flight with altitude, speed and battery models"""

    def __init__(self, flight_id: str, drone_id: str, flight_number: str,
                 start_position: Coordinate, end_position: Coordinate,
                 battery_level: float = 100.0,
                 cruise_altitude: float = config.CRUISE_ALTITUDE):
        self.flight_id = flight_id
        self.drone_id = drone_id
        self.flight_number = flight_number
        self.start_position = tuple(start_position)
        self.end_position = tuple(end_position)
        self.progress = 0.0
        self.direction = FlightDirection.FORWARD
        self.mode = FlightMode.AUTO
        self.battery_level = battery_level
        self.target_altitude = cruise_altitude
        self.current_altitude = 0.0
        self.ground_speed = 0.0
        self.heading = flight_motion.travel_heading(
            self.start_position, self.end_position, self.direction
        )

    def update(self, progress_increment: float,
               cruise_altitude: float = config.CRUISE_ALTITUDE,
               base_speed: float = config.BASE_CRUISE_SPEED):
        """
        Advance the flight by one tick

        Args:
            progress_increment: Route fraction covered per tick in auto mode
            cruise_altitude: Altitude held in the middle of the route
            base_speed: Cruise ground speed
        """
        mode = self.mode

        if mode == FlightMode.AUTO:
            self.progress += progress_increment * self.direction

            # Reverse direction at endpoints
            if self.progress >= 1:
                self.progress = 1.0
                self.direction = FlightDirection.BACKWARD
            elif self.progress <= 0:
                self.progress = 0.0
                self.direction = FlightDirection.FORWARD

            self.target_altitude = flight_motion.calculate_altitude(self.progress, cruise_altitude)
            self.ground_speed = flight_motion.calculate_speed(self.progress, base_speed)

        elif mode in (FlightMode.PAUSED, FlightMode.HOVER):
            # Hold position and altitude target
            self.ground_speed = 0.0

        elif mode == FlightMode.LANDING:
            self.target_altitude = 0.0
            self.ground_speed = 0.0

        elif mode == FlightMode.RTL:
            self.direction = FlightDirection.BACKWARD
            self.progress = max(
                0.0, self.progress - progress_increment * config.RTL_PROGRESS_FACTOR
            )
            self.target_altitude = flight_motion.calculate_altitude(self.progress, cruise_altitude)
            self.ground_speed = (
                flight_motion.calculate_speed(self.progress, base_speed) * config.RTL_SPEED_FACTOR
            )
            if self.progress <= 0:
                self.mode = FlightMode.LANDING
                logger.info("[%s] Reached launch point, landing", self.flight_id)

        elif mode == FlightMode.EMERGENCY:
            self.target_altitude = 0.0
            self.ground_speed = 0.0

        self.heading = flight_motion.travel_heading(
            self.start_position, self.end_position, self.direction
        )

        self.current_altitude = flight_motion.ramp_altitude(
            self.current_altitude,
            self.target_altitude,
            flight_motion.altitude_change_rate(mode),
        )

        self.battery_level = flight_motion.drain_battery(
            self.battery_level,
            flight_motion.battery_drain_rate(mode, self.progress),
        )

    @property
    def position(self) -> Coordinate:
        return flight_motion.interpolate_position(
            self.start_position, self.end_position, self.progress
        )

    def get_telemetry(self) -> TelemetrySnapshot:
        """Get current telemetry data"""
        return TelemetrySnapshot(
            flight_id=self.flight_id,
            drone_id=self.drone_id,
            flight_number=self.flight_number,
            position=self.position,
            heading=self.heading,
            altitude=round(max(0.0, self.current_altitude)),
            ground_speed=round(self.ground_speed),
            battery_level=round(self.battery_level),
        )


class TelemetrySimulator:
    """
    Manages the simulated flights and the tick loop

    Every mutating operation is tolerant of unknown ids, duplicate
    registrations and out-of-order start/stop: they degrade to no-ops.
    """

    def __init__(self, sink: Optional[TelemetrySink] = None,
                 progress_increment: float = config.PROGRESS_INCREMENT,
                 cruise_altitude: float = config.CRUISE_ALTITUDE,
                 base_speed: float = config.BASE_CRUISE_SPEED):
        self.sink = sink if sink is not None else telemetry_store
        self.progress_increment = progress_increment
        self.cruise_altitude = cruise_altitude
        self.base_speed = base_speed
        self.flights: Dict[str, SimulatedFlight] = {}
        self.tick_count = 0
        self.interval_ms: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_flight(self, flight_id: str, drone_id: str, flight_number: str,
                   start_pos: Coordinate, end_pos: Coordinate):
        """Register a flight in auto mode; existing flights are left untouched"""
        if flight_id in self.flights:
            logger.debug("[%s] Already simulated, ignoring registration", flight_id)
            return

        self.flights[flight_id] = SimulatedFlight(
            flight_id, drone_id, flight_number, start_pos, end_pos,
            battery_level=random.uniform(config.INITIAL_BATTERY_MIN, config.INITIAL_BATTERY_MAX),
            cruise_altitude=self.cruise_altitude,
        )
        logger.info("[%s] Simulating flight %s (drone %s)", flight_id, flight_number, drone_id)

    def remove_flight(self, flight_id: str):
        """Stop simulating a flight and retract its telemetry"""
        if self.flights.pop(flight_id, None) is None:
            logger.debug("[%s] Not simulated, nothing to remove", flight_id)
        self.sink.retract(flight_id)

    def tick(self) -> List[TelemetrySnapshot]:
        """
        Advance every flight by one step and publish its telemetry

        Runs synchronously so subscribers never see a partially updated tick.
        """
        snapshots = []
        for flight in list(self.flights.values()):
            flight.update(self.progress_increment, self.cruise_altitude, self.base_speed)
            snapshot = flight.get_telemetry()
            self.sink.publish(snapshot)
            snapshots.append(snapshot)
        self.tick_count += 1
        return snapshots

    async def _tick_loop(self, interval: float):
        while True:
            loop_start = time.monotonic()
            self.tick()

            # Maintain tick rate
            elapsed = time.monotonic() - loop_start
            await asyncio.sleep(max(0.0, interval - elapsed))

    def start(self, interval_ms: int = config.TICK_INTERVAL_MS):
        """
        Begin ticking on the running event loop

        The first tick runs on the next loop turn, then once per interval.
        Calling start while already running has no effect.
        """
        if self.running:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, simulator not started")
            return

        self.interval_ms = interval_ms
        self._task = loop.create_task(self._tick_loop(interval_ms / 1000.0))
        logger.info("Simulator started (%d flights, interval %d ms)", len(self.flights), interval_ms)

    def stop(self):
        """Cancel the tick loop; registered flights are kept"""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Simulator stopped")

    def clear(self):
        """Stop ticking, drop every flight and clear published telemetry"""
        self.stop()
        self.flights.clear()
        self.sink.clear()

    def execute_command(self, flight_id: str, command: Union[FlightCommand, str]):
        """
        Switch a flight's mode; the change shows up on the next tick

        Unknown flights and unknown commands are ignored.
        """
        flight = self.flights.get(flight_id)
        if flight is None:
            logger.debug("[%s] Command %s for unknown flight ignored", flight_id, command)
            return

        try:
            command = FlightCommand(command)
        except ValueError:
            logger.debug("[%s] Unknown command %r ignored", flight_id, command)
            return

        allowed = TERMINAL_MODE_COMMANDS.get(flight.mode)
        if allowed is not None and command not in allowed:
            logger.debug("[%s] %s ignored in %s mode", flight_id, command.value, flight.mode.value)
            return

        new_mode = COMMAND_TRANSITIONS[command]
        if flight.mode != new_mode:
            logger.info("[%s] %s: %s -> %s", flight_id, command.value,
                        flight.mode.value, new_mode.value)
        flight.mode = new_mode

    def get_flight_ids(self) -> List[str]:
        return list(self.flights)

    def get_flight(self, flight_id: str) -> Optional[SimulatedFlight]:
        return self.flights.get(flight_id)

    def get_flight_mode(self, flight_id: str) -> Optional[FlightMode]:
        flight = self.flights.get(flight_id)
        return flight.mode if flight else None

    def get_status(self) -> SimulatorStatus:
        """Get overall simulator status"""
        modes: Dict[str, int] = {}
        for flight in self.flights.values():
            modes[flight.mode.value] = modes.get(flight.mode.value, 0) + 1
        return SimulatorStatus(
            running=self.running,
            active_flights=len(self.flights),
            tick_count=self.tick_count,
            modes=modes,
            timestamp=time.time(),
        )


# ============================================================================
# SHARED INSTANCE
# ============================================================================
# Callers take a reference with acquire_simulator() and hand it back with
# release_simulator(); the last release clears the simulator.

_simulator: Optional[TelemetrySimulator] = None
_references = 0


def acquire_simulator(sink: Optional[TelemetrySink] = None) -> TelemetrySimulator:
    """Get the shared simulator, creating it on first use, and take a reference"""
    global _references
    simulator = get_telemetry_simulator(sink)
    _references += 1
    return simulator


def release_simulator():
    """Drop a reference; the last one clears and discards the shared simulator"""
    global _simulator, _references
    if _references == 0:
        return
    _references -= 1
    if _references == 0 and _simulator is not None:
        _simulator.clear()
        _simulator = None


def get_telemetry_simulator(sink: Optional[TelemetrySink] = None) -> TelemetrySimulator:
    """Get the shared simulator without taking a reference"""
    global _simulator
    if _simulator is None:
        _simulator = TelemetrySimulator(sink)
    elif sink is not None and sink is not _simulator.sink:
        logger.debug("Shared simulator already exists, ignoring the sink passed in")
    return _simulator
