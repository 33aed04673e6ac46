"""
Data Models for the Flight Telemetry Simulator
Uses Pydantic for validation and serialization
"""

from pydantic import BaseModel, Field
from typing import Dict, Optional, Tuple
from enum import Enum


# (latitude, longitude)
Coordinate = Tuple[float, float]


class FlightMode(str, Enum):
    """Simulated flight behavioral states"""
    AUTO = "auto"
    PAUSED = "paused"
    HOVER = "hover"
    LANDING = "landing"
    RTL = "rtl"
    EMERGENCY = "emergency"


class FlightDirection(int, Enum):
    """Travel direction along the route"""
    FORWARD = 1
    BACKWARD = -1


class FlightCommand(str, Enum):
    """Operator commands accepted by the simulator"""
    TAKEOFF = "takeoff"
    LAND = "land"
    RTL = "rtl"
    EMERGENCY_STOP = "emergency_stop"
    PAUSE = "pause"
    HOVER = "hover"
    RESUME = "resume"


class TelemetrySnapshot(BaseModel):
    """Per-tick telemetry for one simulated flight"""
    flight_id: str
    drone_id: str
    flight_number: str
    position: Coordinate
    heading: float = Field(..., ge=0, le=360)  # Degrees (0 = North, 90 = East)
    altitude: int = Field(..., ge=0)  # meters
    ground_speed: int = Field(..., ge=0)
    battery_level: int = Field(..., ge=0, le=100)  # percentage


class GeoPoint(BaseModel):
    """Route endpoint (Lat, Lon)"""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def as_tuple(self) -> Coordinate:
        return (self.latitude, self.longitude)


class FlightRegistration(BaseModel):
    """Request to start simulating a flight"""
    flight_id: str
    drone_id: str = "unknown"
    flight_number: str = "Unknown"
    start_position: GeoPoint
    end_position: GeoPoint


class CommandRequest(BaseModel):
    """Operator command for a simulated flight"""
    command: FlightCommand
    drone_id: Optional[str] = None


class SimulatorStatus(BaseModel):
    """Overall simulator status"""
    running: bool
    active_flights: int
    tick_count: int
    modes: Dict[str, int] = {}
    timestamp: float
