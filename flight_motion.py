"""
Flight Motion Model
Pure functions computing position, heading, altitude, speed and battery drain
for a simulated flight along a two-point route
"""

import math
from models import Coordinate, FlightDirection, FlightMode
import config


STATIONARY_MODES = (FlightMode.PAUSED, FlightMode.HOVER)


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation between a and b"""
    return a + (b - a) * t


def interpolate_position(start: Coordinate, end: Coordinate, progress: float) -> Coordinate:
    """
    Position along the route at the given progress

    Latitude and longitude are interpolated independently; no great-circle
    correction at the short ranges involved.
    """
    return (
        lerp(start[0], end[0], progress),
        lerp(start[1], end[1], progress),
    )


def calculate_heading(origin: Coordinate, target: Coordinate) -> float:
    """
    Bearing from origin to target

    Returns:
        Degrees in [0, 360), 0 = North, 90 = East. A zero-length leg gives 0.
    """
    d_lat = target[0] - origin[0]
    d_lon = target[1] - origin[1]
    angle = math.degrees(math.atan2(d_lon, d_lat))
    return (angle + 360) % 360


def travel_heading(start: Coordinate, end: Coordinate, direction: FlightDirection) -> float:
    """Heading from the endpoint behind the flight to the one ahead of it"""
    if direction == FlightDirection.FORWARD:
        return calculate_heading(start, end)
    return calculate_heading(end, start)


def calculate_altitude(progress: float, cruise_altitude: float = config.CRUISE_ALTITUDE) -> float:
    """
    Target altitude for a progress fraction

    Climb to cruise altitude in the first 20%, cruise in the middle,
    descend in the last 20%.
    """
    phase = config.CLIMB_PHASE_FRACTION
    if progress < phase:
        return lerp(0, cruise_altitude, progress / phase)
    elif progress > 1 - phase:
        return lerp(cruise_altitude, 0, (progress - (1 - phase)) / phase)
    return cruise_altitude


def calculate_speed(progress: float, base_speed: float = config.BASE_CRUISE_SPEED) -> float:
    """
    Ground speed for a progress fraction

    Slower during climb/descent, with a small variation during cruise.
    """
    ramp = config.SPEED_RAMP_FRACTION
    if progress < ramp or progress > 1 - ramp:
        return base_speed * config.RAMP_SPEED_FACTOR
    wave = math.sin(progress * math.pi * 2 * config.CRUISE_SPEED_WAVES)
    return base_speed + wave * config.CRUISE_SPEED_VARIATION


def altitude_change_rate(mode: FlightMode) -> float:
    """Maximum altitude change per tick"""
    if mode == FlightMode.EMERGENCY:
        return config.EMERGENCY_ALTITUDE_CHANGE_RATE
    return config.ALTITUDE_CHANGE_RATE


def ramp_altitude(current: float, target: float, max_rate: float) -> float:
    """Move current altitude toward target by at most max_rate, never overshooting"""
    diff = target - current
    if abs(diff) <= config.ALTITUDE_SNAP_THRESHOLD:
        return target
    return current + math.copysign(min(abs(diff), max_rate), diff)


def battery_drain_rate(mode: FlightMode, progress: float) -> float:
    """Battery percentage consumed in one tick"""
    if mode in STATIONARY_MODES:
        return config.STATIONARY_DRAIN_RATE
    if mode == FlightMode.EMERGENCY:
        return config.EMERGENCY_DRAIN_RATE

    phase = config.CLIMB_PHASE_FRACTION
    if phase < progress < 1 - phase:
        return config.CRUISE_DRAIN_RATE
    return config.CLIMB_DRAIN_RATE


def drain_battery(level: float, rate: float) -> float:
    # Never fully depletes in this model
    return max(config.BATTERY_FLOOR, level - rate)
