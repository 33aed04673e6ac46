"""
Flight Telemetry Simulator Configuration
Defines motion profiles, battery model, engine timing, and service parameters
"""

import os

# ============================================================================
# SIMULATION ENGINE
# ============================================================================

TICK_INTERVAL_MS = 1000  # milliseconds between ticks
PROGRESS_INCREMENT = 0.008  # one-way traversal in ~125 ticks

# ============================================================================
# ALTITUDE PROFILE
# ============================================================================
# Climb during the first 20% of the route, cruise, descend during the last 20%

CRUISE_ALTITUDE = 120.0  # meters
CLIMB_PHASE_FRACTION = 0.2

ALTITUDE_CHANGE_RATE = 5.0             # meters per tick
EMERGENCY_ALTITUDE_CHANGE_RATE = 15.0  # meters per tick
ALTITUDE_SNAP_THRESHOLD = 0.5          # meters

# ============================================================================
# SPEED PROFILE
# ============================================================================

BASE_CRUISE_SPEED = 45.0  # km/h
SPEED_RAMP_FRACTION = 0.15  # reduced speed in the first/last 15% of the route
RAMP_SPEED_FACTOR = 0.6
CRUISE_SPEED_VARIATION = 5.0
CRUISE_SPEED_WAVES = 4  # sine periods over the full route

# Return-to-launch
RTL_PROGRESS_FACTOR = 1.5
RTL_SPEED_FACTOR = 1.2

# ============================================================================
# BATTERY MODEL
# ============================================================================
# Percent per tick. The level never drops below the floor.

INITIAL_BATTERY_MIN = 95.0
INITIAL_BATTERY_MAX = 100.0
BATTERY_FLOOR = 5.0

CRUISE_DRAIN_RATE = 0.02
CLIMB_DRAIN_RATE = 0.04
STATIONARY_DRAIN_RATE = 0.015
EMERGENCY_DRAIN_RATE = 0.1

# ============================================================================
# REMOTE UTM API
# ============================================================================

REMOTE_API_URL = os.getenv("UTM_API_URL", "http://localhost:3001/api/v1")
REMOTE_API_TOKEN = os.getenv("UTM_API_TOKEN")
REQUEST_TIMEOUT = 5.0  # seconds

SYNC_ENABLED = os.getenv("UTM_SYNC_ENABLED", "false").lower() in ("1", "true", "yes")
SYNC_INTERVAL = float(os.getenv("UTM_SYNC_INTERVAL", "10"))  # seconds
ACTIVE_FLIGHT_STATUS = "active"

# ============================================================================
# API CONFIGURATION
# ============================================================================

API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))
CORS_ORIGINS = ["*"]  # Allow all origins for development

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
