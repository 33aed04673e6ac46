"""
Shared fixtures for simulator tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from flight_simulator import TelemetrySimulator
from telemetry_store import TelemetryStore


F1_START = (37.0, -122.0)
F1_END = (37.1, -122.1)


@pytest.fixture
def store():
    return TelemetryStore()


@pytest.fixture
def simulator(store):
    return TelemetrySimulator(store)


@pytest.fixture
def f1(simulator):
    """Simulator with flight F1 registered"""
    simulator.add_flight("F1", "D1", "UTM-001", F1_START, F1_END)
    return simulator.get_flight("F1")
