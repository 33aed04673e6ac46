"""
Tests for the FastAPI service.
"""

import pytest
from fastapi.testclient import TestClient

import flight_simulator
import main
from main import app
from telemetry_store import telemetry_store


F1 = {
    "flight_id": "F1",
    "drone_id": "D1",
    "flight_number": "UTM-001",
    "start_position": {"latitude": 37.0, "longitude": -122.0},
    "end_position": {"latitude": 37.1, "longitude": -122.1},
}


@pytest.fixture
def client():
    flight_simulator._simulator = None
    flight_simulator._references = 0
    telemetry_store.clear()
    with TestClient(app) as client:
        yield client


def simulator():
    return flight_simulator.get_telemetry_simulator()


class TestHealth:
    """Health and status endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "operational"
        assert body["simulator_running"] is False
        assert body["active_flights"] == 0

    def test_status(self, client):
        client.post("/api/simulation/flights", json=F1)
        body = client.get("/api/simulation/status").json()
        assert body["active_flights"] == 1
        assert body["modes"] == {"auto": 1}
        assert body["tick_count"] == 0


class TestFlights:
    """Registering and removing simulated flights."""

    def test_register_and_list(self, client):
        response = client.post("/api/simulation/flights", json=F1)
        assert response.json() == {"status": "registered", "flight_id": "F1"}
        assert client.get("/api/simulation/flights").json() == ["F1"]

    def test_register_twice_keeps_original(self, client):
        client.post("/api/simulation/flights", json=F1)
        moved = dict(F1, start_position={"latitude": 10.0, "longitude": 10.0})

        response = client.post("/api/simulation/flights", json=moved)

        assert response.json()["status"] == "exists"
        assert simulator().get_flight("F1").start_position == (37.0, -122.0)

    def test_register_defaults(self, client):
        body = {k: v for k, v in F1.items() if k not in ("drone_id", "flight_number")}
        client.post("/api/simulation/flights", json=body)
        flight = simulator().get_flight("F1")
        assert flight.drone_id == "unknown"
        assert flight.flight_number == "Unknown"

    def test_register_rejects_bad_coordinates(self, client):
        bad = dict(F1, end_position={"latitude": 95.0, "longitude": -122.1})
        assert client.post("/api/simulation/flights", json=bad).status_code == 422

    def test_remove_flight(self, client):
        client.post("/api/simulation/flights", json=F1)
        simulator().tick()
        assert client.get("/api/telemetry/F1").status_code == 200

        response = client.delete("/api/simulation/flights/F1")

        assert response.status_code == 200
        assert client.get("/api/telemetry/F1").status_code == 404
        assert client.get("/api/simulation/flights").json() == []

    def test_remove_unknown_flight(self, client):
        assert client.delete("/api/simulation/flights/ghost").status_code == 200


class TestCommands:
    """Command injection over HTTP."""

    def test_mode(self, client):
        client.post("/api/simulation/flights", json=F1)
        assert client.get("/api/simulation/flights/F1/mode").json()["mode"] == "auto"
        assert client.get("/api/simulation/flights/ghost/mode").status_code == 404

    def test_command_changes_mode(self, client):
        client.post("/api/simulation/flights", json=F1)

        response = client.post("/api/simulation/flights/F1/commands", json={"command": "hover"})

        assert response.status_code == 200
        assert response.json()["mode"] == "hover"

    def test_command_unknown_flight(self, client):
        response = client.post("/api/simulation/flights/ghost/commands", json={"command": "land"})
        assert response.status_code == 404

    def test_command_invalid_name(self, client):
        client.post("/api/simulation/flights", json=F1)
        response = client.post("/api/simulation/flights/F1/commands", json={"command": "dance"})
        assert response.status_code == 422

    def test_flight_removed_while_command_in_transit(self, client, monkeypatch):
        class RemovingSync:
            async def send_command(self, drone_id, flight_id, command):
                simulator().remove_flight(flight_id)
                return True

        client.post("/api/simulation/flights", json=F1)
        monkeypatch.setattr(main, "flight_sync", RemovingSync())

        response = client.post("/api/simulation/flights/F1/commands", json={"command": "land"})

        assert response.status_code == 404
        assert client.get("/api/simulation/flights").json() == []

    def test_emergency_stop_reflected_next_tick(self, client):
        client.post("/api/simulation/flights", json=F1)
        simulator().tick()

        client.post("/api/simulation/flights/F1/commands", json={"command": "emergency_stop"})
        simulator().tick()

        snapshot = client.get("/api/telemetry/F1").json()
        assert snapshot["ground_speed"] == 0
        assert simulator().get_flight("F1").target_altitude == 0


class TestSimulationControl:
    """Start, stop and clear."""

    def test_start_and_stop(self, client):
        client.post("/api/simulation/flights", json=F1)

        response = client.post("/api/simulation/start", params={"interval_ms": 1000})
        assert response.json() == {"status": "running", "interval_ms": 1000}
        assert client.get("/api/simulation/status").json()["running"] is True

        client.post("/api/simulation/stop")
        assert client.get("/api/simulation/status").json()["running"] is False
        assert client.get("/api/simulation/flights").json() == ["F1"]

    def test_start_rejects_bad_interval(self, client):
        assert client.post("/api/simulation/start", params={"interval_ms": 0}).status_code == 400

    def test_clear(self, client):
        client.post("/api/simulation/flights", json=F1)
        simulator().tick()

        client.post("/api/simulation/clear")

        assert client.get("/api/simulation/flights").json() == []
        assert client.get("/api/telemetry").json() == []


class TestTelemetry:
    """Telemetry reads and the WebSocket feed."""

    def test_telemetry_snapshot(self, client):
        client.post("/api/simulation/flights", json=F1)
        assert client.get("/api/telemetry/F1").status_code == 404

        simulator().tick()

        snapshots = client.get("/api/telemetry").json()
        assert len(snapshots) == 1
        snapshot = snapshots[0]
        assert snapshot["flight_id"] == "F1"
        assert snapshot["drone_id"] == "D1"
        assert 37.0 < snapshot["position"][0] < 37.1
        assert snapshot["altitude"] >= 0

    def test_websocket_initial_state_and_ping(self, client):
        client.post("/api/simulation/flights", json=F1)
        simulator().tick()

        with client.websocket_connect("/ws") as websocket:
            message = websocket.receive_json()
            assert message["type"] == "initial_state"
            assert [d["flight_id"] for d in message["drones"]] == ["F1"]
            assert message["simulation"]["active_flights"] == 1

            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"

    def test_websocket_receives_tick_frames(self, client):
        client.post("/api/simulation/flights", json=F1)

        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            client.post("/api/simulation/start", params={"interval_ms": 1000})

            message = websocket.receive_json()

            assert message["type"] == "telemetry"
            assert [d["flight_id"] for d in message["drones"]] == ["F1"]
            assert message["removed"] == []

            client.post("/api/simulation/stop")
