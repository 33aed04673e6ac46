"""
Flight Telemetry Simulator - FastAPI Service
Exposes the simulator's operations, published telemetry, and a live WebSocket feed
"""

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict, List, Optional
import asyncio
import logging
import time

from models import (
    CommandRequest, FlightRegistration, SimulatorStatus, TelemetrySnapshot
)
from telemetry_store import telemetry_store
from flight_sync import FlightSync
import config
import flight_simulator

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI SETUP
# ============================================================================

app = FastAPI(
    title="UTM Flight Telemetry Simulator",
    description="Simulated live telemetry for in-flight drones",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Flight sync with the remote UTM API (only when enabled)
flight_sync: Optional[FlightSync] = None
flight_sync_task: Optional[asyncio.Task] = None

# Telemetry changes waiting to be broadcast (None marks a removed flight)
pending_updates: Dict[str, Optional[dict]] = {}

unsubscribe_telemetry = None

# ============================================================================
# WEBSOCKET MANAGER
# ============================================================================

class ConnectionManager:
    """Manages WebSocket connections for real-time updates"""

    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: dict):
        """Send message to all connected clients"""
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                self.disconnect(connection)

manager = ConnectionManager()


def on_telemetry_change(flight_id: str, snapshot: Optional[TelemetrySnapshot]):
    """
    Store listener: collect changes and schedule one broadcast

    A tick publishes every flight synchronously, so all of its changes are
    collected before the broadcast task runs.
    """
    if not manager.active_connections:
        return

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return

    if not pending_updates:
        loop.create_task(flush_telemetry())
    pending_updates[flight_id] = snapshot.model_dump() if snapshot else None


async def flush_telemetry():
    """Broadcast collected telemetry changes as one frame"""
    updates = dict(pending_updates)
    pending_updates.clear()

    await manager.broadcast({
        'type': 'telemetry',
        'drones': [data for data in updates.values() if data is not None],
        'removed': [flight_id for flight_id, data in updates.items() if data is None],
        'timestamp': time.time()
    })


def get_simulator() -> flight_simulator.TelemetrySimulator:
    return flight_simulator.get_telemetry_simulator()


def require_flight(flight_id: str):
    if flight_id not in get_simulator().get_flight_ids():
        raise HTTPException(404, "Flight not simulated")

# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/api/health")
async def health_check():
    """Service health check"""
    simulator = get_simulator()
    return {
        "status": "operational",
        "timestamp": time.time(),
        "simulator_running": simulator.running,
        "active_flights": len(simulator.get_flight_ids())
    }

@app.get("/api/simulation/status", response_model=SimulatorStatus)
async def get_simulation_status():
    """Get overall simulator status"""
    return get_simulator().get_status()

@app.get("/api/simulation/flights")
async def get_simulated_flights():
    """Get ids of all simulated flights"""
    return get_simulator().get_flight_ids()

@app.post("/api/simulation/flights")
async def register_flight(registration: FlightRegistration):
    """
    Start simulating a flight
    Registering an already simulated flight leaves it unchanged
    """
    simulator = get_simulator()
    if registration.flight_id in simulator.get_flight_ids():
        return {"status": "exists", "flight_id": registration.flight_id}

    simulator.add_flight(
        registration.flight_id,
        registration.drone_id,
        registration.flight_number,
        registration.start_position.as_tuple(),
        registration.end_position.as_tuple()
    )
    return {"status": "registered", "flight_id": registration.flight_id}

@app.delete("/api/simulation/flights/{flight_id}")
async def remove_flight(flight_id: str):
    """Stop simulating a flight and drop its telemetry"""
    get_simulator().remove_flight(flight_id)
    return {"status": "removed", "flight_id": flight_id}

@app.get("/api/simulation/flights/{flight_id}/mode")
async def get_flight_mode(flight_id: str):
    """Get a simulated flight's current mode"""
    mode = get_simulator().get_flight_mode(flight_id)
    if mode is None:
        raise HTTPException(404, "Flight not simulated")
    return {"flight_id": flight_id, "mode": mode.value}

@app.post("/api/simulation/flights/{flight_id}/commands")
async def execute_command(flight_id: str, request: CommandRequest):
    """
    Apply an operator command to a simulated flight
    With flight sync enabled the command goes to the UTM API first
    """
    require_flight(flight_id)
    simulator = get_simulator()

    if flight_sync is not None:
        drone_id = request.drone_id or simulator.get_flight(flight_id).drone_id
        sent = await flight_sync.send_command(drone_id, flight_id, request.command)
        if not sent:
            raise HTTPException(502, "Command could not be sent to the UTM API")
    else:
        simulator.execute_command(flight_id, request.command)

    # The flight may have been removed while the command was in transit
    mode = simulator.get_flight_mode(flight_id)
    if mode is None:
        raise HTTPException(404, "Flight not simulated")

    return {
        "status": "accepted",
        "flight_id": flight_id,
        "command": request.command.value,
        "mode": mode.value
    }

@app.post("/api/simulation/start")
async def start_simulation(interval_ms: int = config.TICK_INTERVAL_MS):
    """Start the tick loop (no effect if already running)"""
    if interval_ms <= 0:
        raise HTTPException(400, "interval_ms must be positive")
    simulator = get_simulator()
    simulator.start(interval_ms)
    return {"status": "running", "interval_ms": simulator.interval_ms}

@app.post("/api/simulation/stop")
async def stop_simulation():
    """Stop the tick loop, keeping simulated flights"""
    get_simulator().stop()
    return {"status": "stopped"}

@app.post("/api/simulation/clear")
async def clear_simulation():
    """Stop the tick loop and drop all simulated flights and telemetry"""
    get_simulator().clear()
    return {"status": "cleared"}

@app.get("/api/telemetry", response_model=List[TelemetrySnapshot])
async def get_all_telemetry():
    """Get latest telemetry for all simulated flights"""
    return telemetry_store.all()

@app.get("/api/telemetry/{flight_id}", response_model=TelemetrySnapshot)
async def get_flight_telemetry(flight_id: str):
    """Get latest telemetry for one flight"""
    snapshot = telemetry_store.get(flight_id)
    if snapshot is None:
        raise HTTPException(404, "No telemetry for flight")
    return snapshot

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket for real-time telemetry"""
    await manager.connect(websocket)

    try:
        # Send initial state
        await websocket.send_json({
            'type': 'initial_state',
            'drones': [s.model_dump() for s in telemetry_store.all()],
            'simulation': get_simulator().get_status().model_dump()
        })

        while True:
            # Keep connection alive
            data = await websocket.receive_text()

            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        manager.disconnect(websocket)

# ============================================================================
# LIFECYCLE
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize the service on startup"""
    global flight_sync, flight_sync_task, unsubscribe_telemetry

    logger.info("Flight Telemetry Simulator Starting...")
    simulator = flight_simulator.acquire_simulator(telemetry_store)
    unsubscribe_telemetry = telemetry_store.subscribe(on_telemetry_change)

    if config.SYNC_ENABLED:
        flight_sync = FlightSync(simulator)
        flight_sync_task = asyncio.create_task(flight_sync.run())
    else:
        logger.info("Flight sync disabled; register flights through the API")

    logger.info("Service ready (tick interval %d ms)", config.TICK_INTERVAL_MS)

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    global flight_sync, flight_sync_task, unsubscribe_telemetry

    logger.info("Flight Telemetry Simulator Shutting Down...")
    if flight_sync is not None:
        flight_sync.stop()
        flight_sync_task.cancel()
        flight_sync = None
        flight_sync_task = None

    if unsubscribe_telemetry is not None:
        unsubscribe_telemetry()
        unsubscribe_telemetry = None

    flight_simulator.release_simulator()

# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
