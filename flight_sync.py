"""
Active Flight Sync
Keeps the simulator's flights in step with the remote UTM API
Polls active flights and hub locations, registers new flights, removes
finished ones, and forwards operator commands to the API
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import aiohttp

from models import Coordinate, FlightCommand
from flight_simulator import TelemetrySimulator
import config

logger = logging.getLogger(__name__)


def extract_items(payload: Any) -> List[Dict[str, Any]]:
    """Unwrap list responses that may come bare or as {"data": [...]}; non-object records are dropped"""
    if isinstance(payload, dict):
        payload = payload.get("data")
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def _related_id(record: Dict[str, Any], relation: str) -> Optional[str]:
    """Read an id from a nested relation object or its flat <relation>Id field"""
    nested = record.get(relation)
    if isinstance(nested, dict) and nested.get("id") is not None:
        return str(nested["id"])
    flat = record.get(f"{relation}Id")
    return str(flat) if flat is not None else None


def hub_location(hub: Dict[str, Any]) -> Optional[Coordinate]:
    """Hub (lat, lon), or None when the hub has no usable location"""
    location = hub.get("location")
    if not isinstance(location, dict):
        return None
    lat = location.get("latitude")
    lon = location.get("longitude")
    if lat is None or lon is None:
        return None
    try:
        return (float(lat), float(lon))
    except (TypeError, ValueError):
        return None


def flight_route(flight: Dict[str, Any],
                 hub_locations: Dict[str, Coordinate]) -> Optional[Tuple[Coordinate, Coordinate]]:
    """Departure and arrival coordinates, or None if either hub is unknown"""
    start = hub_locations.get(_related_id(flight, "departureHub"))
    end = hub_locations.get(_related_id(flight, "arrivalHub"))
    if start is None or end is None:
        return None
    return start, end


class FlightSync:
    """Reconciles the simulator against the remote API's active flights"""

    def __init__(self, simulator: TelemetrySimulator,
                 api_url: str = config.REMOTE_API_URL,
                 token: Optional[str] = config.REMOTE_API_TOKEN,
                 interval: float = config.SYNC_INTERVAL):
        self.simulator = simulator
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.interval = interval
        self.running = False
        self.timeout = aiohttp.ClientTimeout(total=config.REQUEST_TIMEOUT)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(headers=self._headers(), timeout=self.timeout)

    async def fetch_active_flights(self, session: aiohttp.ClientSession) -> List[Dict[str, Any]]:
        """Get flights whose status is active"""
        async with session.get(
            f"{self.api_url}/flights",
            params={"status": config.ACTIVE_FLIGHT_STATUS}
        ) as response:
            response.raise_for_status()
            flights = extract_items(await response.json())

        return [f for f in flights if f.get("status") == config.ACTIVE_FLIGHT_STATUS]

    async def fetch_hub_locations(self, session: aiohttp.ClientSession) -> Dict[str, Coordinate]:
        """Get hub id -> (lat, lon) for every hub with a location"""
        async with session.get(f"{self.api_url}/hubs") as response:
            response.raise_for_status()
            hubs = extract_items(await response.json())

        locations = {}
        for hub in hubs:
            location = hub_location(hub)
            if hub.get("id") is not None and location is not None:
                locations[str(hub["id"])] = location
        return locations

    def reconcile(self, flights: List[Dict[str, Any]],
                  hub_locations: Dict[str, Coordinate]) -> Tuple[List[str], List[str]]:
        """
        Register new active flights and remove those no longer active

        Args:
            flights: Active flight records from the API
            hub_locations: Hub id -> (lat, lon)

        Returns:
            (added flight ids, removed flight ids)
        """
        stale = set(self.simulator.get_flight_ids())
        added = []

        for flight in flights:
            flight_id = flight.get("id")
            if flight_id is None:
                continue
            flight_id = str(flight_id)

            if flight_id in stale:
                stale.discard(flight_id)
                continue

            route = flight_route(flight, hub_locations)
            if route is None:
                logger.debug("[%s] Route hubs not resolved, skipping", flight_id)
                continue

            drone_id = _related_id(flight, "drone") or "unknown"
            flight_number = flight.get("flightNumber") or "Unknown"
            self.simulator.add_flight(flight_id, drone_id, flight_number, route[0], route[1])
            added.append(flight_id)

        removed = sorted(stale)
        for flight_id in removed:
            self.simulator.remove_flight(flight_id)

        if flights:
            self.simulator.start()

        if added or removed:
            logger.info("Flight sync: %d added, %d removed", len(added), len(removed))
        return added, removed

    async def sync_once(self, session: aiohttp.ClientSession) -> Tuple[List[str], List[str]]:
        """Fetch the current flight picture and reconcile; network errors leave flights as they are"""
        try:
            flights = await self.fetch_active_flights(session)
            hub_locations = await self.fetch_hub_locations(session)
        except asyncio.TimeoutError:
            logger.warning("Timeout fetching active flights from %s", self.api_url)
            return [], []
        except aiohttp.ClientError as e:
            logger.warning("Error fetching active flights from %s: %s", self.api_url, e)
            return [], []
        except ValueError as e:
            logger.warning("Malformed response from %s: %s", self.api_url, e)
            return [], []

        return self.reconcile(flights, hub_locations)

    async def run(self):
        """Poll the API until stopped"""
        self.running = True
        logger.info("Starting flight sync (every %.0fs from %s)", self.interval, self.api_url)

        async with self._session() as session:
            while self.running:
                try:
                    await self.sync_once(session)
                except Exception:
                    logger.exception("Flight sync pass failed")
                await asyncio.sleep(self.interval)

    def stop(self):
        self.running = False
        logger.info("Stopping flight sync...")

    async def send_command(self, drone_id: str, flight_id: str,
                           command: Union[FlightCommand, str]) -> bool:
        """
        Dispatch a command to the API, then apply it to the simulated flight

        Returns:
            True when the API accepted the command
        """
        try:
            command = FlightCommand(command)
        except ValueError:
            logger.warning("[%s] Unknown command %r not sent", flight_id, command)
            return False

        try:
            async with self._session() as session:
                async with session.post(
                    f"{self.api_url}/drones/{drone_id}/commands",
                    json={"commandType": command.value, "flightId": flight_id}
                ) as response:
                    response.raise_for_status()
        except asyncio.TimeoutError:
            logger.warning("[%s] Timeout sending %s", flight_id, command.value)
            return False
        except aiohttp.ClientError as e:
            logger.warning("[%s] Failed to send %s: %s", flight_id, command.value, e)
            return False

        self.simulator.execute_command(flight_id, command)
        return True
