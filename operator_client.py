"""
Operator Client
aiohttp client for the deployment planner backend, and a scripted operator
run that plans, calculates, and launches one deployment end to end
"""

import asyncio
import logging
from typing import Any, List, Optional, Type, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from models import (
    ApprovalRequest, ApprovalResponse, CalculationRequest, CalculationResponse,
    ControlCenterStatus, Coordinate, DeploymentPhase, DeploymentState, Drone,
    FlightHistoryEntry, LoginResponse, PinConfig, PinnedDrone, PinRequest, PinResponse,
    PlacementMode, RecentlyUsedDrone, RecentlyUsedRequest, SaveHistoryRequest,
    SaveHistoryResponse, SelectedDrone, VerifyResponse
)
from errors import RemoteRejected, RemoteTimeout, RemoteUnavailable
from deployment import DeploymentSession
from map_adapter import MapInteractionAdapter
from map_canvas import MapCanvas
import config
import geometry

logger = logging.getLogger(__name__)

ModelT = TypeVar('ModelT', bound=BaseModel)


class BackendClient:
    """
    Async client for the backend API

    Use as an async context manager. Every request carries the caller's
    identity in the X-User-Id header.
    """

    def __init__(self, api_url: str, user_id: str = config.DEFAULT_USER_ID,
                 timeout: float = config.REMOTE_CALL_TIMEOUT):
        self.api_url = api_url.rstrip('/')
        self.user_id = user_id
        self.token: Optional[str] = None
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    @staticmethod
    async def _error_detail(response: aiohttp.ClientResponse) -> str:
        try:
            body = await response.json()
        except (aiohttp.ContentTypeError, ValueError):
            return (await response.text()) or response.reason or "Request failed"

        detail = body.get('detail', body) if isinstance(body, dict) else body
        return detail if isinstance(detail, str) else str(detail)

    async def _request(self, method: str, path: str, payload: Any = None,
                       params: Optional[dict] = None) -> Any:
        if self._session is None:
            raise RuntimeError("BackendClient must be used as an async context manager")

        headers = {'X-User-Id': self.user_id}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"

        try:
            async with self._session.request(
                method, f"{self.api_url}{path}",
                json=payload, params=params, headers=headers
            ) as response:
                if response.status >= 400:
                    detail = await self._error_detail(response)
                    logger.error("%s %s failed: %s %s", method, path, response.status, detail)
                    raise RemoteRejected(detail, response.status)
                return await response.json()
        except asyncio.TimeoutError:
            raise RemoteTimeout(f"{method} {path} timed out")
        except aiohttp.ClientError as e:
            raise RemoteUnavailable(f"{method} {path} failed: {e}")

    @staticmethod
    def _body(model) -> dict:
        return model.model_dump(by_alias=True, mode='json')

    @staticmethod
    def _parse(model: Type[ModelT], data: Any) -> ModelT:
        """Validate a 2xx body; a malformed one is a rejection"""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error("Malformed %s from backend: %s", model.__name__, e)
            raise RemoteRejected(f"Malformed {model.__name__} ({e.error_count()} invalid fields)")

    @classmethod
    def _parse_many(cls, model: Type[ModelT], data: Any) -> List[ModelT]:
        if not isinstance(data, list):
            raise RemoteRejected(f"Expected a list of {model.__name__}")
        return [cls._parse(model, item) for item in data]

    # ---- Auth ---------------------------------------------------------------

    async def login(self, serial_number: str) -> LoginResponse:
        data = await self._request('POST', '/api/auth/login', {'serialNumber': serial_number})
        response = self._parse(LoginResponse, data)
        self.user_id = str(response.user.id)
        self.token = response.token
        return response

    async def verify(self, token: str) -> VerifyResponse:
        data = await self._request('GET', '/api/auth/verify', params={'token': token})
        return self._parse(VerifyResponse, data)

    # ---- Drone directory ----------------------------------------------------

    async def search_drones(self, query: str) -> List[Drone]:
        data = await self._request('GET', '/api/drones/search', params={'query': query})
        return self._parse_many(Drone, data)

    async def list_drones(self) -> List[Drone]:
        data = await self._request('GET', '/api/drones')
        return self._parse_many(Drone, data)

    async def pinned_drones(self) -> List[PinnedDrone]:
        data = await self._request('GET', '/api/drones/pinned')
        return self._parse_many(PinnedDrone, data)

    async def pin_drone(self, drone_id: int, drone_name: str,
                        pin_config: Optional[PinConfig] = None) -> PinResponse:
        request = PinRequest(drone_id=drone_id, drone_name=drone_name, config=pin_config)
        data = await self._request('POST', '/api/drones/pinned', self._body(request))
        return self._parse(PinResponse, data)

    async def unpin_drone(self, drone_id: int):
        await self._request('DELETE', f'/api/drones/pinned/{drone_id}')

    async def recent_drones(self) -> List[RecentlyUsedDrone]:
        data = await self._request('GET', '/api/drones/recent')
        return self._parse_many(RecentlyUsedDrone, data)

    async def mark_recently_used(self, drone_id: int, drone_name: str):
        request = RecentlyUsedRequest(drone_id=drone_id, drone_name=drone_name)
        await self._request('POST', '/api/drones/recent', self._body(request))

    # ---- Flight -------------------------------------------------------------

    async def calculate(self, request: CalculationRequest) -> CalculationResponse:
        data = await self._request('POST', '/api/flight/calculate', self._body(request))
        return self._parse(CalculationResponse, data)

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        data = await self._request('POST', '/api/flight/approval', self._body(request))
        return self._parse(ApprovalResponse, data)

    async def save_to_history(self, record: SaveHistoryRequest) -> SaveHistoryResponse:
        data = await self._request('POST', '/api/flight/history', self._body(record))
        return self._parse(SaveHistoryResponse, data)

    async def history(self) -> List[FlightHistoryEntry]:
        data = await self._request('GET', '/api/flight/history')
        return self._parse_many(FlightHistoryEntry, data)


def area_drawing(center: Coordinate, radius_meters: float, corners: int = 6) -> dict:
    """GeoJSON polygon the way Leaflet.draw reports a finished shape"""
    ring = geometry.circle_polygon(center, radius_meters, segments=corners)
    return {
        'type': 'Feature',
        'properties': {},
        'geometry': {
            'type': 'Polygon',
            'coordinates': [[[p.lng, p.lat] for p in ring]],
        },
    }


async def run_operator_demo(api_url: str, output_path: str = "deployment_map.html",
                            serial_number: str = config.MOCK_USERS[0]['serial_number'],
                            drone_query: str = "Alpha") -> DeploymentState:
    """
    Plan one deployment against a running backend

    Logs in, selects a drone, places the controller with a map click, draws
    the operational area, calculates, asks for approval, and launches (or
    cancels when denied). The map is saved as HTML before the session ends.
    """
    async with BackendClient(api_url) as client:
        session = DeploymentSession(client)
        canvas = MapCanvas()
        adapter = MapInteractionAdapter(session, canvas)

        await session.login(serial_number)
        user_location = Coordinate(**config.DEFAULT_USER_LOCATION)
        session.set_user_location(user_location)

        drones = await client.search_drones(drone_query)
        if not drones:
            raise ValueError(f"No drone matches {drone_query!r}")
        drone = drones[0]
        session.select_drone(SelectedDrone(
            id=drone.id, name=drone.name, type=drone.type, battery_level=drone.battery_level
        ))
        await client.mark_recently_used(drone.id, drone.name)

        session.set_controller_altitude(config.DEFAULT_CONTROLLER_ALTITUDE)
        session.set_drone_altitude(config.DEFAULT_DRONE_ALTITUDE)

        adapter.begin_placement(PlacementMode.CONTROLLER)
        adapter.on_click(*canvas.project(user_location))

        adapter.begin_placement(PlacementMode.DRAWING)
        adapter.on_draw_complete(area_drawing(user_location, config.DEFAULT_OPERATIONAL_RADIUS))

        state = await session.submit()
        if state.phase != DeploymentPhase.RESULT:
            logger.error("Calculation did not complete: %s", state.error_message)
            adapter.close()
            return state

        state = await session.request_approval()
        logger.info("Control center status: %s", state.control_center_status.value)
        canvas.save(output_path)

        if state.control_center_status == ControlCenterStatus.APPROVED:
            await session.launch()
            logger.info("Launched %s", drone.name)
            session.end_flight()
        else:
            await session.cancel()
            logger.info("Deployment of %s cancelled", drone.name)

        history = await client.history()
        logger.info("%d launched flights on record", len(history))

        adapter.close()
        return session.state


async def main():
    """Main entry point"""
    api_url = f"http://{config.API_HOST}:{config.API_PORT}"
    logger.info("Planning a deployment against %s", api_url)
    await run_operator_demo(api_url)


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL)
    asyncio.run(main())
