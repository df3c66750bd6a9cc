"""
Deployment Phase State Machine
Tracks the operator workflow: idle -> configuring -> calculating -> result

Two layers:
1. reduce(): a pure reducer. Every change to a DeploymentState goes through it
   and an action that the current phase does not permit raises
   InvalidTransition, leaving the state untouched.
2. DeploymentSession: the single owner of the live state. It dispatches
   actions, runs the remote calls (calculation, approval, history) and feeds
   their completions back through the reducer. Each wipe advances a
   generation counter; completions captured under an older generation are
   dropped.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel, ValidationError

from models import (
    ApprovalRequest, ApprovalResponse, CalculationRequest, CalculationResponse,
    CalculationResult, ControlCenterStatus, ControllerConfig, ControllerPayload,
    Coordinate, DeploymentPhase, DeploymentState, DroneConfig, DronePayload,
    FlightStatus, LoginResponse, PlacementMode, SaveHistoryRequest,
    SaveHistoryResponse, SelectedDrone
)
from errors import (
    ConfigurationInvalid, InvalidTransition, PlacementError, RemoteCallError, RemoteRejected,
    RemoteTimeout
)
import config
import geometry
import placement

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    SET_AUTHENTICATED = "SET_AUTHENTICATED"
    SET_USER_LOCATION = "SET_USER_LOCATION"
    SELECT_DRONE = "SELECT_DRONE"
    SELECT_DRONE_WITH_CONFIG = "SELECT_DRONE_WITH_CONFIG"
    CLEAR_SELECTION = "CLEAR_SELECTION"
    SET_CONTROLLER_ALTITUDE = "SET_CONTROLLER_ALTITUDE"
    SET_CONTROLLER_LOCATION = "SET_CONTROLLER_LOCATION"
    SET_DRONE_ALTITUDE = "SET_DRONE_ALTITUDE"
    SET_DRONE_LOCATION = "SET_DRONE_LOCATION"
    SET_DRONE_AREA = "SET_DRONE_AREA"
    CLEAR_DRONE_AREA = "CLEAR_DRONE_AREA"
    ENTER_PLACEMENT = "ENTER_PLACEMENT"
    CANCEL_PLACEMENT = "CANCEL_PLACEMENT"
    SUBMIT_CONFIGURATION = "SUBMIT_CONFIGURATION"
    CALCULATION_SUCCEEDED = "CALCULATION_SUCCEEDED"
    CALCULATION_FAILED = "CALCULATION_FAILED"
    APPROVAL_REQUESTED = "APPROVAL_REQUESTED"
    APPROVAL_RESOLVED = "APPROVAL_RESOLVED"
    APPROVAL_FAILED = "APPROVAL_FAILED"
    LAUNCH = "LAUNCH"
    REPORT_ERROR = "REPORT_ERROR"
    SET_BOTTOM_SHEET_EXPANDED = "SET_BOTTOM_SHEET_EXPANDED"
    SET_CONFIG_FORM_OPEN = "SET_CONFIG_FORM_OPEN"
    RESET_DEPLOYMENT = "RESET_DEPLOYMENT"
    LOGOUT = "LOGOUT"


class Action(BaseModel):
    type: ActionType
    payload: Any = None


# ============================================================================
# CONFIGURATION HELPERS
# ============================================================================

def drone_config_with_area(drone_config: DroneConfig,
                           area: Optional[Sequence[Coordinate]]) -> DroneConfig:
    """
    Set the operational area and its derived location in one update

    An empty or missing area clears both.
    """
    points = geometry.open_ring(area or [])
    if not points:
        return DroneConfig(altitude=drone_config.altitude)

    return DroneConfig(
        altitude=drone_config.altitude,
        drawn_area=points,
        location=geometry.centroid(points)
    )


def validate_configuration(state: DeploymentState) -> Tuple[bool, str]:
    """
    Check that a configuration may be submitted for calculation

    Returns:
        (is_valid, error_message)
    """
    if state.selected_drone is None:
        return False, "No drone selected"
    if state.controller_config.altitude <= 0:
        return False, "Controller altitude must be positive"
    if state.controller_config.location is None:
        return False, "Controller location is not set"
    if state.drone_config.altitude <= 0:
        return False, "Drone altitude must be positive"

    area = state.drone_config.drawn_area or []
    if len(area) < config.MIN_AREA_POINTS:
        return False, f"Operational area needs at least {config.MIN_AREA_POINTS} points"

    return True, "Configuration is valid"


def build_calculation_request(state: DeploymentState) -> CalculationRequest:
    drone = state.selected_drone
    controller = state.controller_config
    drone_config = state.drone_config

    return CalculationRequest(
        drone_id=drone.id,
        drone_name=drone.name,
        controller=ControllerPayload(
            altitude=controller.altitude,
            lat=controller.location.lat,
            lng=controller.location.lng
        ),
        drone=DronePayload(
            altitude=drone_config.altitude,
            lat=drone_config.location.lat,
            lng=drone_config.location.lng,
            area=list(drone_config.drawn_area)
        )
    )


def control_center_decision(status: ControlCenterStatus) -> Optional[bool]:
    """Decision as recorded in history; None if never resolved"""
    if status == ControlCenterStatus.APPROVED:
        return True
    if status == ControlCenterStatus.NOT_APPROVED:
        return False
    return None


def build_history_record(state: DeploymentState, status: FlightStatus) -> SaveHistoryRequest:
    """Outcome record for the flight history store"""
    drone = state.selected_drone
    controller = state.controller_config
    drone_config = state.drone_config

    return SaveHistoryRequest(
        drone_id=drone.id,
        drone_name=drone.name,
        drone_type=drone.type,
        controller_altitude=controller.altitude,
        controller_lat=controller.location.lat,
        controller_lng=controller.location.lng,
        drone_altitude=drone_config.altitude,
        drone_lat=drone_config.location.lat,
        drone_lng=drone_config.location.lng,
        operational_area=list(drone_config.drawn_area or []),
        status=status,
        control_center_approved=control_center_decision(state.control_center_status)
    )


# ============================================================================
# REDUCER
# ============================================================================

def _require(state: DeploymentState, action: ActionType, *phases: DeploymentPhase):
    if state.phase not in phases:
        raise InvalidTransition(action.value, state.phase.value)


def _wipe(state: DeploymentState) -> DeploymentState:
    """Clear every deployment field, keeping auth, user location and sheet state"""
    wiped = state.model_copy(update={
        'selected_drone': None,
        'controller_config': ControllerConfig(),
        'drone_config': DroneConfig(),
        'phase': DeploymentPhase.IDLE,
        'placement_mode': PlacementMode.NONE,
        'calculation_result': None,
        'control_center_status': ControlCenterStatus.IDLE,
        'is_launched': False,
        'is_config_form_open': False,
        'error_message': None,
    })
    if wiped == state:
        # Nothing to invalidate; a repeated reset is a no-op
        return state
    return wiped.model_copy(update={'generation': state.generation + 1})


def _select_drone(state, payload):
    return state.model_copy(update={
        'selected_drone': payload,
        'phase': DeploymentPhase.CONFIGURING,
        'placement_mode': PlacementMode.NONE,
        'is_config_form_open': True,
        'is_bottom_sheet_expanded': False,
        'error_message': None,
    })


def _select_drone_with_config(state, payload):
    state = _select_drone(state, payload['drone'])
    update = {}

    controller_config = payload.get('controller_config')
    if controller_config is not None:
        update['controller_config'] = controller_config

    drone_config = payload.get('drone_config')
    if drone_config is not None:
        update['drone_config'] = drone_config_with_area(drone_config, drone_config.drawn_area)

    return state.model_copy(update=update)


def _set_drone_location(state, payload):
    if state.drone_config.drawn_area is not None:
        raise InvalidTransition(ActionType.SET_DRONE_LOCATION.value, state.phase.value,
                                "location is derived from the drawn area")
    drone_config = DroneConfig(altitude=state.drone_config.altitude, location=payload)
    return state.model_copy(update={
        'drone_config': drone_config,
        'placement_mode': PlacementMode.NONE,
    })


def _enter_placement(state, payload):
    target = placement.enter_placement(payload)
    if target == PlacementMode.DRONE and state.drone_config.drawn_area is not None:
        raise PlacementError("Drone location is derived from the drawn area; clear the area first")
    return state.model_copy(update={'placement_mode': target})


def _submit(state, payload):
    is_valid, message = validate_configuration(state)
    if not is_valid:
        return state.model_copy(update={
            'error_message': message,
            'is_config_form_open': True,
        })
    return state.model_copy(update={
        'phase': DeploymentPhase.CALCULATING,
        'placement_mode': PlacementMode.NONE,
        'is_config_form_open': False,
        'error_message': None,
    })


def _request_approval(state, payload):
    if state.control_center_status == ControlCenterStatus.SENDING:
        raise InvalidTransition(ActionType.APPROVAL_REQUESTED.value, state.phase.value,
                                "an approval request is already pending")
    if state.control_center_status != ControlCenterStatus.IDLE:
        raise InvalidTransition(ActionType.APPROVAL_REQUESTED.value, state.phase.value,
                                "the control center has already answered")
    return state.model_copy(update={'control_center_status': ControlCenterStatus.SENDING})


def _require_sending(state, action):
    if state.control_center_status != ControlCenterStatus.SENDING:
        raise InvalidTransition(action.value, state.phase.value,
                                "no approval request is pending")


def _resolve_approval(state, payload):
    _require_sending(state, ActionType.APPROVAL_RESOLVED)
    status = ControlCenterStatus.APPROVED if payload else ControlCenterStatus.NOT_APPROVED
    return state.model_copy(update={'control_center_status': status})


def _fail_approval(state, payload):
    _require_sending(state, ActionType.APPROVAL_FAILED)
    return state.model_copy(update={
        'control_center_status': ControlCenterStatus.NOT_APPROVED,
        'error_message': payload,
    })


def _launch(state, payload):
    if state.is_launched:
        raise InvalidTransition(ActionType.LAUNCH.value, state.phase.value, "already launched")
    return state.model_copy(update={'is_launched': True, 'error_message': None})


_EDITING = (DeploymentPhase.CONFIGURING,)
_ANY = tuple(DeploymentPhase)

# action -> (permitted phases, handler(state, payload))
_HANDLERS: Dict[ActionType, Tuple[Tuple[DeploymentPhase, ...], Callable]] = {
    ActionType.SET_AUTHENTICATED: (_ANY, lambda s, p: s.model_copy(update={
        'is_authenticated': p['is_authenticated'],
        'user_id': p['user_id'],
    })),
    ActionType.SET_USER_LOCATION: (_ANY, lambda s, p: s.model_copy(update={'user_location': p})),
    ActionType.SELECT_DRONE: ((DeploymentPhase.IDLE, DeploymentPhase.CONFIGURING), _select_drone),
    ActionType.SELECT_DRONE_WITH_CONFIG: ((DeploymentPhase.IDLE, DeploymentPhase.CONFIGURING),
                                          _select_drone_with_config),
    ActionType.CLEAR_SELECTION: ((DeploymentPhase.IDLE, DeploymentPhase.CONFIGURING),
                                 lambda s, p: s.model_copy(update={
                                     'selected_drone': None,
                                     'phase': DeploymentPhase.IDLE,
                                     'placement_mode': PlacementMode.NONE,
                                     'is_config_form_open': False,
                                 })),
    ActionType.SET_CONTROLLER_ALTITUDE: (_EDITING, lambda s, p: s.model_copy(update={
        'controller_config': s.controller_config.model_copy(update={'altitude': float(p)}),
    })),
    ActionType.SET_CONTROLLER_LOCATION: (_EDITING, lambda s, p: s.model_copy(update={
        'controller_config': s.controller_config.model_copy(update={'location': p}),
        'placement_mode': PlacementMode.NONE,
    })),
    ActionType.SET_DRONE_ALTITUDE: (_EDITING, lambda s, p: s.model_copy(update={
        'drone_config': s.drone_config.model_copy(update={'altitude': float(p)}),
    })),
    ActionType.SET_DRONE_LOCATION: (_EDITING, _set_drone_location),
    ActionType.SET_DRONE_AREA: (_EDITING, lambda s, p: s.model_copy(update={
        'drone_config': drone_config_with_area(s.drone_config, p),
        'placement_mode': PlacementMode.NONE,
    })),
    ActionType.CLEAR_DRONE_AREA: (_EDITING, lambda s, p: s.model_copy(update={
        'drone_config': drone_config_with_area(s.drone_config, None),
    })),
    ActionType.ENTER_PLACEMENT: (_EDITING, _enter_placement),
    ActionType.CANCEL_PLACEMENT: (_ANY, lambda s, p: s.model_copy(update={
        'placement_mode': placement.cancel_placement(s.placement_mode),
    })),
    ActionType.SUBMIT_CONFIGURATION: (_EDITING, _submit),
    ActionType.CALCULATION_SUCCEEDED: ((DeploymentPhase.CALCULATING,), lambda s, p: s.model_copy(update={
        'calculation_result': p,
        'phase': DeploymentPhase.RESULT,
    })),
    ActionType.CALCULATION_FAILED: ((DeploymentPhase.CALCULATING,), lambda s, p: s.model_copy(update={
        'phase': DeploymentPhase.CONFIGURING,
        'is_config_form_open': True,
        'error_message': p,
    })),
    ActionType.APPROVAL_REQUESTED: ((DeploymentPhase.RESULT,), _request_approval),
    ActionType.APPROVAL_RESOLVED: ((DeploymentPhase.RESULT,), _resolve_approval),
    ActionType.APPROVAL_FAILED: ((DeploymentPhase.RESULT,), _fail_approval),
    ActionType.LAUNCH: ((DeploymentPhase.RESULT,), _launch),
    ActionType.REPORT_ERROR: (_ANY, lambda s, p: s.model_copy(update={'error_message': p})),
    ActionType.SET_BOTTOM_SHEET_EXPANDED: (_ANY, lambda s, p: s.model_copy(update={
        'is_bottom_sheet_expanded': bool(p),
    })),
    ActionType.SET_CONFIG_FORM_OPEN: (_ANY, lambda s, p: s.model_copy(update={
        'is_config_form_open': bool(p),
    })),
    ActionType.RESET_DEPLOYMENT: (_ANY, lambda s, p: _wipe(s)),
    ActionType.LOGOUT: (_ANY, lambda s, p: DeploymentState(generation=s.generation + 1)),
}


def reduce(state: DeploymentState, action: Action) -> DeploymentState:
    """
    Apply one action

    Args:
        state: Current session state
        action: Action to apply

    Returns:
        The next state (the same object when nothing changed)

    Raises:
        InvalidTransition: the action is not permitted in the current phase
    """
    phases, handler = _HANDLERS[action.type]
    _require(state, action.type, *phases)
    return handler(state, action.payload)


# ============================================================================
# SESSION
# ============================================================================

class DeploymentBackend(Protocol):
    """Remote collaborators consumed by the session"""

    async def login(self, serial_number: str) -> LoginResponse: ...

    async def calculate(self, request: CalculationRequest) -> CalculationResponse: ...

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse: ...

    async def save_to_history(self, record: SaveHistoryRequest) -> SaveHistoryResponse: ...


Listener = Callable[[DeploymentState], None]


class DeploymentSession:
    """
    Owner of the live deployment state

    Map adapters and renderers read `state` and subscribe to changes; only
    the session writes it.
    """

    def __init__(self, backend: DeploymentBackend,
                 timeout: float = config.REMOTE_CALL_TIMEOUT,
                 state: Optional[DeploymentState] = None):
        self.backend = backend
        self.timeout = timeout
        self._state = state or DeploymentState()
        self._listeners: List[Listener] = []
        self._outcome_lock: Optional[asyncio.Lock] = None

    @property
    def state(self) -> DeploymentState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a callable that removes it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action_type: ActionType, payload: Any = None) -> DeploymentState:
        previous = self._state
        self._state = reduce(previous, Action(type=action_type, payload=payload))

        if self._state is not previous:
            if self._state.phase != previous.phase:
                logger.info("Deployment phase %s -> %s (%s)",
                            previous.phase.value, self._state.phase.value, action_type.value)
            for listener in list(self._listeners):
                listener(self._state)

        return self._state

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_user_location(self, location: Coordinate) -> DeploymentState:
        return self.dispatch(ActionType.SET_USER_LOCATION, location)

    def select_drone(self, drone: SelectedDrone) -> DeploymentState:
        return self.dispatch(ActionType.SELECT_DRONE, drone)

    def select_drone_with_config(self, drone: SelectedDrone,
                                 controller_config: Optional[ControllerConfig] = None,
                                 drone_config: Optional[DroneConfig] = None) -> DeploymentState:
        """Select a pinned drone and pre-fill its saved configuration"""
        return self.dispatch(ActionType.SELECT_DRONE_WITH_CONFIG, {
            'drone': drone,
            'controller_config': controller_config,
            'drone_config': drone_config,
        })

    def clear_selection(self) -> DeploymentState:
        return self.dispatch(ActionType.CLEAR_SELECTION)

    def set_controller_altitude(self, altitude: float) -> DeploymentState:
        return self.dispatch(ActionType.SET_CONTROLLER_ALTITUDE, altitude)

    def set_controller_location(self, location: Coordinate) -> DeploymentState:
        return self.dispatch(ActionType.SET_CONTROLLER_LOCATION, location)

    def use_current_location_for_controller(self) -> DeploymentState:
        """Place the controller at the operator's own position"""
        location = self._state.user_location or Coordinate(**config.DEFAULT_USER_LOCATION)
        return self.set_controller_location(location)

    def set_drone_altitude(self, altitude: float) -> DeploymentState:
        return self.dispatch(ActionType.SET_DRONE_ALTITUDE, altitude)

    def set_drone_area(self, area: Sequence[Coordinate]) -> DeploymentState:
        return self.dispatch(ActionType.SET_DRONE_AREA, list(area))

    def clear_drone_area(self) -> DeploymentState:
        return self.dispatch(ActionType.CLEAR_DRONE_AREA)

    def enter_placement(self, target: PlacementMode) -> DeploymentState:
        return self.dispatch(ActionType.ENTER_PLACEMENT, target)

    def cancel_placement(self) -> DeploymentState:
        return self.dispatch(ActionType.CANCEL_PLACEMENT)

    def set_bottom_sheet_expanded(self, expanded: bool) -> DeploymentState:
        return self.dispatch(ActionType.SET_BOTTOM_SHEET_EXPANDED, expanded)

    # ------------------------------------------------------------------
    # Remote workflow
    # ------------------------------------------------------------------

    async def _call(self, awaitable, label: str):
        """Await a backend call; every failure surfaces as a RemoteCallError"""
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError:
            raise RemoteTimeout(f"{label} timed out after {self.timeout:g}s")
        except ValidationError as e:
            raise RemoteRejected(f"Malformed {label} response ({e.error_count()} invalid fields)")

    def _is_stale(self, generation: int, label: str) -> bool:
        if self._state.generation != generation:
            logger.warning("Dropping stale %s response (generation %d, session at %d)",
                           label, generation, self._state.generation)
            return True
        return False

    async def login(self, serial_number: str) -> LoginResponse:
        response = await self._call(self.backend.login(serial_number), "login")
        self.dispatch(ActionType.SET_AUTHENTICATED, {
            'is_authenticated': True,
            'user_id': str(response.user.id),
        })
        logger.info("Operator %s logged in", response.user.name)
        return response

    async def submit(self) -> DeploymentState:
        """
        Submit the configuration and wait for the calculation

        Raises:
            ConfigurationInvalid: local validation failed; the form stays open
            InvalidTransition: not in the configuring phase

        Returns:
            The resulting state: `result` on success, `configuring` with an
            error message on remote failure
        """
        state = self.dispatch(ActionType.SUBMIT_CONFIGURATION)
        if state.phase != DeploymentPhase.CALCULATING:
            raise ConfigurationInvalid(state.error_message)

        generation = state.generation
        request = build_calculation_request(state)
        logger.info("Requesting calculation for %s (%d area points)",
                    request.drone_name, len(request.drone.area))

        try:
            response = await self._call(self.backend.calculate(request), "calculation")
        except RemoteCallError as e:
            if not self._is_stale(generation, "calculation"):
                logger.error("Calculation failed: %s", e)
                self.dispatch(ActionType.CALCULATION_FAILED, str(e))
            return self._state

        if self._is_stale(generation, "calculation"):
            return self._state
        if not response.success:
            logger.error("Calculation reported failure for %s", request.drone_name)
            self.dispatch(ActionType.CALCULATION_FAILED, "Calculation was not successful")
        else:
            self.dispatch(ActionType.CALCULATION_SUCCEEDED, CalculationResult(
                image_data=response.image_data,
                calculated_at=response.calculated_at
            ))
        return self._state

    async def request_approval(self) -> DeploymentState:
        """Ask the control center to approve the launch (once per session)"""
        state = self.dispatch(ActionType.APPROVAL_REQUESTED)
        generation = state.generation
        drone = state.selected_drone

        try:
            response = await self._call(
                self.backend.request_approval(ApprovalRequest(drone_id=drone.id, drone_name=drone.name)),
                "approval"
            )
        except RemoteCallError as e:
            if not self._is_stale(generation, "approval"):
                logger.error("Approval request failed: %s", e)
                self.dispatch(ActionType.APPROVAL_FAILED, str(e))
            return self._state

        if not self._is_stale(generation, "approval"):
            logger.info("Control center: %s", response.message)
            self.dispatch(ActionType.APPROVAL_RESOLVED, response.approved)
        return self._state

    def _outcome_guard(self) -> asyncio.Lock:
        # Created lazily, inside the running event loop
        if self._outcome_lock is None:
            self._outcome_lock = asyncio.Lock()
        return self._outcome_lock

    def _require_result(self, action: ActionType, launched: bool):
        state = self._state
        if state.phase != DeploymentPhase.RESULT:
            raise InvalidTransition(action.value, state.phase.value)
        if state.is_launched != launched:
            reason = "drone is already launched" if state.is_launched else "drone is not launched"
            raise InvalidTransition(action.value, state.phase.value, reason)

    async def _persist(self, status: FlightStatus) -> Optional[SaveHistoryResponse]:
        """Save the outcome; returns None when the session moved on meanwhile"""
        generation = self._state.generation
        record = build_history_record(self._state, status)

        try:
            response = await self._call(self.backend.save_to_history(record), "history")
        except RemoteCallError as e:
            logger.error("Could not save flight history: %s", e)
            if not self._is_stale(generation, "history"):
                self.dispatch(ActionType.REPORT_ERROR, f"Could not save flight history: {e}")
            raise

        logger.info("Flight %d saved as %s", response.flight_id, status.value)
        if self._is_stale(generation, "history"):
            return None
        return response

    async def launch(self) -> DeploymentState:
        """Record a Launched outcome, then mark the session launched"""
        async with self._outcome_guard():
            self._require_result(ActionType.LAUNCH, launched=False)
            if await self._persist(FlightStatus.LAUNCHED) is not None:
                self.dispatch(ActionType.LAUNCH)
        return self._state

    async def cancel(self) -> DeploymentState:
        """Record a Not Launched outcome, then wipe the session"""
        async with self._outcome_guard():
            self._require_result(ActionType.RESET_DEPLOYMENT, launched=False)
            if await self._persist(FlightStatus.NOT_LAUNCHED) is not None:
                self.dispatch(ActionType.RESET_DEPLOYMENT)
        return self._state

    def end_flight(self) -> DeploymentState:
        """Finish a launched flight; history was written at launch"""
        self._require_result(ActionType.RESET_DEPLOYMENT, launched=True)
        return self.dispatch(ActionType.RESET_DEPLOYMENT)

    def close_form(self) -> DeploymentState:
        return self.dispatch(ActionType.RESET_DEPLOYMENT)

    def reset(self) -> DeploymentState:
        return self.dispatch(ActionType.RESET_DEPLOYMENT)

    def logout(self) -> DeploymentState:
        return self.dispatch(ActionType.LOGOUT)
