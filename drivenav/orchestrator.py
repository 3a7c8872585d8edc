"""Navigation session orchestrator.

Sequences waypoint selection, route calculation, source switching and the
rerouting/traffic side effects into one navigation session. Every public
command is posted to the event queue, as is every collaborator callback, so
the session has a single writer.
"""

import random
import time
from functools import partial
from typing import Callable, Optional

from .config import CONFIG
from .dispatch import EventQueue
from .errors import RoutingError
from .event_router import EventRouter
from .geo import random_coordinates_around
from .guidance import CameraBehavior
from .logger import Logger
from .models import (
    Coordinates,
    ErrorDialog,
    NavigationSession,
    Route,
    RouteConfirmation,
    SessionState,
    Waypoint,
)
from .observable import Signal
from .positioning import LocationAccuracy
from .reroute import RerouteScheduler
from .routing import RouteRequestService
from .timeutils import format_length, format_time
from .traffic import TrafficRefresher

USAGE_HINT = "Long press to set start/destination or use random ones."


class NavigationOrchestrator:
    """Owns the navigation session and its state machine.

    States: IDLE -> ROUTE_PROPOSED -> NAVIGATING -> STOPPED. Dialogs,
    messages, camera tracking and state are published through Signals.
    """

    def __init__(self, guidance, device_source, simulated_source, routing,
                 voice=None, logger: Optional[Logger] = None,
                 events: Optional[EventQueue] = None,
                 map_center: Optional[Coordinates] = None,
                 rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.monotonic,
                 prefetcher=None):
        self.guidance = guidance
        self.device_source = device_source
        self.simulated_source = simulated_source
        self.voice = voice
        self.logger = logger
        self.events = events or EventQueue(logger)
        self.map_center = map_center or Coordinates(*CONFIG["default_map_center"])
        self.rng = rng or random.Random()
        self.clock = clock
        self.prefetcher = prefetcher

        self.session = NavigationSession()
        self.dialog = Signal(None)
        self.message = Signal("")
        self.camera_tracking = Signal(self.session.camera_tracking_enabled)
        self.state = Signal(self.session.state)
        self.better_route: Optional[Route] = None

        self.route_requests = RouteRequestService(routing, logger=logger)
        self.reroute = RerouteScheduler(
            routing,
            on_better_route=self._on_better_route,
            on_error=self._on_reroute_error,
            logger=logger,
            clock=clock,
            post=self.events.post,
        )
        self.traffic = TrafficRefresher(routing, guidance, logger=logger, clock=clock,
                                        post=self.events.post)
        self.traffic.on_refresh = self._on_traffic_refresh
        self.router = EventRouter(
            guidance,
            self.message,
            speak=voice.speak if voice else None,
            logger=logger,
            reroute=self.reroute,
            traffic=self.traffic,
        )
        self.router.on_destination_reached = self._on_destination_reached
        self.router.on_deviation = self._on_deviation

        self._location_listener = self.events.bind(self.guidance.on_location)
        self._set_start_next = True
        self._request_generation = 0
        self._attached = False

    # ------------------------------------------------------------------
    # Commands (thread-safe: each is posted to the event queue)
    # ------------------------------------------------------------------

    def attach(self):
        self.events.post(self._attach)

    def detach(self):
        """Tear the session down. Blocks until the queue has drained."""
        self.events.post(self._detach)
        if self.events.is_running:
            self.events.stop()
        else:
            self.events.run_pending()
            self.events.stop()

    def long_press(self, coordinates: Coordinates):
        self.events.post(self._long_press, coordinates)

    def set_map_center(self, coordinates: Coordinates):
        self.events.post(self._set_map_center, coordinates)

    def request_route(self, is_simulated: bool):
        self.events.post(self._request_route, is_simulated)

    def confirm_navigation(self):
        self.events.post(self._confirm_navigation)

    def dismiss_dialog(self):
        self.events.post(self._dismiss_dialog)

    def clear_map(self):
        self.events.post(self._clear_map)

    def enable_camera_tracking(self):
        self.events.post(self._set_camera_tracking, True)

    def disable_camera_tracking(self):
        self.events.post(self._set_camera_tracking, False)

    def status(self) -> dict:
        status = self.session.to_dict()
        status["map_center"] = self.map_center.to_dict()
        status["message"] = self.message.value
        return status

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _attach(self):
        if self._attached:
            return
        self._attached = True
        self.guidance.set_event_listener(self.router.handle)
        self.device_source.status_listener = self.events.bind(self._on_positioning_status)
        self.device_source.start(self._location_listener, LocationAccuracy.NAVIGATION)
        self._apply_camera_behavior()
        self._set_message("Initialization completed.")
        self._set_message(USAGE_HINT)

    def _detach(self):
        self._request_generation += 1
        self.reroute.stop()
        self.traffic.stop()
        if self.prefetcher:
            self.prefetcher.stop_prefetch_around_route()
        self.guidance.set_event_listener(None)
        self.guidance.set_route(None)
        self.simulated_source.stop()
        self.device_source.stop()
        self.device_source.status_listener = None
        if self.voice:
            self.voice.stop()
        self._attached = False
        self._log("Session detached")

    # ------------------------------------------------------------------
    # Waypoints and route calculation
    # ------------------------------------------------------------------

    def _long_press(self, coordinates: Coordinates):
        if self._set_start_next:
            self.session.start_waypoint = Waypoint(coordinates=coordinates)
            self._set_message("Starting point has been set.")
        else:
            self.session.destination_waypoint = Waypoint(coordinates=coordinates)
            self._set_message("Destination has been set.")
        self._set_start_next = not self._set_start_next

    def _set_map_center(self, coordinates: Coordinates):
        self.map_center = coordinates

    def _resolve_waypoints(self, is_simulated: bool) -> bool:
        """Fill in start and destination. Returns False if no device fix is available."""
        if not is_simulated:
            location = self.device_source.last_known_location()
            if location is None:
                self.dialog.set(ErrorDialog("Error", "No GPS location found."))
                return False
            # Navigation starts where the device is, heading the way it is moving
            self.session.start_waypoint = Waypoint(coordinates=location.coordinates,
                                                   heading=location.bearing)
            self.map_center = location.coordinates

        spread = CONFIG["random_waypoint_spread"]
        if self.session.start_waypoint is None:
            self.session.start_waypoint = Waypoint(
                coordinates=random_coordinates_around(self.map_center, spread, self.rng))
        if self.session.destination_waypoint is None:
            self.session.destination_waypoint = Waypoint(
                coordinates=random_coordinates_around(self.map_center, spread, self.rng))
        return True

    def _request_route(self, is_simulated: bool):
        if not self._resolve_waypoints(is_simulated):
            return

        self._request_generation += 1
        if self.session.state == SessionState.NAVIGATING:
            self._stop_navigation()
        self.session.active_route = None
        self.dialog.set(None)
        self._set_state(SessionState.IDLE)

        callback = self.events.bind(partial(self._on_route_calculated,
                                            self._request_generation, is_simulated))
        self.route_requests.calculate_route(self.session.start_waypoint,
                                            self.session.destination_waypoint, callback)

    def _on_route_calculated(self, generation: int, is_simulated: bool,
                             error: Optional[RoutingError], route: Optional[Route]):
        if generation != self._request_generation:
            self._log("Discarding outdated route result", {"generation": generation})
            return

        if error is not None:
            self._log("Route calculation failed", {"error": error.name})
            self.dialog.set(ErrorDialog("Error while calculating a route:", error.name))
            self._set_state(SessionState.IDLE)
            return

        self.session.active_route = route
        self.session.is_simulated = is_simulated
        summary = (f"Travel Time: {format_time(route.duration_s)}, "
                   f"Length: {format_length(route.length_m)}")
        self._log("Route calculated", {"duration": route.duration_s, "length": route.length_m})
        self._set_state(SessionState.ROUTE_PROPOSED)
        self.dialog.set(RouteConfirmation(route=route, is_simulated=is_simulated, summary=summary))

    def _dismiss_dialog(self):
        if self.session.state == SessionState.ROUTE_PROPOSED:
            self.session.active_route = None
            self._set_state(SessionState.IDLE)
        self.dialog.set(None)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _confirm_navigation(self):
        if self.session.state != SessionState.ROUTE_PROPOSED:
            self._log("No proposed route to navigate", {"state": self.session.state.value})
            return
        route = self.session.active_route

        self.reroute.start(route, [self.session.start_waypoint, self.session.destination_waypoint])
        self.traffic.stop()
        self.session.last_traffic_refresh_timestamp = None
        self.better_route = None

        if self.prefetcher:
            self.prefetcher.prefetch_around_location(route.departure, CONFIG["prefetch_radius"])
            self.prefetcher.prefetch_around_route(self.guidance)

        self.router.reset()
        self.guidance.set_route(route)
        self._apply_camera_behavior()

        if self.session.is_simulated:
            self.device_source.stop()
            self.simulated_source.start(self._location_listener, route)
            self._set_message("Starting simulated navigation.")
        else:
            self.simulated_source.stop()
            self.device_source.start(self._location_listener, LocationAccuracy.NAVIGATION)
            self._set_message("Starting navigation.")

        self.dialog.set(None)
        self._set_state(SessionState.NAVIGATING)

    def _stop_navigation(self, announce: bool = True):
        """Back to tracking mode on device positioning"""
        self.reroute.stop()
        self.traffic.stop()
        if self.prefetcher:
            self.prefetcher.stop_prefetch_around_route()
        self.guidance.set_route(None)
        self.router.reset()
        self.simulated_source.stop()
        self.device_source.start(self._location_listener, LocationAccuracy.NAVIGATION)
        self._apply_camera_behavior()
        if announce:
            self._set_message("Tracking device's location.")

    def _clear_map(self):
        self._request_generation += 1
        self._stop_navigation()
        self.session.active_route = None
        self.session.start_waypoint = None
        self.session.destination_waypoint = None
        self.better_route = None
        self._set_start_next = True
        self.dialog.set(None)
        self._set_state(SessionState.IDLE)

    def _on_destination_reached(self):
        if self.session.state != SessionState.NAVIGATING:
            return
        self._stop_navigation(announce=False)
        self._set_state(SessionState.STOPPED)

    def _on_deviation(self, distance_m: float):
        self._log("Route deviation confirmed", {"distance": round(distance_m, 1)})

    def _on_better_route(self, route: Route, eta_difference_s: float, distance_difference_m: float):
        self.better_route = route
        self.router.on_better_route(route, eta_difference_s, distance_difference_m)

    def _on_reroute_error(self, error: RoutingError):
        self.router.on_reroute_error(error)

    def _on_traffic_refresh(self, timestamp: float):
        self.session.last_traffic_refresh_timestamp = timestamp

    def _on_positioning_status(self, status: str):
        self._log("Positioning status", {"status": status})

    # ------------------------------------------------------------------
    # Camera
    # ------------------------------------------------------------------

    def _set_camera_tracking(self, enabled: bool):
        self.session.camera_tracking_enabled = enabled
        self._apply_camera_behavior()
        self.camera_tracking.set(enabled)

    def _apply_camera_behavior(self):
        if self.session.camera_tracking_enabled:
            self.guidance.set_camera_behavior(CameraBehavior.DYNAMIC)
        else:
            self.guidance.set_camera_behavior(None)

    # ------------------------------------------------------------------

    def _set_state(self, state: SessionState):
        if state != self.session.state:
            self._log("Session state", {"from": self.session.state.value, "to": state.value})
        self.session.state = state
        self.state.set(state)

    def _set_message(self, text: str):
        self._log(text)
        self.message.set(text)

    def _log(self, message: str, data: Optional[dict] = None):
        if self.logger:
            self.logger.log(message, data)
