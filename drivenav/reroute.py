"""Periodic search for a faster route while navigating."""

import time
from typing import Callable, Optional, Sequence

from .config import CONFIG
from .errors import RoutingError
from .logger import Logger
from .models import Route, SectionProgress, Waypoint
from .routing import RouteOptions


def _call_now(func, *args):
    func(*args)


class RerouteScheduler:
    """Polls the routing service for a better route than the active one.

    Polls are driven by location updates and gated by `poll_interval`.
    A candidate is reported when it saves at least
    min(min_time_difference_s, min_time_difference_pct * remaining duration).
    The active route is never replaced here.
    """

    def __init__(self, routing,
                 on_better_route: Callable[[Route, float, float], None],
                 on_error: Optional[Callable[[RoutingError], None]] = None,
                 logger: Optional[Logger] = None,
                 poll_interval: Optional[float] = None,
                 min_time_difference_s: Optional[float] = None,
                 min_time_difference_pct: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic,
                 post: Callable = _call_now):
        self.routing = routing
        self.on_better_route = on_better_route
        self.on_error = on_error
        self.logger = logger
        self.poll_interval = poll_interval if poll_interval is not None else CONFIG["reroute_poll_interval"]
        self.min_time_difference_s = (min_time_difference_s if min_time_difference_s is not None
                                      else CONFIG["reroute_min_time_difference"])
        self.min_time_difference_pct = (min_time_difference_pct if min_time_difference_pct is not None
                                        else CONFIG["reroute_min_time_difference_pct"])
        self.clock = clock
        self.post = post
        self.route: Optional[Route] = None
        self.waypoints: list[Waypoint] = []
        self.last_poll = 0.0
        self.is_active = False
        self._generation = 0

    def start(self, route: Route, waypoints: Sequence[Waypoint]):
        """Begin polling for the given route, replacing any previous run"""
        if route.handle is None:
            raise ValueError("Dynamic rerouting requires a route with a route handle")
        self._generation += 1
        self.route = route
        self.waypoints = list(waypoints)
        self.last_poll = self.clock()
        self.is_active = True
        self._log("Reroute polling started", {
            "poll_interval": self.poll_interval,
            "min_time_difference": self.min_time_difference_s,
            "min_time_difference_pct": self.min_time_difference_pct,
        })

    def stop(self):
        if not self.is_active:
            return
        self._generation += 1
        self.is_active = False
        self.route = None
        self.waypoints = []
        self._log("Reroute polling stopped")

    def update_current_location(self, location, section_index: int,
                                section_progress: Optional[Sequence[SectionProgress]] = None) -> bool:
        """Report the map-matched location. Returns True if a poll was issued."""
        if not self.is_active:
            return False
        now = self.clock()
        if now - self.last_poll < self.poll_interval:
            return False
        self.last_poll = now

        route = self.route
        if section_progress:
            remaining_duration = section_progress[-1].remaining_duration_s
            remaining_length = section_progress[-1].remaining_distance_m
        else:
            remaining_duration = route.duration_s
            remaining_length = route.length_m

        origin = Waypoint(coordinates=location.coordinates, heading=location.bearing)
        remaining = self.waypoints[section_index + 1:] or self.waypoints[-1:]
        generation = self._generation

        def on_routes(error, routes):
            self.post(self._on_result, generation, remaining_duration, remaining_length, error, routes)

        self._log("Polling for a better route", {
            "location": location.coordinates.to_dict(),
            "remaining_duration": remaining_duration,
        })
        self.routing.calculate_route([origin] + remaining, RouteOptions(), on_routes)
        return True

    def is_better(self, eta_gain: float, remaining_duration: float) -> bool:
        threshold = min(self.min_time_difference_s, self.min_time_difference_pct * remaining_duration)
        return eta_gain > 0 and eta_gain >= threshold

    def _on_result(self, generation: int, remaining_duration: float, remaining_length: float,
                   error: Optional[RoutingError], routes: Optional[list[Route]]):
        if generation != self._generation or not self.is_active:
            return
        if error is not None or not routes:
            error = error or RoutingError.NO_ROUTE_FOUND
            self._log("Reroute poll failed", {"error": error.name})
            if self.on_error:
                self.on_error(error)
            return

        candidate = routes[0]
        eta_gain = remaining_duration - candidate.duration_s
        distance_difference = remaining_length - candidate.length_m
        if self.is_better(eta_gain, remaining_duration):
            self._log("Better route found", {
                "eta_difference": eta_gain, "distance_difference": distance_difference,
            })
            self.on_better_route(candidate, eta_gain, distance_difference)

    def _log(self, message: str, data: Optional[dict] = None):
        if self.logger:
            self.logger.log(message, data)
