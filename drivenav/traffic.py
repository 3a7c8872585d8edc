"""Throttled traffic refresh of the active route."""

import time
from typing import Callable, Optional

from .config import CONFIG
from .logger import Logger
from .models import Route, RouteProgress


def _call_now(func, *args):
    func(*args)


class TrafficRefresher:
    """Re-times the active route at most once per interval"""

    def __init__(self, routing, guidance, logger: Optional[Logger] = None,
                 interval: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic,
                 post: Callable = _call_now):
        self.routing = routing
        self.guidance = guidance
        self.logger = logger
        self.interval = interval if interval is not None else CONFIG["traffic_update_interval"]
        self.clock = clock
        self.post = post
        self.last_refresh: Optional[float] = None
        self.on_refresh: Optional[Callable[[float], None]] = None
        self._generation = 0

    def tick(self, route: Route, progress: RouteProgress) -> bool:
        """Request a refresh if the interval has elapsed. Returns True if requested."""
        now = self.clock()
        if self.last_refresh is not None and now - self.last_refresh < self.interval:
            return False
        self.last_refresh = now
        if self.on_refresh:
            self.on_refresh(now)

        traveled = route.length_m - progress.last_section_progress.remaining_distance_m
        section_index = progress.section_index
        # Distance into the section being driven
        traveled_on_section = traveled - sum(s.length_m for s in route.sections[:section_index])
        traveled_on_section = max(0.0, traveled_on_section)
        generation = self._generation

        def on_overlay(error, overlay):
            self.post(self._on_result, generation, route, error, overlay)

        self._log("Refreshing traffic on route", {
            "section_index": section_index, "traveled": traveled_on_section,
        })
        self.routing.calculate_traffic_on_route(route, section_index, traveled_on_section, on_overlay)
        return True

    def stop(self):
        self._generation += 1
        self.last_refresh = None

    def _on_result(self, generation: int, route: Route, error, overlay):
        if generation != self._generation:
            return
        if error is not None:
            self._log("Traffic refresh failed", {"error": error.name})
            return
        if self.guidance.route is not route:
            # Route was replaced or a newer overlay already applied
            self._log("Traffic refresh discarded for outdated route")
            return
        self.guidance.set_traffic_overlay(overlay)
        self._log("Traffic updated on route", {
            "durations": list(overlay.section_durations_s),
        })

    def _log(self, message: str, data: Optional[dict] = None):
        if self.logger:
            self.logger.log(message, data)
