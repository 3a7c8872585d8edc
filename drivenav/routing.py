"""Route computation via the OSRM HTTP API.

The routing service contract used by the orchestrator is callback based:

    calculate_route(waypoints, options, callback)            -> callback(error, routes)
    calculate_traffic_on_route(route, section_index,
                               traveled_m, callback)         -> callback(error, overlay)

Exactly one of error/result is None. Callbacks may run on any thread.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from .config import CONFIG
from .errors import EngineInitializationError, RoutingError
from .geo import point_along, turn_angle
from .logger import Logger
from .models import (
    Coordinates,
    Maneuver,
    ManeuverAction,
    RoadTexts,
    RoadType,
    Route,
    Section,
    TrafficOverlay,
    Waypoint,
)

RouteCallback = Callable[[Optional[RoutingError], Optional[list[Route]]], None]
TrafficCallback = Callable[[Optional[RoutingError], Optional[TrafficOverlay]], None]


@dataclass(frozen=True)
class RouteOptions:
    """Car routing options"""
    enable_route_handle: bool = True  # required for rerouting and traffic updates
    alternatives: int = 0


# (type, modifier) -> action; modifier None matches any modifier
_ACTIONS_BY_TYPE = {
    "depart": ManeuverAction.DEPART,
    "arrive": ManeuverAction.ARRIVE,
    "roundabout": ManeuverAction.ROUNDABOUT_ENTER,
    "rotary": ManeuverAction.ROUNDABOUT_ENTER,
    "roundabout turn": ManeuverAction.ROUNDABOUT_ENTER,
    "exit roundabout": ManeuverAction.ROUNDABOUT_EXIT,
    "exit rotary": ManeuverAction.ROUNDABOUT_EXIT,
}

_ACTIONS_BY_MODIFIER = {
    "uturn": ManeuverAction.LEFT_U_TURN,
    "sharp right": ManeuverAction.SHARP_RIGHT_TURN,
    "right": ManeuverAction.RIGHT_TURN,
    "slight right": ManeuverAction.SLIGHT_RIGHT_TURN,
    "straight": ManeuverAction.CONTINUE_ON,
    "slight left": ManeuverAction.SLIGHT_LEFT_TURN,
    "left": ManeuverAction.LEFT_TURN,
    "sharp left": ManeuverAction.SHARP_LEFT_TURN,
}


def maneuver_action(step_type: str, modifier: Optional[str], mode: str = "driving") -> ManeuverAction:
    """Map an OSRM step maneuver onto a ManeuverAction"""
    if mode == "ferry" and step_type not in ("depart", "arrive"):
        return ManeuverAction.FERRY
    if step_type in _ACTIONS_BY_TYPE:
        return _ACTIONS_BY_TYPE[step_type]
    left = bool(modifier) and "left" in modifier
    if step_type == "fork":
        if modifier in (None, "straight"):
            return ManeuverAction.MIDDLE_FORK
        return ManeuverAction.LEFT_FORK if left else ManeuverAction.RIGHT_FORK
    if step_type in ("on ramp", "off ramp"):
        return ManeuverAction.LEFT_RAMP if left else ManeuverAction.RIGHT_RAMP
    return _ACTIONS_BY_MODIFIER.get(modifier, ManeuverAction.CONTINUE_ON)


def _road_texts(step: dict) -> RoadTexts:
    return RoadTexts(name=step.get("name") or None, number=step.get("ref") or None)


def _road_type(step: dict) -> RoadType:
    classes = set(step.get("classes") or [])
    for intersection in step.get("intersections") or []:
        classes.update(intersection.get("classes") or [])
    if "motorway" in classes:
        return RoadType.HIGHWAY
    return RoadType.URBAN


def parse_osrm_route(data: dict, handle: Optional[str] = None) -> Route:
    """Convert one OSRM route object (steps=true, geojson) into a Route"""
    sections = []
    maneuvers = []
    offset = 0.0
    previous_step: Optional[dict] = None
    legs = data["legs"]

    for leg_index, leg in enumerate(legs):
        geometry: list[Coordinates] = []
        steps = leg["steps"]
        for step_index, step in enumerate(steps):
            for lon, lat in step["geometry"]["coordinates"]:
                point = Coordinates(lat=lat, lon=lon)
                if not geometry or geometry[-1] != point:
                    geometry.append(point)

            step_type = step["maneuver"]["type"]
            is_last_leg = leg_index == len(legs) - 1
            # Intermediate arrive/depart pairs mark waypoints, not maneuvers
            skip = ((step_type == "arrive" and not is_last_leg) or
                    (step_type == "depart" and leg_index > 0))
            if not skip:
                lon, lat = step["maneuver"]["location"]
                before = step["maneuver"].get("bearing_before")
                after = step["maneuver"].get("bearing_after")
                angle = None
                if step_type not in ("depart", "arrive", "roundabout", "rotary") and before is not None:
                    angle = turn_angle(before, after)
                maneuvers.append(Maneuver(
                    action=maneuver_action(step_type, step["maneuver"].get("modifier"),
                                           step.get("mode", "driving")),
                    coordinates=Coordinates(lat=lat, lon=lon),
                    offset_m=offset,
                    road_texts=_road_texts(previous_step) if previous_step else _road_texts(step),
                    next_road_texts=_road_texts(step),
                    next_road_type=_road_type(step),
                    turn_angle=angle,
                    section_index=leg_index,
                ))
            offset += step.get("distance", 0.0)
            previous_step = step

        if len(geometry) == 1:
            geometry.append(geometry[0])
        sections.append(Section(
            geometry=tuple(geometry),
            length_m=float(leg["distance"]),
            duration_s=float(leg["duration"]),
        ))

    return Route(sections=tuple(sections), maneuvers=tuple(maneuvers), handle=handle)


class OSRMRoutingService:
    """Routing service backed by an OSRM server.

    OSRM has no live traffic feed; traffic recomputation re-times the
    untraveled part of the route with a fresh request.
    """

    ERROR_CODES = {
        "NoRoute": RoutingError.NO_ROUTE_FOUND,
        "NoSegment": RoutingError.NO_ROUTE_FOUND,
        "InvalidQuery": RoutingError.INVALID_PARAMETER,
        "InvalidValue": RoutingError.INVALID_PARAMETER,
        "InvalidInput": RoutingError.INVALID_PARAMETER,
        "InvalidOptions": RoutingError.INVALID_PARAMETER,
        "TooBig": RoutingError.INVALID_PARAMETER,
    }

    def __init__(self, base_url: Optional[str] = None, profile: Optional[str] = None,
                 timeout: Optional[float] = None, logger: Optional[Logger] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or CONFIG["osrm_url"] or "").rstrip("/")
        if not self.base_url:
            raise EngineInitializationError("Initialization of routing service failed: no OSRM URL")
        self.profile = profile or CONFIG["osrm_profile"]
        self.timeout = timeout or CONFIG["osrm_timeout"]
        self.logger = logger
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def calculate_route(self, waypoints: list[Waypoint], options: RouteOptions,
                        callback: RouteCallback):
        """Compute routes through the waypoints on a background thread"""
        self._run_async(lambda: self.compute_route(waypoints, options), callback)

    def calculate_traffic_on_route(self, route: Route, section_index: int,
                                   traveled_m: float, callback: TrafficCallback):
        """Re-time the rest of the route on a background thread"""
        self._run_async(lambda: self.compute_traffic_overlay(route, section_index, traveled_m),
                        callback)

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def compute_route(self, waypoints: list[Waypoint], options: RouteOptions):
        """Returns (error, routes)"""
        if len(waypoints) < 2:
            return RoutingError.INVALID_PARAMETER, None

        params = {
            "overview": "full",
            "geometries": "geojson",
            "steps": "true",
            "alternatives": "true" if options.alternatives else "false",
        }
        if any(w.heading is not None for w in waypoints):
            tolerance = CONFIG["heading_tolerance"]
            params["bearings"] = ";".join(
                f"{int(w.heading) % 360},{tolerance}" if w.heading is not None else ""
                for w in waypoints
            )

        coords = [w.coordinates for w in waypoints]
        error, data = self._request("route", coords, params)
        if error:
            return error, None

        try:
            handle = self._make_handle(coords) if options.enable_route_handle else None
            routes = [parse_osrm_route(r, handle) for r in data["routes"]]
        except (KeyError, TypeError, ValueError, IndexError) as e:
            self._log("OSRM route parsing failed", {"error": str(e)})
            return RoutingError.PARSING_ERROR, None

        if not routes:
            return RoutingError.NO_ROUTE_FOUND, None
        if options.alternatives:
            routes = routes[:options.alternatives + 1]
        else:
            routes = routes[:1]
        return None, routes

    def compute_traffic_overlay(self, route: Route, section_index: int, traveled_m: float):
        """Returns (error, overlay)"""
        if route.handle is None:
            return RoutingError.ROUTE_HANDLE_MISSING, None
        if not 0 <= section_index < len(route.sections):
            return RoutingError.INVALID_PARAMETER, None

        current = route.sections[section_index]
        position = point_along(current.geometry, traveled_m)
        coords = [position] + [s.arrival for s in route.sections[section_index:]]
        error, data = self._request("route", coords, {"overview": "false"})
        if error:
            return error, None

        try:
            legs = data["routes"][0]["legs"]
            complete = len(legs) == len(route.sections) - section_index
        except (KeyError, IndexError, TypeError):
            return RoutingError.PARSING_ERROR, None
        if not complete:
            return RoutingError.PARSING_ERROR, None

        durations = [s.duration_s for s in route.sections]
        fraction_done = min(1.0, traveled_m / current.length_m) if current.length_m else 1.0
        try:
            durations[section_index] = current.duration_s * fraction_done + float(legs[0]["duration"])
            for offset, leg in enumerate(legs[1:], start=1):
                durations[section_index + offset] = float(leg["duration"])
        except (KeyError, TypeError, ValueError) as e:
            self._log("OSRM traffic parsing failed", {"error": str(e)})
            return RoutingError.PARSING_ERROR, None
        return None, TrafficOverlay(section_durations_s=tuple(durations))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_async(self, work: Callable, callback: Callable):
        def runner():
            try:
                error, result = work()
            except Exception as e:
                # Every request calls back exactly once
                self._log("Routing request crashed", {"error": repr(e)})
                error, result = RoutingError.PARSING_ERROR, None
            callback(error, result)

        threading.Thread(target=runner, name="drivenav-routing", daemon=True).start()

    def _request(self, service: str, coords: list[Coordinates], params: dict):
        """Issue an OSRM request. Returns (error, json)."""
        path = ";".join(f"{c.lon:.6f},{c.lat:.6f}" for c in coords)
        url = f"{self.base_url}/{service}/v1/{self.profile}/{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout:
            self._log("OSRM request timed out", {"url": url})
            return RoutingError.TIMED_OUT, None
        except requests.RequestException as e:
            self._log("OSRM request failed", {"url": url, "error": str(e)})
            return RoutingError.NETWORK_ERROR, None

        if response.status_code >= 500:
            self._log("OSRM server error", {"status": response.status_code})
            return RoutingError.SERVER_ERROR, None

        try:
            data = response.json()
        except ValueError:
            return RoutingError.PARSING_ERROR, None
        if not isinstance(data, dict):
            self._log("OSRM returned an unexpected payload", {"type": type(data).__name__})
            return RoutingError.PARSING_ERROR, None

        code = data.get("code")
        if code != "Ok":
            self._log("OSRM returned an error", {"code": code, "message": data.get("message")})
            return self.ERROR_CODES.get(code, RoutingError.SERVER_ERROR), None
        return None, data

    @staticmethod
    def _make_handle(coords: list[Coordinates]) -> str:
        return "osrm:" + ";".join(f"{c.lat:.6f},{c.lon:.6f}" for c in coords)

    def _log(self, message: str, data: Optional[dict] = None):
        if self.logger:
            self.logger.log(message, data)


class RouteRequestService:
    """Wraps a single asynchronous car route request from start to destination"""

    def __init__(self, routing, options: Optional[RouteOptions] = None,
                 logger: Optional[Logger] = None):
        self.routing = routing
        self.options = options or RouteOptions(enable_route_handle=True)
        self.logger = logger

    def calculate_route(self, start: Waypoint, destination: Waypoint,
                        callback: Callable[[Optional[RoutingError], Optional[Route]], None]):
        """Calls back with (error, route); route is the first result"""
        if self.logger:
            self.logger.log("Calculating route", {
                "start": start.coordinates.to_dict(),
                "destination": destination.coordinates.to_dict(),
                "heading": start.heading,
            })

        def on_routes(error, routes):
            if error is None and not routes:
                error = RoutingError.NO_ROUTE_FOUND
            callback(error, routes[0] if error is None else None)

        self.routing.calculate_route([start, destination], self.options, on_routes)

