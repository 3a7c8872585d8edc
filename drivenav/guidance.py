"""Guidance engine: map matching and progress along the active route.

Without a route the engine is in tracking mode and only reports navigable
locations. With a route it snaps each fix onto the route geometry and emits
progress, maneuver announcements, milestones, deviations and arrival.
"""

from enum import Enum
from typing import Callable, Optional

from .config import CONFIG
from .events import (
    DestinationReachedEvent,
    EventTextEvent,
    GuidanceEvent,
    MilestoneStatus,
    MilestoneStatusEvent,
    NavigableLocationEvent,
    RoadTextsEvent,
    RouteDeviationEvent,
    RouteProgressEvent,
)
from .geo import bearing_between, distance_between, interpolate, project_onto_segment, turn_angle
from .logger import Logger
from .models import (
    Coordinates,
    Location,
    Maneuver,
    ManeuverAction,
    ManeuverProgress,
    MapMatchedLocation,
    RoadType,
    Route,
    RouteProgress,
    SectionProgress,
    TrafficOverlay,
)
from .timeutils import format_length

EventListener = Callable[[GuidanceEvent], None]

UNNAMED_ROAD = "unnamed road"
WRONG_WAY_ANGLE = 120  # degrees between heading and road direction

ACTION_PHRASES = {
    ManeuverAction.DEPART: "depart",
    ManeuverAction.ARRIVE: "arrive at your destination",
    ManeuverAction.CONTINUE_ON: "continue",
    ManeuverAction.LEFT_TURN: "turn left",
    ManeuverAction.RIGHT_TURN: "turn right",
    ManeuverAction.SLIGHT_LEFT_TURN: "bear left",
    ManeuverAction.SLIGHT_RIGHT_TURN: "bear right",
    ManeuverAction.SHARP_LEFT_TURN: "turn sharp left",
    ManeuverAction.SHARP_RIGHT_TURN: "turn sharp right",
    ManeuverAction.LEFT_U_TURN: "make a U-turn",
    ManeuverAction.RIGHT_U_TURN: "make a U-turn",
    ManeuverAction.LEFT_RAMP: "take the ramp on the left",
    ManeuverAction.RIGHT_RAMP: "take the ramp on the right",
    ManeuverAction.LEFT_FORK: "keep left",
    ManeuverAction.MIDDLE_FORK: "keep straight",
    ManeuverAction.RIGHT_FORK: "keep right",
    ManeuverAction.ROUNDABOUT_ENTER: "enter the roundabout",
    ManeuverAction.ROUNDABOUT_EXIT: "exit the roundabout",
    ManeuverAction.FERRY: "take the ferry",
}


class CameraBehavior(Enum):
    DYNAMIC = "dynamic"  # follows position and heading


def maneuver_road_name(maneuver: Maneuver) -> str:
    """Road to name in an instruction for this maneuver.

    The road after the maneuver by name, or by number on highways. At the
    destination there is no next road, so the current one is used.
    """
    if maneuver.action == ManeuverAction.ARRIVE:
        texts = maneuver.road_texts
        return texts.name or texts.number or UNNAMED_ROAD

    texts = maneuver.next_road_texts
    if maneuver.next_road_type == RoadType.HIGHWAY:
        return texts.number or texts.name or UNNAMED_ROAD
    return texts.name or texts.number or UNNAMED_ROAD


def announcement_text(maneuver: Maneuver, distance_m: float) -> str:
    phrase = ACTION_PHRASES.get(maneuver.action, maneuver.action.name.lower())
    if maneuver.action == ManeuverAction.ARRIVE:
        return f"In {format_length(distance_m)}, {phrase}."
    return f"In {format_length(distance_m)}, {phrase} onto {maneuver_road_name(maneuver)}."


class BasicGuidanceEngine:
    """Route follower over a route's geometry"""

    def __init__(self, logger: Optional[Logger] = None,
                 map_matching_radius: Optional[float] = None,
                 arrival_radius: Optional[float] = None,
                 announce_distances: Optional[tuple] = None):
        self.logger = logger
        self.map_matching_radius = map_matching_radius or CONFIG["map_matching_radius"]
        self.arrival_radius = arrival_radius or CONFIG["destination_arrival_radius"]
        self.announce_distances = tuple(sorted(
            announce_distances or CONFIG["maneuver_announce_distances"], reverse=True))
        self.camera_behavior: Optional[CameraBehavior] = None
        self._listener: Optional[EventListener] = None
        self._route: Optional[Route] = None
        self._generation = 0
        self._reset_progress()

    # ------------------------------------------------------------------
    # Engine contract
    # ------------------------------------------------------------------

    @property
    def route(self) -> Optional[Route]:
        return self._route

    def set_route(self, route: Optional[Route]):
        """Bind a route for turn-by-turn guidance, or None for tracking mode"""
        self._route = route
        self._generation += 1
        self._reset_progress()
        if route is not None:
            self._index_geometry(route)
            self._log("Guidance route set", {
                "length": route.length_m, "sections": len(route.sections),
                "maneuvers": len(route.maneuvers),
            })
        else:
            self._log("Guidance in tracking mode")

    def set_camera_behavior(self, behavior: Optional[CameraBehavior]):
        self.camera_behavior = behavior

    def set_event_listener(self, listener: Optional[EventListener]):
        self._listener = listener

    def set_traffic_overlay(self, overlay: TrafficOverlay):
        """Apply refreshed section durations to the active route"""
        if self._route is None:
            return
        self._route = self._route.with_traffic(overlay)
        self._log("Traffic overlay applied", {"durations": list(overlay.section_durations_s)})

    def get_maneuver(self, index: int) -> Optional[Maneuver]:
        if self._route is None or not 0 <= index < len(self._route.maneuvers):
            return None
        return self._route.maneuvers[index]

    def on_location(self, location: Location):
        """Feed one fix. Events are emitted synchronously to the listener."""
        generation = self._generation
        for event in self._process(location):
            # The listener may have replaced the route
            if generation != self._generation or self._listener is None:
                return
            self._listener(event)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reset_progress(self):
        self._vertices: list[Coordinates] = []
        self._vertex_offsets: list[float] = []
        self._section_ends: list[float] = []
        self._scale = 1.0
        self._offset = 0.0
        self._section_index = 0
        self._last_on_route: Optional[Coordinates] = None
        self._announced: set = set()
        self._current_road = None
        self._arrived = False

    def _index_geometry(self, route: Route):
        total = 0.0
        for section in route.sections:
            points = list(section.geometry)
            if self._vertices and points and self._vertices[-1] == points[0]:
                points = points[1:]
            for point in points:
                if self._vertices:
                    total += distance_between(self._vertices[-1], point)
                self._vertices.append(point)
                self._vertex_offsets.append(total)
            self._section_ends.append(total)
        # Geometry length differs slightly from the reported length
        self._scale = route.length_m / total if total > 0 else 1.0

    def _process(self, location: Location) -> list:
        route = self._route
        if route is None or self._arrived:
            matched = MapMatchedLocation(coordinates=location.coordinates, bearing=location.bearing)
            return [NavigableLocationEvent(original_location=location, map_matched=matched)]

        match = self._match(location)
        if match is None:
            return [
                NavigableLocationEvent(original_location=location, map_matched=None),
                RouteDeviationEvent(
                    route=route,
                    current_location=location,
                    current_map_matched=None,
                    last_location_on_route=self._last_on_route,
                ),
            ]

        coordinates, offset, bearing = match
        wrong_way = (location.bearing is not None and
                     abs(turn_angle(bearing, location.bearing)) > WRONG_WAY_ANGLE)
        matched = MapMatchedLocation(coordinates=coordinates, bearing=bearing,
                                     is_driving_wrong_way=wrong_way)
        self._last_on_route = coordinates
        self._offset = max(self._offset, offset)
        events: list = [NavigableLocationEvent(original_location=location, map_matched=matched)]

        section_index = self._section_for(self._offset)
        events.extend(self._milestones(section_index))
        self._section_index = section_index

        traveled = self._offset * self._scale
        remaining_to_destination = max(0.0, route.length_m - traveled)
        if (remaining_to_destination <= self.arrival_radius or
                distance_between(location.coordinates, route.destination) <= self.arrival_radius):
            self._arrived = True
            last = len(route.sections) - 1
            events.extend(self._milestones(last + 1))
            events.append(DestinationReachedEvent())
            return events

        progress, next_maneuver = self._progress(route, traveled)
        events.append(RouteProgressEvent(progress=progress, next_maneuver=next_maneuver))

        if next_maneuver is not None:
            road = next_maneuver.road_texts
            if road != self._current_road:
                self._current_road = road
                events.append(RoadTextsEvent(texts=road))
            announcement = self._announcement(progress.maneuver_progress[0], next_maneuver)
            if announcement:
                events.append(announcement)
        return events

    def _match(self, location: Location):
        """Nearest point on the route within the matching radius.

        Returns (coordinates, geometry offset, road bearing) or None.
        """
        point = location.coordinates
        best = None
        for i in range(len(self._vertices) - 1):
            a, b = self._vertices[i], self._vertices[i + 1]
            fraction, distance = project_onto_segment(point, a, b)
            if distance > self.map_matching_radius:
                continue
            offset = self._vertex_offsets[i] + fraction * (self._vertex_offsets[i + 1] - self._vertex_offsets[i])
            # Prefer matches ahead of the current position on overlapping roads
            key = (distance + (50 if offset < self._offset - self.map_matching_radius else 0))
            if best is None or key < best[0]:
                best = (key, interpolate(a, b, fraction), offset,
                        bearing_between(a.lat, a.lon, b.lat, b.lon))
        if best is None:
            return None
        return best[1], best[2], best[3]

    def _section_for(self, offset: float) -> int:
        for i, end in enumerate(self._section_ends):
            if offset < end:
                return i
        return len(self._section_ends) - 1

    def _milestones(self, section_index: int) -> list:
        """Milestone events for waypoints passed since the last fix"""
        events = []
        route = self._route
        passed = range(self._section_index, min(section_index, len(route.sections)))
        for index in passed:
            status = MilestoneStatus.REACHED if index == section_index - 1 else MilestoneStatus.MISSED
            arrival = route.sections[index].arrival
            events.append(MilestoneStatusEvent(
                status=status,
                waypoint_index=index + 1,
                original_coordinates=arrival,
                map_matched_coordinates=arrival if status == MilestoneStatus.REACHED else None,
            ))
        return events

    def _progress(self, route: Route, traveled: float):
        section_progress = []
        start_of_section = 0.0
        remaining_duration = 0.0
        remaining_delay = 0.0
        for i, section in enumerate(route.sections):
            end_of_section = start_of_section + section.length_m
            if i >= self._section_index:
                left_in_section = min(section.length_m, max(0.0, end_of_section - traveled))
                fraction = left_in_section / section.length_m if section.length_m else 0.0
                remaining_duration += section.duration_s * fraction
                remaining_delay += section.traffic_delay_s * fraction
                section_progress.append(SectionProgress(
                    remaining_distance_m=max(0.0, end_of_section - traveled),
                    remaining_duration_s=remaining_duration,
                    traffic_delay_s=remaining_delay,
                ))
            start_of_section = end_of_section

        upcoming = [
            ManeuverProgress(maneuver_index=index, remaining_distance_m=m.offset_m - traveled)
            for index, m in enumerate(route.maneuvers)
            if m.offset_m > traveled
        ][:2]
        next_maneuver = route.maneuvers[upcoming[0].maneuver_index] if upcoming else None
        progress = RouteProgress(
            section_index=self._section_index,
            section_progress=tuple(section_progress),
            maneuver_progress=tuple(upcoming),
        )
        return progress, next_maneuver

    def _announcement(self, maneuver_progress: ManeuverProgress,
                      maneuver: Maneuver) -> Optional[EventTextEvent]:
        distance = maneuver_progress.remaining_distance_m
        crossed = [d for d in self.announce_distances if distance <= d]
        if not crossed:
            return None
        key = (maneuver_progress.maneuver_index, crossed[-1])
        if key in self._announced:
            return None
        # Announce only the closest threshold crossed
        for d in crossed:
            self._announced.add((maneuver_progress.maneuver_index, d))
        return EventTextEvent(text=announcement_text(maneuver, distance), maneuver=maneuver)

    def _log(self, message: str, data: Optional[dict] = None):
        if self.logger:
            self.logger.log(message, data)
