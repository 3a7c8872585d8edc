"""Notification policy for guidance events.

The router turns each GuidanceEvent into on-screen text, speech, log
entries and structured notices. Session transitions are left to the
orchestrator through the `on_destination_reached` and `on_deviation`
callbacks.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import CONFIG
from .events import (
    DestinationReachedEvent,
    DistanceType,
    EventTextEvent,
    GuidanceEvent,
    JunctionLaneAssistanceEvent,
    LaneAssistanceEvent,
    LaneRecommendation,
    MilestoneStatus,
    MilestoneStatusEvent,
    NavigableLocationEvent,
    RoadAttributesEvent,
    RoadTextsEvent,
    RouteDeviationEvent,
    RouteProgressEvent,
    SafetyWarningEvent,
    SpeedLimitEvent,
    SpeedWarningEvent,
    SpeedWarningStatus,
    TollStopEvent,
)
from .geo import distance_between
from .guidance import UNNAMED_ROAD, maneuver_road_name
from .logger import Logger
from .models import MapMatchedLocation, Route, RouteProgress
from .observable import Signal
from .timeutils import eta_in_local_time


@dataclass(frozen=True)
class Notice:
    """A normalized warning, lane or road notification"""
    kind: str
    text: str
    payload: dict = field(default_factory=dict, hash=False, compare=False)


def progress_message(action_name: str, road: str, distance_m: float) -> str:
    return f"{action_name} on {road} in {int(round(distance_m))} meters."


class EventRouter:
    """Dispatches guidance events to feedback channels"""

    def __init__(self, guidance, message: Signal, speak: Optional[Callable[[str], None]] = None,
                 logger: Optional[Logger] = None, reroute=None, traffic=None,
                 deviation_threshold: Optional[int] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.guidance = guidance
        self.message = message
        self.speak = speak
        self.logger = logger
        self.reroute = reroute
        self.traffic = traffic
        self.deviation_threshold = deviation_threshold or CONFIG["deviation_event_threshold"]
        self.clock = clock
        self.notices = Signal()
        self.location = Signal()  # latest fix, for map display
        self.on_destination_reached: Optional[Callable[[], None]] = None
        self.on_deviation: Optional[Callable[[float], None]] = None

        self.previous_maneuver_index: Optional[int] = None
        self.last_map_matched: Optional[MapMatchedLocation] = None
        self.deviation_count = 0

        self._handlers = {
            RouteProgressEvent: self._on_progress,
            DestinationReachedEvent: self._on_destination_reached,
            MilestoneStatusEvent: self._on_milestone,
            RouteDeviationEvent: self._on_deviation,
            NavigableLocationEvent: self._on_navigable_location,
            SpeedWarningEvent: self._on_speed_warning,
            SpeedLimitEvent: self._on_speed_limit,
            LaneAssistanceEvent: self._on_lane_assistance,
            JunctionLaneAssistanceEvent: self._on_junction_lane_assistance,
            RoadAttributesEvent: self._on_road_attributes,
            RoadTextsEvent: self._on_road_texts,
            SafetyWarningEvent: self._on_safety_warning,
            TollStopEvent: self._on_toll_stop,
            EventTextEvent: self._on_event_text,
        }

    def handle(self, event: GuidanceEvent):
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unknown guidance event: {type(event).__name__}")
        handler(event)

    def reset(self):
        """Forget per-route state. Called whenever a route is bound or unbound."""
        self.previous_maneuver_index = None
        self.last_map_matched = None
        self.deviation_count = 0

    def on_better_route(self, route: Route, eta_difference_s: float, distance_difference_m: float):
        self._set_message(
            "DynamicRoutingEngine update: Calculated a new route. "
            f"etaDifferenceInSeconds: {int(round(eta_difference_s))} "
            f"distanceDifferenceInMeters: {int(round(distance_difference_m))}"
        )

    def on_reroute_error(self, error):
        self._log("DynamicRoutingEngine error", {"error": error.name})

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_progress(self, event: RouteProgressEvent):
        progress = event.progress
        self.deviation_count = 0
        if not progress.maneuver_progress:
            self._log("No next maneuver available.")
            return

        maneuver_progress = progress.maneuver_progress[0]
        maneuver = event.next_maneuver or self.guidance.get_maneuver(maneuver_progress.maneuver_index)
        if maneuver is None:
            return

        line = progress_message(maneuver.action.name, maneuver_road_name(maneuver),
                                maneuver_progress.remaining_distance_m)
        if maneuver.turn_angle is not None:
            if maneuver.turn_angle > 10:
                self._log(f"At the next maneuver: Make a right turn of {maneuver.turn_angle:.0f} degrees.")
            elif maneuver.turn_angle < -10:
                self._log(f"At the next maneuver: Make a left turn of {maneuver.turn_angle:.0f} degrees.")

        eta = self._eta(progress)
        if self.previous_maneuver_index != maneuver_progress.maneuver_index:
            text = f"{eta}\nNew maneuver: {line}"
        else:
            text = f"{eta}\nManeuver update: {line}"
        self._set_message(text)
        self.previous_maneuver_index = maneuver_progress.maneuver_index

        if self.reroute is not None and self.last_map_matched is not None:
            self.reroute.update_current_location(self.last_map_matched, progress.section_index,
                                                 progress.section_progress)
        if self.traffic is not None and self.guidance.route is not None:
            self.traffic.tick(self.guidance.route, progress)

    def _eta(self, progress: RouteProgress) -> str:
        remaining = progress.last_section_progress.remaining_duration_s
        now = self.clock() if self.clock else None
        return f"ETA: {eta_in_local_time(remaining, now)}"

    def _on_destination_reached(self, event: DestinationReachedEvent):
        self._set_message("Destination reached.")
        if self.on_destination_reached:
            self.on_destination_reached()

    def _on_milestone(self, event: MilestoneStatusEvent):
        verb = "reached" if event.status == MilestoneStatus.REACHED else "missed"
        if event.waypoint_index is not None:
            self._log(f"A user-defined waypoint was {verb}", {
                "waypoint_index": event.waypoint_index,
                "coordinates": event.original_coordinates.to_dict() if event.original_coordinates else None,
            })
        else:
            self._log(f"A system-defined waypoint was {verb}", {
                "coordinates": (event.map_matched_coordinates.to_dict()
                                if event.map_matched_coordinates else None),
            })

    def _on_deviation(self, event: RouteDeviationEvent):
        if event.current_map_matched is not None:
            current = event.current_map_matched.coordinates
        else:
            current = event.current_location.coordinates

        last_on_route = event.last_location_on_route
        if last_on_route is None:
            self._log("User was never following the route. So, we take the start of the route instead.")
            last_on_route = event.route.departure

        distance = distance_between(current, last_on_route)
        self.deviation_count += 1
        self._log("RouteDeviation", {"distance": round(distance, 1), "count": self.deviation_count})

        if self.deviation_count >= self.deviation_threshold:
            self.deviation_count = 0
            if self.on_deviation:
                self.on_deviation(distance)

    def _on_navigable_location(self, event: NavigableLocationEvent):
        self.location.set(event.original_location)
        if event.map_matched is None:
            self._log("The current location could not be map-matched. Are you off-road?")
            return
        self.last_map_matched = event.map_matched
        if event.map_matched.is_driving_wrong_way:
            self._log("This is a one way road. User is driving against the allowed traffic direction.")
        location = event.original_location
        if location.speed is not None:
            self._log("Driving speed", {"speed": location.speed, "accuracy": location.accuracy})

    def _on_speed_warning(self, event: SpeedWarningEvent):
        if event.status == SpeedWarningStatus.SPEED_LIMIT_EXCEEDED:
            self._notice("speed_warning", "Driver is faster than current speed limit.")
        else:
            self._notice("speed_warning", "Driver is again slower than current speed limit.")

    def _on_speed_limit(self, event: SpeedLimitEvent):
        limit = event.effective_speed_limit()
        if limit is None:
            text = "Speed limits unknown."
        elif limit == 0:
            text = "No speed limit on this road."
        else:
            text = f"Current speed limit: {limit * 3.6:.0f} km/h"
        self._notice("speed_limit", text, {"speed_limit_mps": limit})

    def _on_lane_assistance(self, event: LaneAssistanceEvent):
        recommended = [i for i, lane in enumerate(event.lanes_for_next_maneuver)
                       if lane.recommendation != LaneRecommendation.NOT_RECOMMENDED]
        self._notice("lane_assistance", f"Take lane(s) {recommended} for the next maneuver.", {
            "lanes": [lane.recommendation.value for lane in event.lanes_for_next_maneuver],
            "next_next": len(event.lanes_for_next_next_maneuver),
        })

    def _on_junction_lane_assistance(self, event: JunctionLaneAssistanceEvent):
        if not event.lanes_for_next_junction:
            self._notice("junction_lane_assistance", "You have passed the complex junction.")
        else:
            self._notice("junction_lane_assistance", "Attention, a complex junction is ahead.", {
                "lanes": [lane.recommendation.value for lane in event.lanes_for_next_junction],
            })

    def _on_road_attributes(self, event: RoadAttributesEvent):
        attributes = sorted(event.attributes)
        self._notice("road_attributes", f"Road attributes: {', '.join(attributes) or 'none'}",
                     {"attributes": attributes})

    def _on_road_texts(self, event: RoadTextsEvent):
        road = event.texts.name or event.texts.number or UNNAMED_ROAD
        self._notice("road_texts", f"Current road: {road}")

    def _on_safety_warning(self, event: SafetyWarningEvent):
        label = event.category.value.replace("_", " ")
        if event.distance_type == DistanceType.AHEAD:
            text = f"{label} ahead in {int(round(event.distance_m))} meters."
        elif event.distance_type == DistanceType.REACHED:
            text = f"{label} reached."
        else:
            text = f"{label} passed."
        payload = dict(event.details)
        payload["speed_limit_mps"] = event.speed_limit_mps
        self._notice(event.category.value, text[0].upper() + text[1:], payload)

    def _on_toll_stop(self, event: TollStopEvent):
        self._notice("toll_stop", f"Toll stop ahead with {len(event.lanes)} lane(s).",
                     {"lanes": list(event.lanes)})

    def _on_event_text(self, event: EventTextEvent):
        self._log("Voice message", {"text": event.text})
        if self.speak:
            self.speak(event.text)

    # ------------------------------------------------------------------

    def _notice(self, kind: str, text: str, payload: Optional[dict] = None):
        self._log(text, payload)
        self.notices.set(Notice(kind=kind, text=text, payload=payload or {}))

    def _set_message(self, text: str):
        self._log(text)
        self.message.set(text)

    def _log(self, message: str, data: Optional[dict] = None):
        if self.logger:
            self.logger.log(message, data)
