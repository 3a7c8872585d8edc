"""Guidance events delivered by the guidance engine.

Every kind of engine notification is one frozen dataclass; together they form
the closed `GuidanceEvent` union that the event router dispatches on. Events
are value snapshots delivered once per occurrence.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .models import (
    Coordinates,
    Location,
    Maneuver,
    MapMatchedLocation,
    RoadTexts,
    Route,
    RouteProgress,
)


class MilestoneStatus(Enum):
    REACHED = "reached"
    MISSED = "missed"


class SpeedWarningStatus(Enum):
    SPEED_LIMIT_EXCEEDED = "speed_limit_exceeded"
    SPEED_LIMIT_RESTORED = "speed_limit_restored"


class DistanceType(Enum):
    AHEAD = "ahead"
    REACHED = "reached"
    PASSED = "passed"


class LaneRecommendation(Enum):
    RECOMMENDED = "recommended"
    HIGHLY_RECOMMENDED = "highly_recommended"
    NOT_RECOMMENDED = "not_recommended"


class WarningCategory(Enum):
    SAFETY_CAMERA = "safety_camera"
    SCHOOL_ZONE = "school_zone"
    LOW_SPEED_ZONE = "low_speed_zone"
    DANGER_ZONE = "danger_zone"
    BORDER_CROSSING = "border_crossing"
    TRUCK_RESTRICTION = "truck_restriction"
    ROAD_SIGN = "road_sign"
    REALISTIC_VIEW = "realistic_view"


@dataclass(frozen=True)
class Lane:
    recommendation: LaneRecommendation
    directions: frozenset[str] = frozenset()  # e.g. {"straight", "slightly_left"}


@dataclass(frozen=True)
class RouteProgressEvent:
    progress: RouteProgress
    next_maneuver: Optional[Maneuver] = None


@dataclass(frozen=True)
class DestinationReachedEvent:
    pass


@dataclass(frozen=True)
class MilestoneStatusEvent:
    status: MilestoneStatus
    waypoint_index: Optional[int] = None  # None for engine-injected waypoints
    original_coordinates: Optional[Coordinates] = None
    map_matched_coordinates: Optional[Coordinates] = None


@dataclass(frozen=True)
class RouteDeviationEvent:
    route: Route
    current_location: Location
    current_map_matched: Optional[MapMatchedLocation] = None
    last_location_on_route: Optional[Coordinates] = None  # None if never on route


@dataclass(frozen=True)
class NavigableLocationEvent:
    original_location: Location
    map_matched: Optional[MapMatchedLocation] = None


@dataclass(frozen=True)
class SpeedWarningEvent:
    status: SpeedWarningStatus


@dataclass(frozen=True)
class SpeedLimitEvent:
    speed_limit_mps: Optional[float] = None  # 0 means unlimited
    school_zone_mps: Optional[float] = None
    time_dependent_mps: Optional[float] = None
    advisory_mps: Optional[float] = None

    def effective_speed_limit(self) -> Optional[float]:
        """Lowest of the regular, school-zone and time-dependent limits"""
        limits = [v for v in (self.speed_limit_mps, self.school_zone_mps,
                              self.time_dependent_mps) if v is not None]
        positive = [v for v in limits if v > 0]
        if positive:
            return min(positive)
        return limits[0] if limits else None


@dataclass(frozen=True)
class LaneAssistanceEvent:
    lanes_for_next_maneuver: tuple[Lane, ...]
    lanes_for_next_next_maneuver: tuple[Lane, ...] = ()


@dataclass(frozen=True)
class JunctionLaneAssistanceEvent:
    lanes_for_next_junction: tuple[Lane, ...] = ()


@dataclass(frozen=True)
class RoadAttributesEvent:
    attributes: frozenset[str]  # e.g. {"tunnel", "tollway", "bridge"}


@dataclass(frozen=True)
class RoadTextsEvent:
    texts: RoadTexts


@dataclass(frozen=True)
class SafetyWarningEvent:
    """Category-specific warning ahead of, at, or behind the vehicle"""
    category: WarningCategory
    distance_type: DistanceType
    distance_m: float = 0.0
    speed_limit_mps: Optional[float] = None
    details: dict = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class TollStopEvent:
    lanes: tuple[dict, ...]  # per lane: access, collection_methods, payment_methods


@dataclass(frozen=True)
class EventTextEvent:
    text: str
    maneuver: Optional[Maneuver] = None


GuidanceEvent = Union[
    RouteProgressEvent,
    DestinationReachedEvent,
    MilestoneStatusEvent,
    RouteDeviationEvent,
    NavigableLocationEvent,
    SpeedWarningEvent,
    SpeedLimitEvent,
    LaneAssistanceEvent,
    JunctionLaneAssistanceEvent,
    RoadAttributesEvent,
    RoadTextsEvent,
    SafetyWarningEvent,
    TollStopEvent,
    EventTextEvent,
]
