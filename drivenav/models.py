"""Data classes for drivenav."""

from dataclasses import dataclass, asdict, field, replace
from enum import Enum
from typing import Optional, Union


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Coordinates":
        return cls(lat=d["lat"], lon=d["lon"])


@dataclass(frozen=True)
class Location:
    """A single position fix, either from the device or synthetic"""
    lat: float
    lon: float
    accuracy: Optional[float] = None
    timestamp: Optional[float] = None
    bearing: Optional[float] = None  # degrees, 0=North
    speed: Optional[float] = None  # m/s

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.lat, self.lon)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Location":
        return cls(**d)


@dataclass(frozen=True)
class MapMatchedLocation:
    """A fix snapped onto the nearest routable road"""
    coordinates: Coordinates
    bearing: Optional[float] = None
    is_driving_wrong_way: bool = False


@dataclass(frozen=True)
class Waypoint:
    """Route endpoint. Replaced wholesale on re-selection."""
    coordinates: Coordinates
    heading: Optional[float] = None
    reroute_handle: bool = False


class ManeuverAction(Enum):
    DEPART = "depart"
    ARRIVE = "arrive"
    CONTINUE_ON = "continue_on"
    LEFT_TURN = "left_turn"
    RIGHT_TURN = "right_turn"
    SLIGHT_LEFT_TURN = "slight_left_turn"
    SLIGHT_RIGHT_TURN = "slight_right_turn"
    SHARP_LEFT_TURN = "sharp_left_turn"
    SHARP_RIGHT_TURN = "sharp_right_turn"
    LEFT_U_TURN = "left_u_turn"
    RIGHT_U_TURN = "right_u_turn"
    LEFT_RAMP = "left_ramp"
    RIGHT_RAMP = "right_ramp"
    LEFT_FORK = "left_fork"
    MIDDLE_FORK = "middle_fork"
    RIGHT_FORK = "right_fork"
    ROUNDABOUT_ENTER = "roundabout_enter"
    ROUNDABOUT_EXIT = "roundabout_exit"
    FERRY = "ferry"


class RoadType(Enum):
    HIGHWAY = "highway"
    RURAL = "rural"
    URBAN = "urban"


@dataclass(frozen=True)
class RoadTexts:
    name: Optional[str] = None
    number: Optional[str] = None  # road number with direction, e.g. "A100"


@dataclass(frozen=True)
class Maneuver:
    """One instructed action along a route"""
    action: ManeuverAction
    coordinates: Coordinates
    offset_m: float  # distance from route start
    road_texts: RoadTexts = field(default_factory=RoadTexts)
    next_road_texts: RoadTexts = field(default_factory=RoadTexts)
    next_road_type: RoadType = RoadType.URBAN
    turn_angle: Optional[float] = None  # None for depart, arrive and roundabouts
    roundabout_angle: Optional[float] = None
    section_index: int = 0


@dataclass(frozen=True)
class Section:
    """Part of a route between two consecutive waypoints"""
    geometry: tuple[Coordinates, ...]
    length_m: float
    duration_s: float
    base_duration_s: Optional[float] = None  # duration without traffic

    @property
    def departure(self) -> Coordinates:
        return self.geometry[0]

    @property
    def arrival(self) -> Coordinates:
        return self.geometry[-1]

    @property
    def traffic_delay_s(self) -> float:
        if self.base_duration_s is None:
            return 0.0
        return max(0.0, self.duration_s - self.base_duration_s)


@dataclass(frozen=True)
class TrafficOverlay:
    """Fresh timing for every section of an existing route"""
    section_durations_s: tuple[float, ...]


@dataclass(frozen=True)
class Route:
    """Engine-provided route. Never mutated; traffic updates return a copy."""
    sections: tuple[Section, ...]
    maneuvers: tuple[Maneuver, ...] = ()
    handle: Optional[str] = None

    @property
    def geometry(self) -> list[Coordinates]:
        vertices: list[Coordinates] = []
        for section in self.sections:
            points = section.geometry
            if vertices and points and vertices[-1] == points[0]:
                points = points[1:]
            vertices.extend(points)
        return vertices

    @property
    def length_m(self) -> float:
        return sum(s.length_m for s in self.sections)

    @property
    def duration_s(self) -> float:
        return sum(s.duration_s for s in self.sections)

    @property
    def departure(self) -> Coordinates:
        return self.sections[0].departure

    @property
    def destination(self) -> Coordinates:
        return self.sections[-1].arrival

    def with_traffic(self, overlay: TrafficOverlay) -> "Route":
        """Apply fresh section durations. Geometry and length are unchanged."""
        if len(overlay.section_durations_s) != len(self.sections):
            raise ValueError(
                f"Traffic overlay has {len(overlay.section_durations_s)} sections, "
                f"route has {len(self.sections)}"
            )
        sections = tuple(
            replace(
                section,
                duration_s=duration,
                base_duration_s=section.base_duration_s if section.base_duration_s is not None
                else section.duration_s,
            )
            for section, duration in zip(self.sections, overlay.section_durations_s)
        )
        return replace(self, sections=sections)


@dataclass(frozen=True)
class SectionProgress:
    remaining_distance_m: float
    remaining_duration_s: float
    traffic_delay_s: float = 0.0


@dataclass(frozen=True)
class ManeuverProgress:
    maneuver_index: int
    remaining_distance_m: float


@dataclass(frozen=True)
class RouteProgress:
    """Progress along the active route. section_progress is never empty."""
    section_index: int
    section_progress: tuple[SectionProgress, ...]
    maneuver_progress: tuple[ManeuverProgress, ...] = ()

    @property
    def last_section_progress(self) -> SectionProgress:
        return self.section_progress[-1]


class SessionState(Enum):
    IDLE = "idle"
    ROUTE_PROPOSED = "route_proposed"
    NAVIGATING = "navigating"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ErrorDialog:
    title: str
    message: str


@dataclass(frozen=True)
class RouteConfirmation:
    route: Route
    is_simulated: bool
    summary: str
    title: str = "Route Details"

    @property
    def button_text(self) -> str:
        if self.is_simulated:
            return "Start navigation (simulated)"
        return "Start navigation (device location)"


DialogState = Optional[Union[ErrorDialog, RouteConfirmation]]


@dataclass
class NavigationSession:
    """The one live navigation session. Only the orchestrator mutates it."""
    state: SessionState = SessionState.IDLE
    start_waypoint: Optional[Waypoint] = None
    destination_waypoint: Optional[Waypoint] = None
    active_route: Optional[Route] = None
    is_simulated: bool = False
    camera_tracking_enabled: bool = True
    last_traffic_refresh_timestamp: Optional[float] = None  # None until the first refresh

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "start": self.start_waypoint.coordinates.to_dict() if self.start_waypoint else None,
            "destination": (self.destination_waypoint.coordinates.to_dict()
                            if self.destination_waypoint else None),
            "has_route": self.active_route is not None,
            "is_simulated": self.is_simulated,
            "camera_tracking": self.camera_tracking_enabled,
        }
