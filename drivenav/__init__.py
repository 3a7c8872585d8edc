"""drivenav - Turn-by-turn car navigation session orchestration."""

from .config import CONFIG
from .errors import RoutingError, EngineInitializationError
from .models import (
    Coordinates,
    Location,
    MapMatchedLocation,
    Waypoint,
    Maneuver,
    ManeuverAction,
    RoadTexts,
    RoadType,
    Section,
    Route,
    TrafficOverlay,
    SectionProgress,
    ManeuverProgress,
    RouteProgress,
    SessionState,
    ErrorDialog,
    RouteConfirmation,
    NavigationSession,
)
from .events import GuidanceEvent
from .logger import Logger
from .geo import haversine_distance, bearing_between, random_coordinates_around
from .observable import Signal
from .dispatch import EventQueue
from .routing import RouteOptions, OSRMRoutingService, RouteRequestService
from .positioning import GPS, LocationAccuracy, DeviceSource, SimulatedSource
from .guidance import BasicGuidanceEngine, CameraBehavior
from .reroute import RerouteScheduler
from .traffic import TrafficRefresher
from .event_router import EventRouter, Notice
from .audio import VoiceAssistant
from .orchestrator import NavigationOrchestrator
from .debug_gui import DebugServer, WebSocketGPS
from .app import DriveNav
from .__main__ import main

__all__ = [
    "CONFIG",
    "RoutingError",
    "EngineInitializationError",
    "Coordinates",
    "Location",
    "MapMatchedLocation",
    "Waypoint",
    "Maneuver",
    "ManeuverAction",
    "RoadTexts",
    "RoadType",
    "Section",
    "Route",
    "TrafficOverlay",
    "SectionProgress",
    "ManeuverProgress",
    "RouteProgress",
    "SessionState",
    "ErrorDialog",
    "RouteConfirmation",
    "NavigationSession",
    "GuidanceEvent",
    "Logger",
    "haversine_distance",
    "bearing_between",
    "random_coordinates_around",
    "Signal",
    "EventQueue",
    "RouteOptions",
    "OSRMRoutingService",
    "RouteRequestService",
    "GPS",
    "LocationAccuracy",
    "DeviceSource",
    "SimulatedSource",
    "BasicGuidanceEngine",
    "CameraBehavior",
    "RerouteScheduler",
    "TrafficRefresher",
    "EventRouter",
    "Notice",
    "VoiceAssistant",
    "NavigationOrchestrator",
    "DebugServer",
    "WebSocketGPS",
    "DriveNav",
    "main",
]
