"""Shared fixtures and collaborator fakes."""

import pytest

from drivenav.dispatch import EventQueue
from drivenav.geo import distance_between
from drivenav.models import (
    Coordinates,
    Location,
    Maneuver,
    ManeuverAction,
    RoadTexts,
    Route,
    Section,
)


class FakeClock:
    """Monotonic clock advanced by hand"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRouting:
    """Routing service that records requests and completes them on demand"""

    def __init__(self):
        self.route_calls = []  # (waypoints, options, callback)
        self.traffic_calls = []  # (route, section_index, traveled_m, callback)

    def calculate_route(self, waypoints, options, callback):
        self.route_calls.append((list(waypoints), options, callback))

    def calculate_traffic_on_route(self, route, section_index, traveled_m, callback):
        self.traffic_calls.append((route, section_index, traveled_m, callback))

    def complete_route(self, index=-1, error=None, routes=None):
        self.route_calls[index][2](error, routes)

    def complete_traffic(self, index=-1, error=None, overlay=None):
        self.traffic_calls[index][3](error, overlay)


class FakeDeviceSource:
    def __init__(self, log: list, last_location=None):
        self.log = log
        self.last_location = last_location
        self.listener = None
        self.accuracy = None
        self.status_listener = None

    @property
    def is_started(self):
        return self.listener is not None

    def start(self, listener, accuracy):
        if self.is_started:
            return
        self.listener = listener
        self.accuracy = accuracy
        self.log.append(("device", "start"))

    def stop(self):
        if not self.is_started:
            return
        self.listener = None
        self.log.append(("device", "stop"))

    def last_known_location(self):
        return self.last_location


class FakeSimulatedSource:
    def __init__(self, log: list):
        self.log = log
        self.listener = None
        self.route = None

    @property
    def is_started(self):
        return self.listener is not None

    def start(self, listener, route):
        if self.is_started and route is self.route:
            return
        self.stop()
        self.listener = listener
        self.route = route
        self.log.append(("sim", "start"))

    def stop(self):
        if not self.is_started:
            return
        self.listener = None
        self.route = None
        self.log.append(("sim", "stop"))


class FakeVoice:
    def __init__(self):
        self.spoken = []
        self.stopped = False

    def speak(self, text):
        self.spoken.append(text)

    def stop(self):
        self.stopped = True


# Berlin: east along Karl-Liebknecht-Strasse, then north on Alexanderstrasse
BERLIN_A = Coordinates(52.5200, 13.4000)
BERLIN_B = Coordinates(52.5200, 13.4060)
BERLIN_C = Coordinates(52.5230, 13.4060)


def make_route(points=(BERLIN_A, BERLIN_B, BERLIN_C), duration_s=120.0, handle="route-1"):
    """Single-section route with depart, one left turn and arrive"""
    points = tuple(points)
    length = sum(distance_between(points[i], points[i + 1]) for i in range(len(points) - 1))
    first_leg = distance_between(points[0], points[1])
    karl = RoadTexts(name="Karl-Liebknecht-Straße", number="B2")
    alex = RoadTexts(name="Alexanderstraße")
    maneuvers = (
        Maneuver(action=ManeuverAction.DEPART, coordinates=points[0], offset_m=0.0,
                 road_texts=karl, next_road_texts=karl),
        Maneuver(action=ManeuverAction.LEFT_TURN, coordinates=points[1], offset_m=first_leg,
                 road_texts=karl, next_road_texts=alex, turn_angle=-90.0),
        Maneuver(action=ManeuverAction.ARRIVE, coordinates=points[-1], offset_m=length,
                 road_texts=alex, next_road_texts=RoadTexts()),
    )
    section = Section(geometry=points, length_m=length, duration_s=duration_s)
    return Route(sections=(section,), maneuvers=maneuvers, handle=handle)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def routing():
    return FakeRouting()


@pytest.fixture
def events():
    return EventQueue()


@pytest.fixture
def berlin_route():
    return make_route()


@pytest.fixture
def source_log():
    return []


@pytest.fixture
def device_source(source_log):
    return FakeDeviceSource(source_log)


@pytest.fixture
def simulated_source(source_log):
    return FakeSimulatedSource(source_log)


@pytest.fixture
def voice():
    return FakeVoice()


@pytest.fixture
def device_fix():
    return Location(lat=52.5100, lon=13.3900, accuracy=5.0, timestamp=0.0, bearing=45.0, speed=8.0)
