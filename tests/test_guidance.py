import pytest

from drivenav.events import (
    DestinationReachedEvent,
    EventTextEvent,
    MilestoneStatus,
    MilestoneStatusEvent,
    NavigableLocationEvent,
    RoadTextsEvent,
    RouteDeviationEvent,
    RouteProgressEvent,
)
from drivenav.geo import distance_between, interpolate
from drivenav.guidance import (
    UNNAMED_ROAD,
    BasicGuidanceEngine,
    announcement_text,
    maneuver_road_name,
)
from drivenav.models import (
    Coordinates,
    Location,
    Maneuver,
    ManeuverAction,
    RoadTexts,
    RoadType,
    TrafficOverlay,
)
from drivenav.timeutils import format_length

from conftest import BERLIN_A, BERLIN_B, BERLIN_C


def fix(point, bearing=None, speed=10.0):
    return Location(lat=point.lat, lon=point.lon, accuracy=3.0, timestamp=0.0,
                    bearing=bearing, speed=speed)


def before_turn(meters):
    """Point on the first leg `meters` before the left turn"""
    leg = distance_between(BERLIN_A, BERLIN_B)
    return interpolate(BERLIN_A, BERLIN_B, (leg - meters) / leg)


def of_type(events, cls):
    return [e for e in events if isinstance(e, cls)]


@pytest.fixture
def received():
    return []


@pytest.fixture
def engine(received):
    engine = BasicGuidanceEngine()
    engine.set_event_listener(received.append)
    return engine


class TestTrackingMode:
    def test_only_navigable_locations(self, engine, received):
        location = fix(BERLIN_A, bearing=10.0)
        engine.on_location(location)

        assert len(received) == 1
        event = received[0]
        assert isinstance(event, NavigableLocationEvent)
        assert event.original_location == location
        assert event.map_matched.coordinates == BERLIN_A
        assert event.map_matched.bearing == 10.0

    def test_no_listener_is_silent(self):
        BasicGuidanceEngine().on_location(fix(BERLIN_A))


class TestRouteGuidance:
    def test_progress_on_route(self, engine, received, berlin_route):
        engine.set_route(berlin_route)
        engine.on_location(fix(BERLIN_A, bearing=90.0))

        progress = of_type(received, RouteProgressEvent)[0]
        assert progress.next_maneuver.action == ManeuverAction.LEFT_TURN
        assert progress.progress.section_index == 0
        first = progress.progress.maneuver_progress[0]
        assert first.maneuver_index == 1
        assert first.remaining_distance_m == pytest.approx(distance_between(BERLIN_A, BERLIN_B), abs=1)
        assert len(progress.progress.maneuver_progress) == 2
        section = progress.progress.last_section_progress
        assert section.remaining_distance_m == pytest.approx(berlin_route.length_m, abs=1)
        assert section.remaining_duration_s == pytest.approx(120.0, abs=0.5)

        road = of_type(received, RoadTextsEvent)[0]
        assert road.texts.name == "Karl-Liebknecht-Straße"

    def test_announces_each_threshold_once(self, engine, received, berlin_route):
        engine.set_route(berlin_route)
        engine.on_location(fix(BERLIN_A, bearing=90.0))
        engine.on_location(fix(before_turn(250), bearing=90.0))
        engine.on_location(fix(before_turn(240), bearing=90.0))

        first_leg = format_length(distance_between(BERLIN_A, BERLIN_B))
        texts = [e.text for e in of_type(received, EventTextEvent)]
        assert texts == [
            f"In {first_leg}, turn left onto Alexanderstraße.",
            "In 250 m, turn left onto Alexanderstraße.",
        ]

    def test_road_texts_only_on_change(self, engine, received, berlin_route):
        engine.set_route(berlin_route)
        engine.on_location(fix(BERLIN_A, bearing=90.0))
        engine.on_location(fix(before_turn(300), bearing=90.0))
        assert len(of_type(received, RoadTextsEvent)) == 1

    def test_off_route_without_prior_match(self, engine, received, berlin_route):
        engine.set_route(berlin_route)
        far_away = fix(Coordinates(52.53, 13.40))
        engine.on_location(far_away)

        navigable, deviation = received
        assert isinstance(navigable, NavigableLocationEvent)
        assert navigable.map_matched is None
        assert isinstance(deviation, RouteDeviationEvent)
        assert deviation.last_location_on_route is None
        assert deviation.route is berlin_route
        assert deviation.current_location == far_away

    def test_off_route_remembers_last_match(self, engine, received, berlin_route):
        engine.set_route(berlin_route)
        engine.on_location(fix(BERLIN_A, bearing=90.0))
        engine.on_location(fix(Coordinates(52.53, 13.40)))

        deviation = of_type(received, RouteDeviationEvent)[0]
        assert deviation.last_location_on_route.lat == pytest.approx(BERLIN_A.lat)
        assert deviation.last_location_on_route.lon == pytest.approx(BERLIN_A.lon)

    def test_wrong_way(self, engine, received, berlin_route):
        engine.set_route(berlin_route)
        engine.on_location(fix(before_turn(200), bearing=270.0))
        navigable = of_type(received, NavigableLocationEvent)[0]
        assert navigable.map_matched.is_driving_wrong_way

    def test_arrival(self, engine, received, berlin_route):
        engine.set_route(berlin_route)
        engine.on_location(fix(BERLIN_A, bearing=90.0))
        received.clear()
        engine.on_location(fix(BERLIN_C, bearing=0.0))

        milestone = of_type(received, MilestoneStatusEvent)[0]
        assert milestone.status == MilestoneStatus.REACHED
        assert milestone.waypoint_index == 1
        assert isinstance(received[-1], DestinationReachedEvent)
        assert not of_type(received, RouteProgressEvent)

        received.clear()
        engine.on_location(fix(BERLIN_C))
        assert [type(e) for e in received] == [NavigableLocationEvent]

    def test_progress_never_moves_backwards(self, engine, received, berlin_route):
        engine.set_route(berlin_route)
        engine.on_location(fix(before_turn(100), bearing=90.0))
        engine.on_location(fix(before_turn(200), bearing=90.0))
        remaining = [e.progress.maneuver_progress[0].remaining_distance_m
                     for e in of_type(received, RouteProgressEvent)]
        assert remaining[1] == pytest.approx(remaining[0])

    def test_route_replaced_mid_emission_stops_events(self, received, berlin_route):
        engine = BasicGuidanceEngine()

        def listener(event):
            received.append(event)
            engine.set_route(None)

        engine.set_event_listener(listener)
        engine.set_route(berlin_route)
        engine.on_location(fix(BERLIN_A, bearing=90.0))
        assert len(received) == 1

    def test_traffic_overlay_changes_remaining_duration(self, engine, received, berlin_route):
        engine.set_route(berlin_route)
        engine.set_traffic_overlay(TrafficOverlay((180.0,)))
        engine.on_location(fix(BERLIN_A, bearing=90.0))

        section = of_type(received, RouteProgressEvent)[0].progress.last_section_progress
        assert section.remaining_duration_s == pytest.approx(180.0, abs=1)
        assert section.traffic_delay_s == pytest.approx(60.0, abs=1)
        assert engine.route.handle == berlin_route.handle

    def test_get_maneuver(self, engine, berlin_route):
        assert engine.get_maneuver(0) is None
        engine.set_route(berlin_route)
        assert engine.get_maneuver(2).action == ManeuverAction.ARRIVE
        assert engine.get_maneuver(3) is None


class TestRoadNames:
    def make(self, action=ManeuverAction.RIGHT_TURN, current=RoadTexts(), next_texts=RoadTexts(),
             road_type=RoadType.URBAN):
        return Maneuver(action=action, coordinates=BERLIN_A, offset_m=0.0, road_texts=current,
                        next_road_texts=next_texts, next_road_type=road_type)

    def test_next_road_name_preferred(self):
        maneuver = self.make(next_texts=RoadTexts(name="Torstraße", number="B1"))
        assert maneuver_road_name(maneuver) == "Torstraße"

    def test_highway_prefers_number(self):
        maneuver = self.make(next_texts=RoadTexts(name="Stadtring", number="A100"),
                             road_type=RoadType.HIGHWAY)
        assert maneuver_road_name(maneuver) == "A100"

    def test_arrival_uses_current_road(self):
        maneuver = self.make(action=ManeuverAction.ARRIVE, current=RoadTexts(name="Alexanderstraße"))
        assert maneuver_road_name(maneuver) == "Alexanderstraße"

    def test_unnamed(self):
        assert maneuver_road_name(self.make()) == UNNAMED_ROAD

    def test_arrival_announcement(self):
        maneuver = self.make(action=ManeuverAction.ARRIVE)
        assert announcement_text(maneuver, 1200) == "In 1.2 km, arrive at your destination."
