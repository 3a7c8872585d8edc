import pytest

from drivenav.events import SpeedLimitEvent
from drivenav.models import (
    Coordinates,
    Location,
    NavigationSession,
    Route,
    RouteConfirmation,
    Section,
    TrafficOverlay,
    Waypoint,
)

from conftest import BERLIN_A, BERLIN_B, BERLIN_C


def two_section_route():
    first = Section(geometry=(BERLIN_A, BERLIN_B), length_m=400.0, duration_s=60.0)
    second = Section(geometry=(BERLIN_B, BERLIN_C), length_m=330.0, duration_s=50.0)
    return Route(sections=(first, second), handle="h")


class TestRoute:
    def test_geometry_joins_sections_without_duplicate_vertices(self):
        route = two_section_route()
        assert route.geometry == [BERLIN_A, BERLIN_B, BERLIN_C]
        assert route.departure == BERLIN_A
        assert route.destination == BERLIN_C

    def test_totals(self):
        route = two_section_route()
        assert route.length_m == pytest.approx(730.0)
        assert route.duration_s == pytest.approx(110.0)

    def test_with_traffic_changes_durations_only(self):
        route = two_section_route()
        updated = route.with_traffic(TrafficOverlay(section_durations_s=(90.0, 50.0)))

        assert updated.geometry == route.geometry
        assert updated.length_m == route.length_m
        assert updated.handle == route.handle
        assert updated.duration_s == pytest.approx(140.0)
        assert updated.sections[0].traffic_delay_s == pytest.approx(30.0)
        assert updated.sections[1].traffic_delay_s == 0.0
        # Original is untouched
        assert route.duration_s == pytest.approx(110.0)

    def test_with_traffic_keeps_first_base_duration(self):
        route = two_section_route()
        once = route.with_traffic(TrafficOverlay((90.0, 50.0)))
        twice = once.with_traffic(TrafficOverlay((70.0, 50.0)))
        assert twice.sections[0].base_duration_s == 60.0
        assert twice.sections[0].traffic_delay_s == pytest.approx(10.0)

    def test_with_traffic_rejects_section_mismatch(self):
        with pytest.raises(ValueError):
            two_section_route().with_traffic(TrafficOverlay((90.0,)))


def test_location_round_trip_through_dict():
    location = Location(lat=52.5, lon=13.4, accuracy=3.0, timestamp=1.0, bearing=90.0, speed=5.0)
    assert Location.from_dict(location.to_dict()) == location
    assert location.coordinates == Coordinates(52.5, 13.4)


def test_route_confirmation_button_text(berlin_route):
    simulated = RouteConfirmation(route=berlin_route, is_simulated=True, summary="s")
    device = RouteConfirmation(route=berlin_route, is_simulated=False, summary="s")
    assert simulated.title == "Route Details"
    assert simulated.button_text == "Start navigation (simulated)"
    assert device.button_text == "Start navigation (device location)"


def test_session_to_dict():
    session = NavigationSession(start_waypoint=Waypoint(BERLIN_A))
    data = session.to_dict()
    assert data["state"] == "idle"
    assert data["start"] == {"lat": BERLIN_A.lat, "lon": BERLIN_A.lon}
    assert data["destination"] is None
    assert data["camera_tracking"] is True


@pytest.mark.parametrize("event, expected", [
    (SpeedLimitEvent(speed_limit_mps=13.9, school_zone_mps=8.3), 8.3),
    (SpeedLimitEvent(speed_limit_mps=0.0), 0.0),
    (SpeedLimitEvent(speed_limit_mps=0.0, time_dependent_mps=16.7), 16.7),
    (SpeedLimitEvent(), None),
])
def test_effective_speed_limit(event, expected):
    assert event.effective_speed_limit() == expected
