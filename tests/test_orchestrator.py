import random
from unittest.mock import MagicMock

import pytest

from drivenav.errors import RoutingError
from drivenav.events import DestinationReachedEvent
from drivenav.guidance import BasicGuidanceEngine, CameraBehavior
from drivenav.models import (
    ErrorDialog,
    MapMatchedLocation,
    RouteConfirmation,
    SectionProgress,
    SessionState,
)
from drivenav.orchestrator import USAGE_HINT, NavigationOrchestrator
from drivenav.positioning import LocationAccuracy, SimulatedSource
from drivenav.timeutils import format_length, format_time

from conftest import BERLIN_A, BERLIN_B, BERLIN_C, make_route


@pytest.fixture
def guidance():
    return BasicGuidanceEngine()


@pytest.fixture
def orchestrator(guidance, device_source, simulated_source, routing, voice, events, clock):
    return NavigationOrchestrator(guidance, device_source, simulated_source, routing,
                                  voice=voice, events=events, rng=random.Random(3), clock=clock)


@pytest.fixture
def messages(orchestrator):
    seen = []
    orchestrator.message.subscribe(seen.append, replay=False)
    return seen


def run(orchestrator):
    orchestrator.events.run_pending()


def propose(orchestrator, routing, route, is_simulated=True):
    """Drive the session to ROUTE_PROPOSED with the given route"""
    orchestrator.long_press(BERLIN_A)
    orchestrator.long_press(BERLIN_C)
    orchestrator.request_route(is_simulated)
    run(orchestrator)
    routing.complete_route(routes=[route])
    run(orchestrator)


class TestAttach:
    def test_starts_device_tracking(self, orchestrator, device_source, guidance, source_log, messages):
        orchestrator.attach()
        run(orchestrator)

        assert source_log == [("device", "start")]
        assert device_source.accuracy == LocationAccuracy.NAVIGATION
        assert guidance.camera_behavior == CameraBehavior.DYNAMIC
        assert messages == ["Initialization completed.", USAGE_HINT]
        assert orchestrator.state.value == SessionState.IDLE

    def test_detach_stops_everything(self, orchestrator, device_source, voice, guidance, source_log):
        orchestrator.attach()
        orchestrator.detach()

        assert source_log == [("device", "start"), ("device", "stop")]
        assert voice.stopped
        assert device_source.status_listener is None
        assert guidance.route is None


class TestWaypoints:
    def test_long_press_alternates_start_and_destination(self, orchestrator, messages):
        orchestrator.long_press(BERLIN_A)
        orchestrator.long_press(BERLIN_C)
        orchestrator.long_press(BERLIN_B)
        run(orchestrator)

        session = orchestrator.session
        assert session.start_waypoint.coordinates == BERLIN_B
        assert session.destination_waypoint.coordinates == BERLIN_C
        assert messages == ["Starting point has been set.", "Destination has been set.",
                            "Starting point has been set."]

    def test_device_route_without_fix_shows_error(self, orchestrator, routing):
        orchestrator.request_route(is_simulated=False)
        run(orchestrator)

        assert orchestrator.dialog.value == ErrorDialog("Error", "No GPS location found.")
        assert routing.route_calls == []
        assert orchestrator.session.state == SessionState.IDLE

    def test_device_route_starts_at_fix(self, orchestrator, routing, device_source, device_fix):
        device_source.last_location = device_fix
        orchestrator.long_press(BERLIN_A)
        orchestrator.request_route(is_simulated=False)
        run(orchestrator)

        start = orchestrator.session.start_waypoint
        destination = orchestrator.session.destination_waypoint
        assert start.coordinates == device_fix.coordinates
        assert start.heading == 45.0
        assert orchestrator.map_center == device_fix.coordinates
        assert abs(destination.coordinates.lat - device_fix.lat) <= 0.02
        assert abs(destination.coordinates.lon - device_fix.lon) <= 0.02

        waypoints, options, _ = routing.route_calls[0]
        assert waypoints == [start, destination]
        assert options.enable_route_handle

    def test_simulated_route_keeps_chosen_start(self, orchestrator, routing):
        orchestrator.long_press(BERLIN_A)
        orchestrator.request_route(is_simulated=True)
        run(orchestrator)

        assert orchestrator.session.start_waypoint.coordinates == BERLIN_A
        destination = orchestrator.session.destination_waypoint.coordinates
        center = orchestrator.map_center
        assert abs(destination.lat - center.lat) <= 0.02
        assert abs(destination.lon - center.lon) <= 0.02
        assert len(routing.route_calls) == 1

    def test_map_center_drives_random_waypoints(self, orchestrator):
        orchestrator.set_map_center(BERLIN_C)
        orchestrator.request_route(is_simulated=True)
        run(orchestrator)
        for waypoint in (orchestrator.session.start_waypoint, orchestrator.session.destination_waypoint):
            assert abs(waypoint.coordinates.lat - BERLIN_C.lat) <= 0.02
            assert abs(waypoint.coordinates.lon - BERLIN_C.lon) <= 0.02


class TestRouteCalculation:
    def test_success_proposes_route(self, orchestrator, routing, berlin_route):
        propose(orchestrator, routing, berlin_route)

        assert orchestrator.session.state == SessionState.ROUTE_PROPOSED
        assert orchestrator.session.active_route is berlin_route
        dialog = orchestrator.dialog.value
        assert isinstance(dialog, RouteConfirmation)
        assert dialog.is_simulated
        assert dialog.summary == (f"Travel Time: {format_time(120.0)}, "
                                  f"Length: {format_length(berlin_route.length_m)}")

    def test_failure_shows_error_name(self, orchestrator, routing):
        orchestrator.request_route(is_simulated=True)
        run(orchestrator)
        routing.complete_route(error=RoutingError.NO_ROUTE_FOUND)
        run(orchestrator)

        assert orchestrator.dialog.value == ErrorDialog("Error while calculating a route:", "NO_ROUTE_FOUND")
        assert orchestrator.session.state == SessionState.IDLE
        assert orchestrator.session.active_route is None

    def test_outdated_result_is_discarded(self, orchestrator, routing, berlin_route):
        orchestrator.request_route(is_simulated=True)
        orchestrator.request_route(is_simulated=True)
        run(orchestrator)

        routing.complete_route(index=0, routes=[berlin_route])
        run(orchestrator)
        assert orchestrator.session.state == SessionState.IDLE
        assert orchestrator.dialog.value is None

        newer = make_route(handle="route-2")
        routing.complete_route(index=1, routes=[newer])
        run(orchestrator)
        assert orchestrator.session.active_route is newer

    def test_result_after_clear_is_discarded(self, orchestrator, routing, berlin_route):
        orchestrator.request_route(is_simulated=True)
        orchestrator.clear_map()
        run(orchestrator)
        routing.complete_route(routes=[berlin_route])
        run(orchestrator)

        assert orchestrator.session.active_route is None
        assert orchestrator.session.state == SessionState.IDLE

    def test_dismiss_drops_proposal(self, orchestrator, routing, berlin_route):
        propose(orchestrator, routing, berlin_route)
        orchestrator.dismiss_dialog()
        run(orchestrator)

        assert orchestrator.dialog.value is None
        assert orchestrator.session.state == SessionState.IDLE
        assert orchestrator.session.active_route is None


class TestNavigation:
    def test_confirm_simulated(self, orchestrator, routing, guidance, source_log, messages, berlin_route):
        orchestrator.attach()
        propose(orchestrator, routing, berlin_route, is_simulated=True)
        orchestrator.confirm_navigation()
        run(orchestrator)

        assert source_log == [("device", "start"), ("device", "stop"), ("sim", "start")]
        assert orchestrator.session.state == SessionState.NAVIGATING
        assert guidance.route is berlin_route
        assert orchestrator.reroute.is_active
        assert orchestrator.dialog.value is None
        assert messages[-1] == "Starting simulated navigation."

    def test_confirm_prefetches_around_route(self, guidance, device_source, simulated_source, routing,
                                             events, berlin_route):
        prefetcher = MagicMock()
        orchestrator = NavigationOrchestrator(guidance, device_source, simulated_source, routing,
                                              events=events, prefetcher=prefetcher)
        propose(orchestrator, routing, berlin_route)
        orchestrator.confirm_navigation()
        orchestrator.clear_map()
        run(orchestrator)

        prefetcher.prefetch_around_location.assert_called_once_with(BERLIN_A, 2000)
        prefetcher.prefetch_around_route.assert_called_once_with(guidance)
        prefetcher.stop_prefetch_around_route.assert_called_once_with()

    def test_confirm_device(self, orchestrator, routing, device_source, device_fix, source_log,
                            messages, berlin_route):
        device_source.last_location = device_fix
        orchestrator.attach()
        propose(orchestrator, routing, berlin_route, is_simulated=False)
        orchestrator.confirm_navigation()
        run(orchestrator)

        assert source_log == [("device", "start")]
        assert orchestrator.session.state == SessionState.NAVIGATING
        assert messages[-1] == "Starting navigation."

    def test_confirm_without_proposal_is_ignored(self, orchestrator, guidance, source_log):
        orchestrator.confirm_navigation()
        run(orchestrator)
        assert orchestrator.session.state == SessionState.IDLE
        assert guidance.route is None
        assert source_log == []

    def test_destination_reached_stops_session(self, orchestrator, routing, guidance, source_log,
                                               berlin_route):
        orchestrator.attach()
        propose(orchestrator, routing, berlin_route)
        orchestrator.confirm_navigation()
        run(orchestrator)

        orchestrator.router.handle(DestinationReachedEvent())

        assert orchestrator.session.state == SessionState.STOPPED
        assert orchestrator.message.value == "Destination reached."
        assert source_log[-2:] == [("sim", "stop"), ("device", "start")]
        assert guidance.route is None
        assert not orchestrator.reroute.is_active

    def test_new_request_while_navigating_stops_guidance(self, orchestrator, routing, guidance,
                                                         source_log, berlin_route):
        orchestrator.attach()
        propose(orchestrator, routing, berlin_route)
        orchestrator.confirm_navigation()
        orchestrator.request_route(is_simulated=True)
        run(orchestrator)

        assert orchestrator.session.state == SessionState.IDLE
        assert guidance.route is None
        assert source_log[-2:] == [("sim", "stop"), ("device", "start")]
        assert len(routing.route_calls) == 2

    def test_clear_map_while_navigating(self, orchestrator, routing, guidance, berlin_route):
        orchestrator.attach()
        propose(orchestrator, routing, berlin_route)
        orchestrator.confirm_navigation()
        orchestrator.clear_map()
        run(orchestrator)

        session = orchestrator.session
        assert session.state == SessionState.IDLE
        assert session.start_waypoint is None
        assert session.destination_waypoint is None
        assert session.active_route is None
        assert guidance.route is None
        assert orchestrator.message.value == "Tracking device's location."

    def test_better_route_is_announced(self, orchestrator, routing, clock, berlin_route):
        orchestrator.attach()
        propose(orchestrator, routing, berlin_route)
        orchestrator.confirm_navigation()
        run(orchestrator)

        clock.advance(600)
        remaining = (SectionProgress(remaining_distance_m=700.0, remaining_duration_s=120.0),)
        orchestrator.reroute.update_current_location(MapMatchedLocation(BERLIN_A), 0, remaining)
        faster = make_route(duration_s=90.0, handle="faster")
        routing.complete_route(routes=[faster])
        run(orchestrator)

        assert orchestrator.better_route is faster
        assert orchestrator.message.value.startswith(
            "DynamicRoutingEngine update: Calculated a new route. etaDifferenceInSeconds: 30 ")
        assert orchestrator.guidance.route is berlin_route


class TestCamera:
    def test_toggle_tracking(self, orchestrator, guidance):
        seen = []
        orchestrator.camera_tracking.subscribe(seen.append, replay=False)

        orchestrator.disable_camera_tracking()
        run(orchestrator)
        assert guidance.camera_behavior is None
        assert orchestrator.session.camera_tracking_enabled is False

        orchestrator.enable_camera_tracking()
        run(orchestrator)
        assert guidance.camera_behavior == CameraBehavior.DYNAMIC
        assert seen == [False, True]


def test_simulated_drive_through_berlin(orchestrator, routing, simulated_source, voice, clock,
                                        messages, berlin_route):
    orchestrator.attach()
    propose(orchestrator, routing, berlin_route)
    orchestrator.confirm_navigation()
    run(orchestrator)

    fixes = SimulatedSource(speed_factor=2.0, notification_interval_s=0.5).replay(berlin_route)
    for location in fixes:
        listener = simulated_source.listener
        if listener is None:
            break
        listener(location)
        run(orchestrator)

    assert orchestrator.session.state == SessionState.STOPPED
    assert orchestrator.message.value == "Destination reached."
    assert any("New maneuver: LEFT_TURN on Alexanderstraße" in m for m in messages)
    assert any(m.endswith("turn left onto Alexanderstraße.") for m in voice.spoken)
    assert any("arrive at your destination" in m for m in voice.spoken)
    assert orchestrator.session.last_traffic_refresh_timestamp == clock()
    assert len(routing.traffic_calls) == 1
    assert routing.route_calls[-1][0][0].coordinates == BERLIN_A
