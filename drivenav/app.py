"""Main drivenav application."""

import random
import time
from typing import Optional

from .audio import VoiceAssistant
from .config import CONFIG
from .debug_gui import DebugServer, WebSocketGPS
from .dispatch import EventQueue
from .errors import EngineInitializationError
from .guidance import BasicGuidanceEngine
from .logger import Logger
from .models import Coordinates, ErrorDialog, RouteConfirmation, SessionState
from .orchestrator import NavigationOrchestrator
from .positioning import GPS, DeviceSource, SimulatedSource
from .route_viewer import save_route_html
from .routing import OSRMRoutingService

HELP_TEXT = """Commands:
  press LAT LON    set start, then destination (alternating)
  center LAT LON   move the map center used for random waypoints
  sim              calculate a route for simulated navigation
  device           calculate a route from the device location
  start            start navigation on the proposed route
  dismiss          dismiss the current dialog
  clear            clear route and waypoints
  track on|off     toggle camera tracking
  status           show session state
  quit             exit"""


class DriveNav:
    """Builds the collaborators and runs the console loop"""

    def __init__(self, log_path: Optional[str] = None,
                 map_center: Optional[tuple[float, float]] = None,
                 osrm_url: Optional[str] = None,
                 speed_factor: Optional[float] = None,
                 html_output: Optional[str] = None,
                 debug_gui: bool = False,
                 seed: Optional[int] = None):
        self.html_output = html_output
        center = map_center or CONFIG["default_map_center"]

        # Debug GUI server
        self.debug_server: Optional[DebugServer] = None
        if debug_gui:
            self.debug_server = DebugServer(
                http_port=CONFIG["debug_http_port"],
                ws_port=CONFIG["debug_ws_port"],
                on_command=self.handle_command,
                center=center,
            )
            self.debug_server.start()

        # Logger with optional callback for debug GUI
        log_callback = self.debug_server.send_log if self.debug_server else None
        self.logger = Logger(log_path, callback=log_callback)

        audio_callback = self.debug_server.send_audio if self.debug_server else None
        self.voice = VoiceAssistant(callback=audio_callback, logger=self.logger)
        self.voice.set_language(CONFIG["voice_language"])

        # Shift-clicks on the debug map stand in for the device GPS
        gps = WebSocketGPS(self.debug_server) if self.debug_server else GPS()
        self.routing = OSRMRoutingService(osrm_url, logger=self.logger)
        self.events = EventQueue(self.logger)
        self.orchestrator = NavigationOrchestrator(
            guidance=BasicGuidanceEngine(logger=self.logger),
            device_source=DeviceSource(gps, logger=self.logger),
            simulated_source=SimulatedSource(speed_factor=speed_factor, logger=self.logger),
            routing=self.routing,
            voice=self.voice,
            logger=self.logger,
            events=self.events,
            map_center=Coordinates(*center),
            rng=random.Random(seed),
        )
        self._subscribe()

    def _subscribe(self):
        orchestrator = self.orchestrator
        orchestrator.message.subscribe(self._on_message, replay=False)
        orchestrator.dialog.subscribe(self._on_dialog, replay=False)
        orchestrator.state.subscribe(self._on_state, replay=False)
        orchestrator.camera_tracking.subscribe(self._on_state, replay=False)
        orchestrator.router.notices.subscribe(
            lambda notice: print(f"[{notice.kind}] {notice.text}"), replay=False)
        if self.debug_server:
            orchestrator.router.notices.subscribe(
                lambda notice: self.debug_server.send_log(notice.text, notice.payload), replay=False)
            orchestrator.router.location.subscribe(self.debug_server.send_location, replay=False)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _on_message(self, text: str):
        print(f"\n{text}")
        if self.debug_server:
            self.debug_server.send_text(text)

    def _on_dialog(self, dialog):
        if isinstance(dialog, ErrorDialog):
            print(f"\n!! {dialog.title} {dialog.message}")
            payload = {"kind": "error", "title": dialog.title, "message": dialog.message}
        elif isinstance(dialog, RouteConfirmation):
            print(f"\n== {dialog.title} ==\n{dialog.summary}\n"
                  f"Type 'start' to begin: {dialog.button_text}")
            payload = {"kind": "confirm", "title": dialog.title,
                       "message": dialog.summary, "button": dialog.button_text}
            session = self.orchestrator.session
            if self.html_output:
                save_route_html(
                    dialog.route,
                    session.start_waypoint.coordinates if session.start_waypoint else None,
                    session.destination_waypoint.coordinates if session.destination_waypoint else None,
                    self.html_output,
                )
            if self.debug_server:
                self.debug_server.send_route(dialog.route)
        else:
            payload = None
        if self.debug_server:
            self.debug_server.send_dialog(payload)

    def _on_state(self, _value):
        if not self.debug_server:
            return
        self.debug_server.send_state(self.orchestrator.status())
        if self.orchestrator.session.state == SessionState.IDLE and not self.orchestrator.session.active_route:
            self.debug_server.send_route(None)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def handle_command(self, name: str, args) -> bool:
        """Run one command. Returns False when the loop should end.

        `args` is a list of words from the console or a dict from the GUI.
        """
        orchestrator = self.orchestrator
        try:
            if name in ("press", "center"):
                if isinstance(args, dict):
                    coordinates = Coordinates(float(args["lat"]), float(args["lon"]))
                else:
                    coordinates = Coordinates(float(args[0]), float(args[1]))
                if name == "press":
                    orchestrator.long_press(coordinates)
                else:
                    orchestrator.set_map_center(coordinates)
            elif name == "sim":
                orchestrator.request_route(is_simulated=True)
            elif name == "device":
                orchestrator.request_route(is_simulated=False)
            elif name == "start":
                orchestrator.confirm_navigation()
            elif name == "dismiss":
                orchestrator.dismiss_dialog()
            elif name == "clear":
                orchestrator.clear_map()
            elif name == "track":
                if isinstance(args, dict):
                    enabled = bool(args.get("enabled"))
                else:
                    enabled = bool(args) and args[0] == "on"
                if enabled:
                    orchestrator.enable_camera_tracking()
                else:
                    orchestrator.disable_camera_tracking()
            elif name == "status":
                print(orchestrator.status())
            elif name in ("quit", "exit"):
                return False
            elif name == "help":
                print(HELP_TEXT)
            else:
                print(f"Unknown command: {name} (type 'help')")
        except (IndexError, KeyError, ValueError) as e:
            print(f"Invalid arguments for {name}: {e}")
        return True

    def run(self):
        """Run the console loop until quit or Ctrl+C"""
        print("\n=== drivenav ===")
        print(f"Routing: {self.routing.base_url} ({self.routing.profile})")
        print("Type 'help' for commands\n")

        self.events.start()
        self.orchestrator.attach()
        try:
            while True:
                try:
                    line = input("> ").strip()
                except EOFError:
                    break
                if not line:
                    continue
                words = line.split()
                if not self.handle_command(words[0].lower(), words[1:]):
                    break
        except KeyboardInterrupt:
            print("\nInterrupted")
            self.logger.log("Interrupted by user")
        finally:
            self.orchestrator.detach()
            if self.debug_server:
                self.debug_server.stop()
            self.logger.log("Session ended", {"time": time.time()})
            self.logger.close()


def create_app(**kwargs) -> DriveNav:
    """Build the application, reporting initialization failures"""
    try:
        return DriveNav(**kwargs)
    except EngineInitializationError as e:
        raise SystemExit(f"Initialization failed: {e}")
