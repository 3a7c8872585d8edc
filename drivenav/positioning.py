"""Location sources: device GPS and route simulation."""

import json
import subprocess
import threading
import time
from enum import Enum
from typing import Callable, Iterator, Optional

from .config import CONFIG
from .errors import EngineInitializationError
from .geo import bearing_between, distance_between, interpolate
from .logger import Logger
from .models import Location, Route

LocationListener = Callable[[Location], None]


class LocationAccuracy(Enum):
    NAVIGATION = "navigation"
    BEST_AVAILABLE = "best_available"
    BALANCED = "balanced"


class GPS:
    """GPS access via Termux API"""

    def __init__(self, accuracy: LocationAccuracy = LocationAccuracy.NAVIGATION):
        self.accuracy = accuracy
        self.last_location: Optional[Location] = None
        self.consecutive_failures = 0
        self.last_error: Optional[str] = None

    @property
    def provider(self) -> str:
        return "gps" if self.accuracy == LocationAccuracy.NAVIGATION else "network"

    def get_location(self, timeout: int = 30) -> Optional[Location]:
        """Get current location using termux-location"""
        try:
            result = subprocess.run(
                ["termux-location", "-p", self.provider, "-r", "once"],
                capture_output=True,
                text=True,
                timeout=timeout
            )

            if result.returncode != 0:
                self._fail(result.stderr.strip() if result.stderr else "unknown error")
                return None

            if not result.stdout or not result.stdout.strip():
                self._fail("empty response")
                return None

            data = json.loads(result.stdout)
            location = Location(
                lat=data["latitude"],
                lon=data["longitude"],
                accuracy=data.get("accuracy"),
                timestamp=time.time(),
                bearing=data.get("bearing"),
                speed=data.get("speed"),
            )
            self.last_location = location
            self.consecutive_failures = 0
            self.last_error = None
            return location

        except subprocess.TimeoutExpired:
            self._fail("timeout")
            return None
        except (json.JSONDecodeError, KeyError) as e:
            self._fail(f"bad response: {e}")
            return None
        except FileNotFoundError:
            self._fail("termux-location not installed")
            return None

    def _fail(self, error: str):
        self.consecutive_failures += 1
        self.last_error = error

    def get_status(self) -> str:
        """Get GPS status string"""
        if self.consecutive_failures == 0:
            acc = f", accuracy {self.last_location.accuracy:.0f}m" if self.last_location and self.last_location.accuracy else ""
            return f"GPS OK{acc}"
        else:
            return f"GPS: {self.consecutive_failures} consecutive failures ({self.last_error})"


class DeviceSource:
    """Delivers device fixes to a listener from a polling thread"""

    def __init__(self, gps: Optional[GPS] = None, poll_interval: Optional[float] = None,
                 logger: Optional[Logger] = None):
        self.gps = gps or GPS()
        self.poll_interval = poll_interval if poll_interval is not None else CONFIG["gps_poll_interval"]
        self.logger = logger
        self.status_listener: Optional[Callable[[str], None]] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._delivery_lock = threading.RLock()  # held while a fix is handed to the listener
        self._last_status: Optional[str] = None

    @property
    def is_started(self) -> bool:
        return self._thread is not None

    def start(self, listener: LocationListener,
              accuracy: LocationAccuracy = LocationAccuracy.NAVIGATION):
        """Start delivering fixes. No-op if already started."""
        with self._lock:
            if self._thread is not None:
                return
            self.gps.accuracy = accuracy
            # Each run owns its stop event; an abandoned poll never sees a restart
            self._stop_event = threading.Event()
            self._thread = threading.Thread(target=self._poll, args=(self._stop_event, listener),
                                            name="drivenav-gps", daemon=True)
            self._thread.start()
        self._log("Device positioning started", {"accuracy": accuracy.value})

    def stop(self):
        """Stop delivering fixes. Idempotent.

        Returns once no fix can reach the listener any more. A termux-location
        call still running is not waited for; its thread exits when the call
        returns.
        """
        with self._lock:
            if self._thread is None:
                return
            self._thread = None
            self._stop_event.set()
        with self._delivery_lock:
            pass
        self._log("Device positioning stopped")

    def last_known_location(self) -> Optional[Location]:
        return self.gps.last_location

    def _poll(self, stop_event: threading.Event, listener: LocationListener):
        while not stop_event.is_set():
            location = self.gps.get_location(timeout=CONFIG["gps_timeout"])
            with self._delivery_lock:
                if stop_event.is_set():
                    break
                self._report_status(self.gps.get_status())
                if location:
                    listener(location)
            stop_event.wait(self.poll_interval)

    def _report_status(self, status: str):
        if status == self._last_status:
            return
        self._last_status = status
        self._log("Positioning status changed", {"status": status})
        if self.status_listener:
            self.status_listener(status)

    def _log(self, message: str, data: Optional[dict] = None):
        if self.logger:
            self.logger.log(message, data)


class SimulatedSource:
    """Replays synthetic fixes along a route's geometry"""

    def __init__(self, speed_factor: Optional[float] = None,
                 notification_interval_s: Optional[float] = None,
                 logger: Optional[Logger] = None):
        self.speed_factor = speed_factor or CONFIG["simulation_speed_factor"]
        self.notification_interval_s = (notification_interval_s or
                                        CONFIG["simulation_notification_interval"])
        self.logger = logger
        self.route: Optional[Route] = None
        self._listener: Optional[LocationListener] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    @property
    def is_started(self) -> bool:
        return self._thread is not None

    def start(self, listener: LocationListener, route: Route):
        """Start replaying a route.

        Starting again with the same route is a no-op; a different route
        stops the previous replay first.
        """
        if route is None or not route.sections:
            raise EngineInitializationError("Initialization of location simulator failed: no route")
        if self.is_started:
            if route is self.route:
                return
            self.stop()
        with self._lock:
            self.route = route
            self._listener = listener
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._run, args=(route, stop_event),
                name="drivenav-simulator", daemon=True,
            )
            self._thread.start()
        self._log("Location simulation started", {
            "speed_factor": self.speed_factor,
            "interval": self.notification_interval_s,
            "length": route.length_m,
        })

    def stop(self):
        """Stop the replay and wait for its thread. Idempotent."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._thread = None
            self._listener = None
            self.route = None
            self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=self.notification_interval_s * 4 + 1)
        self._log("Location simulation stopped")

    def replay(self, route: Route, start_time: float = 0.0) -> Iterator[Location]:
        """Yield synthetic fixes from departure to destination.

        Fixes are spaced by the distance covered in one notification interval
        at the section's average speed times the speed factor.
        """
        timestamp = start_time
        for section in route.sections:
            points = section.geometry
            if section.length_m > 0 and section.duration_s > 0:
                speed = section.length_m / section.duration_s * self.speed_factor
            else:
                speed = 10.0 * self.speed_factor
            step = speed * self.notification_interval_s

            carried = 0.0  # distance into the current segment
            for i in range(len(points) - 1):
                a, b = points[i], points[i + 1]
                seg_len = distance_between(a, b)
                if seg_len == 0:
                    continue
                bearing = bearing_between(a.lat, a.lon, b.lat, b.lon)
                while carried < seg_len:
                    point = interpolate(a, b, carried / seg_len)
                    yield Location(lat=point.lat, lon=point.lon, accuracy=1.0,
                                   timestamp=timestamp, bearing=bearing, speed=speed)
                    timestamp += self.notification_interval_s
                    carried += step
                carried -= seg_len

        last = route.destination
        geometry = route.geometry
        bearing = None
        if len(geometry) >= 2:
            a, b = geometry[-2], geometry[-1]
            bearing = bearing_between(a.lat, a.lon, b.lat, b.lon)
        yield Location(lat=last.lat, lon=last.lon, accuracy=1.0,
                       timestamp=timestamp, bearing=bearing, speed=0.0)

    def _run(self, route: Route, stop_event: threading.Event):
        for location in self.replay(route, start_time=time.time()):
            if stop_event.is_set():
                return
            listener = self._listener
            if listener:
                listener(location)
            if stop_event.wait(self.notification_interval_s):
                return
        self._log("Location simulation finished")

    def _log(self, message: str, data: Optional[dict] = None):
        if self.logger:
            self.logger.log(message, data)
