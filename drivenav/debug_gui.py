"""Debug GUI server for drivenav."""

import asyncio
import http.server
import json
import queue
import socketserver
import threading
import time
import webbrowser
from functools import partial
from typing import Callable, Optional

from .geo import bearing_between
from .guidance import maneuver_road_name
from .models import Location, Route


# Control panel served to the browser
DEBUG_GUI_HTML = '''<!DOCTYPE html>
<html>
<head>
    <title>drivenav</title>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css" />
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <style>
        html, body { margin: 0; height: 100%; font: 14px/1.4 system-ui, sans-serif; background: #111827; color: #e5e7eb; }
        .topbar { height: 44px; display: flex; align-items: center; gap: 16px; padding: 0 16px; background: #030712; }
        .topbar b { font-size: 16px; letter-spacing: 1px; }
        #link { margin-left: auto; font-size: 12px; padding: 2px 10px; border-radius: 10px; background: #b91c1c; }
        #link.up { background: #15803d; }
        .layout { display: grid; grid-template-columns: 1fr 360px; height: calc(100% - 44px); }
        #map { position: relative; }
        .sidebar { display: flex; flex-direction: column; overflow: hidden; border-left: 2px solid #1f2937; }
        .card { padding: 12px 14px; border-bottom: 1px solid #1f2937; }
        .card h3 { margin: 0 0 8px; font-size: 11px; color: #9ca3af; text-transform: uppercase; }
        .tiles { display: grid; grid-template-columns: repeat(4, 1fr); gap: 6px; text-align: center; }
        .tiles span { display: block; font-size: 10px; color: #9ca3af; }
        .tiles strong { font-size: 13px; }
        .btns button { margin: 0 4px 4px 0; padding: 5px 9px; color: #e5e7eb; background: #374151; border: 0; border-radius: 4px; cursor: pointer; }
        .btns button:hover { background: #4b5563; }
        .banner { white-space: pre-line; min-height: 18px; font-size: 15px; }
        #dialog { display: none; background: #1e3a8a; }
        #dialog.error { background: #7f1d1d; }
        #speech { background: #422006; color: #fde68a; }
        #logs { flex: 1; overflow-y: auto; padding: 8px 14px; font: 11px monospace; color: #9ca3af; }
        #logs div { margin-bottom: 3px; }
        #logs i { color: #6b7280; font-style: normal; }
        #logs em { color: #67e8f9; font-style: normal; }
        .hint { position: absolute; z-index: 1000; top: 8px; left: 60px; padding: 4px 10px; border-radius: 4px; background: rgba(3,7,18,0.75); font-size: 12px; pointer-events: none; }
        .car { width: 14px; height: 14px; border-radius: 50%; background: #2563eb; border: 3px solid #fff; }
    </style>
</head>
<body>
    <div class="topbar">
        <b>drivenav</b><span>control panel</span>
        <span id="link">offline</span>
    </div>
    <div class="layout">
        <div id="map">
            <div class="hint">click = long press, shift+click = device fix</div>
        </div>
        <div class="sidebar">
            <div class="card">
                <h3>Session</h3>
                <div class="tiles">
                    <div><span>state</span><strong id="st-state">-</strong></div>
                    <div><span>mode</span><strong id="st-mode">-</strong></div>
                    <div><span>camera</span><strong id="st-camera">-</strong></div>
                    <div><span>route</span><strong id="st-route">-</strong></div>
                </div>
            </div>
            <div class="card btns">
                <button onclick="command('sim')">Simulated route</button>
                <button onclick="command('device')">Device route</button>
                <button onclick="command('clear')">Clear</button>
                <button onclick="command('track', {enabled: true})">Follow</button>
                <button onclick="command('track', {enabled: false})">Free camera</button>
            </div>
            <div class="card" id="dialog">
                <h3 id="dialog-title">-</h3>
                <div class="banner" id="dialog-text">-</div>
                <div class="btns" style="margin-top: 8px">
                    <button id="dialog-confirm" onclick="command('start')">Start</button>
                    <button onclick="command('dismiss')">Dismiss</button>
                </div>
            </div>
            <div class="card"><h3>Message</h3><div class="banner" id="message">-</div></div>
            <div class="card" id="speech"><h3>Voice</h3><div class="banner" id="speech-text">-</div></div>
            <div id="logs"></div>
        </div>
    </div>
    <script>
        var map = L.map('map').setView([{{LAT}}, {{LON}}], 14);
        L.tileLayer('https://tile.openstreetmap.org/{z}/{x}/{y}.png', {
            maxZoom: 19, attribution: '&copy; OpenStreetMap'
        }).addTo(map);

        var ws = null;
        var routeLayer = L.layerGroup().addTo(map);
        var car = null;

        function setText(id, text) {
            document.getElementById(id).textContent = text;
        }

        function connect() {
            ws = new WebSocket('ws://localhost:{{WS_PORT}}');
            var link = document.getElementById('link');
            ws.onopen = function() {
                link.textContent = 'online';
                link.classList.add('up');
            };
            ws.onclose = function() {
                link.textContent = 'offline';
                link.classList.remove('up');
                setTimeout(connect, 2000);
            };
            ws.onmessage = function(event) {
                var msg = JSON.parse(event.data);
                var handler = handlers[msg.type];
                if (handler) handler(msg.data);
            };
        }

        function send(type, data) {
            if (ws && ws.readyState === WebSocket.OPEN) {
                ws.send(JSON.stringify({type: type, data: data}));
            }
        }

        function command(name, args) {
            var data = Object.assign({}, args || {}, {name: name});
            send('command', data);
        }

        var handlers = {
            route: function(data) {
                routeLayer.clearLayers();
                if (!data.route.length) return;
                L.polyline(data.route, {color: '#38bdf8', weight: 6}).addTo(routeLayer);
                data.maneuvers.forEach(function(m) {
                    L.circleMarker([m.lat, m.lon], {radius: 5, color: '#fb923c'})
                        .bindTooltip(m.action + ': ' + m.road).addTo(routeLayer);
                });
                map.fitBounds(data.route, {padding: [40, 40]});
            },
            state: function(s) {
                setText('st-state', s.state);
                setText('st-mode', s.is_simulated ? 'sim' : 'device');
                setText('st-camera', s.camera_tracking ? 'follow' : 'free');
                setText('st-route', s.has_route ? 'yes' : 'no');
            },
            dialog: function(d) {
                var box = document.getElementById('dialog');
                box.style.display = d ? 'block' : 'none';
                if (!d) return;
                box.classList.toggle('error', d.kind === 'error');
                setText('dialog-title', d.title);
                setText('dialog-text', d.message);
                var confirm = document.getElementById('dialog-confirm');
                confirm.style.display = d.kind === 'confirm' ? '' : 'none';
                confirm.textContent = d.button || 'Start';
            },
            message: function(d) { setText('message', d.text); },
            audio: function(d) { setText('speech-text', d.text); },
            location: function(fix) {
                var pos = [fix.lat, fix.lon];
                if (!car) {
                    car = L.marker(pos, {icon: L.divIcon({className: 'car', iconSize: [20, 20]})}).addTo(map);
                }
                car.setLatLng(pos);
            },
            log: function(d) { log(d.message, d.data); }
        };

        function log(message, data) {
            var logs = document.getElementById('logs');
            var line = document.createElement('div');
            line.innerHTML = '<i>' + new Date().toLocaleTimeString() + '</i> ' + message +
                (data ? ' <em>' + JSON.stringify(data) + '</em>' : '');
            logs.appendChild(line);
            while (logs.childElementCount > 200) logs.firstChild.remove();
            logs.scrollTop = logs.scrollHeight;
        }

        map.on('click', function(e) {
            var point = {lat: e.latlng.lat, lon: e.latlng.lng};
            if (e.originalEvent.shiftKey) {
                send('location', point);
            } else {
                command('press', point);
            }
        });

        map.on('moveend', function() {
            var c = map.getCenter();
            command('center', {lat: c.lat, lon: c.lng});
        });

        connect();
    </script>
</body>
</html>'''


def route_to_dict(route: Optional[Route]) -> dict:
    """Route geometry and maneuvers in the shape the GUI draws"""
    if route is None:
        return {"route": [], "maneuvers": []}
    return {
        "route": [[c.lat, c.lon] for c in route.geometry],
        "maneuvers": [
            {"lat": m.coordinates.lat, "lon": m.coordinates.lon,
             "action": m.action.name, "road": maneuver_road_name(m)}
            for m in route.maneuvers
        ],
        "length": route.length_m,
        "duration": route.duration_s,
    }


class DebugServer:
    """HTTP and WebSocket server for debug GUI.

    Map clicks and buttons arrive as commands and are handed to
    `on_command(name, data)`. Shift+clicks are queued as device locations
    for `WebSocketGPS`.
    """

    def __init__(self, http_port: int = 8080, ws_port: int = 8765,
                 on_command: Optional[Callable[[str, dict], None]] = None,
                 center: tuple = (52.520798, 13.409408), open_browser: bool = True):
        self.http_port = http_port
        self.ws_port = ws_port
        self.on_command = on_command
        self.center = center
        self.open_browser = open_browser
        self.location_queue: queue.Queue = queue.Queue()
        self.http_thread = None
        self.ws_thread = None
        self.ws_loop = None
        self.connected_clients: set = set()
        self._running = False

    def start(self):
        """Start HTTP and WebSocket servers in background threads"""
        self._running = True

        # Start HTTP server
        self.http_thread = threading.Thread(target=self._run_http_server, daemon=True)
        self.http_thread.start()

        # Start WebSocket server
        self.ws_thread = threading.Thread(target=self._run_ws_server, daemon=True)
        self.ws_thread.start()

        # Give servers time to start
        time.sleep(0.5)

        url = f"http://localhost:{self.http_port}"
        print(f"Debug GUI available at: {url}")
        if self.open_browser:
            webbrowser.open(url)

    def _run_http_server(self):
        """Run the HTTP server for serving the GUI"""
        handler = partial(_DebugHTTPHandler, self.render_page())
        socketserver.TCPServer.allow_reuse_address = True
        with socketserver.TCPServer(("", self.http_port), handler) as httpd:
            httpd.timeout = 0.5
            while self._running:
                httpd.handle_request()

    def render_page(self) -> str:
        return (DEBUG_GUI_HTML
                .replace('{{WS_PORT}}', str(self.ws_port))
                .replace('{{LAT}}', str(self.center[0]))
                .replace('{{LON}}', str(self.center[1])))

    def handle_client_message(self, message: str):
        """Route one message received from the browser"""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            return
        payload = data.get('data') or {}
        if data.get('type') == 'location':
            self.location_queue.put(Location(
                lat=payload['lat'],
                lon=payload['lon'],
                accuracy=0,
                timestamp=time.time()
            ))
        elif data.get('type') == 'command' and self.on_command:
            name = payload.pop('name', None)
            if name:
                self.on_command(name, payload)

    def _run_ws_server(self):
        """Run the WebSocket server"""
        import websockets

        self.ws_loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.ws_loop)

        async def handler(websocket):
            self.connected_clients.add(websocket)
            try:
                async for message in websocket:
                    self.handle_client_message(message)
            finally:
                self.connected_clients.discard(websocket)

        async def main():
            try:
                async with websockets.serve(handler, "localhost", self.ws_port):
                    while self._running:
                        await asyncio.sleep(0.1)
            except OSError as e:
                print(f"WebSocket server error: {e}")

        self.ws_loop.run_until_complete(main())

    def _send_message(self, msg_type: str, data):
        """Send a message to all connected WebSocket clients"""
        if not self.connected_clients or not self.ws_loop:
            return

        message = json.dumps({"type": msg_type, "data": data}, default=str)

        async def send_to_all():
            for client in list(self.connected_clients):
                try:
                    await client.send(message)
                except Exception:
                    self.connected_clients.discard(client)

        if self.ws_loop.is_running():
            asyncio.run_coroutine_threadsafe(send_to_all(), self.ws_loop)

    def send_route(self, route: Optional[Route]):
        """Send route to browser for display"""
        self._send_message("route", route_to_dict(route))

    def send_state(self, state: dict):
        """Send session state to browser"""
        self._send_message("state", state)

    def send_dialog(self, dialog: Optional[dict]):
        self._send_message("dialog", dialog)

    def send_text(self, text: str):
        """Send the current on-screen message"""
        self._send_message("message", {"text": text})

    def send_location(self, location: Location):
        self._send_message("location", location.to_dict())

    def send_log(self, message: str, data: Optional[dict] = None):
        """Send log message to browser"""
        self._send_message("log", {"message": message, "data": data})

    def send_audio(self, text: str):
        """Send audio prompt text to browser"""
        self._send_message("audio", {"text": text})

    def get_clicked_location(self, timeout: float = 30) -> Optional[Location]:
        """Block until user shift-clicks on map, return Location"""
        try:
            return self.location_queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def stop(self):
        """Stop the servers"""
        self._running = False


class _DebugHTTPHandler(http.server.SimpleHTTPRequestHandler):
    """HTTP handler that serves the debug GUI"""

    def __init__(self, page: str, *args, **kwargs):
        self.page = page
        super().__init__(*args, **kwargs)

    def do_GET(self):
        if self.path == '/' or self.path == '/index.html':
            self.send_response(200)
            self.send_header('Content-type', 'text/html')
            self.end_headers()
            self.wfile.write(self.page.encode())
        else:
            self.send_error(404)

    def log_message(self, format, *args):
        pass  # Suppress HTTP log messages


class WebSocketGPS:
    """Device GPS stand-in fed by shift-clicks on the debug map"""

    def __init__(self, debug_server: DebugServer):
        self.server = debug_server
        self.last_location: Optional[Location] = None
        self.consecutive_failures = 0
        self.accuracy = None

    def get_location(self, timeout: int = 30) -> Optional[Location]:
        """Wait for a clicked location; keep reporting the last one meanwhile"""
        location = self.server.get_clicked_location(timeout=timeout)
        if location:
            if self.last_location is not None:
                location = Location(
                    lat=location.lat, lon=location.lon, accuracy=location.accuracy,
                    timestamp=location.timestamp,
                    bearing=bearing_between(self.last_location.lat, self.last_location.lon,
                                            location.lat, location.lon),
                )
            self.last_location = location
            self.consecutive_failures = 0
            return location
        self.consecutive_failures += 1
        return None

    def get_status(self) -> str:
        return "Debug GUI (shift+click map to set location)"
