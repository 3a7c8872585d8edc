"""Logging module for drivenav."""

import json
import threading
from datetime import datetime
from typing import Optional, Callable


class Logger:
    """Logs navigation events to stdout and an optional file.

    Components run on several threads (event queue, GPS polling, route
    simulation, routing requests), so each line carries the thread name.
    """

    def __init__(self, log_path: Optional[str] = None, callback: Optional[Callable] = None,
                 echo: bool = True):
        self.log_path = log_path
        self.callback = callback
        self.echo = echo
        self.file = None
        self._lock = threading.Lock()
        if log_path:
            self.file = open(log_path, "a")
            self._write_header()

    def _write_header(self):
        rule = "=" * 60
        self.file.write(f"\n{rule}\ndrivenav session - {datetime.now().isoformat()}\n{rule}\n\n")
        self.file.flush()

    def format(self, message: str, data: Optional[dict] = None) -> str:
        thread = threading.current_thread().name
        line = f"[{datetime.now().isoformat()}] [{thread}] {message}"
        if data:
            line += f" | {json.dumps(data, default=str)}"
        return line

    def log(self, message: str, data: Optional[dict] = None):
        """Log a message with optional structured data"""
        line = self.format(message, data)
        with self._lock:
            if self.echo:
                print(line)
            if self.file:
                self.file.write(line + "\n")
                self.file.flush()
        if self.callback:
            self.callback(message, data)

    def close(self):
        with self._lock:
            if self.file:
                self.file.close()
                self.file = None
