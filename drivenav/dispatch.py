"""Single-writer event queue.

Callbacks from positioning, guidance and routing arrive on their own threads.
They are posted here and executed one at a time, so session state has a
single writer.
"""

import queue
import threading
import traceback
from typing import Callable, Optional

from .logger import Logger

_STOP = object()


class EventQueue:
    """Serial executor backed by one worker thread.

    When the worker is not started, posted tasks wait until `run_pending()`
    drains them in the caller's thread.
    """

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger
        self._queue: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def post(self, func: Callable, *args, **kwargs):
        """Schedule func(*args, **kwargs) on the queue"""
        if self._closed:
            return
        self._queue.put((func, args, kwargs))

    def bind(self, func: Callable) -> Callable:
        """Wrap func so that calling it posts to the queue instead"""
        def posted(*args, **kwargs):
            self.post(func, *args, **kwargs)
        return posted

    def start(self):
        if self.is_running:
            return
        self._closed = False
        self._thread = threading.Thread(target=self._worker, name="drivenav-events", daemon=True)
        self._thread.start()

    def run_pending(self, limit: int = 10000) -> int:
        """Execute queued tasks in the calling thread. Returns the count run."""
        if self.is_running:
            raise RuntimeError("run_pending() cannot be used while the worker thread is running")
        count = 0
        while count < limit:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _STOP:
                continue
            self._execute(item)
            count += 1
        return count

    def stop(self, timeout: float = 5.0):
        """Stop accepting tasks and wait for the worker to finish the backlog"""
        self._closed = True
        if self.is_running:
            self._queue.put(_STOP)
            if threading.current_thread() is not self._thread:
                self._thread.join(timeout=timeout)
        self._thread = None

    def _worker(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            self._execute(item)

    def _execute(self, item):
        func, args, kwargs = item
        try:
            func(*args, **kwargs)
        except Exception as e:
            # A failing callback must not take down the queue
            if self.logger:
                self.logger.log("Event handler error", {
                    "handler": getattr(func, "__qualname__", repr(func)),
                    "error": str(e),
                    "traceback": traceback.format_exc(),
                })
            else:
                print(f"Event handler error: {e}")
                traceback.print_exc()
