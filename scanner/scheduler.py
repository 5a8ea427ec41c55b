from __future__ import annotations
import threading
from typing import Callable, Optional

from flask import current_app

# A tick callback returns False once it wants the loop to end.
TickFn = Callable[[], bool]


class TaskHandle:
    """Explicit handle for one periodic task; cancel() stops it for good."""

    def __init__(self, name: str = "task"):
        self.name = name
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout``; True means the handle was cancelled meanwhile."""
        return self._cancelled.wait(timeout)


class ThreadScheduler:
    """
    Runs each periodic task on its own daemon thread inside an app context.
    The loop is wait -> tick -> wait, so a tick never overlaps the previous one.
    """

    def __init__(self, app=None):
        self.app = app

    def every(self, interval_s: float, fn: TickFn, *, name: str = "scan-ticker") -> TaskHandle:
        app = self.app or current_app._get_current_object()
        handle = TaskHandle(name)
        thread = threading.Thread(
            target=self._loop, args=(app, handle, interval_s, fn), name=name, daemon=True
        )
        thread.start()
        return handle

    @staticmethod
    def _loop(app, handle: TaskHandle, interval_s: float, fn: TickFn) -> None:
        with app.app_context():
            while not handle.wait(interval_s):
                try:
                    keep_going = fn()
                except Exception:  # noqa: BLE001
                    app.logger.exception("[scheduler] %s tick failed; stopping", handle.name)
                    keep_going = False
                if not keep_going:
                    handle.cancel()
