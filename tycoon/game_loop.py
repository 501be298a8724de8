"""Fixed-step simulation driver.

Frame time from the host is accumulated and drained in whole TICK_MS steps,
so simulation results do not depend on the frame rate. The loop never
sleeps or spawns threads; the host calls advance() (or pump()) once per frame.
"""
import logging
import time

logger = logging.getLogger(__name__)

# Frames longer than this are clamped so a stalled host cannot queue thousands of steps
MAX_FRAME_MS = 1000


def monotonic_ms():
    return time.monotonic() * 1000


class GameLoop:
    """Accumulator loop invoking tick callbacks at a fixed step."""

    def __init__(self, tick_ms=100, clock=None, max_frame_ms=MAX_FRAME_MS):
        self.tick_ms = tick_ms
        self.clock = clock or monotonic_ms
        self.max_frame_ms = max_frame_ms
        self._callbacks = []
        self._accumulator = 0.0
        self._running = False
        self._last_timestamp = None
        self.total_ticks = 0

    def on_tick(self, callback):
        """Register callback(step_ms). Returns an unsubscribe function."""
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def start(self):
        if self._running:
            return
        self._running = True
        self._accumulator = 0.0
        self._last_timestamp = self.clock()

    def stop(self):
        """Pause the loop. Pending partial-step time is discarded."""
        self._running = False
        self._accumulator = 0.0
        self._last_timestamp = None

    def is_running(self):
        return self._running

    @property
    def pending_ms(self):
        return self._accumulator

    def advance(self, frame_ms):
        """Add frame time and run every whole step it completes.

        Returns:
            Number of steps run.
        """
        if not self._running or frame_ms <= 0:
            return 0
        self._accumulator += min(frame_ms, self.max_frame_ms)
        steps = 0
        while self._accumulator >= self.tick_ms and self._running:
            self._accumulator -= self.tick_ms
            for callback in list(self._callbacks):
                callback(self.tick_ms)
            steps += 1
        self.total_ticks += steps
        return steps

    def pump(self):
        """Advance by the time elapsed on the clock since the last pump."""
        if not self._running:
            return 0
        now = self.clock()
        frame_ms = now - self._last_timestamp
        self._last_timestamp = now
        return self.advance(frame_ms)
