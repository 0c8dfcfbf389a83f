"""Client-side study timer and break countdown.

The timer never writes the ledger on a tick. Crossing a minute boundary
only raises the pending coin count (and notifies listeners, e.g. for a coin
animation); the whole session is posted once, on stop.
"""
import math
import threading
import time
import uuid
from dataclasses import dataclass

from accrual import coins_earned
from client import ApiError
from logging_setup import get_logger
from settings import EARN_RATE, TICK_INTERVAL_SEC

log = get_logger("timer")

IDLE = "idle"
RUNNING = "running"
PAUSED = "paused"


@dataclass
class StopResult:
    duration: int
    coins_earned: int
    session: dict | None = None
    error: ApiError | None = None


class StudyTimer:
    def __init__(self, recorder, user_id, earn_rate=EARN_RATE, clock=time.monotonic):
        self.recorder = recorder
        self.user_id = user_id
        self.earn_rate = earn_rate
        self.clock = clock

        self.state = IDLE
        self.elapsed = 0.0  # seconds
        self._started_at = None
        self._minutes_seen = 0
        self._minute_listeners = []
        # tick() from the loop thread and stop() from the caller must not interleave
        self._lock = threading.RLock()

    def on_minute(self, callback):
        """Register ``callback(minute, coins)`` for each whole minute crossed."""
        self._minute_listeners.append(callback)

    @property
    def pending_coins(self) -> int:
        return self._minutes_seen * self.earn_rate

    @property
    def focus_progress(self) -> float:
        """Percent of the current minute completed (resets every minute)."""
        return (int(self.elapsed) % 60) / 60 * 100

    def start(self):
        with self._lock:
            if self.state == RUNNING:
                return
            if self.state == IDLE:
                self.elapsed = 0.0
                self._minutes_seen = 0
                self._started_at = self.clock()
            else:
                self._started_at = self.clock() - self.elapsed
            self.state = RUNNING
        # network call; tick() keeps running meanwhile
        self._refresh_streak()

    def _refresh_streak(self):
        update = getattr(self.recorder, "update_streak", None)
        if update is None:
            return
        try:
            update()
        except ApiError as e:
            # studying goes on without a streak refresh
            log.warning("streak update skipped: %s", e)

    def tick(self):
        with self._lock:
            if self.state != RUNNING:
                return self.elapsed
            self.elapsed = self.clock() - self._started_at
            minutes = int(self.elapsed // 60)
            while self._minutes_seen < minutes:
                self._minutes_seen += 1
                for callback in self._minute_listeners:
                    callback(self._minutes_seen, self.earn_rate)
            return self.elapsed

    def pause(self):
        with self._lock:
            if self.state != RUNNING:
                return
            self.tick()
            self.state = PAUSED

    def stop(self):
        """Finish the session: reset to idle, then post it once."""
        with self._lock:
            if self.state == IDLE:
                return None
            self.tick()
            duration = int(self.elapsed)
            self.state = IDLE
            self.elapsed = 0.0
            self._minutes_seen = 0
            self._started_at = None

        result = StopResult(duration, coins_earned(duration, self.earn_rate))
        if duration == 0:
            return result
        try:
            result.session = self.recorder.create_session(
                self.user_id, duration, result.coins_earned,
                idempotency_key=uuid.uuid4().hex,
            )
        except ApiError as e:
            log.error("could not record %ds session: %s", duration, e)
            result.error = e
        return result

    def run(self, stop_event, interval=TICK_INTERVAL_SEC):
        """Tick until ``stop_event`` is set. Meant for a background thread."""
        while not stop_event.wait(interval):
            self.tick()

    def take_break(self, option, countdown):
        """Buy ``option`` on the server, pause studying and start ``countdown``."""
        if countdown.active:
            return None
        purchase = self.recorder.purchase_break(option["id"])
        self.pause()
        countdown.start(option)
        return purchase


class BreakCountdown:
    def __init__(self, clock=time.monotonic, on_end=None):
        self.clock = clock
        self.on_end = on_end
        self.option = None
        self._ends_at = None

    @property
    def active(self) -> bool:
        return self.option is not None

    @property
    def remaining(self) -> int:
        if not self.active:
            return 0
        return max(0, math.ceil(self._ends_at - self.clock()))

    def start(self, option):
        self.option = option
        self._ends_at = self.clock() + option["duration"] * 60

    def tick(self):
        if self.active and self.remaining == 0:
            self.end()

    def end(self):
        if not self.active:
            return
        option = self.option
        self.option = None
        self._ends_at = None
        if self.on_end:
            self.on_end(option)
