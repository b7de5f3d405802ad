"""
Countdown for a tryout session and per-question elapsed-time measurement.

The session countdown is a small state machine (idle -> running -> expired,
or running -> cancelled). Streamlit cannot keep a live interval between
reruns, so each rerun calls sync() which replays the one-second ticks that
are due according to the clock.
"""
import logging
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
EXPIRED = "expired"
CANCELLED = "cancelled"

RESET = "reset"
ACCUMULATE = "accumulate"
TIMER_POLICIES = (RESET, ACCUMULATE)


class Countdown:
    """Whole-session time budget with one-second resolution."""

    def __init__(self, on_expire: Optional[Callable[[], None]] = None, clock: Callable[[], float] = time.monotonic):
        self.on_expire = on_expire
        self.clock = clock
        self.state = IDLE
        self.budget = 0
        self.remaining = 0
        self.expired_at: Optional[float] = None
        self._started_at: Optional[float] = None
        self._ticks = 0
        self._fired = False

    def start(self, budget_seconds: int) -> None:
        if self.state != IDLE:
            raise RuntimeError(f"Countdown already {self.state}")
        self.budget = max(0, int(budget_seconds))
        self.remaining = self.budget
        self._started_at = self.clock()
        self.state = RUNNING
        logger.debug("Countdown started: %ds", self.budget)
        if self.remaining <= 0:
            self._expire()

    def tick(self) -> str:
        """Decrement by one second. No-op unless running."""
        if self.state != RUNNING:
            return self.state
        self._ticks += 1
        self.remaining -= 1
        if self.remaining <= 0:
            self.remaining = 0
            self._expire()
        return self.state

    def sync(self, now: Optional[float] = None) -> str:
        """Apply every tick that is due since start according to the clock."""
        if self.state != RUNNING:
            return self.state
        now = self.clock() if now is None else now
        due = int(now - self._started_at) - self._ticks
        for _ in range(max(0, due)):
            if self.tick() != RUNNING:
                break
        return self.state

    def cancel(self) -> None:
        if self.state == RUNNING:
            self.state = CANCELLED
            logger.debug("Countdown cancelled with %ds left", self.remaining)

    def _expire(self) -> None:
        self.state = EXPIRED
        self.expired_at = self._started_at + self.budget
        if self._fired:
            return
        self._fired = True
        logger.info("Countdown expired after %ds", self.budget)
        if self.on_expire:
            self.on_expire()

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING


class QuestionTimer:
    """Measures seconds spent on the displayed question."""

    def __init__(self, policy: str = RESET, clock: Callable[[], float] = time.monotonic):
        if policy not in TIMER_POLICIES:
            raise ValueError(f"Unknown question timer policy: {policy!r}")
        self.policy = policy
        self.clock = clock
        self.current: Optional[int] = None
        self._started_at: Optional[float] = None
        self._spent: Dict[int, float] = {}

    def show(self, index: int) -> None:
        """Mark `index` as displayed. Re-showing the current index keeps the running measurement."""
        if index == self.current:
            return
        now = self.clock()
        if self.current is not None and self.policy == ACCUMULATE:
            self._spent[self.current] = self._spent.get(self.current, 0.0) + (now - self._started_at)
        self.current = index
        self._started_at = now

    def elapsed(self) -> int:
        if self._started_at is None:
            return 0
        running = self.clock() - self._started_at
        if self.policy == ACCUMULATE:
            running += self._spent.get(self.current, 0.0)
        return int(running)
