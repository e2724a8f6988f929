"""Periodic liveness monitors that ask the controller to stop."""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class LivenessMonitor:
    """Runs a boolean probe on a fixed interval and counts consecutive misses.

    A live probe resets the counter; a miss increments it. When the counter
    reaches ``threshold`` the monitor calls ``on_escalate`` exactly once and
    stops probing. A probe that raises is logged and leaves the counter as it
    was.
    """

    def __init__(self,
                 name: str,
                 interval: float,
                 threshold: int,
                 probe: Callable[[], bool],
                 on_escalate: Callable[[str], None]):
        self.name = name
        self.interval = interval
        self.threshold = threshold
        self.probe = probe
        self.on_escalate = on_escalate

        self._counter = 0
        self._escalated = False
        self._lock = threading.Lock()
        self.cancel_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

    @property
    def counter(self) -> int:
        with self._lock:
            return self._counter

    @property
    def escalated(self) -> bool:
        return self._escalated

    def probe_once(self) -> bool:
        """Run the probe a single time and update the counter.

        Returns:
            True if this call escalated
        """
        if self._escalated or self.cancel_event.is_set():
            return False

        try:
            live = bool(self.probe())
        except Exception as e:
            logger.warning(f"{self.name} probe failed, counter unchanged: {e}")
            return False

        with self._lock:
            if live:
                if self._counter:
                    logger.info(f"{self.name}: live again, counter reset from {self._counter}")
                self._counter = 0
                return False

            self._counter += 1
            logger.info(f"{self.name}: miss {self._counter}/{self.threshold}")
            if self._counter < self.threshold or self._escalated:
                return False
            self._escalated = True

        reason = f"{self.name}: {self.threshold} consecutive misses"
        logger.warning(f"⚠️  {reason}, requesting stop")
        self.on_escalate(reason)
        return True

    def start(self) -> None:
        """Start probing on a daemon thread."""
        if self.thread is not None:
            raise RuntimeError(f"{self.name} already started")
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.name = self.name
        self.thread.start()
        logger.info(f"{self.name} started: every {self.interval:.1f}s, threshold {self.threshold}")

    def _run(self) -> None:
        while not self.cancel_event.wait(self.interval):
            if self.probe_once() or self._escalated:
                break
        logger.debug(f"{self.name} loop exited")

    def cancel(self, timeout: float = 5.0) -> None:
        """Stop probing. Joins the thread unless called from it."""
        self.cancel_event.set()
        thread = self.thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"{self.name} thread did not exit within {timeout}s")
        logger.info(f"{self.name} cancelled")


class ActivityMonitor(LivenessMonitor):
    """Checks for recent meeting activity."""

    def __init__(self, probe: Callable[[], bool], on_escalate: Callable[[str], None],
                 interval: float = 20.0, threshold: int = 2):
        super().__init__("ActivityMonitor", interval, threshold, probe, on_escalate)


class ParticipantMonitor(LivenessMonitor):
    """Checks that someone other than the bot is still in the meeting."""

    def __init__(self, probe: Callable[[], bool], on_escalate: Callable[[str], None],
                 interval: float = 60.0, threshold: int = 5):
        super().__init__("ParticipantMonitor", interval, threshold, probe, on_escalate)
