"""Bounded join-retry protocol."""

import logging
import threading
import time
from typing import Callable, Optional

from .base import AbstractMeetingPage, MeetingHandle
from ..errors import JoinError

logger = logging.getLogger(__name__)


class JoinProtocol:
    """Gets a page into the meeting, retrying a fixed number of times.

    Each attempt makes sure the page still shows the meeting target, tries
    the primary join control, falls back to keyboard navigation, waits for
    the UI to settle and then checks presence independently.
    """

    def __init__(self,
                 page: AbstractMeetingPage,
                 target: str,
                 max_attempts: int = 3,
                 settle_seconds: float = 10.0,
                 cancel_event: Optional[threading.Event] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.page = page
        self.target = target
        self.max_attempts = max_attempts
        self.settle_seconds = settle_seconds
        self.cancel_event = cancel_event or threading.Event()
        self._sleep = sleep

    def run(self) -> MeetingHandle:
        """Run the protocol.

        Returns:
            Handle for the joined meeting

        Raises:
            JoinError: When every attempt failed or the join was cancelled
        """
        for attempt in range(1, self.max_attempts + 1):
            if self.cancel_event.is_set():
                raise JoinError("Join cancelled", attempts=attempt - 1)

            logger.info(f"🚪 Join attempt {attempt}/{self.max_attempts}...")
            try:
                if self._attempt():
                    logger.info(f"✅ Joined {self.target} on attempt {attempt}")
                    return MeetingHandle(self.page, self.target, attempts=attempt)
                logger.warning(f"Join attempt {attempt} did not reach the meeting")
            except Exception as e:
                logger.warning(f"Join attempt {attempt} failed: {e}")

            if attempt < self.max_attempts and not self.cancel_event.is_set():
                logger.info("Reloading meeting page before the next attempt...")
                try:
                    self.page.navigate(self.target)
                except Exception as e:
                    logger.warning(f"Reload before retry failed: {e}")

        raise JoinError(
            f"Could not join {self.target} after {self.max_attempts} attempts",
            attempts=self.max_attempts,
        )

    def _attempt(self) -> bool:
        if self.target not in self.page.current_url():
            logger.info("Redirected away from meeting URL, navigating back...")
            self.page.navigate(self.target)

        if not self.page.click_join():
            logger.info("Join button not found, trying keyboard navigation...")
            self.page.keyboard_join()

        if self.settle_seconds > 0:
            self._sleep(self.settle_seconds)

        return self.page.is_in_meeting()
