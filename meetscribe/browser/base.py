"""Browser-side interfaces used by the lifecycle controller."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from ..models.presence import PresenceSignal

logger = logging.getLogger(__name__)


class AbstractMeetingPage(ABC):
    """Primitive operations on a browser page showing the meeting."""

    @abstractmethod
    def current_url(self) -> str:
        pass

    @abstractmethod
    def navigate(self, target: str) -> None:
        """Load ``target`` and wait for the page to settle."""
        pass

    @abstractmethod
    def click_join(self) -> bool:
        """Try the primary join control.

        Returns:
            True if a join control was found and clicked
        """
        pass

    @abstractmethod
    def keyboard_join(self) -> None:
        """Fallback join: reach the join control with the keyboard."""
        pass

    @abstractmethod
    def is_in_meeting(self) -> bool:
        """Independent check that the call UI is showing."""
        pass

    @abstractmethod
    def check_presence(self) -> PresenceSignal:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class MeetingHandle:
    """A joined meeting: presence probes plus a one-shot close."""

    def __init__(self, page: AbstractMeetingPage, target: str, attempts: int = 1):
        self.page = page
        self.target = target
        self.attempts = attempts
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def check_presence(self) -> PresenceSignal:
        if self._closed:
            raise RuntimeError("Meeting handle is closed")
        return self.page.check_presence()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        logger.info("🔒 Closing meeting page...")
        self.page.close()


class BrowserSession(ABC):
    """Places the bot inside a live meeting."""

    @abstractmethod
    def join(self, target: str, cancel_event: Optional[threading.Event] = None) -> MeetingHandle:
        """Join the meeting at ``target``.

        Args:
            target: Meeting URL
            cancel_event: When set, no further join attempts are made

        Raises:
            JoinError: If the meeting could not be joined
        """
        pass
