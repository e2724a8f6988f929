"""Playwright-based meeting browser.

Playwright's sync API is bound to the thread that started it, while the
liveness monitors probe the page from their own threads. Every call is
therefore funnelled through a single-worker executor that owns the
Playwright instance.
"""

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional

from playwright.sync_api import sync_playwright, Error as PlaywrightError

from .base import AbstractMeetingPage, BrowserSession, MeetingHandle
from .join import JoinProtocol
from ..errors import JoinError
from ..models.presence import PresenceSignal

logger = logging.getLogger(__name__)

BROWSER_ARGS = [
    "--use-fake-ui-for-media-stream",
    "--use-fake-device-for-media-stream",
    "--disable-blink-features=AutomationControlled",
    "--disable-notifications",
    "--disable-infobars",
    "--no-sandbox",
    "--window-size=1280,800",
]

JOIN_BUTTON_JS = """
() => {
    const buttons = Array.from(document.querySelectorAll('button'));
    for (const button of buttons) {
        const text = button.textContent || '';
        if (text.includes('Join now') || text.includes('Ask to join')) {
            button.click();
            return true;
        }
    }
    return false;
}
"""

IN_MEETING_JS = """
() => document.querySelector('[data-meeting-title]') !== null ||
      document.querySelector('[aria-label*="Leave call"]') !== null ||
      document.querySelector('[aria-label*="call"]') !== null
"""

PARTICIPANT_LABELS_JS = """
() => Array.from(document.querySelectorAll('[aria-label*="participant"], [aria-label*="Participant"]'))
        .map(el => (el.getAttribute('aria-label') || '') + ' ' + (el.textContent || ''))
"""

ENDED_BANNER_JS = """
() => {
    const text = document.body ? document.body.innerText : '';
    return /You left the meeting|The meeting has ended|You've been removed|Return to home screen/i.test(text);
}
"""

_COUNT_RE = re.compile(r"\d+")


def parse_participant_count(labels) -> int:
    """Largest number found in the participant widgets, the bot included."""
    counts = []
    for label in labels:
        counts.extend(int(match) for match in _COUNT_RE.findall(label or ""))
    return max(counts) if counts else 1


class PlaywrightMeetingPage(AbstractMeetingPage):
    """A Chromium page with a persistent profile, driven from one thread."""

    def __init__(self, profile_directory: Optional[str] = None, headless: bool = True,
                 navigation_timeout_ms: int = 60_000, keyboard_delay: float = 2.0):
        self.profile_directory = Path(profile_directory or "./data/browser-profile")
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self.keyboard_delay = keyboard_delay

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="playwright")
        self._playwright = None
        self._context = None
        self._page = None

    def _run(self, fn: Callable[[], Any], timeout: Optional[float] = None) -> Any:
        return self._executor.submit(fn).result(timeout=timeout)

    def launch(self) -> None:
        """Start Playwright and open a page in the persistent profile."""
        def _launch():
            logger.info(f"Launching Chromium with profile {self.profile_directory}")
            self.profile_directory.mkdir(parents=True, exist_ok=True)
            self._playwright = sync_playwright().start()
            self._context = self._playwright.chromium.launch_persistent_context(
                str(self.profile_directory),
                headless=self.headless,
                args=BROWSER_ARGS,
                ignore_default_args=["--enable-automation"],
            )
            self._context.set_default_navigation_timeout(self.navigation_timeout_ms)
            pages = self._context.pages
            self._page = pages[0] if pages else self._context.new_page()
        self._run(_launch)

    def current_url(self) -> str:
        return self._run(lambda: self._page.url)

    def navigate(self, target: str) -> None:
        logger.info(f"🎯 Navigating to {target}")
        self._run(lambda: self._page.goto(target, wait_until="networkidle"))

    def click_join(self) -> bool:
        return bool(self._run(lambda: self._page.evaluate(JOIN_BUTTON_JS)))

    def keyboard_join(self) -> None:
        def _keyboard():
            for _ in range(5):
                self._page.keyboard.press("Tab")
                self._page.wait_for_timeout(self.keyboard_delay * 1000)
            self._page.keyboard.press("Enter")
        self._run(_keyboard)

    def is_in_meeting(self) -> bool:
        return bool(self._run(lambda: self._page.evaluate(IN_MEETING_JS)))

    def check_presence(self) -> PresenceSignal:
        def _probe():
            in_call = bool(self._page.evaluate(IN_MEETING_JS))
            ended = bool(self._page.evaluate(ENDED_BANNER_JS))
            labels = self._page.evaluate(PARTICIPANT_LABELS_JS) or []
            return PresenceSignal(
                activity_detected=in_call and not ended,
                participant_count=parse_participant_count(labels) if in_call else 0,
            )
        return self._run(_probe, timeout=30.0)

    def close(self) -> None:
        def _close():
            try:
                if self._context is not None:
                    self._context.close()
            finally:
                self._context = None
                self._page = None
                if self._playwright is not None:
                    self._playwright.stop()
                    self._playwright = None
        try:
            self._run(_close, timeout=30.0)
        finally:
            self._executor.shutdown(wait=False)


class PlaywrightBrowserSession(BrowserSession):
    """Joins meetings with a logged-in Chromium profile."""

    def __init__(self, profile_directory: Optional[str] = None, headless: bool = True,
                 join_attempts: int = 3, settle_seconds: float = 10.0):
        self.profile_directory = profile_directory
        self.headless = headless
        self.join_attempts = join_attempts
        self.settle_seconds = settle_seconds

    def join(self, target: str, cancel_event: Optional[threading.Event] = None) -> MeetingHandle:
        page = PlaywrightMeetingPage(self.profile_directory, headless=self.headless)
        try:
            page.launch()
            page.navigate(target)
            protocol = JoinProtocol(
                page,
                target,
                max_attempts=self.join_attempts,
                settle_seconds=self.settle_seconds,
                cancel_event=cancel_event,
            )
            return protocol.run()
        except PlaywrightError as e:
            page.close()
            raise JoinError(f"Browser error while joining {target}: {e}") from e
        except Exception:
            page.close()
            raise
