"""Meeting lifecycle controller.

Owns the lifecycle state and the Session. The join protocol and the segment
pipeline run on the thread that calls ``start()``; the two liveness monitors
run on their own threads and, like any external caller, can only request a
stop.
"""

import logging
import threading
from datetime import datetime
from typing import List, Optional

from ..audio.capture import AudioCapture
from ..browser.base import BrowserSession, MeetingHandle
from ..config import ControllerSettings
from ..errors import JoinError, PersistenceError, SessionClosedError
from ..models.events import LifecycleEvent, SegmentOutcome
from ..models.presence import PresenceSignal
from ..models.report import SessionReport
from ..models.session import LifecycleState, Session, SessionStatus, TranscriptSegment
from ..storage.base import AbstractArtifactStore, AbstractTranscriptStore
from ..transcription.base import AbstractTranscriptionBackend
from .events import EventPublisher
from .monitors import ActivityMonitor, LivenessMonitor, ParticipantMonitor
from .segment_pipeline import SegmentPipeline

logger = logging.getLogger(__name__)


class LifecycleController:
    """Drives one meeting from join to teardown.

    States go ``idle -> joining -> active -> stopping -> ended``, with
    ``failed`` reachable from joining or active. ``stop()`` may be called any
    number of times from any thread; the first call wins and runs teardown
    exactly once.
    """

    def __init__(self,
                 settings: ControllerSettings,
                 browser: BrowserSession,
                 capture: AudioCapture,
                 transcriber: AbstractTranscriptionBackend,
                 transcript_store: AbstractTranscriptStore,
                 artifact_store: AbstractArtifactStore,
                 publisher: Optional[EventPublisher] = None):
        """Initialize the controller.

        Args:
            settings: Validated controller settings
            browser: Browser session used to join the meeting
            capture: Audio capture producing segment files
            transcriber: Speech-to-text backend
            transcript_store: Store holding the session record
            artifact_store: Store receiving segment audio
            publisher: Optional event publisher for pipeline and state events
        """
        self.settings = settings
        self.browser = browser
        self.transcript_store = transcript_store
        self.publisher = publisher

        self.pipeline = SegmentPipeline(
            capture=capture,
            transcriber=transcriber,
            artifact_store=artifact_store,
            append_segment=self.append_segment,
            min_segment_bytes=settings.min_segment_bytes,
            retry_backoff=settings.capture_retry_backoff,
            publisher=publisher,
        )

        self._lock = threading.RLock()
        self._done = threading.Event()
        self._join_cancel = threading.Event()

        self._state = LifecycleState.IDLE
        self._session: Optional[Session] = None
        self._handle: Optional[MeetingHandle] = None
        self._monitors: List[LivenessMonitor] = []
        self._stop_reason: Optional[str] = None
        self._started_at: Optional[datetime] = None
        self._ended_at: Optional[datetime] = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def is_active(self) -> bool:
        return self._state is LifecycleState.ACTIVE

    def start(self) -> Optional[SessionReport]:
        """Join the meeting and transcribe it until stopped.

        Blocks until teardown has finished.

        Returns:
            Final report, or None if the controller was not idle
        """
        with self._lock:
            if self._state is not LifecycleState.IDLE:
                logger.warning(f"start() ignored, controller is {self._state.value}")
                return None
            self._started_at = datetime.now()
            self._set_state(LifecycleState.JOINING)

        target = self.settings.meeting_target
        logger.info(f"🚀 Joining meeting {target}")
        try:
            handle = self.browser.join(target, cancel_event=self._join_cancel)
        except JoinError as e:
            logger.error(f"❌ Join failed after {e.attempts} attempts: {e}")
            self._abort_join(f"join failed: {e}")
            return self.report()
        except Exception as e:
            logger.exception(f"❌ Unexpected error while joining: {e}")
            self._abort_join(f"join failed: {type(e).__name__}: {e}")
            return self.report()

        with self._lock:
            self._handle = handle
            stopping = self._state is LifecycleState.STOPPING
        if stopping:
            logger.info("Stop requested while joining, leaving the meeting")
            self._complete_stop()
            return self.report()

        try:
            session_id = self.transcript_store.create_session(target)
        except PersistenceError as e:
            logger.error(f"❌ Could not create session record: {e}")
            self._abort_join(f"session record not created: {e}")
            return self.report()
        except Exception as e:
            logger.exception(f"❌ Unexpected error creating session record: {e}")
            self._abort_join(f"session record not created: {type(e).__name__}: {e}")
            return self.report()

        with self._lock:
            self._session = Session(
                session_id=session_id,
                target=target,
                activity_timeout=self.settings.activity_timeout,
                grace_period=self.settings.grace_period,
                state=self._state,
            )
            if self._state is LifecycleState.JOINING:
                self._set_state(LifecycleState.ACTIVE)
                self._start_monitors()
            else:
                stopping = True
        if stopping:
            # The record exists by now, so teardown still finalizes it
            self._complete_stop()
            return self.report()

        logger.info(f"✅ Session {session_id} active")
        try:
            self.pipeline.run(self.is_active)
        except Exception as e:
            logger.exception(f"Segment pipeline crashed: {e}")
            self._fail(f"segment pipeline crashed: {e}")

        self._done.wait()
        return self.report()

    def stop(self, reason: str = "stop requested") -> None:
        """Request the end of the session. Safe to call repeatedly and concurrently."""
        with self._lock:
            state = self._state
            if state in (LifecycleState.STOPPING, LifecycleState.ENDED, LifecycleState.FAILED):
                logger.debug(f"stop('{reason}') ignored, controller is {state.value}")
                return

            self._stop_reason = reason
            logger.info(f"🛑 Stopping: {reason}")
            if state is LifecycleState.IDLE:
                self._ended_at = datetime.now()
                self._set_state(LifecycleState.ENDED)
                self._done.set()
                return

            self._set_state(LifecycleState.STOPPING)
            self._join_cancel.set()
            if state is LifecycleState.JOINING:
                # start() owns the half-joined resources and finishes teardown
                return

        self._complete_stop()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until teardown has finished.

        Returns:
            True if the controller reached a terminal state
        """
        return self._done.wait(timeout)

    def append_segment(self, text: str) -> TranscriptSegment:
        """Persist one transcript segment. The only write path into the session.

        Raises:
            SessionClosedError: If the session no longer accepts segments
            PersistenceError: If the store rejected the append
        """
        with self._lock:
            if self._state is not LifecycleState.ACTIVE or self._session is None:
                raise SessionClosedError(f"Session is {self._state.value}, segment dropped")

            session = self._session
            segment = self.transcript_store.append_segment(session.session_id, text)
            try:
                session.add_segment(segment)
            except ValueError as e:
                raise PersistenceError(f"Store returned an unexpected sequence number: {e}") from e
            return segment

    def report(self) -> SessionReport:
        """Snapshot of the run so far; final once ``wait()`` returns."""
        with self._lock:
            session = self._session
            return SessionReport(
                target=self.settings.meeting_target,
                final_state=self._state,
                session_id=session.session_id if session else None,
                stop_reason=self._stop_reason,
                segments=list(session.segments) if session else [],
                segments_attempted=self.pipeline.segments_attempted,
                started_at=self._started_at,
                ended_at=self._ended_at,
            )

    def _read_presence(self, probe_name: str) -> Optional[PresenceSignal]:
        """Presence from the meeting page, or None if it could not be read."""
        handle = self._handle
        if handle is None:
            return None
        try:
            return handle.check_presence()
        except Exception as e:
            # A crashed or closed page must still let the monitors escalate
            logger.warning(f"{probe_name}: presence check failed, counting as not live: {e}")
            return None

    def _probe_activity(self) -> bool:
        """Live while a transcript arrived within the activity timeout.

        Only recorded segments refresh activity. The page signal can only
        veto: a failed check or an ended meeting counts as not live.
        """
        signal = self._read_presence("Activity probe")
        now = datetime.now()
        with self._lock:
            if self._state is not LifecycleState.ACTIVE or self._session is None:
                return True
            session = self._session
            keep_open = session.check_activity(now)
            recently_active = session.is_recently_active(now)
            remaining = session.grace_remaining(now)

        if signal is not None and not signal.activity_detected:
            logger.info("Meeting page reports the call is over")
        if remaining is not None and keep_open:
            logger.info(f"No recent activity, grace window closes in {remaining.total_seconds():.0f}s")
        if not keep_open:
            self.stop("grace window elapsed without activity")
        return recently_active and signal is not None and signal.activity_detected

    def _probe_participants(self) -> bool:
        signal = self._read_presence("Participant probe")
        if signal is None:
            return False
        logger.debug(f"Participants in meeting: {signal.participant_count}")
        return signal.others_present

    def _start_monitors(self) -> None:
        self._monitors = [
            ActivityMonitor(
                self._probe_activity,
                self.stop,
                interval=self.settings.activity_interval,
                threshold=self.settings.activity_threshold,
            ),
            ParticipantMonitor(
                self._probe_participants,
                self.stop,
                interval=self.settings.participant_interval,
                threshold=self.settings.participant_threshold,
            ),
        ]
        for monitor in self._monitors:
            monitor.start()

    def _set_state(self, state: LifecycleState) -> None:
        previous = self._state
        self._state = state
        if self._session is not None:
            self._session.state = state
        logger.info(f"State: {previous.value} -> {state.value}")
        if self.publisher:
            self.publisher.publish_lifecycle(LifecycleEvent(
                state=state,
                previous_state=previous,
                session_id=self._session.session_id if self._session else None,
                reason=self._stop_reason,
            ))

    def _abort_join(self, reason: str) -> None:
        if not self._fail(reason):
            # stop() arrived first and left the finish to us
            self._complete_stop()

    def _fail(self, reason: str) -> bool:
        with self._lock:
            if self._state not in (LifecycleState.JOINING, LifecycleState.ACTIVE):
                return False
            self._stop_reason = reason
            self._set_state(LifecycleState.FAILED)
        self._join_cancel.set()
        self._teardown(SessionStatus.FAILED)
        return True

    def _complete_stop(self) -> None:
        self._teardown(SessionStatus.COMPLETED)

    def _teardown(self, status: SessionStatus) -> None:
        """Release every resource, attempting each step even if another fails."""
        steps = [
            ("cancel monitors", self._cancel_monitors),
            ("cancel capture", self.pipeline.cancel_capture),
            ("close meeting", self._close_handle),
            ("finalize session", lambda: self._finalize(status)),
        ]
        for name, step in steps:
            try:
                logger.info(f"Teardown: {name}")
                step()
            except Exception as e:
                logger.error(f"Teardown step '{name}' failed: {e}")

        with self._lock:
            self._ended_at = datetime.now()
            if self._state is LifecycleState.STOPPING:
                self._set_state(LifecycleState.ENDED)
        self._log_report()
        self._done.set()

    def _cancel_monitors(self) -> None:
        with self._lock:
            monitors = list(self._monitors)
        for monitor in monitors:
            monitor.cancel()

    def _close_handle(self) -> None:
        with self._lock:
            handle = self._handle
        if handle is not None:
            handle.close()

    def _finalize(self, status: SessionStatus) -> None:
        session = self._session
        if session is None:
            logger.info("No session record to finalize")
            return
        self.transcript_store.set_status(session.session_id, status)

    def _log_report(self) -> None:
        report = self.report()
        logger.info(
            f"📊 Session report: state={report.final_state.value}, "
            f"transcripts={report.total_transcript_count}, "
            f"segments attempted={report.segments_attempted}, "
            f"duration={report.duration_seconds:.0f}s, reason={report.stop_reason}"
        )
        if report.session_id and report.total_transcript_count == 0:
            outcomes = self.pipeline.outcomes
            logger.warning("⚠️  No transcripts were recorded. Possible causes:")
            logger.warning("   - nobody spoke, or meeting audio did not reach the capture device")
            if outcomes[SegmentOutcome.REJECTED]:
                logger.warning(f"   - {outcomes[SegmentOutcome.REJECTED]} segment files were too "
                               f"small or unreadable (silent or misconfigured input device)")
            if outcomes[SegmentOutcome.NO_SPEECH]:
                logger.warning(f"   - {outcomes[SegmentOutcome.NO_SPEECH]} segments contained no speech")
            if outcomes[SegmentOutcome.TRANSCRIPTION_FAILED]:
                logger.warning(f"   - {outcomes[SegmentOutcome.TRANSCRIPTION_FAILED]} segments "
                               f"failed transcription (check credentials and quota)")
            if outcomes[SegmentOutcome.CAPTURE_FAILED]:
                logger.warning(f"   - {outcomes[SegmentOutcome.CAPTURE_FAILED]} captures failed")
            if outcomes[SegmentOutcome.FAILED]:
                logger.warning(f"   - {outcomes[SegmentOutcome.FAILED]} segments hit an unexpected error (see log)")
