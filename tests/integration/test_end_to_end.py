"""Integration tests for a full controller run with local storage."""

import pytest
import io
import threading
import uuid
from pathlib import Path

from rich.console import Console

from meetscribe.audio.capture import AudioCapture
from meetscribe.browser.base import BrowserSession
from meetscribe.browser.join import JoinProtocol
from meetscribe.models.session import LifecycleState, SessionStatus
from meetscribe.services.controller import LifecycleController
from meetscribe.services.events import EventPublisher
from meetscribe.services.transcript_aggregator import TranscriptAggregator
from meetscribe.storage.file_manager import LocalArtifactStore, LocalTranscriptStore

from conftest import FakePage, FakeTranscriber, wait_until


class ProtocolBrowser(BrowserSession):
    """Runs the real join protocol against a scripted page."""

    def __init__(self, page: FakePage, attempts: int = 3):
        self.page = page
        self.attempts = attempts

    def join(self, target, cancel_event=None):
        return JoinProtocol(self.page, target, max_attempts=self.attempts, settle_seconds=0,
                            cancel_event=cancel_event).run()


@pytest.fixture
def components(temp_data_dir, mock_pyaudio, fast_settings):
    page = FakePage(fast_settings.meeting_target, in_meeting=[False, True])
    capture = AudioCapture(output_dir=str(Path(temp_data_dir) / "tmp" / "audio"), window_seconds=0.05)
    return {
        "settings": fast_settings,
        "page": page,
        "browser": ProtocolBrowser(page),
        "capture": capture,
        "transcript_store": LocalTranscriptStore(temp_data_dir),
        "artifact_store": LocalArtifactStore(temp_data_dir),
    }


@pytest.mark.integration
class TestEndToEnd:
    """End-to-end controller runs."""

    def test_one_segment_then_stop(self, temp_data_dir, components):
        """Test join, one transcribed segment and stop give one completed transcript."""
        transcriber = FakeTranscriber(["good evening everyone"], default="")
        topic = f"segments_{uuid.uuid4().hex}"
        state_topic = f"state_{uuid.uuid4().hex}"
        publisher = EventPublisher(segment_topic=topic, lifecycle_topic=state_topic)
        aggregator = TranscriptAggregator(topic, console=Console(file=io.StringIO()),
                                          lifecycle_topic=state_topic)
        controller = LifecycleController(
            settings=components["settings"],
            browser=components["browser"],
            capture=components["capture"],
            transcriber=transcriber,
            transcript_store=components["transcript_store"],
            artifact_store=components["artifact_store"],
            publisher=publisher,
        )
        result = {}
        worker = threading.Thread(target=lambda: result.setdefault("report", controller.start()))
        worker.start()

        assert wait_until(lambda: controller.report().total_transcript_count == 1)
        controller.stop("meeting over")
        worker.join(10.0)

        report = result["report"]
        assert report.final_state is LifecycleState.ENDED
        assert report.total_transcript_count == 1
        assert report.segments[0].text == "good evening everyone"

        record = components["transcript_store"].load_record(report.session_id)
        assert record["status"] == SessionStatus.COMPLETED.value
        assert record["segment_count"] == 1

        # Joined on the second attempt, closed once at teardown
        assert components["page"].calls.count("is_in_meeting") == 2
        assert components["page"].close_count == 1

        # Audio archived for the recorded segment, transient files removed
        assert len(list((Path(temp_data_dir) / "audio").glob("*.wav"))) == 1
        assert list((Path(temp_data_dir) / "tmp" / "audio").glob("*.wav")) == []

        assert aggregator.get_full_transcript() == "good evening everyone"
        assert aggregator.get_summary()["final_state"] == "ended"
        aggregator.close()

    def test_join_never_succeeds(self, temp_data_dir, components):
        """Test a meeting that never admits the bot fails without a session."""
        components["page"].in_meeting = [False]
        controller = LifecycleController(
            settings=components["settings"],
            browser=components["browser"],
            capture=components["capture"],
            transcriber=FakeTranscriber(),
            transcript_store=components["transcript_store"],
            artifact_store=components["artifact_store"],
        )

        report = controller.start()

        assert report.final_state is LifecycleState.FAILED
        assert components["page"].calls.count("is_in_meeting") == 3
        assert components["transcript_store"].list_sessions() == []
