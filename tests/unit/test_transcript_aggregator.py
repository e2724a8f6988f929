"""Unit tests for event publishing and the transcript aggregator."""

import pytest
import io
import uuid

from pubsub import pub
from rich.console import Console

from meetscribe.models.events import LifecycleEvent, SegmentEvent, SegmentOutcome
from meetscribe.models.session import LifecycleState
from meetscribe.services.events import EventPublisher
from meetscribe.services.transcript_aggregator import TranscriptAggregator


def unique_topic(prefix):
    return f"{prefix}_{uuid.uuid4().hex}"


@pytest.mark.unit
class TestTranscriptAggregator:
    """Test cases for TranscriptAggregator."""

    def test_collects_published_segments(self):
        """Test segments published through EventPublisher reach the aggregator."""
        topic = unique_topic("segments")
        publisher = EventPublisher(segment_topic=topic, lifecycle_topic=unique_topic("state"))
        output = io.StringIO()
        aggregator = TranscriptAggregator(topic, console=Console(file=output, width=120))

        publisher.publish_segment(SegmentEvent(1, SegmentOutcome.RECORDED, text="hello", sequence_number=1))
        publisher.publish_segment(SegmentEvent(2, SegmentOutcome.NO_SPEECH))
        publisher.publish_segment(SegmentEvent(3, SegmentOutcome.RECORDED, text="world", sequence_number=2))

        summary = aggregator.get_summary()
        assert summary["count"] == 3
        assert summary["outcomes"]["recorded"] == 2
        assert summary["outcomes"]["no_speech"] == 1
        assert aggregator.get_full_transcript() == "hello world"
        assert "#1: hello" in output.getvalue()
        aggregator.close()

    def test_print_summary(self):
        """Test the shutdown summary lists segments and the full transcript."""
        topic = unique_topic("segments")
        output = io.StringIO()
        aggregator = TranscriptAggregator(topic, console=Console(file=output, width=120))
        pub.sendMessage(topic, event=SegmentEvent(1, SegmentOutcome.TRANSCRIPTION_FAILED, error="rate limited"))
        pub.sendMessage(topic, event=SegmentEvent(2, SegmentOutcome.RECORDED, text="agenda", sequence_number=1))

        aggregator.print_summary()

        text = output.getvalue()
        assert "transcription_failed" in text
        assert "rate limited" in text
        assert "Full transcript" in text
        aggregator.close()

    def test_print_summary_without_transcript(self):
        """Test an empty run says nothing was recorded."""
        output = io.StringIO()
        aggregator = TranscriptAggregator(unique_topic("segments"), console=Console(file=output))

        aggregator.print_summary()

        assert "No transcript recorded" in output.getvalue()
        aggregator.close()


@pytest.mark.unit
class TestEventPublisher:
    """Test cases for EventPublisher."""

    def test_lifecycle_topic(self):
        """Test lifecycle events go to their own topic."""
        topic = unique_topic("state")
        received = []

        def listener(event):
            received.append(event)

        pub.subscribe(listener, topic)
        publisher = EventPublisher(segment_topic=unique_topic("segments"), lifecycle_topic=topic)
        publisher.publish_lifecycle(LifecycleEvent(LifecycleState.ACTIVE, LifecycleState.JOINING, "s1"))

        assert [e.state for e in received] == [LifecycleState.ACTIVE]
        pub.unsubscribe(listener, topic)

    def test_aggregator_follows_lifecycle(self):
        """Test the aggregator prints state changes and keeps the final state."""
        segments, states = unique_topic("segments"), unique_topic("state")
        publisher = EventPublisher(segment_topic=segments, lifecycle_topic=states)
        output = io.StringIO()
        aggregator = TranscriptAggregator(segments, console=Console(file=output, width=120),
                                          lifecycle_topic=states)

        publisher.publish_lifecycle(LifecycleEvent(LifecycleState.ACTIVE, LifecycleState.JOINING, "s1"))
        publisher.publish_lifecycle(LifecycleEvent(LifecycleState.FAILED, LifecycleState.ACTIVE, "s1",
                                                   reason="join failed: [timeout]"))

        assert [e.state for e in aggregator.states] == [LifecycleState.ACTIVE, LifecycleState.FAILED]
        assert aggregator.get_summary()["final_state"] == "failed"
        assert "join failed: [timeout]" in output.getvalue()
        aggregator.close()
