"""Services layer: lifecycle controller, segment pipeline and monitors."""

from .controller import LifecycleController
from .events import EventPublisher, SEGMENT_TOPIC, LIFECYCLE_TOPIC
from .monitors import LivenessMonitor, ActivityMonitor, ParticipantMonitor
from .segment_pipeline import SegmentPipeline
from .transcript_aggregator import TranscriptAggregator

__all__ = [
    "LifecycleController",
    "EventPublisher",
    "SEGMENT_TOPIC",
    "LIFECYCLE_TOPIC",
    "LivenessMonitor",
    "ActivityMonitor",
    "ParticipantMonitor",
    "SegmentPipeline",
    "TranscriptAggregator",
]
