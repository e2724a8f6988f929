"""Pub/sub publishing of segment and lifecycle events."""

import logging
from pubsub import pub

from ..models.events import LifecycleEvent, SegmentEvent

logger = logging.getLogger(__name__)

SEGMENT_TOPIC = "segment.processed"
LIFECYCLE_TOPIC = "lifecycle.state"


class EventPublisher:
    """Publishes controller events using pubsub.pub."""

    def __init__(self, segment_topic: str = SEGMENT_TOPIC, lifecycle_topic: str = LIFECYCLE_TOPIC):
        """Initialize event publisher.

        Args:
            segment_topic: Topic for per-segment pipeline results
            lifecycle_topic: Topic for controller state transitions
        """
        self.segment_topic = segment_topic
        self.lifecycle_topic = lifecycle_topic
        logger.info(f"EventPublisher initialized with topics: {segment_topic}, {lifecycle_topic}")

    def publish_segment(self, event: SegmentEvent) -> None:
        pub.sendMessage(self.segment_topic, event=event)
        logger.debug(f"Published segment event #{event.segment_index}: {event.outcome.value}")

    def publish_lifecycle(self, event: LifecycleEvent) -> None:
        pub.sendMessage(self.lifecycle_topic, event=event)
        logger.debug(f"Published lifecycle event: {event.state.value}")
