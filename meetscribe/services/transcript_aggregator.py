"""Console aggregator for transcript segments.

Subscribes to the segment and lifecycle topics, keeps every pipeline result
and state change, and prints a rich summary on shutdown: a per-segment table
followed by the full text of the recorded segments.
"""

import logging
import threading
from collections import Counter
from typing import Any, Dict, List, Optional

from pubsub import pub
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..models.events import LifecycleEvent, SegmentEvent, SegmentOutcome
from ..models.session import LifecycleState
from .events import LIFECYCLE_TOPIC, SEGMENT_TOPIC

logger = logging.getLogger(__name__)


class TranscriptAggregator:
    """Aggregates segment events and prints them on shutdown."""

    def __init__(self, topic: str = SEGMENT_TOPIC, console: Optional[Console] = None,
                 lifecycle_topic: Optional[str] = LIFECYCLE_TOPIC):
        """Initialize transcript aggregator.

        Args:
            topic: Topic carrying SegmentEvents
            console: Rich console to print to (a default one if omitted)
            lifecycle_topic: Topic carrying LifecycleEvents, None to ignore them
        """
        self.topic = topic
        self.console = console or Console()
        self.lifecycle_topic = lifecycle_topic
        self.events: List[SegmentEvent] = []
        self.states: List[LifecycleEvent] = []
        self.lock = threading.RLock()

        # pypubsub keeps a weak reference to the bound method
        pub.subscribe(self._on_segment, topic)
        if lifecycle_topic:
            pub.subscribe(self._on_lifecycle, lifecycle_topic)
        logger.info(f"TranscriptAggregator initialized - subscribed to {topic}")

    def _on_segment(self, event: SegmentEvent) -> None:
        with self.lock:
            self.events.append(event)
        if event.outcome is SegmentOutcome.RECORDED:
            self.console.print(f"📝 #{event.sequence_number}: {event.text}", style="green")
        else:
            logger.debug(f"Segment {event.segment_index} not recorded: {event.outcome.value}")

    def _on_lifecycle(self, event: LifecycleEvent) -> None:
        with self.lock:
            self.states.append(event)
        style = "bold red" if event.state is LifecycleState.FAILED else "cyan"
        message = f"● {event.state.value}"
        if event.reason and event.state in (LifecycleState.STOPPING, LifecycleState.FAILED):
            message += f" ({event.reason})"
        self.console.print(message, style=style, markup=False)

    def get_summary(self) -> Dict[str, Any]:
        """Counts per outcome plus the recorded events."""
        with self.lock:
            counts = Counter(event.outcome for event in self.events)
            return {
                "count": len(self.events),
                "final_state": self.states[-1].state.value if self.states else None,
                "outcomes": {outcome.value: counts[outcome] for outcome in SegmentOutcome},
                "recorded": [e for e in self.events if e.outcome is SegmentOutcome.RECORDED],
            }

    def get_full_transcript(self) -> str:
        with self.lock:
            return " ".join(
                event.text for event in self.events
                if event.outcome is SegmentOutcome.RECORDED and event.text
            )

    def print_summary(self) -> None:
        """Print a summary of all segments seen so far."""
        summary = self.get_summary()

        table = Table(title="🎙️  Segments")
        table.add_column("#", justify="right")
        table.add_column("Outcome")
        table.add_column("Text / error", overflow="fold")
        with self.lock:
            events = list(self.events)
        for event in events:
            style = "green" if event.outcome is SegmentOutcome.RECORDED else "yellow"
            detail = event.text if event.outcome is SegmentOutcome.RECORDED else (event.error or "")
            table.add_row(str(event.segment_index), f"[{style}]{event.outcome.value}[/{style}]", detail)
        self.console.print(table)

        if summary["recorded"]:
            self.console.print(Panel(self.get_full_transcript(), title="📄 Full transcript"))
        else:
            self.console.print("No transcript recorded.", style="bold yellow")

    def close(self) -> None:
        pub.unsubscribe(self._on_segment, self.topic)
        if self.lifecycle_topic:
            pub.unsubscribe(self._on_lifecycle, self.lifecycle_topic)
