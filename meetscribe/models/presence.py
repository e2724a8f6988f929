"""Presence signals reported by the meeting page."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PresenceSignal:
    """Coarse liveness information read from the meeting UI."""
    activity_detected: bool  # False once the call UI is gone or an ended banner shows
    participant_count: int

    @property
    def others_present(self) -> bool:
        """True if anyone besides the bot is in the call."""
        return self.participant_count > 1
