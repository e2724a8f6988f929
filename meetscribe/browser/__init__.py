"""Browser automation for getting into meetings."""

from .base import AbstractMeetingPage, BrowserSession, MeetingHandle
from .join import JoinProtocol

__all__ = [
    "AbstractMeetingPage",
    "BrowserSession",
    "MeetingHandle",
    "JoinProtocol",
]
