"""meetscribe - unattended meeting capture bot."""

__version__ = "0.1.0"
