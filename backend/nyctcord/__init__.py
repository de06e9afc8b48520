"""NYCTcord subway alert poller."""

__version__ = "0.1.0"
