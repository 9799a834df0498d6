"""
Error Types

Every failure the synchronizer reports derives from ConfigSyncError so
callers can catch the whole family at the prompt or entry point.
"""


class ConfigSyncError(Exception):
    """Base class for all config-sync errors."""


class LoadError(ConfigSyncError):
    """The config file is missing, unreadable or not valid INI."""


class SaveError(ConfigSyncError):
    """The config file could not be written."""


class ConnectError(ConfigSyncError):
    """Outbound connection failed (unreachable, refused or timed out)."""


class SendError(ConfigSyncError):
    """Writing a snapshot to an established connection failed."""


class FrameError(ConfigSyncError):
    """An inbound frame could not be assembled; the message is dropped."""


class TruncatedMessageError(FrameError):
    """The peer closed before delivering the declared body length."""

    def __init__(self, expected: int, received: int):
        super().__init__(f"expected {expected} body bytes, received {received}")
        self.expected = expected
        self.received = received


class ParseError(FrameError):
    """The frame body could not be decoded as text."""


class ReceiveTimeoutError(FrameError):
    """The peer stalled while a frame was being read."""


class BindError(ConfigSyncError):
    """The inbound server could not bind or listen on its port."""
