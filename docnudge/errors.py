"""Exceptions raised by the reminder engine."""


class ReminderError(Exception):
    """Base class for reminder engine errors."""


class UnknownChannel(ReminderError):
    def __init__(self, channel: str):
        super().__init__(f"unknown channel '{channel}'")
        self.channel = channel


class ChannelUnavailable(ReminderError):
    """A delivery channel could not be prepared for this run (e.g. chat session not ready)."""


class TransportError(ReminderError):
    """The upstream provider rejected or failed a send."""


class ChatNotReady(ChannelUnavailable):
    """The chat session is not authenticated/connected."""
