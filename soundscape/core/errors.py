class SoundscapeError(Exception):
    """Base class for every recoverable error raised by the sequencer core."""


class DeviceUnavailableError(SoundscapeError):
    """No audio output stream could be opened. Safe to retry on the next user action."""


class TimelineFormatError(SoundscapeError):
    """Persisted timeline data is malformed; nothing from it was applied."""


class TransportStateError(SoundscapeError):
    """A transport command arrived in a state that does not accept it."""


class SampleRejectedError(SoundscapeError):
    """A user supplied audio file breached the ingestion caps or could not be decoded."""
