"""Error taxonomy of the notification engine.

Only failures on the synchronous path ever reach a caller: direct reads, the
synchronous publish fallback, health probes and explicit cancellation. Background
failures are logged and dropped where they happen.
"""


class TelemetryError(Exception):
    """Base class for all engine errors."""


class StoreUnavailableError(TelemetryError):
    """The event log store could not be reached or timed out. Retryable."""


class InvalidFilterError(TelemetryError, ValueError):
    """A filter or enum value was rejected before any store access."""


class SubjectAccessError(TelemetryError):
    """The caller is not allowed to read the requested subject queue."""


class PollCancelledError(TelemetryError):
    """The caller went away (or cancelled) while a long-poll was waiting."""
