class ChairMonitorError(Exception):
    """Base class for errors raised by this package."""


class CorruptHistoryError(ChairMonitorError):
    """The durable history artifact exists but could not be parsed."""


class PersistenceTimeout(ChairMonitorError):
    """A durable history write did not finish within the configured timeout."""
