"""Errors raised by the arrival pipeline."""


class CatchTheBusError(Exception):
    """Base class for all arrival tracker errors."""


class ReferenceUnavailable(CatchTheBusError):
    """Static reference data failed to load or has not finished loading."""


class FeedFetchError(CatchTheBusError):
    """The live feed could not be fetched."""


class DecodeError(FeedFetchError):
    """The live feed payload does not match the GTFS-Realtime schema."""


class UnknownStopError(CatchTheBusError):
    """The requested stop key is not the one this server monitors."""
