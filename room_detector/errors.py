from __future__ import annotations


class RoomDetectorError(Exception):
    """Base class for room detector failures."""


class CalibrationStateError(RoomDetectorError):
    """A calibration operation was called in the wrong state."""


class PersistenceError(RoomDetectorError):
    """The key-value layer could not be read or written."""


class ScanError(RoomDetectorError):
    """The scan source failed to produce results."""
