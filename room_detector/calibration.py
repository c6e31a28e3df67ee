from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .errors import CalibrationStateError
from .models import DEFAULT_LOCATIONS, Fingerprint, Reading
from .storage import FingerprintStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationProgress:
    active: bool
    room: Optional[str]
    location: Optional[str]
    step: int
    total: int


class CalibrationController:
    """Walks an operator through sampling each location of a room, in order.

    Idle while ``target_room`` is None, Calibrating otherwise.
    """

    def __init__(self, store: FingerprintStore, locations: Sequence[str] = DEFAULT_LOCATIONS) -> None:
        if not locations:
            raise ValueError("at least one calibration location is required")
        self.store = store
        self.locations: Tuple[str, ...] = tuple(locations)
        self.target_room: Optional[str] = None
        self.location_index = 0

    @property
    def is_calibrating(self) -> bool:
        return self.target_room is not None

    @property
    def current_location(self) -> Optional[str]:
        if not self.is_calibrating:
            return None
        return self.locations[self.location_index]

    def start_calibration(self, room: str) -> str:
        name = (room or "").strip()
        if not name:
            raise CalibrationStateError("Room name must not be empty")
        if self.is_calibrating:
            logger.info(
                "Abandoning calibration of %r at %s to start %r",
                self.target_room,
                self.current_location,
                name,
            )
        self.target_room = name
        self.location_index = 0
        logger.info("Calibrating %r: %d locations", name, len(self.locations))
        return self.locations[0]

    def capture_location(self, reading: Reading) -> Optional[str]:
        """Store ``reading`` for the current location and advance.

        Returns the next location label, or None once the last location has
        been captured and the controller is idle again.
        """
        if self.target_room is None:
            raise CalibrationStateError("capture_location called while not calibrating")
        location = self.locations[self.location_index]
        self.store.add_or_replace(
            Fingerprint(room=self.target_room, location=location, signals=dict(reading))
        )
        logger.info("Captured %s/%s with %d access points", self.target_room, location, len(reading))

        self.location_index += 1
        if self.location_index >= len(self.locations):
            logger.info("Calibration of %r complete", self.target_room)
            self.cancel()
            return None
        return self.locations[self.location_index]

    def cancel(self) -> None:
        self.target_room = None
        self.location_index = 0

    def progress(self) -> CalibrationProgress:
        return CalibrationProgress(
            active=self.is_calibrating,
            room=self.target_room,
            location=self.current_location,
            step=self.location_index,
            total=len(self.locations),
        )
