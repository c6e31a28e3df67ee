from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from .calibration import CalibrationController, CalibrationProgress
from .classifier import classify
from .models import Reading, reading_from_samples
from .storage import FingerprintStore
from .wifi_scanner import ScanSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectorState:
    current_room: Optional[str]
    rooms: List[str]
    calibration: CalibrationProgress
    fingerprint_count: int
    skipped_records: int

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


class RoomDetector:
    """
    One detection session: owns the fingerprint store, the calibration
    controller and the periodic scan loop.

    ``current_room`` is None until a classification has run against a
    non-empty collection; after that it is a room name or ``"unknown"``.
    """

    def __init__(
        self,
        store: FingerprintStore,
        scanner: ScanSource,
        controller: Optional[CalibrationController] = None,
        scan_interval_s: float = 1.0,
        on_update: Optional[Callable[[DetectorState], None]] = None,
    ) -> None:
        self.store = store
        self.scanner = scanner
        self.controller = controller or CalibrationController(store)
        self.scan_interval_s = scan_interval_s
        self.on_update = on_update
        self.current_room: Optional[str] = None
        self.last_reading: Reading = {}
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    def state(self) -> DetectorState:
        return DetectorState(
            current_room=self.current_room,
            rooms=self.store.rooms(),
            calibration=self.controller.progress(),
            fingerprint_count=len(self.store),
            skipped_records=self.store.skipped_records,
        )

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.state())

    async def read(self) -> Optional[Reading]:
        """Scan once. Returns None when the scan source failed."""
        try:
            samples = await self.scanner.scan()
        except Exception as e:
            logger.warning("Scan failed: %s", e)
            return None
        return reading_from_samples(samples)

    async def tick(self) -> None:
        async with self._lock:
            reading = await self.read()
            if reading is None:
                return
            self.last_reading = reading
            if self.controller.is_calibrating:
                return
            if not reading:
                logger.debug("Empty scan, skipping classification")
                return
            fingerprints = self.store.fingerprints
            if not fingerprints:
                return
            room = classify(reading, fingerprints)
            logger.debug("Classified %d access points as %s", len(reading), room)
            if room != self.current_room:
                self.current_room = room
                self._notify()

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Scan tick failed")
            await asyncio.sleep(self.scan_interval_s)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Scan loop started (interval %.2fs)", self.scan_interval_s)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Scan loop stopped")

    async def start_calibration(self, room: str) -> str:
        async with self._lock:
            location = self.controller.start_calibration(room)
        self._notify()
        return location

    async def cancel_calibration(self) -> None:
        async with self._lock:
            self.controller.cancel()
        self._notify()

    async def capture_location(self) -> Optional[str]:
        async with self._lock:
            reading = await self.read()
            if reading is None:
                logger.warning("Capturing %s with an empty reading", self.controller.current_location)
                reading = {}
            self.last_reading = reading
            next_location = self.controller.capture_location(reading)
        self._notify()
        return next_location

    async def delete_room(self, room: str) -> None:
        async with self._lock:
            try:
                removed = self.store.delete_room(room)
            finally:
                if self.current_room == room:
                    self.current_room = None
        logger.info("Deleted room %r (%d fingerprints)", room, removed)
        self._notify()
