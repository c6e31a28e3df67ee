from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Tuple

DEFAULT_LOCATIONS: Tuple[str, ...] = ("corner1", "corner2", "corner3", "corner4", "center")
UNKNOWN_ROOM = "unknown"

Reading = Dict[str, int]


@dataclass
class AccessPointSample:
    ssid: str
    bssid: str
    rssi: int
    channel: int | None = None
    frequency: int | None = None
    security: str | None = None
    band: str | None = None


def reading_from_samples(samples: Iterable[AccessPointSample]) -> Reading:
    """Collapse scan rows into a BSSID -> dBm reading (last row wins)."""
    return {sample.bssid: int(sample.rssi) for sample in samples}


@dataclass
class Fingerprint:
    room: str
    location: str
    signals: Reading = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.room, self.location)

    def to_dict(self) -> Dict[str, Any]:
        return {"room": self.room, "location": self.location, "signals": dict(self.signals)}

    def to_record(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fingerprint":
        room = data["room"]
        location = data["location"]
        signals = data["signals"]
        if not isinstance(room, str) or not room:
            raise ValueError("room must be a non-empty string")
        if not isinstance(location, str):
            raise TypeError("location must be a string")
        if not isinstance(signals, dict):
            raise TypeError("signals must be a mapping")
        parsed: Reading = {}
        for bssid, rssi in signals.items():
            # bool is an int subclass; reject it explicitly
            if isinstance(rssi, bool) or not isinstance(rssi, int):
                raise TypeError(f"signal for {bssid!r} is not an integer")
            parsed[str(bssid)] = rssi
        return cls(room=room, location=location, signals=parsed)

    @classmethod
    def from_record(cls, record: str) -> "Fingerprint":
        data = json.loads(record)
        if not isinstance(data, dict):
            raise TypeError("fingerprint record must be a JSON object")
        return cls.from_dict(data)


@dataclass
class RoomEnvelope:
    """Inclusive per-BSSID [min, max] range observed across a room's fingerprints."""

    room: str
    ranges: Dict[str, Tuple[int, int]] = field(default_factory=dict)

    def include(self, signals: Reading) -> None:
        for bssid, rssi in signals.items():
            if bssid in self.ranges:
                lo, hi = self.ranges[bssid]
                self.ranges[bssid] = (min(lo, rssi), max(hi, rssi))
            else:
                self.ranges[bssid] = (rssi, rssi)

    def admits(self, reading: Reading) -> bool:
        for bssid, rssi in reading.items():
            bounds = self.ranges.get(bssid)
            if bounds is None:
                continue
            lo, hi = bounds
            if rssi < lo or rssi > hi:
                return False
        return True
