from __future__ import annotations

from typing import Dict, Iterable

from .models import UNKNOWN_ROOM, Fingerprint, Reading, RoomEnvelope


def build_envelopes(fingerprints: Iterable[Fingerprint]) -> Dict[str, RoomEnvelope]:
    """Per-room envelopes, keyed in order of each room's first fingerprint."""
    envelopes: Dict[str, RoomEnvelope] = {}
    for fp in fingerprints:
        if fp.room not in envelopes:
            envelopes[fp.room] = RoomEnvelope(room=fp.room)
        envelopes[fp.room].include(fp.signals)
    return envelopes


def classify(reading: Reading, fingerprints: Iterable[Fingerprint]) -> str:
    """First room whose envelope admits ``reading``, else ``UNKNOWN_ROOM``.

    Only BSSIDs present in both the reading and a room's envelope constrain
    the match. There is no scoring: if several rooms admit the reading, the
    one whose first fingerprint comes earliest in the collection wins.
    """
    envelopes = build_envelopes(fingerprints)
    if not envelopes:
        return UNKNOWN_ROOM
    for room, envelope in envelopes.items():
        if envelope.admits(reading):
            return room
    return UNKNOWN_ROOM
