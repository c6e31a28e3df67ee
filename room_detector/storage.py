"""
Fingerprint persistence.

Fingerprints are stored as a list of JSON strings (one record per
fingerprint) under a single key of a string-list key-value store.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from .errors import PersistenceError
from .models import Fingerprint

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "fingerprints"


class KeyValueStore(Protocol):
    def get_string_list(self, key: str) -> Optional[List[str]]: ...
    def set_string_list(self, key: str, values: Sequence[str]) -> None: ...


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, List[str]]] = None) -> None:
        self.data: Dict[str, List[str]] = {k: list(v) for k, v in (initial or {}).items()}

    def get_string_list(self, key: str) -> Optional[List[str]]:
        values = self.data.get(key)
        return list(values) if values is not None else None

    def set_string_list(self, key: str, values: Sequence[str]) -> None:
        self.data[key] = list(values)


class JsonFileKeyValueStore:
    """Single JSON file holding ``{key: [str, ...]}``, replaced atomically on write."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read_all(self) -> Dict[str, List[str]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"{self.path} does not hold a JSON object")
        return data

    def get_string_list(self, key: str) -> Optional[List[str]]:
        values = self._read_all().get(key)
        if values is None:
            return None
        if not isinstance(values, list):
            raise PersistenceError(f"Value under {key!r} in {self.path} is not a list")
        return values

    def set_string_list(self, key: str, values: Sequence[str]) -> None:
        data = self._read_all()
        data[key] = list(values)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e


class FingerprintStore:
    """
    Owns the fingerprint collection for the lifetime of a session.

    Every mutation is written through to the key-value store before it
    returns. If that write fails, ``PersistenceError`` propagates and the
    in-memory collection keeps the change.
    """

    def __init__(self, backend: KeyValueStore, key: str = DEFAULT_STORAGE_KEY) -> None:
        self.backend = backend
        self.key = key
        self._fingerprints: List[Fingerprint] = []
        self.skipped_records = 0

    def load(self) -> List[Fingerprint]:
        records = self.backend.get_string_list(self.key) or []
        loaded: List[Fingerprint] = []
        skipped = 0
        for index, record in enumerate(records):
            try:
                loaded.append(Fingerprint.from_record(record))
            except (KeyError, TypeError, ValueError) as e:
                skipped += 1
                logger.warning("Skipping corrupt fingerprint record #%d: %s", index, e)
        self._fingerprints = loaded
        self.skipped_records = skipped
        logger.info("Loaded %d fingerprints (%d skipped)", len(loaded), skipped)
        return self.fingerprints

    def save(self) -> None:
        self.backend.set_string_list(self.key, [fp.to_record() for fp in self._fingerprints])

    def add_or_replace(self, fingerprint: Fingerprint) -> None:
        self._fingerprints = [fp for fp in self._fingerprints if fp.key != fingerprint.key]
        self._fingerprints.append(fingerprint)
        self.save()

    def delete_room(self, room: str) -> int:
        before = len(self._fingerprints)
        self._fingerprints = [fp for fp in self._fingerprints if fp.room != room]
        removed = before - len(self._fingerprints)
        self.save()
        return removed

    @property
    def fingerprints(self) -> List[Fingerprint]:
        return list(self._fingerprints)

    def rooms(self) -> List[str]:
        """Distinct room names in order of first appearance."""
        return list(dict.fromkeys(fp.room for fp in self._fingerprints))

    def fingerprints_for(self, room: str) -> List[Fingerprint]:
        return [fp for fp in self._fingerprints if fp.room == room]

    def __len__(self) -> int:
        return len(self._fingerprints)
