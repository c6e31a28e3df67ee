from __future__ import annotations

import asyncio
import logging
import math
import random
import re
import shutil
from typing import Dict, List, Optional, Protocol, Sequence

from .errors import ScanError
from .models import AccessPointSample

logger = logging.getLogger(__name__)

_MAC_RE = re.compile(r"[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2}){5}")
# nmcli -t separates fields with ':' and backslash-escapes ':' and '\' inside values
_FIELD_RE = re.compile(r"(?:\\.|[^:])*")
_UNESCAPE_RE = re.compile(r"\\(.)")


class ScanSource(Protocol):
    async def start_scan(self) -> None: ...
    async def get_results(self) -> List[AccessPointSample]: ...
    async def scan(self) -> List[AccessPointSample]: ...


def signal_percent_to_dbm(percent: float) -> int:
    return int(round(-100.0 + percent / 2.0))


def split_terse_fields(row: str) -> List[str]:
    fields: List[str] = []
    pos = 0
    while True:
        m = _FIELD_RE.match(row, pos)
        fields.append(_UNESCAPE_RE.sub(r"\1", m.group()))
        pos = m.end()
        if pos >= len(row):
            return fields
        pos += 1  # separator


def parse_nmcli_terse(output: str) -> List[AccessPointSample]:
    """Parse ``nmcli -t -f SSID,BSSID,SIGNAL,CHAN,FREQ,SECURITY dev wifi list``."""
    out: List[AccessPointSample] = []
    for row in output.splitlines():
        parts = split_terse_fields(row)
        if len(parts) < 6:
            continue
        ssid, bssid, signal, chan, freq, sec = parts[:6]
        if not _MAC_RE.fullmatch(bssid):
            continue
        try:
            rssi = signal_percent_to_dbm(float(signal))
            channel = int(chan) if chan else None
            # FREQ may carry a unit suffix, e.g. "2412 MHz"
            frequency = int(freq.split()[0]) if freq else None
        except ValueError:
            continue
        out.append(
            AccessPointSample(
                ssid=ssid.strip() or "<hidden>",
                bssid=bssid.upper(),
                rssi=rssi,
                channel=channel,
                frequency=frequency,
                security=sec or "UNKNOWN",
                band="5GHz" if (frequency or 0) >= 5000 else "2.4GHz",
            )
        )
    return out


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


class WifiScanner:
    """nmcli-backed scanner with a synthetic fallback.

    Linux: uses nmcli if present.
    Other OS / unavailable tool: emits synthetic APs so the service stays usable.
    """

    def __init__(self, use_mock: Optional[bool] = None, timeout_s: float = 10.0) -> None:
        self.use_mock = shutil.which("nmcli") is None if use_mock is None else use_mock
        self.timeout_s = timeout_s
        self._mock_catalog = [
            # (ssid, bssid, frequency, security, typical dBm in the middle of the home)
            ("Home-Router", "02:00:5E:10:00:01", 2437, "WPA2", -48),
            ("Home-Router-5G", "02:00:5E:10:00:02", 5180, "WPA2", -57),
            ("Upstairs-Extender", "02:00:5E:10:00:03", 2462, "WPA2", -66),
            ("Neighbour-Flat-2B", "02:00:5E:10:00:04", 2412, "WPA3", -78),
            ("Printer-Direct", "02:00:5E:10:00:05", 2437, "OPEN", -71),
        ]
        self._phase = 0.0

    async def _run_nmcli(self, *args: str) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                "nmcli",
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ScanError(f"nmcli unavailable: {e}") from e
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            await _kill(proc)
            raise ScanError(f"nmcli {' '.join(args)} timed out") from e
        except asyncio.CancelledError:
            await _kill(proc)
            raise
        if proc.returncode != 0:
            raise ScanError(stderr.decode(errors="ignore").strip() or f"nmcli exited {proc.returncode}")
        return stdout.decode(errors="ignore")

    async def start_scan(self) -> None:
        if self.use_mock:
            self._phase += 0.3
            return
        await self._run_nmcli("dev", "wifi", "rescan")

    async def get_results(self) -> List[AccessPointSample]:
        if self.use_mock:
            return self._mock_results()
        output = await self._run_nmcli(
            "-t",
            "-f",
            "SSID,BSSID,SIGNAL,CHAN,FREQ,SECURITY",
            "dev",
            "wifi",
            "list",
            "--rescan",
            "no",
        )
        return parse_nmcli_terse(output)

    async def scan(self) -> List[AccessPointSample]:
        try:
            await self.start_scan()
        except ScanError as e:
            # A refused rescan (rate limited by NetworkManager) still leaves cached results
            logger.debug("Rescan request failed: %s", e)
        return await self.get_results()

    def _mock_results(self) -> List[AccessPointSample]:
        out: List[AccessPointSample] = []
        # Slow drift per AP stands in for someone walking between rooms
        for i, (ssid, bssid, freq, sec, level) in enumerate(self._mock_catalog):
            drift = 6.0 * math.sin(self._phase * 0.2 + i * 1.3)
            noise = random.uniform(-1.5, 1.5)
            rssi = max(-95.0, min(-30.0, level + drift + noise))
            out.append(
                AccessPointSample(
                    ssid=ssid,
                    bssid=bssid,
                    rssi=int(round(rssi)),
                    frequency=freq,
                    security=sec,
                    band="5GHz" if freq >= 5000 else "2.4GHz",
                )
            )
        return out


class StaticScanner:
    """Replays queued readings; repeats the last one once the queue runs dry."""

    def __init__(self, readings: Sequence[Dict[str, int]] = ()) -> None:
        self.readings: List[Dict[str, int]] = [dict(r) for r in readings]
        self.scans = 0
        self.fail_next = False

    def push(self, reading: Dict[str, int]) -> None:
        self.readings.append(dict(reading))

    async def start_scan(self) -> None:
        self.scans += 1
        if self.fail_next:
            self.fail_next = False
            raise ScanError("scan failed")

    async def get_results(self) -> List[AccessPointSample]:
        if not self.readings:
            return []
        reading = self.readings.pop(0) if len(self.readings) > 1 else self.readings[0]
        return [AccessPointSample(ssid=bssid, bssid=bssid, rssi=rssi) for bssid, rssi in reading.items()]

    async def scan(self) -> List[AccessPointSample]:
        await self.start_scan()
        return await self.get_results()
