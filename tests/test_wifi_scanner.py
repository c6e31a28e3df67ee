import asyncio
import os

import pytest

from room_detector.errors import ScanError
from room_detector.models import reading_from_samples
from room_detector.wifi_scanner import StaticScanner, WifiScanner, parse_nmcli_terse, signal_percent_to_dbm

NMCLI_OUTPUT = "\n".join(
    [
        r"HomeNet:AA\:BB\:CC\:DD\:EE\:01:80:6:2437 MHz:WPA2",
        r"Cafe\:Guest:aa\:bb\:cc\:dd\:ee\:02:40:36:5180 MHz:",
        r":AA\:BB\:CC\:DD\:EE\:03:10:1:2412 MHz:WPA1 WPA2",
        r"Broken:not-a-mac:50:1:2412:WPA2",
        r"Short:AA\:BB",
    ]
)


def test_signal_percent_to_dbm():
    assert signal_percent_to_dbm(100) == -50
    assert signal_percent_to_dbm(0) == -100
    assert signal_percent_to_dbm(80) == -60


def test_parse_nmcli_terse_handles_escaped_colons():
    samples = parse_nmcli_terse(NMCLI_OUTPUT)

    assert [s.bssid for s in samples] == ["AA:BB:CC:DD:EE:01", "AA:BB:CC:DD:EE:02", "AA:BB:CC:DD:EE:03"]
    assert samples[0].ssid == "HomeNet"
    assert samples[0].rssi == -60
    assert samples[0].frequency == 2437
    assert samples[1].ssid == "Cafe:Guest"
    assert samples[1].band == "5GHz"
    assert samples[1].security == "UNKNOWN"
    assert samples[2].ssid == "<hidden>"


def test_mock_scanner_yields_household_access_points():
    scanner = WifiScanner(use_mock=True)
    samples = asyncio.run(scanner.scan())
    reading = reading_from_samples(samples)

    assert len(reading) == 5
    assert all(isinstance(v, int) and -95 <= v <= -30 for v in reading.values())
    assert "Home-Router" in {s.ssid for s in samples}


def test_static_scanner_replays_then_repeats_last():
    scanner = StaticScanner([{"AP1": -50}, {"AP1": -60}])

    async def scan_three():
        return [reading_from_samples(await scanner.scan()) for _ in range(3)]

    assert asyncio.run(scan_three()) == [{"AP1": -50}, {"AP1": -60}, {"AP1": -60}]


def test_static_scanner_failure_is_one_shot():
    scanner = StaticScanner([{"AP1": -50}])
    scanner.fail_next = True
    with pytest.raises(ScanError):
        asyncio.run(scanner.scan())
    assert reading_from_samples(asyncio.run(scanner.scan())) == {"AP1": -50}


def test_parse_nmcli_terse_handles_escaped_backslash_before_separator():
    samples = parse_nmcli_terse(r"Lab\\:AA\:BB\:CC\:DD\:EE\:04:60:1:2412 MHz:WPA2")

    assert len(samples) == 1
    assert samples[0].ssid == "Lab\\"
    assert samples[0].bssid == "AA:BB:CC:DD:EE:04"
    assert samples[0].rssi == -70


def install_fake_nmcli(tmp_path, monkeypatch, body):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "nmcli"
    script.write_text("#!/bin/sh\n" + body + "\n")
    script.chmod(0o755)
    monkeypatch.setenv("PATH", str(bin_dir) + os.pathsep + os.environ.get("PATH", ""))


def assert_reaped(pid_file):
    pid = int(pid_file.read_text().strip())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_nmcli_failure_raises_scan_error(tmp_path, monkeypatch):
    install_fake_nmcli(tmp_path, monkeypatch, 'echo "Wi-Fi is disabled" >&2\nexit 1')
    scanner = WifiScanner(use_mock=False)

    with pytest.raises(ScanError, match="Wi-Fi is disabled"):
        asyncio.run(scanner.get_results())


def test_hung_nmcli_times_out_and_is_killed(tmp_path, monkeypatch):
    pid_file = tmp_path / "nmcli.pid"
    install_fake_nmcli(tmp_path, monkeypatch, f'echo $$ > "{pid_file}"\nexec sleep 30')
    scanner = WifiScanner(use_mock=False, timeout_s=1.0)

    with pytest.raises(ScanError, match="timed out"):
        asyncio.run(scanner.get_results())
    assert_reaped(pid_file)


def test_cancelled_scan_kills_nmcli(tmp_path, monkeypatch):
    pid_file = tmp_path / "nmcli.pid"
    install_fake_nmcli(tmp_path, monkeypatch, f'echo $$ > "{pid_file}"\nexec sleep 30')
    scanner = WifiScanner(use_mock=False, timeout_s=30)

    async def cancel_mid_scan():
        task = asyncio.create_task(scanner.get_results())
        for _ in range(100):
            if pid_file.exists() and pid_file.read_text().strip():
                break
            await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(cancel_mid_scan())
    assert_reaped(pid_file)


def test_refused_rescan_still_returns_cached_results(tmp_path, monkeypatch):
    install_fake_nmcli(
        tmp_path,
        monkeypatch,
        'if [ "$3" = "rescan" ]; then echo "Scanning not allowed" >&2; exit 1; fi\n'
        r"printf '%s\n' 'Home-Router:02\:00\:5E\:10\:00\:01:90:6:2437 MHz:WPA2'",
    )
    scanner = WifiScanner(use_mock=False)

    reading = reading_from_samples(asyncio.run(scanner.scan()))
    assert reading == {"02:00:5E:10:00:01": -55}
