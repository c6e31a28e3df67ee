"""Wi-Fi fingerprint room detection."""

__version__ = "0.1.0"
