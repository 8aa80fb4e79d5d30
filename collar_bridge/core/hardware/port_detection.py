"""
Serial port auto-detection for the collar (Arduino / ESP32 boards).

Two ordered matcher lists are evaluated in sequence:
1. Signatures tested against the port metadata (path, manufacturer,
   product id, description), port by port in enumeration order.
2. Platform naming patterns as a fallback when no signature matched.

The first match wins. Both lists are plain regex strings so they can be
overridden from settings or replaced with fakes in tests.
"""
import re
from typing import Any, Iterable, List, Optional, Sequence

from collar_bridge.utils import get_logger

logger = get_logger(__name__)

DEFAULT_SIGNATURE_PATTERNS: Sequence[str] = (
    r"arduino",
    r"esp32",
    r"ch340",
    r"cp210",
    r"ftdi",
    r"usb serial",
    r"usb-serial",
    r"usb to serial",
)

DEFAULT_NAME_PATTERNS: Sequence[str] = (
    r"^COM\d+$",                             # Windows
    r"/dev/tty(USB|ACM)\d+",                 # Linux
    r"/dev/tty\.usb|usbserial|usbmodem",     # macOS
)


def describe_port(port: Any) -> str:
    """Flatten a pyserial ListPortInfo (or look-alike) into one searchable string."""
    parts = [
        getattr(port, "device", None) or "",
        getattr(port, "manufacturer", None) or "",
        str(getattr(port, "pid", None) or ""),
        getattr(port, "description", None) or "",
    ]
    return " - ".join(parts).lower()


def _compile(patterns: Iterable[str], flags: int = 0) -> List[re.Pattern]:
    return [re.compile(pattern, flags) for pattern in patterns]


def detect_port(
    ports: Iterable[Any],
    signatures: Optional[Sequence[str]] = None,
    name_patterns: Optional[Sequence[str]] = None,
) -> Optional[str]:
    """
    Pick the collar's port from an enumeration of available ports.

    Args:
        ports: Objects exposing ``device`` and optionally ``manufacturer``,
            ``pid`` and ``description`` (pyserial ListPortInfo).
        signatures: Metadata regexes, highest priority first.
        name_patterns: Fallback regexes applied to the device path.

    Returns:
        Device path of the first match, or None.
    """
    ports = list(ports)
    signature_res = _compile(DEFAULT_SIGNATURE_PATTERNS if signatures is None else signatures, re.IGNORECASE)
    name_res = _compile(DEFAULT_NAME_PATTERNS if name_patterns is None else name_patterns, re.IGNORECASE)

    logger.info(f"Scanning {len(ports)} available serial ports...")

    for port in ports:
        info = describe_port(port)
        for pattern in signature_res:
            if pattern.search(info):
                logger.info(
                    f"Auto-detected collar port: {port.device} "
                    f"({getattr(port, 'manufacturer', None) or 'Unknown'})"
                )
                return port.device

    candidates = [
        port.device
        for port in ports
        if any(pattern.search(port.device or "") for pattern in name_res)
    ]
    if candidates:
        logger.info(f"Auto-selected first available port: {candidates[0]}")
        logger.info(f"Available ports: {', '.join(candidates)}")
        return candidates[0]

    logger.warning("No Arduino/ESP32 port detected automatically")
    logger.info(f"All available ports: {', '.join(p.device for p in ports) or '(none)'}")
    return None
