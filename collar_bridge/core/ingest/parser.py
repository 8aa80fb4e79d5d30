"""
Collar Frame Parser

Turns one assembled frame of collar text into a ParsedReading.

Expected device output per cycle:
    Temperature:38.5C 101.3F
    Waveform:1850 BPM:72

Temperature is mandatory; heart rate is optional and out-of-range values
are treated as "not reported" rather than as a parse failure.
"""
import re
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from collar_bridge.core.inference.health_status import celsius_to_fahrenheit
from collar_bridge.models.vitals import ParsedReading
from collar_bridge.utils import get_logger

logger = get_logger(__name__)

_TEMPERATURE_PATTERN = re.compile(r"Temperature:([\d.]+)C\s+([\d.]+)F")
_WAVEFORM_PATTERN = re.compile(r"Waveform:(\d+)")
_BPM_PATTERN = re.compile(r"BPM:(\d+)")

TEMP_C_RANGE = (20.0, 50.0)
TEMP_F_RANGE = (68.0, 122.0)
HEART_RATE_RANGE = (0, 300)

# Readings whose Celsius and Fahrenheit values disagree by more than this are
# logged; both values are still kept as reported.
TEMPERATURE_CONSISTENCY_TOLERANCE_F = 1.0

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _in_range(value: float, bounds: Tuple[float, float]) -> bool:
    return bounds[0] <= value <= bounds[1]


def parse_temperature(line: str) -> Optional[Tuple[float, float]]:
    """Return (celsius, fahrenheit) if the line carries an in-range temperature."""
    match = _TEMPERATURE_PATTERN.search(line)
    if not match:
        return None
    try:
        temp_c = float(match.group(1))
        temp_f = float(match.group(2))
    except ValueError:
        # e.g. "38.5.1" survives the character class but not float()
        return None

    if _in_range(temp_c, TEMP_C_RANGE) and _in_range(temp_f, TEMP_F_RANGE):
        return temp_c, temp_f
    logger.debug(f"Temperature out of range: {temp_c}C {temp_f}F")
    return None


def parse_waveform_and_bpm(line: str) -> Optional[Tuple[int, Optional[int]]]:
    """Return (waveform, bpm) when the line carries a waveform value."""
    waveform_match = _WAVEFORM_PATTERN.search(line)
    if not waveform_match:
        return None

    bpm: Optional[int] = None
    bpm_match = _BPM_PATTERN.search(line)
    if bpm_match:
        bpm = int(bpm_match.group(1))
        if not _in_range(bpm, HEART_RATE_RANGE):
            logger.debug(f"BPM out of range, ignoring: {bpm}")
            bpm = None

    return int(waveform_match.group(1)), bpm


def parse_frame(text: str, clock: Optional[Clock] = None) -> Optional[ParsedReading]:
    """
    Parse a complete collar frame.

    Args:
        text: Assembled frame text (may span several lines).
        clock: Source of the capture timestamp; defaults to UTC wall clock.

    Returns:
        ParsedReading, or None when no valid temperature was found.
    """
    temperature: Optional[Tuple[float, float]] = None
    waveform_data: Optional[Tuple[int, Optional[int]]] = None

    for line in text.strip().splitlines():
        if temperature is None:
            temperature = parse_temperature(line)
        if waveform_data is None:
            waveform_data = parse_waveform_and_bpm(line)

    if temperature is None:
        return None

    temp_c, temp_f = temperature
    drift = abs(celsius_to_fahrenheit(temp_c) - temp_f)
    if drift > TEMPERATURE_CONSISTENCY_TOLERANCE_F:
        logger.warning(f"Collar reported inconsistent temperature {temp_c}C / {temp_f}F (drift {drift:.1f}F)")

    waveform, bpm = waveform_data if waveform_data else (0, None)

    return ParsedReading(
        temperature_c=temp_c,
        temperature_f=temp_f,
        waveform=waveform,
        heart_rate=bpm,
        captured_at=(clock or _utc_now)(),
    )


def validate_reading(reading: ParsedReading) -> bool:
    """Second-stage range gate applied before a reading may be sent."""
    if not _in_range(reading.temperature_c, TEMP_C_RANGE):
        return False
    if reading.heart_rate is not None and not _in_range(reading.heart_rate, HEART_RATE_RANGE):
        return False
    return True
