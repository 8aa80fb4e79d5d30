"""
Health Status Calculator

Derives a coarse vital status (normal/warning/critical) from heart rate and
body temperature. Mirrors the thresholds shown by the V.E.T app so that the
status recorded by the bridge matches what owners see on screen.
"""
from enum import Enum
from typing import Dict, Tuple


class BreedSize(str, Enum):
    """Breed-size bucket used to select heart-rate thresholds."""
    LARGE = "large"
    SMALL = "small"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> "BreedSize":
        """Lenient parse; anything unrecognised is UNKNOWN."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class AxisStatus(str, Enum):
    """Status of a single vital sign."""
    NORMAL = "normal"
    LOW = "low"
    HIGH = "high"


class VitalStatus(str, Enum):
    """Status label accepted by the vitals endpoint."""
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    ABNORMAL = "abnormal"


# (low_cutoff, high_cutoff) in BPM. Values strictly outside are abnormal;
# the borderline band between the displayed normal range and the high
# cutoff (large 90-100, small 120-140, unknown 105-120) counts as normal.
HEART_RATE_CUTOFFS: Dict[BreedSize, Tuple[int, int]] = {
    BreedSize.LARGE: (60, 100),
    BreedSize.SMALL: (80, 140),
    BreedSize.UNKNOWN: (70, 120),
}

# Fahrenheit, common to all breed sizes
TEMP_LOW_F = 100.0
TEMP_NORMAL_LOW_F = 100.5
TEMP_NORMAL_HIGH_F = 102.5
TEMP_HIGH_F = 103.0


def celsius_to_fahrenheit(celsius: float) -> float:
    return (celsius * 9 / 5) + 32


def fahrenheit_to_celsius(fahrenheit: float) -> float:
    return (fahrenheit - 32) * 5 / 9


def check_heart_rate_status(heart_rate: float, breed_size: BreedSize = BreedSize.UNKNOWN) -> AxisStatus:
    """Classify heart rate against the breed-size cutoffs."""
    low, high = HEART_RATE_CUTOFFS.get(breed_size, HEART_RATE_CUTOFFS[BreedSize.UNKNOWN])
    if heart_rate < low:
        return AxisStatus.LOW
    if heart_rate > high:
        return AxisStatus.HIGH
    return AxisStatus.NORMAL


def check_temperature_status(temperature_c: float) -> AxisStatus:
    """Classify body temperature (Celsius in, compared in Fahrenheit)."""
    temperature_f = celsius_to_fahrenheit(temperature_c)

    if temperature_f < TEMP_LOW_F:
        return AxisStatus.LOW
    if temperature_f > TEMP_HIGH_F:
        return AxisStatus.HIGH
    if TEMP_NORMAL_LOW_F <= temperature_f <= TEMP_NORMAL_HIGH_F:
        return AxisStatus.NORMAL

    # Borderline: 100-100.5 reads low, 102.5-103 reads high
    if temperature_f < TEMP_NORMAL_LOW_F:
        return AxisStatus.LOW
    return AxisStatus.HIGH


def calculate_vital_status(
    heart_rate: float,
    temperature_c: float,
    breed_size: BreedSize = BreedSize.UNKNOWN,
) -> VitalStatus:
    """
    Combine both axes into one status.

    The count of abnormal axes decides the result; how far a value deviates
    is not weighted.
    """
    abnormal = sum(
        status is not AxisStatus.NORMAL
        for status in (
            check_heart_rate_status(heart_rate, breed_size),
            check_temperature_status(temperature_c),
        )
    )
    if abnormal == 2:
        return VitalStatus.CRITICAL
    if abnormal == 1:
        return VitalStatus.WARNING
    return VitalStatus.NORMAL
