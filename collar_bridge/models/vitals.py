"""
Vital Data Models

ParsedReading is what the bridge extracts from one collar frame;
VitalUpdate is the JSON body sent to PUT /dogs/{id}/vitals.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from collar_bridge.core.inference.health_status import VitalStatus


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a 'Z' suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ParsedReading:
    """One validated-on-parse reading from the collar."""
    temperature_c: float
    temperature_f: float
    captured_at: datetime
    waveform: int = 0
    heart_rate: Optional[int] = None  # None = not reported this frame

    @property
    def has_heart_rate(self) -> bool:
        return self.heart_rate is not None

    @property
    def timestamp_iso(self) -> str:
        return format_timestamp(self.captured_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature_c": self.temperature_c,
            "temperature_f": self.temperature_f,
            "waveform": self.waveform,
            "heart_rate": self.heart_rate,
            "captured_at": self.timestamp_iso,
        }


class VitalUpdate(BaseModel):
    """Request body for the vitals endpoint."""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    heart_rate: int = Field(..., alias="heartRate", ge=0)
    temperature: float = Field(..., description="Body temperature in Celsius")
    status: VitalStatus
    time: str = Field(..., description="ISO-8601 capture time")

    @classmethod
    def from_reading(cls, reading: ParsedReading, status: VitalStatus) -> "VitalUpdate":
        return cls(
            heart_rate=reading.heart_rate or 0,
            temperature=reading.temperature_c,
            status=status,
            time=reading.timestamp_iso,
        )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
