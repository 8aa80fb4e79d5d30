"""
Vital status classification.
"""
from collar_bridge.core.inference.health_status import (
    BreedSize,
    VitalStatus,
    calculate_vital_status,
)

__all__ = ["BreedSize", "VitalStatus", "calculate_vital_status"]
