"""
Hardware layer for the collar bridge.

Provides the serial collar reader (with port auto-detection and
reconnection) and a simulated reader for running without hardware.
"""
from collar_bridge.core.hardware.drivers import BaseCollarReader, CollarSerialReader, SessionState
from collar_bridge.core.hardware.port_detection import detect_port
from collar_bridge.core.hardware.simulator import SimulatedCollarReader

__all__ = [
    "BaseCollarReader",
    "CollarSerialReader",
    "SessionState",
    "SimulatedCollarReader",
    "detect_port",
]
