"""
Stream framing and frame parsing for collar output.
"""
from collar_bridge.core.ingest.framing import FrameAssembler
from collar_bridge.core.ingest.parser import parse_frame, validate_reading

__all__ = ["FrameAssembler", "parse_frame", "validate_reading"]
