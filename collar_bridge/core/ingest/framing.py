"""
Frame Assembler

The collar does not guarantee one serial write per reading, so chunks are
accumulated until the buffer holds both section headers of one transmission
cycle. The boundary is content based, not length or delimiter based.
"""
from typing import Optional, Union

from collar_bridge.utils import get_logger

logger = get_logger(__name__)

TEMPERATURE_MARKER = "Temperature:"
WAVEFORM_MARKER = "Waveform:"
DEFAULT_MAX_BUFFER_CHARS = 4096


class FrameAssembler:
    """
    Accumulates raw chunks and yields complete frames.

    The buffer is cleared before the frame is returned, so whatever happens
    downstream the next chunk starts a fresh frame.
    """

    def __init__(self, max_buffer_chars: int = DEFAULT_MAX_BUFFER_CHARS):
        if max_buffer_chars <= 0:
            raise ValueError("max_buffer_chars must be positive")
        self.max_buffer_chars = max_buffer_chars
        self._buffer = ""
        self.frames_completed = 0
        self.overflows = 0

    @property
    def pending(self) -> int:
        """Number of buffered characters."""
        return len(self._buffer)

    def on_chunk(self, chunk: Union[str, bytes]) -> Optional[str]:
        """Append a chunk; return the assembled frame once complete."""
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8", errors="replace")
        if not chunk:
            return None

        self._buffer += chunk

        # A completed frame wins over the size cap
        if TEMPERATURE_MARKER in self._buffer and WAVEFORM_MARKER in self._buffer:
            frame = self._buffer
            self._buffer = ""
            self.frames_completed += 1
            return frame

        if len(self._buffer) > self.max_buffer_chars:
            self.overflows += 1
            logger.warning(
                f"Frame buffer overflow ({len(self._buffer)} > {self.max_buffer_chars} chars) - discarding"
            )
            self._buffer = ""

        return None

    def reset(self) -> None:
        if self._buffer:
            logger.debug(f"Discarding {len(self._buffer)} buffered chars")
        self._buffer = ""
