"""
Simulated collar for running the bridge without hardware.

Renders the same text the collar firmware prints and publishes it split at
random boundaries, so framing across chunk edges is exercised too.
"""
import random
import threading
from typing import Optional

from collar_bridge.core.hardware.drivers import BaseCollarReader, SessionState
from collar_bridge.core.inference.health_status import celsius_to_fahrenheit
from collar_bridge.utils import get_logger

logger = get_logger(__name__)


def render_frame(temperature_c: float, waveform: int, bpm: Optional[int]) -> str:
    """Device text for one transmission cycle."""
    text = f"Temperature:{temperature_c:.1f}C {celsius_to_fahrenheit(temperature_c):.1f}F\n"
    text += f"Waveform:{waveform}"
    if bpm is not None:
        text += f" BPM:{bpm}"
    return text + " \n"


def split_randomly(text: str, rng: random.Random, max_pieces: int = 4) -> list:
    """Cut text into 1..max_pieces chunks at random offsets."""
    if len(text) < 2:
        return [text]
    cuts = sorted(rng.sample(range(1, len(text)), k=min(rng.randint(0, max_pieces - 1), len(text) - 1)))
    bounds = [0] + cuts + [len(text)]
    return [text[a:b] for a, b in zip(bounds, bounds[1:])]


def generate_simulated_frame(rng: random.Random, missing_bpm_rate: float = 0.1) -> str:
    """Realistic collar output for a resting medium-sized dog."""
    temperature_c = round(rng.uniform(38.0, 39.2), 1)
    waveform = rng.randint(1500, 2300)
    bpm = None if rng.random() < missing_bpm_rate else rng.randint(65, 115)
    return render_frame(temperature_c, waveform, bpm)


class SimulatedCollarReader(BaseCollarReader):
    """Publishes generated collar frames at a fixed interval."""

    def __init__(
        self,
        interval: float = 1.0,
        seed: Optional[int] = None,
        missing_bpm_rate: float = 0.1,
        queue_size: int = 100,
    ):
        super().__init__(name="SimulatedCollar", queue_size=queue_size)
        self.interval = interval
        self.missing_bpm_rate = missing_bpm_rate
        self.port_name = "simulated"
        self._rng = random.Random(seed)
        self._stop = threading.Event()

    def connect(self) -> bool:
        if self.state == SessionState.CONNECTED:
            return True
        self._stop.clear()
        self.state = SessionState.CONNECTED
        logger.info("[SIMULATION MODE] - Using generated collar data")
        self.start_reading()
        return True

    def disconnect(self):
        self.running = False
        self._stop.set()
        self.state = SessionState.CLOSED

    def emit_frame(self) -> None:
        """Publish one generated frame as random chunks."""
        frame = generate_simulated_frame(self._rng, self.missing_bpm_rate)
        for piece in split_randomly(frame, self._rng):
            self._publish(piece)

    def read_loop(self):
        while self.running and not self._stop.is_set():
            self.emit_frame()
            self._stop.wait(self.interval)
