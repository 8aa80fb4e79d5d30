"""
Collar Bridge - connects the V.E.T collar hardware to the backend API.

Pipeline per chunk:

    serial reader ──chunks──▶ FrameAssembler ──frame──▶ parse_frame
        ──reading──▶ validate_reading ──▶ heart-rate gate
        ──▶ VitalsApiClient (worker pool, bounded in-flight sends)

The consumer never waits on the network: sends run on a small thread pool
and readings are dropped (with a warning) when every slot is busy.

Usage:
    collar-bridge                       # settings from environment / .env
    collar-bridge --port /dev/ttyUSB0
    collar-bridge --simulate            # no hardware required
    collar-bridge --list-ports
"""

import argparse
import queue
import signal
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from pydantic import ValidationError
from serial.tools import list_ports

from collar_bridge.config import ConfigError, Settings, get_settings
from collar_bridge.core.hardware.drivers import BaseCollarReader, CollarSerialReader
from collar_bridge.core.hardware.port_detection import describe_port, detect_port
from collar_bridge.core.hardware.simulator import SimulatedCollarReader
from collar_bridge.core.ingest.framing import FrameAssembler
from collar_bridge.core.ingest.parser import parse_frame, validate_reading
from collar_bridge.models.vitals import ParsedReading
from collar_bridge.services.vitals_client import ApiConfig, SendOutcome, SendResult, VitalsApiClient
from collar_bridge.utils import configure_logging, get_logger

logger = get_logger(__name__)

QUEUE_POLL_S = 0.5


@dataclass
class BridgeStats:
    chunks: int = 0
    frames: int = 0
    readings: int = 0
    rejected: int = 0
    skipped_no_bpm: int = 0
    submitted: int = 0
    dropped_busy: int = 0
    sent: int = 0
    failed: int = 0


def build_api_config(settings: Settings) -> ApiConfig:
    return ApiConfig(
        base_url=settings.api_base_url,
        dog_id=settings.dog_id,
        auth_token=settings.auth_token,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay / 1000,
        update_interval=settings.update_interval / 1000,
        timeout=settings.request_timeout / 1000,
        breed_size=settings.breed_size,
    )


def build_serial_reader(settings: Settings) -> CollarSerialReader:
    return CollarSerialReader(
        port=settings.serial_port,
        baud=settings.baud_rate,
        reconnect_delay=settings.serial_reconnect_delay / 1000,
        signatures=settings.port_signatures,
        name_patterns=settings.port_name_patterns,
        queue_size=settings.chunk_queue_size,
    )


# ==============================================================================
# ORCHESTRATOR
# ==============================================================================

class CollarBridge:
    """Wires reader, assembler, parser and API client together."""

    def __init__(
        self,
        settings: Settings,
        reader: Optional[BaseCollarReader] = None,
        client: Optional[VitalsApiClient] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.settings = settings
        self.reader = reader
        self.client = client
        self.assembler = FrameAssembler(max_buffer_chars=settings.max_buffer_chars)
        self.stats = BridgeStats()
        self._executor = executor
        self._send_slots = threading.BoundedSemaphore(settings.max_concurrent_sends)
        self._reset_requested = threading.Event()
        self._stats_lock = threading.Lock()

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """
        Validate configuration, then connect to the collar.

        Raises ConfigError before any connection attempt if DOG_ID or
        AUTH_TOKEN is missing. A failed connection is not fatal: the reader
        schedules its own reconnection.
        """
        self.settings.require_complete()

        if self.client is None:
            self.client = VitalsApiClient(build_api_config(self.settings))
        if self.reader is None:
            self.reader = build_serial_reader(self.settings)
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.settings.max_concurrent_sends,
                thread_name_prefix="vitals-send",
            )
        self.reader.on_reconnect = self._reset_requested.set

        logger.info("=== V.E.T Collar Bridge Service Starting ===")
        logger.info(f"Serial Port: {self.settings.serial_port}")
        logger.info(f"Baud Rate: {self.settings.baud_rate}")
        logger.info(f"API URL: {self.settings.api_base_url}")
        logger.info(f"Dog ID: {self.settings.dog_id}")
        logger.info(f"Update Interval: {self.settings.update_interval}ms")

        connected = self.reader.connect()
        if connected:
            logger.info("Bridge service started successfully")
        else:
            logger.warning("Collar not available yet - waiting for reconnection")
        return connected

    def run(self, stop_event: threading.Event) -> None:
        """Drain the reader's chunk queue until stop_event is set."""
        while not stop_event.is_set():
            try:
                chunk = self.reader.chunks.get(timeout=QUEUE_POLL_S)
            except queue.Empty:
                continue
            self.handle_chunk(chunk)

    def shutdown(self) -> None:
        """Disconnect the collar and stop accepting sends. In-flight sends are not awaited."""
        logger.info("Shutting down bridge service...")
        if self.reader is not None:
            self.reader.disconnect()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
        if self.client is not None:
            self.client.close()
        logger.info(f"Bridge stats: {asdict(self.stats)}")

    # ------------------------------------------------------------------
    # PIPELINE
    # ------------------------------------------------------------------

    def handle_chunk(self, chunk) -> Optional[Future]:
        """Process one raw chunk. Returns the send future if a send was submitted."""
        if self._reset_requested.is_set():
            self._reset_requested.clear()
            self.assembler.reset()

        self._bump("chunks")
        try:
            frame = self.assembler.on_chunk(chunk)
            if frame is None:
                return None
            self._bump("frames")
            return self.process_frame(frame)
        except Exception:
            logger.exception("Error processing serial data")
            self.assembler.reset()
            return None

    def process_frame(self, frame: str) -> Optional[Future]:
        reading = parse_frame(frame)
        if reading is None or not validate_reading(reading):
            self._bump("rejected")
            logger.warning(f"Invalid or incomplete data received: {frame!r}")
            return None

        self._bump("readings")
        logger.debug(f"Parsed data: {reading.to_dict()}")

        if not reading.has_heart_rate:
            self._bump("skipped_no_bpm")
            logger.warning("Skipping update - no BPM data available")
            return None

        return self.submit(reading)

    def submit(self, reading: ParsedReading) -> Optional[Future]:
        """Hand a reading to the send pool without blocking."""
        if not self._send_slots.acquire(blocking=False):
            self._bump("dropped_busy")
            logger.warning("All send slots busy - dropping reading")
            return None

        try:
            future = self._executor.submit(self.client.send, reading)
        except RuntimeError as e:
            # executor already shut down
            self._send_slots.release()
            logger.warning(f"Send pool unavailable: {e}")
            return None

        self._bump("submitted")
        future.add_done_callback(self._on_send_done)
        return future

    def _on_send_done(self, future: Future) -> None:
        self._send_slots.release()
        error = future.exception()
        if error is not None:
            self._bump("failed")
            logger.error(f"Error sending data to API: {error}")
            return

        result: SendResult = future.result()
        if result.ok:
            self._bump("sent")
        elif result.outcome != SendOutcome.THROTTLED:
            self._bump("failed")
            logger.error(
                f"Vital update not delivered ({result.outcome.value}) after {result.attempts} attempt(s)"
            )

    def _bump(self, counter: str) -> None:
        with self._stats_lock:
            setattr(self.stats, counter, getattr(self.stats, counter) + 1)


# ==============================================================================
# CLI ENTRY POINT
# ==============================================================================

def _list_ports(settings: Settings) -> int:
    ports = list(list_ports.comports())
    for port in ports:
        print(describe_port(port))
    selected = detect_port(ports, settings.port_signatures, settings.port_name_patterns)
    print(f"\nAuto-detect would select: {selected or '(none)'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collar-bridge",
        description="Relay V.E.T collar vitals from a serial port to the backend API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  collar-bridge --port COM3
  collar-bridge --port auto --api-url http://localhost:3000/api
  collar-bridge --simulate
        """
    )
    parser.add_argument("--env-file", default=".env", help="Path to .env file")
    parser.add_argument("--port", help="Serial port or 'auto' (overrides SERIAL_PORT)")
    parser.add_argument("--baud", type=int, help="Baud rate (overrides BAUD_RATE)")
    parser.add_argument("--api-url", help="API base URL (overrides API_BASE_URL)")
    parser.add_argument("--dog-id", help="Dog record id (overrides DOG_ID)")
    parser.add_argument("--log-level", help="Logging level (overrides LOG_LEVEL)")
    parser.add_argument("--simulate", action="store_true",
                        help="Use simulated collar data (no hardware)")
    parser.add_argument("--list-ports", action="store_true",
                        help="List serial ports and the auto-detect choice, then exit")
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    cli_values: Dict[str, object] = {
        "serial_port": args.port,
        "baud_rate": args.baud,
        "api_base_url": args.api_url,
        "dog_id": args.dog_id,
        "log_level": args.log_level,
    }
    overrides = {key: value for key, value in cli_values.items() if value is not None}
    if not overrides:
        return get_settings(args.env_file)
    return Settings(_env_file=args.env_file, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the collar bridge."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args)
    except ValidationError as e:
        configure_logging("INFO")
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(settings.log_level)

    if args.list_ports:
        return _list_ports(settings)

    reader = None
    if args.simulate:
        reader = SimulatedCollarReader(queue_size=settings.chunk_queue_size)

    bridge = CollarBridge(settings, reader=reader)
    stop_event = threading.Event()

    def _request_stop(signum, frame):
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    try:
        bridge.start()
    except ConfigError as e:
        logger.error(str(e))
        return 1

    try:
        bridge.run(stop_event)
    finally:
        bridge.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
