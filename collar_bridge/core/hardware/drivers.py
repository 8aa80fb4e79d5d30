"""
Hardware Drivers for the Collar Bridge.

Drivers:
- BaseCollarReader: chunk queue, reader thread and lifecycle shared by readers
- CollarSerialReader: Arduino/ESP32 collar over USB serial with port
  auto-detection and scheduled reconnection
"""

import threading
import queue
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence

import serial
from serial.tools import list_ports

from collar_bridge.core.hardware.port_detection import detect_port
from collar_bridge.utils import get_logger

logger = get_logger(__name__)

READ_TIMEOUT_S = 1.0


class SessionState(str, Enum):
    """Connection lifecycle of a collar reader."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


# ==============================================================================
# BASE READER
# ==============================================================================

class BaseCollarReader:
    """
    Base class for collar readers.

    Raw text chunks are published to ``chunks``, a bounded queue with a
    single consumer. Chunks are delivered in arrival order; when the
    consumer falls behind the oldest chunk is dropped.
    """

    def __init__(self, name: str = "Collar", queue_size: int = 100):
        self.name = name
        self.chunks: queue.Queue = queue.Queue(maxsize=queue_size)
        self.running = False
        self.state = SessionState.DISCONNECTED
        self.on_reconnect: Optional[Callable[[], None]] = None
        self.dropped_chunks = 0
        self._reader_thread: Optional[threading.Thread] = None

    @property
    def is_connected(self) -> bool:
        return self.state == SessionState.CONNECTED

    def connect(self) -> bool:
        raise NotImplementedError("Subclasses must implement connect")

    def disconnect(self):
        raise NotImplementedError("Subclasses must implement disconnect")

    def read_loop(self, *args):
        """Background thread body. Must be implemented by subclasses."""
        raise NotImplementedError("Subclasses must implement read_loop")

    def start_reading(self, *args) -> threading.Thread:
        """Start background reading thread."""
        self.running = True
        thread = threading.Thread(
            target=self.read_loop, args=args, daemon=True, name=f"{self.name}-reader"
        )
        self._reader_thread = thread
        thread.start()
        return thread

    def _publish(self, chunk: str) -> None:
        if not chunk:
            return
        if self.chunks.full():
            try:
                self.chunks.get_nowait()
                self.dropped_chunks += 1
                logger.warning(f"{self.name} chunk queue full - dropped oldest chunk")
            except queue.Empty:
                pass
        try:
            self.chunks.put_nowait(chunk)
        except queue.Full:
            self.dropped_chunks += 1
            logger.warning(f"{self.name} chunk queue full - dropped chunk")


# ==============================================================================
# SERIAL COLLAR READER
# ==============================================================================

class CollarSerialReader(BaseCollarReader):
    """
    Owns the serial connection to the collar.

    Lifecycle:
        1. connect() - open the configured or auto-detected port, start reading
        2. read_loop() - push decoded chunks to ``chunks``
        3. on error/close - schedule exactly one reconnection attempt
        4. disconnect() - cancel pending reconnection and close the port
    """

    def __init__(
        self,
        port: str = "auto",
        baud: int = 115200,
        reconnect_delay: float = 5.0,
        signatures: Optional[Sequence[str]] = None,
        name_patterns: Optional[Sequence[str]] = None,
        queue_size: int = 100,
        serial_factory: Optional[Callable[..., Any]] = None,
        port_lister: Optional[Callable[[], Iterable[Any]]] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        super().__init__(name="Collar", queue_size=queue_size)
        self.port = port
        self.baud = baud
        self.reconnect_delay = reconnect_delay
        self.signatures = signatures
        self.name_patterns = name_patterns
        self.serial_conn = None
        self.port_name: Optional[str] = None

        self._serial_factory = serial_factory or serial.Serial
        self._port_lister = port_lister or list_ports.comports
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._connecting = False
        self._stopped = False
        self._reconnect_timer: Optional[threading.Timer] = None

    @property
    def auto_detect(self) -> bool:
        return not self.port or self.port.strip().lower() == "auto"

    @property
    def is_connected(self) -> bool:
        conn = self.serial_conn
        return bool(conn is not None and conn.is_open)

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    # ------------------------------------------------------------------
    # CONNECTION
    # ------------------------------------------------------------------

    def connect(self) -> bool:
        """
        Connect to the collar.

        Returns True when the port is open. Returns False (after scheduling a
        reconnection) when no port could be detected or opened, and also when
        another connection attempt is already in progress.
        """
        self._stopped = False
        return self._open()

    def _open(self) -> bool:
        with self._lock:
            if self._connecting:
                return False
            if self.is_connected:
                logger.info("Serial port already connected")
                return True
            self._connecting = True
            self.state = SessionState.CONNECTING

        try:
            port_path = self._resolve_port()
            if not port_path:
                logger.error("Failed to auto-detect serial port. Please specify SERIAL_PORT in .env file.")
                return self._fail()

            logger.info(f"Connecting to serial port: {port_path} at {self.baud} baud")
            try:
                conn = self._serial_factory(
                    port=port_path,
                    baudrate=self.baud,
                    bytesize=serial.EIGHTBITS,
                    parity=serial.PARITY_NONE,
                    stopbits=serial.STOPBITS_ONE,
                    timeout=READ_TIMEOUT_S,
                )
            except (serial.SerialException, OSError, ValueError) as e:
                logger.error(f"Failed to open serial port {port_path}: {e}")
                return self._fail()

            with self._lock:
                self.serial_conn = conn
                self.port_name = port_path
                self.state = SessionState.CONNECTED
            logger.info(f"✅ Serial port opened: {port_path}")
            self.start_reading(conn)
            return True
        finally:
            self._connecting = False

    def _fail(self) -> bool:
        self.state = SessionState.DISCONNECTED
        self.schedule_reconnect()
        return False

    def _resolve_port(self) -> Optional[str]:
        if not self.auto_detect:
            return self.port

        logger.info("Auto-detecting serial port...")
        try:
            ports = list(self._port_lister())
        except (OSError, serial.SerialException) as e:
            logger.error(f"Error auto-detecting port: {e}")
            return None
        return detect_port(ports, self.signatures, self.name_patterns)

    def disconnect(self):
        """Cancel pending reconnection and close the port. Never raises."""
        with self._lock:
            self._stopped = True
            self.running = False
            timer = self._reconnect_timer
            self._reconnect_timer = None
            conn = self.serial_conn
            self.serial_conn = None

        if timer is not None:
            timer.cancel()

        if conn is not None and conn.is_open:
            try:
                conn.close()
                logger.info("Serial port closed")
            except (serial.SerialException, OSError) as e:
                logger.error(f"Error closing serial port: {e}")

        self.state = SessionState.CLOSED

    # ------------------------------------------------------------------
    # RECONNECTION
    # ------------------------------------------------------------------

    def schedule_reconnect(self) -> bool:
        """Schedule one reconnection attempt. Returns False if one is already pending."""
        with self._lock:
            if self._stopped or self._reconnect_timer is not None:
                return False
            logger.info(f"Scheduling reconnection in {self.reconnect_delay:.1f}s")
            timer = self._timer_factory(self.reconnect_delay, self._reconnect)
            timer.daemon = True
            self._reconnect_timer = timer
            self.state = SessionState.RECONNECTING
        timer.start()
        return True

    def _reconnect(self):
        with self._lock:
            self._reconnect_timer = None
            if self._stopped:
                return
        if self._open() and self.on_reconnect is not None:
            self.on_reconnect()

    def _handle_connection_lost(self, conn) -> None:
        with self._lock:
            if self.serial_conn is conn:
                self.serial_conn = None
            stopped = self._stopped
        try:
            if conn.is_open:
                conn.close()
        except (serial.SerialException, OSError) as e:
            logger.error(f"Error closing serial port: {e}")

        if stopped:
            self.state = SessionState.CLOSED
            return
        logger.warning("Serial port closed")
        self.state = SessionState.DISCONNECTED
        self.schedule_reconnect()

    # ------------------------------------------------------------------
    # READING
    # ------------------------------------------------------------------

    def read_loop(self, conn):
        """Background thread: read lines (or timeout-bounded fragments) and publish them."""
        while self.running and conn.is_open:
            try:
                raw = conn.readline()
            except (serial.SerialException, OSError) as e:
                if self.running:
                    logger.error(f"Serial port error: {e}")
                break

            if raw:
                self._publish(raw.decode("utf-8", errors="ignore"))

        self._handle_connection_lost(conn)
