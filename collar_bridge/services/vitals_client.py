"""
Vitals API Client - relays collar readings to the backend.

PUT {base_url}/dogs/{dog_id}/vitals with a Bearer token.

Sends are throttled locally (independently of the server's own rate
limiting) and retried with linear backoff. 401 and 404 abort immediately;
429 backs off one step further than other failures.
"""
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

import requests

from collar_bridge.core.inference.health_status import (
    BreedSize,
    VitalStatus,
    calculate_vital_status,
)
from collar_bridge.models.vitals import ParsedReading, VitalUpdate
from collar_bridge.utils import get_logger

logger = get_logger(__name__)


class SendOutcome(str, Enum):
    SENT = "sent"
    THROTTLED = "throttled"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    EXHAUSTED = "exhausted"


@dataclass
class ApiConfig:
    """Connection settings for the vitals endpoint (durations in seconds)."""
    base_url: str
    dog_id: str
    auth_token: str
    max_retries: int = 3
    retry_delay: float = 2.0
    update_interval: float = 5.0
    timeout: float = 10.0
    breed_size: BreedSize = BreedSize.UNKNOWN

    @property
    def vitals_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/dogs/{self.dog_id}/vitals"


@dataclass
class SendResult:
    """Record of one send_vital_data call."""
    outcome: SendOutcome
    dog_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == SendOutcome.SENT


class VitalsApiClient:
    """
    Client for the vitals endpoint.

    Thread-safe: the last-success timestamp is guarded by a lock, and at
    most one send per throttle window reaches the network even when sends
    run on a worker pool.
    """

    def __init__(
        self,
        config: ApiConfig,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._session = session or requests.Session()
        self._session.headers.update({
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.auth_token}",
        })
        self._sleep = sleep
        self._clock = clock
        self._throttle_lock = threading.Lock()
        self._last_update_time: Optional[float] = None

    def send_vital_data(self, reading: ParsedReading, status: Optional[VitalStatus] = None) -> bool:
        """Send one reading. True only on an acknowledged (2xx) send."""
        return self.send(reading, status).ok

    def send(self, reading: ParsedReading, status: Optional[VitalStatus] = None) -> SendResult:
        """
        Send one reading and return the full attempt record.

        The throttle window is checked and reserved under one lock, so sends
        running in parallel cannot both pass it. The reservation is released
        again unless the send succeeds.
        """
        started = self._clock()
        with self._throttle_lock:
            previous = self._last_update_time
            if previous is not None and started - previous < self.config.update_interval:
                logger.debug(f"Skipping update - too soon ({(started - previous) * 1000:.0f}ms since last update)")
                return SendResult(outcome=SendOutcome.THROTTLED, dog_id=self.config.dog_id)
            self._last_update_time = started

        result: Optional[SendResult] = None
        try:
            if status is None:
                status = calculate_vital_status(
                    reading.heart_rate or 0,
                    reading.temperature_c,
                    self.config.breed_size,
                )
            payload = VitalUpdate.from_reading(reading, status).to_payload()
            result = self._deliver(payload)
            return result
        finally:
            if result is None or not result.ok:
                with self._throttle_lock:
                    if self._last_update_time == started:
                        self._last_update_time = previous

    def _deliver(self, payload: Dict[str, Any]) -> SendResult:
        result = SendResult(outcome=SendOutcome.EXHAUSTED, dog_id=self.config.dog_id, payload=payload)

        max_retries = self.config.max_retries
        for attempt in range(max_retries):
            result.attempts = attempt + 1
            try:
                response = self._session.put(
                    self.config.vitals_url,
                    json=payload,
                    timeout=self.config.timeout,
                )
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                code = e.response.status_code if e.response is not None else None
                result.status_code = code
                result.error = str(e)

                if code == 401:
                    logger.error("Authentication failed - check AUTH_TOKEN in .env")
                    result.outcome = SendOutcome.UNAUTHORIZED
                    return result
                if code == 404:
                    logger.error("Dog not found - check DOG_ID in .env")
                    result.outcome = SendOutcome.NOT_FOUND
                    return result
                if code == 429:
                    if attempt < max_retries - 1:
                        wait = self.config.retry_delay * (attempt + 2)
                        logger.warning(f"Rate limited - waiting {wait:.1f}s before retry {attempt + 1}/{max_retries}")
                        self._sleep(wait)
                    continue
            except requests.exceptions.RequestException as e:
                result.status_code = None
                result.error = str(e)
            else:
                result.outcome = SendOutcome.SENT
                result.status_code = response.status_code
                logger.info(
                    f"Successfully sent vital data: HR={payload['heartRate']}, "
                    f"Temp={payload['temperature']}°C, Status={payload['status']}"
                )
                return result

            if attempt < max_retries - 1:
                wait = self.config.retry_delay * (attempt + 1)
                logger.warning(f"API request failed (attempt {attempt + 1}/{max_retries}) - retrying in {wait:.1f}s")
                self._sleep(wait)

        logger.error(f"Failed to send vital data after all retries: {result.error}")
        return result

    def close(self):
        self._session.close()
