"""
Per-client sliding window rate limiting for the webmention endpoint.

Each client identity (a salted hash of its address, never the raw IP) owns a
small JSON file containing the integer unix timestamps of its admitted
requests inside the trailing window. The check-then-append sequence runs
under an exclusive per-client lock so concurrent requests cannot both take
the last free slot.

A RateLimitSweeper thread periodically removes records that have been idle
for two window lengths.
"""

import glob
import hashlib
import logging
import os
import sys
import threading
import time
from typing import Callable, List, Optional

from config import RateLimitConfig
from interactions.locking import exclusive_lock, read_json, write_json_atomic

logger = logging.getLogger(__name__)

UNLIMITED = sys.maxsize

_CLIENT_HASH_SALT = "fedbridge-rate-limit"


def hash_client_address(address: str) -> str:
    """Hash a client address for storage (privacy-preserving)."""
    salted = f"{address}:{_CLIENT_HASH_SALT}".encode()
    return hashlib.sha256(salted).hexdigest()


class RateLimiter:
    """File-backed sliding window rate limiter.

    Attributes:
        enabled: When False every request is allowed and nothing is stored
        max_requests: Requests admitted per window
        window_seconds: Length of the trailing window
        storage_path: Directory holding one record per client identity
    """

    def __init__(
        self,
        storage_path: str,
        enabled: bool = RateLimitConfig.enabled,
        max_requests: int = RateLimitConfig.max_requests,
        window_seconds: int = RateLimitConfig.window_seconds,
        clock: Callable[[], float] = time.time,
    ):
        self.enabled = enabled
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.storage_path = storage_path
        self._clock = clock
        if self.enabled:
            os.makedirs(self.storage_path, mode=0o755, exist_ok=True)

    @classmethod
    def from_config(cls, settings: RateLimitConfig, storage_path: str,
                    clock: Callable[[], float] = time.time) -> "RateLimiter":
        return cls(
            storage_path=os.path.join(storage_path, "rate_limits"),
            enabled=settings.enabled,
            max_requests=settings.max_requests,
            window_seconds=settings.window_seconds,
            clock=clock,
        )

    def allow(self, client_id: str) -> bool:
        """Admit or reject one request for ``client_id``.

        Returns:
            True if the request is within the limit (and has been recorded),
            False if the client has exhausted its window.
        """
        if not self.enabled:
            return True

        record_path, lock_path = self._paths(client_id)
        with exclusive_lock(lock_path):
            now = int(self._clock())
            requests_in_window = self._in_window(self._load(record_path), now)

            if len(requests_in_window) >= self.max_requests:
                logger.debug(f"Rate limit reached for client {client_id[:12]}")
                return False

            requests_in_window.append(now)
            write_json_atomic(record_path, requests_in_window)

        return True

    def remaining(self, client_id: str) -> int:
        """Number of requests ``client_id`` may still make in the current window."""
        if not self.enabled:
            return UNLIMITED

        record_path, _ = self._paths(client_id)
        now = int(self._clock())
        requests_in_window = self._in_window(self._load(record_path), now)
        return max(0, self.max_requests - len(requests_in_window))

    def reset(self, client_id: str) -> None:
        """Forget every recorded request for ``client_id``."""
        record_path, lock_path = self._paths(client_id)
        if not os.path.isdir(self.storage_path):
            return
        with exclusive_lock(lock_path):
            try:
                os.unlink(record_path)
            except FileNotFoundError:
                pass

    def sweep(self) -> int:
        """Remove records idle for more than two window lengths.

        Returns:
            Number of client records removed
        """
        if not self.enabled or not os.path.isdir(self.storage_path):
            return 0

        cutoff = int(self._clock()) - self.window_seconds * 2
        removed = 0

        for record_path in glob.glob(os.path.join(self.storage_path, "*.json")):
            lock_path = record_path[: -len(".json")] + ".lock"
            with exclusive_lock(lock_path):
                timestamps = self._load(record_path)
                if timestamps and max(timestamps) >= cutoff:
                    continue
                try:
                    os.unlink(record_path)
                    removed += 1
                except FileNotFoundError:
                    pass
                # Waiters re-open the lock file after this unlink
                os.unlink(lock_path)

        if removed:
            logger.info(f"Rate limit sweep removed {removed} idle client record(s)")
        return removed

    def _paths(self, client_id: str) -> tuple[str, str]:
        key = hashlib.sha256(client_id.encode()).hexdigest()
        base = os.path.join(self.storage_path, key)
        return base + ".json", base + ".lock"

    def _in_window(self, timestamps: List[int], now: int) -> List[int]:
        window_start = now - self.window_seconds
        return [ts for ts in timestamps if ts >= window_start]

    @staticmethod
    def _load(record_path: str) -> List[int]:
        data = read_json(record_path, [])
        if not isinstance(data, list):
            return []
        return [int(ts) for ts in data if isinstance(ts, (int, float)) and not isinstance(ts, bool)]


class RateLimitSweeper:
    """Background thread that periodically sweeps idle rate limit records."""

    def __init__(self, rate_limiter: RateLimiter, interval_seconds: Optional[float] = None):
        self.rate_limiter = rate_limiter
        self.interval_seconds = interval_seconds or rate_limiter.window_seconds * 2
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the sweeper thread (no-op when the limiter is disabled)."""
        if not self.rate_limiter.enabled:
            logger.info("Rate limiting disabled, sweeper not started")
            return
        if self._thread and self._thread.is_alive():
            logger.warning("Rate limit sweeper already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="RateLimitSweeper")
        self._thread.start()
        logger.info(f"Rate limit sweeper started (interval={self.interval_seconds}s)")

    def stop(self, timeout: float = 5.0) -> None:
        if not self._thread:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Rate limit sweeper stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.rate_limiter.sweep()
            except OSError as e:
                logger.error(f"Rate limit sweep failed: {e}")
