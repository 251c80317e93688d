"""
Tests for the file-backed sliding window rate limiter.

A fake clock drives time so window expiry is tested without sleeping.

Running Tests:
    $ PYTHONPATH=src python -m pytest tests/test_rate_limiter.py -v
"""
import json
import os
import threading

import pytest

from config import RateLimitConfig
from indieweb.rate_limit import (
    UNLIMITED,
    RateLimiter,
    RateLimitSweeper,
    hash_client_address,
)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(tmp_path, clock):
    return RateLimiter(str(tmp_path / "rate_limits"), max_requests=3, window_seconds=60, clock=clock)


class TestRateLimiter:
    def test_allows_up_to_limit_then_rejects(self, limiter):
        results = [limiter.allow("client") for _ in range(4)]
        assert results == [True, True, True, False]

    def test_allows_again_after_window(self, limiter, clock):
        for _ in range(3):
            limiter.allow("client")
        assert limiter.allow("client") is False

        clock.advance(61)
        assert limiter.allow("client") is True

    def test_rejected_request_is_not_recorded(self, limiter, clock):
        for _ in range(3):
            limiter.allow("client")
        clock.advance(30)
        limiter.allow("client")  # rejected
        clock.advance(31)

        # The three admitted requests are now outside the window
        assert limiter.remaining("client") == 3

    def test_clients_are_independent(self, limiter):
        for _ in range(3):
            limiter.allow("a")
        assert limiter.allow("a") is False
        assert limiter.allow("b") is True

    def test_remaining(self, limiter):
        assert limiter.remaining("client") == 3
        limiter.allow("client")
        assert limiter.remaining("client") == 2

    def test_reset(self, limiter):
        for _ in range(3):
            limiter.allow("client")
        limiter.reset("client")
        assert limiter.allow("client") is True

    def test_reset_unknown_client(self, limiter):
        limiter.reset("nobody")
        assert limiter.remaining("nobody") == 3

    def test_record_filename_is_hashed(self, limiter):
        limiter.allow("203.0.113.7")
        names = os.listdir(limiter.storage_path)
        assert all("203.0.113.7" not in name for name in names)
        records = [n for n in names if n.endswith(".json")]
        assert len(records) == 1
        with open(os.path.join(limiter.storage_path, records[0])) as f:
            assert json.load(f) == [1_000_000]

    def test_corrupt_record_is_treated_as_empty(self, limiter):
        limiter.allow("client")
        record = next(n for n in os.listdir(limiter.storage_path) if n.endswith(".json"))
        with open(os.path.join(limiter.storage_path, record), "w") as f:
            f.write("{not json")

        assert limiter.remaining("client") == 3
        assert limiter.allow("client") is True

    def test_disabled_limiter_always_allows(self, tmp_path, clock):
        limiter = RateLimiter(str(tmp_path / "rl"), enabled=False, max_requests=1, clock=clock)
        assert all(limiter.allow("client") for _ in range(5))
        assert limiter.remaining("client") == UNLIMITED
        assert not os.path.exists(tmp_path / "rl")

    def test_from_config(self, tmp_path, clock):
        settings = RateLimitConfig(enabled=True, max_requests=5, window_seconds=30)
        limiter = RateLimiter.from_config(settings, str(tmp_path), clock=clock)

        assert limiter.storage_path == os.path.join(str(tmp_path), "rate_limits")
        assert limiter.max_requests == 5
        assert limiter.window_seconds == 30

    def test_concurrent_requests_admit_exactly_the_limit(self, tmp_path, clock):
        limiter = RateLimiter(str(tmp_path), max_requests=10, window_seconds=60, clock=clock)
        results = []
        lock = threading.Lock()

        def hit():
            allowed = limiter.allow("client")
            with lock:
                results.append(allowed)

        threads = [threading.Thread(target=hit) for _ in range(25)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 10
        assert results.count(False) == 15


class TestSweep:
    def test_sweep_removes_idle_records(self, limiter, clock):
        limiter.allow("old")
        clock.advance(121)
        limiter.allow("fresh")

        removed = limiter.sweep()

        assert removed == 1
        assert limiter.remaining("fresh") == 2
        records = [n for n in os.listdir(limiter.storage_path) if n.endswith(".json")]
        assert len(records) == 1

    def test_sweep_keeps_recent_records(self, limiter, clock):
        limiter.allow("client")
        clock.advance(90)
        assert limiter.sweep() == 0

    def test_sweep_removes_lock_files(self, limiter, clock):
        limiter.allow("client")
        clock.advance(500)
        limiter.sweep()
        assert os.listdir(limiter.storage_path) == []

    def test_client_can_continue_after_sweep(self, limiter, clock):
        for _ in range(3):
            limiter.allow("client")
        clock.advance(500)
        limiter.sweep()
        assert limiter.allow("client") is True


class TestRateLimitSweeper:
    def test_start_and_stop(self, limiter):
        sweeper = RateLimitSweeper(limiter, interval_seconds=60)
        sweeper.start()
        try:
            assert sweeper.is_running()
        finally:
            sweeper.stop()
        assert not sweeper.is_running()

    def test_default_interval_is_twice_the_window(self, limiter):
        assert RateLimitSweeper(limiter).interval_seconds == 120

    def test_not_started_when_disabled(self, tmp_path):
        limiter = RateLimiter(str(tmp_path), enabled=False)
        sweeper = RateLimitSweeper(limiter)
        sweeper.start()
        assert not sweeper.is_running()

    def test_runs_sweep_periodically(self, limiter, clock):
        limiter.allow("client")
        clock.advance(500)
        swept = threading.Event()
        original_sweep = limiter.sweep

        def sweep():
            count = original_sweep()
            swept.set()
            return count

        limiter.sweep = sweep
        sweeper = RateLimitSweeper(limiter, interval_seconds=0.01)
        sweeper.start()
        try:
            assert swept.wait(timeout=2)
        finally:
            sweeper.stop()
        assert limiter.remaining("client") == 3


def test_hash_client_address_is_stable_and_opaque():
    assert hash_client_address("198.51.100.1") == hash_client_address("198.51.100.1")
    assert hash_client_address("198.51.100.1") != hash_client_address("198.51.100.2")
    assert "198.51.100.1" not in hash_client_address("198.51.100.1")
