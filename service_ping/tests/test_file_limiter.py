"""
Unit tests for the file-backed PersistedRateLimiter.
"""

import multiprocessing
import struct
import sys

import pytest
from filelock import FileLock

from service_ping.app.ratelimit.file_limiter import (
    RECORD_SIZE,
    PersistedRateLimiter,
    RateRecord,
)
from shared.errors import LimiterUnavailableError

FROZEN_SECOND = 1_700_000_000


class FakeClock:
    """Controllable wall clock."""

    def __init__(self, now: float = FROZEN_SECOND):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _frozen_clock() -> float:
    return FROZEN_SECOND + 0.25


def _acquire_in_subprocess(record_path: str) -> bool:
    limiter = PersistedRateLimiter(record_path, rps_limit=2, lock_timeout=10.0, clock=_frozen_clock)
    return limiter.try_acquire()


class TestRateRecord:
    """Test cases for the on-disk record layout."""

    def test_record_is_sixteen_bytes_big_endian(self):
        """Test the fixed binary layout."""
        data = RateRecord(window_start=FROZEN_SECOND, count=2).encode()

        assert len(data) == RECORD_SIZE == 16
        assert data[:8] == struct.pack(">q", FROZEN_SECOND)
        assert data[8:12] == struct.pack(">i", 2)
        assert data[12:] == b"\0\0\0\0"

    def test_round_trip(self):
        """Test that a written record reads back unchanged."""
        record = RateRecord(window_start=FROZEN_SECOND, count=1)
        assert RateRecord.decode(record.encode()) == record

    def test_reserved_bytes_are_ignored(self):
        """Test that the trailing reserved bytes are not interpreted."""
        data = RateRecord(window_start=FROZEN_SECOND, count=1).encode()[:12] + b"\xff\xff\xff\xff"
        assert RateRecord.decode(data) == RateRecord(window_start=FROZEN_SECOND, count=1)

    @pytest.mark.parametrize("data", [b"", b"\x00" * 5, b"\x00" * 11])
    def test_short_data_is_no_record(self, data):
        """Test that an empty or truncated file means no record yet."""
        assert RateRecord.decode(data) is None


class TestPersistedRateLimiter:
    """Test cases for PersistedRateLimiter."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def record_path(self, tmp_path):
        return tmp_path / "rate-limit.lock"

    @pytest.fixture
    def limiter(self, record_path, clock):
        return PersistedRateLimiter(record_path, rps_limit=2, lock_timeout=0.2, clock=clock)

    def test_first_acquire_creates_record(self, limiter, record_path):
        """Test first-ever acquisition on a missing record."""
        assert not record_path.exists()

        assert limiter.try_acquire() is True

        assert limiter.snapshot() == RateRecord(window_start=FROZEN_SECOND, count=1)
        assert record_path.stat().st_size == RECORD_SIZE

    def test_first_acquire_on_empty_file(self, limiter, record_path):
        """Test that an existing but empty file is treated as no record."""
        record_path.write_bytes(b"")

        assert limiter.try_acquire() is True
        assert limiter.snapshot().count == 1

    def test_rapid_fire_within_one_second(self, limiter, clock):
        """Test three calls within 200ms yield two admissions."""
        results = []
        for offset in (0.0, 0.1, 0.2):
            clock.now = FROZEN_SECOND + offset
            results.append(limiter.try_acquire())

        assert results == [True, True, False]

    def test_rollover_admits_again(self, limiter, clock):
        """Test that the next window starts a fresh count."""
        assert limiter.try_acquire() is True
        assert limiter.try_acquire() is True
        assert limiter.try_acquire() is False

        clock.now = FROZEN_SECOND + 1

        assert limiter.try_acquire() is True
        assert limiter.snapshot() == RateRecord(window_start=FROZEN_SECOND + 1, count=1)

    def test_boundary_burst_is_allowed(self, limiter, clock):
        """Test the fixed-window burst straddling a second boundary."""
        clock.now = FROZEN_SECOND + 0.9
        first_window = [limiter.try_acquire(), limiter.try_acquire()]
        clock.now = FROZEN_SECOND + 1.05
        second_window = [limiter.try_acquire(), limiter.try_acquire()]

        assert first_window + second_window == [True, True, True, True]

    def test_denial_does_not_modify_record(self, limiter, record_path):
        """Test that a denied call leaves the stored count at the limit."""
        limiter.try_acquire()
        limiter.try_acquire()
        before = record_path.read_bytes()

        assert limiter.try_acquire() is False
        assert record_path.read_bytes() == before

    def test_state_is_shared_between_instances(self, record_path, clock):
        """Test that separate limiters on one file share the count."""
        first = PersistedRateLimiter(record_path, rps_limit=2, clock=clock)
        second = PersistedRateLimiter(record_path, rps_limit=2, clock=clock)

        assert first.try_acquire() is True
        assert second.try_acquire() is True
        assert first.try_acquire() is False
        assert second.try_acquire() is False

    def test_count_above_limit_is_saturated(self, limiter, record_path):
        """Test a record written under a higher limit still denies."""
        record_path.write_bytes(RateRecord(window_start=FROZEN_SECOND, count=5).encode())

        assert limiter.try_acquire() is False

    def test_clock_stepping_back_rolls_over(self, limiter, record_path, clock):
        """Test that a window start in the future does not wedge the limiter."""
        record_path.write_bytes(RateRecord(window_start=FROZEN_SECOND + 3600, count=2).encode())

        assert limiter.try_acquire() is True
        assert limiter.snapshot() == RateRecord(window_start=FROZEN_SECOND, count=1)

    def test_snapshot_does_not_consume(self, limiter):
        """Test that reading the record takes no token."""
        assert limiter.snapshot() is None
        limiter.try_acquire()
        limiter.snapshot()
        limiter.snapshot()

        assert limiter.snapshot().count == 1

    def test_lock_held_elsewhere_is_unavailable(self, limiter, record_path):
        """Test lock contention past the timeout surfaces as unavailable."""
        other_holder = FileLock(str(record_path) + ".lock")

        with other_holder:
            with pytest.raises(LimiterUnavailableError) as exc_info:
                limiter.try_acquire()

        assert exc_info.value.code == "LIMITER_UNAVAILABLE"
        assert not record_path.exists()

    def test_unreadable_record_is_unavailable(self, tmp_path, clock):
        """Test an inaccessible record path surfaces as unavailable."""
        directory = tmp_path / "not-a-file"
        directory.mkdir()
        limiter = PersistedRateLimiter(directory, clock=clock)

        with pytest.raises(LimiterUnavailableError):
            limiter.try_acquire()

    def test_lock_is_released_after_unavailable(self, tmp_path, clock):
        """Test that a failed record access still releases the lock."""
        directory = tmp_path / "not-a-file"
        directory.mkdir()
        limiter = PersistedRateLimiter(directory, lock_timeout=0.1, clock=clock)

        with pytest.raises(LimiterUnavailableError):
            limiter.try_acquire()

        with FileLock(str(directory) + ".lock", timeout=0.1):
            pass

    def test_invalid_limit(self, record_path):
        """Test that a non-positive limit is rejected."""
        with pytest.raises(ValueError):
            PersistedRateLimiter(record_path, rps_limit=0)

    @pytest.mark.skipif(sys.platform == "win32", reason="fork start method is POSIX only")
    def test_concurrent_processes_never_exceed_limit(self, record_path):
        """Test that processes racing on one record admit exactly the limit."""
        context = multiprocessing.get_context("fork")

        with context.Pool(processes=4) as pool:
            results = pool.map(_acquire_in_subprocess, [str(record_path)] * 12)

        assert results.count(True) == 2
        assert results.count(False) == 10
        assert RateRecord.decode(record_path.read_bytes()) == RateRecord(window_start=FROZEN_SECOND, count=2)
