"""
Cross-process fixed-window rate limiter backed by a shared record file.

Every ping process on a host points at the same record. All reads and writes
of the record happen while holding an exclusive OS-level advisory lock on a
``<record>.lock`` sidecar, so concurrent processes serialize. The lock is a
``filelock`` hard lock: the kernel drops it when the holding process exits,
so a crash mid-update never wedges the fleet.

Windows are wall-clock seconds, not a sliding window. Up to
``2 * rps_limit`` admissions can land within a sub-second span that straddles
a boundary; callers rely on this fixed-window behaviour.
"""

import os
import struct
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional, Union

from filelock import FileLock, Timeout

from shared.errors import LimiterUnavailableError
from shared.logging import get_logger

# 8-byte window start, 4-byte count, 4 reserved bytes
RECORD_FORMAT = ">qi4x"
RECORD_SIZE = struct.calcsize(RECORD_FORMAT)
_PAYLOAD_SIZE = 12


@dataclass(frozen=True)
class RateRecord:
    """Persisted counter for the current one-second window."""
    window_start: int
    count: int

    def encode(self) -> bytes:
        return struct.pack(RECORD_FORMAT, self.window_start, self.count)

    @classmethod
    def decode(cls, data: bytes) -> Optional["RateRecord"]:
        """Decode a record, or return None when no readable record is present."""
        if len(data) < _PAYLOAD_SIZE:
            return None
        window_start, count = struct.unpack(RECORD_FORMAT, data[:_PAYLOAD_SIZE].ljust(RECORD_SIZE, b"\0"))
        return cls(window_start=window_start, count=count)


def _lock_path_for(path: Path) -> Path:
    return path.with_suffix(path.suffix + ".lock")


class PersistedRateLimiter:
    """Admit at most ``rps_limit`` acquisitions per wall-clock second across processes."""

    def __init__(
        self,
        record_path: Union[str, Path],
        rps_limit: int = 2,
        lock_timeout: float = 0.5,
        clock: Callable[[], float] = time.time,
    ):
        if rps_limit < 1:
            raise ValueError("rps_limit must be positive")
        self.record_path = Path(record_path)
        self.rps_limit = rps_limit
        self.lock_timeout = lock_timeout
        self._clock = clock
        self._lock = FileLock(str(_lock_path_for(self.record_path)), timeout=lock_timeout)
        self.logger = get_logger("ping.rate_limiter")

    def try_acquire(self) -> bool:
        """Take one token from the current window.

        Returns False when the window's ceiling is already reached. Raises
        LimiterUnavailableError when the record cannot be locked or accessed.
        """
        with self._locked_record() as handle:
            return self._admit(handle)

    def snapshot(self) -> Optional[RateRecord]:
        """Read the current record under the lock without consuming a token."""
        with self._locked_record() as handle:
            return RateRecord.decode(handle.read(RECORD_SIZE))

    @contextmanager
    def _locked_record(self) -> Iterator[BinaryIO]:
        try:
            with self._lock:
                # O_CREAT without O_TRUNC: an existing record must survive the open
                fd = os.open(self.record_path, os.O_RDWR | os.O_CREAT, 0o644)
                with os.fdopen(fd, "r+b") as handle:
                    yield handle
        except Timeout as e:
            raise LimiterUnavailableError(
                "Timed out waiting for rate limit lock",
                details={"lock_file": str(e.lock_file), "timeout": self.lock_timeout}
            ) from e
        except OSError as e:
            raise LimiterUnavailableError(
                "Rate limit record is not accessible",
                details={"record": str(self.record_path), "error": str(e)}
            ) from e

    def _admit(self, handle: BinaryIO) -> bool:
        now = int(self._clock())
        record = RateRecord.decode(handle.read(RECORD_SIZE))

        if record is None:
            self._write(handle, RateRecord(window_start=now, count=1))
            self.logger.info("First request allowed", window_start=now)
            return True

        # A window start in the future means the wall clock stepped back
        if now - record.window_start >= 1 or now < record.window_start:
            record = RateRecord(window_start=now, count=0)

        if record.count < self.rps_limit:
            self._write(handle, RateRecord(window_start=record.window_start, count=record.count + 1))
            return True

        self.logger.info(
            "Rate limit reached",
            window_start=record.window_start,
            count=record.count,
            limit=self.rps_limit
        )
        return False

    @staticmethod
    def _write(handle: BinaryIO, record: RateRecord) -> None:
        handle.seek(0)
        handle.write(record.encode())
        handle.flush()
        os.fsync(handle.fileno())
