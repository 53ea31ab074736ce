"""In-memory passcode store with expiry and one-time consumption."""

from __future__ import annotations

import logging
import math
import numbers
import threading
import time
from collections.abc import Callable

from otp_manager.errors import InvalidArgument
from otp_manager.models.token import TokenRecord

logger = logging.getLogger(__name__)

# Maximum validity window in milliseconds, also the default duration
MAX_DURATION_MS = 5 * 60 * 1000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class TokenStore:
    """Thread-safe in-memory store of short-lived, single-use passcodes.

    Each entry maps ``passcode → TokenRecord``.  Expired entries are
    logically absent: reads that observe one drop it, ``sweep_expired``
    drops them in bulk, and with ``auto_cleanup`` a one-shot timer per
    record removes it once its window has passed.

    Parameters
    ----------
    max_duration_ms:
        Cap on any record's validity window; also the duration used when
        ``issue`` is called without one.
    clock:
        Zero-argument callable returning "now" in milliseconds.
    auto_cleanup:
        Schedule a removal timer for each issued record instead of relying
        on lazy expiry alone.
    """

    def __init__(
        self,
        max_duration_ms: int = MAX_DURATION_MS,
        *,
        clock: Callable[[], float] | None = None,
        auto_cleanup: bool = False,
    ) -> None:
        if (
            isinstance(max_duration_ms, bool)
            or not isinstance(max_duration_ms, numbers.Real)
            or math.isnan(max_duration_ms)
            or max_duration_ms <= 0
        ):
            raise InvalidArgument("max_duration_ms must be a positive number")
        self._max_duration_ms = max_duration_ms
        self._clock = clock or _monotonic_ms
        self._auto_cleanup = auto_cleanup
        self._records: dict[int, TokenRecord] = {}
        self._timers: dict[int, threading.Timer] = {}
        self._lock = threading.Lock()

    @property
    def max_duration_ms(self) -> int:
        return self._max_duration_ms

    @property
    def scheduled_cleanups(self) -> int:
        """Number of cleanup timers still pending (always 0 without auto_cleanup)."""
        with self._lock:
            return len(self._timers)

    # ── Issuance ─────────────────────────────────────────

    def issue(self, passcode: int, duration: float | None = None) -> bool:
        """Store *passcode* for *duration* milliseconds, capped at the maximum.

        Returns ``True`` if a still-valid record already existed and was
        refreshed, ``False`` if the passcode is new (or had lapsed).
        """
        self._check_passcode(passcode)
        effective = self._effective_duration(duration)

        with self._lock:
            now = self._clock()
            existing = self._records.get(passcode)
            existed = existing is not None and not existing.is_expired(now)
            self._write(passcode, effective, now)

        logger.debug("Passcode %s for %sms", "refreshed" if existed else "issued", effective)
        return existed

    def issue_if_absent(self, passcode: int, duration: float | None = None) -> TokenRecord | None:
        """Store *passcode* only if it is not live already.

        Returns the new record, or ``None`` when a live record for
        *passcode* exists (which is left untouched).
        """
        self._check_passcode(passcode)
        effective = self._effective_duration(duration)

        with self._lock:
            now = self._clock()
            existing = self._records.get(passcode)
            if existing is not None and not existing.is_expired(now):
                return None
            record = self._write(passcode, effective, now)

        logger.debug("Passcode issued for %sms", effective)
        return record

    def _write(self, passcode: int, effective: float, now: float) -> TokenRecord:
        # Caller holds the lock.
        record = TokenRecord(created_at=now, expires_at=now + effective, duration=effective)
        self._records[passcode] = record
        if self._auto_cleanup:
            self._schedule_cleanup(passcode, effective)
        return record

    @staticmethod
    def _check_passcode(passcode: int) -> None:
        if isinstance(passcode, bool) or not isinstance(passcode, numbers.Integral):
            raise InvalidArgument("Passcode must be an integer")

    def _effective_duration(self, duration: float | None) -> float:
        if duration is None:
            return self._max_duration_ms
        if isinstance(duration, bool) or not isinstance(duration, numbers.Real):
            raise InvalidArgument("Duration must be a positive number")
        if math.isnan(duration) or duration <= 0:
            raise InvalidArgument("Duration must be a positive number")
        return min(duration, self._max_duration_ms)

    # ── Reads ────────────────────────────────────────────

    def verify(self, passcode: int) -> bool:
        """Return ``True`` if *passcode* is live.  Does not consume it."""
        with self._lock:
            return self._check_live(passcode, self._clock())

    def consume(self, passcode: int, *, record: TokenRecord | None = None) -> bool:
        """Verify *passcode* and remove it on success (one-time use).

        With *record*, the passcode is only consumed while that exact
        issuance is still the live one, never a later re-issue of the
        same value.
        """
        with self._lock:
            if not self._check_live(passcode, self._clock()):
                return False
            if record is not None and self._records[passcode] is not record:
                return False
            self._discard(passcode)
        logger.debug("Passcode consumed")
        return True

    def remaining_time(self, passcode: int) -> int:
        """Milliseconds until *passcode* lapses, ``0`` if unknown or expired."""
        with self._lock:
            record = self._records.get(passcode)
            if record is None:
                return 0
            return record.remaining_ms(self._clock())

    def inspect(self, passcode: int) -> TokenRecord | None:
        """Return the live record for *passcode*, if any, without side effects."""
        with self._lock:
            record = self._records.get(passcode)
            if record is None or record.is_expired(self._clock()):
                return None
            return record

    def _check_live(self, passcode: int, now: float) -> bool:
        # Caller holds the lock.
        record = self._records.get(passcode)
        if record is None:
            return False
        if record.is_expired(now):
            self._discard(passcode)
            return False
        return True

    # ── Maintenance ──────────────────────────────────────

    def sweep_expired(self) -> int:
        """Remove every expired record and return how many were dropped."""
        with self._lock:
            return self._sweep(self._clock())

    def active_count(self) -> int:
        """Number of live passcodes, after sweeping expired ones."""
        with self._lock:
            self._sweep(self._clock())
            return len(self._records)

    def _sweep(self, now: float) -> int:
        # Caller holds the lock.
        expired = [p for p, record in self._records.items() if record.is_expired(now)]
        for passcode in expired:
            self._discard(passcode)
        if expired:
            logger.debug("Swept %d expired passcode(s)", len(expired))
        return len(expired)

    def clear_all(self) -> None:
        """Drop every record and pending cleanup timer."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._records.clear()
        logger.debug("Passcode store cleared")

    def _discard(self, passcode: int) -> None:
        # Caller holds the lock.
        self._records.pop(passcode, None)
        timer = self._timers.pop(passcode, None)
        if timer is not None:
            timer.cancel()

    # ── Timers ───────────────────────────────────────────

    def _schedule_cleanup(self, passcode: int, duration_ms: float) -> None:
        # Caller holds the lock.  A re-issue supersedes the previous timer.
        previous = self._timers.pop(passcode, None)
        if previous is not None:
            previous.cancel()
        timer = threading.Timer(duration_ms / 1000, self._expire_from_timer, args=(passcode,))
        timer.daemon = True
        self._timers[passcode] = timer
        timer.start()

    def _expire_from_timer(self, passcode: int) -> None:
        with self._lock:
            current = self._timers.get(passcode) is threading.current_thread()
            if current:
                del self._timers[passcode]
            record = self._records.get(passcode)
            if record is None:
                return
            now = self._clock()
            # A later issue may have replaced the record with a longer window.
            if record.is_expired(now):
                del self._records[passcode]
                logger.debug("Passcode removed by cleanup timer")
            elif current:
                self._schedule_cleanup(passcode, record.expires_at - now)


__all__ = ["MAX_DURATION_MS", "TokenStore"]
