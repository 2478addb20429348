"""
A-share trading calendar.

Trading windows are weekdays 09:30-11:30 and 13:00-15:00 in exchange local
time. Public holidays are not modelled. All functions take and return epoch
milliseconds.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from arena_engine.domain import from_millis, to_millis

HOUR_MS = 60 * 60 * 1000
MAX_SNAP_ITERATIONS = 168

MORNING_OPEN = time(9, 30)
MORNING_CLOSE = time(11, 30)
AFTERNOON_OPEN = time(13, 0)
MARKET_CLOSE = time(15, 0)


@dataclass(frozen=True)
class TradingCalendar:
    """Trading windows for one exchange timezone."""

    tz: ZoneInfo = ZoneInfo("Asia/Shanghai")

    def _local(self, ts: int) -> datetime:
        return from_millis(ts, self.tz)

    @staticmethod
    def _at(dt: datetime, t: time, days: int = 0) -> datetime:
        shifted = dt + timedelta(days=days) if days else dt
        return shifted.replace(hour=t.hour, minute=t.minute, second=0, microsecond=0)

    # =========================================================================
    # Queries
    # =========================================================================

    def is_trading_time(self, ts: int) -> bool:
        """Check whether ts falls inside a trading window (both ends inclusive)."""
        dt = self._local(ts)
        if dt.weekday() >= 5:
            return False

        hour, minute = dt.hour, dt.minute
        if hour == 9 and minute >= 30:
            return True
        if hour == 10:
            return True
        if hour == 11 and minute <= 30:
            return True
        if hour in (13, 14):
            return True
        return hour == 15 and minute == 0

    def next_trading_time(self, ts: int) -> int:
        """
        Snap ts forward to the nearest trading moment.

        Returns ts itself when it is already inside a window, and also when no
        trading moment is found within MAX_SNAP_ITERATIONS steps.
        """
        current = ts
        for _ in range(MAX_SNAP_ITERATIONS):
            if self.is_trading_time(current):
                return current

            dt = self._local(current)
            weekday, hour, minute = dt.weekday(), dt.hour, dt.minute

            if weekday == 5:
                current = to_millis(self._at(dt, MORNING_OPEN, days=2))
            elif weekday == 6:
                current = to_millis(self._at(dt, MORNING_OPEN, days=1))
            elif hour == 12:
                current = to_millis(self._at(dt, AFTERNOON_OPEN))
            elif (hour == 15 and minute > 0) or hour >= 16:
                current = to_millis(self._at(dt, MORNING_OPEN, days=1))
            elif hour < 9 or (hour == 9 and minute < 30):
                current = to_millis(self._at(dt, MORNING_OPEN))
            elif hour == 11 and minute > 30:
                current = to_millis(self._at(dt, AFTERNOON_OPEN))
            else:
                current += HOUR_MS

        return ts

    def advance(self, ts: int) -> int:
        """Step one hour forward and snap into the next trading window."""
        return self.next_trading_time(ts + HOUR_MS)

    def last_trading_close(self, now: int) -> int:
        """
        Close (15:00) of the most recent fully completed trading day.

        Weekends map to Friday; on a weekday before or at 15:00 the previous
        calendar day is used.
        """
        dt = self._local(now)
        weekday = dt.weekday()

        if weekday == 6:
            return to_millis(self._at(dt, MARKET_CLOSE, days=-2))
        if weekday == 5:
            return to_millis(self._at(dt, MARKET_CLOSE, days=-1))
        if dt.hour > 15 or (dt.hour == 15 and dt.minute > 0):
            return to_millis(self._at(dt, MARKET_CLOSE))
        return to_millis(self._at(dt, MARKET_CLOSE, days=-1))

    def effective_end(self, end: int, now: int) -> int:
        """Earlier of the requested end and the last completed trading close."""
        return min(end, self.last_trading_close(now))
