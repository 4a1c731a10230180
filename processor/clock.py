"""Simulated clock supporting time travel for alert rehearsal."""
import logging
import re
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TIME_OF_DAY_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')


class SimulatedClock:
    """
    Virtual "now" = real time + offset.

    The offset is the only state. Jumps compute it once against the real
    clock, after which virtual time keeps advancing with real time.
    """

    def __init__(self, timezone: tzinfo,
                 real_now: Optional[Callable[[], datetime]] = None):
        """
        Args:
            timezone: Timezone virtual times are expressed in
            real_now: Source of real time (default: datetime.now(timezone))
        """
        self.timezone = timezone
        self._real_now = real_now or (lambda: datetime.now(self.timezone))
        self._offset = timedelta(0)

    @property
    def offset(self) -> timedelta:
        return self._offset

    @property
    def is_simulated(self) -> bool:
        return self._offset != timedelta(0)

    def real_now(self) -> datetime:
        return self._real_now().astimezone(self.timezone)

    def now(self) -> datetime:
        return self.real_now() + self._offset

    def set_offset(self, offset: timedelta) -> None:
        self._offset = offset
        logger.info(f"Clock offset set to {offset.total_seconds():+.0f}s")

    def reset(self) -> None:
        """Return to real time."""
        self.set_offset(timedelta(0))

    advance_to_real_time = reset

    def jump_to(self, target: datetime) -> bool:
        """
        Move virtual time to `target`.

        Args:
            target: Timezone aware instant

        Returns:
            True if the jump happened, False if it was rejected
        """
        if not isinstance(target, datetime) or target.tzinfo is None:
            logger.warning(f"Rejected clock jump to {target!r}: not an aware datetime")
            return False
        self.set_offset(target - self.real_now())
        return True

    def jump_to_time_of_day(self, text: str) -> bool:
        """
        Jump to "HH:MM" on the current real calendar day.

        Unparsable input is rejected and the previous offset is kept.
        """
        match = TIME_OF_DAY_PATTERN.match((text or '').strip())
        if not match:
            logger.warning(f"Rejected clock jump to {text!r}: expected HH:MM")
            return False
        try:
            target_clock = time(int(match.group(1)), int(match.group(2)))
        except ValueError as e:
            logger.warning(f"Rejected clock jump to {text!r}: {e}")
            return False

        today = self.real_now().date()
        return self.jump_to(datetime.combine(today, target_clock, tzinfo=self.timezone))
