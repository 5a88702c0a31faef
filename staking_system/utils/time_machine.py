# staking_system/utils/time_machine.py
"""
Time machine - controls the settlement clock (real or virtual).
"""
from datetime import date, datetime, timezone
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class TimeMachine:
    """Singleton for managing system time."""

    _instance = None
    _virtualTime: Optional[datetime] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def now(self) -> datetime:
        """Get current system time (real or virtual)."""
        if self._virtualTime:
            return self._virtualTime
        return datetime.now(timezone.utc)

    @property
    def today(self) -> date:
        """Current settlement day (UTC)."""
        return self.now.date()

    def setTime(self, newTime: datetime, adminId: Optional[int] = None):
        """Set virtual time (tests, replaying a settlement day)."""
        if newTime.tzinfo is None:
            newTime = newTime.replace(tzinfo=timezone.utc)
        self._virtualTime = newTime
        logger.info(f"Virtual time set to {newTime} by admin {adminId}")

    def setDate(self, day: date, adminId: Optional[int] = None):
        """Set virtual time to the start of a calendar day."""
        self.setTime(datetime(day.year, day.month, day.day, tzinfo=timezone.utc), adminId)

    def resetToRealTime(self):
        """Return to real time."""
        self._virtualTime = None
        logger.info("Returned to real time")


# Global instance
timeMachine = TimeMachine()
