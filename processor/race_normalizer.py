"""Race normalizer turning raw listing entries into typed races."""
import logging
import re
from datetime import datetime, time
from typing import List, Optional

from processor.models import Grade, Race, RaceEntry

logger = logging.getLogger(__name__)


class RaceNormalizer:
    """Validates raw entries and anchors them to the current day."""

    GRADE_BY_MARKER = {
        'Icon_GradeType1': Grade.G1,
        'Icon_GradeType2': Grade.G2,
        'Icon_GradeType3': Grade.G3,
        'Icon_GradeType15': Grade.LISTED,
    }
    RACE_NUMBER_PATTERN = re.compile(r'^(\d+)\s*R?$', re.IGNORECASE)
    START_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')

    def normalize(self, entries: List[RaceEntry], now: datetime) -> List[Race]:
        """
        Normalize raw entries into races sorted by start time.

        Args:
            entries: Raw entries in document order
            now: Current (timezone aware) time; start times land on its day

        Returns:
            List of Race objects, earliest first
        """
        races = []

        for entry in entries:
            race = self._normalize_single_entry(entry, now)
            if race:
                races.append(race)

        logger.info(
            f"Normalized {len(races)} valid races out of "
            f"{len(entries)} total entries"
        )
        # sorted() is stable, so simultaneous races keep document order
        return sorted(races, key=lambda race: race.start_time)

    def _normalize_single_entry(self, entry: RaceEntry, now: datetime) -> Optional[Race]:
        race_number = self._parse_race_number(entry.race_number)
        if race_number is None:
            logger.debug(
                f"Skipping entry with invalid race number in {entry.venue}: "
                f"{entry.race_number!r}"
            )
            return None

        start_clock = self._parse_start_time(entry.start_time)
        if start_clock is None:
            logger.debug(
                f"Skipping {entry.venue} {entry.race_number} with invalid "
                f"start time: {entry.start_time!r}"
            )
            return None

        return Race(
            id=self.generate_race_id(entry.venue, entry.race_number.strip()),
            location=entry.venue,
            race_number=race_number,
            race_name=entry.race_name,
            grade=self.GRADE_BY_MARKER.get(entry.grade_marker, Grade.GENERAL),
            start_time=datetime.combine(now.date(), start_clock, tzinfo=now.tzinfo),
            url=entry.url
        )

    def _parse_race_number(self, text: Optional[str]) -> Optional[int]:
        """
        Parse a race number such as "11R".

        Returns:
            Positive race number or None if parsing fails
        """
        if not text:
            return None
        match = self.RACE_NUMBER_PATTERN.match(text.strip())
        if not match:
            return None
        number = int(match.group(1))
        return number if number > 0 else None

    def _parse_start_time(self, text: Optional[str]) -> Optional[time]:
        """
        Parse a post time in HH:MM format.

        Returns:
            time object or None if parsing fails
        """
        if not text:
            return None
        match = self.START_TIME_PATTERN.match(text.strip())
        if not match:
            return None
        try:
            return time(int(match.group(1)), int(match.group(2)))
        except ValueError:
            return None

    def generate_race_id(self, venue: str, race_number_text: str) -> str:
        """
        Generate the race identifier from venue and race number.

        Stable across refreshes of the same day's list; the same venue and
        race number on another day produce the same id.
        """
        return f"netkeiba-{venue}-{race_number_text}"
