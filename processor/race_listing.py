"""Fail-open race listing refresh."""
import logging
from datetime import datetime
from typing import Callable, Optional

from processor.models import ScraperResult
from processor.race_normalizer import RaceNormalizer
from scraper.netkeiba_races import NetkeibaRaceScraper

logger = logging.getLogger(__name__)


class RaceListing:
    """Combines the scraper and the normalizer into a refresh that never raises."""

    def __init__(self, scraper: NetkeibaRaceScraper,
                 normalizer: Optional[RaceNormalizer] = None,
                 now: Optional[Callable[[], datetime]] = None):
        """
        Args:
            scraper: Race list scraper
            normalizer: Entry normalizer (default: RaceNormalizer())
            now: Clock used to anchor races and stamp results
        """
        self.scraper = scraper
        self.normalizer = normalizer or RaceNormalizer()
        self._now = now or (lambda: datetime.now().astimezone())

    def refresh(self, now: Optional[datetime] = None) -> ScraperResult:
        """
        Fetch and normalize today's races.

        Any failure yields an empty result with source "mock"; callers must
        read that as "no data right now", not "no races today".

        Args:
            now: Time whose calendar day races are anchored to

        Returns:
            ScraperResult
        """
        now = now or self._now()
        try:
            entries = self.scraper.fetch_race_entries()
            races = self.normalizer.normalize(entries, now)
        except Exception as e:
            logger.error(
                f"Race listing refresh failed: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return ScraperResult(races=(), fetched_at=self._now(), source='mock')

        logger.info(f"Race listing refreshed with {len(races)} races")
        return ScraperResult(races=tuple(races), fetched_at=self._now(), source='live')
