"""Race list scraper for netkeiba."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from processor.models import RaceEntry

logger = logging.getLogger(__name__)

GRADE_MARKERS = (
    'Icon_GradeType1',
    'Icon_GradeType2',
    'Icon_GradeType3',
    'Icon_GradeType15',
)


@dataclass(frozen=True)
class FieldRule:
    """
    Declarative extraction of one field from a markup element.

    The first element matching `selector` is handed to `transform`; when no
    element matches, or the transform yields nothing or fails, `fallback` is
    returned instead.
    """
    selector: str
    transform: Callable[[Tag], Any]
    fallback: Any = None

    def extract(self, element: Tag) -> Any:
        found = element.select_one(self.selector)
        if found is None:
            return self.fallback
        try:
            value = self.transform(found)
        except (AttributeError, IndexError, ValueError) as e:
            logger.debug(f"Rule '{self.selector}' failed: {e}")
            return self.fallback
        return self.fallback if value in (None, '') else value


def _text(element: Tag) -> str:
    return element.get_text(strip=True)


def _venue_label(element: Tag) -> str:
    # "1回 中山 1日目" -> "中山"
    return element.get_text(' ', strip=True).split()[1]


def _grade_marker(element: Tag) -> Optional[str]:
    classes = element.get('class') or []
    for marker in GRADE_MARKERS:
        if marker in classes:
            return marker
    return None


def _href(element: Tag) -> Optional[str]:
    return element.get('href')


def _date_attr(element: Tag) -> Optional[str]:
    return element.get('date')


ACTIVE_DATE_RULE = FieldRule('#date_list_sub .Active', _date_attr)
VENUE_RULE = FieldRule('.RaceList_DataTitle', _venue_label, 'Unknown')
RACE_NUMBER_RULE = FieldRule('.Race_Num', _text)
RACE_NAME_RULE = FieldRule('.ItemTitle', _text, '')
START_TIME_RULE = FieldRule('.RaceList_Itemtime', _text)
GRADE_RULE = FieldRule('.Icon_GradeType', _grade_marker)
URL_RULE = FieldRule('a', _href)


class NetkeibaRaceScraper:
    """Scraper for the netkeiba daily race list."""

    DATE_LIST_URL = "https://race.netkeiba.com/top/race_list_get_date_list.html"
    RACE_LIST_URL = "https://race.netkeiba.com/top/race_list_sub.html"
    HEADERS = {
        'User-Agent': (
            'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
            '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
        ),
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache'
    }

    def __init__(self, timeout: int = 10, max_retries: int = 3,
                 base_delay: float = 1.0):
        """
        Initialize the race list scraper.

        Args:
            timeout: HTTP request timeout in seconds (default: 10)
            max_retries: Attempts per request before giving up (default: 3)
            base_delay: First retry delay in seconds, doubled per attempt
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay

    def fetch_race_entries(self) -> List[RaceEntry]:
        """
        Fetch the race list currently served by netkeiba.

        Returns:
            List of RaceEntry objects in document order

        Raises:
            requests.RequestException: If the race list cannot be fetched
        """
        active_date = self.fetch_active_date()
        params = {'kaisai_date': active_date} if active_date else None
        if active_date:
            logger.info(f"Fetching race list for {active_date}")
        else:
            logger.info("No active date known, fetching default race list")

        html_content = self._fetch_html(self.RACE_LIST_URL, params=params)
        entries = self.parse_race_entries(html_content)

        logger.info(f"Successfully fetched {len(entries)} race entries")
        return entries

    def fetch_active_date(self) -> Optional[str]:
        """
        Look up which day's list netkeiba treats as selected.

        Returns:
            Date string such as "20240106", or None when unavailable
        """
        try:
            html_content = self._fetch_html(self.DATE_LIST_URL)
        except requests.RequestException as e:
            logger.warning(f"Active date lookup failed, using default list: {e}")
            return None

        active_date = self.parse_active_date(html_content)
        if not active_date:
            logger.warning("Date list has no active tab, using default list")
        return active_date

    def _fetch_html(self, url: str, params: Optional[dict] = None) -> str:
        """
        Fetch a page with retry logic, bypassing caches.

        Args:
            url: Page URL
            params: Optional query parameters

        Returns:
            HTML content as string

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Fetching {url} (attempt {attempt + 1}/{self.max_retries})"
                )
                response = requests.get(
                    url,
                    params=params,
                    headers=self.HEADERS,
                    timeout=self.timeout
                )
                response.raise_for_status()
                if response.encoding is None or response.encoding.lower() == 'iso-8859-1':
                    response.encoding = response.apparent_encoding
                return response.text

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def parse_active_date(self, html_content: str) -> Optional[str]:
        soup = BeautifulSoup(html_content, 'html.parser')
        return ACTIVE_DATE_RULE.extract(soup)

    def parse_race_entries(self, html_content: str) -> List[RaceEntry]:
        """
        Parse race entries from race list HTML.

        Venues are `.RaceList_DataList` groups; each holds its races as
        `.RaceList_DataItem` entries.

        Args:
            html_content: HTML content of the race list

        Returns:
            List of RaceEntry objects
        """
        soup = BeautifulSoup(html_content, 'html.parser')
        entries = []

        for venue_element in soup.select('.RaceList_DataList'):
            venue = VENUE_RULE.extract(venue_element)

            for race_element in venue_element.select('.RaceList_Data .RaceList_DataItem'):
                try:
                    entries.append(self._parse_race_element(race_element, venue))
                except Exception as e:
                    logger.warning(f"Failed to parse race element in {venue}: {e}")
                    continue

        return entries

    def _parse_race_element(self, element: Tag, venue: str) -> RaceEntry:
        return RaceEntry(
            venue=venue,
            race_number=RACE_NUMBER_RULE.extract(element),
            race_name=RACE_NAME_RULE.extract(element),
            start_time=START_TIME_RULE.extract(element),
            grade_marker=GRADE_RULE.extract(element),
            url=URL_RULE.extract(element)
        )
