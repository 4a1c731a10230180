"""Race detail link resolution."""
from typing import Optional
from urllib.parse import urljoin

from processor.models import LinkProvider, Race

NETKEIBA_BASE_URL = 'https://race.netkeiba.com/top/'
JRA_URL = 'https://jra.jp/keiba/'


def resolve_race_link(race: Race, provider: LinkProvider) -> Optional[str]:
    """
    Resolve where a race links to for the given provider.

    Relative listing links such as "../race/shutuba.html?race_id=..." are
    resolved against the race list page. The link is never fetched.
    """
    if provider == LinkProvider.JRA:
        return JRA_URL
    if not race.url:
        return None
    return urljoin(NETKEIBA_BASE_URL, race.url)
