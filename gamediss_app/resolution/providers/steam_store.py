"""
================================================================================
GameDiss - Steam Store Page Sources
================================================================================
Scrapes the public Steam store page (store.steampowered.com/app/<id>) for:

  - reviews: review summary labels ("Very Positive", "Mixed", ...)
  - tags:    user-defined popular tags, in display order
  - store:   price, discount and release date

Each field fetches the page on its own so that one slow or failing field
never blocks another. The age gate is bypassed with the standard cookies.
================================================================================
"""

import logging
import re
import time
from abc import abstractmethod
from typing import Callable, List, Optional, TypeVar

import httpx
from bs4 import BeautifulSoup

from .base import BaseSourceFetcher, STEAM_COOKIE_HEADER
from ..errors import SourceParseError, SourceUnavailable
from ..models import ReviewSummary, StoreDetails, TagList


logger = logging.getLogger(__name__)

T = TypeVar('T')

STORE_BASE_URL = "https://store.steampowered.com"

# Review sections across the old and new store layouts
REVIEW_SECTION_SELECTORS = (
    '.review_score_summaries .review_summary_ctn',
    '.summary_section',
    '.user_reviews_summary_row',
)


class SteamStorePageFetcher(BaseSourceFetcher[T]):
    """Base for sources parsed out of the Steam store page."""

    name = "Steam Store"
    base_url = STORE_BASE_URL
    rate_limit = 60
    timeout = 6.0
    accept = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        country: str = "us",
        language: str = "english"
    ):
        super().__init__(client=client, clock=clock)
        self.country = country
        self.language = language

    async def _fetch_page(self, app_id: str) -> BeautifulSoup:
        url = f"{self.base_url}/app/{app_id}/"
        response = await self._request(
            "GET",
            url,
            params={'cc': self.country, 'l': self.language},
            headers={'Cookie': STEAM_COOKIE_HEADER},
        )

        # Unknown or region-locked apps redirect to the store front page
        if f"/app/{app_id}" not in response.url.path:
            raise SourceUnavailable(f"{self.field}: app {app_id} has no store page",
                                    source=self.field)

        return BeautifulSoup(response.text, 'html.parser')

    async def _fetch(self, app_id: str) -> T:
        soup = await self._fetch_page(app_id)
        return self._parse(soup, app_id)

    @abstractmethod
    def _parse(self, soup: BeautifulSoup, app_id: str) -> T:
        """Extract this field from a parsed store page."""


class SteamReviewFetcher(SteamStorePageFetcher[ReviewSummary]):
    """
    Review sentiment labels.

    Priority:
      1. Overall / All Reviews
      2. English Reviews
      3. Recent Reviews (games with few reviews only show this one)
    """

    field = "reviews"
    name = "Steam Reviews"
    cache_ttl = 3600.0

    OVERALL_TITLES = ('Overall Reviews:', 'All Reviews:')
    ENGLISH_TITLES = ('English Reviews:',)
    RECENT_TITLES = ('Recent Reviews:',)

    def _parse(self, soup: BeautifulSoup, app_id: str) -> ReviewSummary:
        labels = self._review_labels(soup)

        recent = self._first(labels, self.RECENT_TITLES)
        overall = (self._first(labels, self.OVERALL_TITLES)
                   or self._first(labels, self.ENGLISH_TITLES)
                   or recent)

        if not overall:
            raise SourceParseError(f"reviews: no review summary on page for {app_id}",
                                   source=self.field)

        return ReviewSummary(
            label=overall,
            recent_label=recent,
            total_reviews=self._review_count(soup),
        )

    @staticmethod
    def _review_labels(soup: BeautifulSoup) -> dict:
        labels = {}
        for selector in REVIEW_SECTION_SELECTORS:
            for section in soup.select(selector):
                title_el = section.select_one('.title, .subtitle')
                summary_el = section.select_one('.game_review_summary')
                if not title_el or not summary_el:
                    continue
                title = title_el.get_text(strip=True)
                text = summary_el.get_text(strip=True)
                if title and text and title not in labels:
                    labels[title] = text
        return labels

    @staticmethod
    def _first(labels: dict, titles) -> Optional[str]:
        for title in titles:
            if labels.get(title):
                return labels[title]
        return None

    @staticmethod
    def _review_count(soup: BeautifulSoup) -> Optional[int]:
        meta = soup.select_one('meta[itemprop="reviewCount"]')
        if meta and meta.get('content', '').isdigit():
            return int(meta['content'])
        return None


class SteamTagsFetcher(SteamStorePageFetcher[TagList]):
    """Popular user tags, most-applied first."""

    field = "tags"
    name = "Steam Popular Tags"
    cache_ttl = 6 * 3600.0

    def _parse(self, soup: BeautifulSoup, app_id: str) -> TagList:
        tags: List[str] = []
        for element in soup.select('.glance_tags.popular_tags a'):
            text = element.get_text(strip=True)
            if text and text != '+':
                tags.append(text)
        return TagList(tags=tuple(tags))


class SteamStoreDetailsFetcher(SteamStorePageFetcher[StoreDetails]):
    """Price, current discount and release date."""

    field = "store"
    name = "Steam Store Details"
    cache_ttl = 1800.0

    _WHITESPACE = re.compile(r'\s+')

    def _parse(self, soup: BeautifulSoup, app_id: str) -> StoreDetails:
        return StoreDetails(
            price=self._text(soup, '.game_purchase_price, .discount_final_price'),
            discount=self._text(soup, '.discount_pct'),
            release_date=self._text(soup, '.release_date .date'),
        )

    def _text(self, soup: BeautifulSoup, selector: str) -> Optional[str]:
        element = soup.select_one(selector)
        if element is None:
            return None
        text = self._WHITESPACE.sub(' ', element.get_text()).strip()
        return text or None
