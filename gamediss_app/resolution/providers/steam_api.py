"""
================================================================================
GameDiss - Steam Web API & SteamSpy Sources
================================================================================
JSON sources keyed by Steam app id:

  - players: ISteamUserStats/GetNumberOfCurrentPlayers (live player count)
  - owners:  SteamSpy appdetails (owner range, average playtime)
  - user_reviews: store appreviews endpoint (most helpful user reviews)

API Docs:
  https://partner.steamgames.com/doc/webapi/ISteamUserStats
  https://steamspy.com/api.php
  https://partner.steamgames.com/doc/store/getreviews
================================================================================
"""

import hashlib
import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

from .base import BaseSourceFetcher
from ..errors import SourceParseError, SourceUnavailable
from ..models import OwnershipEstimate, PlayerCount, UserReview, UserReviews


logger = logging.getLogger(__name__)


class SteamPlayerCountFetcher(BaseSourceFetcher[PlayerCount]):
    """
    Concurrent players right now.

    Response: {"response": {"player_count": 1234, "result": 1}}
    result != 1 means the app id is unknown or has no stats.
    """

    field = "players"
    name = "Steam Current Players"
    base_url = "https://api.steampowered.com"
    rate_limit = 100
    timeout = 4.0
    cache_ttl = 300.0  # 5 minutes

    async def _fetch(self, app_id: str) -> PlayerCount:
        data = await self._get_json(
            f"{self.base_url}/ISteamUserStats/GetNumberOfCurrentPlayers/v1/",
            params={'appid': app_id},
        )

        payload = data.get('response')
        if not isinstance(payload, dict):
            raise SourceParseError("players: missing 'response' object", source=self.field)

        if payload.get('result') != 1:
            raise SourceUnavailable(
                f"players: no player data for app {app_id} (result={payload.get('result')})",
                source=self.field,
            )

        count = payload.get('player_count')
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise SourceParseError(f"players: invalid player_count {count!r}", source=self.field)

        return PlayerCount(count=count)


class SteamSpyOwnershipFetcher(BaseSourceFetcher[OwnershipEstimate]):
    """
    Estimated owner range from SteamSpy.

    Response: {"appid": 570, "owners": "200,000,000 .. 500,000,000",
               "average_forever": 12345, ...}
    """

    field = "owners"
    name = "SteamSpy Ownership"
    base_url = "https://steamspy.com/api.php"
    rate_limit = 60
    timeout = 5.0
    cache_ttl = 24 * 3600.0

    _OWNERS_RANGE = re.compile(r'^\s*([\d,]+)\s*\.\.\s*([\d,]+)\s*$')

    async def _fetch(self, app_id: str) -> OwnershipEstimate:
        data = await self._get_json(
            self.base_url,
            params={'request': 'appdetails', 'appid': app_id},
        )

        owners = data.get('owners')
        if not owners:
            raise SourceUnavailable(f"owners: SteamSpy has no data for app {app_id}",
                                    source=self.field)

        match = self._OWNERS_RANGE.match(str(owners))
        if not match:
            raise SourceParseError(f"owners: unrecognized owners value {owners!r}",
                                   source=self.field)

        low, high = (int(part.replace(',', '')) for part in match.groups())
        if low == 0 and high <= 20000 and not data.get('name'):
            # SteamSpy answers unknown ids with an empty "0 .. 20,000" record
            raise SourceUnavailable(f"owners: SteamSpy does not know app {app_id}",
                                    source=self.field)

        playtime = data.get('average_forever')
        return OwnershipEstimate(
            owners_low=low,
            owners_high=high,
            average_playtime=int(playtime) if playtime else None,
        )


class SteamUserReviewsFetcher(BaseSourceFetcher[UserReviews]):
    """
    Most helpful user reviews for an app.

    Response: {"success": 1, "reviews": [{"recommendationid": "1",
               "review": "...", "timestamp_created": 1700000000,
               "votes_up": 12}, ...]}

    The page is re-sorted by votes_up and the top `limit` kept.
    """

    field = "user_reviews"
    name = "Steam User Reviews"
    base_url = "https://store.steampowered.com/appreviews"
    rate_limit = 40
    timeout = 6.0
    cache_ttl = 6 * 3600.0

    page_size = 20
    limit = 10

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        language: str = "english"
    ):
        super().__init__(client=client, clock=clock)
        self.language = language

    async def _fetch(self, app_id: str) -> UserReviews:
        data = await self._get_json(
            f"{self.base_url}/{app_id}",
            params={
                'json': 1,
                'filter': 'helpful',
                'language': self.language,
                'cursor': '*',
                'review_type': 'all',
                'purchase_type': 'all',
                'num_per_page': self.page_size,
            },
        )

        if data.get('success') != 1:
            raise SourceUnavailable(f"user_reviews: no reviews for app {app_id}",
                                    source=self.field)

        reviews = data.get('reviews')
        if not isinstance(reviews, list):
            raise SourceParseError("user_reviews: missing 'reviews' list", source=self.field)
        if not all(isinstance(raw, dict) for raw in reviews):
            raise SourceParseError("user_reviews: review entries must be objects",
                                   source=self.field)

        ranked = sorted(reviews, key=lambda r: r.get('votes_up') or 0, reverse=True)
        return UserReviews(reviews=tuple(
            self._parse_review(app_id, raw) for raw in ranked[:self.limit]
        ))

    @staticmethod
    def _parse_review(app_id: str, raw: dict) -> UserReview:
        # KeyError / TypeError / ValueError surface as SourceParseError
        digest = hashlib.md5(f"{app_id}-{raw['recommendationid']}".encode()).hexdigest()
        created = datetime.fromtimestamp(int(raw['timestamp_created']), tz=timezone.utc)
        return UserReview(
            review_id=digest[:12],
            content=str(raw['review']),
            published_at=created.strftime('%Y-%m-%dT%H:%M:%SZ'),
            votes_up=int(raw.get('votes_up') or 0),
        )
