"""
================================================================================
GameDiss - Aggregator
================================================================================
Fans out to one source fetcher per requested field and merges the results
into AggregatedGameData.

  - fetchers run concurrently, one task per field
  - each fetcher has its own cache, rate limit and timeout
  - an overall deadline bounds the whole fan-out; unfinished fields are
    cancelled and marked SOURCE_TIMEOUT
  - a failed field carries its error and never affects its siblings
================================================================================
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, Mapping, Optional

from .models import AggregatedGameData, ErrorKind, FetchOutcome, FieldResult
from .providers.base import BaseSourceFetcher


logger = logging.getLogger(__name__)


DEFAULT_DEADLINE = 8.0


class Aggregator:
    """Concurrent per-field fetch with an overall deadline."""

    def __init__(
        self,
        fetchers: Mapping[str, BaseSourceFetcher],
        deadline: float = DEFAULT_DEADLINE,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            fetchers: Field name -> fetcher
            deadline: Overall seconds to wait for all fields
            clock: Time source for fetched_at of timed-out fields
        """
        self.fetchers: Dict[str, BaseSourceFetcher] = dict(fetchers)
        self.deadline = deadline
        self._clock = clock

    @property
    def available_fields(self) -> frozenset:
        return frozenset(self.fetchers)

    async def aggregate(
        self,
        app_id: str,
        wanted_fields: Iterable[str],
        deadline: Optional[float] = None
    ) -> AggregatedGameData:
        """
        Fetch the wanted fields for a catalog id.

        Args:
            app_id: Resolved catalog id
            wanted_fields: Field names to fetch
            deadline: Overrides the default overall deadline (seconds)

        Returns:
            AggregatedGameData with one FieldResult per wanted field

        Raises:
            ValueError: If a field has no fetcher
        """
        fields = sorted(set(wanted_fields))
        unknown = [f for f in fields if f not in self.fetchers]
        if unknown:
            raise ValueError(f"Unknown fields: {', '.join(unknown)}")

        if not fields:
            return AggregatedGameData(id=app_id, fields={})

        timeout = self.deadline if deadline is None else deadline
        logger.info(f"Aggregating {app_id}: {', '.join(fields)} (deadline {timeout:.1f}s)")

        tasks: Dict[str, asyncio.Task] = {
            field: asyncio.ensure_future(self.fetchers[field].fetch(app_id))
            for field in fields
        }

        try:
            done, pending = await asyncio.wait(tasks.values(), timeout=timeout)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            # Let cancellations settle before reporting
            await asyncio.gather(*pending, return_exceptions=True)

        results: Dict[str, FieldResult] = {}
        for field, task in tasks.items():
            results[field] = self._field_result(field, task, task in done)

        data = AggregatedGameData(id=app_id, fields=results)
        if data.failed_fields:
            logger.warning(f"Aggregated {app_id} with failed fields: "
                           f"{', '.join(data.failed_fields)}")
        return data

    def _field_result(self, field: str, task: asyncio.Task, finished: bool) -> FieldResult:
        if not finished or task.cancelled():
            logger.warning(f"{field}: missed the aggregation deadline")
            return FieldResult(value=None, fetched_at=self._clock(),
                               error=ErrorKind.SOURCE_TIMEOUT)

        exc = task.exception()
        if exc is not None:
            # fetch() reports source failures as outcomes; anything else is a bug
            logger.error(f"{field}: fetcher raised {type(exc).__name__}: {exc}")
            return FieldResult(value=None, fetched_at=self._clock(),
                               error=ErrorKind.SOURCE_UNAVAILABLE)

        outcome: FetchOutcome = task.result()
        return FieldResult(value=outcome.value, fetched_at=outcome.fetched_at,
                           error=outcome.error)

    async def close(self):
        for fetcher in self.fetchers.values():
            await fetcher.close()
