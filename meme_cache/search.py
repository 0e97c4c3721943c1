"""Cached semantic search with supersession of stale requests."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from meme_cache.errors import MemeCacheError
from meme_cache.types import SearchResponse, SearchResult

if TYPE_CHECKING:
    from meme_cache.cache import CacheService
    from meme_cache.client import ApiClient

logger = logging.getLogger(__name__)


class SearchService:
    """Search front-end that serves repeats from cache.

    Each caller key (one search box, say) has at most one request in flight:
    starting a new search cancels the previous one, whose caller gets None.
    """

    def __init__(self, client: "ApiClient", cache: "CacheService") -> None:
        self.client = client
        self.cache = cache
        self._inflight: dict[str, asyncio.Task] = {}

    async def search(
        self,
        user_id: str,
        query: str,
        filters: Optional[dict] = None,
        *,
        limit: int = 30,
        threshold: float = 0.2,
        key: str = "default",
    ) -> Optional[SearchResponse]:
        """Search for a user's memes.

        Args:
            filters: Extra values that scope the cached entry, such as the
                view the search was made from. They are not sent to the API.

        Returns:
            The response, or None if this search was superseded by a newer
            one for the same key or the API call failed.
        """
        previous = self._inflight.get(key)
        if previous is not None and not previous.done():
            logger.debug(f"Superseding in-flight search for key {key}")
            previous.cancel()

        task = asyncio.get_running_loop().create_task(
            self._run(user_id, query, filters, limit=limit, threshold=threshold)
        )
        self._inflight[key] = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._inflight.get(key) is not task:
                return None
            raise
        except MemeCacheError as e:
            logger.warning(f"Search failed for query {query[:50]!r}: {e}")
            return None
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

    async def _run(
        self, user_id: str, query: str, filters: Optional[dict], *, limit: int, threshold: float
    ) -> SearchResponse:
        cache_filters = {**(filters or {}), "limit": limit, "threshold": threshold}
        cached = await self.cache.get_search_results(user_id, query, cache_filters)
        if cached is not None:
            results = [SearchResult.from_api(item) for item in cached]
            return SearchResponse(
                results=results,
                query=query,
                total=len(results),
                limit=limit,
                threshold=threshold,
                cached=True,
            )

        response = await self.client.search(query, limit=limit, threshold=threshold)
        await self.cache.set_search_results(
            user_id, query, cache_filters, [result.to_dict() for result in response.results]
        )
        return response

    def cancel_all(self) -> None:
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()
