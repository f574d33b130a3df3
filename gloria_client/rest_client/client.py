"""
Gloria REST Client

Plain request/response access to the paginated /news listing and the
per-topic /recaps summaries.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional, Sequence

import aiohttp

from gloria_client.config import ClientConfig
from gloria_client.core.types import HttpError, ValidationError
from gloria_client.models.messages import NewsItem
from gloria_client.models.validators import validate_news_item, validate_recap

logger = logging.getLogger(__name__)


class NewsRestClient:
    """
    aiohttp client for the Gloria news hub HTTP endpoints.

    The session is created lazily and closed by close(), unless one was
    injected, in which case its owner closes it.
    """

    def __init__(
        self,
        config: ClientConfig,
        topics_provider: Callable[[], Sequence[str]],
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._topics_provider = topics_provider
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> NewsRestClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def _get_json(self, path: str, params: dict[str, str], detail: str = "") -> Any:
        """
        GET ``path`` and decode its JSON body.

        Raises:
            HttpError: On any non-2xx status
            ValidationError: If a 2xx body is not valid JSON
        """
        url = f"{self._config.base_url}{path}"
        session = self._get_session()

        async with session.get(url, params=params) as resp:
            if not 200 <= resp.status < 300:
                raise HttpError(resp.status, url, detail)
            try:
                return await resp.json()
            except json.JSONDecodeError as e:
                raise ValidationError(
                    f"Response body is not valid JSON: {e}",
                    field="body",
                    value=path,
                ) from e

    async def fetch_news(
        self,
        *,
        page: int = 1,
        limit: Optional[int] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        topics: Optional[Sequence[str]] = None,
    ) -> list[NewsItem]:
        """
        Fetch one page of news for the given (or configured) topics.

        Args:
            page: 1-based page number
            limit: Page size, defaults to the configured default_limit
            from_date: Optional lower date bound, passed through verbatim
            to_date: Optional upper date bound, passed through verbatim
            topics: Categories to filter on, defaults to the configured topics

        Raises:
            HttpError: On a non-2xx response
            ValidationError: If the body is not a list of news records
        """
        params = {
            "token": self._config.api_key,
            "feed_categories": ",".join(topics if topics is not None else self._topics_provider()),
            "page": str(page),
            "limit": str(limit or self._config.default_limit),
        }
        if from_date:
            params["from_date"] = from_date
        if to_date:
            params["to_date"] = to_date

        body = await self._get_json("/news", params)
        if not isinstance(body, list):
            raise ValidationError("News response must be a list", value=body)

        items = [validate_news_item(raw) for raw in body]
        logger.debug(
            "Fetched news page",
            extra={"page": page, "items": len(items)},
        )
        return items

    async def fetch_recap(
        self,
        category: Optional[str] = None,
        timeframe: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Fetch the recap for one category.

        Without a category the first configured topic is used.

        Raises:
            HttpError: On a non-2xx response
            ValidationError: If no category is available or the body is not an object
        """
        feed_category = category
        if not feed_category:
            topics = self._topics_provider()
            if not topics:
                raise ValidationError("No category given and no topics configured", field="category")
            feed_category = topics[0]

        params = {
            "token": self._config.api_key,
            "feed_category": feed_category,
            "timeframe": timeframe or self._config.default_timeframe,
        }
        body = await self._get_json("/recaps", params, detail=feed_category)
        return validate_recap(body)

    async def fetch_all_recaps(self, timeframe: Optional[str] = None) -> dict[str, dict[str, Any]]:
        """
        Fetch recaps for every configured topic concurrently.

        A failing topic gets an ``{"error": ...}`` entry instead of
        aborting the batch.
        """
        tf = timeframe or self._config.default_timeframe
        topics = list(self._topics_provider())

        async def _one(topic: str) -> dict[str, Any]:
            try:
                return await self.fetch_recap(topic, tf)
            except (HttpError, ValidationError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(
                    "Failed to fetch recap",
                    extra={"topic": topic, "error": str(e)},
                )
                return {"error": f"Failed to fetch: {e}"}

        results = await asyncio.gather(*(_one(topic) for topic in topics))
        return dict(zip(topics, results))
