"""
Market data sources
===================
A data source yields raw markets one page at a time::

    page = await source.fetch_candidates(page_size=500, offset=0)

GammaMarketSource: live Polymarket Gamma API over httpx.
StaticDataSource: in-memory list (offline runs, tests).

``fetch_all`` drives the pagination loop: it keeps requesting until a short
or empty page, validating entries one by one so a malformed market is
skipped rather than failing its page. A failure on the first page is fatal
(DataSourceError); a failure on a later page ends the loop with whatever was
collected and marks the outcome as partial.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

import httpx
from pydantic import ValidationError

from marketlens.errors import DataSourceError
from marketlens.models import RawItem

logger = logging.getLogger("DataSource")

# A page entry: a decoded JSON object, or an already validated RawItem
RawEntry = Union[RawItem, Dict[str, Any]]


class DataSource(Protocol):
    async def fetch_candidates(self, page_size: int, offset: int) -> List[RawEntry]:
        ...


def parse_page(payload: Any, offset: int = 0) -> List[RawItem]:
    """Validate one page entry by entry. Malformed markets are logged and skipped."""
    if not isinstance(payload, list):
        raise DataSourceError(f"Expected a JSON list of markets at offset {offset}, got {type(payload).__name__}", offset)
    items = []
    for entry in payload:
        if isinstance(entry, RawItem):
            items.append(entry)
            continue
        if not isinstance(entry, dict):
            continue
        try:
            items.append(RawItem.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed market {entry.get('id')!r} at offset {offset}: {e.error_count()} invalid field(s)")
    return items


class GammaMarketSource:
    """Active, open markets from the Gamma REST API."""

    def __init__(
        self,
        base_url: str = "https://gamma-api.polymarket.com/markets",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True, timeout=self.timeout)
        return self._client

    async def fetch_candidates(self, page_size: int, offset: int) -> List[RawEntry]:
        params: Dict[str, Any] = {
            "limit": page_size,
            "offset": offset,
            "closed": "false",
            "active": "true",
        }
        client = self._get_client()
        try:
            response = await client.get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise DataSourceError(f"Gamma API returned {e.response.status_code} at offset {offset}", offset) from e
        except httpx.HTTPError as e:
            raise DataSourceError(f"Gamma API request failed at offset {offset}: {e}", offset) from e
        except ValueError as e:
            raise DataSourceError(f"Gamma API returned invalid JSON at offset {offset}", offset) from e
        if not isinstance(payload, list):
            raise DataSourceError(f"Expected a JSON list of markets at offset {offset}, got {type(payload).__name__}", offset)
        return payload

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


class StaticDataSource:
    """Serves a fixed list of raw markets, paginated like the live API."""

    def __init__(self, raw_items: Iterable[Any]):
        self.raw_items = list(raw_items)
        self.calls = 0

    async def fetch_candidates(self, page_size: int, offset: int) -> List[RawEntry]:
        self.calls += 1
        return self.raw_items[offset:offset + page_size]


@dataclass
class FetchOutcome:
    items: List[RawItem]
    partial: bool = False
    error: Optional[str] = None


async def fetch_all(source: DataSource, page_size: int = 500, page_delay: float = 0.0) -> FetchOutcome:
    if page_size <= 0:
        raise ValueError("page_size must be positive")

    items: List[RawItem] = []
    offset = 0
    while True:
        try:
            batch = await source.fetch_candidates(page_size, offset)
            page = parse_page(batch, offset)
        except DataSourceError as e:
            if offset == 0:
                logger.error(f"Data source failed on first page: {e}")
                raise
            logger.warning(f"Data source failed at offset {offset}, keeping {len(items)} markets: {e}")
            return FetchOutcome(items=items, partial=True, error=str(e))

        items.extend(page)
        logger.debug(f"Fetched {len(items)} markets so far...")
        if len(batch) < page_size:
            break
        offset += page_size
        if page_delay > 0:
            await asyncio.sleep(page_delay)

    logger.info(f"Total markets fetched: {len(items)}")
    return FetchOutcome(items=items)
